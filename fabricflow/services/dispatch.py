"""Dispatch planning and the picking/loading session of a dispatch order."""
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Count

from fabricflow.exceptions import (
    AlreadyDispatchedError,
    DuplicateScanError,
    LotCompleteError,
    NetworkError,
    NotFoundError,
    ValidationError,
    WrongLotError,
)
from fabricflow.models import (
    DispatchedRoll,
    DispatchPlanning,
    ManualActionAlert,
    RollConfirmation,
    StorageCapture,
)
from fabricflow.services.alerts import raise_alert
from fabricflow.services.barcodes import decode_roll_barcode

logger = logging.getLogger(__name__)

LOADING_PREFIX = "LS"
_LOADING_SERIAL = re.compile(rf"^{LOADING_PREFIX}(\d+)$")
SESSION_KEY = "fabricflow.picking"


@dataclass
class PickResult:
    dispatched_roll: DispatchedRoll
    lot_no: str
    fg_roll_no: str
    gross_weight: Decimal
    net_weight: Decimal
    remaining: int
    active_lot: Optional[str]
    advanced: bool = False
    warnings: List[str] = field(default_factory=list)
    alerts: List[ManualActionAlert] = field(default_factory=list)


@dataclass
class LotProgress:
    planning: DispatchPlanning
    scanned: int

    @property
    def lot_no(self):
        return self.planning.lot_no

    @property
    def remaining(self):
        return max(0, self.planning.total_dispatched_rolls - self.scanned)

    @property
    def complete(self):
        return self.scanned >= self.planning.total_dispatched_rolls


def in_stock_count(lot_no) -> int:
    return StorageCapture.objects.filter(lot_no=lot_no, is_dispatched=False).count()


def next_loading_no() -> str:
    highest = 0
    for loading_no in DispatchPlanning.objects.filter(
        loading_no__startswith=LOADING_PREFIX
    ).values_list("loading_no", flat=True):
        m = _LOADING_SERIAL.match(loading_no)
        if m:
            highest = max(highest, int(m.group(1)))
    return f"{LOADING_PREFIX}{highest + 1:05d}"


@transaction.atomic
def plan_dispatch(dispatch_order_id, lots, loading_no=None, actor=None):
    """Schedule lots, in the given order, on one dispatch order.

    ``lots`` is a list of ``{"lot_no": ..., "total_dispatched_rolls": ...}``.
    """
    dispatch_order_id = (dispatch_order_id or "").strip()
    if not dispatch_order_id:
        raise ValidationError("Dispatch order id is required")
    if not lots:
        raise ValidationError("Select at least one lot to dispatch")
    if DispatchPlanning.objects.filter(dispatch_order_id=dispatch_order_id).exists():
        raise ValidationError(f"Dispatch order {dispatch_order_id} is already planned")
    loading_no = (loading_no or "").strip() or next_loading_no()

    plannings = []
    seen = set()
    for sequence, row in enumerate(lots, start=1):
        lot_no = str(row.get("lot_no") or "").strip()
        if not lot_no:
            raise ValidationError("Lot number is required")
        if lot_no in seen:
            raise ValidationError(f"Lot {lot_no} is listed twice")
        seen.add(lot_no)
        try:
            rolls = int(row.get("total_dispatched_rolls"))
        except (TypeError, ValueError):
            raise ValidationError(f"Roll count for lot {lot_no} must be a whole number")
        if rolls <= 0:
            raise ValidationError(f"Roll count for lot {lot_no} must be greater than zero")
        available = in_stock_count(lot_no)
        if rolls > available:
            raise ValidationError(
                f"Lot {lot_no} has only {available} rolls in stock; {rolls} requested",
                lot_no=lot_no,
                available=available,
            )
        first = StorageCapture.objects.filter(lot_no=lot_no).order_by("id").first()
        plannings.append(DispatchPlanning.objects.create(
            dispatch_order_id=dispatch_order_id,
            lot_no=lot_no,
            loading_no=loading_no,
            sequence=sequence,
            customer_name=first.customer_name if first else "",
            tape=first.tape if first else "",
            total_dispatched_rolls=rolls,
        ))
    logger.info("Planned dispatch %s (%s) with %s lots by %s",
                dispatch_order_id, loading_no, len(plannings), getattr(actor, "username", "-"))
    return plannings


def order_progress(dispatch_order_id) -> List[LotProgress]:
    plannings = (
        DispatchPlanning.objects.filter(dispatch_order_id=dispatch_order_id)
        .annotate(scanned=Count("dispatched_rolls"))
        .order_by("sequence", "id")
    )
    return [LotProgress(planning=p, scanned=p.scanned) for p in plannings]


def is_order_fully_dispatched(dispatch_order_id) -> bool:
    progress = order_progress(dispatch_order_id)
    return bool(progress) and all(lp.complete for lp in progress)


def _roll_weights(lot_no, fg_roll_no):
    if not str(fg_roll_no).isdigit():
        return Decimal("0"), Decimal("0")
    rc = RollConfirmation.objects.filter(
        allotment__allotment_id=lot_no, fg_roll_no=int(fg_roll_no)
    ).first()
    if rc is None:
        return Decimal("0"), Decimal("0")
    return rc.gross_weight or Decimal("0"), rc.net_weight or Decimal("0")


class PickingSession:
    """Scanning state of one dispatch order on one loading terminal.

    Picked rolls are persisted as they are scanned, so the session can be
    rebuilt from the database; only the active lot pointer lives in
    ``store`` (``request.session`` for the API).
    """

    def __init__(self, dispatch_order_id, store=None):
        self.dispatch_order_id = str(dispatch_order_id)
        self.store = store if store is not None else {}

    @classmethod
    def open(cls, dispatch_order_id, store=None):
        plannings = DispatchPlanning.objects.filter(dispatch_order_id=dispatch_order_id)
        if not plannings.exists():
            raise NotFoundError(f"Dispatch order {dispatch_order_id} not found")
        if plannings.filter(is_fully_dispatched=True).exists():
            raise AlreadyDispatchedError(f"Dispatch order {dispatch_order_id} is already dispatched")
        session = cls(dispatch_order_id, store)
        progress = session.progress()
        first_open = next((lp for lp in progress if not lp.complete), progress[-1])
        session._set_active(first_open.lot_no)
        return session

    def _pointers(self):
        return self.store.get(SESSION_KEY) or {}

    def _set_active(self, lot_no):
        data = dict(self._pointers())
        data[self.dispatch_order_id] = lot_no
        self.store[SESSION_KEY] = data

    def close(self):
        data = dict(self._pointers())
        data.pop(self.dispatch_order_id, None)
        self.store[SESSION_KEY] = data

    def progress(self) -> List[LotProgress]:
        progress = order_progress(self.dispatch_order_id)
        if not progress:
            raise NotFoundError(f"Dispatch order {self.dispatch_order_id} not found")
        return progress

    def active(self, progress=None) -> LotProgress:
        progress = progress or self.progress()
        lot_no = self._pointers().get(self.dispatch_order_id)
        for lp in progress:
            if lp.lot_no == lot_no:
                return lp
        first_open = next((lp for lp in progress if not lp.complete), progress[-1])
        self._set_active(first_open.lot_no)
        return first_open

    def scanned_rolls(self, lot_no=None):
        qs = DispatchedRoll.objects.filter(planning__dispatch_order_id=self.dispatch_order_id)
        if lot_no:
            qs = qs.filter(lot_no=lot_no)
        return qs.select_related("planning")

    def select_lot(self, lot_no):
        progress = self.progress()
        for index, lp in enumerate(progress):
            if lp.lot_no == lot_no:
                blocking = next((p for p in progress[:index] if not p.complete), None)
                if blocking is not None:
                    raise WrongLotError(
                        f"Finish lot {blocking.lot_no} ({blocking.remaining} rolls left) before lot {lot_no}"
                    )
                self._set_active(lot_no)
                return lp
        raise WrongLotError(f"Lot {lot_no} is not part of dispatch order {self.dispatch_order_id}")

    def scan(self, barcode, loaded_by="System") -> PickResult:
        identity = decode_roll_barcode(barcode, require_fg=True)
        progress = self.progress()
        active = self.active(progress)
        lot_no, fg_roll_no = active.lot_no, identity.fg_roll_no
        if active.planning.is_fully_dispatched:
            raise AlreadyDispatchedError(f"Dispatch order {self.dispatch_order_id} is already dispatched")

        if identity.lot_id != lot_no:
            raise WrongLotError(f"Please scan rolls for lot {lot_no} first", scanned_lot=identity.lot_id)

        capture = StorageCapture.objects.filter(lot_no=lot_no, fg_roll_no=fg_roll_no).first()
        if capture is None:
            raise NotFoundError(f"Roll {fg_roll_no} not found in storage for lot {lot_no}")
        if capture.is_dispatched:
            raise AlreadyDispatchedError(f"Roll {fg_roll_no} of lot {lot_no} is already dispatched")

        if DispatchedRoll.objects.filter(planning=active.planning, fg_roll_no=fg_roll_no).exists():
            raise DuplicateScanError(f"Roll {fg_roll_no} already scanned for lot {lot_no}")

        if active.remaining <= 0:
            raise LotCompleteError(f"All rolls for lot {lot_no} have been processed")

        try:
            with transaction.atomic():
                dispatched = DispatchedRoll.objects.create(
                    planning=active.planning,
                    lot_no=lot_no,
                    fg_roll_no=fg_roll_no,
                    is_loaded=True,
                    loaded_by=loaded_by or "System",
                )
        except IntegrityError:
            raise DuplicateScanError(f"Roll {fg_roll_no} already scanned for lot {lot_no}")
        except DatabaseError as exc:
            raise NetworkError(f"Could not record roll {fg_roll_no}: {exc}")

        gross, net = _roll_weights(lot_no, fg_roll_no)
        remaining = active.remaining - 1
        result = PickResult(
            dispatched_roll=dispatched,
            lot_no=lot_no,
            fg_roll_no=fg_roll_no,
            gross_weight=gross,
            net_weight=net,
            remaining=remaining,
            active_lot=lot_no,
        )

        self._mark_dispatched(capture, dispatched, result)

        if remaining == 0:
            index = next(i for i, lp in enumerate(progress) if lp.lot_no == lot_no)
            if index + 1 < len(progress):
                result.active_lot = progress[index + 1].lot_no
                result.advanced = True
                self._set_active(result.active_lot)
        logger.info("Picked lot %s FG roll %s on %s (%s left)",
                    lot_no, fg_roll_no, self.dispatch_order_id, remaining)
        return result

    def _mark_dispatched(self, capture, dispatched, result):
        try:
            updated = StorageCapture.objects.filter(pk=capture.pk, is_dispatched=False).update(
                is_dispatched=True
            )
            failure = None if updated else "storage record was already marked dispatched"
        except DatabaseError as exc:
            failure = str(exc)
        if failure is None:
            return
        DispatchedRoll.objects.filter(pk=dispatched.pk).update(needs_reconciliation=True)
        dispatched.needs_reconciliation = True
        result.warnings.append(
            f"Roll {result.fg_roll_no} was loaded but its storage record was not updated; "
            "MANUAL ACTION REQUIRED"
        )
        result.alerts.append(raise_alert(
            ManualActionAlert.ORPHANED_DISPATCHED_ROLL, result.lot_no, result.fg_roll_no,
            f"Dispatched roll {result.fg_roll_no} of lot {result.lot_no} on order "
            f"{self.dispatch_order_id} is still in stock: {failure}",
            dispatched_roll_id=dispatched.pk,
            storage_capture_id=capture.pk,
        ))

    @transaction.atomic
    def remove_roll(self, fg_roll_no, lot_no=None):
        """Undo a pick: drop the loaded roll and put it back in stock."""
        rolls = self.scanned_rolls(lot_no).filter(fg_roll_no=str(fg_roll_no))
        dispatched = rolls.select_for_update().first()
        if dispatched is None:
            raise NotFoundError(f"Roll {fg_roll_no} is not loaded on {self.dispatch_order_id}")
        if dispatched.planning.is_fully_dispatched:
            raise AlreadyDispatchedError(f"Dispatch order {self.dispatch_order_id} is already submitted")
        StorageCapture.objects.filter(
            lot_no=dispatched.lot_no, fg_roll_no=dispatched.fg_roll_no
        ).update(is_dispatched=False)
        dispatched.delete()
        logger.info("Removed lot %s FG roll %s from %s",
                    dispatched.lot_no, dispatched.fg_roll_no, self.dispatch_order_id)
        return dispatched

    @transaction.atomic
    def submit(self, actor=None):
        """Write per-lot weight totals and the order-level dispatched flag."""
        progress = self.progress()
        complete = all(lp.complete for lp in progress)
        for lp in progress:
            gross = net = Decimal("0")
            for roll in DispatchedRoll.objects.filter(planning=lp.planning):
                g, n = _roll_weights(roll.lot_no, roll.fg_roll_no)
                gross += g
                net += n
            planning = lp.planning
            planning.total_gross_weight = gross
            planning.total_net_weight = net
            planning.is_fully_dispatched = complete
            planning.save(update_fields=["total_gross_weight", "total_net_weight", "is_fully_dispatched"])
        logger.info("Submitted dispatch %s (%s) by %s",
                    self.dispatch_order_id, "complete" if complete else "partial",
                    getattr(actor, "username", "-"))
        if complete:
            self.close()
        return progress
