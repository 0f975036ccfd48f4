"""Production capture and FG sticker confirmation of physical rolls.

``confirm`` runs in steps and only the persist step is authoritative. Once a
roll is marked FG-confirmed nothing later (sticker printing, location
lookup, storage capture) can undo it: those failures are reported on the
returned :class:`ConfirmationOutcome` and, where records are left out of
step, as :class:`~fabricflow.models.ManualActionAlert` rows.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List

from django.db import DatabaseError, transaction
from django.db.models import F, Max
from django.utils import timezone

from fabricflow.exceptions import (
    DuplicateConfirmationError,
    DuplicateScanError,
    NetworkError,
    NotFoundError,
    RollLifecycleError,
    ValidationError,
    WeightMismatchError,
)
from fabricflow.models import (
    GeneratedBarcode,
    MachineAllocation,
    ManualActionAlert,
    ProductionAllotment,
    RollAssignment,
    RollConfirmation,
    WeightOverride,
)
from fabricflow.permissions import is_admin
from fabricflow.services import weights
from fabricflow.services.alerts import raise_alert
from fabricflow.services.barcodes import RollIdentity, decode_roll_barcode
from fabricflow.services.printing import StickerPrinter
from fabricflow.services.storage import LocationCache, assign_location, create_storage_capture
from fabricflow.utils.retry import TRANSIENT_ERRORS, with_retry

logger = logging.getLogger(__name__)


@dataclass
class ScanPreview:
    lot_id: str
    machine_name: str
    roll_no: str
    confirmation_id: int
    party_name: str
    fabric_type: str
    tape_color: str
    planned_weight: Decimal
    tube_weight: Decimal
    shrink_rap_weight: Decimal
    location_code: str
    state: str


@dataclass
class ConfirmationOutcome:
    confirmation: RollConfirmation
    weights: weights.NormalizedWeight
    location_code: str = ""
    printed: bool = False
    override_applied: bool = False
    warnings: List[str] = field(default_factory=list)
    alerts: List[ManualActionAlert] = field(default_factory=list)


def _get_lot(lot_id):
    try:
        return ProductionAllotment.objects.get(allotment_id=lot_id)
    except ProductionAllotment.DoesNotExist:
        raise NotFoundError(f"Lot {lot_id} not found")


def _get_machine(lot, machine_name):
    return MachineAllocation.objects.filter(allotment=lot, machine_name=machine_name).first()


#
# Production capture
#
def record_roll_capture(barcode, actor=None, **specs):
    """Create the grey-fabric record for a freshly doffed, labelled roll.

    ``specs`` may carry grey_gsm, grey_width, blend_percent, cotton,
    polyester and spandex.
    """
    identity = decode_roll_barcode(barcode)
    if identity.is_fg:
        raise ValidationError("Scan the roll label, not the FG sticker")
    unknown = set(specs) - {"grey_gsm", "grey_width", "blend_percent", "cotton", "polyester", "spandex"}
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

    lot = _get_lot(identity.lot_id)
    if not lot.accepts_production:
        raise ValidationError(
            f"Lot {lot.allotment_id} is {lot.get_production_status_display()}; production is not accepted"
        )
    ma = _get_machine(lot, identity.machine_name)
    if ma is None:
        raise NotFoundError(f"Machine {identity.machine_name} is not allocated to lot {lot.allotment_id}")
    try:
        roll_number = int(identity.roll_no)
    except ValueError:
        raise ValidationError(f"Roll number {identity.roll_no!r} is not numeric")
    bc = GeneratedBarcode.objects.filter(machine_allocation=ma, roll_number=roll_number).first()
    if bc is None:
        raise NotFoundError(f"No label was generated for roll {barcode}")

    with transaction.atomic():
        exists = RollConfirmation.objects.select_for_update().filter(
            allotment=lot, machine_name=ma.machine_name, roll_no=identity.roll_no
        ).exists()
        if exists:
            raise DuplicateScanError(f"Roll {barcode} has already been captured")
        rc = RollConfirmation.objects.create(
            allotment=lot,
            barcode=bc,
            machine_name=ma.machine_name,
            roll_no=identity.roll_no,
            roll_per_kg=ma.roll_per_kg,
            **{k: Decimal(str(v)) for k, v in specs.items() if v not in (None, "")},
        )
    logger.info("Captured roll %s by %s", barcode, getattr(actor, "username", "-"))
    return rc


#
# FG confirmation
#
@transaction.atomic
def _persist_confirmation(confirmation_id, measured, actor, resumed=False):
    """Mint the FG roll number and save the weights.

    ``resumed`` marks a retry whose earlier attempt may have committed before
    the connection dropped; finding our own save then counts as success.
    """
    rc = RollConfirmation.objects.select_related("allotment").get(pk=confirmation_id)
    # Serialises FG roll numbering within the lot.
    ProductionAllotment.objects.select_for_update().get(pk=rc.allotment_id)
    next_fg = (
        RollConfirmation.objects.filter(allotment_id=rc.allotment_id)
        .aggregate(m=Max("fg_roll_no"))["m"] or 0
    ) + 1

    updated = RollConfirmation.objects.filter(pk=rc.pk, is_fg_sticker_generated=False).update(
        gross_weight=measured.display_gross,
        tare_weight=measured.tare,
        net_weight=measured.net,
        fg_roll_no=next_fg,
        is_fg_sticker_generated=True,
        fg_confirmed_at=timezone.now(),
        confirmed_by=actor,
    )
    if not updated:
        rc.refresh_from_db()
        if resumed and rc.confirmed_by_id == getattr(actor, "pk", None) and rc.net_weight == measured.net:
            logger.info("Roll %s was saved by an earlier attempt; keeping FG roll %s", rc, rc.fg_roll_no)
            return rc
        raise DuplicateConfirmationError(f"FG sticker already generated for roll {rc}")

    bc = rc.barcode
    if bc is None:
        bc = GeneratedBarcode.objects.filter(
            machine_allocation__allotment_id=rc.allotment_id,
            machine_allocation__machine_name=rc.machine_name,
            roll_number=rc.roll_no if rc.roll_no.isdigit() else -1,
        ).first()
    if bc is not None:
        GeneratedBarcode.objects.filter(pk=bc.pk).update(fg_roll_no=next_fg)
        RollAssignment.objects.filter(pk=bc.assignment_id).update(
            generated_stickers=F("generated_stickers") + 1
        )
    else:
        logger.warning("Roll %s has no generated label; shift progress not updated", rc)

    rc.refresh_from_db()
    return rc


class FGConfirmationSession:
    """One FG confirmation terminal: location cache plus printer."""

    def __init__(self, store=None, printer=None):
        self.cache = LocationCache(store)
        self.printer = printer or StickerPrinter()

    def reset(self):
        self.cache.clear()

    def _lookup(self, lot, identity):
        rc = RollConfirmation.objects.filter(
            allotment=lot, machine_name=identity.machine_name, roll_no=identity.roll_no
        ).first()
        if rc is None:
            raise NotFoundError(
                f"No production record for roll {identity.encode()}; contact your supervisor"
            )
        if rc.is_fg_sticker_generated:
            raise DuplicateConfirmationError(
                f"FG sticker already generated for roll {identity.encode()} (FG roll {rc.fg_roll_no})"
            )
        return rc

    def scan(self, barcode) -> ScanPreview:
        identity = decode_roll_barcode(barcode)
        lot = _get_lot(identity.lot_id)
        rc = self._lookup(lot, identity)
        ma = _get_machine(lot, identity.machine_name)
        loc = assign_location(lot.allotment_id, self.cache)
        return ScanPreview(
            lot_id=lot.allotment_id,
            machine_name=identity.machine_name,
            roll_no=identity.roll_no,
            confirmation_id=rc.pk,
            party_name=lot.party_name,
            fabric_type=lot.fabric_type,
            tape_color=lot.tape_color,
            planned_weight=ma.roll_per_kg if ma else rc.roll_per_kg,
            tube_weight=lot.tube_weight,
            shrink_rap_weight=lot.shrink_rap_weight,
            location_code=loc.code if loc else "",
            state=rc.state,
        )

    def confirm_barcode(self, barcode, gross_raw, actor=None, override=False):
        identity = decode_roll_barcode(barcode)
        return self.confirm(identity.lot_id, identity.machine_name, identity.roll_no, gross_raw,
                            actor=actor, override=override)

    def confirm(self, lot_id, machine_name, roll_no, gross_raw, actor=None, override=False):
        lot = _get_lot(lot_id)
        measured = weights.normalize(gross_raw, lot.tube_weight, lot.shrink_rap_weight)

        identity = RollIdentity(str(lot_id), str(machine_name), str(roll_no))
        rc = self._lookup(lot, identity)

        ma = _get_machine(lot, machine_name)
        planned = ma.roll_per_kg if ma else rc.roll_per_kg
        override_applied = False
        if weights.exceeds_tolerance(measured.net, planned):
            if not override:
                raise WeightMismatchError(
                    f"Net weight {measured.net} kg differs from planned {planned} kg "
                    f"by more than {weights.tolerance()} kg",
                    planned=planned,
                    net=measured.net,
                )
            if not is_admin(actor):
                raise WeightMismatchError(
                    "Only an admin can approve a weight mismatch", planned=planned, net=measured.net
                )
            override_applied = True

        confirmation_id = rc.pk
        attempts = []

        def persist():
            attempts.append(1)
            return _persist_confirmation(confirmation_id, measured, actor, len(attempts) > 1)

        try:
            rc = with_retry(
                persist,
                label=f"roll confirmation update {identity.encode()}",
            )
        except TRANSIENT_ERRORS as exc:
            raise NetworkError(f"Could not save FG confirmation for {identity.encode()}: {exc}")

        outcome = ConfirmationOutcome(confirmation=rc, weights=measured, override_applied=override_applied)
        if override_applied:
            WeightOverride.objects.create(
                confirmation=rc,
                approved_by=actor,
                planned_weight=planned,
                net_weight=measured.net,
                difference=measured.net - Decimal(planned),
            )
            logger.warning(
                "Weight mismatch override by %s on lot %s roll %s: planned %s kg, net %s kg",
                actor.username, lot.allotment_id, identity.encode(), planned, measured.net,
            )

        result = self.printer.print_fg_sticker(rc)
        outcome.printed = result.success
        if not result.success:
            outcome.warnings.append(f"Roll confirmed but sticker not printed: {result.message}")

        self._store(lot, rc, outcome)
        logger.info(
            "FG confirmed lot %s roll %s as FG roll %s (net %s kg)",
            lot.allotment_id, identity.encode(), rc.fg_roll_no, rc.net_weight,
        )
        return outcome

    def _store(self, lot, rc, outcome):
        loc = assign_location(lot.allotment_id, self.cache)
        code = loc.code if loc else ""
        if loc is None:
            outcome.warnings.append(f"No empty location for lot {lot.allotment_id}; assign one manually")
            outcome.alerts.append(raise_alert(
                ManualActionAlert.MISSING_LOCATION, lot.allotment_id, rc.fg_roll_no,
                f"FG roll {rc.fg_roll_no} of lot {lot.allotment_id} was stored without a location",
                confirmation_id=rc.pk,
            ))
        try:
            with_retry(
                lambda: create_storage_capture(
                    lot.allotment_id, rc.fg_roll_no, code, lot.tape_color, lot.party_name
                ),
                label=f"storage capture {lot.allotment_id}/{rc.fg_roll_no}",
            )
        except (DatabaseError, RollLifecycleError) as exc:
            outcome.warnings.append(
                f"Could not create storage capture. MANUAL ACTION REQUIRED for FG roll {rc.fg_roll_no}"
            )
            outcome.alerts.append(raise_alert(
                ManualActionAlert.STORAGE_CAPTURE_FAILED, lot.allotment_id, rc.fg_roll_no,
                f"FG roll {rc.fg_roll_no} of lot {lot.allotment_id} is confirmed but has no storage record",
                confirmation_id=rc.pk,
                location_code=code,
                error=exc,
            ))
            return
        outcome.location_code = code


def reprint_fg_sticker(barcode, reason, actor=None, printer=None):
    """Reprint the FG sticker of an already confirmed roll."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reprint reason is required")
    identity = decode_roll_barcode(barcode)
    lot = _get_lot(identity.lot_id)
    rc = RollConfirmation.objects.filter(
        allotment=lot, machine_name=identity.machine_name, roll_no=identity.roll_no
    ).select_related("allotment").first()
    if rc is None:
        raise NotFoundError(f"No production record for roll {barcode}")
    if not rc.is_fg_sticker_generated:
        raise ValidationError(f"Roll {barcode} has not been FG confirmed yet")
    logger.info("Reprinting FG sticker %s/%s by %s: %s",
                lot.allotment_id, rc.fg_roll_no, getattr(actor, "username", "-"), reason)
    return (printer or StickerPrinter()).print_fg_sticker(rc, reprint_reason=reason)

