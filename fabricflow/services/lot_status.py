import logging
import re
from decimal import Decimal, ROUND_HALF_UP

from django.db import transaction
from django.db.models import Count, Q

from fabricflow.exceptions import IllegalTransitionError, NotFoundError, ValidationError
from fabricflow.models import (
    GeneratedBarcode,
    MachineAllocation,
    ProductionAllotment,
    RollAssignment,
    RollConfirmation,
)

logger = logging.getLogger(__name__)

LOT_PREFIX = "LOT"
_SERIAL = re.compile(rf"^{LOT_PREFIX}(\d+)$")

# Fields a successor lot inherits from the lot it supersedes.
CARRIED_FIELDS = (
    "sales_order_id",
    "sales_order_item_id",
    "voucher_number",
    "item_name",
    "party_name",
    "fabric_type",
    "tape_color",
    "yarn_lot_no",
    "tube_weight",
    "shrink_rap_weight",
)


def _q(x):
    return Decimal(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _locked_lot(lot_id):
    try:
        return ProductionAllotment.objects.select_for_update().get(allotment_id=lot_id)
    except ProductionAllotment.DoesNotExist:
        raise NotFoundError(f"Lot {lot_id} not found")


def next_allotment_id() -> str:
    highest = 0
    for allotment_id in ProductionAllotment.objects.filter(
        allotment_id__startswith=LOT_PREFIX
    ).values_list("allotment_id", flat=True):
        m = _SERIAL.match(allotment_id)
        if m:
            highest = max(highest, int(m.group(1)))
    return f"{LOT_PREFIX}{highest + 1:05d}"


def _transition(lot, status, actor):
    if status not in dict(ProductionAllotment.STATUS_CHOICES):
        raise ValidationError(f"Unknown production status {status!r}")
    if not lot.can_transition_to(status):
        raise IllegalTransitionError(
            f"Lot {lot.allotment_id} cannot move from "
            f"{lot.get_production_status_display()} to {dict(ProductionAllotment.STATUS_CHOICES)[status]}",
            current=lot.production_status,
            requested=status,
        )
    before = lot.get_production_status_display()
    lot.production_status = status
    lot.save(update_fields=["production_status", "updated_at"])
    logger.info(
        "Lot %s: %s -> %s by %s",
        lot.allotment_id, before, lot.get_production_status_display(), getattr(actor, "username", "-"),
    )
    return lot


@transaction.atomic
def set_status(lot_id, status, actor=None):
    try:
        status = int(status)
    except (TypeError, ValueError):
        raise ValidationError(f"Unknown production status {status!r}")
    return _transition(_locked_lot(lot_id), status, actor)


@transaction.atomic
def toggle_hold(lot_id, actor=None):
    lot = _locked_lot(lot_id)
    if lot.production_status == ProductionAllotment.HOLD:
        return _transition(lot, ProductionAllotment.ACTIVE, actor)
    return _transition(lot, ProductionAllotment.HOLD, actor)


@transaction.atomic
def suspend(lot_id, actor=None):
    return _transition(_locked_lot(lot_id), ProductionAllotment.SUSPENDED, actor)


@transaction.atomic
def restart(lot_id, actor=None):
    lot = _locked_lot(lot_id)
    if lot.production_status != ProductionAllotment.SUSPENDED:
        raise IllegalTransitionError(f"Only suspended lots can be restarted; {lot.allotment_id} is "
                                     f"{lot.get_production_status_display()}")
    return _transition(lot, ProductionAllotment.ACTIVE, actor)


def allotment_status(lot_id) -> dict:
    if not ProductionAllotment.objects.filter(allotment_id=lot_id).exists():
        raise NotFoundError(f"Lot {lot_id} not found")
    return {
        "has_roll_assignment": RollAssignment.objects.filter(
            machine_allocation__allotment__allotment_id=lot_id
        ).exists(),
        "has_stickers_generated": GeneratedBarcode.objects.filter(
            machine_allocation__allotment__allotment_id=lot_id
        ).exists(),
        "has_roll_confirmation": RollConfirmation.objects.filter(
            allotment__allotment_id=lot_id
        ).exists(),
    }


@transaction.atomic
def create_lot(machines=(), actor=None, **fields):
    """Plan a new lot with its machine allocations."""
    fields.setdefault("allotment_id", next_allotment_id())
    if ProductionAllotment.objects.filter(allotment_id=fields["allotment_id"]).exists():
        raise ValidationError(f"Lot {fields['allotment_id']} already exists")
    lot = ProductionAllotment.objects.create(**fields)
    _write_machines(lot, machines)
    logger.info("Planned lot %s on %s machines by %s",
                lot.allotment_id, len(machines), getattr(actor, "username", "-"))
    return lot


def _write_machines(lot, machines):
    seen = set()
    for row in machines:
        name = (row.get("machine_name") or "").strip()
        if not name:
            raise ValidationError("Machine name is required")
        if name in seen:
            raise ValidationError(f"Machine {name} is listed twice")
        seen.add(name)
        total_rolls = int(row.get("total_rolls") or 0)
        if total_rolls <= 0:
            raise ValidationError(f"Machine {name} needs at least one roll")
        roll_per_kg = Decimal(str(row.get("roll_per_kg") or 0))
        if roll_per_kg < 0:
            raise ValidationError(f"Machine {name} has a negative roll weight")
        MachineAllocation.objects.update_or_create(
            allotment=lot,
            machine_name=name,
            defaults={
                "total_rolls": total_rolls,
                "roll_per_kg": roll_per_kg,
                "total_load_weight": _q(roll_per_kg * total_rolls),
                "estimated_production_days": Decimal(str(row.get("estimated_production_days") or 0)),
            },
        )
    return seen


@transaction.atomic
def update_machine_allocations(lot_id, machines, actor=None):
    """Replace the machine plan of a lot that has no labelled rolls yet."""
    lot = _locked_lot(lot_id)
    if GeneratedBarcode.objects.filter(machine_allocation__allotment=lot).exists():
        raise IllegalTransitionError(
            f"Machine allocations of lot {lot.allotment_id} are locked; roll labels already exist"
        )
    if not machines:
        raise ValidationError("At least one machine allocation is required")

    assigned = {
        row["machine_name"]: row["assigned"]
        for row in MachineAllocation.objects.filter(allotment=lot)
        .annotate(assigned=Count("roll_assignments"))
        .values("machine_name", "assigned")
    }
    incoming = {(row.get("machine_name") or "").strip() for row in machines}
    for name, n_assignments in assigned.items():
        if name not in incoming and n_assignments:
            raise ValidationError(f"Machine {name} has shift assignments and cannot be removed")
    for row in machines:
        name = (row.get("machine_name") or "").strip()
        ma = MachineAllocation.objects.filter(allotment=lot, machine_name=name).first()
        if ma is not None and int(row.get("total_rolls") or 0) < ma.assigned_rolls:
            raise ValidationError(
                f"Machine {name} already has {ma.assigned_rolls} rolls assigned to shifts"
            )

    _write_machines(lot, machines)
    MachineAllocation.objects.filter(allotment=lot).exclude(machine_name__in=incoming).delete()
    logger.info("Machine plan of lot %s updated by %s", lot.allotment_id, getattr(actor, "username", "-"))
    return list(lot.machine_allocations.all())


@transaction.atomic
def create_new_lot(lot_id, actor=None, allotment_id=None):
    """Close a lot as partially completed and carry its unproduced rolls to a successor."""
    lot = _locked_lot(lot_id)
    if not lot.can_transition_to(ProductionAllotment.PARTIALLY_COMPLETED):
        raise IllegalTransitionError(
            f"Lot {lot.allotment_id} is {lot.get_production_status_display()}; "
            "only active lots can be carried over"
        )

    produced = dict(
        RollConfirmation.objects.filter(allotment=lot)
        .values("machine_name")
        .annotate(n=Count("id", filter=Q(is_fg_sticker_generated=True)))
        .values_list("machine_name", "n")
    )
    carried = []
    for ma in lot.machine_allocations.all():
        left = ma.total_rolls - produced.get(ma.machine_name, 0)
        if left > 0:
            carried.append({
                "machine_name": ma.machine_name,
                "total_rolls": left,
                "roll_per_kg": ma.roll_per_kg,
                "estimated_production_days": ma.estimated_production_days,
            })
    if not carried:
        raise ValidationError(f"Every planned roll of lot {lot.allotment_id} is already produced")

    _transition(lot, ProductionAllotment.PARTIALLY_COMPLETED, actor)
    successor = create_lot(
        machines=carried,
        actor=actor,
        allotment_id=allotment_id or next_allotment_id(),
        parent=lot,
        actual_quantity=_q(sum(Decimal(c["roll_per_kg"]) * c["total_rolls"] for c in carried)),
        **{name: getattr(lot, name) for name in CARRIED_FIELDS},
    )
    logger.info("Lot %s superseded by %s", lot.allotment_id, successor.allotment_id)
    return successor
