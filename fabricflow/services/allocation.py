import logging
from dataclasses import dataclass, field
from typing import List

from django.db import transaction
from django.db.models import Max, Sum

from fabricflow.exceptions import (
    CapacityExceededError,
    NotFoundError,
    SequencingError,
    ValidationError,
)
from fabricflow.models import GeneratedBarcode, MachineAllocation, RollAssignment, Shift
from fabricflow.services.barcodes import encode_roll_barcode
from fabricflow.services.printing import StickerPrinter

logger = logging.getLogger(__name__)


@dataclass
class BarcodeBatch:
    assignment: RollAssignment
    barcodes: List[GeneratedBarcode]
    warnings: List[str] = field(default_factory=list)


def _positive_int(value, name):
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a whole number")
    if isinstance(value, float) and value != number:
        raise ValidationError(f"{name} must be a whole number")
    if number <= 0:
        raise ValidationError(f"{name} must be greater than zero")
    return number


def remaining_capacity(machine_allocation) -> int:
    assigned = (
        RollAssignment.objects.filter(machine_allocation=machine_allocation)
        .aggregate(t=Sum("assigned_rolls"))["t"] or 0
    )
    return machine_allocation.total_rolls - assigned


def list_assignments(machine_allocation_id):
    return (
        RollAssignment.objects.filter(machine_allocation_id=machine_allocation_id)
        .select_related("shift", "machine_allocation__allotment")
        .prefetch_related("generated_barcodes")
    )


@transaction.atomic
def create_assignment(machine_allocation_id, shift_id, assigned_rolls, operator_name, actor=None):
    """Claim ``assigned_rolls`` of a machine's plan for one shift.

    Checks run in a fixed order: input, capacity, then sequencing. A new
    block is refused while any earlier block of the machine still has rolls
    that are not FG-confirmed.
    """
    if shift_id in (None, ""):
        raise ValidationError("Shift is required")
    operator_name = (operator_name or "").strip()
    if not operator_name:
        raise ValidationError("Operator name is required")
    assigned_rolls = _positive_int(assigned_rolls, "Assigned rolls")

    try:
        ma = (
            MachineAllocation.objects.select_for_update()
            .select_related("allotment")
            .get(pk=machine_allocation_id)
        )
    except MachineAllocation.DoesNotExist:
        raise NotFoundError(f"Machine allocation {machine_allocation_id} not found")
    try:
        shift = Shift.objects.get(pk=shift_id)
    except (Shift.DoesNotExist, ValueError):
        raise ValidationError(f"Shift {shift_id} does not exist")

    capacity = remaining_capacity(ma)
    if assigned_rolls > capacity:
        raise CapacityExceededError(remaining_capacity=capacity, requested=assigned_rolls)

    for prior in RollAssignment.objects.filter(machine_allocation=ma).select_related("shift"):
        if prior.remaining_rolls > 0:
            raise SequencingError(prior.shift.name, prior.remaining_rolls)

    assignment = RollAssignment.objects.create(
        machine_allocation=ma,
        shift=shift,
        operator_name=operator_name,
        assigned_rolls=assigned_rolls,
        generated_stickers=0,
        created_by=actor,
    )
    logger.info(
        "Assigned %s rolls of %s on lot %s to shift %s (%s)",
        assigned_rolls, ma.machine_name, ma.allotment.allotment_id, shift.name, operator_name,
    )
    return assignment


@transaction.atomic
def _mint_barcodes(assignment_id, count):
    try:
        assignment = (
            RollAssignment.objects.select_for_update()
            .select_related("machine_allocation__allotment")
            .get(pk=assignment_id)
        )
    except RollAssignment.DoesNotExist:
        raise NotFoundError(f"Shift assignment {assignment_id} not found")
    ma = MachineAllocation.objects.select_for_update().get(pk=assignment.machine_allocation_id)
    lot = assignment.machine_allocation.allotment
    if not lot.accepts_production:
        raise ValidationError(
            f"Lot {lot.allotment_id} is {lot.get_production_status_display()}; production is not accepted"
        )

    available = assignment.unbarcoded_rolls
    if count > available:
        raise CapacityExceededError(remaining_capacity=available, requested=count)

    start = (GeneratedBarcode.objects.filter(machine_allocation=ma).aggregate(m=Max("roll_number"))["m"] or 0) + 1
    barcodes = GeneratedBarcode.objects.bulk_create([
        GeneratedBarcode(assignment=assignment, machine_allocation=ma, roll_number=n)
        for n in range(start, start + count)
    ])
    return assignment, barcodes


def generate_barcodes(assignment_id, count, actor=None, printer=None):
    """Append ``count`` roll numbers to an assignment and print their labels."""
    count = _positive_int(count, "Roll count")
    assignment, barcodes = _mint_barcodes(assignment_id, count)
    lot_id = assignment.machine_allocation.allotment.allotment_id
    machine = assignment.machine_allocation.machine_name
    logger.info(
        "Generated %s roll barcodes for %s on lot %s (rolls %s-%s)",
        count, machine, lot_id, barcodes[0].roll_number, barcodes[-1].roll_number,
    )

    batch = BarcodeBatch(assignment=assignment, barcodes=barcodes)
    printer = printer or StickerPrinter()
    for bc in barcodes:
        result = printer.print_roll_label(encode_roll_barcode(lot_id, machine, bc.roll_number))
        if not result.success:
            batch.warnings.append(f"Roll {bc.roll_number}: {result.message}")
    return batch


def reprint_roll_label(barcode_id, reason, actor=None, printer=None):
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reprint reason is required")
    try:
        bc = GeneratedBarcode.objects.select_related("machine_allocation__allotment").get(pk=barcode_id)
    except GeneratedBarcode.DoesNotExist:
        raise NotFoundError(f"Roll barcode {barcode_id} not found")
    ma = bc.machine_allocation
    text = encode_roll_barcode(ma.allotment.allotment_id, ma.machine_name, bc.roll_number)
    logger.info("Reprinting roll label %s by %s: %s", text, getattr(actor, "username", "-"), reason)
    return (printer or StickerPrinter()).print_roll_label(text, reprint_reason=reason)
