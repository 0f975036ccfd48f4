from datetime import time
from decimal import Decimal

from django.contrib.auth.models import User

from fabricflow.models import Location, Shift, UserProfile
from fabricflow.services import allocation, confirmation, lot_status
from fabricflow.services.printing import PrintResult


class FakePrinter:
    """Records print jobs instead of calling the label service."""

    def __init__(self, success=True, message="Printed"):
        self.success = success
        self.message = message
        self.jobs = []

    def print_fg_sticker(self, confirmation, reprint_reason=None):
        self.jobs.append(("fg", confirmation.fg_roll_no, reprint_reason))
        return PrintResult(self.success, self.message)

    def print_roll_label(self, barcode_text, reprint_reason=None):
        self.jobs.append(("label", barcode_text, reprint_reason))
        return PrintResult(self.success, self.message)


def make_user(username="operator", role=UserProfile.OPERATOR, **extra):
    user = User.objects.create_user(username=username, password="pass", **extra)
    user.profile.role = role
    user.profile.save()
    return user


def make_shift(name="Shift A", start=time(6, 0), end=time(14, 0)):
    return Shift.objects.create(name=name, start_time=start, end_time=end)


def make_locations(*codes):
    return [
        Location.objects.create(code=code, warehouse_name="FG Store", name=f"Rack {code}")
        for code in codes
    ]


def setup_lot(total_rolls=100, roll_per_kg=Decimal("25.000"), machine="KM-01", **fields):
    defaults = {
        "sales_order_id": 1001,
        "sales_order_item_id": 1,
        "item_name": "Single Jersey",
        "party_name": "Acme Apparel",
        "fabric_type": "Single Jersey",
        "tape_color": "Red",
        "tube_weight": Decimal("0.800"),
        "shrink_rap_weight": Decimal("0.200"),
    }
    defaults.update(fields)
    lot = lot_status.create_lot(
        machines=[{"machine_name": machine, "total_rolls": total_rolls, "roll_per_kg": roll_per_kg}],
        **defaults,
    )
    return lot, lot.machine_allocations.get()


def labelled_rolls(ma, count, shift=None, operator_name="Ravi"):
    """Assign ``count`` rolls to a shift and generate their labels."""
    shift = shift or Shift.objects.first() or make_shift()
    assignment = allocation.create_assignment(ma.pk, shift.pk, count, operator_name)
    batch = allocation.generate_barcodes(assignment.pk, count, printer=FakePrinter())
    return assignment, batch.barcodes


def barcode_text(ma, roll_number):
    return f"{ma.allotment.allotment_id}#{ma.machine_name}#{roll_number}"


def captured_rolls(ma, count, shift=None):
    """Label and production-capture ``count`` rolls; returns their barcode texts."""
    assignment, barcodes = labelled_rolls(ma, count, shift)
    texts = [barcode_text(ma, bc.roll_number) for bc in barcodes]
    for text in texts:
        confirmation.record_roll_capture(text)
    return assignment, texts


def confirmed_rolls(ma, count, gross="25.80", shift=None, session=None):
    """Carry ``count`` rolls through FG confirmation; returns the outcomes."""
    assignment, texts = captured_rolls(ma, count, shift)
    session = session or confirmation.FGConfirmationSession(store={}, printer=FakePrinter())
    return assignment, [session.confirm_barcode(text, gross) for text in texts]
