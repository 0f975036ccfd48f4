from datetime import time
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from fabricflow.models import Location, ProductionAllotment, Shift
from fabricflow.services.lot_status import create_lot

SHIFTS = [
    # name, start, end
    ("Shift A", time(6, 0), time(14, 0)),
    ("Shift B", time(14, 0), time(22, 0)),
    ("Shift C", time(22, 0), time(6, 0)),
]

MACHINES = [
    {"machine_name": "KM-01", "total_rolls": 40, "roll_per_kg": Decimal("25.000")},
    {"machine_name": "KM-02", "total_rolls": 30, "roll_per_kg": Decimal("22.500")},
]


class Command(BaseCommand):
    help = "Seed shifts, warehouse locations and one demo lot"

    def add_arguments(self, parser):
        parser.add_argument("--locations", type=int, default=12, help="Number of rack locations")
        parser.add_argument("--warehouse", default="FG Store", help="Warehouse name for the locations")
        parser.add_argument("--no-lot", action="store_true", help="Skip the demo lot")

    @transaction.atomic
    def handle(self, *args, **opts):
        for name, start, end in SHIFTS:
            _, created = Shift.objects.get_or_create(
                name=name, defaults={"start_time": start, "end_time": end}
            )
            if created:
                self.stdout.write(f"Shift {name} created")

        made = 0
        for i in range(1, opts["locations"] + 1):
            code = f"R{(i - 1) // 4 + 1}-{(i - 1) % 4 + 1:02d}"
            _, created = Location.objects.get_or_create(
                code=code, defaults={"warehouse_name": opts["warehouse"], "name": f"Rack {code}"}
            )
            made += int(created)
        self.stdout.write(f"{made} locations created")

        if opts["no_lot"] or ProductionAllotment.objects.exists():
            self.stdout.write(self.style.SUCCESS("Demo data ready"))
            return

        lot = create_lot(
            machines=MACHINES,
            sales_order_id=1001,
            sales_order_item_id=1,
            voucher_number="SO/1001",
            item_name="Single Jersey 30s",
            party_name="Demo Apparels",
            fabric_type="Single Jersey",
            tape_color="Red",
            yarn_lot_no="YL-0001",
            actual_quantity=Decimal("1675.00"),
            tube_weight=Decimal("0.800"),
            shrink_rap_weight=Decimal("0.200"),
        )
        self.stdout.write(self.style.SUCCESS(f"Demo lot {lot.allotment_id} created"))
