from rest_framework import serializers

from .models import (
    DispatchedRoll,
    DispatchPlanning,
    GeneratedBarcode,
    Location,
    MachineAllocation,
    ManualActionAlert,
    ProductionAllotment,
    RollAssignment,
    RollConfirmation,
    Shift,
    StorageCapture,
)


class StrictSerializer(serializers.Serializer):
    """Input payload that rejects fields it does not declare."""

    def to_internal_value(self, data):
        if hasattr(data, "keys"):
            unknown = set(data.keys()) - set(self.fields)
            if unknown:
                raise serializers.ValidationError(
                    {name: ["Unknown field."] for name in sorted(unknown)}
                )
        return super().to_internal_value(data)


#
# Read models
#
class MachineAllocationSerializer(serializers.ModelSerializer):
    remaining_capacity = serializers.IntegerField(read_only=True)
    is_locked = serializers.BooleanField(read_only=True)

    class Meta:
        model = MachineAllocation
        fields = [
            "id",
            "machine_name",
            "total_rolls",
            "roll_per_kg",
            "total_load_weight",
            "estimated_production_days",
            "remaining_capacity",
            "is_locked",
        ]


class ProductionAllotmentSerializer(serializers.ModelSerializer):
    machine_allocations = MachineAllocationSerializer(many=True, read_only=True)
    production_status_display = serializers.CharField(
        source="get_production_status_display", read_only=True
    )
    parent = serializers.SlugRelatedField(slug_field="allotment_id", read_only=True)

    class Meta:
        model = ProductionAllotment
        fields = [
            "id",
            "allotment_id",
            "sales_order_id",
            "sales_order_item_id",
            "voucher_number",
            "item_name",
            "party_name",
            "fabric_type",
            "tape_color",
            "yarn_lot_no",
            "actual_quantity",
            "tube_weight",
            "shrink_rap_weight",
            "production_status",
            "production_status_display",
            "parent",
            "machine_allocations",
            "created_at",
        ]


class ShiftSerializer(serializers.ModelSerializer):
    class Meta:
        model = Shift
        fields = ["id", "name", "start_time", "end_time", "is_active"]


class GeneratedBarcodeSerializer(serializers.ModelSerializer):
    barcode = serializers.SerializerMethodField()

    class Meta:
        model = GeneratedBarcode
        fields = ["id", "roll_number", "fg_roll_no", "barcode", "created_at"]

    def get_barcode(self, obj):
        ma = obj.machine_allocation
        return f"{ma.allotment.allotment_id}#{ma.machine_name}#{obj.roll_number}"


class RollAssignmentSerializer(serializers.ModelSerializer):
    shift_name = serializers.CharField(source="shift.name", read_only=True)
    machine_name = serializers.CharField(source="machine_allocation.machine_name", read_only=True)
    remaining_rolls = serializers.IntegerField(read_only=True)
    generated_barcodes = GeneratedBarcodeSerializer(many=True, read_only=True)

    class Meta:
        model = RollAssignment
        fields = [
            "id",
            "machine_allocation",
            "machine_name",
            "shift",
            "shift_name",
            "operator_name",
            "assigned_rolls",
            "generated_stickers",
            "remaining_rolls",
            "generated_barcodes",
            "created_at",
        ]


class RollConfirmationSerializer(serializers.ModelSerializer):
    lot_no = serializers.CharField(source="allotment.allotment_id", read_only=True)
    state = serializers.CharField(read_only=True)

    class Meta:
        model = RollConfirmation
        fields = [
            "id",
            "lot_no",
            "machine_name",
            "roll_no",
            "fg_roll_no",
            "roll_per_kg",
            "grey_gsm",
            "grey_width",
            "blend_percent",
            "cotton",
            "polyester",
            "spandex",
            "gross_weight",
            "tare_weight",
            "net_weight",
            "is_fg_sticker_generated",
            "fg_confirmed_at",
            "state",
            "created_at",
        ]
        read_only_fields = fields


class LocationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Location
        fields = ["id", "code", "warehouse_name", "name", "is_active"]


class StorageCaptureSerializer(serializers.ModelSerializer):
    class Meta:
        model = StorageCapture
        fields = [
            "id",
            "lot_no",
            "fg_roll_no",
            "location_code",
            "tape",
            "customer_name",
            "is_dispatched",
            "created_at",
        ]
        read_only_fields = fields


class DispatchedRollSerializer(serializers.ModelSerializer):
    class Meta:
        model = DispatchedRoll
        fields = ["id", "lot_no", "fg_roll_no", "is_loaded", "loaded_at", "loaded_by", "needs_reconciliation"]


class DispatchPlanningSerializer(serializers.ModelSerializer):
    scanned_rolls = serializers.SerializerMethodField()

    class Meta:
        model = DispatchPlanning
        fields = [
            "id",
            "dispatch_order_id",
            "lot_no",
            "loading_no",
            "sequence",
            "customer_name",
            "tape",
            "total_dispatched_rolls",
            "scanned_rolls",
            "total_gross_weight",
            "total_net_weight",
            "is_fully_dispatched",
            "created_at",
        ]
        read_only_fields = fields

    def get_scanned_rolls(self, obj):
        return obj.dispatched_rolls.count()


class ManualActionAlertSerializer(serializers.ModelSerializer):
    kind_display = serializers.CharField(source="get_kind_display", read_only=True)

    class Meta:
        model = ManualActionAlert
        fields = [
            "id",
            "kind",
            "kind_display",
            "lot_no",
            "fg_roll_no",
            "message",
            "payload",
            "is_resolved",
            "resolved_at",
            "created_at",
        ]
        read_only_fields = fields


#
# Commands
#
class MachinePlanSerializer(StrictSerializer):
    machine_name = serializers.CharField(max_length=50)
    total_rolls = serializers.IntegerField(min_value=1)
    roll_per_kg = serializers.DecimalField(max_digits=8, decimal_places=3, min_value=0)
    estimated_production_days = serializers.DecimalField(
        max_digits=8, decimal_places=2, min_value=0, required=False, default=0
    )


class LotCreateSerializer(StrictSerializer):
    allotment_id = serializers.CharField(max_length=50, required=False)
    sales_order_id = serializers.IntegerField(min_value=1)
    sales_order_item_id = serializers.IntegerField(min_value=1)
    voucher_number = serializers.CharField(max_length=50, required=False, allow_blank=True)
    item_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    party_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    fabric_type = serializers.CharField(max_length=100, required=False, allow_blank=True)
    tape_color = serializers.CharField(max_length=50, required=False, allow_blank=True)
    yarn_lot_no = serializers.CharField(max_length=50, required=False, allow_blank=True)
    actual_quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    tube_weight = serializers.DecimalField(max_digits=8, decimal_places=3, min_value=0, required=False)
    shrink_rap_weight = serializers.DecimalField(max_digits=8, decimal_places=3, min_value=0, required=False)
    machines = MachinePlanSerializer(many=True)


class MachinePlanUpdateSerializer(StrictSerializer):
    machines = MachinePlanSerializer(many=True)


class LotStatusSerializer(StrictSerializer):
    status = serializers.ChoiceField(choices=ProductionAllotment.STATUS_CHOICES)


class NewLotSerializer(StrictSerializer):
    allotment_id = serializers.CharField(max_length=50, required=False)


class AssignmentCreateSerializer(StrictSerializer):
    machine_allocation = serializers.IntegerField()
    shift = serializers.IntegerField()
    assigned_rolls = serializers.IntegerField()
    operator_name = serializers.CharField(max_length=100, allow_blank=True)


class GenerateBarcodesSerializer(StrictSerializer):
    count = serializers.IntegerField()


class ReprintLabelSerializer(StrictSerializer):
    barcode_id = serializers.IntegerField()
    reason = serializers.CharField(allow_blank=True)


class RollCaptureSerializer(StrictSerializer):
    barcode = serializers.CharField()
    grey_gsm = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, required=False)
    grey_width = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0, required=False)
    blend_percent = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, required=False)
    cotton = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, required=False)
    polyester = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, required=False)
    spandex = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, required=False)


class BarcodeSerializer(StrictSerializer):
    barcode = serializers.CharField()


class FGConfirmSerializer(StrictSerializer):
    barcode = serializers.CharField()
    gross_weight = serializers.CharField()
    override_weight_mismatch = serializers.BooleanField(required=False, default=False)


class ReprintFGSerializer(StrictSerializer):
    barcode = serializers.CharField()
    reason = serializers.CharField(allow_blank=True)


class DispatchLotSerializer(StrictSerializer):
    lot_no = serializers.CharField(max_length=50)
    total_dispatched_rolls = serializers.IntegerField()


class DispatchPlanSerializer(StrictSerializer):
    dispatch_order_id = serializers.CharField(max_length=50)
    loading_no = serializers.CharField(max_length=50, required=False, allow_blank=True)
    lots = DispatchLotSerializer(many=True)


class SelectLotSerializer(StrictSerializer):
    lot_no = serializers.CharField(max_length=50)


class RemoveRollSerializer(StrictSerializer):
    fg_roll_no = serializers.CharField(max_length=20)
    lot_no = serializers.CharField(max_length=50, required=False)


class AssignLocationSerializer(StrictSerializer):
    location_code = serializers.CharField(max_length=30)


def outcome_payload(outcome):
    """Render a :class:`ConfirmationOutcome`."""
    return {
        "confirmation": RollConfirmationSerializer(outcome.confirmation).data,
        "display_gross_weight": outcome.weights.display_gross,
        "net_weight": outcome.weights.net,
        "location_code": outcome.location_code,
        "printed": outcome.printed,
        "override_applied": outcome.override_applied,
        "warnings": outcome.warnings,
        "alerts": ManualActionAlertSerializer(outcome.alerts, many=True).data,
    }


def pick_payload(result):
    """Render a :class:`PickResult`."""
    return {
        "dispatched_roll": DispatchedRollSerializer(result.dispatched_roll).data,
        "lot_no": result.lot_no,
        "fg_roll_no": result.fg_roll_no,
        "gross_weight": result.gross_weight,
        "net_weight": result.net_weight,
        "remaining": result.remaining,
        "active_lot": result.active_lot,
        "advanced": result.advanced,
        "warnings": result.warnings,
        "alerts": ManualActionAlertSerializer(result.alerts, many=True).data,
    }


def progress_payload(progress, active_lot=None):
    return {
        "active_lot": active_lot,
        "lots": [
            {
                "lot_no": lp.lot_no,
                "sequence": lp.planning.sequence,
                "planned": lp.planning.total_dispatched_rolls,
                "scanned": lp.scanned,
                "remaining": lp.remaining,
                "complete": lp.complete,
            }
            for lp in progress
        ],
        "is_fully_dispatched": bool(progress) and all(lp.complete for lp in progress),
    }
