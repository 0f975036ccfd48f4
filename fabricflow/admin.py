from django.contrib import admin

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
    UserProfile,
    WeightOverride,
)


class MachineAllocationInline(admin.TabularInline):
    model = MachineAllocation
    extra = 0


@admin.register(ProductionAllotment)
class ProductionAllotmentAdmin(admin.ModelAdmin):
    list_display = (
        "allotment_id",
        "sales_order_id",
        "sales_order_item_id",
        "party_name",
        "fabric_type",
        "production_status",
        "created_at",
    )
    list_filter = ("production_status", "fabric_type")
    search_fields = ("allotment_id", "party_name", "voucher_number")
    # Status only moves through the lot status actions.
    readonly_fields = ("production_status", "parent")
    inlines = [MachineAllocationInline]


@admin.register(Shift)
class ShiftAdmin(admin.ModelAdmin):
    list_display = ("name", "start_time", "end_time", "is_active")


@admin.register(RollAssignment)
class RollAssignmentAdmin(admin.ModelAdmin):
    list_display = ("id", "machine_allocation", "shift", "operator_name", "assigned_rolls", "generated_stickers")
    list_filter = ("shift",)
    readonly_fields = ("generated_stickers",)


@admin.register(GeneratedBarcode)
class GeneratedBarcodeAdmin(admin.ModelAdmin):
    list_display = ("id", "machine_allocation", "roll_number", "fg_roll_no", "created_at")


@admin.register(RollConfirmation)
class RollConfirmationAdmin(admin.ModelAdmin):
    list_display = (
        "allotment",
        "machine_name",
        "roll_no",
        "fg_roll_no",
        "gross_weight",
        "net_weight",
        "is_fg_sticker_generated",
        "fg_confirmed_at",
    )
    list_filter = ("is_fg_sticker_generated", "machine_name")
    search_fields = ("allotment__allotment_id", "roll_no")
    readonly_fields = ("is_fg_sticker_generated", "fg_roll_no", "fg_confirmed_at", "confirmed_by")


@admin.register(WeightOverride)
class WeightOverrideAdmin(admin.ModelAdmin):
    list_display = ("confirmation", "approved_by", "planned_weight", "net_weight", "difference", "created_at")


@admin.register(Location)
class LocationAdmin(admin.ModelAdmin):
    list_display = ("code", "warehouse_name", "name", "is_active")
    search_fields = ("code", "name")


@admin.register(StorageCapture)
class StorageCaptureAdmin(admin.ModelAdmin):
    list_display = ("lot_no", "fg_roll_no", "location_code", "customer_name", "is_dispatched", "created_at")
    list_filter = ("is_dispatched", "location_code")
    search_fields = ("lot_no", "fg_roll_no")


class DispatchedRollInline(admin.TabularInline):
    model = DispatchedRoll
    extra = 0


@admin.register(DispatchPlanning)
class DispatchPlanningAdmin(admin.ModelAdmin):
    list_display = (
        "dispatch_order_id",
        "sequence",
        "lot_no",
        "loading_no",
        "total_dispatched_rolls",
        "total_net_weight",
        "is_fully_dispatched",
    )
    list_filter = ("is_fully_dispatched",)
    search_fields = ("dispatch_order_id", "lot_no", "loading_no")
    inlines = [DispatchedRollInline]


@admin.register(ManualActionAlert)
class ManualActionAlertAdmin(admin.ModelAdmin):
    list_display = ("created_at", "kind", "lot_no", "fg_roll_no", "is_resolved")
    list_filter = ("kind", "is_resolved")
    search_fields = ("lot_no", "fg_roll_no", "message")


admin.site.register(UserProfile)
