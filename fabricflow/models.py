# models.py

from django.conf import settings
from django.contrib.auth.models import User
from django.db import models
from django.db.models import Max


class UserProfile(models.Model):
    """Extend Django's User with a shop-floor role."""
    OPERATOR   = "OPERATOR"
    SUPERVISOR = "SUPERVISOR"
    DISPATCHER = "DISPATCHER"
    ADMIN      = "ADMIN"
    ROLE_CHOICES = [
        (OPERATOR,   "Operator"),
        (SUPERVISOR, "Supervisor"),
        (DISPATCHER, "Dispatcher"),
        (ADMIN,      "Admin"),
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="profile")
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=OPERATOR)

    def __str__(self):
        return f"{self.user.username} ({self.get_role_display()})"


#
# ----------------------------------------------------------------------
# Planning
# ----------------------------------------------------------------------
#
class ProductionAllotment(models.Model):
    """One production lot for one sales-order line item."""

    ACTIVE = 0
    HOLD = 1
    SUSPENDED = 2
    PARTIALLY_COMPLETED = 3
    STATUS_CHOICES = [
        (ACTIVE, "Active"),
        (HOLD, "Hold"),
        (SUSPENDED, "Suspended"),
        (PARTIALLY_COMPLETED, "Partially completed"),
    ]
    # Lots are never deleted, only moved through this table.
    ALLOWED_TRANSITIONS = {
        ACTIVE: {HOLD, SUSPENDED, PARTIALLY_COMPLETED},
        HOLD: {ACTIVE, SUSPENDED},
        SUSPENDED: {ACTIVE},
        PARTIALLY_COMPLETED: set(),
    }

    allotment_id = models.CharField(max_length=50, unique=True)
    sales_order_id = models.PositiveIntegerField()
    sales_order_item_id = models.PositiveIntegerField()
    voucher_number = models.CharField(max_length=50, blank=True)
    item_name = models.CharField(max_length=200, blank=True)
    party_name = models.CharField(max_length=200, blank=True)
    fabric_type = models.CharField(max_length=100, blank=True)
    tape_color = models.CharField(max_length=50, blank=True)
    yarn_lot_no = models.CharField(max_length=50, blank=True)
    actual_quantity = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tube_weight = models.DecimalField(max_digits=8, decimal_places=3, default=0)
    shrink_rap_weight = models.DecimalField(max_digits=8, decimal_places=3, default=0)
    production_status = models.PositiveSmallIntegerField(choices=STATUS_CHOICES, default=ACTIVE)
    parent = models.ForeignKey(
        "self", on_delete=models.PROTECT, null=True, blank=True, related_name="successors"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"Lot {self.allotment_id} ({self.get_production_status_display()})"

    def can_transition_to(self, status: int) -> bool:
        return status in self.ALLOWED_TRANSITIONS.get(self.production_status, set())

    @property
    def accepts_production(self) -> bool:
        return self.production_status == self.ACTIVE


class MachineAllocation(models.Model):
    """One machine's planned share of a lot."""

    allotment = models.ForeignKey(
        ProductionAllotment, on_delete=models.CASCADE, related_name="machine_allocations"
    )
    machine_name = models.CharField(max_length=50)
    total_rolls = models.PositiveIntegerField()
    roll_per_kg = models.DecimalField(
        max_digits=8, decimal_places=3, default=0,
        help_text="Planned net weight of one roll (kg)",
    )
    total_load_weight = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    estimated_production_days = models.DecimalField(max_digits=8, decimal_places=2, default=0)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["allotment", "machine_name"], name="uniq_machine_per_lot"
            ),
        ]

    def __str__(self):
        return f"{self.machine_name} on {self.allotment.allotment_id} ({self.total_rolls} rolls)"

    @property
    def assigned_rolls(self) -> int:
        return self.roll_assignments.aggregate(t=models.Sum("assigned_rolls"))["t"] or 0

    @property
    def remaining_capacity(self) -> int:
        return self.total_rolls - self.assigned_rolls

    @property
    def is_locked(self) -> bool:
        return self.generated_barcodes.exists()

    def next_roll_number(self) -> int:
        last = self.generated_barcodes.aggregate(m=Max("roll_number"))["m"] or 0
        return last + 1


class Shift(models.Model):
    name = models.CharField(max_length=50, unique=True)
    start_time = models.TimeField()
    end_time = models.TimeField()
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["start_time"]

    def __str__(self):
        return self.name


class RollAssignment(models.Model):
    """A shift's claim on a contiguous block of a machine allocation's rolls."""

    machine_allocation = models.ForeignKey(
        MachineAllocation, on_delete=models.PROTECT, related_name="roll_assignments"
    )
    shift = models.ForeignKey(Shift, on_delete=models.PROTECT, related_name="roll_assignments")
    operator_name = models.CharField(max_length=100)
    assigned_rolls = models.PositiveIntegerField()
    # Rolls of this assignment whose FG sticker has been confirmed.
    generated_stickers = models.PositiveIntegerField(default=0)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.shift} / {self.machine_allocation.machine_name}: {self.assigned_rolls} rolls"

    @property
    def remaining_rolls(self) -> int:
        return self.assigned_rolls - self.generated_stickers

    @property
    def unbarcoded_rolls(self) -> int:
        return self.assigned_rolls - self.generated_barcodes.count()


class GeneratedBarcode(models.Model):
    """One physical roll label: ``lot#machine#rollNumber``."""

    assignment = models.ForeignKey(
        RollAssignment, on_delete=models.PROTECT, related_name="generated_barcodes"
    )
    machine_allocation = models.ForeignKey(
        MachineAllocation, on_delete=models.PROTECT, related_name="generated_barcodes"
    )
    roll_number = models.PositiveIntegerField()
    fg_roll_no = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["roll_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["machine_allocation", "roll_number"], name="uniq_roll_number_per_machine"
            ),
        ]

    def __str__(self):
        return f"{self.machine_allocation.machine_name} roll {self.roll_number}"


#
# ----------------------------------------------------------------------
# Confirmation
# ----------------------------------------------------------------------
#
class RollConfirmation(models.Model):
    """Production capture of one roll, completed by its FG confirmation."""

    STATE_ASSIGNED = "ASSIGNED"
    STATE_WEIGHED = "WEIGHED"
    STATE_CONFIRMED = "CONFIRMED"

    allotment = models.ForeignKey(
        ProductionAllotment, on_delete=models.PROTECT, related_name="roll_confirmations"
    )
    barcode = models.OneToOneField(
        GeneratedBarcode, on_delete=models.PROTECT, null=True, blank=True,
        related_name="confirmation",
    )
    machine_name = models.CharField(max_length=50)
    roll_no = models.CharField(max_length=20)
    fg_roll_no = models.PositiveIntegerField(null=True, blank=True)
    roll_per_kg = models.DecimalField(max_digits=8, decimal_places=3, default=0)
    grey_gsm = models.DecimalField(max_digits=8, decimal_places=2, default=0)
    grey_width = models.DecimalField(max_digits=8, decimal_places=2, default=0)
    blend_percent = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    cotton = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    polyester = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    spandex = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    gross_weight = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    tare_weight = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    net_weight = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    # One-way flag; only the FG confirmation service writes it.
    is_fg_sticker_generated = models.BooleanField(default=False)
    fg_confirmed_at = models.DateTimeField(null=True, blank=True)
    confirmed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["allotment", "machine_name", "roll_no"], name="uniq_roll_per_lot_machine"
            ),
            models.UniqueConstraint(
                fields=["allotment", "fg_roll_no"],
                name="uniq_fg_roll_per_lot",
                condition=models.Q(fg_roll_no__isnull=False),
            ),
        ]

    def __str__(self):
        return f"{self.allotment.allotment_id}#{self.machine_name}#{self.roll_no}"

    @property
    def state(self) -> str:
        if self.is_fg_sticker_generated:
            return self.STATE_CONFIRMED
        if self.net_weight is not None:
            return self.STATE_WEIGHED
        return self.STATE_ASSIGNED


class WeightOverride(models.Model):
    """Audit row for an admin-approved planned/measured weight mismatch."""

    confirmation = models.ForeignKey(
        RollConfirmation, on_delete=models.CASCADE, related_name="weight_overrides"
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="+"
    )
    planned_weight = models.DecimalField(max_digits=10, decimal_places=3)
    net_weight = models.DecimalField(max_digits=10, decimal_places=2)
    difference = models.DecimalField(max_digits=10, decimal_places=3)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]


#
# ----------------------------------------------------------------------
# Warehouse
# ----------------------------------------------------------------------
#
class Location(models.Model):
    code = models.CharField(max_length=30, unique=True)
    warehouse_name = models.CharField(max_length=100, blank=True)
    name = models.CharField(max_length=100, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.warehouse_name} - {self.name} ({self.code})"


class StorageCapture(models.Model):
    """Binds one FG roll to a warehouse location."""

    lot_no = models.CharField(max_length=50, db_index=True)
    fg_roll_no = models.CharField(max_length=20)
    location_code = models.CharField(max_length=30, blank=True)
    tape = models.CharField(max_length=50, blank=True)
    customer_name = models.CharField(max_length=200, blank=True)
    is_dispatched = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["lot_no", "fg_roll_no"], name="uniq_capture_per_fg_roll"),
        ]
        indexes = [
            models.Index(fields=["location_code", "is_dispatched"], name="fabricflow__locatio_5d1c2e_idx"),
        ]

    def __str__(self):
        where = self.location_code or "unassigned"
        return f"{self.lot_no}/{self.fg_roll_no} @ {where}"


#
# ----------------------------------------------------------------------
# Dispatch
# ----------------------------------------------------------------------
#
class DispatchPlanning(models.Model):
    """One lot scheduled on a dispatch order (loading sheet line)."""

    dispatch_order_id = models.CharField(max_length=50, db_index=True)
    lot_no = models.CharField(max_length=50)
    loading_no = models.CharField(max_length=50)
    sequence = models.PositiveIntegerField(default=1)
    customer_name = models.CharField(max_length=200, blank=True)
    tape = models.CharField(max_length=50, blank=True)
    total_dispatched_rolls = models.PositiveIntegerField()
    total_gross_weight = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_net_weight = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    is_fully_dispatched = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["dispatch_order_id", "sequence", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["dispatch_order_id", "lot_no"], name="uniq_lot_per_dispatch_order"
            ),
        ]

    def __str__(self):
        return f"{self.dispatch_order_id} #{self.sequence}: lot {self.lot_no}"


class DispatchedRoll(models.Model):
    planning = models.ForeignKey(
        DispatchPlanning, on_delete=models.CASCADE, related_name="dispatched_rolls"
    )
    lot_no = models.CharField(max_length=50)
    fg_roll_no = models.CharField(max_length=20)
    is_loaded = models.BooleanField(default=True)
    loaded_at = models.DateTimeField(auto_now_add=True)
    loaded_by = models.CharField(max_length=150, default="System")
    needs_reconciliation = models.BooleanField(default=False)

    class Meta:
        ordering = ["loaded_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["planning", "fg_roll_no"], name="uniq_dispatched_roll_per_planning"
            ),
        ]

    def __str__(self):
        return f"{self.lot_no}/{self.fg_roll_no} on {self.planning.dispatch_order_id}"


#
# ----------------------------------------------------------------------
# Reconciliation
# ----------------------------------------------------------------------
#
class ManualActionAlert(models.Model):
    """A downstream failure that left records out of step with physical rolls."""

    STORAGE_CAPTURE_FAILED = "STORAGE_CAPTURE_FAILED"
    MISSING_LOCATION = "MISSING_LOCATION"
    ORPHANED_DISPATCHED_ROLL = "ORPHANED_DISPATCHED_ROLL"
    KIND_CHOICES = [
        (STORAGE_CAPTURE_FAILED, "Storage capture failed"),
        (MISSING_LOCATION, "No location assigned"),
        (ORPHANED_DISPATCHED_ROLL, "Dispatched roll not marked in storage"),
    ]

    kind = models.CharField(max_length=40, choices=KIND_CHOICES)
    lot_no = models.CharField(max_length=50)
    fg_roll_no = models.CharField(max_length=20, blank=True)
    message = models.TextField()
    payload = models.JSONField(default=dict, blank=True)
    is_resolved = models.BooleanField(default=False)
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="+",
    )
    resolved_at = models.DateTimeField(null=True, blank=True)
    last_notified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["is_resolved", "created_at"], name="fabricflow__is_reso_8a4f1b_idx")]

    def __str__(self):
        return f"{self.get_kind_display()}: lot {self.lot_no} FG {self.fg_roll_no or '-'}"
