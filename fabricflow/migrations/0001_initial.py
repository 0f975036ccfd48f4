import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Location",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=30, unique=True)),
                ("warehouse_name", models.CharField(blank=True, max_length=100)),
                ("name", models.CharField(blank=True, max_length=100)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={"ordering": ["id"]},
        ),
        migrations.CreateModel(
            name="Shift",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=50, unique=True)),
                ("start_time", models.TimeField()),
                ("end_time", models.TimeField()),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={"ordering": ["start_time"]},
        ),
        migrations.CreateModel(
            name="UserProfile",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("role", models.CharField(
                    choices=[
                        ("OPERATOR", "Operator"),
                        ("SUPERVISOR", "Supervisor"),
                        ("DISPATCHER", "Dispatcher"),
                        ("ADMIN", "Admin"),
                    ],
                    default="OPERATOR",
                    max_length=20,
                )),
                ("user", models.OneToOneField(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="profile",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
        ),
        migrations.CreateModel(
            name="ProductionAllotment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("allotment_id", models.CharField(max_length=50, unique=True)),
                ("sales_order_id", models.PositiveIntegerField()),
                ("sales_order_item_id", models.PositiveIntegerField()),
                ("voucher_number", models.CharField(blank=True, max_length=50)),
                ("item_name", models.CharField(blank=True, max_length=200)),
                ("party_name", models.CharField(blank=True, max_length=200)),
                ("fabric_type", models.CharField(blank=True, max_length=100)),
                ("tape_color", models.CharField(blank=True, max_length=50)),
                ("yarn_lot_no", models.CharField(blank=True, max_length=50)),
                ("actual_quantity", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("tube_weight", models.DecimalField(decimal_places=3, default=0, max_digits=8)),
                ("shrink_rap_weight", models.DecimalField(decimal_places=3, default=0, max_digits=8)),
                ("production_status", models.PositiveSmallIntegerField(
                    choices=[(0, "Active"), (1, "Hold"), (2, "Suspended"), (3, "Partially completed")],
                    default=0,
                )),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("parent", models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="successors",
                    to="fabricflow.productionallotment",
                )),
            ],
            options={"ordering": ["-created_at", "-id"]},
        ),
        migrations.CreateModel(
            name="MachineAllocation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("machine_name", models.CharField(max_length=50)),
                ("total_rolls", models.PositiveIntegerField()),
                ("roll_per_kg", models.DecimalField(
                    decimal_places=3, default=0, help_text="Planned net weight of one roll (kg)", max_digits=8
                )),
                ("total_load_weight", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("estimated_production_days", models.DecimalField(decimal_places=2, default=0, max_digits=8)),
                ("allotment", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="machine_allocations",
                    to="fabricflow.productionallotment",
                )),
            ],
            options={"ordering": ["id"]},
        ),
        migrations.AddConstraint(
            model_name="machineallocation",
            constraint=models.UniqueConstraint(fields=("allotment", "machine_name"), name="uniq_machine_per_lot"),
        ),
        migrations.CreateModel(
            name="RollAssignment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("operator_name", models.CharField(max_length=100)),
                ("assigned_rolls", models.PositiveIntegerField()),
                ("generated_stickers", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("created_by", models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    to=settings.AUTH_USER_MODEL,
                )),
                ("machine_allocation", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="roll_assignments",
                    to="fabricflow.machineallocation",
                )),
                ("shift", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="roll_assignments",
                    to="fabricflow.shift",
                )),
            ],
            options={"ordering": ["created_at", "id"]},
        ),
        migrations.CreateModel(
            name="GeneratedBarcode",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("roll_number", models.PositiveIntegerField()),
                ("fg_roll_no", models.PositiveIntegerField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("assignment", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="generated_barcodes",
                    to="fabricflow.rollassignment",
                )),
                ("machine_allocation", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="generated_barcodes",
                    to="fabricflow.machineallocation",
                )),
            ],
            options={"ordering": ["roll_number"]},
        ),
        migrations.AddConstraint(
            model_name="generatedbarcode",
            constraint=models.UniqueConstraint(
                fields=("machine_allocation", "roll_number"), name="uniq_roll_number_per_machine"
            ),
        ),
        migrations.CreateModel(
            name="RollConfirmation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("machine_name", models.CharField(max_length=50)),
                ("roll_no", models.CharField(max_length=20)),
                ("fg_roll_no", models.PositiveIntegerField(blank=True, null=True)),
                ("roll_per_kg", models.DecimalField(decimal_places=3, default=0, max_digits=8)),
                ("grey_gsm", models.DecimalField(decimal_places=2, default=0, max_digits=8)),
                ("grey_width", models.DecimalField(decimal_places=2, default=0, max_digits=8)),
                ("blend_percent", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ("cotton", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ("polyester", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ("spandex", models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ("gross_weight", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("tare_weight", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("net_weight", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("is_fg_sticker_generated", models.BooleanField(default=False)),
                ("fg_confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("allotment", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="roll_confirmations",
                    to="fabricflow.productionallotment",
                )),
                ("barcode", models.OneToOneField(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="confirmation",
                    to="fabricflow.generatedbarcode",
                )),
                ("confirmed_by", models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name="+",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={"ordering": ["created_at", "id"]},
        ),
        migrations.AddConstraint(
            model_name="rollconfirmation",
            constraint=models.UniqueConstraint(
                fields=("allotment", "machine_name", "roll_no"), name="uniq_roll_per_lot_machine"
            ),
        ),
        migrations.AddConstraint(
            model_name="rollconfirmation",
            constraint=models.UniqueConstraint(
                condition=models.Q(fg_roll_no__isnull=False),
                fields=("allotment", "fg_roll_no"),
                name="uniq_fg_roll_per_lot",
            ),
        ),
        migrations.CreateModel(
            name="WeightOverride",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("planned_weight", models.DecimalField(decimal_places=3, max_digits=10)),
                ("net_weight", models.DecimalField(decimal_places=2, max_digits=10)),
                ("difference", models.DecimalField(decimal_places=3, max_digits=10)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("approved_by", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="+",
                    to=settings.AUTH_USER_MODEL,
                )),
                ("confirmation", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="weight_overrides",
                    to="fabricflow.rollconfirmation",
                )),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="StorageCapture",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("lot_no", models.CharField(db_index=True, max_length=50)),
                ("fg_roll_no", models.CharField(max_length=20)),
                ("location_code", models.CharField(blank=True, max_length=30)),
                ("tape", models.CharField(blank=True, max_length=50)),
                ("customer_name", models.CharField(blank=True, max_length=200)),
                ("is_dispatched", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"ordering": ["id"]},
        ),
        migrations.AddConstraint(
            model_name="storagecapture",
            constraint=models.UniqueConstraint(fields=("lot_no", "fg_roll_no"), name="uniq_capture_per_fg_roll"),
        ),
        migrations.AddIndex(
            model_name="storagecapture",
            index=models.Index(fields=["location_code", "is_dispatched"], name="fabricflow__locatio_5d1c2e_idx"),
        ),
        migrations.CreateModel(
            name="DispatchPlanning",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("dispatch_order_id", models.CharField(db_index=True, max_length=50)),
                ("lot_no", models.CharField(max_length=50)),
                ("loading_no", models.CharField(max_length=50)),
                ("sequence", models.PositiveIntegerField(default=1)),
                ("customer_name", models.CharField(blank=True, max_length=200)),
                ("tape", models.CharField(blank=True, max_length=50)),
                ("total_dispatched_rolls", models.PositiveIntegerField()),
                ("total_gross_weight", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("total_net_weight", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("is_fully_dispatched", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"ordering": ["dispatch_order_id", "sequence", "id"]},
        ),
        migrations.AddConstraint(
            model_name="dispatchplanning",
            constraint=models.UniqueConstraint(
                fields=("dispatch_order_id", "lot_no"), name="uniq_lot_per_dispatch_order"
            ),
        ),
        migrations.CreateModel(
            name="DispatchedRoll",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("lot_no", models.CharField(max_length=50)),
                ("fg_roll_no", models.CharField(max_length=20)),
                ("is_loaded", models.BooleanField(default=True)),
                ("loaded_at", models.DateTimeField(auto_now_add=True)),
                ("loaded_by", models.CharField(default="System", max_length=150)),
                ("needs_reconciliation", models.BooleanField(default=False)),
                ("planning", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="dispatched_rolls",
                    to="fabricflow.dispatchplanning",
                )),
            ],
            options={"ordering": ["loaded_at", "id"]},
        ),
        migrations.AddConstraint(
            model_name="dispatchedroll",
            constraint=models.UniqueConstraint(
                fields=("planning", "fg_roll_no"), name="uniq_dispatched_roll_per_planning"
            ),
        ),
        migrations.CreateModel(
            name="ManualActionAlert",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("kind", models.CharField(
                    choices=[
                        ("STORAGE_CAPTURE_FAILED", "Storage capture failed"),
                        ("MISSING_LOCATION", "No location assigned"),
                        ("ORPHANED_DISPATCHED_ROLL", "Dispatched roll not marked in storage"),
                    ],
                    max_length=40,
                )),
                ("lot_no", models.CharField(max_length=50)),
                ("fg_roll_no", models.CharField(blank=True, max_length=20)),
                ("message", models.TextField()),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("is_resolved", models.BooleanField(default=False)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("last_notified_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("resolved_by", models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name="+",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={"ordering": ["-created_at", "-id"]},
        ),
        migrations.AddIndex(
            model_name="manualactionalert",
            index=models.Index(fields=["is_resolved", "created_at"], name="fabricflow__is_reso_8a4f1b_idx"),
        ),
    ]
