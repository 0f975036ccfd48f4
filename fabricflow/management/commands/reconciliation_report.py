from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from fabricflow.exceptions import NotFoundError
from fabricflow.models import DispatchedRoll, ManualActionAlert, RollConfirmation, StorageCapture
from fabricflow.services.alerts import open_alerts, resolve_alert


class Command(BaseCommand):
    help = "List manual-action alerts and records that are out of step; optionally resolve alerts"

    def add_arguments(self, parser):
        parser.add_argument("--lot", help="Only this lot number")
        parser.add_argument("--all", action="store_true", help="Include resolved alerts")
        parser.add_argument("--resolve", type=int, nargs="*", default=[], help="Alert ids to mark resolved")
        parser.add_argument("--user", help="Username recorded as resolver")

    def handle(self, *args, **opts):
        actor = None
        if opts["user"]:
            actor = get_user_model().objects.filter(username=opts["user"]).first()
            if actor is None:
                raise CommandError(f"User {opts['user']} not found")
        for alert_id in opts["resolve"]:
            try:
                resolve_alert(alert_id, actor=actor)
            except NotFoundError as e:
                raise CommandError(str(e))
            self.stdout.write(self.style.SUCCESS(f"Alert {alert_id} resolved"))

        alerts = ManualActionAlert.objects.all() if opts["all"] else open_alerts()
        if opts["lot"]:
            alerts = alerts.filter(lot_no=opts["lot"])
        self.stdout.write(f"{alerts.count()} alert(s)")
        for a in alerts.order_by("created_at"):
            state = "resolved" if a.is_resolved else "OPEN"
            self.stdout.write(
                f"  #{a.pk} [{state}] {a.created_at:%Y-%m-%d %H:%M} {a.kind} "
                f"lot {a.lot_no} FG {a.fg_roll_no or '-'}: {a.message}"
            )

        # Confirmed rolls without a storage record
        confirmed = RollConfirmation.objects.filter(is_fg_sticker_generated=True).select_related("allotment")
        if opts["lot"]:
            confirmed = confirmed.filter(allotment__allotment_id=opts["lot"])
        stored = set(StorageCapture.objects.values_list("lot_no", "fg_roll_no"))
        missing = [rc for rc in confirmed if (rc.allotment.allotment_id, str(rc.fg_roll_no)) not in stored]
        self.stdout.write(f"{len(missing)} confirmed roll(s) without storage record")
        for rc in missing:
            self.stdout.write(f"  lot {rc.allotment.allotment_id} FG {rc.fg_roll_no} ({rc.machine_name}#{rc.roll_no})")

        # Loaded rolls still counted as in stock
        orphans = DispatchedRoll.objects.filter(needs_reconciliation=True).select_related("planning")
        if opts["lot"]:
            orphans = orphans.filter(lot_no=opts["lot"])
        self.stdout.write(f"{orphans.count()} dispatched roll(s) needing reconciliation")
        for d in orphans:
            self.stdout.write(f"  order {d.planning.dispatch_order_id} lot {d.lot_no} FG {d.fg_roll_no}")
