import logging

from django.utils import timezone

from fabricflow.exceptions import NotFoundError
from fabricflow.models import ManualActionAlert
from fabricflow.utils.jsonsafe import json_safe

logger = logging.getLogger(__name__)


def raise_alert(kind, lot_no, fg_roll_no="", message="", **payload):
    """Record a condition that needs a person to reconcile records by hand."""
    alert = ManualActionAlert.objects.create(
        kind=kind,
        lot_no=str(lot_no),
        fg_roll_no=str(fg_roll_no or ""),
        message=message,
        payload=json_safe(payload),
    )
    logger.error("Manual action required [%s] lot %s FG roll %s: %s", kind, lot_no, fg_roll_no or "-", message)
    return alert


def open_alerts():
    return ManualActionAlert.objects.filter(is_resolved=False)


def resolve_alert(alert_id, actor=None):
    try:
        alert = ManualActionAlert.objects.get(pk=alert_id)
    except ManualActionAlert.DoesNotExist:
        raise NotFoundError(f"Alert {alert_id} not found")
    if alert.is_resolved:
        return alert
    alert.is_resolved = True
    alert.resolved_by = actor
    alert.resolved_at = timezone.now()
    alert.save(update_fields=["is_resolved", "resolved_by", "resolved_at"])
    logger.info("Alert %s resolved by %s", alert.pk, getattr(actor, "username", "-"))
    return alert
