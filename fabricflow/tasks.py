import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from .models import ManualActionAlert
from .notifications import send_manual_action_email

logger = logging.getLogger(__name__)


@shared_task(autoretry_for=(OSError,), retry_backoff=True, max_retries=3)
def send_manual_action_alert(alert_id):
    alert = ManualActionAlert.objects.filter(pk=alert_id).first()
    if alert is None or alert.is_resolved:
        return False
    sent = send_manual_action_email(alert)
    if sent:
        ManualActionAlert.objects.filter(pk=alert.pk).update(last_notified_at=timezone.now())
    return sent


@shared_task
def escalate_open_alerts():
    """Re-send unresolved alerts that nobody has acted on for a while."""
    hours = getattr(settings, "FABRICFLOW_ALERT_ESCALATION_HOURS", 4)
    cutoff = timezone.now() - timedelta(hours=hours)
    stale = ManualActionAlert.objects.filter(is_resolved=False, created_at__lte=cutoff).filter(
        Q(last_notified_at__isnull=True) | Q(last_notified_at__lte=cutoff)
    )
    count = 0
    for alert in stale:
        if send_manual_action_email(alert, escalation=True):
            ManualActionAlert.objects.filter(pk=alert.pk).update(last_notified_at=timezone.now())
            count += 1
    logger.info("escalate_open_alerts: re-sent %s alerts", count)
    return count
