import logging

from django.contrib.auth.models import User
from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import ManualActionAlert, UserProfile
from .tasks import send_manual_action_alert

logger = logging.getLogger(__name__)


@receiver(post_save, sender=User)
def create_user_profile(sender, instance, created, **kwargs):
    """Ensure each user has an associated profile."""
    if created and not hasattr(instance, "profile"):
        role = UserProfile.ADMIN if instance.is_superuser else UserProfile.OPERATOR
        UserProfile.objects.create(user=instance, role=role)


def enqueue_alert_email(alert_id):
    """Queue the alert e-mail; a broker outage only delays it until escalation."""
    try:
        send_manual_action_alert.delay(alert_id)
    except Exception:
        logger.exception("Could not queue e-mail for manual action alert %s; escalation will resend it", alert_id)


@receiver(post_save, sender=ManualActionAlert)
def notify_manual_action(sender, instance, created, **kwargs):
    if not created:
        return
    transaction.on_commit(lambda: enqueue_alert_email(instance.pk))
