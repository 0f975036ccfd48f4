import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


def send_manual_action_email(alert, escalation=False) -> bool:
    """E-mail a manual-action alert to the configured supervisors."""
    recipients = list(getattr(settings, "MANUAL_ACTION_RECIPIENTS", []))
    if not recipients:
        logger.warning("No MANUAL_ACTION_RECIPIENTS configured; alert %s not e-mailed", alert.pk)
        return False

    context = {"alert": alert, "escalation": escalation}
    prefix = "[STILL OPEN] " if escalation else ""
    subject = f"{prefix}Manual action required: lot {alert.lot_no} FG roll {alert.fg_roll_no or '-'}"
    text_body = render_to_string("fabricflow/email/manual_action_alert.txt", context)
    html_body = render_to_string("fabricflow/email/manual_action_alert.html", context)

    email = EmailMultiAlternatives(
        subject=subject,
        body=text_body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=recipients,
    )
    email.attach_alternative(html_body, "text/html")
    email.send(fail_silently=False)
    return True
