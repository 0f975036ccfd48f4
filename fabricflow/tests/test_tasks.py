from datetime import timedelta

import pytest
from django.core import mail
from django.utils import timezone

from fabricflow.models import ManualActionAlert
from fabricflow.services.alerts import open_alerts, raise_alert, resolve_alert
from fabricflow.tasks import escalate_open_alerts, send_manual_action_alert
from fabricflow.tests.helpers import make_user


@pytest.mark.django_db
def test_new_alert_is_emailed_after_commit(django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        alert = raise_alert(
            ManualActionAlert.STORAGE_CAPTURE_FAILED, "LOT00001", 4, "FG roll 4 has no storage record"
        )
    assert len(mail.outbox) == 1
    msg = mail.outbox[0]
    assert msg.to == ["supervisor@example.com"]
    assert "LOT00001" in msg.subject
    assert "FG roll 4" in msg.subject
    assert "FG roll 4 has no storage record" in msg.body
    assert msg.alternatives[0][1] == "text/html"
    alert.refresh_from_db()
    assert alert.last_notified_at is not None


@pytest.mark.django_db
def test_resolved_alert_is_not_sent():
    alert = raise_alert(ManualActionAlert.MISSING_LOCATION, "LOT00001", 1, "no location")
    resolve_alert(alert.pk)
    assert send_manual_action_alert(alert.pk) is False
    assert mail.outbox == []


@pytest.mark.django_db
def test_no_recipients_means_no_mail(settings):
    settings.MANUAL_ACTION_RECIPIENTS = []
    alert = raise_alert(ManualActionAlert.MISSING_LOCATION, "LOT00001", 1, "no location")
    assert send_manual_action_alert(alert.pk) is False
    assert mail.outbox == []


@pytest.mark.django_db
def test_escalation_resends_stale_open_alerts():
    stale = raise_alert(ManualActionAlert.MISSING_LOCATION, "LOT00001", 1, "old")
    fresh = raise_alert(ManualActionAlert.MISSING_LOCATION, "LOT00002", 1, "new")
    done = raise_alert(ManualActionAlert.MISSING_LOCATION, "LOT00003", 1, "done")
    resolve_alert(done.pk)
    old = timezone.now() - timedelta(hours=10)
    ManualActionAlert.objects.filter(pk__in=[stale.pk, done.pk]).update(created_at=old)

    assert escalate_open_alerts() == 1
    assert len(mail.outbox) == 1
    assert mail.outbox[0].subject.startswith("[STILL OPEN]")
    assert "LOT00001" in mail.outbox[0].subject
    # Just notified, so the next run skips it.
    assert escalate_open_alerts() == 0
    fresh.refresh_from_db()
    assert fresh.last_notified_at is None


@pytest.mark.django_db
def test_resolve_alert_records_actor():
    user = make_user("sup")
    alert = raise_alert(ManualActionAlert.ORPHANED_DISPATCHED_ROLL, "LOT00001", 2, "orphan")
    assert list(open_alerts()) == [alert]
    resolved = resolve_alert(alert.pk, actor=user)
    assert resolved.is_resolved
    assert resolved.resolved_by == user
    assert resolved.resolved_at is not None
    assert not open_alerts().exists()
