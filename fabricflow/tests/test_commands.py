from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from fabricflow.models import DispatchedRoll, DispatchPlanning, Location, ManualActionAlert, ProductionAllotment, Shift
from fabricflow.services.alerts import raise_alert
from fabricflow.tests.helpers import make_user


@pytest.mark.django_db
def test_seed_demo_is_repeatable():
    call_command("seed_demo", locations=8, stdout=StringIO())
    call_command("seed_demo", locations=8, stdout=StringIO())
    assert Shift.objects.count() == 3
    assert Location.objects.count() == 8
    lot = ProductionAllotment.objects.get()
    assert lot.allotment_id == "LOT00001"
    assert lot.machine_allocations.count() == 2


@pytest.mark.django_db
def test_reconciliation_report_lists_and_resolves():
    make_user("sup")
    alert = raise_alert(ManualActionAlert.STORAGE_CAPTURE_FAILED, "LOT00001", 3, "no storage record")
    planning = DispatchPlanning.objects.create(
        dispatch_order_id="DO-1", lot_no="LOT00001", loading_no="LS00001", total_dispatched_rolls=1
    )
    DispatchedRoll.objects.create(planning=planning, lot_no="LOT00001", fg_roll_no="3", needs_reconciliation=True)

    out = StringIO()
    call_command("reconciliation_report", stdout=out)
    text = out.getvalue()
    assert "1 alert(s)" in text
    assert "STORAGE_CAPTURE_FAILED" in text
    assert "1 dispatched roll(s) needing reconciliation" in text

    out = StringIO()
    call_command("reconciliation_report", "--resolve", str(alert.pk), "--user", "sup", stdout=out)
    assert f"Alert {alert.pk} resolved" in out.getvalue()
    alert.refresh_from_db()
    assert alert.is_resolved
    assert alert.resolved_by.username == "sup"

    with pytest.raises(CommandError):
        call_command("reconciliation_report", "--user", "ghost", stdout=StringIO())
    with pytest.raises(CommandError):
        call_command("reconciliation_report", "--resolve", "9999", stdout=StringIO())
