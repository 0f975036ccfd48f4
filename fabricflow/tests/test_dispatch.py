from decimal import Decimal

import pytest
from kombu.exceptions import OperationalError as BrokerError

from fabricflow.exceptions import (
    AlreadyDispatchedError,
    DuplicateScanError,
    LotCompleteError,
    MalformedBarcodeError,
    NotFoundError,
    ValidationError,
    WrongLotError,
)
from fabricflow.models import DispatchedRoll, DispatchPlanning, ManualActionAlert, StorageCapture
from fabricflow.services import dispatch
from fabricflow.services.dispatch import PickingSession, PickResult, plan_dispatch
from fabricflow.tasks import send_manual_action_alert
from fabricflow.tests.helpers import confirmed_rolls, make_locations, setup_lot


def stock(lot_no, count, customer="Acme", tape="Red"):
    for n in range(1, count + 1):
        StorageCapture.objects.create(
            lot_no=lot_no, fg_roll_no=str(n), location_code="A1", customer_name=customer, tape=tape
        )


def fg(lot_no, n):
    return f"{lot_no}#KM-01#{n}#{n}"


@pytest.mark.django_db
def test_plan_dispatch_orders_lots_and_numbers_loading_sheet():
    stock("LOT00001", 3)
    stock("LOT00002", 2, customer="Beta")
    plannings = plan_dispatch("DO-1", [
        {"lot_no": "LOT00001", "total_dispatched_rolls": 2},
        {"lot_no": "LOT00002", "total_dispatched_rolls": 2},
    ])
    assert [(p.lot_no, p.sequence, p.loading_no) for p in plannings] == [
        ("LOT00001", 1, "LS00001"),
        ("LOT00002", 2, "LS00001"),
    ]
    assert plannings[1].customer_name == "Beta"
    assert dispatch.next_loading_no() == "LS00002"


@pytest.mark.django_db
@pytest.mark.parametrize("order_id,lots", [
    ("", [{"lot_no": "LOT00001", "total_dispatched_rolls": 1}]),
    ("DO-1", []),
    ("DO-1", [{"lot_no": "LOT00001", "total_dispatched_rolls": 0}]),
    ("DO-1", [{"lot_no": "LOT00001", "total_dispatched_rolls": 4}]),
    ("DO-1", [{"lot_no": "LOT00001", "total_dispatched_rolls": 1}, {"lot_no": "LOT00001", "total_dispatched_rolls": 1}]),
])
def test_plan_dispatch_rejects_bad_plans(order_id, lots):
    stock("LOT00001", 3)
    with pytest.raises(ValidationError):
        plan_dispatch(order_id, lots)
    assert not DispatchPlanning.objects.exists()


@pytest.mark.django_db
def test_same_order_cannot_be_planned_twice():
    stock("LOT00001", 3)
    plan_dispatch("DO-1", [{"lot_no": "LOT00001", "total_dispatched_rolls": 1}])
    with pytest.raises(ValidationError):
        plan_dispatch("DO-1", [{"lot_no": "LOT00001", "total_dispatched_rolls": 1}])


@pytest.mark.django_db
def test_picking_walks_lots_in_sequence():
    stock("LOT00001", 2)
    stock("LOT00002", 1)
    plan_dispatch("DO-1", [
        {"lot_no": "LOT00001", "total_dispatched_rolls": 2},
        {"lot_no": "LOT00002", "total_dispatched_rolls": 1},
    ])
    store = {}
    session = PickingSession.open("DO-1", store=store)
    assert session.active().lot_no == "LOT00001"

    with pytest.raises(WrongLotError):
        session.scan(fg("LOT00002", 1))
    with pytest.raises(WrongLotError):
        session.select_lot("LOT00002")

    first = session.scan(fg("LOT00001", 1), loaded_by="Kumar")
    assert first.remaining == 1
    assert not first.advanced
    assert first.dispatched_roll.loaded_by == "Kumar"
    assert StorageCapture.objects.get(lot_no="LOT00001", fg_roll_no="1").is_dispatched

    second = session.scan(fg("LOT00001", 2))
    assert second.remaining == 0
    assert second.advanced
    assert second.active_lot == "LOT00002"

    # The pointer lives in the store, so a new session object resumes it.
    resumed = PickingSession("DO-1", store=store)
    assert resumed.active().lot_no == "LOT00002"
    resumed.scan(fg("LOT00002", 1))
    assert dispatch.is_order_fully_dispatched("DO-1")


@pytest.mark.django_db
def test_scan_rejections():
    stock("LOT00001", 2)
    plan_dispatch("DO-1", [{"lot_no": "LOT00001", "total_dispatched_rolls": 1}])
    session = PickingSession.open("DO-1")

    with pytest.raises(MalformedBarcodeError):
        session.scan("LOT00001#KM-01#1")
    with pytest.raises(NotFoundError):
        session.scan(fg("LOT00001", 9))

    session.scan(fg("LOT00001", 1))
    with pytest.raises(AlreadyDispatchedError):
        session.scan(fg("LOT00001", 1))
    with pytest.raises(LotCompleteError):
        session.scan(fg("LOT00001", 2))
    assert DispatchedRoll.objects.count() == 1


@pytest.mark.django_db
def test_rescan_of_a_roll_still_in_stock_is_duplicate():
    stock("LOT00001", 2)
    plannings = plan_dispatch("DO-1", [{"lot_no": "LOT00001", "total_dispatched_rolls": 2}])
    session = PickingSession.open("DO-1")
    # Loaded earlier but the storage record was never marked.
    DispatchedRoll.objects.create(planning=plannings[0], lot_no="LOT00001", fg_roll_no="1")

    with pytest.raises(DuplicateScanError):
        session.scan(fg("LOT00001", 1))
    assert DispatchedRoll.objects.count() == 1
    assert not StorageCapture.objects.get(lot_no="LOT00001", fg_roll_no="1").is_dispatched


@pytest.mark.django_db
def test_unknown_order_cannot_be_opened():
    with pytest.raises(NotFoundError):
        PickingSession.open("DO-404")


@pytest.mark.django_db
def test_remove_roll_puts_it_back_in_stock():
    stock("LOT00001", 2)
    plan_dispatch("DO-1", [{"lot_no": "LOT00001", "total_dispatched_rolls": 2}])
    session = PickingSession.open("DO-1")
    session.scan(fg("LOT00001", 1))

    session.remove_roll("1")
    assert not DispatchedRoll.objects.exists()
    assert not StorageCapture.objects.get(lot_no="LOT00001", fg_roll_no="1").is_dispatched
    assert session.progress()[0].remaining == 2
    with pytest.raises(NotFoundError):
        session.remove_roll("1")
    session.scan(fg("LOT00001", 1))


@pytest.mark.django_db
def test_failed_storage_update_flags_roll_for_reconciliation():
    stock("LOT00001", 1)
    plannings = plan_dispatch("DO-1", [{"lot_no": "LOT00001", "total_dispatched_rolls": 1}])
    capture = StorageCapture.objects.get()
    rolled = DispatchedRoll.objects.create(planning=plannings[0], lot_no="LOT00001", fg_roll_no="1")
    # Someone else already marked the capture.
    StorageCapture.objects.filter(pk=capture.pk).update(is_dispatched=True)

    result = PickResult(
        dispatched_roll=rolled, lot_no="LOT00001", fg_roll_no="1",
        gross_weight=Decimal("0"), net_weight=Decimal("0"), remaining=0, active_lot="LOT00001",
    )
    PickingSession("DO-1")._mark_dispatched(capture, rolled, result)

    rolled.refresh_from_db()
    assert rolled.needs_reconciliation
    assert "MANUAL ACTION REQUIRED" in result.warnings[0]
    alert = ManualActionAlert.objects.get()
    assert alert.kind == ManualActionAlert.ORPHANED_DISPATCHED_ROLL
    assert alert.payload == {"dispatched_roll_id": rolled.pk, "storage_capture_id": capture.pk}


@pytest.mark.django_db(transaction=True)
def test_orphaned_roll_is_flagged_when_broker_is_down(monkeypatch):
    def broker_down(*args, **kwargs):
        raise BrokerError("broker unreachable")

    monkeypatch.setattr(send_manual_action_alert, "delay", broker_down)
    stock("LOT00001", 1)
    plannings = plan_dispatch("DO-1", [{"lot_no": "LOT00001", "total_dispatched_rolls": 1}])
    capture = StorageCapture.objects.get()
    rolled = DispatchedRoll.objects.create(planning=plannings[0], lot_no="LOT00001", fg_roll_no="1")
    StorageCapture.objects.filter(pk=capture.pk).update(is_dispatched=True)

    result = PickResult(
        dispatched_roll=rolled, lot_no="LOT00001", fg_roll_no="1",
        gross_weight=Decimal("0"), net_weight=Decimal("0"), remaining=0, active_lot="LOT00001",
    )
    PickingSession("DO-1")._mark_dispatched(capture, rolled, result)

    rolled.refresh_from_db()
    assert rolled.needs_reconciliation
    assert ManualActionAlert.objects.get().kind == ManualActionAlert.ORPHANED_DISPATCHED_ROLL


@pytest.mark.django_db
def test_submit_writes_weights_and_closes_order():
    make_locations("A1")
    lot, ma = setup_lot(total_rolls=5)
    confirmed_rolls(ma, 2)
    lot_no = lot.allotment_id
    plan_dispatch("DO-1", [{"lot_no": lot_no, "total_dispatched_rolls": 2}])
    store = {}
    session = PickingSession.open("DO-1", store=store)

    session.scan(f"{lot_no}#KM-01#1#1")
    partial = session.submit()
    planning = DispatchPlanning.objects.get()
    assert not planning.is_fully_dispatched
    assert planning.total_net_weight == Decimal("25.00")
    assert not all(lp.complete for lp in partial)

    session.scan(f"{lot_no}#KM-01#2#2")
    session.submit()
    planning.refresh_from_db()
    assert planning.is_fully_dispatched
    assert planning.total_gross_weight == Decimal("52.00")
    assert planning.total_net_weight == Decimal("50.00")
    assert "DO-1" not in store[dispatch.SESSION_KEY]

    with pytest.raises(AlreadyDispatchedError):
        PickingSession.open("DO-1")
    with pytest.raises(AlreadyDispatchedError):
        session.remove_roll("1")
