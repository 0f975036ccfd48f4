import pytest
from rest_framework.test import APIClient

from fabricflow.models import (
    DispatchPlanning,
    ManualActionAlert,
    ProductionAllotment,
    RollConfirmation,
    StorageCapture,
    UserProfile,
)
from fabricflow.services import printing
from fabricflow.services.alerts import raise_alert
from fabricflow.tests.helpers import make_locations, make_shift, make_user

pytestmark = pytest.mark.django_db


@pytest.fixture(autouse=True)
def offline_printer(monkeypatch):
    jobs = []

    def post(self, path, payload):
        jobs.append((path, payload))
        return printing.PrintResult(True, "Printed")

    monkeypatch.setattr(printing.StickerPrinter, "_post", post)
    return jobs


def client_for(role, username=None):
    client = APIClient()
    client.force_login(make_user(username or role.lower(), role=role))
    return client


LOT_PAYLOAD = {
    "sales_order_id": 1001,
    "sales_order_item_id": 1,
    "party_name": "Acme Apparel",
    "fabric_type": "Single Jersey",
    "tape_color": "Red",
    "tube_weight": "0.800",
    "shrink_rap_weight": "0.200",
    "machines": [{"machine_name": "KM-01", "total_rolls": 3, "roll_per_kg": "25.000"}],
}


def test_anonymous_requests_are_rejected():
    assert APIClient().get("/api/lots/").status_code in (401, 403)


def test_only_planners_create_lots():
    operator = client_for(UserProfile.OPERATOR)
    assert operator.post("/api/lots/", LOT_PAYLOAD, format="json").status_code == 403
    assert operator.get("/api/lots/").status_code == 200

    supervisor = client_for(UserProfile.SUPERVISOR)
    resp = supervisor.post("/api/lots/", LOT_PAYLOAD, format="json")
    assert resp.status_code == 201
    assert resp.data["allotment_id"] == "LOT00001"
    assert resp.data["machine_allocations"][0]["total_rolls"] == 3


def test_unknown_fields_are_rejected():
    supervisor = client_for(UserProfile.SUPERVISOR)
    resp = supervisor.post("/api/lots/", {**LOT_PAYLOAD, "priority": "high"}, format="json")
    assert resp.status_code == 400
    assert "priority" in resp.data
    assert not ProductionAllotment.objects.exists()


def test_lot_status_actions_and_error_payload():
    supervisor = client_for(UserProfile.SUPERVISOR)
    supervisor.post("/api/lots/", LOT_PAYLOAD, format="json")

    resp = supervisor.post("/api/lots/LOT00001/hold/")
    assert resp.data["production_status_display"] == "Hold"
    resp = supervisor.post("/api/lots/LOT00001/restart/")
    assert resp.status_code == 409
    assert resp.data["code"] == "illegal_transition"
    assert resp.data["level"] == "error"
    assert supervisor.get("/api/lots/next-id/").data == {"allotment_id": "LOT00002"}


def test_roll_lifecycle_over_the_api(offline_printer):
    make_locations("A1", "A2")
    shift = make_shift()
    supervisor = client_for(UserProfile.SUPERVISOR)
    lot = supervisor.post("/api/lots/", LOT_PAYLOAD, format="json").data
    ma_id = lot["machine_allocations"][0]["id"]
    operator = client_for(UserProfile.OPERATOR)

    resp = operator.post("/api/assignments/", {
        "machine_allocation": ma_id, "shift": shift.pk, "assigned_rolls": 2, "operator_name": "Ravi",
    }, format="json")
    assert resp.status_code == 201
    assignment_id = resp.data["id"]

    resp = operator.post(f"/api/assignments/{assignment_id}/generate-barcodes/", {"count": 2}, format="json")
    assert resp.status_code == 201
    barcodes = [b["barcode"] for b in resp.data["barcodes"]]
    assert barcodes == ["LOT00001#KM-01#1", "LOT00001#KM-01#2"]
    assert [p for p, _ in offline_printer] == ["roll-label", "roll-label"]

    resp = operator.post("/api/assignments/", {
        "machine_allocation": ma_id, "shift": shift.pk, "assigned_rolls": 1, "operator_name": "Ravi",
    }, format="json")
    assert resp.status_code == 409
    assert resp.data["code"] == "sequencing_error"

    for text in barcodes:
        assert operator.post("/api/roll-confirmations/capture/", {"barcode": text}, format="json").status_code == 201

    resp = operator.post("/api/fg/scan/", {"barcode": barcodes[0]}, format="json")
    assert resp.status_code == 200
    assert resp.data["location_code"] == "A1"

    resp = operator.post("/api/fg/confirm/", {"barcode": barcodes[0], "gross_weight": "25.80"}, format="json")
    assert resp.status_code == 200
    assert resp.data["confirmation"]["fg_roll_no"] == 1
    assert resp.data["location_code"] == "A1"
    assert resp.data["printed"] is True

    resp = operator.post("/api/fg/confirm/", {"barcode": barcodes[0], "gross_weight": "25.80"}, format="json")
    assert resp.status_code == 409
    assert resp.data["code"] == "duplicate_confirmation"
    assert resp.data["reset_form"] is True

    resp = operator.post("/api/fg/confirm/", {"barcode": barcodes[1], "gross_weight": "40"}, format="json")
    assert resp.status_code == 409
    assert resp.data["code"] == "weight_mismatch"
    resp = operator.post("/api/fg/confirm/", {"barcode": barcodes[1], "gross_weight": "0.5"}, format="json")
    assert resp.data["code"] == "negative_net_weight"
    resp = operator.post("/api/fg/confirm/", {"barcode": barcodes[1], "gross_weight": "1e30"}, format="json")
    assert resp.status_code == 400
    assert resp.data["code"] == "invalid_weight"
    resp = operator.post("/api/fg/confirm/", {"barcode": barcodes[1], "gross_weight": "25.70"}, format="json")
    assert resp.data["confirmation"]["fg_roll_no"] == 2
    assert RollConfirmation.objects.filter(is_fg_sticker_generated=True).count() == 2

    status = supervisor.get("/api/lots/LOT00001/allocation-status/").data
    assert status == {"has_roll_assignment": True, "has_stickers_generated": True, "has_roll_confirmation": True}

    dispatcher = client_for(UserProfile.DISPATCHER)
    resp = dispatcher.post("/api/dispatch/plan/", {
        "dispatch_order_id": "DO-1",
        "lots": [{"lot_no": "LOT00001", "total_dispatched_rolls": 2}],
    }, format="json")
    assert resp.status_code == 201
    assert resp.data[0]["loading_no"] == "LS00001"

    resp = dispatcher.post("/api/dispatch/DO-1/open/")
    assert resp.data["active_lot"] == "LOT00001"
    resp = dispatcher.post("/api/dispatch/DO-1/scan/", {"barcode": "LOT00001#KM-01#1#1"}, format="json")
    assert resp.status_code == 200
    assert resp.data["remaining"] == 1
    resp = dispatcher.post("/api/dispatch/DO-1/scan/", {"barcode": "LOT00001#KM-01#1#1"}, format="json")
    assert resp.data["code"] == "already_dispatched"
    resp = dispatcher.post("/api/dispatch/DO-1/scan/", {"barcode": "LOT00001#KM-01#2#2"}, format="json")
    assert resp.data["remaining"] == 0

    resp = dispatcher.post("/api/dispatch/DO-1/submit/")
    assert resp.data["is_fully_dispatched"] is True
    assert DispatchPlanning.objects.get().is_fully_dispatched
    assert StorageCapture.objects.filter(is_dispatched=True).count() == 2

    report = supervisor.get("/api/reports/fabric-stock/").data
    assert report[0]["dispatched_rolls"] == 2


def test_operators_cannot_dispatch():
    operator = client_for(UserProfile.OPERATOR)
    resp = operator.post("/api/dispatch/plan/", {"dispatch_order_id": "DO-1", "lots": []}, format="json")
    assert resp.status_code == 403


def test_malformed_scan_is_a_recoverable_error():
    operator = client_for(UserProfile.OPERATOR)
    resp = operator.post("/api/fg/scan/", {"barcode": "LOT00001#KM-01"}, format="json")
    assert resp.status_code == 400
    assert resp.data["code"] == "malformed_barcode"
    assert resp.data["fatal"] is False


def test_alert_resolution_needs_supervisor():
    alert = raise_alert(ManualActionAlert.MISSING_LOCATION, "LOT00001", 1, "no location")
    operator = client_for(UserProfile.OPERATOR)
    assert operator.get("/api/alerts/?open=1").data[0]["id"] == alert.pk
    assert operator.post(f"/api/alerts/{alert.pk}/resolve/").status_code == 403

    supervisor = client_for(UserProfile.SUPERVISOR)
    resp = supervisor.post(f"/api/alerts/{alert.pk}/resolve/")
    assert resp.status_code == 200
    assert resp.data["is_resolved"] is True
    assert supervisor.get("/api/alerts/?open=1").data == []


def test_dashboard_rejects_reversed_dates():
    client = client_for(UserProfile.OPERATOR)
    resp = client.get("/api/reports/dashboard/?date_from=2024-05-02&date_to=2024-05-01")
    assert resp.status_code == 400
    assert client.get("/api/reports/dashboard/?date_from=2024-05-01&date_to=2024-05-02").status_code == 200
