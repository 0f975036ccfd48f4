from datetime import date
from decimal import Decimal

import pytest
from django.utils import timezone

from fabricflow.models import ProductionAllotment
from fabricflow.services import reporting
from fabricflow.services.dispatch import PickingSession, plan_dispatch
from fabricflow.tests.helpers import confirmed_rolls, make_locations, setup_lot


def test_summaries_treat_missing_collections_as_empty():
    row = reporting.summarize_lot({"allotment_id": "LOT00001", "roll_confirmations": None})
    assert row["machines"] == []
    assert row["ready_weight"] == Decimal("0.00")
    assert row["dispatch_weight"] == Decimal("0.00")

    stock = reporting.fabric_stock_row({"allotment_id": "LOT00001"})
    assert stock["customer_name"] == "Unknown"
    assert stock["stock_rolls"] == 0
    assert reporting.final_fabric_rows(None) == {
        "orders": [], "ready_weight": Decimal("0.00"), "dispatch_weight": Decimal("0.00"),
    }


def test_summarize_lot_ignores_unweighed_rolls():
    row = reporting.summarize_lot({
        "allotment_id": "LOT00001",
        "roll_confirmations": [
            {"machine_name": "KM-01", "net_weight": Decimal("25.00")},
            {"machine_name": "KM-01", "net_weight": None},
            {"machine_name": "KM-02", "net_weight": "24.505"},
        ],
        "dispatch_plannings": [{"total_net_weight": Decimal("25.00")}],
    })
    assert row["machines"] == [
        {"machine_name": "KM-01", "rolls": 1, "net_weight": Decimal("25.00")},
        {"machine_name": "KM-02", "rolls": 1, "net_weight": Decimal("24.51")},
    ]
    assert row["ready_weight"] == Decimal("49.51")
    assert row["dispatch_weight"] == Decimal("25.00")


def test_final_fabric_rows_group_by_order_and_item():
    lots = [
        {"allotment_id": "L1", "sales_order_id": 1, "sales_order_item_id": 1,
         "roll_confirmations": [{"machine_name": "M", "net_weight": "10"}]},
        {"allotment_id": "L2", "sales_order_id": 1, "sales_order_item_id": 1,
         "roll_confirmations": [{"machine_name": "M", "net_weight": "5"}]},
        {"allotment_id": "L3", "sales_order_id": 1, "sales_order_item_id": 2},
        {"allotment_id": "L4", "sales_order_id": 2, "sales_order_item_id": 1},
    ]
    report = reporting.final_fabric_rows(lots)
    assert [o["sales_order_id"] for o in report["orders"]] == [1, 2]
    items = report["orders"][0]["items"]
    assert [[lot["lot_no"] for lot in i["lots"]] for i in items] == [["L1", "L2"], ["L3"]]
    assert report["ready_weight"] == Decimal("15.00")


def test_fabric_stock_row_balances():
    row = reporting.fabric_stock_row({
        "allotment_id": "L1",
        "party_name": "Acme",
        "actual_quantity": Decimal("100"),
        "machine_allocations": [{"total_rolls": 3}, {"total_rolls": 2}],
        "roll_confirmations": [{"net_weight": Decimal("20")}, {"net_weight": Decimal("21.5")}],
        "storage_captures": [{"is_dispatched": True}, {"is_dispatched": False}],
    })
    assert row["allocated_rolls"] == 5
    assert row["updated_rolls"] == 2
    assert row["stock_rolls"] == 1
    assert row["dispatched_rolls"] == 1
    assert row["balance_rolls"] == 3
    assert row["update_quantity"] == Decimal("41.50")
    assert row["balance_quantity"] == Decimal("58.50")


def test_dashboard_metrics_window():
    rolls = [
        {"date": date(2024, 5, 1), "lot_no": "L1", "machine_name": "KM-01", "net_weight": Decimal("10")},
        {"date": date(2024, 5, 2), "lot_no": "L1", "machine_name": "KM-02", "net_weight": Decimal("20")},
        {"date": date(2024, 4, 30), "lot_no": "L1", "machine_name": "KM-01", "net_weight": Decimal("99")},
    ]
    plannings = [{"date": date(2024, 5, 2), "total_net_weight": Decimal("15")}]
    lots = [{"allotment_id": "L1", "party_name": "Acme", "fabric_type": "Rib",
             "production_status": ProductionAllotment.HOLD}]

    m = reporting.dashboard_metrics(rolls, plannings, lots, date(2024, 5, 1), date(2024, 5, 3))
    assert m["total_production_kg"] == Decimal("30.00")
    assert m["total_dispatch_kg"] == Decimal("15.00")
    assert m["days"] == 3
    assert m["avg_production_per_day"] == Decimal("10.00")
    assert m["machines"][0] == {"name": "KM-02", "value": Decimal("20.00")}
    assert m["lots"] == [{"lot_no": "L1", "weight": Decimal("30.00"), "customer": "Acme",
                          "fabric": "Rib", "status": "Hold"}]
    assert m["fabrics"] == [{"name": "Rib", "value": Decimal("30.00")}]
    assert [d["production"] for d in m["trend"]] == [Decimal("10.00"), Decimal("20.00"), Decimal("0.00")]


@pytest.mark.django_db
def test_reports_from_database():
    make_locations("A1")
    lot, ma = setup_lot(total_rolls=5)
    confirmed_rolls(ma, 3)
    plan_dispatch("DO-1", [{"lot_no": lot.allotment_id, "total_dispatched_rolls": 1}])
    session = PickingSession.open("DO-1")
    session.scan(f"{lot.allotment_id}#KM-01#1#1")
    session.submit()

    final = reporting.final_fabric_report()
    lot_row = final["orders"][0]["items"][0]["lots"][0]
    assert lot_row["ready_weight"] == Decimal("75.00")
    assert lot_row["dispatch_weight"] == Decimal("25.00")
    assert reporting.final_fabric_report(sales_order_id=999)["orders"] == []

    stock = reporting.fabric_stock_report()
    assert len(stock) == 1
    assert stock[0]["stock_rolls"] == 2
    assert stock[0]["dispatched_rolls"] == 1
    assert stock[0]["balance_rolls"] == 2

    today = timezone.localdate()
    board = reporting.dashboard(today, today)
    assert board["total_production_kg"] == Decimal("75.00")
    assert board["total_dispatch_kg"] == Decimal("25.00")
