"""Read-only roll-ups of confirmed and dispatched weight.

The ``*_rows``/``summarize_*`` helpers work on plain dicts and treat any
missing or ``None`` collection as empty; the ``*_report`` functions load
those dicts from the database.
"""
from collections import OrderedDict, defaultdict
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.utils import timezone

from fabricflow.models import (
    DispatchPlanning,
    MachineAllocation,
    ProductionAllotment,
    RollConfirmation,
    StorageCapture,
)

ZERO = Decimal("0")


def _q(x):
    return Decimal(x or 0).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _items(obj, key):
    return (obj or {}).get(key) or []


def _dec(value):
    if value in (None, ""):
        return ZERO
    return Decimal(str(value))


def summarize_lot(lot: dict) -> dict:
    machines = OrderedDict()
    for rc in _items(lot, "roll_confirmations"):
        name = rc.get("machine_name") or "-"
        row = machines.setdefault(name, {"machine_name": name, "rolls": 0, "net_weight": ZERO})
        if rc.get("net_weight") is not None:
            row["rolls"] += 1
            row["net_weight"] += _dec(rc.get("net_weight"))
    ready = sum((m["net_weight"] for m in machines.values()), ZERO)
    dispatched = sum((_dec(p.get("total_net_weight")) for p in _items(lot, "dispatch_plannings")), ZERO)
    for m in machines.values():
        m["net_weight"] = _q(m["net_weight"])
    return {
        "lot_no": (lot or {}).get("allotment_id", ""),
        "sales_order_id": (lot or {}).get("sales_order_id"),
        "sales_order_item_id": (lot or {}).get("sales_order_item_id"),
        "item_name": (lot or {}).get("item_name", ""),
        "party_name": (lot or {}).get("party_name", ""),
        "machines": list(machines.values()),
        "ready_weight": _q(ready),
        "dispatch_weight": _q(dispatched),
    }


def final_fabric_rows(lots) -> dict:
    """Sales order -> item -> lot rows, with grand totals."""
    orders = OrderedDict()
    totals = {"ready_weight": ZERO, "dispatch_weight": ZERO}
    for lot in lots or []:
        row = summarize_lot(lot)
        order = orders.setdefault(row["sales_order_id"], {
            "sales_order_id": row["sales_order_id"],
            "party_name": row["party_name"],
            "items": OrderedDict(),
        })
        item = order["items"].setdefault(row["sales_order_item_id"], {
            "sales_order_item_id": row["sales_order_item_id"],
            "item_name": row["item_name"],
            "lots": [],
        })
        item["lots"].append(row)
        totals["ready_weight"] += row["ready_weight"]
        totals["dispatch_weight"] += row["dispatch_weight"]
    for order in orders.values():
        order["items"] = list(order["items"].values())
    return {
        "orders": list(orders.values()),
        "ready_weight": _q(totals["ready_weight"]),
        "dispatch_weight": _q(totals["dispatch_weight"]),
    }


def fabric_stock_row(lot: dict) -> dict:
    captures = _items(lot, "storage_captures")
    dispatched = sum(1 for c in captures if c.get("is_dispatched"))
    update_qty = sum((_dec(rc.get("net_weight")) for rc in _items(lot, "roll_confirmations")), ZERO)
    allocated = sum(int(m.get("total_rolls") or 0) for m in _items(lot, "machine_allocations"))
    order_qty = _dec((lot or {}).get("actual_quantity"))
    return {
        "lot_no": (lot or {}).get("allotment_id", ""),
        "customer_name": (lot or {}).get("party_name") or "Unknown",
        "order_quantity": _q(order_qty),
        "allocated_rolls": allocated,
        "updated_rolls": len(captures),
        "stock_rolls": len(captures) - dispatched,
        "dispatched_rolls": dispatched,
        "update_quantity": _q(update_qty),
        "balance_rolls": allocated - len(captures),
        "balance_quantity": _q(order_qty - update_qty),
    }


def dashboard_metrics(rolls, plannings, lots, date_from, date_to) -> dict:
    """Production vs dispatch for ``[date_from, date_to]`` (dates, inclusive)."""
    by_lot_info = {lot.get("allotment_id"): lot for lot in lots or []}
    status_labels = dict(ProductionAllotment.STATUS_CHOICES)

    def in_range(d):
        return d is not None and date_from <= d <= date_to

    rolls = [r for r in rolls or [] if in_range(r.get("date"))]
    plannings = [p for p in plannings or [] if in_range(p.get("date"))]

    per_machine = defaultdict(lambda: ZERO)
    per_lot = defaultdict(lambda: ZERO)
    per_fabric = defaultdict(lambda: ZERO)
    per_day = OrderedDict()
    day = date_from
    while day <= date_to:
        per_day[day] = {"date": day, "production": ZERO, "dispatch": ZERO}
        day += timedelta(days=1)

    for r in rolls:
        net = _dec(r.get("net_weight"))
        per_machine[r.get("machine_name") or "-"] += net
        per_lot[r.get("lot_no")] += net
        fabric = (by_lot_info.get(r.get("lot_no")) or {}).get("fabric_type") or "Other"
        per_fabric[fabric] += net
        per_day[r["date"]]["production"] += net
    for p in plannings:
        per_day[p["date"]]["dispatch"] += _dec(p.get("total_net_weight"))

    total_production = sum(per_machine.values(), ZERO)
    total_dispatch = sum((_dec(p.get("total_net_weight")) for p in plannings), ZERO)
    lot_rows = []
    for lot_no, weight in sorted(per_lot.items(), key=lambda kv: kv[1], reverse=True):
        info = by_lot_info.get(lot_no) or {}
        lot_rows.append({
            "lot_no": lot_no,
            "weight": _q(weight),
            "customer": info.get("party_name") or "Unknown",
            "fabric": info.get("fabric_type") or "N/A",
            "status": status_labels.get(info.get("production_status"), "Active"),
        })
    days = len(per_day)
    return {
        "total_production_kg": _q(total_production),
        "total_dispatch_kg": _q(total_dispatch),
        "avg_production_per_day": _q(total_production / days) if days else ZERO,
        "machines": [
            {"name": k, "value": _q(v)}
            for k, v in sorted(per_machine.items(), key=lambda kv: kv[1], reverse=True)
        ],
        "trend": [
            {"date": d["date"], "production": _q(d["production"]), "dispatch": _q(d["dispatch"])}
            for d in per_day.values()
        ],
        "lots": lot_rows,
        "fabrics": [{"name": k, "value": _q(v)} for k, v in per_fabric.items()],
        "days": days,
    }


#
# Database loaders
#
def _lot_dicts(lots, with_captures=False):
    lot_ids = [lot.allotment_id for lot in lots]
    confirmations = defaultdict(list)
    for rc in RollConfirmation.objects.filter(
        allotment__allotment_id__in=lot_ids
    ).values("allotment__allotment_id", "machine_name", "net_weight"):
        confirmations[rc["allotment__allotment_id"]].append(rc)
    plannings = defaultdict(list)
    for p in DispatchPlanning.objects.filter(lot_no__in=lot_ids).values("lot_no", "total_net_weight"):
        plannings[p["lot_no"]].append(p)
    machines = defaultdict(list)
    for m in MachineAllocation.objects.filter(allotment__in=lots).values("allotment_id", "total_rolls"):
        machines[m["allotment_id"]].append(m)
    captures = defaultdict(list)
    if with_captures:
        for c in StorageCapture.objects.filter(lot_no__in=lot_ids).values("lot_no", "is_dispatched"):
            captures[c["lot_no"]].append(c)

    out = []
    for lot in lots:
        out.append({
            "allotment_id": lot.allotment_id,
            "sales_order_id": lot.sales_order_id,
            "sales_order_item_id": lot.sales_order_item_id,
            "item_name": lot.item_name,
            "party_name": lot.party_name,
            "fabric_type": lot.fabric_type,
            "actual_quantity": lot.actual_quantity,
            "production_status": lot.production_status,
            "roll_confirmations": confirmations.get(lot.allotment_id),
            "dispatch_plannings": plannings.get(lot.allotment_id),
            "machine_allocations": machines.get(lot.pk),
            "storage_captures": captures.get(lot.allotment_id),
        })
    return out


def final_fabric_report(sales_order_id=None) -> dict:
    lots = ProductionAllotment.objects.order_by("sales_order_id", "sales_order_item_id", "id")
    if sales_order_id is not None:
        lots = lots.filter(sales_order_id=sales_order_id)
    return final_fabric_rows(_lot_dicts(list(lots)))


def fabric_stock_report(lot_no=None) -> list:
    lot_ids = StorageCapture.objects.values_list("lot_no", flat=True).distinct()
    lots = ProductionAllotment.objects.filter(allotment_id__in=lot_ids).order_by("id")
    if lot_no:
        lots = lots.filter(allotment_id=lot_no)
    return [fabric_stock_row(d) for d in _lot_dicts(list(lots), with_captures=True)]


def dashboard(date_from=None, date_to=None) -> dict:
    today = timezone.localdate()
    date_to = date_to or today
    date_from = date_from or date_to.replace(day=1)
    rolls = [
        {
            "date": timezone.localtime(r["fg_confirmed_at"]).date(),
            "lot_no": r["allotment__allotment_id"],
            "machine_name": r["machine_name"],
            "net_weight": r["net_weight"],
        }
        for r in RollConfirmation.objects.filter(
            is_fg_sticker_generated=True, fg_confirmed_at__isnull=False
        ).values("fg_confirmed_at", "allotment__allotment_id", "machine_name", "net_weight")
    ]
    plannings = [
        {"date": timezone.localtime(p["created_at"]).date(), "total_net_weight": p["total_net_weight"]}
        for p in DispatchPlanning.objects.values("created_at", "total_net_weight")
    ]
    lots = list(ProductionAllotment.objects.values(
        "allotment_id", "party_name", "fabric_type", "production_status"
    ))
    return dashboard_metrics(rolls, plannings, lots, date_from, date_to)
