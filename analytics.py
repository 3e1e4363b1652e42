from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from database import to_serializable, utcnow

WEEKLY_SALES_KEY = "weekly_sales"
REVENUE_QUERY = {"status": {"$ne": "cancelled"}}


def _order_total(order: dict) -> float:
    return float((order.get("totals") or {}).get("total") or 0)


def weekly_sales(db: Database, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Revenue and order count for each of the last 7 days, oldest first."""
    now = now or utcnow()
    first_day = (now - timedelta(days=6)).date()
    start = datetime.combine(first_day, datetime.min.time())
    revenue = defaultdict(float)
    orders = Counter()
    for order in db["order"].find({**REVENUE_QUERY, "order_date": {"$gte": start}}):
        day = order["order_date"].date()
        revenue[day] += _order_total(order)
        orders[day] += 1

    days = []
    for i in range(7):
        day = first_day + timedelta(days=i)
        days.append({
            "date": day.isoformat(),
            "label": day.strftime("%a"),
            "revenue": round(revenue[day], 2),
            "orders": orders[day],
        })
    return days


def top_items(db: Database, limit: int = 5) -> List[Dict[str, Any]]:
    quantity = Counter()
    revenue = defaultdict(float)
    for order in db["order"].find(REVENUE_QUERY, {"items": 1}):
        for item in order.get("items") or []:
            name = item.get("name") or "Unknown"
            quantity[name] += int(item.get("quantity") or 0)
            revenue[name] += float(item.get("total") or 0)
    return [
        {"name": name, "quantity": qty, "revenue": round(revenue[name], 2)}
        for name, qty in quantity.most_common(limit)
    ]


def low_stock(db: Database) -> List[Dict[str, Any]]:
    products = db["product"].find({}, {"name": 1, "size_volume": 1, "stock_quantity": 1, "reorder_level": 1})
    flagged = [p for p in products if int(p.get("stock_quantity") or 0) <= int(p.get("reorder_level") or 0)]
    flagged.sort(key=lambda p: int(p.get("stock_quantity") or 0))
    return [to_serializable(p) for p in flagged]


def summary(db: Database, cache=None, now: Optional[datetime] = None) -> Dict[str, Any]:
    status_counts = Counter(o.get("status", "pending") for o in db["order"].find({}, {"status": 1}))
    total_revenue = sum(_order_total(o) for o in db["order"].find(REVENUE_QUERY, {"totals": 1}))

    sales = cache.get(WEEKLY_SALES_KEY) if cache is not None else None
    if sales is None:
        sales = weekly_sales(db, now)
        if cache is not None:
            cache.set(WEEKLY_SALES_KEY, sales)

    return {
        "total_orders": sum(status_counts.values()),
        "total_revenue": round(float(total_revenue), 2),
        "status_counts": dict(status_counts),
        "weekly_sales": sales,
        "low_stock": low_stock(db),
        "top_items": top_items(db),
    }
