from datetime import timedelta

from analytics import weekly_sales
from database import utcnow
from tests.test_orders import insert_order


def test_weekly_sales_buckets_last_seven_days(db):
    now = utcnow()
    insert_order(db, reference="T1", total=1000, order_date=now)
    insert_order(db, reference="T2", total=500, order_date=now)
    insert_order(db, reference="Y1", total=700, order_date=now - timedelta(days=1))
    insert_order(db, reference="OLD", total=9999, order_date=now - timedelta(days=10))
    insert_order(db, reference="C1", total=300, status="cancelled", order_date=now)

    days = weekly_sales(db, now)
    assert len(days) == 7
    assert days[-1]["date"] == now.date().isoformat()
    assert days[-1]["revenue"] == 1500
    assert days[-1]["orders"] == 2
    assert days[-2]["revenue"] == 700
    assert sum(d["revenue"] for d in days) == 2200


def test_analytics_summary(client, db, auth_headers, make_product):
    make_product(name="Low", stock_quantity=10, reorder_level=50)
    make_product(name="Plenty", stock_quantity=500, reorder_level=50)
    insert_order(db, reference="R1", total=1000)
    insert_order(db, reference="R2", total=2000, status="delivered")
    insert_order(db, reference="R3", total=400, status="cancelled")

    data = client.get("/api/analytics", headers=auth_headers).json()["data"]
    assert data["total_orders"] == 3
    assert data["total_revenue"] == 3000
    assert data["status_counts"] == {"paid": 1, "delivered": 1, "cancelled": 1}
    assert [p["name"] for p in data["low_stock"]] == ["Low"]
    assert len(data["weekly_sales"]) == 7


def test_weekly_sales_is_cached_until_expiry(client, db, auth_headers, clock, settings):
    insert_order(db, reference="R1", total=1000, order_date=utcnow())
    first = client.get("/api/analytics", headers=auth_headers).json()["data"]
    assert first["weekly_sales"][-1]["revenue"] == 1000

    insert_order(db, reference="R2", total=500, order_date=utcnow())
    cached = client.get("/api/analytics", headers=auth_headers).json()["data"]
    assert cached["weekly_sales"][-1]["revenue"] == 1000
    assert cached["total_orders"] == 2

    clock.now += settings.analytics_cache_ttl + 1
    fresh = client.get("/api/analytics", headers=auth_headers).json()["data"]
    assert fresh["weekly_sales"][-1]["revenue"] == 1500


def test_new_order_invalidates_weekly_sales(client, db, paystack, auth_headers, order_draft):
    client.get("/api/analytics", headers=auth_headers)
    paystack.verified("NEW", 500000, order_draft)
    client.get("/api/payments/paystack/verify", params={"reference": "NEW"})
    data = client.get("/api/analytics", headers=auth_headers).json()["data"]
    assert data["weekly_sales"][-1]["revenue"] == 5000


def test_analytics_requires_admin(client):
    assert client.get("/api/analytics").status_code == 401
