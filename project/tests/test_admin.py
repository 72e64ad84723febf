"""
Back-office: обработка заказов, VIP и клиенты, цифры дашборда,
отложенные письма и health.
"""
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.future import select

from app.models.email import EmailLog, ScheduledEmail
from app.models.order import Order, OrderItem
from app.models.user import User
from app.services.stats import build_chart, percent_change, period_window
from app.services.vip import (
    build_vip_customer,
    calculate_vip_score,
    get_activity_status,
    get_vip_segment,
    summarize_vip,
)
from app.utils.database import utcnow
from conftest import add, fetch_all, get


def _order(user_id, session_id, status, total, product, quantity=1, days_ago=0) -> Order:
    return add(Order(
        stripe_session_id=session_id,
        user_id=user_id,
        status=status,
        total_amount=total,
        created_at=utcnow() - timedelta(days=days_ago),
        items=[OrderItem(product_id=product.id, name=product.name, price=float(product.price), quantity=quantity)],
    ))


# ────────────── Заказы ──────────────
def test_order_list_counts_every_status(client, admin_headers, customer, products):
    _order(customer.id, "cs_1", "PAID", 100.0, products.oud)
    _order(customer.id, "cs_2", "PAID", 50.0, products.rose)
    _order(customer.id, "cs_3", "PENDING", 50.0, products.rose)

    body = client.get("/admin/orders", headers=admin_headers, params={"status": "PAID"}).json()

    assert body["pagination"]["total"] == 2
    assert {o["status"] for o in body["orders"]} == {"PAID"}
    assert body["status_counts"]["ALL"] == 3
    assert body["status_counts"]["PENDING"] == 1
    assert body["status_counts"]["SHIPPED"] == 0


def test_order_search_by_email_and_id(client, admin_headers, customer, products):
    order = _order(customer.id, "cs_1", "PAID", 100.0, products.oud)

    by_email = client.get("/admin/orders", headers=admin_headers, params={"search": "claire@"}).json()
    by_id = client.get("/admin/orders", headers=admin_headers, params={"search": f"#{order.id}"}).json()
    nothing = client.get("/admin/orders", headers=admin_headers, params={"search": "personne"}).json()

    assert [o["id"] for o in by_email["orders"]] == [order.id]
    assert [o["id"] for o in by_id["orders"]] == [order.id]
    assert nothing["orders"] == []


def test_ship_then_deliver(client, admin_headers, customer, products):
    order = _order(customer.id, "cs_1", "PAID", 100.0, products.oud)

    shipped = client.post(f"/admin/orders/{order.id}/ship", headers=admin_headers,
                          json={"tracking_number": "6A12345678901", "carrier": "Colissimo"})
    assert shipped.status_code == 200
    assert shipped.json()["status"] == "SHIPPED"
    assert shipped.json()["tracking_number"] == "6A12345678901"

    delivered = client.post(f"/admin/orders/{order.id}/deliver", headers=admin_headers)
    assert delivered.status_code == 200
    assert delivered.json()["status"] == "DELIVERED"
    assert delivered.json()["delivered_at"] is not None

    [scheduled] = fetch_all(select(ScheduledEmail).where(ScheduledEmail.order_id == order.id))
    assert scheduled.type == "REVIEW_REQUEST"
    assert scheduled.to == customer.email
    assert scheduled.scheduled_for > utcnow() + timedelta(days=6)


def test_ship_emails_tracking_number(client, admin_headers, customer, products, resend_mock):
    order = _order(customer.id, "cs_1", "PAID", 100.0, products.oud)

    client.post(f"/admin/orders/{order.id}/ship", headers=admin_headers,
                json={"tracking_number": "6A12345678901", "carrier": "Colissimo"})

    html = resend_mock.call_args.args[0]["html"]
    assert "Colissimo" in html
    assert "6A12345678901" in html
    [email] = fetch_all(select(EmailLog).where(EmailLog.order_id == order.id))
    assert (email.type, email.status) == ("SHIPPING", "SENT")


def test_ship_succeeds_when_email_fails(client, admin_headers, customer, products):
    order = _order(customer.id, "cs_1", "PAID", 100.0, products.oud)

    with patch("app.services.admin_order.send_shipping_notification", side_effect=RuntimeError("mail down")):
        response = client.post(f"/admin/orders/{order.id}/ship", headers=admin_headers,
                               json={"tracking_number": "6A12345678901", "carrier": "Colissimo"})

    assert response.status_code == 200
    assert get(Order, order.id).status == "SHIPPED"


def test_pending_order_cannot_be_shipped(client, admin_headers, customer, products):
    order = _order(customer.id, "cs_1", "PENDING", 100.0, products.oud)

    response = client.post(f"/admin/orders/{order.id}/ship", headers=admin_headers,
                           json={"tracking_number": "6A12345678901", "carrier": "Colissimo"})

    assert response.status_code == 400


def test_paid_order_cannot_be_delivered(client, admin_headers, customer, products):
    order = _order(customer.id, "cs_1", "PAID", 100.0, products.oud)

    assert client.post(f"/admin/orders/{order.id}/deliver", headers=admin_headers).status_code == 400


def test_bulk_skips_orders_in_other_statuses(client, admin_headers, customer, products):
    paid = _order(customer.id, "cs_1", "PAID", 100.0, products.oud)
    pending = _order(customer.id, "cs_2", "PENDING", 50.0, products.rose)

    body = client.patch("/admin/orders", headers=admin_headers, json={
        "action": "mark_as_shipped", "order_ids": [paid.id, pending.id], "carrier": "DHL",
    }).json()

    assert body["updated"] == 1
    assert body["skipped"] == [{"id": pending.id, "status": "PENDING"}]
    assert get(Order, paid.id).status == "SHIPPED"
    assert get(Order, paid.id).carrier == "DHL"


def test_bulk_unknown_orders_is_404(client, admin_headers):
    response = client.patch("/admin/orders", headers=admin_headers, json={"action": "cancel", "order_ids": [999]})

    assert response.status_code == 404


def test_customer_sees_only_own_orders(client, auth_headers, customer, products):
    own = _order(customer.id, "cs_own", "PAID", 100.0, products.oud)
    other_user = add(User(email="autre@mail.fr", name="Autre", role="USER"))
    _order(other_user.id, "cs_other", "PAID", 50.0, products.rose)

    mine = client.get("/orders", headers=auth_headers).json()
    assert [o["id"] for o in mine] == [own.id]
    assert client.get("/orders/cs_other", headers=auth_headers).status_code == 403
    assert client.get("/orders/cs_missing", headers=auth_headers).status_code == 404


# ────────────── VIP ──────────────
@pytest.mark.parametrize("spent, segment", [
    (0, "prospect"), (10, "bronze"), (200, "silver"), (500, "gold"), (1500, "platinum"), (5000, "diamond"),
])
def test_vip_segments(spent, segment):
    assert get_vip_segment(spent) == segment


@pytest.mark.parametrize("days, activity", [
    (None, "new"), (0, "active"), (30, "active"), (31, "engaged"), (90, "engaged"), (180, "at_risk"), (181, "dormant"),
])
def test_activity_status(days, activity):
    assert get_activity_status(days) == activity


def test_vip_score():
    # 600 * 0.1 + 3 * 10 + активный 50 + GOLD 50 + 2 отзыва * 5
    assert calculate_vip_score(600, 3, 10, "GOLD", 2) == 200
    # не бывает отрицательным
    assert calculate_vip_score(0, 0, 400, None, 0) == 0


def test_vip_summary():
    now = datetime(2025, 6, 1)
    user = User(id=1, email="a@mail.fr", name="A", role="USER", created_at=datetime(2024, 1, 1))
    rows = [
        build_vip_customer(user, 600.0, 3, now - timedelta(days=10), ("GOLD", 16000), 1, 0, now),
        build_vip_customer(user, 0.0, 0, None, None, 0, 2, now),
    ]

    stats = summarize_vip(rows)

    assert rows[0]["segment"] == "gold"
    assert rows[0]["avg_order_value"] == 200.0
    assert stats["total_vip"] == 1
    assert stats["by_segment"]["gold"] == 1
    assert stats["by_activity"]["new"] == 1
    assert stats["total_revenue"] == 600.0
    assert stats["avg_orders_per_customer"] == 1.5


def test_vip_view_counts_completed_orders_only(client, admin_headers, customer, products):
    _order(customer.id, "cs_1", "DELIVERED", 300.0, products.oud, quantity=3, days_ago=5)
    _order(customer.id, "cs_2", "CANCELLED", 900.0, products.oud)

    body = client.get("/admin/vip", headers=admin_headers, params={"segment": "silver"}).json()

    [row] = body["customers"]
    assert row["email"] == customer.email
    assert row["total_spent"] == 300.0
    assert row["order_count"] == 1
    assert row["segment"] == "silver"
    assert row["activity_status"] == "active"


def test_vip_rejects_unknown_segment(client, admin_headers):
    assert client.get("/admin/vip", headers=admin_headers, params={"segment": "gold+"}).status_code == 400


def test_customers_filters_and_stats(client, admin_headers, customer, products):
    _order(customer.id, "cs_1", "PAID", 600.0, products.oud, quantity=6)

    body = client.get("/admin/customers", headers=admin_headers, params={"filter": "vip"}).json()

    assert [c["email"] for c in body["customers"]] == [customer.email]
    assert body["customers"][0]["is_vip"] is True
    assert body["stats"]["total_customers"] == 2    # администратор тоже пользователь
    assert body["stats"]["vip_count"] == 1
    assert body["stats"]["total_revenue"] == 600.0


# ────────────── Статистика ──────────────
def test_period_windows():
    now = datetime(2025, 6, 15, 12, 0)

    assert period_window("day", now) == (now - timedelta(days=30), now - timedelta(days=60))
    assert period_window("week", now)[0] == now - timedelta(weeks=12)
    assert period_window("month", now) == (datetime(2024, 6, 15, 12, 0), datetime(2023, 6, 15, 12, 0))


def test_chart_includes_empty_buckets():
    now = datetime(2025, 6, 15)
    start = now - timedelta(days=3)

    chart = build_chart([(datetime(2025, 6, 13, 9), 80.0), (datetime(2025, 6, 13, 18), 20.0)], "day", start, now)

    assert [c["start"] for c in chart] == ["2025-06-12", "2025-06-13", "2025-06-14", "2025-06-15"]
    assert [c["revenue"] for c in chart] == [0.0, 100.0, 0.0, 0.0]
    assert chart[1]["orders"] == 2
    assert chart[1]["date"] == "13/06"


def test_weekly_buckets_start_on_monday():
    now = datetime(2025, 6, 15)    # воскресенье
    chart = build_chart([], "week", now - timedelta(days=8), now)

    assert [c["start"] for c in chart] == ["2025-06-02", "2025-06-09"]


def test_percent_change():
    assert percent_change(150, 100) == 50.0
    assert percent_change(50, 100) == -50.0
    assert percent_change(10, 0) == 0.0


def test_dashboard_stats(client, admin_headers, customer, products):
    _order(customer.id, "cs_1", "PAID", 200.0, products.oud, quantity=2)
    _order(customer.id, "cs_2", "DELIVERED", 100.0, products.oud)
    _order(customer.id, "cs_3", "PENDING", 50.0, products.rose)

    response = client.get("/admin/stats", headers=admin_headers, params={"period": "month"})

    assert response.status_code == 200
    body = response.json()
    overview = body["overview"]
    assert overview["total_revenue"] == 300.0
    assert overview["total_orders"] == 2
    assert overview["average_cart"] == 150.0
    assert overview["total_products"] == 2
    assert overview["conversion_rate"] == 66.7
    assert body["top_products"][0]["name"] == "Oud Royal"
    assert body["top_products"][0]["total_sold"] == 3
    assert [p["name"] for p in body["low_stock"]] == ["Rose Blanche"]
    assert body["orders_by_status"] == {"PAID": 1, "DELIVERED": 1, "PENDING": 1}
    assert len(body["recent_orders"]) == 3


def test_stats_rejects_unknown_period(client, admin_headers):
    assert client.get("/admin/stats", headers=admin_headers, params={"period": "year"}).status_code == 400


def test_analytics(client, admin_headers, customer, products):
    _order(customer.id, "cs_1", "PAID", 200.0, products.oud, quantity=2)
    _order(customer.id, "cs_2", "SHIPPED", 50.0, products.rose)

    body = client.get("/admin/analytics", headers=admin_headers, params={"period": "week"}).json()

    assert body["summary"] == {"total_revenue": 250.0, "total_orders": 2, "avg_order_value": 125.0}
    assert {c["category"]: c["revenue"] for c in body["categories"]} == {"Niche": 200.0, "Femme": 50.0}
    assert body["customers"] == {"new": 1, "returning": 0}
    assert [p["name"] for p in body["top_products"]] == ["Oud Royal", "Rose Blanche"]


# ────────────── Cron и health ──────────────
def test_cron_requires_secret(client):
    assert client.get("/cron/emails").status_code == 401
    assert client.get("/cron/emails", headers={"Authorization": "Bearer wrong"}).status_code == 401


def test_cron_processes_due_emails(client, customer, products):
    order = _order(customer.id, "cs_1", "DELIVERED", 100.0, products.oud)
    add(
        ScheduledEmail(type="REVIEW_REQUEST", to=customer.email, scheduled_for=utcnow() - timedelta(minutes=1),
                       order_id=order.id, status="PENDING"),
        ScheduledEmail(type="REVIEW_REQUEST", to=customer.email, scheduled_for=utcnow() + timedelta(days=3),
                       order_id=order.id, status="PENDING"),
    )

    response = client.get("/cron/emails", headers={"Authorization": "Bearer cron-secret"})

    assert response.status_code == 200
    # без ключа Resend отправка падает, письмо помечается FAILED
    assert response.json() == {"success": True, "processed": 0, "errors": 1}
    statuses = sorted(e.status for e in fetch_all(select(ScheduledEmail)))
    assert statuses == ["FAILED", "PENDING"]


def test_cron_sends_review_request(client, customer, products, resend_mock):
    order = _order(customer.id, "cs_1", "DELIVERED", 100.0, products.oud)
    add(ScheduledEmail(type="REVIEW_REQUEST", to=customer.email, scheduled_for=utcnow() - timedelta(minutes=1),
                       order_id=order.id, status="PENDING", payload='{"promo_code": "AVIS10"}'))

    response = client.get("/cron/emails", headers={"Authorization": "Bearer cron-secret"})

    assert response.json() == {"success": True, "processed": 1, "errors": 0}
    html = resend_mock.call_args.args[0]["html"]
    assert f"/products/{products.oud.id}#reviews" in html
    assert "AVIS10" in html
    [scheduled] = fetch_all(select(ScheduledEmail))
    assert scheduled.status == "SENT"
    assert scheduled.sent_at is not None


def test_health(client):
    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert "checks" not in body


def test_detailed_health(client):
    response = client.get("/health", params={"detailed": True})

    assert response.status_code == 200
    checks = response.json()["checks"]
    assert checks["database"]["status"] == "ok"
    assert checks["cache"]["status"] == "warning"
