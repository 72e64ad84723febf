"""
Промокоды: проверка на витрине, правила скидки
и CRUD в админке.
"""
from datetime import timedelta

import pytest

from app.models.promo import PromoCode
from app.services.promo import PromoRejected, check_promo, compute_discount
from app.utils.database import utcnow


def _promo(**fields) -> PromoCode:
    values = {"code": "TEST", "is_active": True, "used_count": 0, "valid_from": None}
    values.update(fields)
    return PromoCode(**values)


# ────────────── Правила скидки ──────────────
def test_percent_discount():
    assert compute_discount(_promo(discount_percent=10), 200.0) == 20.0


def test_fixed_discount():
    assert compute_discount(_promo(discount_amount=15), 80.0) == 15.0


def test_discount_never_exceeds_subtotal():
    assert compute_discount(_promo(discount_amount=30), 20.0) == 20.0
    assert compute_discount(_promo(discount_percent=100), 42.5) == 42.5


@pytest.mark.parametrize("fields, message", [
    ({"is_active": False}, "no longer active"),
    ({"valid_from": utcnow() + timedelta(days=2)}, "not valid yet"),
    ({"valid_until": utcnow() - timedelta(minutes=1)}, "expired"),
    ({"max_uses": 3, "used_count": 3}, "usage limit"),
    ({"min_purchase": 100}, "Minimum purchase"),
])
def test_unusable_codes_are_rejected(fields, message):
    with pytest.raises(PromoRejected) as exc:
        check_promo(_promo(discount_percent=10, **fields), 50.0)
    assert message in exc.value.message


def test_usable_code_passes():
    check_promo(_promo(discount_percent=10, max_uses=3, used_count=2, min_purchase=50,
                       valid_until=utcnow() + timedelta(days=1)), 50.0)


# ────────────── /promo/validate ──────────────
def test_validate_percent_code(client, promo_factory):
    promo_factory("BIENVENUE10", discount_percent=10)

    response = client.post("/promo/validate", json={"code": "bienvenue10", "cart_total": 80})

    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is True
    assert body["code"] == "BIENVENUE10"
    assert body["discount_type"] == "percent"
    assert body["discount_amount"] == 8.0
    assert body["new_total"] == 72.0


def test_validate_fixed_code_is_clamped(client, promo_factory):
    promo_factory("CADEAU50", discount_amount=50)

    body = client.post("/promo/validate", json={"code": "CADEAU50", "cart_total": 30}).json()

    assert body["discount_type"] == "fixed"
    assert body["discount_amount"] == 30.0
    assert body["new_total"] == 0.0


def test_validate_unknown_code_is_404(client):
    response = client.post("/promo/validate", json={"code": "NOPE", "cart_total": 30})

    assert response.status_code == 404


def test_validate_below_minimum_is_400(client, promo_factory):
    promo_factory("GRAND", discount_percent=20, min_purchase=150)

    response = client.post("/promo/validate", json={"code": "GRAND", "cart_total": 100})

    assert response.status_code == 400
    assert response.json()["detail"]["min_purchase"] == 150.0


def test_validate_expired_code_is_400(client, promo_factory):
    promo_factory("HIER", discount_percent=20, valid_until=utcnow() - timedelta(hours=1))

    response = client.post("/promo/validate", json={"code": "HIER", "cart_total": 100})

    assert response.status_code == 400
    assert "expired" in response.json()["detail"]["error"]


def test_validate_needs_positive_total(client):
    response = client.post("/promo/validate", json={"code": "X", "cart_total": 0})

    assert response.status_code == 400


# ────────────── Админка ──────────────
def test_admin_creates_and_lists_codes(client, admin_headers):
    response = client.post("/admin/promo", json={"code": "noel", "discount_percent": 25, "max_uses": 100},
                           headers=admin_headers)

    assert response.status_code == 201
    assert response.json()["code"] == "NOEL"
    assert response.json()["used_count"] == 0

    listed = client.get("/admin/promo", headers=admin_headers).json()
    assert [p["code"] for p in listed] == ["NOEL"]


def test_admin_duplicate_code_is_409(client, admin_headers, promo_factory):
    promo_factory("NOEL", discount_percent=10)

    response = client.post("/admin/promo", json={"code": "NOEL", "discount_percent": 25}, headers=admin_headers)

    assert response.status_code == 409


def test_admin_code_needs_a_discount(client, admin_headers):
    response = client.post("/admin/promo", json={"code": "VIDE"}, headers=admin_headers)

    assert response.status_code == 400


def test_customer_cannot_manage_codes(client, auth_headers):
    response = client.get("/admin/promo", headers=auth_headers)

    assert response.status_code == 403
