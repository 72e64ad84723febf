"""
Сброс пароля, реферальная программа и рекомендации товаров.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest
import stripe
from sqlalchemy.future import select

from app.models.email import EmailLog
from app.models.loyalty import LoyaltyAccount
from app.models.order import Order, OrderItem
from app.models.password_reset import PasswordResetToken
from app.models.product import Product
from app.models.referral import Referral
from app.models.user import User
from app.utils.database import utcnow
from app.utils.security import hash_password
from conftest import add, bearer, fetch_all, get

RESET_MESSAGE = "If an account exists for this email, a reset link has been sent"


def _login(client, email: str, password: str) -> int:
    return client.post("/auth/token", data={"username": email, "password": password}).status_code


def _reset_token(email: str, minutes: int = 60) -> PasswordResetToken:
    return add(PasswordResetToken(email=email, token="a" * 64, expires_at=utcnow() + timedelta(minutes=minutes)))


# ────────────── Сброс пароля ──────────────
def test_forgot_password_emails_reset_link(client, customer, resend_mock):
    response = client.post("/auth/forgot-password", json={"email": "Claire@Mail.fr"})

    assert response.status_code == 200
    assert response.json() == {"message": RESET_MESSAGE}
    [token] = fetch_all(select(PasswordResetToken))
    assert token.email == customer.email
    assert token.expires_at > utcnow() + timedelta(minutes=55)

    [params] = resend_mock.call_args.args
    assert params["to"] == [customer.email]
    assert f"/auth/reset-password/{token.token}" in params["html"]
    [email] = fetch_all(select(EmailLog))
    assert (email.type, email.status, email.user_id) == ("PASSWORD_RESET", "SENT", customer.id)


def test_forgot_password_unknown_email_answers_the_same(client, customer):
    response = client.post("/auth/forgot-password", json={"email": "inconnu@mail.fr"})

    assert response.status_code == 200
    assert response.json() == {"message": RESET_MESSAGE}
    assert fetch_all(select(PasswordResetToken)) == []


def test_new_request_replaces_previous_token(client, customer):
    client.post("/auth/forgot-password", json={"email": customer.email})
    client.post("/auth/forgot-password", json={"email": customer.email})

    assert len(fetch_all(select(PasswordResetToken))) == 1


def test_verify_reset_token(client, customer):
    token = _reset_token(customer.email)

    assert client.get("/auth/verify-reset-token", params={"token": token.token}).json() == {"valid": True}
    assert client.get("/auth/verify-reset-token", params={"token": "b" * 64}).json() == {"valid": False}
    assert client.get("/auth/verify-reset-token").json() == {"valid": False}


def test_expired_token_is_deleted_on_verify(client, customer):
    token = _reset_token(customer.email, minutes=-5)

    assert client.get("/auth/verify-reset-token", params={"token": token.token}).json() == {"valid": False}
    assert get(PasswordResetToken, token.id) is None


def test_reset_password(client, customer):
    token = _reset_token(customer.email)

    response = client.post("/auth/reset-password", json={"token": token.token, "password": "Nouveau456"})

    assert response.status_code == 200
    assert response.json() == {"message": "Password updated"}
    assert get(PasswordResetToken, token.id) is None
    assert _login(client, customer.email, "Nouveau456") == 200
    assert _login(client, customer.email, "Secret123") == 401


def test_reset_password_refusals(client, customer):
    token = _reset_token(customer.email)
    expired = add(PasswordResetToken(email=customer.email, token="c" * 64, expires_at=utcnow() - timedelta(minutes=1)))

    weak = client.post("/auth/reset-password", json={"token": token.token, "password": "motdepasse"})
    unknown = client.post("/auth/reset-password", json={"token": "d" * 64, "password": "Nouveau456"})
    too_late = client.post("/auth/reset-password", json={"token": expired.token, "password": "Nouveau456"})

    assert weak.status_code == 400
    assert unknown.status_code == 400
    assert unknown.json()["detail"] == "Invalid or expired reset link"
    assert too_late.status_code == 400
    assert too_late.json()["detail"] == "This reset link has expired, please request a new one"
    assert get(PasswordResetToken, expired.id) is None
    # валидный токен переживает неудачные попытки
    assert get(PasswordResetToken, token.id) is not None
    assert _login(client, customer.email, "Secret123") == 200


# ────────────── Реферальная программа ──────────────
@pytest.fixture
def friend(client):
    """Второй клиент, приглашённый Claire."""
    return add(User(email="lea@mail.fr", name="Léa", password=hash_password("Secret123"), role="USER"))


def test_referral_code_is_created_once(client, auth_headers):
    first = client.get("/referral/code", headers=auth_headers).json()
    second = client.get("/referral/code", headers=auth_headers).json()

    assert len(first["code"]) == 8
    assert first["link"].endswith(f"?ref={first['code']}")
    assert second["code"] == first["code"]
    assert (second["total"], second["available"], second["pending"]) == (1, 1, 0)
    assert client.get("/referral/code").status_code == 401


def test_apply_referral_code(client, auth_headers, friend):
    code = client.get("/referral/code", headers=auth_headers).json()["code"]

    response = client.post("/referral/apply", json={"code": code.lower()}, headers=bearer(friend))

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["discount"] == 10.0

    overview = client.get("/referral/code", headers=auth_headers).json()
    assert overview["code"] != code
    assert (overview["total"], overview["pending"], overview["available"]) == (2, 1, 1)
    assert [r["referee"] for r in overview["referrals"] if r["referee"]] == [{"name": "Léa"}]


def test_referral_code_refusals(client, auth_headers, customer, friend):
    code = client.get("/referral/code", headers=auth_headers).json()["code"]
    other = add(User(email="hugo@mail.fr", name="Hugo", password=hash_password("Secret123"), role="USER"))
    other_code = client.get("/referral/code", headers=bearer(other)).json()["code"]

    own = client.post("/referral/apply", json={"code": code}, headers=auth_headers)
    unknown = client.post("/referral/apply", json={"code": "ZZZZZZZZ"}, headers=bearer(friend))
    client.post("/referral/apply", json={"code": code}, headers=bearer(friend))
    second_code = client.post("/referral/apply", json={"code": other_code}, headers=bearer(friend))
    reused = client.post("/referral/apply", json={"code": code}, headers=bearer(other))

    assert own.json()["detail"] == "You cannot use your own referral code"
    assert unknown.json()["detail"] == "Invalid referral code"
    assert second_code.json()["detail"] == "You have already used a referral code"
    assert reused.json()["detail"] == "This referral code has already been used"
    assert {own.status_code, unknown.status_code, second_code.status_code, reused.status_code} == {400}


def _paid_event(client, session_id: str):
    event = {
        "id": "evt_test_1",
        "type": "checkout.session.completed",
        "data": {"object": {"id": session_id, "metadata": {}}},
    }
    with patch.object(stripe.Webhook, "construct_event", return_value=event):
        return client.post("/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=abc"})


def _friend_order(friend, products, session_id: str, total: float) -> Order:
    return add(Order(
        stripe_session_id=session_id, user_id=friend.id, status="PENDING", total_amount=total,
        items=[OrderItem(product_id=products.rose.id, name="Rose Blanche", price=total, quantity=1)],
    ))


def test_first_paid_order_completes_referral(client, auth_headers, customer, friend, products):
    code = client.get("/referral/code", headers=auth_headers).json()["code"]
    client.post("/referral/apply", json={"code": code}, headers=bearer(friend))
    _friend_order(friend, products, "cs_test_friend", 60.0)

    assert _paid_event(client, "cs_test_friend").status_code == 200

    [referral] = fetch_all(select(Referral).where(Referral.code == code))
    assert referral.status == "COMPLETED"
    assert referral.completed_at is not None
    [account] = fetch_all(select(LoyaltyAccount).where(LoyaltyAccount.user_id == customer.id))
    assert account.points == 500

    overview = client.get("/referral/code", headers=auth_headers).json()
    assert (overview["completed"], overview["total_reward"]) == (1, 10.0)


def test_small_order_leaves_referral_pending(client, auth_headers, customer, friend, products):
    code = client.get("/referral/code", headers=auth_headers).json()["code"]
    client.post("/referral/apply", json={"code": code}, headers=bearer(friend))
    _friend_order(friend, products, "cs_test_small", 40.0)

    _paid_event(client, "cs_test_small")

    [referral] = fetch_all(select(Referral).where(Referral.code == code))
    assert referral.status == "PENDING"
    assert fetch_all(select(LoyaltyAccount).where(LoyaltyAccount.user_id == customer.id)) == []


# ────────────── Рекомендации ──────────────
def _perfume(name: str, category: str, brand: str, price: float, stock: int = 5, **flags) -> Product:
    return add(Product(
        name=name, brand=brand, description=f"{name}, eau de parfum", price=price, volume="50ml",
        category=category, stock=stock, image="https://cdn.test/perfume.jpg", **flags,
    ))


def _ids(response) -> list[int]:
    return [p["id"] for p in response.json()["products"]]


def test_anonymous_visitors_get_best_sellers(client, products):
    best = _perfume("Ambre Nuit", "Niche", "Maison Ombre", 120.0, is_best_seller=True)
    _perfume("Ambre Épuisé", "Niche", "Maison Ombre", 120.0, stock=0, is_best_seller=True)

    response = client.get("/recommendations")

    assert response.status_code == 200
    assert response.json()["personalized"] is False
    assert _ids(response) == [best.id]


def test_customer_without_orders_gets_new_arrivals(client, auth_headers, products):
    new = _perfume("Fleur d'Oranger", "Femme", "Atelier Flore", 65.0, is_new=True)

    response = client.get("/recommendations", headers=auth_headers)

    assert response.json()["personalized"] is True
    assert _ids(response) == [new.id]


def test_recommendations_follow_purchase_history(client, auth_headers, customer, products):
    same_category = _perfume("Ambre Nuit", "Niche", "Maison Ombre", 120.0)
    same_brand = _perfume("Cuir Lumière", "Homme", "Maison Lumière", 90.0)
    add(Order(
        stripe_session_id="cs_test_history", user_id=customer.id, status="DELIVERED", total_amount=100.0,
        items=[OrderItem(product_id=products.oud.id, name="Oud Royal", price=100.0, quantity=1)],
    ))

    ids = _ids(client.get("/recommendations", headers=auth_headers))

    assert set(ids) == {same_category.id, same_brand.id}
    assert products.oud.id not in ids


def test_similar_products(client, products):
    close = _perfume("Ambre Nuit", "Niche", "Maison Ombre", 120.0)
    _perfume("Oud Impérial", "Niche", "Maison Ombre", 200.0)
    _perfume("Oud Épuisé", "Niche", "Maison Lumière", 100.0, stock=0)

    response = client.get("/recommendations", params={"product_id": products.oud.id})

    assert response.json()["type"] == "similar"
    assert _ids(response) == [close.id]


def test_frequently_bought_together(client, customer, products):
    ambre = _perfume("Ambre Nuit", "Niche", "Maison Ombre", 120.0)
    baskets = [[products.oud, products.rose], [products.oud, products.rose], [products.oud, ambre]]
    for number, basket in enumerate(baskets):
        add(Order(
            stripe_session_id=f"cs_test_fbt_{number}", user_id=customer.id, status="PAID", total_amount=150.0,
            items=[OrderItem(product_id=p.id, name=p.name, price=float(p.price), quantity=1) for p in basket],
        ))

    response = client.get("/recommendations", params={"product_id": products.oud.id, "type": "fbt"})

    assert response.json()["type"] == "fbt"
    assert _ids(response) == [products.rose.id, ambre.id]


def test_recommendation_parameters(client, products):
    assert client.get("/recommendations", params={"type": "popular"}).status_code == 400
    assert client.get("/recommendations", params={"limit": 0}).status_code == 400
    assert client.get("/recommendations", params={"limit": 50}).status_code == 200
    unknown = client.get("/recommendations", params={"product_id": 9999})
    assert unknown.json()["products"] == []
