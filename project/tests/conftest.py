"""
Pytest фикстуры для тестов API.

Каждый тест получает чистую sqlite базу (aiosqlite) и TestClient
с lifespan приложения. Redis, Resend и rate limiting выключены,
пока тест их не включит; вызовы Stripe подменяются.
"""
import asyncio
import itertools
import os
import tempfile
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

TEST_DIR = tempfile.mkdtemp(prefix="parfumerie_tests_")

# до импорта app.config
os.environ.update({
    "DATABASE_URL": f"sqlite+aiosqlite:///{os.path.join(TEST_DIR, 'test.db')}",
    "AUTH_SECRET_KEY": "test-secret-key",
    "ADMIN_EMAIL": "admin@lafineparfumerie.fr",
    "ADMIN_PASSWORD": "Admin1234",
    "STRIPE_SECRET_KEY": "sk_test_dummy",
    "STRIPE_WEBHOOK_SECRET": "whsec_test",
    "REDIS_URL": "",
    "RESEND_API_KEY": "",
    "CRON_SECRET": "cron-secret",
    "RATE_LIMIT_ENABLED": "0",
    "LOG_DIR": os.path.join(TEST_DIR, "log"),
    "LOG_PRINT": "0",
})

import pytest  # noqa: E402
import resend  # noqa: E402
import stripe  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.future import select  # noqa: E402

from app.config import settings  # noqa: E402
from app.main import app  # noqa: E402
from app.models.product import Product  # noqa: E402
from app.models.promo import PromoCode  # noqa: E402
from app.models.user import User  # noqa: E402
from app.utils.database import AsyncSessionLocal, drop_db  # noqa: E402
from app.utils.security import create_access_token, hash_password  # noqa: E402


# ────────────── Хелперы для БД ──────────────
async def _add(objects):
    async with AsyncSessionLocal() as session:
        session.add_all(objects)
        await session.commit()
    return objects


async def _get(model, id):
    async with AsyncSessionLocal() as session:
        return await session.get(model, id)


async def _all(query):
    async with AsyncSessionLocal() as session:
        return (await session.execute(query)).scalars().all()


def add(*objects):
    """Сохраняет объекты, возвращает первый (id уже проставлены)."""
    asyncio.run(_add(list(objects)))
    return objects[0]


def get(model, id):
    return asyncio.run(_get(model, id))


def fetch_all(query):
    return asyncio.run(_all(query))


# ────────────── Приложение ──────────────
@pytest.fixture
def client():
    """
    TestClient на пустой базе.

    Scope: function (таблицы удаляются перед каждым тестом, lifespan
    создаёт их и администратора заново)
    """
    asyncio.run(drop_db())
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def customer(client):
    """Зарегистрированный клиент."""
    return add(User(email="claire@mail.fr", name="Claire", password=hash_password("Secret123"), role="USER"))


@pytest.fixture
def admin(client):
    """Администратор, созданный при старте."""
    users = fetch_all(select(User).where(User.email == settings.ADMIN_EMAIL))
    return users[0]


def bearer(user: User) -> dict:
    token = create_access_token({"sub": user.email}, settings.AUTH_SECRET_KEY)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(customer):
    return bearer(customer)


@pytest.fixture
def admin_headers(admin):
    return bearer(admin)


# ────────────── Каталог ──────────────
@pytest.fixture
def products(client):
    """
    Два товара:
    - Oud Royal, 100.00, 10 в наличии
    - Rose Blanche, 50.00, 2 в наличии
    """
    oud = Product(
        name="Oud Royal", brand="Maison Lumière", description="Oud, safran et ambre",
        price=100.0, volume="100ml", category="Niche", stock=10, image="https://cdn.test/oud.jpg",
    )
    rose = Product(
        name="Rose Blanche", brand="Atelier Flore", description="Rose et musc blanc",
        price=50.0, volume="50ml", category="Femme", stock=2, image="https://cdn.test/rose.jpg",
    )
    add(oud, rose)
    return SimpleNamespace(oud=oud, rose=rose)


@pytest.fixture
def promo_factory(client):
    """Создаёт промокоды, обязателен только code."""
    def create(code: str, **fields) -> PromoCode:
        fields.setdefault("is_active", True)
        fields.setdefault("used_count", 0)
        return add(PromoCode(code=code, **fields))
    return create


def cart_line(product: Product, quantity: int = 1, **overrides) -> dict:
    line = {
        "id": product.id,
        "name": product.name,
        "price": float(product.price),
        "quantity": quantity,
        "category": product.category,
    }
    line.update(overrides)
    return line


# ────────────── Stripe ──────────────
@pytest.fixture
def stripe_mock():
    """
    Подменяет создание Checkout Session и Coupon.
    Сессии получают id cs_test_1, cs_test_2...
    """
    counter = itertools.count(1)

    def create_session(**params):
        number = next(counter)
        return SimpleNamespace(id=f"cs_test_{number}", url=f"https://checkout.stripe.com/c/pay/cs_test_{number}")

    session_create = MagicMock(side_effect=create_session)
    coupon_create = MagicMock(return_value=SimpleNamespace(id="coupon_1"))
    with patch.object(stripe.checkout.Session, "create", session_create), \
            patch.object(stripe.Coupon, "create", coupon_create):
        yield SimpleNamespace(session=session_create, coupon=coupon_create)


# ────────────── Resend ──────────────
@pytest.fixture
def resend_mock(monkeypatch):
    """
    Задаёт ключ Resend и подменяет Emails.send.
    Каждый вызов возвращает id email_1.
    """
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test_key")
    send = MagicMock(return_value={"id": "email_1"})
    with patch.object(resend.Emails, "send", send):
        yield send
