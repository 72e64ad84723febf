# app/utils/database.py

from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.future import select
from sqlalchemy.pool import NullPool
from app.config import settings
from app.utils.security import hash_password

# ────────────── Base для моделей ──────────────
Base = declarative_base()

# ────────────── URL базы данных ──────────────
SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL

# ────────────── Асинхронный движок ──────────────
# sqlite (локальный запуск и тесты): новое соединение на каждую сессию
engine = create_async_engine(
    SQLALCHEMY_DATABASE_URL,
    echo=False,
    **({"poolclass": NullPool} if SQLALCHEMY_DATABASE_URL.startswith("sqlite") else {})
)

# ────────────── Асинхронная сессия ──────────────
AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)


def import_models():
    """Регистрирует все модели в Base.metadata."""
    from app.models import (  # noqa: F401
        user, product, order, promo, review, wishlist, stock, email, loyalty, password_reset, referral
    )


# ────────────── Инициализация базы данных ──────────────
async def init_db():
    """
    Создаёт таблицы (если их нет) и проверяет, что администратор есть.
    Первый администратор создаётся из ADMIN_EMAIL / ADMIN_PASSWORD,
    пароль хранится в виде хеша.
    """
    import_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    from app.models.user import User
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.role == "ADMIN"))
        if result.scalars().first() is None:
            admin_user = User(
                name="Administrator",
                email=settings.ADMIN_EMAIL.lower(),
                password=hash_password(settings.ADMIN_PASSWORD),
                role="ADMIN",
            )
            session.add(admin_user)
            await session.commit()
            return True
    return False


async def drop_db():
    import_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


def utcnow() -> datetime:
    """Naive UTC время, в таком виде хранят все DateTime колонки."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
