# app/services/promo.py

from datetime import datetime
from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select

from app.models.promo import PromoCode
from app.schemas.promo import PromoCreate, PromoUpdate, PromoValidateRequest
from app.utils.database import utcnow


class PromoRejected(Exception):
    """Код существует, но к этой корзине не применим."""

    def __init__(self, message: str, min_purchase: Optional[float] = None):
        super().__init__(message)
        self.message = message
        self.min_purchase = min_purchase


def check_promo(promo: PromoCode, subtotal: float, now: Optional[datetime] = None):
    """
    Бросает PromoRejected, если код неактивен, ещё не начал действовать,
    истёк, исчерпан или сумма корзины ниже минимальной.
    """
    now = now or utcnow()
    if not promo.is_active:
        raise PromoRejected("This promo code is no longer active")
    if promo.valid_from and promo.valid_from > now:
        raise PromoRejected("This promo code is not valid yet")
    if promo.valid_until is not None and promo.valid_until < now:
        raise PromoRejected("This promo code has expired")
    if promo.max_uses is not None and promo.used_count >= promo.max_uses:
        raise PromoRejected("This promo code has reached its usage limit")
    if promo.min_purchase is not None and subtotal < float(promo.min_purchase):
        raise PromoRejected(
            f"Minimum purchase of {float(promo.min_purchase):.2f}€ required",
            min_purchase=float(promo.min_purchase),
        )


def compute_discount(promo: PromoCode, subtotal: float) -> float:
    """Процент от суммы или фиксированная скидка, не больше суммы корзины."""
    if promo.discount_percent:
        discount = subtotal * promo.discount_percent / 100
    else:
        discount = float(promo.discount_amount or 0)
    return round(min(discount, subtotal), 2)


async def get_promo_by_code(code: str, request: Request) -> Optional[PromoCode]:
    db = request.state.db
    result = await db.execute(select(PromoCode).where(PromoCode.code == code.strip().upper()))
    return result.scalar_one_or_none()


async def resolve_discount(code: Optional[str], subtotal: float, request: Request) -> tuple[Optional[PromoCode], float]:
    """
    Скидка для checkout. Неизвестные и неприменимые коды игнорируются,
    заказ идёт по полной цене.
    """
    if not code:
        return None, 0.0
    log = request.app.state.log

    promo = await get_promo_by_code(code, request)
    if promo is None:
        await log.log_info("promo", "Unknown promo code ignored", {"code": code})
        return None, 0.0
    try:
        check_promo(promo, subtotal)
    except PromoRejected as e:
        await log.log_info("promo", f"Promo code ignored: {e.message}", {"code": code})
        return None, 0.0

    discount = compute_discount(promo, subtotal)
    await log.log_info("promo", "Promo code applied", {"code": code, "discount": discount})
    return promo, discount


async def increment_promo_usage(code: str, request: Request) -> None:
    db = request.state.db
    promo = await get_promo_by_code(code, request)
    if promo is None:
        raise HTTPException(status_code=404, detail="Promo code not found")
    promo.used_count = (promo.used_count or 0) + 1
    await db.commit()
    await request.app.state.log.log_info("promo", "Promo usage incremented", {
        "code": promo.code, "used_count": promo.used_count
    })


# ────────────── Проверка промокода ──────────────
async def validate_promo_service(payload: PromoValidateRequest, request: Request) -> dict:
    """
    Проверка кода для суммы корзины на витрине.
    404 неизвестный код, 400 неприменимый код.
    """
    promo = await get_promo_by_code(payload.code, request)
    if promo is None:
        raise HTTPException(status_code=404, detail="Invalid promo code")

    try:
        check_promo(promo, payload.cart_total)
    except PromoRejected as e:
        detail = {"error": e.message}
        if e.min_purchase is not None:
            detail["min_purchase"] = e.min_purchase
        raise HTTPException(status_code=400, detail=detail)

    discount = compute_discount(promo, payload.cart_total)
    is_percent = bool(promo.discount_percent)
    if is_percent:
        message = f"{promo.discount_percent}% discount applied"
    else:
        message = f"{float(promo.discount_amount or 0):.2f}€ discount applied"

    return {
        "valid": True,
        "code": promo.code,
        "discount_type": "percent" if is_percent else "fixed",
        "discount_percent": promo.discount_percent if is_percent else None,
        "discount_fixed": None if is_percent else float(promo.discount_amount or 0),
        "discount_amount": discount,
        "new_total": round(payload.cart_total - discount, 2),
        "message": message,
    }


# ────────────── ADMIN CRUD ──────────────
async def read_promos_service(request: Request) -> list[PromoCode]:
    db = request.state.db
    result = await db.execute(select(PromoCode).order_by(PromoCode.created_at.desc(), PromoCode.id.desc()))
    return result.scalars().all()


async def read_promo_service(id: int, request: Request) -> PromoCode:
    db = request.state.db
    result = await db.execute(select(PromoCode).where(PromoCode.id == id))
    promo = result.scalar_one_or_none()
    if promo is None:
        raise HTTPException(status_code=404, detail="Promo code not found")
    return promo


async def create_promo_service(payload: PromoCreate, request: Request) -> PromoCode:
    db = request.state.db
    log = request.app.state.log

    if await get_promo_by_code(payload.code, request) is not None:
        raise HTTPException(status_code=409, detail="This promo code already exists")

    data = payload.model_dump()
    if data["valid_from"] is None:
        data["valid_from"] = utcnow()
    promo = PromoCode(**data)
    db.add(promo)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="This promo code already exists")
    await db.refresh(promo)

    await log.log_info("promo", "Promo code created", {"id": promo.id, "code": promo.code})
    return promo


async def update_promo_service(id: int, payload: PromoUpdate, request: Request) -> PromoCode:
    db = request.state.db
    log = request.app.state.log

    promo = await read_promo_service(id, request)
    changes = payload.model_dump(exclude_unset=True)

    if changes.get("code") and changes["code"] != promo.code:
        existing = await get_promo_by_code(changes["code"], request)
        if existing is not None:
            raise HTTPException(status_code=409, detail="This promo code already exists")

    for key, value in changes.items():
        setattr(promo, key, value)

    await db.commit()
    await db.refresh(promo)
    await log.log_info("promo", "Promo code updated", {"id": id, "fields": list(changes)})
    return promo


async def delete_promo_service(id: int, request: Request) -> None:
    db = request.state.db
    promo = await read_promo_service(id, request)
    await db.delete(promo)
    await db.commit()
    await request.app.state.log.log_info("promo", "Promo code deleted", {"id": id})
