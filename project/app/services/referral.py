# app/services/referral.py

import secrets
from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy.future import select

from app.config import settings
from app.models.referral import Referral
from app.services.loyalty import POINTS_CONFIG, add_points
from app.utils.database import utcnow

REFERRAL_CONFIG = {
    "REWARD_AMOUNT": 10,        # €, обещанные рефереру и приглашённому
    "MIN_ORDER_AMOUNT": 50,     # минимальная сумма первого заказа
}
CODE_ATTEMPTS = 10


def generate_referral_code() -> str:
    return secrets.token_hex(4).upper()


def referral_link(code: str) -> str:
    return f"{settings.BASE_URL}?ref={code}"


async def _read_by_code(code: str, request: Request) -> Optional[Referral]:
    result = await request.state.db.execute(select(Referral).where(Referral.code == code))
    return result.scalar_one_or_none()


async def get_or_create_referral_code(user_id: int, request: Request) -> str:
    """Неиспользованный код пользователя или новый."""
    db = request.state.db
    result = await db.execute(
        select(Referral.code).where(Referral.referrer_id == user_id, Referral.referee_id.is_(None)).limit(1)
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        return existing

    for _ in range(CODE_ATTEMPTS):
        code = generate_referral_code()
        if await _read_by_code(code, request) is None:
            break
    else:
        raise HTTPException(status_code=500, detail="Could not generate a referral code")

    db.add(Referral(code=code, referrer_id=user_id, reward=REFERRAL_CONFIG["REWARD_AMOUNT"]))
    await db.commit()
    await request.app.state.log.log_info("referral", "Referral code created", {"user_id": user_id, "code": code})
    return code


async def apply_referral_code(user_id: int, code: str, request: Request) -> dict:
    """Привязывает клиента к коду реферера. Любой отказ это 400."""
    db = request.state.db
    log = request.app.state.log
    code = code.strip().upper()

    already = await db.execute(select(Referral.id).where(Referral.referee_id == user_id).limit(1))
    if already.scalar_one_or_none() is not None:
        raise HTTPException(status_code=400, detail="You have already used a referral code")

    referral = await _read_by_code(code, request)
    if referral is None:
        raise HTTPException(status_code=400, detail="Invalid referral code")
    if referral.referrer_id == user_id:
        raise HTTPException(status_code=400, detail="You cannot use your own referral code")
    if referral.referee_id is not None:
        raise HTTPException(status_code=400, detail="This referral code has already been used")

    referral.referee_id = user_id
    await db.commit()

    reward = float(referral.reward)
    await log.log_info("referral", "Referral code applied", {"code": code, "referee_id": user_id})
    return {
        "success": True,
        "message": f"Code applied, {reward:.0f} € off your first order",
        "discount": reward,
    }


async def complete_referral(referee_id: int, order_amount: float, request: Request) -> bool:
    """
    Вызывается при оплате заказа. Ожидающий реферал клиента завершается,
    если заказ не меньше MIN_ORDER_AMOUNT; реферер получает REFERRAL_BONUS баллов.
    """
    if order_amount < REFERRAL_CONFIG["MIN_ORDER_AMOUNT"]:
        return False

    db = request.state.db
    result = await db.execute(
        select(Referral).where(Referral.referee_id == referee_id, Referral.status == "PENDING")
    )
    referral = result.scalar_one_or_none()
    if referral is None:
        return False

    referral.status = "COMPLETED"
    referral.completed_at = utcnow()
    await db.commit()

    await add_points(referral.referrer_id, POINTS_CONFIG["REFERRAL_BONUS"], "REFERRAL", request)
    await request.app.state.log.log_info("referral", "Referral completed", {
        "id": referral.id, "referrer_id": referral.referrer_id, "referee_id": referee_id
    })
    return True


async def get_referral_overview(user_id: int, request: Request) -> dict:
    code = await get_or_create_referral_code(user_id, request)
    result = await request.state.db.execute(
        select(Referral).where(Referral.referrer_id == user_id)
        .order_by(Referral.created_at.desc(), Referral.id.desc())
    )
    referrals = result.scalars().all()
    completed = [r for r in referrals if r.status == "COMPLETED"]

    return {
        "code": code,
        "link": referral_link(code),
        "total": len(referrals),
        "completed": len(completed),
        "pending": sum(1 for r in referrals if r.status == "PENDING" and r.referee_id is not None),
        "available": sum(1 for r in referrals if r.referee_id is None),
        "total_reward": sum(float(r.reward) for r in completed),
        "referrals": [
            {
                "id": r.id,
                "status": r.status,
                "reward": float(r.reward),
                "created_at": r.created_at.isoformat() if r.created_at else None,
                "completed_at": r.completed_at.isoformat() if r.completed_at else None,
                "referee": {"name": r.referee.name or r.referee.email.split("@")[0]} if r.referee else None,
            }
            for r in referrals
        ],
    }
