# app/services/loyalty.py

from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy.future import select

from app.models.loyalty import LoyaltyAccount, LoyaltyTransaction

TIERS = {
    "BRONZE": {"min": 0, "discount": 0, "name": "Bronze"},
    "SILVER": {"min": 5000, "discount": 5, "name": "Argent"},
    "GOLD": {"min": 15000, "discount": 10, "name": "Or"},
    "PLATINUM": {"min": 50000, "discount": 15, "name": "Platine"},
}
TIER_ORDER = ["BRONZE", "SILVER", "GOLD", "PLATINUM"]

POINTS_CONFIG = {
    "PURCHASE_MULTIPLIER": 10,    # 1 € = 10 баллов
    "REDEEM_RATE": 100,           # 100 баллов = 1 €
    "REVIEW_BONUS": 50,
    "REFERRAL_BONUS": 500,
    "MIN_REDEEM": 1000,
}


def points_from_purchase(amount: float) -> int:
    return int(amount * POINTS_CONFIG["PURCHASE_MULTIPLIER"])


def calculate_tier(points: int) -> str:
    for tier in reversed(TIER_ORDER):
        if points >= TIERS[tier]["min"]:
            return tier
    return "BRONZE"


def next_tier(tier: str) -> Optional[dict]:
    index = TIER_ORDER.index(tier)
    if index >= len(TIER_ORDER) - 1:
        return None
    return TIERS[TIER_ORDER[index + 1]]


async def get_or_create_account(user_id: int, request: Request) -> LoyaltyAccount:
    db = request.state.db
    result = await db.execute(select(LoyaltyAccount).where(LoyaltyAccount.user_id == user_id))
    account = result.scalar_one_or_none()
    if account is None:
        account = LoyaltyAccount(user_id=user_id, points=0, tier="BRONZE")
        db.add(account)
        await db.flush()
    return account


async def add_points(user_id: int, amount: int, reason: str, request: Request,
                     order_id: Optional[int] = None) -> dict:
    db = request.state.db
    account = await get_or_create_account(user_id, request)
    old_tier = account.tier

    account.points += amount
    account.tier = calculate_tier(account.points)
    db.add(LoyaltyTransaction(account_id=account.id, amount=amount, reason=reason, order_id=order_id))
    await db.commit()

    await request.app.state.log.log_info("loyalty", f"{amount:+d} points ({reason})", {
        "user_id": user_id, "points": account.points, "tier": account.tier
    })
    return {"points": account.points, "tier": account.tier, "tier_changed": old_tier != account.tier}


async def redeem_points(user_id: int, points: int, request: Request) -> dict:
    """Минимум 1000 баллов, кратно 100; 100 баллов = 1 €."""
    if points < POINTS_CONFIG["MIN_REDEEM"]:
        raise HTTPException(status_code=400, detail=f"Minimum {POINTS_CONFIG['MIN_REDEEM']} points required")
    if points % 100 != 0:
        raise HTTPException(status_code=400, detail="Points must be a multiple of 100")

    db = request.state.db
    result = await db.execute(select(LoyaltyAccount).where(LoyaltyAccount.user_id == user_id))
    account = result.scalar_one_or_none()
    if account is None:
        raise HTTPException(status_code=404, detail="Loyalty account not found")
    if account.points < points:
        raise HTTPException(status_code=400, detail="Not enough points")

    account.points -= points
    account.tier = calculate_tier(account.points)
    db.add(LoyaltyTransaction(account_id=account.id, amount=-points, reason="REDEEM"))
    await db.commit()

    discount = points / POINTS_CONFIG["REDEEM_RATE"]
    await request.app.state.log.log_info("loyalty", "Points redeemed", {
        "user_id": user_id, "points": points, "discount": discount
    })
    return {"discount": discount, "remaining_points": account.points}


async def get_loyalty_balance(user_id: int, request: Request) -> dict:
    db = request.state.db
    result = await db.execute(select(LoyaltyAccount).where(LoyaltyAccount.user_id == user_id))
    account = result.scalar_one_or_none()
    if account is None:
        return {
            "points": 0,
            "tier": "BRONZE",
            "tier_info": TIERS["BRONZE"],
            "next_tier": TIERS["SILVER"],
            "history": [],
        }

    history = await db.execute(
        select(LoyaltyTransaction)
        .where(LoyaltyTransaction.account_id == account.id)
        .order_by(LoyaltyTransaction.created_at.desc(), LoyaltyTransaction.id.desc())
        .limit(20)
    )
    return {
        "points": account.points,
        "tier": account.tier,
        "tier_info": TIERS[account.tier],
        "next_tier": next_tier(account.tier),
        "history": [
            {
                "amount": t.amount,
                "reason": t.reason,
                "order_id": t.order_id,
                "created_at": t.created_at.isoformat() if t.created_at else None,
            }
            for t in history.scalars().all()
        ],
    }
