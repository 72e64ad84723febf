# app/services/vip.py
# VIP-сегментация: сегмент по тратам, активность по давности заказа, скоринг.

from datetime import datetime
from typing import Optional

from fastapi import Request
from sqlalchemy import func
from sqlalchemy.future import select

from app.models.loyalty import LoyaltyAccount
from app.models.order import Order, COMPLETED_STATUSES
from app.models.review import Review
from app.models.user import User
from app.models.wishlist import WishlistItem
from app.utils.database import utcnow

VIP_CONFIG = {
    "SPENDING_THRESHOLDS": {"SILVER": 200, "GOLD": 500, "PLATINUM": 1500, "DIAMOND": 5000},
    "RECENCY_THRESHOLDS": {"ACTIVE": 30, "ENGAGED": 90, "AT_RISK": 180},
    "SCORING": {
        "per_euro_spent": 0.1,
        "per_order": 10,
        "recency": {"active": 50, "engaged": 30, "at_risk": -20, "dormant": -50, "new": 0},
        "loyalty_bonus": {"BRONZE": 0, "SILVER": 20, "GOLD": 50, "PLATINUM": 100},
        "per_review": 5,
    },
}

SEGMENT_ORDER = ["prospect", "bronze", "silver", "gold", "platinum", "diamond"]
ACTIVITY_STATUSES = ["active", "engaged", "at_risk", "dormant", "new"]


def get_vip_segment(total_spent: float) -> str:
    thresholds = VIP_CONFIG["SPENDING_THRESHOLDS"]
    if total_spent >= thresholds["DIAMOND"]:
        return "diamond"
    if total_spent >= thresholds["PLATINUM"]:
        return "platinum"
    if total_spent >= thresholds["GOLD"]:
        return "gold"
    if total_spent >= thresholds["SILVER"]:
        return "silver"
    if total_spent > 0:
        return "bronze"
    return "prospect"


def get_activity_status(days_since_last_order: Optional[int]) -> str:
    if days_since_last_order is None:
        return "new"
    thresholds = VIP_CONFIG["RECENCY_THRESHOLDS"]
    if days_since_last_order <= thresholds["ACTIVE"]:
        return "active"
    if days_since_last_order <= thresholds["ENGAGED"]:
        return "engaged"
    if days_since_last_order <= thresholds["AT_RISK"]:
        return "at_risk"
    return "dormant"


def calculate_vip_score(total_spent: float, order_count: int, days_since_last_order: Optional[int],
                        loyalty_tier: Optional[str], review_count: int) -> int:
    scoring = VIP_CONFIG["SCORING"]
    score = total_spent * scoring["per_euro_spent"]
    score += order_count * scoring["per_order"]
    score += scoring["recency"][get_activity_status(days_since_last_order)]
    if loyalty_tier:
        score += scoring["loyalty_bonus"].get(loyalty_tier, 0)
    score += review_count * scoring["per_review"]
    return max(0, round(score))


def build_vip_customer(user: User, total_spent: float, order_count: int, last_order_date: Optional[datetime],
                       loyalty: Optional[tuple], review_count: int, wishlist_count: int,
                       now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    days = (now - last_order_date).days if last_order_date else None
    tier, points = loyalty if loyalty else (None, 0)
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "total_spent": round(total_spent, 2),
        "order_count": order_count,
        "avg_order_value": round(total_spent / order_count, 2) if order_count else 0,
        "last_order_date": last_order_date.isoformat() if last_order_date else None,
        "days_since_last_order": days,
        "segment": get_vip_segment(total_spent),
        "activity_status": get_activity_status(days),
        "vip_score": calculate_vip_score(total_spent, order_count, days, tier, review_count),
        "loyalty_tier": tier,
        "loyalty_points": points,
        "review_count": review_count,
        "wishlist_count": wishlist_count,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def get_vip_customers(request: Request, min_segment: Optional[str] = None,
                            activity_filter: Optional[str] = None, sort_by: str = "score",
                            limit: Optional[int] = None) -> list[dict]:
    db = request.state.db

    users = (await db.execute(select(User))).scalars().all()

    order_rows = (await db.execute(
        select(Order.user_id, func.sum(Order.total_amount), func.count(Order.id), func.max(Order.created_at))
        .where(Order.user_id.is_not(None), Order.status.in_(COMPLETED_STATUSES))
        .group_by(Order.user_id)
    )).all()
    orders_by_user = {uid: (float(total or 0), count, last) for uid, total, count, last in order_rows}

    review_counts = dict((await db.execute(
        select(Review.user_id, func.count(Review.id)).group_by(Review.user_id)
    )).all())
    wishlist_counts = dict((await db.execute(
        select(WishlistItem.user_id, func.count(WishlistItem.id)).group_by(WishlistItem.user_id)
    )).all())
    loyalty = {
        uid: (tier, points)
        for uid, tier, points in (await db.execute(
            select(LoyaltyAccount.user_id, LoyaltyAccount.tier, LoyaltyAccount.points)
        )).all()
    }

    now = utcnow()
    customers = []
    for user in users:
        total, count, last = orders_by_user.get(user.id, (0.0, 0, None))
        customers.append(build_vip_customer(
            user, total, count, last, loyalty.get(user.id),
            review_counts.get(user.id, 0), wishlist_counts.get(user.id, 0), now,
        ))

    if min_segment:
        min_index = SEGMENT_ORDER.index(min_segment)
        customers = [c for c in customers if SEGMENT_ORDER.index(c["segment"]) >= min_index]
    if activity_filter:
        customers = [c for c in customers if c["activity_status"] == activity_filter]

    if sort_by == "spent":
        customers.sort(key=lambda c: c["total_spent"], reverse=True)
    elif sort_by == "orders":
        customers.sort(key=lambda c: c["order_count"], reverse=True)
    elif sort_by == "recency":
        # клиенты без заказов в конце
        customers.sort(key=lambda c: (c["days_since_last_order"] is None, c["days_since_last_order"] or 0))
    else:
        customers.sort(key=lambda c: c["vip_score"], reverse=True)

    if limit:
        customers = customers[:limit]
    return customers


def summarize_vip(customers: list[dict]) -> dict:
    stats = {
        "total_vip": sum(1 for c in customers if c["segment"] != "prospect"),
        "by_segment": {s: 0 for s in reversed(SEGMENT_ORDER)},
        "by_activity": {a: 0 for a in ACTIVITY_STATUSES},
        "total_revenue": 0.0,
        "avg_order_value": 0.0,
        "avg_orders_per_customer": 0.0,
    }
    total_orders = 0
    for c in customers:
        stats["by_segment"][c["segment"]] += 1
        stats["by_activity"][c["activity_status"]] += 1
        stats["total_revenue"] += c["total_spent"]
        total_orders += c["order_count"]

    stats["total_revenue"] = round(stats["total_revenue"], 2)
    if total_orders:
        stats["avg_order_value"] = round(stats["total_revenue"] / total_orders, 2)
    if customers:
        stats["avg_orders_per_customer"] = round(total_orders / len(customers), 2)
    return stats


async def get_vip_stats(request: Request) -> dict:
    return summarize_vip(await get_vip_customers(request))


async def get_at_risk_customers(request: Request) -> list[dict]:
    customers = await get_vip_customers(request, min_segment="bronze", sort_by="recency")
    return [c for c in customers if c["activity_status"] in ("at_risk", "dormant")]


async def get_top_vip_customers(request: Request, limit: int = 10) -> list[dict]:
    return await get_vip_customers(request, min_segment="silver", sort_by="score", limit=limit)
