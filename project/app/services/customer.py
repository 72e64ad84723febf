# app/services/customer.py

from datetime import datetime, timedelta
from typing import Optional

from fastapi import Request

from app.services.vip import get_vip_customers
from app.utils.database import utcnow

VIP_SPENT = 500
NEW_DAYS = 30
INACTIVE_DAYS = 90

CUSTOMER_FILTERS = ("all", "vip", "new", "inactive")
CUSTOMER_SORTS = ("total_spent", "order_count", "created_at", "name")


def flag_customer(customer: dict, now: datetime) -> dict:
    """Добавляет is_vip / is_new / is_inactive к агрегированной строке клиента."""
    created_at = datetime.fromisoformat(customer["created_at"]) if customer["created_at"] else None
    days = customer["days_since_last_order"]
    return {
        **customer,
        "is_vip": customer["total_spent"] >= VIP_SPENT,
        "is_new": created_at is not None and created_at > now - timedelta(days=NEW_DAYS),
        "is_inactive": days is None or days > INACTIVE_DAYS,
    }


async def read_customers_service(
    request: Request,
    search: Optional[str] = None,
    filter: str = "all",
    sort_by: str = "total_spent",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20,
) -> dict:
    now = utcnow()
    customers = [flag_customer(c, now) for c in await get_vip_customers(request)]

    if search:
        needle = search.strip().lower()
        customers = [
            c for c in customers
            if needle in (c["email"] or "").lower() or needle in (c["name"] or "").lower()
        ]

    stats = {
        "total_customers": len(customers),
        "vip_count": sum(1 for c in customers if c["is_vip"]),
        "new_count": sum(1 for c in customers if c["is_new"]),
        "inactive_count": sum(1 for c in customers if c["is_inactive"]),
        "total_revenue": round(sum(c["total_spent"] for c in customers), 2),
    }
    stats["average_lifetime_value"] = (
        round(stats["total_revenue"] / stats["total_customers"], 2) if stats["total_customers"] else 0
    )

    if filter != "all":
        customers = [c for c in customers if c[f"is_{filter}"]]

    if sort_by == "name":
        key = lambda c: (c["name"] or "").lower()
    elif sort_by == "created_at":
        key = lambda c: c["created_at"] or ""
    elif sort_by == "order_count":
        key = lambda c: c["order_count"]
    else:
        key = lambda c: c["total_spent"]
    customers.sort(key=key, reverse=sort_order == "desc")

    total = len(customers)
    return {
        "customers": customers[(page - 1) * limit: page * limit],
        "pagination": {"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
        "stats": stats,
    }
