# app/services/stats.py
# Цифры админ-дашборда и точки графиков.

from datetime import datetime, timedelta
from typing import Optional

from fastapi import Request
from sqlalchemy import func
from sqlalchemy.future import select

from app.models.order import Order, OrderItem, COMPLETED_STATUSES
from app.models.product import Product
from app.models.user import User
from app.utils.cache import CACHE_TTL
from app.utils.database import utcnow

PERIODS = ("day", "week", "month")
LOW_STOCK_DASHBOARD = 5


def period_window(period: str, now: datetime) -> tuple[datetime, datetime]:
    """Начало текущего и предыдущего окна (30 дней, 12 недель, 12 месяцев)."""
    if period == "day":
        span = timedelta(days=30)
        start = now - span
        return start, start - span
    if period == "week":
        span = timedelta(weeks=12)
        start = now - span
        return start, start - span
    start = _add_months(now, -12)
    return start, _add_months(start, -12)


def _add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, 28)
    return moment.replace(year=year, month=month, day=day)


def bucket_start(moment: datetime, period: str) -> datetime:
    day = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "day":
        return day
    if period == "week":
        return day - timedelta(days=day.weekday())    # понедельник
    return day.replace(day=1)


def build_chart(orders: list[tuple[datetime, float]], period: str, start: datetime, now: datetime) -> list[dict]:
    """Выручка и число заказов по точкам графика, включая пустые."""
    buckets: dict[datetime, dict] = {}
    cursor = bucket_start(start, period)
    end = bucket_start(now, period)
    while cursor <= end:
        buckets[cursor] = {"revenue": 0.0, "orders": 0}
        if period == "day":
            cursor += timedelta(days=1)
        elif period == "week":
            cursor += timedelta(weeks=1)
        else:
            cursor = _add_months(cursor, 1)

    for created_at, amount in orders:
        key = bucket_start(created_at, period)
        if key in buckets:
            buckets[key]["revenue"] += float(amount)
            buckets[key]["orders"] += 1

    label = "%b %Y" if period == "month" else "%d/%m"
    return [
        {"date": key.strftime(label), "start": key.date().isoformat(),
         "revenue": round(value["revenue"], 2), "orders": value["orders"]}
        for key, value in buckets.items()
    ]


def percent_change(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 1)


async def _revenue_and_count(db, start: datetime, end: Optional[datetime] = None) -> tuple[float, int]:
    query = select(func.coalesce(func.sum(Order.total_amount), 0), func.count(Order.id)).where(
        Order.created_at >= start, Order.status.in_(COMPLETED_STATUSES)
    )
    if end is not None:
        query = query.where(Order.created_at < end)
    revenue, count = (await db.execute(query)).one()
    return float(revenue or 0), count


async def _new_users(db, start: datetime, end: Optional[datetime] = None) -> int:
    query = select(func.count(User.id)).where(User.created_at >= start)
    if end is not None:
        query = query.where(User.created_at < end)
    return (await db.execute(query)).scalar_one()


async def _top_products(db, start: Optional[datetime] = None, limit: int = 10) -> list[dict]:
    query = (
        select(
            OrderItem.product_id,
            Product.name,
            Product.brand,
            Product.image,
            func.sum(OrderItem.quantity).label("sold"),
            func.count(OrderItem.id).label("order_count"),
            func.sum(OrderItem.quantity * OrderItem.price).label("revenue"),
        )
        .join(Order, Order.id == OrderItem.order_id)
        .join(Product, Product.id == OrderItem.product_id)
        .where(Order.status.in_(COMPLETED_STATUSES))
        .group_by(OrderItem.product_id, Product.name, Product.brand, Product.image)
        .order_by(func.sum(OrderItem.quantity).desc())
        .limit(limit)
    )
    if start is not None:
        query = query.where(Order.created_at >= start)
    return [
        {
            "id": row.product_id,
            "name": row.name,
            "brand": row.brand,
            "image": row.image,
            "total_sold": int(row.sold or 0),
            "order_count": row.order_count,
            "revenue": round(float(row.revenue or 0), 2),
        }
        for row in (await db.execute(query)).all()
    ]


# ────────────── Дашборд ──────────────
async def compute_stats(request: Request, period: str, now: Optional[datetime] = None) -> dict:
    db = request.state.db
    now = now or utcnow()
    start, previous_start = period_window(period, now)

    revenue, orders_count = await _revenue_and_count(db, start)
    prev_revenue, prev_orders = await _revenue_and_count(db, previous_start, start)
    customers = await _new_users(db, start)
    prev_customers = await _new_users(db, previous_start, start)
    total_products = (await db.execute(select(func.count(Product.id)))).scalar_one()

    chart_rows = (await db.execute(
        select(Order.created_at, Order.total_amount)
        .where(Order.created_at >= start, Order.status.in_(COMPLETED_STATUSES))
        .order_by(Order.created_at.asc())
    )).all()

    low_stock = (await db.execute(
        select(Product.id, Product.name, Product.brand, Product.stock)
        .where(Product.stock < LOW_STOCK_DASHBOARD)
        .order_by(Product.stock.asc())
        .limit(10)
    )).all()

    recent = (await db.execute(
        select(Order).order_by(Order.created_at.desc(), Order.id.desc()).limit(10)
    )).scalars().all()

    by_status = dict((await db.execute(
        select(Order.status, func.count(Order.id)).group_by(Order.status)
    )).all())

    completed = (await db.execute(
        select(func.count(Order.id)).where(Order.created_at >= start, Order.status.in_(COMPLETED_STATUSES))
    )).scalar_one()
    pending = (await db.execute(
        select(func.count(Order.id)).where(Order.created_at >= start, Order.status == "PENDING")
    )).scalar_one()

    return {
        "period": period,
        "overview": {
            "total_revenue": round(revenue, 2),
            "total_orders": orders_count,
            "new_customers": customers,
            "total_products": total_products,
            "average_cart": round(revenue / orders_count, 2) if orders_count else 0,
            "revenue_change": percent_change(revenue, prev_revenue),
            "orders_change": percent_change(orders_count, prev_orders),
            "customers_change": percent_change(customers, prev_customers),
            "conversion_rate": round(completed / (completed + pending) * 100, 1) if completed + pending else 0,
        },
        "chart": build_chart([(r.created_at, r.total_amount) for r in chart_rows], period, start, now),
        "top_products": await _top_products(db, start),
        "low_stock": [{"id": r.id, "name": r.name, "brand": r.brand, "stock": r.stock} for r in low_stock],
        "recent_orders": [
            {
                "id": o.id,
                "email": o.email,
                "customer_name": o.customer_name,
                "total_amount": float(o.total_amount),
                "status": o.status,
                "items_count": sum(i.quantity for i in o.items),
                "created_at": o.created_at.isoformat(),
            }
            for o in recent
        ],
        "orders_by_status": by_status,
    }


async def get_admin_stats_service(request: Request, period: str = "month") -> dict:
    cache = request.app.state.cache
    return await cache.get_cached(
        f"admin:stats:{period}", lambda: compute_stats(request, period), CACHE_TTL["admin_stats"]
    )


# ────────────── Аналитика ──────────────
async def compute_analytics(request: Request, period: str, now: Optional[datetime] = None) -> dict:
    db = request.state.db
    now = now or utcnow()
    start, _ = period_window(period, now)

    rows = (await db.execute(
        select(Order.created_at, Order.total_amount)
        .where(Order.created_at >= start, Order.status.in_(COMPLETED_STATUSES))
    )).all()

    status_rows = (await db.execute(
        select(Order.status, func.count(Order.id)).where(Order.created_at >= start).group_by(Order.status)
    )).all()

    category_rows = (await db.execute(
        select(Product.category, func.sum(OrderItem.quantity), func.sum(OrderItem.quantity * OrderItem.price))
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, Order.id == OrderItem.order_id)
        .where(Order.created_at >= start, Order.status.in_(COMPLETED_STATUSES))
        .group_by(Product.category)
    )).all()

    buyers_in_window = select(Order.user_id).where(Order.created_at >= start, Order.user_id.is_not(None))
    new_customers = (await db.execute(
        select(func.count(User.id)).where(User.created_at >= start, User.id.in_(buyers_in_window))
    )).scalar_one()
    returning_customers = (await db.execute(
        select(func.count(User.id)).where(User.created_at < start, User.id.in_(buyers_in_window))
    )).scalar_one()

    total_revenue = sum(float(r.total_amount) for r in rows)
    total_orders = len(rows)

    return {
        "period": period,
        "sales": build_chart([(r.created_at, r.total_amount) for r in rows], period, start, now),
        "status": [{"status": s, "count": c} for s, c in status_rows],
        "top_products": sorted(await _top_products(db, start), key=lambda p: p["revenue"], reverse=True),
        "categories": [
            {"category": c, "quantity": int(q or 0), "revenue": round(float(r or 0), 2)}
            for c, q, r in category_rows
        ],
        "customers": {"new": new_customers, "returning": returning_customers},
        "summary": {
            "total_revenue": round(total_revenue, 2),
            "total_orders": total_orders,
            "avg_order_value": round(total_revenue / total_orders, 2) if total_orders else 0,
        },
    }


async def get_analytics_service(request: Request, period: str = "month") -> dict:
    cache = request.app.state.cache
    return await cache.get_cached(
        f"analytics:{period}", lambda: compute_analytics(request, period), CACHE_TTL["analytics"]
    )
