# app/services/recommendation.py
# Рекомендации товаров по истории покупок, кешируются как каталог.

from typing import Optional

from fastapi import Request
from sqlalchemy import func, or_
from sqlalchemy.future import select

from app.models.order import Order, OrderItem, COMPLETED_STATUSES
from app.models.product import Product
from app.services.catalog import product_to_dict
from app.utils.cache import CACHE_TTL

HISTORY_ORDERS = 10
CO_PURCHASE_ORDERS = 100
SIMILAR_PRICE_RANGE = 0.3       # ±30 %


async def _best_sellers(request: Request, limit: int, exclude_ids: list[int] | None = None) -> list[dict]:
    query = select(Product).where(Product.is_best_seller.is_(True), Product.stock > 0)
    if exclude_ids:
        query = query.where(Product.id.not_in(exclude_ids))
    result = await request.state.db.execute(query.order_by(Product.created_at.desc(), Product.id.desc()).limit(limit))
    return [product_to_dict(p) for p in result.scalars().all()]


async def _new_arrivals(request: Request, limit: int) -> list[dict]:
    result = await request.state.db.execute(
        select(Product).where(Product.is_new.is_(True), Product.stock > 0)
        .order_by(Product.created_at.desc(), Product.id.desc()).limit(limit)
    )
    return [product_to_dict(p) for p in result.scalars().all()]


async def get_recommendations(user_id: Optional[int], request: Request, limit: int = 6) -> list[dict]:
    """
    Анонимам хиты продаж, клиентам без оплаченных заказов новинки.
    Иначе товары в наличии той же категории или бренда, что и последние
    покупки, ещё не купленные, с добором из хитов продаж.
    """
    db = request.state.db

    async def fetch():
        if user_id is None:
            return await _best_sellers(request, limit)

        history = await db.execute(
            select(Product.id, Product.category, Product.brand)
            .join(OrderItem, OrderItem.product_id == Product.id)
            .where(OrderItem.order_id.in_(
                select(Order.id).where(Order.user_id == user_id, Order.status.in_(COMPLETED_STATUSES))
                .order_by(Order.created_at.desc()).limit(HISTORY_ORDERS)
            ))
        )
        purchased = history.all()
        if not purchased:
            return await _new_arrivals(request, limit)

        purchased_ids = list({p.id for p in purchased})
        categories = list({p.category for p in purchased})
        brands = list({p.brand for p in purchased if p.brand})

        affinity = [Product.category.in_(categories)]
        if brands:
            affinity.append(Product.brand.in_(brands))
        result = await db.execute(
            select(Product)
            .where(or_(*affinity), Product.id.not_in(purchased_ids), Product.stock > 0)
            .order_by(Product.is_best_seller.desc(), Product.is_featured.desc(), Product.id.desc())
            .limit(limit)
        )
        recommended = [product_to_dict(p) for p in result.scalars().all()]

        if len(recommended) < limit:
            recommended += await _best_sellers(
                request, limit - len(recommended), purchased_ids + [p["id"] for p in recommended]
            )
        return recommended

    key = f"recommendations:{user_id or 'anonymous'}:{limit}"
    return await request.app.state.cache.get_cached(key, fetch, CACHE_TTL["recommendations"])


async def get_similar_products(product_id: int, request: Request, limit: int = 4) -> list[dict]:
    """Та же категория или бренд, цена в пределах ±30 %, в наличии."""
    db = request.state.db

    async def fetch():
        product = (await db.execute(select(Product).where(Product.id == product_id))).scalar_one_or_none()
        if product is None:
            return []
        price = float(product.price)
        affinity = [Product.category == product.category]
        if product.brand:
            affinity.append(Product.brand == product.brand)
        result = await db.execute(
            select(Product)
            .where(
                Product.id != product_id,
                or_(*affinity),
                Product.price >= price * (1 - SIMILAR_PRICE_RANGE),
                Product.price <= price * (1 + SIMILAR_PRICE_RANGE),
                Product.stock > 0,
            )
            .order_by(Product.is_best_seller.desc(), Product.is_featured.desc(), Product.id.desc())
            .limit(limit)
        )
        return [product_to_dict(p) for p in result.scalars().all()]

    return await request.app.state.cache.get_cached(f"similar:{product_id}:{limit}", fetch, CACHE_TTL["related"])


async def get_frequently_bought_together(product_id: int, request: Request, limit: int = 3) -> list[dict]:
    """
    Товары, чаще всего встречающиеся в тех же заказах, самые частые первыми.
    Если товар ещё не заказывали, возвращаются похожие товары.
    """
    db = request.state.db

    async def fetch():
        order_ids = (await db.execute(
            select(OrderItem.order_id).where(OrderItem.product_id == product_id)
            .distinct().limit(CO_PURCHASE_ORDERS)
        )).scalars().all()
        if not order_ids:
            return await get_similar_products(product_id, request, limit)

        counts = (await db.execute(
            select(OrderItem.product_id, func.count(OrderItem.id).label("together"))
            .where(OrderItem.order_id.in_(order_ids), OrderItem.product_id != product_id)
            .group_by(OrderItem.product_id)
            .order_by(func.count(OrderItem.id).desc(), OrderItem.product_id)
            .limit(limit)
        )).all()
        if not counts:
            return []

        ranked = [row.product_id for row in counts]
        result = await db.execute(select(Product).where(Product.id.in_(ranked), Product.stock > 0))
        by_id = {p.id: p for p in result.scalars().all()}
        return [product_to_dict(by_id[i]) for i in ranked if i in by_id]

    return await request.app.state.cache.get_cached(f"fbt:{product_id}:{limit}", fetch, CACHE_TTL["related"])
