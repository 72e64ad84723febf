# app/services/catalog.py

from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy import func, or_
from sqlalchemy.future import select

from app.models.order import OrderItem
from app.models.product import Product, CATEGORIES
from app.schemas.product import ProductResponse
from app.utils.cache import CACHE_TTL

SEARCH_SORTS = ("relevance", "price_asc", "price_desc", "newest", "bestseller", "name_asc", "name_desc")
SEARCH_MAX_LIMIT = 100


def product_to_dict(product: Product) -> dict:
    return ProductResponse.model_validate(product).model_dump(mode="json")


# ────────────── Товары ──────────────
async def read_products_service(request: Request, category: Optional[str] = None, featured: Optional[bool] = None,
                                new: Optional[bool] = None, best_seller: Optional[bool] = None) -> list[dict]:
    cache = request.app.state.cache
    key = f"products:{category or 'all'}:{featured}:{new}:{best_seller}"

    async def fetch():
        db = request.state.db
        query = select(Product)
        if category:
            query = query.where(Product.category == category)
        if featured is not None:
            query = query.where(Product.is_featured == featured)
        if new is not None:
            query = query.where(Product.is_new == new)
        if best_seller is not None:
            query = query.where(Product.is_best_seller == best_seller)
        result = await db.execute(query.order_by(Product.created_at.desc(), Product.id.desc()))
        return [product_to_dict(p) for p in result.scalars().all()]

    return await cache.get_cached(key, fetch, CACHE_TTL["products"])


async def read_product_service(id: int, request: Request) -> dict:
    cache = request.app.state.cache

    async def fetch():
        db = request.state.db
        result = await db.execute(select(Product).where(Product.id == id))
        product = result.scalar_one_or_none()
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return product_to_dict(product)

    return await cache.get_cached(f"product:{id}", fetch, CACHE_TTL["product"])


async def read_categories_service(request: Request) -> list[dict]:
    cache = request.app.state.cache

    async def fetch():
        db = request.state.db
        result = await db.execute(
            select(Product.category, func.count(Product.id)).group_by(Product.category)
        )
        counts = dict(result.all())
        return [{"name": c, "count": counts.get(c, 0)} for c in CATEGORIES]

    return await cache.get_cached("categories:all", fetch, CACHE_TTL["categories"])


# ────────────── Поиск ──────────────
async def search_products_service(
    request: Request,
    q: Optional[str] = None,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    in_stock: bool = False,
    sort_by: str = "relevance",
    limit: int = 20,
) -> dict:
    """
    Поиск товаров. Текст ищется по названию, бренду, описанию и нотам,
    если в запросе 2+ символа. Без запроса и фильтров результат
    пустой.
    """
    q = (q or "").strip()
    has_query = len(q) >= 2
    has_filters = any(v is not None for v in (category, brand, min_price, max_price)) or in_stock
    limit = max(1, min(limit, SEARCH_MAX_LIMIT))

    if not has_query and not has_filters:
        return {"products": [], "total": 0, "suggestions": [], "query": q}

    cache = request.app.state.cache
    key = f"search:{q.lower()}:{category}:{brand}:{min_price}:{max_price}:{in_stock}:{sort_by}:{limit}"

    async def fetch():
        db = request.state.db
        conditions = []
        if has_query:
            pattern = f"%{q}%"
            conditions.append(or_(
                Product.name.ilike(pattern),
                Product.brand.ilike(pattern),
                Product.description.ilike(pattern),
                Product.notes_top.ilike(pattern),
                Product.notes_heart.ilike(pattern),
                Product.notes_base.ilike(pattern),
            ))
        if category:
            conditions.append(Product.category == category)
        if brand:
            conditions.append(Product.brand.ilike(f"%{brand}%"))
        if min_price is not None:
            conditions.append(Product.price >= min_price)
        if max_price is not None:
            conditions.append(Product.price <= max_price)
        if in_stock:
            conditions.append(Product.stock > 0)

        query = select(Product).where(*conditions)
        if sort_by == "price_asc":
            query = query.order_by(Product.price.asc())
        elif sort_by == "price_desc":
            query = query.order_by(Product.price.desc())
        elif sort_by == "newest":
            query = query.order_by(Product.created_at.desc())
        elif sort_by == "name_asc":
            query = query.order_by(Product.name.asc())
        elif sort_by == "name_desc":
            query = query.order_by(Product.name.desc())
        elif sort_by == "bestseller":
            sold = (
                select(OrderItem.product_id, func.sum(OrderItem.quantity).label("sold"))
                .group_by(OrderItem.product_id)
                .subquery()
            )
            query = (
                query.outerjoin(sold, sold.c.product_id == Product.id)
                .order_by(Product.is_best_seller.desc(), func.coalesce(sold.c.sold, 0).desc())
            )
        else:
            query = query.order_by(Product.is_featured.desc(), Product.is_best_seller.desc(), Product.name.asc())

        total = (await db.execute(select(func.count(Product.id)).where(*conditions))).scalar_one()
        products = (await db.execute(query.limit(limit))).scalars().all()

        suggestions = []
        if has_query:
            brands = (await db.execute(
                select(Product.brand).where(Product.brand.ilike(f"%{q}%")).distinct().limit(3)
            )).scalars().all()
            suggestions += [b for b in brands if b]
            suggestions += [c for c in CATEGORIES if q.lower() in c.lower()][:2]

        return {
            "products": [product_to_dict(p) for p in products],
            "total": total,
            "suggestions": suggestions[:5],
            "query": q,
        }

    return await cache.get_cached(key, fetch, CACHE_TTL["search"])
