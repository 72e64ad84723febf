# app/services/admin_product.py

from fastapi import HTTPException, Request
from sqlalchemy.future import select

from app.models.order import OrderItem
from app.models.product import Product, CATEGORIES
from app.schemas.product import BulkProductAction, ProductCreate, ProductUpdate
from app.services.catalog import product_to_dict
from app.services.stock import adjust_stock
from app.utils.cache import CACHE_TTL

FLAG_ACTIONS = {
    "set_featured": ("is_featured", True),
    "unset_featured": ("is_featured", False),
    "set_new": ("is_new", True),
    "unset_new": ("is_new", False),
    "set_best_seller": ("is_best_seller", True),
    "unset_best_seller": ("is_best_seller", False),
}


async def _get_product(id: int, request: Request) -> Product:
    result = await request.state.db.execute(select(Product).where(Product.id == id))
    product = result.scalar_one_or_none()
    if product is None:
        await request.app.state.log.log_error("admin_product", "Product not found", {"id": id})
        raise HTTPException(status_code=404, detail="Product not found")
    return product


async def _ordered_product_ids(ids: list[int], request: Request) -> set[int]:
    result = await request.state.db.execute(
        select(OrderItem.product_id).where(OrderItem.product_id.in_(ids)).distinct()
    )
    return set(result.scalars().all())


# ────────────── READ ──────────────
async def read_products_admin_service(request: Request) -> list[dict]:
    cache = request.app.state.cache

    async def fetch():
        result = await request.state.db.execute(select(Product).order_by(Product.created_at.desc(), Product.id.desc()))
        return [product_to_dict(p) for p in result.scalars().all()]

    return await cache.get_cached("admin:products:list", fetch, CACHE_TTL["admin_products"])


async def read_product_admin_service(id: int, request: Request) -> Product:
    return await _get_product(id, request)


# ────────────── CREATE ──────────────
async def create_product_service(payload: ProductCreate, request: Request) -> Product:
    db = request.state.db
    data = payload.model_dump(mode="json")
    product = Product(**data)
    db.add(product)
    await db.commit()
    await db.refresh(product)

    await request.app.state.cache.invalidate_all_products()
    await request.app.state.cache.invalidate_categories()
    await request.app.state.log.log_info("admin_product", "Product created", {"id": product.id, "name": product.name})
    return product


# ────────────── UPDATE ──────────────
async def update_product_service(id: int, payload: ProductUpdate, request: Request, user_id: int | None = None) -> Product:
    """
    Применяет переданные поля. Изменение остатка пишется в историю
    движений как ADJUSTMENT.
    """
    db = request.state.db
    product = await _get_product(id, request)

    changes = payload.model_dump(mode="json", exclude_unset=True)
    new_stock = changes.pop("stock", None)
    for key, value in changes.items():
        setattr(product, key, value)
    await db.commit()

    if new_stock is not None and new_stock != product.stock:
        await adjust_stock(request, product.id, new_stock, "Product edit", user_id)

    await db.refresh(product)
    await request.app.state.cache.invalidate_product(product.id)
    if "category" in changes:
        await request.app.state.cache.invalidate_categories()
    await request.app.state.log.log_info("admin_product", "Product updated", {"id": id, "fields": list(changes)})
    return product


# ────────────── DELETE ──────────────
async def delete_product_service(id: int, request: Request) -> None:
    db = request.state.db
    product = await _get_product(id, request)

    if await _ordered_product_ids([id], request):
        raise HTTPException(
            status_code=400,
            detail="This product is part of existing orders and cannot be deleted",
        )

    await db.delete(product)
    await db.commit()
    await request.app.state.cache.invalidate_product(id)
    await request.app.state.cache.invalidate_categories()
    await request.app.state.log.log_info("admin_product", "Product deleted", {"id": id})


# ────────────── Массовые действия ──────────────
async def bulk_products_service(payload: BulkProductAction, request: Request, user_id: int | None = None) -> dict:
    db = request.state.db
    log = request.app.state.log

    result = await db.execute(select(Product).where(Product.id.in_(payload.product_ids)))
    products = result.scalars().all()
    if not products:
        raise HTTPException(status_code=404, detail="No matching products")

    action = payload.action
    data = payload.data
    response = {"success": True, "action": action, "affected": 0}

    if action == "delete":
        ordered = await _ordered_product_ids([p.id for p in products], request)
        for product in products:
            if product.id not in ordered:
                await db.delete(product)
                response["affected"] += 1
        if ordered:
            response["warning"] = f"{len(ordered)} product(s) linked to orders were not deleted"
            response["skipped"] = sorted(ordered)

    elif action in FLAG_ACTIONS:
        field, value = FLAG_ACTIONS[action]
        for product in products:
            setattr(product, field, value)
        response["affected"] = len(products)

    elif action == "adjust_stock":
        new_stock = data.get("adjustment")
        if not isinstance(new_stock, int) or new_stock < 0:
            raise HTTPException(status_code=400, detail="data.adjustment must be a non-negative integer")
        await db.commit()
        for product in products:
            await adjust_stock(request, product.id, new_stock, "Bulk adjustment", user_id)
        response["affected"] = len(products)

    elif action == "set_category":
        category = data.get("category")
        if category not in CATEGORIES:
            raise HTTPException(status_code=400, detail=f"data.category must be one of {', '.join(CATEGORIES)}")
        for product in products:
            product.category = category
        response["affected"] = len(products)
        await request.app.state.cache.invalidate_categories()

    elif action == "adjust_price":
        kind = data.get("type", "percent")
        value = data.get("value")
        if kind not in ("percent", "fixed") or not isinstance(value, (int, float)):
            raise HTTPException(status_code=400, detail="data must be {type: percent|fixed, value: number}")
        for product in products:
            price = float(product.price)
            if kind == "percent":
                price = price * (1 + value / 100)
            else:
                price = price + value
            product.price = round(max(0, price), 2)
        response["affected"] = len(products)

    await db.commit()
    await request.app.state.cache.invalidate_all_products()
    await log.log_info("admin_product", f"Bulk {action}", {"ids": payload.product_ids, "affected": response["affected"]})
    return response

