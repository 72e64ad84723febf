# app/services/stock.py

from datetime import datetime
from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy.future import select

from app.models.product import Product
from app.models.stock import StockMovement, MOVEMENT_TYPES

STOCK_CONFIG = {
    "LOW_STOCK_THRESHOLD": 10,
    "CRITICAL_STOCK_THRESHOLD": 3,
    "OUT_OF_STOCK": 0,
}


def get_stock_alert(stock: int) -> dict:
    """
    Уровень тревоги для остатка:
    ok (> 10), low (<= 10), critical (<= 3 или нет в наличии).
    """
    if stock <= STOCK_CONFIG["OUT_OF_STOCK"]:
        return {"level": "critical", "message": "Out of stock"}
    if stock <= STOCK_CONFIG["CRITICAL_STOCK_THRESHOLD"]:
        return {"level": "critical", "message": f"Critical stock: {stock} left"}
    if stock <= STOCK_CONFIG["LOW_STOCK_THRESHOLD"]:
        return {"level": "low", "message": f"Low stock: {stock} left"}
    return {"level": "ok", "message": "Stock OK"}


def movement_to_dict(m: StockMovement, product_name: Optional[str] = None) -> dict:
    data = {
        "id": m.id,
        "product_id": m.product_id,
        "quantity": m.quantity,
        "type": m.type,
        "reason": m.reason,
        "stock_before": m.stock_before,
        "stock_after": m.stock_after,
        "order_id": m.order_id,
        "user_id": m.user_id,
        "created_at": m.created_at.isoformat() if m.created_at else None,
    }
    if product_name is not None:
        data["product_name"] = product_name
    return data


async def _get_product_for_update(db, product_id: int) -> Product:
    result = await db.execute(select(Product).where(Product.id == product_id).with_for_update())
    product = result.scalar_one_or_none()
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


# ────────────── Запись движений ──────────────
async def record_stock_change(
    request: Request,
    product_id: int,
    quantity: int,
    type: str,
    reason: Optional[str] = None,
    order_id: Optional[int] = None,
    user_id: Optional[int] = None,
    commit: bool = True,
) -> StockMovement:
    """
    Применяет изменение со знаком к остатку и пишет движение
    с остатком до/после. Остаток не уходит ниже нуля (400).
    commit=False оставляет транзакцию открытой для вызывающего.
    """
    if type not in MOVEMENT_TYPES:
        raise ValueError(f"Unknown movement type: {type}")

    db = request.state.db
    log = request.app.state.log

    product = await _get_product_for_update(db, product_id)
    stock_before = product.stock
    stock_after = stock_before + quantity
    if stock_after < 0:
        await log.log_warning("stock", "Negative stock refused", {
            "product_id": product_id, "stock": stock_before, "quantity": quantity
        })
        raise HTTPException(status_code=400, detail="Stock cannot be negative")

    product.stock = stock_after
    movement = StockMovement(
        product_id=product_id,
        quantity=quantity,
        type=type,
        reason=reason,
        stock_before=stock_before,
        stock_after=stock_after,
        order_id=order_id,
        user_id=user_id,
    )
    db.add(movement)

    if commit:
        await db.commit()
        await db.refresh(movement)

    await log.log_info("stock", f"{type} {quantity:+d}", {
        "product_id": product_id, "before": stock_before, "after": stock_after, "reason": reason
    })
    return movement


async def adjust_stock(request: Request, product_id: int, new_stock: int, reason: Optional[str] = None,
                       user_id: Optional[int] = None) -> StockMovement:
    """Ставит абсолютный остаток, пишется как ADJUSTMENT."""
    if new_stock < 0:
        raise HTTPException(status_code=400, detail="Stock cannot be negative")
    product = await _get_product_for_update(request.state.db, product_id)
    delta = new_stock - product.stock
    return await record_stock_change(
        request, product_id, delta, "ADJUSTMENT", reason or "Manual adjustment", user_id=user_id
    )


async def record_sale(request: Request, product_id: int, quantity: int, order_id: int, commit: bool = True):
    return await record_stock_change(
        request, product_id, -abs(quantity), "SALE", f"Order #{order_id}", order_id=order_id, commit=commit
    )


async def record_return(request: Request, product_id: int, quantity: int, order_id: Optional[int] = None,
                        reason: Optional[str] = None):
    return await record_stock_change(
        request, product_id, abs(quantity), "RETURN", reason or "Customer return", order_id=order_id
    )


async def record_restock(request: Request, product_id: int, quantity: int, reason: Optional[str] = None,
                         user_id: Optional[int] = None):
    return await record_stock_change(
        request, product_id, abs(quantity), "RESTOCK", reason or "Restock", user_id=user_id
    )


# ────────────── READ ──────────────
async def get_stock_history(
    request: Request,
    product_id: int,
    limit: int = 50,
    type: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> list[StockMovement]:
    db = request.state.db
    query = select(StockMovement).where(StockMovement.product_id == product_id)
    if type:
        query = query.where(StockMovement.type == type)
    if start_date:
        query = query.where(StockMovement.created_at >= start_date)
    if end_date:
        query = query.where(StockMovement.created_at <= end_date)
    query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


async def get_low_stock_products(request: Request, threshold: int = STOCK_CONFIG["LOW_STOCK_THRESHOLD"]) -> list[dict]:
    db = request.state.db
    result = await db.execute(
        select(Product).where(Product.stock <= threshold).order_by(Product.stock.asc(), Product.name.asc())
    )
    return [
        {
            "id": p.id,
            "name": p.name,
            "brand": p.brand,
            "stock": p.stock,
            "category": p.category,
            "alert": get_stock_alert(p.stock),
        }
        for p in result.scalars().all()
    ]


async def get_stock_stats(request: Request) -> dict:
    db = request.state.db
    result = await db.execute(select(Product.stock, Product.price))
    rows = result.all()

    total_stock = sum(r.stock for r in rows)
    total_value = sum(r.stock * float(r.price) for r in rows)
    out_of_stock = sum(1 for r in rows if r.stock <= STOCK_CONFIG["OUT_OF_STOCK"])
    critical = sum(1 for r in rows if 0 < r.stock <= STOCK_CONFIG["CRITICAL_STOCK_THRESHOLD"])
    low = sum(
        1 for r in rows
        if STOCK_CONFIG["CRITICAL_STOCK_THRESHOLD"] < r.stock <= STOCK_CONFIG["LOW_STOCK_THRESHOLD"]
    )

    return {
        "total_products": len(rows),
        "total_stock": total_stock,
        "total_value": round(total_value, 2),
        "out_of_stock": out_of_stock,
        "critical_stock": critical,
        "low_stock": low,
        "healthy_stock": len(rows) - out_of_stock - critical - low,
    }


async def get_recent_stock_movements(request: Request, limit: int = 20) -> list[dict]:
    db = request.state.db
    result = await db.execute(
        select(StockMovement, Product.name)
        .join(Product, Product.id == StockMovement.product_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
    )
    return [movement_to_dict(m, name) for m, name in result.all()]


# ────────────── Правка из админки ──────────────
async def update_stock_service(payload, request: Request, user_id: Optional[int] = None) -> dict:
    """
    Правка остатка из админки (set / add / adjust). Возвращает остаток
    после изменения и уровень тревоги.
    """
    db = request.state.db

    result = await db.execute(select(Product).where(Product.id == payload.product_id))
    product = result.scalar_one_or_none()
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")

    if payload.action == "set":
        if payload.quantity < 0:
            raise HTTPException(status_code=400, detail="Stock cannot be negative")
        movement = await adjust_stock(request, product.id, payload.quantity, payload.reason, user_id)
    elif payload.action == "add":
        if payload.quantity <= 0:
            raise HTTPException(status_code=400, detail="Quantity to add must be positive")
        movement = await record_restock(request, product.id, payload.quantity, payload.reason, user_id)
    else:
        movement = await record_stock_change(
            request, product.id, payload.quantity, "ADJUSTMENT", payload.reason or "Manual adjustment",
            user_id=user_id,
        )

    await request.app.state.cache.invalidate_product(product.id)
    return {
        "success": True,
        "product": {"id": product.id, "name": product.name, "stock": movement.stock_after},
        "movement": movement_to_dict(movement),
        "alert": get_stock_alert(movement.stock_after),
    }
