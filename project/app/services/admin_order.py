# app/services/admin_order.py

from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy import func, or_
from sqlalchemy.future import select

from app.models.order import Customer, Order, ORDER_STATUSES
from app.models.user import User
from app.schemas.order import BulkOrderAction, OrderResponse, ShipRequest
from app.services.email import schedule_review_request, send_delivery_confirmation, send_shipping_notification
from app.services.order import get_order_by_id
from app.services.stock import record_return
from app.utils.database import utcnow

ORDER_SORTS = {
    "created_at": Order.created_at,
    "total_amount": Order.total_amount,
    "status": Order.status,
}

# действие -> (допустимые статусы, целевой статус)
BULK_TRANSITIONS = {
    "mark_as_shipped": (("PAID",), "SHIPPED"),
    "mark_as_delivered": (("SHIPPED",), "DELIVERED"),
    "cancel": (("PENDING", "PAID"), "CANCELLED"),
}


def order_to_dict(order: Order) -> dict:
    return OrderResponse.model_validate(order).model_dump(mode="json")


async def _notify_customer(order: Order, status: str, request: Request):
    """Письмо об отправке или доставке. Статус уже сохранён, ошибка письма только логируется."""
    try:
        if status == "SHIPPED":
            await send_shipping_notification(order, request)
        elif status == "DELIVERED":
            await send_delivery_confirmation(order, request)
            await schedule_review_request(order, request)
    except Exception as e:
        await request.app.state.log.log_error("admin_order", f"Customer email failed: {e}", {
            "order_id": order.id, "status": status
        })


# ────────────── Список ──────────────
async def read_orders_admin_service(
    request: Request,
    status: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20,
) -> dict:
    """
    Список заказов с фильтрами и пагинацией. search ищет по id заказа,
    email или имени клиента. status_counts считается без фильтра по статусу.
    """
    db = request.state.db
    conditions = []
    if search:
        pattern = f"%{search.strip()}%"
        matches = [
            Order.customer.has(or_(Customer.email.ilike(pattern), Customer.name.ilike(pattern))),
            Order.user.has(or_(User.email.ilike(pattern), User.name.ilike(pattern))),
            Order.stripe_session_id.ilike(pattern),
        ]
        if search.strip().lstrip("#").isdigit():
            matches.append(Order.id == int(search.strip().lstrip("#")))
        conditions.append(or_(*matches))
    if date_from is not None:
        conditions.append(Order.created_at >= date_from)
    if date_to is not None:
        conditions.append(Order.created_at < date_to + timedelta(days=1))

    counts = dict((await db.execute(
        select(Order.status, func.count(Order.id)).where(*conditions).group_by(Order.status)
    )).all())
    status_counts = {s: counts.get(s, 0) for s in ORDER_STATUSES}
    status_counts["ALL"] = sum(counts.values())

    if status and status.upper() != "ALL":
        conditions.append(Order.status == status.upper())

    total = (await db.execute(select(func.count(Order.id)).where(*conditions))).scalar_one()

    column = ORDER_SORTS.get(sort_by, Order.created_at)
    ordering = column.asc() if sort_order == "asc" else column.desc()
    orders = (await db.execute(
        select(Order).where(*conditions).order_by(ordering, Order.id.desc())
        .offset((page - 1) * limit).limit(limit)
    )).scalars().all()

    return {
        "orders": [order_to_dict(o) for o in orders],
        "pagination": {"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
        "status_counts": status_counts,
    }


# ────────────── Отправка и доставка ──────────────
async def ship_order_service(id: int, payload: ShipRequest, request: Request) -> Order:
    db = request.state.db
    log = request.app.state.log

    order = await get_order_by_id(id, request)
    if order.status not in ("PAID", "SHIPPED"):
        raise HTTPException(status_code=400, detail=f"Cannot ship an order with status {order.status}")

    order.tracking_number = payload.tracking_number.strip()
    order.carrier = payload.carrier.strip()
    order.status = "SHIPPED"
    order.shipped_at = order.shipped_at or utcnow()
    await db.commit()
    await db.refresh(order)

    await _notify_customer(order, "SHIPPED", request)
    await request.app.state.cache.invalidate_orders()
    await log.log_info("admin_order", "Order shipped", {
        "id": order.id, "carrier": order.carrier, "tracking": order.tracking_number
    })
    return order


async def deliver_order_service(id: int, request: Request) -> Order:
    db = request.state.db
    log = request.app.state.log

    order = await get_order_by_id(id, request)
    if order.status != "SHIPPED":
        raise HTTPException(status_code=400, detail="Only shipped orders can be marked as delivered")

    order.status = "DELIVERED"
    order.delivered_at = utcnow()
    await db.commit()
    await db.refresh(order)

    await _notify_customer(order, "DELIVERED", request)
    await request.app.state.cache.invalidate_orders()
    await log.log_info("admin_order", "Order delivered", {"id": order.id})
    return order


# ────────────── Массовые действия ──────────────
async def bulk_orders_service(payload: BulkOrderAction, request: Request) -> dict:
    """Применяет действие к заказам с подходящим статусом, остальные пропускаются."""
    db = request.state.db
    log = request.app.state.log

    allowed, target = BULK_TRANSITIONS[payload.action]
    orders = (await db.execute(select(Order).where(Order.id.in_(payload.order_ids)))).scalars().all()
    if not orders:
        raise HTTPException(status_code=404, detail="No matching orders")

    now = utcnow()
    updated, skipped, restock = [], [], []
    for order in orders:
        if order.status not in allowed:
            skipped.append({"id": order.id, "status": order.status})
            continue
        if target == "CANCELLED" and order.status == "PAID":
            restock.append(order)
        order.status = target
        if target == "SHIPPED":
            order.shipped_at = now
            if payload.tracking_number:
                order.tracking_number = payload.tracking_number
            if payload.carrier:
                order.carrier = payload.carrier
        elif target == "DELIVERED":
            order.delivered_at = now
        elif target == "CANCELLED":
            order.cancelled_at = now
        updated.append(order)

    await db.commit()

    # у оплаченного заказа товар списан ещё при оплате
    for order in restock:
        for item in order.items:
            await record_return(request, item.product_id, item.quantity, order.id, f"Order #{order.id} cancelled")
    if restock:
        await request.app.state.cache.invalidate_all_products()

    for order in updated:
        await _notify_customer(order, target, request)

    await request.app.state.cache.invalidate_orders()
    await log.log_info("admin_order", f"Bulk {payload.action}", {
        "updated": [o.id for o in updated], "skipped": [s["id"] for s in skipped]
    })
    return {
        "success": True,
        "action": payload.action,
        "updated": len(updated),
        "skipped": skipped,
    }
