# app/services/order.py

from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy.future import select

from app.models.order import Customer, Order as OrderModel, OrderItem, ORDER_STATUSES
from app.models.product import Product
from app.services.stock import record_sale
from app.utils.database import utcnow


class InsufficientStockError(Exception):
    def __init__(self, product_id: int, product_name: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for {product_name}: {requested} requested, {available} available"
        )
        self.product_id = product_id
        self.product_name = product_name
        self.requested = requested
        self.available = available


class OrderNotFoundError(Exception):
    def __init__(self, session_id: str):
        super().__init__(f"Order not found for session {session_id}")
        self.session_id = session_id


# целевой статус -> статусы, из которых в него можно перейти
STATUS_SOURCES = {
    "PAID": ("PENDING",),
    "CANCELLED": ("PENDING",),
    "FAILED": ("PENDING",),
    "SHIPPED": ("PAID",),
    "DELIVERED": ("SHIPPED",),
    "REFUNDED": ("PAID", "SHIPPED", "DELIVERED"),
}


# ────────────── Проверка остатков ──────────────
async def check_stock_availability(items: list[dict], request: Request) -> dict:
    """
    items: [{"product_id", "quantity"}]
    Возвращает {"available": bool, "insufficient_items": [...]},
    у неизвестных товаров остаток 0.
    """
    db = request.state.db
    ids = [item["product_id"] for item in items]
    result = await db.execute(select(Product.id, Product.name, Product.stock).where(Product.id.in_(ids)))
    stock_by_id = {row.id: row for row in result.all()}

    insufficient = []
    for item in items:
        row = stock_by_id.get(item["product_id"])
        available = row.stock if row is not None else 0
        if available < item["quantity"]:
            insufficient.append({
                "product_id": item["product_id"],
                "name": row.name if row is not None else item.get("name", "Unknown product"),
                "requested": item["quantity"],
                "available": available,
            })

    return {"available": not insufficient, "insufficient_items": insufficient}


# ────────────── CREATE ──────────────
async def create_order(
    request: Request,
    stripe_session_id: str,
    email: Optional[str],
    items: list[dict],
    total_amount: float,
    user_id: Optional[int] = None,
    customer_name: Optional[str] = None,
    promo_code: Optional[str] = None,
    discount_amount: Optional[float] = None,
) -> OrderModel:
    """
    Создаёт заказ PENDING с позициями в одной транзакции.
    Остаток проверяется повторно, списывается он только при оплате.
    """
    db = request.state.db
    log = request.app.state.log

    check = await check_stock_availability(items, request)
    if not check["available"]:
        first = check["insufficient_items"][0]
        raise InsufficientStockError(first["product_id"], first["name"], first["requested"], first["available"])

    customer = None
    if email:
        result = await db.execute(select(Customer).where(Customer.email == email.lower()))
        customer = result.scalar_one_or_none()
        if customer is None:
            customer = Customer(email=email.lower(), name=customer_name)
            db.add(customer)
        elif customer_name and not customer.name:
            customer.name = customer_name

    order = OrderModel(
        stripe_session_id=stripe_session_id,
        user_id=user_id,
        customer=customer,
        status="PENDING",
        total_amount=round(total_amount, 2),
        promo_code=promo_code,
        discount_amount=discount_amount or None,
        items=[
            OrderItem(
                product_id=item["product_id"],
                name=item["name"],
                price=item["price"],
                quantity=item["quantity"],
            )
            for item in items
        ],
    )
    db.add(order)
    await db.commit()
    await db.refresh(order)

    await log.log_info("order", "Order created", {
        "id": order.id, "session": stripe_session_id, "total": order.total_amount, "items": len(items)
    })
    return order


# ────────────── READ ──────────────
async def get_order_by_session_id(session_id: str, request: Request) -> Optional[OrderModel]:
    db = request.state.db
    result = await db.execute(select(OrderModel).where(OrderModel.stripe_session_id == session_id))
    return result.scalar_one_or_none()


async def get_order_by_id(id: int, request: Request) -> OrderModel:
    db = request.state.db
    result = await db.execute(select(OrderModel).where(OrderModel.id == id))
    order = result.scalar_one_or_none()
    if order is None:
        await request.app.state.log.log_error("order", "Order not found", {"id": id})
        raise HTTPException(status_code=404, detail="Order not found")
    return order


async def get_all_orders(request: Request, user_id: Optional[int] = None, skip: int = 0,
                         limit: int = 100) -> list[OrderModel]:
    db = request.state.db
    query = select(OrderModel)
    if user_id is not None:
        query = query.where(OrderModel.user_id == user_id)
    query = query.order_by(OrderModel.created_at.desc(), OrderModel.id.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


# ────────────── Смена статуса ──────────────
async def update_order_status(session_id: str, status: str, request: Request) -> tuple[OrderModel, bool]:
    """
    Переводит заказ в новый статус, возвращает (order, changed).
    - переход возможен только из статусов STATUS_SOURCES, при любом другом
      текущем статусе (в том числе том же) заказ не меняется
      и changed = False, повторный webhook ничего не делает
    - PAID: ставится paid_at, движение SALE списывает каждый товар,
      InsufficientStockError, если товар закончился после checkout
    - CANCELLED: ставится cancelled_at
    """
    status = status.upper()
    if status not in ORDER_STATUSES:
        raise ValueError(f"Unknown order status: {status}")

    db = request.state.db
    log = request.app.state.log

    order = await get_order_by_session_id(session_id, request)
    if order is None:
        raise OrderNotFoundError(session_id)

    if order.status not in STATUS_SOURCES.get(status, ()):
        await log.log_info("order", "Status unchanged", {"id": order.id, "status": order.status, "requested": status})
        return order, False

    now = utcnow()
    if status == "PAID":
        check = await check_stock_availability(
            [{"product_id": i.product_id, "name": i.name, "quantity": i.quantity} for i in order.items],
            request,
        )
        if not check["available"]:
            first = check["insufficient_items"][0]
            raise InsufficientStockError(first["product_id"], first["name"], first["requested"], first["available"])

        for item in order.items:
            await record_sale(request, item.product_id, item.quantity, order.id, commit=False)
        order.paid_at = now
    elif status == "SHIPPED":
        order.shipped_at = now
    elif status == "DELIVERED":
        order.delivered_at = now
    elif status == "CANCELLED":
        order.cancelled_at = now

    previous = order.status
    order.status = status
    await db.commit()
    await db.refresh(order)

    await request.app.state.cache.invalidate_orders()
    if status == "PAID":
        await request.app.state.cache.invalidate_all_products()

    await log.log_info("order", "Status updated", {"id": order.id, "from": previous, "to": status})
    return order, True
