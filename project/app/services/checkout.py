# app/services/checkout.py

import asyncio
import time

import stripe
from fastapi import HTTPException, Request
from sqlalchemy.future import select

from app.config import settings
from app.models.product import Product
from app.models.user import User
from app.schemas.checkout import CheckoutRequest
from app.services.order import InsufficientStockError, check_stock_availability, create_order
from app.services.promo import resolve_discount
from app.utils.database import utcnow

COUPON_LIFETIME_SECONDS = 3600


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


def build_line_items(lines: list[dict]) -> list[dict]:
    line_items = []
    for line in lines:
        product_data = {"name": line["name"]}
        if line.get("image", "").startswith("http"):
            product_data["images"] = [line["image"]]
        line_items.append({
            "price_data": {
                "currency": settings.CURRENCY,
                "product_data": product_data,
                "unit_amount": to_cents(line["price"]),
            },
            "quantity": line["quantity"],
        })
    return line_items


async def create_checkout_session_service(payload: CheckoutRequest, user: User, request: Request) -> dict:
    """
    Оформление заказа:
    - проверяется остаток каждой позиции (409 со списком нехватки)
    - цены берутся из каталога, а не из корзины браузера
    - применимый промокод становится одноразовым купоном Stripe
    - создаётся Stripe Checkout Session, затем заказ PENDING
    """
    log = request.app.state.log
    db = request.state.db

    requested = [
        {"product_id": item.id, "name": item.name, "quantity": item.quantity}
        for item in payload.cart_items
    ]
    stock = await check_stock_availability(requested, request)
    if not stock["available"]:
        await log.log_warning("checkout", "Insufficient stock", {
            "user_id": user.id, "items": stock["insufficient_items"]
        })
        raise HTTPException(status_code=409, detail={
            "error": "Insufficient stock for some products",
            "insufficient_items": stock["insufficient_items"],
        })

    result = await db.execute(select(Product).where(Product.id.in_([r["product_id"] for r in requested])))
    products = {p.id: p for p in result.scalars().all()}
    lines = [
        {
            "product_id": r["product_id"],
            "name": products[r["product_id"]].name,
            "price": float(products[r["product_id"]].price),
            "quantity": r["quantity"],
            "image": products[r["product_id"]].image or "",
        }
        for r in requested
    ]

    subtotal = round(sum(line["price"] * line["quantity"] for line in lines), 2)
    promo, discount = await resolve_discount(payload.promo_code, subtotal, request)
    total = round(subtotal - discount, 2)

    if not settings.STRIPE_SECRET_KEY:
        await log.log_error("checkout", "STRIPE_SECRET_KEY is not configured")
        raise HTTPException(status_code=500, detail="Payment service is not configured")
    stripe.api_key = settings.STRIPE_SECRET_KEY

    params = {
        "payment_method_types": ["card"],
        "mode": "payment",
        "line_items": build_line_items(lines),
        "success_url": f"{settings.BASE_URL}/success?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{settings.BASE_URL}/cancel",
        "customer_email": user.email,
        "metadata": {
            "order_date": utcnow().isoformat(),
            "item_count": str(sum(line["quantity"] for line in lines)),
            "user_id": str(user.id),
            "promo_code": promo.code if promo else "",
            "discount_amount": f"{discount:.2f}",
        },
    }

    try:
        if discount > 0:
            coupon = await asyncio.to_thread(
                stripe.Coupon.create,
                amount_off=to_cents(discount),
                currency=settings.CURRENCY,
                duration="once",
                max_redemptions=1,
                redeem_by=int(time.time()) + COUPON_LIFETIME_SECONDS,
                name=f"Promo {promo.code}",
            )
            params["discounts"] = [{"coupon": coupon.id}]
        session = await asyncio.to_thread(stripe.checkout.Session.create, **params)
    except stripe.StripeError as e:
        await log.log_error("checkout", f"Stripe error: {e}", {"user_id": user.id})
        raise HTTPException(status_code=500, detail="Payment session could not be created")

    try:
        order = await create_order(
            request,
            stripe_session_id=session.id,
            email=user.email,
            customer_name=user.name,
            user_id=user.id,
            items=lines,
            total_amount=total,
            promo_code=promo.code if promo else None,
            discount_amount=discount if discount > 0 else None,
        )
    except InsufficientStockError as e:
        # остаток изменился между проверкой и транзакцией заказа
        raise HTTPException(status_code=409, detail={
            "error": "Insufficient stock for some products",
            "insufficient_items": [{
                "product_id": e.product_id,
                "name": e.product_name,
                "requested": e.requested,
                "available": e.available,
            }],
        })

    await log.log_info("checkout", "Checkout session created", {
        "order_id": order.id, "session": session.id, "subtotal": subtotal, "discount": discount, "total": total
    })
    return {"url": session.url, "order_id": order.id}
