# app/services/webhook.py

import stripe
from fastapi import HTTPException, Request

from app.config import settings
from app.services.email import send_order_confirmation
from app.services.loyalty import add_points, points_from_purchase
from app.services.order import InsufficientStockError, OrderNotFoundError, update_order_status
from app.services.promo import increment_promo_usage
from app.services.referral import complete_referral


def construct_event(payload: bytes, signature: str | None):
    """Проверка подписи Stripe: 400 без подписи или с неверной, 500 без секрета."""
    if not signature:
        raise HTTPException(status_code=400, detail="Missing stripe-signature header")
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise HTTPException(status_code=500, detail="Webhook secret is not configured")
    try:
        return stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.SignatureVerificationError) as e:
        raise HTTPException(status_code=400, detail=f"Webhook error: {e}")


async def on_checkout_completed(session, request: Request):
    """Побочные эффекты выполняются один раз, только при переходе PENDING -> PAID."""
    log = request.app.state.log
    order, changed = await update_order_status(session["id"], "PAID", request)
    if not changed:
        await log.log_info("webhook", "Order already processed", {"order_id": order.id, "status": order.status})
        return

    metadata = session.get("metadata") or {}
    promo_code = metadata.get("promo_code")
    if promo_code:
        try:
            await increment_promo_usage(promo_code, request)
        except Exception as e:
            await log.log_error("webhook", f"Promo usage not incremented: {e}", {"code": promo_code})

    if order.user_id is not None:
        try:
            await add_points(order.user_id, points_from_purchase(float(order.total_amount)), "PURCHASE",
                             request, order_id=order.id)
        except Exception as e:
            await log.log_error("webhook", f"Loyalty points not credited: {e}", {"order_id": order.id})

        try:
            await complete_referral(order.user_id, float(order.total_amount), request)
        except Exception as e:
            await log.log_error("webhook", f"Referral not completed: {e}", {"order_id": order.id})

    try:
        await send_order_confirmation(order, request)
    except Exception as e:
        await log.log_error("webhook", f"Confirmation email failed: {e}", {"order_id": order.id})

    await log.log_info("webhook", "Payment confirmed", {"order_id": order.id, "session": session["id"]})


async def handle_webhook_service(payload: bytes, signature: str | None, request: Request) -> dict:
    """
    События Stripe:
    checkout.session.completed      -> заказ PAID, промокод, баллы, реферал, письмо
    checkout.session.expired        -> заказ CANCELLED
    payment_intent.payment_failed   -> только в лог
    Нехватка товара и неизвестный заказ подтверждаются с warning,
    чтобы Stripe не повторял событие.
    """
    log = request.app.state.log
    event = construct_event(payload, signature)
    event_type = event["type"]
    obj = event["data"]["object"]

    await log.log_info("webhook", f"Event received: {event_type}", {"id": event.get("id")})

    try:
        if event_type == "checkout.session.completed":
            await on_checkout_completed(obj, request)
        elif event_type == "checkout.session.expired":
            await update_order_status(obj["id"], "CANCELLED", request)
        elif event_type == "payment_intent.payment_failed":
            await log.log_warning("webhook", "Payment failed", {"payment_intent": obj.get("id")})
        else:
            await log.log_info("webhook", f"Unhandled event type: {event_type}")
    except InsufficientStockError as e:
        await request.state.db.rollback()
        await log.log_error("webhook", str(e), {"product_id": e.product_id})
        return {"received": True, "warning": "Insufficient stock, order needs manual review"}
    except OrderNotFoundError as e:
        await request.state.db.rollback()
        await log.log_error("webhook", str(e))
        return {"received": True, "warning": "Order not found"}

    return {"received": True}
