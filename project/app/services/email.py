# app/services/email.py
# Транзакционные письма через Resend. Каждая попытка отправки пишется в email_logs.

import asyncio
import json
import os
from datetime import timedelta
from typing import Optional

import aiofiles
import resend
from fastapi import Request
from jinja2 import DictLoader, Environment
from sqlalchemy import func
from sqlalchemy.future import select

from app.config import settings
from app.models.email import EmailLog, ScheduledEmail
from app.models.order import Order
from app.utils.database import utcnow

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates", "email")

REVIEW_REQUEST_DELAY_DAYS = 7
REVIEW_PROMO_CODE = "AVIS10"
SCHEDULED_BATCH_SIZE = 50

_template_env: Optional[Environment] = None


async def get_template_env() -> Environment:
    """Jinja environment поверх templates/email. Исходники читаются один раз."""
    global _template_env
    if _template_env is None:
        sources = {}
        for filename in sorted(os.listdir(TEMPLATE_DIR)):
            if not filename.endswith(".html"):
                continue
            async with aiofiles.open(os.path.join(TEMPLATE_DIR, filename), encoding="utf-8") as f:
                sources[filename] = await f.read()
        _template_env = Environment(loader=DictLoader(sources), autoescape=True, enable_async=True)
    return _template_env


async def render_template(template: str, /, **context) -> str:
    """Рендер templates/email/<template>.html, все значения экранируются."""
    env = await get_template_env()
    context.setdefault("base_url", settings.BASE_URL)
    return await env.get_template(f"{template}.html").render_async(**context)


async def log_email(request: Request, to: str, subject: str, type: str, status: str,
                    resend_id: Optional[str] = None, error: Optional[str] = None,
                    user_id: Optional[int] = None, order_id: Optional[int] = None,
                    metadata: Optional[dict] = None) -> EmailLog:
    db = request.state.db
    entry = EmailLog(
        to=to,
        subject=subject,
        type=type,
        status=status,
        resend_id=resend_id,
        error=error,
        user_id=user_id,
        order_id=order_id,
        meta=json.dumps(metadata) if metadata else None,
    )
    db.add(entry)
    await db.commit()
    return entry


async def send_email(request: Request, to: str, subject: str, html_body: str, type: str,
                     user_id: Optional[int] = None, order_id: Optional[int] = None,
                     metadata: Optional[dict] = None) -> dict:
    """
    Отправка одного письма. Исключений не бросает, результат
    {"success": True, "id": ...} или {"success": False, "error": ...}.
    """
    log = request.app.state.log

    if not settings.RESEND_API_KEY:
        await log.log_warning("email", "RESEND_API_KEY missing, email not sent", {"to": to, "type": type})
        await log_email(request, to, subject, type, "FAILED", error="RESEND_API_KEY not configured",
                        user_id=user_id, order_id=order_id, metadata=metadata)
        return {"success": False, "error": "Email service not configured"}

    resend.api_key = settings.RESEND_API_KEY
    params = {
        "from": settings.EMAIL_FROM,
        "to": [to],
        "subject": subject,
        "html": html_body,
    }
    try:
        response = await asyncio.to_thread(resend.Emails.send, params)
    except Exception as e:
        await log.log_error("email", f"Send failed: {e}", {"to": to, "type": type})
        await log_email(request, to, subject, type, "FAILED", error=str(e),
                        user_id=user_id, order_id=order_id, metadata=metadata)
        return {"success": False, "error": str(e)}

    resend_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
    await log_email(request, to, subject, type, "SENT", resend_id=resend_id,
                    user_id=user_id, order_id=order_id, metadata=metadata)
    await log.log_info("email", "Email sent", {"to": to, "type": type, "id": resend_id})
    return {"success": True, "id": resend_id}


def _order_items(order: Order) -> list[dict]:
    return [
        {
            "product_id": i.product_id,
            "name": i.name,
            "quantity": i.quantity,
            "total": float(i.price) * i.quantity,
        }
        for i in order.items
    ]


# ────────────── Письма по заказам ──────────────
async def send_order_confirmation(order: Order, request: Request) -> dict:
    if not order.email:
        return {"success": False, "error": "Order has no email"}
    subject = f"Confirmation de commande #{order.id}"
    body = await render_template(
        "order_confirmation",
        subject=subject,
        name=order.customer_name or "",
        order_id=order.id,
        items=_order_items(order),
        promo_code=order.promo_code or "",
        discount=float(order.discount_amount or 0),
        total=float(order.total_amount),
    )
    return await send_email(request, order.email, subject, body, "ORDER_CONFIRMATION",
                            user_id=order.user_id, order_id=order.id)


async def send_shipping_notification(order: Order, request: Request) -> dict:
    if not order.email:
        return {"success": False, "error": "Order has no email"}
    subject = f"Votre commande #{order.id} a été expédiée"
    body = await render_template(
        "order_shipped",
        subject=subject,
        name=order.customer_name or "",
        order_id=order.id,
        carrier=order.carrier or "",
        tracking_number=order.tracking_number or "",
    )
    return await send_email(request, order.email, subject, body, "SHIPPING",
                            user_id=order.user_id, order_id=order.id,
                            metadata={"tracking_number": order.tracking_number, "carrier": order.carrier})


async def send_delivery_confirmation(order: Order, request: Request) -> dict:
    if not order.email:
        return {"success": False, "error": "Order has no email"}
    subject = f"Votre commande #{order.id} a été livrée"
    body = await render_template(
        "delivery_confirmed",
        subject=subject,
        name=order.customer_name or "",
        order_id=order.id,
    )
    return await send_email(request, order.email, subject, body, "DELIVERY",
                            user_id=order.user_id, order_id=order.id)


async def send_review_request(order: Order, to: str, request: Request,
                              promo_code: Optional[str] = REVIEW_PROMO_CODE) -> dict:
    subject = f"Que pensez-vous de votre commande #{order.id} ?"
    body = await render_template(
        "review_request",
        subject=subject,
        name=order.customer_name or "",
        order_id=order.id,
        items=_order_items(order),
        promo_code=promo_code or "",
    )
    return await send_email(request, to, subject, body, "REVIEW_REQUEST",
                            user_id=order.user_id, order_id=order.id, metadata={"promo_code": promo_code})


# ────────────── Письма аккаунта ──────────────
async def send_password_reset_email(to: str, name: Optional[str], reset_url: str, expires_minutes: int,
                                    request: Request, user_id: Optional[int] = None) -> dict:
    subject = "Réinitialisation de votre mot de passe"
    body = await render_template(
        "password_reset",
        subject=subject,
        name=name or "",
        reset_url=reset_url,
        expires_minutes=expires_minutes,
    )
    return await send_email(request, to, subject, body, "PASSWORD_RESET", user_id=user_id)


# ────────────── Отложенные письма ──────────────
async def schedule_review_request(order: Order, request: Request,
                                  delay_days: int = REVIEW_REQUEST_DELAY_DAYS) -> Optional[ScheduledEmail]:
    db = request.state.db
    log = request.app.state.log
    if not order.email:
        await log.log_warning("email", "Review request not scheduled, no email", {"order_id": order.id})
        return None

    scheduled = ScheduledEmail(
        type="REVIEW_REQUEST",
        to=order.email,
        scheduled_for=utcnow() + timedelta(days=delay_days),
        order_id=order.id,
        payload=json.dumps({"promo_code": REVIEW_PROMO_CODE}),
    )
    db.add(scheduled)
    await db.commit()
    await log.log_info("email", "Review request scheduled", {
        "order_id": order.id, "for": scheduled.scheduled_for
    })
    return scheduled


async def process_scheduled_emails(request: Request, batch_size: int = SCHEDULED_BATCH_SIZE) -> dict:
    """Отправляет наступившие PENDING письма, не больше batch_size за вызов."""
    db = request.state.db
    log = request.app.state.log

    result = await db.execute(
        select(ScheduledEmail)
        .where(ScheduledEmail.status == "PENDING", ScheduledEmail.scheduled_for <= utcnow())
        .order_by(ScheduledEmail.scheduled_for.asc())
        .limit(batch_size)
    )
    pending = result.scalars().all()

    processed = errors = 0
    for scheduled in pending:
        payload = json.loads(scheduled.payload) if scheduled.payload else {}
        order = None
        if scheduled.order_id is not None:
            order = (await db.execute(select(Order).where(Order.id == scheduled.order_id))).scalar_one_or_none()

        if scheduled.type == "REVIEW_REQUEST" and order is not None:
            outcome = await send_review_request(order, scheduled.to, request, payload.get("promo_code"))
        else:
            outcome = {"success": False, "error": f"Cannot process {scheduled.type} without its order"}

        if outcome["success"]:
            scheduled.status = "SENT"
            scheduled.sent_at = utcnow()
            processed += 1
        else:
            scheduled.status = "FAILED"
            scheduled.error = str(outcome.get("error"))
            errors += 1
        await db.commit()

    await log.log_info("email", "Scheduled emails processed", {"processed": processed, "errors": errors})
    return {"processed": processed, "errors": errors}


# ────────────── Статистика ──────────────
async def get_email_stats(request: Request) -> dict:
    db = request.state.db
    now = utcnow()

    total = (await db.execute(select(func.count(EmailLog.id)))).scalar_one()
    by_type = (await db.execute(select(EmailLog.type, func.count(EmailLog.id)).group_by(EmailLog.type))).all()
    by_status = (await db.execute(select(EmailLog.status, func.count(EmailLog.id)).group_by(EmailLog.status))).all()
    last_24h = (await db.execute(
        select(func.count(EmailLog.id)).where(EmailLog.created_at >= now - timedelta(days=1))
    )).scalar_one()
    last_7_days = (await db.execute(
        select(func.count(EmailLog.id)).where(EmailLog.created_at >= now - timedelta(days=7))
    )).scalar_one()

    return {
        "total": total,
        "by_type": {t: c for t, c in by_type},
        "by_status": {s: c for s, c in by_status},
        "last_24h": last_24h,
        "last_7_days": last_7_days,
    }


async def get_email_history(request: Request, page: int = 1, limit: int = 20, type: Optional[str] = None,
                            status: Optional[str] = None, email: Optional[str] = None) -> dict:
    db = request.state.db
    conditions = []
    if type:
        conditions.append(EmailLog.type == type)
    if status:
        conditions.append(EmailLog.status == status)
    if email:
        conditions.append(EmailLog.to.ilike(f"%{email}%"))

    total = (await db.execute(select(func.count(EmailLog.id)).where(*conditions))).scalar_one()
    rows = (await db.execute(
        select(EmailLog).where(*conditions)
        .order_by(EmailLog.created_at.desc(), EmailLog.id.desc())
        .offset((page - 1) * limit).limit(limit)
    )).scalars().all()

    return {
        "emails": [
            {
                "id": e.id,
                "to": e.to,
                "subject": e.subject,
                "type": e.type,
                "status": e.status,
                "resend_id": e.resend_id,
                "created_at": e.created_at.isoformat() if e.created_at else None,
            }
            for e in rows
        ],
        "total": total,
        "pages": (total + limit - 1) // limit,
    }
