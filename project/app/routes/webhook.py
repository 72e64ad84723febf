# app/routes/webhook.py

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status

from app.services.webhook import handle_webhook_service
from app.utils.rate_limit import rate_limited

router = APIRouter()


@router.post(
    "/webhook",
    status_code=status.HTTP_200_OK,
    summary="Stripe webhook",
    dependencies=[Depends(rate_limited("webhook"))],
    responses={
        200: {"description": "Event received"},
        400: {"description": "Missing or invalid signature"},
        429: {"description": "Too many requests"},
        500: {"description": "Webhook secret not configured"},
    },
)
async def stripe_webhook(request: Request, stripe_signature: Optional[str] = Header(default=None)):
    """Сырое тело запроса проверяется по заголовку `stripe-signature`."""
    payload = await request.body()
    try:
        return await handle_webhook_service(payload, stripe_signature, request)
    except Exception as e:
        await request.app.state.log.log_error("webhook", f"Webhook failed: {e}")
        raise
