# app/routes/checkout.py

from fastapi import APIRouter, Depends, Request, status

from app.models.user import User
from app.routes.auth import get_current_user
from app.schemas.checkout import CheckoutRequest, CheckoutResponse
from app.schemas.promo import PromoValidateRequest
from app.services.checkout import create_checkout_session_service
from app.services.promo import validate_promo_service
from app.utils.rate_limit import enforce_rate_limit, rate_limited

router = APIRouter()


# ────────────── CHECKOUT ──────────────
@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    status_code=status.HTTP_200_OK,
    summary="Create a Stripe Checkout session",
    response_description="Stripe payment page URL and the PENDING order id",
    responses={
        200: {
            "description": "Session created",
            "content": {
                "application/json": {
                    "example": {"url": "https://checkout.stripe.com/c/pay/cs_test_a1b2", "order_id": 42}
                }
            },
        },
        400: {"description": "Invalid cart (empty, negative price, zero quantity...)"},
        401: {"description": "Not logged in"},
        409: {
            "description": "Insufficient stock",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "Insufficient stock for some products",
                            "insufficient_items": [
                                {"product_id": 3, "name": "Oud Royal", "requested": 4, "available": 1}
                            ],
                        }
                    }
                }
            },
        },
        429: {"description": "Too many checkout attempts"},
        500: {"description": "Payment provider error"},
    },
)
async def create_checkout_session(
    payload: CheckoutRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
):
    """
    Корзина сверяется с каталогом: остаток должен покрывать каждую позицию,
    списывается цена каталога. Неизвестный, истёкший или исчерпанный
    промокод игнорируется.
    """
    await enforce_rate_limit(request, f"user:{current_user.id}", "checkout")
    try:
        return await create_checkout_session_service(payload, current_user, request)
    except Exception as e:
        await request.app.state.log.log_error("checkout", f"Checkout failed: {e}", {"user_id": current_user.id})
        raise


# ────────────── Промокоды ──────────────
@router.post(
    "/promo/validate",
    status_code=status.HTTP_200_OK,
    summary="Check a promo code against a cart total",
    dependencies=[Depends(rate_limited("api"))],
    responses={
        200: {"description": "Code usable, discount computed"},
        400: {"description": "Code inactive, expired, used up or minimum purchase not reached"},
        404: {"description": "Unknown code"},
        429: {"description": "Too many requests"},
    },
)
async def validate_promo(payload: PromoValidateRequest, request: Request):
    try:
        return await validate_promo_service(payload, request)
    except Exception as e:
        await request.app.state.log.log_error("promo", f"Promo validation failed: {e}", {"code": payload.code})
        raise
