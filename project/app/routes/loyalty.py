# app/routes/loyalty.py

from fastapi import APIRouter, Depends, Request, status

from app.models.user import User
from app.routes.auth import get_current_user
from app.schemas.loyalty import RedeemRequest
from app.services.loyalty import get_loyalty_balance, redeem_points

router = APIRouter()


@router.get(
    "/balance",
    status_code=status.HTTP_200_OK,
    summary="Loyalty points, tier and history",
    responses={401: {"description": "Not logged in"}},
)
async def read_balance(request: Request, current_user: User = Depends(get_current_user)):
    return await get_loyalty_balance(current_user.id, request)


@router.post(
    "/redeem",
    status_code=status.HTTP_200_OK,
    summary="Turn points into a discount",
    responses={
        200: {"description": "Discount in euros and remaining points"},
        400: {"description": "Below 1000 points, not a multiple of 100 or not enough points"},
        401: {"description": "Not logged in"},
        404: {"description": "No loyalty account"},
    },
)
async def redeem(payload: RedeemRequest, request: Request, current_user: User = Depends(get_current_user)):
    try:
        return await redeem_points(current_user.id, payload.points, request)
    except Exception as e:
        await request.app.state.log.log_error("loyalty", f"Redeem failed: {e}", {"user_id": current_user.id})
        raise
