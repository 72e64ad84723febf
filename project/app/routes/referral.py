# app/routes/referral.py

from fastapi import APIRouter, Depends, Request, status

from app.models.user import User
from app.routes.auth import get_current_user
from app.schemas.loyalty import ReferralApplyRequest
from app.services.referral import apply_referral_code, get_referral_overview

router = APIRouter()


@router.get(
    "/code",
    status_code=status.HTTP_200_OK,
    summary="Referral code, link and referral stats",
    responses={
        200: {"description": "The unused code is created on first call"},
        401: {"description": "Not logged in"},
    },
)
async def read_referral_code(request: Request, current_user: User = Depends(get_current_user)):
    return await get_referral_overview(current_user.id, request)


@router.post(
    "/apply",
    status_code=status.HTTP_200_OK,
    summary="Use a referral code",
    responses={
        200: {"description": "Code linked to the account"},
        400: {"description": "Invalid, own, already used code, or a code was already applied"},
        401: {"description": "Not logged in"},
    },
)
async def apply_code(payload: ReferralApplyRequest, request: Request, current_user: User = Depends(get_current_user)):
    try:
        return await apply_referral_code(current_user.id, payload.code, request)
    except Exception as e:
        await request.app.state.log.log_error("referral", f"Apply failed: {e}", {"user_id": current_user.id})
        raise
