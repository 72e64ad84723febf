# app/routes/order.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.models.user import User
from app.routes.auth import get_current_user
from app.schemas.order import OrderResponse
from app.services.order import get_all_orders, get_order_by_session_id

router = APIRouter()


# ────────────── READ ALL ──────────────
@router.get(
    "",
    response_model=List[OrderResponse],
    status_code=status.HTTP_200_OK,
    summary="My orders",
    response_description="Orders of the logged-in user, newest first",
    responses={
        200: {"description": "Orders returned"},
        401: {"description": "Not logged in"},
        500: {"description": "Internal server error"},
    },
)
async def read_my_orders(
    request: Request,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
):
    try:
        return await get_all_orders(request, user_id=current_user.id, skip=skip, limit=limit)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Order list failed: {e}", {"user_id": current_user.id})
        raise


# ────────────── READ ONE ──────────────
@router.get(
    "/{session_id}",
    response_model=OrderResponse,
    status_code=status.HTTP_200_OK,
    summary="Order by Stripe session id",
    response_description="Used by the success page after payment",
    responses={
        200: {"description": "Order found"},
        401: {"description": "Not logged in"},
        403: {"description": "Order of another customer"},
        404: {"description": "Order not found"},
    },
)
async def read_order(session_id: str, request: Request, current_user: User = Depends(get_current_user)):
    order = await get_order_by_session_id(session_id, request)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.user_id != current_user.id and not current_user.is_admin:
        raise HTTPException(status_code=403, detail="Access denied")
    return order
