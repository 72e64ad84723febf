# app/routes/admin_order.py

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Query, Request, status

from app.schemas.order import BulkOrderAction, OrderResponse, ShipRequest
from app.services.admin_order import (
    bulk_orders_service,
    deliver_order_service,
    ship_order_service,
    read_orders_admin_service,
)
from app.services.order import get_order_by_id

router = APIRouter()


# ────────────── READ ──────────────
@router.get(
    "",
    status_code=status.HTTP_200_OK,
    summary="Orders with filters",
    responses={
        200: {"description": "Orders, pagination and counts per status"},
        401: {"description": "Not logged in"},
        403: {"description": "Admin only"},
    },
)
async def read_orders(
    request: Request,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    search: Optional[str] = Query(default=None, max_length=100),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    sort_by: str = Query(default="created_at", pattern="^(created_at|total_amount|status)$"),
    sort_order: str = Query(default="desc", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    try:
        return await read_orders_admin_service(
            request, status_filter, search, date_from, date_to, sort_by, sort_order, page, limit
        )
    except Exception as e:
        await request.app.state.log.log_error("admin_order", f"Order list failed: {e}")
        raise


@router.patch(
    "",
    status_code=status.HTTP_200_OK,
    summary="Bulk status change",
    responses={
        200: {"description": "Orders updated, orders in another status are skipped"},
        400: {"description": "Invalid action"},
        404: {"description": "No matching orders"},
    },
)
async def bulk_orders(payload: BulkOrderAction, request: Request):
    """
    mark_as_shipped: PAID -> SHIPPED
    mark_as_delivered: SHIPPED -> DELIVERED
    cancel: PENDING or PAID -> CANCELLED
    """
    try:
        return await bulk_orders_service(payload, request)
    except Exception as e:
        await request.app.state.log.log_error("admin_order", f"Bulk {payload.action} failed: {e}")
        raise


@router.get(
    "/{id}",
    response_model=OrderResponse,
    status_code=status.HTTP_200_OK,
    summary="Order by ID",
    responses={404: {"description": "Order not found"}},
)
async def read_order(id: int, request: Request):
    return await get_order_by_id(id, request)


# ────────────── Доставка ──────────────
@router.post(
    "/{id}/ship",
    response_model=OrderResponse,
    status_code=status.HTTP_200_OK,
    summary="Ship an order",
    responses={
        200: {"description": "Order SHIPPED, customer notified"},
        400: {"description": "Order not paid or invalid tracking data"},
        404: {"description": "Order not found"},
    },
)
async def ship_order(id: int, payload: ShipRequest, request: Request):
    try:
        return await ship_order_service(id, payload, request)
    except Exception as e:
        await request.app.state.log.log_error("admin_order", f"Ship failed: {e}", {"id": id})
        raise


@router.post(
    "/{id}/deliver",
    response_model=OrderResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark an order as delivered",
    responses={
        200: {"description": "Order DELIVERED, review request scheduled"},
        400: {"description": "Order is not SHIPPED"},
        404: {"description": "Order not found"},
    },
)
async def deliver_order(id: int, request: Request):
    try:
        return await deliver_order_service(id, request)
    except Exception as e:
        await request.app.state.log.log_error("admin_order", f"Deliver failed: {e}", {"id": id})
        raise
