# app/routes/admin.py
# Back-office: склад, VIP, клиенты, дашборд, CSV и журнал писем.

from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, Response, UploadFile, status

from app.models.stock import MOVEMENT_TYPES
from app.models.user import User
from app.routes.auth import get_admin_user
from app.schemas.stock import StockUpdate
from app.services.csv_io import (
    export_customers_service,
    export_filename,
    export_orders_service,
    export_products_service,
    import_products_service,
)
from app.services.customer import CUSTOMER_FILTERS, CUSTOMER_SORTS, read_customers_service
from app.services.email import get_email_history, get_email_stats
from app.services.stats import get_admin_stats_service, get_analytics_service
from app.services.stock import (
    get_low_stock_products,
    get_recent_stock_movements,
    get_stock_history,
    get_stock_stats,
    movement_to_dict,
    update_stock_service,
)
from app.services.vip import (
    SEGMENT_ORDER,
    ACTIVITY_STATUSES,
    get_at_risk_customers,
    get_top_vip_customers,
    get_vip_customers,
    get_vip_stats,
)

router = APIRouter()

Period = Literal["day", "week", "month"]

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"


def _csv_response(content: str, kind: str) -> Response:
    return Response(
        content=content,
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{export_filename(kind)}"'},
    )


# ────────────── Склад ──────────────
@router.get("/stock", status_code=status.HTTP_200_OK, summary="Stock overview",
            response_description="Stats, low stock products and the last movements")
async def read_stock(request: Request):
    return {
        "stats": await get_stock_stats(request),
        "low_stock": await get_low_stock_products(request),
        "recent_movements": await get_recent_stock_movements(request),
    }


@router.patch(
    "/stock",
    status_code=status.HTTP_200_OK,
    summary="Change the stock of a product",
    responses={
        200: {"description": "Stock changed, movement recorded"},
        400: {"description": "Negative result or non-positive quantity to add"},
        404: {"description": "Product not found"},
    },
)
async def update_stock(payload: StockUpdate, request: Request, current_user: User = Depends(get_admin_user)):
    """`{product_id, action: set|add|adjust, quantity, reason}` или старый `{product_id, adjustment}`."""
    try:
        return await update_stock_service(payload, request, current_user.id)
    except Exception as e:
        await request.app.state.log.log_error("stock", f"Stock update failed: {e}", {"product_id": payload.product_id})
        raise


@router.get(
    "/stock/history",
    status_code=status.HTTP_200_OK,
    summary="Stock movements of a product",
    responses={400: {"description": "product_id missing"}},
)
async def read_stock_history(
    request: Request,
    product_id: Optional[int] = None,
    limit: int = Query(default=50, ge=1, le=500),
    type: Optional[str] = None,
):
    if product_id is None:
        raise HTTPException(status_code=400, detail="product_id is required")
    if type is not None and type not in MOVEMENT_TYPES:
        raise HTTPException(status_code=400, detail=f"type must be one of {', '.join(MOVEMENT_TYPES)}")
    history = await get_stock_history(request, product_id, limit, type)
    return {"history": [movement_to_dict(m) for m in history]}


# ────────────── VIP ──────────────
@router.get("/vip", status_code=status.HTTP_200_OK, summary="VIP customers with segment stats")
async def read_vip(
    request: Request,
    view: Literal["all", "top", "at-risk"] = "all",
    segment: Optional[str] = None,
    activity: Optional[str] = None,
    sort_by: Literal["score", "spent", "orders", "recency"] = "score",
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
):
    if segment is not None and segment not in SEGMENT_ORDER:
        raise HTTPException(status_code=400, detail=f"segment must be one of {', '.join(SEGMENT_ORDER)}")
    if activity is not None and activity not in ACTIVITY_STATUSES:
        raise HTTPException(status_code=400, detail=f"activity must be one of {', '.join(ACTIVITY_STATUSES)}")

    if view == "top":
        customers = await get_top_vip_customers(request, limit or 10)
    elif view == "at-risk":
        customers = await get_at_risk_customers(request)
    else:
        customers = await get_vip_customers(request, segment, activity, sort_by, limit)

    return {"customers": customers, "stats": await get_vip_stats(request)}


# ────────────── Клиенты ──────────────
@router.get("/customers", status_code=status.HTTP_200_OK, summary="Customers with spending stats")
async def read_customers(
    request: Request,
    search: Optional[str] = Query(default=None, max_length=100),
    filter: str = Query(default="all", pattern="^(" + "|".join(CUSTOMER_FILTERS) + ")$"),
    sort_by: str = Query(default="total_spent", pattern="^(" + "|".join(CUSTOMER_SORTS) + ")$"),
    sort_order: str = Query(default="desc", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    return await read_customers_service(request, search, filter, sort_by, sort_order, page, limit)


# ────────────── Статистика ──────────────
@router.get("/stats", status_code=status.HTTP_200_OK, summary="Dashboard numbers",
            response_description="Cached for 5 minutes per period")
async def read_stats(request: Request, period: Period = "month"):
    try:
        return await get_admin_stats_service(request, period)
    except Exception as e:
        await request.app.state.log.log_error("stats", f"Stats failed: {e}", {"period": period})
        raise


@router.get("/analytics", status_code=status.HTTP_200_OK, summary="Sales analytics",
            response_description="Cached for 5 minutes per period")
async def read_analytics(request: Request, period: Period = "month"):
    try:
        return await get_analytics_service(request, period)
    except Exception as e:
        await request.app.state.log.log_error("stats", f"Analytics failed: {e}", {"period": period})
        raise


# ────────────── CSV ──────────────
@router.get("/export/products", summary="Products as CSV")
async def export_products(request: Request):
    return _csv_response(await export_products_service(request), "products")


@router.get("/export/orders", summary="Orders as CSV")
async def export_orders(request: Request):
    return _csv_response(await export_orders_service(request), "orders")


@router.get("/export/customers", summary="Customers as CSV")
async def export_customers(request: Request):
    return _csv_response(await export_customers_service(request), "customers")


@router.post(
    "/import/products",
    status_code=status.HTTP_200_OK,
    summary="Create or update products from a CSV file",
    responses={
        200: {"description": "Counts of created and updated products with per-line errors"},
        400: {"description": "Missing file, bad encoding or header"},
    },
)
async def import_products(request: Request, file: UploadFile = File(...)):
    content = await file.read()
    try:
        return await import_products_service(content, request)
    except Exception as e:
        await request.app.state.log.log_error("csv", f"Import failed: {e}", {"file": file.filename})
        raise


# ────────────── Письма ──────────────
@router.get("/emails", status_code=status.HTTP_200_OK, summary="Email stats and history")
async def read_emails(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    type: Optional[str] = None,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    email: Optional[str] = None,
):
    return {
        "stats": await get_email_stats(request),
        "history": await get_email_history(request, page, limit, type, status_filter, email),
    }
