# app/routes/admin_product.py

from typing import List

from fastapi import APIRouter, Depends, Request, status

from app.models.user import User
from app.routes.auth import get_admin_user
from app.schemas.product import BulkProductAction, ProductCreate, ProductResponse, ProductUpdate
from app.services.admin_product import (
    bulk_products_service,
    create_product_service,
    delete_product_service,
    read_product_admin_service,
    read_products_admin_service,
    update_product_service,
)

router = APIRouter()


# ────────────── CREATE ──────────────
@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a product",
    responses={
        201: {"description": "Product created"},
        400: {"description": "Invalid product data"},
        401: {"description": "Not logged in"},
        403: {"description": "Admin only"},
    },
)
async def create_product(payload: ProductCreate, request: Request):
    try:
        return await create_product_service(payload, request)
    except Exception as e:
        await request.app.state.log.log_error("admin_product", f"Creation failed: {e}", {"name": payload.name})
        raise


# ────────────── READ ──────────────
@router.get(
    "",
    response_model=List[ProductResponse],
    status_code=status.HTTP_200_OK,
    summary="All products",
    responses={401: {"description": "Not logged in"}, 403: {"description": "Admin only"}},
)
async def read_products(request: Request):
    return await read_products_admin_service(request)


@router.post(
    "/bulk",
    status_code=status.HTTP_200_OK,
    summary="Bulk action on products",
    responses={
        200: {"description": "Action applied, products linked to orders are never deleted"},
        400: {"description": "Invalid action data"},
        404: {"description": "No matching products"},
    },
)
async def bulk_products(payload: BulkProductAction, request: Request, current_user: User = Depends(get_admin_user)):
    """
    Действия: delete, set_/unset_ featured | new | best_seller,
    adjust_stock (data.adjustment = новый остаток), set_category (data.category),
    adjust_price (data.type percent|fixed, data.value).
    """
    try:
        return await bulk_products_service(payload, request, current_user.id)
    except Exception as e:
        await request.app.state.log.log_error("admin_product", f"Bulk {payload.action} failed: {e}")
        raise


@router.get(
    "/{id}",
    response_model=ProductResponse,
    status_code=status.HTTP_200_OK,
    summary="Product by ID",
    responses={404: {"description": "Product not found"}},
)
async def read_product(id: int, request: Request):
    return await read_product_admin_service(id, request)


# ────────────── UPDATE ──────────────
@router.patch(
    "/{id}",
    response_model=ProductResponse,
    status_code=status.HTTP_200_OK,
    summary="Update a product",
    responses={
        400: {"description": "Invalid data"},
        404: {"description": "Product not found"},
    },
)
async def update_product(id: int, payload: ProductUpdate, request: Request,
                         current_user: User = Depends(get_admin_user)):
    """Меняются только переданные поля. Новый остаток пишется как ADJUSTMENT."""
    try:
        return await update_product_service(id, payload, request, current_user.id)
    except Exception as e:
        await request.app.state.log.log_error("admin_product", f"Update failed: {e}", {"id": id})
        raise


# ────────────── DELETE ──────────────
@router.delete(
    "/{id}",
    status_code=status.HTTP_200_OK,
    summary="Delete a product",
    responses={
        400: {"description": "Product is part of existing orders"},
        404: {"description": "Product not found"},
    },
)
async def delete_product(id: int, request: Request):
    try:
        await delete_product_service(id, request)
        return {"success": True}
    except Exception as e:
        await request.app.state.log.log_error("admin_product", f"Deletion failed: {e}", {"id": id})
        raise
