# app/routes/catalog.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from app.schemas.product import Category, ProductResponse
from app.services.catalog import (
    SEARCH_SORTS,
    read_categories_service,
    read_product_service,
    read_products_service,
    search_products_service,
)
from app.utils.rate_limit import rate_limited

router = APIRouter()


# ────────────── READ ALL ──────────────
@router.get(
    "/products",
    response_model=List[ProductResponse],
    status_code=status.HTTP_200_OK,
    summary="List products",
    responses={
        200: {"description": "Products, newest first"},
        400: {"description": "Invalid filter"},
        500: {"description": "Internal server error"},
    },
)
async def read_products(
    request: Request,
    category: Optional[Category] = None,
    featured: Optional[bool] = None,
    new: Optional[bool] = None,
    best_seller: Optional[bool] = None,
):
    try:
        return await read_products_service(request, category, featured, new, best_seller)
    except Exception as e:
        await request.app.state.log.log_error("catalog", f"Product list failed: {e}")
        raise


@router.get(
    "/products/categories",
    status_code=status.HTTP_200_OK,
    summary="Categories with product counts",
)
async def read_categories(request: Request):
    try:
        return await read_categories_service(request)
    except Exception as e:
        await request.app.state.log.log_error("catalog", f"Category list failed: {e}")
        raise


# ────────────── READ ONE ──────────────
@router.get(
    "/products/{id}",
    response_model=ProductResponse,
    status_code=status.HTTP_200_OK,
    summary="Product by ID",
    responses={
        200: {"description": "Product found"},
        404: {"description": "Product not found"},
        500: {"description": "Internal server error"},
    },
)
async def read_product(id: int, request: Request):
    try:
        return await read_product_service(id, request)
    except Exception as e:
        await request.app.state.log.log_error("catalog", f"Product read failed: {e}", {"id": id})
        raise


# ────────────── Поиск ──────────────
@router.get(
    "/search",
    status_code=status.HTTP_200_OK,
    summary="Search products",
    dependencies=[Depends(rate_limited("search"))],
    responses={
        200: {"description": "Matching products with suggestions"},
        400: {"description": "Invalid parameters"},
        429: {"description": "Too many requests"},
        500: {"description": "Internal server error"},
    },
)
async def search_products(
    request: Request,
    q: Optional[str] = Query(default=None, max_length=100),
    category: Optional[Category] = None,
    brand: Optional[str] = Query(default=None, max_length=100),
    min_price: Optional[float] = Query(default=None, ge=0),
    max_price: Optional[float] = Query(default=None, ge=0),
    in_stock: bool = False,
    sort_by: str = Query(default="relevance", pattern="^(" + "|".join(SEARCH_SORTS) + ")$"),
    limit: int = Query(default=20, ge=1, le=100),
):
    """
    `q` фильтрует по тексту от 2 символов. Без запроса
    и фильтров результат пустой.
    """
    try:
        return await search_products_service(
            request, q, category, brand, min_price, max_price, in_stock, sort_by, limit
        )
    except Exception as e:
        await request.app.state.log.log_error("search", f"Search failed: {e}", {"q": q})
        raise
