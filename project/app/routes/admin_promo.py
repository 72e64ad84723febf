# app/routes/admin_promo.py

from typing import List

from fastapi import APIRouter, Request, status

from app.schemas.promo import PromoCreate, PromoResponse, PromoUpdate
from app.services.promo import (
    create_promo_service,
    delete_promo_service,
    read_promo_service,
    read_promos_service,
    update_promo_service,
)

router = APIRouter()


# ────────────── CREATE ──────────────
@router.post(
    "",
    response_model=PromoResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a promo code",
    responses={
        201: {"description": "Promo code created"},
        400: {"description": "Invalid data or no discount given"},
        409: {"description": "Code already exists"},
    },
)
async def create_promo(payload: PromoCreate, request: Request):
    try:
        return await create_promo_service(payload, request)
    except Exception as e:
        await request.app.state.log.log_error("promo", f"Promo creation failed: {e}", {"code": payload.code})
        raise


# ────────────── READ ──────────────
@router.get("", response_model=List[PromoResponse], status_code=status.HTTP_200_OK, summary="All promo codes")
async def read_promos(request: Request):
    return await read_promos_service(request)


@router.get(
    "/{id}",
    response_model=PromoResponse,
    status_code=status.HTTP_200_OK,
    summary="Promo code by ID",
    responses={404: {"description": "Promo code not found"}},
)
async def read_promo(id: int, request: Request):
    return await read_promo_service(id, request)


# ────────────── UPDATE ──────────────
@router.patch(
    "/{id}",
    response_model=PromoResponse,
    status_code=status.HTTP_200_OK,
    summary="Update a promo code",
    responses={
        404: {"description": "Promo code not found"},
        409: {"description": "Code already exists"},
    },
)
async def update_promo(id: int, payload: PromoUpdate, request: Request):
    try:
        return await update_promo_service(id, payload, request)
    except Exception as e:
        await request.app.state.log.log_error("promo", f"Promo update failed: {e}", {"id": id})
        raise


# ────────────── DELETE ──────────────
@router.delete(
    "/{id}",
    status_code=status.HTTP_200_OK,
    summary="Delete a promo code",
    responses={404: {"description": "Promo code not found"}},
)
async def delete_promo(id: int, request: Request):
    await delete_promo_service(id, request)
    return {"success": True}
