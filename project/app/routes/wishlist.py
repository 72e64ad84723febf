# app/routes/wishlist.py

from fastapi import APIRouter, Depends, Query, Request, status

from app.models.user import User
from app.routes.auth import get_current_user
from app.schemas.wishlist import ShareAction, WishlistAdd
from app.services.wishlist import (
    add_to_wishlist_service,
    read_public_wishlist_service,
    read_wishlist_service,
    remove_from_wishlist_service,
    revoke_share_service,
    share_action_service,
    share_status,
)

router = APIRouter()


# ────────────── Позиции ──────────────
@router.get("", status_code=status.HTTP_200_OK, summary="My wishlist",
            responses={401: {"description": "Not logged in"}})
async def read_wishlist(request: Request, current_user: User = Depends(get_current_user)):
    return await read_wishlist_service(current_user, request)


@router.post(
    "",
    status_code=status.HTTP_200_OK,
    summary="Add a product to my wishlist",
    responses={
        200: {"description": "Product in the wishlist (adding twice is a no-op)"},
        401: {"description": "Not logged in"},
        404: {"description": "Product not found"},
    },
)
async def add_to_wishlist(payload: WishlistAdd, request: Request, current_user: User = Depends(get_current_user)):
    try:
        return await add_to_wishlist_service(payload.product_id, current_user, request)
    except Exception as e:
        await request.app.state.log.log_error("wishlist", f"Add failed: {e}", {"product_id": payload.product_id})
        raise


@router.delete(
    "",
    status_code=status.HTTP_200_OK,
    summary="Remove a product from my wishlist",
    responses={401: {"description": "Not logged in"}, 404: {"description": "Product not in the wishlist"}},
)
async def remove_from_wishlist(request: Request, product_id: int = Query(...),
                               current_user: User = Depends(get_current_user)):
    return await remove_from_wishlist_service(product_id, current_user, request)


# ────────────── Публичная ссылка ──────────────
@router.get("/share", status_code=status.HTTP_200_OK, summary="Share link status",
            responses={401: {"description": "Not logged in"}})
async def read_share(current_user: User = Depends(get_current_user)):
    return share_status(current_user)


@router.post(
    "/share",
    status_code=status.HTTP_200_OK,
    summary="Generate a share link or toggle its visibility",
    responses={
        400: {"description": "toggle without a link"},
        401: {"description": "Not logged in"},
    },
)
async def share_wishlist(payload: ShareAction, request: Request, current_user: User = Depends(get_current_user)):
    try:
        return await share_action_service(payload.action, current_user, request)
    except Exception as e:
        await request.app.state.log.log_error("wishlist", f"Share {payload.action} failed: {e}")
        raise


@router.delete("/share", status_code=status.HTTP_200_OK, summary="Revoke the share link",
               responses={401: {"description": "Not logged in"}})
async def revoke_share(request: Request, current_user: User = Depends(get_current_user)):
    return await revoke_share_service(current_user, request)


@router.get(
    "/public/{share_id}",
    status_code=status.HTTP_200_OK,
    summary="Shared wishlist",
    responses={
        200: {"description": "Owner first name, products, total value"},
        403: {"description": "Wishlist is private"},
        404: {"description": "Unknown share link"},
    },
)
async def read_public_wishlist(share_id: str, request: Request):
    return await read_public_wishlist_service(share_id, request)
