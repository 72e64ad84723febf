# app/routes/review.py

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from app.models.user import User
from app.routes.auth import get_current_user, get_optional_user
from app.schemas.review import ReviewCreate, ReviewResponse, ReviewUpdate
from app.services.review import (
    create_review_service,
    delete_review_service,
    read_product_reviews_service,
    update_review_service,
)
from app.utils.rate_limit import rate_limited

router = APIRouter()


# ────────────── READ ──────────────
@router.get(
    "/products/{product_id}/reviews",
    status_code=status.HTTP_200_OK,
    summary="Reviews of a product",
    responses={
        200: {"description": "Reviews, rating stats and pagination"},
        404: {"description": "Product not found"},
    },
)
async def read_reviews(
    product_id: int,
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    current_user: Optional[User] = Depends(get_optional_user),
):
    try:
        return await read_product_reviews_service(product_id, request, page, limit, current_user)
    except Exception as e:
        await request.app.state.log.log_error("review", f"Review list failed: {e}", {"product_id": product_id})
        raise


# ────────────── CREATE ──────────────
@router.post(
    "/products/{product_id}/reviews",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Review a product",
    dependencies=[Depends(rate_limited("api"))],
    responses={
        201: {"description": "Review created"},
        400: {"description": "Invalid rating or comment"},
        401: {"description": "Not logged in"},
        404: {"description": "Product not found"},
        409: {"description": "Product already reviewed by this user"},
    },
)
async def create_review(
    product_id: int,
    payload: ReviewCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
):
    """Один отзыв на пользователя и товар. `verified` ставится, если товар куплен."""
    try:
        return await create_review_service(product_id, payload, current_user, request)
    except Exception as e:
        await request.app.state.log.log_error("review", f"Review creation failed: {e}", {
            "product_id": product_id, "user_id": current_user.id
        })
        raise


# ────────────── UPDATE ──────────────
@router.patch(
    "/reviews/{id}",
    response_model=ReviewResponse,
    status_code=status.HTTP_200_OK,
    summary="Edit my review",
    responses={
        401: {"description": "Not logged in"},
        403: {"description": "Review of another user"},
        404: {"description": "Review not found"},
    },
)
async def update_review(id: int, payload: ReviewUpdate, request: Request,
                        current_user: User = Depends(get_current_user)):
    try:
        return await update_review_service(id, payload, current_user, request)
    except Exception as e:
        await request.app.state.log.log_error("review", f"Review update failed: {e}", {"id": id})
        raise


# ────────────── DELETE ──────────────
@router.delete(
    "/reviews/{id}",
    status_code=status.HTTP_200_OK,
    summary="Delete a review",
    responses={
        401: {"description": "Not logged in"},
        403: {"description": "Only the author or an admin can delete"},
        404: {"description": "Review not found"},
    },
)
async def delete_review(id: int, request: Request, current_user: User = Depends(get_current_user)):
    try:
        await delete_review_service(id, current_user, request)
        return {"success": True}
    except Exception as e:
        await request.app.state.log.log_error("review", f"Review deletion failed: {e}", {"id": id})
        raise
