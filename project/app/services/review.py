# app/services/review.py

from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select

from app.models.order import Order, OrderItem, COMPLETED_STATUSES
from app.models.product import Product
from app.models.review import Review
from app.models.user import User
from app.schemas.review import ReviewCreate, ReviewResponse, ReviewUpdate
from app.services.loyalty import POINTS_CONFIG, add_points


def review_to_dict(review: Review) -> dict:
    return ReviewResponse.model_validate(review).model_dump(mode="json")


async def _require_product(product_id: int, request: Request) -> Product:
    result = await request.state.db.execute(select(Product).where(Product.id == product_id))
    product = result.scalar_one_or_none()
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


async def _get_review(id: int, request: Request) -> Review:
    result = await request.state.db.execute(select(Review).where(Review.id == id))
    review = result.scalar_one_or_none()
    if review is None:
        raise HTTPException(status_code=404, detail="Review not found")
    return review


async def read_product_reviews_service(product_id: int, request: Request, page: int = 1, limit: int = 10,
                                       user: Optional[User] = None) -> dict:
    """Отзывы о товаре со статистикой оценок, пагинацией и отзывом текущего пользователя."""
    db = request.state.db
    await _require_product(product_id, request)

    rows = (await db.execute(
        select(Review.rating, func.count(Review.id)).where(Review.product_id == product_id).group_by(Review.rating)
    )).all()
    distribution = {str(star): 0 for star in range(1, 6)}
    total = 0
    rating_sum = 0
    for rating, count in rows:
        distribution[str(rating)] = count
        total += count
        rating_sum += rating * count

    reviews = (await db.execute(
        select(Review).where(Review.product_id == product_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .offset((page - 1) * limit).limit(limit)
    )).scalars().all()

    user_review = None
    if user is not None:
        own = (await db.execute(
            select(Review).where(Review.product_id == product_id, Review.user_id == user.id)
        )).scalar_one_or_none()
        user_review = review_to_dict(own) if own else None

    return {
        "reviews": [review_to_dict(r) for r in reviews],
        "stats": {
            "average_rating": round(rating_sum / total, 1) if total else 0,
            "total_reviews": total,
            "distribution": distribution,
        },
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
        "user_review": user_review,
    }


async def has_purchased(user_id: int, product_id: int, request: Request) -> bool:
    result = await request.state.db.execute(
        select(func.count(OrderItem.id))
        .join(Order, Order.id == OrderItem.order_id)
        .where(Order.user_id == user_id, OrderItem.product_id == product_id, Order.status.in_(COMPLETED_STATUSES))
    )
    return result.scalar_one() > 0


async def create_review_service(product_id: int, payload: ReviewCreate, user: User, request: Request) -> Review:
    db = request.state.db
    log = request.app.state.log

    await _require_product(product_id, request)
    existing = (await db.execute(
        select(Review).where(Review.product_id == product_id, Review.user_id == user.id)
    )).scalar_one_or_none()
    if existing is not None:
        raise HTTPException(status_code=409, detail="You have already reviewed this product")

    review = Review(
        product_id=product_id,
        user_id=user.id,
        rating=payload.rating,
        title=payload.title,
        comment=payload.comment,
        verified=await has_purchased(user.id, product_id, request),
    )
    db.add(review)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="You have already reviewed this product")
    await db.refresh(review)

    try:
        await add_points(user.id, POINTS_CONFIG["REVIEW_BONUS"], "REVIEW", request)
    except Exception as e:
        await log.log_error("review", f"Review bonus not credited: {e}", {"user_id": user.id})

    await request.app.state.cache.delete_cache(f"product:{product_id}")
    await log.log_info("review", "Review created", {"id": review.id, "product_id": product_id, "rating": review.rating})
    return review


async def update_review_service(id: int, payload: ReviewUpdate, user: User, request: Request) -> Review:
    db = request.state.db
    review = await _get_review(id, request)
    if review.user_id != user.id:
        raise HTTPException(status_code=403, detail="You can only edit your own reviews")

    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(review, key, value)
    await db.commit()
    await db.refresh(review)
    await request.app.state.log.log_info("review", "Review updated", {"id": id})
    return review


async def delete_review_service(id: int, user: User, request: Request) -> None:
    db = request.state.db
    review = await _get_review(id, request)
    if review.user_id != user.id and not user.is_admin:
        raise HTTPException(status_code=403, detail="You can only delete your own reviews")

    await db.delete(review)
    await db.commit()
    await request.app.state.log.log_info("review", "Review deleted", {"id": id, "by": user.id})
