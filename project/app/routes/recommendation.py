# app/routes/recommendation.py

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from app.models.user import User
from app.routes.auth import get_optional_user
from app.services.recommendation import get_frequently_bought_together, get_recommendations, get_similar_products

router = APIRouter()

MAX_RECOMMENDATIONS = 12


@router.get(
    "/recommendations",
    status_code=status.HTTP_200_OK,
    summary="Product recommendations",
    responses={
        200: {"description": "Personal picks, or products related to product_id"},
        400: {"description": "Invalid product_id, type or limit"},
    },
)
async def read_recommendations(
    request: Request,
    product_id: Optional[int] = None,
    type: Literal["personal", "similar", "fbt"] = "personal",
    limit: int = Query(default=6, ge=1),
    current_user: Optional[User] = Depends(get_optional_user),
):
    """
    С product_id: `similar` (по умолчанию) или `fbt` (покупают вместе).
    Без него: персональные рекомендации, анонимам хиты продаж.
    """
    limit = min(limit, MAX_RECOMMENDATIONS)
    try:
        if product_id is not None:
            if type == "fbt":
                products = await get_frequently_bought_together(product_id, request, limit)
            else:
                type = "similar"
                products = await get_similar_products(product_id, request, limit)
            return {"type": type, "product_id": product_id, "products": products, "total": len(products)}

        products = await get_recommendations(current_user.id if current_user else None, request, limit)
        return {
            "type": "personal",
            "personalized": current_user is not None,
            "products": products,
            "total": len(products),
        }
    except Exception as e:
        await request.app.state.log.log_error("recommendation", f"Recommendations failed: {e}", {
            "product_id": product_id
        })
        raise
