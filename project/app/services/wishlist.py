# app/services/wishlist.py

import secrets

from fastapi import HTTPException, Request
from sqlalchemy.future import select

from app.config import settings
from app.models.product import Product
from app.models.user import User
from app.models.wishlist import WishlistItem
from app.services.catalog import product_to_dict

SHARE_ID_LENGTH = 12


def new_share_id() -> str:
    """12 URL-safe символов."""
    return secrets.token_urlsafe(SHARE_ID_LENGTH)[:SHARE_ID_LENGTH]


def share_url(share_id: str) -> str:
    return f"{settings.BASE_URL}/wishlist/{share_id}"


async def _items(user_id: int, request: Request) -> list[WishlistItem]:
    result = await request.state.db.execute(
        select(WishlistItem).where(WishlistItem.user_id == user_id).order_by(WishlistItem.created_at.desc())
    )
    return result.scalars().all()


async def read_wishlist_service(user: User, request: Request) -> dict:
    items = await _items(user.id, request)
    return {
        "items": [
            {"id": i.id, "product": product_to_dict(i.product), "added_at": i.created_at.isoformat()}
            for i in items
        ],
        "count": len(items),
    }


async def add_to_wishlist_service(product_id: int, user: User, request: Request) -> dict:
    db = request.state.db
    product = (await db.execute(select(Product).where(Product.id == product_id))).scalar_one_or_none()
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")

    existing = (await db.execute(
        select(WishlistItem).where(WishlistItem.user_id == user.id, WishlistItem.product_id == product_id)
    )).scalar_one_or_none()
    if existing is None:
        db.add(WishlistItem(user_id=user.id, product_id=product_id))
        await db.commit()
        await request.app.state.log.log_info("wishlist", "Product added", {"user_id": user.id, "product_id": product_id})

    return {"success": True, "product_id": product_id}


async def remove_from_wishlist_service(product_id: int, user: User, request: Request) -> dict:
    db = request.state.db
    item = (await db.execute(
        select(WishlistItem).where(WishlistItem.user_id == user.id, WishlistItem.product_id == product_id)
    )).scalar_one_or_none()
    if item is None:
        raise HTTPException(status_code=404, detail="Product is not in the wishlist")

    await db.delete(item)
    await db.commit()
    await request.app.state.log.log_info("wishlist", "Product removed", {"user_id": user.id, "product_id": product_id})
    return {"success": True}


# ────────────── Публичная ссылка ──────────────
def share_status(user: User) -> dict:
    return {
        "share_id": user.wishlist_share_id,
        "is_public": bool(user.wishlist_public),
        "share_url": share_url(user.wishlist_share_id) if user.wishlist_share_id else None,
    }


async def share_action_service(action: str, user: User, request: Request) -> dict:
    """
    generate - новый share id, вишлист становится публичным
    toggle   - переключает публичность существующей ссылки
    """
    db = request.state.db

    if action == "generate":
        user.wishlist_share_id = new_share_id()
        user.wishlist_public = True
    elif action == "toggle":
        if not user.wishlist_share_id:
            raise HTTPException(status_code=400, detail="Generate a share link first")
        user.wishlist_public = not user.wishlist_public
    else:
        raise HTTPException(status_code=400, detail="Unknown action")

    await db.commit()
    await request.app.state.log.log_info("wishlist", f"Share {action}", {"user_id": user.id, **share_status(user)})
    return share_status(user)


async def revoke_share_service(user: User, request: Request) -> dict:
    db = request.state.db
    user.wishlist_share_id = None
    user.wishlist_public = False
    await db.commit()
    await request.app.state.log.log_info("wishlist", "Share revoked", {"user_id": user.id})
    return share_status(user)


async def read_public_wishlist_service(share_id: str, request: Request) -> dict:
    db = request.state.db
    owner = (await db.execute(select(User).where(User.wishlist_share_id == share_id))).scalar_one_or_none()
    if owner is None:
        raise HTTPException(status_code=404, detail="Wishlist not found")
    if not owner.wishlist_public:
        raise HTTPException(status_code=403, detail="This wishlist is private")

    items = await _items(owner.id, request)
    products = [product_to_dict(i.product) for i in items]
    return {
        "owner": {"name": owner.name or "Anonymous"},
        "products": products,
        "total_items": len(products),
        "total_value": round(sum(p["price"] for p in products), 2),
    }
