"""
Favorites stored on the user document.

Clients apply a toggle optimistically and reconcile with the list returned
here, which is always read back after the write.
"""
import logging
from typing import List, Optional

from bson import ObjectId

from auth import Principal
from config import Settings
from database import now, to_str_id
from errors import PRODUCT_INACTIVE, PRODUCT_NOT_FOUND, USER_NOT_FOUND, ApiError, not_found, store_errors
from schemas import Favorite, Image
from validation import parse_object_id, sanitize_text

logger = logging.getLogger(__name__)


def _favorites(db, uid: ObjectId) -> List[dict]:
    user = db["user"].find_one({"_id": uid}, {"favorites": 1})
    if not user:
        raise not_found(USER_NOT_FOUND, "User not found")
    return user.get("favorites") or []


def list_favorites(db, user: Principal, settings: Settings) -> List[dict]:
    with store_errors("favorites.list", user_id=user.user_id, timeout=settings.favorites_timeout):
        return to_str_id(_favorites(db, ObjectId(user.user_id)))


def update_favorite(
    db,
    user: Principal,
    product_id: str,
    action: str,
    settings: Settings,
    product_name: Optional[str] = None,
    product_image: Optional[Image] = None,
) -> dict:
    pid = parse_object_id(product_id, "productId")
    uid = ObjectId(user.user_id)
    with store_errors("favorites.update", user_id=user.user_id, target_id=product_id, timeout=settings.favorites_timeout):
        if action == "toggle":
            current = _favorites(db, uid)
            action = "remove" if any(f.get("product_id") == pid for f in current) else "add"

        if action == "add":
            product = db["product"].find_one({"_id": pid}, {"name": 1, "images": 1, "is_active": 1})
            if not product:
                raise not_found(PRODUCT_NOT_FOUND, "Product not found")
            if not product.get("is_active"):
                raise ApiError(PRODUCT_INACTIVE, "Product is not available")
            images = product.get("images") or []
            name = product.get("name") or sanitize_text(product_name, "productName", 100)
            entry = Favorite(
                product_id=str(pid),
                product_name=name,
                product_image=images[0] if images else product_image,
                added_at=now(),
            ).model_dump()
            entry["product_id"] = pid
            db["user"].update_one(
                {"_id": uid, "favorites.product_id": {"$ne": pid}},
                {"$push": {"favorites": entry}},
            )
        else:
            db["user"].update_one({"_id": uid}, {"$pull": {"favorites": {"product_id": pid}}})

        favorites = _favorites(db, uid)
    logger.info("favorite %s %s for %s", action, product_id, user.user_id)
    return {"action": action, "favorites": to_str_id(favorites)}
