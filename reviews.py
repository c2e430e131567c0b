"""
Review eligibility and the review upsert.

Reviews live embedded in their product document, one entry per user. Every
write replaces the whole `reviews` list together with the recomputed
`ratings`, guarded by the `review_rev` counter so concurrent writers retry
instead of overwriting each other.
"""
import logging
from typing import List, Optional

from bson import ObjectId

from auth import Principal
from config import Settings
from database import now, to_str_id
from errors import (
    PRODUCT_ID_MISMATCH,
    PRODUCT_INACTIVE,
    PRODUCT_NOT_FOUND,
    REVIEW_CONFLICT,
    ApiError,
    not_found,
    store_errors,
)
from orders import has_purchased
from schemas import Review
from validation import parse_object_id, round_to_step, validate_comment, validate_rating

logger = logging.getLogger(__name__)

NO_PURCHASE = "no_purchase"
ALREADY_REVIEWED = "already_reviewed"
INACTIVE_PRODUCT = "inactive_product"


def aggregate_rating(ratings: List[float]) -> float:
    """Mean rating rounded half up to one decimal, 0 with no reviews."""
    if not ratings:
        return 0
    # sums of 0.5 multiples are exact, scale before dividing
    scaled = sum(ratings) * 10 / len(ratings)
    return round_to_step(scaled, 1) / 10


def find_user_review(reviews: List[dict], user_id: ObjectId) -> Optional[int]:
    for index, review in enumerate(reviews):
        if review.get("user") == user_id:
            return index
    return None


def eligibility(product: dict, user_id: ObjectId, purchased: bool) -> dict:
    """Decide whether a user may review a product from already-fetched facts."""
    if not product.get("is_active"):
        return {"canReview": False, "hasAlreadyReviewed": False, "reason": INACTIVE_PRODUCT}
    reviewed = find_user_review(product.get("reviews") or [], user_id) is not None
    if not purchased:
        return {"canReview": False, "hasAlreadyReviewed": reviewed, "reason": NO_PURCHASE}
    if reviewed:
        return {"canReview": False, "hasAlreadyReviewed": True, "reason": ALREADY_REVIEWED}
    return {"canReview": True, "hasAlreadyReviewed": False, "reason": None}


def can_user_review(db, user: Principal, product_id: str, settings: Settings) -> dict:
    pid = parse_object_id(product_id, "productId")
    uid = ObjectId(user.user_id)
    with store_errors(
        "reviews.can_user_review",
        user_id=user.user_id,
        target_id=product_id,
        timeout=settings.eligibility_timeout,
    ):
        product = db["product"].find_one({"_id": pid}, {"is_active": 1, "reviews": 1})
        if not product:
            raise not_found(PRODUCT_NOT_FOUND, "Product not found")
        purchased = product.get("is_active") and has_purchased(db, uid, pid)
    return eligibility(product, uid, bool(purchased))


def _entry(user_id: ObjectId, rating: float, comment: str, created_at, updated_at=None) -> dict:
    doc = Review(
        user=str(user_id),
        rating=rating,
        comment=comment,
        created_at=created_at,
        updated_at=updated_at,
    ).model_dump()
    doc["user"] = user_id
    if updated_at is None:
        doc.pop("updated_at")
    return doc


def upsert_review(db, user: Principal, product_id: str, rating: float, comment: str, settings: Settings) -> dict:
    """
    Create or replace the user's review on a product and recompute its rating.

    `rating` and `comment` must already be validated. Purchase history is not
    checked here; callers that want that policy run `can_user_review` first.
    Returns the stored review, the product aggregate and whether this was an update.
    """
    pid = parse_object_id(product_id, "productId")
    uid = ObjectId(user.user_id)

    with store_errors("reviews.upsert_review", user_id=user.user_id, target_id=product_id, timeout=settings.review_timeout):
        for attempt in range(settings.review_write_retries):
            product = db["product"].find_one({"_id": pid}, {"is_active": 1, "reviews": 1, "review_rev": 1})
            if not product:
                raise not_found(PRODUCT_NOT_FOUND, "Product not found")
            if not product.get("is_active"):
                raise ApiError(PRODUCT_INACTIVE, "Reviews are not accepted for inactive products")

            reviews = list(product.get("reviews") or [])
            index = find_user_review(reviews, uid)
            stamp = now()
            previous_rating = None
            if index is not None:
                existing = reviews[index]
                previous_rating = existing.get("rating")
                entry = _entry(uid, rating, comment, existing.get("created_at") or stamp, stamp)
                reviews[index] = entry
            else:
                entry = _entry(uid, rating, comment, stamp)
                reviews.append(entry)

            ratings = aggregate_rating([r["rating"] for r in reviews])
            rev = product.get("review_rev")
            guard = {"_id": pid, "review_rev": rev if rev is not None else {"$exists": False}}
            result = db["product"].update_one(
                guard,
                {
                    "$set": {
                        "reviews": reviews,
                        "ratings": ratings,
                        "num_of_reviews": len(reviews),
                        "updated_at": stamp,
                    },
                    "$inc": {"review_rev": 1},
                },
            )
            if result.matched_count:
                break
            logger.warning("review write on %s lost a race (attempt %d)", product_id, attempt + 1)
        else:
            raise ApiError(REVIEW_CONFLICT, "The product was modified concurrently, please retry")

    is_update = index is not None
    logger.info(
        "review %s on %s by %s: rating=%s aggregate=%s",
        "updated" if is_update else "created", product_id, user.user_id, rating, ratings,
    )
    return {
        "review": to_str_id(entry),
        "product": {"id": product_id, "ratings": ratings, "numOfReviews": len(reviews)},
        "meta": {
            "isUpdate": is_update,
            "previousRating": previous_rating,
            "totalReviews": len(reviews),
        },
    }


def post_review(db, user: Principal, product_id: str, review_data: dict, settings: Settings) -> dict:
    """Validate a raw review payload for `product_id` and apply it."""
    parse_object_id(product_id, "productId")
    body_id = review_data.get("productId")
    if body_id is not None and body_id != product_id:
        raise ApiError(PRODUCT_ID_MISMATCH, "Product id in body does not match the URL")
    rating = validate_rating(review_data.get("rating"))
    comment = validate_comment(review_data.get("comment"))
    return upsert_review(db, user, product_id, rating, comment, settings)
