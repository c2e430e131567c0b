"""
Cart and order placement.

Carts are `cartitem` documents owned by the authenticated user. Checkout
reserves stock line by line with conditional updates and releases what it
reserved if any line cannot be fulfilled.
"""
import logging
from typing import List

from bson import ObjectId

from auth import Principal
from config import Settings
from database import create_document, get_documents, now, to_str_id
from errors import (
    CART_EMPTY,
    INSUFFICIENT_STOCK,
    ITEM_NOT_FOUND,
    PRODUCT_INACTIVE,
    PRODUCT_NOT_FOUND,
    ApiError,
    not_found,
    store_errors,
)
from schemas import CartItem, Order, OrderItem
from validation import parse_object_id

logger = logging.getLogger(__name__)


def has_purchased(db, user_id: ObjectId, product_id: ObjectId) -> bool:
    """True when at least one order of the user contains the product."""
    return db["order"].find_one({"user": user_id, "order_items.product": product_id}, {"_id": 1}) is not None


def add_to_cart(db, user: Principal, product_id: str, quantity: int) -> dict:
    pid = parse_object_id(product_id, "product_id")
    uid = ObjectId(user.user_id)
    item = CartItem(user=user.user_id, product_id=str(pid), quantity=quantity)
    with store_errors("orders.add_to_cart", user_id=user.user_id, target_id=product_id):
        product = db["product"].find_one({"_id": pid}, {"is_active": 1})
        if not product:
            raise not_found(PRODUCT_NOT_FOUND, "Product not found")
        if not product.get("is_active"):
            raise ApiError(PRODUCT_INACTIVE, "Product is not available")
        # Upsert quantity
        existing = db["cartitem"].find_one({"user": uid, "product_id": pid})
        if existing:
            db["cartitem"].update_one(
                {"_id": existing["_id"]},
                {"$inc": {"quantity": item.quantity}, "$set": {"updated_at": now()}},
            )
            return {"status": "updated", "id": str(existing["_id"])}
        doc = item.model_dump()
        doc["user"] = uid
        doc["product_id"] = pid
        item_id = create_document("cartitem", doc, database=db)
    return {"status": "added", "id": item_id}


def get_cart(db, user: Principal) -> List[dict]:
    uid = ObjectId(user.user_id)
    result = []
    with store_errors("orders.get_cart", user_id=user.user_id):
        items = get_documents("cartitem", {"user": uid}, database=db)
        for it in items:
            p = db["product"].find_one({"_id": it["product_id"]}, {"name": 1, "price": 1, "images": 1, "stock": 1})
            if p:
                p["images"] = (p.get("images") or [])[:1]
                result.append({
                    "id": str(it["_id"]),
                    "product": to_str_id(p),
                    "quantity": it["quantity"],
                })
    return result


def remove_from_cart(db, user: Principal, item_id: str) -> dict:
    oid = parse_object_id(item_id, "id")
    with store_errors("orders.remove_from_cart", user_id=user.user_id, target_id=item_id):
        res = db["cartitem"].delete_one({"_id": oid, "user": ObjectId(user.user_id)})
    if res.deleted_count == 0:
        raise not_found(ITEM_NOT_FOUND, "Item not found")
    return {"status": "removed"}


def _release(db, reserved: List[tuple]) -> None:
    for pid, qty in reserved:
        db["product"].update_one({"_id": pid}, {"$inc": {"stock": qty, "sold": -qty}})


def checkout(db, user: Principal, settings: Settings) -> dict:
    uid = ObjectId(user.user_id)
    with store_errors("orders.checkout", user_id=user.user_id, timeout=settings.checkout_timeout):
        items = get_documents("cartitem", {"user": uid}, database=db)
        if not items:
            raise ApiError(CART_EMPTY, "Cart is empty")

        order_items: List[OrderItem] = []
        reserved = []
        unavailable = []
        for it in items:
            qty = int(it.get("quantity", 1))
            p = db["product"].find_one({"_id": it["product_id"]})
            if not p or not p.get("is_active"):
                unavailable.append({"productId": str(it["product_id"]), "reason": "unavailable"})
                continue
            res = db["product"].update_one(
                {"_id": p["_id"], "is_active": True, "stock": {"$gte": qty}},
                {"$inc": {"stock": -qty, "sold": qty}},
            )
            if res.modified_count == 0:
                unavailable.append({"productId": str(p["_id"]), "name": p.get("name"), "reason": "insufficient_stock"})
                continue
            reserved.append((p["_id"], qty))
            order_items.append(OrderItem(
                product=str(p["_id"]),
                name=p.get("name", "Product"),
                price=float(p.get("price", 0)),
                quantity=qty,
            ))

        if unavailable:
            _release(db, reserved)
            logger.info("checkout for %s rejected: %d unavailable lines", user.user_id, len(unavailable))
            raise ApiError(INSUFFICIENT_STOCK, "Some products are no longer available", details=unavailable)

        subtotal = round(sum(i.price * i.quantity for i in order_items), 2)
        tax = round(subtotal * settings.tax_rate, 2)
        order = Order(
            user=user.user_id,
            order_items=order_items,
            subtotal=subtotal,
            tax=tax,
            total=round(subtotal + tax, 2),
        )
        doc = order.model_dump()
        doc["user"] = uid
        for line in doc["order_items"]:
            line["product"] = ObjectId(line["product"])
        try:
            order_id = create_document("order", doc, database=db)
        except Exception:
            _release(db, reserved)
            raise
        db["cartitem"].delete_many({"user": uid})

    logger.info("order %s placed by %s (%d lines)", order_id, user.user_id, len(order_items))
    return {"orderId": order_id, "subtotal": order.subtotal, "tax": order.tax, "total": order.total, "currency": order.currency}
