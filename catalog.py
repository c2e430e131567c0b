"""
Catalog queries and catalog management.

`search_products` turns validated filters into a Mongo query over the active
products of one Type and returns a page plus the Type's active categories.
The `check_*` functions hold the referential rules for Types, Categories and
Products; they work on documents the caller already fetched.
"""
import logging
import math
import re
from typing import List, Optional

from bson import ObjectId

from auth import Principal
from config import MAX_TYPES, Settings
from database import create_document, to_str_id
from errors import (
    PRODUCT_NOT_FOUND,
    TYPE_LIMIT_REACHED,
    TYPE_NOT_FOUND,
    ApiError,
    not_found,
    store_errors,
    validation_error,
)
from schemas import Category, CategoryIn, Product, ProductIn, Type, TypeIn
from validation import PRICE_MAX, ProductFilters, parse_object_id, sanitize_text, to_number

logger = logging.getLogger(__name__)

LIST_PROJECTION = {
    "name": 1,
    "description": 1,
    "stock": 1,
    "price": 1,
    "images": 1,
    "category": 1,
    "ratings": 1,
}
SIMILAR_LIMIT = 5


def build_product_query(type_id: ObjectId, filters: ProductFilters) -> dict:
    query = {"type": type_id, "is_active": True}
    if filters.keyword:
        query["name"] = {"$regex": re.escape(filters.keyword), "$options": "i"}
    if filters.category is not None:
        query["category"] = filters.category
    price = {}
    if filters.price_min is not None:
        price["$gte"] = filters.price_min
    if filters.price_max is not None:
        price["$lte"] = filters.price_max
    if price:
        query["price"] = price
    if filters.rating_min is not None:
        query["ratings"] = {"$gte": filters.rating_min}
    return query


def total_pages(count: int, per_page: int) -> int:
    return math.ceil(count / per_page) if count else 0


def _list_item(doc: dict, category_names: dict) -> dict:
    item = dict(doc)
    item["images"] = (doc.get("images") or [])[:1]
    category_id = doc.get("category")
    item["category"] = {"_id": category_id, "name": category_names.get(category_id)}
    item.setdefault("ratings", 0)
    return to_str_id(item)


def search_products(db, filters: ProductFilters, settings: Settings) -> dict:
    per_page = settings.products_per_page
    with store_errors("catalog.search_products", target_id=filters.type, timeout=settings.catalog_timeout):
        type_doc = db["type"].find_one({"nom": filters.type, "is_active": True})
        if not type_doc:
            raise not_found(TYPE_NOT_FOUND, "Type not found or inactive")

        categories = list(
            db["category"]
            .find({"type": type_doc["_id"], "is_active": True}, {"category_name": 1})
            .sort("category_name", 1)
        )

        query = build_product_query(type_doc["_id"], filters)
        count = db["product"].count_documents(query)
        skip = (filters.page - 1) * per_page
        docs = list(
            db["product"].find(query, LIST_PROJECTION).sort("_id", 1).skip(skip).limit(per_page)
        )

        category_names = {c["_id"]: c["category_name"] for c in categories}
        missing = {d.get("category") for d in docs} - set(category_names)
        if missing:
            for c in db["category"].find({"_id": {"$in": list(missing)}}, {"category_name": 1}):
                category_names[c["_id"]] = c["category_name"]

    logger.debug("catalog page %s for %s: %d/%d", filters.page, filters.type, len(docs), count)
    return {
        "products": [_list_item(d, category_names) for d in docs],
        "totalPages": total_pages(count, per_page),
        "totalProducts": count,
        "categories": [{"id": str(c["_id"]), "name": c["category_name"]} for c in categories],
        "type": {"id": str(type_doc["_id"]), "name": type_doc["nom"]},
    }


# Reference rules

def check_type_capacity(existing_count: int) -> None:
    if existing_count >= MAX_TYPES:
        raise ApiError(
            TYPE_LIMIT_REACHED,
            f"Cannot create more than {MAX_TYPES} types; delete one before adding a new type",
        )


def check_category_type(type_doc: Optional[dict]) -> None:
    if not type_doc:
        raise validation_error("type", "The specified type does not exist")
    if not type_doc.get("is_active"):
        raise validation_error("type", "Cannot attach a category to an inactive type")


def check_product_references(type_doc: Optional[dict], category_doc: Optional[dict]) -> None:
    if not type_doc:
        raise validation_error("type", "The specified type does not exist")
    if not type_doc.get("is_active"):
        raise validation_error("type", "Cannot create a product with an inactive type")
    if not category_doc:
        raise validation_error("category", "The specified category does not exist")
    if not category_doc.get("is_active"):
        raise validation_error("category", "Cannot create a product with an inactive category")
    if category_doc.get("type") != type_doc["_id"]:
        raise validation_error("category", "The selected category does not belong to the selected type")


# Management

def list_types(db) -> dict:
    with store_errors("catalog.list_types"):
        count = db["type"].count_documents({})
        types = list(db["type"].find({"is_active": True}).sort("nom", 1))
    return {
        "types": [{"id": str(t["_id"]), "name": t["nom"]} for t in types],
        "remainingSlots": max(0, MAX_TYPES - count),
    }


def create_type(db, user: Principal, payload: TypeIn) -> dict:
    nom = sanitize_text(payload.nom, "nom", 50, 1)
    model = Type(nom=nom, is_active=payload.is_active)
    with store_errors("catalog.create_type", user_id=user.user_id):
        check_type_capacity(db["type"].count_documents({}))
        if db["type"].find_one({"nom": nom}):
            raise validation_error("nom", f"Type {nom!r} already exists")
        type_id = create_document("type", model, database=db)
    logger.info("type %s created by %s", nom, user.user_id)
    return {"id": type_id, "name": nom, "is_active": model.is_active}


def create_category(db, user: Principal, payload: CategoryIn) -> dict:
    name = sanitize_text(payload.category_name, "category_name", 50, 1)
    type_id = parse_object_id(payload.type, "type")
    with store_errors("catalog.create_category", user_id=user.user_id):
        check_category_type(db["type"].find_one({"_id": type_id}))
        if db["category"].find_one({"category_name": name}):
            raise validation_error("category_name", f"Category {name!r} already exists")
        doc = Category(category_name=name, type=str(type_id), is_active=payload.is_active).model_dump()
        doc["type"] = type_id
        category_id = create_document("category", doc, database=db)
    logger.info("category %s created by %s", name, user.user_id)
    return {"id": category_id, "name": name, "type": str(type_id), "is_active": payload.is_active}


def create_product(db, user: Principal, payload: ProductIn) -> dict:
    type_id = parse_object_id(payload.type, "type")
    category_id = parse_object_id(payload.category, "category")
    price = to_number(payload.price, "price", 0, PRICE_MAX)
    if payload.stock < 0:
        raise validation_error("stock", "Stock must be a non-negative integer")
    model = Product(
        name=sanitize_text(payload.name, "name", 100, 1),
        description=sanitize_text(payload.description, "description", 2000, 1),
        price=round(price, 2),
        images=payload.images,
        type=str(type_id),
        category=str(category_id),
        stock=payload.stock,
        is_active=payload.is_active,
    )
    with store_errors("catalog.create_product", user_id=user.user_id):
        check_product_references(db["type"].find_one({"_id": type_id}), db["category"].find_one({"_id": category_id}))
        doc = model.model_dump()
        doc["type"] = type_id
        doc["category"] = category_id
        product_id = create_document("product", doc, database=db)
    logger.info("product %s created by %s", product_id, user.user_id)
    return to_str_id({**doc, "_id": ObjectId(product_id)})


def get_product(db, product_id: str, settings: Settings) -> dict:
    pid = parse_object_id(product_id, "productId")
    with store_errors("catalog.get_product", target_id=product_id, timeout=settings.catalog_timeout):
        doc = db["product"].find_one({"_id": pid, "is_active": True}, {"review_rev": 0})
        if not doc:
            raise not_found(PRODUCT_NOT_FOUND, "Product not found")
        category = db["category"].find_one({"_id": doc.get("category")}, {"category_name": 1})
        similar = similar_products(db, doc)
    doc["category"] = {"_id": doc.get("category"), "name": category["category_name"] if category else None}
    doc.setdefault("ratings", 0)
    doc.setdefault("reviews", [])
    return {"product": to_str_id(doc), "similarProducts": similar}


def similar_products(db, product: dict, limit: int = SIMILAR_LIMIT) -> List[dict]:
    cursor = (
        db["product"]
        .find(
            {"category": product.get("category"), "is_active": True, "_id": {"$ne": product["_id"]}},
            {"name": 1, "price": 1, "images": 1},
        )
        .sort("_id", 1)
        .limit(limit)
    )
    items = []
    for doc in cursor:
        doc["images"] = (doc.get("images") or [])[:1]
        items.append(to_str_id(doc))
    return items
