import os
from typing import Optional

from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import catalog
import favorites
import orders
import reviews
from auth import Principal, get_current_user, require_admin
from config import Settings, get_settings
from database import db, get_db
from errors import install_error_handlers
from observability import configure_logging
from schemas import (
    AddToCartRequest,
    CategoryIn,
    FavoriteRequest,
    IdModel,
    ProductIn,
    ReviewRequest,
    TypeIn,
)
from validation import validate_product_filters

configure_logging(get_settings().log_level)

app = FastAPI(title="Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

CATALOG_CACHE_HEADERS = {
    "Cache-Control": "private, no-cache",
}


def ok(data=None, message: Optional[str] = None, status_code: int = 200):
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=body)


@app.get("/")
def root():
    return {"message": "Storefront Backend is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️ Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response


# Catalog endpoints
@app.get("/api/types")
def list_types(database=Depends(get_db)):
    return ok(catalog.list_types(database))


@app.post("/api/types")
def create_type(payload: TypeIn, user: Principal = Depends(require_admin), database=Depends(get_db)):
    return ok(catalog.create_type(database, user, payload), "Type created", 201)


@app.post("/api/categories")
def create_category(payload: CategoryIn, user: Principal = Depends(require_admin), database=Depends(get_db)):
    return ok(catalog.create_category(database, user, payload), "Category created", 201)


@app.get("/api/products")
def list_products(
    type: Optional[str] = None,
    keyword: Optional[str] = None,
    category: Optional[str] = None,
    price_min: Optional[str] = Query(None, alias="price[gt]"),
    price_max: Optional[str] = Query(None, alias="price[lt]"),
    rating_min: Optional[str] = Query(None, alias="ratings[gte]"),
    page: Optional[str] = None,
    database=Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    filters = validate_product_filters(type, keyword, category, price_min, price_max, rating_min, page)
    data = catalog.search_products(database, filters, settings)
    response = ok(data)
    response.headers.update(CATALOG_CACHE_HEADERS)
    return response


@app.post("/api/products")
def create_product(payload: ProductIn, user: Principal = Depends(require_admin), database=Depends(get_db)):
    return ok(catalog.create_product(database, user, payload), "Product created", 201)


@app.get("/api/products/{product_id}")
def get_product(product_id: str, database=Depends(get_db), settings: Settings = Depends(get_settings)):
    return ok(catalog.get_product(database, product_id, settings))


# Reviews
@app.get("/api/orders/can_review/{product_id}")
def can_review(
    product_id: str,
    user: Principal = Depends(get_current_user),
    database=Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return ok(reviews.can_user_review(database, user, product_id, settings))


@app.put("/api/review/{product_id}")
def put_review(
    product_id: str,
    payload: ReviewRequest,
    user: Principal = Depends(get_current_user),
    database=Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    result = reviews.post_review(database, user, product_id, payload.reviewData.model_dump(), settings)
    if result["meta"]["isUpdate"]:
        return ok(result, "Review updated", 200)
    return ok(result, "Review created", 201)


# Cart endpoints
@app.post("/api/cart/add")
def add_to_cart(item: AddToCartRequest, user: Principal = Depends(get_current_user), database=Depends(get_db)):
    return ok(orders.add_to_cart(database, user, item.product_id, item.quantity))


@app.get("/api/cart")
def get_cart(user: Principal = Depends(get_current_user), database=Depends(get_db)):
    return ok(orders.get_cart(database, user))


@app.post("/api/cart/remove")
def remove_from_cart(payload: IdModel, user: Principal = Depends(get_current_user), database=Depends(get_db)):
    return ok(orders.remove_from_cart(database, user, payload.id))


@app.post("/api/checkout")
def checkout(
    user: Principal = Depends(get_current_user),
    database=Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return ok(orders.checkout(database, user, settings), "Order placed", 201)


# Favorites
@app.get("/api/me/favorites")
def get_favorites(
    user: Principal = Depends(get_current_user),
    database=Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return ok({"favorites": favorites.list_favorites(database, user, settings)})


@app.post("/api/me/favorites")
def post_favorite(
    payload: FavoriteRequest,
    user: Principal = Depends(get_current_user),
    database=Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    result = favorites.update_favorite(
        database,
        user,
        payload.productId,
        payload.action,
        settings,
        product_name=payload.productName,
        product_image=payload.productImage,
    )
    return ok(result)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
