"""
Database Schemas for the storefront

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercase class name.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class Type(BaseModel):
    nom: str = Field(..., max_length=50, description="Catalog partition name, e.g. 'men', 'women'")
    is_active: bool = Field(False, description="Visible to shoppers")


class Category(BaseModel):
    category_name: str = Field(..., max_length=50, description="Category name")
    type: str = Field(..., description="Owning Type id")
    sold: int = Field(0, ge=0)
    is_active: bool = Field(False, description="Visible to shoppers")


class Image(BaseModel):
    public_id: str
    url: str


class Review(BaseModel):
    """Embedded in Product.reviews, one per user."""
    user: str = Field(..., description="Reviewer user id")
    rating: float = Field(..., ge=1, le=5, description="Multiple of 0.5")
    comment: str = Field(..., min_length=10, max_length=1000)
    created_at: datetime
    updated_at: Optional[datetime] = None


class Product(BaseModel):
    name: str = Field(..., max_length=100, description="Product name")
    description: str = Field(..., max_length=2000)
    price: float = Field(..., ge=0, description="Price, rounded to 2 decimals")
    images: List[Image] = Field(default_factory=list)
    type: str = Field(..., description="Type id")
    category: str = Field(..., description="Category id, must belong to `type`")
    stock: int = Field(..., ge=0)
    sold: int = Field(0, ge=0)
    is_active: bool = Field(False)
    ratings: float = Field(0, ge=0, le=5, description="Mean review rating, 1 decimal")
    num_of_reviews: int = Field(0, ge=0)
    reviews: List[Review] = Field(default_factory=list)


class CartItem(BaseModel):
    user: str = Field(..., description="Owner user id")
    product_id: str = Field(..., description="Product document id as string")
    quantity: int = Field(1, ge=1, description="Quantity of the product")


class OrderItem(BaseModel):
    product: str = Field(..., description="Product id")
    name: str
    price: float = Field(..., ge=0, description="Unit price at purchase time")
    quantity: int = Field(..., ge=1)


class Order(BaseModel):
    user: str = Field(..., description="Buyer user id")
    order_items: List[OrderItem] = Field(..., description="Items purchased")
    subtotal: float = Field(..., ge=0)
    tax: float = Field(..., ge=0)
    total: float = Field(..., ge=0)
    currency: str = Field("USD")
    status: str = Field("processing")


class Favorite(BaseModel):
    product_id: str
    product_name: str
    product_image: Optional[Image] = None
    added_at: datetime


# Request bodies

class TypeIn(BaseModel):
    nom: str
    is_active: bool = True


class CategoryIn(BaseModel):
    category_name: str
    type: str
    is_active: bool = True


class ProductIn(BaseModel):
    name: str
    description: str
    price: float
    stock: int
    type: str
    category: str
    images: List[Image] = Field(default_factory=list)
    is_active: bool = True


class ReviewData(BaseModel):
    rating: Optional[float | str] = None
    comment: Optional[str] = None
    productId: Optional[str] = None


class ReviewRequest(BaseModel):
    reviewData: ReviewData


class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1, le=100)


class IdModel(BaseModel):
    id: str


class FavoriteRequest(BaseModel):
    productId: str
    productName: Optional[str] = None
    productImage: Optional[Image] = None
    action: Literal["add", "remove", "toggle"] = "toggle"
