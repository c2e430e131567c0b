"""
Input sanitization and validation.

Every value coming from a query string or a request body passes through one of
these helpers before it reaches business code. Failures raise `ApiError` with
a stable code naming the offending field.
"""
import html
import math
import re
from dataclasses import dataclass
from typing import Any, Optional

import bleach
from bson import ObjectId

from errors import (
    COMMENT_TOO_LONG,
    COMMENT_TOO_SHORT,
    INVALID_COMMENT_CONTENT,
    INVALID_RATING,
    MISSING_RATING,
    VALIDATION_ERROR,
    ApiError,
    invalid_id,
    validation_error,
)

OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")
RAW_TEXT_TAGS = {"script", "style"}
RAW_TEXT_RE = re.compile(r"<(script|style)>.*?</\1>", re.IGNORECASE | re.DOTALL)

COMMENT_MIN = 10
COMMENT_MAX = 1000
KEYWORD_MAX = 100
PRICE_MAX = 999999
PAGE_MAX = 1000


def parse_object_id(value: Any, field: str = "id") -> ObjectId:
    if not isinstance(value, str) or not OBJECT_ID_RE.match(value):
        raise invalid_id(field, value)
    return ObjectId(value)


def strip_html(value: str) -> str:
    """Reduce markup to plain text: no tags, no attributes, no script or style bodies."""
    # bleach keeps script/style as balanced elements so their bodies can be cut
    cleaned = bleach.clean(value, tags=RAW_TEXT_TAGS, attributes={}, strip=True, strip_comments=True)
    cleaned = RAW_TEXT_RE.sub("", cleaned)
    return html.unescape(cleaned).strip()


def sanitize_text(value: Any, field: str, max_length: int, min_length: int = 0) -> str:
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise validation_error(field, f"{field} must be a string")
    text = strip_html(value.strip())
    if len(text) < min_length:
        raise validation_error(field, f"{field} must be at least {min_length} characters")
    if len(text) > max_length:
        raise validation_error(field, f"{field} must be at most {max_length} characters")
    return text


def to_number(value: Any, field: str, minimum: float, maximum: float, code: str = VALIDATION_ERROR) -> float:
    """Coerce a string or number into a finite float within [minimum, maximum]."""
    if isinstance(value, bool):
        number = math.nan
    else:
        try:
            number = float(value)
        except (TypeError, ValueError):
            number = math.nan
    if not math.isfinite(number) or number < minimum or number > maximum:
        raise ApiError(
            code,
            f"{field} must be a number between {minimum:g} and {maximum:g}, got {value!r}",
            details={"field": field},
        )
    return number


def round_to_step(value: float, step: float) -> float:
    """Round half up to the nearest multiple of `step` (0.5, 0.1, ...)."""
    per_unit = round(1 / step)
    return math.floor(value * per_unit + 0.5) / per_unit


def validate_rating(value: Any) -> float:
    """Accept any finite number in [1, 5] and snap it to the nearest 0.5."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise validation_error("rating", "Rating is required", MISSING_RATING)
    number = to_number(value, "rating", 1, 5, INVALID_RATING)
    return round_to_step(number, 0.5)


def validate_comment(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise validation_error("comment", "Comment is required", COMMENT_TOO_SHORT)
    raw = value.strip()
    if len(raw) < COMMENT_MIN:
        raise validation_error("comment", f"Comment must be at least {COMMENT_MIN} characters", COMMENT_TOO_SHORT)
    if len(raw) > COMMENT_MAX:
        raise validation_error("comment", f"Comment must be at most {COMMENT_MAX} characters", COMMENT_TOO_LONG)
    text = strip_html(raw)
    if len(text) < COMMENT_MIN:
        raise validation_error(
            "comment",
            f"Comment must contain at least {COMMENT_MIN} characters of plain text",
            INVALID_COMMENT_CONTENT,
        )
    if len(text) > COMMENT_MAX:
        raise validation_error("comment", f"Comment must be at most {COMMENT_MAX} characters", COMMENT_TOO_LONG)
    return text


@dataclass
class ProductFilters:
    type: str
    keyword: Optional[str] = None
    category: Optional[ObjectId] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    rating_min: Optional[float] = None
    page: int = 1


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_product_filters(
    type: Any,
    keyword: Any = None,
    category: Any = None,
    price_min: Any = None,
    price_max: Any = None,
    rating_min: Any = None,
    page: Any = None,
) -> ProductFilters:
    if _blank(type):
        raise validation_error("type", "Type parameter is required")
    filters = ProductFilters(type=sanitize_text(type, "type", 50, 1))

    if not _blank(keyword):
        filters.keyword = sanitize_text(keyword, "keyword", KEYWORD_MAX) or None
    if not _blank(category):
        filters.category = parse_object_id(category.strip() if isinstance(category, str) else category, "category")
    if not _blank(price_min):
        filters.price_min = to_number(price_min, "price[gt]", 0, PRICE_MAX)
    if not _blank(price_max):
        filters.price_max = to_number(price_max, "price[lt]", 0, PRICE_MAX)
    if filters.price_min is not None and filters.price_max is not None and filters.price_min > filters.price_max:
        raise validation_error("price", "Minimum price must not exceed maximum price")
    if not _blank(rating_min):
        rating = to_number(rating_min, "ratings[gte]", 0, 5)
        if (rating * 2) % 1 != 0:
            raise validation_error("ratings[gte]", f"ratings[gte] must be a multiple of 0.5, got {rating_min!r}")
        filters.rating_min = rating
    if not _blank(page):
        number = to_number(page, "page", 1, PAGE_MAX)
        if number != int(number):
            raise validation_error("page", f"page must be an integer, got {page!r}")
        filters.page = int(number)
    return filters
