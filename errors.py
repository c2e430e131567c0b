"""
API error taxonomy and the uniform `{success: false, message, code}` envelope.

Business code raises `ApiError`; the handlers installed on the app render it.
Client errors are never reported; store, timeout and unexpected failures are
sent to `observability.capture_exception` with their context.
"""
from contextlib import contextmanager
from typing import Any, Optional

import pymongo
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import (
    ConnectionFailure,
    ExecutionTimeout,
    NetworkTimeout,
    PyMongoError,
    ServerSelectionTimeoutError,
    WTimeoutError,
)

from config import get_settings
from observability import capture_exception


INVALID_ID = "INVALID_ID"
VALIDATION_ERROR = "VALIDATION_ERROR"
MISSING_RATING = "MISSING_RATING"
INVALID_RATING = "INVALID_RATING"
COMMENT_TOO_SHORT = "COMMENT_TOO_SHORT"
COMMENT_TOO_LONG = "COMMENT_TOO_LONG"
INVALID_COMMENT_CONTENT = "INVALID_COMMENT_CONTENT"
AUTH_FAILED = "AUTH_FAILED"
FORBIDDEN = "FORBIDDEN"
PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
USER_NOT_FOUND = "USER_NOT_FOUND"
TYPE_NOT_FOUND = "TYPE_NOT_FOUND"
ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
PRODUCT_INACTIVE = "PRODUCT_INACTIVE"
PRODUCT_ID_MISMATCH = "PRODUCT_ID_MISMATCH"
TYPE_LIMIT_REACHED = "TYPE_LIMIT_REACHED"
CART_EMPTY = "CART_EMPTY"
INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
REVIEW_CONFLICT = "REVIEW_CONFLICT"
DB_CONNECTION_ERROR = "DB_CONNECTION_ERROR"
TIMEOUT = "TIMEOUT"
INTERNAL_ERROR = "INTERNAL_ERROR"

STATUS_BY_CODE = {
    INVALID_ID: 400,
    VALIDATION_ERROR: 400,
    MISSING_RATING: 400,
    INVALID_RATING: 400,
    COMMENT_TOO_SHORT: 400,
    COMMENT_TOO_LONG: 400,
    INVALID_COMMENT_CONTENT: 400,
    AUTH_FAILED: 401,
    FORBIDDEN: 403,
    PRODUCT_NOT_FOUND: 404,
    USER_NOT_FOUND: 404,
    TYPE_NOT_FOUND: 404,
    ITEM_NOT_FOUND: 404,
    PRODUCT_INACTIVE: 400,
    PRODUCT_ID_MISMATCH: 400,
    TYPE_LIMIT_REACHED: 400,
    CART_EMPTY: 400,
    INSUFFICIENT_STOCK: 409,
    REVIEW_CONFLICT: 409,
    DB_CONNECTION_ERROR: 503,
    TIMEOUT: 504,
    INTERNAL_ERROR: 500,
}

GENERIC_MESSAGES = {
    DB_CONNECTION_ERROR: "Service temporarily unavailable, please retry",
    TIMEOUT: "Request timeout",
    INTERNAL_ERROR: "An unexpected error occurred",
}


class ApiError(Exception):
    def __init__(self, code: str, message: str, status_code: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code or STATUS_BY_CODE.get(code, 400)
        self.details = details

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500

    def __repr__(self):
        return f"ApiError({self.code!r}, {self.message!r})"


def invalid_id(field: str, value: Any) -> ApiError:
    return ApiError(INVALID_ID, f"Invalid {field} format: {value!r}", details={"field": field})


def validation_error(field: str, message: str, code: str = VALIDATION_ERROR) -> ApiError:
    return ApiError(code, message, details={"field": field})


def not_found(code: str, message: str) -> ApiError:
    return ApiError(code, message)


def db_unavailable(message: str = "Database unavailable") -> ApiError:
    return ApiError(DB_CONNECTION_ERROR, message)


def _classify(exc: PyMongoError) -> str:
    if isinstance(exc, ServerSelectionTimeoutError):
        return DB_CONNECTION_ERROR
    if isinstance(exc, (ExecutionTimeout, NetworkTimeout, WTimeoutError)) or getattr(exc, "timeout", False):
        return TIMEOUT
    if isinstance(exc, ConnectionFailure):
        return DB_CONNECTION_ERROR
    return INTERNAL_ERROR


@contextmanager
def store_errors(
    operation: str,
    user_id: Optional[str] = None,
    target_id: Optional[str] = None,
    timeout: Optional[float] = None,
):
    """Run store calls under a time budget and translate driver failures into ApiError."""
    try:
        if timeout is not None:
            with pymongo.timeout(timeout):
                yield
        else:
            yield
    except PyMongoError as exc:
        code = _classify(exc)
        capture_exception(exc, operation, user_id=user_id, target_id=target_id, code=code)
        raise ApiError(code, GENERIC_MESSAGES[code], details=str(exc)) from exc


def error_body(code: str, message: str, details: Any = None) -> dict:
    body = {"success": False, "message": message, "code": code}
    if details is not None and not get_settings().is_production:
        body["details"] = details
    return body


async def api_error_handler(request: Request, exc: ApiError):
    # Server-side details are diagnostic; client errors carry field info in every environment
    if exc.is_server_error:
        body = error_body(exc.code, exc.message, exc.details)
    else:
        body = {"success": False, "message": exc.message, "code": exc.code}
        if exc.details is not None:
            body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Invalid parameters", "code": VALIDATION_ERROR, "details": errors},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    capture_exception(exc, f"{request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=error_body(INTERNAL_ERROR, GENERIC_MESSAGES[INTERNAL_ERROR], repr(exc)),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
