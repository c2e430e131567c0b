"""
Request principal resolution.

Sessions are issued elsewhere; this module only looks up the bearer token in
the `session` collection and hands the resulting Principal to route handlers,
which pass it explicitly into every operation that needs it.
"""
from dataclasses import dataclass
from datetime import timezone
from typing import Optional

from fastapi import Depends, Header

from database import get_db, now
from errors import AUTH_FAILED, FORBIDDEN, USER_NOT_FOUND, ApiError, store_errors


@dataclass(frozen=True)
class Principal:
    user_id: str
    email: Optional[str] = None
    role: str = "user"


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def resolve_principal(db, token: Optional[str]) -> Principal:
    if not token:
        raise ApiError(AUTH_FAILED, "Authentication required")
    with store_errors("auth.resolve_principal"):
        session = db["session"].find_one({"token": token})
        if not session:
            raise ApiError(AUTH_FAILED, "Invalid session")
        expires_at = session.get("expires_at")
        if expires_at is not None:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if expires_at <= now():
                raise ApiError(AUTH_FAILED, "Session expired")
        user = db["user"].find_one({"_id": session["user_id"]})
    if not user:
        raise ApiError(USER_NOT_FOUND, "User not found")
    return Principal(user_id=str(user["_id"]), email=user.get("email"), role=user.get("role", "user"))


def get_current_user(authorization: Optional[str] = Header(None), db=Depends(get_db)) -> Principal:
    return resolve_principal(db, _bearer_token(authorization))


def require_admin(user: Principal = Depends(get_current_user)) -> Principal:
    if user.role != "admin":
        raise ApiError(FORBIDDEN, "Admin access required")
    return user
