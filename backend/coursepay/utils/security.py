"""
Authentication — JWT bearer tokens, password hashing and role guards.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Header
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash, check_password_hash

from coursepay.config import get_settings
from coursepay.database import get_db
from coursepay.errors import AuthError, PermissionDeniedError
from coursepay.models.user import User

ROLES = ("student", "university", "partner", "finance", "admin")


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


def create_access_token(user_id: int, role: str, expires_minutes: Optional[int] = None) -> str:
    """Issue a signed HS256 token carrying the user id and role."""
    settings = get_settings()
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Session expired. Please log in again.")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid authentication token")


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    """FastAPI dependency: resolve the Bearer token to an active user."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthError("Not authorized, no token")

    claims = decode_access_token(authorization.split(" ", 1)[1].strip())
    try:
        user_id = int(claims.get("sub"))
    except (TypeError, ValueError):
        raise AuthError("Invalid authentication token")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise AuthError("User no longer exists")
    return user


def require_roles(*roles: str):
    """Dependency factory restricting a route to the given roles."""
    def guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise PermissionDeniedError(f"Role '{user.role}' is not allowed to perform this action")
        return user

    return guard
