"""Password hashing and bearer token helpers."""

from __future__ import annotations

import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from healthrecord.errors import UnauthorizedError

logger = structlog.get_logger(__name__)

# Password hashing context using bcrypt
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

JWT_ALGORITHM = "HS256"
JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))


def _load_jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET")
    if secret:
        return secret
    logger.warning("jwt_secret_missing", detail="generated an ephemeral secret; tokens will not survive a restart")
    return secrets.token_urlsafe(48)


JWT_SECRET = _load_jwt_secret()

# auto_error is disabled so a missing header renders through our own message.
security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a plaintext password using a secure algorithm."""

    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    """Verify ``password`` against ``hashed`` returning ``True`` if valid."""

    try:
        return pwd_context.verify(password, hashed)
    except ValueError:
        return False


def create_access_token(
    user_id: int,
    email: str,
    *,
    expires_hours: Optional[int] = None,
) -> str:
    """Create a signed JWT carrying the user id as subject plus the email."""

    hours = expires_hours if expires_hours is not None else JWT_EXPIRE_HOURS
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "iat": now,
        "exp": now + timedelta(hours=hours),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and validate ``token`` raising :class:`UnauthorizedError` on failure."""

    try:
        data = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise UnauthorizedError("Invalid or expired token")
    try:
        data["sub"] = int(data["sub"])
    except (KeyError, TypeError, ValueError):
        raise UnauthorizedError("Invalid or expired token")
    return data


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Dict[str, Any]:
    """Resolve the bearer token on the request into its claims."""

    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("No authentication token provided")
    return decode_access_token(credentials.credentials)


def get_current_user_id(user: Dict[str, Any] = Depends(get_current_user)) -> int:
    return user["sub"]


__all__ = [
    "pwd_context",
    "JWT_ALGORITHM",
    "hash_password",
    "verify_password",
    "create_access_token",
    "decode_access_token",
    "get_current_user",
    "get_current_user_id",
]
