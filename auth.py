"""
Authentication for the TLS API.

One token model: an HS256 JWT carrying the user's id, email, name and role.
It is read from `Authorization: Bearer <token>` or from the `token` cookie.
Every capability check goes through `has_role`.
"""
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, Request

from config import JWT_ALGORITHM, JWT_EXPIRES_HOURS, JWT_SECRET

logger = logging.getLogger(__name__)

ROLE_LEVELS = {
    "user": 1,
    "moderator": 2,
    "admin": 3,
    "super_admin": 4,
}


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def verify_password(password: str, password_hash: str) -> bool:
    return hash_password(password) == password_hash


def create_access_token(user: Dict[str, Any], expires_hours: int = JWT_EXPIRES_HOURS) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user["_id"]),
        "email": user["email"],
        "name": user.get("name"),
        "role": user.get("role", "user"),
        "iat": now,
        "exp": now + timedelta(hours=expires_hours),
    }
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def has_role(user: Optional[Dict[str, Any]], required: str) -> bool:
    if not user:
        return False
    return ROLE_LEVELS.get(user.get("role"), 0) >= ROLE_LEVELS[required]


def _token_from(request: Request) -> Optional[str]:
    header = request.headers.get("authorization")
    if header:
        scheme, _, value = header.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()
    return request.cookies.get("token")


def get_current_user(request: Request) -> Dict[str, Any]:
    token = _token_from(request)
    if not token:
        raise HTTPException(status_code=401, detail="Access denied. No token provided.")
    claims = decode_token(token)
    return {
        "id": claims.get("sub"),
        "email": claims.get("email"),
        "name": claims.get("name"),
        "role": claims.get("role", "user"),
    }


def get_optional_user(request: Request) -> Optional[Dict[str, Any]]:
    """Like get_current_user, but anonymous requests get None instead of 401."""
    if not _token_from(request):
        return None
    return get_current_user(request)


def require_role(role: str):
    """Dependency factory: 401 without a valid token, 403 below `role`."""
    def dependency(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if not has_role(user, role):
            raise HTTPException(status_code=403, detail=f"Access denied. {role.replace('_', ' ').title()} role required.")
        return user
    return dependency


require_admin = require_role("admin")


def create_admin_user(db, email: str, password: str, name: str = "Administrator") -> str:
    existing = db["user"].find_one({"email": email})
    if existing:
        db["user"].update_one(
            {"_id": existing["_id"]},
            {"$set": {"role": "admin", "password_hash": hash_password(password), "updated_at": datetime.now(timezone.utc)}},
        )
        logger.info("Promoted existing user %s to admin", email)
        return str(existing["_id"])
    now = datetime.now(timezone.utc)
    result = db["user"].insert_one({
        "name": name,
        "email": email,
        "password_hash": hash_password(password),
        "role": "admin",
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    })
    logger.info("Created admin user %s", email)
    return str(result.inserted_id)


if __name__ == "__main__":
    import os
    import sys

    from database import db

    logging.basicConfig(level=logging.INFO)
    if db is None:
        sys.exit("DATABASE_URL is not set")
    email = os.getenv("ADMIN_EMAIL", "admin@tamilliteraturesociety.com")
    password = os.getenv("ADMIN_PASSWORD")
    if not password:
        sys.exit("ADMIN_PASSWORD is not set")
    print(create_admin_user(db, email, password))
