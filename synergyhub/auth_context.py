"""
synergyhub/auth_context.py

Shared authentication primitives for FastAPI dependency injection.

Contains:
- AuthContext: the authenticated caller (identity only, no business role)
- require_auth_context: FastAPI dependency for auth enforcement
- hash_password / verify_password / create_access_token / verify_token

Business-scoped roles are resolved per request in dependencies.py; the token
never carries a role.
"""

from __future__ import annotations

import hashlib
import time
from typing import Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.engine import Connection

from synergyhub import config
from synergyhub.db import get_db
from synergyhub.repository import get_user

# Security scheme for HTTPBearer
security = HTTPBearer()


# ---------------------------------------------------------
# Passwords and tokens
# ---------------------------------------------------------
def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def verify_password(password: str, password_hash: str) -> bool:
    return hash_password(password) == password_hash


def create_access_token(data: dict) -> str:
    payload = dict(data)
    now = int(time.time())
    payload.setdefault("iat", now)
    payload.setdefault("exp", now + config.ACCESS_TOKEN_MINUTES * 60)
    return jwt.encode(payload, config.SECRET_KEY, algorithm=config.ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify JWT access token and return decoded payload.

    Raises:
        HTTPException(401): If token is expired or invalid
    """
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


# ---------------------------------------------------------
# AuthContext
# ---------------------------------------------------------
class AuthContext(BaseModel):
    """
    Authenticated caller derived from server-side JWT verification.
    The only source of truth for user_id in protected endpoints; never trust
    a user id from request bodies for "who is calling".
    """
    user_id: int
    email: str
    name: Optional[str] = None


def require_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    conn: Connection = Depends(get_db),
) -> AuthContext:
    """
    Auth dependency for protected routes.

    Raises:
        HTTPException(401): token invalid/expired, or user not found
        HTTPException(403): user inactive
    """
    payload = verify_token(credentials.credentials)
    user_id = payload.get("sub")

    if not user_id:
        print("[AUTH] Missing user_id in token payload")
        raise HTTPException(status_code=401, detail="Invalid token payload")

    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token payload")

    user = get_user(conn, user_id)
    if user is None:
        print(f"[AUTH] User not found: user_id={user_id}")
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        print(f"[AUTH] Inactive user attempted access: user_id={user_id}")
        raise HTTPException(status_code=403, detail="Account inactive")

    if config.IS_DEV:
        print(f"[AUTH] Authenticated: user_id={user.id}")

    return AuthContext(user_id=user.id, email=user.email, name=user.name)
