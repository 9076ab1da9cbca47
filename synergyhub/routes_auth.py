"""
synergyhub/routes_auth.py

Registration, login and the current-user endpoint.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from synergyhub import config
from synergyhub.auth_context import (
    AuthContext,
    create_access_token,
    hash_password,
    require_auth_context,
    verify_password,
)
from synergyhub.db import commit, get_db, rollback
from synergyhub.models import User
from synergyhub.repository import create_user, get_user, get_user_business_ids, get_user_credentials
from synergyhub.schemas_members import LoginRequest, RegisterRequest, TokenResponse

router = APIRouter(prefix="/auth", tags=["auth"])


def _user_payload(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "default_business_id": user.default_business_id,
    }


def _token_for(user: User) -> str:
    return create_access_token({"sub": str(user.id), "email": user.email})


@router.post("/register", response_model=TokenResponse)
def register(req: RegisterRequest, conn: Connection = Depends(get_db)) -> TokenResponse:
    if get_user_credentials(conn, req.email):
        raise HTTPException(status_code=400, detail="Email already registered")

    try:
        user = create_user(conn, req.email, hash_password(req.password), req.name)
        commit(conn)
    except IntegrityError as e:
        rollback(conn)
        print(f"[AUTH] IntegrityError on register: {e.__class__.__name__}")
        raise HTTPException(status_code=400, detail="Email already registered")

    print(f"[AUTH] Registered user_id={user.id}")
    return TokenResponse(access_token=_token_for(user), user=_user_payload(user))


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, conn: Connection = Depends(get_db)) -> TokenResponse:
    row = get_user_credentials(conn, req.email)
    if not row:
        print("[AUTH] Login failed: user not found by email")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not verify_password(req.password, row.get("password_hash") or ""):
        print(f"[AUTH] Login failed: bad password for user_id={row['id']}")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    user = get_user(conn, row["id"])
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account inactive")

    if config.IS_DEV:
        print(f"[AUTH] Login ok: user_id={user.id}")
    return TokenResponse(access_token=_token_for(user), user=_user_payload(user))


@router.get("/me")
def me(ctx: AuthContext = Depends(require_auth_context), conn: Connection = Depends(get_db)) -> Dict[str, Any]:
    user = get_user(conn, ctx.user_id)
    payload = _user_payload(user)
    payload["permissions"] = user.permissions
    payload["business_ids"] = get_user_business_ids(conn, user.id)
    return payload
