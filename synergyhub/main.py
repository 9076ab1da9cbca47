# ---------------------------------------------------------
# synergyhub/main.py
# SynergyHub - Business membership backend
#
# Run: uvicorn synergyhub.main:app --reload (from repo root)
#
# - FastAPI + SQLite (dev) / PostgreSQL (DATABASE_URL)
# - /auth/*                              : register, login, me
# - /businesses                          : create / list / get / delete
# - /businesses/{id}/members             : list, add, remove, change role
# - /businesses/{id}/quotas              : per-role counts and ceilings
# - /businesses/{id}/permissions         : caller's role and permissions
# - /businesses/{id}/invitations         : invite by email, list, cancel, resend
# - /invitations/{token}                 : validate (public)
# - /invitations/{token}/accept          : join with the invited role
# - /businesses/{id}/audit-logs          : membership audit trail
# - /notifications                       : caller's notifications
# ---------------------------------------------------------

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from synergyhub import config
from synergyhub.errors import MembershipError
from synergyhub.migrate import run_migrations
from synergyhub.routes_auth import router as auth_router
from synergyhub.routes_businesses import router as businesses_router
from synergyhub.routes_invitations import router as invitations_router
from synergyhub.routes_members import router as members_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    run_migrations()
    yield


# ---------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------
app = FastAPI(title="SynergyHub Backend", version="0.1", lifespan=lifespan)

# CORS configuration from config module
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS if config.IS_PROD else ["*"],  # Restrict origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MembershipError)
async def membership_error_handler(request: Request, exc: MembershipError) -> JSONResponse:
    if config.IS_DEV:
        print(f"[MEMBERSHIP] {exc.code} ({exc.status_code}) on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


app.include_router(auth_router)
app.include_router(businesses_router)
app.include_router(members_router)
app.include_router(invitations_router)


# ---------------------------------------------------------
# Routes
# ---------------------------------------------------------
@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}
