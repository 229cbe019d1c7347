from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm

from restaurant_ledger.core.config import settings
from restaurant_ledger.core.logging import get_logger, security_alert
from restaurant_ledger.core.metrics import record_login_attempt
from restaurant_ledger.core.security import authenticate_admin, create_access_token
from restaurant_ledger.schemas.auth import Token

router = APIRouter(prefix="/auth", tags=["auth"])

auth_logger = get_logger("restaurant_ledger.auth")

ADMIN_SCOPES = ["admin", "ledger:read", "ledger:write"]


def _client_ip(request: Request | None) -> str | None:
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    client = request.client
    return client.host if client else None


@router.post("/login", response_model=Token)
async def login(request: Request, form_data: OAuth2PasswordRequestForm = Depends()):
    if not authenticate_admin(form_data.username, form_data.password):
        record_login_attempt("failure")
        security_alert(
            "Failed login attempt",
            username=form_data.username,
            client_ip=_client_ip(request),
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    record_login_attempt("success")
    access = create_access_token(subject=form_data.username, extra={"scopes": ADMIN_SCOPES})
    auth_logger.info(
        "Admin authenticated",
        extra={"username": form_data.username, "client_ip": _client_ip(request)},
    )
    return {
        "access_token": access,
        "token_type": "bearer",
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }
