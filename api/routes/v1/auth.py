"""
api/routes/v1/auth.py -- Registration, login, logout, and identity endpoints.

Routes:
  POST /api/v1/auth/register  -- create account; sets sid cookie; 201
  POST /api/v1/auth/login     -- password login; replaces any prior session; 200
  POST /api/v1/auth/logout    -- deletes the session if any; always clears cookie; 204
  GET  /api/v1/auth/me        -- current account (requires a live session)

Auth policy:
  register / login / logout are public. /me requires require_principal.

Error mapping lives in api/main.py exception handlers:
  ConflictError            -> 409 {"error": "Email already registered"}
  InvalidCredentialsError  -> 401 {"error": "Invalid credentials"}
  UnauthorizedError        -> 401 {"error": "Unauthorized"}
  ServiceUnavailableError  -> 503 {"error": "Service temporarily unavailable"}

Security:
  Login never reveals which of email/password was wrong.
  Cache-Control: no-store on every response that sets or clears the cookie.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.models import AccountResponse, LoginRequest, RegisterRequest
from auth.cookies import clear_session_cookie, read_session_token, set_session_cookie
from auth.dependencies import get_session_service, require_principal
from auth.models import Principal, SessionGrant
from auth.service import SessionService
from core.config import get_settings

router = APIRouter()


def _grant_response(grant: SessionGrant, status_code: int) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=AccountResponse.from_grant(grant).model_dump(by_alias=True),
    )
    set_session_cookie(resp, grant.token, grant.expires_at, secure=get_settings().is_production)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/register", response_model=AccountResponse, status_code=201)
def register(body: RegisterRequest, service: SessionService = Depends(get_session_service)) -> JSONResponse:
    """Create an account and start its session.

    profileId is always null for a new account.
    """
    grant = service.register(body.email, body.password)
    return _grant_response(grant, status_code=201)


@router.post("/auth/login", response_model=AccountResponse)
def login(body: LoginRequest, service: SessionService = Depends(get_session_service)) -> JSONResponse:
    """Authenticate with email and password.

    Any session the user already had is deleted first, so signing in here
    signs out every other browser.
    """
    grant = service.login(body.email, body.password)
    return _grant_response(grant, status_code=200)


@router.post("/auth/logout", status_code=204)
def logout(request: Request, service: SessionService = Depends(get_session_service)) -> Response:
    """End the current session. Succeeds with or without a cookie."""
    service.logout(read_session_token(request))
    resp = Response(status_code=204)
    clear_session_cookie(resp, secure=get_settings().is_production)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/me", response_model=AccountResponse)
def me(
    principal: Principal = Depends(require_principal),
    service: SessionService = Depends(get_session_service),
) -> JSONResponse:
    """Return the account behind the current session."""
    account = service.get_self(principal)
    return JSONResponse(content=AccountResponse.from_account(account).model_dump(by_alias=True))
