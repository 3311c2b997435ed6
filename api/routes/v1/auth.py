"""
api/routes/v1/auth.py -- Registration and login REST endpoints.

Routes:
  POST /api/v1/auth/register  -- create a user account; 201 + token
  POST /api/v1/auth/login     -- email/password login; 200 + fresh token

Security:
  Both routes are rate-limited per client address (LOGIN_RATE_LIMIT,
  REGISTER_RATE_LIMIT).
  AuthService.login() equalizes timing across unknown email, inactive account
  and wrong password -- use it, never inline the store lookup here.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from api.limiter import limiter
from api.models import AccountResponse, AuthResponse, LoginRequest, RegisterRequest
from auth.models import AccountView
from auth.service import AuthService
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST /api/v1/auth/register: public -- rate-limited
# - POST /api/v1/auth/login:    public -- rate-limited
router = APIRouter()


@limiter.limit(_settings.register_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> AuthResponse:
    """Create a user account and log it in.

    409 if the email (case-insensitive) or username is already taken.
    """
    service: AuthService = request.app.state.auth_service
    view, token = service.register(body.to_registration())
    response.headers["Cache-Control"] = "no-store"
    return _auth_response(request, view, token)


@limiter.limit(_settings.login_rate_limit)  # brute-force mitigation
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, response: Response, body: LoginRequest) -> AuthResponse:
    """Exchange email and password for a bearer token.

    Wrong email, wrong password and deactivated account all produce the same
    401 {"error": "Invalid email or password"}.
    """
    service: AuthService = request.app.state.auth_service
    view, token = service.login(body.email, body.password)
    response.headers["Cache-Control"] = "no-store"
    return _auth_response(request, view, token)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _auth_response(request: Request, view: AccountView, token: str) -> AuthResponse:
    return AuthResponse(
        token=token,
        token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
        expires_in=request.app.state.token_codec.ttl_seconds,
        user=AccountResponse.from_view(view),
    )
