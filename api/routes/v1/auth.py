"""
api/routes/v1/auth.py -- Registration, login, logout and session probe.

Routes:
  POST /register     -- create an account (does not log in)
  POST /login        -- password login; rotates the session and sets the cookie
  POST /logout       -- destroys the session; cookie expired (requires auth)
  GET  /check-auth   -- reports whether the caller has a live session (public)

Security:
  Login answers "Invalid email or password." for both an unknown email and a
  wrong password; AuthService.login() equalizes timing.
  Cache-Control: no-store on login responses.
  The session cookie itself is written by the hydration middleware from
  AuthContext.issued_token / clear_cookie, never here.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Request, Response

from api.models import CheckAuthResponse, Envelope, LoginResponse, UserOut
from api.requests import json_body, require_payload
from auth.dependencies import get_auth_context, get_auth_service, require_auth
from auth.service import AuthContext

# Auth policy:
# - POST /register:    public
# - POST /login:       public
# - POST /logout:      requires auth (require_auth)
# - GET  /check-auth:  public -- answers for anonymous callers too
router = APIRouter()


@router.post("/register", status_code=201, response_model=Envelope)
def register(request: Request, payload: Optional[dict[str, Any]] = Depends(json_body)) -> Envelope:
    """Create an account. The client logs in separately afterwards."""
    body = require_payload(payload, "Registration requires a JSON payload.")
    get_auth_service(request).register(body)
    return Envelope(message="Registration successful. Please log in.")


@router.post("/login", response_model=LoginResponse)
def login(
    request: Request,
    response: Response,
    payload: Optional[dict[str, Any]] = Depends(json_body),
    ctx: AuthContext = Depends(get_auth_context),
) -> LoginResponse:
    """Authenticate with email and password and start a new session."""
    body = require_payload(payload, "Login requires a JSON payload.")
    user = get_auth_service(request).login(ctx, body)
    response.headers["Cache-Control"] = "no-store"
    return LoginResponse(user=UserOut.from_domain(user))


@router.post("/logout", response_model=Envelope, dependencies=[Depends(require_auth)])
def logout(request: Request, ctx: AuthContext = Depends(get_auth_context)) -> Envelope:
    get_auth_service(request).logout(ctx)
    return Envelope(message="Logged out successfully.")


@router.get("/check-auth", response_model=CheckAuthResponse)
def check_auth(ctx: AuthContext = Depends(get_auth_context)) -> CheckAuthResponse:
    user = UserOut.from_domain(ctx.user) if ctx.is_authenticated else None
    return CheckAuthResponse(authenticated=ctx.is_authenticated, user=user)
