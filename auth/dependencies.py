"""
auth/dependencies.py -- FastAPI Depends() helpers: the access guard.

get_auth_context() returns the AuthContext the hydration middleware attached
to request.state. If the middleware did not run (e.g. a bare router mounted
in a test app) the context is hydrated lazily from the cookie.

require_auth() wraps it and raises Unauthorized (401) for anonymous requests.
require_ownership() raises NotFound (404) -- never 403 -- when a resource
belongs to someone else, so non-owners cannot tell "exists but not yours"
from "does not exist".

Layer rule: no imports from tasks/. auth/dependencies.py may import from
fastapi (Request) because it is part of the dependency injection system.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from auth.models import PublicUser
from auth.service import AuthContext, AuthService
from core.config import get_settings
from core.errors import NotFound, Unauthorized


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_auth_context(request: Request) -> AuthContext:
    """Return this request's AuthContext, hydrating it on first access."""
    ctx: Optional[AuthContext] = getattr(request.state, "auth", None)
    if ctx is None:
        token = request.cookies.get(get_settings().session_cookie_name)
        ctx = get_auth_service(request).hydrate(token)
        request.state.auth = ctx
    return ctx


def require_auth(request: Request) -> PublicUser:
    """Require an authenticated session. Raises Unauthorized (401) otherwise.

    Use as a router-level dependency:
        router = APIRouter(dependencies=[Depends(require_auth)])
    or per route:
        def route(user: PublicUser = Depends(require_auth)): ...
    """
    ctx = get_auth_context(request)
    if not ctx.is_authenticated:
        raise Unauthorized()
    return ctx.user


def require_ownership(user: PublicUser, owner_id: Optional[int], message: str = "Not Found") -> None:
    """Raise NotFound unless owner_id is the requesting user's id.

    Pass the same message the handler uses for a missing resource so both
    cases produce byte-identical responses.
    """
    if owner_id is None or owner_id != user.id:
        raise NotFound(message)
