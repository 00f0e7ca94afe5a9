"""
api/routes/v1/users.py -- The caller's own account.

Routes:
  GET    /users/me  -- profile of the logged-in user
  PUT    /users/me  -- update any subset of username, email, password
  DELETE /users/me  -- delete the account with all its folders, tasks and sessions

There is no way to address another user's account: the id always comes from
the session, never from the URL.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Request

from api.models import Envelope, UserOut, UserResponse
from api.requests import json_body, require_payload
from auth.dependencies import get_auth_context, get_auth_service, require_auth
from auth.models import PublicUser
from auth.service import AuthContext

router = APIRouter(prefix="/users", dependencies=[Depends(require_auth)])


@router.get("/me", response_model=UserResponse)
def get_me(user: PublicUser = Depends(require_auth)) -> UserResponse:
    return UserResponse(user=UserOut.from_domain(user))


@router.put("/me", response_model=UserResponse)
def update_me(
    request: Request,
    payload: Optional[dict[str, Any]] = Depends(json_body),
    ctx: AuthContext = Depends(get_auth_context),
) -> UserResponse:
    """Update the profile. A password change signs out every other session."""
    body = require_payload(payload, "No data provided for update.")
    user = get_auth_service(request).update_profile(ctx, body)
    return UserResponse(message="User updated successfully.", user=UserOut.from_domain(user))


@router.delete("/me", response_model=Envelope)
def delete_me(request: Request, ctx: AuthContext = Depends(get_auth_context)) -> Envelope:
    get_auth_service(request).delete_account(ctx)
    return Envelope(message="User account and all associated data deleted successfully.")
