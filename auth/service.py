"""
auth/service.py -- Login, logout, registration and per-request session hydration.

AuthContext is built once per request (by the hydration middleware in
api/main.py) and passed explicitly to everything that needs the caller's
identity. There is no module-level "current user": two concurrent requests
never share identity state.

State machine per request:
    Anonymous --login()--> Authenticated --logout() / session gone--> Anonymous

Error policy: every method either returns a value or raises a core.errors
ApiError. Rendering is the API boundary's job.

Credential handling:
  - login() answers "Invalid email or password." for an unknown email and for
    a wrong password alike, and runs one bcrypt verification on both paths so
    timing does not separate them either.
  - Passwords are validated and hashed in their sanitized form, on both
    register and login, so the two always agree.
  - Plaintext passwords, hashes and raw tokens are never logged.

Layer rule: no imports from api/ or tasks/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from sqlalchemy.exc import IntegrityError

from auth.models import PublicUser, User
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import burn_password_check, hash_password, verify_password
from core.errors import BadRequest, InvalidCredentials, NotFound, Unauthorized, ValidationFailed
from core.validation import Validator

logger = logging.getLogger("tasknest.auth")

_USERNAME_RULES = "required|min:3|max:50"
_PASSWORD_RULES = "required|min:6|max:255|password_strength"


@dataclass
class AuthContext:
    """Identity of one request.

    token        -- the session token the request presented (None if absent
                    or no longer valid).
    user         -- safe projection of the authenticated user, or None.
    issued_token -- a token minted during this request; the route writes it
                    to the cookie.
    clear_cookie -- the presented cookie is stale and must be expired on the
                    response.
    """

    token: Optional[str] = None
    user: Optional[PublicUser] = None
    issued_token: Optional[str] = None
    clear_cookie: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def current_user(self) -> Optional[PublicUser]:
        return self.user

    def _sign_out(self) -> None:
        self.token = None
        self.user = None
        self.issued_token = None
        self.clear_cookie = True


class AuthService:
    """Orchestrates Validator, password hashing, SessionStore and UserStore."""

    def __init__(self, users: UserStore, sessions: SessionStore) -> None:
        self.users = users
        self.sessions = sessions
        self.validator = Validator(unique_lookup=users.value_exists)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, payload: Mapping[str, Any]) -> int:
        """Create an account and return its id. Does not log the user in."""
        data = self.validator.validate(
            {
                "username": (payload.get("username"), _USERNAME_RULES),
                "email": (payload.get("email"), "required|email|max:255|unique:users,email"),
                "password": (payload.get("password"), _PASSWORD_RULES),
            }
        ).raise_for_errors()

        user = User(
            username=data["username"],
            email=data["email"],
            hashed_password=hash_password(data["password"]),
        )
        try:
            user_id = self.users.create_user(user)
        except IntegrityError as exc:
            # Lost a race with a concurrent registration of the same email.
            raise ValidationFailed({"email": ["Email already exists."]}) from exc
        logger.info("Registered user_id=%s", user_id)
        return user_id

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def login(self, ctx: AuthContext, payload: Mapping[str, Any]) -> PublicUser:
        """Verify credentials, rotate the session, and return the safe user projection.

        The token presented with the request (if any) is destroyed and a fresh
        one issued, so a token planted before login never becomes authenticated.
        """
        data = self.validator.validate(
            {
                "email": (payload.get("email"), "required|email"),
                "password": (payload.get("password"), "required"),
            }
        ).raise_for_errors()

        user = self.users.get_by_email(data["email"])
        if user is None:
            burn_password_check(data["password"])
            logger.info("Failed login attempt (unknown account)")
            raise InvalidCredentials()
        if not verify_password(data["password"], user.hashed_password):
            logger.info("Failed login attempt for user_id=%s", user.id)
            raise InvalidCredentials()

        token = self.sessions.create(user.id, replaces=ctx.token)
        self.users.update_last_login(user.id)
        ctx.token = token
        ctx.issued_token = token
        ctx.clear_cookie = False
        ctx.user = self.users.get_public(user.id)
        logger.info("Login succeeded for user_id=%s", user.id)
        return ctx.user

    def logout(self, ctx: AuthContext) -> None:
        """Destroy the current session and forget the identity."""
        if ctx.token:
            self.sessions.destroy(ctx.token)
        if ctx.user is not None:
            logger.info("Logout for user_id=%s", ctx.user.id)
        ctx._sign_out()

    # ------------------------------------------------------------------
    # Hydration
    # ------------------------------------------------------------------

    def hydrate(self, token: Optional[str]) -> AuthContext:
        """Resolve a cookie token into an AuthContext.

        Unknown or expired tokens, and sessions whose user row is gone, yield
        an anonymous context flagged to clear the stale cookie. The orphaned
        session is destroyed on sight.
        """
        ctx = AuthContext(token=token or None)
        if not token:
            return ctx

        user_id = self.sessions.resolve(token)
        if user_id is None:
            ctx._sign_out()
            return ctx

        user = self.users.get_public(user_id)
        if user is None:
            self.sessions.destroy(token)
            logger.info("Purged session of deleted user_id=%s", user_id)
            ctx._sign_out()
            return ctx

        ctx.user = user
        return ctx

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def update_profile(self, ctx: AuthContext, payload: Mapping[str, Any]) -> PublicUser:
        """Update any subset of username, email and password.

        A password change ends every session of the user and issues a new one
        for the caller.
        """
        user = _require_user(ctx)

        fields: dict[str, tuple[Any, str]] = {}
        if "username" in payload:
            fields["username"] = (payload["username"], _USERNAME_RULES)
        if "email" in payload:
            fields["email"] = (payload["email"], f"required|email|max:255|unique:users,email,except_id:{user.id}")
        if payload.get("password"):
            fields["password"] = (payload["password"], _PASSWORD_RULES)
        if not fields:
            raise BadRequest("No data provided for update.")

        data = self.validator.validate(fields).raise_for_errors()
        updates = {key: data[key] for key in ("username", "email") if key in data}
        if "password" in data:
            updates["hashed_password"] = hash_password(data["password"])

        try:
            updated = self.users.update_user(user.id, **updates)
        except IntegrityError as exc:
            raise ValidationFailed({"email": ["Email already exists."]}) from exc
        if not updated:
            raise NotFound("User not found.")

        if "hashed_password" in updates:
            revoked = self.sessions.destroy_user(user.id)
            token = self.sessions.create(user.id)
            ctx.token = token
            ctx.issued_token = token
            logger.info("Password changed for user_id=%s; %d session(s) revoked", user.id, revoked)

        ctx.user = self.users.get_public(user.id)
        return ctx.user

    def delete_account(self, ctx: AuthContext) -> None:
        """Delete the caller's account, everything it owns, and all its sessions."""
        user = _require_user(ctx)
        if not self.users.delete_user(user.id):
            raise NotFound("User not found.")
        self.sessions.destroy_user(user.id)
        logger.info("Deleted account user_id=%s", user.id)
        ctx._sign_out()


def _require_user(ctx: AuthContext) -> PublicUser:
    if ctx.user is None:
        raise Unauthorized()
    return ctx.user
