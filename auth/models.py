"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors tasks/models.py
-- dataclasses own domain shape; stores and services do the work.

Layer rule: no imports from api/ or tasks/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered account, as stored.

    hashed_password is the bcrypt hash. It never leaves the auth layer:
    everything handed to routes is a PublicUser.
    """

    username: str
    email: str
    hashed_password: str
    id: int | None = None
    created_at: str | None = None
    last_login: str | None = None


@dataclass
class PublicUser:
    """Safe projection of a User -- the only user shape that reaches clients."""

    id: int
    username: str
    email: str
    created_at: str | None = None


@dataclass
class SessionRecord:
    """A server-side session.

    token_hash is HMAC-SHA256(SECRET_KEY, raw_token). The raw token lives only
    in the client's cookie; a leaked session table cannot be replayed.
    expires_at is a UNIX timestamp (float seconds).
    """

    token_hash: str
    user_id: int
    created_at: float
    expires_at: float
