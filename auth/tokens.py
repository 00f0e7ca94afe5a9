"""
auth/tokens.py -- Password hashing, session token utilities, and the cookie helpers.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). Cost factor comes from
       Settings.bcrypt_rounds. The _DUMMY_HASH constant enables timing
       equalization in AuthService.login() so response time does not reveal
       whether an email is registered.

  Session tokens: secrets.token_urlsafe(32) gives 256 bits of entropy. The
       server stores HMAC-SHA256(SECRET_KEY, token) so lookup is O(1) and a
       leaked session table cannot be replayed. bcrypt's intentional slowness
       is unnecessary for high-entropy random tokens.

  Cookie: httpOnly, samesite=lax, secure when SECURE_COOKIES=true, max_age
       equal to the server-side session lifetime.

Layer rule: no imports from api/ or tasks/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets

import bcrypt

from core.config import get_settings

logger = logging.getLogger("tasknest.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def _password_bytes(plain: str) -> bytes:
    # bcrypt only uses the first 72 bytes; newer releases raise instead of truncating.
    return plain.encode("utf-8")[:72]


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(_password_bytes(plain), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares in constant time. A malformed hash is a mismatch,
    not an error.
    """
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        logger.warning("verify_password called with an unparseable hash")
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than later ones. Verified against whenever the email is unknown.
_DUMMY_HASH: str = hash_password("tasknest_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Spend one bcrypt verification on the dummy hash (unknown-email path)."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


def generate_session_token() -> str:
    """Return a new opaque session token (43 URL-safe chars, 256 bits)."""
    return secrets.token_urlsafe(32)


def hash_session_token(raw_token: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_token) as a hex string."""
    return hmac.new(
        _settings.secret_key.encode(),
        raw_token.encode(),
        hashlib.sha256,
    ).hexdigest()


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the server-side session lifetime.
    """
    response.set_cookie(
        _settings.session_cookie_name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=_settings.session_expire_seconds,
        path="/",
    )


def clear_session_cookie(response) -> None:
    """Expire the session cookie on the client."""
    response.delete_cookie(
        _settings.session_cookie_name,
        path="/",
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
    )
