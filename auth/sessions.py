"""
auth/sessions.py -- Server-side session lifecycle bound to an opaque cookie token.

Pattern: Strategy. SessionStore is the interface AuthService talks to; the
backend is picked at startup from Settings.session_backend:

  MemorySessionStore   -- process-local dict behind a threading.Lock. Default.
                          Single-instance only: sessions are lost on restart
                          and are invisible to other workers.
  DatabaseSessionStore -- SQLAlchemy Core `sessions` table. Works across
                          workers and instances that share the database.

Token handling:
  create() returns the raw token exactly once (for the cookie). Both backends
  key sessions by hash_session_token(raw), never the raw value.

Expiry is fixed at creation (now + ttl). resolve() treats an expired session
as absent and deletes it; purge_expired() sweeps the rest from the background
task started in the API lifespan.

Concurrency:
  Every public method is atomic per token. The memory backend holds its lock
  for the whole read-modify-write; the database backend issues one statement
  (or one transaction) per operation. A resolve() racing a destroy() of the
  same token sees either the live session or nothing, never a half state.

Layer rule: no imports from api/ or tasks/.
"""

from __future__ import annotations

import abc
import logging
import threading
import time
from typing import Callable, Optional

from sqlalchemy import Column, Float, Integer, MetaData, String, Table
from sqlalchemy.engine import Engine

from auth.models import SessionRecord
from auth.tokens import generate_session_token, hash_session_token

logger = logging.getLogger("tasknest.sessions")

Clock = Callable[[], float]


class SessionStore(abc.ABC):
    """Interface every session backend implements."""

    def __init__(self, ttl_seconds: int, clock: Clock = time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def create(self, user_id: int, replaces: Optional[str] = None) -> str:
        """Issue a new token for user_id and return it.

        replaces is the token the client presented, if any. It is destroyed
        first so a pre-planted token can never become an authenticated one
        (session fixation).
        """
        if replaces:
            self.destroy(replaces)
        raw = generate_session_token()
        now = self._clock()
        record = SessionRecord(
            token_hash=hash_session_token(raw),
            user_id=user_id,
            created_at=now,
            expires_at=now + self.ttl_seconds,
        )
        self._insert(record)
        logger.info("Session created for user_id=%s", user_id)
        return raw

    def resolve(self, token: str) -> Optional[int]:
        """Return the user_id bound to token, or None if unknown or expired."""
        if not token:
            return None
        return self._resolve_hash(hash_session_token(token))

    def destroy(self, token: str) -> bool:
        """Delete the session for token. Returns True if one existed."""
        if not token:
            return False
        return self._delete_hash(hash_session_token(token))

    @abc.abstractmethod
    def destroy_user(self, user_id: int) -> int:
        """Delete every session of user_id. Returns the number removed."""

    @abc.abstractmethod
    def purge_expired(self) -> int:
        """Delete all expired sessions. Returns the number removed."""

    def close(self) -> None:
        pass

    @abc.abstractmethod
    def _insert(self, record: SessionRecord) -> None: ...

    @abc.abstractmethod
    def _resolve_hash(self, token_hash: str) -> Optional[int]: ...

    @abc.abstractmethod
    def _delete_hash(self, token_hash: str) -> bool: ...


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class MemorySessionStore(SessionStore):
    """Process-local session store. Safe for concurrent use from threadpool workers."""

    def __init__(self, ttl_seconds: int, clock: Clock = time.time) -> None:
        super().__init__(ttl_seconds, clock)
        self._sessions: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def _insert(self, record: SessionRecord) -> None:
        with self._lock:
            self._sessions[record.token_hash] = record

    def _resolve_hash(self, token_hash: str) -> Optional[int]:
        with self._lock:
            record = self._sessions.get(token_hash)
            if record is None:
                return None
            if record.expires_at <= self._clock():
                del self._sessions[token_hash]
                return None
            return record.user_id

    def _delete_hash(self, token_hash: str) -> bool:
        with self._lock:
            return self._sessions.pop(token_hash, None) is not None

    def destroy_user(self, user_id: int) -> int:
        with self._lock:
            doomed = [h for h, r in self._sessions.items() if r.user_id == user_id]
            for token_hash in doomed:
                del self._sessions[token_hash]
        return len(doomed)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            doomed = [h for h, r in self._sessions.items() if r.expires_at <= now]
            for token_hash in doomed:
                del self._sessions[token_hash]
        return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


# ---------------------------------------------------------------------------
# Database backend
# ---------------------------------------------------------------------------

_metadata = MetaData()

_sessions = Table(
    "sessions",
    _metadata,
    Column("token_hash", String(64), primary_key=True),  # HMAC-SHA256 hex
    Column("user_id", Integer, nullable=False, index=True),
    Column("created_at", Float, nullable=False),
    Column("expires_at", Float, nullable=False, index=True),
)


class DatabaseSessionStore(SessionStore):
    """Session store backed by the shared SQL database.

    Usage:
        sessions = DatabaseSessionStore(engine, ttl_seconds=86400)
        token = sessions.create(user_id)
        sessions.resolve(token)  # -> user_id
    """

    def __init__(self, engine: Engine, ttl_seconds: int, clock: Clock = time.time) -> None:
        super().__init__(ttl_seconds, clock)
        self.engine = engine
        _metadata.create_all(self.engine)

    def _insert(self, record: SessionRecord) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                _sessions.insert().values(
                    token_hash=record.token_hash,
                    user_id=record.user_id,
                    created_at=record.created_at,
                    expires_at=record.expires_at,
                )
            )

    def _resolve_hash(self, token_hash: str) -> Optional[int]:
        now = self._clock()
        with self.engine.begin() as conn:
            row = conn.execute(
                _sessions.select().where(_sessions.c.token_hash == token_hash)
            ).fetchone()
            if row is None:
                return None
            if row.expires_at <= now:
                conn.execute(_sessions.delete().where(_sessions.c.token_hash == token_hash))
                return None
        return row.user_id

    def _delete_hash(self, token_hash: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.token_hash == token_hash))
        return result.rowcount > 0

    def destroy_user(self, user_id: int) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
        return result.rowcount

    def purge_expired(self) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= self._clock()))
        return result.rowcount


def build_session_store(backend: str, ttl_seconds: int, engine: Optional[Engine] = None) -> SessionStore:
    """Factory used by the API lifespan and the CLI."""
    if backend == "memory":
        return MemorySessionStore(ttl_seconds)
    if backend == "database":
        if engine is None:
            raise ValueError("The database session backend needs an Engine")
        return DatabaseSessionStore(engine, ttl_seconds)
    raise ValueError(f"Unknown session backend: {backend!r}")
