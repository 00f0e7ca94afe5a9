"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper (same as tasks/store.py).
UserStore is the repository; _row_to_user / _row_to_public are the mappers.
Route and service code never touches SQL directly.

Security:
  All queries use bound parameters. The only dynamic identifiers are the
  owned-table names in _OWNED_TABLES (a code constant) and the table/column
  pair of a `unique` validation rule (written in code, quoted by SQLAlchemy).

  Email uniqueness is enforced twice: by the `unique:users,email` validation
  rule (friendly message) and by a UNIQUE constraint (race safety -- the
  service turns the IntegrityError into the same validation error).

Account deletion:
  delete_user() removes everything the user owns and then the user row in ONE
  transaction. If any statement fails the whole cascade rolls back, so a
  half-deleted account cannot exist.

Layer rule: no imports from api/ or tasks/. The owned tables are named here
as strings so the auth layer does not depend on the tasks package.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, inspect, select, text
from sqlalchemy.engine import Engine

from auth.models import PublicUser, User
from core.database import row_exists

logger = logging.getLogger("tasknest.auth")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

# Tables holding rows keyed by user_id, in deletion order (children first).
_OWNED_TABLES: tuple[str, ...] = ("tasks", "folders")

_UPDATABLE_FIELDS = frozenset({"username", "email", "hashed_password"})


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(create_db_engine("sqlite:///tasknest.db"))
        uid = store.create_user(User(username="ana", email="ana@mail.com", hashed_password=hash_password("...")))
        store.get_public(uid)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    created_at=_now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Includes the password hash -- auth layer only."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_public(self, user_id: int) -> PublicUser | None:
        """Look up the safe projection of a user. Never selects the password hash."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_users.c.id, _users.c.username, _users.c.email, _users.c.created_at).where(
                    _users.c.id == user_id
                )
            ).fetchone()
        return _row_to_public(row) if row is not None else None

    def update_user(self, user_id: int, **fields: Any) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: username, email, hashed_password. Unknown keys raise
        ValueError rather than being silently ignored.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not fields:
            return False
        with self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        with self.engine.begin() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))

    def delete_user(self, user_id: int) -> bool:
        """Delete a user and every row it owns in one transaction.

        Returns True if the user existed. Any failure rolls back the whole
        cascade and propagates to the caller.
        """
        with self.engine.begin() as conn:
            existing = inspect(conn)
            for table_name in _OWNED_TABLES:
                if not existing.has_table(table_name):
                    continue
                removed = conn.execute(
                    text(f"DELETE FROM {table_name} WHERE user_id = :uid"),  # noqa: S608
                    {"uid": user_id},
                ).rowcount
                logger.info("Cascade delete user_id=%s: %d row(s) from %s", user_id, removed, table_name)
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    def value_exists(self, table: str, column: str, value: Any, except_id: Optional[int] = None) -> bool:
        """Lookup collaborator for the `unique` validation rule."""
        return row_exists(self.engine, table, column, value, except_id)


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
        last_login=row.last_login,
    )


def _row_to_public(row) -> PublicUser:
    return PublicUser(
        id=row.id,
        username=row.username,
        email=row.email,
        created_at=row.created_at,
    )
