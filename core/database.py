"""
core/database.py -- Shared SQLAlchemy engine factory and generic lookups.

One Engine is created per process (in the API lifespan) and handed to every
store, so stores that touch different tables can still share a transaction
(account deletion cascades across users, folders and tasks in one BEGIN).

Security: all queries use bound parameters. Table and column names in
row_exists() come from rule strings written in code, never from request
data, and are quoted by SQLAlchemy's identifier preparer.

Layer rule: core/ is the kernel. No imports from api/, auth/, or tasks/.
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import column, create_engine, event, func, select, table
from sqlalchemy.engine import Engine


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_db_engine(db_url: str) -> Engine:
    """Create an Engine with the SQLite tweaks every store relies on.

    check_same_thread=False: FastAPI runs sync handlers in a threadpool, so a
    pooled SQLite connection may be used from a thread other than its creator.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


# SQLite stores INTEGER as a signed 64-bit value; larger Python ints raise
# OverflowError when bound as parameters.
SQLITE_INT_MIN = -(2**63)
SQLITE_INT_MAX = 2**63 - 1


def fits_integer(value: Any) -> bool:
    """Return False for an int that no INTEGER column can hold."""
    if isinstance(value, int) and not isinstance(value, bool):
        return SQLITE_INT_MIN <= value <= SQLITE_INT_MAX
    return True


def row_exists(
    engine: Engine,
    table_name: str,
    column_name: str,
    value: Any,
    except_id: Optional[int] = None,
) -> bool:
    """Return True if table_name has a row whose column_name equals value.

    except_id excludes the row with that primary key, so an update can keep
    its own current value without tripping a uniqueness check.
    """
    tbl = table(table_name, column("id"), column(column_name))
    stmt = select(func.count()).select_from(tbl).where(tbl.c[column_name] == value)
    if except_id is not None:
        stmt = stmt.where(tbl.c.id != except_id)
    with engine.connect() as conn:
        count = conn.execute(stmt).scalar()
    return (count or 0) > 0
