"""
tasks/store.py -- SQLAlchemy-backed persistence for folders and tasks.

Uses SQLAlchemy Core (not ORM) so the dataclasses in tasks/models.py remain
the authoritative domain representation.

Pattern: Repository + Data Mapper. TaskStore is the repository; the _row_to_*
functions are the mappers. Route handlers never touch SQL directly.

Ownership: every read, update and delete takes the requesting user's id and
puts it in the WHERE clause. A row owned by someone else is invisible -- the
method returns None / False exactly as if the id did not exist, and the route
turns both into the same 404.

Folder deletion deletes the folder's tasks in the same transaction. Creating or
moving a task checks the target folder's owner in the same transaction as the
write, so a task never points at a folder deleted in between.

Ids outside SQLite's 64-bit INTEGER range cannot name a row; they are treated
as missing instead of reaching the driver.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = TaskStore(create_db_engine("sqlite:///tasknest.db"))
    folder_id = store.create_folder(Folder(name="Work", user_id=uid))
    store.create_task(Task(title="Ship it", user_id=uid, folder_id=folder_id))
    store.list_tasks(uid, folder_id=folder_id)
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, and_, select
from sqlalchemy.engine import Engine

from core.database import fits_integer
from tasks.models import Folder, Task

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_folders = Table(
    "folders",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("user_id", Integer, nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
)

_tasks = Table(
    "tasks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("description", Text),
    Column("folder_id", Integer, index=True),  # NULL = unassigned
    Column("user_id", Integer, nullable=False, index=True),
    Column("status", String(20), nullable=False, server_default="todo"),
    Column("priority", String(10), nullable=False, server_default="medium"),
    Column("due_date", String(10)),  # YYYY-MM-DD
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_TASK_UPDATABLE = frozenset({"title", "description", "folder_id", "status", "priority", "due_date"})


class UnknownFolderError(ValueError):
    """A task referenced a folder that its owner does not have."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _task_query():
    """SELECT tasks plus the owning folder's name (NULL when unassigned)."""
    joined = _tasks.outerjoin(
        _folders,
        and_(_tasks.c.folder_id == _folders.c.id, _folders.c.user_id == _tasks.c.user_id),
    )
    return select(_tasks, _folders.c.name.label("folder_name")).select_from(joined)


def _owns_folder(conn, folder_id: Any, user_id: int) -> bool:
    if not fits_integer(folder_id):
        return False
    row = conn.execute(
        select(_folders.c.id).where((_folders.c.id == folder_id) & (_folders.c.user_id == user_id))
    ).fetchone()
    return row is not None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TaskStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def create_folder(self, folder: Folder) -> int:
        """Insert a new folder and return its assigned database ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _folders.insert().values(
                    name=folder.name,
                    user_id=folder.user_id,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def list_folders(self, user_id: int) -> list[Folder]:
        """Return the user's folders, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _folders.select()
                .where(_folders.c.user_id == user_id)
                .order_by(_folders.c.created_at.desc(), _folders.c.id.desc())
            ).fetchall()
        return [_row_to_folder(r) for r in rows]

    def get_folder(self, folder_id: int, user_id: int) -> Optional[Folder]:
        """Return the folder if it exists AND belongs to user_id, else None."""
        if not fits_integer(folder_id):
            return None
        with self.engine.connect() as conn:
            row = conn.execute(
                _folders.select().where((_folders.c.id == folder_id) & (_folders.c.user_id == user_id))
            ).fetchone()
        return _row_to_folder(row) if row is not None else None

    def folder_exists(self, folder_id: int, user_id: int) -> bool:
        return self.get_folder(folder_id, user_id) is not None

    def update_folder(self, folder_id: int, user_id: int, name: str) -> bool:
        """Rename a folder. Returns False if not found or not owned by user_id."""
        if not fits_integer(folder_id):
            return False
        with self.engine.connect() as conn:
            result = conn.execute(
                _folders.update()
                .where((_folders.c.id == folder_id) & (_folders.c.user_id == user_id))
                .values(name=name)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_folder(self, folder_id: int, user_id: int) -> bool:
        """Delete a folder and all of its tasks in one transaction.

        Returns False (and deletes nothing) if the folder is not found or not
        owned by user_id.
        """
        with self.engine.begin() as conn:
            if not _owns_folder(conn, folder_id, user_id):
                return False
            conn.execute(_tasks.delete().where((_tasks.c.folder_id == folder_id) & (_tasks.c.user_id == user_id)))
            conn.execute(_folders.delete().where((_folders.c.id == folder_id) & (_folders.c.user_id == user_id)))
        return True

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def create_task(self, task: Task) -> int:
        """Insert a new task and return its assigned database ID.

        task.folder_id, if set, must name a folder owned by task.user_id.
        Raises UnknownFolderError otherwise; nothing is inserted.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            if task.folder_id is not None and not _owns_folder(conn, task.folder_id, task.user_id):
                raise UnknownFolderError(task.folder_id)
            result = conn.execute(
                _tasks.insert().values(
                    title=task.title,
                    description=task.description,
                    folder_id=task.folder_id,
                    user_id=task.user_id,
                    status=task.status,
                    priority=task.priority,
                    due_date=task.due_date,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def list_tasks(
        self,
        user_id: int,
        folder_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> list[Task]:
        """Return the user's tasks, newest first.

        folder_id -- only tasks in that folder.
        status    -- only tasks with that status.
        With no filters, every task of the user is returned.
        """
        stmt = _task_query().where(_tasks.c.user_id == user_id)
        if folder_id is not None:
            if not fits_integer(folder_id):
                return []
            stmt = stmt.where(_tasks.c.folder_id == folder_id)
        if status is not None:
            stmt = stmt.where(_tasks.c.status == status)
        stmt = stmt.order_by(_tasks.c.created_at.desc(), _tasks.c.id.desc())
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_task(r) for r in rows]

    def get_task(self, task_id: int, user_id: int) -> Optional[Task]:
        """Return the task if it exists AND belongs to user_id, else None."""
        if not fits_integer(task_id):
            return None
        with self.engine.connect() as conn:
            row = conn.execute(
                _task_query().where((_tasks.c.id == task_id) & (_tasks.c.user_id == user_id))
            ).fetchone()
        return _row_to_task(row) if row is not None else None

    def update_task(self, task_id: int, user_id: int, **fields: Any) -> bool:
        """Update any subset of the mutable task fields and stamp updated_at.

        Unknown keys raise ValueError. A non-null folder_id must name a folder
        owned by user_id, else UnknownFolderError; the check runs in the same
        transaction as the update. Returns False if the task is not found or
        not owned by user_id.
        """
        unknown = set(fields) - _TASK_UPDATABLE
        if unknown:
            raise ValueError(f"Unknown task fields: {unknown!r}")
        with self.engine.begin() as conn:
            folder_id = fields.get("folder_id")
            if folder_id is not None and not _owns_folder(conn, folder_id, user_id):
                raise UnknownFolderError(folder_id)
            if not fits_integer(task_id):
                return False
            result = conn.execute(
                _tasks.update()
                .where((_tasks.c.id == task_id) & (_tasks.c.user_id == user_id))
                .values(updated_at=_now_iso(), **fields)
            )
        return result.rowcount > 0

    def delete_task(self, task_id: int, user_id: int) -> bool:
        if not fits_integer(task_id):
            return False
        with self.engine.connect() as conn:
            result = conn.execute(_tasks.delete().where((_tasks.c.id == task_id) & (_tasks.c.user_id == user_id)))
            conn.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_folder(row) -> Folder:
    return Folder(
        id=row.id,
        name=row.name,
        user_id=row.user_id,
        created_at=row.created_at,
    )


def _row_to_task(row) -> Task:
    return Task(
        id=row.id,
        title=row.title,
        description=row.description,
        folder_id=row.folder_id,
        folder_name=row.folder_name,
        user_id=row.user_id,
        status=row.status,
        priority=row.priority,
        due_date=row.due_date,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
