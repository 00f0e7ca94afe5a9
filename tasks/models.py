"""
tasks/models.py -- Domain dataclasses for folders and tasks.

These are pure data containers with zero logic. Ownership filtering, folder
cascade and timestamping live in tasks/store.py.
"""

from dataclasses import dataclass
from typing import Optional

TASK_STATUSES = ("todo", "in_progress", "done")
TASK_PRIORITIES = ("low", "medium", "high")


@dataclass
class Folder:
    """A named group of tasks owned by exactly one user.

    Names are not unique, not even per user.
    id is None before the record is written to the database.
    """

    name: str
    user_id: int
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Task:
    """A unit of work owned by one user, optionally filed in one of the user's folders.

    folder_id None means "unassigned". folder_name is read-only: it is filled
    from the folder row when the task is loaded and ignored on writes.
    """

    title: str
    user_id: int
    description: Optional[str] = None
    folder_id: Optional[int] = None
    status: str = "todo"  # "todo" | "in_progress" | "done"
    priority: str = "medium"  # "low" | "medium" | "high"
    due_date: Optional[str] = None  # YYYY-MM-DD
    id: Optional[int] = None
    folder_name: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
