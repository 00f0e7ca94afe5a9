"""
api/routes/v1/tasks.py -- Task CRUD for the logged-in user.

Routes:
  GET    /tasks       -- list tasks; ?folder_id= and ?status= filters
  POST   /tasks       -- create a task
  GET    /tasks/{id}  -- one task
  PUT    /tasks/{id}  -- update any subset of the task fields
  DELETE /tasks/{id}  -- delete

folder_id semantics:
  body:   0, null or absent -> the task is unassigned (stored as NULL); any
          other value must name one of the caller's folders, else 400.
  query:  absent, empty, "null" or 0 -> every task; N -> tasks in folder N
          (404 when the folder is not the caller's); anything non-numeric
          -> 400.

Ownership: TaskStore filters every query by the caller's id; another user's
task yields the same 404 as a missing one.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request

from api.models import Envelope, TaskListResponse, TaskOut, TaskResponse
from api.requests import json_body, require_payload
from auth.dependencies import require_auth, require_ownership
from auth.models import PublicUser
from core.errors import BadRequest, NotFound
from core.validation import Validator
from tasks.models import TASK_PRIORITIES, TASK_STATUSES, Task
from tasks.store import TaskStore, UnknownFolderError

logger = logging.getLogger("tasknest.tasks")

_STATUS_RULE = "in:" + ",".join(TASK_STATUSES)
_PRIORITY_RULE = "in:" + ",".join(TASK_PRIORITIES)

# Field -> rules, in the order errors are reported.
_TASK_RULES = {
    "title": "required|min:1|max:255",
    "description": "nullable|max:1000",
    "folder_id": "nullable|numeric",
    "status": f"required|{_STATUS_RULE}",
    "priority": f"required|{_PRIORITY_RULE}",
    "due_date": "nullable|date_format:Y-m-d",
}
_TASK_DEFAULTS = {"status": "todo", "priority": "medium"}

_NOT_FOUND = "Task not found or you do not have access."
_FOLDER_NOT_FOUND = "Folder not found or you do not have access."
_INVALID_FOLDER = "Invalid folder_id: Folder not found or you do not have access."

_INT_RE = re.compile(r"-?\d+")

_validator = Validator()

# Auth policy: every route requires auth (router-level require_auth).
router = APIRouter(prefix="/tasks", dependencies=[Depends(require_auth)])


def _folder_ref(folder_id: Any) -> Any:
    """Map a validated body folder_id to the stored value: 0 means unassigned."""
    if folder_id is None or folder_id == 0:
        return None
    return folder_id


def _with_default(body: dict[str, Any], name: str) -> Any:
    value = body.get(name)
    return value if value is not None else _TASK_DEFAULTS.get(name)


@router.get("", response_model=TaskListResponse)
def list_tasks(
    request: Request,
    folder_id: Optional[str] = None,
    status: Optional[str] = None,
    user: PublicUser = Depends(require_auth),
) -> TaskListResponse:
    store: TaskStore = request.app.state.task_store

    folder_filter: Optional[int] = None
    raw = (folder_id or "").strip()
    if raw and raw.lower() != "null":
        if not _INT_RE.fullmatch(raw):
            raise BadRequest("Invalid folder_id parameter. Must be numeric or null.")
        # 0 is the same sentinel as an absent filter.
        if int(raw) != 0:
            folder_filter = int(raw)
            if not store.folder_exists(folder_filter, user.id):
                raise NotFound(_FOLDER_NOT_FOUND)

    data = _validator.validate({"status": (status, f"nullable|{_STATUS_RULE}")}).raise_for_errors()

    tasks = store.list_tasks(user.id, folder_id=folder_filter, status=data["status"])
    return TaskListResponse(tasks=[TaskOut.from_domain(t) for t in tasks])


@router.post("", status_code=201, response_model=TaskResponse)
def create_task(
    request: Request,
    user: PublicUser = Depends(require_auth),
    payload: Optional[dict[str, Any]] = Depends(json_body),
) -> TaskResponse:
    body = require_payload(payload, "JSON payload required to create task.")
    data = _validator.validate(
        {name: (_with_default(body, name), rules) for name, rules in _TASK_RULES.items()}
    ).raise_for_errors()

    store: TaskStore = request.app.state.task_store
    task = Task(
        title=data["title"],
        user_id=user.id,
        description=data["description"],
        folder_id=_folder_ref(data["folder_id"]),
        status=data["status"],
        priority=data["priority"],
        due_date=data["due_date"],
    )
    try:
        task_id = store.create_task(task)
    except UnknownFolderError:
        raise BadRequest(_INVALID_FOLDER) from None
    logger.info("Task %s created by user_id=%s", task_id, user.id)
    return TaskResponse(message="Task created successfully", task=TaskOut.from_domain(store.get_task(task_id, user.id)))


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(task_id: int, request: Request, user: PublicUser = Depends(require_auth)) -> TaskResponse:
    store: TaskStore = request.app.state.task_store
    task = store.get_task(task_id, user.id)
    require_ownership(user, task.user_id if task else None, _NOT_FOUND)
    return TaskResponse(task=TaskOut.from_domain(task))


@router.put("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: int,
    request: Request,
    user: PublicUser = Depends(require_auth),
    payload: Optional[dict[str, Any]] = Depends(json_body),
) -> TaskResponse:
    """Update only the fields present in the body; absent fields keep their value."""
    body = require_payload(payload, "JSON payload required to update task.")
    fields = {name: (body[name], rules) for name, rules in _TASK_RULES.items() if name in body}
    if not fields:
        raise BadRequest("No data provided for update.")
    data = _validator.validate(fields).raise_for_errors()

    store: TaskStore = request.app.state.task_store
    if "folder_id" in data:
        data["folder_id"] = _folder_ref(data["folder_id"])
    try:
        updated = store.update_task(task_id, user.id, **data)
    except UnknownFolderError:
        raise BadRequest(_INVALID_FOLDER) from None
    if not updated:
        raise NotFound(_NOT_FOUND)
    return TaskResponse(message="Task updated successfully.", task=TaskOut.from_domain(store.get_task(task_id, user.id)))


@router.delete("/{task_id}", response_model=Envelope)
def delete_task(task_id: int, request: Request, user: PublicUser = Depends(require_auth)) -> Envelope:
    store: TaskStore = request.app.state.task_store
    if not store.delete_task(task_id, user.id):
        raise NotFound(_NOT_FOUND)
    return Envelope(message="Task deleted successfully.")
