"""
API response models for the TaskNest REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
tasks/models.py, which own the internal domain representation. Route handlers
map between the two with the from_domain() classmethods.

Every response body -- success or error -- shares one envelope:

    {"success": bool, "message": str, ...payload}

Request bodies are NOT modelled here: they go through core.validation so the
error messages and the sanitization step are the same on every route.

Separation of concerns: domain models = domain truth; api/ models = API contract.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from auth.models import PublicUser
from tasks.models import Folder, Task

# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class Envelope(BaseModel):
    """Base for every success response."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str = "Operation successful."


class ErrorResponse(BaseModel):
    """Error envelope. errors is present only on validation failures."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    message: str
    errors: Optional[dict[str, list[str]]] = None


# ---------------------------------------------------------------------------
# Users / auth
# ---------------------------------------------------------------------------


class UserOut(BaseModel):
    """Safe projection of a user. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    created_at: Optional[str] = None

    @classmethod
    def from_domain(cls, user: PublicUser) -> "UserOut":
        return cls(id=user.id, username=user.username, email=user.email, created_at=user.created_at)


class UserResponse(Envelope):
    user: UserOut


class LoginResponse(Envelope):
    message: str = "Login successful"
    user: UserOut


class CheckAuthResponse(Envelope):
    """Response for GET /check-auth. user is null when anonymous."""

    authenticated: bool
    user: Optional[UserOut] = None


# ---------------------------------------------------------------------------
# Folders
# ---------------------------------------------------------------------------


class FolderOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    user_id: int
    created_at: str

    @classmethod
    def from_domain(cls, folder: Folder) -> "FolderOut":
        return cls(id=folder.id, name=folder.name, user_id=folder.user_id, created_at=folder.created_at)


class FolderResponse(Envelope):
    folder: FolderOut


class FolderListResponse(Envelope):
    folders: list[FolderOut]


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskOut(BaseModel):
    """One task as returned to the client.

    folder_name is filled from the owning folder (null when unassigned).
    """

    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    description: Optional[str] = None
    folder_id: Optional[int] = None
    folder_name: Optional[str] = None
    user_id: int
    status: str
    priority: str
    due_date: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, task: Task) -> "TaskOut":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            folder_id=task.folder_id,
            folder_name=task.folder_name,
            user_id=task.user_id,
            status=task.status,
            priority=task.priority,
            due_date=task.due_date,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class TaskResponse(Envelope):
    task: TaskOut


class TaskListResponse(Envelope):
    tasks: list[TaskOut]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
