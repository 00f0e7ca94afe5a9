"""
api/routes/v1/folders.py -- Folder CRUD for the logged-in user.

Routes:
  GET    /folders       -- list the caller's folders, newest first
  POST   /folders       -- create a folder
  GET    /folders/{id}  -- one folder
  PUT    /folders/{id}  -- rename
  DELETE /folders/{id}  -- delete the folder AND its tasks

Ownership: TaskStore filters every query by the caller's id, so another
user's folder comes back as None / False and produces exactly the same 404
as a folder that does not exist.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request

from api.models import Envelope, FolderListResponse, FolderOut, FolderResponse
from api.requests import json_body, require_payload
from auth.dependencies import require_auth, require_ownership
from auth.models import PublicUser
from core.errors import NotFound
from core.validation import Validator
from tasks.models import Folder
from tasks.store import TaskStore

logger = logging.getLogger("tasknest.folders")

_NAME_RULES = "required|min:1|max:255"
_NOT_FOUND = "Folder not found or you do not have access."

_validator = Validator()

# Auth policy: every route requires auth (router-level require_auth).
router = APIRouter(prefix="/folders", dependencies=[Depends(require_auth)])


@router.get("", response_model=FolderListResponse)
def list_folders(request: Request, user: PublicUser = Depends(require_auth)) -> FolderListResponse:
    store: TaskStore = request.app.state.task_store
    folders = store.list_folders(user.id)
    return FolderListResponse(folders=[FolderOut.from_domain(f) for f in folders])


@router.post("", status_code=201, response_model=FolderResponse)
def create_folder(
    request: Request,
    user: PublicUser = Depends(require_auth),
    payload: Optional[dict[str, Any]] = Depends(json_body),
) -> FolderResponse:
    body = require_payload(payload, "JSON payload required to create folder.")
    data = _validator.validate({"name": (body.get("name"), _NAME_RULES)}).raise_for_errors()

    store: TaskStore = request.app.state.task_store
    folder_id = store.create_folder(Folder(name=data["name"], user_id=user.id))
    folder = store.get_folder(folder_id, user.id)
    logger.info("Folder %s created by user_id=%s", folder_id, user.id)
    return FolderResponse(message="Folder created successfully.", folder=FolderOut.from_domain(folder))


@router.get("/{folder_id}", response_model=FolderResponse)
def get_folder(folder_id: int, request: Request, user: PublicUser = Depends(require_auth)) -> FolderResponse:
    store: TaskStore = request.app.state.task_store
    folder = store.get_folder(folder_id, user.id)
    require_ownership(user, folder.user_id if folder else None, _NOT_FOUND)
    return FolderResponse(folder=FolderOut.from_domain(folder))


@router.put("/{folder_id}", response_model=FolderResponse)
def update_folder(
    folder_id: int,
    request: Request,
    user: PublicUser = Depends(require_auth),
    payload: Optional[dict[str, Any]] = Depends(json_body),
) -> FolderResponse:
    body = require_payload(payload, "JSON payload required to update folder.")
    data = _validator.validate({"name": (body.get("name"), _NAME_RULES)}).raise_for_errors()

    store: TaskStore = request.app.state.task_store
    if not store.update_folder(folder_id, user.id, data["name"]):
        raise NotFound(_NOT_FOUND)
    folder = store.get_folder(folder_id, user.id)
    return FolderResponse(message="Folder updated successfully.", folder=FolderOut.from_domain(folder))


@router.delete("/{folder_id}", response_model=Envelope)
def delete_folder(folder_id: int, request: Request, user: PublicUser = Depends(require_auth)) -> Envelope:
    """Delete the folder together with every task filed in it."""
    store: TaskStore = request.app.state.task_store
    if not store.delete_folder(folder_id, user.id):
        raise NotFound(_NOT_FOUND)
    logger.info("Folder %s deleted by user_id=%s", folder_id, user.id)
    return Envelope(message="Folder and associated tasks deleted successfully.")
