"""
api/requests.py -- JSON request body parsing.

Route handlers declare `payload: Optional[dict] = Depends(json_body)` instead
of a pydantic body model, so a missing body, a malformed body and a body that
fails the field rules each get their own envelope message:

  - empty body                 -> None (the handler raises its own 400)
  - invalid or non-object JSON -> BadRequest "Invalid JSON payload."
"""

from __future__ import annotations

import json
from typing import Any, Optional

from fastapi import Request

from core.errors import BadRequest


async def json_body(request: Request) -> Optional[dict[str, Any]]:
    """Return the request body decoded as a JSON object, or None if empty."""
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        payload = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise BadRequest("Invalid JSON payload.") from exc
    if not isinstance(payload, dict):
        raise BadRequest("Invalid JSON payload.")
    return payload


def require_payload(payload: Optional[dict[str, Any]], message: str) -> dict[str, Any]:
    """Raise BadRequest(message) when the handler needs a body and got none."""
    if payload is None:
        raise BadRequest(message)
    return payload
