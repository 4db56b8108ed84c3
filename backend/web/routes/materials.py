"""
Materials upload route.

The client sends the raw file bytes as the request body and names the file
and its category in the query string. The extension must be allowed for the
category; `other` accepts anything.
"""
from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Request

from identity_access.domain import Role
from storage.uploads import IncomingFile, InvalidCategory

from web.routes.security import error_json, internal_error, require_roles, success
from web.wiring import get_upload_storage


materials_router = APIRouter(tags=["Materials"])
logger = logging.getLogger("schoolhub.web.materials")

UPLOAD_ROLES = frozenset({Role.TEACHER, Role.ADMIN})
MAX_UPLOAD_BYTES = 20 * 1024 * 1024


@materials_router.put("/api/materials/upload")
async def upload_material(request: Request, category: str = "other", filename: str = ""):
    """Store an uploaded material file and return its public URL.

    Behavior:
        - 201 with `{url, fileName, fileSize}`
        - 400 `invalid_category` when the extension does not match
        - 413 when the body exceeds the upload limit
    """
    _, error = require_roles(request, UPLOAD_ROLES)
    if error:
        return error
    name = (filename or "").strip()
    if not name:
        return error_json("bad_request", "Invalid input.", status_code=400, detail="missing_filename")
    body = await request.body()
    if not body:
        return error_json("bad_request", "Invalid input.", status_code=400, detail="empty_file")
    if len(body) > MAX_UPLOAD_BYTES:
        return error_json("payload_too_large", "File too large.", status_code=413)
    try:
        stored = await asyncio.to_thread(get_upload_storage().store, IncomingFile(name=name, body=body), category)
    except InvalidCategory as exc:
        return error_json("invalid_category", str(exc), status_code=400)
    except OSError as exc:
        logger.error("Upload write failed: %s", exc.__class__.__name__)
        return internal_error()
    return success(stored.to_public(), status_code=201)
