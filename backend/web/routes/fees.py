"""
Fees API routes: fee structures, bulk assignment and fee records.

Why:
    Thin adapter over the fees services. Authentication happens in the
    middleware; each route declares its allowed roles as a module constant
    and checks them before touching any store.

Notes:
    - Blocking store calls run in a worker thread so one slow database call
      does not stall other requests.
    - Storage errors are logged with the exception class only and surface as
      a generic 500; internal details never reach the response body.
"""

from __future__ import annotations

import asyncio
from datetime import date
import logging
from typing import List, Optional

from fastapi import APIRouter, Request
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from fees.domain import (
    DuplicateTemplateName,
    ObligationNotFound,
    TemplateInUse,
    TemplateNotFound,
    template_to_public,
)
from fees.services.assignment import AssignmentAborted, AssignmentService, AssignmentSettings
from fees.services.obligations import ObligationsService
from fees.services.structures import TemplatesService, _UNSET
from identity_access.domain import Role

from web.routes.security import error_json, internal_error, private_json, require_roles, success
from web.wiring import get_fees_repo, get_principal_store, get_settings


fees_router = APIRouter(tags=["Fees"])  # explicit paths below
logger = logging.getLogger("schoolhub.web.fees")

# Static role allow-lists per operation.
ASSIGN_ROLES = frozenset({Role.ADMIN})
MANAGE_ROLES = frozenset({Role.ADMIN, Role.TEACHER})
STUDENT_ROLES = frozenset({Role.STUDENT})


def _assignment_service() -> AssignmentService:
    settings = get_settings()
    return AssignmentService(
        repo=get_fees_repo(),
        principals=get_principal_store(),
        settings=AssignmentSettings(atomic=settings.assign_atomic, deduplicate=settings.assign_deduplicate),
    )


def _templates_service() -> TemplatesService:
    return TemplatesService(get_fees_repo())


def _obligations_service() -> ObligationsService:
    return ObligationsService(get_fees_repo())


def _bad_request(detail: str) -> object:
    return error_json("bad_request", "Invalid input.", status_code=400, detail=detail)


# --- Request models --------------------------------------------------------------

class AssignPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    template_id: str = Field(..., min_length=1, validation_alias=AliasChoices("templateId", "feeStructureId"))
    group_ids: List[str] = Field(..., validation_alias=AliasChoices("groupIds", "classIds"))
    due_date: date = Field(..., validation_alias=AliasChoices("dueDate", "due_date"))


class StructurePayload(BaseModel):
    # Accept loose typing; the service maps contract violations to 400 codes.
    name: object | None = None
    amount: object | None = None
    currency: object | None = None
    description: object | None = None
    frequency: object | None = None
    category: object | None = None
    status: object | None = None


class StatusPayload(BaseModel):
    status: object | None = None


# --- Fee structures --------------------------------------------------------------

@fees_router.get("/api/fees/structures")
async def list_structures(request: Request):
    """List fee structures (admin, teacher)."""
    _, error = require_roles(request, MANAGE_ROLES)
    if error:
        return error
    try:
        items = await asyncio.to_thread(_templates_service().list_templates)
    except Exception as exc:
        logger.error("List fee structures failed: %s", exc.__class__.__name__)
        return internal_error()
    return success([template_to_public(t) for t in items])


@fees_router.post("/api/fees/structures")
async def create_structure(request: Request, payload: StructurePayload):
    """Create a fee structure (admin, teacher).

    Behavior:
        - 201 with the structure on success
        - 400 on invalid name/amount/currency/frequency/category
        - 409 when the name is already taken
    """
    identity, error = require_roles(request, MANAGE_ROLES)
    if error:
        return error
    fields = payload.model_dump(exclude_unset=True, exclude={"status"})
    svc = _templates_service()
    try:
        created = await asyncio.to_thread(
            lambda: svc.create_template(
                name=fields.get("name"),
                amount=fields.get("amount"),
                created_by=identity.id,
                currency=fields.get("currency") or "LKR",
                description=fields.get("description"),
                frequency=fields.get("frequency") or "monthly",
                category=fields.get("category") or "tuition",
            )
        )
    except DuplicateTemplateName:
        return error_json("conflict", "Fee structure with this name already exists", status_code=409)
    except ValueError as exc:
        return _bad_request(str(exc))
    except Exception as exc:
        logger.error("Create fee structure failed: %s", exc.__class__.__name__)
        return internal_error()
    return success(template_to_public(created), status_code=201)


@fees_router.put("/api/fees/structures/{structure_id}")
async def update_structure(request: Request, structure_id: str, payload: StructurePayload):
    """Update a fee structure that no fee record references yet (admin, teacher)."""
    _, error = require_roles(request, MANAGE_ROLES)
    if error:
        return error
    provided = payload.model_dump(exclude_unset=True)
    kwargs = {k: provided.get(k, _UNSET) for k in StructurePayload.model_fields}
    svc = _templates_service()
    try:
        updated = await asyncio.to_thread(lambda: svc.update_template(structure_id, **kwargs))
    except TemplateNotFound:
        return error_json("not_found", "Fee structure not found", status_code=404)
    except TemplateInUse:
        return error_json(
            "template_in_use", "Fee structure is referenced by fee records and cannot change", status_code=409
        )
    except DuplicateTemplateName:
        return error_json("conflict", "Fee structure with this name already exists", status_code=409)
    except ValueError as exc:
        return _bad_request(str(exc))
    except Exception as exc:
        logger.error("Update fee structure failed: %s", exc.__class__.__name__)
        return internal_error()
    return success(template_to_public(updated))


@fees_router.delete("/api/fees/structures/{structure_id}")
async def delete_structure(request: Request, structure_id: str):
    _, error = require_roles(request, MANAGE_ROLES)
    if error:
        return error
    try:
        await asyncio.to_thread(_templates_service().delete_template, structure_id)
    except TemplateNotFound:
        return error_json("not_found", "Fee structure not found", status_code=404)
    except TemplateInUse:
        return error_json(
            "template_in_use", "Fee structure is referenced by fee records and cannot change", status_code=409
        )
    except Exception as exc:
        logger.error("Delete fee structure failed: %s", exc.__class__.__name__)
        return internal_error()
    return private_json({"status": "success", "message": "Fee structure deleted successfully"})


# --- Bulk assignment -------------------------------------------------------------

@fees_router.post("/api/fees/assign")
async def assign_fees(request: Request, payload: AssignPayload):
    """Assign a fee structure to every enrolled student of the given classes.

    Behavior:
        - 201 with created records plus skipped classes/students and
          duplicates (deduplicating mode only)
        - 404 when the fee structure does not exist (nothing is created)
        - 500 with `partial: true`, the records already created and the skips
          when a storage error interrupts a sequential run; `partial: false`
          and no records when the run was rolled back (atomic mode, or a
          failure before the first write)

    Permissions:
        Caller must have role `admin`.
    """
    _, error = require_roles(request, ASSIGN_ROLES)
    if error:
        return error
    service = _assignment_service()
    try:
        result = await asyncio.to_thread(service.assign, payload.template_id, payload.group_ids, payload.due_date)
    except TemplateNotFound:
        return error_json("not_found", "Fee structure not found", status_code=404)
    except AssignmentAborted as exc:
        return internal_error(**exc.to_public())
    except Exception as exc:
        logger.error("Bulk assign failed: %s", exc.__class__.__name__)
        return internal_error()
    return success(result.to_public(), status_code=201)


# --- Fee records -----------------------------------------------------------------

@fees_router.get("/api/fees/obligations")
async def list_obligations(
    request: Request,
    studentId: Optional[str] = None,
    classId: Optional[str] = None,
    status: Optional[str] = None,
):
    """List fee records with optional filters (admin, teacher)."""
    _, error = require_roles(request, MANAGE_ROLES)
    if error:
        return error
    svc = _obligations_service()
    try:
        items = await asyncio.to_thread(
            lambda: svc.list_obligations(student_id=studentId, class_id=classId, status=status)
        )
    except ValueError as exc:
        return _bad_request(str(exc))
    except Exception as exc:
        logger.error("List fee records failed: %s", exc.__class__.__name__)
        return internal_error()
    return success([o.to_public() for o in items])


@fees_router.get("/api/fees/obligations/mine")
async def list_my_obligations(request: Request):
    """List the calling student's own fee records."""
    identity, error = require_roles(request, STUDENT_ROLES)
    if error:
        return error
    svc = _obligations_service()
    try:
        items = await asyncio.to_thread(lambda: svc.list_obligations(student_id=identity.id))
    except Exception as exc:
        logger.error("List own fee records failed: %s", exc.__class__.__name__)
        return internal_error()
    return success([o.to_public() for o in items])


@fees_router.patch("/api/fees/obligations/{obligation_id}/status")
async def update_obligation_status(request: Request, obligation_id: str, payload: StatusPayload):
    _, error = require_roles(request, MANAGE_ROLES)
    if error:
        return error
    svc = _obligations_service()
    try:
        updated = await asyncio.to_thread(svc.update_status, obligation_id, payload.status)
    except ObligationNotFound:
        return error_json("not_found", "Fee record not found", status_code=404)
    except ValueError as exc:
        return _bad_request(str(exc))
    except Exception as exc:
        logger.error("Update fee record status failed: %s", exc.__class__.__name__)
        return internal_error()
    return success(updated.to_public())


@fees_router.get("/api/fees/class-overview")
async def class_overview(request: Request):
    """Per-class fee totals and status counts (admin, teacher)."""
    _, error = require_roles(request, MANAGE_ROLES)
    if error:
        return error
    try:
        overview = await asyncio.to_thread(_obligations_service().class_overview)
    except Exception as exc:
        logger.error("Class fee overview failed: %s", exc.__class__.__name__)
        return internal_error()
    return success(overview)
