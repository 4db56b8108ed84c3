"""
Shared web helpers for routes: response envelopes and the role gate.

Every API response is private and non-cacheable. Error bodies always carry
`status`, a stable `error` code and a human `message`; success bodies carry
`status` and `data`.
"""
from __future__ import annotations

from typing import AbstractSet, Any, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse

from identity_access.authorization import authorize
from identity_access.domain import Identity, Role
from identity_access.errors import AuthError


PRIVATE_HEADERS = {"Cache-Control": "private, no-store"}
INTERNAL_ERROR_MESSAGE = "Internal server error"


def private_json(payload: Any, *, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=payload, status_code=status_code, headers=dict(PRIVATE_HEADERS))


def success(data: Any, *, status_code: int = 200) -> JSONResponse:
    return private_json({"status": "success", "data": data}, status_code=status_code)


def error_json(code: str, message: str, *, status_code: int, **extra: Any) -> JSONResponse:
    body = {"status": "error", "error": code, "message": message}
    body.update(extra)
    return private_json(body, status_code=status_code)


def auth_error_response(exc: AuthError) -> JSONResponse:
    return error_json(exc.code, exc.message, status_code=exc.status_code)


def internal_error(**extra: Any) -> JSONResponse:
    return error_json("internal_error", INTERNAL_ERROR_MESSAGE, status_code=500, **extra)


def current_identity(request: Request) -> Optional[Identity]:
    return getattr(request.state, "identity", None)


def require_roles(request: Request, roles: AbstractSet[Role]) -> Tuple[Optional[Identity], Optional[JSONResponse]]:
    """Return (identity, None) when allowed, else (None, error_response)."""
    try:
        return authorize(current_identity(request), roles), None
    except AuthError as exc:
        return None, auth_error_response(exc)


__all__ = [
    "INTERNAL_ERROR_MESSAGE",
    "auth_error_response",
    "current_identity",
    "error_json",
    "internal_error",
    "private_json",
    "require_roles",
    "success",
]
