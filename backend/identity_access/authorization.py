"""
Authorization gate: static role allow-lists per operation.

Pure function of its inputs; no I/O and no hidden state. There is no role
hierarchy: an admin is not implicitly a teacher.
"""
from __future__ import annotations

from typing import AbstractSet

from .domain import Identity, Role
from .errors import Forbidden, Unauthenticated


def authorize(identity: Identity | None, required_roles: AbstractSet[Role]) -> Identity:
    """Return the identity when its role is in `required_roles`, else raise."""
    if identity is None:
        raise Unauthenticated()
    if identity.role not in required_roles:
        raise Forbidden()
    return identity


__all__ = ["authorize"]
