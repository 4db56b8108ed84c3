"""
Identity domain types: roles, account states, principals and identities.

Why:
- Centralize allowed roles to avoid drift between tools and web layer.
- Roles are a closed enumeration so role checks cannot silently compare
  against misspelled strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple


class Role(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"


class OperableState(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    SUSPENDED = "suspended"


# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset(r.value for r in Role)


@dataclass(frozen=True)
class Principal:
    """Stored account record as seen by the identity context (read-only here)."""

    id: str
    role: Role
    state: OperableState
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    class_ids: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Identity:
    """Request-scoped snapshot of an active principal.

    Built once by the resolver and attached to the request; downstream code
    reads it but never re-fetches or mutates it.
    """

    id: str
    role: Role
    state: OperableState
    first_name: str
    last_name: str
    email: str
    class_ids: Tuple[str, ...]

    @classmethod
    def from_principal(cls, principal: Principal) -> "Identity":
        return cls(
            id=principal.id,
            role=principal.role,
            state=principal.state,
            first_name=principal.first_name,
            last_name=principal.last_name,
            email=principal.email,
            class_ids=tuple(principal.class_ids),
        )

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "role": self.role.value,
            "status": self.state.value,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "classIds": list(self.class_ids),
        }


def parse_role(value: object) -> Role:
    """Map a stored role string onto `Role`; unknown values raise ValueError."""
    if isinstance(value, Role):
        return value
    return Role(str(value or "").strip().lower())


def parse_state(value: object) -> OperableState:
    if isinstance(value, OperableState):
        return value
    return OperableState(str(value or "").strip().lower())


__all__ = [
    "ALLOWED_ROLES",
    "Identity",
    "OperableState",
    "Principal",
    "Role",
    "parse_role",
    "parse_state",
]
