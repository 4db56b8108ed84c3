"""
Fees domain: obligation templates (fee structures), groups and obligations.

Amounts are `Decimal`; currency and amount are copied onto each obligation at
creation time so later template edits never change issued records.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple
import hashlib


CURRENCIES = frozenset({"LKR", "USD", "EUR"})
DEFAULT_CURRENCY = "LKR"
FREQUENCIES = frozenset({"monthly", "semester", "annual", "one-time"})
CATEGORIES = frozenset({"tuition", "lab", "library", "sports", "transport", "exam", "other"})


class ObligationStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class TemplateNotFound(LookupError):
    def __init__(self, template_id: str = "") -> None:
        super().__init__("template_not_found")
        self.template_id = template_id


class TemplateInUse(RuntimeError):
    def __init__(self, template_id: str = "") -> None:
        super().__init__("template_in_use")
        self.template_id = template_id


class DuplicateTemplateName(ValueError):
    def __init__(self) -> None:
        super().__init__("duplicate_name")


class ObligationNotFound(LookupError):
    def __init__(self) -> None:
        super().__init__("obligation_not_found")


@dataclass(frozen=True)
class ObligationTemplate:
    id: str
    name: str
    amount: Decimal
    currency: str = DEFAULT_CURRENCY
    description: Optional[str] = None
    frequency: str = "monthly"
    category: str = "tuition"
    status: str = "active"
    created_by: Optional[str] = None


@dataclass(frozen=True)
class Group:
    """A class/cohort. Members are principal ids in enrollment order."""

    id: str
    title: str
    member_ids: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ObligationDraft:
    """Obligation values prior to persistence (no id yet)."""

    student_id: str
    class_id: str
    template_id: str
    amount: Decimal
    currency: str
    due_date: date
    status: ObligationStatus = ObligationStatus.PENDING

    @property
    def idempotency_key(self) -> str:
        return idempotency_key(self.student_id, self.template_id, self.due_date)


@dataclass(frozen=True)
class Obligation:
    id: str
    student_id: str
    class_id: str
    template_id: str
    amount: Decimal
    currency: str
    due_date: date
    status: ObligationStatus
    idempotency_key: str
    created_at: datetime

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "studentId": self.student_id,
            "classId": self.class_id,
            "feeStructureId": self.template_id,
            "amount": float(self.amount),
            "currency": self.currency,
            "dueDate": self.due_date.isoformat(),
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
        }


def idempotency_key(student_id: str, template_id: str, due_date: date) -> str:
    """Deterministic key for the (target, template, due date) tuple."""
    raw = f"{student_id}|{template_id}|{due_date.isoformat()}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def template_to_public(t: ObligationTemplate) -> dict:
    return {
        "id": t.id,
        "name": t.name,
        "description": t.description,
        "amount": float(t.amount),
        "currency": t.currency,
        "frequency": t.frequency,
        "category": t.category,
        "status": t.status,
        "createdBy": t.created_by,
    }


__all__ = [
    "CATEGORIES",
    "CURRENCIES",
    "DEFAULT_CURRENCY",
    "DuplicateTemplateName",
    "FREQUENCIES",
    "Group",
    "Obligation",
    "ObligationDraft",
    "ObligationNotFound",
    "ObligationStatus",
    "ObligationTemplate",
    "TemplateInUse",
    "TemplateNotFound",
    "idempotency_key",
    "template_to_public",
]
