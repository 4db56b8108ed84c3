"""Fee structure (obligation template) use cases.

Why:
    Keep validation of amounts, currencies and enum-like fields out of the web
    adapter so it can be unit-tested without FastAPI. Templates referenced by
    issued obligations are frozen: edits and deletes are refused.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Protocol

from fees.domain import (
    CATEGORIES,
    CURRENCIES,
    DEFAULT_CURRENCY,
    DuplicateTemplateName,
    FREQUENCIES,
    ObligationTemplate,
    TemplateInUse,
    TemplateNotFound,
)


class TemplatesRepoProtocol(Protocol):
    def list_templates(self) -> List[ObligationTemplate]:
        ...

    def get_template(self, template_id: str) -> Optional[ObligationTemplate]:
        ...

    def find_template_by_name(self, name: str) -> Optional[ObligationTemplate]:
        ...

    def create_template(self, **fields: Any) -> ObligationTemplate:
        ...

    def update_template(self, template_id: str, **fields: Any) -> Optional[ObligationTemplate]:
        ...

    def delete_template(self, template_id: str) -> bool:
        ...

    def template_in_use(self, template_id: str) -> bool:
        ...


_UNSET = object()


def _normalize_name(value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("invalid_name")
    name = value.strip()
    if len(name) > 200:
        raise ValueError("invalid_name")
    return name


def _normalize_amount(value: object) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValueError("invalid_amount")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError("invalid_amount") from exc
    if not amount.is_finite() or amount < 0:
        raise ValueError("invalid_amount")
    return amount


def _normalize_choice(value: object, allowed: frozenset, code: str) -> str:
    if not isinstance(value, str) or value not in allowed:
        raise ValueError(code)
    return value


def _normalize_description(value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("invalid_description")
    return value.strip() or None


@dataclass
class TemplatesService:
    repo: TemplatesRepoProtocol

    def list_templates(self) -> List[ObligationTemplate]:
        return self.repo.list_templates()

    def create_template(
        self,
        *,
        name: object,
        amount: object,
        created_by: str,
        currency: object = DEFAULT_CURRENCY,
        description: object = None,
        frequency: object = "monthly",
        category: object = "tuition",
    ) -> ObligationTemplate:
        clean_name = _normalize_name(name)
        if self.repo.find_template_by_name(clean_name) is not None:
            raise DuplicateTemplateName()
        return self.repo.create_template(
            name=clean_name,
            amount=_normalize_amount(amount),
            currency=_normalize_choice(currency, CURRENCIES, "invalid_currency"),
            description=_normalize_description(description),
            frequency=_normalize_choice(frequency, FREQUENCIES, "invalid_frequency"),
            category=_normalize_choice(category, CATEGORIES, "invalid_category"),
            created_by=created_by,
        )

    def update_template(
        self,
        template_id: str,
        *,
        name: object = _UNSET,
        amount: object = _UNSET,
        currency: object = _UNSET,
        description: object = _UNSET,
        frequency: object = _UNSET,
        category: object = _UNSET,
        status: object = _UNSET,
    ) -> ObligationTemplate:
        if self.repo.get_template(template_id) is None:
            raise TemplateNotFound(template_id)
        if self.repo.template_in_use(template_id):
            raise TemplateInUse(template_id)
        fields: dict[str, Any] = {}
        if name is not _UNSET:
            fields["name"] = _normalize_name(name)
            other = self.repo.find_template_by_name(fields["name"])
            if other is not None and other.id != template_id:
                raise DuplicateTemplateName()
        if amount is not _UNSET:
            fields["amount"] = _normalize_amount(amount)
        if currency is not _UNSET:
            fields["currency"] = _normalize_choice(currency, CURRENCIES, "invalid_currency")
        if description is not _UNSET:
            fields["description"] = _normalize_description(description)
        if frequency is not _UNSET:
            fields["frequency"] = _normalize_choice(frequency, FREQUENCIES, "invalid_frequency")
        if category is not _UNSET:
            fields["category"] = _normalize_choice(category, CATEGORIES, "invalid_category")
        if status is not _UNSET:
            fields["status"] = _normalize_choice(status, frozenset({"active", "inactive"}), "invalid_status")
        updated = self.repo.update_template(template_id, **fields)
        if updated is None:
            raise TemplateNotFound(template_id)
        return updated

    def delete_template(self, template_id: str) -> None:
        if self.repo.get_template(template_id) is None:
            raise TemplateNotFound(template_id)
        if self.repo.template_in_use(template_id):
            raise TemplateInUse(template_id)
        if not self.repo.delete_template(template_id):
            raise TemplateNotFound(template_id)


__all__ = ["TemplatesRepoProtocol", "TemplatesService", "_UNSET"]
