"""
In-memory fees repository (templates, groups, obligations).

Used for tests and local offline work; mirrors the contract of
`fees.repo_db.DBFeesRepo`. Not thread-safe across processes and not durable.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import uuid4

from fees.domain import Group, Obligation, ObligationDraft, ObligationStatus, ObligationTemplate


def _to_obligation(draft: ObligationDraft) -> Obligation:
    return Obligation(
        id=str(uuid4()),
        student_id=draft.student_id,
        class_id=draft.class_id,
        template_id=draft.template_id,
        amount=draft.amount,
        currency=draft.currency,
        due_date=draft.due_date,
        status=draft.status,
        idempotency_key=draft.idempotency_key,
        created_at=datetime.now(timezone.utc),
    )


class InMemoryFeesRepo:
    def __init__(self, *, templates: Iterable[ObligationTemplate] = (), groups: Iterable[Group] = ()) -> None:
        self.templates: Dict[str, ObligationTemplate] = {t.id: t for t in templates}
        self.groups: Dict[str, Group] = {g.id: g for g in groups}
        # insertion order doubles as creation order
        self.obligations: Dict[str, Obligation] = {}

    # --- Templates -------------------------------------------------------------
    def list_templates(self) -> List[ObligationTemplate]:
        return list(self.templates.values())

    def get_template(self, template_id: str) -> Optional[ObligationTemplate]:
        return self.templates.get(template_id)

    def find_template_by_name(self, name: str) -> Optional[ObligationTemplate]:
        for t in self.templates.values():
            if t.name == name:
                return t
        return None

    def create_template(self, **fields: Any) -> ObligationTemplate:
        template = ObligationTemplate(id=str(uuid4()), **fields)
        self.templates[template.id] = template
        return template

    def update_template(self, template_id: str, **fields: Any) -> Optional[ObligationTemplate]:
        current = self.templates.get(template_id)
        if current is None:
            return None
        updated = replace(current, **fields)
        self.templates[template_id] = updated
        return updated

    def delete_template(self, template_id: str) -> bool:
        return self.templates.pop(template_id, None) is not None

    def template_in_use(self, template_id: str) -> bool:
        return any(o.template_id == template_id for o in self.obligations.values())

    # --- Groups ----------------------------------------------------------------
    def add_group(self, group: Group) -> Group:
        self.groups[group.id] = group
        return group

    def get_groups(self, group_ids: Sequence[str]) -> List[Group]:
        return [self.groups[gid] for gid in dict.fromkeys(group_ids) if gid in self.groups]

    def list_groups(self) -> List[Group]:
        return list(self.groups.values())

    # --- Obligations -----------------------------------------------------------
    def create_obligation(self, draft: ObligationDraft) -> Obligation:
        ob = _to_obligation(draft)
        self.obligations[ob.id] = ob
        return ob

    def create_obligations(self, drafts: Sequence[ObligationDraft]) -> List[Obligation]:
        # Build everything first so a failure leaves the store untouched.
        built = [_to_obligation(d) for d in drafts]
        for ob in built:
            self.obligations[ob.id] = ob
        return built

    def find_obligation_by_key(self, key: str) -> Optional[Obligation]:
        for ob in self.obligations.values():
            if ob.idempotency_key == key:
                return ob
        return None

    def list_obligations(
        self,
        *,
        student_id: Optional[str] = None,
        class_id: Optional[str] = None,
        status: Optional[ObligationStatus] = None,
    ) -> List[Obligation]:
        items = list(self.obligations.values())
        if student_id is not None:
            items = [o for o in items if o.student_id == student_id]
        if class_id is not None:
            items = [o for o in items if o.class_id == class_id]
        if status is not None:
            items = [o for o in items if o.status is status]
        return items

    def update_obligation_status(self, obligation_id: str, status: ObligationStatus) -> Optional[Obligation]:
        current = self.obligations.get(obligation_id)
        if current is None:
            return None
        updated = replace(current, status=status)
        self.obligations[obligation_id] = updated
        return updated


__all__ = ["InMemoryFeesRepo"]
