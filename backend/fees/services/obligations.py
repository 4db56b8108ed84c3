"""Obligation read models and status updates (fee records after assignment)."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Protocol

from fees.domain import Group, Obligation, ObligationNotFound, ObligationStatus


class ObligationsRepoProtocol(Protocol):
    def list_obligations(
        self,
        *,
        student_id: Optional[str] = None,
        class_id: Optional[str] = None,
        status: Optional[ObligationStatus] = None,
    ) -> List[Obligation]:
        ...

    def update_obligation_status(self, obligation_id: str, status: ObligationStatus) -> Optional[Obligation]:
        ...

    def list_groups(self) -> List[Group]:
        ...


def parse_status(value: object) -> ObligationStatus:
    try:
        return ObligationStatus(str(value or "").strip().lower())
    except ValueError as exc:
        raise ValueError("invalid_status") from exc


@dataclass
class ObligationsService:
    repo: ObligationsRepoProtocol

    def list_obligations(
        self,
        *,
        student_id: Optional[str] = None,
        class_id: Optional[str] = None,
        status: object = None,
    ) -> List[Obligation]:
        parsed = parse_status(status) if status else None
        return self.repo.list_obligations(student_id=student_id, class_id=class_id, status=parsed)

    def update_status(self, obligation_id: str, status: object) -> Obligation:
        updated = self.repo.update_obligation_status(obligation_id, parse_status(status))
        if updated is None:
            raise ObligationNotFound()
        return updated

    def class_overview(self) -> List[dict]:
        """Per-group totals: members, expected amount and counts per status.

        Expected totals are summed per currency since one class may hold
        obligations in several currencies.
        """
        by_class: Dict[str, List[Obligation]] = {}
        for ob in self.repo.list_obligations():
            by_class.setdefault(ob.class_id, []).append(ob)
        overview: List[dict] = []
        for group in self.repo.list_groups():
            records = by_class.get(group.id, [])
            expected: Dict[str, Decimal] = {}
            for ob in records:
                expected[ob.currency] = expected.get(ob.currency, Decimal("0")) + ob.amount
            counts = {s.value: 0 for s in ObligationStatus}
            for ob in records:
                counts[ob.status.value] += 1
            overview.append(
                {
                    "classId": group.id,
                    "className": group.title,
                    "totalStudents": len(group.member_ids),
                    "expectedByCurrency": {cur: float(total) for cur, total in sorted(expected.items())},
                    "paidCount": counts["paid"],
                    "pendingCount": counts["pending"],
                    "overdueCount": counts["overdue"],
                }
            )
        return overview


__all__ = ["ObligationsRepoProtocol", "ObligationsService", "parse_status"]
