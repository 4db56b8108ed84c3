"""Bulk fee assignment (obligation fan-out) use case.

Why:
    One administrative action ("charge fee X to classes A and B, due D") turns
    into one obligation per enrolled student. Keeping the expansion here, free
    of FastAPI and SQL, lets us test the partial-failure and skip rules with a
    fake repository.

Behavior:
    - Unknown template: TemplateNotFound, nothing is written.
    - Unknown group ids and members without a principal record are skipped
      and reported on the result (never raised).
    - Sequential mode (default): each obligation is an independent write. A
      storage error aborts the run with AssignmentAborted, which carries the
      obligations already persisted; there is no rollback.
    - Atomic mode: all drafts go to `create_obligations` in one call, which
      the repository executes all-or-nothing. A failure raises
      AssignmentAborted with `rolled_back` set and nothing created.
    - A storage error while reading groups or principals also aborts with
      `rolled_back` set, since no obligation was written yet.
    - Deduplicate mode: drafts whose idempotency key already exists, or that
      repeat within the same run, are not written and are listed in
      `duplicates`. Without it, repeating a run creates duplicate records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
import logging
from typing import List, Optional, Protocol, Sequence, Tuple

from identity_access.stores import PrincipalStoreProtocol

from fees.domain import Group, Obligation, ObligationDraft, ObligationStatus, ObligationTemplate, TemplateNotFound


logger = logging.getLogger("schoolhub.fees")


class AssignmentRepoProtocol(Protocol):
    def get_template(self, template_id: str) -> Optional[ObligationTemplate]:
        ...

    def get_groups(self, group_ids: Sequence[str]) -> List[Group]:
        ...

    def create_obligation(self, draft: ObligationDraft) -> Obligation:
        ...

    def create_obligations(self, drafts: Sequence[ObligationDraft]) -> List[Obligation]:
        ...

    def find_obligation_by_key(self, key: str) -> Optional[Obligation]:
        ...


class AssignmentAborted(RuntimeError):
    """A storage error stopped the run; `created` holds what was persisted.

    `rolled_back` is set when nothing from this run can exist in storage
    (atomic batch or failure before the first write). Skips computed before
    the failure are kept so a partial response can still report them.
    """

    def __init__(
        self,
        created: List[Obligation],
        cause: BaseException,
        *,
        rolled_back: bool = False,
        skipped_groups: Sequence[str] = (),
        skipped_members: Sequence[Tuple[str, str]] = (),
    ) -> None:
        super().__init__("assignment_aborted")
        self.created = created
        self.cause = cause
        self.rolled_back = rolled_back
        self.skipped_groups = list(skipped_groups)
        self.skipped_members = list(skipped_members)

    @property
    def is_partial(self) -> bool:
        return not self.rolled_back

    def to_public(self) -> dict:
        return {
            "partial": self.is_partial,
            "data": [o.to_public() for o in self.created],
            "skippedGroups": list(self.skipped_groups),
            "skippedMembers": [{"classId": g, "studentId": s} for g, s in self.skipped_members],
        }


@dataclass(frozen=True)
class AssignmentSettings:
    atomic: bool = False
    deduplicate: bool = False


@dataclass
class AssignmentResult:
    created: List[Obligation] = field(default_factory=list)
    skipped_groups: List[str] = field(default_factory=list)
    # (group id, member id) pairs whose principal record is missing
    skipped_members: List[Tuple[str, str]] = field(default_factory=list)
    duplicates: List[Tuple[str, str]] = field(default_factory=list)

    def to_public(self) -> dict:
        return {
            "created": [o.to_public() for o in self.created],
            "skippedGroups": list(self.skipped_groups),
            "skippedMembers": [{"classId": g, "studentId": s} for g, s in self.skipped_members],
            "duplicates": [{"classId": g, "studentId": s} for g, s in self.duplicates],
        }


@dataclass
class AssignmentService:
    """Expand groups into per-student obligations for one template."""

    repo: AssignmentRepoProtocol
    principals: PrincipalStoreProtocol
    settings: AssignmentSettings = field(default_factory=AssignmentSettings)

    def assign(self, template_id: str, group_ids: Sequence[str], due_date: date) -> AssignmentResult:
        template = self.repo.get_template(template_id)
        if template is None:
            raise TemplateNotFound(template_id)

        result = AssignmentResult()
        try:
            drafts = self._plan(template, group_ids, due_date, result)
        except Exception as exc:
            logger.error(
                "Fee assignment aborted while planning: template=%s error=%s",
                template.id,
                exc.__class__.__name__,
            )
            raise AssignmentAborted([], exc, rolled_back=True) from exc

        if self.settings.atomic:
            try:
                result.created = list(self.repo.create_obligations(drafts))
            except Exception as exc:
                logger.error(
                    "Fee assignment aborted (atomic): template=%s error=%s",
                    template.id,
                    exc.__class__.__name__,
                )
                raise AssignmentAborted(
                    [],
                    exc,
                    rolled_back=True,
                    skipped_groups=result.skipped_groups,
                    skipped_members=result.skipped_members,
                ) from exc
        else:
            for draft in drafts:
                try:
                    result.created.append(self.repo.create_obligation(draft))
                except Exception as exc:
                    logger.error(
                        "Fee assignment aborted: template=%s persisted=%d remaining=%d error=%s",
                        template.id,
                        len(result.created),
                        len(drafts) - len(result.created),
                        exc.__class__.__name__,
                    )
                    raise AssignmentAborted(
                        list(result.created),
                        exc,
                        skipped_groups=result.skipped_groups,
                        skipped_members=result.skipped_members,
                    ) from exc

        logger.info(
            "Fee assignment done: template=%s groups=%d created=%d skipped_groups=%d skipped_members=%d duplicates=%d",
            template.id,
            len(group_ids),
            len(result.created),
            len(result.skipped_groups),
            len(result.skipped_members),
            len(result.duplicates),
        )
        return result

    def _plan(
        self,
        template: ObligationTemplate,
        group_ids: Sequence[str],
        due_date: date,
        result: AssignmentResult,
    ) -> List[ObligationDraft]:
        requested = list(dict.fromkeys(str(g) for g in group_ids))
        groups = {g.id: g for g in self.repo.get_groups(requested)}
        planned_keys: set[str] = set()
        drafts: List[ObligationDraft] = []

        for gid in requested:
            group = groups.get(gid)
            if group is None:
                result.skipped_groups.append(gid)
                continue
            found = {p.id for p in self.principals.get_principals(list(group.member_ids))}
            for member_id in group.member_ids:
                if member_id not in found:
                    result.skipped_members.append((group.id, member_id))
                    continue
                draft = ObligationDraft(
                    student_id=member_id,
                    class_id=group.id,
                    template_id=template.id,
                    amount=template.amount,
                    currency=template.currency,
                    due_date=due_date,
                    status=ObligationStatus.PENDING,
                )
                if self.settings.deduplicate and self._is_duplicate(draft, planned_keys):
                    result.duplicates.append((group.id, member_id))
                    continue
                planned_keys.add(draft.idempotency_key)
                drafts.append(draft)
        return drafts

    def _is_duplicate(self, draft: ObligationDraft, planned_keys: set[str]) -> bool:
        key = draft.idempotency_key
        if key in planned_keys:
            return True
        return self.repo.find_obligation_by_key(key) is not None


__all__ = [
    "AssignmentAborted",
    "AssignmentRepoProtocol",
    "AssignmentResult",
    "AssignmentService",
    "AssignmentSettings",
]
