"""
Bulk fee assignment tests (service level, in-memory repo).

Why:
    The fan-out has the trickiest semantics of the fees context: skipped
    classes and students, repeat runs, and partial failure. These tests pin
    the default behavior (sequential, no deduplication) and both opt-in modes.
"""
from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
import logging

import pytest

from fees.domain import Group, ObligationStatus, TemplateNotFound, idempotency_key
from fees.repo_memory import InMemoryFeesRepo
from fees.services.assignment import AssignmentAborted, AssignmentService, AssignmentSettings


TUITION_ID = "tmpl-tuition"


class _FailingRepo(InMemoryFeesRepo):
    """Fails the N-th single write, or every batch write."""

    def __init__(self, *, fail_on_call: int, **kw):
        super().__init__(**kw)
        self._fail_on_call = fail_on_call
        self._calls = 0

    def create_obligation(self, draft):
        self._calls += 1
        if self._calls == self._fail_on_call:
            raise ConnectionError("db went away")
        return super().create_obligation(draft)

    def create_obligations(self, drafts):
        raise ConnectionError("db went away")


def _service(repo, principals, **settings) -> AssignmentService:
    return AssignmentService(repo=repo, principals=principals, settings=AssignmentSettings(**settings))


def test_assign_creates_one_obligation_per_enrolled_student(fees_repo, principals, due_date):
    result = _service(fees_repo, principals).assign(TUITION_ID, ["g1", "g2"], due_date)

    assert [(o.class_id, o.student_id) for o in result.created] == [("g1", "s1"), ("g1", "s2"), ("g2", "s3")]
    for ob in result.created:
        assert ob.amount == Decimal("1500.00")
        assert ob.currency == "LKR"
        assert ob.status is ObligationStatus.PENDING
        assert ob.due_date == due_date
        assert ob.template_id == TUITION_ID
    assert len(fees_repo.obligations) == 3
    assert result.skipped_groups == [] and result.skipped_members == []


def test_unknown_template_creates_nothing(fees_repo, principals, due_date):
    with pytest.raises(TemplateNotFound):
        _service(fees_repo, principals).assign("missing", ["g1"], due_date)
    assert fees_repo.obligations == {}


def test_unknown_group_is_skipped_and_reported(fees_repo, principals, due_date):
    result = _service(fees_repo, principals).assign(TUITION_ID, ["nope", "g2"], due_date)
    assert result.skipped_groups == ["nope"]
    assert [o.student_id for o in result.created] == ["s3"]


def test_member_without_principal_record_is_skipped(fees_repo, principals, due_date):
    fees_repo.add_group(Group("g9", "Grade 9", ("s1", "ghost")))
    result = _service(fees_repo, principals).assign(TUITION_ID, ["g9"], due_date)
    assert [o.student_id for o in result.created] == ["s1"]
    assert result.skipped_members == [("g9", "ghost")]


def test_empty_group_list_creates_nothing(fees_repo, principals, due_date):
    result = _service(fees_repo, principals).assign(TUITION_ID, [], due_date)
    assert result.created == []


def test_repeated_group_id_in_one_request_is_expanded_once(fees_repo, principals, due_date):
    result = _service(fees_repo, principals).assign(TUITION_ID, ["g1", "g1"], due_date)
    assert len(result.created) == 2


def test_repeat_run_duplicates_records_by_default(fees_repo, principals, due_date):
    svc = _service(fees_repo, principals)
    svc.assign(TUITION_ID, ["g1", "g2"], due_date)
    second = svc.assign(TUITION_ID, ["g1", "g2"], due_date)

    assert len(second.created) == 3
    assert len(fees_repo.obligations) == 6
    assert second.duplicates == []


def test_deduplicate_mode_skips_existing_keys(fees_repo, principals, due_date):
    svc = _service(fees_repo, principals, deduplicate=True)
    svc.assign(TUITION_ID, ["g1", "g2"], due_date)
    second = svc.assign(TUITION_ID, ["g1", "g2"], due_date)

    assert second.created == []
    assert second.duplicates == [("g1", "s1"), ("g1", "s2"), ("g2", "s3")]
    assert len(fees_repo.obligations) == 3


def test_deduplicate_mode_collapses_student_enrolled_in_two_groups(fees_repo, principals, due_date):
    fees_repo.add_group(Group("g3", "Choir", ("s1",)))
    result = _service(fees_repo, principals, deduplicate=True).assign(TUITION_ID, ["g1", "g3"], due_date)
    assert [o.student_id for o in result.created] == ["s1", "s2"]
    assert result.duplicates == [("g3", "s1")]


def test_idempotency_key_depends_on_due_date(fees_repo, principals, due_date):
    svc = _service(fees_repo, principals, deduplicate=True)
    svc.assign(TUITION_ID, ["g2"], due_date)
    later = svc.assign(TUITION_ID, ["g2"], due_date.replace(month=10))
    assert len(later.created) == 1
    assert later.created[0].idempotency_key == idempotency_key("s3", TUITION_ID, due_date.replace(month=10))


def test_later_template_edit_does_not_change_issued_records(fees_repo, principals, due_date):
    result = _service(fees_repo, principals).assign(TUITION_ID, ["g2"], due_date)
    fees_repo.templates[TUITION_ID] = replace(fees_repo.templates[TUITION_ID], amount=Decimal("9999"))
    stored = fees_repo.obligations[result.created[0].id]
    assert stored.amount == Decimal("1500.00")


def test_sequential_failure_keeps_partial_records_and_reports_them(fees_repo, principals, due_date):
    repo = _FailingRepo(
        fail_on_call=2,
        templates=fees_repo.templates.values(),
        groups=fees_repo.groups.values(),
    )
    with pytest.raises(AssignmentAborted) as excinfo:
        _service(repo, principals).assign(TUITION_ID, ["g1", "g2"], due_date)

    assert [o.student_id for o in excinfo.value.created] == ["s1"]
    assert isinstance(excinfo.value.cause, ConnectionError)
    # No rollback in sequential mode.
    assert len(repo.obligations) == 1
    assert excinfo.value.is_partial


def test_sequential_failure_keeps_skips_computed_before_the_error(fees_repo, principals, due_date):
    repo = _FailingRepo(
        fail_on_call=2,
        templates=fees_repo.templates.values(),
        groups=fees_repo.groups.values(),
    )
    repo.add_group(Group("g9", "Grade 9", ("ghost", "s3")))
    with pytest.raises(AssignmentAborted) as excinfo:
        _service(repo, principals).assign(TUITION_ID, ["zz", "g9", "g1"], due_date)

    body = excinfo.value.to_public()
    assert body["partial"] is True
    assert [o["studentId"] for o in body["data"]] == ["s3"]
    assert body["skippedGroups"] == ["zz"]
    assert body["skippedMembers"] == [{"classId": "g9", "studentId": "ghost"}]


class _UnreadableGroupsRepo(InMemoryFeesRepo):
    def get_groups(self, group_ids):
        raise ConnectionError("db went away")


class _UnreadablePrincipals:
    def get_principal(self, principal_id):
        raise ConnectionError("db went away")

    def get_principals(self, principal_ids):
        raise ConnectionError("db went away")


@pytest.mark.parametrize("broken", ["groups", "principals"])
def test_read_failure_before_any_write_is_logged_and_rolled_back(fees_repo, principals, due_date, caplog, broken):
    if broken == "groups":
        repo = _UnreadableGroupsRepo(templates=fees_repo.templates.values(), groups=fees_repo.groups.values())
    else:
        repo, principals = fees_repo, _UnreadablePrincipals()
    caplog.set_level(logging.ERROR, logger="schoolhub.fees")

    with pytest.raises(AssignmentAborted) as excinfo:
        _service(repo, principals).assign(TUITION_ID, ["g1"], due_date)

    assert excinfo.value.created == []
    assert excinfo.value.rolled_back is True
    assert isinstance(excinfo.value.cause, ConnectionError)
    assert repo.obligations == {}
    [record] = [r for r in caplog.records if r.name == "schoolhub.fees"]
    assert record.levelno == logging.ERROR
    assert "ConnectionError" in record.getMessage()
    assert "db went away" not in record.getMessage()


def test_atomic_mode_creates_all_records_in_one_batch(fees_repo, principals, due_date):
    result = _service(fees_repo, principals, atomic=True).assign(TUITION_ID, ["g1", "g2"], due_date)
    assert len(result.created) == 3
    assert len(fees_repo.obligations) == 3


def test_atomic_mode_failure_persists_nothing(fees_repo, principals, due_date):
    repo = _FailingRepo(
        fail_on_call=1,
        templates=fees_repo.templates.values(),
        groups=fees_repo.groups.values(),
    )
    with pytest.raises(AssignmentAborted) as excinfo:
        _service(repo, principals, atomic=True).assign(TUITION_ID, ["g1", "g2"], due_date)
    assert excinfo.value.created == []
    assert repo.obligations == {}
    assert excinfo.value.rolled_back is True
    assert excinfo.value.to_public()["partial"] is False


def test_result_public_shape(fees_repo, principals, due_date):
    result = _service(fees_repo, principals).assign(TUITION_ID, ["g2", "zz"], due_date)
    body = result.to_public()
    assert set(body) == {"created", "skippedGroups", "skippedMembers", "duplicates"}
    assert body["skippedGroups"] == ["zz"]
    created = body["created"][0]
    assert created["studentId"] == "s3"
    assert created["feeStructureId"] == TUITION_ID
    assert created["amount"] == 1500.0
    assert created["dueDate"] == due_date.isoformat()
    assert created["status"] == "pending"
