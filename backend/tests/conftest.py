"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors), and
give every test fresh in-memory stores plus deterministic settings.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path
import sys

import pytest


REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = REPO_ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from identity_access.domain import OperableState, Principal, Role  # noqa: E402
from identity_access.stores import PrincipalStore  # noqa: E402
from identity_access.tokens import issue_token  # noqa: E402
from fees.domain import Group, ObligationTemplate  # noqa: E402
from fees.repo_memory import InMemoryFeesRepo  # noqa: E402
from storage.uploads import LocalUploadStorage  # noqa: E402
from web import wiring  # noqa: E402
from web.config import AppSettings  # noqa: E402


TEST_SECRET = "test-secret-for-unit-tests-only-0123456789"
TUITION_ID = "tmpl-tuition"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Clear env-driven toggles that may leak across tests (dev unless a test opts in)."""
    for var in (
        "SCHOOLHUB_ENV",
        "JWT_SECRET",
        "JWT_ALGORITHM",
        "JWT_TTL_SECONDS",
        "CORS_ALLOWED_ORIGINS",
        "STORE_BACKEND",
        "FEES_ASSIGN_ATOMIC",
        "FEES_ASSIGN_DEDUPLICATE",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    return AppSettings(environment="dev", jwt_secret=TEST_SECRET, uploads_root=str(tmp_path / "uploads"))


@pytest.fixture
def principals() -> PrincipalStore:
    return PrincipalStore(
        [
            Principal("admin-1", Role.ADMIN, OperableState.ACTIVE, "Ada", "Admin", "ada@example.org"),
            Principal("teacher-1", Role.TEACHER, OperableState.ACTIVE, "Tom", "Teacher", "tom@example.org"),
            Principal("parent-1", Role.PARENT, OperableState.ACTIVE, "Pat", "Parent"),
            Principal("s1", Role.STUDENT, OperableState.ACTIVE, "Sam", "One", class_ids=("g1",)),
            Principal("s2", Role.STUDENT, OperableState.ACTIVE, "Sue", "Two", class_ids=("g1",)),
            Principal("s3", Role.STUDENT, OperableState.ACTIVE, "Sid", "Three", class_ids=("g2",)),
            Principal("s-pending", Role.STUDENT, OperableState.PENDING),
            Principal("t-suspended", Role.TEACHER, OperableState.SUSPENDED),
        ]
    )


@pytest.fixture
def fees_repo() -> InMemoryFeesRepo:
    return InMemoryFeesRepo(
        templates=[ObligationTemplate(id=TUITION_ID, name="Tuition", amount=Decimal("1500.00"), currency="LKR")],
        groups=[
            Group("g1", "Grade 1", ("s1", "s2")),
            Group("g2", "Grade 2", ("s3",)),
        ],
    )


@pytest.fixture(autouse=True)
def _wire_in_memory_stores(settings, principals, fees_repo):
    """Reset the web wiring to in-memory stores before each test."""
    wiring.set_settings(settings)
    wiring.set_principal_store(principals)
    wiring.set_fees_repo(fees_repo)
    wiring.set_upload_storage(LocalUploadStorage(settings.uploads_root))
    yield


@pytest.fixture
def auth_header(settings):
    """Build an Authorization header for a principal id."""

    def _make(principal_id: str) -> dict:
        token = issue_token(principal_id=principal_id, cfg=settings.token_config())
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def due_date() -> date:
    return date(2025, 9, 30)

