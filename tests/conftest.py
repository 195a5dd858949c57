"""
Pytest fixtures for the requisition engine test suite.

Provides:
- A database session per test, rolled back at teardown
- Structured-log capture
- Orchestrator / service fixtures wired with a deterministic clock and a
  recording notification dispatcher
- Factory fixtures for approval ladders, workflow templates, directory
  users, org areas / units and requisitions

Environment Variables:
- RQ_TEST_DATABASE_URL: database to run against.  Defaults to in-memory
  SQLite; set a PostgreSQL URL to exercise row locks for real.
"""

import json
import logging
import os
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from requisition_kernel.db.engine import build_engine, create_tables, drop_tables
from requisition_kernel.domain.approval_config import ApprovalLevel
from requisition_kernel.domain.clock import DeterministicClock
from requisition_kernel.domain.notifications import NotificationEvent, NotificationKind
from requisition_kernel.domain.requisition import (
    ManualApprover,
    RequisitionCategory,
    RequisitionDraft,
    RequisitionPolicy,
)
from requisition_kernel.domain.workflow import (
    ApproverType,
    DirectoryIdentity,
    WorkflowStep,
)
from requisition_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from requisition_kernel.models.organization import (
    DirectoryUserModel,
    OrgAreaModel,
    OrgUnitModel,
)
from requisition_services.orchestrator import RequisitionOrchestrator

TENANT = "acme"
OTHER_TENANT = "globex"
BRAND = "papajohns"
STORE = "store-001"
ADMIN_ACTOR = "admin-1"

CREATOR_ID = "u-creator"
CREATOR_EMAIL = "creator@acme.pe"

STANDARD_LEVELS = (
    ApprovalLevel(level=1, name="Supervisor", authorized_roles=frozenset({"supervisor"})),
    ApprovalLevel(level=2, name="Jefe de marca", authorized_roles=frozenset({"jefe_marca"})),
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture requisition_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.requisitions.approve(...)
            logs = captured_logs()
            assert any(r["message"] == "requisition_approved" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("requisition_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Database
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("RQ_TEST_DATABASE_URL", "sqlite://")


@pytest.fixture(scope="session")
def db_engine():
    """One engine and one schema for the whole run."""
    engine = build_engine(get_database_url())
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection;
    ``session.commit()`` inside a test only releases a savepoint, and the
    outer transaction is rolled back at teardown.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Clock, dispatcher, policy
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


class RecordingDispatcher:
    """NotificationDispatcher that keeps every event in memory."""

    def __init__(self):
        self.events: list[NotificationEvent] = []

    def dispatch(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: NotificationKind) -> list[NotificationEvent]:
        return [e for e in self.events if e.kind == kind]

    def recipients(self, kind: NotificationKind) -> list[str]:
        return [e.recipient for e in self.of_kind(kind)]

    def clear(self) -> None:
        self.events.clear()


class FailingDispatcher:
    """NotificationDispatcher whose delivery always blows up."""

    def __init__(self):
        self.attempts = 0

    def dispatch(self, event: NotificationEvent) -> None:
        self.attempts += 1
        raise ConnectionError("smtp relay unreachable")


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def policy() -> RequisitionPolicy:
    return RequisitionPolicy(brand_codes={BRAND: "PJ", "kfc": "KFC"})


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def orchestrator(session, deterministic_clock, dispatcher, policy) -> RequisitionOrchestrator:
    """Fully wired engine on the test session, with the SQL directory."""
    return RequisitionOrchestrator(
        session,
        policy=policy,
        clock=deterministic_clock,
        dispatcher=dispatcher,
    )


@pytest.fixture
def requisition_service(orchestrator):
    return orchestrator.requisitions


@pytest.fixture
def config_service(orchestrator):
    return orchestrator.config


@pytest.fixture
def auditor_service(orchestrator):
    return orchestrator.auditor


@pytest.fixture
def selector(orchestrator):
    return orchestrator.selector


@pytest.fixture
def intake(orchestrator):
    return orchestrator.intake


@pytest.fixture
def bulk(orchestrator):
    return orchestrator.bulk


# =============================================================================
# Test data generators
# =============================================================================


@pytest.fixture
def make_draft():
    """Factory for RequisitionDraft with sensible defaults."""

    def _make_draft(**overrides) -> RequisitionDraft:
        data = dict(
            tenant_id=TENANT,
            position_name="Cajero",
            category=RequisitionCategory.OPERATIONAL,
            quantity=1,
            created_by=CREATOR_ID,
            created_by_email=CREATOR_EMAIL,
            created_by_name="Carla Creator",
            brand_id=BRAND,
            store_id=STORE,
        )
        data.update(overrides)
        return RequisitionDraft(**data)

    return _make_draft


@pytest.fixture
def configure_levels(config_service):
    """Factory fixture saving a role-level ladder (default: supervisor, jefe_marca)."""

    def _configure(levels=STANDARD_LEVELS, brand_id=None, tenant_id=TENANT):
        return config_service.save_config(tenant_id, levels, ADMIN_ACTOR, brand_id=brand_id)

    return _configure


@pytest.fixture
def configure_workflow(config_service):
    """Factory fixture saving a default workflow template."""

    def _configure(steps, name="Standard", is_default=True, tenant_id=TENANT, is_active=True):
        return config_service.save_workflow(
            tenant_id, name, steps, ADMIN_ACTOR,
            is_default=is_default, is_active=is_active,
        )

    return _configure


@pytest.fixture
def create_directory_user(session, deterministic_clock):
    """Factory fixture adding an active tenant user to the directory."""

    def _create(
        identity_id: str,
        email: str,
        role: str,
        *,
        tenant_id: str = TENANT,
        display_name: str = "",
        capabilities: tuple[str, ...] = (),
        scope_ids: tuple[str, ...] = (),
        is_active: bool = True,
    ) -> DirectoryUserModel:
        now = deterministic_clock.tick()
        user = DirectoryUserModel(
            tenant_id=tenant_id,
            identity_id=identity_id,
            email=email,
            display_name=display_name or email.split("@")[0].title(),
            role=role,
            capabilities=list(capabilities),
            scope_ids=list(scope_ids),
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        session.add(user)
        session.flush()
        return user

    return _create


@pytest.fixture
def create_area(session, deterministic_clock):
    """Factory fixture for an org area; returns its id as a string."""

    def _create(
        name: str = "Operaciones Lima",
        manager_email: str | None = None,
        manager_id: str | None = None,
        manager_name: str | None = None,
        tenant_id: str = TENANT,
    ) -> str:
        now = deterministic_clock.now()
        area = OrgAreaModel(
            tenant_id=tenant_id,
            name=name,
            manager_id=manager_id,
            manager_email=manager_email,
            manager_name=manager_name,
            created_at=now,
            updated_at=now,
        )
        session.add(area)
        session.flush()
        return str(area.id)

    return _create


@pytest.fixture
def create_org_unit(session, deterministic_clock):
    """Factory fixture for a gerencia; returns its id as a string."""

    def _create(
        name: str = "Gerencia Comercial",
        manager_email: str | None = None,
        manager_id: str | None = None,
        manager_name: str | None = None,
        tenant_id: str = TENANT,
    ) -> str:
        now = deterministic_clock.now()
        unit = OrgUnitModel(
            tenant_id=tenant_id,
            name=name,
            manager_id=manager_id,
            manager_email=manager_email,
            manager_name=manager_name,
            created_at=now,
            updated_at=now,
        )
        session.add(unit)
        session.flush()
        return str(unit.id)

    return _create


@pytest.fixture
def submit_requisition(intake, make_draft, deterministic_clock):
    """Submit one requisition through intake and return its DTO.

    The clock ticks first so creation times are strictly ordered.
    """

    def _submit(**overrides):
        deterministic_clock.tick()
        return intake.submit(make_draft(**overrides))[0]

    return _submit


@pytest.fixture
def role_level_requisition(configure_levels, submit_requisition):
    """A requisition pending at level 1 of the standard two-level ladder."""
    configure_levels()
    return submit_requisition()


@pytest.fixture
def dynamic_workflow(configure_workflow, create_area, create_org_unit):
    """Default workflow: hiring manager, area manager, gerencia manager.

    Returns the (area_id, org_unit_id) the requisitions should point at.
    """
    area_id = create_area(
        manager_email="area.boss@acme.pe", manager_id="u-area", manager_name="Ana Area",
    )
    unit_id = create_org_unit(
        manager_email="gerente@acme.pe", manager_id="u-ger", manager_name="Gino Gerente",
    )
    configure_workflow((
        WorkflowStep(1, "Hiring manager", ApproverType.HIRING_MANAGER),
        WorkflowStep(2, "Area manager", ApproverType.AREA_MANAGER),
        WorkflowStep(3, "Gerencia", ApproverType.GERENCIA_MANAGER),
    ))
    return area_id, unit_id


def identity(identity_id: str, email: str, name: str = "") -> DirectoryIdentity:
    return DirectoryIdentity(identity_id=identity_id, email=email, display_name=name)


def manual(identity_id: str, email: str, name: str = "") -> ManualApprover:
    return ManualApprover(identity_id=identity_id, email=email, display_name=name)
