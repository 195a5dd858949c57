"""
Requisition domain types (``requisition_kernel.domain.requisition``).

Responsibility
--------------
Pure value objects for a personnel requisition ("RQ"): lifecycle and
approval status enums, the status transition table, approval records,
the intake draft, and the policy knobs the state machine reads.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Status lifecycle -- ``REQUISITION_TRANSITIONS`` defines the only valid
  ``status`` changes.  ``closed``, ``filled`` and ``cancelled`` have no
  outgoing edges.
* Approval lifecycle -- ``approved`` and ``rejected`` are terminal for
  ``approval_status``; only ``pending`` admits a decision.
* Approval records are append-only and ordered by level.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


# =========================================================================
# Lifecycle enums
# =========================================================================


class RequisitionStatus(str, Enum):
    """Recruiting lifecycle of a requisition."""

    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"
    FILLED = "filled"
    CANCELLED = "cancelled"


REQUISITION_TRANSITIONS: dict[RequisitionStatus, frozenset[RequisitionStatus]] = {
    RequisitionStatus.DRAFT: frozenset({
        RequisitionStatus.ACTIVE,
        RequisitionStatus.CANCELLED,
    }),
    RequisitionStatus.ACTIVE: frozenset({
        RequisitionStatus.CLOSED,
        RequisitionStatus.FILLED,
        RequisitionStatus.CANCELLED,
    }),
    RequisitionStatus.CLOSED: frozenset(),
    RequisitionStatus.FILLED: frozenset(),
    RequisitionStatus.CANCELLED: frozenset(),
}

TERMINAL_REQUISITION_STATUSES: frozenset[RequisitionStatus] = frozenset({
    RequisitionStatus.CLOSED,
    RequisitionStatus.FILLED,
    RequisitionStatus.CANCELLED,
})


def can_transition(current: RequisitionStatus, target: RequisitionStatus) -> bool:
    return target in REQUISITION_TRANSITIONS.get(current, frozenset())


class ApprovalStatus(str, Enum):
    """Progress of the approval chain."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalDecision(str, Enum):
    """Decision recorded on an approval record."""

    APPROVED = "approved"
    REJECTED = "rejected"


class RequisitionCategory(str, Enum):
    """Position category.

    Operational positions are requested by store managers; managerial
    positions only by supervisors and above.
    """

    OPERATIONAL = "operational"
    MANAGERIAL = "managerial"


class ChainKind(str, Enum):
    """Which strategy produced the requisition's approval gates."""

    ROLE_LEVELS = "role_levels"
    DYNAMIC_STEPS = "dynamic_steps"


# =========================================================================
# Records
# =========================================================================


@dataclass(frozen=True)
class ApprovalRecord:
    """One immutable entry in a requisition's approval history."""

    level: int
    approver_id: str
    approver_email: str
    approver_role: str | None
    decision: ApprovalDecision
    decided_at: datetime
    comment: str | None = None
    step_name: str | None = None


@dataclass(frozen=True)
class Requisition:
    """Read model of a requisition and its approval history.

    Built by the ORM model's ``to_dto()``; services hand these out so
    callers never hold a live ORM object.
    """

    id: UUID
    tenant_id: str
    brand_id: str | None
    store_id: str | None
    area_id: str | None
    org_unit_id: str | None
    position_name: str
    category: RequisitionCategory
    quantity: int
    status: RequisitionStatus
    approval_status: ApprovalStatus
    current_approval_level: int
    chain_kind: ChainKind
    created_by: str
    created_by_email: str
    created_at: datetime
    updated_at: datetime
    version: int = 1
    rq_number: str | None = None
    batch_id: UUID | None = None
    instance_number: int | None = None
    approval_records: tuple[ApprovalRecord, ...] = ()
    level_assignments: dict[int, str] = field(default_factory=dict)
    rejection_reason: str | None = None
    deletion_requested: bool = False
    deletion_approved: bool = False
    deletion_requested_by: str | None = None
    deletion_reason: str | None = None
    deletion_requested_at: datetime | None = None
    recruitment_started_at: datetime | None = None
    recruitment_ended_at: datetime | None = None
    filled_count: int = 0
    closed_by: str | None = None
    closure_reason: str | None = None
    alert_unfilled: bool = False
    alert_days_threshold: int | None = None
    alert_unfilled_at: datetime | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REQUISITION_STATUSES

    @property
    def is_approval_resolved(self) -> bool:
        return self.approval_status != ApprovalStatus.PENDING

    @property
    def approved_levels(self) -> tuple[int, ...]:
        return tuple(
            r.level for r in self.approval_records
            if r.decision == ApprovalDecision.APPROVED
        )


@dataclass(frozen=True)
class ManualApprover:
    """Approver picked by the requester ("direct superior")."""

    identity_id: str
    email: str
    display_name: str = ""


@dataclass(frozen=True)
class RequisitionDraft:
    """Intake payload for a new requisition."""

    tenant_id: str
    position_name: str
    category: RequisitionCategory
    quantity: int
    created_by: str
    created_by_email: str
    created_by_name: str = ""
    brand_id: str | None = None
    store_id: str | None = None
    area_id: str | None = None
    org_unit_id: str | None = None
    manual_approver: ManualApprover | None = None
    alert_days_threshold: int | None = None
    details: dict[str, Any] = field(default_factory=dict)


# =========================================================================
# Policy
# =========================================================================


@dataclass(frozen=True)
class RequisitionPolicy:
    """Tenant-independent knobs the state machine reads.

    Built from engine settings by ``requisition_config.bridges``; the
    kernel never reads configuration files itself.
    """

    auto_activate_categories: frozenset[RequisitionCategory] = frozenset({
        RequisitionCategory.OPERATIONAL,
    })
    deletion_approver_roles: frozenset[str] = frozenset({"admin", "jefe_marca"})
    direct_delete_roles: frozenset[str] = frozenset({"admin"})
    unfilled_alert_days: int = 7
    brand_codes: dict[str, str] = field(default_factory=dict)

    def activates_on_approval(self, category: RequisitionCategory) -> bool:
        return category in self.auto_activate_categories

    def brand_code(self, brand_id: str | None) -> str:
        """RQ number prefix for a brand.

        Falls back to the id with a ``brand_`` prefix stripped, then to the
        first three letters of the id.
        """
        if not brand_id:
            return "GEN"
        if brand_id in self.brand_codes:
            return self.brand_codes[brand_id]
        stripped = brand_id.removeprefix("brand_")
        if stripped in self.brand_codes:
            return self.brand_codes[stripped]
        letters = "".join(c for c in stripped if c.isalnum())
        return (letters[:3] or "GEN").upper()


def format_rq_number(brand_code: str, sequence: int) -> str:
    return f"RQ-{brand_code}-{sequence:05d}"
