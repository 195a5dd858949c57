"""
Identity-based approval workflows (``requisition_kernel.domain.workflow``).

Responsibility
--------------
Value objects for workflow templates whose steps name *kinds* of approver
(hiring manager, area manager, ...) rather than roles, plus the resolved
per-requisition result and the organizational directory boundary the
resolver consumes.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects and a Protocol.  ZERO I/O.

Invariants enforced
-------------------
* Resolved approvers are numbered 1..N contiguously (see
  ``requisition_engines.approver_resolver``).
* ``ResolvedApprover.skip_reason`` is present iff ``skipped``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from uuid import UUID


class ApproverType(str, Enum):
    """How a workflow step finds its approver."""

    HIRING_MANAGER = "hiring_manager"
    AREA_MANAGER = "area_manager"
    GERENCIA_MANAGER = "gerencia_manager"
    RECRUITMENT_LEAD = "recruitment_lead"
    SPECIFIC_USER = "specific_user"
    # Only produced by a manual override at intake, never configured.
    DIRECT_SUPERIOR = "direct_superior"


CONFIGURABLE_APPROVER_TYPES: frozenset[ApproverType] = frozenset(
    t for t in ApproverType if t != ApproverType.DIRECT_SUPERIOR
)

RECRUITMENT_LEAD_ROLE = "jefe_reclutamiento"


@dataclass(frozen=True)
class DirectoryIdentity:
    """A person as known to the organizational directory."""

    identity_id: str
    email: str
    display_name: str = ""

    @property
    def email_key(self) -> str:
        return self.email.strip().lower()


@dataclass(frozen=True)
class WorkflowStep:
    """One step of a workflow template."""

    order: int
    name: str
    approver_type: ApproverType
    specific_user: DirectoryIdentity | None = None


@dataclass(frozen=True)
class ApprovalWorkflow:
    """Tenant-owned workflow template."""

    id: UUID
    tenant_id: str
    name: str
    steps: tuple[WorkflowStep, ...]
    is_default: bool = False
    is_active: bool = True
    description: str | None = None


@dataclass(frozen=True)
class ResolvedApprover:
    """A workflow step bound to a concrete identity for one requisition."""

    step_order: int
    step_name: str
    approver_type: ApproverType
    identity: DirectoryIdentity | None
    skipped: bool = False
    skip_reason: str | None = None

    @property
    def email_key(self) -> str | None:
        return self.identity.email_key if self.identity else None


@dataclass(frozen=True)
class RequisitionContext:
    """Everything the resolver may look at for a requisition."""

    tenant_id: str
    creator: DirectoryIdentity
    area_id: str | None = None
    org_unit_id: str | None = None


class OrgDirectory(Protocol):
    """Organizational directory boundary.

    Every lookup returns None when nothing is configured; implementations
    must not raise for missing data.
    """

    def area_manager(self, area_id: str) -> DirectoryIdentity | None: ...

    def org_unit_manager(self, org_unit_id: str) -> DirectoryIdentity | None: ...

    def recruitment_lead(self, tenant_id: str) -> DirectoryIdentity | None: ...

    def role_holder(
        self,
        tenant_id: str,
        roles: frozenset[str],
        scope_ids: tuple[str, ...] = (),
    ) -> DirectoryIdentity | None: ...

    def role_holders(
        self,
        tenant_id: str,
        roles: frozenset[str],
    ) -> tuple[DirectoryIdentity, ...]: ...
