"""
Pure domain layer.

Value objects, enums, transition tables and Protocols with NO
dependencies on the ORM, the database, the clock, or I/O.
"""

from requisition_kernel.domain.approval_chain import (
    ApprovalChain,
    ApprovalGate,
    DynamicSteps,
    RoleLevels,
    evaluate_authority,
    first_gate,
    gate_at,
    initial_level,
    next_gate,
)
from requisition_kernel.domain.approval_config import ApprovalConfig, ApprovalLevel
from requisition_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from requisition_kernel.domain.notifications import (
    NotificationDispatcher,
    NotificationEvent,
    NotificationKind,
)
from requisition_kernel.domain.requisition import (
    REQUISITION_TRANSITIONS,
    TERMINAL_REQUISITION_STATUSES,
    ApprovalDecision,
    ApprovalRecord,
    ApprovalStatus,
    ChainKind,
    ManualApprover,
    Requisition,
    RequisitionCategory,
    RequisitionDraft,
    RequisitionPolicy,
    RequisitionStatus,
)
from requisition_kernel.domain.staleness import is_unfilled
from requisition_kernel.domain.workflow import (
    ApprovalWorkflow,
    ApproverType,
    DirectoryIdentity,
    OrgDirectory,
    RequisitionContext,
    ResolvedApprover,
    WorkflowStep,
)

__all__ = [
    "ApprovalChain",
    "ApprovalConfig",
    "ApprovalDecision",
    "ApprovalGate",
    "ApprovalLevel",
    "ApprovalRecord",
    "ApprovalStatus",
    "ApprovalWorkflow",
    "ApproverType",
    "ChainKind",
    "Clock",
    "DeterministicClock",
    "DirectoryIdentity",
    "DynamicSteps",
    "ManualApprover",
    "NotificationDispatcher",
    "NotificationEvent",
    "NotificationKind",
    "OrgDirectory",
    "REQUISITION_TRANSITIONS",
    "Requisition",
    "RequisitionCategory",
    "RequisitionContext",
    "RequisitionDraft",
    "RequisitionPolicy",
    "RequisitionStatus",
    "ResolvedApprover",
    "RoleLevels",
    "SystemClock",
    "TERMINAL_REQUISITION_STATUSES",
    "WorkflowStep",
    "evaluate_authority",
    "first_gate",
    "gate_at",
    "initial_level",
    "is_unfilled",
    "next_gate",
]
