"""
Approval chain abstraction (``requisition_kernel.domain.approval_chain``).

Responsibility
--------------
Presents both approval strategies as one ordered list of gates so the
requisition state machine never branches on where its chain came from:

* ``RoleLevels`` -- role-based ladder from ``ApprovalConfig`` (any holder
  of an authorized role, or the level's assignee for single-approver
  levels).
* ``DynamicSteps`` -- identity-based steps produced by the approver
  resolver.  Skipped steps are carried for the audit trail but never
  gate anything.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.

Invariants enforced
-------------------
* Gates are visited in ascending level order; ``next_gate`` never
  returns a level at or below the current one.
* A skipped gate is never returned by ``first_gate``/``next_gate``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from requisition_kernel.domain.approval_config import ApprovalLevel
from requisition_kernel.domain.requisition import ChainKind
from requisition_kernel.domain.workflow import (
    ApproverType,
    DirectoryIdentity,
    ResolvedApprover,
)


@dataclass(frozen=True)
class ApprovalGate:
    """One checkpoint the requisition must clear."""

    level: int
    name: str
    authorized_roles: frozenset[str] = frozenset()
    assignee: DirectoryIdentity | None = None
    is_multiple_choice: bool = True
    approver_type: ApproverType | None = None
    skipped: bool = False
    skip_reason: str | None = None

    @property
    def is_identity_gate(self) -> bool:
        """Dynamic steps gate on who you are, not on your role."""
        return self.approver_type is not None


@dataclass(frozen=True)
class RoleLevels:
    """Role-based chain: config levels plus single-approver assignees."""

    levels: tuple[ApprovalLevel, ...]
    assignments: dict[int, DirectoryIdentity] = field(default_factory=dict)

    kind = ChainKind.ROLE_LEVELS

    def gates(self) -> tuple[ApprovalGate, ...]:
        return tuple(
            ApprovalGate(
                level=lvl.level,
                name=lvl.name,
                authorized_roles=lvl.authorized_roles,
                assignee=(
                    None if lvl.is_multiple_choice
                    else self.assignments.get(lvl.level)
                ),
                is_multiple_choice=lvl.is_multiple_choice,
            )
            for lvl in sorted(self.levels, key=lambda l: l.level)
        )


@dataclass(frozen=True)
class DynamicSteps:
    """Identity-based chain produced by the approver resolver."""

    approvers: tuple[ResolvedApprover, ...]

    kind = ChainKind.DYNAMIC_STEPS

    def gates(self) -> tuple[ApprovalGate, ...]:
        return tuple(
            ApprovalGate(
                level=a.step_order,
                name=a.step_name,
                assignee=a.identity,
                is_multiple_choice=False,
                approver_type=a.approver_type,
                skipped=a.skipped,
                skip_reason=a.skip_reason,
            )
            for a in sorted(self.approvers, key=lambda a: a.step_order)
        )


ApprovalChain = Union[RoleLevels, DynamicSteps]


def gate_at(chain: ApprovalChain, level: int) -> ApprovalGate | None:
    for gate in chain.gates():
        if gate.level == level:
            return gate
    return None


def first_gate(chain: ApprovalChain) -> ApprovalGate | None:
    """First gate that actually requires a decision."""
    for gate in chain.gates():
        if not gate.skipped:
            return gate
    return None


def next_gate(chain: ApprovalChain, current_level: int) -> ApprovalGate | None:
    """Next non-skipped gate strictly after ``current_level``."""
    for gate in chain.gates():
        if gate.level > current_level and not gate.skipped:
            return gate
    return None


def initial_level(chain: ApprovalChain) -> int:
    """Level a new requisition starts at.

    When every gate is skipped the level points one past the end.
    """
    gate = first_gate(chain)
    if gate is not None:
        return gate.level
    return len(chain.gates()) + 1


def evaluate_authority(
    gate: ApprovalGate,
    actor_id: str,
    actor_email: str | None,
    actor_role: str | None,
) -> tuple[bool, str]:
    """Decide whether an actor may decide ``gate``.

    Returns ``(allowed, reason)``.  Identity gates match on id or on
    case-insensitive email; role gates require an authorized role and,
    for single-approver levels with an assignee, the assignee themself.
    """
    if gate.skipped:
        return False, f"Step {gate.level} ({gate.name}) is skipped"

    if gate.is_identity_gate:
        if gate.assignee is None:
            return False, f"Step {gate.level} has no resolved approver"
        if _same_identity(gate.assignee, actor_id, actor_email):
            return True, "Actor is the resolved approver"
        return False, (
            f"Step {gate.level} ({gate.name}) is assigned to "
            f"{gate.assignee.email}"
        )

    if actor_role is None or actor_role not in gate.authorized_roles:
        return False, (
            f"Role {actor_role!r} is not authorized for level {gate.level} "
            f"({gate.name})"
        )

    if not gate.is_multiple_choice and gate.assignee is not None:
        if not _same_identity(gate.assignee, actor_id, actor_email):
            return False, (
                f"Level {gate.level} ({gate.name}) requires "
                f"{gate.assignee.email}"
            )

    return True, "Role authorized"


def _same_identity(
    identity: DirectoryIdentity,
    actor_id: str,
    actor_email: str | None,
) -> bool:
    if identity.identity_id and identity.identity_id == actor_id:
        return True
    if actor_email and identity.email_key == actor_email.strip().lower():
        return True
    return False
