"""
Role-based approval configuration (``requisition_kernel.domain.approval_config``).

Responsibility
--------------
Value objects for the per-tenant (optionally per-brand) approval ladder:
an ordered list of levels, each naming the roles allowed to approve it.

Invariants enforced
-------------------
* Level numbers are contiguous starting at 1 (``validate_levels``).
* Every level authorizes at least one role.
* ``ApprovalConfig.levels`` is always sorted ascending by level.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class ApprovalLevel:
    """One rung of a role-based approval ladder.

    ``is_multiple_choice`` -- any holder of an authorized role may approve.
    When False the level has single-approver semantics: one specific
    identity (the level's assignee) must sign.
    """

    level: int
    name: str
    authorized_roles: frozenset[str]
    is_multiple_choice: bool = True

    def authorizes(self, role: str | None) -> bool:
        return role is not None and role in self.authorized_roles


@dataclass(frozen=True)
class ApprovalConfig:
    """Approval ladder for a tenant, or for one brand within it."""

    id: UUID
    tenant_id: str
    brand_id: str | None
    levels: tuple[ApprovalLevel, ...]

    @property
    def is_brand_specific(self) -> bool:
        return self.brand_id is not None

    def level(self, number: int) -> ApprovalLevel | None:
        for lvl in self.levels:
            if lvl.level == number:
                return lvl
        return None

    def next_level(self, current: int) -> ApprovalLevel | None:
        """First level strictly after ``current``, or None at the end."""
        for lvl in self.levels:
            if lvl.level > current:
                return lvl
        return None

    @property
    def final_level(self) -> int:
        return self.levels[-1].level if self.levels else 0


def validate_levels(levels: tuple[ApprovalLevel, ...] | list[ApprovalLevel]) -> str | None:
    """Return a problem description, or None if the ladder is well-formed."""
    if not levels:
        return "at least one level is required"
    numbers = sorted(lvl.level for lvl in levels)
    if numbers != list(range(1, len(numbers) + 1)):
        return f"levels must be contiguous from 1, got {numbers}"
    for lvl in levels:
        if not lvl.authorized_roles:
            return f"level {lvl.level} has no authorized roles"
    return None
