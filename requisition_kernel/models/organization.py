"""
Module: requisition_kernel.models.organization
Responsibility: ORM persistence for the organizational directory the
    approver resolver consults: areas, higher organizational units
    ("gerencias"), and tenant users with their roles and assignments.

Architecture position: Kernel > Models.  May import from db/base.py only.

These tables are owned by tenant administration.  The engine only reads
them (through ``requisition_services.org_directory``).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from requisition_kernel.db.base import TrackedBase


class OrgAreaModel(TrackedBase):
    """Organizational area with its manager of record."""

    __tablename__ = "org_areas"

    __table_args__ = (Index("ix_org_areas_tenant", "tenant_id"),)

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    manager_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    manager_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    manager_name: Mapped[str | None] = mapped_column(String(200), nullable=True)


class OrgUnitModel(TrackedBase):
    """Higher organizational unit ("gerencia") with its manager of record."""

    __tablename__ = "org_units"

    __table_args__ = (Index("ix_org_units_tenant", "tenant_id"),)

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    manager_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    manager_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    manager_name: Mapped[str | None] = mapped_column(String(200), nullable=True)


class DirectoryUserModel(TrackedBase):
    """A tenant user as seen by the approval engine."""

    __tablename__ = "directory_users"

    __table_args__ = (
        Index("ix_directory_users_tenant_role", "tenant_id", "role", "is_active"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    identity_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    # Extra roles granted on top of ``role`` (e.g. recruitment lead)
    capabilities: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    # Store / brand ids this user is assigned to
    scope_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def holds_any(self, roles: frozenset[str]) -> bool:
        return self.role in roles or bool(roles.intersection(self.capabilities or ()))

    def covers(self, scope_ids: tuple[str, ...]) -> bool:
        assigned: set[Any] = set(self.scope_ids or ())
        # No assigned scopes means tenant-wide
        if not scope_ids or not assigned:
            return True
        return any(s in assigned for s in scope_ids if s)

    def __repr__(self) -> str:
        return f"<DirectoryUser {self.email} role={self.role} active={self.is_active}>"
