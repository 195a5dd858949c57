"""
requisition_services.org_directory -- SQL-backed organizational directory.

Responsibility:
    Implements ``OrgDirectory`` over the ``org_areas``, ``org_units`` and
    ``directory_users`` tables: manager of record per area or org unit,
    the tenant's recruitment lead, and role holders for role-level
    assignees and notification fan-out.

Architecture position:
    Services -- holds a session; read-only.

Invariants enforced:
    - Every lookup is tenant-scoped through the row it starts from, or
      through an explicit tenant id.
    - Missing or malformed ids, unset managers and inactive users all
      read as "not found" (None / empty tuple); nothing here raises for
      missing data.
    - Results are deterministic: ties are broken by creation time, then
      identity id.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from requisition_kernel.domain.workflow import RECRUITMENT_LEAD_ROLE, DirectoryIdentity
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.organization import (
    DirectoryUserModel,
    OrgAreaModel,
    OrgUnitModel,
)

logger = get_logger("services.org_directory")


def _parse_id(raw: str | None) -> UUID | None:
    if not raw:
        return None
    try:
        return UUID(str(raw))
    except ValueError:
        return None


def _manager_identity(row: OrgAreaModel | OrgUnitModel | None) -> DirectoryIdentity | None:
    if row is None or not row.manager_email:
        return None
    return DirectoryIdentity(
        identity_id=row.manager_id or "",
        email=row.manager_email,
        display_name=row.manager_name or row.manager_email,
    )


def _user_identity(user: DirectoryUserModel) -> DirectoryIdentity:
    return DirectoryIdentity(
        identity_id=user.identity_id,
        email=user.email,
        display_name=user.display_name or user.email,
    )


class SqlOrgDirectory:
    """Organizational directory read from the engine's own tables."""

    def __init__(self, session: Session):
        self._session = session

    def area_manager(self, area_id: str) -> DirectoryIdentity | None:
        key = _parse_id(area_id)
        if key is None:
            return None
        return _manager_identity(self._session.get(OrgAreaModel, key))

    def org_unit_manager(self, org_unit_id: str) -> DirectoryIdentity | None:
        key = _parse_id(org_unit_id)
        if key is None:
            return None
        return _manager_identity(self._session.get(OrgUnitModel, key))

    def recruitment_lead(self, tenant_id: str) -> DirectoryIdentity | None:
        """The tenant's active recruitment lead, by role or capability."""
        leads = self._holders(tenant_id, frozenset({RECRUITMENT_LEAD_ROLE}))
        if not leads:
            return None
        if len(leads) > 1:
            logger.warning(
                "multiple_recruitment_leads",
                extra={"tenant_id": tenant_id, "count": len(leads)},
            )
        return _user_identity(leads[0])

    def role_holder(
        self,
        tenant_id: str,
        roles: frozenset[str],
        scope_ids: tuple[str, ...] = (),
    ) -> DirectoryIdentity | None:
        """First active user holding one of ``roles`` and covering a scope.

        Users assigned to one of ``scope_ids`` win over tenant-wide users.
        """
        holders = self._holders(tenant_id, roles)
        scoped = [u for u in holders if u.scope_ids and u.covers(scope_ids)]
        tenant_wide = [u for u in holders if not u.scope_ids]
        candidates = scoped + tenant_wide
        return _user_identity(candidates[0]) if candidates else None

    def role_holders(
        self,
        tenant_id: str,
        roles: frozenset[str],
    ) -> tuple[DirectoryIdentity, ...]:
        return tuple(_user_identity(u) for u in self._holders(tenant_id, roles))

    def _holders(self, tenant_id: str, roles: frozenset[str]) -> list[DirectoryUserModel]:
        if not roles:
            return []
        users = self._session.execute(
            select(DirectoryUserModel)
            .where(
                DirectoryUserModel.tenant_id == tenant_id,
                DirectoryUserModel.is_active.is_(True),
            )
            .order_by(DirectoryUserModel.created_at, DirectoryUserModel.identity_id)
        ).scalars()
        # Capabilities are JSON; match them in Python.
        return [u for u in users if u.holds_any(frozenset(roles))]
