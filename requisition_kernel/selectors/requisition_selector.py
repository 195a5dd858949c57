"""
Requisition selector -- the query/poll interface over requisitions.

Dashboards and inboxes read through here and re-poll ``changed_since``
instead of holding a live subscription.  Every method returns frozen
``Requisition`` DTOs; nothing here locks, flushes or writes.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from requisition_kernel.domain.requisition import (
    ApprovalStatus,
    ChainKind,
    Requisition,
    RequisitionStatus,
)
from requisition_kernel.models.requisition import (
    RequisitionModel,
    ResolvedApproverModel,
)
from requisition_kernel.selectors.base import BaseSelector


class RequisitionSelector(BaseSelector[RequisitionModel]):
    """Read-only requisition queries, newest first unless stated."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get(self, requisition_id: UUID) -> Requisition | None:
        model = self.session.get(RequisitionModel, requisition_id)
        return model.to_dto() if model is not None else None

    def get_by_rq_number(self, rq_number: str) -> Requisition | None:
        model = self.session.execute(
            select(RequisitionModel).where(RequisitionModel.rq_number == rq_number)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def list_for_tenant(
        self,
        tenant_id: str,
        status: RequisitionStatus | None = None,
    ) -> list[Requisition]:
        stmt = select(RequisitionModel).where(RequisitionModel.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(RequisitionModel.status == status.value)
        return self._dtos(stmt)

    def list_by_brand(self, tenant_id: str, brand_id: str) -> list[Requisition]:
        return self._dtos(
            select(RequisitionModel).where(
                RequisitionModel.tenant_id == tenant_id,
                RequisitionModel.brand_id == brand_id,
            )
        )

    def list_by_store(self, tenant_id: str, store_id: str) -> list[Requisition]:
        return self._dtos(
            select(RequisitionModel).where(
                RequisitionModel.tenant_id == tenant_id,
                RequisitionModel.store_id == store_id,
            )
        )

    def list_by_batch(self, batch_id: UUID) -> list[Requisition]:
        """Sibling instances of a split intake, in instance order."""
        stmt = (
            select(RequisitionModel)
            .where(RequisitionModel.batch_id == batch_id)
            .order_by(RequisitionModel.instance_number)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def list_pending_at_level(
        self,
        tenant_id: str,
        level: int,
        brand_id: str | None = None,
    ) -> list[Requisition]:
        """Pending role-level requisitions waiting at ``level``."""
        stmt = select(RequisitionModel).where(
            RequisitionModel.tenant_id == tenant_id,
            RequisitionModel.approval_status == ApprovalStatus.PENDING.value,
            RequisitionModel.current_approval_level == level,
            RequisitionModel.chain_kind == ChainKind.ROLE_LEVELS.value,
            RequisitionModel.status.not_in(_TERMINAL_VALUES),
            RequisitionModel.deletion_requested.is_(False),
        )
        if brand_id is not None:
            stmt = stmt.where(RequisitionModel.brand_id == brand_id)
        return self._dtos(stmt)

    def list_pending_for_approver(
        self,
        email: str,
        tenant_id: str | None = None,
    ) -> list[Requisition]:
        """Pending requisitions whose current gate is assigned to ``email``.

        Covers dynamic-step chains and single-approver role levels.
        Matching is case-insensitive.
        """
        key = email.strip().lower()
        if not key:
            return []

        pending = [
            RequisitionModel.approval_status == ApprovalStatus.PENDING.value,
            RequisitionModel.status.not_in(_TERMINAL_VALUES),
            RequisitionModel.deletion_requested.is_(False),
        ]
        if tenant_id is not None:
            pending.append(RequisitionModel.tenant_id == tenant_id)

        dynamic = (
            select(RequisitionModel)
            .join(
                ResolvedApproverModel,
                (ResolvedApproverModel.requisition_id == RequisitionModel.id)
                & (ResolvedApproverModel.step_order == RequisitionModel.current_approval_level),
            )
            .where(
                *pending,
                RequisitionModel.chain_kind == ChainKind.DYNAMIC_STEPS.value,
                ResolvedApproverModel.skipped.is_(False),
                func.lower(ResolvedApproverModel.email) == key,
            )
        )
        found = list(self.session.execute(dynamic).scalars())

        # level_assignments is JSON; filter role-level rows in Python.
        role_levels = select(RequisitionModel).where(
            *pending,
            RequisitionModel.chain_kind == ChainKind.ROLE_LEVELS.value,
        )
        for model in self.session.execute(role_levels).scalars():
            assigned = (model.level_assignments or {}).get(
                str(model.current_approval_level)
            )
            if assigned and assigned.get("email", "").strip().lower() == key:
                found.append(model)

        found.sort(key=lambda m: m.created_at, reverse=True)
        return [m.to_dto() for m in found]

    def list_unfilled_alerts(self, tenant_id: str) -> list[Requisition]:
        return self._dtos(
            select(RequisitionModel).where(
                RequisitionModel.tenant_id == tenant_id,
                RequisitionModel.alert_unfilled.is_(True),
            )
        )

    def list_deletion_requests(self, tenant_id: str) -> list[Requisition]:
        return self._dtos(
            select(RequisitionModel).where(
                RequisitionModel.tenant_id == tenant_id,
                RequisitionModel.deletion_requested.is_(True),
            )
        )

    def changed_since(self, tenant_id: str, since: datetime) -> list[Requisition]:
        """Requisitions updated strictly after ``since``, oldest change first.

        Permanently deleted requisitions do not appear; their deletion is
        visible in the audit trail.
        """
        stmt = (
            select(RequisitionModel)
            .where(
                RequisitionModel.tenant_id == tenant_id,
                RequisitionModel.updated_at > since,
            )
            .order_by(RequisitionModel.updated_at, RequisitionModel.id)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def count_by_status(self, tenant_id: str) -> dict[RequisitionStatus, int]:
        rows = self.session.execute(
            select(RequisitionModel.status, func.count())
            .where(RequisitionModel.tenant_id == tenant_id)
            .group_by(RequisitionModel.status)
        ).all()
        counts = {status: 0 for status in RequisitionStatus}
        for status, count in rows:
            counts[RequisitionStatus(status)] = count
        return counts

    def _dtos(self, stmt) -> list[Requisition]:
        stmt = stmt.order_by(RequisitionModel.created_at.desc(), RequisitionModel.id)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]


_TERMINAL_VALUES = (
    RequisitionStatus.CLOSED.value,
    RequisitionStatus.FILLED.value,
    RequisitionStatus.CANCELLED.value,
)
