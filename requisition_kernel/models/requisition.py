"""
Module: requisition_kernel.models.requisition
Responsibility: ORM persistence for requisitions, their append-only approval
    history, and the resolved approvers of dynamic chains.

Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ value types, and exceptions only.

Invariants enforced:
    - Optimistic versioning: ``version`` is the mapper's version_id_col, so
      every UPDATE is conditional on the version read.  A concurrent writer
      that read the same version fails with StaleDataError instead of
      advancing the approval level twice.
    - Approval records are append-only (ORM before_update listener).  They
      are removed only together with their requisition.
    - ``current_approval_level`` >= 1 (check constraint).
    - Valid status / approval_status values (check constraints).

Failure modes:
    - StaleDataError on flush when another transaction bumped ``version``.
    - ImmutabilityViolationError on any UPDATE of an approval record.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from requisition_kernel.db.base import TrackedBase, Base, UUIDString
from requisition_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from requisition_kernel.domain.requisition import ApprovalRecord, Requisition
    from requisition_kernel.domain.workflow import ResolvedApprover


class RequisitionModel(TrackedBase):
    """Persistent requisition document.

    Contract:
        Only RequisitionService writes ``status``, ``approval_status``,
        ``current_approval_level`` and the approval record list.

    Guarantees:
        - ``rq_number`` is unique when set.
        - ``version`` increments on every UPDATE (optimistic lock).
    """

    __tablename__ = "requisitions"

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'active', 'closed', 'filled', 'cancelled')",
            name="ck_requisitions_valid_status",
        ),
        CheckConstraint(
            "approval_status IN ('pending', 'approved', 'rejected')",
            name="ck_requisitions_valid_approval_status",
        ),
        CheckConstraint(
            "current_approval_level >= 1",
            name="ck_requisitions_level_positive",
        ),
        CheckConstraint("quantity > 0", name="ck_requisitions_quantity_positive"),
        Index("ix_requisitions_tenant_status", "tenant_id", "status"),
        Index(
            "ix_requisitions_pending_level",
            "tenant_id", "approval_status", "current_approval_level",
        ),
        Index("ix_requisitions_brand", "tenant_id", "brand_id"),
        Index("ix_requisitions_store", "tenant_id", "store_id"),
        Index("ix_requisitions_updated", "tenant_id", "updated_at"),
        Index("ix_requisitions_batch", "batch_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    brand_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    store_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    area_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    org_unit_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    rq_number: Mapped[str | None] = mapped_column(
        String(50), nullable=True, unique=True,
    )
    batch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    instance_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    position_name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    approval_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending",
    )
    current_approval_level: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1,
    )
    chain_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    # Single-approver role levels: {"<level>": {"identity_id", "email", "display_name"}}
    level_assignments: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    created_by_email: Mapped[str] = mapped_column(String(255), nullable=False)

    deletion_requested: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    deletion_approved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    deletion_requested_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    deletion_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    deletion_requested_at: Mapped[datetime | None] = mapped_column(nullable=True)

    recruitment_started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    recruitment_ended_at: Mapped[datetime | None] = mapped_column(nullable=True)
    filled_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    closed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    closure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    alert_unfilled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    alert_days_threshold: Mapped[int | None] = mapped_column(Integer, nullable=True)
    alert_unfilled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    approval_records: Mapped[list["ApprovalRecordModel"]] = relationship(
        "ApprovalRecordModel",
        back_populates="requisition",
        order_by="ApprovalRecordModel.sequence",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    resolved_approvers: Mapped[list["ResolvedApproverModel"]] = relationship(
        "ResolvedApproverModel",
        back_populates="requisition",
        order_by="ResolvedApproverModel.step_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Requisition {self.rq_number or self.id} status={self.status} "
            f"approval={self.approval_status}@{self.current_approval_level}>"
        )

    def to_dto(self) -> Requisition:
        """Convert ORM model to frozen domain DTO."""
        from requisition_kernel.domain.requisition import (
            ApprovalStatus,
            ChainKind,
            Requisition as RequisitionDTO,
            RequisitionCategory,
            RequisitionStatus,
        )

        return RequisitionDTO(
            id=self.id,
            tenant_id=self.tenant_id,
            brand_id=self.brand_id,
            store_id=self.store_id,
            area_id=self.area_id,
            org_unit_id=self.org_unit_id,
            position_name=self.position_name,
            category=RequisitionCategory(self.category),
            quantity=self.quantity,
            status=RequisitionStatus(self.status),
            approval_status=ApprovalStatus(self.approval_status),
            current_approval_level=self.current_approval_level,
            chain_kind=ChainKind(self.chain_kind),
            created_by=self.created_by,
            created_by_email=self.created_by_email,
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
            rq_number=self.rq_number,
            batch_id=self.batch_id,
            instance_number=self.instance_number,
            approval_records=tuple(r.to_dto() for r in self.approval_records),
            level_assignments={
                int(level): data["email"]
                for level, data in (self.level_assignments or {}).items()
            },
            rejection_reason=self.rejection_reason,
            deletion_requested=self.deletion_requested,
            deletion_approved=self.deletion_approved,
            deletion_requested_by=self.deletion_requested_by,
            deletion_reason=self.deletion_reason,
            deletion_requested_at=self.deletion_requested_at,
            recruitment_started_at=self.recruitment_started_at,
            recruitment_ended_at=self.recruitment_ended_at,
            filled_count=self.filled_count,
            closed_by=self.closed_by,
            closure_reason=self.closure_reason,
            alert_unfilled=self.alert_unfilled,
            alert_days_threshold=self.alert_days_threshold,
            alert_unfilled_at=self.alert_unfilled_at,
            details=dict(self.details or {}),
        )

    def resolved_approver_dtos(self) -> tuple[ResolvedApprover, ...]:
        return tuple(a.to_dto() for a in self.resolved_approvers)


class ApprovalRecordModel(Base):
    """Persistent approval history entry. Append-only.

    Contract:
        Records are immutable once created -- no UPDATE.  They disappear
        only when the owning requisition is permanently deleted.
    """

    __tablename__ = "requisition_approval_records"

    __table_args__ = (
        UniqueConstraint(
            "requisition_id", "sequence",
            name="uq_requisition_approval_records_sequence",
        ),
        CheckConstraint(
            "decision IN ('approved', 'rejected')",
            name="ck_requisition_approval_records_decision",
        ),
        Index("ix_requisition_approval_records_approver", "approver_email"),
    )

    requisition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("requisitions.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    approver_id: Mapped[str] = mapped_column(String(100), nullable=False)
    approver_email: Mapped[str] = mapped_column(String(255), nullable=False)
    approver_role: Mapped[str | None] = mapped_column(String(100), nullable=True)
    decision: Mapped[str] = mapped_column(String(20), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime] = mapped_column(nullable=False)

    requisition: Mapped["RequisitionModel"] = relationship(
        "RequisitionModel",
        back_populates="approval_records",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalRecord {self.requisition_id}#{self.sequence} "
            f"level={self.level} decision={self.decision}>"
        )

    def to_dto(self) -> ApprovalRecord:
        from requisition_kernel.domain.requisition import (
            ApprovalDecision,
            ApprovalRecord as ApprovalRecordDTO,
        )

        return ApprovalRecordDTO(
            level=self.level,
            approver_id=self.approver_id,
            approver_email=self.approver_email,
            approver_role=self.approver_role,
            decision=ApprovalDecision(self.decision),
            decided_at=self.decided_at,
            comment=self.comment,
            step_name=self.step_name,
        )


class ResolvedApproverModel(Base):
    """Resolved step of a dynamic chain, as persisted at intake."""

    __tablename__ = "requisition_resolved_approvers"

    __table_args__ = (
        UniqueConstraint(
            "requisition_id", "step_order",
            name="uq_requisition_resolved_approvers_order",
        ),
        Index("ix_requisition_resolved_approvers_email", "email"),
    )

    requisition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("requisitions.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str] = mapped_column(String(200), nullable=False)
    approver_type: Mapped[str] = mapped_column(String(30), nullable=False)
    identity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    skipped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    skip_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    requisition: Mapped["RequisitionModel"] = relationship(
        "RequisitionModel",
        back_populates="resolved_approvers",
    )

    def to_dto(self) -> ResolvedApprover:
        from requisition_kernel.domain.workflow import (
            ApproverType,
            DirectoryIdentity,
            ResolvedApprover as ResolvedApproverDTO,
        )

        identity = None
        if self.email:
            identity = DirectoryIdentity(
                identity_id=self.identity_id or "",
                email=self.email,
                display_name=self.display_name or "",
            )
        return ResolvedApproverDTO(
            step_order=self.step_order,
            step_name=self.step_name,
            approver_type=ApproverType(self.approver_type),
            identity=identity,
            skipped=self.skipped,
            skip_reason=self.skip_reason,
        )

    @classmethod
    def from_dto(cls, dto: ResolvedApprover) -> ResolvedApproverModel:
        return cls(
            step_order=dto.step_order,
            step_name=dto.step_name,
            approver_type=dto.approver_type.value,
            identity_id=dto.identity.identity_id if dto.identity else None,
            email=dto.identity.email if dto.identity else None,
            display_name=dto.identity.display_name if dto.identity else None,
            skipped=dto.skipped,
            skip_reason=dto.skip_reason,
        )


# =============================================================================
# ORM-Level Immutability for Approval Records (Append-Only)
# =============================================================================


@event.listens_for(ApprovalRecordModel, "before_update")
def prevent_approval_record_update(mapper, connection, target):
    """Prevent updates to approval history entries."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalRecord",
        entity_id=str(target.id),
        reason="Approval records are append-only -- cannot modify",
    )
