"""
Module: requisition_kernel.models.workflow
Responsibility: ORM persistence for identity-based workflow templates.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Step orders are unique within a workflow (unique constraint).
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from requisition_kernel.db.base import Base, TrackedBase, UUIDString

if TYPE_CHECKING:
    from requisition_kernel.domain.workflow import ApprovalWorkflow, WorkflowStep


class ApprovalWorkflowModel(TrackedBase):
    """Tenant-owned workflow template."""

    __tablename__ = "approval_workflows"

    __table_args__ = (
        Index("ix_approval_workflows_tenant_active", "tenant_id", "is_active", "is_default"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    steps: Mapped[list["WorkflowStepModel"]] = relationship(
        "WorkflowStepModel",
        back_populates="workflow",
        order_by="WorkflowStepModel.step_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<ApprovalWorkflow {self.name} tenant={self.tenant_id} default={self.is_default}>"

    def to_dto(self) -> ApprovalWorkflow:
        from requisition_kernel.domain.workflow import ApprovalWorkflow as WorkflowDTO

        return WorkflowDTO(
            id=self.id,
            tenant_id=self.tenant_id,
            name=self.name,
            steps=tuple(s.to_dto() for s in self.steps),
            is_default=self.is_default,
            is_active=self.is_active,
            description=self.description,
        )


class WorkflowStepModel(Base):
    __tablename__ = "approval_workflow_steps"

    __table_args__ = (
        UniqueConstraint("workflow_id", "step_order", name="uq_workflow_steps_order"),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_workflows.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    approver_type: Mapped[str] = mapped_column(String(30), nullable=False)
    specific_user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    specific_user_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    specific_user_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    workflow: Mapped["ApprovalWorkflowModel"] = relationship(
        "ApprovalWorkflowModel",
        back_populates="steps",
    )

    def to_dto(self) -> WorkflowStep:
        from requisition_kernel.domain.workflow import (
            ApproverType,
            DirectoryIdentity,
            WorkflowStep as StepDTO,
        )

        specific = None
        if self.specific_user_email:
            specific = DirectoryIdentity(
                identity_id=self.specific_user_id or "",
                email=self.specific_user_email,
                display_name=self.specific_user_name or "",
            )
        return StepDTO(
            order=self.step_order,
            name=self.name,
            approver_type=ApproverType(self.approver_type),
            specific_user=specific,
        )

    @classmethod
    def from_dto(cls, dto: WorkflowStep) -> WorkflowStepModel:
        user = dto.specific_user
        return cls(
            step_order=dto.order,
            name=dto.name,
            approver_type=dto.approver_type.value,
            specific_user_id=user.identity_id if user else None,
            specific_user_email=user.email if user else None,
            specific_user_name=user.display_name if user else None,
        )
