"""
ApprovalConfigService -- access to approval ladders and workflow templates.

Responsibility:
    Read side: resolve the approval ladder for a (tenant, brand) scope,
    preferring a brand-specific config over the tenant-wide default, and
    answer "may this role approve this level?" for the API boundary.
    Also returns the tenant's default workflow template.

    Write side (tenant administration): replace a scope's ladder or save a
    workflow template, after validating it.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - Reads never mutate state.  In particular nothing here touches a
      requisition's ``current_approval_level``.
    - Saved ladders are contiguous from 1 and every level names a role.
    - Saved workflow steps have unique positive orders; ``specific_user``
      steps name an identity.
    - At most one default workflow per tenant.

Failure modes:
    - InvalidApprovalLevelsError / InvalidWorkflowStepsError on save.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from requisition_kernel.domain.approval_config import (
    ApprovalConfig,
    ApprovalLevel,
    validate_levels,
)
from requisition_kernel.domain.clock import Clock, SystemClock
from requisition_kernel.domain.workflow import (
    CONFIGURABLE_APPROVER_TYPES,
    ApprovalWorkflow,
    ApproverType,
    WorkflowStep,
)
from requisition_kernel.exceptions import (
    InvalidApprovalLevelsError,
    InvalidWorkflowStepsError,
)
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.approval_config import ApprovalConfigModel, ApprovalLevelModel
from requisition_kernel.models.workflow import ApprovalWorkflowModel, WorkflowStepModel
from requisition_kernel.services.auditor_service import AuditorService
from requisition_kernel.services.base import BaseService

logger = get_logger("services.approval_config")


class ApprovalConfigService(BaseService[ApprovalConfigModel]):
    """Role-level and workflow configuration access."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)

    # ------------------------------------------------------------------
    # Role levels (read)
    # ------------------------------------------------------------------

    def _scope_model(self, tenant_id: str, brand_id: str | None) -> ApprovalConfigModel | None:
        stmt = select(ApprovalConfigModel).where(ApprovalConfigModel.tenant_id == tenant_id)
        if brand_id is None:
            stmt = stmt.where(ApprovalConfigModel.brand_id.is_(None))
        else:
            stmt = stmt.where(ApprovalConfigModel.brand_id == brand_id)
        return self.session.execute(
            stmt.order_by(ApprovalConfigModel.created_at).limit(1)
        ).scalar_one_or_none()

    def get_config(self, tenant_id: str, brand_id: str | None = None) -> ApprovalConfig | None:
        """Brand-specific config if one exists, else the tenant-wide one."""
        if brand_id is not None:
            model = self._scope_model(tenant_id, brand_id)
            if model is not None:
                return model.to_dto()
        model = self._scope_model(tenant_id, None)
        return model.to_dto() if model is not None else None

    def get_levels_for(
        self,
        tenant_id: str,
        brand_id: str | None = None,
    ) -> tuple[ApprovalLevel, ...]:
        """Ordered approval levels for the scope; empty when unconfigured."""
        config = self.get_config(tenant_id, brand_id)
        return config.levels if config is not None else ()

    def validate_approver(
        self,
        tenant_id: str,
        level: int,
        role: str | None,
        brand_id: str | None = None,
    ) -> bool:
        """Whether ``role`` is among the authorized roles for ``level``.

        No config, or no such level, means False.
        """
        config = self.get_config(tenant_id, brand_id)
        if config is None:
            return False
        lvl = config.level(level)
        return lvl is not None and lvl.authorizes(role)

    def get_next_level(
        self,
        tenant_id: str,
        current_level: int,
        brand_id: str | None = None,
    ) -> int | None:
        config = self.get_config(tenant_id, brand_id)
        if config is None:
            return None
        nxt = config.next_level(current_level)
        return nxt.level if nxt is not None else None

    # ------------------------------------------------------------------
    # Role levels (admin write)
    # ------------------------------------------------------------------

    def save_config(
        self,
        tenant_id: str,
        levels: Sequence[ApprovalLevel],
        actor_id: str,
        brand_id: str | None = None,
    ) -> ApprovalConfig:
        """Replace the ladder for a scope, creating the scope if needed."""
        problem = validate_levels(list(levels))
        if problem is not None:
            raise InvalidApprovalLevelsError(tenant_id, brand_id, problem)

        now = self._clock.now()
        model = self._scope_model(tenant_id, brand_id)
        if model is None:
            model = ApprovalConfigModel(
                tenant_id=tenant_id,
                brand_id=brand_id,
                created_at=now,
                updated_at=now,
            )
            self.session.add(model)
        else:
            model.levels.clear()
            # Level numbers are unique per config; drop the old rows first.
            self.session.flush()
            model.updated_at = now

        for lvl in sorted(levels, key=lambda l: l.level):
            model.levels.append(ApprovalLevelModel.from_dto(lvl))
        self.session.flush()

        self._auditor.record_config_saved(
            config_id=model.id,
            actor_id=actor_id,
            tenant_id=tenant_id,
            brand_id=brand_id,
            level_count=len(levels),
        )
        logger.info(
            "approval_config_saved",
            extra={
                "tenant_id": tenant_id,
                "brand_id": brand_id,
                "level_count": len(levels),
            },
        )
        return model.to_dto()

    # ------------------------------------------------------------------
    # Workflow templates
    # ------------------------------------------------------------------

    def get_default_workflow(self, tenant_id: str) -> ApprovalWorkflow | None:
        """Default active template; otherwise the oldest active one."""
        base = (
            select(ApprovalWorkflowModel)
            .where(
                ApprovalWorkflowModel.tenant_id == tenant_id,
                ApprovalWorkflowModel.is_active.is_(True),
            )
            .order_by(ApprovalWorkflowModel.created_at, ApprovalWorkflowModel.name)
        )
        model = self.session.execute(
            base.where(ApprovalWorkflowModel.is_default.is_(True)).limit(1)
        ).scalar_one_or_none()
        if model is None:
            model = self.session.execute(base.limit(1)).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def save_workflow(
        self,
        tenant_id: str,
        name: str,
        steps: Sequence[WorkflowStep],
        actor_id: str,
        *,
        is_default: bool = False,
        is_active: bool = True,
        description: str | None = None,
    ) -> ApprovalWorkflow:
        """Create a workflow template.  Marking it default clears the old default."""
        _validate_steps(name, steps)

        if is_default:
            for other in self.session.execute(
                select(ApprovalWorkflowModel).where(
                    ApprovalWorkflowModel.tenant_id == tenant_id,
                    ApprovalWorkflowModel.is_default.is_(True),
                )
            ).scalars():
                other.is_default = False

        now = self._clock.now()
        model = ApprovalWorkflowModel(
            tenant_id=tenant_id,
            name=name,
            description=description,
            is_default=is_default,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        model.steps = [
            WorkflowStepModel.from_dto(s) for s in sorted(steps, key=lambda s: s.order)
        ]
        self.session.add(model)
        self.session.flush()

        self._auditor.record_workflow_saved(
            workflow_id=model.id,
            actor_id=actor_id,
            tenant_id=tenant_id,
            name=name,
            step_count=len(steps),
        )
        logger.info(
            "workflow_saved",
            extra={
                "tenant_id": tenant_id,
                "workflow_name": name,
                "step_count": len(steps),
                "is_default": is_default,
            },
        )
        return model.to_dto()


def _validate_steps(name: str, steps: Sequence[WorkflowStep]) -> None:
    if not steps:
        raise InvalidWorkflowStepsError(name, "at least one step is required")
    orders = [s.order for s in steps]
    if any(o < 1 for o in orders):
        raise InvalidWorkflowStepsError(name, "step orders must be positive")
    if len(set(orders)) != len(orders):
        raise InvalidWorkflowStepsError(name, f"duplicate step orders {sorted(orders)}")
    for step in steps:
        if step.approver_type not in CONFIGURABLE_APPROVER_TYPES:
            raise InvalidWorkflowStepsError(
                name, f"step {step.order} uses non-configurable type {step.approver_type.value}",
            )
        if step.approver_type == ApproverType.SPECIFIC_USER and (
            step.specific_user is None or not step.specific_user.email
        ):
            raise InvalidWorkflowStepsError(
                name, f"step {step.order} is specific_user but names no identity",
            )
