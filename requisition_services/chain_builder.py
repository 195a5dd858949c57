"""
requisition_services.chain_builder -- Pick and assemble a requisition's approval chain.

Responsibility:
    Decide which approval chain governs a new requisition and build it:

    1. The tenant's default active workflow template (else its oldest
       active template) resolved through the approver resolver into
       ``DynamicSteps``.
    2. Otherwise the role-level ``ApprovalConfig`` for (tenant, brand),
       with assignees looked up for single-approver levels, as
       ``RoleLevels``.
    3. Otherwise ``NoApprovalChainError``.

Architecture position:
    Services -- composes ApprovalConfigService (kernel) with the
    approver resolver (engines) and an ``OrgDirectory``.

Invariants enforced:
    - Never mutates configuration; reads only.
    - A single-approver level whose assignee cannot be found is left
      open to any holder of its roles, and the gap is logged.

Failure modes:
    - NoApprovalChainError when the tenant has neither a workflow nor a
      role-level config.
    - Directory failures degrade to "not found" and are logged.
"""

from __future__ import annotations

from requisition_engines.approver_resolver import resolve_workflow_approvers
from requisition_kernel.domain.approval_chain import (
    ApprovalChain,
    DynamicSteps,
    RoleLevels,
)
from requisition_kernel.domain.approval_config import ApprovalLevel
from requisition_kernel.domain.requisition import RequisitionDraft
from requisition_kernel.domain.workflow import (
    DirectoryIdentity,
    OrgDirectory,
    RequisitionContext,
)
from requisition_kernel.exceptions import NoApprovalChainError
from requisition_kernel.logging_config import get_logger
from requisition_kernel.services.approval_config_service import ApprovalConfigService

logger = get_logger("services.chain_builder")


class ApprovalChainBuilder:
    """Builds the approval chain for a requisition draft."""

    def __init__(
        self,
        config_service: ApprovalConfigService,
        directory: OrgDirectory | None = None,
    ):
        self._config = config_service
        self._directory = directory

    def build(self, draft: RequisitionDraft) -> ApprovalChain:
        workflow = self._config.get_default_workflow(draft.tenant_id)
        if workflow is not None:
            approvers = resolve_workflow_approvers(
                workflow.steps,
                context_for(draft),
                self._directory,
                manual_approver=draft.manual_approver,
            )
            logger.info(
                "approval_chain_built",
                extra={
                    "tenant_id": draft.tenant_id,
                    "chain_kind": DynamicSteps.kind.value,
                    "workflow_name": workflow.name,
                    "step_count": len(approvers),
                    "skipped_count": sum(1 for a in approvers if a.skipped),
                },
            )
            return DynamicSteps(approvers=approvers)

        levels = self._config.get_levels_for(draft.tenant_id, draft.brand_id)
        if not levels:
            logger.error(
                "approval_chain_missing",
                extra={"tenant_id": draft.tenant_id, "brand_id": draft.brand_id},
            )
            raise NoApprovalChainError(draft.tenant_id, draft.brand_id)

        if draft.manual_approver is not None:
            logger.info(
                "manual_approver_ignored",
                extra={"tenant_id": draft.tenant_id, "reason": "role-level chain"},
            )

        assignments: dict[int, DirectoryIdentity] = {}
        for level in levels:
            if level.is_multiple_choice:
                continue
            assignee = self._assignee_for(draft, level)
            if assignee is not None:
                assignments[level.level] = assignee

        logger.info(
            "approval_chain_built",
            extra={
                "tenant_id": draft.tenant_id,
                "chain_kind": RoleLevels.kind.value,
                "step_count": len(levels),
                "assigned_levels": sorted(assignments),
            },
        )
        return RoleLevels(levels=levels, assignments=assignments)

    def _assignee_for(
        self,
        draft: RequisitionDraft,
        level: ApprovalLevel,
    ) -> DirectoryIdentity | None:
        if self._directory is None:
            return None
        scope = tuple(s for s in (draft.store_id, draft.brand_id) if s)
        try:
            holder = self._directory.role_holder(
                draft.tenant_id, level.authorized_roles, scope_ids=scope,
            )
        except Exception:
            logger.warning(
                "directory_lookup_failed",
                extra={"tenant_id": draft.tenant_id, "level": level.level},
                exc_info=True,
            )
            return None
        if holder is None:
            logger.warning(
                "level_assignee_unresolved",
                extra={
                    "tenant_id": draft.tenant_id,
                    "level": level.level,
                    "roles": sorted(level.authorized_roles),
                    "scope_ids": list(scope),
                },
            )
        return holder


def context_for(draft: RequisitionDraft) -> RequisitionContext:
    """Resolver context for a draft."""
    return RequisitionContext(
        tenant_id=draft.tenant_id,
        creator=DirectoryIdentity(
            identity_id=draft.created_by,
            email=draft.created_by_email,
            display_name=draft.created_by_name or draft.created_by_email,
        ),
        area_id=draft.area_id,
        org_unit_id=draft.org_unit_id,
    )
