"""
requisition_engines.approver_resolver -- Bind workflow steps to concrete approvers.

Responsibility:
    Turn a workflow template's steps plus a requisition's organizational
    context into the ordered, de-duplicated list of ``ResolvedApprover``
    that a dynamic approval chain walks through.

Architecture position:
    Engines -- calculation layer.  The organizational directory is
    injected as an ``OrgDirectory``; nothing here opens a session or
    reads the clock.  May only import requisition_kernel/domain types
    and kernel logging.

Invariants enforced:
    - Output steps are numbered 1..N contiguously in output order.  Skipped
      entries keep their slot so the audit trail shows every step.
    - A manual override becomes step 1 ("Direct superior approval") and
      counts as the first sign-off for deduplication.
    - An identity already holding an earlier non-skipped step is skipped,
      citing that step, unless the step is a recruitment-lead step.
    - Steps are processed in ascending template ``order``.

Failure modes:
    - Never raises for missing organizational data.  A step with no
      resolvable identity is emitted skipped with a diagnostic reason and
      logged at WARNING.  Directory exceptions are treated the same way.
"""

from __future__ import annotations

from collections.abc import Sequence

from requisition_engines.tracer import traced_engine
from requisition_kernel.domain.requisition import ManualApprover
from requisition_kernel.domain.workflow import (
    ApproverType,
    DirectoryIdentity,
    OrgDirectory,
    RequisitionContext,
    ResolvedApprover,
    WorkflowStep,
)
from requisition_kernel.logging_config import get_logger

logger = get_logger("engines.approver_resolver")

DIRECT_SUPERIOR_STEP_NAME = "Direct superior approval"

# Approval at this step also assigns the recruiter, so it always runs.
DEDUP_EXEMPT_TYPES = frozenset({ApproverType.RECRUITMENT_LEAD})


class _DirectoryLookup:
    """Per-resolution view of the directory.

    Each manager is fetched at most once; a failing lookup is logged and
    reads as "not configured".
    """

    def __init__(self, directory: OrgDirectory | None, context: RequisitionContext):
        self._directory = directory
        self._context = context
        self._cache: dict[ApproverType, DirectoryIdentity | None] = {}

    def get(self, approver_type: ApproverType) -> DirectoryIdentity | None:
        if approver_type not in self._cache:
            self._cache[approver_type] = self._fetch(approver_type)
        return self._cache[approver_type]

    def _fetch(self, approver_type: ApproverType) -> DirectoryIdentity | None:
        if self._directory is None:
            return None
        ctx = self._context
        try:
            if approver_type == ApproverType.AREA_MANAGER:
                return self._directory.area_manager(ctx.area_id) if ctx.area_id else None
            if approver_type == ApproverType.GERENCIA_MANAGER:
                return (
                    self._directory.org_unit_manager(ctx.org_unit_id)
                    if ctx.org_unit_id else None
                )
            if approver_type == ApproverType.RECRUITMENT_LEAD:
                return self._directory.recruitment_lead(ctx.tenant_id)
        except Exception:
            logger.warning(
                "directory_lookup_failed",
                extra={"approver_type": approver_type.value, "tenant_id": ctx.tenant_id},
                exc_info=True,
            )
        return None


def _identity_for(
    step: WorkflowStep,
    context: RequisitionContext,
    lookup: _DirectoryLookup,
) -> DirectoryIdentity | None:
    if step.approver_type == ApproverType.HIRING_MANAGER:
        return context.creator
    if step.approver_type == ApproverType.SPECIFIC_USER:
        return step.specific_user
    return lookup.get(step.approver_type)


def _first_holder(
    resolved: Sequence[ResolvedApprover],
    email_key: str,
) -> ResolvedApprover | None:
    for entry in resolved:
        if not entry.skipped and entry.email_key == email_key:
            return entry
    return None


@traced_engine(
    "approver_resolver", "1.0",
    fingerprint_fields=("steps", "context", "manual_approver"),
)
def resolve_workflow_approvers(
    steps: Sequence[WorkflowStep],
    context: RequisitionContext,
    directory: OrgDirectory | None,
    manual_approver: ManualApprover | None = None,
) -> tuple[ResolvedApprover, ...]:
    """Resolve ``steps`` for one requisition.

    Args:
        steps: Workflow template steps, in any order.
        context: Tenant, creator, area and org unit of the requisition.
        directory: Manager-of-record and recruitment-lead lookups.
        manual_approver: Direct superior picked at intake, if any.

    Returns:
        Resolved approvers numbered 1..N.
    """
    resolved: list[ResolvedApprover] = []

    if manual_approver is not None and manual_approver.email.strip():
        resolved.append(
            ResolvedApprover(
                step_order=1,
                step_name=DIRECT_SUPERIOR_STEP_NAME,
                approver_type=ApproverType.DIRECT_SUPERIOR,
                identity=DirectoryIdentity(
                    identity_id=manual_approver.identity_id,
                    email=manual_approver.email.strip(),
                    display_name=manual_approver.display_name or manual_approver.email,
                ),
            )
        )

    lookup = _DirectoryLookup(directory, context)

    for step in sorted(steps, key=lambda s: s.order):
        order = len(resolved) + 1
        identity = _identity_for(step, context, lookup)

        if identity is None or not identity.email.strip():
            reason = f"No identity configured for approver type {step.approver_type.value}"
            logger.warning(
                "approver_step_skipped",
                extra={
                    "tenant_id": context.tenant_id,
                    "step_order": order,
                    "step_name": step.name,
                    "approver_type": step.approver_type.value,
                },
            )
            resolved.append(
                ResolvedApprover(
                    step_order=order,
                    step_name=step.name,
                    approver_type=step.approver_type,
                    identity=None,
                    skipped=True,
                    skip_reason=reason,
                )
            )
            continue

        earlier = None
        if step.approver_type not in DEDUP_EXEMPT_TYPES:
            earlier = _first_holder(resolved, identity.email_key)

        if earlier is not None:
            logger.info(
                "approver_step_deduplicated",
                extra={
                    "step_order": order,
                    "step_name": step.name,
                    "duplicate_of": earlier.step_order,
                },
            )
            resolved.append(
                ResolvedApprover(
                    step_order=order,
                    step_name=step.name,
                    approver_type=step.approver_type,
                    identity=identity,
                    skipped=True,
                    skip_reason=(
                        f"Same approver as step {earlier.step_order} "
                        f"({earlier.step_name})"
                    ),
                )
            )
            continue

        resolved.append(
            ResolvedApprover(
                step_order=order,
                step_name=step.name,
                approver_type=step.approver_type,
                identity=identity,
            )
        )

    return tuple(resolved)
