"""
requisition_services.requisition_intake -- Requisition submission and chain re-derivation.

Responsibility:
    Accept a ``RequisitionDraft``, validate it, build its approval chain
    and hand it to RequisitionService for persistence.  Optionally split
    a multi-opening draft into one requisition per opening.  Re-derive
    the chain of a requisition nobody has decided on yet.

Architecture position:
    Services -- sits between the caller and the kernel state machine.

Invariants enforced:
    - Drafts are rejected before anything is written: blank position,
      non-positive quantity, missing creator.
    - All split instances share one chain derivation, one ``batch_id``
      and are numbered 1..quantity.

Failure modes:
    - InvalidRequisitionDraftError for malformed drafts.
    - NoApprovalChainError when the tenant has no chain configured.
    - ChainAlreadyStartedError from ``rederive_chain`` once a decision
      exists.
"""

from __future__ import annotations

from uuid import UUID, uuid4

from requisition_kernel.domain.approval_chain import DynamicSteps
from requisition_kernel.domain.requisition import (
    ManualApprover,
    Requisition,
    RequisitionCategory,
    RequisitionDraft,
)
from requisition_kernel.domain.workflow import ApproverType
from requisition_kernel.exceptions import (
    InvalidRequisitionDraftError,
    RequisitionNotFoundError,
)
from requisition_kernel.logging_config import LogContext, get_logger
from requisition_kernel.selectors.requisition_selector import RequisitionSelector
from requisition_kernel.services.requisition_service import RequisitionService
from requisition_services.chain_builder import ApprovalChainBuilder

logger = get_logger("services.intake")


def validate_draft(draft: RequisitionDraft) -> None:
    if not draft.tenant_id:
        raise InvalidRequisitionDraftError("tenant_id", "must not be empty")
    if not draft.position_name or not draft.position_name.strip():
        raise InvalidRequisitionDraftError("position_name", "must not be empty")
    if not isinstance(draft.category, RequisitionCategory):
        raise InvalidRequisitionDraftError("category", f"unknown category {draft.category!r}")
    if draft.quantity < 1:
        raise InvalidRequisitionDraftError("quantity", f"must be >= 1, got {draft.quantity}")
    if not draft.created_by or not draft.created_by_email:
        raise InvalidRequisitionDraftError("created_by", "creator identity is required")
    if draft.alert_days_threshold is not None and draft.alert_days_threshold < 1:
        raise InvalidRequisitionDraftError(
            "alert_days_threshold", f"must be >= 1, got {draft.alert_days_threshold}",
        )


class RequisitionIntake:
    """Front door for new requisitions."""

    def __init__(
        self,
        requisitions: RequisitionService,
        chain_builder: ApprovalChainBuilder,
        selector: RequisitionSelector,
    ):
        self._requisitions = requisitions
        self._chains = chain_builder
        self._selector = selector

    def submit(
        self,
        draft: RequisitionDraft,
        split_instances: bool = False,
    ) -> list[Requisition]:
        """Create the requisition(s) for ``draft``.

        Returns one requisition, or ``draft.quantity`` of them when
        ``split_instances`` is set.
        """
        validate_draft(draft)
        chain = self._chains.build(draft)

        with LogContext.bind(tenant_id=draft.tenant_id, actor_id=draft.created_by):
            if not split_instances or draft.quantity == 1:
                return [self._requisitions.create(draft, chain)]

            batch_id = uuid4()
            created = [
                self._requisitions.create(
                    draft,
                    chain,
                    quantity=1,
                    batch_id=batch_id,
                    instance_number=n,
                )
                for n in range(1, draft.quantity + 1)
            ]
            logger.info(
                "requisition_batch_created",
                extra={"batch_id": str(batch_id), "instance_count": len(created)},
            )
            return created

    def rederive_chain(self, requisition_id: UUID, actor_id: str) -> Requisition:
        """Rebuild the chain of an undecided requisition from current org data.

        A direct superior chosen at intake is carried over.
        """
        current = self._selector.get(requisition_id)
        if current is None:
            raise RequisitionNotFoundError(str(requisition_id))

        manual = None
        chain = self._requisitions.chain_for(requisition_id)
        if isinstance(chain, DynamicSteps):
            for approver in chain.approvers:
                if approver.approver_type == ApproverType.DIRECT_SUPERIOR and approver.identity:
                    manual = ManualApprover(
                        identity_id=approver.identity.identity_id,
                        email=approver.identity.email,
                        display_name=approver.identity.display_name,
                    )
                    break

        draft = RequisitionDraft(
            tenant_id=current.tenant_id,
            position_name=current.position_name,
            category=current.category,
            quantity=current.quantity,
            created_by=current.created_by,
            created_by_email=current.created_by_email,
            brand_id=current.brand_id,
            store_id=current.store_id,
            area_id=current.area_id,
            org_unit_id=current.org_unit_id,
            manual_approver=manual,
        )
        with LogContext.bind(tenant_id=current.tenant_id, actor_id=actor_id):
            return self._requisitions.replace_chain(
                requisition_id, self._chains.build(draft), actor_id,
            )
