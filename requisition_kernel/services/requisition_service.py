"""
RequisitionService -- the requisition state machine.

Responsibility:
    Owns every write to a requisition's lifecycle: creation with its
    approval chain, level-by-level approval, rejection, the deletion
    sub-flow, recruitment start, closure, fill tracking and the unfilled
    alert flag.  No other component writes ``approval_status``,
    ``current_approval_level`` or the approval record list.

Architecture position:
    Kernel > Services -- imperative shell.  Reads approval ladders through
    ApprovalConfigService, records every transition through
    AuditorService, and hands notification events to an injected
    NotificationDispatcher.

Invariants enforced:
    - Ordered approval: a decision is only accepted at the requisition's
      recorded ``current_approval_level``; levels only move forward.
    - Terminal states: once rejected/cancelled/closed/filled, nothing is
      appended and no status changes.
    - Authorization before mutation: role levels are gated through
      ``ApprovalConfigService.validate_approver``; dynamic steps and
      single-approver levels additionally require the assigned identity.
    - No double advance: every transition loads the row FOR UPDATE and
      writes under the optimistic ``version`` guard.  A lost race surfaces
      as StaleRequisitionError.

Failure modes:
    - RequisitionNotFoundError, ApprovalConfigNotFoundError,
      UnauthorizedApproverError, UnauthorizedDeletionError,
      RequisitionTerminalError,
      ApprovalAlreadyResolvedError, ApprovalLevelMismatchError,
      ApprovalNotCompleteError, InvalidRequisitionTransitionError,
      DeletionPendingError, DeletionAlreadyRequestedError,
      DeletionNotRequestedError, MissingReasonError, InvalidHireCountError,
      StaleRequisitionError.
    - Notification and directory failures are logged and swallowed.

Audit relevance:
    Each successful operation writes exactly one audit event.  Deletion
    events are written before the row is removed and outlive it.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from requisition_kernel.domain.approval_chain import (
    ApprovalChain,
    ApprovalGate,
    DynamicSteps,
    RoleLevels,
    evaluate_authority,
    first_gate,
    gate_at,
    initial_level,
    next_gate,
)
from requisition_kernel.domain.clock import Clock, SystemClock
from requisition_kernel.domain.notifications import (
    NotificationDispatcher,
    NotificationEvent,
    NotificationKind,
)
from requisition_kernel.domain.requisition import (
    ApprovalDecision,
    ApprovalStatus,
    ChainKind,
    Requisition,
    RequisitionCategory,
    RequisitionDraft,
    RequisitionPolicy,
    RequisitionStatus,
    TERMINAL_REQUISITION_STATUSES,
    can_transition,
    format_rq_number,
)
from requisition_kernel.domain.staleness import is_unfilled
from requisition_kernel.domain.workflow import DirectoryIdentity, OrgDirectory
from requisition_kernel.exceptions import (
    ApprovalAlreadyResolvedError,
    ApprovalConfigNotFoundError,
    ApprovalLevelMismatchError,
    ApprovalNotCompleteError,
    ChainAlreadyStartedError,
    DeletionAlreadyRequestedError,
    DeletionNotRequestedError,
    DeletionPendingError,
    InvalidHireCountError,
    InvalidRequisitionTransitionError,
    MissingReasonError,
    RequisitionNotFoundError,
    RequisitionTerminalError,
    StaleRequisitionError,
    UnauthorizedApproverError,
    UnauthorizedDeletionError,
)
from requisition_kernel.logging_config import LogContext, get_logger
from requisition_kernel.models.audit_event import AuditAction
from requisition_kernel.models.requisition import (
    ApprovalRecordModel,
    RequisitionModel,
    ResolvedApproverModel,
)
from requisition_kernel.services.approval_config_service import ApprovalConfigService
from requisition_kernel.services.auditor_service import AuditorService
from requisition_kernel.services.base import BaseService
from requisition_kernel.services.sequence_service import SequenceService

logger = get_logger("services.requisition")

SYSTEM_ACTOR = "system"


class RequisitionService(BaseService[RequisitionModel]):
    """
    Requisition lifecycle state machine.

    Contract:
        Every public method takes the acting identity explicitly, returns a
        frozen ``Requisition`` DTO on success, and raises a typed
        ``RequisitionEngineError`` without having mutated anything on
        failure.

    Non-goals:
        - Does NOT commit.  The caller owns the transaction.
        - Does NOT resolve approvers; chains arrive pre-built
          (see ``requisition_services.chain_builder``).
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService | None = None,
        clock: Clock | None = None,
        *,
        policy: RequisitionPolicy | None = None,
        config_service: ApprovalConfigService | None = None,
        dispatcher: NotificationDispatcher | None = None,
        directory: OrgDirectory | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._policy = policy or RequisitionPolicy()
        self._config = config_service or ApprovalConfigService(
            session, self._auditor, self._clock,
        )
        self._dispatcher = dispatcher
        self._directory = directory
        self._sequences = SequenceService(session)

    @property
    def policy(self) -> RequisitionPolicy:
        return self._policy

    # =====================================================================
    # Creation
    # =====================================================================

    def create(
        self,
        draft: RequisitionDraft,
        chain: ApprovalChain,
        *,
        quantity: int | None = None,
        batch_id: UUID | None = None,
        instance_number: int | None = None,
    ) -> Requisition:
        """Persist a new requisition positioned at the chain's first gate.

        When every gate of the chain is skipped there is nobody to ask:
        the requisition is approved on the spot and the fact is logged.
        """
        now = self._clock.now()
        model = RequisitionModel(
            id=uuid4(),
            tenant_id=draft.tenant_id,
            brand_id=draft.brand_id,
            store_id=draft.store_id,
            area_id=draft.area_id,
            org_unit_id=draft.org_unit_id,
            rq_number=self._allocate_rq_number(draft.brand_id),
            batch_id=batch_id,
            instance_number=instance_number,
            position_name=draft.position_name.strip(),
            category=draft.category.value,
            quantity=quantity if quantity is not None else draft.quantity,
            details=dict(draft.details),
            status=RequisitionStatus.DRAFT.value,
            approval_status=ApprovalStatus.PENDING.value,
            current_approval_level=initial_level(chain),
            chain_kind=chain.kind.value,
            level_assignments={},
            created_by=draft.created_by,
            created_by_email=draft.created_by_email,
            alert_days_threshold=draft.alert_days_threshold,
            created_at=now,
            updated_at=now,
        )
        self._apply_chain(model, chain)

        gate = first_gate(chain)
        auto_approved = gate is None
        if auto_approved:
            self._finish_approval(model, now)

        self.session.add(model)
        self._flush(model)

        with LogContext.bind(requisition_id=model.id, actor_id=draft.created_by):
            self._auditor.record_requisition(
                model.id,
                AuditAction.REQUISITION_CREATED,
                draft.created_by,
                {
                    "rq_number": model.rq_number,
                    "chain_kind": model.chain_kind,
                    "gate_count": len(chain.gates()),
                    "current_approval_level": model.current_approval_level,
                    "batch_id": batch_id,
                    "instance_number": instance_number,
                },
            )
            logger.info(
                "requisition_created",
                extra={
                    "rq_number": model.rq_number,
                    "tenant_id": model.tenant_id,
                    "chain_kind": model.chain_kind,
                    "current_approval_level": model.current_approval_level,
                },
            )

            if auto_approved:
                self._auditor.record_requisition(
                    model.id,
                    AuditAction.REQUISITION_AUTO_APPROVED,
                    SYSTEM_ACTOR,
                    {"reason": "every approval gate was skipped"},
                )
                logger.warning(
                    "requisition_auto_approved",
                    extra={"rq_number": model.rq_number, "gate_count": len(chain.gates())},
                )
                self._notify(
                    NotificationKind.APPROVED, model, [model.created_by_email],
                    {"auto_approved": True},
                )
            else:
                self._notify_pending(model, gate)

        return model.to_dto()

    def replace_chain(
        self,
        requisition_id: UUID,
        chain: ApprovalChain,
        actor_id: str,
    ) -> Requisition:
        """Swap in a freshly derived chain before anyone has decided.

        Raises:
            ChainAlreadyStartedError: approval records exist or the chain
                is no longer pending.
        """
        model = self._load(requisition_id)
        self._guard_open(model)
        if model.approval_status != ApprovalStatus.PENDING.value or model.approval_records:
            raise ChainAlreadyStartedError(str(model.id))

        previous_level = model.current_approval_level
        model.resolved_approvers.clear()
        model.level_assignments = {}
        # Step orders are unique per requisition; drop old rows first.
        self._flush(model)

        now = self._clock.now()
        model.chain_kind = chain.kind.value
        model.current_approval_level = initial_level(chain)
        self._apply_chain(model, chain)
        gate = first_gate(chain)
        if gate is None:
            self._finish_approval(model, now)
        model.updated_at = now
        self._flush(model)

        with LogContext.bind(requisition_id=model.id, actor_id=actor_id):
            self._auditor.record_requisition(
                model.id,
                AuditAction.CHAIN_REDERIVED,
                actor_id,
                {
                    "chain_kind": model.chain_kind,
                    "previous_level": previous_level,
                    "current_approval_level": model.current_approval_level,
                },
            )
            logger.info(
                "requisition_chain_rederived",
                extra={
                    "previous_level": previous_level,
                    "current_approval_level": model.current_approval_level,
                },
            )
            if gate is not None:
                self._notify_pending(model, gate)
        return model.to_dto()

    # =====================================================================
    # Approval
    # =====================================================================

    def approve(
        self,
        requisition_id: UUID,
        approver_id: str,
        approver_email: str | None,
        tenant_id: str | None,
        *,
        approver_role: str | None = None,
        expected_level: int | None = None,
        comment: str | None = None,
    ) -> Requisition:
        """
        Approve the requisition's current level.

        Advances to the next non-skipped gate, or finishes the chain.  A
        finished chain activates recruiting immediately for categories in
        ``policy.auto_activate_categories``.

        ``tenant_id`` None means "the requisition's own tenant".

        Raises:
            UnauthorizedApproverError: caller may not decide this level.
            RequisitionTerminalError / ApprovalAlreadyResolvedError:
                nothing left to approve.
            ApprovalLevelMismatchError: ``expected_level`` is stale.
            StaleRequisitionError: a concurrent writer won.
        """
        model = self._load(requisition_id)
        level = model.current_approval_level

        with LogContext.bind(requisition_id=model.id, actor_id=approver_id):
            chain, gate = self._authorize_decision(
                model, approver_id, approver_email, tenant_id,
                approver_role, expected_level,
            )

            now = self._clock.now()
            self._append_record(
                model, gate, approver_id, approver_email, approver_role,
                ApprovalDecision.APPROVED, comment, now,
            )

            nxt = next_gate(chain, level)
            if nxt is not None:
                model.current_approval_level = nxt.level
            else:
                self._finish_approval(model, now)
            model.updated_at = now
            self._flush(model)

            if nxt is not None:
                self._auditor.record_requisition(
                    model.id, AuditAction.LEVEL_APPROVED, approver_id,
                    {"level": level, "next_level": nxt.level, "role": approver_role},
                )
                logger.info(
                    "requisition_approved_level",
                    extra={"level": level, "next_level": nxt.level},
                )
                self._notify_pending(model, nxt)
            else:
                self._auditor.record_requisition(
                    model.id, AuditAction.REQUISITION_APPROVED, approver_id,
                    {"level": level, "status": model.status, "role": approver_role},
                )
                logger.info(
                    "requisition_approved",
                    extra={"level": level, "status": model.status},
                )
                self._notify(
                    NotificationKind.APPROVED, model, [model.created_by_email],
                    {"approved_by": approver_email or approver_id},
                )

        return model.to_dto()

    def reject(
        self,
        requisition_id: UUID,
        approver_id: str,
        approver_email: str | None,
        reason: str,
        *,
        approver_role: str | None = None,
        tenant_id: str | None = None,
        expected_level: int | None = None,
    ) -> Requisition:
        """
        Reject the requisition at its current level.

        Terminal regardless of level: ``approval_status`` becomes
        ``rejected`` and ``status`` becomes ``cancelled``.

        Raises:
            MissingReasonError: ``reason`` is empty or blank.
            (plus everything ``approve`` raises)
        """
        if not reason or not reason.strip():
            raise MissingReasonError(str(requisition_id), "reject")

        model = self._load(requisition_id)
        level = model.current_approval_level

        with LogContext.bind(requisition_id=model.id, actor_id=approver_id):
            _, gate = self._authorize_decision(
                model, approver_id, approver_email, tenant_id,
                approver_role, expected_level,
            )
            self._require_transition(model, RequisitionStatus.CANCELLED)

            now = self._clock.now()
            self._append_record(
                model, gate, approver_id, approver_email, approver_role,
                ApprovalDecision.REJECTED, reason.strip(), now,
            )
            model.approval_status = ApprovalStatus.REJECTED.value
            model.status = RequisitionStatus.CANCELLED.value
            model.rejection_reason = reason.strip()
            model.alert_unfilled = False
            model.updated_at = now
            self._flush(model)

            self._auditor.record_requisition(
                model.id, AuditAction.REQUISITION_REJECTED, approver_id,
                {"level": level, "reason": model.rejection_reason, "role": approver_role},
            )
            logger.info("requisition_rejected", extra={"level": level})
            self._notify(
                NotificationKind.REJECTED, model, [model.created_by_email],
                {"rejected_by": approver_email or approver_id, "reason": model.rejection_reason},
            )

        return model.to_dto()

    # =====================================================================
    # Deletion sub-flow
    # =====================================================================

    def request_deletion(
        self,
        requisition_id: UUID,
        requester_id: str,
        reason: str,
    ) -> Requisition:
        """Flag the requisition for deletion; lifecycle actions pause."""
        if not reason or not reason.strip():
            raise MissingReasonError(str(requisition_id), "request deletion of")

        model = self._load(requisition_id)
        if model.status in _TERMINAL_VALUES:
            raise RequisitionTerminalError(str(model.id), model.status)
        if model.deletion_requested:
            raise DeletionAlreadyRequestedError(str(model.id))

        now = self._clock.now()
        model.deletion_requested = True
        model.deletion_approved = False
        model.deletion_requested_by = requester_id
        model.deletion_reason = reason.strip()
        model.deletion_requested_at = now
        model.updated_at = now
        self._flush(model)

        with LogContext.bind(requisition_id=model.id, actor_id=requester_id):
            self._auditor.record_requisition(
                model.id, AuditAction.DELETION_REQUESTED, requester_id,
                {"reason": model.deletion_reason},
            )
            logger.info("deletion_requested", extra={"rq_number": model.rq_number})
            self._notify(
                NotificationKind.DELETION_REQUESTED,
                model,
                self._role_recipients(model.tenant_id, self._policy.deletion_approver_roles),
                {"reason": model.deletion_reason, "requested_by": requester_id},
            )
        return model.to_dto()

    def approve_deletion(
        self,
        requisition_id: UUID,
        approver_id: str,
        *,
        approver_role: str | None,
    ) -> Requisition:
        """Grant a pending deletion request; the requisition is removed.

        Returns the requisition as it was just before removal.
        """
        if approver_role not in self._policy.deletion_approver_roles:
            raise UnauthorizedDeletionError(str(requisition_id), approver_id, approver_role)

        model = self._load(requisition_id)
        if not model.deletion_requested:
            raise DeletionNotRequestedError(str(model.id))

        model.deletion_approved = True
        return self._remove(
            model, approver_id,
            {
                "mode": "approved_request",
                "requested_by": model.deletion_requested_by,
                "reason": model.deletion_reason,
                "approver_role": approver_role,
            },
            notify=[model.created_by_email],
        )

    def deny_deletion(
        self,
        requisition_id: UUID,
        approver_id: str,
        *,
        approver_role: str | None,
        reason: str | None = None,
    ) -> Requisition:
        """Clear a pending deletion request; the requisition resumes."""
        if approver_role not in self._policy.deletion_approver_roles:
            raise UnauthorizedDeletionError(str(requisition_id), approver_id, approver_role)

        model = self._load(requisition_id)
        if not model.deletion_requested:
            raise DeletionNotRequestedError(str(model.id))

        requested_by = model.deletion_requested_by
        model.deletion_requested = False
        model.deletion_approved = False
        model.deletion_requested_by = None
        model.deletion_reason = None
        model.deletion_requested_at = None
        model.updated_at = self._clock.now()
        self._flush(model)

        with LogContext.bind(requisition_id=model.id, actor_id=approver_id):
            self._auditor.record_requisition(
                model.id, AuditAction.DELETION_DENIED, approver_id,
                {"requested_by": requested_by, "reason": reason},
            )
            logger.info("deletion_denied", extra={"rq_number": model.rq_number})
        return model.to_dto()

    def delete_directly(
        self,
        requisition_id: UUID,
        requester_id: str,
        reason: str,
        *,
        requester_role: str | None,
    ) -> Requisition:
        """Remove a requisition without the request/approve handshake.

        Only roles in ``policy.direct_delete_roles`` may do this.
        """
        if not reason or not reason.strip():
            raise MissingReasonError(str(requisition_id), "delete")
        if requester_role not in self._policy.direct_delete_roles:
            raise UnauthorizedDeletionError(str(requisition_id), requester_id, requester_role)

        model = self._load(requisition_id)
        model.deletion_reason = reason.strip()
        model.deletion_approved = True
        return self._remove(
            model, requester_id,
            {"mode": "direct", "reason": reason.strip(), "requester_role": requester_role},
            notify=[model.created_by_email],
        )

    # =====================================================================
    # Recruiting lifecycle
    # =====================================================================

    def start_recruitment(
        self,
        requisition_id: UUID,
        actor_id: str | None = None,
    ) -> Requisition:
        """Open recruiting on an approved requisition (draft -> active)."""
        model = self._load(requisition_id)
        self._guard_open(model)
        if model.approval_status != ApprovalStatus.APPROVED.value:
            raise ApprovalNotCompleteError(str(model.id), model.approval_status)
        self._require_transition(model, RequisitionStatus.ACTIVE)

        now = self._clock.now()
        model.status = RequisitionStatus.ACTIVE.value
        model.recruitment_started_at = now
        model.updated_at = now
        self._flush(model)

        actor = actor_id or SYSTEM_ACTOR
        with LogContext.bind(requisition_id=model.id, actor_id=actor):
            self._auditor.record_requisition(
                model.id, AuditAction.RECRUITMENT_STARTED, actor, {},
            )
            logger.info("recruitment_started", extra={"rq_number": model.rq_number})
        return model.to_dto()

    def close_requisition(
        self,
        requisition_id: UUID,
        closed_by: str | None = None,
        reason: str | None = None,
    ) -> Requisition:
        """Close an active requisition.  Terminal."""
        model = self._load(requisition_id)
        self._guard_open(model)
        self._require_transition(model, RequisitionStatus.CLOSED)

        now = self._clock.now()
        model.status = RequisitionStatus.CLOSED.value
        model.recruitment_ended_at = now
        model.closed_by = closed_by or SYSTEM_ACTOR
        model.closure_reason = reason
        model.alert_unfilled = False
        model.updated_at = now
        self._flush(model)

        with LogContext.bind(requisition_id=model.id, actor_id=model.closed_by):
            self._auditor.record_requisition(
                model.id, AuditAction.REQUISITION_CLOSED, model.closed_by,
                {"reason": reason, "filled_count": model.filled_count},
            )
            logger.info("requisition_closed", extra={"rq_number": model.rq_number})
        return model.to_dto()

    def record_hires(
        self,
        requisition_id: UUID,
        hired_count: int,
        actor_id: str | None = None,
    ) -> Requisition:
        """Record how many openings are filled; all filled -> ``filled``.

        ``hired_count`` is the running total and never goes down.
        """
        if hired_count < 0:
            raise InvalidHireCountError(str(requisition_id), hired_count, 0)

        model = self._load(requisition_id)
        self._guard_open(model)
        if model.status != RequisitionStatus.ACTIVE.value:
            raise InvalidRequisitionTransitionError(
                str(model.id), model.status, RequisitionStatus.FILLED.value,
            )
        if hired_count < (model.filled_count or 0):
            raise InvalidHireCountError(str(model.id), hired_count, model.filled_count)

        now = self._clock.now()
        model.filled_count = hired_count
        filled = hired_count >= model.quantity
        if filled:
            model.status = RequisitionStatus.FILLED.value
            model.closed_by = SYSTEM_ACTOR
            model.closure_reason = (
                f"All {model.quantity} position(s) filled"
            )
            model.recruitment_ended_at = now
            model.alert_unfilled = False
        model.updated_at = now
        self._flush(model)

        actor = actor_id or SYSTEM_ACTOR
        with LogContext.bind(requisition_id=model.id, actor_id=actor):
            self._auditor.record_requisition(
                model.id,
                AuditAction.REQUISITION_FILLED if filled else AuditAction.HIRES_RECORDED,
                actor,
                {"filled_count": hired_count, "quantity": model.quantity},
            )
            logger.info(
                "requisition_filled" if filled else "hires_recorded",
                extra={"filled_count": hired_count, "quantity": model.quantity},
            )
        return model.to_dto()

    def refresh_unfilled_alerts(self, tenant_id: str | None = None) -> list[Requisition]:
        """Raise ``alert_unfilled`` on every requisition past its threshold.

        Returns the requisitions newly flagged by this call.
        """
        now = self._clock.now()
        stmt = select(RequisitionModel).where(
            RequisitionModel.alert_unfilled.is_(False),
            RequisitionModel.status.in_(
                [RequisitionStatus.ACTIVE.value, RequisitionStatus.DRAFT.value]
            ),
            RequisitionModel.deletion_requested.is_(False),
        )
        if tenant_id is not None:
            stmt = stmt.where(RequisitionModel.tenant_id == tenant_id)

        flagged: list[Requisition] = []
        candidates = self.session.execute(
            stmt.order_by(RequisitionModel.created_at).with_for_update()
        ).scalars().all()
        for model in candidates:
            threshold = (
                model.alert_days_threshold
                if model.alert_days_threshold is not None
                else self._policy.unfilled_alert_days
            )
            if not is_unfilled(
                RequisitionStatus(model.status),
                ApprovalStatus(model.approval_status),
                model.created_at,
                model.recruitment_started_at,
                now,
                threshold,
            ):
                continue
            model.alert_unfilled = True
            model.alert_unfilled_at = now
            self._flush(model)
            self._auditor.record_requisition(
                model.id, AuditAction.UNFILLED_ALERT_RAISED, SYSTEM_ACTOR,
                {"threshold_days": threshold, "status": model.status},
            )
            flagged.append(model.to_dto())

        if flagged:
            logger.info(
                "unfilled_alerts_raised",
                extra={"tenant_id": tenant_id, "count": len(flagged)},
            )
        return flagged

    # =====================================================================
    # Chain access
    # =====================================================================

    def chain_for(self, requisition_id: UUID) -> ApprovalChain:
        """The approval chain the requisition is currently evaluated against."""
        return self._chain_of(self._load(requisition_id, lock=False))

    def _chain_of(self, model: RequisitionModel) -> ApprovalChain:
        if model.chain_kind == ChainKind.DYNAMIC_STEPS.value:
            return DynamicSteps(model.resolved_approver_dtos())
        return RoleLevels(
            levels=self._config.get_levels_for(model.tenant_id, model.brand_id),
            assignments={
                int(level): DirectoryIdentity(**data)
                for level, data in (model.level_assignments or {}).items()
            },
        )

    def _apply_chain(self, model: RequisitionModel, chain: ApprovalChain) -> None:
        if isinstance(chain, DynamicSteps):
            model.resolved_approvers = [
                ResolvedApproverModel.from_dto(a) for a in chain.approvers
            ]
        else:
            model.level_assignments = {
                str(level): {
                    "identity_id": identity.identity_id,
                    "email": identity.email,
                    "display_name": identity.display_name,
                }
                for level, identity in chain.assignments.items()
            }

    # =====================================================================
    # Internals
    # =====================================================================

    def _load(self, requisition_id: UUID, lock: bool = True) -> RequisitionModel:
        stmt = select(RequisitionModel).where(RequisitionModel.id == requisition_id)
        if lock:
            stmt = stmt.with_for_update()
        model = self.session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise RequisitionNotFoundError(str(requisition_id))
        return model

    def _flush(self, model: RequisitionModel) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "requisition_stale_write",
                extra={"requisition_id": str(model.id)},
            )
            raise StaleRequisitionError(str(model.id)) from exc

    def _guard_open(self, model: RequisitionModel) -> None:
        if model.status in _TERMINAL_VALUES:
            raise RequisitionTerminalError(str(model.id), model.status)
        if model.deletion_requested:
            raise DeletionPendingError(str(model.id))

    def _require_transition(self, model: RequisitionModel, target: RequisitionStatus) -> None:
        if not can_transition(RequisitionStatus(model.status), target):
            raise InvalidRequisitionTransitionError(str(model.id), model.status, target.value)

    def _authorize_decision(
        self,
        model: RequisitionModel,
        actor_id: str,
        actor_email: str | None,
        tenant_id: str | None,
        actor_role: str | None,
        expected_level: int | None,
    ) -> tuple[ApprovalChain, ApprovalGate]:
        """Check state, level and authority for a decision.  Never mutates."""
        self._guard_open(model)
        if model.approval_status != ApprovalStatus.PENDING.value:
            raise ApprovalAlreadyResolvedError(str(model.id), model.approval_status)

        level = model.current_approval_level
        if expected_level is not None and expected_level != level:
            raise ApprovalLevelMismatchError(str(model.id), expected_level, level)

        scope_tenant = tenant_id if tenant_id is not None else model.tenant_id
        if scope_tenant != model.tenant_id:
            raise UnauthorizedApproverError(
                str(model.id), level, actor_id, actor_role,
                f"tenant {scope_tenant} does not own this requisition",
            )

        chain = self._chain_of(model)
        if isinstance(chain, RoleLevels) and not chain.levels:
            logger.warning(
                "approval_config_missing",
                extra={"tenant_id": model.tenant_id, "brand_id": model.brand_id},
            )
            raise ApprovalConfigNotFoundError(model.tenant_id, model.brand_id)
        gate = gate_at(chain, level)
        if gate is None:
            raise UnauthorizedApproverError(
                str(model.id), level, actor_id, actor_role,
                "no approval gate is configured at this level",
            )

        if isinstance(chain, RoleLevels) and not self._config.validate_approver(
            scope_tenant, level, actor_role, model.brand_id,
        ):
            logger.info(
                "approval_unauthorized",
                extra={"level": level, "role": actor_role},
            )
            raise UnauthorizedApproverError(
                str(model.id), level, actor_id, actor_role,
                f"role is not authorized for level {level}",
            )

        allowed, reason = evaluate_authority(gate, actor_id, actor_email, actor_role)
        if not allowed:
            logger.info(
                "approval_unauthorized",
                extra={"level": level, "role": actor_role, "reason": reason},
            )
            raise UnauthorizedApproverError(str(model.id), level, actor_id, actor_role, reason)

        return chain, gate

    def _append_record(
        self,
        model: RequisitionModel,
        gate: ApprovalGate,
        approver_id: str,
        approver_email: str | None,
        approver_role: str | None,
        decision: ApprovalDecision,
        comment: str | None,
        now,
    ) -> None:
        model.approval_records.append(
            ApprovalRecordModel(
                sequence=len(model.approval_records) + 1,
                level=gate.level,
                step_name=gate.name,
                approver_id=approver_id,
                approver_email=approver_email or "",
                approver_role=approver_role,
                decision=decision.value,
                comment=comment,
                decided_at=now,
            )
        )

    def _finish_approval(self, model: RequisitionModel, now) -> None:
        model.approval_status = ApprovalStatus.APPROVED.value
        if self._policy.activates_on_approval(RequisitionCategory(model.category)):
            model.status = RequisitionStatus.ACTIVE.value
            model.recruitment_started_at = now

    def _allocate_rq_number(self, brand_id: str | None) -> str:
        code = self._policy.brand_code(brand_id)
        seq = self._sequences.next_value(SequenceService.rq_number_sequence(code))
        return format_rq_number(code, seq)

    def _remove(
        self,
        model: RequisitionModel,
        actor_id: str,
        payload: dict[str, Any],
        notify: Iterable[str | None],
    ) -> Requisition:
        model.updated_at = self._clock.now()
        self._flush(model)
        snapshot = model.to_dto()
        with LogContext.bind(requisition_id=model.id, actor_id=actor_id):
            self._auditor.record_requisition(
                model.id, AuditAction.REQUISITION_DELETED, actor_id,
                {**payload, "rq_number": model.rq_number, "status": model.status},
            )
            self.session.delete(model)
            self._flush(model)
            logger.info(
                "requisition_deleted",
                extra={"rq_number": snapshot.rq_number, "mode": payload.get("mode")},
            )
            self._notify(
                NotificationKind.DELETED, model, [r for r in notify if r],
                {"rq_number": snapshot.rq_number, "reason": snapshot.deletion_reason},
            )
        return snapshot

    # ---------------------------------------------------------------------
    # Notifications (fire-and-forget)
    # ---------------------------------------------------------------------

    def _notify_pending(self, model: RequisitionModel, gate: ApprovalGate) -> None:
        if gate.assignee is not None:
            recipients = [gate.assignee.email]
        else:
            recipients = self._role_recipients(model.tenant_id, gate.authorized_roles)
        self._notify(
            NotificationKind.PENDING_APPROVAL, model, recipients,
            {"level": gate.level, "step_name": gate.name},
        )

    def _role_recipients(self, tenant_id: str, roles: frozenset[str]) -> list[str]:
        if self._directory is None or not roles:
            return []
        try:
            holders = self._directory.role_holders(tenant_id, frozenset(roles))
        except Exception:
            logger.warning(
                "directory_lookup_failed",
                extra={"tenant_id": tenant_id, "roles": sorted(roles)},
                exc_info=True,
            )
            return []
        return [h.email for h in holders if h.email]

    def _notify(
        self,
        kind: NotificationKind,
        model: RequisitionModel,
        recipients: Iterable[str],
        payload: dict[str, Any],
    ) -> None:
        if self._dispatcher is None:
            return
        seen: set[str] = set()
        for recipient in recipients:
            key = recipient.strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)
            event = NotificationEvent(
                kind=kind,
                requisition_id=model.id,
                tenant_id=model.tenant_id,
                recipient=recipient,
                payload={
                    "rq_number": model.rq_number,
                    "position_name": model.position_name,
                    **payload,
                },
            )
            try:
                self._dispatcher.dispatch(event)
            except Exception:
                logger.warning(
                    "notification_dispatch_failed",
                    extra={"kind": kind.value, "recipient": recipient},
                    exc_info=True,
                )


_TERMINAL_VALUES = frozenset(s.value for s in TERMINAL_REQUISITION_STATUSES)
