"""
requisition_services.orchestrator -- Central wiring for one unit of work.

Responsibility:
    Constructs every service the engine needs exactly once for a session
    and wires them together: auditor, config access, directory,
    notification dispatcher, state machine, selector, chain builder,
    intake and bulk coordinator.

Architecture position:
    Services -- top of the service layer.  The only place where kernel
    services are composed; no service constructs its collaborators when
    built through here.

Invariants enforced:
    - Single-instance lifecycle: one AuditorService (and so one audit
      sequence) per orchestrator.
    - Every component shares the same Session and Clock.

Non-goals:
    - Does NOT commit or roll back.  Wrap calls in ``session_scope()`` or
      manage the transaction yourself.

Usage:
    with session_scope() as session:
        rq = RequisitionOrchestrator(session, settings=get_settings())
        created = rq.intake.submit(draft)
        rq.requisitions.approve(created[0].id, "u-7", "jefe@acme.pe", "acme",
                                approver_role="jefe_marca")
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from requisition_config.bridges import build_requisition_policy
from requisition_config.schema import EngineSettings
from requisition_kernel.domain.clock import Clock, SystemClock
from requisition_kernel.domain.notifications import NotificationDispatcher
from requisition_kernel.domain.requisition import RequisitionPolicy
from requisition_kernel.domain.workflow import OrgDirectory
from requisition_kernel.selectors.requisition_selector import RequisitionSelector
from requisition_kernel.services.approval_config_service import ApprovalConfigService
from requisition_kernel.services.auditor_service import AuditorService
from requisition_kernel.services.requisition_service import RequisitionService
from requisition_services.bulk_coordinator import BulkOperationCoordinator
from requisition_services.chain_builder import ApprovalChainBuilder
from requisition_services.notification_dispatcher import OutboxNotificationDispatcher
from requisition_services.org_directory import SqlOrgDirectory
from requisition_services.requisition_intake import RequisitionIntake


class RequisitionOrchestrator:
    """Factory and holder for the engine's services.

    Contract:
        ``settings`` (if given) is turned into the state machine's
        ``RequisitionPolicy`` and bulk cap.  An explicit ``policy`` wins
        over ``settings``.  The directory defaults to the SQL directory
        and the dispatcher to the notification outbox, both on
        ``session``.
    """

    def __init__(
        self,
        session: Session,
        *,
        settings: EngineSettings | None = None,
        policy: RequisitionPolicy | None = None,
        clock: Clock | None = None,
        directory: OrgDirectory | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()

        if policy is None:
            policy = (
                build_requisition_policy(settings)
                if settings is not None else RequisitionPolicy()
            )
        self.policy = policy

        self.auditor = AuditorService(session, self._clock)
        self.config = ApprovalConfigService(session, self.auditor, self._clock)
        self.directory = directory if directory is not None else SqlOrgDirectory(session)
        self.dispatcher = (
            dispatcher if dispatcher is not None
            else OutboxNotificationDispatcher(session, self._clock)
        )

        self.requisitions = RequisitionService(
            session,
            self.auditor,
            self._clock,
            policy=self.policy,
            config_service=self.config,
            dispatcher=self.dispatcher,
            directory=self.directory,
        )
        self.selector = RequisitionSelector(session)
        self.chain_builder = ApprovalChainBuilder(self.config, self.directory)
        self.intake = RequisitionIntake(self.requisitions, self.chain_builder, self.selector)
        self.bulk = BulkOperationCoordinator(
            session,
            self.requisitions,
            max_items=settings.bulk_max_items if settings is not None else None,
        )
