"""
requisition_services -- Package init and public API.

Responsibility:
    Coordinators that compose the kernel state machine with the approver
    resolver engine and with I/O-bound collaborators: the organizational
    directory, notification delivery, chain building, intake and bulk
    operations.

Architecture position:
    Services -- orchestration over engines + kernel.

    Dependency direction:
        requisition_services/ -> requisition_engines/  (allowed)
        requisition_services/ -> requisition_kernel/    (allowed)
        requisition_services/ -> requisition_config/    (allowed, bridges only)
        requisition_engines/  -> requisition_services/  (FORBIDDEN)
        requisition_kernel/   -> requisition_services/  (FORBIDDEN)

Failure modes:
    - ImportError at startup if a service's dependency graph is broken.
"""

from requisition_kernel.logging_config import get_logger

logger = get_logger("services")

from requisition_services.bulk_coordinator import (
    BulkOperationCoordinator,
    BulkOutcome,
    BulkResult,
)
from requisition_services.chain_builder import ApprovalChainBuilder, context_for
from requisition_services.notification_dispatcher import (
    LoggingNotificationDispatcher,
    OutboxNotificationDispatcher,
)
from requisition_services.orchestrator import RequisitionOrchestrator
from requisition_services.org_directory import SqlOrgDirectory
from requisition_services.requisition_intake import RequisitionIntake, validate_draft

__all__ = [
    "ApprovalChainBuilder",
    "BulkOperationCoordinator",
    "BulkOutcome",
    "BulkResult",
    "LoggingNotificationDispatcher",
    "OutboxNotificationDispatcher",
    "RequisitionIntake",
    "RequisitionOrchestrator",
    "SqlOrgDirectory",
    "context_for",
    "validate_draft",
]
