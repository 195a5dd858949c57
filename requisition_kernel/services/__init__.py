"""Services for the requisition kernel (write side)."""

from requisition_kernel.services.approval_config_service import ApprovalConfigService
from requisition_kernel.services.auditor_service import (
    AuditorService,
    AuditTrace,
    AuditTraceEntry,
)
from requisition_kernel.services.requisition_service import RequisitionService
from requisition_kernel.services.sequence_service import SequenceService

__all__ = [
    "ApprovalConfigService",
    "AuditTrace",
    "AuditTraceEntry",
    "AuditorService",
    "RequisitionService",
    "SequenceService",
]
