"""ORM models for the requisition kernel."""

from requisition_kernel.models.approval_config import ApprovalConfigModel, ApprovalLevelModel
from requisition_kernel.models.audit_event import AuditAction, AuditEvent
from requisition_kernel.models.notification import NotificationModel
from requisition_kernel.models.organization import (
    DirectoryUserModel,
    OrgAreaModel,
    OrgUnitModel,
)
from requisition_kernel.models.requisition import (
    ApprovalRecordModel,
    RequisitionModel,
    ResolvedApproverModel,
)
from requisition_kernel.models.sequence import SequenceCounter
from requisition_kernel.models.workflow import ApprovalWorkflowModel, WorkflowStepModel

__all__ = [
    "ApprovalConfigModel",
    "ApprovalLevelModel",
    "ApprovalRecordModel",
    "ApprovalWorkflowModel",
    "AuditAction",
    "AuditEvent",
    "DirectoryUserModel",
    "NotificationModel",
    "OrgAreaModel",
    "OrgUnitModel",
    "RequisitionModel",
    "ResolvedApproverModel",
    "SequenceCounter",
    "WorkflowStepModel",
]
