"""
Notification boundary (``requisition_kernel.domain.notifications``).

The engine emits events; delivery (email, SMS, in-app) belongs to the
dispatcher.  Dispatch is fire-and-forget: a failing dispatcher never
rolls back the state transition that produced the event.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import UUID


class NotificationKind(str, Enum):
    PENDING_APPROVAL = "rq_pending_approval"
    APPROVED = "rq_approved"
    REJECTED = "rq_rejected"
    DELETION_REQUESTED = "rq_deletion_requested"
    DELETED = "rq_deleted"


@dataclass(frozen=True)
class NotificationEvent:
    kind: NotificationKind
    requisition_id: UUID
    tenant_id: str
    recipient: str
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher(Protocol):
    """Anything that can accept a notification event."""

    def dispatch(self, event: NotificationEvent) -> None: ...
