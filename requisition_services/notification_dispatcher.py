"""
requisition_services.notification_dispatcher -- NotificationDispatcher implementations.

Responsibility:
    Deliver requisition notification events.  Two implementations:

    - ``LoggingNotificationDispatcher`` writes one structured log record
      per event (development, tests, log-shipping deployments).
    - ``OutboxNotificationDispatcher`` appends a row to the
      ``notifications`` table for an out-of-process sender to pick up.

Architecture position:
    Services -- implements the kernel's ``NotificationDispatcher``
    protocol.  The state machine calls ``dispatch`` after its own write
    has flushed.

Invariants enforced:
    - The outbox row is written inside a SAVEPOINT of the caller's
      session, so it commits or rolls back with the transition that
      produced it, and a failed insert undoes only itself.
    - ``dispatch`` never raises: delivery failures are logged and
      swallowed.
"""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from requisition_kernel.domain.clock import Clock, SystemClock
from requisition_kernel.domain.notifications import NotificationEvent
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.notification import NotificationModel
from requisition_kernel.utils.hashing import to_json_safe

logger = get_logger("services.notifications")


class LoggingNotificationDispatcher:
    """Emit each event as a ``notification_dispatched`` log record."""

    def dispatch(self, event: NotificationEvent) -> None:
        logger.info(
            "notification_dispatched",
            extra={
                "kind": event.kind.value,
                "recipient": event.recipient,
                "requisition_id": str(event.requisition_id),
                "tenant_id": event.tenant_id,
            },
        )


class OutboxNotificationDispatcher:
    """Persist each event as an unread ``NotificationModel`` row."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def dispatch(self, event: NotificationEvent) -> None:
        try:
            with self._session.begin_nested():
                self._session.add(
                    NotificationModel(
                        tenant_id=event.tenant_id,
                        requisition_id=event.requisition_id,
                        kind=event.kind.value,
                        recipient=event.recipient,
                        payload=to_json_safe(dict(event.payload)),
                        is_read=False,
                        created_at=self._clock.now(),
                    )
                )
        except SQLAlchemyError:
            logger.warning(
                "notification_outbox_write_failed",
                extra={
                    "kind": event.kind.value,
                    "recipient": event.recipient,
                    "requisition_id": str(event.requisition_id),
                },
                exc_info=True,
            )
            return

        logger.debug(
            "notification_queued",
            extra={"kind": event.kind.value, "recipient": event.recipient},
        )
