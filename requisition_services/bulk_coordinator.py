"""
requisition_services.bulk_coordinator -- Bulk approve / reject with per-item isolation.

Responsibility:
    Apply a single-requisition approve or reject to many ids and report
    exactly which succeeded and which failed, and why.

Architecture position:
    Services -- drives RequisitionService inside the caller's session.

Invariants enforced:
    - Per-item isolation: each id runs inside its own SAVEPOINT.  A failing
      item rolls back only its own writes and never stops the loop.
    - Every item goes through the full authorization gate of the
      single-item operation; bulk grants no extra authority.
    - Duplicate ids are processed once, at their first position.
    - ``succeeded_count + len(failed_ids)`` equals the number of distinct
      ids.

Failure modes:
    - Per-item ``RequisitionEngineError`` is captured as its ``code``.
      Anything else is captured as ``UNHANDLED_EXCEPTION`` and logged with
      the traceback.
    - BulkLimitExceededError, raised before any item is touched, when the
      request names more ids than ``max_items``.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from requisition_kernel.exceptions import BulkLimitExceededError, RequisitionEngineError
from requisition_kernel.logging_config import LogContext, get_logger
from requisition_kernel.services.requisition_service import RequisitionService

logger = get_logger("services.bulk")

UNHANDLED_EXCEPTION = "UNHANDLED_EXCEPTION"


class BulkOutcome(str, Enum):
    ALL_SUCCEEDED = "all_succeeded"
    PARTIAL = "partial"
    ALL_FAILED = "all_failed"


@dataclass(frozen=True)
class BulkResult:
    """Complete accounting of one bulk call."""

    operation: str
    bulk_operation_id: UUID
    succeeded_ids: tuple[UUID, ...] = ()
    failed_ids: tuple[UUID, ...] = ()
    # requisition id -> error code
    failures: dict[UUID, str] = field(default_factory=dict)

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded_ids)

    @property
    def failed_count(self) -> int:
        return len(self.failed_ids)

    @property
    def total(self) -> int:
        return self.succeeded_count + self.failed_count

    @property
    def outcome(self) -> BulkOutcome:
        # An empty request has nothing that failed.
        if not self.failed_ids:
            return BulkOutcome.ALL_SUCCEEDED
        if not self.succeeded_ids:
            return BulkOutcome.ALL_FAILED
        return BulkOutcome.PARTIAL


class BulkOperationCoordinator:
    """Runs approve/reject over many requisitions independently."""

    def __init__(
        self,
        session: Session,
        requisitions: RequisitionService,
        max_items: int | None = None,
    ):
        self._session = session
        self._requisitions = requisitions
        self._max_items = max_items

    def bulk_approve(
        self,
        ids: Iterable[UUID],
        approver_id: str,
        approver_name: str,
        approver_role: str | None,
        *,
        approver_email: str | None = None,
        tenant_id: str | None = None,
        comment: str | None = None,
    ) -> BulkResult:
        """Approve each requisition at its own current level.

        ``approver_name`` doubles as the approver email when
        ``approver_email`` is not given.
        """
        email = approver_email or approver_name
        return self._run(
            "bulk_approve",
            ids,
            approver_id,
            lambda rid: self._requisitions.approve(
                rid, approver_id, email, tenant_id,
                approver_role=approver_role, comment=comment,
            ),
        )

    def bulk_reject(
        self,
        ids: Iterable[UUID],
        approver_id: str,
        approver_name: str,
        approver_role: str | None,
        reason: str,
        *,
        approver_email: str | None = None,
        tenant_id: str | None = None,
    ) -> BulkResult:
        """Reject each requisition with the same reason.

        A blank reason fails every item with REASON_REQUIRED.
        """
        email = approver_email or approver_name
        return self._run(
            "bulk_reject",
            ids,
            approver_id,
            lambda rid: self._requisitions.reject(
                rid, approver_id, email, reason,
                approver_role=approver_role, tenant_id=tenant_id,
            ),
        )

    def _run(
        self,
        operation: str,
        ids: Iterable[UUID],
        actor_id: str,
        apply: Callable[[UUID], object],
    ) -> BulkResult:
        unique_ids = list(dict.fromkeys(ids))
        if self._max_items is not None and len(unique_ids) > self._max_items:
            raise BulkLimitExceededError(len(unique_ids), self._max_items)

        bulk_id = uuid4()
        succeeded: list[UUID] = []
        failed: list[UUID] = []
        failures: dict[UUID, str] = {}
        t0 = time.monotonic()

        with LogContext.bind(bulk_operation_id=bulk_id, actor_id=actor_id):
            logger.info(
                "bulk_operation_started",
                extra={"operation": operation, "item_count": len(unique_ids)},
            )

            for rid in unique_ids:
                savepoint = self._session.begin_nested()
                try:
                    apply(rid)
                    savepoint.commit()
                    succeeded.append(rid)
                except RequisitionEngineError as exc:
                    savepoint.rollback()
                    failed.append(rid)
                    failures[rid] = exc.code
                    logger.info(
                        "bulk_item_failed",
                        extra={
                            "operation": operation,
                            "requisition_id": str(rid),
                            "error_code": exc.code,
                            "error_message": str(exc),
                        },
                    )
                except Exception:
                    savepoint.rollback()
                    failed.append(rid)
                    failures[rid] = UNHANDLED_EXCEPTION
                    logger.error(
                        "bulk_item_failed",
                        extra={
                            "operation": operation,
                            "requisition_id": str(rid),
                            "error_code": UNHANDLED_EXCEPTION,
                        },
                        exc_info=True,
                    )

            result = BulkResult(
                operation=operation,
                bulk_operation_id=bulk_id,
                succeeded_ids=tuple(succeeded),
                failed_ids=tuple(failed),
                failures=failures,
            )
            logger.info(
                "bulk_operation_completed",
                extra={
                    "operation": operation,
                    "outcome": result.outcome.value,
                    "succeeded_count": result.succeeded_count,
                    "failed_count": result.failed_count,
                    "duration_ms": int((time.monotonic() - t0) * 1000),
                },
            )
        return result
