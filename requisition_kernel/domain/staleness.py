"""
Unfilled-requisition detection (``requisition_kernel.domain.staleness``).

Pure function behind the ``alert_unfilled`` dashboard flag.  The
threshold is configuration (``unfilled_alert_days``) with an optional
per-requisition override; nothing here reads the clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from requisition_kernel.domain.requisition import (
    ApprovalStatus,
    RequisitionStatus,
)


def alert_reference_time(
    status: RequisitionStatus,
    created_at: datetime,
    recruitment_started_at: datetime | None,
) -> datetime:
    """Age is measured from recruiting start, or from creation before that."""
    if status == RequisitionStatus.ACTIVE and recruitment_started_at is not None:
        return recruitment_started_at
    return created_at


def is_unfilled(
    status: RequisitionStatus,
    approval_status: ApprovalStatus,
    created_at: datetime,
    recruitment_started_at: datetime | None,
    now: datetime,
    threshold_days: int,
) -> bool:
    """True once an open or still-pending requisition outlives the threshold.

    Open means ``active``; pending means ``draft`` with approval still
    ``pending``.  Terminal or approved-but-not-started requisitions never
    alert.
    """
    open_or_pending = status == RequisitionStatus.ACTIVE or (
        status == RequisitionStatus.DRAFT
        and approval_status == ApprovalStatus.PENDING
    )
    if not open_or_pending:
        return False
    since = alert_reference_time(status, created_at, recruitment_started_at)
    return now - since > timedelta(days=threshold_days)
