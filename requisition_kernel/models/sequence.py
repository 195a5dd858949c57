"""
Module: requisition_kernel.models.sequence
Responsibility: Named counter rows backing SequenceService (audit event
    sequence numbers and per-brand RQ numbers).
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from requisition_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence with its current value.  Row-level
    locking keeps allocation monotonic under concurrency.
    """

    __tablename__ = "sequence_counters"

    # e.g. "audit_event", "rq_number:BMB"
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
