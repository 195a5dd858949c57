"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Hands out strictly increasing numbers for audit events and for the
    per-brand requisition number ("RQ-BMB-00042").  A dedicated counter
    row per sequence name is locked with ``SELECT ... FOR UPDATE`` so two
    intakes for the same brand never draw the same number.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Called by
    AuditorService and RequisitionService.

Failure modes:
    - IntegrityError: concurrent first use of a sequence name.  Handled
      with a SAVEPOINT and a locked re-read.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Transactional sequence numbers.

    Guarantees:
        - Strictly monotonic per sequence name.  The aggregate
          max-plus-one pattern is never used.
        - An allocation is only consumed if the caller's transaction
          commits.

    Non-goals:
        - Does NOT call ``session.commit()``.
    """

    AUDIT_EVENT = "audit_event"
    RQ_NUMBER_PREFIX = "rq_number"

    def __init__(self, session: Session):
        self._session = session

    @classmethod
    def rq_number_sequence(cls, brand_code: str) -> str:
        return f"{cls.RQ_NUMBER_PREFIX}:{brand_code}"

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """Lock (or create) the named counter, increment it, return the value."""
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
