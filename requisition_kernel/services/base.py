"""
BaseService -- abstract base for kernel write services.

Responsibility:
    Common constructor and session contract.  Services persist with
    ``session.flush()`` inside the caller's transaction and never commit
    or roll back themselves; the API handler, the bulk coordinator's
    SAVEPOINT, or the test harness owns the boundary.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from requisition_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Read-only queries belong in ``requisition_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
