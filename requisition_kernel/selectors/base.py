"""
Module: requisition_kernel.selectors.base
Responsibility: Base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and domain/ DTO types.  Selectors NEVER add, flush, delete or commit.

Selectors return frozen domain DTOs, not ORM instances, so callers of the
poll interface cannot mutate requisitions behind the state machine's back.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from requisition_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Abstract base class for all selectors."""

    def __init__(self, session: Session):
        self.session = session
