"""
Module: requisition_kernel.models.notification
Responsibility: Notification outbox rows written by the outbox dispatcher
    and read by whatever delivers email / in-app messages.

``requisition_id`` is deliberately not a foreign key: a "requisition
deleted" notice must survive the requisition it describes.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from requisition_kernel.db.base import Base, UUIDString


class NotificationModel(Base):
    __tablename__ = "notifications"

    __table_args__ = (
        Index("ix_notifications_recipient_read", "recipient", "is_read"),
        Index("ix_notifications_requisition", "requisition_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    requisition_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    recipient: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Notification {self.kind} -> {self.recipient} read={self.is_read}>"
