"""
Module: requisition_kernel.models.approval_config
Responsibility: ORM persistence for role-based approval ladders.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Level numbers are unique within a config (unique constraint).
      Contiguity from 1 is validated by ApprovalConfigService on save.
    - At most one config per (tenant, brand) scope; ApprovalConfigService
      replaces levels in place rather than inserting a second row.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from requisition_kernel.db.base import Base, TrackedBase, UUIDString

if TYPE_CHECKING:
    from requisition_kernel.domain.approval_config import ApprovalConfig, ApprovalLevel


class ApprovalConfigModel(TrackedBase):
    """Approval ladder scoped to a tenant, optionally narrowed to a brand."""

    __tablename__ = "approval_configs"

    __table_args__ = (
        Index("ix_approval_configs_scope", "tenant_id", "brand_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    brand_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    levels: Mapped[list["ApprovalLevelModel"]] = relationship(
        "ApprovalLevelModel",
        back_populates="config",
        order_by="ApprovalLevelModel.level",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<ApprovalConfig {self.tenant_id}/{self.brand_id} levels={len(self.levels)}>"

    def to_dto(self) -> ApprovalConfig:
        from requisition_kernel.domain.approval_config import ApprovalConfig as ConfigDTO

        return ConfigDTO(
            id=self.id,
            tenant_id=self.tenant_id,
            brand_id=self.brand_id,
            levels=tuple(lvl.to_dto() for lvl in self.levels),
        )


class ApprovalLevelModel(Base):
    __tablename__ = "approval_levels"

    __table_args__ = (
        UniqueConstraint("config_id", "level", name="uq_approval_levels_config_level"),
    )

    config_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_configs.id", ondelete="CASCADE"),
        nullable=False,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    authorized_roles: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    is_multiple_choice: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    config: Mapped["ApprovalConfigModel"] = relationship(
        "ApprovalConfigModel",
        back_populates="levels",
    )

    def to_dto(self) -> ApprovalLevel:
        from requisition_kernel.domain.approval_config import ApprovalLevel as LevelDTO

        return LevelDTO(
            level=self.level,
            name=self.name,
            authorized_roles=frozenset(self.authorized_roles or ()),
            is_multiple_choice=self.is_multiple_choice,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalLevel) -> ApprovalLevelModel:
        return cls(
            level=dto.level,
            name=dto.name,
            authorized_roles=sorted(dto.authorized_roles),
            is_multiple_choice=dto.is_multiple_choice,
        )
