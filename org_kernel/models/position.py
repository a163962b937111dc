"""
Module: org_kernel.models.position
Responsibility: ORM persistence for positions and their reporting lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is globally unique, including inactive rows (uq_org_position_code).
    - reports_to_position_id forms a forest over active positions; the
      service layer validates every new edge before it is flushed.
    - idx_org_position_supervisor_active backs the subordinate-count guard
      used by position removal.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from org_kernel.db.base import TrackedBase, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from org_kernel.domain.hierarchy import PositionInfo


class Position(TrackedBase):
    """A role slot inside a department, optionally reporting to another position."""

    __tablename__ = "org_positions"

    __table_args__ = (
        UniqueConstraint("code", name="uq_org_position_code"),
        Index("idx_org_position_supervisor_active", "reports_to_position_id", "is_active"),
        Index("idx_org_position_department_active", "department_id", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    department_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    reports_to_position_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    activated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    deactivated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<Position {self.code}: {self.title} active={self.is_active}>"

    def to_dto(self) -> PositionInfo:
        from org_kernel.domain.hierarchy import PositionInfo

        return PositionInfo(
            id=self.id,
            code=self.code,
            title=self.title,
            description=self.description,
            department_id=self.department_id,
            reports_to_position_id=self.reports_to_position_id,
            is_active=self.is_active,
            activated_at=self.activated_at,
            deactivated_at=self.deactivated_at,
        )
