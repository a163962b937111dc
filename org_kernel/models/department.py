"""
Module: org_kernel.models.department
Responsibility: ORM persistence for organizational departments.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is globally unique, including inactive rows (uq_org_department_code).
      Codes are stored normalized (trimmed, upper-case) by the service layer.
    - Rows are never deleted; removal sets is_active=False and stamps
      deactivated_at.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from org_kernel.db.base import TrackedBase, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from org_kernel.domain.hierarchy import DepartmentInfo


class Department(TrackedBase):
    """An organizational unit with an optional head position."""

    __tablename__ = "org_departments"

    __table_args__ = (
        UniqueConstraint("code", name="uq_org_department_code"),
        Index("idx_org_department_active_name", "is_active", "name"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    head_position_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True, index=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    activated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    deactivated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<Department {self.code}: {self.name} active={self.is_active}>"

    def to_dto(self) -> DepartmentInfo:
        from org_kernel.domain.hierarchy import DepartmentInfo

        return DepartmentInfo(
            id=self.id,
            code=self.code,
            name=self.name,
            description=self.description,
            head_position_id=self.head_position_id,
            is_active=self.is_active,
            activated_at=self.activated_at,
            deactivated_at=self.deactivated_at,
        )
