"""
Module: org_kernel.models.change_log
Responsibility: Append-only history of hierarchy mutations (who changed
    which department or position, when, and what it looked like before and
    after).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: UPDATE and DELETE raise ImmutabilityViolationError.
    - seq is unique and gives a total order for entries sharing recorded_at.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from org_kernel.db.base import Base, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from org_kernel.domain.change_log import ChangeLogEntryInfo


class StructureChangeLog(Base):
    __tablename__ = "structure_change_logs"

    __table_args__ = (
        UniqueConstraint("seq", name="uq_structure_change_log_seq"),
        Index("idx_structure_change_log_entity", "entity_type", "entity_id"),
        Index("idx_structure_change_log_actor", "performed_by_id", "recorded_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    performed_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    before_snapshot: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    after_snapshot: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    change_request_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<StructureChangeLog #{self.seq} {self.action} {self.entity_type} {self.entity_id}>"

    def to_dto(self) -> ChangeLogEntryInfo:
        from org_kernel.domain.change_log import (
            ChangeLogAction,
            ChangeLogEntryInfo,
            StructureEntityType,
            diff_fields,
        )

        return ChangeLogEntryInfo(
            id=self.id,
            seq=self.seq,
            action=ChangeLogAction(self.action),
            entity_type=StructureEntityType(self.entity_type),
            entity_id=self.entity_id,
            performed_by_id=self.performed_by_id,
            recorded_at=self.recorded_at,
            summary=self.summary,
            before=self.before_snapshot,
            after=self.after_snapshot,
            change_request_id=self.change_request_id,
            changed_fields=diff_fields(self.before_snapshot, self.after_snapshot),
        )
