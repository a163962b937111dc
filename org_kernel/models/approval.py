"""
Module: org_kernel.models.approval
Responsibility: ORM persistence for review decisions on structure change requests.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: UPDATE and DELETE raise ImmutabilityViolationError
      (listeners in db/immutability.py).
    - decision is APPROVED or REJECTED (check constraint).
    - seq is unique and increases with every recorded decision; it breaks
      ties between decisions sharing a decided_at.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from org_kernel.db.base import Base, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from org_kernel.domain.change_request import ApprovalRecordInfo


class StructureApproval(Base):
    """One immutable decision recorded against a change request."""

    __tablename__ = "structure_approvals"

    __table_args__ = (
        CheckConstraint(
            "decision IN ('APPROVED', 'REJECTED')",
            name="ck_structure_approval_decision",
        ),
        UniqueConstraint("seq", name="uq_structure_approval_seq"),
        Index("idx_structure_approval_request", "change_request_id", "decided_at"),
    )

    change_request_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    approver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    decision: Mapped[str] = mapped_column(String(20), nullable=False)
    decided_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    def __repr__(self) -> str:
        return f"<StructureApproval {self.change_request_id} {self.decision} seq={self.seq}>"

    def to_dto(self) -> ApprovalRecordInfo:
        from org_kernel.domain.change_request import ApprovalDecision, ApprovalRecordInfo

        return ApprovalRecordInfo(
            id=self.id,
            change_request_id=self.change_request_id,
            approver_id=self.approver_id,
            decision=ApprovalDecision(self.decision),
            decided_at=self.decided_at,
            comments=self.comments,
            seq=self.seq,
        )
