"""
Module: org_kernel.models.change_request
Responsibility: ORM persistence for structure change requests.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - request_number is unique (uq_structure_change_request_number); the
      allocator in services/ is the primary guard, this constraint the backstop.
    - status and request_type are limited to their enum values by check
      constraints.
    - Content is frozen once the request leaves DRAFT and terminal statuses
      never change (db/immutability.py).
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from org_kernel.db.base import TrackedBase, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from org_kernel.domain.change_request import ChangeRequestInfo


class StructureChangeRequest(TrackedBase):
    """A proposal to alter the hierarchy, moved through the request workflow."""

    __tablename__ = "structure_change_requests"

    __table_args__ = (
        UniqueConstraint("request_number", name="uq_structure_change_request_number"),
        CheckConstraint(
            "status IN ('DRAFT', 'SUBMITTED', 'APPROVED', 'REJECTED', 'CANCELED')",
            name="ck_structure_change_request_status",
        ),
        CheckConstraint(
            "request_type IN ('NEW_DEPARTMENT', 'UPDATE_DEPARTMENT', 'CLOSE_DEPARTMENT', "
            "'NEW_POSITION', 'UPDATE_POSITION', 'CLOSE_POSITION', 'REASSIGN_HEAD', "
            "'CHANGE_REPORTING_LINE')",
            name="ck_structure_change_request_type",
        ),
        Index("idx_structure_change_request_status", "status", "request_type"),
        Index("idx_structure_change_request_requester", "requested_by_id"),
    )

    request_number: Mapped[str] = mapped_column(String(32), nullable=False)
    request_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="DRAFT", active_history=True
    )

    requested_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    target_department_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    target_position_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")

    submitted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    implemented_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    implemented_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<StructureChangeRequest {self.request_number} {self.request_type} status={self.status}>"

    def to_dto(self) -> ChangeRequestInfo:
        from org_kernel.domain.change_request import (
            ChangeRequestInfo,
            StructureRequestStatus,
            StructureRequestType,
        )

        return ChangeRequestInfo(
            id=self.id,
            request_number=self.request_number,
            request_type=StructureRequestType(self.request_type),
            status=StructureRequestStatus(self.status),
            requested_by_id=self.requested_by_id,
            target_department_id=self.target_department_id,
            target_position_id=self.target_position_id,
            details=dict(self.details or {}),
            reason=self.reason,
            submitted_by_id=self.submitted_by_id,
            submitted_at=self.submitted_at,
            resolved_at=self.resolved_at,
            implemented_by_id=self.implemented_by_id,
            implemented_at=self.implemented_at,
        )
