"""
Module: org_kernel.services.approval_recorder
Responsibility: Append-only ledger of review decisions on structure change
    requests.
Architecture position: Kernel > Services.  Called by ChangeRequestWorkflow
    once per approve/reject action; never by cancellation.

Invariants enforced:
    - ``record`` only inserts.  Existing rows are never updated or deleted
      (also enforced by ORM listeners); a correction is a new record.
    - ``list_for`` returns the full trail ordered by decided_at ascending,
      ties broken by the recording sequence.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from org_kernel.domain.change_request import ApprovalDecision, ApprovalRecordInfo
from org_kernel.domain.clock import Clock
from org_kernel.domain.identifiers import parse_identifier
from org_kernel.exceptions import InvalidFieldError
from org_kernel.logging_config import get_logger
from org_kernel.models.approval import StructureApproval
from org_kernel.services.base import BaseService
from org_kernel.services.sequence_service import SequenceService

logger = get_logger("services.approval_recorder")


class ApprovalRecorder(BaseService[StructureApproval]):
    """
    Thin append-only writer for StructureApproval rows.

    Non-goals:
        - Does not check the request's status; the workflow decides whether
          a decision is allowed before calling ``record``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._sequences = SequenceService(session)

    def record(
        self,
        change_request_id: Any,
        approver_id: Any,
        decision: ApprovalDecision | str,
        comments: str | None = None,
    ) -> ApprovalRecordInfo:
        request_uuid = parse_identifier(change_request_id, "change_request_id")
        approver_uuid = parse_identifier(approver_id, "approver_id")
        try:
            decision = ApprovalDecision(decision)
        except ValueError:
            raise InvalidFieldError(
                "decision", f"must be one of {[d.value for d in ApprovalDecision]}"
            ) from None
        if comments is not None and not isinstance(comments, str):
            raise InvalidFieldError("comments", "must be a string")

        approval = StructureApproval(
            change_request_id=request_uuid,
            approver_id=approver_uuid,
            decision=decision.value,
            decided_at=self.clock.now(),
            comments=comments.strip() if comments and comments.strip() else None,
            seq=self._sequences.next_value(SequenceService.STRUCTURE_APPROVAL),
        )
        self.session.add(approval)
        self.session.flush()

        logger.info(
            "approval_recorded",
            extra={
                "change_request_id": str(request_uuid),
                "approver_id": str(approver_uuid),
                "decision": decision.value,
                "seq": approval.seq,
            },
        )
        return approval.to_dto()

    def list_for(self, change_request_id: Any) -> list[ApprovalRecordInfo]:
        request_uuid = parse_identifier(change_request_id, "change_request_id")
        rows = self.session.execute(
            select(StructureApproval)
            .where(StructureApproval.change_request_id == request_uuid)
            .order_by(StructureApproval.decided_at, StructureApproval.seq)
        ).scalars()
        return [row.to_dto() for row in rows]

    def latest_for(self, change_request_id: Any) -> ApprovalRecordInfo | None:
        trail = self.list_for(change_request_id)
        return trail[-1] if trail else None
