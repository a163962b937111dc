"""
Module: org_kernel.selectors.change_request_selector
Responsibility: Read access to structure change requests and their approval
    trails.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Listings are newest first (created_at, then request_number, descending).
    - Approval trails are oldest first (decided_at, then seq).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select

from org_kernel.domain.change_request import (
    ApprovalRecordInfo,
    ChangeRequestInfo,
    StructureRequestStatus,
    parse_request_type,
)
from org_kernel.domain.hierarchy import Page
from org_kernel.domain.identifiers import parse_identifier, parse_optional_identifier
from org_kernel.exceptions import ChangeRequestNotFoundError, InvalidFieldError
from org_kernel.models.approval import StructureApproval
from org_kernel.models.change_request import StructureChangeRequest
from org_kernel.selectors.base import BaseSelector


def _parse_status(value: Any) -> StructureRequestStatus | None:
    if value is None:
        return None
    try:
        return StructureRequestStatus(value.upper() if isinstance(value, str) else value)
    except ValueError:
        raise InvalidFieldError(
            "status", f"must be one of {[s.value for s in StructureRequestStatus]}"
        ) from None


class ChangeRequestSelector(BaseSelector[StructureChangeRequest]):

    def get(self, request_id: Any) -> ChangeRequestInfo:
        request_uuid = parse_identifier(request_id, "change_request_id")
        request = self.session.get(StructureChangeRequest, request_uuid)
        if request is None:
            raise ChangeRequestNotFoundError(str(request_uuid))
        return request.to_dto()

    def list_change_requests(
        self,
        request_number: str | None = None,
        request_type: Any = None,
        status: Any = None,
        requested_by_id: Any = None,
        target_department_id: Any = None,
        target_position_id: Any = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page:
        """
        Filtered, paginated listing.  ``request_number`` is a case-insensitive
        substring match; every other filter is exact.
        """
        stmt = select(StructureChangeRequest)

        if request_number is not None:
            if not isinstance(request_number, str):
                raise InvalidFieldError("request_number", "must be a string")
            term = request_number.strip().upper()
            if term:
                stmt = stmt.where(
                    StructureChangeRequest.request_number.contains(term, autoescape=True)
                )
        if request_type is not None:
            stmt = stmt.where(
                StructureChangeRequest.request_type == parse_request_type(request_type).value
            )
        parsed_status = _parse_status(status)
        if parsed_status is not None:
            stmt = stmt.where(StructureChangeRequest.status == parsed_status.value)

        requester = parse_optional_identifier(requested_by_id, "requested_by_id")
        if requester is not None:
            stmt = stmt.where(StructureChangeRequest.requested_by_id == requester)
        department = parse_optional_identifier(target_department_id, "target_department_id")
        if department is not None:
            stmt = stmt.where(StructureChangeRequest.target_department_id == department)
        position = parse_optional_identifier(target_position_id, "target_position_id")
        if position is not None:
            stmt = stmt.where(StructureChangeRequest.target_position_id == position)

        stmt = stmt.order_by(
            StructureChangeRequest.created_at.desc(),
            StructureChangeRequest.request_number.desc(),
        )
        return self._paginate(stmt, lambda row: row.to_dto(), page, limit)

    def approval_trail(self, request_id: Any) -> list[ApprovalRecordInfo]:
        request = self.get(request_id)
        rows = self.session.execute(
            select(StructureApproval)
            .where(StructureApproval.change_request_id == request.id)
            .order_by(StructureApproval.decided_at, StructureApproval.seq)
        ).scalars()
        return [row.to_dto() for row in rows]
