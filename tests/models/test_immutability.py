"""
Tests for the ORM immutability listeners and the UTC datetime column type.

Covers:
- StructureApproval / StructureChangeLog: no UPDATE, no DELETE
- StructureChangeRequest: content frozen after DRAFT, terminal status frozen,
  never deleted
- Department / Position: soft delete only
- UTCDateTime: naive binds rejected, values read back are UTC-aware
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from org_kernel.exceptions import ImmutabilityError, ImmutabilityViolationError
from org_kernel.models.approval import StructureApproval
from org_kernel.models.change_log import StructureChangeLog
from org_kernel.models.change_request import StructureChangeRequest
from org_kernel.models.department import Department
from org_kernel.models.position import Position


@pytest.fixture
def submitted_request(workflow, standard_org, requester_id):
    request = workflow.create_change_request(
        requester_id,
        "CLOSE_POSITION",
        target_position_id=standard_org.engineer.id,
        reason="Role no longer needed",
    )
    return workflow.submit_change_request_for_review(request.id, requester_id)


class TestApprovalImmutability:

    def test_approval_cannot_be_updated(self, session, workflow, submitted_request, approver_id):
        workflow.approve_change_request(submitted_request.id, approver_id, "ok")
        row = session.execute(select(StructureApproval)).scalar_one()
        row.comments = "rewritten"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "StructureApproval"
        assert isinstance(exc_info.value, ImmutabilityError)

    def test_approval_cannot_be_deleted(self, session, workflow, submitted_request, approver_id):
        workflow.reject_change_request(submitted_request.id, approver_id, "not now")
        row = session.execute(select(StructureApproval)).scalar_one()
        session.delete(row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestChangeLogImmutability:

    def test_change_log_entry_cannot_be_updated(self, session, standard_org):
        entry = session.execute(select(StructureChangeLog).limit(1)).scalar_one()
        entry.summary = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_change_log_entry_cannot_be_deleted(self, session, standard_org):
        entry = session.execute(select(StructureChangeLog).limit(1)).scalar_one()
        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestChangeRequestImmutability:

    def test_draft_content_can_change(self, session, workflow, standard_org, requester_id):
        request = workflow.create_change_request(
            requester_id, "CLOSE_POSITION", target_position_id=standard_org.engineer.id
        )
        row = session.get(StructureChangeRequest, request.id)
        row.reason = "edited while DRAFT"
        session.flush()
        assert row.reason == "edited while DRAFT"

    def test_content_frozen_after_submission(self, session, submitted_request):
        row = session.get(StructureChangeRequest, submitted_request.id)
        row.reason = "sneaky edit"
        with pytest.raises(ImmutabilityViolationError, match="frozen"):
            session.flush()

    def test_terminal_status_cannot_change(self, session, workflow, submitted_request, approver_id):
        workflow.reject_change_request(submitted_request.id, approver_id, "no")
        row = session.get(StructureChangeRequest, submitted_request.id)
        row.status = "SUBMITTED"
        with pytest.raises(ImmutabilityViolationError, match="terminal"):
            session.flush()

    def test_request_cannot_be_deleted(self, session, submitted_request):
        row = session.get(StructureChangeRequest, submitted_request.id)
        session.delete(row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestHierarchySoftDeleteOnly:

    def test_department_cannot_be_deleted(self, session, standard_org):
        session.delete(session.get(Department, standard_org.ops.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_position_cannot_be_deleted(self, session, standard_org):
        session.delete(session.get(Position, standard_org.engineer.id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestUTCDateTime:

    def test_naive_datetime_rejected(self, session, standard_org):
        department = session.get(Department, standard_org.ops.id)
        department.deactivated_at = datetime(2026, 3, 2, 9, 0)
        with pytest.raises(Exception, match="Naive datetime"):
            session.flush()

    def test_values_read_back_as_utc(self, session, standard_org, deterministic_clock):
        department = session.get(Department, standard_org.eng.id)
        session.expire(department)
        assert department.activated_at == deterministic_clock.now()
        assert department.activated_at.tzinfo is not None
        assert department.activated_at.utcoffset() == timezone.utc.utcoffset(None)
