"""
Tests for ChangeRequestExecutor -- applying approved requests to the hierarchy.

Each request type is driven through create -> submit -> approve -> apply and
the resulting hierarchy and change log are checked.  Applying must leave the
request APPROVED with implemented_at / implemented_by_id stamped, and every
change log entry it writes must point back at the request.
"""

from uuid import uuid4

import pytest

from org_kernel.domain.change_log import ChangeLogAction
from org_kernel.domain.change_request import StructureRequestStatus
from org_kernel.exceptions import (
    ChangeRequestAlreadyImplementedError,
    ChangeRequestNotFoundError,
    DepartmentHasActivePositionsError,
    InvalidRequestTransitionError,
    ReportingCycleError,
)


@pytest.fixture
def approve(workflow, requester_id, approver_id):
    """Create, submit and approve a request; returns its info."""

    def _approve(request_type, **kwargs):
        request = workflow.create_change_request(requester_id, request_type, **kwargs)
        workflow.submit_change_request_for_review(request.id, requester_id)
        return workflow.approve_change_request(request.id, approver_id)

    return _approve


def _entries_for(change_log_selector, request_id):
    return change_log_selector.list_change_logs(change_request_id=request_id).items


class TestApplyDepartmentRequests:

    def test_new_department(
        self, approve, executor, hierarchy_store, change_log_selector, actor_id, deterministic_clock
    ):
        request = approve("NEW_DEPARTMENT", details={"code": "hr", "name": "People"})
        deterministic_clock.advance(60)

        applied = executor.apply(request.id, actor_id)

        department = hierarchy_store.find_department_by_code("HR")
        assert department is not None
        assert department.name == "People"
        assert applied.status is StructureRequestStatus.APPROVED
        assert applied.implemented_at == deterministic_clock.now()
        assert applied.implemented_by_id == actor_id
        assert applied.is_implemented

        (entry,) = _entries_for(change_log_selector, request.id)
        assert entry.action is ChangeLogAction.CREATED
        assert entry.entity_id == department.id
        assert entry.performed_by_id == actor_id

    def test_update_department(self, approve, executor, hierarchy_store, standard_org, actor_id):
        request = approve(
            "UPDATE_DEPARTMENT",
            target_department_id=standard_org.eng.id,
            details={"name": "Product Engineering"},
        )
        executor.apply(request.id, actor_id)
        assert hierarchy_store.get_department(standard_org.eng.id).name == "Product Engineering"

    def test_close_empty_department(
        self, approve, executor, hierarchy_store, change_log_selector, actor_id
    ):
        empty = hierarchy_store.create_department("LAB", "Innovation Lab", actor_id)
        request = approve("CLOSE_DEPARTMENT", target_department_id=empty.id)

        executor.apply(request.id, actor_id)

        assert hierarchy_store.get_department(empty.id).is_active is False
        (entry,) = _entries_for(change_log_selector, request.id)
        assert entry.action is ChangeLogAction.DEACTIVATED

    def test_close_department_with_positions_is_guarded(
        self, approve, executor, workflow, hierarchy_store, standard_org, actor_id
    ):
        request = approve("CLOSE_DEPARTMENT", target_department_id=standard_org.ops.id)

        with pytest.raises(DepartmentHasActivePositionsError):
            executor.apply(request.id, actor_id)

        assert hierarchy_store.get_department(standard_org.ops.id).is_active is True
        assert workflow.get_change_request(request.id).implemented_at is None

    def test_reassign_head(self, approve, executor, hierarchy_store, standard_org, actor_id):
        request = approve(
            "REASSIGN_HEAD",
            target_department_id=standard_org.eng.id,
            details={"head_position_id": str(standard_org.cto.id)},
        )
        executor.apply(request.id, actor_id)
        assert hierarchy_store.get_department(standard_org.eng.id).head_position_id == standard_org.cto.id


class TestApplyPositionRequests:

    def test_new_position(self, approve, executor, hierarchy_store, standard_org, actor_id):
        request = approve(
            "NEW_POSITION",
            target_department_id=standard_org.eng.id,
            details={
                "code": "qa",
                "title": "QA Engineer",
                "reports_to_position_id": str(standard_org.eng_manager.id),
            },
        )
        executor.apply(request.id, actor_id)

        position = hierarchy_store.find_position_by_code("QA")
        assert position.title == "QA Engineer"
        assert position.department_id == standard_org.eng.id
        assert position.reports_to_position_id == standard_org.eng_manager.id

    def test_update_position_moves_department(
        self, approve, executor, hierarchy_store, standard_org, actor_id
    ):
        request = approve(
            "UPDATE_POSITION",
            target_position_id=standard_org.architect.id,
            details={"title": "Principal Architect", "department_id": str(standard_org.ops.id)},
        )
        executor.apply(request.id, actor_id)

        position = hierarchy_store.get_position(standard_org.architect.id)
        assert position.title == "Principal Architect"
        assert position.department_id == standard_org.ops.id

    def test_close_position(self, approve, executor, hierarchy_store, standard_org, actor_id):
        request = approve("CLOSE_POSITION", target_position_id=standard_org.engineer.id)
        executor.apply(request.id, actor_id)
        assert hierarchy_store.get_position(standard_org.engineer.id).is_active is False

    def test_change_reporting_line(
        self, approve, executor, hierarchy_store, change_log_selector, standard_org, actor_id
    ):
        request = approve(
            "CHANGE_REPORTING_LINE",
            target_position_id=standard_org.engineer.id,
            details={"reports_to_position_id": str(standard_org.vpe.id)},
        )
        executor.apply(request.id, actor_id)

        assert hierarchy_store.get_position(standard_org.engineer.id).reports_to_position_id == standard_org.vpe.id
        (entry,) = _entries_for(change_log_selector, request.id)
        assert entry.action is ChangeLogAction.REASSIGNED
        assert entry.change_request_id == request.id

    def test_cycle_is_rejected_at_apply_time(
        self, approve, executor, workflow, hierarchy_store, standard_org, actor_id
    ):
        request = approve(
            "CHANGE_REPORTING_LINE",
            target_position_id=standard_org.cto.id,
            details={"reports_to_position_id": str(standard_org.engineer.id)},
        )
        with pytest.raises(ReportingCycleError):
            executor.apply(request.id, actor_id)

        assert hierarchy_store.get_position(standard_org.cto.id).reports_to_position_id is None
        assert workflow.get_change_request(request.id).is_implemented is False


class TestApplyGuards:

    def test_draft_cannot_be_applied(self, workflow, executor, standard_org, requester_id, actor_id):
        draft = workflow.create_change_request(
            requester_id, "CLOSE_POSITION", target_position_id=standard_org.engineer.id
        )
        with pytest.raises(InvalidRequestTransitionError) as exc_info:
            executor.apply(draft.id, actor_id)
        assert exc_info.value.action == "apply"
        assert exc_info.value.current_status == "DRAFT"

    def test_rejected_cannot_be_applied(
        self, workflow, executor, standard_org, requester_id, approver_id, actor_id
    ):
        request = workflow.create_change_request(
            requester_id, "CLOSE_POSITION", target_position_id=standard_org.engineer.id
        )
        workflow.submit_change_request_for_review(request.id, requester_id)
        workflow.reject_change_request(request.id, approver_id, "Keep the role")
        with pytest.raises(InvalidRequestTransitionError):
            executor.apply(request.id, actor_id)

    def test_second_apply_fails(self, approve, executor, hierarchy_store, standard_org, actor_id):
        request = approve("CLOSE_POSITION", target_position_id=standard_org.engineer.id)
        executor.apply(request.id, actor_id)

        with pytest.raises(ChangeRequestAlreadyImplementedError):
            executor.apply(request.id, actor_id)

    def test_unknown_request(self, executor, actor_id):
        with pytest.raises(ChangeRequestNotFoundError):
            executor.apply(uuid4(), actor_id)

    def test_apply_logged_with_request_context(
        self, approve, executor, standard_org, actor_id, captured_logs
    ):
        request = approve("CLOSE_POSITION", target_position_id=standard_org.engineer.id)
        executor.apply(request.id, actor_id)

        records = captured_logs()
        started = next(r for r in records if r["message"] == "change_request_apply_started")
        assert started["request_type"] == "CLOSE_POSITION"
        assert started["change_request_id"] == str(request.id)
        deactivated = next(r for r in records if r["message"] == "position_deactivated")
        assert deactivated["change_request_id"] == str(request.id)
        assert any(r["message"] == "change_request_implemented" for r in records)
