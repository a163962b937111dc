"""
Tests for ChangeRequestWorkflow -- the structure change request state machine.

Covers:
- create_change_request(): DRAFT status, request numbers per year, target and
  details validation
- update_change_request(): DRAFT only, patch validation
- submit_change_request_for_review(): stamps submitter, requires complete details
- approve / reject / review: one approval record per decision
- cancel_change_request(): DRAFT and SUBMITTED only, no approval record
- lookups by id and request number
"""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest

from org_kernel.domain.change_request import (
    ApprovalDecision,
    StructureRequestStatus,
    StructureRequestType,
)
from org_kernel.domain.policy import StructurePolicy
from org_kernel.exceptions import (
    BadRequestError,
    ChangeRequestNotEditableError,
    ChangeRequestNotFoundError,
    InvalidFieldError,
    InvalidIdentifierError,
    InvalidReferenceError,
    InvalidRequestTransitionError,
)
from org_kernel.services.change_request_workflow import ChangeRequestWorkflow


@pytest.fixture
def close_engineer(workflow, standard_org, requester_id):
    """A DRAFT request to close the engineer position."""
    return workflow.create_change_request(
        requester_id,
        StructureRequestType.CLOSE_POSITION,
        target_position_id=standard_org.engineer.id,
        reason="Headcount plan",
    )


@pytest.fixture
def submitted(workflow, close_engineer, requester_id):
    return workflow.submit_change_request_for_review(close_engineer.id, requester_id)


class TestCreateChangeRequest:

    def test_fresh_request_is_draft(self, close_engineer, requester_id, standard_org):
        assert close_engineer.status is StructureRequestStatus.DRAFT
        assert close_engineer.request_type is StructureRequestType.CLOSE_POSITION
        assert close_engineer.requested_by_id == requester_id
        assert close_engineer.target_position_id == standard_org.engineer.id
        assert close_engineer.reason == "Headcount plan"
        assert close_engineer.submitted_at is None

    def test_request_numbers_are_sequential_per_year(self, workflow, standard_org, requester_id):
        numbers = [
            workflow.create_change_request(
                requester_id, "CLOSE_POSITION", target_position_id=standard_org.engineer.id
            ).request_number
            for _ in range(3)
        ]
        assert numbers == ["ORG-2026-0001", "ORG-2026-0002", "ORG-2026-0003"]

    def test_new_year_restarts_sequence(self, workflow, deterministic_clock, requester_id):
        first = workflow.create_change_request(
            requester_id, "NEW_DEPARTMENT", details={"code": "HR", "name": "People"}
        )
        deterministic_clock.set_time(datetime(2027, 1, 2, tzinfo=timezone.utc))
        second = workflow.create_change_request(
            requester_id, "NEW_DEPARTMENT", details={"code": "LEGAL", "name": "Legal"}
        )
        assert first.request_number == "ORG-2026-0001"
        assert second.request_number == "ORG-2027-0001"

    def test_custom_prefix(self, session, deterministic_clock, requester_id):
        workflow = ChangeRequestWorkflow(
            session, deterministic_clock, StructurePolicy(request_number_prefix="HR", request_number_width=3)
        )
        request = workflow.create_change_request(
            requester_id, "NEW_DEPARTMENT", details={"code": "HR", "name": "People"}
        )
        assert request.request_number == "HR-2026-001"

    def test_new_department_needs_no_target(self, workflow, requester_id):
        request = workflow.create_change_request(
            requester_id, "NEW_DEPARTMENT", details={"code": "hr", "name": "People"}
        )
        assert request.target_department_id is None
        assert request.target_position_id is None

    def test_required_target_missing(self, workflow, requester_id):
        with pytest.raises(InvalidFieldError) as exc_info:
            workflow.create_change_request(requester_id, "CLOSE_POSITION")
        assert exc_info.value.field == "target_position_id"

    def test_inactive_target_rejected(self, workflow, hierarchy_store, standard_org, requester_id, actor_id):
        hierarchy_store.remove_position(standard_org.engineer.id, actor_id)
        with pytest.raises(InvalidReferenceError):
            workflow.create_change_request(
                requester_id, "CLOSE_POSITION", target_position_id=standard_org.engineer.id
            )

    def test_missing_target_rejected(self, workflow, requester_id):
        with pytest.raises(InvalidReferenceError) as exc_info:
            workflow.create_change_request(
                requester_id, "CLOSE_DEPARTMENT", target_department_id=uuid4()
            )
        assert exc_info.value.reason == "missing"

    def test_unknown_type_rejected(self, workflow, requester_id):
        with pytest.raises(InvalidFieldError):
            workflow.create_change_request(requester_id, "SPLIT_DEPARTMENT")

    def test_unknown_detail_key_rejected(self, workflow, standard_org, requester_id):
        with pytest.raises(InvalidFieldError):
            workflow.create_change_request(
                requester_id,
                "CHANGE_REPORTING_LINE",
                target_position_id=standard_org.engineer.id,
                details={"reports_to_position_id": str(standard_org.cto.id), "salary": 1},
            )

    @pytest.mark.parametrize(
        "details, field",
        [
            ({"code": 123, "name": "People"}, "details.code"),
            ({"code": "HR", "name": ["x"]}, "details.name"),
            ({"code": "  ", "name": "People"}, "details.code"),
            ({"code": "HR", "name": "People", "description": date(2026, 1, 1)}, "details.description"),
            ({"code": "HR", "name": "People", "head_position_id": 42}, "details.head_position_id"),
        ],
    )
    def test_detail_values_are_type_checked(self, workflow, requester_id, details, field):
        with pytest.raises(InvalidFieldError) as exc_info:
            workflow.create_change_request(requester_id, "NEW_DEPARTMENT", details=details)
        assert exc_info.value.field == field

    def test_null_description_accepted(self, workflow, requester_id):
        request = workflow.create_change_request(
            requester_id,
            "NEW_DEPARTMENT",
            details={"code": "HR", "name": "People", "description": None},
        )
        assert request.details["description"] is None

    def test_non_string_detail_keys_rejected(self, workflow, requester_id):
        with pytest.raises(InvalidFieldError, match="keys must be strings"):
            workflow.create_change_request(
                requester_id, "NEW_DEPARTMENT", details={1: "a", "bogus": "b"}
            )

    def test_malformed_id_in_details_rejected(self, workflow, standard_org, requester_id):
        with pytest.raises(InvalidIdentifierError):
            workflow.create_change_request(
                requester_id,
                "CHANGE_REPORTING_LINE",
                target_position_id=standard_org.engineer.id,
                details={"reports_to_position_id": "cto"},
            )

    def test_id_details_stored_as_strings(self, workflow, standard_org, requester_id):
        request = workflow.create_change_request(
            requester_id,
            "REASSIGN_HEAD",
            target_department_id=standard_org.eng.id,
            details={"head_position_id": standard_org.cto.id},
        )
        assert request.details == {"head_position_id": str(standard_org.cto.id)}

    def test_malformed_requester(self, workflow):
        with pytest.raises(InvalidIdentifierError):
            workflow.create_change_request("someone", "NEW_DEPARTMENT")

    def test_creation_logged(self, workflow, requester_id, captured_logs):
        request = workflow.create_change_request(requester_id, "NEW_DEPARTMENT")
        record = next(r for r in captured_logs() if r["message"] == "change_request_created")
        assert record["request_number"] == request.request_number
        assert record["change_request_id"] == str(request.id)
        assert record["actor_id"] == str(requester_id)


class TestUpdateChangeRequest:

    def test_draft_can_be_edited(self, workflow, close_engineer, standard_org, requester_id):
        updated = workflow.update_change_request(
            close_engineer.id,
            requester_id,
            {"target_position_id": standard_org.architect.id, "reason": "Reorg"},
        )
        assert updated.target_position_id == standard_org.architect.id
        assert updated.reason == "Reorg"
        assert updated.request_number == close_engineer.request_number

    def test_changing_type_revalidates_targets(self, workflow, close_engineer, requester_id):
        with pytest.raises(InvalidFieldError) as exc_info:
            workflow.update_change_request(
                close_engineer.id, requester_id, {"request_type": "CLOSE_DEPARTMENT"}
            )
        assert exc_info.value.field == "target_department_id"

    def test_unknown_patch_key(self, workflow, close_engineer, requester_id):
        with pytest.raises(InvalidFieldError):
            workflow.update_change_request(close_engineer.id, requester_id, {"status": "APPROVED"})

    def test_non_string_patch_keys_rejected(self, workflow, close_engineer, requester_id):
        with pytest.raises(InvalidFieldError, match="keys must be strings"):
            workflow.update_change_request(
                close_engineer.id, requester_id, {1: "a", "reason": "b"}
            )

    def test_detail_values_checked_on_update(self, workflow, standard_org, requester_id):
        request = workflow.create_change_request(
            requester_id, "NEW_POSITION",
            target_department_id=standard_org.eng.id,
            details={"code": "QA"},
        )
        with pytest.raises(InvalidFieldError) as exc_info:
            workflow.update_change_request(
                request.id, requester_id, {"details": {"code": "QA", "title": 7}}
            )
        assert exc_info.value.field == "details.title"
        assert workflow.get_change_request(request.id).details == {"code": "QA"}

    def test_update_after_submission_fails(self, workflow, submitted, requester_id):
        with pytest.raises(ChangeRequestNotEditableError) as exc_info:
            workflow.update_change_request(submitted.id, requester_id, {"reason": "late edit"})
        assert isinstance(exc_info.value, BadRequestError)
        assert workflow.get_change_request(submitted.id).reason == "Headcount plan"


class TestSubmit:

    def test_submit_stamps_submitter(self, submitted, requester_id, deterministic_clock):
        assert submitted.status is StructureRequestStatus.SUBMITTED
        assert not submitted.is_terminal
        assert submitted.submitted_by_id == requester_id
        assert submitted.submitted_at == deterministic_clock.now()

    def test_submit_twice_fails(self, workflow, submitted, requester_id):
        with pytest.raises(InvalidRequestTransitionError):
            workflow.submit_change_request_for_review(submitted.id, requester_id)

    def test_incomplete_details_block_submission(self, workflow, standard_org, requester_id):
        request = workflow.create_change_request(
            requester_id, "NEW_POSITION",
            target_department_id=standard_org.eng.id,
            details={"code": "QA"},
        )
        with pytest.raises(InvalidFieldError, match="title"):
            workflow.submit_change_request_for_review(request.id, requester_id)
        assert workflow.get_change_request(request.id).status is StructureRequestStatus.DRAFT

    def test_target_deactivated_before_submission(
        self, workflow, hierarchy_store, close_engineer, requester_id, actor_id
    ):
        hierarchy_store.remove_position(close_engineer.target_position_id, actor_id)
        with pytest.raises(InvalidReferenceError):
            workflow.submit_change_request_for_review(close_engineer.id, requester_id)


class TestReview:

    def test_approve_records_one_decision(self, workflow, submitted, approver_id, deterministic_clock):
        deterministic_clock.advance(30)
        approved = workflow.approve_change_request(submitted.id, approver_id, "Looks good")
        assert approved.status is StructureRequestStatus.APPROVED
        assert approved.resolved_at == deterministic_clock.now()
        (record,) = workflow.list_approvals(submitted.id)
        assert record.decision is ApprovalDecision.APPROVED
        assert record.approver_id == approver_id
        assert record.comments == "Looks good"
        assert record.decided_at == deterministic_clock.now()

    def test_approve_twice_fails(self, workflow, submitted, approver_id):
        workflow.approve_change_request(submitted.id, approver_id)
        with pytest.raises(InvalidRequestTransitionError):
            workflow.approve_change_request(submitted.id, approver_id)
        assert len(workflow.list_approvals(submitted.id)) == 1

    def test_reject_requires_reason(self, workflow, submitted, approver_id):
        with pytest.raises(InvalidFieldError):
            workflow.reject_change_request(submitted.id, approver_id, "  ")
        assert workflow.get_change_request(submitted.id).status is StructureRequestStatus.SUBMITTED

    def test_reject_records_reason(self, workflow, submitted, approver_id):
        rejected = workflow.reject_change_request(submitted.id, approver_id, "Budget freeze")
        assert rejected.status is StructureRequestStatus.REJECTED
        (record,) = workflow.list_approvals(submitted.id)
        assert record.decision is ApprovalDecision.REJECTED
        assert record.comments == "Budget freeze"

    @pytest.mark.parametrize(
        "approved, expected",
        [(True, StructureRequestStatus.APPROVED), (False, StructureRequestStatus.REJECTED)],
    )
    def test_review_dispatches_on_flag(self, workflow, submitted, approver_id, approved, expected):
        result = workflow.review_change_request(submitted.id, approver_id, approved, "noted")
        assert result.status is expected

    def test_cannot_review_a_draft(self, workflow, close_engineer, approver_id):
        with pytest.raises(InvalidRequestTransitionError) as exc_info:
            workflow.approve_change_request(close_engineer.id, approver_id)
        assert exc_info.value.current_status == "DRAFT"
        assert workflow.list_approvals(close_engineer.id) == []

    def test_transition_logged_with_context(self, workflow, submitted, approver_id, captured_logs):
        workflow.approve_change_request(submitted.id, approver_id)
        record = next(r for r in captured_logs() if r["message"] == "change_request_approved")
        assert record["from_status"] == "SUBMITTED"
        assert record["to_status"] == "APPROVED"
        assert record["change_request_id"] == str(submitted.id)


class TestCancel:

    def test_cancel_from_draft(self, workflow, close_engineer, requester_id):
        canceled = workflow.cancel_change_request(close_engineer.id, requester_id)
        assert canceled.status is StructureRequestStatus.CANCELED
        assert canceled.is_terminal
        assert workflow.list_approvals(close_engineer.id) == []

    def test_cancel_from_submitted(self, workflow, submitted, requester_id):
        canceled = workflow.cancel_change_request(submitted.id, requester_id)
        assert canceled.status is StructureRequestStatus.CANCELED
        assert workflow.list_approvals(submitted.id) == []

    @pytest.mark.parametrize("finish", ["approve", "reject", "cancel"])
    def test_cancel_after_terminal_fails(self, workflow, submitted, approver_id, requester_id, finish):
        if finish == "approve":
            workflow.approve_change_request(submitted.id, approver_id)
        elif finish == "reject":
            workflow.reject_change_request(submitted.id, approver_id, "no")
        else:
            workflow.cancel_change_request(submitted.id, requester_id)
        with pytest.raises(InvalidRequestTransitionError):
            workflow.cancel_change_request(submitted.id, requester_id)


class TestLookups:

    def test_get_by_request_number_is_case_insensitive(self, workflow, close_engineer):
        found = workflow.get_by_request_number(close_engineer.request_number.lower())
        assert found.id == close_engineer.id

    def test_unknown_request_number(self, workflow):
        with pytest.raises(ChangeRequestNotFoundError):
            workflow.get_by_request_number("ORG-2026-9999")

    def test_unknown_id(self, workflow):
        with pytest.raises(ChangeRequestNotFoundError):
            workflow.get_change_request(uuid4())

    def test_malformed_id(self, workflow):
        with pytest.raises(InvalidIdentifierError):
            workflow.get_change_request("ORG-2026-0001")
