"""
Module: org_kernel.services.change_request_workflow
Responsibility: Lifecycle of StructureChangeRequest records: creation with
    request-number allocation, DRAFT edits, submission, review decisions,
    cancellation and the implemented stamp set by the executor.
Architecture position: Kernel > Services.  Reads hierarchy data through
    ReportingGraphValidator to validate targets; never writes departments or
    positions.  Decisions go through ApprovalRecorder.

Invariants enforced:
    - Every status change is resolved through STRUCTURE_CHANGE_WORKFLOW;
      there are no inline status comparisons for transitions.
    - Content is editable only in DRAFT.
    - Approve/reject append exactly one approval record, then set status.
      Cancel records nothing.
    - Request numbers are ``<PREFIX>-<year>-<seq>`` from a per-year locked
      counter; the unique index is the backstop and surfaces as
      DuplicateRequestNumberError.

Failure modes:
    - ChangeRequestNotFoundError for unknown ids / numbers.
    - InvalidRequestTransitionError, ChangeRequestNotEditableError,
      InvalidFieldError, InvalidReferenceError (BadRequest kind).
    - DuplicateRequestNumberError (Conflict kind).
"""

from __future__ import annotations

from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from org_kernel.domain.change_request import (
    DECISION_FOR_ACTION,
    EDITABLE_STATUSES,
    REQUEST_TYPE_RULES,
    STRUCTURE_CHANGE_WORKFLOW,
    ApprovalRecordInfo,
    ChangeRequestInfo,
    RequestAction,
    StructureRequestStatus,
    StructureRequestType,
    TargetKind,
    check_details_shape,
    missing_details,
    parse_request_type,
)
from org_kernel.domain.clock import Clock
from org_kernel.domain.identifiers import parse_identifier, parse_optional_identifier
from org_kernel.domain.policy import DEFAULT_POLICY, StructurePolicy
from org_kernel.domain.workflow import Transition
from org_kernel.exceptions import (
    ChangeRequestAlreadyImplementedError,
    ChangeRequestNotEditableError,
    ChangeRequestNotFoundError,
    DuplicateRequestNumberError,
    InvalidFieldError,
    InvalidRequestTransitionError,
)
from org_kernel.logging_config import LogContext, get_logger
from org_kernel.models.change_request import StructureChangeRequest
from org_kernel.services.approval_recorder import ApprovalRecorder
from org_kernel.services.base import BaseService
from org_kernel.services.notifications import ListenerDispatcher
from org_kernel.services.reporting_graph_validator import ReportingGraphValidator
from org_kernel.services.sequence_service import SequenceService

logger = get_logger("services.change_request_workflow")

_PATCHABLE_FIELDS = frozenset({
    "request_type",
    "target_department_id",
    "target_position_id",
    "details",
    "reason",
})


def _normalize_details(details: dict[str, Any]) -> dict[str, Any]:
    """Id-valued detail keys are validated and stored as strings."""
    normalized = {}
    for key, value in details.items():
        if key.endswith("_id") and value is not None:
            value = str(parse_identifier(value, f"details.{key}"))
        normalized[key] = value
    return normalized


def _reason_text(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidFieldError("reason", "must be a string")
    return value.strip()


class ChangeRequestWorkflow(BaseService[StructureChangeRequest]):
    """
    State machine over structure change requests.

    Args:
        session: Caller-owned session; the workflow only flushes.
        clock: Source of submitted_at / decided_at / resolved_at and the
            request-number year.
        policy: Request-number format.
        dispatcher: Optional notification dispatcher; told about every
            creation and status change after it is flushed.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: StructurePolicy | None = None,
        dispatcher: ListenerDispatcher | None = None,
    ):
        super().__init__(session, clock)
        self._policy = policy or DEFAULT_POLICY
        self._validator = ReportingGraphValidator(session)
        self._approvals = ApprovalRecorder(session, self.clock)
        self._sequences = SequenceService(session)
        self._dispatcher = dispatcher or ListenerDispatcher()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get(self, request_id: Any) -> StructureChangeRequest:
        request_uuid = parse_identifier(request_id, "change_request_id")
        request = self.session.get(StructureChangeRequest, request_uuid)
        if request is None:
            raise ChangeRequestNotFoundError(str(request_uuid))
        return request

    def get_change_request(self, request_id: Any) -> ChangeRequestInfo:
        return self._get(request_id).to_dto()

    def get_by_request_number(self, request_number: str) -> ChangeRequestInfo:
        if not isinstance(request_number, str) or not request_number.strip():
            raise InvalidFieldError("request_number", "must be a non-blank string")
        number = request_number.strip().upper()
        request = self.session.execute(
            select(StructureChangeRequest).where(
                StructureChangeRequest.request_number == number
            )
        ).scalar_one_or_none()
        if request is None:
            raise ChangeRequestNotFoundError(number)
        return request.to_dto()

    def list_approvals(self, request_id: Any) -> list[ApprovalRecordInfo]:
        """Full decision trail for an existing request, oldest first."""
        request = self._get(request_id)
        return self._approvals.list_for(request.id)

    # ------------------------------------------------------------------
    # Request numbers
    # ------------------------------------------------------------------

    def _highest_issued(self, prefix: str) -> int:
        numbers = self.session.execute(
            select(StructureChangeRequest.request_number).where(
                StructureChangeRequest.request_number.startswith(prefix, autoescape=True)
            )
        ).scalars()
        highest = 0
        for number in numbers:
            tail = number[len(prefix):]
            if tail.isdigit():
                highest = max(highest, int(tail))
        return highest

    def _allocate_request_number(self) -> str:
        year = self.clock.now().year
        prefix = self._policy.request_number_prefix_for(year)
        sequence = self._sequences.next_value(
            f"structure_change_request:{year}",
            seed=lambda: self._highest_issued(prefix),
        )
        return self._policy.format_request_number(year, sequence)

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _resolve_targets(
        self,
        request_type: StructureRequestType,
        target_department_id: Any,
        target_position_id: Any,
    ) -> tuple[UUID | None, UUID | None]:
        rule = REQUEST_TYPE_RULES[request_type]
        department_id = parse_optional_identifier(target_department_id, "target_department_id")
        position_id = parse_optional_identifier(target_position_id, "target_position_id")

        if rule.target is TargetKind.DEPARTMENT and department_id is None:
            raise InvalidFieldError(
                "target_department_id", f"required for {request_type.value}"
            )
        if rule.target is TargetKind.POSITION and position_id is None:
            raise InvalidFieldError(
                "target_position_id", f"required for {request_type.value}"
            )

        if department_id is not None:
            self._validator.require_active_department(department_id, "target_department_id")
        if position_id is not None:
            self._validator.require_active_position(position_id, "target_position_id")
        return department_id, position_id

    def _transition(self, request: StructureChangeRequest, action: RequestAction) -> Transition:
        transition = STRUCTURE_CHANGE_WORKFLOW.resolve(request.status, action.value)
        if transition is None:
            logger.warning(
                "change_request_transition_rejected",
                extra={
                    "request_number": request.request_number,
                    "current_status": request.status,
                    "action": action.value,
                    "allowed_actions": STRUCTURE_CHANGE_WORKFLOW.actions_from(request.status),
                },
            )
            raise InvalidRequestTransitionError(str(request.id), request.status, action.value)
        return transition

    def _finish_transition(
        self,
        request: StructureChangeRequest,
        previous: StructureRequestStatus,
        event: str,
        actor: UUID,
    ) -> ChangeRequestInfo:
        self.session.flush()
        info = request.to_dto()
        logger.info(
            event,
            extra={
                "request_number": request.request_number,
                "from_status": previous.value,
                "to_status": request.status,
                "performed_by_id": str(actor),
            },
        )
        self._dispatcher.request_transitioned(info, previous)
        return info

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_change_request(
        self,
        requester_id: Any,
        request_type: StructureRequestType | str,
        *,
        target_department_id: Any = None,
        target_position_id: Any = None,
        details: Mapping[str, Any] | None = None,
        reason: str = "",
    ) -> ChangeRequestInfo:
        """Create a DRAFT request with a freshly allocated request number."""
        requester = parse_identifier(requester_id, "requester_id")
        rtype = parse_request_type(request_type)
        payload = _normalize_details(check_details_shape(rtype, details))
        reason_text = _reason_text(reason)
        department_id, position_id = self._resolve_targets(
            rtype, target_department_id, target_position_id
        )

        number = self._allocate_request_number()
        request = StructureChangeRequest(
            request_number=number,
            request_type=rtype.value,
            status=StructureRequestStatus.DRAFT.value,
            requested_by_id=requester,
            target_department_id=department_id,
            target_position_id=position_id,
            details=payload,
            reason=reason_text,
            created_by_id=requester,
        )
        self._flush_unique(lambda: DuplicateRequestNumberError(number), request)

        info = request.to_dto()
        with LogContext.bind(change_request_id=str(request.id), actor_id=str(requester)):
            logger.info(
                "change_request_created",
                extra={"request_number": number, "request_type": rtype.value},
            )
        self._dispatcher.request_transitioned(info, None)
        return info

    def update_change_request(
        self,
        request_id: Any,
        actor_id: Any,
        patch: Mapping[str, Any],
    ) -> ChangeRequestInfo:
        """
        Apply ``patch`` to a DRAFT request.

        Keys absent from ``patch`` keep their value; an explicit None clears
        a target.  Targets and details are re-validated against the
        (possibly new) request type.
        """
        request = self._get(request_id)
        actor = parse_identifier(actor_id, "actor_id")

        if StructureRequestStatus(request.status) not in EDITABLE_STATUSES:
            logger.warning(
                "change_request_update_rejected",
                extra={"request_number": request.request_number, "status": request.status},
            )
            raise ChangeRequestNotEditableError(str(request.id), request.status)

        if not isinstance(patch, Mapping):
            raise InvalidFieldError("patch", "must be a mapping")
        if any(not isinstance(key, str) for key in patch):
            raise InvalidFieldError("patch", "keys must be strings")
        unknown = sorted(set(patch) - _PATCHABLE_FIELDS)
        if unknown:
            raise InvalidFieldError("patch", f"unknown fields {unknown}")

        rtype = (
            parse_request_type(patch["request_type"])
            if "request_type" in patch
            else StructureRequestType(request.request_type)
        )
        details = _normalize_details(
            check_details_shape(rtype, patch["details"] if "details" in patch else request.details)
        )
        reason_text = _reason_text(patch["reason"]) if "reason" in patch else request.reason
        department_id, position_id = self._resolve_targets(
            rtype,
            patch["target_department_id"] if "target_department_id" in patch else request.target_department_id,
            patch["target_position_id"] if "target_position_id" in patch else request.target_position_id,
        )

        request.request_type = rtype.value
        request.details = details
        request.reason = reason_text
        request.target_department_id = department_id
        request.target_position_id = position_id
        request.updated_by_id = actor
        self.session.flush()

        with LogContext.bind(change_request_id=str(request.id), actor_id=str(actor)):
            logger.info(
                "change_request_updated",
                extra={"request_number": request.request_number, "fields": sorted(patch)},
            )
        return request.to_dto()

    def submit_change_request_for_review(self, request_id: Any, submitter_id: Any) -> ChangeRequestInfo:
        """DRAFT -> SUBMITTED.  Details must be complete and targets still active."""
        request = self._get(request_id)
        submitter = parse_identifier(submitter_id, "submitter_id")

        with LogContext.bind(change_request_id=str(request.id), actor_id=str(submitter)):
            transition = self._transition(request, RequestAction.SUBMIT)
            rtype = StructureRequestType(request.request_type)
            missing = missing_details(rtype, request.details or {})
            if missing:
                raise InvalidFieldError("details", f"missing {missing} for {rtype.value}")
            self._resolve_targets(rtype, request.target_department_id, request.target_position_id)

            previous = StructureRequestStatus(request.status)
            request.status = transition.to_state
            request.submitted_by_id = submitter
            request.submitted_at = self.clock.now()
            request.updated_by_id = submitter
            return self._finish_transition(request, previous, "change_request_submitted", submitter)

    def _decide(
        self,
        request_id: Any,
        approver_id: Any,
        action: RequestAction,
        comments: str | None,
    ) -> ChangeRequestInfo:
        request = self._get(request_id)
        approver = parse_identifier(approver_id, "approver_id")

        with LogContext.bind(change_request_id=str(request.id), actor_id=str(approver)):
            transition = self._transition(request, action)
            if transition.records_decision:
                self._approvals.record(request.id, approver, DECISION_FOR_ACTION[action], comments)

            previous = StructureRequestStatus(request.status)
            request.status = transition.to_state
            request.resolved_at = self.clock.now()
            request.updated_by_id = approver
            return self._finish_transition(
                request, previous, f"change_request_{transition.to_state.lower()}", approver
            )

    def review_change_request(
        self,
        request_id: Any,
        approver_id: Any,
        approved: bool,
        comments: str | None = None,
    ) -> ChangeRequestInfo:
        """SUBMITTED -> APPROVED or REJECTED, recording one decision."""
        if not isinstance(approved, bool):
            raise InvalidFieldError("approved", "must be true or false")
        action = RequestAction.APPROVE if approved else RequestAction.REJECT
        return self._decide(request_id, approver_id, action, comments)

    def approve_change_request(
        self,
        request_id: Any,
        approver_id: Any,
        comments: str | None = None,
    ) -> ChangeRequestInfo:
        return self._decide(request_id, approver_id, RequestAction.APPROVE, comments)

    def reject_change_request(self, request_id: Any, approver_id: Any, reason: str) -> ChangeRequestInfo:
        """Reject; the reason is stored as the decision's comments."""
        if not isinstance(reason, str) or not reason.strip():
            raise InvalidFieldError("reason", "a rejection reason is required")
        return self._decide(request_id, approver_id, RequestAction.REJECT, reason)

    def cancel_change_request(self, request_id: Any, caller_id: Any) -> ChangeRequestInfo:
        """Withdraw a DRAFT or SUBMITTED request.  No approval record is written."""
        request = self._get(request_id)
        caller = parse_identifier(caller_id, "caller_id")

        with LogContext.bind(change_request_id=str(request.id), actor_id=str(caller)):
            transition = self._transition(request, RequestAction.CANCEL)
            previous = StructureRequestStatus(request.status)
            request.status = transition.to_state
            request.resolved_at = self.clock.now()
            request.updated_by_id = caller
            return self._finish_transition(request, previous, "change_request_canceled", caller)

    # ------------------------------------------------------------------
    # Execution bookkeeping
    # ------------------------------------------------------------------

    def ensure_applicable(self, request_id: Any) -> ChangeRequestInfo:
        """Raise unless the request is APPROVED and not yet applied."""
        request = self._get(request_id)
        if request.status != StructureRequestStatus.APPROVED.value:
            raise InvalidRequestTransitionError(str(request.id), request.status, "apply")
        if request.implemented_at is not None:
            raise ChangeRequestAlreadyImplementedError(
                str(request.id), request.implemented_at.isoformat()
            )
        return request.to_dto()

    def mark_implemented(self, request_id: Any, actor_id: Any) -> ChangeRequestInfo:
        """Stamp implemented_at/by on an APPROVED request; status is unchanged."""
        self.ensure_applicable(request_id)
        request = self._get(request_id)
        actor = parse_identifier(actor_id, "actor_id")

        request.implemented_at = self.clock.now()
        request.implemented_by_id = actor
        request.updated_by_id = actor
        self.session.flush()

        info = request.to_dto()
        with LogContext.bind(change_request_id=str(request.id), actor_id=str(actor)):
            logger.info(
                "change_request_implemented",
                extra={"request_number": request.request_number},
            )
        return info
