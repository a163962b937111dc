"""
Structure change request domain (``org_kernel.domain.change_request``).

Responsibility
--------------
Closed status and type enums, the single authoritative transition table
(``STRUCTURE_CHANGE_WORKFLOW``), the per-type rules for targets and
``details`` payload keys, and the frozen DTOs handed to callers.

Architecture position
---------------------
Kernel > Domain.  ZERO I/O; imports only other domain modules and
``org_kernel.exceptions``.

Lifecycle
---------
::

    DRAFT --submit--> SUBMITTED --approve--> APPROVED
      |                   |------reject---> REJECTED
      |                   |
      +------cancel-------+---cancel------> CANCELED

APPROVED, REJECTED and CANCELED are terminal.  Approve and reject record a
decision; cancel is a withdrawal and records nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from org_kernel.domain.workflow import Transition, Workflow
from org_kernel.exceptions import InvalidFieldError


class StructureRequestStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELED = "CANCELED"


class RequestAction(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"


class ApprovalDecision(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class StructureRequestType(str, Enum):
    NEW_DEPARTMENT = "NEW_DEPARTMENT"
    UPDATE_DEPARTMENT = "UPDATE_DEPARTMENT"
    CLOSE_DEPARTMENT = "CLOSE_DEPARTMENT"
    NEW_POSITION = "NEW_POSITION"
    UPDATE_POSITION = "UPDATE_POSITION"
    CLOSE_POSITION = "CLOSE_POSITION"
    REASSIGN_HEAD = "REASSIGN_HEAD"
    CHANGE_REPORTING_LINE = "CHANGE_REPORTING_LINE"


class TargetKind(str, Enum):
    NONE = "none"
    DEPARTMENT = "department"
    POSITION = "position"


_S = StructureRequestStatus
_A = RequestAction

STRUCTURE_CHANGE_WORKFLOW = Workflow(
    name="structure_change_request",
    description="Proposal to alter the department/position hierarchy",
    initial_state=_S.DRAFT.value,
    states=tuple(s.value for s in _S),
    transitions=(
        Transition(_S.DRAFT.value, _S.SUBMITTED.value, _A.SUBMIT.value),
        Transition(_S.DRAFT.value, _S.CANCELED.value, _A.CANCEL.value),
        Transition(_S.SUBMITTED.value, _S.APPROVED.value, _A.APPROVE.value, records_decision=True),
        Transition(_S.SUBMITTED.value, _S.REJECTED.value, _A.REJECT.value, records_decision=True),
        Transition(_S.SUBMITTED.value, _S.CANCELED.value, _A.CANCEL.value),
    ),
    terminal_states=(_S.APPROVED.value, _S.REJECTED.value, _S.CANCELED.value),
)

EDITABLE_STATUSES: frozenset[StructureRequestStatus] = frozenset({_S.DRAFT})

TERMINAL_STATUSES: frozenset[StructureRequestStatus] = frozenset(
    _S(s) for s in STRUCTURE_CHANGE_WORKFLOW.terminal_states
)

DECISION_FOR_ACTION: dict[RequestAction, ApprovalDecision] = {
    _A.APPROVE: ApprovalDecision.APPROVED,
    _A.REJECT: ApprovalDecision.REJECTED,
}


def parse_request_type(value: object) -> StructureRequestType:
    try:
        return StructureRequestType(value)
    except ValueError:
        raise InvalidFieldError(
            "request_type",
            f"must be one of {[t.value for t in StructureRequestType]}",
        ) from None


# ---------------------------------------------------------------------------
# Per-type rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RequestTypeRule:
    """What a request type targets and which ``details`` keys it understands.

    ``required_details`` are checked on submission, not on creation, so a
    DRAFT may be saved incomplete.  ``requires_any_detail`` is for update
    types, which must propose at least one change.
    """
    target: TargetKind
    allowed_details: frozenset[str] = frozenset()
    required_details: frozenset[str] = frozenset()
    requires_any_detail: bool = False


_DEPARTMENT_FIELDS = frozenset({"code", "name", "description", "head_position_id"})
_POSITION_FIELDS = frozenset({"code", "title", "description", "reports_to_position_id"})

REQUEST_TYPE_RULES: dict[StructureRequestType, RequestTypeRule] = {
    StructureRequestType.NEW_DEPARTMENT: RequestTypeRule(
        target=TargetKind.NONE,
        allowed_details=_DEPARTMENT_FIELDS,
        required_details=frozenset({"code", "name"}),
    ),
    StructureRequestType.UPDATE_DEPARTMENT: RequestTypeRule(
        target=TargetKind.DEPARTMENT,
        allowed_details=_DEPARTMENT_FIELDS,
        requires_any_detail=True,
    ),
    StructureRequestType.CLOSE_DEPARTMENT: RequestTypeRule(target=TargetKind.DEPARTMENT),
    StructureRequestType.NEW_POSITION: RequestTypeRule(
        target=TargetKind.DEPARTMENT,
        allowed_details=_POSITION_FIELDS,
        required_details=frozenset({"code", "title"}),
    ),
    StructureRequestType.UPDATE_POSITION: RequestTypeRule(
        target=TargetKind.POSITION,
        allowed_details=_POSITION_FIELDS | {"department_id"},
        requires_any_detail=True,
    ),
    StructureRequestType.CLOSE_POSITION: RequestTypeRule(target=TargetKind.POSITION),
    StructureRequestType.REASSIGN_HEAD: RequestTypeRule(
        target=TargetKind.DEPARTMENT,
        allowed_details=frozenset({"head_position_id"}),
        required_details=frozenset({"head_position_id"}),
    ),
    StructureRequestType.CHANGE_REPORTING_LINE: RequestTypeRule(
        target=TargetKind.POSITION,
        allowed_details=frozenset({"reports_to_position_id"}),
        required_details=frozenset({"reports_to_position_id"}),
    ),
}


class DetailValue(str, Enum):
    """Accepted shape of a ``details`` value."""
    TEXT = "text"
    OPTIONAL_TEXT = "optional_text"
    IDENTIFIER = "identifier"


DETAIL_VALUE_RULES: dict[str, DetailValue] = {
    "code": DetailValue.TEXT,
    "name": DetailValue.TEXT,
    "title": DetailValue.TEXT,
    "description": DetailValue.OPTIONAL_TEXT,
    "head_position_id": DetailValue.IDENTIFIER,
    "reports_to_position_id": DetailValue.IDENTIFIER,
    "department_id": DetailValue.IDENTIFIER,
}


def _check_detail_value(key: str, value: object) -> None:
    rule = DETAIL_VALUE_RULES[key]
    if rule is DetailValue.IDENTIFIER:
        if value is not None and not isinstance(value, (str, UUID)):
            raise InvalidFieldError(f"details.{key}", "must be an identifier or null")
    elif rule is DetailValue.OPTIONAL_TEXT:
        if value is not None and not isinstance(value, str):
            raise InvalidFieldError(f"details.{key}", "must be a string or null")
    elif not isinstance(value, str) or not value.strip():
        raise InvalidFieldError(f"details.{key}", "must be a non-blank string")


def check_details_shape(request_type: StructureRequestType, details: object) -> dict[str, Any]:
    """Return ``details`` as a plain dict.

    Keys must be strings the request type accepts, and each value must
    match its entry in ``DETAIL_VALUE_RULES``.
    """
    if details is None:
        return {}
    if not isinstance(details, dict):
        raise InvalidFieldError("details", "must be a mapping")
    if any(not isinstance(key, str) for key in details):
        raise InvalidFieldError("details", "keys must be strings")
    rule = REQUEST_TYPE_RULES[request_type]
    unknown = sorted(set(details) - rule.allowed_details)
    if unknown:
        raise InvalidFieldError(
            "details",
            f"{request_type.value} does not accept {unknown}",
        )
    for key, value in details.items():
        _check_detail_value(key, value)
    return dict(details)


def missing_details(request_type: StructureRequestType, details: dict[str, Any]) -> list[str]:
    """Keys still needed before the request can be submitted."""
    rule = REQUEST_TYPE_RULES[request_type]
    missing = sorted(k for k in rule.required_details if k not in details)
    if rule.requires_any_detail and not details:
        missing.append("<at least one change>")
    return missing


# ---------------------------------------------------------------------------
# DTOs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChangeRequestInfo:
    """Immutable snapshot of a StructureChangeRequest."""

    id: UUID
    request_number: str
    request_type: StructureRequestType
    status: StructureRequestStatus
    requested_by_id: UUID
    target_department_id: UUID | None
    target_position_id: UUID | None
    details: dict[str, Any] = field(default_factory=dict)
    reason: str = ""
    submitted_by_id: UUID | None = None
    submitted_at: datetime | None = None
    resolved_at: datetime | None = None
    implemented_by_id: UUID | None = None
    implemented_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_implemented(self) -> bool:
        return self.implemented_at is not None


@dataclass(frozen=True)
class ApprovalRecordInfo:
    """Immutable snapshot of one StructureApproval decision."""

    id: UUID
    change_request_id: UUID
    approver_id: UUID
    decision: ApprovalDecision
    decided_at: datetime
    comments: str | None
    seq: int
