"""
Typed exception hierarchy for the org kernel.

===============================================================================
ERROR KINDS
===============================================================================

Callers (the HTTP tier) map errors to responses by KIND, so every concrete
error inherits from exactly one kind class:

    OrgKernelError (base)
    |
    +-- NotFoundError                 subject id does not resolve
    |   +-- DepartmentNotFoundError
    |   +-- PositionNotFoundError
    |   +-- ChangeRequestNotFoundError
    |
    +-- BadRequestError               caller asked for something invalid
    |   +-- InvalidIdentifierError
    |   +-- InvalidFieldError
    |   +-- InvalidReferenceError
    |   +-- SelfReportingError
    |   +-- ReportingCycleError
    |   +-- PositionHasSubordinatesError
    |   +-- DepartmentHasActivePositionsError
    |   +-- NoOpChangeError
    |   +-- InvalidRequestTransitionError
    |   +-- ChangeRequestNotEditableError
    |   +-- ChangeRequestAlreadyImplementedError
    |
    +-- ConflictError                 unique key already taken
    |   +-- DuplicateDepartmentCodeError
    |   +-- DuplicatePositionCodeError
    |   +-- DuplicateRequestNumberError
    |
    +-- ImmutabilityError             raised by ORM listeners, never by callers' input
        +-- ImmutabilityViolationError

The SUBJECT of an operation (the department being updated, the request being
approved) that does not exist is NotFound.  An entity merely REFERENCED by the
operation (a head position, a supervisor, a request target) that is missing or
inactive is BadRequest via InvalidReferenceError.

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Kind        | Code                            | When Raised
------------|---------------------------------|---------------------------------------
NotFound    | DEPARTMENT_NOT_FOUND            | Department id doesn't exist
            | POSITION_NOT_FOUND              | Position id doesn't exist
            | CHANGE_REQUEST_NOT_FOUND        | Request id / number doesn't exist
------------|---------------------------------|---------------------------------------
BadRequest  | INVALID_IDENTIFIER              | Id is not a well-formed UUID
            | INVALID_FIELD                   | Blank code, unknown patch key, bad enum
            | INVALID_REFERENCE               | Referenced entity missing or inactive
            | SELF_REPORTING                  | Position asked to report to itself
            | REPORTING_CYCLE                 | New edge would close a cycle
            | POSITION_HAS_SUBORDINATES       | Removal with active direct reports
            | DEPARTMENT_HAS_ACTIVE_POSITIONS | Removal guard on departments
            | NO_OP_CHANGE                    | Change equals current state
            | INVALID_REQUEST_TRANSITION      | State machine forbids the action
            | CHANGE_REQUEST_NOT_EDITABLE     | Update after leaving DRAFT
            | CHANGE_REQUEST_ALREADY_IMPLEMENTED | Applying a request twice
------------|---------------------------------|---------------------------------------
Conflict    | DUPLICATE_DEPARTMENT_CODE       | Department code taken (any state)
            | DUPLICATE_POSITION_CODE         | Position code taken (any state)
            | DUPLICATE_REQUEST_NUMBER        | Request number unique index hit
------------|---------------------------------|---------------------------------------
Immutability| IMMUTABILITY_VIOLATION          | Editing an approval, a change log
            |                                 | entry, or a submitted request
"""

from __future__ import annotations


class OrgKernelError(Exception):
    """
    Base exception for all org kernel errors.

    Every subclass carries a ``code`` class attribute for machine-readable
    identification; ``kind`` names the category the caller maps to a response.
    """

    code: str = "ORG_KERNEL_ERROR"
    kind: str = "error"


# ---------------------------------------------------------------------------
# Kinds
# ---------------------------------------------------------------------------


class NotFoundError(OrgKernelError):
    """Base exception for ids that do not resolve to a record."""

    code: str = "NOT_FOUND"
    kind: str = "not_found"


class BadRequestError(OrgKernelError):
    """Base exception for invalid input, references, or transitions."""

    code: str = "BAD_REQUEST"
    kind: str = "bad_request"


class ConflictError(OrgKernelError):
    """Base exception for unique-key collisions."""

    code: str = "CONFLICT"
    kind: str = "conflict"


class ImmutabilityError(OrgKernelError):
    """Base exception for attempts to rewrite append-only or frozen records."""

    code: str = "IMMUTABILITY_ERROR"
    kind: str = "immutability"


# ---------------------------------------------------------------------------
# NotFound
# ---------------------------------------------------------------------------


class DepartmentNotFoundError(NotFoundError):
    code: str = "DEPARTMENT_NOT_FOUND"

    def __init__(self, department_id: str):
        self.department_id = department_id
        super().__init__(f"Department not found: {department_id}")


class PositionNotFoundError(NotFoundError):
    code: str = "POSITION_NOT_FOUND"

    def __init__(self, position_id: str):
        self.position_id = position_id
        super().__init__(f"Position not found: {position_id}")


class ChangeRequestNotFoundError(NotFoundError):
    """Change request not found by id or by request number."""

    code: str = "CHANGE_REQUEST_NOT_FOUND"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Structure change request not found: {identifier}")


# ---------------------------------------------------------------------------
# BadRequest
# ---------------------------------------------------------------------------


class InvalidIdentifierError(BadRequestError):
    """An id argument is not a well-formed identifier."""

    code: str = "INVALID_IDENTIFIER"

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = repr(value)
        super().__init__(f"Invalid identifier for {field}: {value!r}")


class InvalidFieldError(BadRequestError):
    code: str = "INVALID_FIELD"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid value for {field}: {reason}")


class InvalidReferenceError(BadRequestError):
    """
    A referenced entity is missing or inactive where an active one is required.

    ``reason`` is ``"missing"`` or ``"inactive"``.
    """

    code: str = "INVALID_REFERENCE"

    def __init__(self, field: str, entity_type: str, entity_id: str, reason: str):
        self.field = field
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"{field} references {reason} {entity_type} {entity_id}"
        )


class SelfReportingError(BadRequestError):
    code: str = "SELF_REPORTING"

    def __init__(self, position_id: str):
        self.position_id = position_id
        super().__init__("Position cannot report to itself")


class ReportingCycleError(BadRequestError):
    """Assigning the reporting line would close a cycle."""

    code: str = "REPORTING_CYCLE"

    def __init__(self, position_id: str, reports_to_position_id: str, path: list[str]):
        self.position_id = position_id
        self.reports_to_position_id = reports_to_position_id
        self.path = path
        super().__init__(
            "Circular reporting relationship detected: "
            f"{position_id} -> {reports_to_position_id}"
        )


class PositionHasSubordinatesError(BadRequestError):
    code: str = "POSITION_HAS_SUBORDINATES"

    def __init__(self, position_id: str, subordinate_count: int):
        self.position_id = position_id
        self.subordinate_count = subordinate_count
        super().__init__(
            f"Cannot deactivate position. {subordinate_count} active position(s) "
            "report to this position. Please reassign them first."
        )


class DepartmentHasActivePositionsError(BadRequestError):
    code: str = "DEPARTMENT_HAS_ACTIVE_POSITIONS"

    def __init__(self, department_id: str, active_position_count: int):
        self.department_id = department_id
        self.active_position_count = active_position_count
        super().__init__(
            f"Cannot deactivate department. {active_position_count} active "
            "position(s) belong to this department. Please move or close them first."
        )


class NoOpChangeError(BadRequestError):
    """The requested change equals the current state."""

    code: str = "NO_OP_CHANGE"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(reason)


class InvalidRequestTransitionError(BadRequestError):
    code: str = "INVALID_REQUEST_TRANSITION"

    def __init__(self, request_id: str, current_status: str, action: str):
        self.request_id = request_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} structure change request {request_id} "
            f"in status {current_status}"
        )


class ChangeRequestNotEditableError(BadRequestError):
    code: str = "CHANGE_REQUEST_NOT_EDITABLE"

    def __init__(self, request_id: str, current_status: str):
        self.request_id = request_id
        self.current_status = current_status
        super().__init__(
            f"Only DRAFT requests can be updated (request {request_id} is {current_status})"
        )


class ChangeRequestAlreadyImplementedError(BadRequestError):
    code: str = "CHANGE_REQUEST_ALREADY_IMPLEMENTED"

    def __init__(self, request_id: str, implemented_at: str):
        self.request_id = request_id
        self.implemented_at = implemented_at
        super().__init__(
            f"Structure change request {request_id} was already applied at {implemented_at}"
        )


# ---------------------------------------------------------------------------
# Conflict
# ---------------------------------------------------------------------------


class DuplicateDepartmentCodeError(ConflictError):
    code: str = "DUPLICATE_DEPARTMENT_CODE"

    def __init__(self, department_code: str):
        self.department_code = department_code
        super().__init__(f"Department with code '{department_code}' already exists")


class DuplicatePositionCodeError(ConflictError):
    code: str = "DUPLICATE_POSITION_CODE"

    def __init__(self, position_code: str):
        self.position_code = position_code
        super().__init__(f"Position with code '{position_code}' already exists")


class DuplicateRequestNumberError(ConflictError):
    code: str = "DUPLICATE_REQUEST_NUMBER"

    def __init__(self, request_number: str):
        self.request_number = request_number
        super().__init__(f"Request number already allocated: {request_number}")


# ---------------------------------------------------------------------------
# Immutability
# ---------------------------------------------------------------------------


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Approvals and change log entries are immutable from creation; change
    requests freeze their content once they leave DRAFT.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
