"""
Module: org_kernel.services.hierarchy_store
Responsibility: The only writer of Department and Position rows.  Owns code
    uniqueness, the active/inactive lifecycle, head assignment, department
    membership and reporting lines.
Architecture position: Kernel > Services.  Uses ReportingGraphValidator for
    reference/cycle checks and ChangeLogRecorder for history.

Invariants enforced:
    - Codes are trimmed, upper-cased and unique across active AND inactive
      rows (pre-check plus unique constraint; a race becomes a ConflictError).
    - Rows are never deleted; removal sets is_active=False.
    - A position with active direct reports cannot be removed.
    - Every referenced department/position must exist and be active at the
      moment it is linked.
    - All arguments are validated before any attribute is touched, so a
      failed call leaves the session's hierarchy state unchanged.
    - Every effective mutation appends exactly one change log entry per
      entity touched.

Failure modes:
    - NotFoundError subclasses when the subject id does not resolve.
    - BadRequestError subclasses for malformed ids, invalid references,
      self/cyclic reporting, removal guards and no-op reassignments.
    - ConflictError subclasses for duplicate codes.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from org_kernel.domain.change_log import ChangeLogAction, StructureEntityType
from org_kernel.domain.clock import Clock
from org_kernel.domain.hierarchy import DepartmentInfo, PositionInfo
from org_kernel.domain.identifiers import (
    normalize_code,
    parse_identifier,
    parse_optional_identifier,
    require_text,
)
from org_kernel.domain.policy import DEFAULT_POLICY, DepartmentRemovalMode, StructurePolicy
from org_kernel.exceptions import (
    DepartmentHasActivePositionsError,
    DepartmentNotFoundError,
    DuplicateDepartmentCodeError,
    DuplicatePositionCodeError,
    InvalidFieldError,
    NoOpChangeError,
    PositionHasSubordinatesError,
    PositionNotFoundError,
)
from org_kernel.logging_config import get_logger
from org_kernel.models.department import Department
from org_kernel.models.position import Position
from org_kernel.services.base import BaseService
from org_kernel.services.change_log_recorder import ChangeLogRecorder
from org_kernel.services.notifications import ListenerDispatcher
from org_kernel.services.reporting_graph_validator import ReportingGraphValidator

logger = get_logger("services.hierarchy")


def _optional_text(value: Any, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidFieldError(field, "must be a string")
    return value.strip() or None


class HierarchyStore(BaseService[Department]):
    """
    Department and position lifecycle.

    Args:
        session: Caller-owned session; the store only flushes.
        clock: Source of activated_at / deactivated_at / change log times.
        policy: StructurePolicy switches (removal mode, defaults, locking).
        dispatcher: Optional notification dispatcher for change log entries.
        change_request_id: When set, every change log entry written by this
            instance is linked to that structure change request.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: StructurePolicy | None = None,
        dispatcher: ListenerDispatcher | None = None,
        change_request_id: UUID | None = None,
    ):
        super().__init__(session, clock)
        self._policy = policy or DEFAULT_POLICY
        self._validator = ReportingGraphValidator(
            session, lock_rows=self._policy.serialize_reporting_writes
        )
        self._change_log = ChangeLogRecorder(session, self.clock, dispatcher)
        self._change_request_id = change_request_id

    @property
    def validator(self) -> ReportingGraphValidator:
        return self._validator

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get_department(self, department_id: Any, field: str = "department_id") -> Department:
        dept_uuid = parse_identifier(department_id, field)
        department = self.session.get(Department, dept_uuid)
        if department is None:
            raise DepartmentNotFoundError(str(dept_uuid))
        return department

    def _get_position(self, position_id: Any, field: str = "position_id") -> Position:
        pos_uuid = parse_identifier(position_id, field)
        position = self.session.get(Position, pos_uuid)
        if position is None:
            raise PositionNotFoundError(str(pos_uuid))
        return position

    def _department_by_code(self, code: str) -> Department | None:
        return self.session.execute(
            select(Department).where(Department.code == code)
        ).scalar_one_or_none()

    def _position_by_code(self, code: str) -> Position | None:
        return self.session.execute(
            select(Position).where(Position.code == code)
        ).scalar_one_or_none()

    def get_department(self, department_id: Any) -> DepartmentInfo:
        return self._get_department(department_id).to_dto()

    def get_position(self, position_id: Any) -> PositionInfo:
        return self._get_position(position_id).to_dto()

    def find_department_by_code(self, code: str) -> DepartmentInfo | None:
        department = self._department_by_code(normalize_code(code))
        return department.to_dto() if department else None

    def find_position_by_code(self, code: str) -> PositionInfo | None:
        position = self._position_by_code(normalize_code(code))
        return position.to_dto() if position else None

    def count_active_subordinates(self, position_id: UUID) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(Position)
            .where(
                Position.reports_to_position_id == position_id,
                Position.is_active.is_(True),
            )
        ).scalar_one()

    # ------------------------------------------------------------------
    # Change log
    # ------------------------------------------------------------------

    def _log(
        self,
        action: ChangeLogAction,
        entity: Department | Position,
        actor: UUID,
        summary: str,
        before: dict[str, Any] | None,
    ) -> None:
        entity_type = (
            StructureEntityType.DEPARTMENT
            if isinstance(entity, Department)
            else StructureEntityType.POSITION
        )
        self._change_log.record(
            action=action,
            entity_type=entity_type,
            entity_id=entity.id,
            performed_by_id=actor,
            summary=summary,
            before=before,
            after=entity.to_dto().to_dict(),
            change_request_id=self._change_request_id,
        )

    # ------------------------------------------------------------------
    # Departments
    # ------------------------------------------------------------------

    def create_department(
        self,
        code: str,
        name: str,
        actor_id: Any,
        description: str | None = None,
        head_position_id: Any = None,
    ) -> DepartmentInfo:
        """
        Create an active department.

        Raises:
            DuplicateDepartmentCodeError: code already used by any department.
            InvalidReferenceError: head position missing or inactive.
        """
        actor = parse_identifier(actor_id, "actor_id")
        code = normalize_code(code)
        name = require_text(name, "name", 200)
        description = _optional_text(description, "description")
        head_id = parse_optional_identifier(head_position_id, "head_position_id")

        if self._department_by_code(code) is not None:
            logger.warning("department_code_conflict", extra={"code": code})
            raise DuplicateDepartmentCodeError(code)
        if head_id is not None:
            self._validator.require_active_position(head_id, "head_position_id")

        department = Department(
            code=code,
            name=name,
            description=description,
            head_position_id=head_id,
            is_active=True,
            activated_at=self.clock.now(),
            created_by_id=actor,
        )
        self._flush_unique(lambda: DuplicateDepartmentCodeError(code), department)

        self._log(ChangeLogAction.CREATED, department, actor, f"Department {code} created", None)
        logger.info(
            "department_created",
            extra={"department_id": str(department.id), "code": code},
        )
        return department.to_dto()

    def update_department(
        self,
        department_id: Any,
        actor_id: Any,
        *,
        code: str | None = None,
        name: str | None = None,
        description: str | None = None,
        head_position_id: Any = None,
    ) -> DepartmentInfo:
        """
        Patch a department.  Arguments left as None are unchanged; use
        ``assign_department_head(..., None)`` to clear the head.
        """
        department = self._get_department(department_id)
        actor = parse_identifier(actor_id, "actor_id")

        changes: dict[str, Any] = {}
        if code is not None:
            new_code = normalize_code(code)
            if new_code != department.code:
                existing = self._department_by_code(new_code)
                if existing is not None:
                    logger.warning("department_code_conflict", extra={"code": new_code})
                    raise DuplicateDepartmentCodeError(new_code)
                changes["code"] = new_code
        if name is not None:
            changes["name"] = require_text(name, "name", 200)
        if description is not None:
            changes["description"] = _optional_text(description, "description")
        if head_position_id is not None:
            head_id = parse_identifier(head_position_id, "head_position_id")
            self._validator.require_active_position(head_id, "head_position_id")
            changes["head_position_id"] = head_id

        changes = {k: v for k, v in changes.items() if getattr(department, k) != v}
        if not changes:
            return department.to_dto()

        before = department.to_dto().to_dict()
        for key, value in changes.items():
            setattr(department, key, value)
        department.updated_by_id = actor
        self._flush_unique(lambda: DuplicateDepartmentCodeError(department.code))

        self._log(
            ChangeLogAction.UPDATED,
            department,
            actor,
            f"Department {department.code} updated: {', '.join(sorted(changes))}",
            before,
        )
        logger.info(
            "department_updated",
            extra={"department_id": str(department.id), "fields": sorted(changes)},
        )
        return department.to_dto()

    def remove_department(self, department_id: Any, actor_id: Any) -> DepartmentInfo:
        """
        Soft-delete a department.

        What happens to the department's active positions depends on
        ``policy.department_removal``:
            GUARD    -> DepartmentHasActivePositionsError
            ALLOW    -> left active (logged as a warning)
            CASCADE  -> deactivated too, unless an active position outside the
                        department reports to one of them
        Removing an already inactive department returns it unchanged.
        """
        department = self._get_department(department_id)
        actor = parse_identifier(actor_id, "actor_id")

        if not department.is_active:
            logger.debug(
                "department_already_inactive",
                extra={"department_id": str(department.id)},
            )
            return department.to_dto()

        active_positions = list(
            self.session.execute(
                select(Position)
                .where(
                    Position.department_id == department.id,
                    Position.is_active.is_(True),
                )
                .order_by(Position.code)
            ).scalars()
        )

        mode = self._policy.department_removal
        if active_positions:
            if mode is DepartmentRemovalMode.GUARD:
                logger.warning(
                    "department_removal_blocked",
                    extra={
                        "department_id": str(department.id),
                        "active_position_count": len(active_positions),
                    },
                )
                raise DepartmentHasActivePositionsError(str(department.id), len(active_positions))

            if mode is DepartmentRemovalMode.CASCADE:
                self._guard_cascade(department, active_positions)
                for position in active_positions:
                    self._deactivate_position(
                        position,
                        actor,
                        f"Position {position.code} deactivated with department {department.code}",
                    )
            else:
                logger.warning(
                    "department_deactivated_with_active_positions",
                    extra={
                        "department_id": str(department.id),
                        "active_position_count": len(active_positions),
                    },
                )

        before = department.to_dto().to_dict()
        department.is_active = False
        department.deactivated_at = self.clock.now()
        department.updated_by_id = actor
        self.session.flush()

        self._log(
            ChangeLogAction.DEACTIVATED,
            department,
            actor,
            f"Department {department.code} deactivated",
            before,
        )
        logger.info(
            "department_deactivated",
            extra={"department_id": str(department.id), "mode": mode.value},
        )
        return department.to_dto()

    def _guard_cascade(self, department: Department, positions: list[Position]) -> None:
        ids = [p.id for p in positions]
        blocking = self.session.execute(
            select(Position.reports_to_position_id, func.count())
            .where(
                Position.reports_to_position_id.in_(ids),
                Position.is_active.is_(True),
                Position.department_id != department.id,
            )
            .group_by(Position.reports_to_position_id)
            .order_by(Position.reports_to_position_id)
        ).first()
        if blocking is not None:
            supervisor_id, count = blocking
            logger.warning(
                "department_cascade_blocked",
                extra={
                    "department_id": str(department.id),
                    "position_id": str(supervisor_id),
                    "subordinate_count": count,
                },
            )
            raise PositionHasSubordinatesError(str(supervisor_id), count)

    def assign_department_head(
        self,
        department_id: Any,
        position_id: Any,
        actor_id: Any,
    ) -> DepartmentInfo:
        """Set (or with ``position_id=None`` clear) the department's head position."""
        department = self._get_department(department_id)
        actor = parse_identifier(actor_id, "actor_id")
        head_id = parse_optional_identifier(position_id, "position_id")

        if head_id is not None:
            self._validator.require_active_position(head_id, "position_id")

        if department.head_position_id == head_id:
            return department.to_dto()

        before = department.to_dto().to_dict()
        department.head_position_id = head_id
        department.updated_by_id = actor
        self.session.flush()

        summary = (
            f"Department {department.code} head set to {head_id}"
            if head_id is not None
            else f"Department {department.code} head cleared"
        )
        self._log(ChangeLogAction.REASSIGNED, department, actor, summary, before)
        logger.info(
            "department_head_assigned",
            extra={
                "department_id": str(department.id),
                "head_position_id": str(head_id) if head_id else None,
            },
        )
        return department.to_dto()

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def create_position(
        self,
        code: str,
        title: str,
        department_id: Any,
        actor_id: Any,
        reports_to_position_id: Any = None,
        description: str | None = None,
    ) -> PositionInfo:
        """
        Create an active position.

        Without an explicit supervisor the position reports to the
        department's head (when the policy says so and the head is active).

        Raises:
            DuplicatePositionCodeError: code already used by any position.
            InvalidReferenceError: department or supervisor missing/inactive.
        """
        actor = parse_identifier(actor_id, "actor_id")
        code = normalize_code(code)
        title = require_text(title, "title", 200)
        description = _optional_text(description, "description")
        dept_id = parse_identifier(department_id, "department_id")
        reports_to = parse_optional_identifier(reports_to_position_id, "reports_to_position_id")

        if self._position_by_code(code) is not None:
            logger.warning("position_code_conflict", extra={"code": code})
            raise DuplicatePositionCodeError(code)

        department = self._validator.require_active_department(dept_id, "department_id")

        if reports_to is not None:
            self._validator.require_active_position(reports_to, "reports_to_position_id")
        elif (
            self._policy.default_reports_to_department_head
            and department.head_position_id is not None
        ):
            head = self.session.get(Position, department.head_position_id)
            if head is not None and head.is_active:
                reports_to = head.id

        position = Position(
            code=code,
            title=title,
            description=description,
            department_id=dept_id,
            reports_to_position_id=reports_to,
            is_active=True,
            activated_at=self.clock.now(),
            created_by_id=actor,
        )
        self._flush_unique(lambda: DuplicatePositionCodeError(code), position)

        self._log(ChangeLogAction.CREATED, position, actor, f"Position {code} created", None)
        logger.info(
            "position_created",
            extra={
                "position_id": str(position.id),
                "code": code,
                "department_id": str(dept_id),
                "reports_to_position_id": str(reports_to) if reports_to else None,
            },
        )
        return position.to_dto()

    def update_position(
        self,
        position_id: Any,
        actor_id: Any,
        *,
        code: str | None = None,
        title: str | None = None,
        description: str | None = None,
        department_id: Any = None,
        reports_to_position_id: Any = None,
    ) -> PositionInfo:
        """
        Patch a position.  Arguments left as None are unchanged; clearing the
        supervisor goes through ``assign_reporting_position(..., None)``.
        A new supervisor passes the same self/cycle checks as
        ``assign_reporting_position``.
        """
        position = self._get_position(position_id)
        actor = parse_identifier(actor_id, "actor_id")

        changes: dict[str, Any] = {}
        if code is not None:
            new_code = normalize_code(code)
            if new_code != position.code:
                if self._position_by_code(new_code) is not None:
                    logger.warning("position_code_conflict", extra={"code": new_code})
                    raise DuplicatePositionCodeError(new_code)
                changes["code"] = new_code
        if title is not None:
            changes["title"] = require_text(title, "title", 200)
        if description is not None:
            changes["description"] = _optional_text(description, "description")
        if department_id is not None:
            dept_id = parse_identifier(department_id, "department_id")
            if dept_id != position.department_id:
                self._validator.require_active_department(dept_id, "department_id")
                changes["department_id"] = dept_id
        if reports_to_position_id is not None:
            reports_to = parse_identifier(reports_to_position_id, "reports_to_position_id")
            if reports_to != position.reports_to_position_id:
                self._validator.validate_reporting_edge(position.id, reports_to)
                changes["reports_to_position_id"] = reports_to

        changes = {k: v for k, v in changes.items() if getattr(position, k) != v}
        if not changes:
            return position.to_dto()

        before = position.to_dto().to_dict()
        for key, value in changes.items():
            setattr(position, key, value)
        position.updated_by_id = actor
        self._flush_unique(lambda: DuplicatePositionCodeError(position.code))

        self._log(
            ChangeLogAction.UPDATED,
            position,
            actor,
            f"Position {position.code} updated: {', '.join(sorted(changes))}",
            before,
        )
        logger.info(
            "position_updated",
            extra={"position_id": str(position.id), "fields": sorted(changes)},
        )
        return position.to_dto()

    def remove_position(self, position_id: Any, actor_id: Any) -> PositionInfo:
        """
        Soft-delete a position.

        Raises:
            PositionHasSubordinatesError: active positions still report to it.
        """
        position = self._get_position(position_id)
        actor = parse_identifier(actor_id, "actor_id")

        if not position.is_active:
            logger.debug(
                "position_already_inactive",
                extra={"position_id": str(position.id)},
            )
            return position.to_dto()

        subordinates = self.count_active_subordinates(position.id)
        if subordinates > 0:
            logger.warning(
                "position_removal_blocked",
                extra={"position_id": str(position.id), "subordinate_count": subordinates},
            )
            raise PositionHasSubordinatesError(str(position.id), subordinates)

        self._deactivate_position(position, actor, f"Position {position.code} deactivated")
        return position.to_dto()

    def _deactivate_position(self, position: Position, actor: UUID, summary: str) -> None:
        before = position.to_dto().to_dict()
        position.is_active = False
        position.deactivated_at = self.clock.now()
        position.updated_by_id = actor
        self.session.flush()
        self._log(ChangeLogAction.DEACTIVATED, position, actor, summary, before)
        logger.info("position_deactivated", extra={"position_id": str(position.id)})

        if not self._policy.clear_head_on_position_removal:
            return
        headed = self.session.execute(
            select(Department)
            .where(Department.head_position_id == position.id)
            .order_by(Department.code)
        ).scalars().all()
        for department in headed:
            dept_before = department.to_dto().to_dict()
            department.head_position_id = None
            department.updated_by_id = actor
            self.session.flush()
            self._log(
                ChangeLogAction.REASSIGNED,
                department,
                actor,
                f"Department {department.code} head cleared: position {position.code} deactivated",
                dept_before,
            )
            logger.info(
                "department_head_cleared",
                extra={"department_id": str(department.id), "position_id": str(position.id)},
            )

    def assign_reporting_position(
        self,
        position_id: Any,
        reports_to_position_id: Any,
        actor_id: Any,
    ) -> PositionInfo:
        """
        Point ``position_id`` at a new supervisor, or clear it with None.

        Raises:
            SelfReportingError: the position would report to itself.
            ReportingCycleError: the new supervisor's chain reaches the position.
            InvalidReferenceError: the supervisor is missing or inactive.
        """
        position = self._get_position(position_id)
        actor = parse_identifier(actor_id, "actor_id")
        reports_to = parse_optional_identifier(reports_to_position_id, "reports_to_position_id")

        if reports_to is not None:
            self._validator.validate_reporting_edge(position.id, reports_to)

        if position.reports_to_position_id == reports_to:
            return position.to_dto()

        before = position.to_dto().to_dict()
        position.reports_to_position_id = reports_to
        position.updated_by_id = actor
        self.session.flush()

        summary = (
            f"Position {position.code} now reports to {reports_to}"
            if reports_to is not None
            else f"Position {position.code} reporting line cleared"
        )
        self._log(ChangeLogAction.REASSIGNED, position, actor, summary, before)
        logger.info(
            "reporting_line_assigned",
            extra={
                "position_id": str(position.id),
                "reports_to_position_id": str(reports_to) if reports_to else None,
            },
        )
        return position.to_dto()

    def assign_department_to_position(
        self,
        position_id: Any,
        department_id: Any,
        actor_id: Any,
    ) -> PositionInfo:
        """
        Move a position to another active department.

        Raises:
            NoOpChangeError: the position already belongs to that department.
        """
        position = self._get_position(position_id)
        actor = parse_identifier(actor_id, "actor_id")
        dept_id = parse_identifier(department_id, "department_id")

        self._validator.require_active_department(dept_id, "department_id")

        if position.department_id == dept_id:
            raise NoOpChangeError(
                "Position",
                str(position.id),
                "Position is already assigned to this department",
            )

        before = position.to_dto().to_dict()
        position.department_id = dept_id
        position.updated_by_id = actor
        self.session.flush()

        self._log(
            ChangeLogAction.REASSIGNED,
            position,
            actor,
            f"Position {position.code} moved to department {dept_id}",
            before,
        )
        logger.info(
            "position_department_assigned",
            extra={"position_id": str(position.id), "department_id": str(dept_id)},
        )
        return position.to_dto()
