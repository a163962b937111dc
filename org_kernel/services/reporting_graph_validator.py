"""
Module: org_kernel.services.reporting_graph_validator
Responsibility: Guards the reporting-line graph.  Rejects self-reference and
    cycles before a ``reports_to_position_id`` edge is written, and confirms
    that referenced departments and positions exist and are active.
Architecture position: Kernel > Services.  Database-backed wrapper around the
    pure walk in ``org_kernel.domain.reporting_graph``.  Used by HierarchyStore
    (creation, update, reassignment) and ChangeRequestWorkflow (targets).

Invariants enforced:
    - A position never reports to itself (O(1) check before any walk).
    - Active reporting lines form a forest: the upward walk from the new
      supervisor must not reach the position being edited.
    - With ``lock_rows=True`` every position row read by the walk, and the
      edited position itself, is locked with SELECT ... FOR UPDATE in the
      writer's transaction.  Two writers that would jointly close a cycle
      meet on a shared row; the later one re-reads the committed parent
      pointer and sees the cycle.

Failure modes:
    - SelfReportingError, ReportingCycleError (BadRequest kind).
    - InvalidReferenceError when a referenced entity is missing or inactive.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from org_kernel.domain.reporting_graph import check_reporting_edge
from org_kernel.exceptions import (
    InvalidReferenceError,
    ReportingCycleError,
    SelfReportingError,
)
from org_kernel.logging_config import get_logger
from org_kernel.models.department import Department
from org_kernel.models.position import Position

logger = get_logger("services.reporting_graph")


class ReportingGraphValidator:
    """
    Contract:
        Read-only with respect to hierarchy data; never flushes or writes.
        Callers persist the edge only after ``validate_reporting_edge``
        returns.
    """

    def __init__(self, session: Session, lock_rows: bool = False):
        self.session = session
        self._lock_rows = lock_rows

    def _load_position(self, position_id: UUID) -> Position | None:
        if not self._lock_rows:
            return self.session.get(Position, position_id)
        return self.session.execute(
            select(Position)
            .where(Position.id == position_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _parent_of(self, position_id: UUID) -> UUID | None:
        position = self._load_position(position_id)
        if position is None:
            return None
        return position.reports_to_position_id

    # ------------------------------------------------------------------
    # Reference checks
    # ------------------------------------------------------------------

    def require_active_position(self, position_id: UUID, field: str) -> Position:
        position = self.session.get(Position, position_id)
        if position is None:
            raise InvalidReferenceError(field, "Position", str(position_id), "missing")
        if not position.is_active:
            raise InvalidReferenceError(field, "Position", str(position_id), "inactive")
        return position

    def require_active_department(self, department_id: UUID, field: str) -> Department:
        department = self.session.get(Department, department_id)
        if department is None:
            raise InvalidReferenceError(field, "Department", str(department_id), "missing")
        if not department.is_active:
            raise InvalidReferenceError(field, "Department", str(department_id), "inactive")
        return department

    # ------------------------------------------------------------------
    # Edge validation
    # ------------------------------------------------------------------

    def validate_reporting_edge(self, position_id: UUID, reports_to_id: UUID) -> Position:
        """
        Validate ``position_id -> reports_to_id`` and return the supervisor row.

        Raises:
            SelfReportingError: position_id == reports_to_id.
            InvalidReferenceError: supervisor missing or inactive.
            ReportingCycleError: the supervisor's chain reaches position_id.
        """
        if position_id == reports_to_id:
            logger.warning(
                "self_reporting_rejected",
                extra={"position_id": str(position_id)},
            )
            raise SelfReportingError(str(position_id))

        supervisor = self.require_active_position(reports_to_id, "reports_to_position_id")

        if self._lock_rows:
            self._load_position(position_id)

        check = check_reporting_edge(position_id, reports_to_id, self._parent_of)

        if check.preexisting_loop:
            logger.warning(
                "reporting_loop_found_in_store",
                extra={
                    "position_id": str(position_id),
                    "reports_to_position_id": str(reports_to_id),
                },
            )

        if check.creates_cycle:
            path = [str(p) for p in check.path]
            logger.warning(
                "cycle_detected_in_reporting_graph",
                extra={
                    "position_id": str(position_id),
                    "reports_to_position_id": str(reports_to_id),
                    "cycle_path": path,
                },
            )
            raise ReportingCycleError(str(position_id), str(reports_to_id), path)

        return supervisor
