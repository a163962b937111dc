"""
Module: org_kernel.selectors.org_tree_selector
Responsibility: Nested read views over the flat hierarchy: reporting chains,
    position trees, direct reports and per-department org charts.
Architecture position: Kernel > Selectors.  Loads rows, converts them to
    DTOs and hands tree building to ``org_kernel.domain.hierarchy``.

Invariants enforced:
    - Never mutates.
    - Deterministic ordering: roots and siblings by (title, id), departments
      by (name, code).
    - Each position list is loaded with one query and indexed by parent, so
      tree building is O(n).

Failure modes:
    - PositionNotFoundError / DepartmentNotFoundError when the subject id of
      a query does not exist.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from org_kernel.domain.clock import Clock, SystemClock
from org_kernel.domain.hierarchy import (
    ChartStatistics,
    DepartmentInfo,
    OrgChart,
    OrgChartEntry,
    PositionInfo,
    PositionNode,
    SimplifiedChartEntry,
    build_position_forest,
)
from org_kernel.domain.identifiers import parse_identifier
from org_kernel.domain.policy import StructurePolicy
from org_kernel.domain.reporting_graph import reporting_chain
from org_kernel.exceptions import DepartmentNotFoundError, PositionNotFoundError
from org_kernel.logging_config import get_logger
from org_kernel.models.department import Department
from org_kernel.models.position import Position
from org_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.org_tree")


class OrgTreeSelector(BaseSelector[Position]):
    """Read-only tree and chart builder."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: StructurePolicy | None = None,
    ):
        super().__init__(session, policy)
        self.clock = clock or SystemClock()

    def _position(self, position_id: Any) -> Position:
        pos_uuid = parse_identifier(position_id, "position_id")
        position = self.session.get(Position, pos_uuid)
        if position is None:
            raise PositionNotFoundError(str(pos_uuid))
        return position

    def _department(self, department_id: Any) -> Department:
        dept_uuid = parse_identifier(department_id, "department_id")
        department = self.session.get(Department, dept_uuid)
        if department is None:
            raise DepartmentNotFoundError(str(dept_uuid))
        return department

    def _active_positions(self, department_ids: list[UUID] | None = None) -> list[PositionInfo]:
        stmt = select(Position).where(Position.is_active.is_(True))
        if department_ids is not None:
            stmt = stmt.where(Position.department_id.in_(department_ids))
        stmt = stmt.order_by(Position.title, Position.id)
        return [p.to_dto() for p in self.session.execute(stmt).scalars()]

    # ------------------------------------------------------------------
    # Chains and trees
    # ------------------------------------------------------------------

    def get_reporting_chain(self, position_id: Any) -> list[PositionInfo]:
        """Ancestors of the position, immediate supervisor first."""
        position = self._position(position_id)

        def parent_of(pid: UUID) -> UUID | None:
            row = self.session.get(Position, pid)
            return row.reports_to_position_id if row is not None else None

        ids, loop_detected = reporting_chain(position.id, parent_of)
        if loop_detected:
            logger.warning(
                "reporting_loop_found_in_store",
                extra={"position_id": str(position.id), "chain_length": len(ids)},
            )

        chain = []
        for pid in ids:
            row = self.session.get(Position, pid)
            if row is None:
                break
            chain.append(row.to_dto())
        return chain

    def get_position_hierarchy(self, root_position_id: Any = None) -> tuple[PositionNode, ...]:
        """
        Trees of active positions.

        With a root id the result is that single tree (empty if the root is
        inactive).  Without one, every active position that has no
        supervisor starts a tree.
        """
        if root_position_id is not None:
            root = self._position(root_position_id)
            if not root.is_active:
                return ()
            return build_position_forest(self._active_positions(), roots=[root.to_dto()])

        positions = self._active_positions()
        roots = [p for p in positions if p.reports_to_position_id is None]
        return build_position_forest(positions, roots=roots)

    def get_direct_reports(self, position_id: Any) -> list[PositionInfo]:
        position = self._position(position_id)
        rows = self.session.execute(
            select(Position)
            .where(
                Position.reports_to_position_id == position.id,
                Position.is_active.is_(True),
            )
            .order_by(Position.title, Position.id)
        ).scalars()
        return [row.to_dto() for row in rows]

    def get_positions_by_department(self, department_id: Any) -> list[PositionInfo]:
        department = self._department(department_id)
        return self._active_positions([department.id])

    # ------------------------------------------------------------------
    # Org charts
    # ------------------------------------------------------------------

    def _departments_in_scope(self, department_id: Any) -> list[DepartmentInfo]:
        if department_id is not None:
            department = self._department(department_id)
            return [department.to_dto()] if department.is_active else []
        rows = self.session.execute(
            select(Department)
            .where(Department.is_active.is_(True))
            .order_by(Department.name, Department.code)
        ).scalars()
        return [row.to_dto() for row in rows]

    def _positions_by_department(
        self, departments: list[DepartmentInfo]
    ) -> dict[UUID, list[PositionInfo]]:
        grouped: dict[UUID, list[PositionInfo]] = defaultdict(list)
        if not departments:
            return grouped
        for position in self._active_positions([d.id for d in departments]):
            grouped[position.department_id].append(position)
        return grouped

    def generate_org_chart(self, department_id: Any = None) -> OrgChart:
        """
        Per-department position trees for every active department in scope.

        Inside a department, a position whose supervisor is not one of the
        department's active positions is a root of that department's chart.
        """
        departments = self._departments_in_scope(department_id)
        grouped = self._positions_by_department(departments)

        entries = tuple(
            OrgChartEntry(
                department=department,
                positions=build_position_forest(grouped.get(department.id, [])),
                statistics=ChartStatistics.for_positions(len(grouped.get(department.id, []))),
            )
            for department in departments
        )
        logger.debug(
            "org_chart_generated",
            extra={
                "department_count": len(entries),
                "position_count": sum(e.statistics.total_positions for e in entries),
            },
        )
        return OrgChart(generated_at=self.clock.now(), departments=entries)

    def generate_simplified_org_chart(self, department_id: Any = None) -> tuple[SimplifiedChartEntry, ...]:
        """Flat position listings per active department."""
        departments = self._departments_in_scope(department_id)
        grouped = self._positions_by_department(departments)
        return tuple(
            SimplifiedChartEntry(
                department=department,
                positions=tuple(grouped.get(department.id, [])),
            )
            for department in departments
        )
