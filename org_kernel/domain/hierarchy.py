"""
Hierarchy value objects and tree construction.

Responsibility:
    Frozen DTOs for departments and positions, the nested tree / org chart
    shapes returned to callers, and ``build_position_forest``, the pure
    function that turns a flat position list into ordered trees.

Architecture position:
    Kernel > Domain.  Pure, no I/O; selectors load rows and call in here.

Ordering:
    Siblings and roots are ordered by (title, str(id)).  Two calls over the
    same data always produce identical output.

Complexity:
    Children are pre-indexed by parent id once, so building a forest is O(n)
    in the number of positions (plus the sort).
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Sequence
from uuid import UUID


@dataclass(frozen=True)
class DepartmentInfo:
    id: UUID
    code: str
    name: str
    description: str | None
    head_position_id: UUID | None
    is_active: bool
    activated_at: datetime | None = None
    deactivated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "head_position_id": str(self.head_position_id) if self.head_position_id else None,
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class PositionInfo:
    id: UUID
    code: str
    title: str
    description: str | None
    department_id: UUID
    reports_to_position_id: UUID | None
    is_active: bool
    activated_at: datetime | None = None
    deactivated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "code": self.code,
            "title": self.title,
            "description": self.description,
            "department_id": str(self.department_id),
            "reports_to_position_id": (
                str(self.reports_to_position_id) if self.reports_to_position_id else None
            ),
            "is_active": self.is_active,
        }


def position_sort_key(position: PositionInfo) -> tuple[str, str]:
    return (position.title, str(position.id))


@dataclass(frozen=True)
class PositionNode:
    """One node of a position tree: the position plus its ordered children."""

    position: PositionInfo
    children: tuple[PositionNode, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data = self.position.to_dict()
        data["children"] = [child.to_dict() for child in self.children]
        return data

    def walk(self) -> Iterable[PositionNode]:
        """Pre-order traversal."""
        yield self
        for child in self.children:
            yield from child.walk()

    @property
    def size(self) -> int:
        return sum(1 for _ in self.walk())


def build_position_forest(
    positions: Sequence[PositionInfo],
    roots: Sequence[PositionInfo] | None = None,
) -> tuple[PositionNode, ...]:
    """
    Build ordered trees from a flat position list.

    Args:
        positions: The scope.  Only positions in this list appear as children.
        roots: Explicit roots.  When None, every position whose supervisor is
            not part of ``positions`` (no supervisor, or one outside the scope)
            is a root.

    A position is attached at most once.  Nodes that only sit on a stored
    cycle are unreachable from any root and therefore never emitted.
    """
    by_id = {p.id: p for p in positions}
    children_of: dict[UUID, list[PositionInfo]] = defaultdict(list)
    for p in positions:
        if p.reports_to_position_id is not None and p.reports_to_position_id in by_id:
            children_of[p.reports_to_position_id].append(p)
    for siblings in children_of.values():
        siblings.sort(key=position_sort_key)

    if roots is None:
        roots = [
            p for p in positions
            if p.reports_to_position_id is None or p.reports_to_position_id not in by_id
        ]
    ordered_roots = sorted(roots, key=position_sort_key)

    placed: set[UUID] = set()

    def _build(position: PositionInfo) -> PositionNode:
        placed.add(position.id)
        kids = tuple(
            _build(child)
            for child in children_of.get(position.id, ())
            if child.id not in placed
        )
        return PositionNode(position=position, children=kids)

    return tuple(_build(root) for root in ordered_roots if root.id not in placed)


# ---------------------------------------------------------------------------
# Org chart shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChartStatistics:
    """Per-department counts.

    Filled/vacant are placeholders until position assignments exist: every
    active position counts as vacant.
    """

    total_positions: int
    filled_positions: int = 0
    vacant_positions: int = 0

    @classmethod
    def for_positions(cls, count: int) -> ChartStatistics:
        return cls(total_positions=count, filled_positions=0, vacant_positions=count)


@dataclass(frozen=True)
class OrgChartEntry:
    department: DepartmentInfo
    positions: tuple[PositionNode, ...]
    statistics: ChartStatistics

    def to_dict(self) -> dict[str, Any]:
        return {
            "department": self.department.to_dict(),
            "positions": [node.to_dict() for node in self.positions],
            "statistics": {
                "total_positions": self.statistics.total_positions,
                "filled_positions": self.statistics.filled_positions,
                "vacant_positions": self.statistics.vacant_positions,
            },
        }


@dataclass(frozen=True)
class OrgChart:
    generated_at: datetime
    departments: tuple[OrgChartEntry, ...]

    @property
    def total_departments(self) -> int:
        return len(self.departments)

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "total_departments": self.total_departments,
            "departments": [entry.to_dict() for entry in self.departments],
        }


@dataclass(frozen=True)
class SimplifiedChartEntry:
    """Flat listing of a department's active positions."""

    department: DepartmentInfo
    positions: tuple[PositionInfo, ...]

    @property
    def position_count(self) -> int:
        return len(self.positions)


@dataclass(frozen=True)
class Page:
    """One page of a paginated listing (1-based page numbers)."""

    items: tuple[Any, ...]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return (self.total + self.limit - 1) // self.limit
