"""
Module: org_kernel.selectors.hierarchy_selector
Responsibility: Paginated listings of departments and positions.
Architecture position: Kernel > Selectors.

Search is a case-insensitive substring match over code and name (departments)
or code and title (positions).  Results are ordered by name/title, then code.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, or_, select

from org_kernel.domain.hierarchy import Page
from org_kernel.domain.identifiers import parse_optional_identifier
from org_kernel.exceptions import InvalidFieldError
from org_kernel.models.department import Department
from org_kernel.models.position import Position
from org_kernel.selectors.base import BaseSelector


def _search_term(search: Any) -> str | None:
    if search is None:
        return None
    if not isinstance(search, str):
        raise InvalidFieldError("search", "must be a string")
    return search.strip().lower() or None


def _active_flag(is_active: Any) -> bool | None:
    if is_active is not None and not isinstance(is_active, bool):
        raise InvalidFieldError("is_active", "must be true, false or omitted")
    return is_active


class HierarchySelector(BaseSelector[Department]):

    def list_departments(
        self,
        search: str | None = None,
        is_active: bool | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page:
        term = _search_term(search)
        active = _active_flag(is_active)

        stmt = select(Department)
        if term:
            stmt = stmt.where(
                or_(
                    func.lower(Department.code).contains(term, autoescape=True),
                    func.lower(Department.name).contains(term, autoescape=True),
                )
            )
        if active is not None:
            stmt = stmt.where(Department.is_active.is_(active))
        stmt = stmt.order_by(Department.name, Department.code)
        return self._paginate(stmt, lambda row: row.to_dto(), page, limit)

    def list_positions(
        self,
        search: str | None = None,
        is_active: bool | None = None,
        department_id: Any = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page:
        term = _search_term(search)
        active = _active_flag(is_active)
        dept_id = parse_optional_identifier(department_id, "department_id")

        stmt = select(Position)
        if term:
            stmt = stmt.where(
                or_(
                    func.lower(Position.code).contains(term, autoescape=True),
                    func.lower(Position.title).contains(term, autoescape=True),
                )
            )
        if active is not None:
            stmt = stmt.where(Position.is_active.is_(active))
        if dept_id is not None:
            stmt = stmt.where(Position.department_id == dept_id)
        stmt = stmt.order_by(Position.title, Position.code)
        return self._paginate(stmt, lambda row: row.to_dto(), page, limit)
