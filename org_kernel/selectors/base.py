"""
Module: org_kernel.selectors.base
Responsibility: Common base for read-only query selectors and the shared
    pagination helper.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never call add(), delete(), flush() or commit().
    - Public methods return frozen DTOs, never ORM instances.
"""

from __future__ import annotations

from abc import ABC
from typing import Any, Callable, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from org_kernel.db.base import Base
from org_kernel.domain.hierarchy import Page
from org_kernel.domain.policy import DEFAULT_POLICY, StructurePolicy
from org_kernel.exceptions import InvalidFieldError

ModelType = TypeVar("ModelType", bound=Base)


def _positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidFieldError(field, "must be an integer")
    if value < 1:
        raise InvalidFieldError(field, "must be at least 1")
    return value


class BaseSelector(ABC, Generic[ModelType]):
    """
    Contract:
        Selectors accept a Session from the caller, run queries and return
        DTOs.  The caller owns the session and its transaction.
    """

    def __init__(self, session: Session, policy: StructurePolicy | None = None):
        self.session = session
        self._policy = policy or DEFAULT_POLICY

    def _paginate(
        self,
        stmt: Select,
        to_dto: Callable[[ModelType], Any],
        page: int = 1,
        limit: int | None = None,
        default_limit: int | None = None,
    ) -> Page:
        """
        Run ``stmt`` for one page.

        ``limit`` is clamped to ``policy.max_page_size``; when omitted the
        ``default_limit`` (or ``policy.default_page_size``) applies.
        """
        page = _positive_int(page, "page")
        if limit is None:
            limit = default_limit or self._policy.default_page_size
        limit = min(_positive_int(limit, "limit"), self._policy.max_page_size)

        total = self.session.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        ).scalar_one()
        rows = self.session.execute(
            stmt.offset((page - 1) * limit).limit(limit)
        ).scalars()
        return Page(
            items=tuple(to_dto(row) for row in rows),
            total=total,
            page=page,
            limit=limit,
        )
