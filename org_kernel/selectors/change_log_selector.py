"""
Module: org_kernel.selectors.change_log_selector
Responsibility: Filtered, paginated reads of the structure change log.
Architecture position: Kernel > Selectors.

Entries are returned newest first (recorded_at, then seq, descending).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select

from org_kernel.domain.change_log import ChangeLogAction, ChangeLogEntryInfo, StructureEntityType
from org_kernel.domain.hierarchy import Page
from org_kernel.domain.identifiers import parse_optional_identifier
from org_kernel.exceptions import InvalidFieldError
from org_kernel.models.change_log import StructureChangeLog
from org_kernel.selectors.base import BaseSelector


def _parse_enum(enum_cls, value: Any, field: str):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidFieldError(field, f"must be one of {[m.value for m in enum_cls]}") from None


def _parse_bound(value: Any, field: str) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, datetime):
        raise InvalidFieldError(field, "must be a datetime")
    if value.tzinfo is None:
        raise InvalidFieldError(field, "must be timezone-aware")
    return value


class ChangeLogSelector(BaseSelector[StructureChangeLog]):

    def list_change_logs(
        self,
        action: Any = None,
        entity_type: Any = None,
        entity_id: Any = None,
        performed_by_id: Any = None,
        change_request_id: Any = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page:
        """
        List entries.  ``start`` is inclusive and ``end`` exclusive; both
        must be timezone-aware.
        """
        parsed_action = _parse_enum(ChangeLogAction, action, "action")
        parsed_type = _parse_enum(StructureEntityType, entity_type, "entity_type")
        entity = parse_optional_identifier(entity_id, "entity_id")
        actor = parse_optional_identifier(performed_by_id, "performed_by_id")
        request = parse_optional_identifier(change_request_id, "change_request_id")
        start = _parse_bound(start, "start")
        end = _parse_bound(end, "end")
        if start is not None and end is not None and start >= end:
            raise InvalidFieldError("end", "must be after start")

        stmt = select(StructureChangeLog)
        if parsed_action is not None:
            stmt = stmt.where(StructureChangeLog.action == parsed_action.value)
        if parsed_type is not None:
            stmt = stmt.where(StructureChangeLog.entity_type == parsed_type.value)
        if entity is not None:
            stmt = stmt.where(StructureChangeLog.entity_id == entity)
        if actor is not None:
            stmt = stmt.where(StructureChangeLog.performed_by_id == actor)
        if request is not None:
            stmt = stmt.where(StructureChangeLog.change_request_id == request)
        if start is not None:
            stmt = stmt.where(StructureChangeLog.recorded_at >= start)
        if end is not None:
            stmt = stmt.where(StructureChangeLog.recorded_at < end)

        stmt = stmt.order_by(StructureChangeLog.recorded_at.desc(), StructureChangeLog.seq.desc())
        return self._paginate(
            stmt,
            lambda row: row.to_dto(),
            page,
            limit,
            default_limit=self._policy.change_log_page_size,
        )

    def history_for(self, entity_id: Any) -> list[ChangeLogEntryInfo]:
        """Every entry for one entity, oldest first."""
        entity = parse_optional_identifier(entity_id, "entity_id")
        if entity is None:
            raise InvalidFieldError("entity_id", "is required")
        rows = self.session.execute(
            select(StructureChangeLog)
            .where(StructureChangeLog.entity_id == entity)
            .order_by(StructureChangeLog.recorded_at, StructureChangeLog.seq)
        ).scalars()
        return [row.to_dto() for row in rows]
