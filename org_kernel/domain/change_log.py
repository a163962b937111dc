"""Structure change log value objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class ChangeLogAction(str, Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    DEACTIVATED = "DEACTIVATED"
    REASSIGNED = "REASSIGNED"


class StructureEntityType(str, Enum):
    DEPARTMENT = "Department"
    POSITION = "Position"


@dataclass(frozen=True)
class ChangeLogEntryInfo:
    """One immutable entry of the hierarchy change log."""

    id: UUID
    seq: int
    action: ChangeLogAction
    entity_type: StructureEntityType
    entity_id: UUID
    performed_by_id: UUID
    recorded_at: datetime
    summary: str
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    change_request_id: UUID | None = None
    changed_fields: tuple[str, ...] = field(default=())


def diff_fields(before: dict[str, Any] | None, after: dict[str, Any] | None) -> tuple[str, ...]:
    """Sorted names of keys whose values differ between two snapshots."""
    before = before or {}
    after = after or {}
    keys = set(before) | set(after)
    return tuple(sorted(k for k in keys if before.get(k) != after.get(k)))
