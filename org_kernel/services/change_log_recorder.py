"""
ChangeLogRecorder -- append-only writer for hierarchy history.

Every HierarchyStore mutation calls ``record`` with before/after snapshots.
Entries are ordered by a ``structure_change_log`` sequence value and are
immutable once flushed (db/immutability.py).
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from org_kernel.domain.change_log import (
    ChangeLogAction,
    ChangeLogEntryInfo,
    StructureEntityType,
)
from org_kernel.domain.clock import Clock
from org_kernel.logging_config import get_logger
from org_kernel.models.change_log import StructureChangeLog
from org_kernel.services.base import BaseService
from org_kernel.services.notifications import ListenerDispatcher
from org_kernel.services.sequence_service import SequenceService

logger = get_logger("services.change_log")


class ChangeLogRecorder(BaseService[StructureChangeLog]):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        dispatcher: ListenerDispatcher | None = None,
    ):
        super().__init__(session, clock)
        self._sequences = SequenceService(session)
        self._dispatcher = dispatcher or ListenerDispatcher()

    def record(
        self,
        action: ChangeLogAction,
        entity_type: StructureEntityType,
        entity_id: UUID,
        performed_by_id: UUID,
        summary: str,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        change_request_id: UUID | None = None,
    ) -> ChangeLogEntryInfo:
        entry = StructureChangeLog(
            seq=self._sequences.next_value(SequenceService.STRUCTURE_CHANGE_LOG),
            action=action.value,
            entity_type=entity_type.value,
            entity_id=entity_id,
            performed_by_id=performed_by_id,
            recorded_at=self.clock.now(),
            summary=summary,
            before_snapshot=before,
            after_snapshot=after,
            change_request_id=change_request_id,
        )
        self.session.add(entry)
        self.session.flush()

        info = entry.to_dto()
        logger.debug(
            "structure_change_logged",
            extra={
                "seq": entry.seq,
                "action": action.value,
                "entity_type": entity_type.value,
                "entity_id": str(entity_id),
            },
        )
        self._dispatcher.structure_changed(info)
        return info
