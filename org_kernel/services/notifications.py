"""
Structure change notifications.

Optional sink informed after a change request changes status and after
every hierarchy mutation.  Delivery is best effort: a listener that raises
is logged with its traceback and the kernel operation still succeeds, since
the operation has already been flushed and the sink is not part of the
unit of work.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from org_kernel.domain.change_log import ChangeLogEntryInfo
from org_kernel.domain.change_request import ChangeRequestInfo, StructureRequestStatus
from org_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


@runtime_checkable
class StructureChangeListener(Protocol):
    def change_request_transitioned(
        self,
        request: ChangeRequestInfo,
        previous_status: StructureRequestStatus | None,
    ) -> None:
        """Called after a request is created (previous_status None) or changes status."""
        ...

    def structure_changed(self, entry: ChangeLogEntryInfo) -> None:
        """Called after a department or position mutation is logged."""
        ...


class ListenerDispatcher:
    """Calls an optional listener and contains its failures."""

    def __init__(self, listener: StructureChangeListener | None = None):
        self._listener = listener

    def request_transitioned(
        self,
        request: ChangeRequestInfo,
        previous_status: StructureRequestStatus | None,
    ) -> None:
        if self._listener is None:
            return
        try:
            self._listener.change_request_transitioned(request, previous_status)
        except Exception:
            logger.warning(
                "notification_delivery_failed",
                extra={
                    "hook": "change_request_transitioned",
                    "request_number": request.request_number,
                    "status": request.status.value,
                },
                exc_info=True,
            )

    def structure_changed(self, entry: ChangeLogEntryInfo) -> None:
        if self._listener is None:
            return
        try:
            self._listener.structure_changed(entry)
        except Exception:
            logger.warning(
                "notification_delivery_failed",
                extra={
                    "hook": "structure_changed",
                    "entity_type": entry.entity_type.value,
                    "entity_id": str(entry.entity_id),
                },
                exc_info=True,
            )
