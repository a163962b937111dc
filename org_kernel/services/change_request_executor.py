"""
Module: org_kernel.services.change_request_executor
Responsibility: Apply an APPROVED structure change request to the hierarchy.
Architecture position: Kernel > Services.  Dispatches on request type to
    HierarchyStore, then asks ChangeRequestWorkflow to stamp the request as
    implemented.  Both writes share the caller's transaction, so a failed
    hierarchy change leaves the request unapplied.

Invariants enforced:
    - Only APPROVED, not-yet-implemented requests are applied.
    - Every change log entry written while applying carries the request id.
    - Status stays APPROVED; implemented_at / implemented_by_id record the
      application.
"""

from __future__ import annotations

from typing import Any, Callable
from uuid import UUID

from sqlalchemy.orm import Session

from org_kernel.domain.change_request import ChangeRequestInfo, StructureRequestType
from org_kernel.domain.clock import Clock
from org_kernel.domain.identifiers import parse_identifier
from org_kernel.domain.policy import StructurePolicy
from org_kernel.logging_config import LogContext, get_logger
from org_kernel.services.change_request_workflow import ChangeRequestWorkflow
from org_kernel.services.hierarchy_store import HierarchyStore
from org_kernel.services.notifications import ListenerDispatcher

logger = get_logger("services.change_request_executor")

Handler = Callable[[HierarchyStore, ChangeRequestInfo, UUID], Any]


def _new_department(store: HierarchyStore, request: ChangeRequestInfo, actor: UUID):
    details = request.details
    return store.create_department(
        details["code"],
        details["name"],
        actor,
        description=details.get("description"),
        head_position_id=details.get("head_position_id"),
    )


def _update_department(store: HierarchyStore, request: ChangeRequestInfo, actor: UUID):
    return store.update_department(request.target_department_id, actor, **request.details)


def _close_department(store: HierarchyStore, request: ChangeRequestInfo, actor: UUID):
    return store.remove_department(request.target_department_id, actor)


def _new_position(store: HierarchyStore, request: ChangeRequestInfo, actor: UUID):
    details = request.details
    return store.create_position(
        details["code"],
        details["title"],
        request.target_department_id,
        actor,
        reports_to_position_id=details.get("reports_to_position_id"),
        description=details.get("description"),
    )


def _update_position(store: HierarchyStore, request: ChangeRequestInfo, actor: UUID):
    return store.update_position(request.target_position_id, actor, **request.details)


def _close_position(store: HierarchyStore, request: ChangeRequestInfo, actor: UUID):
    return store.remove_position(request.target_position_id, actor)


def _reassign_head(store: HierarchyStore, request: ChangeRequestInfo, actor: UUID):
    return store.assign_department_head(
        request.target_department_id, request.details["head_position_id"], actor
    )


def _change_reporting_line(store: HierarchyStore, request: ChangeRequestInfo, actor: UUID):
    return store.assign_reporting_position(
        request.target_position_id, request.details["reports_to_position_id"], actor
    )


_HANDLERS: dict[StructureRequestType, Handler] = {
    StructureRequestType.NEW_DEPARTMENT: _new_department,
    StructureRequestType.UPDATE_DEPARTMENT: _update_department,
    StructureRequestType.CLOSE_DEPARTMENT: _close_department,
    StructureRequestType.NEW_POSITION: _new_position,
    StructureRequestType.UPDATE_POSITION: _update_position,
    StructureRequestType.CLOSE_POSITION: _close_position,
    StructureRequestType.REASSIGN_HEAD: _reassign_head,
    StructureRequestType.CHANGE_REPORTING_LINE: _change_reporting_line,
}


class ChangeRequestExecutor:
    """
    Turns approved requests into hierarchy changes.

    Usage:
        executor = ChangeRequestExecutor(session, clock)
        info = executor.apply(request_id, actor_id)
        session.commit()
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: StructurePolicy | None = None,
        dispatcher: ListenerDispatcher | None = None,
        workflow: ChangeRequestWorkflow | None = None,
    ):
        self.session = session
        self._clock = clock
        self._policy = policy
        self._dispatcher = dispatcher
        self._workflow = workflow or ChangeRequestWorkflow(session, clock, policy, dispatcher)

    def apply(self, request_id: Any, actor_id: Any) -> ChangeRequestInfo:
        """
        Apply the request's change and stamp it implemented.

        Raises:
            InvalidRequestTransitionError: the request is not APPROVED.
            ChangeRequestAlreadyImplementedError: already applied.
            Any hierarchy error raised by the underlying store operation.
        """
        request = self._workflow.ensure_applicable(request_id)
        actor = parse_identifier(actor_id, "actor_id")
        request_type = StructureRequestType(request.request_type)

        store = HierarchyStore(
            self.session,
            self._clock,
            self._policy,
            self._dispatcher,
            change_request_id=request.id,
        )
        with LogContext.bind(change_request_id=str(request.id), actor_id=str(actor)):
            logger.info(
                "change_request_apply_started",
                extra={
                    "request_number": request.request_number,
                    "request_type": request_type.value,
                },
            )
            _HANDLERS[request_type](store, request, actor)
            return self._workflow.mark_implemented(request.id, actor)
