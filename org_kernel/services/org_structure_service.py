"""
Module: org_kernel.services.org_structure_service
Responsibility: Single entry point wiring the hierarchy, workflow and query
    components over one session, clock, policy and listener.
Architecture position: Kernel > Services.  The caller (HTTP tier, CLI, tests)
    builds one instance per unit of work and owns commit/rollback.

Every operation delegates; the facade adds no rules of its own beyond
turning "find by code" misses into NotFound.

Usage:
    with session_scope() as session:
        org = OrgStructureService(session, policy=get_active_policy())
        eng = org.create_department("ENG", "Engineering", actor_id)
"""

from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy.orm import Session

from org_kernel.domain.change_log import ChangeLogEntryInfo
from org_kernel.domain.change_request import (
    ApprovalRecordInfo,
    ChangeRequestInfo,
    StructureRequestType,
)
from org_kernel.domain.clock import Clock, SystemClock
from org_kernel.domain.hierarchy import (
    DepartmentInfo,
    OrgChart,
    Page,
    PositionInfo,
    PositionNode,
    SimplifiedChartEntry,
)
from org_kernel.domain.policy import DEFAULT_POLICY, StructurePolicy
from org_kernel.exceptions import DepartmentNotFoundError, PositionNotFoundError
from org_kernel.selectors.change_log_selector import ChangeLogSelector
from org_kernel.selectors.change_request_selector import ChangeRequestSelector
from org_kernel.selectors.hierarchy_selector import HierarchySelector
from org_kernel.selectors.org_tree_selector import OrgTreeSelector
from org_kernel.services.change_request_executor import ChangeRequestExecutor
from org_kernel.services.change_request_workflow import ChangeRequestWorkflow
from org_kernel.services.hierarchy_store import HierarchyStore
from org_kernel.services.notifications import ListenerDispatcher, StructureChangeListener


class OrgStructureService:
    """
    Facade over the org structure kernel.

    Args:
        session: Caller-owned session.  Nothing here commits.
        clock: Shared by every component; defaults to SystemClock.
        policy: StructurePolicy (usually from ``org_config.get_active_policy``).
        listener: Optional StructureChangeListener for transitions and
            hierarchy changes.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: StructurePolicy | None = None,
        listener: StructureChangeListener | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.policy = policy or DEFAULT_POLICY
        dispatcher = ListenerDispatcher(listener)

        self.hierarchy = HierarchyStore(session, self.clock, self.policy, dispatcher)
        self.workflow = ChangeRequestWorkflow(session, self.clock, self.policy, dispatcher)
        self.executor = ChangeRequestExecutor(
            session, self.clock, self.policy, dispatcher, workflow=self.workflow
        )
        self.org_tree = OrgTreeSelector(session, self.clock, self.policy)
        self.listings = HierarchySelector(session, self.policy)
        self.requests = ChangeRequestSelector(session, self.policy)
        self.change_logs = ChangeLogSelector(session, self.policy)

    # ------------------------------------------------------------------
    # Departments
    # ------------------------------------------------------------------

    def create_department(
        self,
        code: str,
        name: str,
        actor_id: Any,
        description: str | None = None,
        head_position_id: Any = None,
    ) -> DepartmentInfo:
        return self.hierarchy.create_department(
            code, name, actor_id, description=description, head_position_id=head_position_id
        )

    def update_department(self, department_id: Any, actor_id: Any, **patch: Any) -> DepartmentInfo:
        return self.hierarchy.update_department(department_id, actor_id, **patch)

    def remove_department(self, department_id: Any, actor_id: Any) -> DepartmentInfo:
        return self.hierarchy.remove_department(department_id, actor_id)

    def assign_department_head(
        self, department_id: Any, position_id: Any, actor_id: Any
    ) -> DepartmentInfo:
        return self.hierarchy.assign_department_head(department_id, position_id, actor_id)

    def get_department(self, department_id: Any) -> DepartmentInfo:
        return self.hierarchy.get_department(department_id)

    def get_department_by_code(self, code: str) -> DepartmentInfo:
        department = self.hierarchy.find_department_by_code(code)
        if department is None:
            raise DepartmentNotFoundError(code.strip().upper())
        return department

    def list_departments(self, **filters: Any) -> Page:
        return self.listings.list_departments(**filters)

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def create_position(
        self,
        code: str,
        title: str,
        department_id: Any,
        actor_id: Any,
        reports_to_position_id: Any = None,
        description: str | None = None,
    ) -> PositionInfo:
        return self.hierarchy.create_position(
            code,
            title,
            department_id,
            actor_id,
            reports_to_position_id=reports_to_position_id,
            description=description,
        )

    def update_position(self, position_id: Any, actor_id: Any, **patch: Any) -> PositionInfo:
        return self.hierarchy.update_position(position_id, actor_id, **patch)

    def remove_position(self, position_id: Any, actor_id: Any) -> PositionInfo:
        return self.hierarchy.remove_position(position_id, actor_id)

    def assign_reporting_position(
        self, position_id: Any, reports_to_position_id: Any, actor_id: Any
    ) -> PositionInfo:
        return self.hierarchy.assign_reporting_position(position_id, reports_to_position_id, actor_id)

    def assign_department_to_position(
        self, position_id: Any, department_id: Any, actor_id: Any
    ) -> PositionInfo:
        return self.hierarchy.assign_department_to_position(position_id, department_id, actor_id)

    def get_position(self, position_id: Any) -> PositionInfo:
        return self.hierarchy.get_position(position_id)

    def get_position_by_code(self, code: str) -> PositionInfo:
        position = self.hierarchy.find_position_by_code(code)
        if position is None:
            raise PositionNotFoundError(code.strip().upper())
        return position

    def list_positions(self, **filters: Any) -> Page:
        return self.listings.list_positions(**filters)

    # ------------------------------------------------------------------
    # Trees and charts
    # ------------------------------------------------------------------

    def get_reporting_chain(self, position_id: Any) -> list[PositionInfo]:
        return self.org_tree.get_reporting_chain(position_id)

    def get_position_hierarchy(self, root_position_id: Any = None) -> tuple[PositionNode, ...]:
        return self.org_tree.get_position_hierarchy(root_position_id)

    def get_direct_reports(self, position_id: Any) -> list[PositionInfo]:
        return self.org_tree.get_direct_reports(position_id)

    def get_positions_by_department(self, department_id: Any) -> list[PositionInfo]:
        return self.org_tree.get_positions_by_department(department_id)

    def generate_org_chart(self, department_id: Any = None) -> OrgChart:
        return self.org_tree.generate_org_chart(department_id)

    def generate_simplified_org_chart(
        self, department_id: Any = None
    ) -> tuple[SimplifiedChartEntry, ...]:
        return self.org_tree.generate_simplified_org_chart(department_id)

    # ------------------------------------------------------------------
    # Change requests
    # ------------------------------------------------------------------

    def create_change_request(
        self,
        requester_id: Any,
        request_type: StructureRequestType | str,
        *,
        target_department_id: Any = None,
        target_position_id: Any = None,
        details: Mapping[str, Any] | None = None,
        reason: str = "",
    ) -> ChangeRequestInfo:
        return self.workflow.create_change_request(
            requester_id,
            request_type,
            target_department_id=target_department_id,
            target_position_id=target_position_id,
            details=details,
            reason=reason,
        )

    def update_change_request(
        self, request_id: Any, actor_id: Any, patch: Mapping[str, Any]
    ) -> ChangeRequestInfo:
        return self.workflow.update_change_request(request_id, actor_id, patch)

    def submit_change_request_for_review(self, request_id: Any, submitter_id: Any) -> ChangeRequestInfo:
        return self.workflow.submit_change_request_for_review(request_id, submitter_id)

    def review_change_request(
        self, request_id: Any, approver_id: Any, approved: bool, comments: str | None = None
    ) -> ChangeRequestInfo:
        return self.workflow.review_change_request(request_id, approver_id, approved, comments)

    def approve_change_request(
        self, request_id: Any, approver_id: Any, comments: str | None = None
    ) -> ChangeRequestInfo:
        return self.workflow.approve_change_request(request_id, approver_id, comments)

    def reject_change_request(self, request_id: Any, approver_id: Any, reason: str) -> ChangeRequestInfo:
        return self.workflow.reject_change_request(request_id, approver_id, reason)

    def cancel_change_request(self, request_id: Any, caller_id: Any) -> ChangeRequestInfo:
        return self.workflow.cancel_change_request(request_id, caller_id)

    def implement_change_request(self, request_id: Any, actor_id: Any) -> ChangeRequestInfo:
        return self.executor.apply(request_id, actor_id)

    def get_change_request(self, request_id: Any) -> ChangeRequestInfo:
        return self.workflow.get_change_request(request_id)

    def get_change_request_by_number(self, request_number: str) -> ChangeRequestInfo:
        return self.workflow.get_by_request_number(request_number)

    def list_change_requests(self, **filters: Any) -> Page:
        return self.requests.list_change_requests(**filters)

    def list_approvals(self, request_id: Any) -> list[ApprovalRecordInfo]:
        return self.workflow.list_approvals(request_id)

    # ------------------------------------------------------------------
    # Change log
    # ------------------------------------------------------------------

    def list_change_logs(self, **filters: Any) -> Page:
        return self.change_logs.list_change_logs(**filters)

    def get_entity_history(self, entity_id: Any) -> list[ChangeLogEntryInfo]:
        return self.change_logs.history_for(entity_id)
