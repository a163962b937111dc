"""
Tests for reporting-line assignment and ReportingGraphValidator.

Covers:
- Self-reference rejected before any walk
- Cycles rejected; graph unchanged afterwards
- Clearing a reporting line
- Inactive / missing supervisors
- Pre-existing stored loops terminate the walk and are not blamed on the edit
- Row-locking walk (serialize_reporting_writes)
"""

from uuid import uuid4

import pytest

from org_kernel.domain.change_log import ChangeLogAction
from org_kernel.exceptions import (
    BadRequestError,
    InvalidIdentifierError,
    InvalidReferenceError,
    PositionNotFoundError,
    ReportingCycleError,
    SelfReportingError,
)
from org_kernel.models.position import Position
from org_kernel.services.reporting_graph_validator import ReportingGraphValidator


class TestSelfReporting:

    def test_position_cannot_report_to_itself(self, hierarchy_store, standard_org, actor_id):
        with pytest.raises(SelfReportingError) as exc_info:
            hierarchy_store.assign_reporting_position(
                standard_org.vpe.id, standard_org.vpe.id, actor_id
            )
        assert str(exc_info.value) == "Position cannot report to itself"
        assert isinstance(exc_info.value, BadRequestError)
        assert hierarchy_store.get_position(standard_org.vpe.id).reports_to_position_id == standard_org.cto.id

    def test_self_reference_on_a_root(self, hierarchy_store, standard_org, actor_id):
        with pytest.raises(SelfReportingError):
            hierarchy_store.assign_reporting_position(standard_org.cto.id, standard_org.cto.id, actor_id)


class TestCycles:

    def test_closing_a_cycle_is_rejected(self, hierarchy_store, standard_org, actor_id, captured_logs):
        """SWE -> EM -> VPE -> CTO; making CTO report to SWE fails and changes nothing."""
        with pytest.raises(ReportingCycleError) as exc_info:
            hierarchy_store.assign_reporting_position(
                standard_org.cto.id, standard_org.engineer.id, actor_id
            )
        assert "Circular reporting relationship detected" in str(exc_info.value)
        assert exc_info.value.path == [
            str(standard_org.cto.id),
            str(standard_org.engineer.id),
            str(standard_org.eng_manager.id),
            str(standard_org.vpe.id),
            str(standard_org.cto.id),
        ]
        assert hierarchy_store.get_position(standard_org.cto.id).reports_to_position_id is None
        assert any(r["message"] == "cycle_detected_in_reporting_graph" for r in captured_logs())

    def test_two_node_cycle(self, hierarchy_store, standard_org, actor_id):
        with pytest.raises(ReportingCycleError):
            hierarchy_store.assign_reporting_position(
                standard_org.eng_manager.id, standard_org.engineer.id, actor_id
            )

    def test_reparent_within_tree(self, hierarchy_store, standard_org, actor_id):
        moved = hierarchy_store.assign_reporting_position(
            standard_org.engineer.id, standard_org.architect.id, actor_id
        )
        assert moved.reports_to_position_id == standard_org.architect.id

    def test_reparent_across_departments(self, hierarchy_store, standard_org, actor_id):
        moved = hierarchy_store.assign_reporting_position(
            standard_org.coo.id, standard_org.cto.id, actor_id
        )
        assert moved.reports_to_position_id == standard_org.cto.id


class TestClearAndReferences:

    def test_clear_reporting_line(self, hierarchy_store, standard_org, actor_id, change_log_selector):
        cleared = hierarchy_store.assign_reporting_position(standard_org.architect.id, None, actor_id)
        assert cleared.reports_to_position_id is None
        entry = change_log_selector.list_change_logs(entity_id=standard_org.architect.id).items[0]
        assert entry.action is ChangeLogAction.REASSIGNED
        assert entry.changed_fields == ("reports_to_position_id",)

    def test_same_supervisor_is_unchanged(self, hierarchy_store, standard_org, actor_id, change_log_selector):
        before = change_log_selector.list_change_logs(entity_id=standard_org.architect.id).total
        hierarchy_store.assign_reporting_position(standard_org.architect.id, standard_org.vpe.id, actor_id)
        assert change_log_selector.list_change_logs(entity_id=standard_org.architect.id).total == before

    def test_inactive_supervisor_rejected(self, hierarchy_store, standard_org, actor_id):
        hierarchy_store.remove_position(standard_org.architect.id, actor_id)
        with pytest.raises(InvalidReferenceError) as exc_info:
            hierarchy_store.assign_reporting_position(
                standard_org.engineer.id, standard_org.architect.id, actor_id
            )
        assert exc_info.value.reason == "inactive"

    def test_missing_supervisor_rejected(self, hierarchy_store, standard_org, actor_id):
        with pytest.raises(InvalidReferenceError):
            hierarchy_store.assign_reporting_position(standard_org.engineer.id, uuid4(), actor_id)

    def test_missing_subject_is_not_found(self, hierarchy_store, standard_org, actor_id):
        with pytest.raises(PositionNotFoundError):
            hierarchy_store.assign_reporting_position(uuid4(), standard_org.cto.id, actor_id)

    def test_malformed_supervisor_id(self, hierarchy_store, standard_org, actor_id):
        with pytest.raises(InvalidIdentifierError):
            hierarchy_store.assign_reporting_position(standard_org.engineer.id, "cto", actor_id)


class TestValidatorOnStoredLoops:
    """Corrupted stored data: the walk stops instead of hanging."""

    @pytest.fixture
    def corrupted(self, session, standard_org):
        # Bypass the store to plant a loop COO <-> OPSL.
        coo = session.get(Position, standard_org.coo.id)
        coo.reports_to_position_id = standard_org.ops_lead.id
        session.flush()
        return standard_org

    @pytest.mark.parametrize("lock_rows", [False, True])
    def test_edit_below_loop_succeeds(self, session, corrupted, lock_rows, captured_logs):
        validator = ReportingGraphValidator(session, lock_rows=lock_rows)
        supervisor = validator.validate_reporting_edge(corrupted.engineer.id, corrupted.ops_lead.id)
        assert supervisor.id == corrupted.ops_lead.id
        assert any(r["message"] == "reporting_loop_found_in_store" for r in captured_logs())

    def test_cycle_through_loop_member_still_detected(self, session, corrupted):
        validator = ReportingGraphValidator(session)
        with pytest.raises(ReportingCycleError):
            validator.validate_reporting_edge(corrupted.coo.id, corrupted.ops_lead.id)
