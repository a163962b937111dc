"""
Tests for structured logging -- LogContext propagation and the JSON formatter.
"""

import json
import sys
import logging
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from org_kernel.domain.change_request import StructureRequestStatus
from org_kernel.exceptions import DepartmentNotFoundError
from org_kernel.logging_config import LogContext, StructuredFormatter, get_logger


def _format(record: logging.LogRecord) -> dict:
    return json.loads(StructuredFormatter().format(record))


def _record(msg="event", exc_info=None, **extra) -> logging.LogRecord:
    record = logging.LogRecord("org_kernel.test", logging.INFO, __file__, 1, msg, (), exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLogContext:

    def test_bind_sets_and_restores(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", actor_id="user-1"):
            assert LogContext.get_all() == {"correlation_id": "inner", "actor_id": "user-1"}
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_skips_none(self):
        with LogContext.bind(change_request_id=None, trace_id="t-1"):
            assert LogContext.get_all() == {"trace_id": "t-1"}

    def test_bind_rejects_unknown_fields(self):
        with pytest.raises(ValueError, match="tenant_id"):
            LogContext.bind(tenant_id="acme")

    def test_bind_stringifies_values(self):
        request_id = uuid4()
        with LogContext.bind(change_request_id=request_id):
            assert LogContext.get_all()["change_request_id"] == str(request_id)

    def test_clear(self):
        LogContext.set(actor_id="someone")
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestStructuredFormatter:

    def test_basic_fields(self):
        payload = _format(_record("department_created", code="ENG"))
        assert payload["message"] == "department_created"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "org_kernel.test"
        assert payload["code"] == "ENG"
        assert "ts" in payload

    def test_context_fields_included(self):
        with LogContext.bind(change_request_id="cr-1"):
            payload = _format(_record())
        assert payload["change_request_id"] == "cr-1"

    def test_context_wins_over_extra(self):
        with LogContext.bind(actor_id="from-context"):
            payload = _format(_record(actor_id="from-extra"))
        assert payload["actor_id"] == "from-context"

    def test_non_json_values_encoded(self):
        entity = uuid4()
        moment = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        payload = _format(
            _record(
                entity_id=entity,
                at=moment,
                status=StructureRequestStatus.SUBMITTED,
                fields=("name", "code"),
            )
        )
        assert payload["entity_id"] == str(entity)
        assert payload["at"] == moment.isoformat()
        assert payload["status"] == "SUBMITTED"
        assert payload["fields"] == ["name", "code"]

    def test_kernel_error_attributes(self):
        try:
            raise DepartmentNotFoundError("abc")
        except DepartmentNotFoundError:
            payload = _format(_record("lookup_failed", exc_info=sys.exc_info()))
        assert payload["exc_type"] == "DepartmentNotFoundError"
        assert payload["exc_code"] == DepartmentNotFoundError.code
        assert payload["exc_department_id"] == "abc"
        assert "Traceback" in payload["traceback"]


class TestLoggerHierarchy:

    def test_get_logger_namespaced(self):
        assert get_logger("services.example").name == "org_kernel.services.example"

    def test_records_reach_captured_logs(self, captured_logs):
        with LogContext.bind(correlation_id="corr-9"):
            get_logger("services.example").info("something_happened", extra={"count": 2})
        (record,) = [r for r in captured_logs() if r["message"] == "something_happened"]
        assert record["count"] == 2
        assert record["correlation_id"] == "corr-9"
