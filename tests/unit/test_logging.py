"""
Unit tests for structured logging.
"""

import json
import sys
import logging

import pytest

from tardigrade_backend.common.logging_config import (
    PerformanceTracker,
    StructuredFormatter,
    clear_operation_id,
    get_operation_id,
    set_operation_id,
    setup_logging,
)


def make_record(msg="Test message"):
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )


@pytest.fixture(autouse=True)
def reset_operation_id():
    clear_operation_id()
    yield
    clear_operation_id()


class TestStructuredFormatter:
    """Tests for StructuredFormatter class."""

    def test_format_creates_json(self):
        parsed = json.loads(StructuredFormatter().format(make_record()))

        assert parsed["message"] == "Test message"
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test.logger"
        assert "timestamp" in parsed

    def test_format_includes_operation_id(self):
        set_operation_id("op-123")

        parsed = json.loads(StructuredFormatter().format(make_record()))

        assert parsed["operation_id"] == "op-123"

    def test_format_includes_extra_fields(self):
        record = make_record()
        record.extra_fields = {"bucket": "duplicati", "key": "a.txt"}

        parsed = json.loads(StructuredFormatter().format(record))

        assert parsed["bucket"] == "duplicati"
        assert parsed["key"] == "a.txt"

    def test_format_includes_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        parsed = json.loads(StructuredFormatter().format(record))
        assert "ValueError: boom" in parsed["exception"]


class TestOperationId:
    def test_generated_when_missing(self):
        operation_id = set_operation_id()
        assert operation_id
        assert get_operation_id() == operation_id

    def test_clear(self):
        set_operation_id("x")
        clear_operation_id()
        assert get_operation_id() is None


class TestPerformanceTracker:
    def test_logs_completion_with_duration(self, caplog):
        logger = logging.getLogger("test.tracker")
        with caplog.at_level(logging.DEBUG, logger="test.tracker"):
            with PerformanceTracker("put", logger, key="a.txt"):
                pass

        completed = [r for r in caplog.records if "completed" in r.getMessage()]
        assert len(completed) == 1
        assert completed[0].extra_fields["operation"] == "put"
        assert completed[0].extra_fields["key"] == "a.txt"
        assert "duration_ms" in completed[0].extra_fields

    def test_logs_failure(self, caplog):
        logger = logging.getLogger("test.tracker")
        with caplog.at_level(logging.DEBUG, logger="test.tracker"):
            with pytest.raises(RuntimeError):
                with PerformanceTracker("delete", logger):
                    raise RuntimeError("gone")

        failed = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert failed[0].extra_fields["error_type"] == "RuntimeError"
        assert failed[0].extra_fields["error"] == "gone"


class TestSetupLogging:
    def test_installs_single_json_handler(self):
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            setup_logging("DEBUG", json_format=True)
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, StructuredFormatter)
            assert root.level == logging.DEBUG
        finally:
            root.handlers[:] = saved[0]
            root.setLevel(saved[1])
