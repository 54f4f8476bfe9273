"""Tests for JSON logging and the run_id context."""
from __future__ import annotations

import json
import logging
import sys

from src.shared.logging import JSONFormatter, run_context, run_id_var, setup_logging


def _record(message: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="src.test", level=logging.INFO, pathname=__file__, lineno=1,
        msg=message, args=(), exc_info=None,
    )


class TestJSONFormatter:
    def test_fields(self):
        entry = json.loads(JSONFormatter("image-release").format(_record()))
        assert entry["level"] == "INFO"
        assert entry["service_name"] == "image-release"
        assert entry["logger"] == "src.test"
        assert entry["message"] == "hello"
        assert entry["run_id"] == ""
        assert "timestamp" in entry

    def test_run_id_from_context(self):
        with run_context("abc123"):
            entry = json.loads(JSONFormatter().format(_record()))
        assert entry["run_id"] == "abc123"

    def test_extra_fields(self):
        record = _record()
        record.stage = "pushing"
        record.port = 9090
        entry = json.loads(JSONFormatter().format(record))
        assert entry["stage"] == "pushing"
        assert entry["port"] == 9090
        assert "container" not in entry

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()
        entry = json.loads(JSONFormatter().format(record))
        assert entry["exception"] == "boom"


class TestRunContext:
    def test_resets_after_block(self):
        with run_context("r1"):
            assert run_id_var.get() == "r1"
        assert run_id_var.get() == ""

    def test_nested(self):
        with run_context("outer"):
            with run_context("inner"):
                assert run_id_var.get() == "inner"
            assert run_id_var.get() == "outer"


class TestSetupLogging:
    def test_installs_single_json_handler(self):
        logger = setup_logging("svc", "debug")
        setup_logging("svc", "debug")
        assert logger.name == "src"
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
