"""Tests for logging helpers and error payloads."""

import io
import json
import logging

from gangflow.core.exceptions import UnknownNodeError, create_error_response
from gangflow.core.logging import (
    StructuredFormatter, clear_logging_context, get_logger, log_with_context, logging_context,
    resolve_level, set_logging_context, setup_logging
)


class TestLogging:
    """Test cases for logging setup."""

    def test_structured_output_includes_context(self):
        stream = io.StringIO()
        setup_logging(level="DEBUG", structured=True, stream=stream)
        set_logging_context(run_id="r1", workflow="wf")
        try:
            log_with_context(get_logger("gangflow.core.test"), logging.INFO, "node_start", node_name="a")
        finally:
            clear_logging_context()

        entry = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert entry["message"] == "node_start"
        assert entry["node_name"] == "a"
        assert entry["run_id"] == "r1"
        assert entry["workflow"] == "wf"

    def test_logging_context_restores_previous_fields(self):
        stream = io.StringIO()
        setup_logging(level="INFO", stream=stream)
        logger = get_logger("gangflow.api.test")
        with logging_context(request_id="req-1"):
            with logging_context(run_id="r2"):
                logger.info("inner")
            logger.info("outer")
        logger.info("after")

        inner, outer, after = stream.getvalue().strip().splitlines()[-3:]
        assert inner.endswith("inner [request_id=req-1 run_id=r2]")
        assert outer.endswith("outer [request_id=req-1]")
        assert after.endswith(" - after")

    def test_formatter_records_exceptions(self):
        try:
            raise ValueError("bad")
        except ValueError:
            import sys
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
        entry = json.loads(StructuredFormatter().format(record))
        assert entry["exception"]["type"] == "ValueError"

    def test_resolve_level(self):
        assert resolve_level("debug") == logging.DEBUG
        assert resolve_level("WARNING") == logging.WARNING
        assert resolve_level("nonsense") == logging.INFO
        assert resolve_level(None, logging.ERROR) == logging.ERROR


class TestErrorPayloads:
    """Test cases for exception serialization."""

    def test_error_response(self):
        error = UnknownNodeError("ghost", run_id="r1", workflow="wf")
        response = create_error_response(error)
        assert response["error"] == "UnknownNodeError"
        assert response["message"] == "Unknown node (neither member nor squad): ghost"
        assert response["context"] == {"run_id": "r1", "workflow": "wf", "node_name": "ghost"}
        assert response["details"]["category"] == "execution"
        assert error.to_dict()["exception_type"] == "UnknownNodeError"
