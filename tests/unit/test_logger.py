"""
Unit tests for structured logging utility (proxydiff/utils/logger.py)

Covers:
- JSON log formatting with required fields (timestamp, level, message, operation, context)
- Cookie masking and header redaction
- Log level filtering
- Log operation decorator
"""

import json
import logging
from datetime import datetime
from io import StringIO

import pytest

from proxydiff.utils.logger import (
    ROOT_LOGGER_NAME,
    StructuredLogger,
    configure_logging,
    get_logger,
    log_operation,
    mask_cookie,
    redact_headers,
)


class TestMaskCookie:
    """Tests for cookie masking."""

    def test_mask_cookie_keeps_names(self):
        result = mask_cookie("wordpress_logged_in_x=abc; lang=en")
        assert result == "wordpress_logged_in_x=***; lang=***"
        assert "abc" not in result

    def test_mask_cookie_colon_form(self):
        """The synthetic session cookie is written name: value."""
        result = mask_cookie("wordpress_logged_in_whatever: notReally")
        assert result == "wordpress_logged_in_whatever=***"
        assert "notReally" not in result

    def test_mask_cookie_empty(self):
        assert mask_cookie("") == "none"
        assert mask_cookie(None) == "none"

    def test_mask_cookie_only_separators(self):
        assert mask_cookie(";;") == "***"


class TestRedactHeaders:
    def test_sensitive_headers_masked(self):
        headers = {
            "Host": "www.epfl.ch",
            "Cookie": "session=secret",
            "authorization": "Bearer token",
        }

        redacted = redact_headers(headers)

        assert redacted["Host"] == "www.epfl.ch"
        assert redacted["Cookie"] == "session=***"
        assert redacted["authorization"] == "***REDACTED***"
        assert headers["Cookie"] == "session=secret"

    def test_empty(self):
        assert redact_headers(None) == {}


class TestStructuredLogger:
    """Tests for StructuredLogger class."""

    @pytest.fixture
    def logger_with_handler(self):
        """Fixture providing logger with string stream handler."""
        logger = StructuredLogger("proxydiff.test_logger")
        logger.logger.handlers.clear()

        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.logger.addHandler(handler)
        logger.logger.setLevel(logging.DEBUG)
        logger.logger.propagate = False

        yield logger, stream

        logger.logger.handlers.clear()
        logger.logger.setLevel(logging.NOTSET)
        logger.logger.propagate = True

    def _lines(self, stream):
        return [json.loads(line) for line in stream.getvalue().splitlines()]

    def test_package_root_has_handler(self):
        StructuredLogger("proxydiff.anything")
        assert logging.getLogger(ROOT_LOGGER_NAME).handlers

    def test_format_log_basic_fields(self, logger_with_handler):
        logger, _ = logger_with_handler

        parsed = json.loads(logger._format_log("INFO", "Test message"))

        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Test message"
        assert parsed["logger"] == "proxydiff.test_logger"
        assert "operation" not in parsed
        assert "context" not in parsed

    def test_format_log_timestamp_format(self, logger_with_handler):
        """Test timestamp is in ISO format with Z suffix."""
        logger, _ = logger_with_handler

        timestamp = json.loads(logger._format_log("INFO", "Test"))["timestamp"]

        assert timestamp.endswith("Z")
        datetime.fromisoformat(timestamp.replace("Z", "+00:00"))

    def test_format_log_all_fields(self, logger_with_handler):
        logger, _ = logger_with_handler

        parsed = json.loads(
            logger._format_log(
                "ERROR",
                "fetch failed",
                operation="fetch",
                context={"side": "old", "path": "/zonk"},
                duration_ms=12.3456,
                error="refused",
            )
        )

        assert parsed["operation"] == "fetch"
        assert parsed["context"] == {"side": "old", "path": "/zonk"}
        assert parsed["duration_ms"] == 12.35
        assert parsed["error"] == "refused"

    def test_non_json_context_values_stringified(self, logger_with_handler):
        logger, _ = logger_with_handler

        parsed = json.loads(logger._format_log("INFO", "x", context={"value": object()}))

        assert parsed["context"]["value"].startswith("<object object")

    def test_methods_emit_levels(self, logger_with_handler):
        logger, stream = logger_with_handler

        logger.debug("d")
        logger.info("i", duration_ms=1.0)
        logger.warning("w", error="e")
        logger.error("x", error="boom")

        assert [line["level"] for line in self._lines(stream)] == ["DEBUG", "INFO", "WARNING", "ERROR"]

    def test_debug_skipped_when_disabled(self, logger_with_handler):
        logger, stream = logger_with_handler
        logger.logger.setLevel(logging.INFO)

        logger.debug("hidden")
        logger.info("shown")

        assert [line["message"] for line in self._lines(stream)] == ["shown"]


class TestLogOperation:
    def test_success_returns_result(self, caplog):
        caplog.set_level(logging.DEBUG)

        @log_operation("assert_equivalent")
        def check(path=None):
            return f"checked {path}"

        assert check(path="/zonk") == "checked /zonk"

        entries = [json.loads(r.getMessage()) for r in caplog.records]
        completed = [e for e in entries if e["message"] == "Completed assert_equivalent"]
        assert completed
        assert completed[0]["context"]["path"] == "/zonk"
        assert "duration_ms" in completed[0]

    def test_positional_path_in_context(self, caplog):
        caplog.set_level(logging.DEBUG)

        class Checker:
            @log_operation("assert_equivalent")
            def check(self, path, deadline=None):
                return path

        assert Checker().check("/_vti_bin/", 12.0) == "/_vti_bin/"

        entries = [json.loads(r.getMessage()) for r in caplog.records]
        assert {e["context"]["path"] for e in entries} == {"/_vti_bin/"}

    def test_assertion_failure_logged_below_error_and_reraised(self, caplog):
        caplog.set_level(logging.DEBUG)

        @log_operation("assert_divergent")
        def check(path):
            raise AssertionError("too similar\nfull diff follows")

        with pytest.raises(AssertionError, match="too similar"):
            check("/zonk")

        entries = [json.loads(r.getMessage()) for r in caplog.records]
        failed = [e for e in entries if e["message"] == "Failed assert_divergent"]
        assert failed[0]["error"] == "too similar"
        assert failed[0]["level"] == "INFO"
        assert failed[0]["context"]["path"] == "/zonk"
        assert not [r for r in caplog.records if r.levelno >= logging.ERROR]

    def test_unexpected_failure_logged_as_error(self, caplog):
        caplog.set_level(logging.DEBUG)

        @log_operation("assert_equivalent")
        def check(path):
            raise ValueError("boom")

        with pytest.raises(ValueError):
            check("/")

        entries = [json.loads(r.getMessage()) for r in caplog.records]
        failed = [e for e in entries if e["message"] == "Failed assert_equivalent"]
        assert failed[0]["level"] == "ERROR"
        assert failed[0]["error"] == "boom"

    def test_preserves_function_metadata(self):
        @log_operation("op")
        def my_function():
            """Docstring."""

        assert my_function.__name__ == "my_function"
        assert my_function.__doc__ == "Docstring."


class TestConfiguration:
    def test_configure_logging_levels(self):
        root = logging.getLogger(ROOT_LOGGER_NAME)
        try:
            configure_logging(verbose=True)
            assert root.level == logging.DEBUG
            configure_logging(verbose=False)
            assert root.level == logging.INFO
        finally:
            root.setLevel(logging.INFO)

    def test_get_logger(self):
        logger = get_logger("proxydiff.some.module")
        assert isinstance(logger, StructuredLogger)
        assert logger.logger.name == "proxydiff.some.module"
