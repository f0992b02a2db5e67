"""
Structured logging utility for the harness.

Provides JSON-formatted logging with cookie redaction,
context injection, and operation timing so that a run can be replayed
from its log lines.
"""

import inspect
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional
from functools import wraps

ROOT_LOGGER_NAME = "proxydiff"

# Header values never written to the log verbatim
COOKIE_HEADERS = {"cookie", "set-cookie"}
SENSITIVE_HEADERS = COOKIE_HEADERS | {"authorization", "proxy-authorization"}


def mask_cookie(value: Optional[str]) -> str:
    """
    Mask a cookie header value while keeping the cookie names visible.

    Example:
        >>> mask_cookie("wordpress_logged_in_x=abc; lang=en")
        "wordpress_logged_in_x=***; lang=***"
    """
    if not value:
        return "none"

    masked = []
    for part in value.split(";"):
        part = part.strip()
        if not part:
            continue
        name = part.split("=", 1)[0].split(":", 1)[0].strip()
        masked.append(f"{name}=***")
    return "; ".join(masked) if masked else "***"


def redact_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Return a copy of ``headers`` safe to put in a log line."""
    if not headers:
        return {}

    redacted = {}
    for name, value in headers.items():
        if name.lower() in COOKIE_HEADERS:
            redacted[name] = mask_cookie(value)
        elif name.lower() in SENSITIVE_HEADERS:
            redacted[name] = "***REDACTED***"
        else:
            redacted[name] = value
    return redacted


class StructuredLogger:
    """
    JSON-formatted logger with context injection and operation timing.

    All log output is JSON so that runs can be grepped and parsed by CI tooling.
    """

    def __init__(self, name: str):
        """
        Initialize structured logger.

        Args:
            name: Logger name (typically __name__ from calling module)
        """
        self.logger = logging.getLogger(name)

        # Handlers live on the package root so that verbosity is set in one place
        root = logging.getLogger(ROOT_LOGGER_NAME)
        if not root.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("%(message)s"))
            root.addHandler(handler)
            root.setLevel(logging.INFO)

    def _format_log(
        self,
        level: str,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None,
    ) -> str:
        """
        Format log entry as JSON.

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR)
            message: Human-readable message
            operation: Operation name (e.g., "fetch", "assert_equivalent")
            context: Context dict with backend, path, status, etc.
            duration_ms: Operation duration in milliseconds
            error: Error message if applicable

        Returns:
            JSON-formatted log string
        """
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "logger": self.logger.name,
            "message": message,
        }

        if operation:
            log_entry["operation"] = operation

        if context:
            log_entry["context"] = context

        if duration_ms is not None:
            log_entry["duration_ms"] = round(duration_ms, 2)

        if error:
            log_entry["error"] = error

        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def debug(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Log debug message."""
        if not self.logger.isEnabledFor(logging.DEBUG):
            return
        log_json = self._format_log("DEBUG", message, operation, context)
        self.logger.debug(log_json)

    def info(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None,
    ):
        """Log info message."""
        log_json = self._format_log("INFO", message, operation, context, duration_ms, error)
        self.logger.info(log_json)

    def warning(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        """Log warning message."""
        log_json = self._format_log("WARNING", message, operation, context, error=error)
        self.logger.warning(log_json)

    def error(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ):
        """Log error message."""
        log_json = self._format_log(
            "ERROR", message, operation, context, duration_ms, error
        )
        self.logger.error(log_json)


def log_operation(operation_name: str):
    """
    Decorator to automatically log operation start, duration, and completion.

    A ``path`` argument, positional or keyword, is added to the log context.
    AssertionError is an expected outcome and is logged at INFO; any other
    exception is logged at ERROR. Both are re-raised.

    Usage:
        @log_operation("assert_equivalent")
        def assert_equivalent(self, path):
            ...
    """

    def decorator(func):
        signature = inspect.signature(func)

        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = StructuredLogger(func.__module__)

            context = {
                "function": func.__name__,
            }
            try:
                arguments = signature.bind_partial(*args, **kwargs).arguments
            except TypeError:
                arguments = kwargs
            if arguments.get("path") is not None:
                context["path"] = arguments["path"]

            logger.debug(
                f"Starting {operation_name}", operation=operation_name, context=context
            )

            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration_ms = (time.time() - start_time) * 1000
                logger.info(
                    f"Completed {operation_name}",
                    operation=operation_name,
                    context=context,
                    duration_ms=duration_ms,
                )
                return result
            except AssertionError as e:
                duration_ms = (time.time() - start_time) * 1000
                logger.info(
                    f"Failed {operation_name}",
                    operation=operation_name,
                    context=context,
                    duration_ms=duration_ms,
                    error=str(e).splitlines()[0] if str(e) else "",
                )
                raise
            except Exception as e:
                duration_ms = (time.time() - start_time) * 1000
                logger.error(
                    f"Failed {operation_name}",
                    operation=operation_name,
                    context=context,
                    error=str(e),
                    duration_ms=duration_ms,
                )
                raise

        return wrapper

    return decorator


def configure_logging(verbose: bool = False) -> None:
    """Set the package log level; DEBUG when ``verbose``."""
    StructuredLogger(ROOT_LOGGER_NAME)
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(logging.DEBUG if verbose else logging.INFO)


def get_logger(name: str) -> StructuredLogger:
    """
    Factory function to get a structured logger instance.

    Args:
        name: Logger name (typically __name__ from calling module)

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)
