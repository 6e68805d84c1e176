"""
Structured JSON logging with request context
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variables for request tracking
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)

# Keys that must never reach a log sink with their raw value
REDACTED_KEYS = {
    "authorization", "token", "access_token", "refresh_token", "password",
    "secret", "platform_user_id", "content", "comments_encryption_key",
}
MAX_LOGGED_TEXT = 64


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as structured JSON

        Args:
            record: Log record to format

        Returns:
            JSON formatted log string
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        # Add request context if available
        if request_id_var.get():
            log_data["request_id"] = request_id_var.get()
        if user_id_var.get():
            log_data["user_id"] = user_id_var.get()

        # Add extra fields from log record
        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def truncate_for_log(value: Any, limit: int = MAX_LOGGED_TEXT) -> Any:
    """Shorten free text so request input can be logged for audit"""
    if isinstance(value, str) and len(value) > limit:
        return value[:limit] + "..."
    return value


def redact(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Strip sensitive values from structured log fields

    Args:
        fields: Arbitrary keyword fields destined for a log record

    Returns:
        Copy with sensitive keys masked and long text truncated
    """
    clean: Dict[str, Any] = {}
    for key, value in fields.items():
        if key.lower() in REDACTED_KEYS:
            clean[key] = "[REDACTED]"
        elif isinstance(value, dict):
            clean[key] = redact(value)
        else:
            clean[key] = truncate_for_log(value)
    return clean


class StructuredLogger:
    """Structured logger with context management"""

    def __init__(self, name: str):
        """
        Initialize structured logger

        Args:
            name: Logger name
        """
        self.logger = logging.getLogger(name)

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info message with structured data"""
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning message with structured data"""
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        """Log error message with structured data"""
        self._log(logging.ERROR, message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message with structured data"""
        self._log(logging.DEBUG, message, **kwargs)

    def _log(self, level: int, message: str, **kwargs: Any) -> None:
        """
        Internal logging method with extra fields

        Args:
            level: Log level
            message: Log message
            **kwargs: Additional structured data
        """
        extra = {"extra_fields": redact(kwargs)} if kwargs else {}
        self.logger.log(level, message, extra=extra)


_security_logger = StructuredLogger("security")


def log_security_event(event_type: str, severity: str = "MEDIUM", **details: Any) -> None:
    """
    Emit a security event on the dedicated security logger

    Args:
        event_type: RATE_LIMIT_EXCEEDED, UNAUTHORIZED_ACCESS, MALICIOUS_INPUT, ...
        severity: LOW, MEDIUM or HIGH
        **details: Endpoint, user id, truncated input, ...
    """
    level = logging.WARNING if severity in ("MEDIUM", "HIGH") else logging.INFO
    _security_logger._log(
        level,
        f"Security event: {event_type}",
        event_type=event_type,
        severity=severity,
        **details
    )


def setup_structured_logging(log_level: str = "INFO") -> None:
    """Setup structured JSON logging for the application"""
    formatter = StructuredFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    # Suppress noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_structured_logger(name: str) -> StructuredLogger:
    """
    Get structured logger instance

    Args:
        name: Logger name

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)
