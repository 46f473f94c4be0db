"""
BuildOps - Structured Logging Configuration

Provides JSON-formatted logging for log aggregation and a separate audit
logger for build lifecycle events.

Usage:
    from app.logging_config import get_logger, audit_log

    logger = get_logger(__name__)
    logger.info("Materials reserved", extra={"build_number": "BUILD-WI-2026-001"})

    # For business events requiring audit trail
    audit_log("BUILD_STARTED", actor="jdoe", resource_type="build_order", resource_id=12)
"""
import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.core.settings import settings

# LogRecord attributes that are not user-supplied ``extra`` fields
_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
}


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}


class JSONFormatter(logging.Formatter):
    """
    Formats log records as JSON for log aggregation systems.

    Output format:
    {
        "timestamp": "2026-01-01T12:00:00.000+00:00",
        "level": "INFO",
        "logger": "app.services.build_lifecycle",
        "message": "Materials reserved",
        "build_number": "BUILD-WI-2026-001",
        ...
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add location info for errors
        if record.levelno >= logging.ERROR:
            log_data["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in _extra_fields(record).items():
            # Decimals, datetimes and ORM objects are stringified
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data)


class TextFormatter(logging.Formatter):
    """
    Formats log records as human-readable text for development.

    Output format:
    2026-01-01 12:00:00 [INFO] app.services.build_lifecycle: Materials reserved build_number=BUILD-WI-2026-001
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        base_msg = f"{timestamp} [{record.levelname}] {record.name}: {record.getMessage()}"

        extras = [f"{key}={value}" for key, value in _extra_fields(record).items()]
        if extras:
            base_msg += " " + " ".join(extras)

        if record.exc_info:
            base_msg += "\n" + self.formatException(record.exc_info)

        return base_msg


class AuditFormatter(logging.Formatter):
    """
    Formats audit log records.

    Output format (JSON):
    {
        "timestamp": "2026-01-01T12:00:00.000+00:00",
        "event": "BUILD_COMPLETED",
        "actor": "jdoe",
        "resource_type": "build_order",
        "resource_id": 12,
        "details": {...}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": getattr(record, "event", record.getMessage()),
            "actor": getattr(record, "actor", None),
            "resource_type": getattr(record, "resource_type", None),
            "resource_id": getattr(record, "resource_id", None),
            "details": getattr(record, "details", {}),
            "ip_address": getattr(record, "ip_address", None),
        }

        log_data = {k: v for k, v in log_data.items() if v is not None}

        return json.dumps(log_data, default=str)


def setup_logging() -> None:
    """
    Configure application logging based on settings.

    Call this once at application startup.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    if settings.LOG_FORMAT == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = TextFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    if settings.LOG_FILE:
        log_dir = os.path.dirname(settings.LOG_FILE)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            settings.LOG_FILE,
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)

    setup_audit_logging()

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def setup_audit_logging() -> None:
    """Configure separate audit logger for build lifecycle events."""
    audit_logger = logging.getLogger("audit")
    audit_logger.setLevel(logging.INFO)
    audit_logger.handlers.clear()
    audit_logger.propagate = False

    audit_file = settings.AUDIT_LOG_FILE
    if audit_file:
        audit_dir = os.path.dirname(audit_file)
        if audit_dir:
            os.makedirs(audit_dir, exist_ok=True)
        audit_handler = logging.handlers.RotatingFileHandler(
            audit_file,
            maxBytes=50 * 1024 * 1024,  # 50 MB
            backupCount=10,
        )
        audit_handler.setFormatter(AuditFormatter())
        audit_handler.setLevel(logging.INFO)
        audit_logger.addHandler(audit_handler)

    # Also log audit events to console in development
    if settings.DEBUG:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(AuditFormatter())
        audit_logger.addHandler(console_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Usage:
        logger = get_logger(__name__)
        logger.info("Something happened", extra={"key": "value"})
    """
    return logging.getLogger(name)


def audit_log(
    event: str,
    *,
    actor: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[Any] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> None:
    """
    Log a business event to the audit log.

    Args:
        event: Event name (e.g., "BUILD_STARTED", "BUILD_CANCELLED")
        actor: Who triggered the event
        resource_type: Type of resource affected (e.g., "build_order")
        resource_id: ID of the affected resource
        details: Additional event-specific data
        ip_address: IP address of the request

    Example:
        audit_log(
            "BUILD_COMPLETED",
            actor="jdoe",
            resource_type="build_order",
            resource_id=12,
            details={"qc_passed": 4, "qc_failed": 1},
        )
    """
    audit_logger = logging.getLogger("audit")
    audit_logger.info(
        event,
        extra={
            "event": event,
            "actor": actor,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "details": details or {},
            "ip_address": ip_address,
        },
    )

