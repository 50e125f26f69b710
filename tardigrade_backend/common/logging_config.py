"""
Structured JSON logging with per-operation correlation IDs.

Provides:
- JSON format for log aggregation
- Operation correlation IDs shared by every record of one backend call
- Duration tracking for backend operations
"""

import json
import logging
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

# Context variable for the current backend operation
operation_id_ctx: ContextVar[Optional[str]] = ContextVar(
    "operation_id", default=None)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in JSON format with standardized fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        operation_id = operation_id_ctx.get()
        if operation_id:
            log_data["operation_id"] = operation_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields passed as extra={"extra_fields": {...}}
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class PerformanceTracker:
    """
    Context manager for tracking backend operation duration.

    Usage:
        with PerformanceTracker("put", logger, key="folder/file.zip"):
            ...
    """

    def __init__(
        self,
        operation: str,
        logger: logging.Logger,
        log_level: int = logging.INFO,
        **extra_fields,
    ):
        """
        Initialize performance tracker.

        Args:
            operation: Operation name
            logger: Logger instance
            log_level: Log level for completion message
            **extra_fields: Additional structured fields
        """
        self.operation = operation
        self.logger = logger
        self.log_level = log_level
        self.extra_fields = extra_fields
        self.start_time: Optional[float] = None

    def _extra(self, **fields) -> dict:
        extra = {"operation": self.operation, **self.extra_fields, **fields}
        operation_id = operation_id_ctx.get()
        if operation_id:
            extra["operation_id"] = operation_id
        return extra

    def __enter__(self):
        self.start_time = time.time()
        self.logger.debug(
            f"Starting operation: {self.operation}",
            extra={"extra_fields": self._extra()},
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = round((time.time() - self.start_time) * 1000, 2)

        if exc_type:
            extra = self._extra(
                duration_ms=duration_ms,
                error=str(exc_val),
                error_type=exc_type.__name__,
            )
            self.logger.error(
                f"Operation failed: {self.operation}",
                extra={"extra_fields": extra},
            )
        else:
            self.logger.log(
                self.log_level,
                f"Operation completed: {self.operation}",
                extra={"extra_fields": self._extra(duration_ms=duration_ms)},
            )


def setup_logging(log_level: str = "INFO", json_format: bool = True):
    """
    Configure application logging.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting if True, standard format if False
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, log_level.upper()))

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Set third-party loggers to WARNING to reduce noise
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def set_operation_id(operation_id: Optional[str] = None) -> str:
    """
    Set operation ID in context.

    Args:
        operation_id: Operation ID (generated if not provided)

    Returns:
        Operation ID
    """
    if operation_id is None:
        operation_id = uuid.uuid4().hex[:12]
    operation_id_ctx.set(operation_id)
    return operation_id


def get_operation_id() -> Optional[str]:
    """Get current operation ID from context."""
    return operation_id_ctx.get()


def clear_operation_id():
    """Clear operation ID from context."""
    operation_id_ctx.set(None)
