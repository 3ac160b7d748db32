"""
Logging configuration for the proven service.

Provides structured JSON logging for audit trails and debugging.
Secrets never reach a log record: callers pass hashes and sanitized dicts.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line, suitable for log aggregation.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Logger for attestation and administration events.

    Each method emits one record whose ``event_type`` is fixed, so downstream
    queries can filter on it.
    """

    def __init__(self, name: str = "proven.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        extra = {
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def execution_request(self, endpoint: str, caller: str, js_code_hash: Optional[str] = None) -> None:
        """Log an incoming run request."""
        self._log(
            logging.INFO,
            "EXECUTION_REQUEST",
            endpoint=endpoint,
            caller=caller,
            js_code_hash=js_code_hash,
            message=f"Execution requested via {endpoint}"
        )

    def attestation_issued(self, endpoint: str, js_code_hash: str, block_number: int) -> None:
        self._log(
            logging.INFO,
            "ATTESTATION_ISSUED",
            endpoint=endpoint,
            js_code_hash=js_code_hash,
            block_number=block_number,
            message=f"Attestation issued at block {block_number}"
        )

    def execution_rejected(self, endpoint: str, error: str, detail: str) -> None:
        """Log a run that ended without an attestation."""
        self._log(
            logging.WARNING,
            "EXECUTION_REJECTED",
            endpoint=endpoint,
            error=error,
            detail=detail,
            message=f"Execution rejected: {error}"
        )

    def admin_change(self, operation: str, caller: str, changes: Optional[Dict[str, Any]] = None) -> None:
        """Log a committed owner-only mutation."""
        self._log(
            logging.INFO,
            "ADMIN_CHANGE",
            operation=operation,
            caller=caller,
            changes=changes or {},
            message=f"Admin operation {operation} committed"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )

    def rate_limit_exceeded(self, client_id: str, endpoint: str) -> None:
        self._log(
            logging.WARNING,
            "RATE_LIMIT_EXCEEDED",
            client_id=client_id,
            endpoint=endpoint,
            message=f"Rate limit exceeded for {client_id} on {endpoint}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the service.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request ID for the current context, generating one if needed.
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


audit_log = AuditLogger()
