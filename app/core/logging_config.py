"""
Structured JSON logging configuration.

Provides structured JSON logging with mandatory fields:
- timestamp (ISO 8601)
- level (INFO, WARNING, ERROR, etc.)
- service (service name)
- request_id (unique per-request identifier)
- message (log message)

Usage:
    import logging

    logger = logging.getLogger(__name__)
    logger.info("Message stored", extra={"conversation_key": "u1_u2"})
"""
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Any
from pythonjsonlogger import jsonlogger

# Set by RequestIDMiddleware for the duration of a request
request_id_var: ContextVar[str] = ContextVar("request_id", default="no-request")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter with mandatory observability fields.

    Ensures all log records include timestamp, level, service, request_id
    and message, plus any context passed through 'extra'.
    """

    def __init__(self, service_name: str = "vidchat", *args, **kwargs):
        self.service_name = service_name
        super().__init__(*args, **kwargs)

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.now(timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['service'] = self.service_name
        log_record['message'] = record.getMessage()
        log_record['request_id'] = getattr(record, 'request_id', request_id_var.get())

        if record.exc_info:
            log_record['exception'] = self.formatException(record.exc_info)

        log_record['module'] = record.module
        log_record['function'] = record.funcName
        log_record['line'] = record.lineno


class LogContextFilter(logging.Filter):
    """Inject the current request_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, 'request_id'):
            record.request_id = request_id_var.get()
        return True


def configure_logging(
    service_name: str = "vidchat",
    level: str = "INFO",
    enable_json: bool = True
) -> None:
    """
    Configure logging for the application.

    Args:
        service_name: Name of the service (e.g., "vidchat-api")
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_json: Whether to use JSON formatting (True for production)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.addFilter(LogContextFilter())

    if enable_json:
        formatter = CustomJsonFormatter(
            service_name=service_name,
            fmt='%(timestamp)s %(level)s %(service)s %(request_id)s %(message)s'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Suppress noisy third-party loggers
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('google.auth').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
