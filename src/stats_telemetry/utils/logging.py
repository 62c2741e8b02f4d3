"""Structured logging setup for the telemetry service."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from ..config.settings import LoggingConfig

_RESERVED_ATTRS = frozenset([
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
    'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'taskName', 'message', 'asctime',
])

CONTEXT_PREFIX = 'ctx_'


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


def split_context(record: logging.LogRecord) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Separate the extras of a record into context and other fields.

    Returns:
        ``(context, extras)`` where context holds the ``ctx_*`` fields set by
        log_with_context, without their prefix
    """
    context: Dict[str, Any] = {}
    extras: Dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _RESERVED_ATTRS:
            continue
        if key.startswith(CONTEXT_PREFIX):
            context[key[len(CONTEXT_PREFIX):]] = value
        else:
            extras[key] = value
    return context, extras


class JSONFormatter(logging.Formatter):
    """One JSON object per record, context fields grouped under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        context, extras = split_context(record)
        log_data = {
            'timestamp': _record_time(record).isoformat(timespec='milliseconds').replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'location': f"{record.module}:{record.funcName}:{record.lineno}",
        }
        log_data.update(extras)
        if context:
            log_data['context'] = context

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Console formatter; context fields follow the message as key=value pairs."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = _record_time(record).strftime('%Y-%m-%d %H:%M:%S')
        level = record.levelname
        if self.use_colors and level in self.COLORS:
            level = f"{self.COLORS[level]}{level}{self.RESET}"

        context, _ = split_context(record)
        service = getattr(record, 'service', None)
        origin = f"{service}/{record.name}" if service else record.name

        # timestamp [LEVEL] service/logger: message key=value ...
        formatted = f"{timestamp} [{level}] {origin}: {record.getMessage()}"
        if context:
            formatted += " " + " ".join(f"{key}={value}" for key, value in context.items())

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


class ServiceContextFilter(logging.Filter):
    """Stamp every record with the service name."""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service_name
        return True


def setup_logging(config: LoggingConfig, service_name: str = "stats-telemetry") -> logging.Handler:
    """
    Setup logging configuration for the service.

    Args:
        config: Logging configuration
        service_name: Name of the service for log context

    Returns:
        The handler installed on the root logger
    """
    if config.format.lower() == 'json':
        formatter = JSONFormatter()
    else:
        formatter = TextFormatter()

    output = config.output.lower()
    if output == 'stdout':
        handler = logging.StreamHandler(sys.stdout)
    elif output == 'stderr':
        handler = logging.StreamHandler(sys.stderr)
    else:
        handler = logging.FileHandler(config.output)

    handler.setFormatter(formatter)
    handler.addFilter(ServiceContextFilter(service_name))

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper()))
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Reduce third-party noise
    logging.getLogger('websockets').setLevel(logging.INFO)
    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(
        f"Logging configured: level={config.level}, format={config.format}, "
        f"output={config.output}, service={service_name}"
    )
    return handler


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log a message with additional context."""
    extra = {f"{CONTEXT_PREFIX}{key}": value for key, value in context.items()}
    logger.log(level, message, extra=extra)


def log_error_with_context(logger: logging.Logger, error: BaseException, operation: str, **context):
    """Log an error with its type and message as context."""
    log_with_context(
        logger,
        logging.ERROR,
        f"Error in {operation}: {error}",
        operation=operation,
        error_type=type(error).__name__,
        error_message=str(error),
        **context
    )

    logger.debug(f"Full traceback for {operation}:", exc_info=error)
