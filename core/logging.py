"""
Structured logging for SiteAudit

Every record can carry audit context (``audit_id``, ``rules_version``,
``domain``) bound through ``get_logger(...)`` or ``LoggerAdapter.with_context``.
JSON output puts the context in dedicated fields; text output appends it to
the line as ``key=value`` pairs.
"""
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

from pythonjsonlogger import jsonlogger

from core.config import settings

# Context keys promoted to top-level log fields, in output order
CONTEXT_FIELDS = ("domain", "audit_id", "rules_version")

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _context_of(record: logging.LogRecord) -> Dict[str, str]:
    return {key: str(getattr(record, key)) for key in CONTEXT_FIELDS if getattr(record, key, None) is not None}


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with application and audit context fields"""

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(record.created, timezone.utc).isoformat()
        log_record["app"] = settings.app_name
        log_record["environment"] = settings.environment
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record.update(_context_of(record))

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


class ContextTextFormatter(logging.Formatter):
    """Human-readable formatter that appends bound audit context"""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context_of(record)
        if context:
            line += " [" + " ".join(f"{key}={value}" for key, value in context.items()) + "]"
        return line


def build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    return ContextTextFormatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging(
    level: Optional[str] = None, log_format: Optional[str] = None, stream: Optional[TextIO] = None
) -> logging.Handler:
    """
    Install the single console handler on the root logger

    Defaults come from settings. Returns the installed handler.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, (level or settings.log_level).upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setFormatter(build_formatter(log_format or settings.log_format))
    root_logger.addHandler(console_handler)

    # The file watcher logs every filesystem event at DEBUG
    logging.getLogger("watchdog").setLevel(logging.WARNING)
    return console_handler


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter to add context to all log messages"""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        # Bound context wins over per-call extra for the same key
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs

    def with_context(self, **context) -> "LoggerAdapter":
        """Create a new logger with additional context"""
        new_extra = self.extra.copy()
        new_extra.update(context)
        return LoggerAdapter(self.logger, new_extra)


def get_logger(name: str, **context) -> LoggerAdapter:
    """
    Get a logger instance with optional context

    Args:
        name: Logger name (usually __name__)
        **context: Additional context to include in all logs

    Returns:
        LoggerAdapter instance

    Example:
        logger = get_logger(__name__, domain="d4_audit_quality")
        logger.with_context(audit_id=42).info("Audit reclassified")
    """
    return LoggerAdapter(logging.getLogger(name), context)


# Initialize logging on import
setup_logging()
