"""Logging configuration for the gang workflow engine."""

import contextvars
import json
import logging
import sys
import traceback
from contextlib import contextmanager
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s%(context_suffix)s"

# Fields stamped on every record while a run or request is in flight.
# Tasks spawned for parallel squads copy the context of the run that created them.
_log_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "gangflow_log_context", default={}
)

# Logger name -> level applied on every setup_logging call
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
}


class StructuredFormatter(logging.Formatter):
    """Formats each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(getattr(record, "context", {}))
        entry.update(getattr(record, "extra_fields", {}))

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }
        return json.dumps(entry, default=str)


class RunContextFilter(logging.Filter):
    """Copies the active run/request context onto each record.

    Plain-text handlers get it as ``context_suffix`` (" [run_id=... workflow=...]"),
    structured handlers read ``record.context`` directly.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = dict(_log_context.get())
        record.context = context
        record.context_suffix = (
            " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]" if context else ""
        )
        return True


def _build_handlers(stream, log_file: Optional[str], max_size: int, backup_count: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(stream or sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=max_size, backupCount=backup_count))
    return handlers


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    stream=None
) -> logging.Logger:
    """
    Configure root logging for gangflow.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path for a rotating log file
        log_format: Format string for plain-text output; may use ``%(context_suffix)s``
        structured: Emit JSON lines instead of plain text
        max_size: Maximum log file size in bytes before rotation
        backup_count: Number of rotated files to keep
        stream: Console stream, stdout by default

    Returns:
        The root logger
    """
    numeric_level = resolve_level(level)
    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(fmt=log_format or DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    context_filter = RunContextFilter()
    for handler in _build_handlers(stream, log_file, max_size, backup_count):
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root_logger.addHandler(handler)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
    logging.getLogger("gangflow").setLevel(numeric_level)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name."""
    return logging.getLogger(name)


def set_logging_context(**fields):
    """Add fields to the context stamped on subsequent log records."""
    _log_context.set({**_log_context.get(), **fields})


def clear_logging_context():
    _log_context.set({})


@contextmanager
def logging_context(**fields) -> Iterator[None]:
    """Stamp ``fields`` on log records inside the block, restoring the previous context after."""
    token = _log_context.set({**_log_context.get(), **fields})
    try:
        yield
    finally:
        _log_context.reset(token)


def log_with_context(logger: logging.Logger, level: int, message: str, **fields):
    """Log a message with additional per-message fields."""
    logger.log(level, message, extra={"extra_fields": fields})


def resolve_level(name: Optional[str], default: int = logging.INFO) -> int:
    """Map a level name such as "debug" or "WARNING" to its logging constant."""
    if not name:
        return default
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else default
