"""Structured logging for capi-migration.

Every module logs through structlog with snake_case event names and
key/value context. The terminal gets a Rich handler; an optional file
handler writes one JSON object per line so that reconciliation logs can be
shipped and queried per cluster.

While a reconciliation pass runs, :func:`bind_cluster` puts ``cluster_id``
on every line logged by the current task.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any

import structlog
from rich.console import Console
from rich.logging import RichHandler
from structlog.typing import EventDict, WrappedLogger

from capi_migration import PROJECT_NAME, __version__

_ANSI_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

REDACTED = "[REDACTED]"

# Resource fields whose values must never reach a log sink.
SENSITIVE_FIELDS = {
    "data",
    "stringdata",
    "token",
    "password",
    "secret",
    "private_key",
    "client_secret",
    "secret_access_key",
    "secret_id",
    "tls.key",
    "key",
}


def add_app_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """structlog processor stamping project name and version on each event."""
    event_dict.setdefault("app", PROJECT_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


class JSONFileFormatter(logging.Formatter):
    """One JSON object per record, with ANSI codes removed from the rendered event."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": _ANSI_PATTERN.sub("", record.getMessage()),
            "app": PROJECT_NAME,
            "version": __version__,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def _console_handler(level: int) -> logging.Handler:
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setLevel(level)
    return handler


def _file_handler(path: Path, level: int, log_format: str) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path)
    handler.setLevel(level)
    if log_format == "json":
        handler.setFormatter(JSONFileFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def _level(name: str | None, default: int) -> int:
    return getattr(logging, (name or "").upper(), default)


def configure_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: str | None = None,
    file_level: str | None = None,
) -> None:
    """Route structlog through the standard library to Rich and, optionally, a file.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        level: Terminal log level
        log_format: ``json`` or ``console`` for the file handler
        log_file: Path of the log file, None for terminal output only
        file_level: File log level, DEBUG when not given
    """
    console_level = _level(level, logging.INFO)
    file_log_level = _level(file_level, logging.DEBUG)

    handlers = [_console_handler(console_level)]
    if log_file:
        handlers.append(_file_handler(Path(log_file), file_log_level, log_format))

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            add_app_context,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            # Rich colours the terminal output.
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            min(console_level, file_log_level) if log_file else console_level
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_cluster(cluster_id: str, **extra: Any) -> None:
    """Bind the cluster being reconciled to every log line of the current task."""
    structlog.contextvars.bind_contextvars(cluster_id=cluster_id, **extra)


def unbind_cluster() -> None:
    """Drop per-cluster context bound by :func:`bind_cluster`."""
    structlog.contextvars.clear_contextvars()


def log_error(
    logger: structlog.stdlib.BoundLogger,
    error: Exception,
    context: str,
    **extra: Any,
) -> None:
    """Log ``error`` with its type, message and traceback under the ``error_occurred`` event.

    Args:
        logger: Logger of the calling module
        error: The exception being reported
        context: What was being done, e.g. ``reconcile``
        **extra: More key/value context
    """
    logger.error(
        "error_occurred",
        error_type=type(error).__name__,
        error_message=str(error),
        context=context,
        **extra,
        exc_info=True,
    )


def sanitize_payload(payload: Any, max_depth: int = 10) -> Any:
    """Return a copy of a resource body that is safe to log.

    Secret ``data``/``stringData`` maps are replaced wholesale, as are
    credential-like keys anywhere in the tree. Nesting deeper than
    ``max_depth`` is cut off.
    """
    if not isinstance(payload, (dict, list)):
        return payload
    if max_depth <= 0:
        return "[MAX_DEPTH_EXCEEDED]"
    if isinstance(payload, dict):
        return {
            key: (
                REDACTED
                if isinstance(key, str) and key.lower() in SENSITIVE_FIELDS
                else sanitize_payload(value, max_depth - 1)
            )
            for key, value in payload.items()
        }
    return [sanitize_payload(item, max_depth - 1) for item in payload]
