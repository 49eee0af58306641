from __future__ import annotations

import json
import logging
import logging.config
import os

_CONTEXT_DEFAULTS: dict[str, str | None] = {
    "camera_name": "-",
    "recording_id": None,
}
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "message",
        "asctime",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
    }
)


class _ContextDefaultsFilter(logging.Filter):
    """Ensures every record carries `camera_name` and `recording_id`."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, default in _CONTEXT_DEFAULTS.items():
            if getattr(record, key, None) in (None, ""):
                setattr(record, key, default)
        return True


class _JsonExtraFormatter(logging.Formatter):
    """Appends non-standard `extra` fields to the line as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = _extract_extras(record)
        if not extras:
            return base
        return f"{base} {json.dumps(extras, default=str, sort_keys=True)}"


def _extract_extras(record: logging.LogRecord) -> dict[str, object]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _STANDARD_LOGRECORD_ATTRS and key not in _CONTEXT_DEFAULTS
    }


def set_node_name(name: str | None) -> None:
    """Default `camera_name` for records that are not about one camera."""
    _CONTEXT_DEFAULTS["camera_name"] = name or "-"


def _install_context_filter() -> None:
    root = logging.getLogger()
    for handler in root.handlers:
        if any(isinstance(f, _ContextDefaultsFilter) for f in handler.filters):
            continue
        handler.addFilter(_ContextDefaultsFilter())


def configure_logging(
    *,
    log_level: str = "INFO",
    node_name: str | None = None,
    log_file: str | None = None,
) -> None:
    """Configure root logging.

    Console lines carry `camera_name` and `module:lineno`. Set
    `CONSOLE_LOG_FORMAT` to override the format. When `log_file` (or
    `HOMENVR_LOG_FILE`) is set, the same lines also go to a rotating file.
    """
    level_name = str(log_level).upper()
    default_fmt = (
        "%(asctime)s %(levelname)s [%(camera_name)s] %(module)s:%(lineno)d %(message)s"
    )
    fmt = os.getenv("CONSOLE_LOG_FORMAT", default_fmt)
    log_file = log_file or os.getenv("HOMENVR_LOG_FILE")

    handlers: dict[str, dict[str, object]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": level_name,
            "formatter": "default",
            "stream": "ext://sys.stdout",
        }
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level_name,
            "formatter": "default",
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "encoding": "utf-8",
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "()": "homenvr.logging_setup._JsonExtraFormatter",
                    "format": fmt,
                }
            },
            "handlers": handlers,
            "root": {"level": "DEBUG", "handlers": list(handlers)},
        }
    )

    _install_context_filter()
    set_node_name(node_name)
    logging.captureWarnings(True)

    # Driver and access logs are noisy at DEBUG.
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
