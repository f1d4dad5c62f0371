"""
Structured JSON Logging.

Every repository and service receives a ``StructuredLogger`` through its
constructor.  Each record is written as one JSON object per line to
stdout and to a size-rotated log file::

    {"timestamp": "...", "level": "INFO", "logger_name": "services",
     "message": "Identity created: 0b6f...", "extra": {"event": "..."}}

Values passed through ``extra=`` keep their JSON type when they have one
(numbers, booleans, null); anything else is stringified.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, TextIO

_JSON_SCALARS = (str, int, float, bool, type(None))


class JSONFormatter(logging.Formatter):
    """Render a ``LogRecord`` as a single JSON line."""

    # Attribute names every LogRecord carries; the rest came from ``extra``.
    _STANDARD_ATTRS: frozenset[str] = frozenset(
        logging.makeLogRecord({}).__dict__.keys()
    ) | {"message", "asctime", "taskName"}

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        extra = {
            key: value if isinstance(value, _JSON_SCALARS) else str(value)
            for key, value in record.__dict__.items()
            if key not in self._STANDARD_ATTRS
        }
        if extra:
            entry["extra"] = extra

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False)


def _file_handler(
    log_file: str,
    max_bytes: int,
    backup_count: int,
) -> RotatingFileHandler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )


class StructuredLogger:
    """Injectable wrapper around a JSON-configured ``logging.Logger``.

    Handlers are attached the first time a *name* is used; later
    instances with the same name share them.  Unset file options fall
    back to ``LOG_FILE``, ``LOG_MAX_BYTES`` and ``LOG_BACKUP_COUNT`` from
    the application config.

    Usage::

        log = StructuredLogger(name="roster")
        log.info("Roster loaded", extra={"site": "Branch A", "count": 12})
    """

    def __init__(
        self,
        name: str = "staffdesk",
        level: int = logging.INFO,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(level)
        self._logger.propagate = False

        if self._logger.handlers:
            return

        # Imported here: config itself logs through the stdlib logger.
        from staffdesk.config import get_config
        cfg = get_config()

        formatter = JSONFormatter()
        console = logging.StreamHandler(stream or sys.stdout)
        console.setFormatter(formatter)
        self._logger.addHandler(console)

        target = log_file or cfg.LOG_FILE
        try:
            handler = _file_handler(
                target,
                max_bytes if max_bytes is not None else cfg.LOG_MAX_BYTES,
                backup_count if backup_count is not None else cfg.LOG_BACKUP_COUNT,
            )
        except OSError as exc:
            self._logger.warning(
                "Log file %s unavailable (%s); logging to console only.", target, exc,
            )
        else:
            handler.setFormatter(formatter)
            self._logger.addHandler(handler)

    @property
    def logger(self) -> logging.Logger:
        """The underlying ``logging.Logger``."""
        return self._logger

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)

    def exception(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.exception(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = "staffdesk") -> StructuredLogger:
    """Shorthand for ``StructuredLogger(name=name)``."""
    return StructuredLogger(name=name)
