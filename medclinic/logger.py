"""
Structured JSON Logging Module.

Every component of the client receives a ``StructuredLogger`` by
injection.  Records are written as one JSON object per line to the
console and, unless disabled, to a size-rotated log file.

Fields passed through ``extra`` are kept as structured data.  Anything
that looks like a credential (bearer tokens, refreshed tokens,
passwords) is masked before the record is serialised, at any nesting
depth, so request headers can be logged as-is.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, TextIO

from medclinic.config import get_config

REDACTED: str = "***"

SENSITIVE_KEYS: frozenset[str] = frozenset({
    "authorization",
    "token",
    "new_token",
    "x-new-token",
    "password",
})

# Attributes every LogRecord carries; whatever else is on a record came in
# through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.makeLogRecord({})).keys()
) | {"message", "asctime", "taskName"}


def redact(value: Any, key: Optional[str] = None) -> Any:
    """Return *value* with credential-bearing entries replaced by ``***``."""
    if key is not None and key.lower() in SENSITIVE_KEYS:
        return REDACTED
    if isinstance(value, dict):
        return {str(k): redact(v, str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


class JSONFormatter(logging.Formatter):
    """Render a record as ``{timestamp, level, logger_name, message, ...}``.

    ``extra`` holds the caller's structured fields (redacted) and
    ``exception`` the formatted traceback, each only when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        extra = {
            key: redact(value, key)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
        }
        if extra:
            entry["extra"] = extra

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False, default=str)


class StructuredLogger:
    """Injectable wrapper around a named ``logging.Logger``.

    Handlers are attached once per logger name; a second instance with the
    same name shares the first one's handlers.  Unset arguments fall back
    to ``AppConfig`` (``LOG_LEVEL``, ``LOG_FILE``, ``LOG_MAX_BYTES``,
    ``LOG_BACKUP_COUNT``).  ``log_file=""`` keeps output on the console
    only, which is what the test-suite does.

    Usage::

        log = StructuredLogger(name="gateway", stream=sys.stderr)
        log.info("GET patients -> 200", extra={"request_id": "..."})
    """

    def __init__(
        self,
        name: str = "medclinic",
        level: Optional[int] = None,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        cfg = get_config()

        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(cfg.log_level if level is None else level)

        if self._logger.handlers:
            return

        formatter = JSONFormatter()
        console = logging.StreamHandler(stream or sys.stdout)
        console.setFormatter(formatter)
        self._logger.addHandler(console)

        path = cfg.LOG_FILE if log_file is None else log_file
        if path:
            self._attach_file(
                path,
                formatter,
                cfg.LOG_MAX_BYTES if max_bytes is None else max_bytes,
                cfg.LOG_BACKUP_COUNT if backup_count is None else backup_count,
            )

    def _attach_file(
        self,
        path: str,
        formatter: logging.Formatter,
        max_bytes: int,
        backup_count: int,
    ) -> None:
        try:
            log_path = Path(path).expanduser()
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                filename=str(log_path),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        except OSError as exc:
            self._logger.warning(
                "Log file '%s' unavailable (%s); logging to the console only.",
                path,
                exc,
            )
            return
        handler.setFormatter(formatter)
        self._logger.addHandler(handler)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def name(self) -> str:
        return self._logger.name

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


def get_logger(name: str = "medclinic") -> StructuredLogger:
    """``StructuredLogger`` for *name* with every setting taken from config."""
    return StructuredLogger(name=name)
