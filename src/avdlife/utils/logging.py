from __future__ import annotations

import json
import logging
import os
import sys
import threading
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars

_LOG_DIR = Path(os.getenv("AVDLIFE_LOG_DIR", "artifacts/logs"))
_LIFECYCLE_LOG = _LOG_DIR / "avdlife.log"

# The filtering logger knows no level below DEBUG; TRACE is accepted as its alias
_LEVELS = {
    "TRACE": logging.DEBUG,
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

_CONFIGURED = False


def _level_from_env() -> int:
    """AVDLIFE_LOG_LEVEL as a numeric level; unknown names fall back to INFO."""
    return _LEVELS.get(os.getenv("AVDLIFE_LOG_LEVEL", "INFO").upper(), logging.INFO)


def _ensure_log_dir() -> bool:
    try:
        _LOG_DIR.mkdir(parents=True, exist_ok=True)
        return True
    except OSError:
        return False


def _add_message(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    # "message" mirrors "event" for log shippers that expect it
    event_dict.setdefault("message", event_dict.get("event"))
    return event_dict


def _drop_unset(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    # bind_context() binds serial=None before a port is negotiated
    return {k: v for k, v in event_dict.items() if v is not None}


class _FileSink:
    """
    Processor appending every record as one JSON line to the lifecycle log.

    The relay threads, the exit watcher and the caller all log at once, so
    writes are serialized. A log file that cannot be written never fails the
    lifecycle operation that produced the record.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def __call__(
        self, logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> MutableMapping[str, Any]:
        if not _ensure_log_dir():
            return event_dict
        line = json.dumps(event_dict, ensure_ascii=False, default=str)
        with self._lock:
            try:
                with _LIFECYCLE_LOG.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError:
                pass
        return event_dict


def lifecycle_log_path() -> Path:
    """Return the path of the file every lifecycle record is duplicated into."""
    _ensure_log_dir()
    return _LIFECYCLE_LOG


def bind_context(*, avd: str | None = None, serial: str | None = None) -> None:
    """
    Bind the emulator name and negotiated serial into the logging context.

    Records logged afterwards from the calling thread carry them; background
    threads see them only if started inside a copy of this context.
    """
    bind_contextvars(avd=avd, serial=serial)


def setup_logging() -> None:
    """
    Configure structlog once per process.

    Records are JSON lines with `timestamp`, `level`, `module`, `message` and
    the bound `avd`/`serial`, printed to stderr (stdout belongs to commands
    wrapped by `avdlife run`) and duplicated into artifacts/logs/avdlife.log.
    The level comes from AVDLIFE_LOG_LEVEL.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    level = _level_from_env()
    structlog.configure(
        processors=[
            merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
            structlog.processors.CallsiteParameterAdder(
                [structlog.processors.CallsiteParameter.MODULE]
            ),
            structlog.processors.format_exc_info,
            _add_message,
            _drop_unset,
            _FileSink(),
            structlog.processors.JSONRenderer(default=str),
        ],
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    # Third-party libraries log through the stdlib root logger
    logging.getLogger().setLevel(level)

    _CONFIGURED = True


def get_logger(name: str | None = None) -> Any:
    """
    Get a structlog logger, configuring logging on first use.

    Library callers that never call setup_logging() still get JSON records.
    """
    if not _CONFIGURED:
        setup_logging()
    return structlog.get_logger(name or __name__)


__all__ = [
    "setup_logging",
    "bind_context",
    "lifecycle_log_path",
    "get_logger",
    "clear_contextvars",
]
