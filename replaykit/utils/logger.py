# replaykit/utils/logger.py
from __future__ import annotations

"""Logging
----------
All replaykit modules log through `get_logger(__name__)`. Records go to the
`replaykit` logger only (the host application's root logger is left alone):

  - console: rich, on stderr, colour per COLORIZED_OUTPUT
  - file:    JSON lines, rotating, when LOG_TO_FILE is set
  - per run: extra JSON files via attach_file_logger() / detach_file_logger()

Context bound with `bind()` / `bound()` (run_id, step_id...) is merged into
every JSON record.
"""

import json
import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Iterator, Optional

from rich.console import Console
from rich.logging import RichHandler

from replaykit.utils.config import get_settings, LogLevel


__all__ = [
    "get_logger",
    "set_log_level",
    "set_colorized",
    "bind",
    "unbind",
    "bound",
    "log_with_context",
    "attach_file_logger",
    "detach_file_logger",
]

PACKAGE_LOGGER = "replaykit"
_MAX_BYTES = 5 * 1024 * 1024

_config_lock = threading.Lock()
_configured = False
_context: Dict[str, Any] = {}  # shared by every adapter returned from get_logger()


# ------------- Formatting -------------

class JsonFormatter(logging.Formatter):
    """One JSON object per line: time, level, logger, message, bound context."""

    time_format = "%Y-%m-%dT%H:%M:%S"

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(self.time_format),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        context = getattr(record, "extra", None)
        if isinstance(context, dict):
            payload.update(context)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        payload["thread"] = record.threadName
        return json.dumps(payload, ensure_ascii=False, default=str)


# ------------- Handlers -------------

def _package_logger() -> logging.Logger:
    return logging.getLogger(PACKAGE_LOGGER)


def _console(colorized: bool) -> Console:
    return Console(stderr=True, force_jupyter=False, color_system="auto" if colorized else None, no_color=not colorized)


def _console_handler(level: int, colorized: bool) -> RichHandler:
    handler = RichHandler(
        console=_console(colorized),
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
        omit_repeated_times=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(level)
    return handler


def _json_file_handler(path: str, level: int, backups: int) -> RotatingFileHandler:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    handler = RotatingFileHandler(filename=path, maxBytes=_MAX_BYTES, backupCount=backups, encoding="utf-8", delay=True)
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    return handler


def _ensure_configured() -> None:
    """Install the handlers on first use; later calls return immediately."""
    global _configured
    if _configured:
        return

    with _config_lock:
        if _configured:
            return

        settings = get_settings()
        level = getattr(logging, LogLevel(settings.LOG_LEVEL).value, logging.INFO)

        logger = _package_logger()
        logger.setLevel(level)
        logger.propagate = False
        for h in list(logger.handlers):
            logger.removeHandler(h)

        logger.addHandler(_console_handler(level, settings.COLORIZED_OUTPUT))
        if settings.LOG_TO_FILE:
            logger.addHandler(_json_file_handler(os.fspath(settings.LOG_FILE), level, backups=5))

        # playwright's driver chatter stays out of step logs
        for name in ("asyncio", "playwright"):
            logging.getLogger(name).setLevel(max(level, logging.WARNING))

        _configured = True


# ------------- Public API -------------

def get_logger(name: Optional[str] = None) -> logging.LoggerAdapter:
    """Module logger whose records carry the bound context."""
    _ensure_configured()
    return logging.LoggerAdapter(logging.getLogger(name or PACKAGE_LOGGER), extra={"extra": _context})


def set_log_level(level: LogLevel | str) -> None:
    _ensure_configured()
    name = level if isinstance(level, str) else level.value
    py_level = getattr(logging, name.upper(), logging.INFO)
    logger = _package_logger()
    logger.setLevel(py_level)
    for h in logger.handlers:
        h.setLevel(py_level)


def set_colorized(enabled: bool) -> None:
    """Switch colour on or off for the console handler."""
    _ensure_configured()
    for h in _package_logger().handlers:
        if isinstance(h, RichHandler):
            h.console = _console(enabled)


def bind(**kwargs: Any) -> None:
    """Attach context (e.g. run_id=...) to every subsequent record."""
    _context.update(kwargs)


def unbind(*keys: str) -> None:
    for k in keys:
        _context.pop(k, None)


@contextmanager
def bound(**kwargs: Any) -> Iterator[None]:
    """
    bind() for the duration of a block, e.g.:
        with bound(run_id="20250101T000000Z"):
            finder.find(bundle)
    """
    bind(**kwargs)
    try:
        yield
    finally:
        unbind(*kwargs)


def log_with_context(logger: logging.LoggerAdapter, **kwargs: Any) -> logging.LoggerAdapter:
    """Adapter for one scoped section (a step, a capture) on top of the bound context."""
    merged = dict(_context)
    merged.update(kwargs)
    return logging.LoggerAdapter(logger.logger, extra={"extra": merged})


def attach_file_logger(path: os.PathLike | str, level: Optional[int] = None) -> logging.Handler:
    """
    Add a JSON-lines file for one run. Pass the returned handler to
    detach_file_logger() when the run ends.
    """
    _ensure_configured()
    logger = _package_logger()
    handler = _json_file_handler(os.fspath(path), logger.level if level is None else level, backups=3)
    logger.addHandler(handler)
    return handler


def detach_file_logger(handler: logging.Handler) -> None:
    _package_logger().removeHandler(handler)
    handler.close()
