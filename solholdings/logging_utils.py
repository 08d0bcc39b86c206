"""Logging helpers shared by the library modules and the CLI."""

from __future__ import annotations

import logging
import sys
import threading
import time
from datetime import datetime, timezone
from typing import Any, Iterable

import orjson

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s | %(message)s"
TEXT_DATEFMT = "%H:%M:%S"

# third-party loggers that are chatty at INFO/DEBUG
QUIET_LOGGERS: tuple[str, ...] = ("asyncio", "aiohttp.access", "httpx", "httpcore", "solana")

_HANDLER_ATTR = "_solholdings_handler"

_STANDARD_ATTRS = frozenset(
    logging.LogRecord("x", logging.INFO, __file__, 0, "", (), None).__dict__
) | {"message", "asctime"}

_throttle_lock = threading.Lock()
_last_warned: dict[str, float] = {}


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        component = record.name
        if component.startswith("solholdings."):
            component = component[len("solholdings.") :]
        payload: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname.lower(),
            "component": component,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                payload.setdefault(key, value)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode()


def setup_stdout_logging(
    *,
    level: int = logging.INFO,
    json: bool = False,
    quiet: Iterable[str] = QUIET_LOGGERS,
) -> logging.Handler:
    """Attach (or reconfigure) the package's stdout handler on the root logger.

    Calling it again replaces the formatter and level of the same handler
    instead of stacking a second one.
    """

    root = logging.getLogger()
    handler = getattr(root, _HANDLER_ATTR, None)
    if not isinstance(handler, logging.StreamHandler) or handler not in root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        root.addHandler(handler)
        setattr(root, _HANDLER_ATTR, handler)
    else:
        handler.setStream(sys.stdout)

    formatter: logging.Formatter = (
        JsonFormatter() if json else logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT)
    )
    handler.setFormatter(formatter)
    handler.setLevel(level)
    root.setLevel(level)
    for name in quiet:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    return handler


def remove_stdout_logging() -> None:
    root = logging.getLogger()
    handler = getattr(root, _HANDLER_ATTR, None)
    if handler is not None:
        root.removeHandler(handler)
        setattr(root, _HANDLER_ATTR, None)


def warn_throttled(
    logger: logging.Logger,
    key: str,
    interval: float,
    message: str,
    *args: Any,
    **kwargs: Any,
) -> bool:
    """Log ``message`` as a warning unless ``key`` fired within ``interval`` seconds.

    Returns whether the warning was emitted.  ``interval <= 0`` never throttles.
    """

    now = time.monotonic()
    with _throttle_lock:
        last = _last_warned.get(key)
        if interval > 0 and last is not None and now - last < interval:
            return False
        _last_warned[key] = now
    logger.warning(message, *args, **kwargs)
    return True


def reset_throttle() -> None:
    with _throttle_lock:
        _last_warned.clear()


__all__ = [
    "JsonFormatter",
    "remove_stdout_logging",
    "reset_throttle",
    "setup_stdout_logging",
    "warn_throttled",
]
