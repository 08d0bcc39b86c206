from __future__ import annotations

import asyncio
import logging
import os
import weakref
from typing import Any

import aiohttp
import orjson

logger = logging.getLogger(__name__)


class HTTPError(Exception):
    """Raised when an HTTP request returns a non-success status code."""


def dumps(obj: object) -> bytes:
    return orjson.dumps(obj)


def loads(data: str | bytes) -> Any:
    return orjson.loads(data)


# Maintain a session per event loop to avoid cross-loop usage errors when
# running multiple asyncio loops in different threads.
_SESSIONS: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, aiohttp.ClientSession]" = (
    weakref.WeakKeyDictionary()
)

CONNECTOR_LIMIT = int(os.getenv("HTTP_CONNECTOR_LIMIT", "0") or 0)
CONNECTOR_LIMIT_PER_HOST = int(os.getenv("HTTP_CONNECTOR_LIMIT_PER_HOST", "0") or 0)


def _timeout_total() -> float:
    try:
        return float(os.getenv("HTTP_TIMEOUT_SEC", "15") or 15)
    except ValueError:
        return 15.0


async def get_session() -> aiohttp.ClientSession:
    """Return an aiohttp session bound to the current event loop."""
    loop = asyncio.get_running_loop()
    sess = _SESSIONS.get(loop)
    if sess is None or sess.closed:
        connector = aiohttp.TCPConnector(
            limit=CONNECTOR_LIMIT,
            limit_per_host=CONNECTOR_LIMIT_PER_HOST,
        )
        ua = os.getenv("HTTP_USER_AGENT", "solholdings/1.0")
        sess = aiohttp.ClientSession(
            connector=connector,
            headers={"User-Agent": ua, "Accept": "application/json"},
            timeout=aiohttp.ClientTimeout(total=_timeout_total()),
        )
        _SESSIONS[loop] = sess
    return sess


async def close_session() -> None:
    """Close all known aiohttp sessions."""
    to_close = list(_SESSIONS.values())
    _SESSIONS.clear()
    for sess in to_close:
        if not sess.closed:
            try:
                await sess.close()
            except Exception as exc:  # pragma: no cover - best effort on shutdown
                logger.debug("Failed to close HTTP session: %s", exc)


async def fetch_json(
    url: str,
    *,
    session: aiohttp.ClientSession | None = None,
    timeout: float | None = None,
) -> Any:
    """GET ``url`` and decode the body with ``orjson``.

    Non-2xx responses raise :class:`HTTPError`; transport errors propagate as
    :class:`aiohttp.ClientError`.
    """

    sess = session or await get_session()
    kwargs: dict[str, Any] = {}
    if timeout is not None:
        kwargs["timeout"] = aiohttp.ClientTimeout(total=timeout)
    async with sess.get(url, **kwargs) as resp:
        if resp.status >= 400:
            raise HTTPError(f"GET {url} returned HTTP {resp.status}")
        body = await resp.read()
    return loads(body)


__all__ = ["HTTPError", "close_session", "dumps", "fetch_json", "get_session", "loads"]
