"""TTL cache with single-flight population for async callers."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Hashable, Tuple

import cachetools

_MISSING: Any = object()


class TTLCache:
    """A bounded TTL cache usable from async code.

    Storage and expiry are delegated to :class:`cachetools.TTLCache`.  On top
    of that, :meth:`get_or_set_async` guarantees that concurrent callers
    asking for the same missing key share a single in-flight computation.
    """

    def __init__(
        self,
        maxsize: int = 128,
        ttl: float = 60.0,
        *,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.maxsize = maxsize
        self.ttl = float(ttl)
        self._data: cachetools.TTLCache = cachetools.TTLCache(
            maxsize=maxsize, ttl=self.ttl, timer=timer
        )
        self._pending: Dict[Tuple[Hashable, Any], "asyncio.Task[Any]"] = {}

    # basic dict API -------------------------------------------------------
    def get(self, key: Hashable, default: Any = None) -> Any:
        return self._data.get(key, default)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._data

    def __getitem__(self, key: Hashable) -> Any:
        return self._data[key]

    def __setitem__(self, key: Hashable, value: Any) -> None:
        self.set(key, value)

    def set(self, key: Hashable, value: Any) -> None:
        self._data[key] = value

    def pop(self, key: Hashable, default: Any = None) -> Any:
        return self._data.pop(key, default)

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list:
        return list(self._data.keys())

    def __len__(self) -> int:
        return len(self._data)

    @property
    def pending(self) -> int:
        """Number of in-flight computations."""
        return len(self._pending)

    # async helpers -------------------------------------------------------
    async def get_or_set_async(
        self, key: Hashable, factory: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Return the cached value for ``key`` or compute it with ``factory``.

        Only one task runs ``factory`` for a missing key; other callers await
        that same task.  Exceptions propagate to every waiter and nothing is
        cached.
        """

        value = self._data.get(key, _MISSING)
        if value is not _MISSING:
            return value

        # in-flight tasks belong to the loop that started them
        slot = (key, asyncio.get_running_loop())
        task = self._pending.get(slot)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._pending[slot] = task
            task.add_done_callback(lambda _t, s=slot: self._finish(s, _t))
        return await asyncio.shield(task)

    def _finish(self, slot: Tuple[Hashable, Any], task: "asyncio.Task[Any]") -> None:
        if self._pending.get(slot) is task:
            self._pending.pop(slot, None)
        if task.cancelled() or task.exception() is not None:
            return
        self._data[slot[0]] = task.result()


__all__ = ["TTLCache"]
