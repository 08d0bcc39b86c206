"""Process-wide token registry built from a remote token-list document.

The index is built lazily on first use and then shared read-only.  A failed
build is cached as an empty index (every lookup becomes a miss) until the
process restarts, unless a ``retry_failed_after`` interval is configured.
"""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import aiohttp

from .config import DEFAULT_CHAIN_IDS, DEFAULT_TOKEN_LIST_URL, HoldingsConfig
from .http import HTTPError, fetch_json
from .mints import normalize_mint_or_none

logger = logging.getLogger(__name__)

TokenListFetcher = Callable[[], Awaitable[Any]]

_EMPTY: Mapping[str, "RegistryEntry"] = MappingProxyType({})


class RegistryUnavailable(RuntimeError):
    """Raised internally when the token list cannot be fetched or parsed."""


@dataclass(frozen=True, slots=True)
class RegistryEntry:
    address: str
    name: str
    symbol: str
    decimals: int
    logo_uri: Optional[str]
    chain_id: int


def _parse_entry(raw: Any) -> Optional[RegistryEntry]:
    if not isinstance(raw, Mapping):
        return None
    address = normalize_mint_or_none(raw.get("address"))
    name = raw.get("name")
    symbol = raw.get("symbol")
    decimals = raw.get("decimals")
    chain_id = raw.get("chainId")
    if address is None or not isinstance(name, str) or not isinstance(symbol, str):
        return None
    if isinstance(decimals, bool) or not isinstance(decimals, int) or not 0 <= decimals <= 255:
        return None
    if isinstance(chain_id, bool) or not isinstance(chain_id, int):
        return None
    logo = raw.get("logoURI")
    return RegistryEntry(
        address=address,
        name=name,
        symbol=symbol,
        decimals=decimals,
        logo_uri=logo if isinstance(logo, str) and logo.strip() else None,
        chain_id=chain_id,
    )


def _token_records(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        tokens = payload.get("tokens")
        if isinstance(tokens, list):
            return tokens
    raise RegistryUnavailable("token list payload has no 'tokens' array")


def build_index(payload: Any, chain_ids: Sequence[int]) -> Dict[str, RegistryEntry]:
    """Merge token-list records of ``chain_ids`` into one mapping by mint.

    Segments are applied in ``chain_ids`` order, so a mint listed in several
    segments keeps the entry from the last one.
    """

    by_chain: Dict[int, List[RegistryEntry]] = {cid: [] for cid in chain_ids}
    for raw in _token_records(payload):
        entry = _parse_entry(raw)
        if entry is not None and entry.chain_id in by_chain:
            by_chain[entry.chain_id].append(entry)

    index: Dict[str, RegistryEntry] = {}
    for cid in chain_ids:
        for entry in by_chain[cid]:
            index[entry.address] = entry
    return index


class RegistryIndex:
    """Lazily built, single-flight, soft-failing mint → entry mapping."""

    def __init__(
        self,
        url: str = DEFAULT_TOKEN_LIST_URL,
        *,
        chain_ids: Iterable[int] = DEFAULT_CHAIN_IDS,
        retry_failed_after: Optional[float] = None,
        fetcher: Optional[TokenListFetcher] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.url = url
        self.chain_ids = tuple(chain_ids)
        self.retry_failed_after = retry_failed_after
        self.timeout = timeout
        self._fetcher = fetcher or self._fetch_remote
        self._clock = clock
        self._index: Optional[Mapping[str, RegistryEntry]] = None
        self._failed_at: Optional[float] = None
        self._locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock]" = (
            weakref.WeakKeyDictionary()
        )
        self.fetch_count = 0

    @classmethod
    def from_config(cls, config: HoldingsConfig) -> "RegistryIndex":
        return cls(
            str(config.token_list_url),
            chain_ids=config.registry_chain_ids,
            retry_failed_after=config.registry_retry_after,
            timeout=config.http_timeout,
        )

    @property
    def built(self) -> bool:
        return self._index is not None

    @property
    def failed(self) -> bool:
        return self._failed_at is not None

    def _build_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        lock = self._locks.get(loop)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[loop] = lock
        return lock

    def _needs_build(self) -> bool:
        if self._index is None:
            return True
        if self._failed_at is None or self.retry_failed_after is None:
            return False
        return self._clock() - self._failed_at >= self.retry_failed_after

    async def _fetch_remote(self) -> Any:
        try:
            return await fetch_json(self.url, timeout=self.timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError, HTTPError, ValueError) as exc:
            raise RegistryUnavailable(f"token list fetch from {self.url} failed: {exc}") from exc

    async def get_index(self) -> Mapping[str, RegistryEntry]:
        """Return the shared index, building it on first use.

        Never raises; a failed build yields (and caches) an empty mapping.
        """

        if not self._needs_build():
            return self._index  # type: ignore[return-value]
        async with self._build_lock():
            if self._needs_build():
                await self._build()
        return self._index  # type: ignore[return-value]

    async def _build(self) -> None:
        self.fetch_count += 1
        try:
            payload = await self._fetcher()
            index = build_index(payload, self.chain_ids)
        except Exception as exc:
            logger.warning(
                "Token registry unavailable; falling back to on-chain data",
                extra={"url": self.url, "error_type": type(exc).__name__, "error": str(exc)},
            )
            self._index = _EMPTY
            self._failed_at = self._clock()
            return
        self._index = MappingProxyType(index)
        self._failed_at = None
        logger.info(
            "Token registry loaded with %d entries",
            len(index),
            extra={"url": self.url, "chain_ids": list(self.chain_ids)},
        )

    async def lookup(self, mint: str) -> Optional[RegistryEntry]:
        index = await self.get_index()
        return index.get(mint)

    def reset(self) -> None:
        """Forget the built index so the next call fetches again."""
        self._index = None
        self._failed_at = None


_shared: Optional[RegistryIndex] = None


def get_registry(config: HoldingsConfig | None = None) -> RegistryIndex:
    """Return the process-wide :class:`RegistryIndex`, creating it on first use."""

    global _shared
    if _shared is None:
        _shared = RegistryIndex.from_config(config) if config is not None else RegistryIndex()
    return _shared


def reset_registry() -> None:
    global _shared
    _shared = None


__all__ = [
    "RegistryEntry",
    "RegistryIndex",
    "RegistryUnavailable",
    "build_index",
    "get_registry",
    "reset_registry",
]
