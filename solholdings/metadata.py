"""Token metadata resolution through an ordered chain of sources.

Each source returns partial metadata (or ``None``).  Partials are folded in
priority order, first writer wins per field, over a placeholder record that
is always complete, so resolution cannot fail:

1. known overrides (short-circuits the chain)
2. wrapped-SOL special case
3. token registry
4. on-chain mint precision
5. placeholder
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, replace
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Sequence

from .config import HoldingsConfig
from .lru import TTLCache
from .mints import WRAPPED_SOL_MINT, normalize_text, short_address
from .registry import RegistryIndex, get_registry
from .rpc import LedgerQuery

logger = logging.getLogger(__name__)

GENERIC_ICON = "💰"
NATIVE_ICON = "◎"
PLACEHOLDER_SYMBOL = "UNKNOWN"
PLACEHOLDER_DECIMALS = 9

METADATA_FIELDS: FrozenSet[str] = frozenset({"symbol", "name", "decimals", "icon"})

_TOKEN_LIST_ASSETS = (
    "https://raw.githubusercontent.com/solana-labs/token-list/main/assets/mainnet"
)

KNOWN_OVERRIDES: Mapping[str, Mapping[str, Any]] = {
    "GdHsojisNu8RH92k4JzF1ULzutZgfg8WRL5cHkoW2HCK": {
        "icon": "🌭",
        "symbol": "HOT",
        "name": "Hot Dog Token",
    },
    "9NCKufE7BQrTXTang2WjXjBe2vdrfKArRMq2Nwmn4o8S": {
        "icon": "🍔",
        "symbol": "BURGER",
        "name": "Burger Token",
    },
    WRAPPED_SOL_MINT: {
        "symbol": "SOL",
        "name": "Wrapped SOL",
        "decimals": 9,
        "icon": f"{_TOKEN_LIST_ASSETS}/{WRAPPED_SOL_MINT}/logo.png",
    },
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v": {
        "symbol": "USDC",
        "name": "USD Coin",
        "decimals": 6,
        "icon": f"{_TOKEN_LIST_ASSETS}/EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v/logo.png",
    },
}

NATIVE_METADATA: Mapping[str, Any] = {
    "symbol": "SOL",
    "name": "Wrapped SOL",
    "decimals": 9,
    "icon": NATIVE_ICON,
}


@dataclass(frozen=True, slots=True)
class TokenMetadata:
    address: str
    symbol: str
    name: str
    decimals: int
    icon: str

    @property
    def icon_is_uri(self) -> bool:
        return self.icon.startswith(("http://", "https://", "ipfs://", "data:"))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "icon": self.icon,
        }


def placeholder_metadata(mint: str) -> TokenMetadata:
    """Deterministic record for a mint no source knows about."""

    return TokenMetadata(
        address=mint,
        symbol=PLACEHOLDER_SYMBOL,
        name=f"Token: {short_address(mint)}",
        decimals=PLACEHOLDER_DECIMALS,
        icon=GENERIC_ICON,
    )


def merge_partials(mint: str, partials: Iterable[Optional[Mapping[str, Any]]]) -> TokenMetadata:
    """Fold ``partials`` over the placeholder, first writer wins per field."""

    filled: Dict[str, Any] = {}
    for partial in partials:
        if not partial:
            continue
        for key in METADATA_FIELDS:
            if key not in filled and partial.get(key) is not None:
                filled[key] = partial[key]
    return replace(placeholder_metadata(mint), **filled)


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class MetadataSource:
    """One link of the fallback chain."""

    name = "source"
    provides: FrozenSet[str] = METADATA_FIELDS
    terminal = False

    async def fetch(self, mint: str) -> Optional[Mapping[str, Any]]:  # pragma: no cover - interface
        raise NotImplementedError


class KnownOverrideSource(MetadataSource):
    name = "override"
    terminal = True

    def __init__(self, overrides: Mapping[str, Mapping[str, Any]] = KNOWN_OVERRIDES) -> None:
        self.overrides = overrides

    async def fetch(self, mint: str) -> Optional[Mapping[str, Any]]:
        return self.overrides.get(mint)


class NativeMintSource(MetadataSource):
    name = "native"

    async def fetch(self, mint: str) -> Optional[Mapping[str, Any]]:
        return NATIVE_METADATA if mint == WRAPPED_SOL_MINT else None


class RegistrySource(MetadataSource):
    name = "registry"

    def __init__(self, registry: RegistryIndex) -> None:
        self.registry = registry

    async def fetch(self, mint: str) -> Optional[Mapping[str, Any]]:
        entry = await self.registry.lookup(mint)
        if entry is None:
            return None
        return {
            "name": entry.name,
            "symbol": entry.symbol,
            "decimals": entry.decimals,
            "icon": entry.logo_uri or GENERIC_ICON,
        }


class PrecisionSource(MetadataSource):
    name = "precision"
    provides = frozenset({"decimals"})

    def __init__(self, client: LedgerQuery) -> None:
        self.client = client

    async def fetch(self, mint: str) -> Optional[Mapping[str, Any]]:
        return {"decimals": await self.client.get_mint_decimals(mint)}


def default_sources(
    client: Optional[LedgerQuery], registry: RegistryIndex
) -> Sequence[MetadataSource]:
    sources: list[MetadataSource] = [
        KnownOverrideSource(),
        NativeMintSource(),
        RegistrySource(registry),
    ]
    if client is not None:
        sources.append(PrecisionSource(client))
    return sources


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class MetadataResolver:
    """Resolve complete :class:`TokenMetadata` records with per-mint caching."""

    def __init__(
        self,
        client: Optional[LedgerQuery] = None,
        *,
        registry: Optional[RegistryIndex] = None,
        sources: Optional[Sequence[MetadataSource]] = None,
        ttl: float = 300.0,
        cache_size: int = 4096,
        max_concurrency: int = 8,
    ) -> None:
        self.registry = registry or get_registry()
        self.sources = list(sources) if sources is not None else list(
            default_sources(client, self.registry)
        )
        self.cache = TTLCache(maxsize=cache_size, ttl=ttl)
        self.max_concurrency = max(1, max_concurrency)
        # asyncio primitives bind to the loop that first waits on them
        self._limiters: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Semaphore]" = (
            weakref.WeakKeyDictionary()
        )

    @classmethod
    def from_config(
        cls,
        config: HoldingsConfig,
        client: Optional[LedgerQuery] = None,
        *,
        registry: Optional[RegistryIndex] = None,
    ) -> "MetadataResolver":
        return cls(
            client,
            registry=registry or get_registry(config),
            ttl=config.metadata_ttl,
            cache_size=config.metadata_cache_size,
            max_concurrency=config.max_concurrency,
        )

    def _semaphore(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        limiter = self._limiters.get(loop)
        if limiter is None:
            limiter = asyncio.Semaphore(self.max_concurrency)
            self._limiters[loop] = limiter
        return limiter

    async def _run_chain(self, mint: str) -> TokenMetadata:
        partials: list[Mapping[str, Any]] = []
        filled: set[str] = set()
        for source in self.sources:
            if source.provides <= filled:
                continue
            try:
                partial = await source.fetch(mint)
            except Exception as exc:
                logger.debug("Metadata source %s failed for %s: %s", source.name, mint, exc)
                continue
            if not partial:
                continue
            partials.append(partial)
            filled.update(k for k in METADATA_FIELDS if partial.get(k) is not None)
            if source.terminal:
                break
        return merge_partials(mint, partials)

    async def _resolve_uncached(self, mint: str) -> TokenMetadata:
        try:
            async with self._semaphore():
                return await self._run_chain(mint)
        except Exception:
            logger.exception("Metadata resolution failed for %s", mint)
            return placeholder_metadata(mint)

    async def resolve(self, mint: str) -> TokenMetadata:
        """Return metadata for ``mint``; never raises."""

        key = normalize_text(mint)
        if not key:
            return placeholder_metadata("")
        return await self.cache.get_or_set_async(key, lambda: self._resolve_uncached(key))

    async def resolve_many(self, mints: Iterable[str]) -> Dict[str, TokenMetadata]:
        """Resolve every distinct mint concurrently into a dict keyed by mint."""

        keys = [k for k in dict.fromkeys(normalize_text(m) for m in mints) if k]
        if not keys:
            return {}
        results = await asyncio.gather(*(self.resolve(k) for k in keys))
        return dict(zip(keys, results))

    def clear_cache(self) -> None:
        self.cache.clear()


__all__ = [
    "GENERIC_ICON",
    "KNOWN_OVERRIDES",
    "KnownOverrideSource",
    "MetadataResolver",
    "MetadataSource",
    "NATIVE_ICON",
    "NativeMintSource",
    "PrecisionSource",
    "RegistrySource",
    "TokenMetadata",
    "default_sources",
    "merge_partials",
    "placeholder_metadata",
]
