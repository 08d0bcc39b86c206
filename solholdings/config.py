"""Runtime configuration for holdings discovery and metadata resolution."""

from __future__ import annotations

import os
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, ValidationError, field_validator

from .mints import DEFAULT_PROGRAM_IDS, is_valid_address

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
DEFAULT_TOKEN_LIST_URL = (
    "https://raw.githubusercontent.com/solana-labs/token-list/main/"
    "src/tokens/solana.tokenlist.json"
)
# mainnet-beta first, devnet second; later segments win on conflicts
DEFAULT_CHAIN_IDS = (101, 103)

_PLACEHOLDER_MARKERS = {"YOUR_KEY", "YOUR_HELIUS_KEY", "CHANGE_ME", "EXAMPLE"}


def _is_placeholder(value: str) -> bool:
    lowered = value.lower()
    return any(marker.lower() in lowered for marker in _PLACEHOLDER_MARKERS)


def _resolve_env(names: Iterable[str]) -> str:
    for name in names:
        candidate = (os.environ.get(name) or "").strip()
        if not candidate or _is_placeholder(candidate):
            continue
        return candidate
    return ""


def _split_csv(raw: str | None) -> List[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


class HoldingsConfig(BaseModel):
    """Validated settings shared by the scanner, registry and resolver."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    rpc_url: AnyHttpUrl = DEFAULT_RPC_URL  # type: ignore[assignment]
    token_list_url: AnyHttpUrl = DEFAULT_TOKEN_LIST_URL  # type: ignore[assignment]
    registry_chain_ids: List[int] = list(DEFAULT_CHAIN_IDS)
    registry_retry_after: Optional[float] = None
    metadata_ttl: float = 300.0
    metadata_cache_size: int = 4096
    max_concurrency: int = 8
    http_timeout: float = 15.0
    program_ids: List[str] = list(DEFAULT_PROGRAM_IDS)

    @field_validator("registry_chain_ids")
    @classmethod
    def _chain_ids_non_empty(cls, value: List[int]) -> List[int]:
        if len(value) < 1:
            raise ValueError("registry_chain_ids must name at least one chain segment")
        return value

    @field_validator("metadata_ttl", "http_timeout")
    @classmethod
    def _positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("registry_retry_after")
    @classmethod
    def _non_negative_retry(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value < 0:
            raise ValueError("registry_retry_after must be >= 0")
        return value

    @field_validator("metadata_cache_size", "max_concurrency")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("program_ids")
    @classmethod
    def _valid_program_ids(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("program_ids must not be empty")
        bad = [pid for pid in value if not is_valid_address(pid)]
        if bad:
            raise ValueError(f"invalid program id(s): {', '.join(bad)}")
        return value


def config_from_env() -> Dict[str, Any]:
    """Collect raw settings from environment variables.

    Only variables that are set contribute; everything else falls back to the
    model defaults.
    """

    data: Dict[str, Any] = {}
    rpc = _resolve_env(("SOLANA_RPC_URL", "HELIUS_RPC_URL"))
    if rpc:
        data["rpc_url"] = rpc
    token_list = _resolve_env(("TOKEN_LIST_URL",))
    if token_list:
        data["token_list_url"] = token_list
    chain_ids = _split_csv(os.getenv("TOKEN_LIST_CHAIN_IDS"))
    if chain_ids:
        data["registry_chain_ids"] = chain_ids
    simple = {
        "TOKEN_LIST_RETRY_AFTER": "registry_retry_after",
        "TOKEN_METADATA_TTL": "metadata_ttl",
        "TOKEN_METADATA_CACHE_SIZE": "metadata_cache_size",
        "HOLDINGS_MAX_CONCURRENCY": "max_concurrency",
        "HTTP_TIMEOUT_SEC": "http_timeout",
    }
    for env_name, field in simple.items():
        raw = (os.getenv(env_name) or "").strip()
        if raw:
            data[field] = raw
    program_ids = _split_csv(os.getenv("HOLDINGS_PROGRAM_IDS"))
    if program_ids:
        data["program_ids"] = program_ids
    return data


def load_config(overrides: Mapping[str, Any] | None = None) -> HoldingsConfig:
    """Build a :class:`HoldingsConfig` from the environment plus ``overrides``.

    Raises ``ValueError`` when validation fails.
    """

    data = config_from_env()
    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return HoldingsConfig(**data)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc


__all__ = ["HoldingsConfig", "config_from_env", "load_config"]
