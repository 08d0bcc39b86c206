"""Token holdings discovery and metadata resolution for Solana wallets."""

from __future__ import annotations

from .config import HoldingsConfig, load_config
from .metadata import MetadataResolver, TokenMetadata, placeholder_metadata
from .registry import RegistryEntry, RegistryIndex, get_registry
from .rpc import LedgerClient, LedgerError
from .scanner import Holding, scan_holdings
from .view import (
    HoldingRow,
    HoldingsSnapshot,
    HoldingsSummary,
    build_rows,
    filter_holdings,
    format_token_amount,
    load_holdings,
    summarize,
)

__version__ = "0.1.0"

__all__ = [
    "Holding",
    "HoldingRow",
    "HoldingsConfig",
    "HoldingsSnapshot",
    "HoldingsSummary",
    "LedgerClient",
    "LedgerError",
    "MetadataResolver",
    "RegistryEntry",
    "RegistryIndex",
    "TokenMetadata",
    "build_rows",
    "filter_holdings",
    "format_token_amount",
    "get_registry",
    "load_config",
    "load_holdings",
    "placeholder_metadata",
    "scan_holdings",
    "summarize",
]
