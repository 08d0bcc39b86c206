"""Narrow ledger-query adapter over ``solana-py``'s :class:`AsyncClient`.

The scanner and the metadata resolver only need two read calls.  Both are
exposed here with plain ``str`` addresses and ``bytes`` payloads so callers
never touch ``solders`` response classes directly.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Protocol

from solana.rpc.async_api import AsyncClient
from solana.rpc.types import TokenAccountOpts
from solders.pubkey import Pubkey

from .layouts import AccountLayoutError, decode_mint_decimals

logger = logging.getLogger(__name__)


class LedgerError(RuntimeError):
    """Raised when a ledger query fails (network, RPC error or bad payload)."""


@dataclass(frozen=True, slots=True)
class RawTokenAccount:
    pubkey: str
    data: bytes


class LedgerQuery(Protocol):
    async def get_token_accounts_by_owner(
        self, owner: str, program_id: str
    ) -> List[RawTokenAccount]: ...

    async def get_mint_decimals(self, mint: str) -> int: ...


def _account_bytes(account: Any) -> Optional[bytes]:
    """Return raw bytes for ``account`` whether it is a solders object or JSON."""

    if account is None:
        return None
    data = account.get("data") if isinstance(account, Mapping) else getattr(account, "data", None)
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    encoded = None
    if isinstance(data, (list, tuple)) and data:
        encoded = data[0]
    elif isinstance(data, str):
        encoded = data
    if not isinstance(encoded, str):
        return None
    try:
        return base64.b64decode(encoded)
    except ValueError:
        return None


def _keyed_account(item: Any) -> Optional[RawTokenAccount]:
    if isinstance(item, Mapping):
        pubkey = item.get("pubkey")
        account = item.get("account")
    else:
        pubkey = getattr(item, "pubkey", None)
        account = getattr(item, "account", None)
    raw = _account_bytes(account)
    if pubkey is None or raw is None:
        return None
    return RawTokenAccount(pubkey=str(pubkey), data=raw)


def _to_pubkey(address: str) -> Pubkey:
    try:
        return Pubkey.from_string(address.strip())
    except ValueError as exc:
        raise LedgerError(f"invalid address {address!r}") from exc


class LedgerClient:
    """Ledger query capability backed by a Solana JSON-RPC endpoint."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_url(cls, rpc_url: str, *, timeout: float = 15.0) -> "LedgerClient":
        return cls(AsyncClient(rpc_url, timeout=timeout))

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.close()

    async def get_token_accounts_by_owner(
        self, owner: str, program_id: str
    ) -> List[RawTokenAccount]:
        opts = TokenAccountOpts(program_id=_to_pubkey(program_id), encoding="base64")
        try:
            resp = await self._client.get_token_accounts_by_owner(_to_pubkey(owner), opts)
        except Exception as exc:
            raise LedgerError(
                f"getTokenAccountsByOwner failed for program {program_id}: {exc}"
            ) from exc
        accounts: List[RawTokenAccount] = []
        for item in getattr(resp, "value", None) or []:
            keyed = _keyed_account(item)
            if keyed is None:
                logger.debug("Skipping token account without data: %r", item)
                continue
            accounts.append(keyed)
        return accounts

    async def get_mint_decimals(self, mint: str) -> int:
        try:
            resp = await self._client.get_account_info(_to_pubkey(mint))
        except Exception as exc:
            raise LedgerError(f"getAccountInfo failed for mint {mint}: {exc}") from exc
        raw = _account_bytes(getattr(resp, "value", None))
        if raw is None:
            raise LedgerError(f"mint account {mint} not found")
        try:
            return decode_mint_decimals(raw)
        except AccountLayoutError as exc:
            raise LedgerError(f"mint account {mint} is not a token mint: {exc}") from exc


__all__ = ["LedgerClient", "LedgerError", "LedgerQuery", "RawTokenAccount"]
