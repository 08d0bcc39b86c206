"""Shared test doubles and raw account builders."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from solders.pubkey import Pubkey

from solholdings.registry import RegistryIndex
from solholdings.rpc import LedgerError, RawTokenAccount

OWNER = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
WSOL = "So11111111111111111111111111111111111111112"
JUP = "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN"
BONK = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
RAY = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"


def token_account_bytes(mint: str, owner: str, amount: int, *, extra: bytes = b"") -> bytes:
    data = bytearray(165)
    data[0:32] = bytes(Pubkey.from_string(mint))
    data[32:64] = bytes(Pubkey.from_string(owner))
    data[64:72] = amount.to_bytes(8, "little")
    data[108] = 1  # initialized
    return bytes(data) + extra


def mint_account_bytes(decimals: int) -> bytes:
    data = bytearray(82)
    data[36:44] = (10**12).to_bytes(8, "little")
    data[44] = decimals
    data[45] = 1
    return bytes(data)


class FakeLedger:
    """In-memory stand-in for :class:`solholdings.rpc.LedgerClient`."""

    def __init__(
        self,
        accounts: Optional[Dict[str, List[RawTokenAccount]]] = None,
        decimals: Optional[Dict[str, int]] = None,
        *,
        failing_programs: tuple[str, ...] = (),
        fail_all_mints: bool = False,
    ) -> None:
        self.accounts = accounts or {}
        self.decimals = decimals or {}
        self.failing_programs = set(failing_programs)
        self.fail_all_mints = fail_all_mints
        self.account_calls: List[tuple[str, str]] = []
        self.mint_calls: List[str] = []

    def add_account(self, program_id: str, mint: str, amount: int, *, owner: str = OWNER) -> None:
        pubkey = str(Pubkey.new_unique())
        self.accounts.setdefault(program_id, []).append(
            RawTokenAccount(pubkey=pubkey, data=token_account_bytes(mint, owner, amount))
        )

    async def get_token_accounts_by_owner(self, owner: str, program_id: str) -> List[RawTokenAccount]:
        self.account_calls.append((owner, program_id))
        await asyncio.sleep(0)
        if program_id in self.failing_programs:
            raise LedgerError(f"program {program_id} unavailable")
        return list(self.accounts.get(program_id, []))

    async def get_mint_decimals(self, mint: str) -> int:
        self.mint_calls.append(mint)
        await asyncio.sleep(0)
        if self.fail_all_mints or mint not in self.decimals:
            raise LedgerError(f"mint {mint} not found")
        return self.decimals[mint]


def token_list_payload() -> dict:
    return {
        "name": "Solana Token List",
        "tokens": [
            {
                "chainId": 101,
                "address": JUP,
                "symbol": "JUP",
                "name": "Jupiter",
                "decimals": 6,
                "logoURI": "https://static.jup.ag/jup/icon.png",
            },
            {
                "chainId": 101,
                "address": BONK,
                "symbol": "Bonk",
                "name": "Bonk",
                "decimals": 5,
            },
            {
                "chainId": 103,
                "address": BONK,
                "symbol": "dBONK",
                "name": "Devnet Bonk",
                "decimals": 5,
                "logoURI": "https://example.com/dbonk.png",
            },
            {
                "chainId": 101,
                "address": WSOL,
                "symbol": "wSOL",
                "name": "Registry Wrapped SOL",
                "decimals": 9,
                "logoURI": "https://example.com/wsol.png",
            },
            {
                "chainId": 102,
                "address": RAY,
                "symbol": "tRAY",
                "name": "Testnet Raydium",
                "decimals": 6,
            },
        ],
    }


def static_registry(payload=None, **kwargs) -> RegistryIndex:
    body = token_list_payload() if payload is None else payload

    async def _fetch():
        return body

    return RegistryIndex("https://example.com/tokens.json", fetcher=_fetch, **kwargs)


def failing_registry(**kwargs) -> RegistryIndex:
    async def _fetch():
        raise RuntimeError("token list offline")

    return RegistryIndex("https://example.com/tokens.json", fetcher=_fetch, **kwargs)


