"""Decoders for the fixed SPL token and mint account layouts.

Token account (165 bytes, Token-2022 appends extensions after byte 165)::

    0..32    mint
    32..64   owner
    64..72   amount (u64, little endian)
    ...      delegate, state, is_native, delegated_amount, close_authority

Mint account (82 bytes)::

    0..36    mint_authority (COption<Pubkey>)
    36..44   supply (u64)
    44       decimals (u8)
    45       is_initialized
    46..82   freeze_authority (COption<Pubkey>)
"""

from __future__ import annotations

from dataclasses import dataclass

from solders.pubkey import Pubkey

TOKEN_ACCOUNT_LEN = 165
MINT_ACCOUNT_LEN = 82

_MINT_OFFSET = 0
_OWNER_OFFSET = 32
_AMOUNT_OFFSET = 64
_DECIMALS_OFFSET = 44


class AccountLayoutError(ValueError):
    """Raised when raw account bytes do not match the expected layout."""


@dataclass(frozen=True, slots=True)
class TokenAccountData:
    mint: str
    owner: str
    amount: int


def decode_token_account(data: bytes) -> TokenAccountData:
    if len(data) < TOKEN_ACCOUNT_LEN:
        raise AccountLayoutError(
            f"token account data too short: {len(data)} < {TOKEN_ACCOUNT_LEN}"
        )
    try:
        mint = str(Pubkey.from_bytes(data[_MINT_OFFSET : _MINT_OFFSET + 32]))
        owner = str(Pubkey.from_bytes(data[_OWNER_OFFSET : _OWNER_OFFSET + 32]))
    except ValueError as exc:
        raise AccountLayoutError(f"invalid public key in token account: {exc}") from exc
    amount = int.from_bytes(data[_AMOUNT_OFFSET : _AMOUNT_OFFSET + 8], "little", signed=False)
    return TokenAccountData(mint=mint, owner=owner, amount=amount)


def decode_mint_decimals(data: bytes) -> int:
    if len(data) < MINT_ACCOUNT_LEN:
        raise AccountLayoutError(
            f"mint account data too short: {len(data)} < {MINT_ACCOUNT_LEN}"
        )
    return data[_DECIMALS_OFFSET]


__all__ = [
    "AccountLayoutError",
    "MINT_ACCOUNT_LEN",
    "TOKEN_ACCOUNT_LEN",
    "TokenAccountData",
    "decode_mint_decimals",
    "decode_token_account",
]
