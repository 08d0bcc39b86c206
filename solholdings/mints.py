"""Helpers for validating and normalising Solana addresses."""

from __future__ import annotations

from typing import Iterable, List, Tuple

import base58

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"

DEFAULT_PROGRAM_IDS: Tuple[str, ...] = (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID)

PROGRAM_LABELS = {
    TOKEN_PROGRAM_ID: "SPL",
    TOKEN_2022_PROGRAM_ID: "SPL-2022",
}

_ZERO_WIDTH_CHARS = {
    "\u200b",  # zero-width space
    "\u200c",  # zero-width non-joiner
    "\u200d",  # zero-width joiner
    "\u2060",  # word joiner
    "\ufeff",  # byte order mark
}
_ZERO_WIDTH_TRANSLATION = str.maketrans({ord(ch): None for ch in _ZERO_WIDTH_CHARS})


def normalize_text(value: object | None) -> str:
    """Return ``value`` stripped of whitespace and zero-width characters."""

    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    return value.translate(_ZERO_WIDTH_TRANSLATION).strip()


def is_valid_address(address: str | None) -> bool:
    """Return ``True`` when ``address`` decodes to a 32-byte base58 public key."""

    text = normalize_text(address)
    if not text or len(text) < 32 or len(text) > 44:
        return False
    try:
        raw = base58.b58decode(text)
    except ValueError:
        return False
    return len(raw) == 32


def normalize_mint_or_none(address: str | None) -> str | None:
    """Return a cleaned, validated address or ``None`` when invalid."""

    text = normalize_text(address)
    if not text:
        return None
    return text if is_valid_address(text) else None


def clean_mints(mints: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Split ``mints`` into ``(valid, dropped)`` preserving first-seen order."""

    valid: List[str] = []
    dropped: List[str] = []
    seen: set[str] = set()
    for mint in mints:
        normalized = normalize_mint_or_none(mint)
        if normalized is None:
            dropped.append(mint)
            continue
        if normalized in seen:
            continue
        seen.add(normalized)
        valid.append(normalized)
    return valid, dropped


def short_address(address: str, head: int = 4, tail: int = 4) -> str:
    """Return ``address`` abbreviated as ``<head>...<tail>``."""

    return f"{address[:head]}...{address[-tail:]}"


def program_label(program_id: str) -> str:
    return PROGRAM_LABELS.get(program_id, short_address(program_id))


__all__ = [
    "DEFAULT_PROGRAM_IDS",
    "TOKEN_2022_PROGRAM_ID",
    "TOKEN_PROGRAM_ID",
    "WRAPPED_SOL_MINT",
    "clean_mints",
    "is_valid_address",
    "normalize_mint_or_none",
    "normalize_text",
    "program_label",
    "short_address",
]
