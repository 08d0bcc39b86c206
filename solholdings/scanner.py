"""Discover non-zero token holdings for an owner across token programs."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .layouts import AccountLayoutError, decode_token_account
from .logging_utils import warn_throttled
from .mints import DEFAULT_PROGRAM_IDS, normalize_mint_or_none
from .rpc import LedgerQuery

logger = logging.getLogger(__name__)

DEFAULT_DECIMALS = 9


@dataclass(frozen=True, slots=True)
class Holding:
    mint: str
    amount: int  # raw base units, always > 0
    decimals: Optional[int]
    program_id: str
    account: Optional[str] = None


@dataclass(frozen=True, slots=True)
class _Candidate:
    account: str
    mint: str
    amount: int
    program_id: str


async def _scan_program(
    client: LedgerQuery, owner: str, program_id: str
) -> List[_Candidate]:
    try:
        accounts = await client.get_token_accounts_by_owner(owner, program_id)
    except Exception as exc:
        warn_throttled(
            logger,
            f"scan-program-{program_id}",
            60.0,
            "Token account scan failed for program %s: %s",
            program_id,
            exc,
            extra={"owner": owner, "program_id": program_id, "error_type": type(exc).__name__},
        )
        return []

    found: List[_Candidate] = []
    for raw in accounts:
        try:
            decoded = decode_token_account(raw.data)
        except AccountLayoutError as exc:
            logger.debug("Skipping undecodable token account %s: %s", raw.pubkey, exc)
            continue
        if decoded.amount == 0:
            continue
        found.append(
            _Candidate(
                account=raw.pubkey,
                mint=decoded.mint,
                amount=decoded.amount,
                program_id=program_id,
            )
        )
    return found


async def _mint_decimals(
    client: LedgerQuery, mint: str, limiter: asyncio.Semaphore
) -> int:
    async with limiter:
        try:
            return await client.get_mint_decimals(mint)
        except Exception as exc:
            logger.debug(
                "Mint precision lookup failed for %s, defaulting to %d: %s",
                mint,
                DEFAULT_DECIMALS,
                exc,
            )
            return DEFAULT_DECIMALS


async def scan_holdings(
    client: LedgerQuery,
    owner: str | None,
    program_ids: Iterable[str] = DEFAULT_PROGRAM_IDS,
    *,
    max_concurrency: int = 8,
) -> List[Holding]:
    """Return every non-zero holding of ``owner`` under ``program_ids``.

    Programs are scanned concurrently; a failing program contributes nothing
    while the others still report.  Results keep program order and are not
    de-duplicated, so a mint held under two programs appears twice.  Mint
    precision is looked up once per distinct mint and defaults to 9 when the
    lookup fails.  A missing or malformed ``owner`` yields ``[]``.
    """

    normalized_owner = normalize_mint_or_none(owner)
    if normalized_owner is None:
        if owner:
            logger.warning("Ignoring scan for invalid owner address %r", owner)
        return []

    programs = list(dict.fromkeys(program_ids))
    per_program = await asyncio.gather(
        *(_scan_program(client, normalized_owner, pid) for pid in programs)
    )
    candidates = [cand for group in per_program for cand in group]
    if not candidates:
        return []

    limiter = asyncio.Semaphore(max(1, max_concurrency))
    mints = list(dict.fromkeys(cand.mint for cand in candidates))
    decimals = await asyncio.gather(*(_mint_decimals(client, m, limiter) for m in mints))
    precision: Dict[str, int] = dict(zip(mints, decimals))

    holdings = [
        Holding(
            mint=cand.mint,
            amount=cand.amount,
            decimals=precision.get(cand.mint, DEFAULT_DECIMALS),
            program_id=cand.program_id,
            account=cand.account,
        )
        for cand in candidates
    ]
    logger.debug(
        "Scanned %d holding(s) for %s across %d program(s)",
        len(holdings),
        normalized_owner,
        len(programs),
    )
    return holdings


__all__ = ["DEFAULT_DECIMALS", "Holding", "scan_holdings"]
