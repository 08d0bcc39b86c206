"""Display-side composition of holdings and resolved metadata."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from .metadata import MetadataResolver, TokenMetadata
from .mints import DEFAULT_PROGRAM_IDS, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID, short_address
from .rpc import LedgerQuery
from .scanner import DEFAULT_DECIMALS, Holding, scan_holdings

logger = logging.getLogger(__name__)


def filter_holdings(
    holdings: List[Holding],
    metadata: Mapping[str, TokenMetadata],
    query: str,
) -> List[Holding]:
    """Return holdings whose mint, name or symbol contains ``query``.

    Matching is a case-insensitive substring test on each field; the query
    is not trimmed.  An empty query returns ``holdings`` itself; holdings
    without metadata never match a non-empty query.
    """

    if not query:
        return holdings
    needle = query.lower()
    matched: List[Holding] = []
    for holding in holdings:
        meta = metadata.get(holding.mint)
        if meta is None:
            continue
        if (
            needle in holding.mint.lower()
            or needle in meta.name.lower()
            or needle in meta.symbol.lower()
        ):
            matched.append(holding)
    return matched


def display_decimals(holding: Holding, meta: Optional[TokenMetadata]) -> int:
    """Holding-supplied decimals take precedence over metadata decimals."""

    if holding.decimals is not None:
        return holding.decimals
    if meta is not None:
        return meta.decimals
    return DEFAULT_DECIMALS


def ui_amount(amount: int, decimals: int = DEFAULT_DECIMALS) -> Decimal:
    return Decimal(amount).scaleb(-decimals)


def format_token_amount(amount: int, decimals: int = DEFAULT_DECIMALS) -> str:
    """Render a raw amount with thousands separators and no trailing zeros."""

    value = ui_amount(amount, decimals)
    text = f"{value:,.{decimals}f}" if decimals > 0 else f"{value:,.0f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


@dataclass(frozen=True, slots=True)
class HoldingRow:
    holding: Holding
    metadata: TokenMetadata
    decimals: int
    ui_amount: Decimal
    display_amount: str
    short_mint: str

    def as_dict(self) -> Dict[str, object]:
        return {
            "mint": self.holding.mint,
            "program_id": self.holding.program_id,
            "account": self.holding.account,
            "amount": self.holding.amount,
            "decimals": self.decimals,
            "ui_amount": str(self.ui_amount),
            "display_amount": self.display_amount,
            "symbol": self.metadata.symbol,
            "name": self.metadata.name,
            "icon": self.metadata.icon,
        }


def build_rows(
    holdings: Iterable[Holding], metadata: Mapping[str, TokenMetadata]
) -> List[HoldingRow]:
    """Pair each holding with its metadata; holdings still loading are skipped."""

    rows: List[HoldingRow] = []
    for holding in holdings:
        meta = metadata.get(holding.mint)
        if meta is None:
            continue
        decimals = display_decimals(holding, meta)
        rows.append(
            HoldingRow(
                holding=holding,
                metadata=meta,
                decimals=decimals,
                ui_amount=ui_amount(holding.amount, decimals),
                display_amount=format_token_amount(holding.amount, decimals),
                short_mint=short_address(holding.mint, head=6, tail=4),
            )
        )
    return rows


@dataclass(frozen=True, slots=True)
class HoldingsSummary:
    total: int
    by_program: Dict[str, int] = field(default_factory=dict)

    @property
    def spl(self) -> int:
        return self.by_program.get(TOKEN_PROGRAM_ID, 0)

    @property
    def spl_2022(self) -> int:
        return self.by_program.get(TOKEN_2022_PROGRAM_ID, 0)


def summarize(holdings: Iterable[Holding]) -> HoldingsSummary:
    counts: Dict[str, int] = {}
    total = 0
    for holding in holdings:
        counts[holding.program_id] = counts.get(holding.program_id, 0) + 1
        total += 1
    return HoldingsSummary(total=total, by_program=counts)


@dataclass(frozen=True, slots=True)
class HoldingsSnapshot:
    owner: str
    holdings: List[Holding]
    metadata: Dict[str, TokenMetadata]

    def filter(self, query: str) -> List[Holding]:
        return filter_holdings(self.holdings, self.metadata, query)

    def rows(self, query: str = "") -> List[HoldingRow]:
        return build_rows(self.filter(query), self.metadata)

    def summary(self) -> HoldingsSummary:
        return summarize(self.holdings)


async def load_holdings(
    owner: str | None,
    *,
    client: LedgerQuery,
    resolver: MetadataResolver,
    program_ids: Iterable[str] = DEFAULT_PROGRAM_IDS,
    max_concurrency: int = 8,
) -> HoldingsSnapshot:
    """Scan ``owner`` and resolve metadata for every distinct mint found."""

    holdings = await scan_holdings(
        client, owner, program_ids, max_concurrency=max_concurrency
    )
    metadata = await resolver.resolve_many(h.mint for h in holdings)
    logger.info(
        "Loaded %d holding(s) with %d resolved mint(s)",
        len(holdings),
        len(metadata),
        extra={"owner": owner},
    )
    return HoldingsSnapshot(owner=owner or "", holdings=holdings, metadata=metadata)


__all__ = [
    "HoldingRow",
    "HoldingsSnapshot",
    "HoldingsSummary",
    "build_rows",
    "display_decimals",
    "filter_holdings",
    "format_token_amount",
    "load_holdings",
    "summarize",
    "ui_amount",
]
