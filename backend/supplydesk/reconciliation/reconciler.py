"""Merge two provider listings into one ranked list with a supply estimate.

Source A (CoinMarketCap) is applied first and owns the display fields
(rank, name, price, market cap) of every symbol it reports. Source B
(CoinGecko) contributes its supply reading to those symbols and adds the
symbols A does not know about.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from supplydesk.errors import AllSourcesUnavailable
from supplydesk.schemas.asset import AssetQuote, ReconciledAsset

DEFAULT_LIMIT = 100


def is_valid_supply(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return False
    if isinstance(value, Decimal):
        if not value.is_finite():
            return False
    elif not math.isfinite(value):
        return False
    # Supplies are published as uint256.
    return value >= 0


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def median_of_two(a: Any, b: Any) -> int | None:
    """Combine up to two supply readings into one integer estimate.

    Both valid: the rounded mean. One valid: that value rounded. Neither:
    ``None``. Halves round away from zero.
    """
    a_valid = is_valid_supply(a)
    b_valid = is_valid_supply(b)
    if a_valid and b_valid:
        return _round_half_up((Decimal(a) + Decimal(b)) / 2)
    if a_valid:
        return _round_half_up(Decimal(a))
    if b_valid:
        return _round_half_up(Decimal(b))
    return None


@dataclass
class _MergeEntry:
    quote: AssetQuote
    source_a_supply: Any = None
    source_b_supply: Any = None
    median: int | None = None


def _rank_key(asset: ReconciledAsset) -> tuple[bool, int]:
    return (asset.rank is None, asset.rank or 0)


def reconcile(
    source_a: list[AssetQuote] | None,
    source_b: list[AssetQuote] | None,
    limit: int = DEFAULT_LIMIT,
) -> list[ReconciledAsset]:
    """Merge the two listings; ``None`` marks a source whose fetch failed."""
    if source_a is None and source_b is None:
        raise AllSourcesUnavailable()

    merged: dict[str, _MergeEntry] = {}

    for quote in source_a or []:
        if quote.symbol in merged:
            continue
        merged[quote.symbol] = _MergeEntry(quote=quote, source_a_supply=quote.circulating_supply)

    seen_in_b: set[str] = set()
    for quote in source_b or []:
        if quote.symbol in seen_in_b:
            continue
        seen_in_b.add(quote.symbol)
        entry = merged.get(quote.symbol)
        if entry is None:
            entry = _MergeEntry(quote=quote)
            merged[quote.symbol] = entry
        entry.source_b_supply = quote.circulating_supply
        entry.median = median_of_two(entry.source_a_supply, entry.source_b_supply)

    # Symbols only A reported, including every symbol when B failed.
    for entry in merged.values():
        if entry.median is None:
            entry.median = median_of_two(entry.source_a_supply, None)

    assets = [
        ReconciledAsset(
            rank=entry.quote.rank,
            name=entry.quote.name,
            symbol=entry.quote.symbol,
            price_usd=entry.quote.price_usd,
            market_cap_usd=entry.quote.market_cap_usd,
            circulating_supply_median=entry.median,
            source_a_supply=entry.source_a_supply,
            source_b_supply=entry.source_b_supply,
        )
        for entry in merged.values()
        if entry.median is not None
    ]
    assets.sort(key=_rank_key)
    return assets[:limit]
