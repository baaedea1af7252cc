from __future__ import annotations

import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

Number = int | float | Decimal


class AssetQuote(BaseModel):
    rank: int | None = None
    name: str
    symbol: str
    price_usd: float | None = None
    market_cap_usd: float | None = None
    circulating_supply: Number | None = None


class ReconciledAsset(BaseModel):
    rank: int | None = None
    name: str
    symbol: str
    price_usd: float | None = None
    market_cap_usd: float | None = None
    circulating_supply_median: int
    # Raw readings per source, kept for audits but never serialized.
    source_a_supply: Number | None = Field(default=None, exclude=True)
    source_b_supply: Number | None = Field(default=None, exclude=True)


class Top100Response(BaseModel):
    success: bool = True
    message: str | None = None
    timestamp: datetime.datetime
    count: int
    data: list[ReconciledAsset] = Field(default_factory=list)


class SupplyReading(BaseModel):
    symbol: str
    circulating_supply: Number | None = None
    total_supply: Number | None = None
    max_supply: Number | None = None
    price_usd: float | None = None


class MajorSupplySnapshot(BaseModel):
    source: str
    timestamp: datetime.datetime
    assets: dict[str, SupplyReading] = Field(default_factory=dict)
