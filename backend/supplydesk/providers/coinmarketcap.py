from __future__ import annotations

import datetime
import json
import math
import socket
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from supplydesk.config.settings import settings
from supplydesk.errors import ProviderUnavailable
from supplydesk.schemas.asset import AssetQuote, MajorSupplySnapshot, SupplyReading

PROVIDER = "coinmarketcap"

_LISTINGS_PATH = "/cryptocurrency/listings/latest"
_QUOTES_PATH = "/cryptocurrency/quotes/latest"

# ETH readings on this feed are reported as whole units.
_FLOORED_SYMBOLS = {"ETH"}


def _floor(value: Any) -> Any:
    if isinstance(value, float) and math.isfinite(value):
        return math.floor(value)
    return value


def _keep(value: Any) -> Any:
    return value


def _build_url(path: str, params: dict[str, str]) -> str:
    base_url = settings.providers.coinmarketcap_base_url.rstrip("/")
    return f"{base_url}{path}?{urlencode(params)}"


def _request_data(path: str, params: dict[str, str]) -> Any:
    api_key = settings.providers.coinmarketcap_api_key
    if not api_key:
        raise ProviderUnavailable(PROVIDER, "API key is not configured")

    request = Request(
        _build_url(path, params),
        headers={"X-CMC_PRO_API_KEY": api_key, "Accept": "application/json"},
    )
    try:
        with urlopen(request, timeout=settings.providers.timeout_seconds) as response:
            body = response.read().decode("utf-8")
        payload = json.loads(body)
    except HTTPError as exc:
        reason = "rate limited" if exc.code == 429 else f"HTTP {exc.code}"
        raise ProviderUnavailable(PROVIDER, reason) from exc
    except (URLError, json.JSONDecodeError, TimeoutError, socket.timeout) as exc:
        raise ProviderUnavailable(PROVIDER, str(exc)) from exc

    if not isinstance(payload, dict) or "data" not in payload:
        raise ProviderUnavailable(PROVIDER, "unexpected response payload")
    return payload["data"]


def _usd_quote(item: dict) -> dict:
    quote = item.get("quote") or {}
    return quote.get("USD") or {}


def fetch_top_assets(limit: int = 100) -> list[AssetQuote]:
    data = _request_data(
        _LISTINGS_PATH,
        {"limit": str(limit), "convert": "USD", "sort": "market_cap", "sort_dir": "desc"},
    )
    if not isinstance(data, list):
        raise ProviderUnavailable(PROVIDER, "listing payload is not a list")

    quotes: list[AssetQuote] = []
    for item in data:
        if not isinstance(item, dict) or not item.get("symbol"):
            continue
        usd = _usd_quote(item)
        quotes.append(
            AssetQuote(
                rank=item.get("cmc_rank"),
                name=item.get("name") or item["symbol"],
                symbol=str(item["symbol"]).upper(),
                price_usd=usd.get("price") or None,
                market_cap_usd=usd.get("market_cap") or None,
                circulating_supply=item.get("circulating_supply") or None,
            )
        )
    return quotes


def fetch_major_supply(symbols: tuple[str, ...] = ("BTC", "ETH")) -> MajorSupplySnapshot:
    data = _request_data(_QUOTES_PATH, {"symbol": ",".join(symbols), "convert": "USD"})
    if not isinstance(data, dict):
        raise ProviderUnavailable(PROVIDER, "quotes payload is not an object")

    assets: dict[str, SupplyReading] = {}
    for symbol in symbols:
        item = data.get(symbol)
        # Newer API versions return a list of matches per symbol.
        if isinstance(item, list):
            item = item[0] if item else None
        if not isinstance(item, dict):
            continue
        floor = _floor if symbol in _FLOORED_SYMBOLS else _keep
        assets[symbol] = SupplyReading(
            symbol=symbol,
            circulating_supply=floor(item.get("circulating_supply")),
            total_supply=floor(item.get("total_supply")),
            max_supply=floor(item.get("max_supply")),
            price_usd=floor(_usd_quote(item).get("price")),
        )
    return MajorSupplySnapshot(
        source="CoinMarketCap",
        timestamp=datetime.datetime.now(datetime.UTC),
        assets=assets,
    )
