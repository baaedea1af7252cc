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

PROVIDER = "coingecko"

_MARKETS_PATH = "/coins/markets"
_SIMPLE_PRICE_PATH = "/simple/price"
_MAJOR_IDS = {"BTC": "bitcoin", "ETH": "ethereum"}


def _build_url(path: str, params: dict[str, str]) -> str:
    api_key = settings.providers.coingecko_api_key
    if api_key:
        params = {**params, "x_cg_pro_api_key": api_key}
    base_url = settings.providers.coingecko_base_url.rstrip("/")
    return f"{base_url}{path}?{urlencode(params)}"


def _request_json(path: str, params: dict[str, str]) -> Any:
    request = Request(_build_url(path, params), headers={"Accept": "application/json"})
    try:
        with urlopen(request, timeout=settings.providers.timeout_seconds) as response:
            body = response.read().decode("utf-8")
        return json.loads(body)
    except HTTPError as exc:
        reason = "rate limited" if exc.code == 429 else f"HTTP {exc.code}"
        raise ProviderUnavailable(PROVIDER, reason) from exc
    except (URLError, json.JSONDecodeError, TimeoutError, socket.timeout) as exc:
        raise ProviderUnavailable(PROVIDER, str(exc)) from exc


def _floor_supply(value: Any) -> int | None:
    if not isinstance(value, (int, float)) or not value or not math.isfinite(value):
        return None
    return math.floor(value)


def fetch_top_assets(limit: int = 100) -> list[AssetQuote]:
    payload = _request_json(
        _MARKETS_PATH,
        {
            "vs_currency": "usd",
            "order": "market_cap_desc",
            "per_page": str(limit),
            "page": "1",
            "sparkline": "false",
            "locale": "en",
        },
    )
    if not isinstance(payload, list):
        raise ProviderUnavailable(PROVIDER, "markets payload is not a list")

    quotes: list[AssetQuote] = []
    for item in payload:
        if not isinstance(item, dict) or not item.get("symbol"):
            continue
        quotes.append(
            AssetQuote(
                rank=item.get("market_cap_rank"),
                name=item.get("name") or item["symbol"],
                symbol=str(item["symbol"]).upper(),
                price_usd=item.get("current_price") or None,
                market_cap_usd=item.get("market_cap") or None,
                circulating_supply=_floor_supply(item.get("circulating_supply")),
            )
        )
    return quotes


def fetch_major_supply() -> MajorSupplySnapshot:
    payload = _request_json(
        _SIMPLE_PRICE_PATH,
        {
            "ids": ",".join(_MAJOR_IDS.values()),
            "vs_currencies": "usd",
            "include_market_cap": "true",
            "include_circulating_supply": "true",
            "include_total_supply": "true",
            "include_max_supply": "true",
        },
    )
    if not isinstance(payload, dict):
        raise ProviderUnavailable(PROVIDER, "price payload is not an object")

    assets: dict[str, SupplyReading] = {}
    for symbol, coin_id in _MAJOR_IDS.items():
        item = payload.get(coin_id)
        if not isinstance(item, dict):
            continue
        assets[symbol] = SupplyReading(
            symbol=symbol,
            circulating_supply=item.get("circulating_supply"),
            total_supply=item.get("total_supply"),
            max_supply=item.get("max_supply"),
            price_usd=item.get("usd"),
        )
    return MajorSupplySnapshot(
        source="CoinGecko",
        timestamp=datetime.datetime.now(datetime.UTC),
        assets=assets,
    )
