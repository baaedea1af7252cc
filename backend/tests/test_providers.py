import io
import json
from unittest.mock import patch
from urllib.error import HTTPError, URLError

import pytest

from supplydesk.config.settings import settings
from supplydesk.errors import ProviderUnavailable
from supplydesk.providers import coingecko, coinmarketcap


class FakeResponse(io.BytesIO):
    def __init__(self, payload) -> None:
        super().__init__(json.dumps(payload).encode("utf-8"))
        self.status = 200


@pytest.fixture
def cmc_key():
    previous_key = settings.providers.coinmarketcap_api_key
    settings.providers.coinmarketcap_api_key = "test-key"
    try:
        yield "test-key"
    finally:
        settings.providers.coinmarketcap_api_key = previous_key


def test_coinmarketcap_requires_api_key() -> None:
    previous_key = settings.providers.coinmarketcap_api_key
    settings.providers.coinmarketcap_api_key = None
    try:
        with pytest.raises(ProviderUnavailable) as excinfo:
            coinmarketcap.fetch_top_assets()
    finally:
        settings.providers.coinmarketcap_api_key = previous_key
    assert excinfo.value.provider == "coinmarketcap"


def test_coinmarketcap_top_assets_are_normalized(cmc_key) -> None:
    payload = {
        "data": [
            {
                "cmc_rank": 1,
                "name": "Bitcoin",
                "symbol": "BTC",
                "circulating_supply": 19_000_000,
                "quote": {"USD": {"price": 60000.5, "market_cap": 1.14e12}},
            },
            {
                "cmc_rank": 2,
                "name": "Nothing",
                "symbol": "NIL",
                "circulating_supply": 0,
                "quote": {},
            },
            {"cmc_rank": 3, "name": "No symbol"},
        ]
    }
    with patch(
        "supplydesk.providers.coinmarketcap.urlopen", return_value=FakeResponse(payload)
    ) as urlopen_mock:
        quotes = coinmarketcap.fetch_top_assets()

    request = urlopen_mock.call_args.args[0]
    assert request.get_header("X-cmc_pro_api_key") == cmc_key
    assert "limit=100" in request.full_url
    assert urlopen_mock.call_args.kwargs["timeout"] == settings.providers.timeout_seconds
    assert [quote.symbol for quote in quotes] == ["BTC", "NIL"]
    assert quotes[0].price_usd == 60000.5
    assert quotes[0].market_cap_usd == 1.14e12
    assert quotes[1].circulating_supply is None
    assert quotes[1].price_usd is None


def test_coinmarketcap_rate_limit_is_reported(cmc_key) -> None:
    error = HTTPError("https://example.invalid", 429, "Too Many Requests", {}, None)
    with patch("supplydesk.providers.coinmarketcap.urlopen", side_effect=error):
        with pytest.raises(ProviderUnavailable) as excinfo:
            coinmarketcap.fetch_top_assets()
    assert excinfo.value.message == "rate limited"


def test_coinmarketcap_major_supply(cmc_key) -> None:
    payload = {
        "data": {
            "BTC": {
                "circulating_supply": 19_000_000,
                "total_supply": 19_000_000,
                "max_supply": 21_000_000,
                "quote": {"USD": {"price": 60000.0}},
            },
            "ETH": [
                {
                    "circulating_supply": 120_000_000.7,
                    "total_supply": 120_000_000.7,
                    "max_supply": None,
                    "quote": {"USD": {"price": 3000.0}},
                }
            ],
        }
    }
    with patch("supplydesk.providers.coinmarketcap.urlopen", return_value=FakeResponse(payload)):
        snapshot = coinmarketcap.fetch_major_supply()

    assert snapshot.source == "CoinMarketCap"
    assert snapshot.assets["BTC"].max_supply == 21_000_000
    assert snapshot.assets["ETH"].price_usd == 3000.0
    assert snapshot.assets["ETH"].circulating_supply == 120_000_000
    assert snapshot.assets["ETH"].total_supply == 120_000_000
    assert snapshot.assets["ETH"].max_supply is None


def test_coingecko_top_assets_floor_supply_and_uppercase_symbol() -> None:
    payload = [
        {
            "market_cap_rank": 2,
            "name": "Ethereum",
            "symbol": "eth",
            "current_price": 3000.0,
            "market_cap": 3.6e11,
            "circulating_supply": 120_000_000.9,
        },
        {
            "market_cap_rank": None,
            "name": "Unranked",
            "symbol": "unr",
            "current_price": None,
            "market_cap": None,
            "circulating_supply": None,
        },
    ]
    with patch("supplydesk.providers.coingecko.urlopen", return_value=FakeResponse(payload)):
        quotes = coingecko.fetch_top_assets()

    assert [quote.symbol for quote in quotes] == ["ETH", "UNR"]
    assert quotes[0].circulating_supply == 120_000_000
    assert quotes[1].rank is None
    assert quotes[1].circulating_supply is None


def test_coingecko_network_error_is_provider_unavailable() -> None:
    with patch("supplydesk.providers.coingecko.urlopen", side_effect=URLError("boom")):
        with pytest.raises(ProviderUnavailable) as excinfo:
            coingecko.fetch_top_assets()
    assert excinfo.value.provider == "coingecko"


def test_coingecko_unexpected_payload_is_provider_unavailable() -> None:
    with patch(
        "supplydesk.providers.coingecko.urlopen", return_value=FakeResponse({"error": "nope"})
    ):
        with pytest.raises(ProviderUnavailable):
            coingecko.fetch_top_assets()


def test_coingecko_major_supply() -> None:
    payload = {
        "bitcoin": {"usd": 60000.0, "circulating_supply": 19_000_000, "max_supply": 21_000_000},
        "ethereum": {"usd": 3000.0, "circulating_supply": 120_000_000},
    }
    with patch("supplydesk.providers.coingecko.urlopen", return_value=FakeResponse(payload)):
        snapshot = coingecko.fetch_major_supply()

    assert snapshot.source == "CoinGecko"
    assert set(snapshot.assets) == {"BTC", "ETH"}
    assert snapshot.assets["BTC"].circulating_supply == 19_000_000
