"""
Tests for CoinGecko market data and the crypto trading desk
"""

import pytest
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import httpx

from investnaija.crypto import (
    CoinGeckoClient, FALLBACK_MARKET, MarketSnapshot, market_status
)
from investnaija.currency import naira
from investnaija.errors import InsufficientFundsError, NotFoundError, ValidationError


class FixedMarket:
    """Market client returning a fixed snapshot"""

    def __init__(self, coins=None, fallback=False):
        self.snapshot = MarketSnapshot(coins=list(coins or FALLBACK_MARKET), fallback=fallback,
                                       fetched_at=datetime.now(timezone.utc))

    def get_market(self, force_refresh=False):
        return self.snapshot


COINGECKO_ITEM = {
    "id": "bitcoin",
    "symbol": "btc",
    "name": "Bitcoin",
    "current_price": 90000000,
    "market_cap": 1800000000000,
    "market_cap_rank": 1,
    "price_change_percentage_24h": 1.25,
    "image": "https://example.com/btc.png",
    "sparkline_in_7d": {"price": [1, 2, 3, 4, 5, 6, 7, 8, 9]},
}


def client_with(handler, **kwargs):
    client = CoinGeckoClient(base_url="https://coingecko.test/api/v3", **kwargs)
    client._client = httpx.Client(transport=httpx.MockTransport(handler))
    return client


class TestCoinGeckoClient:
    def test_parses_market(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            seen["headers"] = request.headers
            return httpx.Response(200, json=[COINGECKO_ITEM])

        client = client_with(handler, api_key="demo-key")
        snapshot = client.get_market()

        assert snapshot.fallback is False
        quote = snapshot.find("BTC")
        assert quote.current_price == Decimal("90000000")
        assert quote.symbol == "BTC"
        assert quote.sparkline == [3, 4, 5, 6, 7, 8, 9]
        assert seen["params"]["vs_currency"] == "ngn"
        assert seen["headers"]["x-cg-demo-api-key"] == "demo-key"

    def test_results_are_cached(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=[COINGECKO_ITEM])

        client = client_with(handler, cache_ttl=60)
        client.get_market()
        client.get_market()
        assert len(calls) == 1
        client.get_market(force_refresh=True)
        assert len(calls) == 2

    def test_fallback_on_error_status(self):
        client = client_with(lambda request: httpx.Response(429, text="rate limited"))
        snapshot = client.get_market()
        assert snapshot.fallback is True
        assert snapshot.find("bitcoin").current_price == Decimal("85000000")

    def test_fallback_on_network_error(self):
        def handler(request):
            raise httpx.ConnectError("unreachable")

        client = client_with(handler)
        assert client.get_market().fallback is True
        # Fallback results are not cached
        assert client._cached is None

    def test_market_status(self):
        assert market_status() == {"status": "open", "message": "Markets are open 24/7"}


@pytest.fixture
def desk(system):
    system.crypto_desk.market_client = FixedMarket()
    return system.crypto_desk


class TestTradingDesk:
    def test_buy(self, system, desk, make_user):
        user = make_user(balance=60000)
        result = desk.buy(user.id, "ETH", naira(51000))

        assert result["crypto_amount"] == "0.01000000"
        assert result["coin_id"] == "ethereum"
        assert system.wallet_manager.get_wallet(user.id).balance == naira(9000)
        holding = desk.get_holding(user.id, "ethereum")
        assert holding.quantity == Decimal("0.01")
        assert holding.cost_basis == naira(51000)
        assert holding.average_price == Decimal("5100000.00")

    def test_buy_rules(self, desk, make_user):
        user = make_user(balance=1000)
        with pytest.raises(ValidationError, match="Minimum crypto purchase is ₦100"):
            desk.buy(user.id, "bitcoin", naira(50))
        with pytest.raises(NotFoundError, match="Cryptocurrency not found"):
            desk.buy(user.id, "dogecoin", naira(500))
        with pytest.raises(InsufficientFundsError):
            desk.buy(user.id, "bitcoin", naira(5000))
        assert desk.get_holding(user.id, "bitcoin") is None

    def test_sell_part_then_all(self, system, desk, make_user):
        user = make_user(balance=60000)
        desk.buy(user.id, "ethereum", naira(51000))

        result = desk.sell(user.id, "eth", Decimal("0.005"))
        assert result["sale_value"] == "25500.00"
        holding = desk.get_holding(user.id, "ethereum")
        assert holding.quantity == Decimal("0.005")
        assert holding.cost_basis == naira(25500)

        desk.sell(user.id, "eth", Decimal("0.005"))
        assert desk.get_holding(user.id, "ethereum") is None
        assert system.wallet_manager.get_wallet(user.id).balance == naira(60000)
        assert system.wallet_manager.get_wallet(user.id).balance == system.ledger.wallet_balance(user.id)

    def test_sell_rules(self, desk, make_user):
        user = make_user(balance=60000)
        with pytest.raises(ValidationError, match="Insufficient crypto balance"):
            desk.sell(user.id, "bitcoin", Decimal("0.1"))
        with pytest.raises(ValidationError, match="Invalid crypto amount"):
            desk.sell(user.id, "bitcoin", Decimal("0"))

    def test_holdings_profit_and_loss(self, system, make_user):
        user = make_user(balance=60000)
        system.crypto_desk.market_client = FixedMarket()
        system.crypto_desk.buy(user.id, "ethereum", naira(51000))

        higher = [q for q in FALLBACK_MARKET if q.id != "ethereum"]
        eth = next(q for q in FALLBACK_MARKET if q.id == "ethereum")
        higher.append(replace(eth, current_price=Decimal("5610000")))
        system.crypto_desk.market_client = FixedMarket(higher, fallback=True)

        view = system.crypto_desk.holdings(user.id)
        assert view["portfolio_value"] == "56100.00"
        assert view["total_profit_loss"] == "5100.00"
        assert view["total_profit_loss_percentage"] == "10.00"
        assert view["prices_are_fallback"] is True
        assert view["holdings"][0]["profit_loss"] == "5100.00"
