"""
Crypto Trading Module

Naira-denominated crypto market data from CoinGecko and a trading desk
that lets users buy and sell against their wallet. Holdings track the
quantity held and its cost basis so profit and loss can be reported.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
import time

import httpx

from .audit import AuditTrail, AuditEventType
from .currency import Money, naira, zero
from .errors import NotFoundError, ValidationError
from .ledger import SystemAccount
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord
from .transactions import TransactionType
from .wallets import WalletManager

logger = get_logger("investnaija.crypto")

CRYPTO_PRECISION = Decimal("0.00000001")
MINIMUM_PURCHASE = Decimal("100")


@dataclass
class CoinQuote:
    """Market snapshot for one coin, priced in naira"""
    id: str
    symbol: str
    name: str
    current_price: Decimal
    market_cap: Decimal
    market_cap_rank: Optional[int]
    price_change_percentage_24h: float
    image: str
    sparkline: List[float]

    def to_api(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "current_price": str(self.current_price),
            "market_cap": str(self.market_cap),
            "market_cap_rank": self.market_cap_rank,
            "price_change_percentage_24h": self.price_change_percentage_24h,
            "image": self.image,
            "sparkline_in_7d": {"price": self.sparkline},
        }


FALLBACK_MARKET = [
    CoinQuote("bitcoin", "BTC", "Bitcoin", Decimal("85000000"), Decimal("1700000000000"), 1, 2.5,
              "/crypto-icons/btc.png", [83000000, 84000000, 85000000, 84500000, 85500000]),
    CoinQuote("ethereum", "ETH", "Ethereum", Decimal("5100000"), Decimal("612000000000"), 2, 3.2,
              "/crypto-icons/eth.png", [4900000, 5000000, 5100000, 5050000, 5150000]),
    CoinQuote("tether", "USDT", "Tether", Decimal("1700"), Decimal("119000000000"), 3, 0.1,
              "/crypto-icons/usdt.png", [1695, 1698, 1700, 1699, 1701]),
    CoinQuote("binancecoin", "BNB", "BNB", Decimal("1020000"), Decimal("93000000000"), 4, 1.8,
              "/crypto-icons/bnb.png", [1000000, 1010000, 1020000, 1015000, 1025000]),
    CoinQuote("cardano", "ADA", "Cardano", Decimal("1530"), Decimal("53000000000"), 5, -0.5,
              "/crypto-icons/ada.png", [1540, 1535, 1530, 1525, 1532]),
]


@dataclass
class MarketSnapshot:
    coins: List[CoinQuote]
    fallback: bool
    fetched_at: datetime

    def find(self, coin: str) -> Optional[CoinQuote]:
        key = (coin or "").strip().lower()
        for quote in self.coins:
            if quote.id == key or quote.symbol.lower() == key:
                return quote
        return None


class CoinGeckoClient:
    """REST client for CoinGecko market data, with fallback prices"""

    def __init__(self, base_url: str = "https://api.coingecko.com/api/v3",
                 api_key: Optional[str] = None, timeout: float = 10.0,
                 cache_ttl: int = 60, per_page: int = 20):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.per_page = per_page
        self._client = httpx.Client(timeout=timeout)
        self._cached: Optional[MarketSnapshot] = None
        self._cached_at = 0.0

    def get_market(self, force_refresh: bool = False) -> MarketSnapshot:
        """
        Top coins by market cap in NGN. Live results are cached for
        cache_ttl seconds; on any upstream failure the fallback market is
        returned and not cached.
        """
        if (not force_refresh and self._cached
                and time.monotonic() - self._cached_at < self.cache_ttl):
            return self._cached

        headers = {}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key

        try:
            response = self._client.get(
                f"{self.base_url}/coins/markets",
                params={
                    "vs_currency": "ngn",
                    "order": "market_cap_desc",
                    "per_page": self.per_page,
                    "page": 1,
                    "sparkline": "true",
                    "price_change_percentage": "24h",
                },
                headers=headers,
            )
            if response.status_code != 200:
                logger.warning(f"CoinGecko returned {response.status_code}: {response.text}")
                return self._fallback()
            coins = [self._parse(item) for item in response.json()]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error(f"CoinGecko request failed: {e}")
            return self._fallback()

        self._cached = MarketSnapshot(coins=coins, fallback=False, fetched_at=datetime.now(timezone.utc))
        self._cached_at = time.monotonic()
        return self._cached

    def _parse(self, item: Dict[str, Any]) -> CoinQuote:
        sparkline = (item.get("sparkline_in_7d") or {}).get("price") or []
        return CoinQuote(
            id=item["id"],
            symbol=item["symbol"].upper(),
            name=item["name"],
            current_price=Decimal(str(item["current_price"])),
            market_cap=Decimal(str(item.get("market_cap") or 0)),
            market_cap_rank=item.get("market_cap_rank"),
            price_change_percentage_24h=float(item.get("price_change_percentage_24h") or 0.0),
            image=item.get("image", ""),
            sparkline=sparkline[-7:],
        )

    def _fallback(self) -> MarketSnapshot:
        return MarketSnapshot(coins=list(FALLBACK_MARKET), fallback=True,
                              fetched_at=datetime.now(timezone.utc))

    def close(self):
        self._client.close()


def market_status() -> Dict[str, str]:
    return {"status": "open", "message": "Markets are open 24/7"}


@dataclass
class CryptoHolding(StorageRecord):
    """Quantity of one coin held by a user; id is '<user_id>:<coin_id>'"""
    user_id: str
    coin_id: str
    symbol: str
    name: str
    quantity: Decimal
    cost_basis: Money

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['cost_basis'] = str(self.cost_basis.amount)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CryptoHolding':
        data = dict(data)
        data['quantity'] = Decimal(data['quantity'])
        data['cost_basis'] = naira(data['cost_basis'])
        return super().from_dict(data)

    @property
    def average_price(self) -> Decimal:
        if not self.quantity:
            return Decimal("0")
        return (self.cost_basis.amount / self.quantity).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class CryptoTradingDesk:
    """Buys and sells crypto for naira held in the user's wallet"""

    def __init__(self, storage: StorageInterface, wallet_manager: WalletManager,
                 market_client: CoinGeckoClient, audit_trail: AuditTrail):
        self.storage = storage
        self.wallet_manager = wallet_manager
        self.market_client = market_client
        self.audit_trail = audit_trail
        self.table_name = "crypto_holdings"

    def _quote(self, coin: str) -> CoinQuote:
        quote = self.market_client.get_market().find(coin)
        if not quote or quote.current_price <= 0:
            raise NotFoundError("Cryptocurrency not found")
        return quote

    def buy(self, user_id: str, coin: str, amount: Money) -> Dict[str, Any]:
        """Spend `amount` naira on `coin` at the current market price"""
        if amount < naira(MINIMUM_PURCHASE):
            raise ValidationError(f"Minimum crypto purchase is ₦{MINIMUM_PURCHASE:,.0f}")
        quote = self._quote(coin)
        quantity = (amount.amount / quote.current_price).quantize(CRYPTO_PRECISION, rounding=ROUND_DOWN)
        if quantity <= 0:
            raise ValidationError("Amount is too small to buy any units")

        with self.storage.atomic():
            txn = self.wallet_manager.debit(
                user_id, amount, TransactionType.CRYPTO_BUY, SystemAccount.CRYPTO_DESK,
                f"Bought {quantity} {quote.symbol}",
                metadata={"coin_id": quote.id, "quantity": str(quantity),
                          "price": str(quote.current_price)},
                insufficient_message="Insufficient wallet balance"
            )
            holding = self.get_holding(user_id, quote.id) or self._new_holding(user_id, quote)
            holding.quantity += quantity
            holding.cost_basis = holding.cost_basis + amount
            holding.updated_at = datetime.now(timezone.utc)
            self._save(holding)

            self.audit_trail.log_event(
                AuditEventType.CRYPTO_TRADE, "crypto_holding", holding.id,
                {"side": "buy", "quantity": str(quantity), "price": str(quote.current_price),
                 "amount": str(amount.amount)},
                user_id=user_id
            )

        log_action(logger, "info", "Crypto purchased", user_id=user_id, action="crypto.buy",
                   resource=quote.id, extra={"quantity": str(quantity), "amount": str(amount.amount)})
        return {
            "message": f"Successfully purchased {quantity} {quote.symbol}",
            "coin_id": quote.id,
            "symbol": quote.symbol,
            "amount_spent": str(amount.amount),
            "crypto_amount": str(quantity),
            "price": str(quote.current_price),
            "transaction": txn.to_api(),
        }

    def sell(self, user_id: str, coin: str, quantity: Decimal) -> Dict[str, Any]:
        """Sell `quantity` units of `coin` and credit the proceeds to the wallet"""
        quantity = Decimal(quantity).quantize(CRYPTO_PRECISION, rounding=ROUND_DOWN)
        if quantity <= 0:
            raise ValidationError("Invalid crypto amount")
        quote = self._quote(coin)
        holding = self.get_holding(user_id, quote.id)
        if not holding or holding.quantity < quantity:
            raise ValidationError("Insufficient crypto balance")

        proceeds = naira(quantity * quote.current_price)
        if not proceeds.is_positive():
            raise ValidationError("Sale value is too small")

        with self.storage.atomic():
            txn = self.wallet_manager.credit(
                user_id, proceeds, TransactionType.CRYPTO_SELL, SystemAccount.CRYPTO_DESK,
                f"Sold {quantity} {quote.symbol}",
                metadata={"coin_id": quote.id, "quantity": str(quantity),
                          "price": str(quote.current_price)}
            )
            # Cost basis leaves in proportion to the units sold
            released = naira(holding.cost_basis.amount * quantity / holding.quantity)
            holding.quantity -= quantity
            holding.cost_basis = holding.cost_basis - released if holding.quantity else zero()
            holding.updated_at = datetime.now(timezone.utc)
            if holding.quantity:
                self._save(holding)
            else:
                self.storage.delete(self.table_name, holding.id)

            self.audit_trail.log_event(
                AuditEventType.CRYPTO_TRADE, "crypto_holding", holding.id,
                {"side": "sell", "quantity": str(quantity), "price": str(quote.current_price),
                 "amount": str(proceeds.amount)},
                user_id=user_id
            )

        log_action(logger, "info", "Crypto sold", user_id=user_id, action="crypto.sell",
                   resource=quote.id, extra={"quantity": str(quantity), "amount": str(proceeds.amount)})
        return {
            "message": f"Successfully sold {quantity} {quote.symbol} for {proceeds.to_string()}",
            "coin_id": quote.id,
            "symbol": quote.symbol,
            "amount_sold": str(quantity),
            "sale_value": str(proceeds.amount),
            "price": str(quote.current_price),
            "transaction": txn.to_api(),
        }

    def holdings(self, user_id: str) -> Dict[str, Any]:
        """Holdings valued at market with profit/loss per coin and overall"""
        market = self.market_client.get_market()
        rows = []
        portfolio_value = Decimal("0")
        total_cost = Decimal("0")
        for holding in self._for_user(user_id):
            quote = market.find(holding.coin_id)
            price = quote.current_price if quote else holding.average_price
            value = (holding.quantity * price).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            profit = value - holding.cost_basis.amount
            rows.append({
                "coin_id": holding.coin_id,
                "symbol": holding.symbol,
                "name": holding.name,
                "quantity": str(holding.quantity),
                "average_price": str(holding.average_price),
                "current_price": str(price),
                "current_value": str(value),
                "profit_loss": str(profit),
                "profit_loss_percentage": str(_percent(profit, holding.cost_basis.amount)),
            })
            portfolio_value += value
            total_cost += holding.cost_basis.amount

        total_profit = portfolio_value - total_cost
        return {
            "holdings": rows,
            "portfolio_value": str(portfolio_value),
            "total_profit_loss": str(total_profit),
            "total_profit_loss_percentage": str(_percent(total_profit, total_cost)),
            "prices_are_fallback": market.fallback,
        }

    def get_holding(self, user_id: str, coin_id: str) -> Optional[CryptoHolding]:
        data = self.storage.load(self.table_name, f"{user_id}:{coin_id}")
        return CryptoHolding.from_dict(data) if data else None

    def _new_holding(self, user_id: str, quote: CoinQuote) -> CryptoHolding:
        now = datetime.now(timezone.utc)
        return CryptoHolding(
            id=f"{user_id}:{quote.id}",
            created_at=now,
            updated_at=now,
            user_id=user_id,
            coin_id=quote.id,
            symbol=quote.symbol,
            name=quote.name,
            quantity=Decimal("0"),
            cost_basis=zero()
        )

    def _for_user(self, user_id: str) -> List[CryptoHolding]:
        return [CryptoHolding.from_dict(d) for d in self.storage.find(self.table_name, {"user_id": user_id})]

    def _save(self, holding: CryptoHolding) -> None:
        self.storage.save(self.table_name, holding.id, holding.to_dict())


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if not whole:
        return Decimal("0.00")
    return (part / whole * Decimal("100")).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
