"""
Investment Products Module

Catalogue of Nigerian investment products, subscription from the wallet,
daily simple-interest accrual, redemptions back to the wallet, and the
portfolio and recommendation views built on top of them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from .audit import AuditTrail, AuditEventType
from .config import get_config
from .currency import Money, naira, zero
from .errors import (
    FeatureDisabledError, KYCRequiredError, NotFoundError, ValidationError
)
from .ledger import GeneralLedger, SystemAccount
from .logging_config import get_logger, log_action
from .notifications import NotificationEngine
from .storage import StorageInterface, StorageRecord
from .transactions import TransactionType
from .users import UserManager
from .wallets import WalletManager

logger = get_logger("investnaija.investments")

DAYS_PER_YEAR = Decimal("365")


class RiskLevel(Enum):
    VERY_LOW = "very_low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ProductStatus(Enum):
    AVAILABLE = "available"
    COMING_SOON = "coming_soon"
    CLOSED = "closed"


class InvestmentStatus(Enum):
    ACTIVE = "active"
    MATURED = "matured"
    WITHDRAWN = "withdrawn"


class RiskTolerance(Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


RISK_PROFILES = {
    RiskTolerance.CONSERVATIVE: {RiskLevel.VERY_LOW, RiskLevel.LOW},
    RiskTolerance.MODERATE: {RiskLevel.VERY_LOW, RiskLevel.LOW, RiskLevel.MEDIUM},
    RiskTolerance.AGGRESSIVE: {RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH},
}


@dataclass(frozen=True)
class InvestmentProduct:
    id: str
    name: str
    description: str
    minimum_amount: Decimal
    expected_return: Decimal  # annual percentage
    risk_level: RiskLevel
    category: str
    provider: str
    tenor_days: Optional[int] = None  # None means open ended
    status: ProductStatus = ProductStatus.AVAILABLE
    features: tuple = ()

    @property
    def duration(self) -> str:
        return f"{self.tenor_days} days" if self.tenor_days else "flexible"

    def to_api(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "minimum_amount": str(self.minimum_amount),
            "expected_return": str(self.expected_return),
            "risk_level": self.risk_level.value,
            "duration": self.duration,
            "status": self.status.value,
            "features": list(self.features),
            "provider": self.provider,
            "category": self.category,
        }


PRODUCTS: List[InvestmentProduct] = [
    InvestmentProduct(
        "money_market_fund", "Money Market Fund",
        "Low-risk investment with daily liquidity. Ideal for emergency funds and short-term savings.",
        Decimal("100"), Decimal("12.5"), RiskLevel.LOW, "money_market", "ARM Investment",
        features=("Daily liquidity", "Capital preservation", "Competitive returns", "No lock-in period"),
    ),
    InvestmentProduct(
        "treasury_bills_91", "91-Day Treasury Bills",
        "Government-backed securities with guaranteed returns. Perfect for capital preservation.",
        Decimal("1000"), Decimal("15.2"), RiskLevel.VERY_LOW, "treasury_bills",
        "Central Bank of Nigeria", tenor_days=91,
        features=("Government guarantee", "Fixed returns", "91-day maturity", "Primary market access"),
    ),
    InvestmentProduct(
        "treasury_bills_182", "182-Day Treasury Bills",
        "Medium-term government securities with higher yields than 91-day bills.",
        Decimal("1000"), Decimal("16.8"), RiskLevel.VERY_LOW, "treasury_bills",
        "Central Bank of Nigeria", tenor_days=182,
        features=("Government guarantee", "Higher yields", "182-day maturity", "Secondary market trading"),
    ),
    InvestmentProduct(
        "fixed_deposit_30", "30-Day Fixed Deposit",
        "Short-term fixed deposit with guaranteed returns from top Nigerian banks.",
        Decimal("5000"), Decimal("10.0"), RiskLevel.VERY_LOW, "fixed_deposit", "Partner Banks",
        tenor_days=30,
        features=("NDIC insured", "Fixed interest rate", "30-day term", "Auto-renewal option"),
    ),
    InvestmentProduct(
        "bond_fund", "Nigerian Bond Fund",
        "Diversified portfolio of Nigerian government and corporate bonds.",
        Decimal("2500"), Decimal("14.5"), RiskLevel.LOW, "mutual_fund",
        "Stanbic IBTC Asset Management",
        features=("Professional management", "Diversified portfolio", "Monthly income", "Flexible redemption"),
    ),
    InvestmentProduct(
        "equity_fund", "Nigerian Equity Fund",
        "Growth-focused equity fund investing in top Nigerian stocks.",
        Decimal("5000"), Decimal("18.0"), RiskLevel.MEDIUM, "mutual_fund", "ARM Investment",
        features=("Stock market exposure", "Professional management", "Growth potential", "Dividend income"),
    ),
    InvestmentProduct(
        "dollar_fund", "Dollar Fund",
        "USD-denominated fund for foreign exchange diversification.",
        Decimal("50000"), Decimal("8.5"), RiskLevel.MEDIUM, "forex_fund",
        "Coronation Asset Management",
        features=("USD exposure", "Forex hedging", "International diversification", "Professional management"),
    ),
    InvestmentProduct(
        "real_estate_fund", "Real Estate Investment Fund",
        "Real estate-focused fund investing in Nigerian commercial properties.",
        Decimal("25000"), Decimal("16.0"), RiskLevel.MEDIUM, "real_estate", "Union Homes REIT",
        status=ProductStatus.COMING_SOON,
        features=("Real estate exposure", "Rental income", "Capital appreciation",
                  "Professional property management"),
    ),
]

# Quick-invest types offered on the wallet screen
QUICK_INVEST_PRODUCTS = {
    "money_market": "money_market_fund",
    "treasury_bills": "treasury_bills_91",
    "fixed_deposit": "fixed_deposit_30",
}


def get_product(product_id: str) -> Optional[InvestmentProduct]:
    for product in PRODUCTS:
        if product.id == product_id:
            return product
    return None


def calculate_returns(amount: Decimal, annual_rate: Decimal, days: int) -> Decimal:
    """Simple interest: amount * rate% / 365 * days, rounded to kobo"""
    interest = Decimal(amount) * Decimal(annual_rate) / Decimal("100") / DAYS_PER_YEAR * Decimal(days)
    return interest.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


@dataclass
class Investment(StorageRecord):
    user_id: str
    product_id: str
    product_name: str
    category: str
    principal: Money
    current_value: Money
    returns: Money
    annual_rate: Decimal
    status: InvestmentStatus
    last_accrued_at: datetime
    maturity_date: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        for key in ('principal', 'current_value', 'returns'):
            result[key] = str(getattr(self, key).amount)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Investment':
        data = dict(data)
        for key in ('principal', 'current_value', 'returns'):
            data[key] = naira(data[key])
        data['annual_rate'] = Decimal(data['annual_rate'])
        data['status'] = InvestmentStatus(data['status'])
        data['last_accrued_at'] = datetime.fromisoformat(data['last_accrued_at'])
        if data.get('maturity_date'):
            data['maturity_date'] = datetime.fromisoformat(data['maturity_date'])
        return super().from_dict(data)

    def to_api(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "category": self.category,
            "amount": str(self.principal.amount),
            "current_value": str(self.current_value.amount),
            "returns": str(self.returns.amount),
            "annual_rate": str(self.annual_rate),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "maturity_date": self.maturity_date.isoformat() if self.maturity_date else None,
        }


class InvestmentManager:
    """Subscriptions, accrual and redemptions for investment products"""

    def __init__(self, storage: StorageInterface, wallet_manager: WalletManager,
                 user_manager: UserManager, ledger: GeneralLedger,
                 notifications: NotificationEngine, audit_trail: AuditTrail):
        self.storage = storage
        self.wallet_manager = wallet_manager
        self.user_manager = user_manager
        self.ledger = ledger
        self.notifications = notifications
        self.audit_trail = audit_trail
        self.table_name = "investments"

    def list_products(self, include_unavailable: bool = True) -> List[InvestmentProduct]:
        if include_unavailable:
            return list(PRODUCTS)
        return [p for p in PRODUCTS if p.status == ProductStatus.AVAILABLE]

    def invest(self, user_id: str, product_id: str, amount: Money,
               source: str = "wallet", metadata: Optional[Dict[str, Any]] = None) -> Investment:
        """
        Move money from the wallet into a product.

        Raises:
            FeatureDisabledError: Investments are switched off
            NotFoundError: Unknown product
            ValidationError: Product unavailable or amount outside limits
            KYCRequiredError: Unverified user above the KYC threshold
            InsufficientFundsError: Wallet balance too low
        """
        config = get_config()
        if not config.enable_investments:
            raise FeatureDisabledError("Investments are currently disabled")

        product = get_product(product_id)
        if not product:
            raise NotFoundError("Investment product not found")
        if product.status != ProductStatus.AVAILABLE:
            raise ValidationError("Investment product is not available")
        if amount < naira(product.minimum_amount):
            raise ValidationError(
                f"Minimum investment for {product.name} is ₦{product.minimum_amount:,.0f}"
            )

        if amount > naira(config.max_investment_amount):
            raise ValidationError(
                f"Maximum investment amount is ₦{Decimal(config.max_investment_amount):,.0f}"
            )
        user = self.user_manager.require_user(user_id)
        threshold = naira(config.kyc_investment_threshold)
        if not user.is_verified and amount > threshold:
            raise KYCRequiredError(
                f"KYC verification required for investments above ₦{threshold.amount:,.0f}"
            )

        now = datetime.now(timezone.utc)
        investment = Investment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            product_id=product.id,
            product_name=product.name,
            category=product.category,
            principal=amount,
            current_value=amount,
            returns=zero(),
            annual_rate=product.expected_return,
            status=InvestmentStatus.ACTIVE,
            last_accrued_at=now,
            maturity_date=now + timedelta(days=product.tenor_days) if product.tenor_days else None,
            metadata={"source": source, **(metadata or {})}
        )

        with self.storage.atomic():
            txn = self.wallet_manager.debit(
                user_id, amount, TransactionType.INVESTMENT, SystemAccount.INVESTMENT_POOL,
                f"Investment in {product.name}",
                metadata={
                    "investment_id": investment.id,
                    "product_id": product.id,
                    "expected_annual_return": str(calculate_returns(amount.amount, product.expected_return, 365)),
                    "return_rate": str(product.expected_return),
                    "source": source,
                },
                insufficient_message="Insufficient wallet balance. Please fund your wallet first."
            )
            investment.metadata["transaction_id"] = txn.id
            self._save(investment)
            self.wallet_manager.adjust_totals(user_id, invested=amount)

            self.audit_trail.log_event(
                AuditEventType.INVESTMENT_CREATED, "investment", investment.id,
                {"product_id": product.id, "amount": str(amount.amount)}, user_id=user_id
            )

        log_action(logger, "info", "Investment created", user_id=user_id,
                   action="investment.create", resource=investment.id,
                   extra={"product_id": product.id, "amount": str(amount.amount)})
        self.notifications.notify_investment(user_id, amount, product.name,
                                             data={"investment_id": investment.id})
        return investment

    def invest_by_type(self, user_id: str, investment_type: str, amount: Money,
                       source: str = "wallet", metadata: Optional[Dict[str, Any]] = None) -> Investment:
        product_id = QUICK_INVEST_PRODUCTS.get(investment_type)
        if not product_id:
            raise ValidationError(
                "Investment type must be one of: " + ", ".join(QUICK_INVEST_PRODUCTS)
            )
        return self.invest(user_id, product_id, amount, source=source, metadata=metadata)

    def withdraw_investment(self, user_id: str, investment_id: str, amount: Money) -> Dict[str, Any]:
        """
        Redeem part or all of an investment back to the wallet.
        total_invested drops by at most the investment's principal.
        """
        if not amount.is_positive():
            raise ValidationError("Invalid withdrawal amount")

        investment = self.get_investment(investment_id)
        if not investment or investment.user_id != user_id:
            raise NotFoundError("Investment not found")
        if investment.status == InvestmentStatus.WITHDRAWN:
            raise ValidationError("Investment has already been withdrawn")
        if investment.current_value < amount:
            raise ValidationError("Insufficient investment balance")

        principal_reduction = min(amount, investment.principal)
        with self.storage.atomic():
            txn = self.wallet_manager.credit(
                user_id, amount, TransactionType.INVESTMENT_WITHDRAWAL, SystemAccount.INVESTMENT_POOL,
                f"Investment withdrawal from {investment.product_name}",
                metadata={"investment_id": investment.id}
            )
            investment.current_value = investment.current_value - amount
            investment.principal = investment.principal - principal_reduction
            if investment.current_value.is_zero():
                investment.status = InvestmentStatus.WITHDRAWN
            investment.updated_at = datetime.now(timezone.utc)
            self._save(investment)
            wallet = self.wallet_manager.adjust_totals(user_id, invested=-principal_reduction)

            self.audit_trail.log_event(
                AuditEventType.INVESTMENT_WITHDRAWN, "investment", investment.id,
                {"amount": str(amount.amount), "remaining": str(investment.current_value.amount)},
                user_id=user_id
            )

        self.notifications.notify_transaction(user_id, "investment withdrawal", amount, "completed")
        return {"investment": investment, "transaction": txn, "wallet": wallet}

    def accrue_returns(self, as_of: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Book simple interest for every whole day since the last accrual.
        Fixed-tenor investments stop accruing at maturity and are marked matured.
        """
        as_of = as_of or datetime.now(timezone.utc)
        accrued_total = Decimal("0")
        processed = 0

        for investment in self._active():
            accrue_until = as_of
            if investment.maturity_date and investment.maturity_date < accrue_until:
                accrue_until = investment.maturity_date
            days = (accrue_until - investment.last_accrued_at).days

            interest = naira(0)
            if days > 0:
                interest = naira(calculate_returns(investment.principal.amount, investment.annual_rate, days))

            with self.storage.atomic():
                if interest.is_positive():
                    self.ledger.post_transfer(
                        f"ACR-{investment.id}-{accrue_until.date().isoformat()}",
                        f"Returns on {investment.product_name}",
                        SystemAccount.INVESTMENT_RETURNS.account_id,
                        SystemAccount.INVESTMENT_POOL.account_id,
                        interest
                    )
                    investment.current_value = investment.current_value + interest
                    investment.returns = investment.returns + interest
                    investment.last_accrued_at = investment.last_accrued_at + timedelta(days=days)
                    self.wallet_manager.adjust_totals(investment.user_id, returns=interest)
                    accrued_total += interest.amount
                    processed += 1

                if investment.maturity_date and investment.maturity_date <= as_of:
                    investment.status = InvestmentStatus.MATURED
                investment.updated_at = datetime.now(timezone.utc)
                self._save(investment)

        if processed:
            self.audit_trail.log_event(
                AuditEventType.RETURNS_ACCRUED, "investment", "batch",
                {"investments": processed, "total": str(accrued_total), "as_of": as_of}
            )
        log_action(logger, "info", "Returns accrued", action="investment.accrue",
                   extra={"investments": processed, "total": str(accrued_total)})
        return {"investments_accrued": processed, "total_accrued": str(accrued_total)}

    def recommendations(self, user_id: str,
                        risk_tolerance: RiskTolerance = RiskTolerance.MODERATE) -> List[InvestmentProduct]:
        """Available products matching the user's risk profile, best return first, top 6"""
        user = self.user_manager.require_user(user_id)
        allowed_risk = RISK_PROFILES[risk_tolerance]
        threshold = Decimal(get_config().kyc_investment_threshold)

        products = []
        for product in self.list_products(include_unavailable=False):
            if product.risk_level not in allowed_risk:
                continue
            if not user.is_verified and (product.minimum_amount > threshold
                                         or product.risk_level != RiskLevel.LOW):
                continue
            products.append(product)

        products.sort(key=lambda p: p.expected_return, reverse=True)
        return products[:6]

    def get_investment(self, investment_id: str) -> Optional[Investment]:
        data = self.storage.load(self.table_name, investment_id)
        return Investment.from_dict(data) if data else None

    def for_user(self, user_id: str, status: Optional[InvestmentStatus] = None) -> List[Investment]:
        investments = [
            Investment.from_dict(d)
            for d in self.storage.find(self.table_name, {"user_id": user_id})
        ]
        if status:
            investments = [i for i in investments if i.status == status]
        investments.sort(key=lambda i: i.created_at, reverse=True)
        return investments

    def portfolio_summary(self, user_id: str) -> Dict[str, Any]:
        """Totals and allocation by category over non-withdrawn investments"""
        holdings = [i for i in self.for_user(user_id) if i.status != InvestmentStatus.WITHDRAWN]
        total_invested = sum((i.principal.amount for i in holdings), Decimal("0"))
        current_value = sum((i.current_value.amount for i in holdings), Decimal("0"))
        total_returns = current_value - total_invested

        allocation: Dict[str, Decimal] = {}
        for investment in holdings:
            allocation[investment.category] = (
                allocation.get(investment.category, Decimal("0")) + investment.current_value.amount
            )

        return {
            "total_invested": str(total_invested),
            "current_value": str(current_value),
            "total_returns": str(total_returns),
            "return_percentage": str(_percent(total_returns, total_invested)),
            "active_investments": sum(1 for i in holdings if i.status == InvestmentStatus.ACTIVE),
            "allocation": [
                {
                    "category": category,
                    "value": str(value),
                    "percentage": str(_percent(value, current_value)),
                }
                for category, value in sorted(allocation.items())
            ],
        }

    def performance(self, user_id: str, months: int = 6,
                    as_of: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Month-end series of amount invested and estimated value, using each
        investment's rate for the days it was held.
        """
        as_of = as_of or datetime.now(timezone.utc)
        investments = self.for_user(user_id)
        series = []
        for offset in range(months - 1, -1, -1):
            month_start = _shift_month(as_of.replace(day=1, hour=0, minute=0, second=0, microsecond=0), -offset)
            point = min(_shift_month(month_start, 1), as_of)
            invested = Decimal("0")
            value = Decimal("0")
            for investment in investments:
                if investment.created_at > point:
                    continue
                end = point
                if investment.maturity_date and investment.maturity_date < end:
                    end = investment.maturity_date
                days = max((end - investment.created_at).days, 0)
                invested += investment.principal.amount
                value += investment.principal.amount + calculate_returns(
                    investment.principal.amount, investment.annual_rate, days
                )
            series.append({
                "month": month_start.strftime("%Y-%m"),
                "invested": str(invested),
                "value": str(value),
            })
        return series

    def all_investments(self) -> List[Investment]:
        return [Investment.from_dict(d) for d in self.storage.load_all(self.table_name)]

    def _active(self) -> List[Investment]:
        return [Investment.from_dict(d)
                for d in self.storage.find(self.table_name, {"status": InvestmentStatus.ACTIVE.value})]

    def _save(self, investment: Investment) -> None:
        self.storage.save(self.table_name, investment.id, investment.to_dict())


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if not whole:
        return Decimal("0.00")
    return (part / whole * Decimal("100")).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _shift_month(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    return moment.replace(year=moment.year + month_index // 12, month=month_index % 12 + 1)
