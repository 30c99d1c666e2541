"""
Round-up savings: spare change from everyday spending is moved out of
the wallet into a round-up pot and invested once the pot reaches the
user's auto-invest threshold.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP
from typing import Any, Dict, Optional

from .audit import AuditTrail, AuditEventType
from .currency import Money, naira, zero
from .errors import InsufficientFundsError, InvestNaijaError, ValidationError
from .investments import InvestmentManager
from .ledger import SystemAccount
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord
from .transactions import TransactionLog, TransactionType
from .wallets import WalletManager

logger = get_logger("investnaija.roundup")

ROUNDUP_METHODS = {"nearest_50": 50, "nearest_100": 100, "nearest_500": 500}
TARGET_INVESTMENT_TYPES = ("money_market", "treasury_bills")
MIN_THRESHOLD, MAX_THRESHOLD = Decimal("100"), Decimal("50000")
MIN_POT_INVESTMENT = Decimal("100")


def calculate_roundup(amount: Decimal, method: str) -> Decimal:
    """Distance from amount up to the next multiple of the method's step"""
    step = Decimal(ROUNDUP_METHODS.get(method, 100))
    amount = Decimal(amount)
    return (amount / step).to_integral_value(rounding=ROUND_CEILING) * step - amount


@dataclass
class RoundupSettings(StorageRecord):
    """Per-user round-up configuration and pot balance; id is the user id"""
    enabled: bool = False
    roundup_method: str = "nearest_100"
    auto_invest_threshold: Decimal = Decimal("1000")
    target_investment_type: str = "money_market"
    max_daily_roundup: Decimal = Decimal("5000")
    pot_balance: Money = None

    def __post_init__(self):
        if self.pot_balance is None:
            self.pot_balance = zero()

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['pot_balance'] = str(self.pot_balance.amount)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RoundupSettings':
        data = dict(data)
        data['auto_invest_threshold'] = Decimal(data['auto_invest_threshold'])
        data['max_daily_roundup'] = Decimal(data['max_daily_roundup'])
        data['pot_balance'] = naira(data['pot_balance'])
        return super().from_dict(data)

    def to_api(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "roundup_method": self.roundup_method,
            "auto_invest_threshold": str(self.auto_invest_threshold),
            "target_investment_type": self.target_investment_type,
            "max_daily_roundup": str(self.max_daily_roundup),
            "pending_roundup": str(self.pot_balance.amount),
        }


class RoundupService:
    def __init__(self, storage: StorageInterface, wallet_manager: WalletManager,
                 investment_manager: InvestmentManager, transaction_log: TransactionLog,
                 audit_trail: AuditTrail):
        self.storage = storage
        self.wallet_manager = wallet_manager
        self.investment_manager = investment_manager
        self.transaction_log = transaction_log
        self.audit_trail = audit_trail
        self.table_name = "roundup_settings"

    def get_settings(self, user_id: str) -> RoundupSettings:
        data = self.storage.load(self.table_name, user_id)
        if data:
            return RoundupSettings.from_dict(data)
        now = datetime.now(timezone.utc)
        return RoundupSettings(id=user_id, created_at=now, updated_at=now)

    def update_settings(self, user_id: str, enabled: Optional[bool] = None,
                        roundup_method: Optional[str] = None,
                        auto_invest_threshold: Optional[Decimal] = None,
                        target_investment_type: Optional[str] = None,
                        max_daily_roundup: Optional[Decimal] = None) -> RoundupSettings:
        """Apply the given fields; fields left as None keep their value"""
        if roundup_method is not None and roundup_method not in ROUNDUP_METHODS:
            raise ValidationError("Invalid roundup method")
        if target_investment_type is not None and target_investment_type not in TARGET_INVESTMENT_TYPES:
            raise ValidationError("Invalid investment type")
        if auto_invest_threshold is not None and not (
                MIN_THRESHOLD <= Decimal(auto_invest_threshold) <= MAX_THRESHOLD):
            raise ValidationError("Auto-invest threshold must be between ₦100 and ₦50,000")
        if max_daily_roundup is not None and Decimal(max_daily_roundup) <= 0:
            raise ValidationError("Maximum daily round-up must be positive")

        settings = self.get_settings(user_id)
        changes = {}
        for name, value in (("enabled", enabled), ("roundup_method", roundup_method),
                            ("auto_invest_threshold", auto_invest_threshold),
                            ("target_investment_type", target_investment_type),
                            ("max_daily_roundup", max_daily_roundup)):
            if value is not None:
                if name in ("auto_invest_threshold", "max_daily_roundup"):
                    value = Decimal(value)
                setattr(settings, name, value)
                changes[name] = str(value)
        settings.updated_at = datetime.now(timezone.utc)
        self._save(settings)

        self.audit_trail.log_event(AuditEventType.ROUNDUP_SETTINGS_UPDATED, "roundup_settings",
                                   user_id, changes, user_id=user_id)
        return settings

    def roundups_today(self, user_id: str) -> Decimal:
        today = datetime.now(timezone.utc).date()
        return sum(
            (t.amount.amount for t in self.transaction_log.for_user(user_id)
             if t.transaction_type == TransactionType.ROUNDUP and t.created_at.date() == today),
            Decimal("0")
        )

    def process(self, user_id: str, spend_amount: Decimal,
                description: str = "Purchase") -> Dict[str, Any]:
        """
        Round up a purchase. The round-up is capped by what is left of the
        day's maximum, and the pot is invested once it reaches the
        auto-invest threshold.
        """
        spend_amount = Decimal(spend_amount)
        if spend_amount <= 0:
            raise ValidationError("Invalid transaction amount")

        settings = self.get_settings(user_id)
        if not settings.enabled:
            return {"message": "Round-up is disabled", "roundup_amount": "0", "auto_invested": False}

        roundup = calculate_roundup(spend_amount, settings.roundup_method)
        remaining_today = settings.max_daily_roundup - self.roundups_today(user_id)
        roundup = min(roundup, max(remaining_today, Decimal("0")))
        if roundup <= 0:
            message = "No round-up needed" if remaining_today > 0 else "Daily round-up limit reached"
            return {"message": message, "roundup_amount": "0", "auto_invested": False}

        amount = naira(roundup)
        if self.wallet_manager.get_wallet(user_id).balance < amount:
            raise InsufficientFundsError("Insufficient balance for round-up")

        with self.storage.atomic():
            txn = self.wallet_manager.debit(
                user_id, amount, TransactionType.ROUNDUP, SystemAccount.ROUNDUP_POT,
                f"Round-up from {description} ({naira(spend_amount).to_string()})",
                metadata={"original_amount": str(spend_amount), "roundup_method": settings.roundup_method},
                insufficient_message="Insufficient balance for round-up"
            )
            settings.pot_balance = settings.pot_balance + amount
            settings.updated_at = datetime.now(timezone.utc)
            self._save(settings)

        result = {
            "message": f"Rounded up {amount.to_string()} successfully",
            "roundup_amount": str(amount.amount),
            "auto_invested": False,
            "transaction": txn.to_api(),
            "pending_roundup": str(settings.pot_balance.amount),
        }

        if settings.pot_balance.amount >= settings.auto_invest_threshold:
            try:
                invested = self._invest_pot(user_id, settings, settings.target_investment_type, "auto")
            except InvestNaijaError as e:
                log_action(logger, "warning", "Round-up auto-invest skipped", user_id=user_id,
                           action="roundup.invest", extra={"reason": str(e)})
                result["auto_invest_error"] = str(e)
                return result
            result.update({
                "message": f"Rounded up {amount.to_string()} and auto-invested {invested.principal.to_string()}",
                "auto_invested": True,
                "investment": invested.to_api(),
                "pending_roundup": "0.00",
            })
        return result

    def invest_pot(self, user_id: str, investment_type: str = "money_market") -> Dict[str, Any]:
        """Invest the whole pot now"""
        settings = self.get_settings(user_id)
        if settings.pot_balance.amount < MIN_POT_INVESTMENT:
            raise ValidationError("Minimum round-up investment is ₦100")
        investment = self._invest_pot(user_id, settings, investment_type, "manual")
        return {
            "message": f"Successfully invested {investment.principal.to_string()} from round-ups",
            "investment": investment.to_api(),
        }

    def _invest_pot(self, user_id: str, settings: RoundupSettings, investment_type: str, trigger: str):
        amount = settings.pot_balance
        with self.storage.atomic():
            # Pot is released to the wallet and invested from there
            self.wallet_manager.credit(
                user_id, amount, TransactionType.ROUNDUP_RELEASE, SystemAccount.ROUNDUP_POT,
                "Round-up pot released for investment"
            )
            investment = self.investment_manager.invest_by_type(
                user_id, investment_type, amount, source="roundup", metadata={"trigger": trigger}
            )
            settings.pot_balance = zero()
            settings.updated_at = datetime.now(timezone.utc)
            self._save(settings)

        log_action(logger, "info", "Round-up pot invested", user_id=user_id, action="roundup.invest",
                   resource=investment.id, extra={"amount": str(amount.amount), "trigger": trigger})
        return investment

    def stats(self, user_id: str) -> Dict[str, Any]:
        roundups = [t for t in self.transaction_log.for_user(user_id)
                    if t.transaction_type == TransactionType.ROUNDUP]
        total = sum((t.amount.amount for t in roundups), Decimal("0"))
        pot_investments = [i for i in self.investment_manager.for_user(user_id)
                           if i.metadata.get("source") == "roundup"]
        average = (total / len(roundups)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP) if roundups else Decimal("0.00")
        return {
            "total_roundups": len(roundups),
            "total_amount": str(total),
            "average_roundup": str(average),
            "last_roundup": roundups[0].created_at.isoformat() if roundups else None,
            "auto_investments": sum(1 for i in pot_investments if i.metadata.get("trigger") == "auto"),
            "auto_invested_amount": str(sum(
                (i.principal.amount for i in pot_investments if i.metadata.get("trigger") == "auto"),
                Decimal("0")
            )),
            "pending_roundup": str(self.get_settings(user_id).pot_balance.amount),
        }

    def _save(self, settings: RoundupSettings) -> None:
        self.storage.save(self.table_name, settings.id, settings.to_dict())
