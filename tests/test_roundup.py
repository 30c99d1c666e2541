"""
Tests for round-up savings
"""

import pytest
from decimal import Decimal

from investnaija.config import get_config
from investnaija.currency import naira
from investnaija.errors import InsufficientFundsError, ValidationError
from investnaija.ledger import SystemAccount
from investnaija.roundup import calculate_roundup


@pytest.fixture
def roundup(system):
    return system.roundup_service


def pot_balance(system):
    return system.ledger.calculate_account_balance(
        SystemAccount.ROUNDUP_POT.account_id, SystemAccount.ROUNDUP_POT.account_type
    )


class TestCalculation:
    @pytest.mark.parametrize("amount,method,expected", [
        ("1250", "nearest_100", "50"),
        ("1250", "nearest_50", "0"),
        ("1250", "nearest_500", "250"),
        ("99.50", "nearest_100", "0.50"),
        ("1300", "nearest_100", "0"),
    ])
    def test_calculate_roundup(self, amount, method, expected):
        assert calculate_roundup(Decimal(amount), method) == Decimal(expected)


class TestSettings:
    def test_defaults(self, roundup, make_user):
        user = make_user()
        assert roundup.get_settings(user.id).to_api() == {
            "enabled": False,
            "roundup_method": "nearest_100",
            "auto_invest_threshold": "1000",
            "target_investment_type": "money_market",
            "max_daily_roundup": "5000",
            "pending_roundup": "0.00",
        }

    def test_update(self, roundup, make_user):
        user = make_user()
        roundup.update_settings(user.id, enabled=True, roundup_method="nearest_50",
                                auto_invest_threshold=Decimal("2000"))
        settings = roundup.get_settings(user.id)
        assert settings.enabled is True
        assert settings.roundup_method == "nearest_50"
        assert settings.auto_invest_threshold == Decimal("2000")
        assert settings.target_investment_type == "money_market"

    def test_invalid_settings(self, roundup, make_user):
        user = make_user()
        with pytest.raises(ValidationError, match="Invalid roundup method"):
            roundup.update_settings(user.id, roundup_method="nearest_1000")
        with pytest.raises(ValidationError, match="Invalid investment type"):
            roundup.update_settings(user.id, target_investment_type="crypto")
        with pytest.raises(ValidationError, match="between ₦100 and ₦50,000"):
            roundup.update_settings(user.id, auto_invest_threshold=Decimal("50"))
        with pytest.raises(ValidationError, match="must be positive"):
            roundup.update_settings(user.id, max_daily_roundup=Decimal("0"))


class TestProcessing:
    def test_disabled(self, roundup, make_user):
        user = make_user(balance=1000)
        result = roundup.process(user.id, Decimal("1250"))
        assert result == {"message": "Round-up is disabled", "roundup_amount": "0", "auto_invested": False}

    def test_rounds_up_into_pot(self, system, roundup, make_user):
        user = make_user(balance=1000)
        roundup.update_settings(user.id, enabled=True)

        result = roundup.process(user.id, Decimal("1250"), description="Groceries")

        assert result["roundup_amount"] == "50.00"
        assert result["pending_roundup"] == "50.00"
        assert result["auto_invested"] is False
        assert result["transaction"]["description"] == "Round-up from Groceries (₦1,250.00)"
        assert system.wallet_manager.get_wallet(user.id).balance == naira(950)
        assert system.ledger.wallet_balance(user.id) == naira(950)
        assert pot_balance(system) == naira(50)

    def test_exact_amount_needs_nothing(self, roundup, make_user):
        user = make_user(balance=1000)
        roundup.update_settings(user.id, enabled=True)
        assert roundup.process(user.id, Decimal("1300"))["message"] == "No round-up needed"

    def test_daily_cap(self, roundup, make_user):
        user = make_user(balance=1000)
        roundup.update_settings(user.id, enabled=True, max_daily_roundup=Decimal("60"))

        assert roundup.process(user.id, Decimal("1250"))["roundup_amount"] == "50.00"
        assert roundup.process(user.id, Decimal("1210"))["roundup_amount"] == "10.00"
        assert roundup.process(user.id, Decimal("1210"))["message"] == "Daily round-up limit reached"

    def test_insufficient_balance(self, roundup, make_user):
        user = make_user(balance=100)
        roundup.update_settings(user.id, enabled=True, roundup_method="nearest_500")
        roundup.process(user.id, Decimal("450"))
        with pytest.raises(InsufficientFundsError, match="Insufficient balance for round-up"):
            roundup.process(user.id, Decimal("400"))

    def test_invalid_amount(self, roundup, make_user):
        user = make_user()
        with pytest.raises(ValidationError, match="Invalid transaction amount"):
            roundup.process(user.id, Decimal("0"))

    def test_auto_invest_at_threshold(self, system, roundup, make_user):
        user = make_user(balance=1000)
        roundup.update_settings(user.id, enabled=True, auto_invest_threshold=Decimal("100"))

        roundup.process(user.id, Decimal("1250"))
        result = roundup.process(user.id, Decimal("1220"))

        assert result["auto_invested"] is True
        assert result["pending_roundup"] == "0.00"
        assert result["investment"]["product_id"] == "money_market_fund"
        assert result["investment"]["amount"] == "130.00"
        assert roundup.get_settings(user.id).pot_balance == naira(0)
        assert pot_balance(system) == naira(0)

        wallet = system.wallet_manager.get_wallet(user.id)
        assert wallet.balance == naira(870)
        assert wallet.total_invested == naira(130)

        stats = roundup.stats(user.id)
        assert stats["total_roundups"] == 2
        assert stats["total_amount"] == "130.00"
        assert stats["average_roundup"] == "65.00"
        assert stats["auto_investments"] == 1
        assert stats["auto_invested_amount"] == "130.00"

    def test_failed_auto_invest_keeps_pot(self, roundup, make_user, monkeypatch):
        user = make_user(balance=1000)
        roundup.update_settings(user.id, enabled=True, auto_invest_threshold=Decimal("100"))
        monkeypatch.setattr(get_config(), "enable_investments", False)

        roundup.process(user.id, Decimal("1250"))
        result = roundup.process(user.id, Decimal("1220"))

        assert result["auto_invested"] is False
        assert result["auto_invest_error"] == "Investments are currently disabled"
        assert roundup.get_settings(user.id).pot_balance == naira(130)


class TestInvestPot:
    def test_manual_investment(self, system, roundup, make_user):
        user = make_user(balance=1000)
        roundup.update_settings(user.id, enabled=True, roundup_method="nearest_500")
        roundup.process(user.id, Decimal("250"))

        result = roundup.invest_pot(user.id)

        assert result["message"] == "Successfully invested ₦250.00 from round-ups"
        assert result["investment"]["product_id"] == "money_market_fund"
        assert roundup.stats(user.id)["auto_investments"] == 0
        assert roundup.stats(user.id)["pending_roundup"] == "0.00"

    def test_minimum(self, roundup, make_user):
        user = make_user(balance=1000)
        roundup.update_settings(user.id, enabled=True, roundup_method="nearest_50")
        roundup.process(user.id, Decimal("20"))
        with pytest.raises(ValidationError, match="Minimum round-up investment is ₦100"):
            roundup.invest_pot(user.id)
