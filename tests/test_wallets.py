"""
Test suite for wallets: funding, transfers, bank withdrawals and refunds.

Every test also checks that the cached wallet balance agrees with the
ledger, which is the invariant the admin reconciliation relies on.
"""

import pytest
from decimal import Decimal

from investnaija.config import get_config
from investnaija.currency import naira, zero
from investnaija.errors import (
    InsufficientFundsError, NotFoundError, RateLimitError, ValidationError
)
from investnaija.transactions import TransactionStatus, TransactionType
from investnaija.wallets import FundingSource


def assert_in_step(system, user_id):
    wallet = system.wallet_manager.get_wallet(user_id)
    assert wallet.balance == system.ledger.wallet_balance(user_id)


class TestWalletRecords:
    def test_create_wallet_is_idempotent(self, system, make_user):
        user = make_user()
        first = system.wallet_manager.create_wallet(user.id)
        second = system.wallet_manager.create_wallet(user.id)

        assert first.id == second.id == user.id
        assert first.balance == zero()
        assert system.wallet_manager.get_wallet(user.id).to_api()["currency"] == "NGN"

    def test_missing_wallet(self, system):
        with pytest.raises(NotFoundError, match="Wallet not found"):
            system.wallet_manager.get_wallet("ghost")

    def test_adjust_totals_never_negative(self, system, make_user):
        user = make_user()
        wallet = system.wallet_manager.adjust_totals(user.id, invested=naira(-100), returns=naira(5))
        assert wallet.total_invested == zero()
        assert wallet.total_returns == naira(5)


class TestFunding:
    def test_add_funds(self, system, make_user):
        user = make_user()
        txn = system.wallet_manager.add_funds(user.id, naira(5000), FundingSource.PAYSTACK,
                                              reference="PSK_1")

        assert txn.transaction_type == TransactionType.DEPOSIT
        assert txn.metadata["source"] == "paystack"
        assert system.wallet_manager.get_wallet(user.id).balance == naira(5000)
        assert_in_step(system, user.id)

    def test_replayed_reference_credits_once(self, system, make_user):
        user = make_user()
        first = system.wallet_manager.add_funds(user.id, naira(1000), FundingSource.PAYSTACK, reference="PSK_2")
        second = system.wallet_manager.add_funds(user.id, naira(1000), FundingSource.PAYSTACK, reference="PSK_2")

        assert first.id == second.id
        assert system.wallet_manager.get_wallet(user.id).balance == naira(1000)

    def test_funding_limits(self, system, make_user):
        user = make_user()
        with pytest.raises(ValidationError, match="Minimum funding amount is ₦100"):
            system.wallet_manager.add_funds(user.id, naira(50), FundingSource.PAYSTACK)
        with pytest.raises(ValidationError, match="Maximum funding amount is ₦1,000,000"):
            system.wallet_manager.add_funds(user.id, naira(1000001), FundingSource.PAYSTACK)

    def test_unverified_wallet_cap(self, system, make_user):
        user = make_user(balance=45000)
        with pytest.raises(ValidationError, match="Unverified wallets cannot hold more than ₦50,000"):
            system.wallet_manager.add_funds(user.id, naira(10000), FundingSource.PAYSTACK)

        verified = make_user(verified=True, balance=45000)
        system.wallet_manager.add_funds(verified.id, naira(10000), FundingSource.PAYSTACK)
        assert system.wallet_manager.get_wallet(verified.id).balance == naira(55000)

    def test_pending_deposit_lifecycle(self, system, make_user):
        user = make_user()
        pending = system.wallet_manager.create_pending_deposit(user.id, naira(2500), "PSK_3")
        assert pending.status == TransactionStatus.PENDING
        assert system.wallet_manager.get_wallet(user.id).balance == zero()

        with pytest.raises(ValidationError, match="Paid amount does not match"):
            system.wallet_manager.complete_pending_deposit("PSK_3", paid_amount=naira(2000))

        done = system.wallet_manager.complete_pending_deposit("PSK_3", paid_amount=naira(2500))
        again = system.wallet_manager.complete_pending_deposit("PSK_3")
        assert done.status == TransactionStatus.COMPLETED
        assert again.id == done.id
        assert system.wallet_manager.get_wallet(user.id).balance == naira(2500)
        assert_in_step(system, user.id)

    def test_failed_deposit(self, system, make_user):
        user = make_user()
        system.wallet_manager.create_pending_deposit(user.id, naira(2500), "PSK_4")
        failed = system.wallet_manager.fail_pending_deposit("PSK_4", "Card declined")

        assert failed.status == TransactionStatus.FAILED
        with pytest.raises(ValidationError, match="Transaction is failed"):
            system.wallet_manager.complete_pending_deposit("PSK_4")


class TestWithdrawals:
    def test_withdraw(self, system, make_user):
        user = make_user(balance=3000)
        system.wallet_manager.withdraw(user.id, naira(1000))
        assert system.wallet_manager.get_wallet(user.id).balance == naira(2000)
        assert_in_step(system, user.id)

    def test_insufficient_balance_changes_nothing(self, system, make_user):
        user = make_user(balance=500)
        with pytest.raises(InsufficientFundsError, match="Insufficient balance"):
            system.wallet_manager.withdraw(user.id, naira(1000))
        assert system.wallet_manager.get_wallet(user.id).balance == naira(500)
        assert len(system.transaction_log.for_user(user.id)) == 1

    def test_invalid_amount(self, system, make_user):
        user = make_user(balance=500)
        with pytest.raises(ValidationError, match="Invalid amount"):
            system.wallet_manager.withdraw(user.id, zero())

    def test_daily_limit(self, system, make_user, monkeypatch):
        user = make_user(balance=1000)
        monkeypatch.setattr(get_config(), "max_daily_transactions", 2)
        system.wallet_manager.withdraw(user.id, naira(100))
        system.wallet_manager.withdraw(user.id, naira(100))
        with pytest.raises(RateLimitError, match="Daily transaction limit of 2 reached"):
            system.wallet_manager.withdraw(user.id, naira(100))

    def test_incoming_transfers_do_not_use_daily_limit(self, system, make_user, monkeypatch):
        receiver = make_user(balance=1000)
        friends = [make_user(balance=500) for _ in range(3)]
        monkeypatch.setattr(get_config(), "max_daily_transactions", 2)

        for friend in friends:
            system.wallet_manager.transfer(friend.id, receiver.email, naira(50))

        system.wallet_manager.withdraw(receiver.id, naira(100))
        system.wallet_manager.transfer(receiver.id, friends[0].email, naira(100))
        with pytest.raises(RateLimitError):
            system.wallet_manager.withdraw(receiver.id, naira(100))

    def test_bank_withdrawal_validation(self, system, make_user):
        user = make_user(balance=10000)
        wm = system.wallet_manager
        with pytest.raises(ValidationError, match="Account number must be 10 digits"):
            wm.withdraw_to_bank(user.id, naira(2000), "12345", "058", "Ada Obi")
        with pytest.raises(ValidationError, match="Invalid bank code"):
            wm.withdraw_to_bank(user.id, naira(2000), "0123456789", "58", "Ada Obi")
        with pytest.raises(ValidationError, match="Minimum withdrawal amount is ₦1,000"):
            wm.withdraw_to_bank(user.id, naira(500), "0123456789", "058", "Ada Obi")

    def test_bank_withdrawal_success(self, system, make_user):
        user = make_user(balance=10000)
        txn = system.wallet_manager.withdraw_to_bank(user.id, naira(4000), "0123456789", "058", "Ada Obi")

        assert txn.status == TransactionStatus.PENDING
        assert txn.reference.startswith("WDR_")
        assert system.wallet_manager.get_wallet(user.id).balance == naira(6000)

        done = system.wallet_manager.complete_withdrawal(txn.id, success=True)
        assert done.status == TransactionStatus.COMPLETED
        with pytest.raises(ValidationError, match="Withdrawal is already completed"):
            system.wallet_manager.complete_withdrawal(txn.id, success=True)

    def test_bank_withdrawal_failure_refunds(self, system, make_user):
        user = make_user(balance=10000)
        txn = system.wallet_manager.withdraw_to_bank(user.id, naira(4000), "0123456789", "058", "Ada Obi")

        failed = system.wallet_manager.complete_withdrawal(txn.id, success=False, reason="Bank down")
        assert failed.status == TransactionStatus.FAILED
        assert failed.failure_reason == "Bank down"
        assert system.wallet_manager.get_wallet(user.id).balance == naira(10000)
        assert_in_step(system, user.id)

    def test_refund_rejects_credits(self, system, make_user):
        user = make_user()
        txn = system.wallet_manager.add_funds(user.id, naira(500), FundingSource.PAYSTACK)
        with pytest.raises(ValidationError, match="Only debits can be refunded"):
            system.wallet_manager.refund(txn.id, "nope")


class TestTransfers:
    def test_transfer(self, system, make_user):
        sender = make_user(balance=5000)
        recipient = make_user(email="chi@example.com", first_name="Chi")

        result = system.wallet_manager.transfer(sender.id, "chi@example.com", naira(1500), "Lunch")

        assert result["recipient"].id == recipient.id
        assert result["debit"].reference.endswith("_OUT")
        assert result["credit"].reference.endswith("_IN")
        assert result["debit"].description == "Transfer to Chi O.: Lunch"
        assert system.wallet_manager.get_wallet(sender.id).balance == naira(3500)
        assert system.wallet_manager.get_wallet(recipient.id).balance == naira(1500)
        assert_in_step(system, sender.id)
        assert_in_step(system, recipient.id)

        received = system.notifications.get_notifications(recipient.id)[0]
        assert received.title == "Payment Received"
        assert "Lunch" in received.message

    def test_transfer_by_phone(self, system, make_user):
        sender = make_user(balance=500)
        recipient = make_user(phone="08099998888")
        system.wallet_manager.transfer(sender.id, "+2348099998888", naira(100))
        assert system.wallet_manager.get_wallet(recipient.id).balance == naira(100)

    def test_transfer_rules(self, system, make_user):
        sender = make_user(balance=5000, email="send@example.com")
        make_user(email="recv@example.com")
        wm = system.wallet_manager

        with pytest.raises(ValidationError, match="Minimum transfer amount is ₦10"):
            wm.transfer(sender.id, "recv@example.com", naira(5))
        with pytest.raises(ValidationError, match="You cannot transfer money to yourself"):
            wm.transfer(sender.id, "send@example.com", naira(100))
        with pytest.raises(NotFoundError):
            wm.transfer(sender.id, "ghost@example.com", naira(100))
        with pytest.raises(InsufficientFundsError):
            wm.transfer(sender.id, "recv@example.com", naira(6000))

    def test_unverified_recipient_limit(self, system, make_user):
        sender = make_user(verified=True, balance=200000)
        make_user(email="small@example.com")
        with pytest.raises(ValidationError, match="until their KYC is verified"):
            system.wallet_manager.transfer(sender.id, "small@example.com", naira(60000))
        assert system.wallet_manager.get_wallet(sender.id).balance.amount == Decimal("200000.00")
