"""
Wallet Module

Naira wallets with a cached balance, running totals for the portfolio
view, and the money movements users trigger directly: funding, transfers
to other users and payouts to Nigerian bank accounts.

Every movement runs inside storage.atomic(): the wallet balance, the
transaction record and the balanced journal entry are written together
or not at all.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
import re

from .audit import AuditTrail, AuditEventType
from .config import get_config
from .currency import Money, naira, zero
from .errors import (
    InsufficientFundsError, NotFoundError, ValidationError, RateLimitError
)
from .ledger import GeneralLedger, SystemAccount, wallet_account
from .logging_config import get_logger, log_action
from .notifications import NotificationEngine
from .storage import StorageInterface, StorageRecord
from .transactions import (
    TransactionLog, TransactionStatus, TransactionType, WalletTransaction,
    generate_reference
)
from .users import UserManager

logger = get_logger("investnaija.wallets")


class FundingSource(Enum):
    PAYSTACK = "paystack"
    BANK_TRANSFER = "bank_transfer"
    VIRTUAL_ACCOUNT = "virtual_account"
    ADMIN_ADJUSTMENT = "admin_adjustment"


@dataclass
class Wallet(StorageRecord):
    """A user's wallet; id is the owning user's id"""
    user_id: str
    balance: Money
    total_invested: Money
    total_returns: Money

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['balance'] = str(self.balance.amount)
        result['total_invested'] = str(self.total_invested.amount)
        result['total_returns'] = str(self.total_returns.amount)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Wallet':
        data = dict(data)
        for key in ('balance', 'total_invested', 'total_returns'):
            data[key] = naira(data[key])
        return super().from_dict(data)

    def to_api(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "balance": str(self.balance.amount),
            "total_invested": str(self.total_invested.amount),
            "total_returns": str(self.total_returns.amount),
            "currency": self.balance.currency.code,
            "last_updated": self.updated_at.isoformat(),
        }


class WalletManager:
    """Balance bookkeeping for every product that moves a user's money"""

    def __init__(self, storage: StorageInterface, ledger: GeneralLedger,
                 transaction_log: TransactionLog, user_manager: UserManager,
                 notifications: NotificationEngine, audit_trail: AuditTrail):
        self.storage = storage
        self.ledger = ledger
        self.transaction_log = transaction_log
        self.user_manager = user_manager
        self.notifications = notifications
        self.audit_trail = audit_trail
        self.table_name = "wallets"

    # Wallet records

    def create_wallet(self, user_id: str) -> Wallet:
        existing = self.find_wallet(user_id)
        if existing:
            return existing

        now = datetime.now(timezone.utc)
        wallet = Wallet(
            id=user_id,
            created_at=now,
            updated_at=now,
            user_id=user_id,
            balance=zero(),
            total_invested=zero(),
            total_returns=zero()
        )
        self._save(wallet)
        self.audit_trail.log_event(AuditEventType.WALLET_CREATED, "wallet", user_id, {}, user_id=user_id)
        return wallet

    def find_wallet(self, user_id: str) -> Optional[Wallet]:
        data = self.storage.load(self.table_name, user_id)
        return Wallet.from_dict(data) if data else None

    def get_wallet(self, user_id: str) -> Wallet:
        wallet = self.find_wallet(user_id)
        if not wallet:
            raise NotFoundError("Wallet not found")
        return wallet

    def adjust_totals(self, user_id: str, invested: Optional[Money] = None,
                      returns: Optional[Money] = None) -> Wallet:
        """Shift total_invested / total_returns without touching the balance"""
        wallet = self.get_wallet(user_id)
        if invested is not None:
            wallet.total_invested = max(wallet.total_invested + invested, zero())
        if returns is not None:
            wallet.total_returns = wallet.total_returns + returns
        wallet.updated_at = datetime.now(timezone.utc)
        self._save(wallet)
        return wallet

    # Generic movements

    def debit(self, user_id: str, amount: Money, transaction_type: TransactionType,
              counter_account: SystemAccount, description: str,
              reference: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None,
              status: TransactionStatus = TransactionStatus.COMPLETED,
              insufficient_message: str = "Insufficient balance") -> WalletTransaction:
        """
        Take money out of a wallet into a platform account.

        Raises:
            ValidationError: Non-positive amount
            InsufficientFundsError: Balance lower than amount
        """
        return self._move(user_id, amount, transaction_type, counter_account.account_id,
                          description, reference, metadata, status, credit=False,
                          insufficient_message=insufficient_message)

    def credit(self, user_id: str, amount: Money, transaction_type: TransactionType,
               counter_account: SystemAccount, description: str,
               reference: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None,
               status: TransactionStatus = TransactionStatus.COMPLETED) -> WalletTransaction:
        """Put money from a platform account into a wallet"""
        return self._move(user_id, amount, transaction_type, counter_account.account_id,
                          description, reference, metadata, status, credit=True)

    def refund(self, transaction_id: str, reason: str) -> WalletTransaction:
        """
        Fail a pending debit and give the money back. The original journal
        entry is reversed so the ledger and the wallet stay in step.
        """
        with self.storage.atomic():
            txn = self.transaction_log.get(transaction_id)
            if not txn:
                raise NotFoundError("Transaction not found")
            if txn.is_credit:
                raise ValidationError("Only debits can be refunded")

            wallet = self.get_wallet(txn.user_id)
            wallet.balance = wallet.balance + txn.amount
            wallet.updated_at = datetime.now(timezone.utc)
            self._save(wallet)

            if txn.journal_entry_id:
                self.ledger.reverse_journal_entry(txn.journal_entry_id, reason)

            if txn.status == TransactionStatus.PENDING:
                txn = self.transaction_log.update_status(txn.id, TransactionStatus.FAILED, failure_reason=reason)
            else:
                txn = self.transaction_log.update_status(txn.id, TransactionStatus.REVERSED, failure_reason=reason)

        log_action(logger, "info", "Debit refunded", user_id=txn.user_id,
                   action="wallet.refund", resource=txn.id, extra={"reason": reason})
        return txn

    def _move(self, user_id: str, amount: Money, transaction_type: TransactionType,
              counter_account_id: str, description: str, reference: Optional[str],
              metadata: Optional[Dict[str, Any]], status: TransactionStatus,
              credit: bool, insufficient_message: str = "Insufficient balance") -> WalletTransaction:
        if not amount.is_positive():
            raise ValidationError("Invalid amount")

        with self.storage.atomic():
            wallet = self.get_wallet(user_id)
            if credit:
                wallet.balance = wallet.balance + amount
            else:
                if wallet.balance < amount:
                    raise InsufficientFundsError(insufficient_message)
                wallet.balance = wallet.balance - amount
            wallet.updated_at = datetime.now(timezone.utc)
            self._save(wallet)

            reference = reference or generate_reference(transaction_type.value.upper())
            if credit:
                entry = self.ledger.post_transfer(reference, description, counter_account_id,
                                                  wallet_account(user_id), amount)
            else:
                entry = self.ledger.post_transfer(reference, description, wallet_account(user_id),
                                                  counter_account_id, amount)

            txn = self.transaction_log.record(
                user_id=user_id,
                transaction_type=transaction_type,
                amount=amount,
                description=description,
                status=status,
                reference=reference,
                metadata=metadata,
                journal_entry_id=entry.id
            )

            self.audit_trail.log_event(
                AuditEventType.WALLET_FUNDED if credit else AuditEventType.WALLET_DEBITED,
                "wallet",
                user_id,
                {"amount": str(amount.amount), "transaction_id": txn.id,
                 "balance_after": str(wallet.balance.amount)},
                user_id=user_id
            )

        log_action(logger, "info", f"Wallet {'credited' if credit else 'debited'}",
                   user_id=user_id, action=f"wallet.{transaction_type.value}", resource=txn.id,
                   extra={"amount": str(amount.amount), "reference": reference})
        return txn

    # Funding

    def check_funding_limits(self, user_id: str, amount: Money) -> None:
        config = get_config()
        if amount < naira(config.min_funding_amount):
            raise ValidationError(f"Minimum funding amount is ₦{Decimal(config.min_funding_amount):,.0f}")
        if amount > naira(config.max_funding_amount):
            raise ValidationError(f"Maximum funding amount is ₦{Decimal(config.max_funding_amount):,.0f}")

        user = self.user_manager.require_user(user_id)
        cap = naira(config.max_unverified_wallet_balance)
        if not user.is_verified and self.get_wallet(user_id).balance + amount > cap:
            raise ValidationError(
                f"Unverified wallets cannot hold more than ₦{cap.amount:,.0f}. "
                "Complete KYC verification to increase your limit."
            )

    def add_funds(self, user_id: str, amount: Money, source: FundingSource,
                  reference: Optional[str] = None,
                  metadata: Optional[Dict[str, Any]] = None) -> WalletTransaction:
        """
        Credit a completed deposit. Replaying a reference returns the
        transaction it already created.
        """
        if reference:
            existing = self.transaction_log.get_by_reference(reference)
            if existing:
                return existing
        if source != FundingSource.ADMIN_ADJUSTMENT:
            self.check_funding_limits(user_id, amount)

        txn = self.credit(
            user_id, amount, TransactionType.DEPOSIT, SystemAccount.FUNDING_CLEARING,
            f"Wallet funding via {source.value.replace('_', ' ')}",
            reference=reference,
            metadata={"source": source.value, **(metadata or {})}
        )
        self.notifications.notify_transaction(user_id, "deposit", amount, "completed",
                                              data={"transaction_id": txn.id})
        return txn

    def create_pending_deposit(self, user_id: str, amount: Money, reference: str,
                               source: FundingSource = FundingSource.PAYSTACK,
                               metadata: Optional[Dict[str, Any]] = None) -> WalletTransaction:
        """Record a deposit the gateway has not confirmed yet; the balance is untouched"""
        self.check_funding_limits(user_id, amount)
        return self.transaction_log.record(
            user_id=user_id,
            transaction_type=TransactionType.DEPOSIT,
            amount=amount,
            description=f"Wallet funding via {source.value.replace('_', ' ')}",
            status=TransactionStatus.PENDING,
            reference=reference,
            metadata={"source": source.value, **(metadata or {})}
        )

    def complete_pending_deposit(self, reference: str, paid_amount: Optional[Money] = None) -> WalletTransaction:
        """
        Settle a pending deposit once the gateway confirms it. Already
        completed deposits are returned unchanged.
        """
        with self.storage.atomic():
            txn = self.transaction_log.get_by_reference(reference)
            if not txn or txn.transaction_type != TransactionType.DEPOSIT:
                raise NotFoundError("Transaction not found")
            if txn.status == TransactionStatus.COMPLETED:
                return txn
            if txn.status != TransactionStatus.PENDING:
                raise ValidationError(f"Transaction is {txn.status.value}")
            if paid_amount is not None and paid_amount != txn.amount:
                raise ValidationError("Paid amount does not match the initialized amount")

            wallet = self.get_wallet(txn.user_id)
            wallet.balance = wallet.balance + txn.amount
            wallet.updated_at = datetime.now(timezone.utc)
            self._save(wallet)

            entry = self.ledger.post_transfer(
                reference, txn.description, SystemAccount.FUNDING_CLEARING.account_id,
                wallet_account(txn.user_id), txn.amount
            )
            txn = self.transaction_log.update_status(
                txn.id, TransactionStatus.COMPLETED, journal_entry_id=entry.id
            )
            self.audit_trail.log_event(
                AuditEventType.WALLET_FUNDED, "wallet", txn.user_id,
                {"amount": str(txn.amount.amount), "transaction_id": txn.id},
                user_id=txn.user_id
            )

        self.notifications.notify_transaction(txn.user_id, "deposit", txn.amount, "completed",
                                              data={"transaction_id": txn.id})
        return txn

    def fail_pending_deposit(self, reference: str, reason: str) -> WalletTransaction:
        txn = self.transaction_log.get_by_reference(reference)
        if not txn:
            raise NotFoundError("Transaction not found")
        if txn.status != TransactionStatus.PENDING:
            return txn
        return self.transaction_log.update_status(txn.id, TransactionStatus.FAILED, failure_reason=reason)

    # Outgoing money

    def check_daily_limit(self, user_id: str) -> None:
        limit = get_config().max_daily_transactions
        if self.transaction_log.count_today(user_id) >= limit:
            raise RateLimitError(f"Daily transaction limit of {limit} reached")

    def withdraw(self, user_id: str, amount: Money) -> WalletTransaction:
        """Withdrawal from the wallet with no bank details (cash-out)"""
        if not amount.is_positive():
            raise ValidationError("Invalid amount")
        self.check_daily_limit(user_id)
        txn = self.debit(user_id, amount, TransactionType.WITHDRAWAL,
                         SystemAccount.PAYOUT_CLEARING, "Wallet withdrawal")
        self.notifications.notify_transaction(user_id, "withdrawal", amount, "completed")
        return txn

    def transfer(self, sender_id: str, recipient_identifier: str, amount: Money,
                 description: Optional[str] = None) -> Dict[str, Any]:
        """
        Send money to another user identified by email or phone.

        Returns:
            {"debit": WalletTransaction, "credit": WalletTransaction, "recipient": User}
        """
        config = get_config()
        if amount < naira(config.min_transfer_amount):
            raise ValidationError(f"Minimum transfer amount is ₦{Decimal(config.min_transfer_amount):,.0f}")
        if amount > naira(config.max_transfer_amount):
            raise ValidationError(f"Maximum transfer amount is ₦{Decimal(config.max_transfer_amount):,.0f}")

        sender = self.user_manager.require_user(sender_id)
        recipient = self.user_manager.validate_recipient(recipient_identifier)
        if recipient.id == sender.id:
            raise ValidationError("You cannot transfer money to yourself")

        allowed, reason = self.user_manager.can_receive_money(recipient, amount.amount)
        if not allowed:
            raise ValidationError(reason)
        self.check_daily_limit(sender_id)

        note = description or "Wallet transfer"
        reference = generate_reference("P2P")
        with self.storage.atomic():
            sender_wallet = self.get_wallet(sender_id)
            recipient_wallet = self.get_wallet(recipient.id)
            if sender_wallet.balance < amount:
                raise InsufficientFundsError("Insufficient balance")

            now = datetime.now(timezone.utc)
            sender_wallet.balance = sender_wallet.balance - amount
            sender_wallet.updated_at = now
            recipient_wallet.balance = recipient_wallet.balance + amount
            recipient_wallet.updated_at = now
            self._save(sender_wallet)
            self._save(recipient_wallet)

            entry = self.ledger.post_transfer(
                reference, note, wallet_account(sender_id), wallet_account(recipient.id), amount
            )
            debit_txn = self.transaction_log.record(
                user_id=sender_id,
                transaction_type=TransactionType.TRANSFER_OUT,
                amount=amount,
                description=f"Transfer to {self.user_manager.display_name(recipient)}: {note}",
                reference=f"{reference}_OUT",
                metadata={"recipient_id": recipient.id, "transfer_reference": reference},
                journal_entry_id=entry.id
            )
            credit_txn = self.transaction_log.record(
                user_id=recipient.id,
                transaction_type=TransactionType.TRANSFER_IN,
                amount=amount,
                description=f"Transfer from {self.user_manager.display_name(sender)}: {note}",
                reference=f"{reference}_IN",
                metadata={"sender_id": sender_id, "transfer_reference": reference},
                journal_entry_id=entry.id
            )
            self.audit_trail.log_event(
                AuditEventType.TRANSFER_COMPLETED, "transfer", reference,
                {"from": sender_id, "to": recipient.id, "amount": str(amount.amount)},
                user_id=sender_id
            )

        log_action(logger, "info", "P2P transfer completed", user_id=sender_id,
                   action="wallet.transfer", resource=reference,
                   extra={"recipient_id": recipient.id, "amount": str(amount.amount)})
        self.notifications.notify_transaction(sender_id, "transfer", amount, "completed",
                                              data={"transaction_id": debit_txn.id})
        self.notifications.notify_payment_received(recipient.id, amount,
                                                   self.user_manager.display_name(sender),
                                                   description)
        return {"debit": debit_txn, "credit": credit_txn, "recipient": recipient}

    def withdraw_to_bank(self, user_id: str, amount: Money, account_number: str,
                         bank_code: str, account_name: str) -> WalletTransaction:
        """
        Reserve the money for a bank payout. The wallet is debited now and
        the transaction stays pending until complete_withdrawal().
        """
        config = get_config()
        if not re.fullmatch(r"\d{10}", account_number or ""):
            raise ValidationError("Account number must be 10 digits")
        if not re.fullmatch(r"\d{3}|\d{6}", bank_code or ""):
            raise ValidationError("Invalid bank code")
        if not (account_name or "").strip():
            raise ValidationError("Account name is required")
        if amount < naira(config.min_withdrawal_amount):
            raise ValidationError(f"Minimum withdrawal amount is ₦{Decimal(config.min_withdrawal_amount):,.0f}")
        if amount > naira(config.max_withdrawal_amount):
            raise ValidationError(f"Maximum withdrawal amount is ₦{Decimal(config.max_withdrawal_amount):,.0f}")
        self.check_daily_limit(user_id)

        txn = self.debit(
            user_id, amount, TransactionType.BANK_WITHDRAWAL, SystemAccount.PAYOUT_CLEARING,
            f"Withdrawal to {account_name} ({bank_code}-{account_number[-4:]})",
            reference=generate_reference("WDR"),
            metadata={"account_number": account_number, "bank_code": bank_code,
                      "account_name": account_name.strip()},
            status=TransactionStatus.PENDING
        )
        self.notifications.notify_transaction(user_id, "bank withdrawal", amount, "processing",
                                              data={"transaction_id": txn.id})
        return txn

    def complete_withdrawal(self, transaction_id: str, success: bool,
                            reason: Optional[str] = None) -> WalletTransaction:
        """Settle a pending bank withdrawal; a failed payout refunds the wallet"""
        txn = self.transaction_log.get(transaction_id)
        if not txn or txn.transaction_type != TransactionType.BANK_WITHDRAWAL:
            raise NotFoundError("Transaction not found")
        if txn.status != TransactionStatus.PENDING:
            raise ValidationError(f"Withdrawal is already {txn.status.value}")

        if success:
            txn = self.transaction_log.update_status(txn.id, TransactionStatus.COMPLETED)
            self.notifications.notify_transaction(txn.user_id, "bank withdrawal", txn.amount, "completed")
        else:
            txn = self.refund(txn.id, reason or "Bank payout failed")
            self.notifications.notify_transaction(txn.user_id, "bank withdrawal", txn.amount,
                                                  "failed and has been refunded")
        return txn

    def _save(self, wallet: Wallet) -> None:
        self.storage.save(self.table_name, wallet.id, wallet.to_dict())

    def all_wallets(self):
        return [Wallet.from_dict(d) for d in self.storage.load_all(self.table_name)]
