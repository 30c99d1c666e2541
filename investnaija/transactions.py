"""
Wallet Transaction Log

Records every money movement a user sees in their history. Amounts are
always positive; the transaction type tells whether the wallet was
credited or debited.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import math
import uuid

from .audit import AuditTrail, AuditEventType
from .currency import Money, Currency
from .errors import ConflictError, NotFoundError, ValidationError
from .storage import StorageInterface, StorageRecord


class TransactionType(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    BANK_WITHDRAWAL = "bank_withdrawal"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    INVESTMENT = "investment"
    INVESTMENT_WITHDRAWAL = "investment_withdrawal"
    INVESTMENT_RETURN = "investment_return"
    CRYPTO_BUY = "crypto_buy"
    CRYPTO_SELL = "crypto_sell"
    BILL_PAYMENT = "bill_payment"
    ROUNDUP = "roundup"
    ROUNDUP_RELEASE = "roundup_release"

    @property
    def is_credit(self) -> bool:
        return self in CREDIT_TYPES


CREDIT_TYPES = {
    TransactionType.DEPOSIT,
    TransactionType.TRANSFER_IN,
    TransactionType.INVESTMENT_WITHDRAWAL,
    TransactionType.INVESTMENT_RETURN,
    TransactionType.CRYPTO_SELL,
    TransactionType.ROUNDUP_RELEASE,
}


class TransactionStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REVERSED = "reversed"


_ALLOWED_TRANSITIONS = {
    TransactionStatus.PENDING: {TransactionStatus.COMPLETED, TransactionStatus.FAILED},
    TransactionStatus.COMPLETED: {TransactionStatus.REVERSED},
    TransactionStatus.FAILED: set(),
    TransactionStatus.REVERSED: set(),
}


@dataclass
class WalletTransaction(StorageRecord):
    user_id: str
    transaction_type: TransactionType
    amount: Money
    status: TransactionStatus
    description: str
    reference: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    journal_entry_id: Optional[str] = None
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    @property
    def is_credit(self) -> bool:
        return self.transaction_type.is_credit

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['amount'] = str(self.amount.amount)
        result['currency'] = self.amount.currency.code
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WalletTransaction':
        data = dict(data)
        currency = Currency[data.pop('currency', 'NGN')]
        data['amount'] = Money(Decimal(data['amount']), currency)
        data['transaction_type'] = TransactionType(data['transaction_type'])
        data['status'] = TransactionStatus(data['status'])
        if data.get('completed_at'):
            data['completed_at'] = datetime.fromisoformat(data['completed_at'])
        return super().from_dict(data)

    def to_api(self) -> Dict[str, Any]:
        """Shape returned by the HTTP layer"""
        return {
            "id": self.id,
            "type": self.transaction_type.value,
            "direction": "credit" if self.is_credit else "debit",
            "amount": str(self.amount.amount),
            "currency": self.amount.currency.code,
            "status": self.status.value,
            "description": self.description,
            "reference": self.reference,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class TransactionPage:
    transactions: List[WalletTransaction]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_api(self) -> Dict[str, Any]:
        return {
            "transactions": [t.to_api() for t in self.transactions],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "total_pages": self.total_pages,
            },
        }


# Outgoing movements a user starts themselves; these count against the daily limit
DAILY_LIMITED_TYPES = {
    TransactionType.WITHDRAWAL,
    TransactionType.BANK_WITHDRAWAL,
    TransactionType.TRANSFER_OUT,
    TransactionType.BILL_PAYMENT,
}


def _as_bound(value: Union[date, datetime], end: bool = False) -> datetime:
    """
    Turn a history filter into an aware UTC datetime. A plain date covers
    the whole day, so as an end bound it means the last instant of that day.
    """
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.max if end else time.min)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def generate_reference(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:20].upper()}"


class TransactionLog:
    """Stores wallet transactions and enforces their status machine"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "wallet_transactions"

    def record(
        self,
        user_id: str,
        transaction_type: TransactionType,
        amount: Money,
        description: str,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        reference: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        journal_entry_id: Optional[str] = None
    ) -> WalletTransaction:
        """
        Persist a new transaction.

        Raises:
            ValidationError: If amount is not positive
            ConflictError: If the reference was already used
        """
        if not amount.is_positive():
            raise ValidationError("Transaction amount must be positive")

        reference = reference or generate_reference(transaction_type.value.upper())
        if self.get_by_reference(reference):
            raise ConflictError(f"Duplicate transaction reference: {reference}")

        now = datetime.now(timezone.utc)
        txn = WalletTransaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            transaction_type=transaction_type,
            amount=amount,
            status=status,
            description=description,
            reference=reference,
            metadata=metadata or {},
            journal_entry_id=journal_entry_id,
            completed_at=now if status == TransactionStatus.COMPLETED else None
        )
        self._save(txn)

        self.audit_trail.log_event(
            AuditEventType.TRANSACTION_CREATED,
            "transaction",
            txn.id,
            {
                "type": transaction_type.value,
                "amount": str(amount.amount),
                "status": status.value,
                "reference": reference
            },
            user_id=user_id
        )
        return txn

    def update_status(self, transaction_id: str, status: TransactionStatus,
                      failure_reason: Optional[str] = None,
                      journal_entry_id: Optional[str] = None) -> WalletTransaction:
        txn = self.get(transaction_id)
        if not txn:
            raise NotFoundError("Transaction not found")

        if status not in _ALLOWED_TRANSITIONS[txn.status]:
            raise ValidationError(
                f"Cannot move transaction from {txn.status.value} to {status.value}"
            )

        previous = txn.status
        txn.status = status
        txn.updated_at = datetime.now(timezone.utc)
        if status == TransactionStatus.COMPLETED:
            txn.completed_at = txn.updated_at
        if failure_reason:
            txn.failure_reason = failure_reason
        if journal_entry_id:
            txn.journal_entry_id = journal_entry_id
        self._save(txn)

        self.audit_trail.log_event(
            AuditEventType.TRANSACTION_STATUS_CHANGED,
            "transaction",
            txn.id,
            {"from": previous.value, "to": status.value, "reason": failure_reason},
            user_id=txn.user_id
        )
        return txn

    def attach_metadata(self, transaction_id: str, **metadata) -> WalletTransaction:
        txn = self.get(transaction_id)
        if not txn:
            raise NotFoundError("Transaction not found")
        txn.metadata.update(metadata)
        txn.updated_at = datetime.now(timezone.utc)
        self._save(txn)
        return txn

    def get(self, transaction_id: str) -> Optional[WalletTransaction]:
        data = self.storage.load(self.table_name, transaction_id)
        return WalletTransaction.from_dict(data) if data else None

    def get_by_reference(self, reference: str) -> Optional[WalletTransaction]:
        data = self.storage.find_one(self.table_name, {"reference": reference})
        return WalletTransaction.from_dict(data) if data else None

    def for_user(self, user_id: str) -> List[WalletTransaction]:
        """All of a user's transactions, newest first"""
        txns = [
            WalletTransaction.from_dict(data)
            for data in self.storage.find(self.table_name, {"user_id": user_id})
        ]
        txns.sort(key=lambda t: t.created_at, reverse=True)
        return txns

    def recent(self, user_id: str, limit: int = 5) -> List[WalletTransaction]:
        return self.for_user(user_id)[:limit]

    def history(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 20,
        transaction_type: Optional[TransactionType] = None,
        status: Optional[TransactionStatus] = None,
        start_date: Optional[Union[date, datetime]] = None,
        end_date: Optional[Union[date, datetime]] = None
    ) -> TransactionPage:
        """Filtered, paginated history, newest first"""
        if page < 1:
            raise ValidationError("Page must be at least 1")
        if limit < 1 or limit > 100:
            raise ValidationError("Limit must be between 1 and 100")

        txns = self.for_user(user_id)
        if transaction_type:
            txns = [t for t in txns if t.transaction_type == transaction_type]
        if status:
            txns = [t for t in txns if t.status == status]
        if start_date:
            start = _as_bound(start_date)
            txns = [t for t in txns if t.created_at >= start]
        if end_date:
            end = _as_bound(end_date, end=True)
            txns = [t for t in txns if t.created_at <= end]

        offset = (page - 1) * limit
        return TransactionPage(
            transactions=txns[offset:offset + limit],
            page=page,
            limit=limit,
            total=len(txns)
        )

    def count_today(self, user_id: str) -> int:
        """Outgoing user-initiated transactions today that did not fail or get reversed"""
        today = datetime.now(timezone.utc).date()
        return sum(
            1 for t in self.for_user(user_id)
            if t.created_at.date() == today
            and t.transaction_type in DAILY_LIMITED_TYPES
            and t.status not in (TransactionStatus.FAILED, TransactionStatus.REVERSED)
        )

    def all(self) -> List[WalletTransaction]:
        return [WalletTransaction.from_dict(d) for d in self.storage.load_all(self.table_name)]

    def _save(self, txn: WalletTransaction) -> None:
        self.storage.save(self.table_name, txn.id, txn.to_dict())
