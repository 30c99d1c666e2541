"""
Double-Entry Ledger

Every naira that enters, leaves or moves inside the platform is booked as
a balanced journal entry. Wallet records keep a running balance for fast
reads; the ledger is the book of record those balances are reconciled
against.

Chart of accounts:
    wallet:<user_id>          liability, what the platform owes a user
    sys:funding_clearing      asset, money collected by the payment gateway
    sys:payout_clearing       asset, money sent out to bank accounts
    sys:investment_pool       liability, principal and returns held in products
    sys:crypto_desk           liability, naira value parked in crypto positions
    sys:biller_settlement     asset, money remitted to billers
    sys:investment_returns    expense, interest credited to investors
    sys:roundup_pot           liability, spare change saved towards an investment
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Set
from enum import Enum
import uuid

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType


class JournalEntryState(Enum):
    PENDING = "pending"
    POSTED = "posted"
    REVERSED = "reversed"


class AccountType(Enum):
    ASSET = "asset"           # Debit normal balance
    LIABILITY = "liability"   # Credit normal balance
    EQUITY = "equity"         # Credit normal balance
    REVENUE = "revenue"       # Credit normal balance
    EXPENSE = "expense"       # Debit normal balance


class SystemAccount(Enum):
    """Platform-side ledger accounts"""
    FUNDING_CLEARING = ("sys:funding_clearing", AccountType.ASSET)
    PAYOUT_CLEARING = ("sys:payout_clearing", AccountType.ASSET)
    INVESTMENT_POOL = ("sys:investment_pool", AccountType.LIABILITY)
    CRYPTO_DESK = ("sys:crypto_desk", AccountType.LIABILITY)
    BILLER_SETTLEMENT = ("sys:biller_settlement", AccountType.ASSET)
    INVESTMENT_RETURNS = ("sys:investment_returns", AccountType.EXPENSE)
    ROUNDUP_POT = ("sys:roundup_pot", AccountType.LIABILITY)

    def __init__(self, account_id: str, account_type: AccountType):
        self.account_id = account_id
        self.account_type = account_type


def wallet_account(user_id: str) -> str:
    """Ledger account id of a user's wallet"""
    return f"wallet:{user_id}"


@dataclass
class JournalEntryLine:
    """One debit or one credit against a single account"""
    account_id: str
    description: str
    debit_amount: Money
    credit_amount: Money

    def __post_init__(self):
        debit_zero = self.debit_amount.is_zero()
        credit_zero = self.credit_amount.is_zero()

        if debit_zero and credit_zero:
            raise ValueError("Journal entry line must have either debit or credit amount")
        if not debit_zero and not credit_zero:
            raise ValueError("Journal entry line cannot have both debit and credit amounts")
        if self.debit_amount.is_negative() or self.credit_amount.is_negative():
            raise ValueError("Journal entry amounts cannot be negative")
        if self.debit_amount.currency != self.credit_amount.currency:
            raise ValueError("Debit and credit amounts must use same currency")

    @classmethod
    def debit(cls, account_id: str, amount: Money, description: str) -> 'JournalEntryLine':
        return cls(account_id, description, amount, Money(Decimal('0'), amount.currency))

    @classmethod
    def credit(cls, account_id: str, amount: Money, description: str) -> 'JournalEntryLine':
        return cls(account_id, description, Money(Decimal('0'), amount.currency), amount)

    @property
    def currency(self) -> Currency:
        return self.debit_amount.currency

    @property
    def is_debit(self) -> bool:
        return not self.debit_amount.is_zero()

    def flipped(self, description: str) -> 'JournalEntryLine':
        return JournalEntryLine(self.account_id, description, self.credit_amount, self.debit_amount)

    def to_dict(self) -> Dict[str, str]:
        return {
            'account_id': self.account_id,
            'description': self.description,
            'debit_amount': str(self.debit_amount.amount),
            'credit_amount': str(self.credit_amount.amount),
            'currency': self.currency.code
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> 'JournalEntryLine':
        currency = Currency[data['currency']]
        return cls(
            account_id=data['account_id'],
            description=data['description'],
            debit_amount=Money(Decimal(data['debit_amount']), currency),
            credit_amount=Money(Decimal(data['credit_amount']), currency)
        )


@dataclass
class JournalEntry(StorageRecord):
    """
    Balanced set of lines. Immutable once posted; corrections are made
    with a reversing entry.
    """
    reference: str
    description: str
    lines: List[JournalEntryLine]
    state: JournalEntryState
    posted_at: Optional[datetime] = None
    reversed_by: Optional[str] = None
    reverses: Optional[str] = None

    def __post_init__(self):
        self.validate_balance()

    def validate_balance(self) -> None:
        """Total debits must equal total credits in every currency"""
        if len(self.lines) < 2:
            raise ValueError("Journal entry must have at least two lines")

        totals: Dict[Currency, List[Decimal]] = {}
        for line in self.lines:
            debits_credits = totals.setdefault(line.currency, [Decimal('0'), Decimal('0')])
            debits_credits[0] += line.debit_amount.amount
            debits_credits[1] += line.credit_amount.amount

        for currency, (debits, credits) in totals.items():
            if debits != credits:
                raise ValueError(f"Journal entry not balanced for {currency.code}: "
                                 f"debits={debits}, credits={credits}")

    def get_affected_accounts(self) -> Set[str]:
        return {line.account_id for line in self.lines}

    def post(self) -> None:
        if self.state != JournalEntryState.PENDING:
            raise ValueError(f"Cannot post journal entry in {self.state.value} state")
        self.state = JournalEntryState.POSTED
        self.posted_at = datetime.now(timezone.utc)
        self.updated_at = self.posted_at

    def reverse(self, reversal_entry_id: str) -> None:
        if self.state != JournalEntryState.POSTED:
            raise ValueError(f"Cannot reverse journal entry in {self.state.value} state")
        self.state = JournalEntryState.REVERSED
        self.reversed_by = reversal_entry_id
        self.updated_at = datetime.now(timezone.utc)

    def to_dict(self) -> Dict:
        result = super().to_dict()
        result['lines'] = [line.to_dict() for line in self.lines]
        return result

    @classmethod
    def from_dict(cls, data: Dict) -> 'JournalEntry':
        data = dict(data)
        data['lines'] = [JournalEntryLine.from_dict(line) for line in data['lines']]
        data['state'] = JournalEntryState(data['state'])
        if data.get('posted_at'):
            data['posted_at'] = datetime.fromisoformat(data['posted_at'])
        return super().from_dict(data)


class GeneralLedger:
    """
    Creates, posts and reverses journal entries and derives balances
    from posted entries.
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "journal_entries"

    def create_journal_entry(self, reference: str, description: str,
                             lines: List[JournalEntryLine]) -> JournalEntry:
        """
        Create a PENDING entry.

        Raises:
            ValueError: If the lines don't balance
        """
        now = datetime.now(timezone.utc)
        entry = JournalEntry(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            reference=reference,
            description=description,
            lines=lines,
            state=JournalEntryState.PENDING
        )
        self._save_entry(entry)

        self.audit_trail.log_event(
            event_type=AuditEventType.JOURNAL_ENTRY_CREATED,
            entity_type="journal_entry",
            entity_id=entry.id,
            metadata={
                "reference": reference,
                "accounts": sorted(entry.get_affected_accounts()),
                "line_count": len(lines)
            }
        )
        return entry

    def post_journal_entry(self, entry_id: str) -> JournalEntry:
        entry = self.get_journal_entry(entry_id)
        if not entry:
            raise ValueError(f"Journal entry {entry_id} not found")

        with self.storage.atomic():
            entry.post()
            self._save_entry(entry)
            self.audit_trail.log_event(
                event_type=AuditEventType.JOURNAL_ENTRY_POSTED,
                entity_type="journal_entry",
                entity_id=entry.id,
                metadata={"reference": entry.reference}
            )
        return entry

    def post_transfer(self, reference: str, description: str, debit_account: str,
                      credit_account: str, amount: Money) -> JournalEntry:
        """Book and post a two-line entry moving `amount` between accounts"""
        if not amount.is_positive():
            raise ValueError("Ledger transfer amount must be positive")
        entry = self.create_journal_entry(
            reference=reference,
            description=description,
            lines=[
                JournalEntryLine.debit(debit_account, amount, description),
                JournalEntryLine.credit(credit_account, amount, description),
            ]
        )
        return self.post_journal_entry(entry.id)

    def reverse_journal_entry(self, entry_id: str, reversal_reason: str) -> JournalEntry:
        """
        Post a counter-entry that flips every line of a posted entry.

        Returns:
            The new reversing entry
        """
        original = self.get_journal_entry(entry_id)
        if not original:
            raise ValueError(f"Journal entry {entry_id} not found")
        if original.state != JournalEntryState.POSTED:
            raise ValueError("Can only reverse POSTED journal entries")

        with self.storage.atomic():
            reversing = self.create_journal_entry(
                reference=f"REV-{original.reference}",
                description=f"REVERSAL: {reversal_reason}",
                lines=[line.flipped(f"REVERSAL: {line.description}") for line in original.lines]
            )
            reversing.reverses = original.id
            self._save_entry(reversing)
            reversing = self.post_journal_entry(reversing.id)

            original.reverse(reversing.id)
            self._save_entry(original)

            self.audit_trail.log_event(
                event_type=AuditEventType.JOURNAL_ENTRY_REVERSED,
                entity_type="journal_entry",
                entity_id=original.id,
                metadata={
                    "original_reference": original.reference,
                    "reversing_entry_id": reversing.id,
                    "reversal_reason": reversal_reason
                }
            )
        return reversing

    def get_journal_entry(self, entry_id: str) -> Optional[JournalEntry]:
        data = self.storage.load(self.table_name, entry_id)
        return JournalEntry.from_dict(data) if data else None

    def get_entries_for_account(self, account_id: str,
                                as_of: Optional[datetime] = None) -> List[JournalEntry]:
        """Posted or reversed entries touching an account, oldest first"""
        entries = [
            JournalEntry.from_dict(data) for data in self.storage.load_all(self.table_name)
        ]
        entries = [
            e for e in entries
            if account_id in e.get_affected_accounts() and e.state != JournalEntryState.PENDING
        ]
        if as_of:
            entries = [e for e in entries if e.posted_at and e.posted_at <= as_of]
        entries.sort(key=lambda e: e.posted_at)
        return entries

    def calculate_account_balance(self, account_id: str, account_type: AccountType,
                                  currency: Currency = Currency.NGN,
                                  as_of: Optional[datetime] = None) -> Money:
        """
        Balance from entries. A reversed entry and its reversal both stay
        in the book, so they cancel out.
        """
        balance = Decimal('0')
        for entry in self.get_entries_for_account(account_id, as_of):
            for line in entry.lines:
                if line.account_id == account_id and line.currency == currency:
                    balance += line.debit_amount.amount - line.credit_amount.amount

        if account_type in (AccountType.LIABILITY, AccountType.EQUITY, AccountType.REVENUE):
            balance = -balance
        return Money(balance, currency)

    def wallet_balance(self, user_id: str) -> Money:
        return self.calculate_account_balance(wallet_account(user_id), AccountType.LIABILITY)

    def get_trial_balance(self, currency: Currency = Currency.NGN) -> Dict[str, Money]:
        """
        Net debit-minus-credit per account across the whole book.
        The values always sum to zero.
        """
        balances: Dict[str, Decimal] = {}
        for data in self.storage.load_all(self.table_name):
            entry = JournalEntry.from_dict(data)
            if entry.state == JournalEntryState.PENDING:
                continue
            for line in entry.lines:
                if line.currency != currency:
                    continue
                balances[line.account_id] = (
                    balances.get(line.account_id, Decimal('0'))
                    + line.debit_amount.amount - line.credit_amount.amount
                )
        return {account_id: Money(amount, currency) for account_id, amount in balances.items()}

    def _save_entry(self, entry: JournalEntry) -> None:
        self.storage.save(self.table_name, entry.id, entry.to_dict())
