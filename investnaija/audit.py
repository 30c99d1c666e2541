"""
Audit Trail Module

Append-only, SHA-256 hash-chained log of every state change: sign-ups,
logins, KYC decisions, wallet movements, trades and admin actions.
Editing or deleting a stored event breaks the chain and is reported by
verify_integrity().
"""

import hashlib
import json
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .storage import StorageInterface, StorageRecord


class AuditEventType(Enum):
    """Types of audit events"""
    # Users and sessions
    USER_REGISTERED = "user_registered"
    USER_UPDATED = "user_updated"
    USER_STATUS_CHANGED = "user_status_changed"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    LOGOUT = "logout"

    # KYC
    KYC_SUBMITTED = "kyc_submitted"
    KYC_DOCUMENT_UPLOADED = "kyc_document_uploaded"
    KYC_STATUS_CHANGED = "kyc_status_changed"

    # Wallet and transactions
    WALLET_CREATED = "wallet_created"
    WALLET_FUNDED = "wallet_funded"
    WALLET_DEBITED = "wallet_debited"
    TRANSFER_COMPLETED = "transfer_completed"
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_STATUS_CHANGED = "transaction_status_changed"

    # Ledger
    JOURNAL_ENTRY_CREATED = "journal_entry_created"
    JOURNAL_ENTRY_POSTED = "journal_entry_posted"
    JOURNAL_ENTRY_REVERSED = "journal_entry_reversed"

    # Products
    INVESTMENT_CREATED = "investment_created"
    INVESTMENT_WITHDRAWN = "investment_withdrawn"
    RETURNS_ACCRUED = "returns_accrued"
    CRYPTO_TRADE = "crypto_trade"
    BILL_PAYMENT = "bill_payment"
    PAYMENT_INITIALIZED = "payment_initialized"
    PAYMENT_VERIFIED = "payment_verified"
    ROUNDUP_SETTINGS_UPDATED = "roundup_settings_updated"

    # Security and system
    OTP_SENT = "otp_sent"
    OTP_VERIFIED = "otp_verified"
    NOTIFICATION_SENT = "notification_sent"
    RECONCILIATION_RUN = "reconciliation_run"
    AUDIT_INTEGRITY_CHECK = "audit_integrity_check"


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass
class AuditEvent(StorageRecord):
    """Single link of the audit chain"""
    sequence: int
    event_type: AuditEventType
    entity_type: str
    entity_id: str
    previous_hash: str
    current_hash: str
    metadata: Dict[str, Any]
    user_id: Optional[str] = None

    def __post_init__(self):
        self.metadata = _jsonable(self.metadata or {})

    def calculate_hash(self) -> str:
        """SHA-256 over every field except current_hash"""
        hash_data = {
            'id': self.id,
            'sequence': self.sequence,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'previous_hash': self.previous_hash,
            'user_id': self.user_id,
            'metadata': self.metadata
        }
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        data = dict(data)
        data['event_type'] = AuditEventType(data['event_type'])
        return super().from_dict(data)


class AuditTrail:
    """Hash-chained audit trail"""

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events"):
        self.storage = storage
        self.table_name = table_name
        self._lock = threading.Lock()

    def _load_events(self) -> List[AuditEvent]:
        events = [AuditEvent.from_dict(data) for data in self.storage.load_all(self.table_name)]
        events.sort(key=lambda e: e.sequence)
        return events

    def _chain_head(self) -> Optional[Dict[str, Any]]:
        # Re-read every time so a rolled back write never becomes the chain head
        head = None
        for data in self.storage.load_all(self.table_name):
            if head is None or data['sequence'] > head['sequence']:
                head = data
        return head

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> AuditEvent:
        """
        Append an event to the chain.

        Args:
            event_type: Type of audit event
            entity_type: Kind of record affected (user, wallet, transaction, ...)
            entity_id: ID of the affected record
            metadata: Event specific details
            user_id: Acting user, if any

        Returns:
            The stored AuditEvent
        """
        with self._lock:
            head = self._chain_head()
            now = datetime.now(timezone.utc)
            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                sequence=(head['sequence'] + 1) if head else 1,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                previous_hash=head['current_hash'] if head else "",
                current_hash="",
                metadata=metadata or {},
                user_id=user_id
            )
            event.current_hash = event.calculate_hash()
            self.storage.save(self.table_name, event.id, event.to_dict())
            return event

    def get_events_for_entity(self, entity_type: str, entity_id: str,
                              limit: Optional[int] = None) -> List[AuditEvent]:
        """Events for one record, oldest first (the last `limit` if given)"""
        events = [
            AuditEvent.from_dict(data) for data in self.storage.find(
                self.table_name, {'entity_type': entity_type, 'entity_id': entity_id}
            )
        ]
        events.sort(key=lambda e: e.sequence)
        if limit:
            events = events[-limit:]
        return events

    def get_events_by_type(self, event_type: AuditEventType,
                           start_time: Optional[datetime] = None,
                           end_time: Optional[datetime] = None,
                           limit: Optional[int] = None) -> List[AuditEvent]:
        events = [e for e in self._load_events() if e.event_type == event_type]
        if start_time:
            events = [e for e in events if e.created_at >= start_time]
        if end_time:
            events = [e for e in events if e.created_at <= end_time]
        if limit:
            events = events[-limit:]
        return events

    def get_events_for_user(self, user_id: str, limit: Optional[int] = None) -> List[AuditEvent]:
        events = [e for e in self._load_events() if e.user_id == user_id]
        if limit:
            events = events[-limit:]
        return events

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Re-hash every event and walk the chain.

        Returns:
            {'valid', 'total_events', 'hash_errors', 'chain_breaks'}
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        events = self._load_events()
        result['total_events'] = len(events)

        previous_hash = ""
        for position, event in enumerate(events):
            if not event.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_hash': event.calculate_hash(),
                    'actual_hash': event.current_hash
                })
            if event.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': event.previous_hash
                })
            previous_hash = event.current_hash

        return result

    def count_events(self) -> int:
        return self.storage.count(self.table_name)
