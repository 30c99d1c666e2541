"""
Notification Engine Module

Delivers user alerts for wallet activity, investments, KYC decisions and
security events. Every notification is stored for the in-app inbox; the
other channels are delivered through pluggable providers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

import requests

from .audit import AuditTrail, AuditEventType
from .currency import format_naira
from .errors import NotFoundError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord

logger = get_logger("investnaija.notifications")


class NotificationChannel(Enum):
    IN_APP = "in_app"
    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"


class NotificationPriority(Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationType(Enum):
    TRANSACTION = "transaction"
    INVESTMENT = "investment"
    KYC = "kyc"
    SECURITY = "security"
    PROMO = "promo"
    PAYMENT = "payment"


@dataclass
class Notification(StorageRecord):
    """Stored notification, shown in the user's inbox"""
    user_id: str
    notification_type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    channels: List[str] = field(default_factory=list)
    delivered: List[str] = field(default_factory=list)
    read: bool = False
    read_at: Optional[datetime] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Notification':
        data = dict(data)
        data['notification_type'] = NotificationType(data['notification_type'])
        data['priority'] = NotificationPriority(data['priority'])
        if data.get('read_at'):
            data['read_at'] = datetime.fromisoformat(data['read_at'])
        return super().from_dict(data)

    def to_api(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.notification_type.value,
            "title": self.title,
            "message": self.message,
            "priority": self.priority.value,
            "read": self.read,
            "data": self.data,
            "created_at": self.created_at.isoformat(),
        }


class ChannelProvider(ABC):
    """Delivers a notification over one channel"""

    @abstractmethod
    def send(self, notification: Notification, address: Optional[str]) -> bool:
        """Return True if the provider accepted the message"""
        pass


class LogChannelProvider(ChannelProvider):
    """Writes the notification to the application log"""

    def __init__(self, channel: NotificationChannel):
        self.channel = channel

    def send(self, notification: Notification, address: Optional[str]) -> bool:
        log_action(
            logger, "info", f"{self.channel.value} notification: {notification.title}",
            user_id=notification.user_id, action="notification.deliver",
            resource=notification.id, extra={"address": address}
        )
        return True


class TermiiSMSProvider(ChannelProvider):
    """SMS through the Termii messaging API"""

    def __init__(self, api_key: str, sender_id: str, base_url: str, timeout: float = 10.0):
        self.api_key = api_key
        self.sender_id = sender_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def send_text(self, phone: str, text: str) -> bool:
        try:
            response = requests.post(
                f"{self.base_url}/sms/send",
                json={
                    "to": phone,
                    "from": self.sender_id,
                    "sms": text,
                    "type": "plain",
                    "channel": "generic",
                    "api_key": self.api_key,
                },
                timeout=self.timeout,
            )
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Termii SMS to {phone} failed: {e}")
            return False

        if response.ok and payload.get("message_id"):
            return True
        logger.error(f"Termii rejected SMS to {phone}: {payload}")
        return False

    def send(self, notification: Notification, address: Optional[str]) -> bool:
        if not address:
            return False
        return self.send_text(address, f"{notification.title}: {notification.message}")


class NotificationEngine:
    """Creates, delivers and manages user notifications"""

    DEFAULT_CHANNELS = [NotificationChannel.IN_APP, NotificationChannel.PUSH]

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "notifications"
        self.providers: Dict[NotificationChannel, ChannelProvider] = {
            channel: LogChannelProvider(channel)
            for channel in NotificationChannel if channel != NotificationChannel.IN_APP
        }

    def register_provider(self, channel: NotificationChannel, provider: ChannelProvider) -> None:
        self.providers[channel] = provider

    def send_notification(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        channels: Optional[List[NotificationChannel]] = None,
        data: Optional[Dict[str, Any]] = None,
        address_book: Optional[Dict[NotificationChannel, str]] = None
    ) -> Notification:
        """
        Store a notification and push it through each requested channel.
        Provider failures are recorded, never raised to the caller.
        """
        channels = channels or self.DEFAULT_CHANNELS
        address_book = address_book or {}
        now = datetime.now(timezone.utc)
        notification = Notification(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            priority=priority,
            channels=[c.value for c in channels],
            data=data or {}
        )

        for channel in channels:
            if channel == NotificationChannel.IN_APP:
                notification.delivered.append(channel.value)
                continue
            provider = self.providers.get(channel)
            if provider and provider.send(notification, address_book.get(channel)):
                notification.delivered.append(channel.value)

        self._save(notification)
        self.audit_trail.log_event(
            AuditEventType.NOTIFICATION_SENT,
            "notification",
            notification.id,
            {"type": notification_type.value, "delivered": notification.delivered},
            user_id=user_id
        )
        return notification

    # Convenience notifiers

    def notify_transaction(self, user_id: str, transaction_type: str, amount, status: str,
                           data: Optional[Dict[str, Any]] = None) -> Notification:
        label = transaction_type.replace("_", " ")
        return self.send_notification(
            user_id, NotificationType.TRANSACTION, "Transaction Update",
            f"Your {label} of {format_naira(amount)} is {status}",
            data=data
        )

    def notify_investment(self, user_id: str, amount, product_name: str,
                          data: Optional[Dict[str, Any]] = None) -> Notification:
        return self.send_notification(
            user_id, NotificationType.INVESTMENT, "Investment Successful",
            f"Your investment of {format_naira(amount)} in {product_name} has been processed",
            data=data
        )

    def notify_kyc_update(self, user_id: str, status: str) -> Notification:
        return self.send_notification(
            user_id, NotificationType.KYC, "KYC Status Update",
            f"Your KYC verification status has been updated to: {status}",
            priority=NotificationPriority.HIGH
        )

    def notify_security_alert(self, user_id: str, alert_type: str, details: str) -> Notification:
        return self.send_notification(
            user_id, NotificationType.SECURITY, "Security Alert",
            f"{alert_type}: {details}",
            priority=NotificationPriority.URGENT,
            channels=[NotificationChannel.IN_APP, NotificationChannel.PUSH, NotificationChannel.EMAIL]
        )

    def notify_payment_received(self, user_id: str, amount, from_name: str,
                                note: Optional[str] = None) -> Notification:
        suffix = f": {note}" if note else ""
        return self.send_notification(
            user_id, NotificationType.PAYMENT, "Payment Received",
            f"You received {format_naira(amount)} from {from_name}{suffix}",
            priority=NotificationPriority.HIGH
        )

    # Inbox

    def get_notifications(self, user_id: str, unread_only: bool = False,
                          limit: int = 20) -> List[Notification]:
        notifications = self._for_user(user_id)
        if unread_only:
            notifications = [n for n in notifications if not n.read]
        return notifications[:limit]

    def get_unread_count(self, user_id: str) -> int:
        return self.storage.count(self.table_name, {"user_id": user_id, "read": False})

    def get_total_count(self, user_id: str) -> int:
        return self.storage.count(self.table_name, {"user_id": user_id})

    def mark_as_read(self, user_id: str, notification_id: str) -> Notification:
        notification = self._require(user_id, notification_id)
        if not notification.read:
            notification.read = True
            notification.read_at = datetime.now(timezone.utc)
            notification.updated_at = notification.read_at
            self._save(notification)
        return notification

    def mark_all_as_read(self, user_id: str) -> int:
        updated = 0
        now = datetime.now(timezone.utc)
        for notification in self._for_user(user_id):
            if not notification.read:
                notification.read = True
                notification.read_at = now
                notification.updated_at = now
                self._save(notification)
                updated += 1
        return updated

    def delete(self, user_id: str, notification_id: str) -> None:
        self._require(user_id, notification_id)
        self.storage.delete(self.table_name, notification_id)

    def _require(self, user_id: str, notification_id: str) -> Notification:
        data = self.storage.load(self.table_name, notification_id)
        # Another user's notification is reported as missing
        if not data or data.get("user_id") != user_id:
            raise NotFoundError("Notification not found")
        return Notification.from_dict(data)

    def _for_user(self, user_id: str) -> List[Notification]:
        notifications = [
            Notification.from_dict(d)
            for d in self.storage.find(self.table_name, {"user_id": user_id})
        ]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications

    def _save(self, notification: Notification) -> None:
        self.storage.save(self.table_name, notification.id, notification.to_dict())
