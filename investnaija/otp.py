"""
One-time passcodes for phone and email verification.

Codes are stored hashed, expire after otp_expiry_minutes and each
identifier may request at most otp_max_requests_per_hour codes in a
rolling hour.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
import hashlib
import hmac
import secrets

from .audit import AuditTrail, AuditEventType
from .config import get_config
from .errors import ProviderError, RateLimitError, ValidationError
from .logging_config import get_logger, log_action
from .notifications import TermiiSMSProvider
from .storage import StorageInterface, StorageRecord
from .users import is_valid_email, normalize_phone

logger = get_logger("investnaija.otp")


def generate_code() -> str:
    return f"{secrets.randbelow(900000) + 100000}"


def _hash_code(identifier: str, code: str) -> str:
    return hashlib.sha256(f"{identifier}:{code}".encode("utf-8")).hexdigest()


@dataclass
class OTPRecord(StorageRecord):
    """Latest code issued to an identifier; id is the identifier"""
    channel: str
    purpose: str
    code_hash: str
    expires_at: datetime
    verified: bool = False
    failed_attempts: int = 0
    requested_at: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OTPRecord':
        data = dict(data)
        data['expires_at'] = datetime.fromisoformat(data['expires_at'])
        return super().from_dict(data)


class OTPService:
    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 sms_provider: Optional[TermiiSMSProvider] = None):
        self.storage = storage
        self.audit_trail = audit_trail
        self.sms_provider = sms_provider
        self.table_name = "otp_codes"

    def resolve_identifier(self, phone: Optional[str] = None,
                           email: Optional[str] = None) -> Tuple[str, str]:
        """Return (identifier, channel) for a phone number or email"""
        if phone:
            normalized = normalize_phone(phone)
            if not normalized:
                raise ValidationError("Invalid Nigerian phone number format")
            return normalized, "sms"
        if email:
            email = email.strip().lower()
            if not is_valid_email(email):
                raise ValidationError("Invalid email address")
            return email, "email"
        raise ValidationError("Phone number or email is required")

    def send(self, phone: Optional[str] = None, email: Optional[str] = None,
             purpose: str = "registration") -> Dict[str, Any]:
        """
        Issue a fresh code, replacing any earlier one.

        Raises:
            RateLimitError: Too many requests in the last hour
            ProviderError: The SMS could not be delivered
        """
        config = get_config()
        identifier, channel = self.resolve_identifier(phone, email)
        now = datetime.now(timezone.utc)

        existing = self._load(identifier)
        window_start = now - timedelta(hours=1)
        recent = [
            stamp for stamp in (existing.requested_at if existing else [])
            if datetime.fromisoformat(stamp) > window_start
        ]
        if len(recent) >= config.otp_max_requests_per_hour:
            raise RateLimitError("Too many OTP requests. Please try again in 1 hour.")

        code = generate_code()
        record = OTPRecord(
            id=identifier,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            channel=channel,
            purpose=purpose,
            code_hash=_hash_code(identifier, code),
            expires_at=now + timedelta(minutes=config.otp_expiry_minutes),
            requested_at=recent + [now.isoformat()]
        )

        if not self._deliver(identifier, channel, code, config.otp_expiry_minutes):
            raise ProviderError("Failed to send verification code. Please try again.")
        self.storage.save(self.table_name, identifier, record.to_dict())

        self.audit_trail.log_event(AuditEventType.OTP_SENT, "otp", identifier,
                                   {"channel": channel, "purpose": purpose})
        return {
            "message": f"Verification code sent to {'your phone' if channel == 'sms' else 'your email'}",
            "expires_in": config.otp_expiry_minutes * 60,
        }

    def verify(self, code: str, phone: Optional[str] = None,
               email: Optional[str] = None) -> Dict[str, Any]:
        if not code:
            raise ValidationError("Verification code is required")
        config = get_config()
        identifier, _ = self.resolve_identifier(phone, email)
        record = self._load(identifier)
        if not record:
            raise ValidationError("No verification code found. Please request a new one.")

        now = datetime.now(timezone.utc)
        if now > record.expires_at:
            self.storage.delete(self.table_name, identifier)
            raise ValidationError("Verification code has expired. Please request a new one.")
        if record.failed_attempts >= config.otp_max_attempts:
            raise RateLimitError("Too many failed attempts. Please request a new code.")

        if not hmac.compare_digest(record.code_hash, _hash_code(identifier, code.strip())):
            record.failed_attempts += 1
            record.updated_at = now
            self.storage.save(self.table_name, identifier, record.to_dict())
            log_action(logger, "warning", "OTP verification failed", action="otp.verify",
                       resource=identifier, extra={"failed_attempts": record.failed_attempts})
            raise ValidationError("Invalid verification code. Please check and try again.")

        record.verified = True
        record.updated_at = now
        self.storage.save(self.table_name, identifier, record.to_dict())
        self.audit_trail.log_event(AuditEventType.OTP_VERIFIED, "otp", identifier,
                                   {"purpose": record.purpose})
        return {"message": "Verification successful", "verified": True}

    def status(self, phone: Optional[str] = None, email: Optional[str] = None) -> Dict[str, Any]:
        identifier, _ = self.resolve_identifier(phone, email)
        record = self._load(identifier)
        if not record:
            return {"exists": False, "verified": False, "message": "No verification record found"}

        expired = datetime.now(timezone.utc) > record.expires_at
        return {
            "exists": True,
            "verified": record.verified and not expired,
            "expired": expired,
            "attempts_remaining": max(0, get_config().otp_max_attempts - record.failed_attempts),
            "expires_at": record.expires_at.isoformat(),
        }

    def is_verified(self, identifier: str) -> bool:
        record = self._load(identifier)
        return bool(record and record.verified and datetime.now(timezone.utc) <= record.expires_at)

    def _deliver(self, identifier: str, channel: str, code: str, expiry_minutes: int) -> bool:
        if channel == "sms" and self.sms_provider:
            text = (f"Your InvestNaija verification code is: {code}. "
                    f"Valid for {expiry_minutes} minutes. Do not share this code.")
            return self.sms_provider.send_text(identifier, text)

        # No gateway configured for this channel
        log_action(logger, "info", f"OTP issued over {channel} (not delivered, no provider)",
                   action="otp.send", resource=identifier)
        return True

    def _load(self, identifier: str) -> Optional[OTPRecord]:
        data = self.storage.load(self.table_name, identifier)
        return OTPRecord.from_dict(data) if data else None
