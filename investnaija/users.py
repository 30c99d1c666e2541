"""
User Accounts Module

Registration, password login, sessions and JWTs, plus the recipient
lookup used by peer-to-peer transfers. Staff roles are granted by email
domain, never by request payload.
"""

import hashlib
import hmac
import re
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import jwt

from .audit import AuditTrail, AuditEventType
from .config import get_config
from .errors import (
    AuthenticationError, ConflictError, FeatureDisabledError, NotFoundError,
    PermissionDeniedError, ValidationError
)
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord

logger = get_logger("investnaija.users")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NIGERIAN_PHONE_PATTERN = re.compile(r"^(\+234|234|0)?([789][01]\d{8})$")
NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z\s'\-]{1,49}$")

SUPER_ADMIN_DOMAIN = "@admin.investnaija.com"
ADMIN_DOMAIN = "@investnaija.com"


class UserRole(Enum):
    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class UserStatus(Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class KYCStatus(Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


def normalize_phone(phone: str) -> Optional[str]:
    """
    Normalise a Nigerian mobile number to +234XXXXXXXXXX.
    Returns None when the number is not a valid Nigerian mobile.
    """
    cleaned = re.sub(r"[\s\-()]", "", phone or "")
    match = NIGERIAN_PHONE_PATTERN.match(cleaned)
    if not match:
        return None
    return f"+234{match.group(2)}"


def is_valid_email(email: str) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email))


def role_for_email(email: str) -> UserRole:
    email = email.lower()
    if email.endswith(SUPER_ADMIN_DOMAIN):
        return UserRole.SUPER_ADMIN
    if email.endswith(ADMIN_DOMAIN):
        return UserRole.ADMIN
    return UserRole.USER


def validate_password(password: str, min_length: int = 8) -> None:
    if not password or len(password) < min_length:
        raise ValidationError(f"Password must be at least {min_length} characters")
    if not re.search(r"[a-z]", password) or not re.search(r"[A-Z]", password) \
            or not re.search(r"\d", password):
        raise ValidationError(
            "Password must contain at least one uppercase letter, one lowercase letter and one number"
        )


def validate_name(value: str, label: str) -> str:
    value = (value or "").strip()
    if not NAME_PATTERN.match(value):
        raise ValidationError(f"{label} must be 2-50 letters")
    return value


@dataclass
class User(StorageRecord):
    email: str
    first_name: str
    last_name: str
    password_hash: str
    password_salt: str
    role: UserRole = UserRole.USER
    status: UserStatus = UserStatus.ACTIVE
    kyc_status: KYCStatus = KYCStatus.PENDING
    phone: Optional[str] = None
    bvn: Optional[str] = None
    nin: Optional[str] = None
    last_login: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_verified(self) -> bool:
        return self.kyc_status == KYCStatus.VERIFIED

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.SUPER_ADMIN)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        data = dict(data)
        data['role'] = UserRole(data['role'])
        data['status'] = UserStatus(data['status'])
        data['kyc_status'] = KYCStatus(data['kyc_status'])
        if data.get('last_login'):
            data['last_login'] = datetime.fromisoformat(data['last_login'])
        return super().from_dict(data)

    def to_public(self) -> Dict[str, Any]:
        """User as returned over the API, without secrets or full BVN/NIN"""
        return {
            "id": self.id,
            "email": self.email,
            "phone": self.phone,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role.value,
            "status": self.status.value,
            "kyc_status": self.kyc_status.value,
            "bvn_provided": bool(self.bvn),
            "nin_provided": bool(self.nin),
            "created_at": self.created_at.isoformat(),
            "last_login": self.last_login.isoformat() if self.last_login else None,
        }


@dataclass
class Session(StorageRecord):
    user_id: str
    expires_at: datetime

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Session':
        data = dict(data)
        data['expires_at'] = datetime.fromisoformat(data['expires_at'])
        return super().from_dict(data)


class UserManager:
    """User registry, credentials and token handling"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "users"
        self.sessions_table = "sessions"

    # Registration and credentials

    def register(self, email: str, password: str, first_name: str, last_name: str,
                 phone: Optional[str] = None) -> User:
        """
        Create a user account.

        Raises:
            ValidationError: On malformed input
            ConflictError: If the email or phone is already registered
        """
        config = get_config()
        if not config.enable_signup:
            raise FeatureDisabledError("Registration is currently disabled")
        email = (email or "").strip().lower()
        if not is_valid_email(email):
            raise ValidationError("Please provide a valid email address")
        validate_password(password, config.password_min_length)
        first_name = validate_name(first_name, "First name")
        last_name = validate_name(last_name, "Last name")

        normalized_phone = None
        if phone:
            normalized_phone = normalize_phone(phone)
            if not normalized_phone:
                raise ValidationError("Please provide a valid Nigerian phone number")

        if self.find_by_email(email):
            raise ConflictError("User with this email already exists")
        if normalized_phone and self.find_by_phone(normalized_phone):
            raise ConflictError("User with this phone number already exists")

        salt = secrets.token_hex(16)
        now = datetime.now(timezone.utc)
        user = User(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            email=email,
            first_name=first_name,
            last_name=last_name,
            password_hash=self._hash_password(password, salt),
            password_salt=salt,
            role=role_for_email(email),
            phone=normalized_phone
        )
        self.save_user(user)

        self.audit_trail.log_event(
            AuditEventType.USER_REGISTERED,
            "user",
            user.id,
            {"email": email, "role": user.role.value},
            user_id=user.id
        )
        log_action(logger, "info", "User registered", user_id=user.id,
                   action="user.register", resource=user.id)
        return user

    def authenticate(self, email: str, password: str) -> User:
        """
        Check credentials and stamp last_login.

        Raises:
            AuthenticationError: Unknown email or wrong password
            PermissionDeniedError: Account is suspended
        """
        user = self.find_by_email((email or "").strip().lower())
        if not user or not self._verify_password(user, password or ""):
            self.audit_trail.log_event(
                AuditEventType.LOGIN_FAILED, "user", user.id if user else "unknown",
                {"email": email}
            )
            log_action(logger, "warning", "Login failed", action="user.login_failed",
                       extra={"email": email})
            raise AuthenticationError("Invalid credentials")

        if not user.is_active:
            raise PermissionDeniedError("Account is suspended")

        user.last_login = datetime.now(timezone.utc)
        user.updated_at = user.last_login
        self.save_user(user)

        self.audit_trail.log_event(AuditEventType.LOGIN_SUCCESS, "user", user.id, {}, user_id=user.id)
        log_action(logger, "info", "User logged in", user_id=user.id, action="user.login")
        return user

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        user = self.require_user(user_id)
        if not self._verify_password(user, current_password):
            raise AuthenticationError("Current password is incorrect")
        validate_password(new_password, get_config().password_min_length)
        user.password_salt = secrets.token_hex(16)
        user.password_hash = self._hash_password(new_password, user.password_salt)
        user.updated_at = datetime.now(timezone.utc)
        self.save_user(user)
        self.revoke_all_sessions(user_id)

    # Sessions and tokens

    def create_session(self, user_id: str) -> str:
        now = datetime.now(timezone.utc)
        token = str(uuid.uuid4())
        session = Session(
            id=token,
            created_at=now,
            updated_at=now,
            user_id=user_id,
            expires_at=now + timedelta(days=get_config().session_expiry_days)
        )
        self.storage.save(self.sessions_table, token, session.to_dict())
        return token

    def revoke_session(self, token: str) -> bool:
        revoked = self.storage.delete(self.sessions_table, token)
        if revoked:
            self.audit_trail.log_event(AuditEventType.LOGOUT, "session", token[:8], {})
        return revoked

    def revoke_all_sessions(self, user_id: str) -> int:
        sessions = self.storage.find(self.sessions_table, {"user_id": user_id})
        for data in sessions:
            self.storage.delete(self.sessions_table, data["id"])
        return len(sessions)

    def issue_jwt(self, user: User) -> str:
        config = get_config()
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "email": user.email,
            "role": user.role.value,
            "iat": now,
            "exp": now + timedelta(days=config.jwt_expiry_days),
        }
        return jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)

    def login(self, email: str, password: str) -> Tuple[User, str, str]:
        """Authenticate and hand out (user, jwt, session token)"""
        user = self.authenticate(email, password)
        return user, self.issue_jwt(user), self.create_session(user.id)

    def resolve_session(self, token: str) -> Optional[Session]:
        """Live session for a token; expired sessions are dropped"""
        data = self.storage.load(self.sessions_table, token)
        if not data:
            return None
        session = Session.from_dict(data)
        if session.expires_at <= datetime.now(timezone.utc):
            self.storage.delete(self.sessions_table, token)
            return None
        return session

    def resolve_token(self, token: str) -> User:
        """
        Resolve a bearer token to an active user. Tokens containing a dot
        are JWTs, anything else is a session token.

        Raises:
            PermissionDeniedError: Invalid, expired or revoked token, or a
                suspended/deleted user
        """
        if "." in token:
            config = get_config()
            try:
                payload = jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
            except jwt.ExpiredSignatureError:
                raise PermissionDeniedError("Invalid or expired token")
            except jwt.InvalidTokenError:
                raise PermissionDeniedError("Invalid or expired token")
            user_id = payload.get("sub")
        else:
            session = self.resolve_session(token)
            if not session:
                raise PermissionDeniedError("Invalid or expired token")
            user_id = session.user_id

        user = self.get_user(user_id) if user_id else None
        if not user:
            raise PermissionDeniedError("Invalid or expired token")
        if not user.is_active:
            raise PermissionDeniedError("Account is suspended")
        return user

    # Lookup

    def get_user(self, user_id: str) -> Optional[User]:
        data = self.storage.load(self.table_name, user_id)
        return User.from_dict(data) if data else None

    def require_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def find_by_email(self, email: str) -> Optional[User]:
        data = self.storage.find_one(self.table_name, {"email": (email or "").strip().lower()})
        return User.from_dict(data) if data else None

    def find_by_phone(self, phone: str) -> Optional[User]:
        normalized = normalize_phone(phone)
        if not normalized:
            return None
        data = self.storage.find_one(self.table_name, {"phone": normalized})
        return User.from_dict(data) if data else None

    def find_by_identifier(self, identifier: str) -> Optional[User]:
        """Look a user up by email address or Nigerian phone number"""
        identifier = (identifier or "").strip()
        if "@" in identifier:
            return self.find_by_email(identifier)
        return self.find_by_phone(identifier)

    def find_by_field(self, field_name: str, value: str) -> Optional[User]:
        data = self.storage.find_one(self.table_name, {field_name: value})
        return User.from_dict(data) if data else None

    def list_users(self) -> List[User]:
        users = [User.from_dict(d) for d in self.storage.load_all(self.table_name)]
        users.sort(key=lambda u: u.created_at, reverse=True)
        return users

    def search(self, query: str) -> List[User]:
        """Case-insensitive match on first name, last name or email"""
        needle = (query or "").strip().lower()
        if not needle:
            return self.list_users()
        return [
            u for u in self.list_users()
            if needle in u.first_name.lower()
            or needle in u.last_name.lower()
            or needle in u.email
            or needle in u.full_name.lower()
        ]

    def display_name(self, user: User) -> str:
        if user.first_name and user.last_name:
            return f"{user.first_name} {user.last_name[0]}."
        return user.email.split("@")[0]

    # Recipient checks for transfers

    def validate_recipient(self, identifier: str) -> User:
        """
        Resolve and check a transfer recipient.

        Raises:
            ValidationError: Identifier is neither an email nor a Nigerian phone
            NotFoundError: No such user
            ValidationError: Recipient is suspended
        """
        identifier = (identifier or "").strip()
        if not is_valid_email(identifier) and not normalize_phone(identifier):
            raise ValidationError("Please enter a valid email address or Nigerian phone number")

        recipient = self.find_by_identifier(identifier)
        if not recipient:
            raise NotFoundError("Recipient not found. Please check the email or phone number.")
        if not recipient.is_active:
            raise ValidationError("Recipient account is not active")
        return recipient

    def can_receive_money(self, recipient: User, amount: Decimal) -> Tuple[bool, Optional[str]]:
        limit = Decimal(get_config().unverified_receive_limit)
        if not recipient.is_verified and amount > limit:
            return False, (
                f"Recipient can only receive up to ₦{limit:,.0f} until their KYC is verified"
            )
        return True, None

    # Persistence and admin updates

    def save_user(self, user: User) -> None:
        self.storage.save(self.table_name, user.id, user.to_dict())

    def set_status(self, user_id: str, status: UserStatus, actor_id: Optional[str] = None) -> User:
        user = self.require_user(user_id)
        previous = user.status
        user.status = status
        user.updated_at = datetime.now(timezone.utc)
        self.save_user(user)
        if status == UserStatus.SUSPENDED:
            self.revoke_all_sessions(user_id)

        self.audit_trail.log_event(
            AuditEventType.USER_STATUS_CHANGED, "user", user_id,
            {"from": previous.value, "to": status.value}, user_id=actor_id
        )
        return user

    def set_kyc_status(self, user_id: str, status: KYCStatus, actor_id: Optional[str] = None) -> User:
        user = self.require_user(user_id)
        previous = user.kyc_status
        user.kyc_status = status
        user.updated_at = datetime.now(timezone.utc)
        self.save_user(user)

        self.audit_trail.log_event(
            AuditEventType.KYC_STATUS_CHANGED, "user", user_id,
            {"from": previous.value, "to": status.value}, user_id=actor_id
        )
        return user

    def _hash_password(self, password: str, salt: str) -> str:
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()

    def _verify_password(self, user: User, password: str) -> bool:
        expected = self._hash_password(password, user.password_salt)
        return hmac.compare_digest(expected, user.password_hash)
