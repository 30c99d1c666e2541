"""
Tests for user registration, login and token handling
"""

import pytest
from decimal import Decimal
from datetime import datetime, timedelta, timezone

import jwt

from investnaija.config import get_config
from investnaija.errors import (
    AuthenticationError, ConflictError, FeatureDisabledError, NotFoundError,
    PermissionDeniedError, ValidationError
)
from investnaija.storage import InMemoryStorage
from investnaija.audit import AuditTrail, AuditEventType
from investnaija.users import (
    Session, UserManager, UserRole, UserStatus, KYCStatus, normalize_phone, role_for_email
)


@pytest.fixture
def users():
    storage = InMemoryStorage()
    return UserManager(storage, AuditTrail(storage))


def register(users, email="ada@example.com", password="Password123", phone=None):
    return users.register(email, password, "Ada", "Obi", phone=phone)


class TestHelpers:
    def test_normalize_phone(self):
        assert normalize_phone("08031234567") == "+2348031234567"
        assert normalize_phone("+234 803 123 4567") == "+2348031234567"
        assert normalize_phone("2347031234567") == "+2347031234567"
        assert normalize_phone("0603123456") is None
        assert normalize_phone("") is None

    def test_role_for_email(self):
        assert role_for_email("boss@admin.investnaija.com") == UserRole.SUPER_ADMIN
        assert role_for_email("ops@InvestNaija.com") == UserRole.ADMIN
        assert role_for_email("ada@gmail.com") == UserRole.USER


class TestRegistration:
    def test_register(self, users):
        user = register(users, email="  Ada@Example.com ", phone="08031234567")

        assert user.email == "ada@example.com"
        assert user.phone == "+2348031234567"
        assert user.role == UserRole.USER
        assert user.kyc_status == KYCStatus.PENDING
        assert user.password_hash != "Password123"
        assert users.get_user(user.id).email == "ada@example.com"

    def test_public_view_has_no_secrets(self, users):
        public = register(users).to_public()
        assert "password_hash" not in public
        assert "password_salt" not in public
        assert public["bvn_provided"] is False

    def test_staff_role_from_email_domain(self, users):
        assert register(users, email="ops@investnaija.com").role == UserRole.ADMIN

    @pytest.mark.parametrize("password,message", [
        ("Pass1", "at least 8 characters"),
        ("password123", "uppercase"),
        ("PASSWORDONLY", "uppercase"),
    ])
    def test_weak_passwords(self, users, password, message):
        with pytest.raises(ValidationError, match=message):
            register(users, password=password)

    def test_invalid_inputs(self, users):
        with pytest.raises(ValidationError, match="valid email"):
            register(users, email="not-an-email")
        with pytest.raises(ValidationError, match="First name must be 2-50 letters"):
            users.register("x@example.com", "Password123", "A", "Obi")
        with pytest.raises(ValidationError, match="Nigerian phone number"):
            register(users, phone="12345")

    def test_duplicates(self, users):
        register(users, phone="08031234567")
        with pytest.raises(ConflictError, match="email already exists"):
            register(users)
        with pytest.raises(ConflictError, match="phone number already exists"):
            register(users, email="other@example.com", phone="+2348031234567")

    def test_signup_flag(self, users, monkeypatch):
        monkeypatch.setattr(get_config(), "enable_signup", False)
        with pytest.raises(FeatureDisabledError, match="Registration is currently disabled"):
            register(users)


class TestLogin:
    def test_login_issues_tokens(self, users):
        created = register(users)
        user, token, session = users.login("ada@example.com", "Password123")

        assert user.id == created.id
        assert user.last_login is not None
        assert users.resolve_token(token).id == created.id
        assert users.resolve_token(session).id == created.id

    def test_wrong_password(self, users):
        register(users)
        with pytest.raises(AuthenticationError, match="Invalid credentials"):
            users.authenticate("ada@example.com", "Wrong12345")
        with pytest.raises(AuthenticationError, match="Invalid credentials"):
            users.authenticate("nobody@example.com", "Password123")
        failed = users.audit_trail.get_events_by_type(AuditEventType.LOGIN_FAILED)
        assert len(failed) == 2

    def test_suspended_user_cannot_login(self, users):
        user = register(users)
        _, _, session = users.login("ada@example.com", "Password123")
        users.set_status(user.id, UserStatus.SUSPENDED)

        with pytest.raises(PermissionDeniedError, match="Account is suspended"):
            users.authenticate("ada@example.com", "Password123")
        # Suspension revokes every session
        with pytest.raises(PermissionDeniedError, match="Invalid or expired token"):
            users.resolve_token(session)

    def test_logout_revokes_session(self, users):
        register(users)
        _, _, session = users.login("ada@example.com", "Password123")
        assert users.revoke_session(session) is True
        with pytest.raises(PermissionDeniedError):
            users.resolve_token(session)

    def test_expired_and_forged_jwt(self, users):
        user = register(users)
        config = get_config()
        expired = jwt.encode(
            {"sub": user.id, "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
            config.jwt_secret, algorithm=config.jwt_algorithm
        )
        forged = jwt.encode({"sub": user.id}, "some-other-secret", algorithm="HS256")

        for token in (expired, forged, "not.a.jwt"):
            with pytest.raises(PermissionDeniedError, match="Invalid or expired token"):
                users.resolve_token(token)

    def test_unknown_session_token(self, users):
        with pytest.raises(PermissionDeniedError, match="Invalid or expired token"):
            users.resolve_token("no-such-session")

    def test_expired_session_is_dropped(self, users):
        user = register(users)
        token = users.create_session(user.id)
        assert users.resolve_session(token).user_id == user.id

        session = Session.from_dict(users.storage.load(users.sessions_table, token))
        session.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        users.storage.save(users.sessions_table, token, session.to_dict())

        assert users.resolve_session(token) is None
        assert not users.storage.exists(users.sessions_table, token)
        with pytest.raises(PermissionDeniedError):
            users.resolve_token(token)

    def test_change_password(self, users):
        user = register(users)
        _, _, session = users.login("ada@example.com", "Password123")

        with pytest.raises(AuthenticationError, match="Current password is incorrect"):
            users.change_password(user.id, "Wrong12345", "NewPassword1")

        users.change_password(user.id, "Password123", "NewPassword1")
        assert users.authenticate("ada@example.com", "NewPassword1").id == user.id
        with pytest.raises(PermissionDeniedError):
            users.resolve_token(session)


class TestLookup:
    def test_validate_recipient(self, users):
        user = register(users, phone="08031234567")
        assert users.validate_recipient("ada@example.com").id == user.id
        assert users.validate_recipient("08031234567").id == user.id

        with pytest.raises(ValidationError, match="valid email address or Nigerian phone"):
            users.validate_recipient("bob")
        with pytest.raises(NotFoundError, match="Recipient not found"):
            users.validate_recipient("bob@example.com")

    def test_can_receive_money(self, users):
        user = register(users)
        allowed, reason = users.can_receive_money(user, Decimal(get_config().unverified_receive_limit) + 1)
        assert not allowed
        assert "until their KYC is verified" in reason

        verified = users.set_kyc_status(user.id, KYCStatus.VERIFIED)
        assert users.can_receive_money(verified, Decimal(get_config().unverified_receive_limit) + 1) == (True, None)

    def test_search_and_display_name(self, users):
        user = register(users)
        assert [u.id for u in users.search("obi")] == [user.id]
        assert users.search("zzz") == []
        assert users.display_name(user) == "Ada O."

    def test_require_user(self, users):
        with pytest.raises(NotFoundError, match="User not found"):
            users.require_user("missing")
