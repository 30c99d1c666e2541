"""
Tests for one-time passcodes
"""

import pytest
from datetime import datetime, timedelta, timezone

from investnaija.errors import ProviderError, RateLimitError, ValidationError
from investnaija.otp import OTPRecord, OTPService, generate_code


class CapturingSMS:
    def __init__(self, succeed=True):
        self.succeed = succeed
        self.sent = []

    def send_text(self, phone, text):
        self.sent.append((phone, text))
        return self.succeed


@pytest.fixture
def otp(system, monkeypatch):
    monkeypatch.setattr("investnaija.otp.generate_code", lambda: "123456")
    return system.otp_service


class TestIdentifiers:
    def test_generate_code(self):
        code = generate_code()
        assert len(code) == 6 and code.isdigit()

    def test_resolve(self, otp):
        assert otp.resolve_identifier(phone="0803 123 4567") == ("+2348031234567", "sms")
        assert otp.resolve_identifier(email=" Ada@Example.com ") == ("ada@example.com", "email")
        with pytest.raises(ValidationError, match="Invalid Nigerian phone number format"):
            otp.resolve_identifier(phone="555-0100")
        with pytest.raises(ValidationError, match="Invalid email address"):
            otp.resolve_identifier(email="not-an-email")
        with pytest.raises(ValidationError, match="Phone number or email is required"):
            otp.resolve_identifier()


class TestSendAndVerify:
    def test_round_trip(self, otp):
        sent = otp.send(phone="08031234567")
        assert sent == {"message": "Verification code sent to your phone", "expires_in": 600}

        result = otp.verify("123456", phone="+2348031234567")
        assert result == {"message": "Verification successful", "verified": True}
        assert otp.is_verified("+2348031234567")
        assert otp.status(phone="08031234567")["verified"] is True

    def test_code_is_not_stored_in_clear(self, system, otp):
        otp.send(email="ada@example.com")
        stored = system.storage.load(otp.table_name, "ada@example.com")
        assert "123456" not in str(stored)

    def test_wrong_code_counts_attempts(self, otp):
        otp.send(email="ada@example.com")
        for _ in range(3):
            with pytest.raises(ValidationError, match="Invalid verification code"):
                otp.verify("000000", email="ada@example.com")

        assert otp.status(email="ada@example.com")["attempts_remaining"] == 0
        with pytest.raises(RateLimitError, match="Too many failed attempts"):
            otp.verify("123456", email="ada@example.com")

    def test_expired_code(self, system, otp):
        otp.send(email="ada@example.com")
        record = OTPRecord.from_dict(system.storage.load(otp.table_name, "ada@example.com"))
        record.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        system.storage.save(otp.table_name, record.id, record.to_dict())

        assert otp.status(email="ada@example.com")["expired"] is True
        with pytest.raises(ValidationError, match="expired"):
            otp.verify("123456", email="ada@example.com")
        # An expired code is discarded
        assert otp.status(email="ada@example.com")["exists"] is False

    def test_missing_code(self, otp):
        with pytest.raises(ValidationError, match="Verification code is required"):
            otp.verify("", email="ada@example.com")
        with pytest.raises(ValidationError, match="No verification code found"):
            otp.verify("123456", email="ada@example.com")

    def test_hourly_request_limit(self, otp):
        for _ in range(3):
            otp.send(phone="08031234567")
        with pytest.raises(RateLimitError, match="Too many OTP requests"):
            otp.send(phone="08031234567")
        # Other identifiers are unaffected
        otp.send(phone="08051234567")


class TestDelivery:
    def test_sms_provider(self, system, monkeypatch):
        monkeypatch.setattr("investnaija.otp.generate_code", lambda: "654321")
        sms = CapturingSMS()
        service = OTPService(system.storage, system.audit_trail, sms_provider=sms)

        service.send(phone="08031234567")
        phone, text = sms.sent[0]
        assert phone == "+2348031234567"
        assert "654321" in text

    def test_delivery_failure(self, system):
        service = OTPService(system.storage, system.audit_trail, sms_provider=CapturingSMS(succeed=False))
        with pytest.raises(ProviderError, match="Failed to send verification code"):
            service.send(phone="08031234567")
        assert service.status(phone="08031234567")["exists"] is False
