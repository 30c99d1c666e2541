"""
Tests for KYC submission, document upload and staff review
"""

import pytest

from investnaija.config import get_config
from investnaija.errors import ConflictError, FeatureDisabledError, ValidationError
from investnaija.kyc import DocumentType
from investnaija.notifications import NotificationType
from investnaija.users import KYCStatus


class TestKYCSubmission:
    def test_submit_bvn(self, system, make_user):
        user = make_user()
        result = system.kyc_manager.submit(user.id, bvn="22212345678")

        assert result["status"] == "pending"
        assert result["bvn_provided"] is True
        assert result["nin_provided"] is False
        assert result["can_invest"] is False
        assert result["max_investment_limit"] == "50000"

    def test_requires_a_number(self, system, make_user):
        user = make_user()
        with pytest.raises(ValidationError, match="Either BVN or NIN is required"):
            system.kyc_manager.submit(user.id)
        with pytest.raises(ValidationError, match="BVN must be exactly 11 digits"):
            system.kyc_manager.submit(user.id, bvn="1234")
        with pytest.raises(ValidationError, match="NIN must be exactly 11 digits"):
            system.kyc_manager.submit(user.id, nin="abcdefghijk")

    def test_bvn_linked_to_another_account(self, system, make_user):
        first = make_user()
        second = make_user()
        system.kyc_manager.submit(first.id, bvn="22212345678")

        with pytest.raises(ConflictError, match="This BVN is already linked to another account"):
            system.kyc_manager.submit(second.id, bvn="22212345678")
        # Re-submitting your own number is fine
        system.kyc_manager.submit(first.id, bvn="22212345678", nin="12345678901")

    def test_already_verified(self, system, make_user):
        user = make_user(verified=True)
        with pytest.raises(ValidationError, match="KYC is already verified"):
            system.kyc_manager.submit(user.id, nin="12345678901")

    def test_disabled(self, system, make_user, monkeypatch):
        user = make_user()
        monkeypatch.setattr(get_config(), "enable_kyc", False)
        with pytest.raises(FeatureDisabledError, match="KYC verification is currently disabled"):
            system.kyc_manager.submit(user.id, bvn="22212345678")

    def test_verified_limit(self, system, make_user):
        user = make_user(verified=True)
        status = system.kyc_manager.status(user.id)
        assert status["can_invest"] is True
        assert status["max_investment_limit"] == "10000000"


class TestKYCDocuments:
    def test_upload(self, system, make_user):
        user = make_user()
        doc = system.kyc_manager.upload_document(user.id, "passport", " scan.jpg ")

        assert doc.document_type == DocumentType.PASSPORT
        assert doc.filename == "scan.jpg"
        assert doc.status == "pending_review"
        assert system.kyc_manager.status(user.id)["documents"][0]["type"] == "passport"

    def test_invalid_upload(self, system, make_user):
        user = make_user()
        with pytest.raises(ValidationError, match="Document type must be one of"):
            system.kyc_manager.upload_document(user.id, "selfie", "me.jpg")
        with pytest.raises(ValidationError, match="File name is required"):
            system.kyc_manager.upload_document(user.id, "passport", "  ")


class TestKYCReview:
    def test_approve(self, system, make_user):
        user = make_user()
        system.kyc_manager.submit(user.id, bvn="22212345678")
        system.kyc_manager.upload_document(user.id, "bvn_slip", "slip.pdf")

        public = system.kyc_manager.review(user.id, "verified", reviewer_id="admin-1")

        assert public["kyc_status"] == "verified"
        assert system.user_manager.get_user(user.id).kyc_status == KYCStatus.VERIFIED
        assert [d.status for d in system.kyc_manager.documents(user.id)] == ["approved"]
        inbox = system.notifications.get_notifications(user.id)
        assert any(n.notification_type == NotificationType.KYC for n in inbox)

    def test_reject(self, system, make_user):
        user = make_user()
        system.kyc_manager.upload_document(user.id, "nin_slip", "nin.pdf")
        system.kyc_manager.review(user.id, "rejected")
        assert [d.status for d in system.kyc_manager.documents(user.id)] == ["rejected"]

    def test_invalid_status(self, system, make_user):
        user = make_user()
        with pytest.raises(ValidationError, match="Invalid KYC status"):
            system.kyc_manager.review(user.id, "approved")
