"""
KYC Module

Identity verification: users submit their BVN and/or NIN, upload
supporting documents, and staff approve or reject. Until verified a user
is held to the lower investment and wallet limits.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
import re
import uuid

from .audit import AuditTrail, AuditEventType
from .config import get_config
from .errors import ConflictError, FeatureDisabledError, ValidationError
from .logging_config import get_logger, log_action
from .notifications import NotificationEngine
from .storage import StorageInterface, StorageRecord
from .users import KYCStatus, UserManager

logger = get_logger("investnaija.kyc")

ELEVEN_DIGITS = re.compile(r"^\d{11}$")


class DocumentType(Enum):
    BVN_SLIP = "bvn_slip"
    NIN_SLIP = "nin_slip"
    PASSPORT = "passport"
    DRIVERS_LICENSE = "drivers_license"
    VOTERS_CARD = "voters_card"
    UTILITY_BILL = "utility_bill"


@dataclass
class KYCDocument(StorageRecord):
    user_id: str
    document_type: DocumentType
    filename: str
    status: str = "pending_review"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'KYCDocument':
        data = dict(data)
        data['document_type'] = DocumentType(data['document_type'])
        return super().from_dict(data)


class KYCManager:
    def __init__(self, storage: StorageInterface, user_manager: UserManager,
                 notifications: NotificationEngine, audit_trail: AuditTrail):
        self.storage = storage
        self.user_manager = user_manager
        self.notifications = notifications
        self.audit_trail = audit_trail
        self.documents_table = "kyc_documents"

    def submit(self, user_id: str, bvn: Optional[str] = None, nin: Optional[str] = None) -> Dict[str, Any]:
        """
        Attach BVN and/or NIN to the user and queue them for review.

        Raises:
            ValidationError: Neither number given, or a number is not 11 digits
            ConflictError: The number is linked to another account
        """
        if not get_config().enable_kyc:
            raise FeatureDisabledError("KYC verification is currently disabled")
        bvn = (bvn or "").strip() or None
        nin = (nin or "").strip() or None
        if not bvn and not nin:
            raise ValidationError("Either BVN or NIN is required")
        if bvn and not ELEVEN_DIGITS.match(bvn):
            raise ValidationError("BVN must be exactly 11 digits")
        if nin and not ELEVEN_DIGITS.match(nin):
            raise ValidationError("NIN must be exactly 11 digits")

        user = self.user_manager.require_user(user_id)
        for field_name, value in (("bvn", bvn), ("nin", nin)):
            if value:
                owner = self.user_manager.find_by_field(field_name, value)
                if owner and owner.id != user_id:
                    raise ConflictError(f"This {field_name.upper()} is already linked to another account")

        if user.is_verified:
            raise ValidationError("KYC is already verified")

        if bvn:
            user.bvn = bvn
        if nin:
            user.nin = nin
        user.kyc_status = KYCStatus.PENDING
        user.updated_at = datetime.now(timezone.utc)
        self.user_manager.save_user(user)

        self.audit_trail.log_event(
            AuditEventType.KYC_SUBMITTED, "user", user_id,
            {"bvn_provided": bool(user.bvn), "nin_provided": bool(user.nin)},
            user_id=user_id
        )
        log_action(logger, "info", "KYC submitted", user_id=user_id, action="kyc.submit")
        return self.status(user_id)

    def status(self, user_id: str) -> Dict[str, Any]:
        config = get_config()
        user = self.user_manager.require_user(user_id)
        limit = config.max_investment_amount if user.is_verified else config.kyc_investment_threshold
        return {
            "status": user.kyc_status.value,
            "bvn_provided": bool(user.bvn),
            "nin_provided": bool(user.nin),
            "can_invest": user.is_verified,
            "max_investment_limit": str(Decimal(limit)),
            "documents": [
                {"id": d.id, "type": d.document_type.value, "status": d.status}
                for d in self.documents(user_id)
            ],
        }

    def upload_document(self, user_id: str, document_type: str, filename: str) -> KYCDocument:
        try:
            doc_type = DocumentType(document_type)
        except ValueError:
            raise ValidationError(
                "Document type must be one of: " + ", ".join(d.value for d in DocumentType)
            )
        if not (filename or "").strip():
            raise ValidationError("File name is required")
        self.user_manager.require_user(user_id)

        now = datetime.now(timezone.utc)
        document = KYCDocument(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            document_type=doc_type,
            filename=filename.strip()
        )
        self.storage.save(self.documents_table, document.id, document.to_dict())
        self.audit_trail.log_event(
            AuditEventType.KYC_DOCUMENT_UPLOADED, "kyc_document", document.id,
            {"type": doc_type.value}, user_id=user_id
        )
        return document

    def documents(self, user_id: str) -> List[KYCDocument]:
        return [
            KYCDocument.from_dict(d)
            for d in self.storage.find(self.documents_table, {"user_id": user_id})
        ]

    def review(self, user_id: str, status: str, reviewer_id: Optional[str] = None) -> Dict[str, Any]:
        """Staff decision on a user's KYC"""
        try:
            new_status = KYCStatus(status)
        except ValueError:
            raise ValidationError("Invalid KYC status")

        user = self.user_manager.set_kyc_status(user_id, new_status, actor_id=reviewer_id)
        review_state = {
            KYCStatus.VERIFIED: "approved",
            KYCStatus.REJECTED: "rejected",
        }.get(new_status, "pending_review")
        for document in self.documents(user_id):
            document.status = review_state
            document.updated_at = datetime.now(timezone.utc)
            self.storage.save(self.documents_table, document.id, document.to_dict())

        self.notifications.notify_kyc_update(user_id, new_status.value)
        log_action(logger, "info", "KYC reviewed", user_id=reviewer_id, action="kyc.review",
                   resource=user_id, extra={"status": new_status.value})
        return user.to_public()
