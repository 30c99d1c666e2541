"""
Payments Module

Paystack integration: card/bank funding of wallets, bank lookups for
withdrawals and payouts through the Paystack transfer API.

Funding is a two-step flow. initialize_funding() records a pending
deposit and returns Paystack's checkout URL; the deposit is credited once,
either by verify_funding() or by the charge.success webhook.
"""

from typing import Any, Dict, List, Optional
import hashlib
import hmac
import json
import uuid

import httpx

from .audit import AuditTrail, AuditEventType
from .config import get_config
from .currency import Money, from_kobo, to_kobo
from .errors import AuthenticationError, NotFoundError, ProviderError, ValidationError
from .logging_config import get_logger, log_action
from .transactions import TransactionLog, TransactionStatus, TransactionType, WalletTransaction
from .users import UserManager
from .wallets import FundingSource, WalletManager

logger = get_logger("investnaija.payments")


FALLBACK_BANKS = [
    {"name": "Access Bank", "code": "044"},
    {"name": "Afribank Nigeria Plc", "code": "014"},
    {"name": "Citibank Nigeria", "code": "023"},
    {"name": "Ecobank Nigeria", "code": "050"},
    {"name": "First Bank of Nigeria", "code": "011"},
    {"name": "First City Monument Bank", "code": "214"},
    {"name": "Fidelity Bank", "code": "070"},
    {"name": "Guaranty Trust Bank", "code": "058"},
    {"name": "Heritage Bank", "code": "030"},
    {"name": "Keystone Bank", "code": "082"},
    {"name": "Polaris Bank", "code": "076"},
    {"name": "Stanbic IBTC Bank", "code": "039"},
    {"name": "Sterling Bank", "code": "232"},
    {"name": "Union Bank of Nigeria", "code": "032"},
    {"name": "United Bank For Africa", "code": "033"},
    {"name": "Unity Bank", "code": "215"},
    {"name": "Wema Bank", "code": "035"},
    {"name": "Zenith Bank", "code": "057"},
    {"name": "OPay", "code": "999992"},
    {"name": "PalmPay", "code": "999991"},
    {"name": "Moniepoint", "code": "999993"},
    {"name": "Kuda Bank", "code": "999994"},
]


def sign_payload(body: bytes, secret: str) -> str:
    """HMAC-SHA512 hex digest Paystack sends as x-paystack-signature"""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


def charged_amount(data: Dict[str, Any], error: Exception) -> Money:
    """Kobo amount of a Paystack charge, raising `error` when it is missing or malformed"""
    try:
        return from_kobo(int(data.get("amount")))
    except (TypeError, ValueError):
        raise error


class PaystackClient:
    """REST client for the Paystack API"""

    def __init__(self, secret_key: str, base_url: str = "https://api.paystack.co",
                 timeout: float = 10.0):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(timeout=timeout)

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """
        Call Paystack and return the `data` member of a successful response.

        Raises:
            ProviderError: Network failure or status false
        """
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }
        try:
            response = self._client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Paystack {method} {path} failed: {e}")
            raise ProviderError("Payment provider is unavailable")

        if response.status_code >= 400 or not payload.get("status"):
            logger.warning(f"Paystack {method} {path} returned {response.status_code}: {payload.get('message')}")
            raise ProviderError(payload.get("message") or "Payment provider rejected the request")
        return payload.get("data") or {}

    def initialize_transaction(self, email: str, amount: Money, reference: str,
                               callback_url: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/transaction/initialize", json={
            "email": email,
            "amount": to_kobo(amount),
            "reference": reference,
            "callback_url": callback_url,
            "metadata": metadata,
        })

    def verify_transaction(self, reference: str) -> Dict[str, Any]:
        return self._request("GET", f"/transaction/verify/{reference}")

    def list_banks(self) -> List[Dict[str, Any]]:
        """Nigerian banks; the built-in list when Paystack is unreachable"""
        try:
            banks = self._request("GET", "/bank", params={"currency": "NGN", "country": "nigeria"})
        except ProviderError:
            return list(FALLBACK_BANKS)
        return [{"name": b["name"], "code": b["code"]} for b in banks] or list(FALLBACK_BANKS)

    def resolve_account(self, account_number: str, bank_code: str) -> Dict[str, Any]:
        return self._request("GET", "/bank/resolve",
                             params={"account_number": account_number, "bank_code": bank_code})

    def create_transfer_recipient(self, name: str, account_number: str, bank_code: str) -> str:
        data = self._request("POST", "/transferrecipient", json={
            "type": "nuban",
            "name": name,
            "account_number": account_number,
            "bank_code": bank_code,
            "currency": "NGN",
        })
        return data["recipient_code"]

    def initiate_transfer(self, amount: Money, recipient_code: str, reason: str,
                          reference: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", "/transfer", json={
            "source": "balance",
            "amount": to_kobo(amount),
            "recipient": recipient_code,
            "reason": reason,
            "reference": reference or f"TRF_{uuid.uuid4().hex}",
        })

    def close(self):
        self._client.close()


class MockPaystackClient(PaystackClient):
    """
    Offline Paystack for development and tests. Initialized charges verify
    as successful unless their reference is listed in failed_references.
    """

    def __init__(self, **kwargs):
        super().__init__(secret_key="mock", **kwargs)
        self.initialized: Dict[str, Dict[str, Any]] = {}
        self.failed_references = set()
        self.transfers: List[Dict[str, Any]] = []

    def initialize_transaction(self, email: str, amount: Money, reference: str,
                               callback_url: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        self.initialized[reference] = {"amount": to_kobo(amount), "email": email, "metadata": metadata}
        return {
            "authorization_url": f"https://checkout.paystack.com/{reference}",
            "access_code": f"AC_{reference}",
            "reference": reference,
        }

    def verify_transaction(self, reference: str) -> Dict[str, Any]:
        charge = self.initialized.get(reference)
        if not charge:
            raise ProviderError("Transaction reference not found")
        status = "failed" if reference in self.failed_references else "success"
        return {"reference": reference, "status": status, "amount": charge["amount"],
                "metadata": charge["metadata"], "gateway_response": "Approved"}

    def list_banks(self) -> List[Dict[str, Any]]:
        return list(FALLBACK_BANKS)

    def resolve_account(self, account_number: str, bank_code: str) -> Dict[str, Any]:
        if account_number.endswith("0000"):
            raise ProviderError("Could not resolve account name")
        return {"account_number": account_number, "account_name": "TEST ACCOUNT", "bank_id": bank_code}

    def create_transfer_recipient(self, name: str, account_number: str, bank_code: str) -> str:
        return f"RCP_{account_number}"

    def initiate_transfer(self, amount: Money, recipient_code: str, reason: str,
                          reference: Optional[str] = None) -> Dict[str, Any]:
        if recipient_code.endswith("0000"):
            raise ProviderError("Transfer failed")
        transfer = {"reference": reference, "transfer_code": f"TRF_{len(self.transfers) + 1}",
                    "status": "pending", "amount": to_kobo(amount)}
        self.transfers.append(transfer)
        return transfer


class PaymentService:
    """Wallet funding and bank payouts through Paystack"""

    def __init__(self, wallet_manager: WalletManager, transaction_log: TransactionLog,
                 user_manager: UserManager, client: PaystackClient, audit_trail: AuditTrail,
                 webhook_secret: Optional[str] = None):
        self.wallet_manager = wallet_manager
        self.transaction_log = transaction_log
        self.user_manager = user_manager
        self.client = client
        self.audit_trail = audit_trail
        self.webhook_secret = webhook_secret

    def list_banks(self) -> List[Dict[str, Any]]:
        return self.client.list_banks()

    def resolve_account(self, account_number: str, bank_code: str) -> Dict[str, Any]:
        if not account_number or not bank_code:
            raise ValidationError("Account number and bank code are required")
        return self.client.resolve_account(account_number, bank_code)

    def initialize_funding(self, user_id: str, amount: Money,
                           callback_url: Optional[str] = None) -> Dict[str, Any]:
        """
        Start a Paystack checkout for `amount` and record the pending deposit.

        Returns:
            {"authorization_url", "access_code", "reference"}
        """
        user = self.user_manager.require_user(user_id)
        self.wallet_manager.check_funding_limits(user_id, amount)

        reference = f"INV_{uuid.uuid4().hex}"
        data = self.client.initialize_transaction(
            email=user.email,
            amount=amount,
            reference=reference,
            callback_url=callback_url or f"{get_config().frontend_url}/payment/callback",
            metadata={"user_id": user_id},
        )
        self.wallet_manager.create_pending_deposit(
            user_id, amount, reference, FundingSource.PAYSTACK,
            metadata={"provider": "paystack", "authorization_url": data.get("authorization_url")}
        )
        self.audit_trail.log_event(
            AuditEventType.PAYMENT_INITIALIZED, "payment", reference,
            {"amount": str(amount.amount), "provider": "paystack"}, user_id=user_id
        )
        log_action(logger, "info", "Paystack funding initialized", user_id=user_id,
                   action="payments.initialize", resource=reference,
                   extra={"amount": str(amount.amount)})
        return {
            "authorization_url": data.get("authorization_url"),
            "access_code": data.get("access_code"),
            "reference": reference,
        }

    def verify_funding(self, reference: str, user_id: Optional[str] = None) -> WalletTransaction:
        """
        Confirm a deposit with Paystack. A reference is credited at most
        once; verifying a completed deposit returns it unchanged.
        """
        txn = self.transaction_log.get_by_reference(reference)
        if not txn or txn.transaction_type != TransactionType.DEPOSIT:
            raise NotFoundError("Transaction not found")
        if user_id and txn.user_id != user_id:
            raise NotFoundError("Transaction not found")
        if txn.status != TransactionStatus.PENDING:
            return txn

        data = self.client.verify_transaction(reference)
        status = data.get("status")
        if status == "success":
            amount = charged_amount(data, ProviderError("Invalid response from Paystack"))
            txn = self.wallet_manager.complete_pending_deposit(reference, amount)
        elif status in ("failed", "abandoned", "reversed"):
            txn = self.wallet_manager.fail_pending_deposit(reference, data.get("gateway_response") or status)
        else:
            return txn

        self.audit_trail.log_event(
            AuditEventType.PAYMENT_VERIFIED, "payment", reference,
            {"status": status, "transaction_id": txn.id}, user_id=txn.user_id
        )
        return txn

    def handle_webhook(self, body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Process a Paystack webhook after checking its signature.

        Raises:
            AuthenticationError: Missing or invalid x-paystack-signature
        """
        if not self.webhook_secret or not signature:
            raise AuthenticationError("Invalid webhook signature")
        if not hmac.compare_digest(sign_payload(body, self.webhook_secret), signature):
            raise AuthenticationError("Invalid webhook signature")

        try:
            event = json.loads(body)
        except ValueError:
            raise ValidationError("Invalid webhook payload")

        event_type = event.get("event")
        data = event.get("data") or {}
        reference = data.get("reference")
        log_action(logger, "info", "Paystack webhook received", action="payments.webhook",
                   resource=reference, extra={"event": event_type})

        if event_type == "charge.success" and reference:
            txn = self.transaction_log.get_by_reference(reference)
            if txn and txn.status == TransactionStatus.PENDING:
                amount = charged_amount(data, ValidationError("Invalid webhook payload"))
                self.wallet_manager.complete_pending_deposit(reference, amount)
            return {"processed": bool(txn), "event": event_type}

        if event_type in ("transfer.success", "transfer.failed", "transfer.reversed") and reference:
            txn = self.transaction_log.get_by_reference(reference)
            if txn and txn.status == TransactionStatus.PENDING:
                self.wallet_manager.complete_withdrawal(
                    txn.id, event_type == "transfer.success",
                    reason=data.get("reason") or event_type
                )
            return {"processed": bool(txn), "event": event_type}

        return {"processed": False, "event": event_type}

    def payout(self, transaction_id: str) -> WalletTransaction:
        """
        Send a pending bank withdrawal through Paystack. The transfer
        reference is the withdrawal's own reference so the transfer webhooks
        can settle it. A rejected transfer refunds the wallet.
        """
        txn = self.transaction_log.get(transaction_id)
        if not txn or txn.transaction_type != TransactionType.BANK_WITHDRAWAL:
            raise NotFoundError("Transaction not found")
        if txn.status != TransactionStatus.PENDING:
            raise ValidationError(f"Withdrawal is already {txn.status.value}")

        details = txn.metadata
        try:
            recipient = self.client.create_transfer_recipient(
                details["account_name"], details["account_number"], details["bank_code"]
            )
            transfer = self.client.initiate_transfer(txn.amount, recipient, txn.description,
                                                     reference=txn.reference)
        except ProviderError as e:
            self.wallet_manager.complete_withdrawal(txn.id, False, reason=str(e))
            raise

        log_action(logger, "info", "Payout initiated", user_id=txn.user_id, action="payments.payout",
                   resource=txn.id, extra={"transfer_code": transfer.get("transfer_code")})
        return self.transaction_log.attach_metadata(
            txn.id, recipient_code=recipient, transfer_code=transfer.get("transfer_code")
        )
