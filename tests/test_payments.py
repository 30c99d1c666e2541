"""
Tests for Paystack funding, webhooks and bank payouts
"""

import json

import pytest

import httpx

from investnaija.currency import naira, zero
from investnaija.errors import AuthenticationError, NotFoundError, ProviderError, ValidationError
from investnaija.payments import FALLBACK_BANKS, PaystackClient, sign_payload
from investnaija.transactions import TransactionStatus

WEBHOOK_SECRET = "sk_test_webhook"


@pytest.fixture
def payments(system):
    system.payment_service.webhook_secret = WEBHOOK_SECRET
    return system.payment_service


def webhook(payments, event, data, secret=WEBHOOK_SECRET):
    body = json.dumps({"event": event, "data": data}).encode("utf-8")
    return payments.handle_webhook(body, sign_payload(body, secret))


class TestFunding:
    def test_initialize_then_verify(self, system, payments, make_user):
        user = make_user()
        init = payments.initialize_funding(user.id, naira(2500))

        assert init["reference"].startswith("INV_")
        assert init["authorization_url"].endswith(init["reference"])
        pending = system.transaction_log.get_by_reference(init["reference"])
        assert pending.status == TransactionStatus.PENDING
        assert payments.client.initialized[init["reference"]]["amount"] == 250000

        txn = payments.verify_funding(init["reference"], user_id=user.id)
        assert txn.status == TransactionStatus.COMPLETED
        assert system.wallet_manager.get_wallet(user.id).balance == naira(2500)

        # Verifying again never credits twice
        payments.verify_funding(init["reference"], user_id=user.id)
        assert system.wallet_manager.get_wallet(user.id).balance == naira(2500)

    def test_failed_charge(self, system, payments, make_user):
        user = make_user()
        init = payments.initialize_funding(user.id, naira(2500))
        payments.client.failed_references.add(init["reference"])

        txn = payments.verify_funding(init["reference"])
        assert txn.status == TransactionStatus.FAILED
        assert system.wallet_manager.get_wallet(user.id).balance == zero()

    def test_verify_someone_elses_reference(self, payments, make_user):
        owner = make_user()
        other = make_user()
        init = payments.initialize_funding(owner.id, naira(1000))
        with pytest.raises(NotFoundError):
            payments.verify_funding(init["reference"], user_id=other.id)
        with pytest.raises(NotFoundError):
            payments.verify_funding("INV_unknown")

    def test_initialize_respects_limits(self, payments, make_user):
        user = make_user()
        with pytest.raises(ValidationError, match="Minimum funding amount"):
            payments.initialize_funding(user.id, naira(50))


class TestWebhooks:
    def test_charge_success(self, system, payments, make_user):
        user = make_user()
        init = payments.initialize_funding(user.id, naira(3000))

        result = webhook(payments, "charge.success", {"reference": init["reference"], "amount": 300000})
        assert result == {"processed": True, "event": "charge.success"}
        assert system.wallet_manager.get_wallet(user.id).balance == naira(3000)

        # Paystack retries are harmless
        webhook(payments, "charge.success", {"reference": init["reference"], "amount": 300000})
        assert system.wallet_manager.get_wallet(user.id).balance == naira(3000)

    def test_charge_without_amount(self, system, payments, make_user):
        user = make_user()
        init = payments.initialize_funding(user.id, naira(3000))

        for data in ({"reference": init["reference"]}, {"reference": init["reference"], "amount": "lots"}):
            with pytest.raises(ValidationError, match="Invalid webhook payload"):
                webhook(payments, "charge.success", data)
        assert system.transaction_log.get_by_reference(init["reference"]).status == TransactionStatus.PENDING
        assert system.wallet_manager.get_wallet(user.id).balance == zero()

    def test_verify_response_without_amount(self, payments, make_user, monkeypatch):
        user = make_user()
        init = payments.initialize_funding(user.id, naira(3000))
        monkeypatch.setattr(payments.client, "verify_transaction",
                            lambda reference: {"reference": reference, "status": "success"})
        with pytest.raises(ProviderError, match="Invalid response from Paystack"):
            payments.verify_funding(init["reference"])

    def test_bad_signature(self, payments):
        body = json.dumps({"event": "charge.success", "data": {}}).encode("utf-8")
        with pytest.raises(AuthenticationError, match="Invalid webhook signature"):
            payments.handle_webhook(body, sign_payload(body, "wrong-secret"))
        with pytest.raises(AuthenticationError):
            payments.handle_webhook(body, None)

    def test_unconfigured_secret_rejects_everything(self, payments):
        payments.webhook_secret = None
        body = b"{}"
        with pytest.raises(AuthenticationError):
            payments.handle_webhook(body, sign_payload(body, WEBHOOK_SECRET))

    def test_unknown_event(self, payments):
        assert webhook(payments, "subscription.create", {}) == {
            "processed": False, "event": "subscription.create"
        }

    def test_transfer_failed_refunds(self, system, payments, make_user):
        user = make_user(balance=10000)
        txn = system.wallet_manager.withdraw_to_bank(user.id, naira(5000), "0123456789", "058", "Ada Obi")

        webhook(payments, "transfer.failed", {"reference": txn.reference, "reason": "Account closed"})

        settled = system.transaction_log.get(txn.id)
        assert settled.status == TransactionStatus.FAILED
        assert settled.failure_reason == "Account closed"
        assert system.wallet_manager.get_wallet(user.id).balance == naira(10000)

    def test_transfer_success(self, system, payments, make_user):
        user = make_user(balance=10000)
        txn = system.wallet_manager.withdraw_to_bank(user.id, naira(5000), "0123456789", "058", "Ada Obi")
        webhook(payments, "transfer.success", {"reference": txn.reference})
        assert system.transaction_log.get(txn.id).status == TransactionStatus.COMPLETED


class TestPayouts:
    def test_payout(self, system, payments, make_user):
        user = make_user(balance=10000)
        txn = system.wallet_manager.withdraw_to_bank(user.id, naira(5000), "0123456789", "058", "Ada Obi")

        sent = payments.payout(txn.id)
        assert sent.metadata["recipient_code"] == "RCP_0123456789"
        assert sent.status == TransactionStatus.PENDING
        assert payments.client.transfers[0]["reference"] == txn.reference
        assert payments.client.transfers[0]["amount"] == 500000

    def test_rejected_payout_refunds(self, system, payments, make_user):
        user = make_user(balance=10000)
        txn = system.wallet_manager.withdraw_to_bank(user.id, naira(5000), "0123450000", "058", "Ada Obi")

        with pytest.raises(ProviderError, match="Transfer failed"):
            payments.payout(txn.id)
        assert system.transaction_log.get(txn.id).status == TransactionStatus.FAILED
        assert system.wallet_manager.get_wallet(user.id).balance == naira(10000)


class TestBanks:
    def test_list_and_resolve(self, payments):
        assert payments.list_banks() == FALLBACK_BANKS
        assert payments.resolve_account("0123456789", "058")["account_name"] == "TEST ACCOUNT"
        with pytest.raises(ProviderError, match="Could not resolve account name"):
            payments.resolve_account("0123450000", "058")
        with pytest.raises(ValidationError):
            payments.resolve_account("", "058")


class TestPaystackClient:
    def client_with(self, handler):
        client = PaystackClient("sk_test_123", base_url="https://paystack.test")
        client._client = httpx.Client(transport=httpx.MockTransport(handler))
        return client

    def test_initialize_sends_kobo(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"status": True, "data": {"authorization_url": "https://x"}})

        data = self.client_with(handler).initialize_transaction(
            "ada@example.com", naira("1500.50"), "INV_1", "https://app/callback", {}
        )
        assert data == {"authorization_url": "https://x"}
        assert seen["body"]["amount"] == 150050
        assert seen["auth"] == "Bearer sk_test_123"

    def test_error_response(self):
        client = self.client_with(
            lambda request: httpx.Response(400, json={"status": False, "message": "Invalid key"})
        )
        with pytest.raises(ProviderError, match="Invalid key"):
            client.verify_transaction("INV_1")

    def test_banks_fall_back(self):
        def handler(request):
            raise httpx.ConnectError("down")

        assert self.client_with(handler).list_banks() == FALLBACK_BANKS
