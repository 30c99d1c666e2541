"""
Tests for bill payments through the offline Flutterwave client
"""

import pytest

import httpx

from investnaija.bills import (
    FlutterwaveClient, find_data_plan, list_cable_providers, list_networks
)
from investnaija.config import get_config
from investnaija.currency import naira
from investnaija.errors import (
    FeatureDisabledError, InsufficientFundsError, NotFoundError, ProviderError, ValidationError
)
from investnaija.transactions import TransactionStatus, TransactionType


class TestCatalogue:
    def test_networks_and_plans(self):
        networks = {n["id"]: n for n in list_networks()}
        assert set(networks) == {"mtn", "glo", "airtel", "9mobile"}
        assert networks["mtn"]["data_plans"][0] == {
            "id": "mtn_1gb_30", "name": "1GB - 30 Days", "price": "350", "validity": "30 days"
        }

        network, plan = find_data_plan("mtn_1gb_1")
        assert network.id == "mtn"
        assert plan.name == "1GB - 1 Day"
        assert find_data_plan("mtn_999gb_30") is None

    def test_cable_providers(self):
        providers = {p["id"]: p for p in list_cable_providers()}
        assert {"dstv", "gotv", "startimes"} == set(providers)

    def test_billers(self, system):
        billers = system.bill_service.get_billers()
        assert "airtime" in [b["id"] for b in billers]


class TestBillPayments:
    def test_airtime(self, system, make_user):
        user = make_user(balance=5000)
        result = system.bill_service.buy_airtime(user.id, "MTN", "08031234567", naira(1000))

        txn = result["transaction"]
        assert txn.status == TransactionStatus.COMPLETED
        assert txn.transaction_type == TransactionType.BILL_PAYMENT
        assert txn.metadata["phone_number"] == "+2348031234567"
        assert txn.metadata["provider_receipt"]["tx_ref"] == txn.reference
        assert result["wallet"].balance == naira(4000)
        assert result["receipt"]["flw_ref"] == f"FLW-{txn.reference}"

    def test_airtime_rules(self, system, make_user):
        user = make_user(balance=5000)
        bills = system.bill_service
        with pytest.raises(ValidationError, match="Network must be one of"):
            bills.buy_airtime(user.id, "etisalat", "08031234567", naira(100))
        with pytest.raises(ValidationError, match="Invalid Nigerian phone number"):
            bills.buy_airtime(user.id, "mtn", "12345", naira(100))
        with pytest.raises(ValidationError, match="Minimum airtime amount is ₦50"):
            bills.buy_airtime(user.id, "mtn", "08031234567", naira(20))
        with pytest.raises(InsufficientFundsError, match="Insufficient wallet balance"):
            bills.buy_airtime(user.id, "mtn", "08031234567", naira(6000))

    def test_data_uses_catalogue_price(self, system, make_user):
        user = make_user(balance=5000)
        result = system.bill_service.buy_data(user.id, "glo_2gb_30", "08051234567")
        assert result["transaction"].amount == naira(700)
        with pytest.raises(NotFoundError, match="Data plan not found"):
            system.bill_service.buy_data(user.id, "glo_50gb_30", "08051234567")

    def test_electricity(self, system, make_user):
        user = make_user(balance=5000)
        result = system.bill_service.pay_electricity(user.id, "ikedc", "45012345678", naira(2000))
        assert result["transaction"].metadata["company"] == "IKEDC"

        with pytest.raises(ValidationError, match="Unknown electricity distribution company"):
            system.bill_service.pay_electricity(user.id, "NEPA", "45012345678", naira(2000))
        with pytest.raises(ValidationError, match="Meter type must be prepaid or postpaid"):
            system.bill_service.pay_electricity(user.id, "IKEDC", "450", naira(2000), meter_type="smart")
        with pytest.raises(ValidationError, match="Minimum electricity bill amount is ₦500"):
            system.bill_service.pay_electricity(user.id, "IKEDC", "450", naira(100))

    def test_cable_tv(self, system, make_user):
        user = make_user(balance=5000)
        result = system.bill_service.pay_cable_tv(user.id, "DStv", "7012345678", "dstv_padi")
        assert result["transaction"].amount == naira(2500)
        with pytest.raises(NotFoundError, match="Cable TV package not found"):
            system.bill_service.pay_cable_tv(user.id, "gotv", "7012345678", "dstv_padi")

    def test_provider_failure_refunds(self, system, make_user):
        user = make_user(balance=5000)
        with pytest.raises(ProviderError, match="Bill payment failed"):
            system.bill_service.pay_electricity(user.id, "EKEDC", "45010000", naira(1500))

        assert system.wallet_manager.get_wallet(user.id).balance == naira(5000)
        assert system.ledger.wallet_balance(user.id) == naira(5000)
        bills = system.transaction_log.history(user.id, transaction_type=TransactionType.BILL_PAYMENT)
        assert bills.transactions[0].status == TransactionStatus.FAILED
        assert bills.transactions[0].failure_reason == "Bill payment failed"

    def test_disabled(self, system, make_user, monkeypatch):
        user = make_user(balance=5000)
        monkeypatch.setattr(get_config(), "enable_bill_payments", False)
        with pytest.raises(FeatureDisabledError, match="Bill payments are currently disabled"):
            system.bill_service.buy_airtime(user.id, "mtn", "08031234567", naira(100))

    def test_validate_customer(self, system):
        assert system.bill_service.validate_customer("BIL119", "45012345678")["name"] == "Test Customer"
        with pytest.raises(ValidationError, match="Biller code and customer number are required"):
            system.bill_service.validate_customer("", "450")
        with pytest.raises(ProviderError, match="Customer validation failed"):
            system.bill_service.validate_customer("BIL119", "45010000")


class TestFlutterwaveClient:
    def client_with(self, handler):
        client = FlutterwaveClient("FLWSECK_TEST", base_url="https://flw.test/v3")
        client._client = httpx.Client(transport=httpx.MockTransport(handler))
        return client

    def test_pay_bill_sends_bearer_token(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["path"] = request.url.path
            return httpx.Response(200, json={"status": "success", "data": {"tx_ref": "AIRTIME_1"}})

        client = self.client_with(handler)
        receipt = client.pay_bill("+2348031234567", naira(100), "BIL099", "AIRTIME_1")
        assert receipt == {"tx_ref": "AIRTIME_1"}
        assert seen["auth"] == "Bearer FLWSECK_TEST"
        assert seen["path"] == "/v3/bills"

    def test_rejected_payment(self):
        client = self.client_with(
            lambda request: httpx.Response(400, json={"status": "error", "message": "Invalid biller"})
        )
        with pytest.raises(ProviderError, match="Invalid biller"):
            client.pay_bill("+2348031234567", naira(100), "BIL099", "AIRTIME_2")

    def test_categories_fall_back(self):
        client = self.client_with(lambda request: httpx.Response(500, json={}))
        assert [c["id"] for c in client.get_bill_categories()][0] == "electricity"
