"""
Bill Payments Module

Airtime, data bundles, electricity tokens and cable TV subscriptions paid
from the wallet through the Flutterwave bills API.

A payment debits the wallet first and stays pending while the provider
is called; a provider failure refunds the wallet in full.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from .audit import AuditTrail, AuditEventType
from .config import get_config
from .currency import Money, naira
from .errors import FeatureDisabledError, NotFoundError, ProviderError, ValidationError
from .ledger import SystemAccount
from .logging_config import get_logger, log_action
from .notifications import NotificationEngine
from .transactions import TransactionLog, TransactionStatus, TransactionType, generate_reference
from .users import normalize_phone
from .wallets import WalletManager

logger = get_logger("investnaija.bills")


@dataclass(frozen=True)
class DataPlan:
    id: str
    name: str
    price: Decimal
    validity: str


@dataclass(frozen=True)
class Network:
    id: str
    name: str
    biller_code: str
    plans: tuple


def _plans(network: str, rows) -> tuple:
    return tuple(
        DataPlan(f"{network}_{size.lower()}_{days}", f"{size} - {days} Day{'s' if days > 1 else ''}",
                 Decimal(price), f"{days} day{'s' if days > 1 else ''}")
        for size, days, price in rows
    )


NETWORKS: Dict[str, Network] = {
    "mtn": Network("mtn", "MTN Nigeria", "BIL099", _plans("mtn", [
        ("1GB", 30, 350), ("2GB", 30, 700), ("3GB", 30, 1050), ("5GB", 30, 1750),
        ("10GB", 30, 3500), ("15GB", 30, 5250), ("20GB", 30, 7000),
        ("100MB", 7, 100), ("500MB", 14, 250), ("1GB", 1, 200),
    ])),
    "glo": Network("glo", "Glo Nigeria", "BIL102", _plans("glo", [
        ("1GB", 30, 350), ("2GB", 30, 700), ("3GB", 30, 1050), ("5GB", 30, 1750),
        ("10GB", 30, 3500), ("200MB", 14, 200), ("500MB", 30, 300), ("1GB", 5, 250),
    ])),
    "airtel": Network("airtel", "Airtel Nigeria", "BIL100", _plans("airtel", [
        ("1GB", 30, 350), ("2GB", 30, 700), ("3GB", 30, 1050), ("5GB", 30, 1750),
        ("10GB", 30, 3500), ("100MB", 3, 100), ("300MB", 7, 200), ("500MB", 30, 300),
    ])),
    "9mobile": Network("9mobile", "9mobile Nigeria", "BIL103", _plans("9mobile", [
        ("1GB", 30, 350), ("2GB", 30, 700), ("3GB", 30, 1050), ("5GB", 30, 1750),
        ("500MB", 30, 300), ("1GB", 7, 250), ("2GB", 7, 500),
    ])),
}

BILLER_CATEGORIES = [
    {"id": "electricity", "name": "Electricity", "description": "Pay electricity bills", "category": "utilities"},
    {"id": "airtime", "name": "Airtime", "description": "Buy mobile airtime", "category": "mobile"},
    {"id": "data", "name": "Data Bundle", "description": "Buy mobile data", "category": "mobile"},
    {"id": "cable", "name": "Cable TV", "description": "Pay cable TV subscription", "category": "entertainment"},
    {"id": "internet", "name": "Internet", "description": "Pay internet bills", "category": "utilities"},
]

ELECTRICITY_COMPANIES = [
    {"id": "EKEDC", "name": "Eko Electricity Distribution Company", "code": "BIL119"},
    {"id": "IKEDC", "name": "Ikeja Electric", "code": "BIL120"},
    {"id": "AEDC", "name": "Abuja Electricity Distribution Company", "code": "BIL121"},
    {"id": "KEDCO", "name": "Kano Electricity Distribution Company", "code": "BIL122"},
    {"id": "PHED", "name": "Port Harcourt Electricity Distribution", "code": "BIL123"},
    {"id": "BEDC", "name": "Benin Electricity Distribution Company", "code": "BIL124"},
    {"id": "EEDC", "name": "Enugu Electricity Distribution Company", "code": "BIL125"},
    {"id": "JEDC", "name": "Jos Electricity Distribution Company", "code": "BIL126"},
]

CABLE_PROVIDERS: Dict[str, Dict[str, Any]] = {
    "dstv": {"name": "DStv", "packages": {
        "dstv_padi": ("DStv Padi", Decimal("2500")),
        "dstv_yanga": ("DStv Yanga", Decimal("2950")),
        "dstv_confam": ("DStv Confam", Decimal("5300")),
        "dstv_compact": ("DStv Compact", Decimal("9000")),
        "dstv_compact_plus": ("DStv Compact Plus", Decimal("14250")),
        "dstv_premium": ("DStv Premium", Decimal("21000")),
    }},
    "gotv": {"name": "GOtv", "packages": {
        "gotv_smallie": ("GOtv Smallie", Decimal("900")),
        "gotv_jinja": ("GOtv Jinja", Decimal("1900")),
        "gotv_jolli": ("GOtv Jolli", Decimal("2800")),
        "gotv_max": ("GOtv Max", Decimal("4150")),
        "gotv_supa": ("GOtv Supa", Decimal("5500")),
    }},
    "startimes": {"name": "Startimes", "packages": {
        "startimes_nova": ("Nova", Decimal("900")),
        "startimes_basic": ("Basic", Decimal("1700")),
        "startimes_smart": ("Smart", Decimal("2600")),
        "startimes_classic": ("Classic", Decimal("2750")),
        "startimes_super": ("Super", Decimal("4900")),
    }},
}

AIRTIME_MIN, AIRTIME_MAX = Decimal("50"), Decimal("50000")
ELECTRICITY_MIN, ELECTRICITY_MAX = Decimal("500"), Decimal("100000")


def list_networks() -> List[Dict[str, Any]]:
    return [
        {
            "id": network.id,
            "name": network.name,
            "biller_code": network.biller_code,
            "data_plans": [
                {"id": p.id, "name": p.name, "price": str(p.price), "validity": p.validity}
                for p in network.plans
            ],
        }
        for network in NETWORKS.values()
    ]


def list_cable_providers() -> List[Dict[str, Any]]:
    return [
        {
            "id": provider_id,
            "name": provider["name"],
            "packages": [
                {"id": package_id, "name": name, "price": str(price)}
                for package_id, (name, price) in provider["packages"].items()
            ],
        }
        for provider_id, provider in CABLE_PROVIDERS.items()
    ]


def find_data_plan(plan_id: str) -> Optional[tuple]:
    for network in NETWORKS.values():
        for plan in network.plans:
            if plan.id == plan_id:
                return network, plan
    return None


class FlutterwaveClient:
    """REST client for the Flutterwave bills API"""

    def __init__(self, secret_key: str, base_url: str = "https://api.flutterwave.com/v3",
                 timeout: float = 10.0):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def get_bill_categories(self) -> List[Dict[str, Any]]:
        """Biller categories; the built-in list when the API is unreachable"""
        try:
            response = self._client.get(f"{self.base_url}/bills/categories", headers=self._headers())
            if response.status_code == 200 and response.json().get("data"):
                return response.json()["data"]
            logger.warning(f"Flutterwave categories returned {response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Flutterwave categories request failed: {e}")
        return list(BILLER_CATEGORIES)

    def validate_customer(self, biller_code: str, customer: str) -> Dict[str, Any]:
        """
        Raises:
            ProviderError: Flutterwave could not validate the customer
        """
        try:
            response = self._client.post(
                f"{self.base_url}/bills/validate",
                json={"biller_code": biller_code, "customer": customer},
                headers=self._headers(),
            )
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Flutterwave validation request failed: {e}")
            raise ProviderError("Customer validation failed")

        if response.status_code != 200 or payload.get("status") != "success":
            raise ProviderError(payload.get("message") or "Customer validation failed")
        return payload.get("data") or {}

    def pay_bill(self, customer: str, amount: Money, bill_type: str, reference: str,
                 biller_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Raises:
            ProviderError: The payment was not accepted
        """
        body = {
            "country": "NG",
            "customer": customer,
            "amount": float(amount.amount),
            "type": bill_type,
            "reference": reference,
        }
        if biller_name:
            body["biller_name"] = biller_name
        try:
            response = self._client.post(f"{self.base_url}/bills", json=body, headers=self._headers())
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Flutterwave bill payment request failed: {e}")
            raise ProviderError("Bill payment provider is unavailable")

        if response.status_code != 200 or payload.get("status") != "success":
            raise ProviderError(payload.get("message") or "Bill payment failed")
        return payload.get("data") or {}

    def close(self):
        self._client.close()


class MockFlutterwaveClient(FlutterwaveClient):
    """Offline client for development and tests; customers ending in 0000 are rejected"""

    def __init__(self, **kwargs):
        super().__init__(secret_key="mock", **kwargs)
        self.payments: List[Dict[str, Any]] = []

    def get_bill_categories(self) -> List[Dict[str, Any]]:
        return list(BILLER_CATEGORIES)

    def validate_customer(self, biller_code: str, customer: str) -> Dict[str, Any]:
        if customer.endswith("0000"):
            raise ProviderError("Customer validation failed")
        return {"biller_code": biller_code, "customer": customer, "name": "Test Customer"}

    def pay_bill(self, customer: str, amount: Money, bill_type: str, reference: str,
                 biller_name: Optional[str] = None) -> Dict[str, Any]:
        if customer.endswith("0000"):
            raise ProviderError("Bill payment failed")
        self.payments.append({"customer": customer, "amount": amount, "type": bill_type,
                              "reference": reference})
        return {"tx_ref": reference, "flw_ref": f"FLW-{reference}", "amount": str(amount.amount)}


class BillPaymentService:
    def __init__(self, wallet_manager: WalletManager, transaction_log: TransactionLog,
                 provider: FlutterwaveClient, notifications: NotificationEngine,
                 audit_trail: AuditTrail):
        self.wallet_manager = wallet_manager
        self.transaction_log = transaction_log
        self.provider = provider
        self.notifications = notifications
        self.audit_trail = audit_trail

    def get_billers(self) -> List[Dict[str, Any]]:
        return self.provider.get_bill_categories()

    def validate_customer(self, biller_code: str, customer: str) -> Dict[str, Any]:
        if not (biller_code or "").strip() or not (customer or "").strip():
            raise ValidationError("Biller code and customer number are required")
        return self.provider.validate_customer(biller_code.strip(), customer.strip())

    def buy_airtime(self, user_id: str, network: str, phone: str, amount: Money) -> Dict[str, Any]:
        network_info = NETWORKS.get((network or "").lower())
        if not network_info:
            raise ValidationError("Network must be one of: " + ", ".join(NETWORKS))
        phone_number = normalize_phone(phone)
        if not phone_number:
            raise ValidationError("Invalid Nigerian phone number")
        if amount < naira(AIRTIME_MIN):
            raise ValidationError("Minimum airtime amount is ₦50")
        if amount > naira(AIRTIME_MAX):
            raise ValidationError("Maximum airtime amount is ₦50,000")

        return self._pay(
            user_id, amount, "airtime", phone_number, network_info.biller_code,
            f"{network_info.id.upper()} airtime - {phone_number}",
            {"network": network_info.id, "phone_number": phone_number},
            biller_name=network_info.name
        )

    def buy_data(self, user_id: str, plan_id: str, phone: str) -> Dict[str, Any]:
        match = find_data_plan(plan_id)
        if not match:
            raise NotFoundError("Data plan not found")
        network, plan = match
        phone_number = normalize_phone(phone)
        if not phone_number:
            raise ValidationError("Invalid Nigerian phone number")

        return self._pay(
            user_id, naira(plan.price), "data", phone_number, plan.id,
            f"{network.id.upper()} data bundle {plan.name} - {phone_number}",
            {"network": network.id, "phone_number": phone_number, "plan_id": plan.id},
            biller_name=network.name
        )

    def pay_electricity(self, user_id: str, company: str, meter_number: str, amount: Money,
                        meter_type: str = "prepaid", customer_name: Optional[str] = None) -> Dict[str, Any]:
        disco = next(
            (c for c in ELECTRICITY_COMPANIES if company and company.upper() in (c["id"], c["code"])),
            None
        )
        if not disco:
            raise ValidationError("Unknown electricity distribution company")
        meter_number = (meter_number or "").strip()
        if not meter_number:
            raise ValidationError("Customer/meter number is required")
        if meter_type not in ("prepaid", "postpaid"):
            raise ValidationError("Meter type must be prepaid or postpaid")
        if amount < naira(ELECTRICITY_MIN):
            raise ValidationError("Minimum electricity bill amount is ₦500")
        if amount > naira(ELECTRICITY_MAX):
            raise ValidationError("Maximum electricity bill amount is ₦100,000")

        return self._pay(
            user_id, amount, "electricity", meter_number, disco["code"],
            f"Electricity bill payment - {meter_number}",
            {"company": disco["id"], "meter_number": meter_number, "meter_type": meter_type,
             "customer_name": customer_name},
            biller_name=disco["name"]
        )

    def pay_cable_tv(self, user_id: str, provider: str, smart_card_number: str,
                     package_id: str) -> Dict[str, Any]:
        cable = CABLE_PROVIDERS.get((provider or "").lower())
        if not cable:
            raise ValidationError("Cable provider must be one of: " + ", ".join(CABLE_PROVIDERS))
        package = cable["packages"].get(package_id)
        if not package:
            raise NotFoundError("Cable TV package not found")
        smart_card_number = (smart_card_number or "").strip()
        if not smart_card_number:
            raise ValidationError("Smart card number is required")

        name, price = package
        return self._pay(
            user_id, naira(price), "cable_tv", smart_card_number, package_id,
            f"{cable['name']} {name} subscription - {smart_card_number}",
            {"provider": provider.lower(), "smart_card_number": smart_card_number,
             "package_id": package_id},
            biller_name=cable["name"]
        )

    def _pay(self, user_id: str, amount: Money, bill_kind: str, customer: str, bill_type: str,
             description: str, metadata: Dict[str, Any], biller_name: Optional[str] = None) -> Dict[str, Any]:
        if not get_config().enable_bill_payments:
            raise FeatureDisabledError("Bill payments are currently disabled")
        self.wallet_manager.check_daily_limit(user_id)

        reference = generate_reference(bill_kind.upper())
        txn = self.wallet_manager.debit(
            user_id, amount, TransactionType.BILL_PAYMENT, SystemAccount.BILLER_SETTLEMENT,
            description, reference=reference,
            metadata={"bill_type": bill_kind, **metadata},
            status=TransactionStatus.PENDING,
            insufficient_message="Insufficient wallet balance"
        )

        try:
            receipt = self.provider.pay_bill(customer, amount, bill_type, reference, biller_name)
        except ProviderError as e:
            self.wallet_manager.refund(txn.id, str(e))
            log_action(logger, "warning", "Bill payment failed, wallet refunded", user_id=user_id,
                       action=f"bills.{bill_kind}", resource=txn.id, extra={"reason": str(e)})
            self.notifications.notify_transaction(user_id, bill_kind, amount,
                                                  "failed and has been refunded")
            raise

        self.transaction_log.attach_metadata(txn.id, provider_receipt=receipt)
        txn = self.transaction_log.update_status(txn.id, TransactionStatus.COMPLETED)
        self.audit_trail.log_event(
            AuditEventType.BILL_PAYMENT, "transaction", txn.id,
            {"bill_type": bill_kind, "amount": str(amount.amount), "customer": customer},
            user_id=user_id
        )
        log_action(logger, "info", "Bill paid", user_id=user_id, action=f"bills.{bill_kind}",
                   resource=txn.id, extra={"amount": str(amount.amount)})
        self.notifications.notify_transaction(user_id, bill_kind.replace("_", " "), amount, "completed",
                                              data={"transaction_id": txn.id})
        return {
            "transaction": txn,
            "wallet": self.wallet_manager.get_wallet(user_id),
            "receipt": receipt,
        }
