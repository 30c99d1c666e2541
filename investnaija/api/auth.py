"""
System wiring and authentication/authorization dependencies
"""

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..admin import AdminService, Permission, has_permission
from ..audit import AuditTrail
from ..bills import BillPaymentService, FlutterwaveClient, MockFlutterwaveClient
from ..config import get_config
from ..crypto import CoinGeckoClient, CryptoTradingDesk
from ..dashboard import DashboardService
from ..errors import KYCRequiredError
from ..investments import InvestmentManager
from ..kyc import KYCManager
from ..ledger import GeneralLedger
from ..logging_config import get_logger
from ..notifications import NotificationChannel, NotificationEngine, TermiiSMSProvider
from ..otp import OTPService
from ..payments import MockPaystackClient, PaymentService, PaystackClient
from ..roundup import RoundupService
from ..storage import InMemoryStorage, SQLiteStorage
from ..transactions import TransactionLog
from ..users import User, UserManager
from ..wallets import WalletManager

logger = get_logger("investnaija.api")


class InvestNaijaSystem:
    """Every service of the platform, wired over one storage backend"""

    def __init__(self, use_sqlite: bool = True):
        config = get_config()

        if use_sqlite:
            self.storage = SQLiteStorage(config.database_path)
        else:
            self.storage = InMemoryStorage()

        self.audit_trail = AuditTrail(self.storage)
        self.ledger = GeneralLedger(self.storage, self.audit_trail)
        self.transaction_log = TransactionLog(self.storage, self.audit_trail)
        self.user_manager = UserManager(self.storage, self.audit_trail)

        self.sms_provider = self._create_sms_provider()
        self.notifications = NotificationEngine(self.storage, self.audit_trail)
        if self.sms_provider:
            self.notifications.register_provider(NotificationChannel.SMS, self.sms_provider)

        self.wallet_manager = WalletManager(
            self.storage, self.ledger, self.transaction_log,
            self.user_manager, self.notifications, self.audit_trail
        )
        self.kyc_manager = KYCManager(self.storage, self.user_manager, self.notifications, self.audit_trail)
        self.investment_manager = InvestmentManager(
            self.storage, self.wallet_manager, self.user_manager,
            self.ledger, self.notifications, self.audit_trail
        )
        self.dashboard_service = DashboardService(
            self.user_manager, self.wallet_manager, self.transaction_log, self.investment_manager
        )

        self.market_client = CoinGeckoClient(
            base_url=config.coingecko_base_url,
            api_key=config.coingecko_api_key or None,
            timeout=config.http_timeout,
            cache_ttl=config.crypto_cache_ttl_seconds
        )
        self.crypto_desk = CryptoTradingDesk(self.storage, self.wallet_manager,
                                             self.market_client, self.audit_trail)

        self.bill_service = BillPaymentService(
            self.wallet_manager, self.transaction_log, self._create_bills_client(),
            self.notifications, self.audit_trail
        )
        self.payment_service = PaymentService(
            self.wallet_manager, self.transaction_log, self.user_manager,
            self._create_payment_client(), self.audit_trail,
            webhook_secret=config.paystack_secret_key or None
        )
        self.otp_service = OTPService(self.storage, self.audit_trail, sms_provider=self.sms_provider)
        self.roundup_service = RoundupService(
            self.storage, self.wallet_manager, self.investment_manager,
            self.transaction_log, self.audit_trail
        )
        self.admin_service = AdminService(
            self.user_manager, self.wallet_manager, self.transaction_log,
            self.investment_manager, self.kyc_manager, self.ledger, self.audit_trail
        )

    def _create_sms_provider(self) -> Optional[TermiiSMSProvider]:
        config = get_config()
        if not config.termii_api_key:
            return None
        return TermiiSMSProvider(
            api_key=config.termii_api_key,
            sender_id=config.termii_sender_id,
            base_url=config.termii_base_url,
            timeout=config.http_timeout
        )

    def _create_payment_client(self) -> PaystackClient:
        """Paystack when a secret key is configured, the offline client otherwise"""
        config = get_config()
        if not config.paystack_secret_key:
            logger.warning("Paystack secret key not configured, using offline payment client")
            return MockPaystackClient(timeout=config.http_timeout)
        return PaystackClient(config.paystack_secret_key, config.paystack_base_url, config.http_timeout)

    def _create_bills_client(self) -> FlutterwaveClient:
        config = get_config()
        if not config.flutterwave_secret_key:
            logger.warning("Flutterwave secret key not configured, using offline bills client")
            return MockFlutterwaveClient(timeout=config.http_timeout)
        return FlutterwaveClient(config.flutterwave_secret_key, config.flutterwave_base_url,
                                 config.http_timeout)


# Global system instance, created on first use
system: Optional[InvestNaijaSystem] = None


def get_system() -> InvestNaijaSystem:
    global system
    if system is None:
        system = InvestNaijaSystem(use_sqlite=True)
    return system


def http_error(error: ValueError) -> HTTPException:
    """Translate a service error into the HTTP error the client sees"""
    return HTTPException(status_code=getattr(error, "status_code", 400), detail=str(error))


security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: InvestNaijaSystem = Depends(get_system)
) -> User:
    """Resolve the bearer token (JWT or session token) to an active user"""
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")
    try:
        return system.user_manager.resolve_token(credentials.credentials)
    except ValueError as e:
        raise http_error(e)


def require_permission(permission: Permission):
    """Dependency factory for staff-only routes"""
    def check(user: User = Depends(get_current_user)) -> User:
        if not has_permission(user, permission):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user
    return check


def require_staff(user: User = Depends(get_current_user)) -> User:
    if not user.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


def require_kyc(user: User = Depends(get_current_user)) -> User:
    if not user.is_verified:
        raise http_error(KYCRequiredError())
    return user
