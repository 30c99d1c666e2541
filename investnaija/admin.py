"""
Admin Console Module

Staff permissions, platform statistics, user management and the
wallet-versus-ledger reconciliation used by operations.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from .audit import AuditTrail, AuditEventType
from .currency import zero
from .errors import PermissionDeniedError, ValidationError
from .investments import InvestmentManager, InvestmentStatus
from .kyc import KYCManager
from .ledger import GeneralLedger
from .logging_config import get_logger, log_action
from .transactions import TransactionLog, TransactionStatus
from .users import KYCStatus, User, UserManager, UserRole, UserStatus
from .wallets import WalletManager

logger = get_logger("investnaija.admin")


class Permission(Enum):
    VIEW_USERS = "view_users"
    VIEW_TRANSACTIONS = "view_transactions"
    MANAGE_KYC = "manage_kyc"
    VIEW_ANALYTICS = "view_analytics"
    MANAGE_USERS = "manage_users"
    MANAGE_ADMINS = "manage_admins"
    SYSTEM_SETTINGS = "system_settings"


ADMIN_PERMISSIONS = {
    Permission.VIEW_USERS,
    Permission.VIEW_TRANSACTIONS,
    Permission.MANAGE_KYC,
    Permission.VIEW_ANALYTICS,
}

ROLE_PERMISSIONS: Dict[UserRole, Set[Permission]] = {
    UserRole.USER: set(),
    UserRole.ADMIN: ADMIN_PERMISSIONS,
    UserRole.SUPER_ADMIN: ADMIN_PERMISSIONS | {
        Permission.MANAGE_USERS,
        Permission.MANAGE_ADMINS,
        Permission.SYSTEM_SETTINGS,
    },
}


def permissions_for(user: User) -> Set[Permission]:
    return ROLE_PERMISSIONS.get(user.role, set())


def has_permission(user: User, permission: Permission) -> bool:
    return permission in permissions_for(user)


class AdminService:
    def __init__(self, user_manager: UserManager, wallet_manager: WalletManager,
                 transaction_log: TransactionLog, investment_manager: InvestmentManager,
                 kyc_manager: KYCManager, ledger: GeneralLedger, audit_trail: AuditTrail):
        self.user_manager = user_manager
        self.wallet_manager = wallet_manager
        self.transaction_log = transaction_log
        self.investment_manager = investment_manager
        self.kyc_manager = kyc_manager
        self.ledger = ledger
        self.audit_trail = audit_trail

    def stats(self) -> Dict[str, Any]:
        users = self.user_manager.list_users()
        wallets = self.wallet_manager.all_wallets()
        transactions = self.transaction_log.all()
        completed = [t for t in transactions if t.status == TransactionStatus.COMPLETED]

        return {
            "total_users": len(users),
            "active_users": sum(1 for u in users if u.status == UserStatus.ACTIVE),
            "verified_users": sum(1 for u in users if u.kyc_status == KYCStatus.VERIFIED),
            "pending_kyc": sum(1 for u in users if u.kyc_status == KYCStatus.PENDING and (u.bvn or u.nin)),
            "total_wallet_balance": str(sum((w.balance for w in wallets), zero()).amount),
            "total_aum": str(sum((w.total_invested for w in wallets), zero()).amount),
            "total_transactions": len(transactions),
            "transaction_volume": str(sum((t.amount for t in completed), zero()).amount),
            "active_investments": sum(
                1 for i in self.investment_manager.all_investments()
                if i.status == InvestmentStatus.ACTIVE
            ),
        }

    def list_users(self, search: Optional[str] = None, status: Optional[str] = None,
                   kyc_status: Optional[str] = None, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        if page < 1 or not 1 <= limit <= 100:
            raise ValidationError("Invalid pagination parameters")

        users = self.user_manager.search(search) if search else self.user_manager.list_users()
        if status:
            users = [u for u in users if u.status.value == status]
        if kyc_status:
            users = [u for u in users if u.kyc_status.value == kyc_status]

        total = len(users)
        start = (page - 1) * limit
        rows = []
        for user in users[start:start + limit]:
            wallet = self.wallet_manager.find_wallet(user.id)
            rows.append({
                **user.to_public(),
                "wallet_balance": str(wallet.balance.amount) if wallet else "0.00",
                "total_invested": str(wallet.total_invested.amount) if wallet else "0.00",
            })
        return {
            "users": rows,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": (total + limit - 1) // limit,
            },
        }

    def user_details(self, user_id: str) -> Dict[str, Any]:
        user = self.user_manager.require_user(user_id)
        wallet = self.wallet_manager.find_wallet(user_id)
        return {
            "user": user.to_public(),
            "wallet": wallet.to_api() if wallet else None,
            "recent_transactions": [t.to_api() for t in self.transaction_log.recent(user_id, 10)],
            "investments": [i.to_api() for i in self.investment_manager.for_user(user_id)],
            "kyc": self.kyc_manager.status(user_id),
        }

    def update_kyc(self, actor: User, user_id: str, status: str) -> Dict[str, Any]:
        self._require(actor, Permission.MANAGE_KYC)
        return self.kyc_manager.review(user_id, status, reviewer_id=actor.id)

    def update_status(self, actor: User, user_id: str, status: str) -> Dict[str, Any]:
        """Suspend or reactivate a user; super admins only"""
        self._require(actor, Permission.MANAGE_USERS)
        try:
            new_status = UserStatus(status)
        except ValueError:
            raise ValidationError("Status must be active or suspended")
        if user_id == actor.id and new_status == UserStatus.SUSPENDED:
            raise ValidationError("You cannot suspend your own account")

        user = self.user_manager.set_status(user_id, new_status, actor_id=actor.id)
        log_action(logger, "info", "User status changed", user_id=actor.id,
                   action="admin.update_status", resource=user_id, extra={"status": new_status.value})
        return user.to_public()

    def reconcile(self, actor: Optional[User] = None) -> Dict[str, Any]:
        """
        Compare every cached wallet balance with the balance derived from
        the ledger, and check the trial balance nets to zero.
        """
        mismatches: List[Dict[str, str]] = []
        wallets = self.wallet_manager.all_wallets()
        for wallet in wallets:
            ledger_balance = self.ledger.wallet_balance(wallet.user_id)
            if ledger_balance != wallet.balance:
                mismatches.append({
                    "user_id": wallet.user_id,
                    "wallet_balance": str(wallet.balance.amount),
                    "ledger_balance": str(ledger_balance.amount),
                })

        trial_balance = self.ledger.get_trial_balance()
        net = sum((balance.amount for balance in trial_balance.values()), Decimal("0"))
        result = {
            "wallets_checked": len(wallets),
            "mismatches": mismatches,
            "trial_balance_net": str(net),
            "balanced": not mismatches and net == 0,
        }

        self.audit_trail.log_event(
            AuditEventType.RECONCILIATION_RUN, "ledger", "reconciliation",
            {"wallets_checked": len(wallets), "mismatches": len(mismatches), "balanced": result["balanced"]},
            user_id=actor.id if actor else None
        )
        level = "info" if result["balanced"] else "error"
        log_action(logger, level, "Ledger reconciliation completed", action="admin.reconcile",
                   extra={"mismatches": len(mismatches), "trial_balance_net": str(net)})
        return result

    def audit_integrity(self, actor: Optional[User] = None) -> Dict[str, Any]:
        result = self.audit_trail.verify_integrity()
        self.audit_trail.log_event(
            AuditEventType.AUDIT_INTEGRITY_CHECK, "audit", "chain",
            {"valid": result["valid"], "total_events": result["total_events"]},
            user_id=actor.id if actor else None
        )
        return result

    def _require(self, actor: User, permission: Permission) -> None:
        if not has_permission(actor, permission):
            raise PermissionDeniedError("Insufficient permissions")
