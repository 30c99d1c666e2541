"""
Dashboard Module

Read-only aggregation of a user's wallet, activity and investments for
the home screen and the portfolio screen.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from .config import get_config
from .investments import InvestmentManager, InvestmentStatus
from .transactions import TransactionLog
from .users import UserManager
from .wallets import WalletManager


class DashboardService:
    def __init__(self, user_manager: UserManager, wallet_manager: WalletManager,
                 transaction_log: TransactionLog, investment_manager: InvestmentManager):
        self.user_manager = user_manager
        self.wallet_manager = wallet_manager
        self.transaction_log = transaction_log
        self.investment_manager = investment_manager

    def dashboard(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Home screen payload: wallet, 5 most recent transactions, 3 most
        recent investments, progress towards the monthly investment goal
        and the investment streak.
        """
        now = now or datetime.now(timezone.utc)
        user = self.user_manager.require_user(user_id)
        wallet = self.wallet_manager.get_wallet(user_id)
        investments = self.investment_manager.for_user(user_id)

        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        invested_this_month = sum(
            (i.principal.amount for i in investments if i.created_at >= month_start),
            Decimal("0")
        )
        goal = Decimal(get_config().monthly_investment_goal)
        progress = min(invested_this_month / goal * Decimal("100"), Decimal("100")) if goal else Decimal("0")

        return {
            "user": user.to_public(),
            "wallet": wallet.to_api(),
            "recent_transactions": [t.to_api() for t in self.transaction_log.recent(user_id, 5)],
            "recent_investments": [i.to_api() for i in investments[:3]],
            "active_investments": sum(1 for i in investments if i.status == InvestmentStatus.ACTIVE),
            "monthly_goal": {
                "target": str(goal),
                "invested": str(invested_this_month),
                "progress_percentage": str(progress.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)),
            },
            "investment_streak": self.investment_streak(user_id, now),
        }

    def investment_streak(self, user_id: str, now: Optional[datetime] = None) -> int:
        """Distinct days with an investment in the last 30 days"""
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=30)
        days = {
            i.created_at.date()
            for i in self.investment_manager.for_user(user_id)
            if i.created_at >= since
        }
        return len(days)

    def portfolio(self, user_id: str) -> Dict[str, Any]:
        wallet = self.wallet_manager.get_wallet(user_id)
        summary = self.investment_manager.portfolio_summary(user_id)
        invested = wallet.total_invested.amount
        performance = Decimal("0.00")
        if invested:
            performance = (wallet.total_returns.amount / invested * Decimal("100")).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )
        return {
            "wallet": wallet.to_api(),
            "total_value": str(wallet.balance.amount + Decimal(summary["current_value"])),
            "performance_percentage": str(performance),
            "summary": summary,
            "investments": [
                i.to_api() for i in self.investment_manager.for_user(user_id)
                if i.status != InvestmentStatus.WITHDRAWN
            ],
        }
