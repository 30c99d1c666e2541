"""
Tests for the dashboard and portfolio views
"""

from datetime import timedelta

from investnaija.config import get_config
from investnaija.currency import naira


class TestDashboard:
    def test_empty_dashboard(self, system, make_user):
        user = make_user()
        data = system.dashboard_service.dashboard(user.id)

        assert data["user"]["id"] == user.id
        assert data["wallet"]["balance"] == "0.00"
        assert data["recent_transactions"] == []
        assert data["recent_investments"] == []
        assert data["investment_streak"] == 0
        assert data["monthly_goal"]["progress_percentage"] == "0.00"

    def test_goal_progress_and_recent_items(self, system, make_user):
        user = make_user(balance=30000)
        for _ in range(4):
            system.investment_manager.invest(user.id, "money_market_fund", naira(1000))

        data = system.dashboard_service.dashboard(user.id)

        assert len(data["recent_transactions"]) == 5
        assert len(data["recent_investments"]) == 3
        assert data["active_investments"] == 4
        assert data["monthly_goal"]["target"] == get_config().monthly_investment_goal
        assert data["monthly_goal"]["invested"] == "4000.00"
        assert data["monthly_goal"]["progress_percentage"] == "40.00"
        assert data["investment_streak"] == 1

    def test_goal_progress_is_capped(self, system, make_user):
        user = make_user(balance=30000)
        system.investment_manager.invest(user.id, "money_market_fund", naira(25000))
        data = system.dashboard_service.dashboard(user.id)
        assert data["monthly_goal"]["progress_percentage"] == "100.00"

    def test_streak_window(self, system, make_user):
        user = make_user(balance=5000)
        investment = system.investment_manager.invest(user.id, "money_market_fund", naira(1000))
        later = investment.created_at + timedelta(days=31)
        assert system.dashboard_service.investment_streak(user.id, now=later) == 0


class TestPortfolio:
    def test_portfolio(self, system, make_user):
        user = make_user(balance=10000)
        investment = system.investment_manager.invest(user.id, "money_market_fund", naira(4000))
        system.investment_manager.accrue_returns(as_of=investment.created_at + timedelta(days=30))

        data = system.dashboard_service.portfolio(user.id)

        # 4000 at 12.5% for 30 days
        assert data["summary"]["current_value"] == "4041.10"
        assert data["total_value"] == "10041.10"
        assert data["performance_percentage"] == "1.03"
        assert [i["id"] for i in data["investments"]] == [investment.id]

    def test_withdrawn_investments_are_hidden(self, system, make_user):
        user = make_user(balance=10000)
        investment = system.investment_manager.invest(user.id, "money_market_fund", naira(4000))
        system.investment_manager.withdraw_investment(user.id, investment.id, naira(4000))

        data = system.dashboard_service.portfolio(user.id)
        assert data["investments"] == []
        assert data["total_value"] == "10000.00"
        assert data["performance_percentage"] == "0.00"
