"""
Shared fixtures: a fully wired in-memory platform and user factories
"""

import itertools

import pytest

from investnaija.api.auth import InvestNaijaSystem
from investnaija.currency import naira
from investnaija.users import KYCStatus
from investnaija.wallets import FundingSource

_counter = itertools.count(1)


@pytest.fixture
def system():
    return InvestNaijaSystem(use_sqlite=False)


@pytest.fixture
def make_user(system):
    """Register a user with a wallet, optionally verified and pre-funded"""
    def factory(email=None, verified=False, balance=None, phone=None, first_name="Ada"):
        n = next(_counter)
        user = system.user_manager.register(
            email=email or f"user{n}@example.com",
            password="Password123",
            first_name=first_name,
            last_name="Obi",
            phone=phone
        )
        system.wallet_manager.create_wallet(user.id)
        if verified:
            user = system.user_manager.set_kyc_status(user.id, KYCStatus.VERIFIED)
        if balance:
            system.wallet_manager.add_funds(user.id, naira(balance), FundingSource.ADMIN_ADJUSTMENT)
        return user
    return factory
