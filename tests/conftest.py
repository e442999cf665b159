"""
Shared fixtures: an in-memory ledger frozen on 2024-01-15 with two
accounts and a few categories.
"""

import pytest

from finledger.config import LedgerSettings
from finledger.dates import FixedClock
from finledger.ledger import Ledger
from finledger.services.storage import InMemoryStorage


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def clock():
    return FixedClock("2024-01-15")


@pytest.fixture
def settings():
    return LedgerSettings(_env_file=None)


@pytest.fixture
def ledger(storage, settings, clock):
    return Ledger(storage=storage, settings=settings, clock=clock)


@pytest.fixture
def checking(ledger):
    group = ledger.state.account_groups[0]
    return ledger.add_account({"name": "Checking", "account_group_id": group.id})


@pytest.fixture
def savings(ledger):
    group = ledger.state.account_groups[1]
    return ledger.add_account({
        "name": "Savings",
        "account_group_id": group.id,
        "account_type": "SAVINGS",
    })


@pytest.fixture
def available_funds(ledger):
    return ledger.get_available_funds_category()


@pytest.fixture
def groceries(ledger):
    return ledger.add_category({"name": "Groceries"})


@pytest.fixture
def housing(ledger):
    return ledger.add_category({"name": "Housing"})


@pytest.fixture
def salary(ledger):
    return ledger.add_category({"name": "Salary", "is_income_category": True})


@pytest.fixture
def expense(ledger, checking, groceries):
    """Book an expense on Checking/Groceries."""

    def _expense(amount, on, **extra):
        return ledger.add_transaction({
            "type": "EXPENSE",
            "account_id": checking.id,
            "category_id": groceries.id,
            "date": on,
            "amount": amount,
            **extra,
        })

    return _expense
