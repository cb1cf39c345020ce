"""
Fixtures for credit ledger tests.
"""

import pytest
from uuid import uuid4

from modules.credit_ledger import CreditLedger, InMemoryCreditStore


@pytest.fixture
def store():
    return InMemoryCreditStore()


@pytest.fixture
def ledger(store):
    return CreditLedger(store)


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def job_id():
    return uuid4()
