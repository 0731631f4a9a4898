"""Pytest configuration and fixtures."""

import os
from datetime import date
from decimal import Decimal
from itertools import count
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("FILING_GATEWAY_URL", "http://localhost:8100")
os.environ.setdefault("PAYER_NAME", "Test Property Co")
os.environ.setdefault("PAYER_TIN", "12-3456789")

from rentledger.models import BankAccount, Transaction  # noqa: E402
from rentledger.statements import StatementBuilder  # noqa: E402
from rentledger.store import InMemoryLedgerStore  # noqa: E402

TODAY = date(2024, 6, 30)


@pytest.fixture
def store():
    """An empty in-memory ledger store with one bank account."""
    store = InMemoryLedgerStore()
    store.add_account(BankAccount(id="acct-1", name="Operating"))
    return store


@pytest.fixture
def builder(store):
    """StatementBuilder pinned to a fixed 'today'."""
    return StatementBuilder(store, today=lambda: TODAY)


@pytest.fixture
def make_tx():
    """Factory for ledger transactions with sequential ids."""
    ids = count(1)

    def _make(
        amount,
        category="rent_income",
        type="income",
        on=date(2024, 1, 15),
        **kwargs,
    ) -> Transaction:
        kwargs.setdefault("account_id", "acct-1")
        return Transaction(
            id=kwargs.pop("id", f"tx-{next(ids)}"),
            date=on,
            amount=Decimal(str(amount)),
            category=category,
            type=type,
            **kwargs,
        )

    return _make


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.post = AsyncMock()
    client.aclose = AsyncMock()
    return client
