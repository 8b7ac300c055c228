"""
Shared fixtures: a ledger service per storage backend
"""

import os
from decimal import Decimal

import pytest

from bank_ledger.cache import InMemoryCache
from bank_ledger.config import LedgerConfig
from bank_ledger.service import LedgerService


def make_config(database_url: str, **overrides) -> LedgerConfig:
    settings = dict(
        database_url=database_url,
        lock_timeout_seconds=10.0,
        cache_backend="memory",
        auto_migrate=True,
    )
    settings.update(overrides)
    return LedgerConfig(**settings)


def open_account(ledger: LedgerService, user_id: int, currency: str = "TRY", balance: str = "0.00"):
    """Create an account and fund it through a deposit"""
    account = ledger.account_manager.create_account(user_id, currency)
    if Decimal(balance) > 0:
        account = ledger.account_manager.deposit(account.id, balance)
    return account


def balance_of(ledger: LedgerService, account_id: int) -> Decimal:
    return ledger.account_repository.get_account(account_id).balance


@pytest.fixture
def memory_ledger():
    ledger = LedgerService.from_config(make_config("memory://"))
    yield ledger
    ledger.close()


@pytest.fixture
def sqlite_ledger(tmp_path):
    ledger = LedgerService.from_config(make_config(f"sqlite:///{tmp_path}/ledger.db"))
    yield ledger
    ledger.close()


@pytest.fixture(params=["memory", "sqlite", "postgresql"])
def ledger(request, tmp_path):
    """Ledger service over each backend; PostgreSQL only when a server is configured"""
    if request.param == "memory":
        service = LedgerService.from_config(make_config("memory://"))
    elif request.param == "sqlite":
        service = LedgerService.from_config(make_config(f"sqlite:///{tmp_path}/ledger.db"))
    else:
        url = os.getenv("LEDGER_TEST_POSTGRESQL_URL")
        if os.getenv("SKIP_POSTGRESQL_TESTS", "1") == "1" or not url:
            pytest.skip("PostgreSQL tests disabled (set SKIP_POSTGRESQL_TESTS=0 and LEDGER_TEST_POSTGRESQL_URL)")
        service = LedgerService.from_config(make_config(url))
        with service.database.atomic() as uow:
            uow.execute("DELETE FROM transactions")
            uow.execute("DELETE FROM accounts")

    yield service
    service.close()


@pytest.fixture
def cache():
    return InMemoryCache()
