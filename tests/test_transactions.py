"""
Test suite for the transaction log

Validates append-only ledger rows, symmetric source/destination matching
and newest-first ordering, plus the owner check on history reads.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from bank_ledger.errors import AccountNotFound, PermissionDenied, StorageFailure
from bank_ledger.models import Transaction
from bank_ledger.storage import InMemoryDatabase
from bank_ledger.transactions import (
    InMemoryTransactionLogStore, SQLTransactionLogStore, create_transaction_store
)

from conftest import open_account


class TestTransactionRecord:
    """Transaction dataclass invariants"""

    def test_amount_is_quantized(self):
        transaction = Transaction(from_account_id=1, to_account_id=2, amount=Decimal("5"))
        assert transaction.amount == Decimal("5.00")
        assert str(transaction.amount) == "5.00"

    def test_same_account_rejected(self):
        with pytest.raises(ValueError):
            Transaction(from_account_id=1, to_account_id=1, amount=Decimal("5.00"))

    def test_non_positive_amount_rejected(self):
        with pytest.raises(ValueError):
            Transaction(from_account_id=1, to_account_id=2, amount=Decimal("0"))

    def test_involves(self):
        transaction = Transaction(from_account_id=1, to_account_id=2, amount=Decimal("5.00"))
        assert transaction.involves(1)
        assert transaction.involves(2)
        assert not transaction.involves(3)

    def test_dict_round_trip(self):
        created_at = datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)
        transaction = Transaction(
            from_account_id=1, to_account_id=2, amount=Decimal("12.50"), id=7, created_at=created_at
        )
        data = transaction.to_dict()
        assert data["amount"] == "12.50"
        assert data["created_at"] == created_at.isoformat()
        assert Transaction.from_dict(data) == transaction


class TestTransactionLogStore:
    """Append and list against every backend"""

    def test_list_by_account_matches_both_sides(self, ledger):
        a = open_account(ledger, 1, "TRY", "100.00")
        b = open_account(ledger, 2, "TRY", "100.00")
        c = open_account(ledger, 3, "TRY", "100.00")

        ledger.transfer(1, a.id, b.id, "10.00")
        ledger.transfer(2, b.id, c.id, "20.00")
        ledger.transfer(3, c.id, a.id, "30.00")

        store = ledger.transaction_store
        assert len(store.list_by_account_id(a.id)) == 2
        assert len(store.list_by_account_id(b.id)) == 2
        assert len(store.list_by_account_id(c.id)) == 2
        assert all(t.involves(b.id) for t in store.list_by_account_id(b.id))

    def test_newest_first(self, ledger):
        a = open_account(ledger, 1, "USD", "100.00")
        b = open_account(ledger, 2, "USD")

        amounts = ["1.00", "2.00", "3.00"]
        for amount in amounts:
            ledger.transfer(1, a.id, b.id, amount)

        history = ledger.transaction_store.list_by_account_id(a.id)
        assert [str(t.amount) for t in history] == list(reversed(amounts))
        assert history[0].created_at >= history[-1].created_at

    def test_unknown_account_has_no_history(self, ledger):
        assert ledger.transaction_store.list_by_account_id(424242) == []

    def test_append_requires_matching_unit_of_work(self):
        store = InMemoryTransactionLogStore(InMemoryDatabase())
        transaction = Transaction(from_account_id=1, to_account_id=2, amount=Decimal("1.00"))
        with pytest.raises(StorageFailure):
            store.append_transaction(object(), transaction)

    def test_append_is_invisible_until_commit(self):
        database = InMemoryDatabase()
        store = InMemoryTransactionLogStore(database)

        uow = database.begin()
        stored = store.append_transaction(
            uow, Transaction(from_account_id=1, to_account_id=2, amount=Decimal("1.00"))
        )
        assert stored.id is not None
        assert stored.created_at is not None
        assert store.list_by_account_id(1) == []

        uow.rollback()
        assert store.list_by_account_id(1) == []

    def test_ties_broken_by_id(self):
        database = InMemoryDatabase()
        store = InMemoryTransactionLogStore(database)
        moment = datetime.now(timezone.utc)

        with database.atomic() as uow:
            for _ in range(3):
                uow.insert("transactions", {
                    "from_account_id": 1, "to_account_id": 2,
                    "amount": Decimal("1.00"), "created_at": moment,
                })
            uow.insert("transactions", {
                "from_account_id": 2, "to_account_id": 1,
                "amount": Decimal("1.00"), "created_at": moment - timedelta(seconds=1),
            })

        assert [t.id for t in store.list_by_account_id(1)] == [3, 2, 1, 4]

    def test_create_transaction_store(self, sqlite_ledger):
        assert isinstance(create_transaction_store(InMemoryDatabase()), InMemoryTransactionLogStore)
        assert isinstance(create_transaction_store(sqlite_ledger.database), SQLTransactionLogStore)


class TestTransactionHistory:
    """History reads through the ledger service"""

    def test_owner_can_read_history(self, ledger):
        a = open_account(ledger, 1, "TRY", "50.00")
        b = open_account(ledger, 2, "TRY")
        ledger.transfer(1, a.id, b.id, "5.00")

        assert len(ledger.list_transactions_for_account(1, a.id)) == 1
        assert len(ledger.list_transactions_for_account(2, b.id)) == 1

    def test_other_user_is_denied(self, ledger):
        a = open_account(ledger, 1, "TRY")
        with pytest.raises(PermissionDenied):
            ledger.list_transactions_for_account(2, a.id)

    def test_missing_account(self, ledger):
        with pytest.raises(AccountNotFound):
            ledger.list_transactions_for_account(1, 424242)
