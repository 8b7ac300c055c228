"""
Transaction Log Module

Append-only storage for ledger entries. Rows are inserted inside the
transfer's unit of work and are never updated or deleted afterwards.
"""

from abc import ABC, abstractmethod
from typing import List

from .errors import StorageFailure
from .logging_config import get_logger
from .models import Transaction, utcnow
from .storage import (
    Database, InMemoryDatabase, InMemoryUnitOfWork, SQLDatabase, SQLUnitOfWork, UnitOfWork
)


TRANSACTION_COLUMNS = "id, from_account_id, to_account_id, amount, created_at"

logger = get_logger("bank_ledger.transactions")


class TransactionLogStore(ABC):
    """Append-only ledger of completed transfers"""

    @abstractmethod
    def append_transaction(self, uow: UnitOfWork, transaction: Transaction) -> Transaction:
        """
        Insert one ledger row inside the caller's unit of work

        Returns:
            The stored transaction with id and created_at assigned
        """
        pass

    @abstractmethod
    def list_by_account_id(self, account_id: int) -> List[Transaction]:
        """Committed transactions where the account is either side, newest first"""
        pass


class InMemoryTransactionLogStore(TransactionLogStore):
    """TransactionLogStore over InMemoryDatabase"""

    table = "transactions"

    def __init__(self, database: InMemoryDatabase):
        self.database = database

    def append_transaction(self, uow: UnitOfWork, transaction: Transaction) -> Transaction:
        if not isinstance(uow, InMemoryUnitOfWork):
            raise StorageFailure("in-memory store requires an in-memory unit of work")
        logger.info(
            "Appending transaction %s -> %s (%s)",
            transaction.from_account_id, transaction.to_account_id, transaction.amount
        )
        row = uow.insert(self.table, {
            "from_account_id": transaction.from_account_id,
            "to_account_id": transaction.to_account_id,
            "amount": transaction.amount,
            "created_at": utcnow(),
        })
        return Transaction.from_dict(row)

    def list_by_account_id(self, account_id: int) -> List[Transaction]:
        transactions = [Transaction.from_dict(row) for row in self.database.select(self.table)]
        return sorted(
            (t for t in transactions if t.involves(account_id)),
            key=lambda t: (t.created_at, t.id),
            reverse=True
        )


class SQLTransactionLogStore(TransactionLogStore):
    """TransactionLogStore over SQLite or PostgreSQL"""

    def __init__(self, database: SQLDatabase):
        self.database = database

    def append_transaction(self, uow: UnitOfWork, transaction: Transaction) -> Transaction:
        if not isinstance(uow, SQLUnitOfWork):
            raise StorageFailure("SQL store requires a SQL unit of work")
        logger.info(
            "Appending transaction %s -> %s (%s)",
            transaction.from_account_id, transaction.to_account_id, transaction.amount
        )
        created_at = utcnow()
        transaction_id = uow.insert(
            "INSERT INTO transactions (from_account_id, to_account_id, amount, created_at) "
            "VALUES (?, ?, ?, ?)",
            (transaction.from_account_id, transaction.to_account_id, transaction.amount, created_at)
        )
        return Transaction(
            id=transaction_id,
            from_account_id=transaction.from_account_id,
            to_account_id=transaction.to_account_id,
            amount=transaction.amount,
            created_at=created_at,
        )

    def list_by_account_id(self, account_id: int) -> List[Transaction]:
        rows = self.database.fetch(
            f"SELECT {TRANSACTION_COLUMNS} FROM transactions "
            "WHERE from_account_id = ? OR to_account_id = ? "
            "ORDER BY created_at DESC, id DESC",
            (account_id, account_id)
        )
        return [Transaction.from_dict(row) for row in rows]


def create_transaction_store(database: Database) -> TransactionLogStore:
    if isinstance(database, InMemoryDatabase):
        return InMemoryTransactionLogStore(database)
    if isinstance(database, SQLDatabase):
        return SQLTransactionLogStore(database)
    raise ValueError(f"No transaction store for {type(database).__name__}")
