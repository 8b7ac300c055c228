"""
Account Management Module

Account storage contracts and implementations, plus the account-listing
component that owns the cache. The transfer engine only depends on the
narrow AccountStore capability (locked read and balance overwrite); account
creation, listing and deposits go through AccountRepository and
AccountManager.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Iterable, List, Optional
import json
import uuid

from .cache import CacheClient
from .currency import ZERO, normalize_currency, to_amount
from .errors import AccountNotFound, LedgerError, StorageFailure
from .logging_config import get_logger, log_action
from .models import Account, utcnow
from .storage import (
    Database, InMemoryDatabase, InMemoryUnitOfWork, SQLDatabase, SQLUnitOfWork, UnitOfWork
)


ACCOUNT_COLUMNS = "id, user_id, account_number, balance, currency, created_at"
NUMBER_SEQUENCE_KEY = "account_number_sequence"

logger = get_logger("bank_ledger.accounts")


class AccountStore(ABC):
    """Locked reads and balance updates, always inside the caller's unit of work"""

    @abstractmethod
    def get_account_for_update(self, uow: UnitOfWork, account_id: int) -> Optional[Account]:
        """
        Read an account and take its exclusive row lock

        The lock is held until uow commits or rolls back, blocking other
        locked readers and writers of the same row.

        Returns:
            The account, or None if it does not exist
        """
        pass

    @abstractmethod
    def update_balance(self, uow: UnitOfWork, account_id: int, new_balance: Decimal) -> None:
        """Overwrite the balance of a locked account"""
        pass


class AccountRepository(AccountStore):
    """Full account storage: creation and reads outside a unit of work"""

    @abstractmethod
    def get_account(self, account_id: int) -> Optional[Account]:
        pass

    @abstractmethod
    def list_by_user(self, user_id: int) -> List[Account]:
        pass

    @abstractmethod
    def list_all(self) -> List[Account]:
        pass

    @abstractmethod
    def last_account_number(self, uow: UnitOfWork) -> Optional[int]:
        """Highest assigned account number; serializes concurrent creators"""
        pass

    @abstractmethod
    def insert_account(self, uow: UnitOfWork, account: Account) -> Account:
        """Insert a new account; the store assigns id and created_at"""
        pass


class InMemoryAccountRepository(AccountRepository):
    """AccountRepository over InMemoryDatabase"""

    table = "accounts"

    def __init__(self, database: InMemoryDatabase):
        self.database = database

    @staticmethod
    def _require(uow: UnitOfWork) -> InMemoryUnitOfWork:
        if not isinstance(uow, InMemoryUnitOfWork):
            raise StorageFailure("in-memory store requires an in-memory unit of work")
        uow.ensure_active()
        return uow

    def get_account_for_update(self, uow: UnitOfWork, account_id: int) -> Optional[Account]:
        uow = self._require(uow)
        logger.debug("Locking account %s for update", account_id)
        uow.lock(self.table, account_id)
        row = uow.read(self.table, account_id)
        return Account.from_dict(row) if row is not None else None

    def update_balance(self, uow: UnitOfWork, account_id: int, new_balance: Decimal) -> None:
        uow = self._require(uow)
        row = uow.read(self.table, account_id)
        if row is None:
            raise StorageFailure(f"account {account_id} does not exist")
        row["balance"] = new_balance
        uow.write(self.table, account_id, row)

    def get_account(self, account_id: int) -> Optional[Account]:
        row = self.database.get(self.table, account_id)
        return Account.from_dict(row) if row is not None else None

    def list_by_user(self, user_id: int) -> List[Account]:
        rows = self.database.select(self.table, lambda row: row["user_id"] == user_id)
        return sorted((Account.from_dict(row) for row in rows), key=lambda a: a.id)

    def list_all(self) -> List[Account]:
        return sorted((Account.from_dict(row) for row in self.database.select(self.table)), key=lambda a: a.id)

    def last_account_number(self, uow: UnitOfWork) -> Optional[int]:
        uow = self._require(uow)
        uow.lock(self.table, NUMBER_SEQUENCE_KEY)
        numbers = [row["account_number"] for row in self.database.select(self.table)]
        numbers += [row["account_number"] for row in uow.pending(self.table)]
        return max(numbers) if numbers else None

    def insert_account(self, uow: UnitOfWork, account: Account) -> Account:
        uow = self._require(uow)
        row = account.to_dict()
        row.update(balance=account.balance, created_at=utcnow())
        row.pop("id", None)
        return Account.from_dict(uow.insert(self.table, row))


class SQLAccountRepository(AccountRepository):
    """AccountRepository over SQLite or PostgreSQL"""

    def __init__(self, database: SQLDatabase):
        self.database = database

    @staticmethod
    def _require(uow: UnitOfWork) -> SQLUnitOfWork:
        if not isinstance(uow, SQLUnitOfWork):
            raise StorageFailure("SQL store requires a SQL unit of work")
        uow.ensure_active()
        return uow

    def get_account_for_update(self, uow: UnitOfWork, account_id: int) -> Optional[Account]:
        uow = self._require(uow)
        logger.debug("Locking account %s for update", account_id)
        uow.bound_lock_wait()
        rows = uow.fetch(
            f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE id = ?{self.database.for_update_clause}",
            (account_id,)
        )
        if not rows:
            logger.info("Account %s not found for update", account_id)
            return None
        return Account.from_dict(rows[0])

    def update_balance(self, uow: UnitOfWork, account_id: int, new_balance: Decimal) -> None:
        uow = self._require(uow)
        updated = uow.execute("UPDATE accounts SET balance = ? WHERE id = ?", (new_balance, account_id))
        if updated != 1:
            raise StorageFailure(f"account {account_id} does not exist")

    def get_account(self, account_id: int) -> Optional[Account]:
        rows = self.database.fetch(f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE id = ?", (account_id,))
        return Account.from_dict(rows[0]) if rows else None

    def list_by_user(self, user_id: int) -> List[Account]:
        rows = self.database.fetch(
            f"SELECT {ACCOUNT_COLUMNS} FROM accounts WHERE user_id = ? ORDER BY id", (user_id,)
        )
        return [Account.from_dict(row) for row in rows]

    def list_all(self) -> List[Account]:
        rows = self.database.fetch(f"SELECT {ACCOUNT_COLUMNS} FROM accounts ORDER BY id")
        return [Account.from_dict(row) for row in rows]

    def last_account_number(self, uow: UnitOfWork) -> Optional[int]:
        uow = self._require(uow)
        lock_statement = self.database.table_lock_statement("accounts")
        if lock_statement:
            uow.bound_lock_wait()
            uow.execute(lock_statement)
        rows = uow.fetch("SELECT MAX(account_number) AS last_number FROM accounts")
        value = rows[0]["last_number"] if rows else None
        return int(value) if value is not None else None

    def insert_account(self, uow: UnitOfWork, account: Account) -> Account:
        uow = self._require(uow)
        created_at = utcnow()
        account_id = uow.insert(
            "INSERT INTO accounts (user_id, account_number, balance, currency, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (account.user_id, account.account_number, account.balance, account.currency, created_at)
        )
        return Account(
            id=account_id,
            user_id=account.user_id,
            account_number=account.account_number,
            balance=account.balance,
            currency=account.currency,
            created_at=created_at,
        )


def create_account_repository(database: Database) -> AccountRepository:
    if isinstance(database, InMemoryDatabase):
        return InMemoryAccountRepository(database)
    if isinstance(database, SQLDatabase):
        return SQLAccountRepository(database)
    raise ValueError(f"No account repository for {type(database).__name__}")


def cache_key_for_user(user_id: int) -> str:
    return f"accounts:{user_id}"


def generation_key_for_user(user_id: int) -> str:
    return f"accounts:{user_id}:generation"


class AccountManager:
    """
    Account lifecycle and the cached account-listing read path.

    Listings use cache-aside on ``accounts:{user_id}``. Every write that
    changes a user's accounts (creation, deposit, transfer) drops that key
    and replaces the user's generation token. A cached listing is only served
    while it carries the current token, so a listing read from the database
    before a write cannot be served after it.
    """

    def __init__(
        self,
        database: Database,
        accounts: AccountRepository,
        cache: CacheClient,
        supported_currencies: Iterable[str] = ("TRY", "USD", "EUR"),
        first_account_number: int = 1000000000,
        cache_ttl_seconds: int = 600,
        lock_timeout: Optional[float] = None
    ):
        self.database = database
        self.accounts = accounts
        self.cache = cache
        self.supported_currencies = tuple(supported_currencies)
        self.first_account_number = first_account_number
        self.cache_ttl_seconds = cache_ttl_seconds
        self.lock_timeout = lock_timeout

    def create_account(self, user_id: int, currency: str) -> Account:
        """
        Create a zero-balance account with the next sequential account number

        Raises:
            UnsupportedCurrency: If currency is not one of the supported codes
            StorageFailure: If the insert fails
        """
        currency = normalize_currency(currency, self.supported_currencies)

        try:
            with self.database.atomic(timeout=self.lock_timeout) as uow:
                last_number = self.accounts.last_account_number(uow)
                if last_number is None:
                    last_number = self.first_account_number
                account = self.accounts.insert_account(uow, Account(
                    user_id=user_id,
                    account_number=last_number + 1,
                    currency=currency,
                    balance=ZERO,
                ))
        except LedgerError:
            raise
        except Exception as e:
            raise StorageFailure(f"could not create account: {e}") from e

        log_action(
            logger, "info", "Account created",
            user_id=user_id, action="create_account", resource=f"account:{account.id}",
            extra={"account_number": account.account_number, "currency": currency}
        )

        self.invalidate_users(user_id)
        return account

    def get_account(self, account_id: int) -> Account:
        """Get an account by id, raising AccountNotFound if it does not exist"""
        account = self.accounts.get_account(account_id)
        if account is None:
            raise AccountNotFound()
        return account

    def list_accounts_for_user(self, user_id: int) -> List[Account]:
        """List a user's accounts, served from the cache when possible"""
        key = cache_key_for_user(user_id)
        # Must be read before the database query
        generation = self.cache.get(generation_key_for_user(user_id))

        cached = self.cache.get(key)
        if cached is not None:
            try:
                entry = json.loads(cached)
                if entry["generation"] == generation:
                    return [Account.from_dict(item) for item in entry["accounts"]]
                logger.debug("Discarding outdated cache entry %s", key)
            except (ValueError, KeyError, TypeError):
                logger.warning("Discarding unreadable cache entry %s", key)

        accounts = self.accounts.list_by_user(user_id)
        entry = {"generation": generation, "accounts": [a.to_dict() for a in accounts]}
        self.cache.set(key, json.dumps(entry), self.cache_ttl_seconds)
        return accounts

    def list_all_accounts(self) -> List[Account]:
        """List every account (admin view, never cached)"""
        return self.accounts.list_all()

    def deposit(self, account_id: int, amount) -> Account:
        """
        Add funds to an account

        Args:
            account_id: Account to credit
            amount: Positive amount with at most two decimal places

        Returns:
            The account with its updated balance

        Raises:
            InvalidAmount: If amount is not a valid positive amount
            AccountNotFound: If the account does not exist
            StorageFailure: On any datastore error
        """
        amount = to_amount(amount)

        try:
            with self.database.atomic(timeout=self.lock_timeout) as uow:
                account = self.accounts.get_account_for_update(uow, account_id)
                if account is None:
                    raise AccountNotFound()
                updated = account.with_balance(account.balance + amount)
                self.accounts.update_balance(uow, account_id, updated.balance)
        except LedgerError:
            raise
        except Exception as e:
            raise StorageFailure(f"could not deposit to account {account_id}: {e}") from e

        log_action(
            logger, "info", "Funds deposited",
            user_id=updated.user_id, action="deposit", resource=f"account:{account_id}",
            extra={"amount": str(amount), "balance": str(updated.balance)}
        )

        self.invalidate_users(updated.user_id)
        return updated

    def invalidate_users(self, *user_ids: int) -> None:
        """Drop the cached account listing of every given user"""
        users = sorted(set(user_ids))
        if not users:
            return
        # Outlives any listing stored under the previous token
        generation_ttl = self.cache_ttl_seconds * 2 if self.cache_ttl_seconds else None
        for user_id in users:
            self.cache.set(generation_key_for_user(user_id), uuid.uuid4().hex, generation_ttl)
        self.cache.delete(*[cache_key_for_user(user_id) for user_id in users])

    def invalidate_for_transfer(self, result) -> None:
        """Drop both parties' listings after a committed transfer"""
        self.invalidate_users(result.source_owner_id, result.destination_owner_id)
