"""
Ledger Service

Wires the database, stores, cache, transfer engine and account manager
together, and adds the operations that span more than one of them.
"""

from typing import Any, List, Optional

from .accounts import AccountManager, create_account_repository
from .cache import CacheClient, InMemoryCache, create_cache
from .config import LedgerConfig, get_config
from .errors import AccountNotFound, PermissionDenied
from .logging_config import get_logger
from .migrations import MigrationManager
from .models import Transaction
from .storage import Database, create_database
from .transactions import create_transaction_store
from .transfers import LockOrder, TransferEngine, TransferResult


logger = get_logger("bank_ledger.service")


class LedgerService:
    """Ledger system with all components initialized"""

    def __init__(self, database: Database, cache: Optional[CacheClient] = None,
                 config: Optional[LedgerConfig] = None):
        config = config or get_config()

        self.config = config
        self.database = database
        self.cache = cache if cache is not None else InMemoryCache()
        self.account_repository = create_account_repository(database)
        self.transaction_store = create_transaction_store(database)

        self.engine = TransferEngine(
            database,
            self.account_repository,
            self.transaction_store,
            lock_order=LockOrder(config.lock_order),
            default_timeout=config.lock_timeout_seconds,
        )
        self.account_manager = AccountManager(
            database,
            self.account_repository,
            self.cache,
            supported_currencies=config.supported_currencies,
            first_account_number=config.first_account_number,
            cache_ttl_seconds=config.cache_ttl_seconds,
            lock_timeout=config.lock_timeout_seconds,
        )

    @classmethod
    def from_config(cls, config: Optional[LedgerConfig] = None) -> 'LedgerService':
        """Build the service from configuration, migrating the schema if enabled"""
        config = config or get_config()
        database = create_database(
            config.database_url,
            busy_timeout=config.lock_timeout_seconds,
            pool_size=config.database_pool_size,
            pool_overflow=config.database_pool_overflow,
        )
        if config.auto_migrate:
            MigrationManager(database).migrate_up()

        cache = create_cache(config.cache_backend, config.redis_url, config.cache_prefix)
        logger.info("Ledger service initialized with %s database", database.dialect)
        return cls(database, cache=cache, config=config)

    def transfer(self, user_id: int, from_account_id: int, to_account_id: int, amount: Any,
                 timeout: Optional[float] = None) -> TransferResult:
        """Transfer money, then drop both owners' cached account listings"""
        result = self.engine.transfer_money(user_id, from_account_id, to_account_id, amount, timeout=timeout)
        self.account_manager.invalidate_for_transfer(result)
        return result

    def list_transactions_for_account(self, user_id: int, account_id: int) -> List[Transaction]:
        """
        Transaction history of an account owned by user_id, newest first

        Raises:
            AccountNotFound: If the account does not exist
            PermissionDenied: If user_id does not own the account
        """
        account = self.account_repository.get_account(account_id)
        if account is None:
            raise AccountNotFound()
        if account.user_id != user_id:
            raise PermissionDenied("you can only view transactions of your own accounts")
        return self.transaction_store.list_by_account_id(account_id)

    def close(self) -> None:
        self.database.close()
