"""
Transfer Engine

Moves funds between two accounts as one atomic unit of work:

1. reject same-account transfers and invalid amounts before any I/O
2. lock both accounts (read-for-update)
3. check ownership, funds and currency
4. debit the source, credit the destination, append the ledger entry
5. commit, or roll back everything on any failure

The engine never retries. A transfer is not idempotent: calling it twice
moves the money twice and writes two ledger rows.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from .accounts import AccountStore
from .currency import to_amount
from .errors import (
    CurrencyMismatch, InsufficientFunds, LedgerError, PermissionDenied,
    ReceiverAccountNotFound, SameAccountTransfer, SenderAccountNotFound, StorageFailure
)
from .logging_config import get_logger, log_action
from .models import Account, Transaction
from .storage import Database, UnitOfWork
from .transactions import TransactionLogStore


class LockOrder(Enum):
    """Order in which the two account rows are locked"""
    ASCENDING = "ascending"  # Lower account id first, whatever the direction
    CALLER = "caller"        # Source first, then destination


@dataclass(frozen=True)
class TransferResult:
    """
    A committed transfer. Carries both owners so the listing layer can
    invalidate their cached account lists.
    """
    transaction: Transaction
    source_owner_id: int
    destination_owner_id: int

    @property
    def affected_user_ids(self) -> FrozenSet[int]:
        return frozenset((self.source_owner_id, self.destination_owner_id))


class TransferEngine:
    """Executes money transfers under row-level locks"""

    def __init__(
        self,
        database: Database,
        account_store: AccountStore,
        transaction_store: TransactionLogStore,
        lock_order: LockOrder = LockOrder.ASCENDING,
        default_timeout: Optional[float] = None
    ):
        self.database = database
        self.account_store = account_store
        self.transaction_store = transaction_store
        self.lock_order = lock_order
        self.default_timeout = default_timeout
        self.logger = get_logger("bank_ledger.transfers")

    def transfer_money(
        self,
        requesting_user_id: int,
        source_account_id: int,
        destination_account_id: int,
        amount: Any,
        timeout: Optional[float] = None
    ) -> TransferResult:
        """
        Transfer amount from source to destination

        Args:
            requesting_user_id: Acting user; must own the source account
            source_account_id: Account to debit
            destination_account_id: Account to credit
            amount: Positive amount with at most two decimal places
            timeout: Seconds to wait for row locks; defaults to the engine's

        Returns:
            TransferResult with the stored transaction and both owner ids

        Raises:
            SameAccountTransfer, InvalidAmount: Before any I/O
            SenderAccountNotFound, ReceiverAccountNotFound: Missing account
            PermissionDenied: Source not owned by requesting_user_id
            InsufficientFunds: Source balance below amount
            CurrencyMismatch: Accounts hold different currencies
            StorageFailure: Any lock, read, write or commit error
        """
        context = {
            "from_account": source_account_id,
            "to_account": destination_account_id,
            "amount": str(amount),
        }

        try:
            if source_account_id == destination_account_id:
                raise SameAccountTransfer()
            amount = to_amount(amount)
        except LedgerError as e:
            self._log_rejection(requesting_user_id, e, context)
            raise

        if timeout is None:
            timeout = self.default_timeout

        log_action(
            self.logger, "info", "Transfer requested",
            user_id=requesting_user_id, action="transfer_money",
            resource=f"account:{source_account_id}", extra=context
        )

        try:
            with self.database.atomic(timeout=timeout) as uow:
                source, destination = self._lock_accounts(uow, source_account_id, destination_account_id)
                self._check_rules(requesting_user_id, source, destination, amount)

                self.account_store.update_balance(uow, source.id, source.balance - amount)
                self.account_store.update_balance(uow, destination.id, destination.balance + amount)

                transaction = self.transaction_store.append_transaction(uow, Transaction(
                    from_account_id=source.id,
                    to_account_id=destination.id,
                    amount=amount,
                ))
        except LedgerError as e:
            self._log_rejection(requesting_user_id, e, context)
            raise
        except Exception as e:
            log_action(
                self.logger, "error", "Transfer failed",
                user_id=requesting_user_id, action="transfer_money",
                resource=f"account:{source_account_id}", extra=context, exc_info=True
            )
            raise StorageFailure(f"could not process transfer: {e}") from e

        log_action(
            self.logger, "info", "Transfer committed",
            user_id=requesting_user_id, action="transfer_money",
            resource=f"transaction:{transaction.id}",
            extra=dict(context, amount=str(amount), transaction_id=transaction.id)
        )

        return TransferResult(
            transaction=transaction,
            source_owner_id=source.user_id,
            destination_owner_id=destination.user_id,
        )

    def _lock_accounts(self, uow: UnitOfWork, source_id: int, destination_id: int) -> Tuple[Account, Account]:
        """
        Lock both rows in the configured order.

        A missing source always reports SenderAccountNotFound, even when the
        destination row sorts first and is missing too.
        """
        order = [source_id, destination_id]
        if self.lock_order == LockOrder.ASCENDING:
            order.sort()

        locked: Dict[int, Optional[Account]] = {}
        for account_id in order:
            account = self.account_store.get_account_for_update(uow, account_id)
            if account is None and account_id == source_id:
                raise SenderAccountNotFound()
            if account is None and source_id in locked:
                raise ReceiverAccountNotFound()
            locked[account_id] = account

        if locked[destination_id] is None:
            raise ReceiverAccountNotFound()
        return locked[source_id], locked[destination_id]

    @staticmethod
    def _check_rules(requesting_user_id: int, source: Account, destination: Account, amount: Decimal) -> None:
        if source.user_id != requesting_user_id:
            raise PermissionDenied()
        if source.balance < amount:
            raise InsufficientFunds()
        if source.currency != destination.currency:
            raise CurrencyMismatch()

    def _log_rejection(self, requesting_user_id: int, error: LedgerError, context: Dict[str, Any]) -> None:
        level = "error" if isinstance(error, StorageFailure) else "warning"
        log_action(
            self.logger, level, f"Transfer rejected: {error.message}",
            user_id=requesting_user_id, action="transfer_money",
            resource=f"account:{context['from_account']}",
            extra=dict(context, error_kind=error.kind.value)
        )
