"""
Ledger Error Taxonomy

A closed set of error kinds. Every error raised by the ledger is a
LedgerError subclass tagged with exactly one ErrorKind, so callers can
switch on ``error.kind`` exhaustively instead of matching messages.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Kinds of ledger failures"""
    SAME_ACCOUNT_TRANSFER = "same_account_transfer"
    INVALID_AMOUNT = "invalid_amount"
    SENDER_ACCOUNT_NOT_FOUND = "sender_account_not_found"
    RECEIVER_ACCOUNT_NOT_FOUND = "receiver_account_not_found"
    ACCOUNT_NOT_FOUND = "account_not_found"
    PERMISSION_DENIED = "permission_denied"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    CURRENCY_MISMATCH = "currency_mismatch"
    UNSUPPORTED_CURRENCY = "unsupported_currency"
    STORAGE_FAILURE = "storage_failure"

    @property
    def is_not_found(self) -> bool:
        return self in (
            ErrorKind.SENDER_ACCOUNT_NOT_FOUND,
            ErrorKind.RECEIVER_ACCOUNT_NOT_FOUND,
            ErrorKind.ACCOUNT_NOT_FOUND,
        )

    @property
    def is_business_rule(self) -> bool:
        """Validation and business-rule violations, detected before any write"""
        return self in (
            ErrorKind.SAME_ACCOUNT_TRANSFER,
            ErrorKind.INVALID_AMOUNT,
            ErrorKind.INSUFFICIENT_FUNDS,
            ErrorKind.CURRENCY_MISMATCH,
            ErrorKind.UNSUPPORTED_CURRENCY,
        )


class LedgerError(Exception):
    """Base class for all ledger errors"""

    kind: ErrorKind = ErrorKind.STORAGE_FAILURE
    default_message = "ledger operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class SameAccountTransfer(LedgerError):
    kind = ErrorKind.SAME_ACCOUNT_TRANSFER
    default_message = "cannot transfer money to the same account"


class InvalidAmount(LedgerError):
    kind = ErrorKind.INVALID_AMOUNT
    default_message = "amount must be positive"


class SenderAccountNotFound(LedgerError):
    kind = ErrorKind.SENDER_ACCOUNT_NOT_FOUND
    default_message = "sender account not found"


class ReceiverAccountNotFound(LedgerError):
    kind = ErrorKind.RECEIVER_ACCOUNT_NOT_FOUND
    default_message = "receiver account not found"


class AccountNotFound(LedgerError):
    kind = ErrorKind.ACCOUNT_NOT_FOUND
    default_message = "account not found"


class PermissionDenied(LedgerError):
    kind = ErrorKind.PERMISSION_DENIED
    default_message = "you can only transfer money from your own account"


class InsufficientFunds(LedgerError):
    kind = ErrorKind.INSUFFICIENT_FUNDS
    default_message = "insufficient funds"


class CurrencyMismatch(LedgerError):
    kind = ErrorKind.CURRENCY_MISMATCH
    default_message = "currency mismatch between accounts"


class UnsupportedCurrency(LedgerError):
    kind = ErrorKind.UNSUPPORTED_CURRENCY
    default_message = "unsupported currency"


class StorageFailure(LedgerError):
    """Any lock, read, write or commit error raised by the datastore"""
    kind = ErrorKind.STORAGE_FAILURE
    default_message = "storage operation failed"


class LockTimeout(StorageFailure):
    """Lock wait exceeded the caller's timeout"""
    default_message = "timed out waiting for a row lock"
