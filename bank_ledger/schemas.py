"""
Pydantic schemas for API requests and responses
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from .models import Account, Transaction


class TransferRequest(BaseModel):
    from_account_id: int
    to_account_id: int
    amount: str = Field(..., description="Decimal amount as string")


class CreateAccountRequest(BaseModel):
    currency: str = Field(..., description="Currency code (TRY, USD, EUR)")


class DepositRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")


class AccountModel(BaseModel):
    id: int
    user_id: int
    account_number: int
    balance: str
    currency: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_account(cls, account: Account) -> 'AccountModel':
        return cls(
            id=account.id,
            user_id=account.user_id,
            account_number=account.account_number,
            balance=str(account.balance),
            currency=account.currency,
            created_at=account.created_at,
        )


class TransactionModel(BaseModel):
    id: int
    from_account_id: int
    to_account_id: int
    amount: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> 'TransactionModel':
        return cls(
            id=transaction.id,
            from_account_id=transaction.from_account_id,
            to_account_id=transaction.to_account_id,
            amount=str(transaction.amount),
            created_at=transaction.created_at,
        )


class ErrorResponse(BaseModel):
    code: int
    message: str
    kind: str
