"""
Ledger Records

Plain dataclasses for the two persisted tables. Monetary values are
Decimal in memory and Decimal strings when serialized.
"""

from dataclasses import dataclass, asdict, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from .currency import ZERO, quantize_balance, to_decimal


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Accept datetimes from drivers and ISO strings from SQLite/JSON"""
    if isinstance(value, datetime):
        result = value
    else:
        result = datetime.fromisoformat(str(value))
    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


@dataclass
class Account:
    """
    A user's account. The balance is never negative; the account number
    is unique and assigned sequentially at creation.
    """
    user_id: int
    account_number: int
    currency: str
    balance: Decimal = ZERO
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.balance = quantize_balance(self.balance)

    def with_balance(self, balance: Decimal) -> 'Account':
        return replace(self, balance=balance)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary"""
        result = asdict(self)
        result['balance'] = str(self.balance)
        result['created_at'] = self.created_at.isoformat() if self.created_at else None
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        """Create instance from a dictionary or a database row"""
        created_at = data.get('created_at')
        return cls(
            id=int(data['id']) if data.get('id') is not None else None,
            user_id=int(data['user_id']),
            account_number=int(data['account_number']),
            balance=to_decimal(data['balance']),
            currency=str(data['currency']).strip(),
            created_at=parse_timestamp(created_at) if created_at is not None else None,
        )


@dataclass(frozen=True)
class Transaction:
    """Immutable ledger entry for one completed transfer"""
    from_account_id: int
    to_account_id: int
    amount: Decimal
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.from_account_id == self.to_account_id:
            raise ValueError("Transaction source and destination must differ")
        if to_decimal(self.amount) <= 0:
            raise ValueError("Transaction amount must be positive")
        object.__setattr__(self, 'amount', quantize_balance(self.amount))

    def involves(self, account_id: int) -> bool:
        return account_id in (self.from_account_id, self.to_account_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary"""
        result = asdict(self)
        result['amount'] = str(self.amount)
        result['created_at'] = self.created_at.isoformat() if self.created_at else None
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        """Create instance from a dictionary or a database row"""
        created_at = data.get('created_at')
        return cls(
            id=int(data['id']) if data.get('id') is not None else None,
            from_account_id=int(data['from_account_id']),
            to_account_id=int(data['to_account_id']),
            amount=to_decimal(data['amount']),
            created_at=parse_timestamp(created_at) if created_at is not None else None,
        )
