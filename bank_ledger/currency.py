"""
Currency and Amount Module

Handles ISO 4217 currency codes and fixed-point Decimal amounts.
NEVER uses float for monetary values: balances and amounts are stored
as NUMERIC(15, 2), so every amount carries exactly two decimal places.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from enum import Enum
from typing import Any, Iterable, Union

from .errors import InvalidAmount, UnsupportedCurrency

# Set global decimal context for financial precision
getcontext().prec = 28

AMOUNT_PLACES = 2
AMOUNT_QUANTUM = Decimal('0.1') ** AMOUNT_PLACES
MAX_AMOUNT = Decimal('9999999999999.99')  # NUMERIC(15, 2)
ZERO = Decimal('0.00')


class Currency(Enum):
    """ISO 4217 Currency Codes with precision info"""
    TRY = ("TRY", 2)  # Turkish Lira
    USD = ("USD", 2)  # US Dollar
    EUR = ("EUR", 2)  # Euro

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision


def normalize_currency(code: str, supported: Iterable[str] = ()) -> str:
    """
    Validate a 3-letter currency code against the supported set

    Args:
        code: Currency code as supplied by the caller
        supported: Allowed codes; defaults to every Currency member

    Returns:
        Upper-cased currency code

    Raises:
        UnsupportedCurrency: If the code is malformed or not supported
    """
    allowed = {c.upper() for c in supported} or {c.code for c in Currency}
    if not isinstance(code, str) or len(code.strip()) != 3:
        raise UnsupportedCurrency(f"invalid currency code: {code!r}")

    normalized = code.strip().upper()
    if normalized not in allowed:
        raise UnsupportedCurrency(f"unsupported currency: {normalized}")
    return normalized


def to_decimal(value: Union[Decimal, str, int, float]) -> Decimal:
    """Convert a stored or supplied value to Decimal without going through float"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_amount(value: Any) -> Decimal:
    """
    Parse a transfer or deposit amount

    Accepts Decimal, int, str and float (converted via its string form).
    The result is strictly positive, finite, fits NUMERIC(15, 2) and has
    no more than two fractional digits.

    Raises:
        InvalidAmount: If any of the above does not hold
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmount()

    try:
        amount = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount(f"invalid amount: {value!r}")

    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount()
    if amount > MAX_AMOUNT:
        raise InvalidAmount("amount exceeds the maximum supported value")

    quantized = amount.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)
    if quantized != amount:
        raise InvalidAmount(f"amount must have at most {AMOUNT_PLACES} decimal places")
    return quantized


def quantize_balance(value: Decimal) -> Decimal:
    """Round a balance to the stored precision"""
    return to_decimal(value).quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)
