"""
Currency Module

Money representation with per-currency Decimal precision. Rupiah has no minor
unit, so every arisan amount is a whole number. NEVER uses float for money.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from enum import Enum
import re

getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 currency codes with precision info"""
    IDR = ("IDR", 0, "Rp")   # Indonesian Rupiah
    MYR = ("MYR", 2, "RM")   # Malaysian Ringgit
    SGD = ("SGD", 2, "S$")   # Singapore Dollar
    USD = ("USD", 2, "$")    # US Dollar

    def __init__(self, code: str, precision: int, symbol: str):
        self.code = code
        self.precision = precision
        self.symbol = symbol

    @property
    def unit(self) -> Decimal:
        """Smallest representable amount"""
        return Decimal('0.1') ** self.precision


@dataclass(frozen=True)
class Money:
    """
    Immutable money value rounded to its currency precision.
    """
    amount: Decimal
    currency: Currency = Currency.IDR

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))

        rounded = self.amount.quantize(self.currency.unit, rounding=ROUND_HALF_UP)
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def zero(cls, currency: 'Currency' = Currency.IDR) -> 'Money':
        return cls(Decimal('0'), currency)

    def _check_currency(self, other: 'Money', verb: str) -> None:
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier: Decimal) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(self.amount * multiplier, self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __hash__(self) -> int:
        return hash((self.amount, self.currency))

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """
        Format for display using Indonesian grouping: dot for thousands,
        comma for decimals (Rp 1.500.000, RM 12,50).
        """
        if self.currency.precision == 0:
            text = f"{self.amount:,.0f}"
        else:
            text = f"{self.amount:,.{self.currency.precision}f}"
        text = text.replace(",", "_").replace(".", ",").replace("_", ".")
        return f"{self.currency.symbol} {text}"


def sum_money(values, currency: Currency = Currency.IDR) -> Money:
    """Sum an iterable of Money, returning zero for an empty iterable"""
    total = Money.zero(currency)
    for value in values:
        total = total + value
    return total


def parse_amount(value: str) -> Decimal:
    """
    Parse a user-entered amount such as "Rp 1.500.000", "150000" or "12,50".

    Dots are thousands separators when they group digits in threes; a single
    comma followed by at most two digits is the decimal separator.

    Raises:
        ValueError: If the string cannot be converted to a Decimal
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    clean_value = re.sub(r'[^\d.,\-+]', '', value.strip())

    if re.fullmatch(r'[-+]?\d{1,3}(\.\d{3})+(,\d+)?', clean_value):
        clean_value = clean_value.replace('.', '').replace(',', '.')
    elif re.fullmatch(r'[-+]?\d+,\d{1,2}', clean_value):
        clean_value = clean_value.replace(',', '.')
    else:
        clean_value = clean_value.replace(',', '')

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")


def round_to_unit(value: Decimal, currency: Currency = Currency.IDR) -> Decimal:
    """Round a Decimal half-up to the currency's smallest unit"""
    return value.quantize(currency.unit, rounding=ROUND_HALF_UP)
