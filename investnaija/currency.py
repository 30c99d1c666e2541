"""
Currency and Money Module

Naira-first money handling on Decimal. Floats never touch balances:
amounts are quantised to the currency's minor unit with ROUND_HALF_UP,
and Paystack's kobo integers are converted at the edge.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from enum import Enum
from typing import Union
import re

getcontext().prec = 28


class Currency(Enum):
    """Supported currencies with their minor-unit precision"""
    NGN = ("NGN", 2, "₦")
    USD = ("USD", 2, "$")

    def __init__(self, code: str, precision: int, symbol: str):
        self.code = code
        self.precision = precision
        self.symbol = symbol


@dataclass(frozen=True)
class Money:
    """
    Immutable amount of a single currency.
    Arithmetic and comparisons across currencies raise ValueError.
    """
    amount: Decimal
    currency: Currency = Currency.NGN

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))

        rounded = self.amount.quantize(
            Decimal('0.1') ** self.currency.precision,
            rounding=ROUND_HALF_UP
        )
        object.__setattr__(self, 'amount', rounded)

    def _check(self, other: 'Money', verb: str) -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Cannot {verb} Money and {type(other).__name__}")
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(self.amount * multiplier, self.currency)

    def __truediv__(self, divisor) -> 'Money':
        if not isinstance(divisor, Decimal):
            divisor = Decimal(str(divisor))
        return Money(self.amount / divisor, self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __abs__(self) -> 'Money':
        return Money(abs(self.amount), self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __hash__(self) -> int:
        return hash((self.amount, self.currency))

    def __lt__(self, other: 'Money') -> bool:
        self._check(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._check(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._check(other, "compare")
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Format for display, e.g. "₦1,234.50" """
        sign = "-" if self.is_negative() else ""
        return f"{sign}{self.currency.symbol}{abs(self.amount):,.{self.currency.precision}f}"


def naira(value: Union[str, int, Decimal]) -> Money:
    """Build an NGN amount"""
    return Money(Decimal(str(value)), Currency.NGN)


def zero(currency: Currency = Currency.NGN) -> Money:
    return Money(Decimal('0'), currency)


def to_kobo(money: Money) -> int:
    """Minor units for gateways that take integers (Paystack)"""
    return int(money.amount * (Decimal(10) ** money.currency.precision))


def from_kobo(kobo: int, currency: Currency = Currency.NGN) -> Money:
    return Money(Decimal(int(kobo)) / (Decimal(10) ** currency.precision), currency)


def format_naira(value: Union[Money, Decimal, str, int]) -> str:
    """Display helper used in notification copy"""
    money = value if isinstance(value, Money) else naira(value)
    return money.to_string()


def decimal_from_string(value: str) -> Decimal:
    """
    Parse user supplied amounts such as "₦1,250.50" or "1250".

    Raises:
        ValueError: If the string does not contain a valid number
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    clean_value = re.sub(r'[^\d.,\-+]', '', value.strip())
    # Naira amounts use comma as thousands separator
    clean_value = clean_value.replace(',', '')

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")
