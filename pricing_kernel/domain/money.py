"""
Money -- Immutable monetary amount and currency-exact arithmetic.

Responsibility:
    Provides the ``Money`` value object and the arithmetic primitives every
    pricing engine is built on: add, subtract, multiply, divide, percentage,
    sum, compare and convert.  All arithmetic is ``Decimal``; floats never
    reach an amount without first going through ``str()``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every engine in ``pricing_engines``.

Invariants enforced:
    - An amount is always paired with an ISO 4217 currency code.
    - Arithmetic between two Money values requires identical currencies;
      mismatches raise ``CurrencyMismatchError`` and are never coerced.
    - Every combinator returns an amount rounded half-up to ``decimals``
      places.  Exact midpoints round away from zero (10.005 -> 10.01).
      Intermediate precision survives only inside a single expression.

Failure modes:
    - InvalidAmountError for values that are not finite decimals.
    - InvalidCurrencyError for unknown currency codes.
    - CurrencyMismatchError for mixed-currency arithmetic.
    - DivideByZeroError from ``divide_money`` (never Infinity/NaN).
    - EmptyInputError from ``sum_money`` on an empty sequence.

Thread safety:
    Decimal values are immutable and the decimal context is thread-local,
    so these functions may be called concurrently without coordination.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from pricing_kernel.domain.currency import CurrencyRegistry
from pricing_kernel.exceptions import (
    CurrencyMismatchError,
    DivideByZeroError,
    EmptyInputError,
    InvalidAmountError,
    InvalidExchangeRateError,
)

DEFAULT_CURRENCY_DECIMALS = 2

_ONE_HUNDRED = Decimal("100")

DecimalLike = Decimal | int | float | str


def create_decimal(value: DecimalLike) -> Decimal:
    """
    Convert a number, string or Decimal into a finite Decimal.

    Floats are converted through their shortest ``repr`` so that ``0.1``
    becomes ``Decimal("0.1")`` rather than its binary expansion.

    Raises:
        InvalidAmountError: for booleans, NaN, infinities and unparseable input.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise InvalidAmountError(value)
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, (float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise InvalidAmountError(value) from e
    else:
        raise InvalidAmountError(value)

    if not result.is_finite():
        raise InvalidAmountError(value)
    return result


def _quantum(decimals: int) -> Decimal:
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")
    return Decimal(1).scaleb(-decimals)


def round_to_currency(
    value: DecimalLike, decimals: int = DEFAULT_CURRENCY_DECIMALS
) -> Decimal:
    """Round half-up to ``decimals`` places (0.005 -> 0.01, -0.005 -> -0.01)."""
    return create_decimal(value).quantize(_quantum(decimals), rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Contract:
        Pairs a Decimal amount with its currency code -- they are never
        separated.  The code is normalised (upper-cased, stripped) and
        validated against the ISO 4217 registry at construction.

    Non-goals:
        - Does NOT auto-round on construction; the module functions round
          every result they return.
        - Does NOT convert currencies implicitly (see ``convert_money``).
    """

    amount: Decimal
    currency: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", create_decimal(self.amount))
        object.__setattr__(self, "currency", CurrencyRegistry.validate(self.currency))

    @classmethod
    def of(cls, amount: DecimalLike, currency: str) -> Money:
        """Factory method for creating Money."""
        return cls(amount=create_decimal(amount), currency=currency)

    @classmethod
    def zero(cls, currency: str) -> Money:
        """Create a zero amount in the given currency."""
        return cls(amount=Decimal("0"), currency=currency)

    @property
    def is_zero(self) -> bool:
        return self.amount.is_zero()

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def round(self, decimals: int = DEFAULT_CURRENCY_DECIMALS) -> Money:
        """Return a new Money rounded half-up to ``decimals`` places."""
        return Money(round_to_currency(self.amount, decimals), self.currency)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        _require_same_currency(self, other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        _require_same_currency(self, other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> Money:
        return Money(-self.amount, self.currency)

    def __mul__(self, factor: Decimal | int | str) -> Money:
        if isinstance(factor, float) or not isinstance(factor, (Decimal, int, str)):
            return NotImplemented
        return Money(self.amount * create_decimal(factor), self.currency)

    def __rmul__(self, factor: Decimal | int | str) -> Money:
        return self.__mul__(factor)

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"


def _require_same_currency(a: Money, b: Money, operation: str) -> None:
    if a.currency != b.currency:
        raise CurrencyMismatchError(a.currency, b.currency, operation)


# ---------------------------------------------------------------------------
# Arithmetic primitives
# ---------------------------------------------------------------------------


def zero_money(currency: str) -> Money:
    """Create a zero amount in the specified currency."""
    return Money.zero(currency)


def add_money(a: Money, b: Money, decimals: int = DEFAULT_CURRENCY_DECIMALS) -> Money:
    """Add two amounts of the same currency."""
    _require_same_currency(a, b, "add")
    return Money(round_to_currency(a.amount + b.amount, decimals), a.currency)


def subtract_money(
    a: Money, b: Money, decimals: int = DEFAULT_CURRENCY_DECIMALS
) -> Money:
    """Subtract ``b`` from ``a``; both must share a currency."""
    _require_same_currency(a, b, "subtract")
    return Money(round_to_currency(a.amount - b.amount, decimals), a.currency)


def multiply_money(
    money: Money, factor: DecimalLike, decimals: int = DEFAULT_CURRENCY_DECIMALS
) -> Money:
    """Multiply by a plain number."""
    product = money.amount * create_decimal(factor)
    return Money(round_to_currency(product, decimals), money.currency)


def divide_money(
    money: Money, factor: DecimalLike, decimals: int = DEFAULT_CURRENCY_DECIMALS
) -> Money:
    """Divide by a plain number.

    Raises:
        DivideByZeroError: if ``factor`` is zero.
    """
    divisor = create_decimal(factor)
    if divisor.is_zero():
        raise DivideByZeroError(str(money.amount))
    return Money(round_to_currency(money.amount / divisor, decimals), money.currency)


def calculate_percentage(
    money: Money, percentage: DecimalLike, decimals: int = DEFAULT_CURRENCY_DECIMALS
) -> Money:
    """``money * percentage / 100``, rounded."""
    value = money.amount * create_decimal(percentage) / _ONE_HUNDRED
    return Money(round_to_currency(value, decimals), money.currency)


def sum_money(
    amounts: Iterable[Money], decimals: int = DEFAULT_CURRENCY_DECIMALS
) -> Money:
    """Sum same-currency amounts.

    Raises:
        EmptyInputError: if ``amounts`` is empty.
        CurrencyMismatchError: if currencies differ.
    """
    items = list(amounts)
    if not items:
        raise EmptyInputError("sum money amounts")

    currency = items[0].currency
    total = Decimal("0")
    for item in items:
        if item.currency != currency:
            raise CurrencyMismatchError(currency, item.currency, "sum")
        total += item.amount
    return Money(round_to_currency(total, decimals), currency)


def compare_money(a: Money, b: Money) -> int:
    """Return -1, 0 or 1 as ``a`` is less than, equal to or greater than ``b``."""
    _require_same_currency(a, b, "compare")
    if a.amount < b.amount:
        return -1
    if a.amount > b.amount:
        return 1
    return 0


def is_zero(money: Money) -> bool:
    return money.is_zero


def is_negative(money: Money) -> bool:
    return money.is_negative


def is_positive(money: Money) -> bool:
    return money.is_positive


def convert_money(
    money: Money,
    target_currency: str,
    exchange_rate: DecimalLike,
    target_decimals: int = DEFAULT_CURRENCY_DECIMALS,
) -> Money:
    """
    Convert ``money`` into ``target_currency`` at ``exchange_rate``.

    ``exchange_rate`` is units of target per one unit of source.  The result
    is rounded to the target currency's own precision, so zero-decimal
    currencies (JPY) come back as whole units.

    Raises:
        InvalidExchangeRateError: if the rate is zero, negative or unreadable.
    """
    try:
        rate = create_decimal(exchange_rate)
    except InvalidAmountError as e:
        raise InvalidExchangeRateError(exchange_rate, target_currency) from e
    if rate <= 0:
        raise InvalidExchangeRateError(exchange_rate, target_currency)
    converted = round_to_currency(money.amount * rate, target_decimals)
    return Money(converted, target_currency)


def format_money(money: Money, decimals: int = DEFAULT_CURRENCY_DECIMALS) -> str:
    """Format as ``"NZD 123.45"``."""
    return f"{money.currency} {format_amount(money.amount, decimals)}"


def format_amount(amount: Decimal, decimals: int = DEFAULT_CURRENCY_DECIMALS) -> str:
    """Fixed-point string with exactly ``decimals`` places, rounded half-up."""
    return f"{round_to_currency(amount, decimals):f}"
