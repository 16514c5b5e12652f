"""
Discount Engine - Percentage, fixed-amount and per-unit discounts.

Pure functions with deterministic behavior. No I/O.

Discounts never drive an amount below zero: the computed discount is capped
at the base it is taken from, so ``final_amount`` is never negative and
``discount_amount`` never exceeds the base.  Out-of-range inputs (negative
values, percentages above 100) are rejected rather than clamped.

Usage:
    from pricing_engines.discount import DiscountSpec, DiscountType, apply_multiple_discounts
    from pricing_kernel.domain.money import Money

    result = apply_multiple_discounts(
        Money.of("200.00", "NZD"),
        [
            DiscountSpec(DiscountType.PERCENTAGE, Decimal("10")),
            DiscountSpec(DiscountType.FIXED_AMOUNT, Decimal("30")),
        ],
    )
    print(result.discount_amount)  # 50.00 NZD (20.00 then 30.00 off the remainder)
    print(result.final_amount)     # 150.00 NZD
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from pricing_kernel.domain.money import (
    DEFAULT_CURRENCY_DECIMALS,
    DecimalLike,
    Money,
    calculate_percentage,
    create_decimal,
    format_amount,
    round_to_currency,
)
from pricing_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidAmountError,
    InvalidDiscountError,
    PricingError,
    UnsupportedDiscountError,
)
from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.discount")

_ZERO = Decimal("0")
_ONE_HUNDRED = Decimal("100")

MAX_PERCENTAGE_DISCOUNT = Decimal("100")


class DiscountType(str, Enum):
    """How a discount value is interpreted."""

    PERCENTAGE = "percentage"  # value is 0-100 percent of the base
    FIXED_AMOUNT = "fixed_amount"  # value is an absolute currency amount
    PER_UNIT = "per_unit"  # value is an amount per unit of quantity


def _coerce_type(discount_type: DiscountType | str) -> DiscountType:
    if isinstance(discount_type, DiscountType):
        return discount_type
    try:
        return DiscountType(discount_type)
    except ValueError as e:
        raise UnsupportedDiscountError(str(discount_type), "unknown discount type") from e


def _coerce_value(discount_type: DiscountType, value: DecimalLike) -> Decimal:
    try:
        decimal_value = create_decimal(value)
    except InvalidAmountError as e:
        raise InvalidDiscountError(discount_type.value, value, "not a number") from e
    if decimal_value < _ZERO:
        raise InvalidDiscountError(discount_type.value, value, "cannot be negative")
    if discount_type is DiscountType.PERCENTAGE and decimal_value > MAX_PERCENTAGE_DISCOUNT:
        raise InvalidDiscountError(
            discount_type.value, value, f"cannot exceed {MAX_PERCENTAGE_DISCOUNT}%"
        )
    return decimal_value


@dataclass(frozen=True)
class DiscountSpec:
    """
    A discount to apply.

    Validated on construction: unknown types, negative values and
    percentages above 100 are rejected.  Inactive specs are skipped by
    ``apply_multiple_discounts``.
    """

    type: DiscountType
    value: Decimal
    description: str | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        discount_type = _coerce_type(self.type)
        object.__setattr__(self, "type", discount_type)
        object.__setattr__(self, "value", _coerce_value(discount_type, self.value))


# A quote-level discount has the same shape; it is applied once to the summed line totals.
QuoteDiscount = DiscountSpec


@dataclass(frozen=True)
class DiscountCalculation:
    """
    Result of applying one discount, or a chain of them.

    For a chain, ``discount_type``/``discount_value`` describe the single
    applied discount when there is exactly one and are None otherwise;
    ``steps`` holds every individual application in order.
    """

    original_amount: Money
    discount_type: DiscountType | None
    discount_value: Decimal | None
    discount_amount: Money
    final_amount: Money
    steps: tuple[DiscountCalculation, ...] = ()


def calculate_discount(
    original_amount: Money,
    discount_type: DiscountType | str,
    discount_value: DecimalLike,
    quantity: DecimalLike | None = None,
    decimals: int = DEFAULT_CURRENCY_DECIMALS,
) -> DiscountCalculation:
    """
    Compute one discount against ``original_amount``.

    - percentage:   round(base * value / 100)
    - fixed_amount: round(value)
    - per_unit:     round(value * quantity); requires ``quantity``

    The result is capped at the base, so the final amount is never negative.

    Raises:
        InvalidDiscountError: negative value, or percentage above 100.
        UnsupportedDiscountError: unknown type, or per_unit without a quantity.
    """
    kind = _coerce_type(discount_type)
    value = _coerce_value(kind, discount_value)
    currency = original_amount.currency

    if kind is DiscountType.PERCENTAGE:
        raw = calculate_percentage(original_amount, value, decimals).amount
    elif kind is DiscountType.FIXED_AMOUNT:
        raw = round_to_currency(value, decimals)
    else:
        if quantity is None:
            raise UnsupportedDiscountError(
                kind.value, "per-unit discounts need a line quantity"
            )
        raw = round_to_currency(value * create_decimal(quantity), decimals)

    ceiling = max(original_amount.amount, _ZERO)
    discount = min(raw, ceiling)
    if discount < raw:
        logger.debug("discount_capped_at_base", extra={
            "discount_type": kind.value,
            "requested": str(raw),
            "base": str(original_amount.amount),
            "currency": currency,
        })

    discount = round_to_currency(discount, decimals)
    final = round_to_currency(original_amount.amount - discount, decimals)
    return DiscountCalculation(
        original_amount=original_amount,
        discount_type=kind,
        discount_value=value,
        discount_amount=Money(discount, currency),
        final_amount=Money(final, currency),
    )


def apply_discount_spec(
    original_amount: Money,
    spec: DiscountSpec,
    quantity: DecimalLike | None = None,
    decimals: int = DEFAULT_CURRENCY_DECIMALS,
) -> DiscountCalculation:
    """Apply a single ``DiscountSpec``."""
    return calculate_discount(original_amount, spec.type, spec.value, quantity, decimals)


def apply_multiple_discounts(
    original_amount: Money,
    discounts: Sequence[DiscountSpec],
    quantity: DecimalLike | None = None,
    decimals: int = DEFAULT_CURRENCY_DECIMALS,
) -> DiscountCalculation:
    """
    Apply discounts sequentially in the given order, compounding.

    Each discount is computed against the amount remaining after the
    previous one.  Inactive specs are skipped.  An empty (or all-inactive)
    chain yields a zero discount.
    """
    currency = original_amount.currency
    remaining = original_amount
    total = _ZERO
    steps: list[DiscountCalculation] = []

    for spec in discounts:
        if not spec.is_active:
            continue
        step = apply_discount_spec(remaining, spec, quantity, decimals)
        steps.append(step)
        total += step.discount_amount.amount
        remaining = step.final_amount

    single = steps[0] if len(steps) == 1 else None
    return DiscountCalculation(
        original_amount=original_amount,
        discount_type=single.discount_type if single else None,
        discount_value=single.discount_value if single else None,
        discount_amount=Money(round_to_currency(total, decimals), currency),
        final_amount=remaining,
        steps=tuple(steps),
    )


# ---------------------------------------------------------------------------
# Helpers for validation and display
# ---------------------------------------------------------------------------


def validate_discount(
    discount_type: DiscountType | str,
    discount_value: DecimalLike,
    original_amount: Money | None = None,
) -> bool:
    """
    Non-throwing check of discount parameters.

    A fixed amount larger than ``original_amount`` is reported invalid here
    even though ``calculate_discount`` would cap it.
    """
    try:
        kind = _coerce_type(discount_type)
        value = _coerce_value(kind, discount_value)
    except PricingError:
        return False
    if kind is DiscountType.FIXED_AMOUNT and original_amount is not None:
        return value <= original_amount.amount
    return True


def calculate_effective_discount_percentage(
    original_amount: Money,
    final_amount: Money,
) -> Decimal:
    """Percentage of ``original_amount`` removed, rounded to 2 places."""
    if original_amount.currency != final_amount.currency:
        raise CurrencyMismatchError(
            original_amount.currency, final_amount.currency, "compare discount"
        )
    if original_amount.is_zero:
        return _ZERO
    removed = original_amount.amount - final_amount.amount
    return round_to_currency(removed / original_amount.amount * _ONE_HUNDRED, 2)


def would_result_in_negative(
    original_amount: Money,
    discount_type: DiscountType | str,
    discount_value: DecimalLike,
    quantity: DecimalLike | None = None,
) -> bool:
    """True if the discount is invalid or would leave a negative amount."""
    try:
        result = calculate_discount(original_amount, discount_type, discount_value, quantity)
    except PricingError:
        return True
    return result.final_amount.is_negative


def get_maximum_safe_discount(
    original_amount: Money,
    discount_type: DiscountType | str,
    quantity: DecimalLike | None = None,
) -> Decimal:
    """Largest value of this type that removes no more than the whole amount."""
    kind = _coerce_type(discount_type)
    base = max(original_amount.amount, _ZERO)
    if kind is DiscountType.PERCENTAGE:
        return MAX_PERCENTAGE_DISCOUNT
    if kind is DiscountType.FIXED_AMOUNT:
        return base
    if quantity is None:
        raise UnsupportedDiscountError(kind.value, "per-unit discounts need a line quantity")
    units = create_decimal(quantity)
    return base / units if units > _ZERO else _ZERO


def format_discount(spec: DiscountSpec, decimals: int = DEFAULT_CURRENCY_DECIMALS) -> str:
    """``10%``, ``$30.00`` or ``$2.50 per unit``."""
    if spec.type is DiscountType.PERCENTAGE:
        return f"{format(spec.value.normalize(), 'f')}%"
    if spec.type is DiscountType.FIXED_AMOUNT:
        return f"${format_amount(spec.value, decimals)}"
    return f"${format_amount(spec.value, decimals)} per unit"
