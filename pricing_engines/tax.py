"""
Tax Engine - GST/VAT style percentage tax on quote lines.

Supports tax-exclusive calculation, extraction from tax-inclusive totals,
per-rate breakdowns across mixed lines, and pluggable exemption policies.
Pure functions with no I/O - rates are provided as parameters.

Rates are percentages (15 for 15%), always within [0, 100].

Usage:
    from pricing_engines.tax import calculate_tax, extract_tax_from_inclusive
    from pricing_kernel.domain.money import Money

    result = calculate_tax(Money.of("100.00", "NZD"), 15)
    print(result.tax_amount)    # 15.00 NZD
    print(result.total_amount)  # 115.00 NZD

    inclusive = extract_tax_from_inclusive(Money.of("115.00", "NZD"), 15)
    print(inclusive.taxable_amount)  # 100.00 NZD
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from pricing_kernel.domain.money import (
    DEFAULT_CURRENCY_DECIMALS,
    DecimalLike,
    Money,
    calculate_percentage,
    create_decimal,
    round_to_currency,
)
from pricing_kernel.exceptions import (
    CurrencyMismatchError,
    EmptyInputError,
    InvalidAmountError,
    InvalidTaxRateError,
)
from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.tax")

_ZERO = Decimal("0")
_ONE = Decimal("1")
_ONE_HUNDRED = Decimal("100")

DEFAULT_GST_RATE = Decimal("15")


@dataclass(frozen=True)
class TaxRule:
    """
    Named tax rate.

    Immutable value object; construction rejects rates outside [0, 100].
    """

    rate: Decimal
    name: str
    description: str | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "rate", _validated_rate(self.rate))


@dataclass(frozen=True)
class TaxCalculation:
    """Tax on a single taxable amount."""

    taxable_amount: Money
    tax_rate: Decimal
    tax_amount: Money
    total_amount: Money


@dataclass(frozen=True)
class TaxableItem:
    """
    One line's contribution to a tax breakdown.

    ``tax_amount`` carries tax already computed for the line (tax-inclusive
    lines extract it rather than add it); when None it is computed from
    ``amount`` and ``tax_rate``.
    """

    amount: Money
    tax_rate: Decimal = DEFAULT_GST_RATE
    is_tax_exempt: bool = False
    tax_amount: Money | None = None


@dataclass(frozen=True)
class TaxBreakdownEntry:
    """Taxable base and tax collected for one effective rate."""

    rate: Decimal
    taxable_amount: Money
    tax_amount: Money
    description: str


# ---------------------------------------------------------------------------
# Exemption policy
# ---------------------------------------------------------------------------

ExemptionPolicy = Callable[[str | None], bool]

DEFAULT_EXEMPT_SERVICE_TYPES: frozenset[str] = frozenset({"travel", "mileage", "expenses"})


class ServiceTypeExemptionPolicy:
    """
    Exempts lines whose service type is in a configured set.

    Matching is case-insensitive and ignores surrounding whitespace.
    Jurisdictions or tenants supply their own set (see ``pricing_config``).
    """

    def __init__(self, exempt_service_types: Iterable[str]):
        self.exempt_service_types = frozenset(
            s.strip().lower() for s in exempt_service_types
        )

    def __call__(self, service_type: str | None) -> bool:
        if not service_type:
            return False
        return service_type.strip().lower() in self.exempt_service_types

    def __repr__(self) -> str:
        return f"ServiceTypeExemptionPolicy({sorted(self.exempt_service_types)!r})"


DEFAULT_EXEMPTION_POLICY = ServiceTypeExemptionPolicy(DEFAULT_EXEMPT_SERVICE_TYPES)


def is_tax_exempt(service_type: str | None, policy: ExemptionPolicy | None = None) -> bool:
    """Check a service type against an exemption policy (default: travel, mileage, expenses)."""
    return (policy or DEFAULT_EXEMPTION_POLICY)(service_type)


def get_tax_rate_for_service(
    service_type: str | None, default_rate: DecimalLike = DEFAULT_GST_RATE
) -> Decimal:
    """Rate for a service type. Every service currently uses the default rate."""
    return _validated_rate(default_rate)


# ---------------------------------------------------------------------------
# Rate helpers
# ---------------------------------------------------------------------------


def _validated_rate(rate: DecimalLike) -> Decimal:
    try:
        value = create_decimal(rate)
    except InvalidAmountError as e:
        raise InvalidTaxRateError(rate) from e
    if value < _ZERO or value > _ONE_HUNDRED:
        raise InvalidTaxRateError(rate)
    return value


def _resolve_rate(rate_or_rule: DecimalLike | TaxRule) -> Decimal:
    if isinstance(rate_or_rule, TaxRule):
        return rate_or_rule.rate
    return _validated_rate(rate_or_rule)


def validate_tax_rate(rate: DecimalLike) -> bool:
    """Non-throwing check that ``0 <= rate <= 100``."""
    try:
        _validated_rate(rate)
    except InvalidTaxRateError:
        return False
    return True


DEFAULT_TAX_RULE = TaxRule(
    rate=DEFAULT_GST_RATE,
    name="GST",
    description="New Zealand Goods and Services Tax",
)


def resolve_tax_rate(
    rate: DecimalLike | TaxRule | None, default_rate: DecimalLike = DEFAULT_GST_RATE
) -> Decimal:
    """Explicit rate if given, else ``default_rate``; either way validated."""
    if rate is None:
        return _validated_rate(default_rate)
    return _resolve_rate(rate)


def format_rate(rate: Decimal) -> str:
    """``Decimal("15.00")`` -> ``"15"``, ``Decimal("12.5")`` -> ``"12.5"``."""
    return format(rate.normalize(), "f")


def describe_tax_rate(rate: Decimal) -> str:
    """Default breakdown label for a rate."""
    if rate == _ZERO:
        return "Exempt (0%)"
    if rate == DEFAULT_GST_RATE:
        return f"GST ({format_rate(rate)}%)"
    return f"Tax ({format_rate(rate)}%)"


# ---------------------------------------------------------------------------
# Calculations
# ---------------------------------------------------------------------------


def calculate_tax(
    taxable_amount: Money,
    rate_or_rule: DecimalLike | TaxRule,
    decimals: int = DEFAULT_CURRENCY_DECIMALS,
) -> TaxCalculation:
    """
    Tax-exclusive calculation.

    ``tax = round(taxable * rate / 100)``, ``total = round(taxable + tax)``.

    Raises:
        InvalidTaxRateError: if the rate is outside [0, 100].
    """
    rate = _resolve_rate(rate_or_rule)
    tax_amount = calculate_percentage(taxable_amount, rate, decimals)
    total_amount = Money(
        round_to_currency(taxable_amount.amount + tax_amount.amount, decimals),
        taxable_amount.currency,
    )

    logger.debug("tax_calculated", extra={
        "taxable_amount": str(taxable_amount.amount),
        "currency": taxable_amount.currency,
        "tax_rate": str(rate),
        "tax_amount": str(tax_amount.amount),
    })

    return TaxCalculation(
        taxable_amount=taxable_amount,
        tax_rate=rate,
        tax_amount=tax_amount,
        total_amount=total_amount,
    )


def extract_tax_from_inclusive(
    total_amount: Money,
    rate_or_rule: DecimalLike | TaxRule,
    decimals: int = DEFAULT_CURRENCY_DECIMALS,
) -> TaxCalculation:
    """
    Reverse calculation for a tax-inclusive total.

    ``taxable = round(total / (1 + rate/100))``, ``tax = round(total - taxable)``,
    so ``taxable + tax`` always reproduces the inclusive total exactly.

    Raises:
        InvalidTaxRateError: if the rate is outside [0, 100].
    """
    rate = _resolve_rate(rate_or_rule)
    divisor = _ONE + rate / _ONE_HUNDRED
    currency = total_amount.currency

    taxable = round_to_currency(total_amount.amount / divisor, decimals)
    tax = round_to_currency(total_amount.amount - taxable, decimals)

    logger.debug("tax_extracted_from_inclusive", extra={
        "total_amount": str(total_amount.amount),
        "currency": currency,
        "tax_rate": str(rate),
        "taxable_amount": str(taxable),
        "tax_amount": str(tax),
    })

    return TaxCalculation(
        taxable_amount=Money(taxable, currency),
        tax_rate=rate,
        tax_amount=Money(tax, currency),
        total_amount=total_amount,
    )


def _common_currency(amounts: Sequence[Money], operation: str) -> str:
    if not amounts:
        raise EmptyInputError(operation)
    currency = amounts[0].currency
    for amount in amounts:
        if amount.currency != currency:
            raise CurrencyMismatchError(currency, amount.currency, operation)
    return currency


def calculate_tax_breakdown(
    items: Sequence[TaxableItem],
    decimals: int = DEFAULT_CURRENCY_DECIMALS,
    describe: Callable[[Decimal], str] = describe_tax_rate,
) -> list[TaxBreakdownEntry]:
    """
    Group items by effective tax rate.

    Exempt items fall under rate 0 regardless of their nominal rate.  Each
    group's tax is the sum of its items' individually rounded tax, so the
    breakdown total always equals the per-line tax total.  Groups with a
    zero taxable base are omitted.  Entries are ordered by ascending rate,
    which puts the exempt group first.

    Raises:
        EmptyInputError: if ``items`` is empty.
        CurrencyMismatchError: if items span currencies.
        InvalidTaxRateError: if any item's rate is outside [0, 100].
    """
    currency = _common_currency([i.amount for i in items], "calculate tax breakdown")

    bases: dict[Decimal, Decimal] = {}
    taxes: dict[Decimal, Decimal] = {}
    for item in items:
        rate = _ZERO if item.is_tax_exempt else _validated_rate(item.tax_rate)
        if item.is_tax_exempt:
            item_tax = _ZERO
        elif item.tax_amount is not None:
            item_tax = item.tax_amount.amount
        else:
            item_tax = calculate_percentage(item.amount, rate, decimals).amount
        bases[rate] = bases.get(rate, _ZERO) + item.amount.amount
        taxes[rate] = taxes.get(rate, _ZERO) + item_tax

    breakdown = [
        TaxBreakdownEntry(
            rate=rate,
            taxable_amount=Money(round_to_currency(bases[rate], decimals), currency),
            tax_amount=Money(round_to_currency(taxes[rate], decimals), currency),
            description=describe(rate),
        )
        for rate in sorted(bases)
        if bases[rate] > _ZERO
    ]

    logger.debug("tax_breakdown_calculated", extra={
        "item_count": len(items),
        "group_count": len(breakdown),
        "rates": [format_rate(e.rate) for e in breakdown],
        "currency": currency,
    })
    return breakdown


def calculate_total_tax_from_breakdown(
    breakdown: Sequence[TaxBreakdownEntry],
    decimals: int = DEFAULT_CURRENCY_DECIMALS,
    currency: str = "NZD",
) -> Money:
    """
    Sum ``tax_amount`` across breakdown groups.

    An empty breakdown (every item had a zero base) sums to zero in
    ``currency``; otherwise the groups' own currency is used.

    Raises:
        CurrencyMismatchError: if groups span currencies.
    """
    if not breakdown:
        return Money.zero(currency)
    amounts = [entry.tax_amount for entry in breakdown]
    currency = _common_currency(amounts, "sum tax breakdown")
    total = sum((a.amount for a in amounts), _ZERO)
    return Money(round_to_currency(total, decimals), currency)


def calculate_tax_for_line_items(
    items: Sequence[TaxableItem],
    decimals: int = DEFAULT_CURRENCY_DECIMALS,
) -> TaxCalculation:
    """
    Aggregate tax across mixed-rate items as a single calculation.

    ``tax_rate`` is the taxable-weighted average rate, ``tax_amount`` is the
    sum of per-rate group tax, and ``total_amount`` includes exempt amounts.
    """
    currency = _common_currency([i.amount for i in items], "calculate tax for line items")

    taxable_base = sum((i.amount.amount for i in items if not i.is_tax_exempt), _ZERO)
    exempt_base = sum((i.amount.amount for i in items if i.is_tax_exempt), _ZERO)
    weighted = sum(
        (i.amount.amount * _validated_rate(i.tax_rate) for i in items if not i.is_tax_exempt),
        _ZERO,
    )
    average_rate = _ZERO if taxable_base.is_zero() else weighted / taxable_base

    breakdown = calculate_tax_breakdown(items, decimals)
    tax = sum((e.tax_amount.amount for e in breakdown), _ZERO)

    return TaxCalculation(
        taxable_amount=Money(round_to_currency(taxable_base, decimals), currency),
        tax_rate=average_rate,
        tax_amount=Money(round_to_currency(tax, decimals), currency),
        total_amount=Money(
            round_to_currency(taxable_base + exempt_base + tax, decimals), currency
        ),
    )
