"""
Totals Engine - Quote-level aggregation of line calculations.

Pure functions with deterministic behavior. No I/O.

Quote-level discounts are taken from the summed line totals, which already
include each line's tax.  Tax is not re-derived after a quote discount: the
discount reduces what the customer pays, and ``tax_amount`` stays the sum
of line tax.

Field relationships on ``QuoteTotals``:

    line_total       = sum(line.total_amount)
    discount_amount  = line_discount_amount + quote_discount_amount
    taxable_amount   = subtotal - discount_amount
    grand_total      = taxable_amount + tax_amount
                     = line_total - quote_discount_amount

Usage:
    from pricing_engines.totals import calculate_quote_totals

    totals = calculate_quote_totals(
        line_calculations,
        QuoteDiscount(DiscountType.FIXED_AMOUNT, Decimal("30")),
    )
    print(totals.grand_total)
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from pricing_engines.discount import (
    DiscountSpec,
    QuoteDiscount,
    apply_multiple_discounts,
)
from pricing_engines.line import LineItemCalculation
from pricing_engines.tax import (
    TaxableItem,
    TaxBreakdownEntry,
    calculate_tax_breakdown,
    describe_tax_rate,
)
from pricing_engines.tracer import CalculationTrace, QuoteTrace
from pricing_kernel.domain.dtos import ValidationError, ValidationResult
from pricing_kernel.domain.money import (
    DEFAULT_CURRENCY_DECIMALS,
    Money,
    add_money,
    format_money,
    round_to_currency,
    subtract_money,
    sum_money,
)
from pricing_kernel.exceptions import CurrencyMismatchError, EmptyInputError
from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.totals")

_ZERO = Decimal("0")
_ONE_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class QuoteTotals:
    """
    Quote-level totals. See the module docstring for field relationships.

    ``taxable_amount`` is the subtotal net of all discounts and excludes tax;
    it is not ``line_total`` minus the quote discount.  The amount payable is
    ``grand_total``, and callers persisting a single figure should store that.
    """

    subtotal: Money
    discount_amount: Money
    taxable_amount: Money
    tax_amount: Money
    grand_total: Money
    currency: str
    line_total: Money
    line_discount_amount: Money
    quote_discount_amount: Money

    def amounts(self) -> dict[str, Money]:
        return {
            "subtotal": self.subtotal,
            "discount_amount": self.discount_amount,
            "taxable_amount": self.taxable_amount,
            "tax_amount": self.tax_amount,
            "grand_total": self.grand_total,
            "line_total": self.line_total,
            "line_discount_amount": self.line_discount_amount,
            "quote_discount_amount": self.quote_discount_amount,
        }


@dataclass(frozen=True)
class QuoteTotalsWithBreakdown:
    totals: QuoteTotals
    tax_breakdown: tuple[TaxBreakdownEntry, ...]


@dataclass(frozen=True)
class TotalsPercentages:
    """Discount and tax as percentages of the subtotal (2 dp)."""

    discount_percentage: Decimal
    tax_percentage: Decimal


@dataclass(frozen=True)
class TotalsBreakdown:
    """Display strings for the totals block; ``"-"`` for zero discount or tax."""

    subtotal: str
    discount: str
    taxable: str
    tax: str
    grand_total: str


def _require_lines(lines: Sequence[LineItemCalculation]) -> str:
    if not lines:
        raise EmptyInputError("calculate quote totals")
    currency = lines[0].currency
    for line in lines:
        for amount in (line.subtotal, line.discount_amount, line.tax_amount, line.total_amount):
            if amount.currency != currency:
                raise CurrencyMismatchError(currency, amount.currency, "calculate quote totals")
    return currency


def _calculate_totals(
    lines: Sequence[LineItemCalculation],
    discounts: Sequence[DiscountSpec],
    decimals: int,
    trace: CalculationTrace | None,
) -> QuoteTotals:
    currency = _require_lines(lines)

    subtotal = sum_money((line.subtotal for line in lines), decimals)
    line_discount = sum_money((line.discount_amount for line in lines), decimals)
    tax = sum_money((line.tax_amount for line in lines), decimals)
    line_total = sum_money((line.total_amount for line in lines), decimals)

    # Quantity is undefined at quote level, so per-unit quote discounts raise.
    quote_discount = apply_multiple_discounts(line_total, discounts, quantity=None, decimals=decimals)

    discount = add_money(line_discount, quote_discount.discount_amount, decimals)
    taxable = subtract_money(subtotal, discount, decimals)
    totals = QuoteTotals(
        subtotal=subtotal,
        discount_amount=discount,
        taxable_amount=taxable,
        tax_amount=tax,
        grand_total=add_money(taxable, tax, decimals),
        currency=currency,
        line_total=line_total,
        line_discount_amount=line_discount,
        quote_discount_amount=quote_discount.discount_amount,
    )

    if trace is not None:
        trace.record_quote(QuoteTrace(
            line_total=line_total,
            discount_steps=quote_discount.steps,
            totals=totals,
        ))

    logger.info("quote_totals_calculated", extra={
        "line_count": len(lines),
        "currency": currency,
        "quote_discount_count": len(quote_discount.steps),
        "subtotal": str(subtotal.amount),
        "discount_amount": str(discount.amount),
        "tax_amount": str(tax.amount),
        "grand_total": str(totals.grand_total.amount),
    })
    return totals


def calculate_quote_totals(
    line_calculations: Sequence[LineItemCalculation],
    quote_discount: QuoteDiscount | None = None,
    decimals: int = DEFAULT_CURRENCY_DECIMALS,
    trace: CalculationTrace | None = None,
) -> QuoteTotals:
    """
    Aggregate line calculations, applying an optional quote discount.

    Raises:
        EmptyInputError: if there are no lines.
        CurrencyMismatchError: if lines span currencies.
        UnsupportedDiscountError: for a per-unit quote discount.
    """
    discounts = [quote_discount] if quote_discount is not None else []
    return _calculate_totals(line_calculations, discounts, decimals, trace)


def calculate_quote_totals_with_multiple_discounts(
    line_calculations: Sequence[LineItemCalculation],
    quote_discounts: Sequence[QuoteDiscount],
    decimals: int = DEFAULT_CURRENCY_DECIMALS,
    trace: CalculationTrace | None = None,
) -> QuoteTotals:
    """As ``calculate_quote_totals``, compounding discounts in the given order."""
    return _calculate_totals(line_calculations, quote_discounts, decimals, trace)


def calculate_line_tax_breakdown(
    line_calculations: Sequence[LineItemCalculation],
    decimals: int = DEFAULT_CURRENCY_DECIMALS,
    describe: Callable[[Decimal], str] = describe_tax_rate,
) -> tuple[TaxBreakdownEntry, ...]:
    """Per-rate tax breakdown whose tax column sums to the line tax total."""
    items = [
        TaxableItem(
            amount=line.taxable_amount,
            tax_rate=line.tax_rate,
            is_tax_exempt=line.is_tax_exempt,
            tax_amount=line.tax_amount,
        )
        for line in line_calculations
    ]
    return tuple(calculate_tax_breakdown(items, decimals, describe))


def calculate_quote_totals_with_breakdown(
    line_calculations: Sequence[LineItemCalculation],
    quote_discount: QuoteDiscount | None = None,
    decimals: int = DEFAULT_CURRENCY_DECIMALS,
    describe: Callable[[Decimal], str] = describe_tax_rate,
) -> QuoteTotalsWithBreakdown:
    return QuoteTotalsWithBreakdown(
        totals=calculate_quote_totals(line_calculations, quote_discount, decimals),
        tax_breakdown=calculate_line_tax_breakdown(line_calculations, decimals, describe),
    )


def check_quote_totals(totals: QuoteTotals) -> ValidationResult:
    """Check the totals invariants, returning every violation found."""
    errors: list[ValidationError] = []

    for name, amount in totals.amounts().items():
        if amount.currency != totals.currency:
            errors.append(ValidationError(
                code="CURRENCY_MISMATCH",
                message=f"{name} is in {amount.currency}, totals are in {totals.currency}",
                field=name,
            ))
    if errors:
        return ValidationResult.failure(*errors)

    subtotal = totals.subtotal.amount
    discount = totals.discount_amount.amount
    taxable = totals.taxable_amount.amount
    tax = totals.tax_amount.amount

    if discount < _ZERO:
        errors.append(ValidationError(
            code="NEGATIVE_DISCOUNT",
            message=f"Discount amount is negative: {discount}",
            field="discount_amount",
        ))
    if discount > subtotal + tax:
        errors.append(ValidationError(
            code="DISCOUNT_EXCEEDS_TOTAL",
            message=f"Discount {discount} exceeds subtotal plus tax {subtotal + tax}",
            field="discount_amount",
        ))
    if taxable != subtotal - discount:
        errors.append(ValidationError(
            code="TAXABLE_MISMATCH",
            message=f"Taxable {taxable} != subtotal {subtotal} - discount {discount}",
            field="taxable_amount",
        ))
    if totals.grand_total.amount != taxable + tax:
        errors.append(ValidationError(
            code="GRAND_TOTAL_MISMATCH",
            message=f"Grand total {totals.grand_total.amount} != taxable {taxable} + tax {tax}",
            field="grand_total",
        ))

    if errors:
        logger.warning("quote_totals_invalid", extra={
            "currency": totals.currency,
            "error_codes": [e.code for e in errors],
        })
    return ValidationResult.from_errors(errors)


def validate_quote_totals(totals: QuoteTotals) -> bool:
    """Non-throwing invariant check on a ``QuoteTotals``."""
    return check_quote_totals(totals).is_valid


def _display(money: Money, decimals: int) -> str:
    return "-" if money.is_zero else format_money(money, decimals)


def get_totals_breakdown(
    totals: QuoteTotals,
    decimals: int = DEFAULT_CURRENCY_DECIMALS,
) -> TotalsBreakdown:
    return TotalsBreakdown(
        subtotal=format_money(totals.subtotal, decimals),
        discount=_display(totals.discount_amount, decimals),
        taxable=format_money(totals.taxable_amount, decimals),
        tax=_display(totals.tax_amount, decimals),
        grand_total=format_money(totals.grand_total, decimals),
    )


def calculate_totals_percentages(totals: QuoteTotals) -> TotalsPercentages:
    """Discount and tax relative to the subtotal; zero when the subtotal is zero."""
    subtotal = totals.subtotal.amount
    if subtotal.is_zero():
        return TotalsPercentages(discount_percentage=_ZERO, tax_percentage=_ZERO)
    return TotalsPercentages(
        discount_percentage=round_to_currency(
            totals.discount_amount.amount / subtotal * _ONE_HUNDRED, 2
        ),
        tax_percentage=round_to_currency(totals.tax_amount.amount / subtotal * _ONE_HUNDRED, 2),
    )
