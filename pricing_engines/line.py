"""
Line Engine - Full pricing breakdown for a single quote line.

subtotal -> discount -> taxable amount -> tax -> line total

Pure functions with deterministic behavior. No I/O.

Each line may carry a typed discount (``discount_type``/``discount_value``)
and the legacy ``percentage_discount`` and ``fixed_discount`` fields.  They
are applied in that order, each against what the previous one left.

Tax-inclusive lines quote prices that already contain tax.  Their discounts
are taken from the tax-inclusive amount and tax is then extracted from what
remains, so the reported ``subtotal``, ``discount_amount`` and
``taxable_amount`` are all net of tax while ``total_amount`` is exactly the
discounted inclusive price.

Usage:
    from pricing_engines.line import LineItem, calculate_line_item
    from pricing_kernel.domain.money import Money

    item = LineItem(
        description="Consulting",
        quantity=Decimal("2"),
        unit_price=Money.of("100.00", "NZD"),
        unit="hour",
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal("10"),
    )
    calc = calculate_line_item(item)
    print(calc.subtotal)      # 200.00 NZD
    print(calc.tax_amount)    # 27.00 NZD
    print(calc.total_amount)  # 207.00 NZD
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from pricing_engines.discount import (
    DiscountSpec,
    DiscountType,
    apply_multiple_discounts,
)
from pricing_engines.tax import (
    DEFAULT_GST_RATE,
    ExemptionPolicy,
    calculate_tax,
    extract_tax_from_inclusive,
    is_tax_exempt,
    resolve_tax_rate,
)
from pricing_engines.tracer import CalculationTrace, LineTrace
from pricing_kernel.domain.money import (
    DEFAULT_CURRENCY_DECIMALS,
    Money,
    add_money,
    create_decimal,
    format_money,
    multiply_money,
    subtract_money,
    sum_money,
)
from pricing_kernel.exceptions import (
    CurrencyMismatchError,
    EmptyInputError,
    InvalidQuantityError,
    InvalidUnitPriceError,
    PricingError,
)
from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.line")

_ZERO = Decimal("0")


def _optional_decimal(value: object) -> Decimal | None:
    return None if value is None else create_decimal(value)


@dataclass(frozen=True)
class LineItem:
    """
    One priced line on a quote.

    ``tax_rate`` defaults to GST (15) when None.  ``is_tax_exempt`` defaults
    to the exemption policy's verdict on ``service_type`` when None.
    Numeric fields are coerced to Decimal on construction; range checks
    happen at calculation time so ``validate_line_item`` can report them.
    """

    description: str
    quantity: Decimal
    unit_price: Money
    unit: str
    service_type: str | None = None
    is_tax_exempt: bool | None = None
    tax_inclusive: bool = False
    tax_rate: Decimal | None = None
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = None
    percentage_discount: Decimal | None = None
    fixed_discount: Money | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", create_decimal(self.quantity))
        object.__setattr__(self, "tax_rate", _optional_decimal(self.tax_rate))
        object.__setattr__(self, "discount_value", _optional_decimal(self.discount_value))
        object.__setattr__(
            self, "percentage_discount", _optional_decimal(self.percentage_discount)
        )

    @property
    def currency(self) -> str:
        return self.unit_price.currency


@dataclass(frozen=True)
class LineItemCalculation:
    """
    Computed breakdown of one line.

    Invariants:
        taxable_amount == subtotal - discount_amount
        total_amount == taxable_amount + tax_amount

    ``tax_rate`` is the resolved nominal rate; ``is_tax_exempt`` the
    resolved exemption.  An exempt line pays no tax whatever its rate.
    """

    line_item: LineItem
    quantity: Decimal
    unit_price: Money
    subtotal: Money
    discount_amount: Money
    taxable_amount: Money
    tax_amount: Money
    total_amount: Money
    tax_rate: Decimal = DEFAULT_GST_RATE
    is_tax_exempt: bool = False

    @property
    def currency(self) -> str:
        return self.total_amount.currency


@dataclass(frozen=True)
class LineItemsSummary:
    """Column totals across a set of line calculations."""

    total_quantity: Decimal
    subtotal: Money
    total_discount: Money
    total_taxable: Money
    total_tax: Money
    total_amount: Money


@dataclass(frozen=True)
class LineItemsResult:
    calculations: tuple[LineItemCalculation, ...]
    summary: LineItemsSummary


@dataclass(frozen=True)
class LineItemBreakdown:
    """Display strings for one line; ``"-"`` stands in for zero discount or tax."""

    quantity: str
    unit_price: str
    subtotal: str
    discount: str
    taxable: str
    tax: str
    total: str


def _check_line(item: LineItem) -> None:
    if item.quantity <= _ZERO:
        raise InvalidQuantityError(item.quantity)
    if item.unit_price.is_negative:
        raise InvalidUnitPriceError(item.unit_price.amount)


def _discount_chain(item: LineItem) -> list[tuple[str, DiscountSpec]]:
    """Line discounts in application order, labelled by source field."""
    chain: list[tuple[str, DiscountSpec]] = []
    if item.discount_type is not None and item.discount_value is not None:
        chain.append(("discount", DiscountSpec(item.discount_type, item.discount_value)))
    if item.percentage_discount is not None:
        chain.append((
            "percentage_discount",
            DiscountSpec(DiscountType.PERCENTAGE, item.percentage_discount),
        ))
    if item.fixed_discount is not None:
        if item.fixed_discount.currency != item.currency:
            raise CurrencyMismatchError(
                item.currency, item.fixed_discount.currency, "apply fixed discount"
            )
        chain.append((
            "fixed_discount",
            DiscountSpec(DiscountType.FIXED_AMOUNT, item.fixed_discount.amount),
        ))
    return chain


def calculate_line_item(
    item: LineItem,
    currency_decimals: int = DEFAULT_CURRENCY_DECIMALS,
    exemption_policy: ExemptionPolicy | None = None,
    trace: CalculationTrace | None = None,
) -> LineItemCalculation:
    """
    Price one line.

    Raises:
        InvalidQuantityError: quantity is zero or negative.
        InvalidUnitPriceError: unit price is negative.
        InvalidTaxRateError: explicit tax rate outside [0, 100].
        InvalidDiscountError / UnsupportedDiscountError: bad discount values.
        CurrencyMismatchError: fixed discount in another currency.
    """
    _check_line(item)
    d = currency_decimals

    rate = resolve_tax_rate(item.tax_rate)
    if item.is_tax_exempt is not None:
        exempt = item.is_tax_exempt
    else:
        exempt = is_tax_exempt(item.service_type, exemption_policy)
    effective_rate = _ZERO if exempt else rate

    gross = multiply_money(item.unit_price, item.quantity, d)
    labelled = _discount_chain(item)
    discounted = apply_multiple_discounts(
        gross, [spec for _, spec in labelled], quantity=item.quantity, decimals=d
    )

    if item.tax_inclusive and effective_rate > _ZERO:
        subtotal = extract_tax_from_inclusive(gross, effective_rate, d).taxable_amount
        extracted = extract_tax_from_inclusive(discounted.final_amount, effective_rate, d)
        taxable = extracted.taxable_amount
        tax = extracted.tax_amount
    else:
        subtotal = gross
        taxable = discounted.final_amount
        tax = calculate_tax(taxable, effective_rate, d).tax_amount

    calculation = LineItemCalculation(
        line_item=item,
        quantity=item.quantity,
        unit_price=item.unit_price,
        subtotal=subtotal,
        discount_amount=subtract_money(subtotal, taxable, d),
        taxable_amount=taxable,
        tax_amount=tax,
        total_amount=add_money(taxable, tax, d),
        tax_rate=rate,
        is_tax_exempt=exempt,
    )

    if trace is not None:
        trace.record_line(LineTrace(
            line_number=trace.next_line_number(),
            calculation=calculation,
            gross_subtotal=gross,
            discount_steps=tuple(
                (label, step) for (label, _), step in zip(labelled, discounted.steps)
            ),
        ))

    logger.debug("line_item_calculated", extra={
        "line_description": item.description,
        "quantity": str(item.quantity),
        "currency": item.currency,
        "tax_inclusive": item.tax_inclusive,
        "is_tax_exempt": exempt,
        "tax_rate": str(rate),
        "subtotal": str(calculation.subtotal.amount),
        "discount_amount": str(calculation.discount_amount.amount),
        "tax_amount": str(calculation.tax_amount.amount),
        "total_amount": str(calculation.total_amount.amount),
    })
    return calculation


def calculate_line_items(
    items: Sequence[LineItem],
    currency_decimals: int = DEFAULT_CURRENCY_DECIMALS,
    exemption_policy: ExemptionPolicy | None = None,
    trace: CalculationTrace | None = None,
) -> LineItemsResult:
    """
    Price every line and total the columns.

    Raises:
        EmptyInputError: if ``items`` is empty.
        CurrencyMismatchError: if unit prices span currencies.
    """
    if not items:
        raise EmptyInputError("calculate line items")

    currency = items[0].currency
    for item in items:
        if item.currency != currency:
            raise CurrencyMismatchError(currency, item.currency, "calculate line items")

    calculations = tuple(
        calculate_line_item(item, currency_decimals, exemption_policy, trace)
        for item in items
    )
    d = currency_decimals
    summary = LineItemsSummary(
        total_quantity=sum((c.quantity for c in calculations), _ZERO),
        subtotal=sum_money((c.subtotal for c in calculations), d),
        total_discount=sum_money((c.discount_amount for c in calculations), d),
        total_taxable=sum_money((c.taxable_amount for c in calculations), d),
        total_tax=sum_money((c.tax_amount for c in calculations), d),
        total_amount=sum_money((c.total_amount for c in calculations), d),
    )

    logger.info("line_items_calculated", extra={
        "line_count": len(calculations),
        "currency": currency,
        "subtotal": str(summary.subtotal.amount),
        "total_tax": str(summary.total_tax.amount),
        "total_amount": str(summary.total_amount.amount),
    })
    return LineItemsResult(calculations=calculations, summary=summary)


def validate_line_item(
    item: LineItem,
    exemption_policy: ExemptionPolicy | None = None,
) -> bool:
    """
    Non-throwing pre-check: positive quantity, non-negative price, valid
    discounts that leave a non-negative taxable amount, tax rate in range.
    """
    try:
        calculation = calculate_line_item(item, exemption_policy=exemption_policy)
    except PricingError as e:
        logger.debug("line_item_invalid", extra={
            "line_description": item.description,
            "error_code": e.code,
        })
        return False
    return not calculation.taxable_amount.is_negative


def _display(money: Money, decimals: int) -> str:
    return "-" if money.is_zero else format_money(money, decimals)


def get_line_item_breakdown(
    calculation: LineItemCalculation,
    decimals: int = DEFAULT_CURRENCY_DECIMALS,
) -> LineItemBreakdown:
    """Format a line calculation for display. No new arithmetic."""
    return LineItemBreakdown(
        quantity=format(calculation.quantity.normalize(), "f"),
        unit_price=format_money(calculation.unit_price, decimals),
        subtotal=format_money(calculation.subtotal, decimals),
        discount=_display(calculation.discount_amount, decimals),
        taxable=format_money(calculation.taxable_amount, decimals),
        tax=_display(calculation.tax_amount, decimals),
        total=format_money(calculation.total_amount, decimals),
    )
