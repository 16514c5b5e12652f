"""
Quote Orchestrator - Single entry point for complete quote calculations.

Validates the request, brings every line into the quote currency, then runs
the line, totals and tax-breakdown engines.  Pure: no I/O beyond logging.

Error surface:
    - ``QuoteSchemaValidationError`` when the input fails validation; raised
      before any arithmetic and never wrapped.
    - ``QuoteCalculationError`` for any failure inside the pipeline, with the
      original exception chained as ``__cause__``.  No partial result is
      ever returned.

The debug variant runs the same pipeline with a ``CalculationTrace``
attached and renders what was recorded, so its totals are the production
totals by construction.

Usage:
    from pricing_engines.quote import calculate_quote

    calculation = calculate_quote({
        "currency": "NZD",
        "line_items": [
            {"description": "Design", "quantity": 2, "unit_price": "100.00", "unit": "hour"},
        ],
        "quote_discount": {"type": "fixed_amount", "value": "30"},
    })
    print(calculation.totals.grand_total)  # 200.00 NZD
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from pricing_engines.discount import DiscountCalculation
from pricing_engines.line import (
    LineItem,
    LineItemBreakdown,
    LineItemCalculation,
    LineItemsSummary,
    calculate_line_items,
    get_line_item_breakdown,
)
from pricing_engines.schema import (
    CalculateQuoteInput,
    check_quote_input,
    coerce_quote_input,
    validate_quote_payload,
)
from pricing_engines.tax import (
    ExemptionPolicy,
    TaxBreakdownEntry,
    describe_tax_rate,
    format_rate,
)
from pricing_engines.totals import (
    QuoteTotals,
    TotalsBreakdown,
    calculate_line_tax_breakdown,
    calculate_quote_totals_with_multiple_discounts,
    get_totals_breakdown,
)
from pricing_engines.tracer import CalculationTrace, LineTrace, traced_engine
from pricing_kernel.domain.currency import CurrencyRegistry
from pricing_kernel.domain.money import (
    DEFAULT_CURRENCY_DECIMALS,
    Money,
    convert_money,
    format_amount,
)
from pricing_kernel.exceptions import (
    CurrencyMismatchError,
    QuoteCalculationError,
)
from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.quote")

QUOTE_ENGINE_VERSION = "1.0"


@dataclass(frozen=True)
class QuoteCalculation:
    line_calculations: tuple[LineItemCalculation, ...]
    totals: QuoteTotals
    summary: LineItemsSummary
    tax_breakdown: tuple[TaxBreakdownEntry, ...]


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def _in_quote_currency(
    item: LineItem,
    currency: str,
    exchange_rates: Mapping[str, Decimal],
    decimals: int,
) -> LineItem:
    """Return ``item`` priced in ``currency``, converting only with an explicit rate."""
    if item.currency == currency:
        return item
    rate = exchange_rates.get(item.currency)
    if rate is None:
        raise CurrencyMismatchError(currency, item.currency, "price line in quote currency")

    fixed = item.fixed_discount
    converted = dataclasses.replace(
        item,
        unit_price=convert_money(item.unit_price, currency, rate, decimals),
        fixed_discount=convert_money(fixed, currency, rate, decimals) if fixed is not None else None,
    )
    logger.info("line_currency_converted", extra={
        "line_description": item.description,
        "from_currency": item.currency,
        "to_currency": currency,
        "exchange_rate": str(rate),
        "unit_price": str(item.unit_price.amount),
        "converted_unit_price": str(converted.unit_price.amount),
    })
    return converted


@traced_engine(
    "quote",
    QUOTE_ENGINE_VERSION,
    fingerprint_fields=("quote_input", "currency_decimals"),
)
def calculate_quote(
    quote_input: CalculateQuoteInput | Mapping[str, Any],
    currency_decimals: int = DEFAULT_CURRENCY_DECIMALS,
    exemption_policy: ExemptionPolicy | None = None,
    trace: CalculationTrace | None = None,
    describe_rate: Callable[[Decimal], str] = describe_tax_rate,
) -> QuoteCalculation:
    """
    Price a complete quote.

    ``quote_input`` may be a ``CalculateQuoteInput`` or a decoded payload
    mapping (see ``pricing_engines.schema``).

    Raises:
        QuoteSchemaValidationError: input failed validation.
        QuoteCalculationError: anything failed during calculation.
    """
    request = coerce_quote_input(quote_input)
    t0 = time.monotonic()

    logger.info("quote_calculation_started", extra={
        "currency": request.currency,
        "line_count": len(request.line_items),
        "quote_discount_count": len(request.all_quote_discounts),
        "currency_decimals": currency_decimals,
    })

    try:
        currency = CurrencyRegistry.validate(request.currency)
        items = [
            _in_quote_currency(item, currency, request.exchange_rates, currency_decimals)
            for item in request.line_items
        ]
        lines = calculate_line_items(items, currency_decimals, exemption_policy, trace)
        totals = calculate_quote_totals_with_multiple_discounts(
            lines.calculations, request.all_quote_discounts, currency_decimals, trace
        )
        tax_breakdown = calculate_line_tax_breakdown(
            lines.calculations, currency_decimals, describe_rate
        )
    except Exception as e:
        logger.warning("quote_calculation_failed", extra={
            "currency": request.currency,
            "error_code": getattr(e, "code", type(e).__name__),
            "error": str(e),
        })
        raise QuoteCalculationError(e) from e

    duration_ms = round((time.monotonic() - t0) * 1000, 2)
    logger.info("quote_calculation_completed", extra={
        "currency": currency,
        "line_count": len(lines.calculations),
        "subtotal": str(totals.subtotal.amount),
        "discount_amount": str(totals.discount_amount.amount),
        "tax_amount": str(totals.tax_amount.amount),
        "grand_total": str(totals.grand_total.amount),
        "duration_ms": duration_ms,
    })

    return QuoteCalculation(
        line_calculations=lines.calculations,
        totals=totals,
        summary=lines.summary,
        tax_breakdown=tax_breakdown,
    )


def validate_quote_input(quote_input: CalculateQuoteInput | Mapping[str, Any]) -> bool:
    """Schema-only check; never raises."""
    if isinstance(quote_input, CalculateQuoteInput):
        return check_quote_input(quote_input).is_valid
    return validate_quote_payload(quote_input).is_valid


# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QuoteLineBreakdown:
    description: str
    breakdown: LineItemBreakdown


@dataclass(frozen=True)
class QuoteBreakdown:
    line_items: tuple[QuoteLineBreakdown, ...]
    totals: TotalsBreakdown


def get_quote_breakdown(
    calculation: QuoteCalculation,
    decimals: int = DEFAULT_CURRENCY_DECIMALS,
) -> QuoteBreakdown:
    """Display strings (``"NZD 123.45"``, ``"-"`` for zero) for every line and the totals."""
    return QuoteBreakdown(
        line_items=tuple(
            QuoteLineBreakdown(
                description=calc.line_item.description,
                breakdown=get_line_item_breakdown(calc, decimals),
            )
            for calc in calculation.line_calculations
        ),
        totals=get_totals_breakdown(calculation.totals, decimals),
    )


# ---------------------------------------------------------------------------
# Debug view
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineItemDebug:
    """Inputs, intermediate amounts and display strings for one line."""

    line_number: int
    description: str
    input: dict[str, Any]
    calculations: dict[str, Money]
    breakdown: dict[str, str]


@dataclass(frozen=True)
class QuoteLevelDebug:
    input: dict[str, Any]
    calculations: dict[str, Money]
    breakdown: dict[str, str]


@dataclass(frozen=True)
class QuoteDebugOutput:
    calculation: QuoteCalculation
    line_calculations: tuple[LineItemDebug, ...]
    quote_calculations: QuoteLevelDebug
    tax_breakdown: tuple[TaxBreakdownEntry, ...]

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready rendering; amounts become strings."""
        return {
            "line_calculations": [_jsonable(line) for line in self.line_calculations],
            "quote_calculations": _jsonable(self.quote_calculations),
            "tax_breakdown": [_jsonable(entry) for entry in self.tax_breakdown],
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, Money):
        return {"amount": str(value.amount), "currency": value.currency}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _dollars(money: Money, decimals: int) -> str:
    return f"${format_amount(money.amount, decimals)}"


def _line_debug(line: LineTrace, decimals: int) -> LineItemDebug:
    calc = line.calculation
    item = calc.line_item
    effective_rate = Decimal("0") if calc.is_tax_exempt else calc.tax_rate

    calculations: dict[str, Money] = {"subtotal": calc.subtotal}
    if item.tax_inclusive:
        calculations["gross_subtotal"] = line.gross_subtotal
    for label, step in line.discount_steps:
        calculations[label] = step.discount_amount
    calculations.update({
        "discount_amount": calc.discount_amount,
        "taxable_amount": calc.taxable_amount,
        "tax_amount": calc.tax_amount,
        "total_amount": calc.total_amount,
    })

    return LineItemDebug(
        line_number=line.line_number,
        description=item.description,
        input={
            "quantity": calc.quantity,
            "unit_price": calc.unit_price,
            "unit": item.unit,
            "service_type": item.service_type,
            "tax_inclusive": item.tax_inclusive,
            "tax_rate": calc.tax_rate,
            "is_tax_exempt": calc.is_tax_exempt,
            "discount_type": item.discount_type,
            "discount_value": item.discount_value,
            "percentage_discount": item.percentage_discount,
            "fixed_discount": item.fixed_discount,
        },
        calculations=calculations,
        breakdown={
            "subtotal": _dollars(calc.subtotal, decimals),
            "discount": _dollars(calc.discount_amount, decimals),
            "taxable": _dollars(calc.taxable_amount, decimals),
            "tax": f"{_dollars(calc.tax_amount, decimals)} ({format_rate(effective_rate)}%)",
            "total": _dollars(calc.total_amount, decimals),
        },
    )


def _quote_debug(
    trace: CalculationTrace,
    request: CalculateQuoteInput,
    decimals: int,
) -> QuoteLevelDebug:
    quote = trace.quote
    totals = quote.totals
    steps: tuple[DiscountCalculation, ...] = quote.discount_steps

    calculations: dict[str, Money] = {
        "subtotal": totals.subtotal,
        "line_total": quote.line_total,
        "line_discount_amount": totals.line_discount_amount,
    }
    for i, step in enumerate(steps, start=1):
        calculations[f"quote_{step.discount_type.value}_discount_{i}"] = step.discount_amount
    calculations.update({
        "quote_discount_amount": totals.quote_discount_amount,
        "discount_amount": totals.discount_amount,
        "taxable_amount": totals.taxable_amount,
        "tax_amount": totals.tax_amount,
        "grand_total": totals.grand_total,
    })

    return QuoteLevelDebug(
        input={
            "line_totals": [line.calculation.total_amount for line in trace.lines],
            "quote_discounts": list(request.all_quote_discounts),
            "currency": totals.currency,
        },
        calculations=calculations,
        breakdown={
            "subtotal": _dollars(totals.subtotal, decimals),
            "discount": _dollars(totals.discount_amount, decimals),
            "taxable": _dollars(totals.taxable_amount, decimals),
            "tax": _dollars(totals.tax_amount, decimals),
            "grand_total": _dollars(totals.grand_total, decimals),
        },
    )


def calculate_quote_debug(
    quote_input: CalculateQuoteInput | Mapping[str, Any],
    currency_decimals: int = DEFAULT_CURRENCY_DECIMALS,
    exemption_policy: ExemptionPolicy | None = None,
    describe_rate: Callable[[Decimal], str] = describe_tax_rate,
) -> QuoteDebugOutput:
    """
    Run ``calculate_quote`` with a trace attached and render every step.

    For internal tooling only; production callers use ``calculate_quote``.
    Raises exactly what ``calculate_quote`` raises.
    """
    request = coerce_quote_input(quote_input)
    trace = CalculationTrace()
    calculation = calculate_quote(
        request,
        currency_decimals=currency_decimals,
        exemption_policy=exemption_policy,
        trace=trace,
        describe_rate=describe_rate,
    )

    return QuoteDebugOutput(
        calculation=calculation,
        line_calculations=tuple(_line_debug(line, currency_decimals) for line in trace.lines),
        quote_calculations=_quote_debug(trace, request, currency_decimals),
        tax_breakdown=calculation.tax_breakdown,
    )
