"""
Module: pricing_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pricing
    engine sub-modules.  This is the canonical import surface for callers
    (route handlers, the quote breakdown script).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pricing_kernel and sibling engine modules.
    MUST NOT import pricing_config; policy is passed in as parameters.

Invariants enforced:
    - Decimal-only arithmetic: floats never reach a monetary amount.
    - Every returned amount is rounded half-up to the caller's currency
      precision.
    - Determinism: identical inputs always produce identical outputs.

Failure modes:
    - Typed ``PricingError`` subclasses from the individual engines.
    - ``QuoteSchemaValidationError`` / ``QuoteCalculationError`` from the
      orchestrator, which wraps everything raised inside its pipeline.

Audit relevance:
    Every ``calculate_quote`` invocation is traced via ``@traced_engine``
    (see ``pricing_engines.tracer``), emitting a PRICING_ENGINE_TRACE log
    record with engine name, version, input fingerprint and duration.

Usage:
    from pricing_engines.quote import calculate_quote, calculate_quote_debug
    from pricing_engines.line import LineItem, calculate_line_item
    from pricing_engines.totals import calculate_quote_totals
    from pricing_engines.tax import calculate_tax, extract_tax_from_inclusive
    from pricing_engines.discount import DiscountSpec, DiscountType
"""

from pricing_kernel.logging_config import get_logger

logger = get_logger("engines")

from pricing_engines.discount import (
    DiscountCalculation,
    DiscountSpec,
    DiscountType,
    QuoteDiscount,
    apply_multiple_discounts,
    calculate_discount,
    calculate_effective_discount_percentage,
    format_discount,
    get_maximum_safe_discount,
    validate_discount,
    would_result_in_negative,
)
from pricing_engines.line import (
    LineItem,
    LineItemBreakdown,
    LineItemCalculation,
    LineItemsResult,
    LineItemsSummary,
    calculate_line_item,
    calculate_line_items,
    get_line_item_breakdown,
    validate_line_item,
)
from pricing_engines.quote import (
    LineItemDebug,
    QuoteBreakdown,
    QuoteCalculation,
    QuoteDebugOutput,
    QuoteLevelDebug,
    calculate_quote,
    calculate_quote_debug,
    get_quote_breakdown,
    validate_quote_input,
)
from pricing_engines.schema import (
    CalculateQuoteInput,
    parse_quote_input,
    validate_quote_payload,
)
from pricing_engines.tax import (
    DEFAULT_GST_RATE,
    DEFAULT_TAX_RULE,
    ExemptionPolicy,
    ServiceTypeExemptionPolicy,
    TaxableItem,
    TaxBreakdownEntry,
    TaxCalculation,
    TaxRule,
    calculate_tax,
    calculate_tax_breakdown,
    calculate_tax_for_line_items,
    calculate_total_tax_from_breakdown,
    extract_tax_from_inclusive,
    get_tax_rate_for_service,
    is_tax_exempt,
    validate_tax_rate,
)
from pricing_engines.totals import (
    QuoteTotals,
    QuoteTotalsWithBreakdown,
    TotalsPercentages,
    calculate_quote_totals,
    calculate_quote_totals_with_breakdown,
    calculate_quote_totals_with_multiple_discounts,
    calculate_totals_percentages,
    get_totals_breakdown,
    validate_quote_totals,
)
from pricing_engines.tracer import CalculationTrace, traced_engine

__all__ = [
    # Discount
    "DiscountCalculation",
    "DiscountSpec",
    "DiscountType",
    "QuoteDiscount",
    "apply_multiple_discounts",
    "calculate_discount",
    "calculate_effective_discount_percentage",
    "format_discount",
    "get_maximum_safe_discount",
    "validate_discount",
    "would_result_in_negative",
    # Line
    "LineItem",
    "LineItemBreakdown",
    "LineItemCalculation",
    "LineItemsResult",
    "LineItemsSummary",
    "calculate_line_item",
    "calculate_line_items",
    "get_line_item_breakdown",
    "validate_line_item",
    # Quote
    "CalculateQuoteInput",
    "LineItemDebug",
    "QuoteBreakdown",
    "QuoteCalculation",
    "QuoteDebugOutput",
    "QuoteLevelDebug",
    "calculate_quote",
    "calculate_quote_debug",
    "get_quote_breakdown",
    "parse_quote_input",
    "validate_quote_input",
    "validate_quote_payload",
    # Tax
    "DEFAULT_GST_RATE",
    "DEFAULT_TAX_RULE",
    "ExemptionPolicy",
    "ServiceTypeExemptionPolicy",
    "TaxableItem",
    "TaxBreakdownEntry",
    "TaxCalculation",
    "TaxRule",
    "calculate_tax",
    "calculate_tax_breakdown",
    "calculate_tax_for_line_items",
    "calculate_total_tax_from_breakdown",
    "extract_tax_from_inclusive",
    "get_tax_rate_for_service",
    "is_tax_exempt",
    "validate_tax_rate",
    # Totals
    "QuoteTotals",
    "QuoteTotalsWithBreakdown",
    "TotalsPercentages",
    "calculate_quote_totals",
    "calculate_quote_totals_with_breakdown",
    "calculate_quote_totals_with_multiple_discounts",
    "calculate_totals_percentages",
    "get_totals_breakdown",
    "validate_quote_totals",
    # Tracing
    "CalculationTrace",
    "traced_engine",
]
