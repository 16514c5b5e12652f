"""
Property-based tests for the pricing pipeline.

Property-based testing using Hypothesis to generate quotes, amounts and
discounts and verify invariants hold:

- Determinism: the same quote always prices identically
- Debug parity: the debug view reports the production totals
- Rounding: every computed amount has at most the currency's decimals
- Currency mismatch: every combinator refuses mixed currencies
- Non-negativity: a discount never exceeds its base
- Totals consistency: computed totals always pass validation
- Breakdown completeness: breakdown tax equals the per-item tax sum
"""

from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from pricing_engines.discount import DiscountType, calculate_discount
from pricing_engines.quote import calculate_quote, calculate_quote_debug
from pricing_engines.tax import (
    TaxableItem,
    calculate_tax,
    calculate_tax_breakdown,
    calculate_total_tax_from_breakdown,
)
from pricing_engines.totals import validate_quote_totals
from pricing_kernel.domain.money import (
    Money,
    add_money,
    compare_money,
    round_to_currency,
    subtract_money,
    sum_money,
)
from pricing_kernel.exceptions import CurrencyMismatchError

PROPERTY_SETTINGS = settings(
    max_examples=100,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)

RATES = [Decimal("0"), Decimal("5"), Decimal("10"), Decimal("12.5"), Decimal("15")]


def amounts(max_value="10000.00", places=2, min_value="0"):
    return st.decimals(
        min_value=Decimal(min_value),
        max_value=Decimal(max_value),
        places=places,
        allow_nan=False,
        allow_infinity=False,
    )


@composite
def line_payloads(draw):
    line = {
        "description": draw(st.sampled_from(["Design", "Build", "Flights", "Support"])),
        "quantity": draw(st.decimals(
            min_value=Decimal("0.01"), max_value=Decimal("500"), places=2,
            allow_nan=False, allow_infinity=False,
        )),
        "unit_price": draw(amounts()),
        "unit": "hour",
        "service_type": draw(st.sampled_from([None, "consulting", "travel", "mileage"])),
        "tax_inclusive": draw(st.booleans()),
        "tax_rate": draw(st.sampled_from(RATES)),
    }
    discount = draw(st.sampled_from([None, "percentage", "fixed_amount", "per_unit"]))
    if discount == "percentage":
        line["discount_type"] = discount
        line["discount_value"] = draw(amounts("100", places=1))
    elif discount is not None:
        line["discount_type"] = discount
        line["discount_value"] = draw(amounts("2000"))
    if draw(st.booleans()):
        line["percentage_discount"] = draw(amounts("100", places=1))
    if draw(st.booleans()):
        line["fixed_discount"] = draw(amounts("500"))
    return line


@composite
def quote_discounts(draw):
    kind = draw(st.sampled_from(["percentage", "fixed_amount"]))
    limit = "100" if kind == "percentage" else "5000"
    return {"type": kind, "value": draw(amounts(limit, places=1))}


@composite
def quote_payloads(draw):
    return {
        "currency": "NZD",
        "line_items": draw(st.lists(line_payloads(), min_size=1, max_size=6)),
        "quote_discounts": draw(st.lists(quote_discounts(), max_size=3)),
    }


def _computed_amounts(result):
    for line in result.line_calculations:
        yield from (
            line.subtotal, line.discount_amount, line.taxable_amount,
            line.tax_amount, line.total_amount,
        )
    yield from result.totals.amounts().values()
    for entry in result.tax_breakdown:
        yield entry.taxable_amount
        yield entry.tax_amount


class TestQuoteProperties:
    @given(payload=quote_payloads())
    @PROPERTY_SETTINGS
    def test_deterministic(self, payload):
        assert calculate_quote(payload) == calculate_quote(payload)

    @given(payload=quote_payloads())
    @PROPERTY_SETTINGS
    def test_debug_parity(self, payload):
        production = calculate_quote(payload)
        debug = calculate_quote_debug(payload)

        assert debug.calculation.totals.grand_total == production.totals.grand_total
        assert [line.calculations["total_amount"] for line in debug.line_calculations] == [
            line.total_amount for line in production.line_calculations
        ]

    @given(payload=quote_payloads())
    @PROPERTY_SETTINGS
    def test_totals_consistent(self, payload):
        totals = calculate_quote(payload).totals

        assert validate_quote_totals(totals)
        assert totals.taxable_amount == totals.subtotal - totals.discount_amount
        assert totals.grand_total == totals.taxable_amount + totals.tax_amount

    @given(payload=quote_payloads())
    @PROPERTY_SETTINGS
    def test_lines_never_negative(self, payload):
        result = calculate_quote(payload)

        for line in result.line_calculations:
            assert not line.taxable_amount.is_negative
            assert not line.total_amount.is_negative
            assert line.discount_amount.amount <= line.subtotal.amount
        assert not result.totals.grand_total.is_negative

    @given(payload=quote_payloads(), decimals=st.sampled_from([0, 2, 3]))
    @PROPERTY_SETTINGS
    def test_amounts_rounded_to_currency(self, payload, decimals):
        result = calculate_quote(payload, currency_decimals=decimals)

        for money in _computed_amounts(result):
            assert -money.amount.as_tuple().exponent <= decimals

    @given(payload=quote_payloads())
    @PROPERTY_SETTINGS
    def test_breakdown_matches_line_tax(self, payload):
        result = calculate_quote(payload)

        breakdown_tax = sum((e.tax_amount.amount for e in result.tax_breakdown), Decimal("0"))
        assert breakdown_tax == result.totals.tax_amount.amount


class TestRounding:
    @given(value=st.decimals(
        min_value=Decimal("-1000000"), max_value=Decimal("1000000"), places=3,
        allow_nan=False, allow_infinity=False,
    ))
    @PROPERTY_SETTINGS
    def test_half_up(self, value):
        rounded = round_to_currency(value, 2)
        assert abs(rounded - value) <= Decimal("0.005")
        if abs(value * 1000) % 10 == 5:
            assert abs(rounded) > abs(value)

    @pytest.mark.parametrize("value,expected", [
        ("10.005", "10.01"),
        ("10.004", "10.00"),
        ("-10.005", "-10.01"),
        ("0.125", "0.13"),
    ])
    def test_examples(self, value, expected):
        assert round_to_currency(Decimal(value), 2) == Decimal(expected)


class TestCurrencyMismatch:
    @given(
        a=amounts(),
        b=amounts(),
        currencies=st.sampled_from([("NZD", "AUD"), ("USD", "EUR"), ("JPY", "NZD")]),
    )
    @PROPERTY_SETTINGS
    def test_every_combinator_refuses(self, a, b, currencies):
        x = Money.of(a, currencies[0])
        y = Money.of(b, currencies[1])

        for combine in (add_money, subtract_money, compare_money):
            with pytest.raises(CurrencyMismatchError):
                combine(x, y)
        with pytest.raises(CurrencyMismatchError):
            sum_money([x, y])
        with pytest.raises(CurrencyMismatchError):
            x + y


class TestDiscountNonNegativity:
    @given(
        base=amounts(),
        value=amounts("20000"),
        quantity=st.decimals(
            min_value=Decimal("0.01"), max_value=Decimal("1000"), places=2,
            allow_nan=False, allow_infinity=False,
        ),
        discount_type=st.sampled_from([DiscountType.FIXED_AMOUNT, DiscountType.PER_UNIT]),
    )
    @PROPERTY_SETTINGS
    def test_amount_discounts_capped(self, base, value, quantity, discount_type):
        result = calculate_discount(Money.of(base, "NZD"), discount_type, value, quantity)

        assert result.discount_amount.amount <= base
        assert not result.final_amount.is_negative
        assert result.final_amount.amount + result.discount_amount.amount == base

    @given(base=amounts(), value=amounts("100", places=2))
    @PROPERTY_SETTINGS
    def test_percentage_discounts_bounded(self, base, value):
        result = calculate_discount(Money.of(base, "NZD"), DiscountType.PERCENTAGE, value)

        assert result.discount_amount.amount <= base
        assert not result.final_amount.is_negative


class TestTaxBreakdownCompleteness:
    @given(items=st.lists(
        st.tuples(amounts(), st.sampled_from(RATES), st.booleans()),
        min_size=1,
        max_size=12,
    ))
    @PROPERTY_SETTINGS
    def test_breakdown_total_equals_item_tax(self, items):
        taxable = [
            TaxableItem(amount=Money.of(amount, "NZD"), tax_rate=rate, is_tax_exempt=exempt)
            for amount, rate, exempt in items
        ]
        expected = sum(
            (
                Decimal("0") if item.is_tax_exempt
                else calculate_tax(item.amount, item.tax_rate).tax_amount.amount
                for item in taxable
            ),
            Decimal("0"),
        )

        total = calculate_total_tax_from_breakdown(calculate_tax_breakdown(taxable))
        assert total.amount == expected
