"""
Tests for Line Engine.

Covers:
- Exclusive and tax-inclusive lines
- Typed and legacy line discounts, compounded in order
- Exemption resolution (explicit flag, then policy)
- Multi-line summaries
- Non-throwing validation and display breakdown
"""

from decimal import Decimal

import pytest

from pricing_engines.discount import DiscountType
from pricing_engines.line import (
    LineItem,
    calculate_line_item,
    calculate_line_items,
    get_line_item_breakdown,
    validate_line_item,
)
from pricing_engines.tax import ServiceTypeExemptionPolicy
from pricing_engines.tracer import CalculationTrace
from pricing_kernel.domain.money import Money
from pricing_kernel.exceptions import (
    CurrencyMismatchError,
    EmptyInputError,
    InvalidDiscountError,
    InvalidQuantityError,
    InvalidTaxRateError,
    InvalidUnitPriceError,
)
from tests.conftest import make_line, nzd


def assert_line_invariants(calc):
    assert calc.taxable_amount == calc.subtotal - calc.discount_amount
    assert calc.total_amount == calc.taxable_amount + calc.tax_amount


class TestExclusiveLine:
    """Tax added on top of the quoted price."""

    def test_no_discount(self):
        """2 x 100.00 at 15%: subtotal 200, tax 30, total 230."""
        calc = calculate_line_item(make_line("100.00", 2, tax_rate=15))

        assert calc.subtotal == nzd("200.00")
        assert calc.discount_amount == nzd("0.00")
        assert calc.taxable_amount == nzd("200.00")
        assert calc.tax_amount == nzd("30.00")
        assert calc.total_amount == nzd("230.00")
        assert_line_invariants(calc)

    def test_percentage_discount(self):
        """10% line discount: discount 20, taxable 180, tax 27, total 207."""
        calc = calculate_line_item(make_line(
            "100.00", 2,
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal("10"),
        ))

        assert calc.discount_amount == nzd("20.00")
        assert calc.taxable_amount == nzd("180.00")
        assert calc.tax_amount == nzd("27.00")
        assert calc.total_amount == nzd("207.00")
        assert_line_invariants(calc)

    def test_default_rate_is_gst(self):
        calc = calculate_line_item(make_line("10.00", 1))
        assert calc.tax_rate == Decimal("15")
        assert calc.tax_amount == nzd("1.50")

    def test_custom_rate(self):
        calc = calculate_line_item(make_line("100.00", 1, tax_rate=Decimal("9")))
        assert calc.tax_amount == nzd("9.00")

    def test_fractional_quantity(self):
        calc = calculate_line_item(make_line("80.00", "1.5"))
        assert calc.subtotal == nzd("120.00")

    def test_per_unit_discount(self):
        calc = calculate_line_item(make_line(
            "50.00", 4, discount_type="per_unit", discount_value="2.50",
        ))
        assert calc.discount_amount == nzd("10.00")
        assert calc.taxable_amount == nzd("190.00")

    def test_discount_larger_than_subtotal(self):
        """A 150.00 fixed discount on 100.00 is capped; nothing goes negative."""
        calc = calculate_line_item(make_line(
            "100.00", 1, discount_type=DiscountType.FIXED_AMOUNT, discount_value=150,
        ))
        assert calc.discount_amount == nzd("100.00")
        assert calc.taxable_amount == nzd("0.00")
        assert calc.tax_amount.is_zero
        assert calc.total_amount.is_zero


class TestLegacyDiscounts:
    def test_percentage_then_fixed(self):
        """20 x 120.00, 10% then 50.00 fixed: discount 290, tax 316.50, total 2426.50."""
        calc = calculate_line_item(make_line(
            "120.00", 20,
            percentage_discount=Decimal("10"),
            fixed_discount=nzd("50.00"),
        ))

        assert calc.subtotal == nzd("2400.00")
        assert calc.discount_amount == nzd("290.00")
        assert calc.taxable_amount == nzd("2110.00")
        assert calc.tax_amount == nzd("316.50")
        assert calc.total_amount == nzd("2426.50")

    def test_typed_discount_applied_first(self):
        trace = CalculationTrace()
        calculate_line_item(
            make_line(
                "100.00", 1,
                discount_type=DiscountType.FIXED_AMOUNT,
                discount_value=Decimal("20"),
                percentage_discount=Decimal("50"),
            ),
            trace=trace,
        )
        steps = trace.lines[0].discount_steps
        assert [label for label, _ in steps] == ["discount", "percentage_discount"]
        assert steps[1][1].discount_amount == nzd("40.00")

    def test_fixed_discount_currency_mismatch(self):
        with pytest.raises(CurrencyMismatchError):
            calculate_line_item(make_line("100.00", 1, fixed_discount=Money.of("5", "AUD")))

    def test_invalid_percentage(self):
        with pytest.raises(InvalidDiscountError):
            calculate_line_item(make_line("100.00", 1, percentage_discount=Decimal("120")))


class TestTaxInclusiveLine:
    """Quoted prices that already contain tax."""

    def test_inclusive_without_discount(self):
        """40 x 172.50 incl. 15%: subtotal 6000, tax 900, total 6900."""
        calc = calculate_line_item(make_line("172.50", 40, tax_inclusive=True))

        assert calc.subtotal == nzd("6000.00")
        assert calc.taxable_amount == nzd("6000.00")
        assert calc.tax_amount == nzd("900.00")
        assert calc.total_amount == nzd("6900.00")
        assert_line_invariants(calc)

    def test_inclusive_with_percentage_discount(self):
        """20 x 138.00 incl. 15%, 10% off: subtotal 2400, discount 240, tax 324, total 2484."""
        calc = calculate_line_item(make_line(
            "138.00", 20, tax_inclusive=True, percentage_discount=Decimal("10"),
        ))

        assert calc.subtotal == nzd("2400.00")
        assert calc.discount_amount == nzd("240.00")
        assert calc.taxable_amount == nzd("2160.00")
        assert calc.tax_amount == nzd("324.00")
        assert calc.total_amount == nzd("2484.00")
        assert_line_invariants(calc)

    def test_inclusive_115(self):
        calc = calculate_line_item(make_line("115.00", 1, tax_inclusive=True))
        assert calc.taxable_amount == nzd("100.00")
        assert calc.tax_amount == nzd("15.00")

    def test_inclusive_exempt_line_has_no_tax(self):
        calc = calculate_line_item(make_line(
            "115.00", 1, tax_inclusive=True, is_tax_exempt=True,
        ))
        assert calc.tax_amount.is_zero
        assert calc.total_amount == nzd("115.00")


class TestExemption:
    def test_service_type_exempt_by_default_policy(self):
        calc = calculate_line_item(make_line("50.00", 1, service_type="travel"))
        assert calc.is_tax_exempt
        assert calc.tax_amount.is_zero
        assert calc.total_amount == nzd("50.00")

    def test_explicit_flag_overrides_policy(self):
        calc = calculate_line_item(make_line(
            "50.00", 1, service_type="travel", is_tax_exempt=False,
        ))
        assert calc.tax_amount == nzd("7.50")

    def test_injected_policy(self):
        policy = ServiceTypeExemptionPolicy(["training"])
        taxed = calculate_line_item(make_line("50.00", 1, service_type="travel"), exemption_policy=policy)
        exempt = calculate_line_item(make_line("50.00", 1, service_type="training"), exemption_policy=policy)
        assert taxed.tax_amount == nzd("7.50")
        assert exempt.tax_amount.is_zero

    def test_zero_rate_not_exempt(self):
        calc = calculate_line_item(make_line("50.00", 1, tax_rate=0))
        assert not calc.is_tax_exempt
        assert calc.tax_amount.is_zero


class TestLineErrors:
    @pytest.mark.parametrize("quantity", [0, -1, "-0.5"])
    def test_non_positive_quantity(self, quantity):
        with pytest.raises(InvalidQuantityError):
            calculate_line_item(make_line("10.00", quantity))

    def test_negative_unit_price(self):
        with pytest.raises(InvalidUnitPriceError):
            calculate_line_item(make_line("-10.00", 1))

    def test_invalid_tax_rate(self):
        with pytest.raises(InvalidTaxRateError):
            calculate_line_item(make_line("10.00", 1, tax_rate=Decimal("101")))

    def test_zero_price_allowed(self):
        calc = calculate_line_item(make_line("0.00", 3))
        assert calc.total_amount.is_zero


class TestCalculateLineItems:
    def test_summary(self):
        result = calculate_line_items([
            make_line("100.00", 2),
            make_line("50.00", 1, service_type="travel"),
            make_line("10.00", "0.5", percentage_discount=Decimal("10")),
        ])

        summary = result.summary
        assert len(result.calculations) == 3
        assert summary.total_quantity == Decimal("3.5")
        assert summary.subtotal == nzd("255.00")
        assert summary.total_discount == nzd("0.50")
        assert summary.total_taxable == nzd("254.50")
        assert summary.total_tax == nzd("30.68")
        assert summary.total_amount == nzd("285.18")

    def test_empty(self):
        with pytest.raises(EmptyInputError):
            calculate_line_items([])

    def test_mixed_currencies(self):
        with pytest.raises(CurrencyMismatchError):
            calculate_line_items([make_line("1.00", 1), make_line("1.00", 1, currency="AUD")])

    def test_logs_summary(self, captured_logs):
        calculate_line_items([make_line("100.00", 2)])
        logs = captured_logs()
        completed = [r for r in logs if r["message"] == "line_items_calculated"]
        assert completed and completed[0]["total_amount"] == "230.00"


class TestValidateLineItem:
    def test_valid(self):
        assert validate_line_item(make_line("100.00", 1))

    def test_invalid_quantity(self):
        assert not validate_line_item(make_line("100.00", 0))

    def test_negative_price(self):
        assert not validate_line_item(make_line("-1.00", 1))

    def test_bad_discount(self):
        assert not validate_line_item(make_line(
            "100.00", 1, discount_type="percentage", discount_value=150,
        ))

    def test_bad_rate(self):
        assert not validate_line_item(make_line("100.00", 1, tax_rate=-5))


class TestLineBreakdown:
    def test_display_strings(self):
        calc = calculate_line_item(make_line("100.00", 2, percentage_discount=Decimal("10")))
        breakdown = get_line_item_breakdown(calc)

        assert breakdown.quantity == "2"
        assert breakdown.unit_price == "NZD 100.00"
        assert breakdown.subtotal == "NZD 200.00"
        assert breakdown.discount == "NZD 20.00"
        assert breakdown.taxable == "NZD 180.00"
        assert breakdown.tax == "NZD 27.00"
        assert breakdown.total == "NZD 207.00"

    def test_zero_discount_and_tax_dashed(self):
        calc = calculate_line_item(make_line("50.00", 1, service_type="travel"))
        breakdown = get_line_item_breakdown(calc)
        assert breakdown.discount == "-"
        assert breakdown.tax == "-"


class TestLineItemConstruction:
    def test_numeric_fields_coerced(self):
        item = LineItem(
            description="x", quantity=2, unit_price=nzd("1"), unit="each",
            tax_rate=15, discount_value="5",
        )
        assert item.quantity == Decimal("2")
        assert item.tax_rate == Decimal("15")
        assert item.discount_value == Decimal("5")
