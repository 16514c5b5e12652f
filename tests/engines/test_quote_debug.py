"""
Tests for the quote debug view.

The debug view runs the production pipeline with a trace attached, so its
numbers must match ``calculate_quote`` exactly.
"""

import json
from decimal import Decimal

import pytest

from pricing_engines.quote import calculate_quote, calculate_quote_debug
from pricing_kernel.exceptions import QuoteCalculationError, QuoteSchemaValidationError
from tests.conftest import nzd


def mixed_payload():
    return {
        "currency": "NZD",
        "line_items": [
            {"description": "Workshop", "quantity": 40, "unit_price": "172.50",
             "unit": "hour", "tax_inclusive": True},
            {"description": "Build", "quantity": 40, "unit_price": "150.00",
             "unit": "hour", "percentage_discount": 10},
            {"description": "Flights", "quantity": 1, "unit_price": "500.00",
             "unit": "trip", "service_type": "travel"},
        ],
        "quote_discount": {"type": "fixed_amount", "value": "30"},
    }


class TestDebugParity:
    def test_totals_match_production(self):
        debug = calculate_quote_debug(mixed_payload())
        production = calculate_quote(mixed_payload())

        assert debug.calculation.totals == production.totals
        assert [c.total_amount for c in debug.calculation.line_calculations] == [
            c.total_amount for c in production.line_calculations
        ]
        assert debug.quote_calculations.calculations["grand_total"] == production.totals.grand_total

    def test_line_debug_totals_match_production(self):
        debug = calculate_quote_debug(mixed_payload())
        production = calculate_quote(mixed_payload())

        for line_debug, calc in zip(debug.line_calculations, production.line_calculations):
            assert line_debug.calculations["total_amount"] == calc.total_amount

    def test_same_errors_as_production(self):
        bad = dict(mixed_payload(), quote_discount={"type": "per_unit", "value": 1})
        with pytest.raises(QuoteCalculationError):
            calculate_quote_debug(bad)
        with pytest.raises(QuoteSchemaValidationError):
            calculate_quote_debug({"line_items": []})


class TestLineDebug:
    def setup_method(self):
        self.debug = calculate_quote_debug(mixed_payload())

    def test_line_numbers(self):
        assert [line.line_number for line in self.debug.line_calculations] == [1, 2, 3]

    def test_inclusive_line(self):
        line = self.debug.line_calculations[0]

        assert line.description == "Workshop"
        assert line.calculations["gross_subtotal"] == nzd("6900.00")
        assert line.calculations["subtotal"] == nzd("6000.00")
        assert line.breakdown["total"] == "$6900.00"
        assert line.breakdown["tax"] == "$900.00 (15%)"
        assert line.input["tax_inclusive"] is True

    def test_discount_step_recorded(self):
        line = self.debug.line_calculations[1]

        assert line.calculations["percentage_discount"] == nzd("600.00")
        assert line.calculations["discount_amount"] == nzd("600.00")
        assert line.breakdown["taxable"] == "$5400.00"
        assert "gross_subtotal" not in line.calculations

    def test_exempt_line_shows_zero_rate(self):
        line = self.debug.line_calculations[2]

        assert line.input["is_tax_exempt"] is True
        assert line.breakdown["tax"] == "$0.00 (0%)"


class TestQuoteLevelDebug:
    def test_quote_calculations(self):
        quote = calculate_quote_debug(mixed_payload()).quote_calculations

        assert quote.input["currency"] == "NZD"
        assert quote.input["line_totals"] == [nzd("6900.00"), nzd("6210.00"), nzd("500.00")]
        assert quote.calculations["line_total"] == nzd("13610.00")
        assert quote.calculations["quote_fixed_amount_discount_1"] == nzd("30.00")
        assert quote.calculations["grand_total"] == nzd("13580.00")
        assert quote.breakdown["grand_total"] == "$13580.00"

    def test_tax_breakdown_labels(self):
        debug = calculate_quote_debug(
            mixed_payload(),
            describe_rate=lambda rate: f"VAT {rate}",
        )
        assert [e.description for e in debug.tax_breakdown] == ["VAT 0", "VAT 15"]

    def test_to_dict_is_json_ready(self):
        data = calculate_quote_debug(mixed_payload()).to_dict()
        encoded = json.loads(json.dumps(data))

        first = encoded["line_calculations"][0]
        assert first["calculations"]["total_amount"] == {"amount": "6900.00", "currency": "NZD"}
        discounts = encoded["quote_calculations"]["input"]["quote_discounts"]
        assert discounts[0]["type"] == "fixed_amount"
        assert Decimal(discounts[0]["value"]) == Decimal("30")
