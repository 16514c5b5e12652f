"""
Tests for engine tracing and the calculation trace collector.
"""

from decimal import Decimal

from pricing_engines.discount import DiscountSpec, DiscountType
from pricing_engines.line import calculate_line_item, calculate_line_items
from pricing_engines.tracer import (
    TRACE_TYPE,
    CalculationTrace,
    _canonicalize,
    compute_input_fingerprint,
    traced_engine,
)
from tests.conftest import make_line, nzd


class TestCanonicalize:
    def test_decimal_normalized(self):
        assert _canonicalize(Decimal("10.50")) == _canonicalize(Decimal("10.5"))

    def test_mapping_order_independent(self):
        assert _canonicalize({"b": 1, "a": 2}) == _canonicalize({"a": 2, "b": 1})

    def test_money_and_enum(self):
        assert _canonicalize(nzd("1.00")) == "1 NZD"
        assert _canonicalize(DiscountType.PER_UNIT) == "per_unit"

    def test_dataclass_includes_type_name(self):
        spec = DiscountSpec(DiscountType.PERCENTAGE, Decimal("10"))
        assert _canonicalize(spec).startswith("DiscountSpec{")

    def test_scalars(self):
        assert _canonicalize(None) == "null"
        assert _canonicalize(True) == "true"
        assert _canonicalize([1, "a"]) == "[1,a]"


class TestFingerprint:
    def test_deterministic(self):
        args = {"quote_input": {"currency": "NZD"}, "currency_decimals": 2}
        fields = ("quote_input", "currency_decimals")
        assert compute_input_fingerprint(fields, args) == compute_input_fingerprint(fields, args)
        assert len(compute_input_fingerprint(fields, args)) == 16

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(("x",), {"x": None})

    def test_only_selected_fields(self):
        a = compute_input_fingerprint(("x",), {"x": 1, "y": 1})
        b = compute_input_fingerprint(("x",), {"x": 1, "y": 2})
        assert a == b


class TestTracedEngine:
    def test_emits_trace_and_returns_result(self, captured_logs):
        @traced_engine("doubler", "2.1", fingerprint_fields=("value",))
        def double(value, label="x"):
            return value * 2

        assert double(Decimal("2.5"), label="y") == Decimal("5.0")

        trace = [r for r in captured_logs() if r["message"] == TRACE_TYPE][0]
        assert trace["trace_type"] == TRACE_TYPE
        assert trace["engine_name"] == "doubler"
        assert trace["engine_version"] == "2.1"
        assert trace["input_fingerprint"] == compute_input_fingerprint(
            ("value",), {"value": Decimal("2.5")}
        )
        assert "duration_ms" in trace
        assert trace["function"].endswith("double")

    def test_positional_and_keyword_fingerprint_match(self, captured_logs):
        @traced_engine("noop", "1.0", fingerprint_fields=("value",))
        def noop(value):
            return value

        noop(1)
        noop(value=1)

        traces = [r for r in captured_logs() if r["message"] == TRACE_TYPE]
        assert traces[0]["input_fingerprint"] == traces[1]["input_fingerprint"]


class TestCalculationTrace:
    def test_records_lines_in_order(self):
        trace = CalculationTrace()
        calculate_line_items([make_line("10.00", 1), make_line("20.00", 1)], trace=trace)

        assert [line.line_number for line in trace.lines] == [1, 2]
        assert trace.lines[1].gross_subtotal == nzd("20.00")
        assert trace.quote is None

    def test_discount_steps_labelled(self):
        trace = CalculationTrace()
        calculate_line_item(
            make_line(
                "100.00",
                2,
                discount_type=DiscountType.FIXED_AMOUNT,
                discount_value=Decimal("20"),
                percentage_discount=Decimal("50"),
            ),
            trace=trace,
        )

        steps = trace.lines[0].discount_steps
        assert [label for label, _ in steps] == ["discount", "percentage_discount"]
        assert steps[0][1].discount_amount == nzd("20.00")
        assert steps[1][1].discount_amount == nzd("90.00")

    def test_trace_does_not_change_result(self):
        item = make_line("33.33", 3, percentage_discount=Decimal("12.5"))
        assert calculate_line_item(item, trace=CalculationTrace()) == calculate_line_item(item)
