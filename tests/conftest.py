"""
Pytest fixtures for the pricing engine test suite.

Provides:
- Structured logging configured for every session, with per-test context reset
- Log capture as parsed JSON dicts
- Money and line-item builders shared across engine tests
"""

import json
import logging
from decimal import Decimal
from io import StringIO

import pytest

from pricing_engines.line import LineItem
from pricing_kernel.domain.money import Money
from pricing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture pricing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            calculate_quote(payload)
            logs = captured_logs()
            assert any(r["message"] == "quote_calculation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("pricing_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Builders
# =============================================================================


def nzd(amount: str | int) -> Money:
    """Shorthand for an NZD amount."""
    return Money.of(Decimal(str(amount)), "NZD")


def make_line(
    unit_price: str | int = "100.00",
    quantity: str | int = 1,
    currency: str = "NZD",
    description: str = "Consulting",
    unit: str = "hour",
    **overrides,
) -> LineItem:
    """Build a LineItem with sensible defaults."""
    return LineItem(
        description=description,
        quantity=Decimal(str(quantity)),
        unit_price=Money.of(Decimal(str(unit_price)), currency),
        unit=unit,
        **overrides,
    )


@pytest.fixture
def line_factory():
    return make_line
