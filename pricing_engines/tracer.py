"""
pricing_engines.tracer -- Invocation tracing and intermediate-step capture.

Responsibility:
    Two observation tools for the pricing pipeline, neither of which
    changes a computed amount:

    - ``@traced_engine`` wraps an engine entry point and emits one
      PRICING_ENGINE_TRACE log record per invocation carrying engine_name,
      engine_version, a deterministic SHA-256 input fingerprint and
      duration_ms.
    - ``CalculationTrace`` is an optional collector passed down the
      pipeline.  Line and totals engines record the intermediate discount
      steps they performed; the debug view renders them.  Because the
      production path records into the collector rather than a second
      implementation recomputing the numbers, debug output cannot drift
      from production totals.

Invariants enforced:
    - Fingerprints are deterministic: ``_canonicalize`` produces stable
      strings for Decimal, Money, dataclasses, enums, mappings and
      sequences; mapping keys are sorted; the hash is SHA-256 truncated to
      16 hex chars.
    - The decorator only reads arguments and emits a log record.

Failure modes:
    - Fingerprint fields that are not bound arguments are recorded as
      "null".
    - Unknown types fall back to ``str(value)``.

Usage:
    from pricing_engines.tracer import traced_engine

    @traced_engine("quote", "1.0", fingerprint_fields=("quote_input",))
    def calculate_quote(quote_input, currency_decimals=2):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

from pricing_kernel.domain.money import Money
from pricing_kernel.logging_config import get_logger

if TYPE_CHECKING:
    from pricing_engines.discount import DiscountCalculation
    from pricing_engines.line import LineItemCalculation
    from pricing_engines.totals import QuoteTotals

_logger = get_logger("engines.tracer")

TRACE_TYPE = "PRICING_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    """Produce a stable string representation of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return _canonicalize(value.value)
    if isinstance(value, Decimal):
        return format(value.normalize(), "f") if value.is_finite() else str(value)
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, Money):
        return f"{_canonicalize(value.amount)} {value.currency}"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        return type(value).__name__ + _canonicalize(fields)
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """Deterministic 16-hex-char SHA-256 prefix over the selected arguments.

    Missing fields are recorded as "null".
    """
    parts: list[str] = []
    for name in fingerprint_fields:
        parts.append(f"{name}={_canonicalize(arguments.get(name))}")
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits PRICING_ENGINE_TRACE for engine invocations.

    Args:
        engine_name: Engine identifier (e.g., "quote").
        engine_version: Engine version (e.g., "1.0").
        fingerprint_fields: Parameter names (positional or keyword) to
            include in the input fingerprint hash.

    Returns:
        Decorator function.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fp = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.info(
                TRACE_TYPE,
                extra={
                    "trace_type": TRACE_TYPE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Intermediate-step collector
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineTrace:
    """
    What one line calculation did on the way to its result.

    ``gross_subtotal`` is ``unit_price * quantity`` as quoted; for
    tax-inclusive lines it still contains tax and the discount steps were
    taken against it.  ``discount_steps`` pairs the source field of each
    discount (``discount``, ``percentage_discount``, ``fixed_discount``)
    with its individual application.
    """

    line_number: int
    calculation: LineItemCalculation
    gross_subtotal: Money
    discount_steps: tuple[tuple[str, DiscountCalculation], ...] = ()


@dataclass(frozen=True)
class QuoteTrace:
    """Quote-level discount steps taken against the summed line totals."""

    line_total: Money
    discount_steps: tuple[DiscountCalculation, ...]
    totals: QuoteTotals


@dataclass
class CalculationTrace:
    """
    Mutable collector for one pricing run.

    Not shared across runs; create a fresh instance per calculation.
    """

    lines: list[LineTrace] = field(default_factory=list)
    quote: QuoteTrace | None = None

    def next_line_number(self) -> int:
        return len(self.lines) + 1

    def record_line(self, line: LineTrace) -> None:
        self.lines.append(line)

    def record_quote(self, quote: QuoteTrace) -> None:
        self.quote = quote
