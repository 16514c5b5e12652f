"""
Quote input schema -- validation and parsing at the orchestrator boundary.

Responsibility:
    Defines ``CalculateQuoteInput`` and turns either a typed input or a
    decoded JSON/YAML mapping into one, collecting every field error before
    any arithmetic runs.

Payload shape (snake_case keys; unknown keys are ignored):

    currency:        ISO 4217 code, default "NZD"
    line_items:      non-empty list of
        description:         non-empty string
        quantity:            number > 0
        unit_price:          {amount, currency?} or a bare number/string
                             (currency defaults to the quote currency)
        unit:                non-empty string
        service_type:        string, optional
        is_tax_exempt:       bool, optional
        tax_inclusive:       bool, optional
        tax_rate:            number in [0, 100], optional
        discount_type:       percentage | fixed_amount | per_unit, optional
        discount_value:      number >= 0, optional
        percentage_discount: number in [0, 100], optional
        fixed_discount:      money, optional
    quote_discount:  {type, value >= 0, description?, is_active?}, optional
    quote_discounts: list of the same, optional
    exchange_rates:  {currency: rate > 0}, optional

Failure modes:
    - ``validate_quote_payload`` / ``check_quote_input`` never raise; they
      return a ``ValidationResult`` listing every violation.
    - ``parse_quote_input`` / ``coerce_quote_input`` raise
      ``QuoteSchemaValidationError`` carrying the same list.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from pricing_engines.discount import DiscountSpec, DiscountType, QuoteDiscount
from pricing_engines.line import LineItem
from pricing_kernel.domain.currency import CurrencyRegistry
from pricing_kernel.domain.dtos import ValidationError, ValidationResult
from pricing_kernel.domain.money import Money, create_decimal
from pricing_kernel.exceptions import InvalidAmountError, QuoteSchemaValidationError
from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.schema")

DEFAULT_QUOTE_CURRENCY = "NZD"

_ZERO = Decimal("0")
_ONE_HUNDRED = Decimal("100")
_DISCOUNT_TYPES = frozenset(t.value for t in DiscountType)


@dataclass(frozen=True)
class CalculateQuoteInput:
    """
    A complete quote pricing request.

    ``quote_discount`` and ``quote_discounts`` may both be given; the single
    discount is applied first, then the list in order.  ``exchange_rates``
    maps a line currency to units of quote currency per unit, and is the
    only way a line in another currency is accepted.
    """

    line_items: tuple[LineItem, ...]
    quote_discount: QuoteDiscount | None = None
    quote_discounts: tuple[QuoteDiscount, ...] = ()
    currency: str = DEFAULT_QUOTE_CURRENCY
    exchange_rates: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "line_items", tuple(self.line_items))
        object.__setattr__(self, "quote_discounts", tuple(self.quote_discounts))
        object.__setattr__(
            self,
            "exchange_rates",
            {code.strip().upper(): create_decimal(rate) for code, rate in self.exchange_rates.items()},
        )

    @property
    def all_quote_discounts(self) -> tuple[QuoteDiscount, ...]:
        head = (self.quote_discount,) if self.quote_discount is not None else ()
        return head + self.quote_discounts


# ---------------------------------------------------------------------------
# Field checks
# ---------------------------------------------------------------------------


def _error(code: str, path: str | None, message: str) -> ValidationError:
    return ValidationError(code=code, message=message, field=path)


def _read_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool) or not isinstance(value, (Decimal, int, float, str)):
        return None
    try:
        return create_decimal(value)
    except InvalidAmountError:
        return None


def _check_number(
    value: Any,
    path: str,
    minimum: Decimal | None = None,
    maximum: Decimal | None = None,
    exclusive_minimum: bool = False,
) -> list[ValidationError]:
    number = _read_decimal(value)
    if number is None:
        return [_error("INVALID_NUMBER", path, f"Expected a number, got {value!r}")]
    if minimum is not None:
        too_small = number <= minimum if exclusive_minimum else number < minimum
        if too_small:
            relation = "greater than" if exclusive_minimum else "at least"
            return [_error("OUT_OF_RANGE", path, f"Must be {relation} {minimum}, got {value}")]
    if maximum is not None and number > maximum:
        return [_error("OUT_OF_RANGE", path, f"Must be at most {maximum}, got {value}")]
    return []


def _check_string(value: Any, path: str, required: bool) -> list[ValidationError]:
    if value is None:
        if required:
            return [_error("MISSING_REQUIRED_FIELD", path, "Required field missing")]
        return []
    if not isinstance(value, str):
        return [_error("INVALID_TYPE", path, f"Expected a string, got {type(value).__name__}")]
    if required and not value.strip():
        return [_error("EMPTY_STRING", path, "Must not be empty")]
    return []


def _check_bool(value: Any, path: str) -> list[ValidationError]:
    if value is not None and not isinstance(value, bool):
        return [_error("INVALID_TYPE", path, f"Expected true or false, got {value!r}")]
    return []


def _check_currency(value: Any, path: str) -> list[ValidationError]:
    if not isinstance(value, str) or not CurrencyRegistry.is_valid(value):
        return [_error("INVALID_CURRENCY", path, f"Invalid ISO 4217 currency code: {value!r}")]
    return []


def _check_money(value: Any, path: str) -> list[ValidationError]:
    if isinstance(value, Mapping):
        errors = []
        if "amount" not in value:
            errors.append(_error("MISSING_REQUIRED_FIELD", f"{path}.amount", "Required field missing"))
        else:
            errors.extend(_check_number(value["amount"], f"{path}.amount"))
        if value.get("currency") is not None:
            errors.extend(_check_currency(value["currency"], f"{path}.currency"))
        return errors
    return _check_number(value, path)


def _check_discount_type(value: Any, path: str) -> list[ValidationError]:
    raw = value.value if isinstance(value, DiscountType) else value
    if not isinstance(raw, str) or raw not in _DISCOUNT_TYPES:
        return [_error(
            "INVALID_DISCOUNT_TYPE",
            path,
            f"Expected one of {sorted(_DISCOUNT_TYPES)}, got {value!r}",
        )]
    return []


def _check_discount(value: Any, path: str) -> list[ValidationError]:
    if not isinstance(value, Mapping):
        return [_error("INVALID_TYPE", path, "Expected an object")]
    errors = []
    if "type" not in value:
        errors.append(_error("MISSING_REQUIRED_FIELD", f"{path}.type", "Required field missing"))
    else:
        errors.extend(_check_discount_type(value["type"], f"{path}.type"))
    if "value" not in value:
        errors.append(_error("MISSING_REQUIRED_FIELD", f"{path}.value", "Required field missing"))
    else:
        maximum = _ONE_HUNDRED if value.get("type") == DiscountType.PERCENTAGE.value else None
        errors.extend(_check_number(value["value"], f"{path}.value", _ZERO, maximum))
    errors.extend(_check_string(value.get("description"), f"{path}.description", False))
    errors.extend(_check_bool(value.get("is_active"), f"{path}.is_active"))
    return errors


def _check_line_payload(line: Any, path: str) -> list[ValidationError]:
    if not isinstance(line, Mapping):
        return [_error("INVALID_TYPE", path, "Expected an object")]

    errors = []
    errors.extend(_check_string(line.get("description"), f"{path}.description", True))
    errors.extend(_check_string(line.get("unit"), f"{path}.unit", True))
    errors.extend(_check_string(line.get("service_type"), f"{path}.service_type", False))

    if "quantity" not in line:
        errors.append(_error("MISSING_REQUIRED_FIELD", f"{path}.quantity", "Required field missing"))
    else:
        errors.extend(_check_number(line["quantity"], f"{path}.quantity", _ZERO, exclusive_minimum=True))

    if "unit_price" not in line:
        errors.append(_error("MISSING_REQUIRED_FIELD", f"{path}.unit_price", "Required field missing"))
    else:
        errors.extend(_check_money(line["unit_price"], f"{path}.unit_price"))

    for flag in ("is_tax_exempt", "tax_inclusive"):
        errors.extend(_check_bool(line.get(flag), f"{path}.{flag}"))

    if line.get("tax_rate") is not None:
        errors.extend(_check_number(line["tax_rate"], f"{path}.tax_rate", _ZERO, _ONE_HUNDRED))
    if line.get("discount_type") is not None:
        errors.extend(_check_discount_type(line["discount_type"], f"{path}.discount_type"))
    if line.get("discount_value") is not None:
        errors.extend(_check_number(line["discount_value"], f"{path}.discount_value", _ZERO))
    if line.get("percentage_discount") is not None:
        errors.extend(_check_number(
            line["percentage_discount"], f"{path}.percentage_discount", _ZERO, _ONE_HUNDRED
        ))
    if line.get("fixed_discount") is not None:
        errors.extend(_check_money(line["fixed_discount"], f"{path}.fixed_discount"))
    return errors


def validate_quote_payload(payload: Any) -> ValidationResult:
    """Validate a decoded quote payload without raising."""
    if not isinstance(payload, Mapping):
        return ValidationResult.failure(
            _error("INVALID_TYPE", None, "Quote input must be an object")
        )

    errors: list[ValidationError] = []

    if payload.get("currency") is not None:
        errors.extend(_check_currency(payload["currency"], "currency"))

    lines = payload.get("line_items")
    if lines is None:
        errors.append(_error("MISSING_REQUIRED_FIELD", "line_items", "Required field missing"))
    elif isinstance(lines, (str, bytes)) or not isinstance(lines, Sequence):
        errors.append(_error("INVALID_TYPE", "line_items", "Expected a list"))
    elif not lines:
        errors.append(_error("EMPTY_LINE_ITEMS", "line_items", "At least one line item is required"))
    else:
        for i, line in enumerate(lines):
            errors.extend(_check_line_payload(line, f"line_items[{i}]"))

    if payload.get("quote_discount") is not None:
        errors.extend(_check_discount(payload["quote_discount"], "quote_discount"))

    discounts = payload.get("quote_discounts")
    if discounts is not None:
        if isinstance(discounts, (str, bytes)) or not isinstance(discounts, Sequence):
            errors.append(_error("INVALID_TYPE", "quote_discounts", "Expected a list"))
        else:
            for i, discount in enumerate(discounts):
                errors.extend(_check_discount(discount, f"quote_discounts[{i}]"))

    rates = payload.get("exchange_rates")
    if rates is not None:
        if not isinstance(rates, Mapping):
            errors.append(_error("INVALID_TYPE", "exchange_rates", "Expected an object"))
        else:
            for code, rate in rates.items():
                errors.extend(_check_currency(code, f"exchange_rates.{code}"))
                errors.extend(_check_number(
                    rate, f"exchange_rates.{code}", _ZERO, exclusive_minimum=True
                ))

    return _finish(errors, "payload")


def check_quote_input(quote_input: CalculateQuoteInput) -> ValidationResult:
    """Validate an already-typed ``CalculateQuoteInput`` without raising."""
    errors: list[ValidationError] = []
    errors.extend(_check_currency(quote_input.currency, "currency"))

    if not quote_input.line_items:
        errors.append(_error("EMPTY_LINE_ITEMS", "line_items", "At least one line item is required"))
    for i, item in enumerate(quote_input.line_items):
        path = f"line_items[{i}]"
        if not isinstance(item, LineItem):
            errors.append(_error("INVALID_TYPE", path, "Expected a LineItem"))
            continue
        errors.extend(_check_string(item.description, f"{path}.description", True))
        errors.extend(_check_string(item.unit, f"{path}.unit", True))
        if item.quantity <= _ZERO:
            errors.append(_error(
                "OUT_OF_RANGE", f"{path}.quantity", f"Must be greater than 0, got {item.quantity}"
            ))
        if item.tax_rate is not None:
            errors.extend(_check_number(item.tax_rate, f"{path}.tax_rate", _ZERO, _ONE_HUNDRED))
        if item.discount_type is not None:
            errors.extend(_check_discount_type(item.discount_type, f"{path}.discount_type"))

    for code, rate in quote_input.exchange_rates.items():
        errors.extend(_check_currency(code, f"exchange_rates.{code}"))
        if rate <= _ZERO:
            errors.append(_error(
                "OUT_OF_RANGE", f"exchange_rates.{code}", f"Must be greater than 0, got {rate}"
            ))

    return _finish(errors, "typed")


def _finish(errors: list[ValidationError], source: str) -> ValidationResult:
    if errors:
        logger.warning("quote_input_invalid", extra={
            "input_source": source,
            "error_count": len(errors),
            "error_codes": [e.code for e in errors],
        })
        return ValidationResult.failure(*errors)
    logger.debug("quote_input_valid", extra={"input_source": source})
    return ValidationResult.success()


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _parse_money(value: Any, default_currency: str) -> Money:
    if isinstance(value, Mapping):
        return Money.of(value["amount"], value.get("currency") or default_currency)
    return Money.of(value, default_currency)


def _parse_discount(value: Mapping[str, Any]) -> DiscountSpec:
    return DiscountSpec(
        type=DiscountType(value["type"]),
        value=create_decimal(value["value"]),
        description=value.get("description"),
        is_active=value.get("is_active", True),
    )


def _parse_line(line: Mapping[str, Any], currency: str) -> LineItem:
    discount_type = line.get("discount_type")
    fixed = line.get("fixed_discount")
    return LineItem(
        description=line["description"],
        quantity=create_decimal(line["quantity"]),
        unit_price=_parse_money(line["unit_price"], currency),
        unit=line["unit"],
        service_type=line.get("service_type"),
        is_tax_exempt=line.get("is_tax_exempt"),
        tax_inclusive=line.get("tax_inclusive") or False,
        tax_rate=line.get("tax_rate"),
        discount_type=DiscountType(discount_type) if discount_type is not None else None,
        discount_value=line.get("discount_value"),
        percentage_discount=line.get("percentage_discount"),
        fixed_discount=_parse_money(fixed, currency) if fixed is not None else None,
    )


def parse_quote_input(payload: Mapping[str, Any]) -> CalculateQuoteInput:
    """
    Validate and convert a decoded payload.

    Raises:
        QuoteSchemaValidationError: listing every field error.
    """
    result = validate_quote_payload(payload)
    if not result:
        raise QuoteSchemaValidationError([e.to_dict() for e in result.errors])

    currency = (payload.get("currency") or DEFAULT_QUOTE_CURRENCY).strip().upper()
    quote_discount = payload.get("quote_discount")
    return CalculateQuoteInput(
        line_items=tuple(_parse_line(line, currency) for line in payload["line_items"]),
        quote_discount=_parse_discount(quote_discount) if quote_discount is not None else None,
        quote_discounts=tuple(_parse_discount(d) for d in payload.get("quote_discounts") or ()),
        currency=currency,
        exchange_rates=dict(payload.get("exchange_rates") or {}),
    )


def coerce_quote_input(quote_input: CalculateQuoteInput | Mapping[str, Any]) -> CalculateQuoteInput:
    """
    Accept a typed input or a payload mapping; return a validated typed input.

    Raises:
        QuoteSchemaValidationError: if validation fails.
    """
    if isinstance(quote_input, CalculateQuoteInput):
        result = check_quote_input(quote_input)
        if not result:
            raise QuoteSchemaValidationError([e.to_dict() for e in result.errors])
        return quote_input
    if isinstance(quote_input, Mapping):
        return parse_quote_input(quote_input)
    raise QuoteSchemaValidationError([
        _error("INVALID_TYPE", None, f"Unsupported quote input type {type(quote_input).__name__}").to_dict()
    ])
