"""
Typed exception hierarchy for the pricing kernel.

Every failure the calculation engine can produce has its own class with a
machine-readable ``code`` class attribute and structured attributes.  Callers
at the API boundary map these to HTTP responses by type and code, never by
parsing message text.

    PricingError (base)
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError
    |   +-- InvalidExchangeRateError
    |
    +-- InvalidAmountError
    +-- DivideByZeroError
    +-- EmptyInputError
    +-- InvalidTaxRateError
    |
    +-- DiscountError
    |   +-- InvalidDiscountError
    |   +-- UnsupportedDiscountError
    |
    +-- LineItemError
    |   +-- InvalidQuantityError
    |   +-- InvalidUnitPriceError
    |
    +-- QuoteSchemaValidationError
    +-- QuoteCalculationError

Category   | Code                     | When raised
-----------|--------------------------|-------------------------------------------
Currency   | INVALID_CURRENCY         | Code is not ISO 4217
           | CURRENCY_MISMATCH        | Arithmetic/aggregation across currencies
           | INVALID_EXCHANGE_RATE    | Conversion rate zero, negative or unreadable
Amount     | INVALID_AMOUNT           | Value cannot be read as a decimal
           | DIVIDE_BY_ZERO           | divide_money with a zero factor
           | EMPTY_INPUT              | Aggregating an empty collection
Tax        | INVALID_TAX_RATE         | Rate outside [0, 100]
Discount   | INVALID_DISCOUNT         | Negative value, or percentage above 100
           | UNSUPPORTED_DISCOUNT     | Unknown type, per_unit without quantity
Line       | INVALID_QUANTITY         | Quantity not strictly positive
           | INVALID_UNIT_PRICE       | Negative unit price
Quote      | SCHEMA_VALIDATION_ERROR  | Input payload violates the quote schema
           | QUOTE_CALCULATION_FAILED | Any failure inside calculate_quote

None of these are retried or recovered mid-pipeline: a half-computed total
is never returned.
"""

from __future__ import annotations


class PricingError(Exception):
    """
    Base exception for all pricing engine errors.

    All subclasses carry a ``code`` class attribute.
    """

    code: str = "PRICING_ERROR"


# Currency


class CurrencyError(PricingError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Invalid ISO 4217 currency code provided."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: object):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: {currency!r}")


class CurrencyMismatchError(CurrencyError):
    """Operation attempted on amounts in different currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, currency1: str, currency2: str, operation: str = "combine"):
        self.currency1 = currency1
        self.currency2 = currency2
        self.operation = operation
        super().__init__(
            f"Cannot {operation} amounts with different currencies: "
            f"{currency1} and {currency2}"
        )


class InvalidExchangeRateError(CurrencyError):
    """Exchange rate is zero, negative or not a number."""

    code: str = "INVALID_EXCHANGE_RATE"

    def __init__(self, rate: object, target_currency: str):
        self.rate = str(rate)
        self.target_currency = target_currency
        super().__init__(
            f"Invalid exchange rate {rate} for conversion to {target_currency}"
        )


# Amounts


class InvalidAmountError(PricingError):
    """A value could not be interpreted as a decimal amount."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid amount: {value!r}")


class DivideByZeroError(PricingError):
    """Division of a monetary amount by zero."""

    code: str = "DIVIDE_BY_ZERO"

    def __init__(self, amount: str):
        self.amount = amount
        super().__init__(f"Cannot divide by zero: {amount} / 0")


class EmptyInputError(PricingError):
    """An aggregation was asked to work on an empty collection."""

    code: str = "EMPTY_INPUT"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Cannot {operation}: input is empty")


# Tax


class InvalidTaxRateError(PricingError):
    """Tax rate outside the inclusive range 0-100."""

    code: str = "INVALID_TAX_RATE"

    def __init__(self, rate: object):
        self.rate = str(rate)
        super().__init__(f"Invalid tax rate: {rate} (must be between 0 and 100)")


# Discounts


class DiscountError(PricingError):
    """Base exception for discount errors."""

    code: str = "DISCOUNT_ERROR"


class InvalidDiscountError(DiscountError):
    """Discount value is negative or out of range for its type."""

    code: str = "INVALID_DISCOUNT"

    def __init__(self, discount_type: str, value: object, reason: str):
        self.discount_type = discount_type
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid {discount_type} discount {value}: {reason}")


class UnsupportedDiscountError(DiscountError):
    """Discount type cannot be applied in the current context."""

    code: str = "UNSUPPORTED_DISCOUNT"

    def __init__(self, discount_type: str, reason: str):
        self.discount_type = discount_type
        self.reason = reason
        super().__init__(f"Unsupported discount '{discount_type}': {reason}")


# Line items


class LineItemError(PricingError):
    """Base exception for line item errors."""

    code: str = "LINE_ITEM_ERROR"


class InvalidQuantityError(LineItemError):
    """Line quantity is zero or negative."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: object):
        self.quantity = str(quantity)
        super().__init__(f"Quantity must be positive: {quantity}")


class InvalidUnitPriceError(LineItemError):
    """Line unit price is negative."""

    code: str = "INVALID_UNIT_PRICE"

    def __init__(self, unit_price: object):
        self.unit_price = str(unit_price)
        super().__init__(f"Unit price cannot be negative: {unit_price}")


# Quote boundary


class QuoteSchemaValidationError(PricingError):
    """
    Quote input does not match the declared schema.

    Raised before any arithmetic runs.  ``field_errors`` holds one dict per
    violation with ``code``, ``field`` and ``message`` keys.
    """

    code: str = "SCHEMA_VALIDATION_ERROR"

    def __init__(self, field_errors: list[dict]):
        self.field_errors = field_errors
        detail = "; ".join(
            f"{e.get('field') or '<root>'}: {e.get('message')}" for e in field_errors
        )
        super().__init__(
            f"Quote input failed validation with {len(field_errors)} error(s): {detail}"
        )


class QuoteCalculationError(PricingError):
    """
    Uniform wrapper for any failure inside the quote pipeline.

    The original exception is chained as ``__cause__``; its code is kept in
    ``cause_code`` so API handlers can still branch on it.
    """

    code: str = "QUOTE_CALCULATION_FAILED"

    def __init__(self, cause: BaseException, prefix: str = "Quote calculation failed"):
        self.cause_code = getattr(cause, "code", type(cause).__name__)
        self.cause_message = str(cause) or type(cause).__name__
        super().__init__(f"{prefix}: {self.cause_message}")
