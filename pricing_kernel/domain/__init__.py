"""Pure domain layer: money, currencies and validation results."""

from pricing_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from pricing_kernel.domain.dtos import ValidationError, ValidationResult
from pricing_kernel.domain.money import (
    DEFAULT_CURRENCY_DECIMALS,
    Money,
    add_money,
    calculate_percentage,
    compare_money,
    convert_money,
    create_decimal,
    divide_money,
    format_amount,
    format_money,
    is_negative,
    is_positive,
    is_zero,
    multiply_money,
    round_to_currency,
    subtract_money,
    sum_money,
    zero_money,
)

__all__ = [
    "CurrencyInfo",
    "CurrencyRegistry",
    "DEFAULT_CURRENCY_DECIMALS",
    "Money",
    "ValidationError",
    "ValidationResult",
    "add_money",
    "calculate_percentage",
    "compare_money",
    "convert_money",
    "create_decimal",
    "divide_money",
    "format_amount",
    "format_money",
    "is_negative",
    "is_positive",
    "is_zero",
    "multiply_money",
    "round_to_currency",
    "subtract_money",
    "sum_money",
    "zero_money",
]
