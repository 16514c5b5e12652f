"""
Pricing Kernel

Value objects and infrastructure shared by the quote pricing engines:
- Money with currency-exact, half-up rounded Decimal arithmetic
- ISO 4217 currency registry
- Typed, code-carrying exceptions
- Structured JSON logging
"""

__version__ = "0.1.0"
