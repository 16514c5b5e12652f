"""
pricing_config -- YAML-backed pricing policy.

Responsibility:
    Loads the pricing policy (default tax rate, default currency, currency
    precision, tax-exempt service types, breakdown labels) into a frozen
    ``PricingPolicy``.  Engines never import this package; callers read a
    policy here and pass its pieces to the engines as parameters.

Failure modes:
    - ``FileNotFoundError`` -- policy file missing.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ValueError`` / ``KeyError`` -- invalid or missing policy values.

Audit relevance:
    ``policy_checksum`` identifies the exact policy that priced a quote.
"""

from pricing_config.loader import (
    DEFAULT_POLICY_PATH,
    get_default_policy,
    load_pricing_policy,
    parse_pricing_policy,
    policy_checksum,
)
from pricing_config.schema import PricingPolicy

__all__ = [
    "DEFAULT_POLICY_PATH",
    "PricingPolicy",
    "get_default_policy",
    "load_pricing_policy",
    "parse_pricing_policy",
    "policy_checksum",
]
