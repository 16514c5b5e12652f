"""
PricingPolicy schema.

The human-authored pricing policy: which tax rate applies by default, which
service types are tax exempt, how breakdown groups are labelled, and the
currency defaults handed to the engines.  YAML is parsed into these types by
the loader; engines never read it themselves, they receive the pieces they
need as parameters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from pricing_engines.tax import ServiceTypeExemptionPolicy, describe_tax_rate, format_rate


@dataclass(frozen=True)
class PricingPolicy:
    """Pricing defaults for one jurisdiction or tenant."""

    name: str
    version: int
    default_tax_rate: Decimal
    default_currency: str
    currency_decimals: int
    exempt_service_types: frozenset[str] = field(default_factory=frozenset)
    # Breakdown labels keyed by normalised rate string ("0", "15", "12.5")
    rate_labels: dict[str, str] = field(default_factory=dict)

    def exemption_policy(self) -> ServiceTypeExemptionPolicy:
        return ServiceTypeExemptionPolicy(self.exempt_service_types)

    def describe_rate(self, rate: Decimal) -> str:
        """Configured label for ``rate``, else the built-in label."""
        label = self.rate_labels.get(format_rate(rate))
        if label is None:
            return describe_tax_rate(rate)
        return label.format(rate=format_rate(rate))
