"""
Pricing policy loader (``pricing_config.loader``).

Responsibility
--------------
Loads a pricing policy YAML file and parses it into a frozen
``PricingPolicy``.  Callers hand the parsed pieces (exemption policy,
rate labels, currency decimals) to the engines explicitly.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Invalid values raise ``ValueError`` with the offending key named; no
  silent defaults for required fields.
* ``policy_checksum`` produces a deterministic SHA-256 hash for audit.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from pricing_engines.tax import validate_tax_rate
from pricing_kernel.domain.currency import CurrencyRegistry
from pricing_kernel.domain.money import create_decimal
from pricing_kernel.exceptions import InvalidAmountError
from pricing_kernel.logging_config import get_logger

from pricing_config.schema import PricingPolicy

logger = get_logger("config.loader")

DEFAULT_POLICY_PATH = Path(__file__).parent / "pricing_policy.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_pricing_policy(data: dict[str, Any]) -> PricingPolicy:
    """
    Parse a ``PricingPolicy`` from a dict.

    Raises:
        KeyError: if ``name`` is missing.
        ValueError: for an invalid rate, currency or decimals value.
    """
    try:
        rate = create_decimal(data.get("default_tax_rate", "15"))
    except InvalidAmountError as e:
        raise ValueError(f"default_tax_rate is not a number: {data['default_tax_rate']!r}") from e
    if not validate_tax_rate(rate):
        raise ValueError(f"default_tax_rate must be between 0 and 100, got {rate}")

    currency = data.get("default_currency", "NZD")
    if not CurrencyRegistry.is_valid(currency):
        raise ValueError(f"default_currency is not an ISO 4217 code: {currency!r}")
    currency = CurrencyRegistry.validate(currency)

    decimals = data.get("currency_decimals")
    if decimals is None:
        decimals = CurrencyRegistry.get_decimal_places(currency)
    if isinstance(decimals, bool) or not isinstance(decimals, int) or decimals < 0:
        raise ValueError(f"currency_decimals must be a non-negative integer, got {decimals!r}")

    labels: dict[str, str] = {}
    for key, label in (data.get("rate_labels") or {}).items():
        try:
            labels[format(create_decimal(key).normalize(), "f")] = str(label)
        except InvalidAmountError as e:
            raise ValueError(f"rate_labels key is not a rate: {key!r}") from e

    return PricingPolicy(
        name=data["name"],
        version=int(data.get("version", 1)),
        default_tax_rate=rate,
        default_currency=currency,
        currency_decimals=decimals,
        exempt_service_types=frozenset(
            str(s).strip().lower() for s in data.get("exempt_service_types") or ()
        ),
        rate_labels=labels,
    )


def load_pricing_policy(path: Path | str) -> PricingPolicy:
    """Load and parse a pricing policy YAML file."""
    policy = parse_pricing_policy(load_yaml_file(Path(path)))
    logger.info("pricing_policy_loaded", extra={
        "policy_name": policy.name,
        "policy_version": policy.version,
        "path": str(path),
        "checksum": policy_checksum(policy),
    })
    return policy


@functools.lru_cache(maxsize=1)
def get_default_policy() -> PricingPolicy:
    """The packaged NZ GST policy, loaded once."""
    return load_pricing_policy(DEFAULT_POLICY_PATH)


def policy_checksum(policy: PricingPolicy) -> str:
    """
    SHA-256 of the canonical JSON serialization of ``policy``.

    Identical policies always produce identical checksums.
    """
    data = dataclasses.asdict(policy)
    data["exempt_service_types"] = sorted(policy.exempt_service_types)
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
