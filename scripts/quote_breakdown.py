#!/usr/bin/env python3
"""
Price a quote file and print its breakdown.

Reads a YAML or JSON quote payload (see ``pricing_engines.schema`` for the
shape), fills lines without a tax rate from the pricing policy, runs the
quote orchestrator and prints every line, the tax breakdown and the totals.
With ``--debug`` the full calculation trace is printed as JSON instead.

Exit status: 0 on success, 1 on pricing or input errors, 2 on usage errors.

Usage:
    python3 scripts/quote_breakdown.py quote.yaml
    python3 scripts/quote_breakdown.py quote.json --debug
    python3 scripts/quote_breakdown.py quote.yaml --policy au_gst.yaml --log-level INFO
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from pricing_config import PricingPolicy, get_default_policy, load_pricing_policy, policy_checksum
from pricing_engines.quote import (
    QuoteCalculation,
    calculate_quote,
    calculate_quote_debug,
    get_quote_breakdown,
)
from pricing_engines.tax import format_rate
from pricing_kernel.domain.money import format_money
from pricing_kernel.exceptions import PricingError, QuoteSchemaValidationError
from pricing_kernel.logging_config import configure_logging


def apply_policy_defaults(payload: dict[str, Any], policy: PricingPolicy) -> dict[str, Any]:
    """Copy of ``payload`` with the policy currency and tax rate filled in where absent."""
    if not isinstance(payload, dict):
        return payload
    result = dict(payload)
    result.setdefault("currency", policy.default_currency)
    lines = result.get("line_items")
    if isinstance(lines, list):
        result["line_items"] = [
            {**line, "tax_rate": line.get("tax_rate", policy.default_tax_rate)}
            if isinstance(line, dict) else line
            for line in lines
        ]
    return result


def print_breakdown(calculation: QuoteCalculation, decimals: int, policy: PricingPolicy) -> None:
    breakdown = get_quote_breakdown(calculation, decimals)

    print()
    print(f"  {'Description':<28} {'Qty':>8} {'Unit price':>16} {'Subtotal':>16}"
          f" {'Discount':>16} {'Tax':>16} {'Total':>16}")
    print("  " + "-" * 122)
    for line in breakdown.line_items:
        b = line.breakdown
        print(f"  {line.description[:28]:<28} {b.quantity:>8} {b.unit_price:>16} {b.subtotal:>16}"
              f" {b.discount:>16} {b.tax:>16} {b.total:>16}")

    print()
    print("  Tax breakdown")
    for entry in calculation.tax_breakdown:
        print(f"    {entry.description:<20} {format_rate(entry.rate):>6}%"
              f"  on {format_money(entry.taxable_amount, decimals):>16}"
              f"  = {format_money(entry.tax_amount, decimals):>16}")

    t = breakdown.totals
    print()
    print(f"  {'Subtotal':<14} {t.subtotal:>18}")
    print(f"  {'Discount':<14} {t.discount:>18}")
    print(f"  {'Taxable':<14} {t.taxable:>18}")
    print(f"  {'Tax':<14} {t.tax:>18}")
    print(f"  {'Grand total':<14} {t.grand_total:>18}")
    print()
    print(f"  Policy: {policy.name} v{policy.version} ({policy_checksum(policy)[:12]})")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Price a quote file and print its breakdown")
    parser.add_argument("quote_file", type=Path, help="YAML or JSON quote payload")
    parser.add_argument("--decimals", type=int, default=None,
                        help="Currency decimal places (default: from policy)")
    parser.add_argument("--debug", action="store_true",
                        help="Print the full calculation trace as JSON")
    parser.add_argument("--policy", type=Path, default=None,
                        help="Pricing policy YAML (default: packaged NZ GST policy)")
    parser.add_argument("--log-level", default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Emit structured JSON logs to stderr at this level")
    args = parser.parse_args(argv)

    if args.decimals is not None and args.decimals < 0:
        parser.error("--decimals must be non-negative")
    if args.log_level:
        configure_logging(level=getattr(logging, args.log_level))

    try:
        policy = load_pricing_policy(args.policy) if args.policy else get_default_policy()
        with open(args.quote_file) as f:
            payload = yaml.safe_load(f)
    except (OSError, yaml.YAMLError, ValueError, KeyError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    decimals = args.decimals if args.decimals is not None else policy.currency_decimals
    payload = apply_policy_defaults(payload, policy)
    options = {
        "currency_decimals": decimals,
        "exemption_policy": policy.exemption_policy(),
        "describe_rate": policy.describe_rate,
    }

    try:
        if args.debug:
            output = calculate_quote_debug(payload, **options)
            print(json.dumps(output.to_dict(), indent=2, default=str))
        else:
            print_breakdown(calculate_quote(payload, **options), decimals, policy)
    except QuoteSchemaValidationError as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        for error in exc.field_errors:
            print(f"    {error.get('field') or '<root>'}: {error.get('message')}", file=sys.stderr)
        return 1
    except PricingError as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
