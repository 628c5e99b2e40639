# Overview: Settlement-fee estimate for gateway payments when the provider does not report a net figure.

"""
Payout Fee Calculator

Maps a paid amount and a payment method to the net amount the business
actually receives. Used by the webhook handler only when the gateway's own
settlement/merchant-fee figures are absent.

RULES:
- A rule is {flat?: rupiah, percent?: rate}; both may apply.
- net = max(0, paid - flat - round_half_up(percent/100 * paid))
- Unknown methods fall back to the "default" rule, or no fee at all.

The schedule is an explicitly constructed object (built once by the app
factory from MIDTRANS_PAYOUT_FEES) and passed in; tests build their own.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Mapping, NamedTuple


def round_half_up(value) -> int:
    """Round to the nearest whole rupiah, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class FeeRule:
    flat: int | None = None
    percent: float | None = None

    @classmethod
    def parse(cls, raw: Any) -> "FeeRule | None":
        """A bare number is a flat fee; an object may carry flat and/or percent."""
        if raw is None or isinstance(raw, bool):
            return None
        if isinstance(raw, (int, float)):
            return cls(flat=round_half_up(raw))
        if isinstance(raw, Mapping):
            flat = raw.get("flat")
            percent = raw.get("percent")
            flat = round_half_up(flat) if isinstance(flat, (int, float)) and not isinstance(flat, bool) else None
            percent = float(percent) if isinstance(percent, (int, float)) and not isinstance(percent, bool) else None
            if flat is None and percent is None:
                return None
            return cls(flat=flat, percent=percent)
        return None

    def fee_for(self, amount: int) -> int:
        fee = 0
        if self.flat is not None:
            fee += max(0, self.flat)
        if self.percent is not None:
            fee += max(0, round_half_up(Decimal(str(self.percent)) / 100 * amount))
        return fee


DEFAULT_RULES: dict[str, FeeRule] = {
    "bca_va": FeeRule(flat=4000),
    "mandiri_va": FeeRule(flat=4000),
    "bni_va": FeeRule(flat=4000),
    "bri_va": FeeRule(flat=4000),
    "permata_va": FeeRule(flat=4000),
    "cimb_va": FeeRule(flat=4000),
    "cimb_niaga_va": FeeRule(flat=4000),
    "cimbniaga_va": FeeRule(flat=4000),
    "gopay": FeeRule(percent=0.7),
    "qris": FeeRule(percent=0.7),
}


class PayoutEstimate(NamedTuple):
    net: int
    fee: int


class PayoutFeeSchedule:
    """Immutable method -> FeeRule table."""

    def __init__(self, rules: Mapping[str, FeeRule] | None = None):
        self._rules = {key.lower(): rule for key, rule in (rules or DEFAULT_RULES).items()}

    @classmethod
    def from_overrides(cls, overrides: Mapping[str, Any] | None) -> "PayoutFeeSchedule":
        """Built-in defaults with per-method overrides layered on top; unparseable entries are skipped."""
        rules = dict(DEFAULT_RULES)
        for key, raw in (overrides or {}).items():
            rule = FeeRule.parse(raw)
            if rule is not None:
                rules[str(key).lower()] = rule
        return cls(rules)

    @classmethod
    def from_json(cls, raw: str | None) -> "PayoutFeeSchedule":
        """
        Parse the MIDTRANS_PAYOUT_FEES value.

        Raises ValueError when the value is not a JSON object; the caller
        decides whether to fall back to defaults.
        """
        if raw is None or not raw.strip():
            return cls()
        parsed = json.loads(raw)
        if not isinstance(parsed, dict):
            raise ValueError("MIDTRANS_PAYOUT_FEES must be a JSON object")
        return cls.from_overrides(parsed)

    def rule_for(self, method: str | None) -> FeeRule | None:
        key = method.lower() if method else None
        if key and key in self._rules:
            return self._rules[key]
        return self._rules.get("default")

    def calculate_net_payout(self, paid_amount, method: str | None) -> PayoutEstimate:
        amount = max(0, round_half_up(paid_amount or 0))
        if amount == 0:
            return PayoutEstimate(net=0, fee=0)

        rule = self.rule_for(method)
        if rule is None:
            return PayoutEstimate(net=amount, fee=0)

        fee = rule.fee_for(amount)
        return PayoutEstimate(net=max(0, amount - fee), fee=fee)

    def as_dict(self) -> dict:
        return {
            key: {k: v for k, v in (("flat", rule.flat), ("percent", rule.percent)) if v is not None}
            for key, rule in sorted(self._rules.items())
        }


def derive_payment_method(payload: Mapping[str, Any]) -> str | None:
    """
    Fee-table key for a gateway notification.

    bank_transfer resolves to "<bank>_va" from va_numbers[0].bank, then
    permata_va_number, then the top-level bank field. Other methods use
    payment_type itself (gopay, qris, credit_card, ...).
    """
    payment_type = payload.get("payment_type")
    if not isinstance(payment_type, str) or not payment_type.strip():
        return None
    payment_type = payment_type.strip().lower()

    if payment_type == "bank_transfer":
        va_numbers = payload.get("va_numbers")
        if isinstance(va_numbers, list) and va_numbers:
            first = va_numbers[0]
            bank = first.get("bank") if isinstance(first, Mapping) else None
            if isinstance(bank, str) and bank.strip():
                return f"{bank.strip().lower()}_va"
        if payload.get("permata_va_number"):
            return "permata_va"
        bank = payload.get("bank")
        if isinstance(bank, str) and bank.strip():
            return f"{bank.strip().lower()}_va"

    return payment_type
