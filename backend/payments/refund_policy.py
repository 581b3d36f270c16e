"""
Cancellation refund policy.

Pure functions over a fixed tier table, shared by the cancellation preview and
the cancellation commit so both always agree. Percentages are basis points
(1% = 100 bps) applied to integer cents.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class RefundTier:
    key: str
    min_days_before: int
    max_days_before: Optional[int]  # inclusive; None means unbounded
    label: str
    description: str
    refund_bps: int
    voucher_bps: int

    def matches(self, days_before: int) -> bool:
        if days_before < self.min_days_before:
            return False
        return self.max_days_before is None or days_before <= self.max_days_before

    def as_dict(self) -> dict:
        return asdict(self)


REFUND_POLICY: tuple[RefundTier, ...] = (
    RefundTier(
        key="60_plus",
        min_days_before=60,
        max_days_before=None,
        label="60+ days before check-in",
        description="Full refund to your original payment method.",
        refund_bps=10_000,
        voucher_bps=0,
    ),
    RefundTier(
        key="30_to_59",
        min_days_before=30,
        max_days_before=59,
        label="30–59 days before check-in",
        description="50% refund to your original payment method.",
        refund_bps=5_000,
        voucher_bps=0,
    ),
    RefundTier(
        key="15_to_29",
        min_days_before=15,
        max_days_before=29,
        label="15–29 days before check-in",
        description="25% refund to your original payment method.",
        refund_bps=2_500,
        voucher_bps=0,
    ),
    RefundTier(
        key="lt_15",
        min_days_before=0,
        max_days_before=14,
        label="Less than 15 days before check-in",
        description="No cash refund. 80% voucher credit for future bookings.",
        refund_bps=0,
        voucher_bps=8_000,
    ),
)


@dataclass(frozen=True)
class RefundOutcome:
    refund_cents: int
    voucher_cents: int
    tier: RefundTier


def days_before_start(today: date, start_date: date) -> int:
    """
    Whole calendar days from ``today`` until check-in, clamped at zero.

    Both values are UTC calendar dates, so the count never depends on the
    time of day the request arrives.
    """
    return max(0, (start_date - today).days)


def get_refund_tier(days_before: int) -> RefundTier:
    days = max(0, int(days_before))
    for tier in REFUND_POLICY:
        if tier.matches(days):
            return tier
    return REFUND_POLICY[-1]


def apply_bps(total_cents: int, bps: int) -> int:
    """Return ``total_cents * bps / 10000`` rounded half-up to whole cents."""
    amount = Decimal(total_cents) * Decimal(bps) / Decimal(BPS_DENOMINATOR)
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_refund_outcome(days_before: int, total_cents: int) -> RefundOutcome:
    """Cash refund and voucher credit owed for cancelling ``days_before`` check-in."""
    tier = get_refund_tier(days_before)
    total = max(0, int(total_cents))
    return RefundOutcome(
        refund_cents=apply_bps(total, tier.refund_bps),
        voucher_cents=apply_bps(total, tier.voucher_bps),
        tier=tier,
    )


def policy_snapshot() -> dict:
    """JSON-safe policy table for clients."""
    return {
        "tiers": [tier.as_dict() for tier in REFUND_POLICY],
        "applies_to": "cash_paid_to_gateway_only",
    }
