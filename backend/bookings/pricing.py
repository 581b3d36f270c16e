"""Authoritative stay pricing over booking periods."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from django.conf import settings
from rest_framework.exceptions import ValidationError

from core.exceptions import ConflictError
from properties.models import BookingPeriod, Property
from properties.periods import (
    CLOSED,
    apply_weekly_discount,
    nights_between,
    segment_open_periods,
)

from .domain import ensure_no_conflict, validate_booking_dates

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGES = {
    CLOSED: "These dates are not available (closed period).",
}


@dataclass(frozen=True)
class SegmentPrice:
    period_id: int
    start: date
    end: date
    nights: int
    nightly_price: int

    @property
    def total(self) -> int:
        return self.nights * self.nightly_price

    def as_dict(self) -> dict[str, Any]:
        return {
            "period_id": self.period_id,
            "from": self.start.isoformat(),
            "to": self.end.isoformat(),
            "nights": self.nights,
            "nightly_price": self.nightly_price,
            "segment_total": self.total,
        }


@dataclass(frozen=True)
class StayQuote:
    nights: int
    segments: tuple[SegmentPrice, ...]
    base_total: int
    weekly_discount_applied_bps: Optional[int]
    total: int
    arrival_period: BookingPeriod
    currency: str

    @property
    def total_cents(self) -> int:
        return self.total * 100

    def breakdown(self) -> dict[str, Any]:
        """JSON stored on the booking and returned as the price summary."""
        return {
            "currency": self.currency,
            "nights": self.nights,
            "segments": [segment.as_dict() for segment in self.segments],
            "base_total": self.base_total,
            "weekly_discount_applied_bps": self.weekly_discount_applied_bps,
            "total": self.total,
            "gross_total_cents": self.total_cents,
            "refund_policy_applies_to": "cash_paid_to_gateway_only",
        }


def quote_stay(
    villa: Property,
    start: date,
    end: date,
    guests: int,
    *,
    exclude_booking_id: Optional[int] = None,
) -> StayQuote:
    """
    Price ``[start, end)`` for ``guests`` counted guests.

    Raises ``ValidationError`` for bad dates, stay length or guest counts and
    ``ConflictError`` when the dates are taken or not bookable.
    """
    validate_booking_dates(start, end)
    if guests > villa.max_guests:
        raise ValidationError(
            {"guests": [f"Max guests for this property is {villa.max_guests}."]}
        )

    ensure_no_conflict(villa.pk, start, end, exclude_booking_id=exclude_booking_id)

    nights = nights_between(start, end)
    if nights <= 0:
        raise ValidationError({"end_date": ["Stay must be at least 1 night."]})

    coverage = segment_open_periods(villa.pk, start, end)
    if not coverage.ok:
        raise ConflictError(
            UNAVAILABLE_MESSAGES.get(coverage.reason, "These dates are not available."),
            code=coverage.reason,
        )

    # The arrival period carries the stay rules (minimum stay, weekly discount).
    arrival_period = coverage.arrival_period
    min_nights = arrival_period.min_nights or villa.min_nights
    if nights < min_nights:
        raise ValidationError(
            {"end_date": [f"Minimum stay for these dates is {min_nights} nights."]}
        )

    strictest_max_guests = min(
        [villa.max_guests, *(segment.period.max_guests for segment in coverage.segments)]
    )
    if guests > strictest_max_guests:
        raise ValidationError(
            {"guests": [f"Max guests for selected dates is {strictest_max_guests}."]}
        )

    segments = tuple(
        SegmentPrice(
            period_id=segment.period.pk,
            start=segment.start,
            end=segment.end,
            nights=segment.nights,
            nightly_price=segment.period.standard_nightly_price,
        )
        for segment in coverage.segments
    )
    base_total = sum(segment.total for segment in segments)
    weekly = apply_weekly_discount(
        base_total=base_total,
        nights=nights,
        weekly_threshold_nights=arrival_period.weekly_threshold_nights,
        weekly_discount_percent_bps=arrival_period.weekly_discount_percent_bps,
    )
    return StayQuote(
        nights=nights,
        segments=segments,
        base_total=base_total,
        weekly_discount_applied_bps=weekly.applied_bps,
        total=weekly.total,
        arrival_period=arrival_period,
        currency=settings.BOOKING_CURRENCY,
    )
