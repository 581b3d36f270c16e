"""
Period segmentation and period administration.

A booking window ``[start, end)`` is priced by splitting it into contiguous
segments, each attributed to exactly one covering period. Nights that no
period covers are closed by default, so any gap (or any closed period) voids
the whole request rather than pricing part of it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal, Optional, Sequence

from django.db import transaction
from rest_framework.exceptions import NotFound, ValidationError

from core.dates import nights_between
from core.exceptions import ConflictError

from .models import BookingPeriod, Property

logger = logging.getLogger(__name__)

NO_PERIOD = "NO_PERIOD"
CLOSED = "CLOSED"
SegmentFailure = Literal["NO_PERIOD", "CLOSED"]


@dataclass(frozen=True)
class Segment:
    """A sub-range of the requested window priced by a single period."""

    period: BookingPeriod
    start: date
    end: date

    @property
    def nights(self) -> int:
        return nights_between(self.start, self.end)


@dataclass(frozen=True)
class SegmentationResult:
    ok: bool
    reason: Optional[SegmentFailure] = None
    segments: tuple[Segment, ...] = ()

    @property
    def arrival_period(self) -> Optional[BookingPeriod]:
        """Period covering the first night, which carries the stay rules."""
        return self.segments[0].period if self.segments else None


@dataclass(frozen=True)
class WeeklyDiscount:
    total: int
    applied_bps: Optional[int]


def build_segments(
    periods: Sequence[BookingPeriod],
    start: date,
    end: date,
) -> SegmentationResult:
    """
    Walk a cursor over ``[start, end)`` using periods sorted by start date.

    The first period in sort order that covers the cursor wins. With
    overlapping periods (which writes reject) that is the earliest-starting
    one, whatever the administrator meant.
    """
    if start >= end:
        raise ValueError("end must be after start")

    segments: list[Segment] = []
    cursor = start
    while cursor < end:
        covering = next((p for p in periods if p.start_date <= cursor < p.end_date), None)
        if covering is None:
            return SegmentationResult(ok=False, reason=NO_PERIOD)
        if not covering.is_open:
            return SegmentationResult(ok=False, reason=CLOSED)
        segment_end = min(covering.end_date, end)
        segments.append(Segment(period=covering, start=cursor, end=segment_end))
        cursor = segment_end
    return SegmentationResult(ok=True, segments=tuple(segments))


def segment_open_periods(property_id: int, start: date, end: date) -> SegmentationResult:
    """Load the periods intersecting ``[start, end)`` and segment the range."""
    periods = list(
        BookingPeriod.objects.filter(
            property_id=property_id,
            end_date__gt=start,
            start_date__lt=end,
        ).order_by("start_date", "id")
    )
    result = build_segments(periods, start, end)
    if not result.ok:
        logger.info(
            "periods: range rejected",
            extra={
                "property_id": property_id,
                "start": start.isoformat(),
                "end": end.isoformat(),
                "reason": result.reason,
            },
        )
    return result


def apply_weekly_discount(
    *,
    base_total: int,
    nights: int,
    weekly_threshold_nights: int,
    weekly_discount_percent_bps: Optional[int],
) -> WeeklyDiscount:
    """
    Apply the weekly discount to the whole stay once the threshold is reached.

    The discount covers every night of the stay, not only the nights beyond
    the threshold. Totals are rounded half-up to whole currency units.
    """
    if not weekly_discount_percent_bps:
        return WeeklyDiscount(total=base_total, applied_bps=None)
    if nights < weekly_threshold_nights:
        return WeeklyDiscount(total=base_total, applied_bps=None)

    factor = Decimal(10_000 - weekly_discount_percent_bps) / Decimal(10_000)
    discounted = (Decimal(base_total) * factor).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return WeeklyDiscount(total=int(discounted), applied_bps=weekly_discount_percent_bps)


def ensure_no_period_overlap(
    *,
    property_id: int,
    start_date: date,
    end_date: date,
    ignore_period_id: Optional[int] = None,
) -> None:
    """Raise a conflict if ``[start_date, end_date)`` intersects another period."""
    qs = BookingPeriod.objects.filter(
        property_id=property_id,
        start_date__lt=end_date,
        end_date__gt=start_date,
    )
    if ignore_period_id is not None:
        qs = qs.exclude(pk=ignore_period_id)
    if qs.exists():
        raise ConflictError("Period overlaps an existing period.", code="period_overlap")


class _Unset:
    """Marker for a patch field the caller did not send."""

    _instance: Optional["_Unset"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()

NULLABLE_PERIOD_FIELDS = frozenset({"weekly_discount_percent_bps", "name", "notes"})


@dataclass(frozen=True)
class PeriodInput:
    property_id: int
    start_date: date
    end_date: date
    standard_nightly_price: int
    max_guests: int
    is_open: bool = True
    weekly_discount_percent_bps: Optional[int] = None
    weekly_threshold_nights: int = 7
    min_nights: int = 1
    name: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class PeriodPatch:
    """
    Partial update of a period.

    ``UNSET`` keeps the stored value; ``None`` clears a nullable field and is
    rejected for the others.
    """

    start_date: Any = field(default=UNSET)
    end_date: Any = field(default=UNSET)
    is_open: Any = field(default=UNSET)
    standard_nightly_price: Any = field(default=UNSET)
    weekly_discount_percent_bps: Any = field(default=UNSET)
    weekly_threshold_nights: Any = field(default=UNSET)
    min_nights: Any = field(default=UNSET)
    max_guests: Any = field(default=UNSET)
    name: Any = field(default=UNSET)
    notes: Any = field(default=UNSET)

    def provided(self) -> dict[str, Any]:
        """Return only the fields present in the patch."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }


def merge_period_patch(period: BookingPeriod, patch: PeriodPatch) -> list[str]:
    """
    Apply ``patch`` to ``period`` in memory and return the changed field names.

    Raises ``ValidationError`` for a null non-nullable field or an inverted
    date range after the merge.
    """
    changed: list[str] = []
    errors: dict[str, list[str]] = {}
    for name, value in patch.provided().items():
        if value is None and name not in NULLABLE_PERIOD_FIELDS:
            errors[name] = ["This field may not be null."]
            continue
        if getattr(period, name) != value:
            setattr(period, name, value)
            changed.append(name)
    if errors:
        raise ValidationError(errors)
    if period.end_date <= period.start_date:
        raise ValidationError({"end_date": ["End date must be after start date."]})
    return changed


def _lock_property(property_id: int) -> Property:
    try:
        return Property.objects.select_for_update().get(pk=property_id)
    except Property.DoesNotExist as exc:
        raise NotFound("Property not found.") from exc


def create_period(data: PeriodInput) -> BookingPeriod:
    """Create a period, rejecting any overlap with the property's other periods."""
    if data.end_date <= data.start_date:
        raise ValidationError({"end_date": ["End date must be after start date."]})

    with transaction.atomic():
        # The property row serializes period writes for that property.
        _lock_property(data.property_id)
        ensure_no_period_overlap(
            property_id=data.property_id,
            start_date=data.start_date,
            end_date=data.end_date,
        )
        period = BookingPeriod.objects.create(
            property_id=data.property_id,
            start_date=data.start_date,
            end_date=data.end_date,
            is_open=data.is_open,
            standard_nightly_price=data.standard_nightly_price,
            weekly_discount_percent_bps=data.weekly_discount_percent_bps,
            weekly_threshold_nights=data.weekly_threshold_nights,
            min_nights=data.min_nights,
            max_guests=data.max_guests,
            name=data.name,
            notes=data.notes,
        )
    logger.info(
        "periods: created",
        extra={"period_id": period.id, "property_id": data.property_id},
    )
    return period


def update_period(period_id: int, patch: PeriodPatch) -> BookingPeriod:
    """Merge ``patch`` into a period and re-check non-overlap when dates move."""
    with transaction.atomic():
        try:
            property_id = BookingPeriod.objects.values_list("property_id", flat=True).get(
                pk=period_id
            )
        except BookingPeriod.DoesNotExist as exc:
            raise NotFound("Period not found.") from exc
        _lock_property(property_id)
        period = BookingPeriod.objects.select_for_update().get(pk=period_id)

        changed = merge_period_patch(period, patch)
        if not changed:
            return period
        if {"start_date", "end_date"} & set(changed):
            ensure_no_period_overlap(
                property_id=period.property_id,
                start_date=period.start_date,
                end_date=period.end_date,
                ignore_period_id=period.id,
            )
        period.save(update_fields=[*changed, "updated_at"])
    return period


def delete_period(period_id: int) -> None:
    """Delete a period unless a booking was priced against it."""
    with transaction.atomic():
        try:
            period = BookingPeriod.objects.select_for_update().get(pk=period_id)
        except BookingPeriod.DoesNotExist as exc:
            raise NotFound("Period not found.") from exc
        if period.bookings.exists():
            raise ConflictError(
                "Cannot delete a period that has bookings. Close it instead.",
                code="period_in_use",
            )
        period.delete()
