"""Domain helpers for booking validation and state transitions."""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from rest_framework.exceptions import ValidationError

from core.exceptions import ConflictError

from .models import Booking

logger = logging.getLogger(__name__)

# Statuses that hold dates. Pending bookings block inventory while checkout is open.
ACTIVE_BOOKING_STATUSES = (
    Booking.Status.PENDING,
    Booking.Status.CONFIRMED,
)


def validate_booking_dates(start_date: date | None, end_date: date | None) -> None:
    """Ensure the provided dates exist and form a valid range."""
    if not start_date or not end_date:
        raise ValidationError({"non_field_errors": ["Start and end dates are required."]})
    if start_date >= end_date:
        raise ValidationError({"end_date": ["End date must be after start date."]})


def ensure_no_conflict(
    property_id: int,
    start_date: date,
    end_date: date,
    *,
    exclude_booking_id: Optional[int] = None,
) -> None:
    """Ensure no pending or confirmed booking of the property overlaps the range."""
    qs = Booking.objects.filter(property_id=property_id, status__in=ACTIVE_BOOKING_STATUSES)
    if exclude_booking_id is not None:
        qs = qs.exclude(pk=exclude_booking_id)
    if qs.filter(start_date__lt=end_date, end_date__gt=start_date).exists():
        raise ConflictError(
            "These dates are not available for this property.",
            code="dates_taken",
        )


def assert_can_confirm(booking: Booking) -> None:
    if booking.status != Booking.Status.PENDING:
        raise ConflictError("Only pending bookings can be confirmed.", code="not_pending")


def mark_cancelled(booking: Booking) -> None:
    """Move a pending or confirmed booking to cancelled; cancelled is terminal."""
    if booking.status == Booking.Status.CANCELLED:
        raise ConflictError("Booking is already cancelled.", code="already_cancelled")
    booking.status = Booking.Status.CANCELLED
    booking.save(update_fields=["status", "updated_at"])
