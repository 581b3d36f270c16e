"""Celery tasks for bookings."""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from notifications.notifier import get_notifier
from payments.models import Cancellation

from .models import Booking

logger = logging.getLogger(__name__)

EXPIRED_REASON = "expired_unpaid"


def _expire_one(booking_id: int, cutoff) -> Booking | None:
    """Cancel one stale pending booking; returns it when this call expired it."""
    with transaction.atomic():
        booking = (
            Booking.objects.select_for_update()
            .select_related("user", "property")
            .filter(pk=booking_id)
            .first()
        )
        if booking is None or booking.status != Booking.Status.PENDING:
            return None
        if booking.created_at > cutoff:
            return None
        if Cancellation.objects.filter(booking_id=booking_id).exists():
            return None
        booking.status = Booking.Status.CANCELLED
        booking.save(update_fields=["status", "updated_at"])
        Cancellation.objects.create(
            booking=booking,
            policy_refund_cents=0,
            voucher_issued_cents=0,
            reason=EXPIRED_REASON,
        )
    return booking


def _notify_expired(booking: Booking) -> None:
    recipient = booking.notification_email()
    if not recipient:
        return
    get_notifier().notify(
        "booking_expired",
        recipient,
        {
            "customer_name": booking.customer_name(),
            "booking_id": booking.pk,
            "property_title": booking.property.title,
            "start_date": booking.start_date.isoformat(),
            "end_date": booking.end_date.isoformat(),
        },
        user_id=booking.user_id,
        booking_id=booking.pk,
    )


@shared_task(name="bookings.expire_pending_bookings")
def expire_pending_bookings() -> int:
    """
    Cancel pending bookings whose checkout hold has lapsed.

    Each booking is expired in its own transaction so one failure does not
    stop the batch. Returns the number of bookings expired.
    """
    hold_minutes = int(getattr(settings, "BOOKING_PENDING_HOLD_MINUTES", 30))
    batch_size = int(getattr(settings, "BOOKING_EXPIRY_BATCH_SIZE", 200))
    cutoff = timezone.now() - timedelta(minutes=hold_minutes)

    candidate_ids = list(
        Booking.objects.filter(
            status=Booking.Status.PENDING,
            created_at__lte=cutoff,
            cancellation__isnull=True,
        )
        .order_by("created_at")
        .values_list("id", flat=True)[:batch_size]
    )

    expired_count = 0
    for booking_id in candidate_ids:
        try:
            booking = _expire_one(booking_id, cutoff)
        except Exception:
            logger.exception(
                "bookings: failed to expire pending booking",
                extra={"booking_id": booking_id},
            )
            continue
        if booking is None:
            continue
        expired_count += 1
        try:
            _notify_expired(booking)
        except Exception:
            logger.info(
                "notifications: failed to send booking_expired email",
                extra={"booking_id": booking_id},
                exc_info=True,
            )

    if expired_count:
        logger.info(
            "bookings: expired pending bookings",
            extra={"count": expired_count, "hold_minutes": hold_minutes},
        )
    return expired_count
