"""Booking creation and confirmation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from django.conf import settings
from django.db import transaction
from rest_framework.exceptions import NotFound

from payments.gateway import PaymentGateway, get_gateway
from payments.models import Payment
from properties.models import Property

from .domain import assert_can_confirm, ensure_no_conflict
from .models import Booking
from .pricing import StayQuote, quote_stay

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingInput:
    property_id: int
    start_date: date
    end_date: date
    adults: int
    children: int = 0
    babies: int = 0
    extra_beds_count: int = 0
    guest_name: str = ""
    guest_email: str = ""
    guest_phone: str = ""

    @property
    def counted_guests(self) -> int:
        """Babies do not count against guest limits."""
        return self.adults + self.children


@dataclass(frozen=True)
class BookingCreation:
    booking: Booking
    quote: StayQuote
    checkout_url: Optional[str] = None


def get_bookable_property(property_id: int, *, lock: bool = False) -> Property:
    qs = Property.objects.filter(is_active=True)
    if lock:
        qs = qs.select_for_update()
    try:
        return qs.get(pk=property_id)
    except Property.DoesNotExist as exc:
        raise NotFound("Property not found.") from exc


def _checkout_urls(booking: Booking) -> tuple[str, str]:
    origin = (getattr(settings, "FRONTEND_ORIGIN", "") or "").rstrip("/")
    return (
        f"{origin}/booking/success?bookingId={booking.pk}",
        f"{origin}/booking/cancelled?bookingId={booking.pk}",
    )


def create_booking(
    data: BookingInput,
    *,
    user,
    gateway: Optional[PaymentGateway] = None,
) -> BookingCreation:
    """
    Price and persist a booking.

    Admin bookings are confirmed immediately with a zero ``admin`` payment.
    Customer bookings stay pending with a ``gateway`` payment until the
    checkout webhook confirms them; the checkout session is opened after the
    booking row commits.
    """
    is_admin = bool(getattr(user, "is_staff", False))
    with transaction.atomic():
        # The property row serializes concurrent bookings of the same villa.
        villa = get_bookable_property(data.property_id, lock=True)
        quote = quote_stay(villa, data.start_date, data.end_date, data.counted_guests)
        booking = Booking.objects.create(
            property=villa,
            user=user,
            booking_period=quote.arrival_period,
            start_date=data.start_date,
            end_date=data.end_date,
            status=Booking.Status.CONFIRMED if is_admin else Booking.Status.PENDING,
            total_price=quote.total,
            price_breakdown=quote.breakdown(),
            weekly_discount_applied_bps=quote.weekly_discount_applied_bps,
            adults=data.adults,
            children=data.children,
            babies=data.babies,
            guests_count=data.counted_guests,
            extra_beds_count=data.extra_beds_count,
            guest_name=data.guest_name,
            guest_email=data.guest_email or getattr(user, "email", "") or "",
            guest_phone=data.guest_phone,
        )
        if is_admin:
            payment = Payment.objects.create(
                booking=booking,
                provider=Payment.Provider.ADMIN,
                status=Payment.Status.PAID,
                amount_cents=0,
                currency=quote.currency,
            )
        else:
            payment = Payment.objects.create(
                booking=booking,
                provider=Payment.Provider.GATEWAY,
                status=Payment.Status.PENDING,
                amount_cents=quote.total_cents,
                currency=quote.currency,
            )

    logger.info(
        "bookings: created",
        extra={
            "booking_id": booking.pk,
            "property_id": villa.pk,
            "status": booking.status,
            "total": quote.total,
            "provider": payment.provider,
        },
    )
    if is_admin:
        return BookingCreation(booking=booking, quote=quote)

    success_url, cancel_url = _checkout_urls(booking)
    session = (gateway or get_gateway()).create_checkout_session(
        amount_cents=payment.amount_cents,
        currency=payment.currency,
        product_name=f"Booking #{booking.pk}",
        description=(
            f"{villa.title} {booking.start_date.isoformat()} to {booking.end_date.isoformat()}"
        ),
        customer_email=booking.guest_email,
        metadata={"bookingId": str(booking.pk), "userId": str(user.pk)},
        success_url=success_url,
        cancel_url=cancel_url,
    )
    payment.gateway_session_id = session.id
    payment.save(update_fields=["gateway_session_id", "updated_at"])
    return BookingCreation(booking=booking, quote=quote, checkout_url=session.url)


def confirm_booking(booking_id: int) -> Booking:
    """
    Admin confirmation of a pending booking paid outside the gateway.

    An unpaid gateway payment becomes a zero ``admin`` payment in the same
    transaction, so a confirmed booking always has a paid payment.
    """
    with transaction.atomic():
        try:
            booking = Booking.objects.select_for_update().get(pk=booking_id)
        except Booking.DoesNotExist as exc:
            raise NotFound("Booking not found.") from exc
        assert_can_confirm(booking)
        ensure_no_conflict(
            booking.property_id,
            booking.start_date,
            booking.end_date,
            exclude_booking_id=booking.pk,
        )
        payment = Payment.objects.select_for_update().filter(booking=booking).first()
        if payment is None:
            payment = Payment.objects.create(
                booking=booking,
                provider=Payment.Provider.ADMIN,
                status=Payment.Status.PAID,
                amount_cents=0,
                currency=settings.BOOKING_CURRENCY,
            )
        elif payment.status != Payment.Status.PAID:
            # Settled outside the gateway; a late checkout webhook is ignored for admin payments.
            payment.provider = Payment.Provider.ADMIN
            payment.status = Payment.Status.PAID
            payment.amount_cents = 0
            payment.save(update_fields=["provider", "status", "amount_cents", "updated_at"])
        booking.status = Booking.Status.CONFIRMED
        booking.save(update_fields=["status", "updated_at"])
    logger.info(
        "bookings: confirmed by admin",
        extra={"booking_id": booking_id, "provider": payment.provider},
    )
    return booking
