"""
Customer cancellations.

Preview and commit share ``plan_cancellation`` so the amounts a customer is
shown are exactly what a cancellation on the same day would produce.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound

from bookings.domain import mark_cancelled
from bookings.models import Booking
from core.exceptions import ConflictError
from notifications.notifier import Notifier, get_notifier

from .gateway import PaymentGateway
from .models import Cancellation, CreditVoucher, Payment, Refund
from .refund_policy import RefundTier, compute_refund_outcome, days_before_start
from .refunds import MISSING_PAYMENT_INTENT, format_cents, submit_refund

logger = logging.getLogger(__name__)

REFUND_TYPE_GATEWAY = "gateway_refund"
REFUND_TYPE_VOUCHER = "voucher"
REFUND_TYPE_NONE = "none"
REFUND_STATUS_NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True)
class CancellationPreview:
    booking_id: int
    days_before: int
    tier: RefundTier
    provider: str
    refund_type: str
    gateway_refund_cents: int
    voucher_cents: int
    booking_total_cents: int
    refundable_remaining_cents: int
    currency: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "booking_id": self.booking_id,
            "days_before": self.days_before,
            "tier": self.tier.as_dict(),
            "provider": self.provider,
            "refund_type": self.refund_type,
            "gateway_refund_cents": self.gateway_refund_cents,
            "voucher_cents": self.voucher_cents,
            "booking_total_cents": self.booking_total_cents,
            "refundable_remaining_cents": self.refundable_remaining_cents,
            "currency": self.currency,
        }


@dataclass(frozen=True)
class CancellationResult:
    booking_id: int
    status: str
    refund_type: str
    refunded_cents: int
    voucher_cents: int
    refund_status: str
    refund_id: Optional[int] = None
    submission_failed: bool = False
    failure_reason: Optional[str] = None

    @property
    def missing_payment_intent(self) -> bool:
        return self.failure_reason == MISSING_PAYMENT_INTENT

    def as_dict(self) -> dict[str, Any]:
        return {
            "booking_id": self.booking_id,
            "status": self.status,
            "refund": {
                "refund_type": self.refund_type,
                "refunded_cents": self.refunded_cents,
                "voucher_cents": self.voucher_cents,
                "refund_status": self.refund_status,
                "refund_id": self.refund_id,
            },
        }


def _payment_for(booking: Booking) -> Optional[Payment]:
    return Payment.objects.filter(booking=booking).first()


def plan_cancellation(
    booking: Booking,
    payment: Optional[Payment],
    today: date,
) -> CancellationPreview:
    """Pure cancellation arithmetic for ``booking`` as of ``today``."""
    days_before = days_before_start(today, booking.start_date)
    total_cents = booking.total_cents()
    outcome = compute_refund_outcome(days_before, total_cents)
    currency = payment.currency if payment else settings.BOOKING_CURRENCY
    provider = payment.provider if payment else Payment.Provider.NONE

    if provider != Payment.Provider.GATEWAY:
        return CancellationPreview(
            booking_id=booking.pk,
            days_before=days_before,
            tier=outcome.tier,
            provider=provider,
            refund_type=REFUND_TYPE_NONE,
            gateway_refund_cents=0,
            voucher_cents=0,
            booking_total_cents=total_cents,
            refundable_remaining_cents=0,
            currency=currency,
        )

    refundable = payment.refundable_cents()
    refund_cents = min(outcome.refund_cents, refundable)
    voucher_cents = outcome.voucher_cents
    if refund_cents > 0:
        refund_type = REFUND_TYPE_GATEWAY
    elif voucher_cents > 0:
        refund_type = REFUND_TYPE_VOUCHER
    else:
        refund_type = REFUND_TYPE_NONE
    return CancellationPreview(
        booking_id=booking.pk,
        days_before=days_before,
        tier=outcome.tier,
        provider=provider,
        refund_type=refund_type,
        gateway_refund_cents=refund_cents,
        voucher_cents=voucher_cents,
        booking_total_cents=total_cents,
        refundable_remaining_cents=refundable,
        currency=currency,
    )


def _get_owned_booking(booking_id: int, actor, *, lock: bool = False) -> Booking:
    qs = Booking.objects.all()
    if lock:
        qs = qs.select_for_update()
    try:
        return qs.get(pk=booking_id, user=actor)
    except Booking.DoesNotExist as exc:
        raise NotFound("Booking not found.") from exc


def preview_cancellation(booking_id: int, actor, today: Optional[date] = None) -> CancellationPreview:
    booking = _get_owned_booking(booking_id, actor)
    if booking.status == Booking.Status.CANCELLED:
        raise ConflictError("Booking is already cancelled.", code="already_cancelled")
    return plan_cancellation(booking, _payment_for(booking), today or timezone.localdate())


def cancel_booking(
    booking_id: int,
    actor,
    reason: Optional[str] = None,
    *,
    gateway: Optional[PaymentGateway] = None,
    notifier: Optional[Notifier] = None,
    today: Optional[date] = None,
) -> CancellationResult:
    """
    Cancel a customer's booking under the refund policy.

    The booking, cancellation, voucher and pending refund are written in one
    transaction; the gateway is called only after it commits. A gateway
    failure leaves the booking cancelled and the refund ``failed``.
    """
    today = today or timezone.localdate()
    try:
        with transaction.atomic():
            booking = _get_owned_booking(booking_id, actor, lock=True)
            if booking.status == Booking.Status.CANCELLED:
                raise ConflictError("Booking is already cancelled.", code="already_cancelled")
            if Cancellation.objects.filter(booking=booking).exists():
                raise ConflictError(
                    "Cancellation already recorded.",
                    code="already_cancelled",
                )
            payment = Payment.objects.select_for_update().filter(booking=booking).first()
            plan = plan_cancellation(booking, payment, today)

            mark_cancelled(booking)
            cancellation = Cancellation.objects.create(
                booking=booking,
                policy_refund_cents=plan.gateway_refund_cents,
                voucher_issued_cents=plan.voucher_cents,
                reason=reason,
            )

            if plan.provider != Payment.Provider.GATEWAY:
                refund = None
            else:
                if plan.voucher_cents > 0:
                    _issue_voucher(booking, cancellation, plan)
                refund = None
                if plan.gateway_refund_cents > 0:
                    refund = Refund.objects.create(
                        booking=booking,
                        payment=payment,
                        source=Refund.Source.POLICY_CANCEL,
                        status=(
                            Refund.Status.PENDING
                            if payment.gateway_payment_intent_id
                            else Refund.Status.FAILED
                        ),
                        amount_cents=plan.gateway_refund_cents,
                        currency=payment.currency,
                        gateway_payment_intent_id=payment.gateway_payment_intent_id,
                        cancellation=cancellation,
                        failure_reason=(
                            None if payment.gateway_payment_intent_id else MISSING_PAYMENT_INTENT
                        ),
                    )
    except IntegrityError as exc:
        # A concurrent request won the one-cancellation-per-booking constraint.
        raise ConflictError("Cancellation already recorded.", code="already_cancelled") from exc

    logger.info(
        "cancellations: booking cancelled",
        extra={
            "booking_id": booking.pk,
            "days_before": plan.days_before,
            "tier": plan.tier.key,
            "refund_type": plan.refund_type,
            "refund_cents": plan.gateway_refund_cents,
            "voucher_cents": plan.voucher_cents,
        },
    )

    if refund is not None and refund.status == Refund.Status.PENDING:
        refund = submit_refund(refund, gateway=gateway)

    result = _result_for(booking, plan, refund)
    _notify_cancelled(booking, result, notifier=notifier)
    return result


def _issue_voucher(booking: Booking, cancellation: Cancellation, plan: CancellationPreview) -> CreditVoucher:
    validity_days = getattr(settings, "VOUCHER_VALIDITY_DAYS", 365)
    return CreditVoucher.objects.create(
        user_id=booking.user_id,
        original_booking=booking,
        cancellation=cancellation,
        currency=plan.currency,
        issued_cents=plan.voucher_cents,
        remaining_cents=plan.voucher_cents,
        status=CreditVoucher.Status.ACTIVE,
        expires_at=timezone.now() + timedelta(days=validity_days),
    )


def _result_for(
    booking: Booking,
    plan: CancellationPreview,
    refund: Optional[Refund],
) -> CancellationResult:
    if refund is None:
        return CancellationResult(
            booking_id=booking.pk,
            status=booking.status,
            refund_type=plan.refund_type,
            refunded_cents=0,
            voucher_cents=plan.voucher_cents,
            refund_status=REFUND_STATUS_NOT_APPLICABLE,
        )
    failed = refund.status == Refund.Status.FAILED
    return CancellationResult(
        booking_id=booking.pk,
        status=booking.status,
        refund_type=plan.refund_type,
        refunded_cents=0 if failed else refund.amount_cents,
        voucher_cents=plan.voucher_cents,
        refund_status=refund.status,
        refund_id=refund.pk,
        submission_failed=failed,
        failure_reason=refund.failure_reason if failed else None,
    )


def _notify_cancelled(
    booking: Booking,
    result: CancellationResult,
    *,
    notifier: Optional[Notifier] = None,
) -> None:
    recipient = booking.notification_email()
    if not recipient:
        return
    currency = (
        Payment.objects.filter(booking=booking).values_list("currency", flat=True).first()
        or settings.BOOKING_CURRENCY
    )
    (notifier or get_notifier()).notify(
        "booking_cancelled",
        recipient,
        {
            "customer_name": booking.customer_name(),
            "booking_id": booking.pk,
            "property_title": booking.property.title,
            "start_date": booking.start_date.isoformat(),
            "end_date": booking.end_date.isoformat(),
            "refund_amount": format_cents(result.refunded_cents) if result.refunded_cents else "",
            "voucher_amount": format_cents(result.voucher_cents) if result.voucher_cents else "",
            "currency": currency.upper(),
        },
        user_id=booking.user_id,
        booking_id=booking.pk,
    )
