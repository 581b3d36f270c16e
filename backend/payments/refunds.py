"""
Refund ledger operations.

Refund rows are committed as ``pending`` before the gateway is called, and
every submission uses the refund's deterministic idempotency key, so a retry
updates the same row and the gateway collapses duplicate submissions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound

from bookings.models import Booking
from core.exceptions import ConflictError

from .gateway import GatewayError, PaymentGateway, get_gateway
from .models import Cancellation, Payment, Refund, RefundRequest

logger = logging.getLogger(__name__)

REFUND_STATUS_MAP = {
    "succeeded": Refund.Status.SUCCEEDED,
    "failed": Refund.Status.FAILED,
    "canceled": Refund.Status.CANCELED,
}

GATEWAY_SUBMISSION_FAILED = "Gateway refund create failed"
MISSING_PAYMENT_INTENT = "Missing gateway payment intent id"


def map_gateway_refund_status(status: Optional[str]) -> str:
    """Map a gateway refund status onto the local set; unknown values stay pending."""
    return REFUND_STATUS_MAP.get((status or "").lower(), Refund.Status.PENDING)


def format_cents(cents: int) -> str:
    return f"{cents / 100:.2f}"


def refund_metadata(refund: Refund) -> dict[str, str]:
    metadata = {
        "localRefundId": str(refund.pk),
        "bookingId": str(refund.booking_id),
        "source": refund.source,
    }
    if refund.cancellation_id:
        metadata["cancellationId"] = str(refund.cancellation_id)
    if refund.refund_request_id:
        metadata["requestId"] = str(refund.refund_request_id)
    return metadata


def submit_refund(refund: Refund, *, gateway: Optional[PaymentGateway] = None) -> Refund:
    """
    Submit a committed refund row to the gateway.

    A gateway failure marks the row ``failed`` with a reason and returns it;
    it never propagates, since the local action that created the refund has
    already been committed.

    The refund webhook can land before the gateway call returns, so the result
    is written under a row lock and the create-time status only replaces a
    row that is still ``pending`` and not yet applied.
    """
    gateway = gateway or get_gateway()
    try:
        gateway_refund = gateway.create_refund(
            payment_intent_id=refund.gateway_payment_intent_id,
            amount_cents=refund.amount_cents,
            idempotency_key=refund.idempotency_key(),
            metadata=refund_metadata(refund),
        )
    except GatewayError as exc:
        logger.warning(
            "refunds: gateway submission failed",
            extra={"refund_id": refund.pk, "booking_id": refund.booking_id, "error": str(exc)},
        )
        with transaction.atomic():
            refund = Refund.objects.select_for_update().get(pk=refund.pk)
            if refund.status == Refund.Status.PENDING and refund.applied_at is None:
                refund.status = Refund.Status.FAILED
                refund.failure_reason = f"{GATEWAY_SUBMISSION_FAILED}: {exc}"
                refund.save(update_fields=["status", "failure_reason", "updated_at"])
        return refund

    with transaction.atomic():
        refund = Refund.objects.select_for_update().get(pk=refund.pk)
        update_fields = ["updated_at"]
        if not refund.gateway_refund_id and gateway_refund.id:
            refund.gateway_refund_id = gateway_refund.id
            update_fields.append("gateway_refund_id")
        if refund.status == Refund.Status.PENDING and refund.applied_at is None:
            refund.status = map_gateway_refund_status(gateway_refund.status)
            refund.failure_reason = None
            update_fields += ["status", "failure_reason"]
        refund.save(update_fields=update_fields)
    logger.info(
        "refunds: submitted",
        extra={
            "refund_id": refund.pk,
            "booking_id": refund.booking_id,
            "gateway_refund_id": refund.gateway_refund_id,
            "status": refund.status,
        },
    )
    return refund


def apply_succeeded_refund_once(refund_id: int, gateway_amount_cents: Optional[int] = None) -> bool:
    """
    Add a succeeded refund to its payment exactly once.

    ``applied_at`` is read and set under a row lock in the same transaction as
    the payment update. Returns True only for the call that applied it.
    """
    with transaction.atomic():
        try:
            refund = Refund.objects.select_for_update().get(pk=refund_id)
        except Refund.DoesNotExist:
            return False
        if refund.applied_at is not None:
            return False

        amount = refund.amount_cents if gateway_amount_cents is None else gateway_amount_cents
        amount = max(0, int(amount))

        refund.status = Refund.Status.SUCCEEDED
        refund.applied_at = timezone.now()
        refund.amount_cents = amount
        refund.save(update_fields=["status", "applied_at", "amount_cents", "updated_at"])

        payment = Payment.objects.select_for_update().get(pk=refund.payment_id)
        payment.refunded_cents = min(payment.amount_cents, payment.refunded_cents + amount)
        payment.status = payment.status_for_refunded(payment.refunded_cents)
        payment.save(update_fields=["refunded_cents", "status", "updated_at"])

    logger.info(
        "refunds: applied to payment",
        extra={
            "refund_id": refund_id,
            "payment_id": payment.pk,
            "amount_cents": amount,
            "refunded_cents": payment.refunded_cents,
        },
    )
    return True


def create_refund_request(*, booking_id: int, user, message: Optional[str] = None) -> RefundRequest:
    try:
        booking = Booking.objects.get(pk=booking_id, user=user)
    except Booking.DoesNotExist as exc:
        raise NotFound("Booking not found.") from exc
    if booking.refund_requests.filter(status=RefundRequest.Status.PENDING).exists():
        raise ConflictError(
            "A refund request for this booking is already pending.",
            code="refund_request_pending",
        )
    refund_request = RefundRequest.objects.create(booking=booking, user=user, message=message)
    logger.info(
        "refunds: request created",
        extra={"request_id": refund_request.pk, "booking_id": booking.pk},
    )
    return refund_request


@dataclass(frozen=True)
class RefundDecision:
    request_id: int
    status: str
    refunded_cents: int = 0
    refund_status: str = "not_applicable"
    refund_id: Optional[int] = None
    submission_failed: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "status": self.status,
            "refunded_cents": self.refunded_cents,
            "refund_status": self.refund_status,
            "refund_id": self.refund_id,
        }


def _lock_pending_request(request_id: int) -> RefundRequest:
    try:
        refund_request = RefundRequest.objects.select_for_update().get(pk=request_id)
    except RefundRequest.DoesNotExist as exc:
        raise NotFound("Refund request not found.") from exc
    if refund_request.status != RefundRequest.Status.PENDING:
        raise ConflictError("Request already decided.", code="already_decided")
    return refund_request


def approve_refund_request(
    request_id: int,
    *,
    gateway: Optional[PaymentGateway] = None,
) -> RefundDecision:
    """
    Approve a pending request and refund everything still refundable.

    The booking is cancelled alongside the approval. With nothing left to
    refund the request is simply approved.
    """
    with transaction.atomic():
        refund_request = _lock_pending_request(request_id)
        booking = Booking.objects.select_for_update().get(pk=refund_request.booking_id)
        payment = Payment.objects.select_for_update().filter(booking=booking).first()
        if (
            payment is None
            or payment.provider != Payment.Provider.GATEWAY
            or not payment.gateway_payment_intent_id
        ):
            raise ConflictError(
                "No refundable gateway payment found.",
                code="no_gateway_payment",
            )

        remaining = payment.refundable_cents()
        refund_request.status = RefundRequest.Status.APPROVED
        refund_request.decided_at = timezone.now()
        refund_request.save(update_fields=["status", "decided_at"])

        if remaining == 0:
            logger.info(
                "refunds: request approved with nothing left to refund",
                extra={"request_id": request_id, "booking_id": booking.pk},
            )
            return RefundDecision(request_id=request_id, status=refund_request.status)

        if booking.status != Booking.Status.CANCELLED:
            booking.status = Booking.Status.CANCELLED
            booking.save(update_fields=["status", "updated_at"])
        if not Cancellation.objects.filter(booking=booking).exists():
            Cancellation.objects.create(
                booking=booking,
                policy_refund_cents=remaining,
                voucher_issued_cents=0,
                reason="admin_refund_request",
            )

        refund = Refund.objects.create(
            booking=booking,
            payment=payment,
            source=Refund.Source.ADMIN_REQUEST,
            status=Refund.Status.PENDING,
            amount_cents=remaining,
            currency=payment.currency,
            gateway_payment_intent_id=payment.gateway_payment_intent_id,
            refund_request=refund_request,
        )

    refund = submit_refund(refund, gateway=gateway)
    return RefundDecision(
        request_id=request_id,
        status=RefundRequest.Status.APPROVED,
        refunded_cents=remaining,
        refund_status=refund.status,
        refund_id=refund.pk,
        submission_failed=refund.status == Refund.Status.FAILED,
    )


def reject_refund_request(request_id: int) -> RefundDecision:
    with transaction.atomic():
        refund_request = _lock_pending_request(request_id)
        refund_request.status = RefundRequest.Status.REJECTED
        refund_request.decided_at = timezone.now()
        refund_request.save(update_fields=["status", "decided_at"])
    return RefundDecision(request_id=request_id, status=RefundRequest.Status.REJECTED)


def retry_refund_submission(
    refund_id: int,
    *,
    gateway: Optional[PaymentGateway] = None,
) -> Refund:
    """Re-submit a failed refund that never reached the gateway."""
    with transaction.atomic():
        try:
            refund = Refund.objects.select_for_update().get(pk=refund_id)
        except Refund.DoesNotExist as exc:
            raise NotFound("Refund not found.") from exc
        if refund.status != Refund.Status.FAILED or refund.gateway_refund_id:
            raise ConflictError(
                "Only failed refunds without a gateway id can be retried.",
                code="not_retryable",
            )
        if not refund.gateway_payment_intent_id:
            intent_id = (
                Payment.objects.filter(pk=refund.payment_id)
                .values_list("gateway_payment_intent_id", flat=True)
                .first()
            )
            if not intent_id:
                raise ConflictError(
                    "Payment has no gateway payment intent to refund.",
                    code="missing_payment_intent",
                )
            refund.gateway_payment_intent_id = intent_id
        refund.status = Refund.Status.PENDING
        refund.save(update_fields=["status", "gateway_payment_intent_id", "updated_at"])

    logger.info("refunds: retrying submission", extra={"refund_id": refund_id})
    return submit_refund(refund, gateway=gateway)


def refund_status_for_booking(*, booking_id: int, user) -> dict[str, Any]:
    """Latest refund and cancellation amounts for a customer's booking card."""
    try:
        booking = Booking.objects.select_related("payment", "cancellation").get(
            pk=booking_id,
            user=user,
        )
    except Booking.DoesNotExist as exc:
        raise NotFound("Booking not found.") from exc

    payment: Optional[Payment] = getattr(booking, "payment", None)
    cancellation: Optional[Cancellation] = getattr(booking, "cancellation", None)
    latest: Optional[Refund] = booking.refunds.order_by("-created_at", "-id").first()
    return {
        "booking_id": booking.pk,
        "booking_status": booking.status,
        "currency": payment.currency if payment else settings.BOOKING_CURRENCY,
        "cancellation": (
            {
                "policy_refund_cents": cancellation.policy_refund_cents,
                "voucher_issued_cents": cancellation.voucher_issued_cents,
            }
            if cancellation
            else None
        ),
        "refund": (
            {
                "id": latest.pk,
                "source": latest.source,
                "status": latest.status,
                "amount_cents": latest.amount_cents,
                "currency": latest.currency,
                "failure_reason": latest.failure_reason,
                "created_at": latest.created_at.isoformat(),
            }
            if latest
            else None
        ),
    }


def refund_notification_variables(refund: Refund) -> Mapping[str, Any]:
    booking = refund.booking
    return {
        "customer_name": booking.customer_name(),
        "booking_id": booking.pk,
        "amount": format_cents(refund.amount_cents),
        "currency": (refund.currency or "eur").upper(),
        "property_title": booking.property.title,
    }
