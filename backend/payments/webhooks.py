"""
Reconciliation of signature-verified gateway events.

Both handlers are safe to run repeatedly with the same event: checkout
confirmation is a no-op once the booking is confirmed and paid, and refund
effects are guarded by ``Refund.applied_at`` / ``Refund.customer_notified_at``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework import status

from bookings.models import Booking
from notifications.notifier import Notifier, get_notifier

from .models import Payment, Refund
from .refunds import (
    apply_succeeded_refund_once,
    map_gateway_refund_status,
    refund_notification_variables,
)

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
REFUND_EVENTS = frozenset({"refund.created", "refund.updated"})


@dataclass(frozen=True)
class WebhookOutcome:
    http_status: int = status.HTTP_200_OK
    body: dict[str, Any] = field(default_factory=lambda: {"received": True})


def _value(obj: Any, key: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _event_object(event: Mapping[str, Any]) -> Mapping[str, Any]:
    return _value(_value(event, "data"), "object") or {}


def _parse_id(raw: Any) -> Optional[int]:
    text = str(raw).strip() if raw is not None else ""
    if not text.isdigit():
        return None
    value = int(text)
    return value if value > 0 else None


def handle_checkout_event(event: Mapping[str, Any]) -> WebhookOutcome:
    """Route checkout-endpoint events; anything but completion is acknowledged."""
    if _value(event, "type") == CHECKOUT_COMPLETED:
        return handle_checkout_completed(event)
    return WebhookOutcome()


def _resolve_booking_id(session: Mapping[str, Any]) -> Optional[int]:
    metadata = _value(session, "metadata") or {}
    booking_id = _parse_id(_value(metadata, "bookingId"))
    if booking_id is not None:
        return booking_id
    session_id = _value(session, "id")
    if not session_id:
        return None
    return (
        Payment.objects.filter(gateway_session_id=session_id)
        .values_list("booking_id", flat=True)
        .first()
    )


def handle_checkout_completed(event: Mapping[str, Any]) -> WebhookOutcome:
    """Mark the booking confirmed and its payment paid with the gateway's figures."""
    session = _event_object(event)
    session_id = _value(session, "id")
    booking_id = _resolve_booking_id(session)
    if booking_id is None:
        logger.error(
            "checkout webhook: unable to resolve booking id",
            extra={"session_id": session_id},
        )
        return WebhookOutcome(status.HTTP_400_BAD_REQUEST, {"detail": "Missing bookingId."})

    with transaction.atomic():
        booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
        payment = (
            Payment.objects.select_for_update().filter(booking_id=booking_id).first()
            if booking
            else None
        )
        if booking is None or payment is None:
            logger.error(
                "checkout webhook: booking or payment not found",
                extra={"booking_id": booking_id, "session_id": session_id},
            )
            return WebhookOutcome(
                status.HTTP_404_NOT_FOUND,
                {"detail": "Booking/payment not found."},
            )

        if payment.provider != Payment.Provider.GATEWAY:
            return WebhookOutcome(body={"received": True, "ignored": True})

        if booking.status == Booking.Status.CONFIRMED and payment.status == Payment.Status.PAID:
            return WebhookOutcome(body={"received": True, "idempotent": True})

        amount_total = _value(session, "amount_total")
        currency = _value(session, "currency")
        intent_id = _value(session, "payment_intent")
        payment.status = Payment.Status.PAID
        if isinstance(amount_total, int):
            payment.amount_cents = amount_total
        if isinstance(currency, str) and currency:
            payment.currency = currency
        if session_id:
            payment.gateway_session_id = session_id
        payment.gateway_payment_intent_id = intent_id if isinstance(intent_id, str) else None
        payment.save(
            update_fields=[
                "status",
                "amount_cents",
                "currency",
                "gateway_session_id",
                "gateway_payment_intent_id",
                "updated_at",
            ]
        )

        if booking.status == Booking.Status.CANCELLED:
            # Paid after the hold expired; keep the money on record for an admin refund.
            logger.warning(
                "checkout webhook: payment received for a cancelled booking",
                extra={"booking_id": booking_id, "session_id": session_id},
            )
            return WebhookOutcome(body={"received": True, "booking_cancelled": True})

        booking.status = Booking.Status.CONFIRMED
        booking.save(update_fields=["status", "updated_at"])

    logger.info(
        "checkout webhook: booking confirmed",
        extra={
            "booking_id": booking_id,
            "session_id": session_id,
            "amount_cents": payment.amount_cents,
        },
    )
    return WebhookOutcome()


def _find_local_refund(gateway_refund_id: Optional[str], metadata: Mapping[str, Any]) -> Optional[Refund]:
    local_id = _parse_id(_value(metadata, "localRefundId"))
    criteria = Q()
    if gateway_refund_id:
        criteria |= Q(gateway_refund_id=gateway_refund_id)
    if local_id is not None:
        criteria |= Q(pk=local_id)
    if not criteria:
        return None
    matches = list(Refund.objects.filter(criteria))
    if gateway_refund_id:
        for refund in matches:
            if refund.gateway_refund_id == gateway_refund_id:
                return refund
    return matches[0] if matches else None


def notify_refund_succeeded_once(refund_id: int, *, notifier: Optional[Notifier] = None) -> bool:
    """
    Email the customer about a succeeded refund unless already done.

    ``customer_notified_at`` is set only when the notifier reports success, so
    a failed attempt is retried by the next delivery of the event.
    """
    with transaction.atomic():
        refund = (
            Refund.objects.select_for_update()
            .select_related("booking", "booking__user", "booking__property")
            .get(pk=refund_id)
        )
        if refund.customer_notified_at is not None:
            return False
        recipient = refund.booking.notification_email()
        if not recipient:
            return False
        sent = (notifier or get_notifier()).notify(
            "customer_refund_succeeded",
            recipient,
            refund_notification_variables(refund),
            user_id=refund.booking.user_id,
            booking_id=refund.booking_id,
        )
        if not sent:
            logger.warning(
                "refund webhook: customer email failed",
                extra={"refund_id": refund_id, "booking_id": refund.booking_id},
            )
            return False
        refund.customer_notified_at = timezone.now()
        refund.save(update_fields=["customer_notified_at", "updated_at"])
    return True


def handle_refund_event(
    event: Mapping[str, Any],
    *,
    notifier: Optional[Notifier] = None,
) -> WebhookOutcome:
    """Reconcile a gateway refund lifecycle event with the local refund row."""
    if _value(event, "type") not in REFUND_EVENTS:
        return WebhookOutcome(body={"received": True, "ignored": True})

    gateway_refund = _event_object(event)
    gateway_refund_id = _value(gateway_refund, "id")
    metadata = _value(gateway_refund, "metadata") or {}
    next_status = map_gateway_refund_status(_value(gateway_refund, "status"))

    local = _find_local_refund(gateway_refund_id, metadata)
    if local is None:
        logger.warning(
            "refund webhook: local refund not found",
            extra={
                "gateway_refund_id": gateway_refund_id,
                "local_refund_id": _value(metadata, "localRefundId"),
            },
        )
        return WebhookOutcome(body={"received": True, "localFound": False})

    with transaction.atomic():
        local = Refund.objects.select_for_update().get(pk=local.pk)
        update_fields = ["updated_at"]
        if not local.gateway_refund_id and gateway_refund_id:
            local.gateway_refund_id = gateway_refund_id
            update_fields.append("gateway_refund_id")
        regression = next_status != Refund.Status.SUCCEEDED and local.applied_at is not None
        if next_status != Refund.Status.SUCCEEDED and not regression:
            local.status = next_status
            update_fields.append("status")
        local.save(update_fields=update_fields)

    if next_status != Refund.Status.SUCCEEDED:
        if regression:
            logger.warning(
                "refund webhook: status regression after apply ignored",
                extra={"refund_id": local.pk, "status": next_status},
            )
        return WebhookOutcome(
            body={"received": True, "status": next_status, "applied": False},
        )

    amount = _value(gateway_refund, "amount")
    applied = apply_succeeded_refund_once(local.pk, amount if isinstance(amount, int) else None)
    notify_refund_succeeded_once(local.pk, notifier=notifier)
    return WebhookOutcome(
        body={
            "received": True,
            "status": Refund.Status.SUCCEEDED,
            "applied": True,
            "newly_applied": applied,
        },
    )
