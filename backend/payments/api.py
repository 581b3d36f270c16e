"""Cancellation, refund, voucher and gateway webhook endpoints."""

from __future__ import annotations

import logging

from django.conf import settings
from django.db import InterfaceError, OperationalError
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, permissions, status
from rest_framework.decorators import (
    api_view,
    authentication_classes,
    permission_classes,
)
from rest_framework.response import Response

from core.permissions import IsVillaAdmin

from .cancellations import cancel_booking, preview_cancellation
from .filters import RefundRequestFilter
from .gateway import WebhookSignatureError, get_gateway
from .models import CreditVoucher, Refund, RefundRequest
from .refund_policy import policy_snapshot
from .refunds import (
    approve_refund_request,
    create_refund_request,
    refund_status_for_booking,
    reject_refund_request,
    retry_refund_submission,
)
from .serializers import (
    CancelBookingSerializer,
    CreditVoucherSerializer,
    RefundRequestCreateSerializer,
    RefundRequestSerializer,
)
from .webhooks import handle_checkout_event, handle_refund_event

logger = logging.getLogger(__name__)

SUBMISSION_FAILED_DETAIL = (
    "Booking cancelled, but the refund could not be submitted to the payment provider."
)


@api_view(["GET"])
@permission_classes([permissions.AllowAny])
def cancellation_policy(request):
    """Public refund tier table."""
    return Response(policy_snapshot())


@api_view(["GET"])
@permission_classes([permissions.IsAuthenticated])
def cancel_preview(request, booking_id: int):
    preview = preview_cancellation(booking_id, request.user)
    return Response(preview.as_dict())


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated])
def cancel(request, booking_id: int):
    """
    Cancel the caller's booking under the refund policy.

    The booking is cancelled even when the refund cannot be submitted; those
    cases answer 409 (no payment intent on record) or 502 (gateway failure)
    with the cancelled booking in the body so the client can show both facts.
    """
    serializer = CancelBookingSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    result = cancel_booking(
        booking_id,
        request.user,
        reason=serializer.validated_data.get("reason") or None,
    )
    body = result.as_dict()
    if result.missing_payment_intent:
        body["detail"] = "Booking cancelled, but no payment intent is on record to refund."
        return Response(body, status=status.HTTP_409_CONFLICT)
    if result.submission_failed:
        body["detail"] = SUBMISSION_FAILED_DETAIL
        return Response(body, status=status.HTTP_502_BAD_GATEWAY)
    return Response(body, status=status.HTTP_200_OK)


@api_view(["GET"])
@permission_classes([permissions.IsAuthenticated])
def refund_status(request, booking_id: int):
    return Response(refund_status_for_booking(booking_id=booking_id, user=request.user))


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated])
def refund_request_create(request, booking_id: int):
    serializer = RefundRequestCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    refund_request = create_refund_request(
        booking_id=booking_id,
        user=request.user,
        message=serializer.validated_data.get("message") or None,
    )
    return Response(RefundRequestSerializer(refund_request).data, status=status.HTTP_201_CREATED)


class AdminRefundRequestListView(generics.ListAPIView):
    serializer_class = RefundRequestSerializer
    permission_classes = [permissions.IsAuthenticated, IsVillaAdmin]
    filter_backends = [DjangoFilterBackend]
    filterset_class = RefundRequestFilter
    http_method_names = ["get"]

    def get_queryset(self):
        return RefundRequest.objects.select_related("user", "booking").order_by("-created_at")


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, IsVillaAdmin])
def admin_refund_request_approve(request, request_id: int):
    decision = approve_refund_request(request_id)
    body = decision.as_dict()
    if decision.submission_failed:
        body["detail"] = "Request approved, but the refund could not be submitted."
        return Response(body, status=status.HTTP_502_BAD_GATEWAY)
    return Response(body)


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, IsVillaAdmin])
def admin_refund_request_reject(request, request_id: int):
    return Response(reject_refund_request(request_id).as_dict())


@api_view(["POST"])
@permission_classes([permissions.IsAuthenticated, IsVillaAdmin])
def admin_refund_retry(request, refund_id: int):
    refund = retry_refund_submission(refund_id)
    body = {
        "refund_id": refund.pk,
        "status": refund.status,
        "gateway_refund_id": refund.gateway_refund_id,
        "failure_reason": refund.failure_reason,
    }
    if refund.status == Refund.Status.FAILED:
        return Response(body, status=status.HTTP_502_BAD_GATEWAY)
    return Response(body)


@api_view(["GET"])
@permission_classes([permissions.IsAuthenticated])
def my_vouchers(request):
    vouchers = list(CreditVoucher.objects.filter(user=request.user))
    return Response(
        {
            "vouchers": CreditVoucherSerializer(vouchers, many=True).data,
            "total_remaining_cents": sum(
                voucher.remaining_cents for voucher in vouchers if voucher.is_usable()
            ),
        }
    )


class AdminVoucherListView(generics.ListAPIView):
    serializer_class = CreditVoucherSerializer
    permission_classes = [permissions.IsAuthenticated, IsVillaAdmin]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["status", "user"]
    http_method_names = ["get"]

    def get_queryset(self):
        return CreditVoucher.objects.order_by("-created_at")


def _verify_webhook(request, secret: str):
    """Return ``(event, None)`` for a verified payload or ``(None, error_response)``."""
    if not secret:
        logger.error("stripe webhook: endpoint secret not configured")
        return None, Response(
            {"detail": "Webhook secret not configured."},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")
    if not sig_header:
        return None, Response(
            {"detail": "Missing Stripe-Signature header."},
            status=status.HTTP_400_BAD_REQUEST,
        )
    try:
        return get_gateway().construct_event(request.body, sig_header, secret), None
    except WebhookSignatureError as exc:
        logger.warning("stripe webhook: verification failed", extra={"error": str(exc)})
        return None, Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)


def _dispatch(handler, event, *, label: str) -> Response:
    try:
        outcome = handler(event)
    except (OperationalError, InterfaceError):
        logger.warning(
            "stripe webhook: transient database failure",
            extra={"endpoint": label},
            exc_info=True,
        )
        return Response(
            {"detail": "Temporary failure, please retry."},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    except Exception:
        logger.exception("stripe webhook: unhandled error", extra={"endpoint": label})
        return Response(
            {"detail": "Webhook processing failed."},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    return Response(outcome.body, status=outcome.http_status)


@api_view(["POST"])
@authentication_classes([])
@permission_classes([])
def stripe_webhook(request):
    """Checkout confirmations from Stripe."""
    event, error = _verify_webhook(request, getattr(settings, "STRIPE_WEBHOOK_SECRET", ""))
    if error is not None:
        return error
    return _dispatch(handle_checkout_event, event, label="checkout webhook")


@api_view(["POST"])
@authentication_classes([])
@permission_classes([])
def stripe_refund_webhook(request):
    """Refund lifecycle events from Stripe."""
    secret = getattr(settings, "STRIPE_REFUND_WEBHOOK_SECRET", "") or getattr(
        settings, "STRIPE_WEBHOOK_SECRET", ""
    )
    event, error = _verify_webhook(request, secret)
    if error is not None:
        return error
    return _dispatch(handle_refund_event, event, label="refund webhook")
