"""API viewsets for bookings."""

from __future__ import annotations

import logging

from django.utils import timezone
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from core.exceptions import UpstreamError, UpstreamUnavailable
from core.permissions import IsVillaAdmin
from payments.gateway import GatewayError, GatewayTransientError
from payments.refund_policy import days_before_start, get_refund_tier, policy_snapshot

from .models import Booking
from .pricing import quote_stay
from .serializers import BookingCreateSerializer, BookingQuoteSerializer, BookingSerializer
from .services import confirm_booking, create_booking, get_bookable_property

logger = logging.getLogger(__name__)


def _gateway_failure(exc: GatewayError) -> UpstreamError:
    if isinstance(exc, GatewayTransientError):
        return UpstreamUnavailable("Payment provider temporarily unavailable, please retry.")
    return UpstreamError(str(exc) or "Payment provider error.")


def _refund_policy_preview(start_date) -> dict:
    days_before = days_before_start(timezone.localdate(), start_date)
    return {
        "days_before": days_before,
        "tier": get_refund_tier(days_before).as_dict(),
        **policy_snapshot(),
    }


class BookingViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Quote, create and read bookings; admins may confirm pending ones."""

    serializer_class = BookingSerializer
    permission_classes = (permissions.IsAuthenticated,)

    def get_queryset(self):
        """Restrict bookings to the authenticated customer."""
        user = self.request.user
        if not user.is_authenticated:
            return Booking.objects.none()
        return (
            Booking.objects.select_related("property", "payment")
            .filter(user=user)
            .order_by("-created_at")
        )

    def create(self, request, *args, **kwargs):
        """Price and persist a booking; customers get a checkout URL back."""
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            created = create_booking(serializer.to_booking_input(), user=request.user)
        except GatewayError as exc:
            logger.warning(
                "bookings: checkout session failed",
                extra={"user_id": request.user.pk, "error": str(exc)},
            )
            raise _gateway_failure(exc) from exc

        return Response(
            {
                "booking": BookingSerializer(created.booking).data,
                "checkout_url": created.checkout_url,
                "price": created.quote.breakdown(),
            },
            status=status.HTTP_201_CREATED,
        )

    @action(
        detail=False,
        methods=["post"],
        url_path="quote",
        permission_classes=[permissions.AllowAny],
    )
    def quote(self, request, *args, **kwargs):
        """Price a stay without persisting anything."""
        serializer = BookingQuoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        villa = get_bookable_property(data["property_id"])
        quote = quote_stay(villa, data["start_date"], data["end_date"], serializer.counted_guests)
        return Response(
            {
                "property_id": villa.pk,
                "start_date": data["start_date"].isoformat(),
                "end_date": data["end_date"].isoformat(),
                "guests": serializer.counted_guests,
                "price": quote.breakdown(),
                "refund_policy": _refund_policy_preview(data["start_date"]),
            },
            status=status.HTTP_200_OK,
        )

    @action(
        detail=True,
        methods=["post"],
        url_path="confirm",
        permission_classes=[permissions.IsAuthenticated, IsVillaAdmin],
    )
    def confirm(self, request, *args, **kwargs):
        """Confirm a pending booking (admin-only)."""
        booking = confirm_booking(int(self.kwargs["pk"]))
        return Response(BookingSerializer(booking).data, status=status.HTTP_200_OK)
