"""Serializers for booking-related API endpoints."""

from __future__ import annotations

from rest_framework import serializers

from core.serializers import DateOnlyField, StrictSerializer

from .models import Booking
from .services import BookingInput


class BookingSerializer(serializers.ModelSerializer):
    """Serialize Booking instances for API usage."""

    property_id = serializers.IntegerField(read_only=True)
    property_title = serializers.ReadOnlyField(source="property.title")
    start_date = DateOnlyField(read_only=True)
    end_date = DateOnlyField(read_only=True)
    nights = serializers.SerializerMethodField()
    payment_status = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = (
            "id",
            "status",
            "property_id",
            "property_title",
            "booking_period",
            "start_date",
            "end_date",
            "nights",
            "total_price",
            "price_breakdown",
            "weekly_discount_applied_bps",
            "adults",
            "children",
            "babies",
            "guests_count",
            "extra_beds_count",
            "guest_name",
            "guest_email",
            "guest_phone",
            "payment_status",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_nights(self, obj: Booking) -> int:
        return obj.nights()

    def get_payment_status(self, obj: Booking) -> str | None:
        payment = getattr(obj, "payment", None)
        return payment.status if payment is not None else None


class BookingQuoteSerializer(StrictSerializer):
    """Stay parameters shared by the quote and create endpoints."""

    property_id = serializers.IntegerField(min_value=1)
    start_date = DateOnlyField()
    end_date = DateOnlyField()
    adults = serializers.IntegerField(min_value=1)
    children = serializers.IntegerField(min_value=0, required=False, default=0)
    babies = serializers.IntegerField(min_value=0, required=False, default=0)

    def validate(self, attrs):
        if attrs["end_date"] <= attrs["start_date"]:
            raise serializers.ValidationError({"end_date": ["End date must be after start date."]})
        return attrs

    @property
    def counted_guests(self) -> int:
        return self.validated_data["adults"] + self.validated_data["children"]


class BookingCreateSerializer(BookingQuoteSerializer):
    extra_beds_count = serializers.IntegerField(min_value=0, required=False, default=0)
    guest_name = serializers.CharField(max_length=200, required=False, allow_blank=True, default="")
    guest_email = serializers.EmailField(required=False, allow_blank=True, default="")
    guest_phone = serializers.CharField(max_length=40, required=False, allow_blank=True, default="")

    def to_booking_input(self) -> BookingInput:
        return BookingInput(**self.validated_data)
