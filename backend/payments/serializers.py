"""Serializers for cancellation, refund and voucher endpoints."""

from __future__ import annotations

from rest_framework import serializers

from core.serializers import StrictSerializer

from .models import CreditVoucher, RefundRequest


class CancelBookingSerializer(StrictSerializer):
    reason = serializers.CharField(max_length=255, required=False, allow_null=True, allow_blank=True)


class RefundRequestCreateSerializer(StrictSerializer):
    message = serializers.CharField(max_length=2000, required=False, allow_null=True, allow_blank=True)


class RefundRequestSerializer(serializers.ModelSerializer):
    booking_id = serializers.IntegerField(read_only=True)
    user_id = serializers.IntegerField(read_only=True)
    user_email = serializers.ReadOnlyField(source="user.email")
    refund_id = serializers.SerializerMethodField()

    class Meta:
        model = RefundRequest
        fields = (
            "id",
            "booking_id",
            "user_id",
            "user_email",
            "message",
            "status",
            "decided_at",
            "created_at",
            "refund_id",
        )
        read_only_fields = fields

    def get_refund_id(self, obj: RefundRequest) -> int | None:
        refund = getattr(obj, "refund", None)
        return refund.pk if refund is not None else None


class CreditVoucherSerializer(serializers.ModelSerializer):
    """Voucher balance with derived expiry flags."""

    user_id = serializers.IntegerField(read_only=True)
    original_booking_id = serializers.IntegerField(read_only=True)
    is_expired = serializers.SerializerMethodField()
    is_usable = serializers.SerializerMethodField()

    class Meta:
        model = CreditVoucher
        fields = (
            "id",
            "user_id",
            "original_booking_id",
            "currency",
            "issued_cents",
            "remaining_cents",
            "status",
            "expires_at",
            "created_at",
            "is_expired",
            "is_usable",
        )
        read_only_fields = fields

    def get_is_expired(self, obj: CreditVoucher) -> bool:
        return obj.is_expired()

    def get_is_usable(self, obj: CreditVoucher) -> bool:
        return obj.is_usable()
