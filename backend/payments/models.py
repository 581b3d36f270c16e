"""Payment ledger: payments, refunds, cancellations, vouchers and refund requests."""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone


class Payment(models.Model):
    """Money collected for a booking. One row per booking."""

    class Provider(models.TextChoices):
        GATEWAY = "gateway", "Payment gateway"
        ADMIN = "admin", "Admin (no charge)"
        NONE = "none", "None"

    class Status(models.TextChoices):
        PENDING = "pending", "pending"
        PAID = "paid", "paid"
        PARTIALLY_REFUNDED = "partially_refunded", "partially refunded"
        REFUNDED = "refunded", "refunded"

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="payment",
    )
    provider = models.CharField(max_length=16, choices=Provider.choices)
    status = models.CharField(max_length=24, choices=Status.choices, default=Status.PENDING)
    amount_cents = models.PositiveIntegerField(default=0)
    refunded_cents = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=8, default="eur")
    gateway_session_id = models.CharField(max_length=255, unique=True, null=True, blank=True)
    gateway_payment_intent_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Stripe PaymentIntent id, required to refund.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(refunded_cents__lte=models.F("amount_cents")),
                name="payment_refunded_within_amount",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment #{self.pk} booking={self.booking_id} {self.status} {self.amount_cents}"

    def refundable_cents(self) -> int:
        """Cash still available to refund."""
        return max(0, self.amount_cents - self.refunded_cents)

    def status_for_refunded(self, refunded_cents: int) -> str:
        """Payment status implied by a refunded total."""
        if refunded_cents <= 0:
            return self.status
        if refunded_cents >= self.amount_cents:
            return self.Status.REFUNDED
        return self.Status.PARTIALLY_REFUNDED


class Cancellation(models.Model):
    """The single cancellation record of a booking."""

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="cancellation",
    )
    policy_refund_cents = models.PositiveIntegerField(default=0)
    voucher_issued_cents = models.PositiveIntegerField(default=0)
    reason = models.CharField(max_length=255, null=True, blank=True)
    cancelled_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-cancelled_at"]

    def __str__(self) -> str:
        return f"Cancellation booking={self.booking_id} refund={self.policy_refund_cents}"


class RefundRequest(models.Model):
    """A customer's request for an administrator-decided refund."""

    class Status(models.TextChoices):
        PENDING = "pending", "pending"
        APPROVED = "approved", "approved"
        REJECTED = "rejected", "rejected"

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="refund_requests",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="refund_requests",
    )
    message = models.TextField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    decided_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="refund_request_status_idx"),
        ]

    def __str__(self) -> str:
        return f"RefundRequest #{self.pk} booking={self.booking_id} ({self.status})"


class Refund(models.Model):
    """
    A refund submitted (or to be submitted) to the gateway.

    ``applied_at`` marks that the refunded amount was added to the payment;
    ``customer_notified_at`` marks the success email. Each is set at most once.
    """

    class Source(models.TextChoices):
        POLICY_CANCEL = "policy_cancel", "Policy cancellation"
        ADMIN_REQUEST = "admin_request", "Admin-approved request"

    class Status(models.TextChoices):
        PENDING = "pending", "pending"
        SUCCEEDED = "succeeded", "succeeded"
        FAILED = "failed", "failed"
        CANCELED = "canceled", "canceled"

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="refunds",
    )
    payment = models.ForeignKey(
        Payment,
        on_delete=models.PROTECT,
        related_name="refunds",
    )
    source = models.CharField(max_length=16, choices=Source.choices)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    amount_cents = models.PositiveIntegerField()
    currency = models.CharField(max_length=8, default="eur")
    gateway_refund_id = models.CharField(max_length=255, unique=True, null=True, blank=True)
    gateway_payment_intent_id = models.CharField(max_length=255, null=True, blank=True)
    cancellation = models.OneToOneField(
        Cancellation,
        on_delete=models.PROTECT,
        related_name="refund",
        null=True,
        blank=True,
    )
    refund_request = models.OneToOneField(
        RefundRequest,
        on_delete=models.PROTECT,
        related_name="refund",
        null=True,
        blank=True,
    )
    failure_reason = models.TextField(null=True, blank=True)
    applied_at = models.DateTimeField(null=True, blank=True)
    customer_notified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["booking"], name="refund_booking_idx"),
            models.Index(fields=["payment"], name="refund_payment_idx"),
        ]

    def __str__(self) -> str:
        return f"Refund #{self.pk} booking={self.booking_id} {self.amount_cents} ({self.status})"

    def idempotency_key(self) -> str:
        """Deterministic gateway idempotency key; identical on every retry."""
        if self.source == self.Source.ADMIN_REQUEST:
            return f"refund:admin_request:request:{self.refund_request_id}:refund:{self.pk}"
        return f"refund:policy_cancel:booking:{self.booking_id}:refund:{self.pk}"


class CreditVoucher(models.Model):
    """Store credit issued instead of cash for late cancellations."""

    class Status(models.TextChoices):
        ACTIVE = "active", "active"
        USED = "used", "used"
        EXPIRED = "expired", "expired"
        VOID = "void", "void"
        EXHAUSTED = "exhausted", "exhausted"
        REVOKED = "revoked", "revoked"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="credit_vouchers",
    )
    original_booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        related_name="credit_vouchers",
        null=True,
        blank=True,
    )
    cancellation = models.OneToOneField(
        Cancellation,
        on_delete=models.PROTECT,
        related_name="voucher",
        null=True,
        blank=True,
    )
    currency = models.CharField(max_length=8, default="eur")
    issued_cents = models.PositiveIntegerField()
    remaining_cents = models.PositiveIntegerField()
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    expires_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["expires_at", "created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(remaining_cents__lte=models.F("issued_cents")),
                name="voucher_remaining_within_issued",
            ),
        ]

    def __str__(self) -> str:
        return f"Voucher #{self.pk} user={self.user_id} {self.remaining_cents}/{self.issued_cents}"

    def is_expired(self, now=None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or timezone.now())

    def is_usable(self, now=None) -> bool:
        return (
            self.status == self.Status.ACTIVE
            and self.remaining_cents > 0
            and not self.is_expired(now)
        )
