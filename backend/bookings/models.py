"""Database models for villa bookings."""

from __future__ import annotations

from django.conf import settings
from django.db import models

from properties.models import BookingPeriod, Property


class Booking(models.Model):
    """A reservation of a villa over the half-open range ``[start_date, end_date)``."""

    class Status(models.TextChoices):
        PENDING = "pending", "pending"
        CONFIRMED = "confirmed", "confirmed"
        CANCELLED = "cancelled", "cancelled"

    property = models.ForeignKey(
        Property,
        related_name="bookings",
        on_delete=models.CASCADE,
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    booking_period = models.ForeignKey(
        BookingPeriod,
        related_name="bookings",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        help_text="Period covering the arrival night when the booking was priced.",
    )
    start_date = models.DateField()
    end_date = models.DateField(help_text="Checkout day, exclusive.")
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
    )
    total_price = models.PositiveIntegerField(help_text="Gross stay price in whole currency units.")
    price_breakdown = models.JSONField(default=dict, blank=True)
    weekly_discount_applied_bps = models.PositiveIntegerField(null=True, blank=True)
    adults = models.PositiveIntegerField(default=1)
    children = models.PositiveIntegerField(default=0)
    babies = models.PositiveIntegerField(default=0)
    guests_count = models.PositiveIntegerField(default=1)
    extra_beds_count = models.PositiveIntegerField(default=0)
    guest_name = models.CharField(max_length=200, blank=True, default="")
    guest_email = models.EmailField(blank=True, default="")
    guest_phone = models.CharField(max_length=40, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["property", "start_date", "end_date"],
                name="booking_property_range_idx",
            ),
            models.Index(fields=["status", "created_at"], name="booking_status_created_idx"),
            models.Index(fields=["user", "status"], name="booking_user_status_idx"),
        ]

    def __str__(self) -> str:
        """Return a human-readable representation."""
        return f"Booking #{self.pk} for {self.property_id} ({self.status})"

    def nights(self) -> int:
        """Return the count of booked nights."""
        if not self.start_date or not self.end_date:
            return 0
        return (self.end_date - self.start_date).days

    def total_cents(self) -> int:
        """Gross booking value in minor units."""
        return int(self.total_price) * 100

    def notification_email(self) -> str:
        """Address used for customer emails: the account email, else the guest email."""
        if self.user_id and self.user.email:
            return self.user.email
        return self.guest_email or ""

    def customer_name(self) -> str:
        if self.user_id and self.user:
            return self.user.display_name
        return self.guest_name or "Customer"
