"""Villa properties and their administrator-defined booking periods."""

from __future__ import annotations

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


class Property(models.Model):
    """A rentable villa. Defaults here apply when a period is silent."""

    title = models.CharField(max_length=140)
    price_per_night = models.PositiveIntegerField(
        help_text="Default nightly price in whole currency units.",
    )
    max_guests = models.PositiveIntegerField(default=1)
    min_nights = models.PositiveIntegerField(default=1)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["title"]
        verbose_name_plural = "properties"

    def __str__(self) -> str:
        return self.title


class BookingPeriod(models.Model):
    """
    A half-open ``[start_date, end_date)`` range carrying price and stay rules.

    Periods of one property never overlap; writes go through
    ``properties.periods.create_period`` / ``update_period`` which enforce it.
    """

    property = models.ForeignKey(
        Property,
        related_name="periods",
        on_delete=models.CASCADE,
    )
    start_date = models.DateField()
    end_date = models.DateField(help_text="Exclusive end (first night not covered).")
    is_open = models.BooleanField(default=True)
    standard_nightly_price = models.PositiveIntegerField(
        help_text="Nightly price in whole currency units.",
    )
    weekly_discount_percent_bps = models.PositiveIntegerField(
        null=True,
        blank=True,
        validators=[MaxValueValidator(10_000)],
        help_text="Whole-stay discount in basis points once the weekly threshold is reached.",
    )
    weekly_threshold_nights = models.PositiveIntegerField(
        default=7,
        validators=[MinValueValidator(1)],
    )
    min_nights = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    max_guests = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    name = models.CharField(max_length=120, null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["property_id", "start_date", "id"]
        indexes = [
            models.Index(
                fields=["property", "start_date", "end_date"],
                name="booking_period_range_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_date__gt=models.F("start_date")),
                name="booking_period_end_after_start",
            ),
            models.CheckConstraint(
                condition=models.Q(weekly_discount_percent_bps__isnull=True)
                | models.Q(weekly_discount_percent_bps__lte=10_000),
                name="booking_period_weekly_bps_max",
            ),
        ]

    def __str__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"Period {self.start_date}..{self.end_date} for {self.property_id} ({state})"

    def covers(self, night) -> bool:
        """Return True when ``night`` falls inside ``[start_date, end_date)``."""
        return self.start_date <= night < self.end_date
