import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("properties", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("start_date", models.DateField()),
                ("end_date", models.DateField(help_text="Checkout day, exclusive.")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "pending"),
                            ("confirmed", "confirmed"),
                            ("cancelled", "cancelled"),
                        ],
                        default="pending",
                        max_length=16,
                    ),
                ),
                (
                    "total_price",
                    models.PositiveIntegerField(
                        help_text="Gross stay price in whole currency units."
                    ),
                ),
                ("price_breakdown", models.JSONField(blank=True, default=dict)),
                ("weekly_discount_applied_bps", models.PositiveIntegerField(blank=True, null=True)),
                ("adults", models.PositiveIntegerField(default=1)),
                ("children", models.PositiveIntegerField(default=0)),
                ("babies", models.PositiveIntegerField(default=0)),
                ("guests_count", models.PositiveIntegerField(default=1)),
                ("extra_beds_count", models.PositiveIntegerField(default=0)),
                ("guest_name", models.CharField(blank=True, default="", max_length=200)),
                ("guest_email", models.EmailField(blank=True, default="", max_length=254)),
                ("guest_phone", models.CharField(blank=True, default="", max_length=40)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "booking_period",
                    models.ForeignKey(
                        blank=True,
                        help_text="Period covering the arrival night when the booking was priced.",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="properties.bookingperiod",
                    ),
                ),
                (
                    "property",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bookings",
                        to="properties.property",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["property", "start_date", "end_date"],
                        name="booking_property_range_idx",
                    ),
                    models.Index(
                        fields=["status", "created_at"],
                        name="booking_status_created_idx",
                    ),
                    models.Index(fields=["user", "status"], name="booking_user_status_idx"),
                ],
            },
        ),
    ]
