import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Property",
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
                ("title", models.CharField(max_length=140)),
                (
                    "price_per_night",
                    models.PositiveIntegerField(
                        help_text="Default nightly price in whole currency units."
                    ),
                ),
                ("max_guests", models.PositiveIntegerField(default=1)),
                ("min_nights", models.PositiveIntegerField(default=1)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["title"],
                "verbose_name_plural": "properties",
            },
        ),
        migrations.CreateModel(
            name="BookingPeriod",
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
                (
                    "end_date",
                    models.DateField(help_text="Exclusive end (first night not covered)."),
                ),
                ("is_open", models.BooleanField(default=True)),
                (
                    "standard_nightly_price",
                    models.PositiveIntegerField(
                        help_text="Nightly price in whole currency units."
                    ),
                ),
                (
                    "weekly_discount_percent_bps",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Whole-stay discount in basis points once the weekly threshold is reached.",
                        null=True,
                        validators=[django.core.validators.MaxValueValidator(10000)],
                    ),
                ),
                (
                    "weekly_threshold_nights",
                    models.PositiveIntegerField(
                        default=7,
                        validators=[django.core.validators.MinValueValidator(1)],
                    ),
                ),
                (
                    "min_nights",
                    models.PositiveIntegerField(
                        default=1,
                        validators=[django.core.validators.MinValueValidator(1)],
                    ),
                ),
                (
                    "max_guests",
                    models.PositiveIntegerField(
                        validators=[django.core.validators.MinValueValidator(1)]
                    ),
                ),
                ("name", models.CharField(blank=True, max_length=120, null=True)),
                ("notes", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "property",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="periods",
                        to="properties.property",
                    ),
                ),
            ],
            options={
                "ordering": ["property_id", "start_date", "id"],
                "indexes": [
                    models.Index(
                        fields=["property", "start_date", "end_date"],
                        name="booking_period_range_idx",
                    )
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("end_date__gt", models.F("start_date"))),
                        name="booking_period_end_after_start",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("weekly_discount_percent_bps__isnull", True),
                            ("weekly_discount_percent_bps__lte", 10000),
                            _connector="OR",
                        ),
                        name="booking_period_weekly_bps_max",
                    ),
                ],
            },
        ),
    ]
