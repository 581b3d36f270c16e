from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Platform account; staff users act as villa administrators."""

    phone = models.CharField(
        max_length=32,
        blank=True,
        default="",
        help_text="Optional E.164 formatted phone number.",
    )

    @property
    def is_villa_admin(self) -> bool:
        """Return True when the user may manage periods, refunds and bookings."""
        return bool(self.is_staff)

    @property
    def display_name(self) -> str:
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.username
