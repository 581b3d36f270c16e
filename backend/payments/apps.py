"""App configuration for payments, refunds and vouchers."""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"

    def ready(self) -> None:
        """Build the payment gateway collaborator once per process."""
        from .gateway import configure_gateway

        configure_gateway()
