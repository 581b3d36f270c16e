"""Payment gateway collaborator backed by the Stripe SDK."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

import stripe
from django.conf import settings

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Base class for payment gateway failures."""


class GatewayConfigurationError(GatewayError):
    """The gateway is not configured correctly in the environment."""


class GatewayTransientError(GatewayError):
    """Temporary gateway/API issue that should be retried."""


class GatewayRequestError(GatewayError):
    """The gateway permanently rejected the request."""


class WebhookSignatureError(GatewayError):
    """Webhook payload is malformed or its signature does not verify."""


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


@dataclass(frozen=True)
class GatewayRefund:
    id: str
    status: str
    amount_cents: Optional[int] = None


class PaymentGateway(Protocol):
    def create_checkout_session(
        self,
        *,
        amount_cents: int,
        currency: str,
        product_name: str,
        description: str,
        customer_email: str,
        metadata: Mapping[str, str],
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession: ...

    def create_refund(
        self,
        *,
        payment_intent_id: str,
        amount_cents: int,
        idempotency_key: str,
        metadata: Mapping[str, str],
    ) -> GatewayRefund: ...

    def construct_event(self, payload: bytes, signature: str, secret: str) -> Mapping[str, Any]: ...


def _handle_stripe_error(exc: stripe.error.StripeError) -> None:
    """Map Stripe SDK errors onto gateway exception types."""
    if isinstance(
        exc,
        (
            stripe.error.RateLimitError,
            stripe.error.APIConnectionError,
            stripe.error.APIError,
        ),
    ):
        raise GatewayTransientError("Temporary Stripe error, please retry.") from exc
    if isinstance(exc, (stripe.error.AuthenticationError, stripe.error.PermissionError)):
        raise GatewayConfigurationError("Stripe credentials are invalid or unauthorized.") from exc
    if isinstance(exc, stripe.error.InvalidRequestError):
        raise GatewayRequestError(exc.user_message or "Invalid payment request.") from exc
    raise GatewayRequestError(exc.user_message or "Stripe payment failure.") from exc


def _object_value(obj: Any, field: str, default: Any = None) -> Any:
    """Read a field from a Stripe object or plain dict payload."""
    if isinstance(obj, dict):
        return obj.get(field, default)
    return getattr(obj, field, default)


class StripeGateway:
    """``PaymentGateway`` implementation over the Stripe SDK."""

    def _ensure_api_key(self) -> None:
        api_key = getattr(settings, "STRIPE_SECRET_KEY", "")
        if not api_key:
            raise GatewayConfigurationError("Stripe secret key not configured.")
        stripe.api_key = api_key

    def create_checkout_session(
        self,
        *,
        amount_cents: int,
        currency: str,
        product_name: str,
        description: str,
        customer_email: str,
        metadata: Mapping[str, str],
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        if amount_cents <= 0:
            raise GatewayRequestError("Checkout amount must be greater than zero.")
        self._ensure_api_key()
        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": dict(metadata),
            "line_items": [
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": currency,
                        "unit_amount": amount_cents,
                        "product_data": {
                            "name": product_name,
                            "description": description,
                        },
                    },
                }
            ],
        }
        if customer_email:
            params["customer_email"] = customer_email
        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.error.StripeError as exc:
            _handle_stripe_error(exc)

        session_id = _object_value(session, "id")
        session_url = _object_value(session, "url")
        if not session_id or not session_url:
            raise GatewayConfigurationError("Stripe did not return a checkout session URL.")
        return CheckoutSession(id=session_id, url=session_url)

    def create_refund(
        self,
        *,
        payment_intent_id: str,
        amount_cents: int,
        idempotency_key: str,
        metadata: Mapping[str, str],
    ) -> GatewayRefund:
        self._ensure_api_key()
        try:
            refund = stripe.Refund.create(
                payment_intent=payment_intent_id,
                amount=amount_cents,
                metadata=dict(metadata),
                idempotency_key=idempotency_key,
            )
        except stripe.error.StripeError as exc:
            logger.warning(
                "stripe: refund create failed",
                extra={
                    "payment_intent_id": payment_intent_id,
                    "idempotency_key": idempotency_key,
                    "error": str(exc),
                },
            )
            _handle_stripe_error(exc)

        return GatewayRefund(
            id=_object_value(refund, "id", ""),
            status=_object_value(refund, "status", "") or "",
            amount_cents=_object_value(refund, "amount"),
        )

    def construct_event(self, payload: bytes, signature: str, secret: str) -> Mapping[str, Any]:
        try:
            return stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=secret,
            )
        except ValueError as exc:
            raise WebhookSignatureError("Invalid payload.") from exc
        except stripe.error.SignatureVerificationError as exc:
            raise WebhookSignatureError("Invalid signature.") from exc


_gateway: Optional[PaymentGateway] = None


def configure_gateway() -> PaymentGateway:
    """Build the process-wide gateway; called once from ``PaymentsConfig.ready``."""
    global _gateway
    _gateway = StripeGateway()
    return _gateway


def get_gateway() -> PaymentGateway:
    if _gateway is None:
        return configure_gateway()
    return _gateway


def set_gateway(gateway: Optional[PaymentGateway]) -> None:
    """Swap the process-wide gateway (tests inject doubles through this)."""
    global _gateway
    _gateway = gateway
