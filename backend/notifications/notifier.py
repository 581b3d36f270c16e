"""Template email notifications with a persisted delivery log."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template import TemplateDoesNotExist
from django.template.loader import render_to_string

from notifications.models import NotificationLog

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(
        self,
        template_key: str,
        recipient: str,
        variables: Mapping[str, Any],
        *,
        user_id: int | None = None,
        booking_id: int | None = None,
    ) -> bool: ...


def _render(template: str, context: dict) -> str:
    """Render a template relative to the notifications app."""
    return render_to_string(template, context).strip()


def _build_email_context(extra: Optional[Mapping[str, Any]]) -> dict:
    frontend_origin = (getattr(settings, "FRONTEND_ORIGIN", "") or "").rstrip("/")
    context = {
        "site_name": getattr(settings, "SITE_NAME", "Villas"),
        "site_url": frontend_origin,
    }
    if extra:
        context.update(extra)
    return context


def _log_notification(
    channel: str,
    template_key: str,
    status: str,
    *,
    user_id: int | None = None,
    booking_id: int | None = None,
    error: str | None = None,
) -> None:
    try:
        NotificationLog.objects.create(
            channel=channel,
            template_key=template_key,
            status=status,
            user_id=user_id,
            booking_id=booking_id,
            error=error or "",
        )
    except Exception:
        logger.exception(
            "notifications: failed to persist notification log",
            extra={"channel": channel, "template_key": template_key, "status": status},
        )


class EmailNotifier:
    """
    Render ``email/<key>_subject.txt`` and ``email/<key>.txt`` and send them.

    Never raises: every outcome is logged to ``NotificationLog`` and reported
    as a boolean so callers can decide whether to mark a notification done.
    """

    def notify(
        self,
        template_key: str,
        recipient: str,
        variables: Mapping[str, Any],
        *,
        user_id: int | None = None,
        booking_id: int | None = None,
    ) -> bool:
        if not recipient:
            _log_notification(
                NotificationLog.Channel.EMAIL,
                template_key,
                NotificationLog.Status.FAILED,
                user_id=user_id,
                booking_id=booking_id,
                error="missing recipient email",
            )
            logger.warning(
                "notifications: cannot send email without recipient",
                extra={"template_key": template_key, "booking_id": booking_id},
            )
            return False

        context = _build_email_context(variables)
        try:
            subject = _render(f"email/{template_key}_subject.txt", context)
            body = _render(f"email/{template_key}.txt", context)
        except TemplateDoesNotExist as exc:
            _log_notification(
                NotificationLog.Channel.EMAIL,
                template_key,
                NotificationLog.Status.FAILED,
                user_id=user_id,
                booking_id=booking_id,
                error=f"template not found: {exc}",
            )
            logger.error(
                "notifications: email template missing",
                extra={"template_key": template_key},
            )
            return False

        message = EmailMultiAlternatives(
            subject=" ".join(subject.split()),
            body=body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[recipient],
        )
        try:
            message.send(fail_silently=False)
        except Exception as exc:
            error_text = str(exc) or exc.__class__.__name__
            logger.exception(
                "notifications: email send failed",
                extra={"template_key": template_key, "booking_id": booking_id, "user_id": user_id},
            )
            _log_notification(
                NotificationLog.Channel.EMAIL,
                template_key,
                NotificationLog.Status.FAILED,
                user_id=user_id,
                booking_id=booking_id,
                error=error_text,
            )
            return False

        _log_notification(
            NotificationLog.Channel.EMAIL,
            template_key,
            NotificationLog.Status.SENT,
            user_id=user_id,
            booking_id=booking_id,
        )
        return True


_notifier: Optional[Notifier] = None


def configure_notifier() -> Notifier:
    """Build the process-wide notifier; called once from ``NotificationsConfig.ready``."""
    global _notifier
    _notifier = EmailNotifier()
    return _notifier


def get_notifier() -> Notifier:
    if _notifier is None:
        return configure_notifier()
    return _notifier


def set_notifier(notifier: Optional[Notifier]) -> None:
    global _notifier
    _notifier = notifier
