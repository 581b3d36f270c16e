"""API exceptions shared by the booking and payment apps."""

from __future__ import annotations

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler


class ConflictError(APIException):
    """The request is valid but clashes with the current state of the ledger."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with the current state."
    default_code = "conflict"


class UpstreamError(APIException):
    """An external collaborator rejected or failed the call."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Upstream service failure."
    default_code = "upstream_failure"


class UpstreamUnavailable(UpstreamError):
    """Temporary upstream failure; the caller may retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Upstream service temporarily unavailable, please retry."
    default_code = "upstream_unavailable"


def api_exception_handler(exc, context):
    """DRF's default handler, with the machine-readable ``code`` added to 409 bodies."""
    response = exception_handler(exc, context)
    if response is not None and isinstance(exc, ConflictError):
        response.data["code"] = exc.get_codes()
    return response
