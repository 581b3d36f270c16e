"""Shared pytest configuration and fixtures."""

import pytest
from rest_framework.test import APIClient

from bookings.tests.conftest import (  # noqa: F401
    admin_user,
    customer_user,
    fake_gateway,
    fake_notifier,
    make_booking,
    open_period,
    other_user,
    villa,
)


@pytest.fixture
def api_client():
    """DRF API client for request/response helpers."""
    return APIClient()
