"""
Root conftest.py for all backend tests.

This file makes fixtures available to all test files across all apps.
"""
import pytest

from notifications.notifier import RecordingNotifier, reset_notifier, set_notifier
from payments.gateway import reset_processor, set_processor
from payments.gateway.fake_adapter import FakeProcessor


# ============================================================================
# AUTO-USE FIXTURES (Run automatically for every test)
# ============================================================================

@pytest.fixture(autouse=True)
def notifier():
    """
    Record notifications in memory instead of pushing them over Channels.

    CRITICAL: reset after each test so recorded events never leak between tests.
    """
    recording = RecordingNotifier()
    set_notifier(recording)
    yield recording
    reset_notifier()


@pytest.fixture(autouse=True)
def processor():
    """Use the in-memory payment processor; no test ever reaches Stripe."""
    fake = FakeProcessor()
    set_processor(fake)
    yield fake
    reset_processor()


# ============================================================================
# API CLIENT FIXTURES
# ============================================================================

@pytest.fixture
def api_client():
    """
    Provide an unauthenticated DRF API client.

    Usage:
        def test_health(api_client):
            response = api_client.get('/api/health/')
            assert response.status_code == 200
    """
    from rest_framework.test import APIClient
    return APIClient()


# ============================================================================
# IMPORT ALL FIXTURES FROM core_backend/tests/fixtures.py
# ============================================================================

from core_backend.tests.fixtures import *  # noqa: E402,F401,F403
