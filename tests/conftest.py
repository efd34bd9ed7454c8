"""
consent-sync test configuration

Shared fixtures: in-memory store, mocked device id provider and sink,
and a coordinator wired to them with instant backoff.
"""

import os
import sys
from unittest.mock import AsyncMock

# Add project root to path FIRST
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from consent_sync.coordinator import ConsentCoordinator
from consent_sync.device_id import DeviceIdProvider
from consent_sync.remote import ConsentSink, SubmitResult
from consent_sync.retry import RetryPolicy
from consent_sync.store import MemoryConsentStore

FIXED_NOW_MS = 1_600_000_000_000


@pytest.fixture
def store():
    return MemoryConsentStore()


@pytest.fixture
def id_provider():
    provider = AsyncMock(spec=DeviceIdProvider)
    provider.fetch.return_value = "test_id"
    return provider


@pytest.fixture
def sink():
    mock_sink = AsyncMock(spec=ConsentSink)
    mock_sink.submit.return_value = SubmitResult(status_code=204)
    return mock_sink


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def coordinator(store, id_provider, sink, sleep):
    return ConsentCoordinator(
        store=store,
        id_provider=id_provider,
        sink=sink,
        reconcile_policy=RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=30.0),
        clock=lambda: FIXED_NOW_MS,
        sleep=sleep,
    )
