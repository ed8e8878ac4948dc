"""Shared fixtures: in-memory ledger, scripted providers, clean metrics."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from studio import metrics
from studio.ledger import MemoryJobLedger
from studio.models import JobStatus, ProviderStatus


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def ledger():
    return MemoryJobLedger()


@pytest.fixture
def make_provider():
    """
    Build a scripted VideoProvider.

    `create` returns `job_id` (or walks `ids`); `fetch_status` replays
    `statuses` in order, where an exception instance is raised instead of
    returned.
    """

    def _make(name="luma", job_id="abc123", ids=None, statuses=None):
        provider = MagicMock()
        provider.name = name
        if ids is not None:
            provider.create = AsyncMock(side_effect=list(ids))
        else:
            provider.create = AsyncMock(return_value=job_id)
        if statuses is not None:
            provider.fetch_status = AsyncMock(side_effect=list(statuses))
        else:
            provider.fetch_status = AsyncMock(return_value=ProviderStatus(status=JobStatus.PROCESSING))
        return provider

    return _make
