"""Job submission: local validation, provider call, ledger insert."""

import httpx
import pytest

from studio import metrics
from studio.errors import ProviderError, ValidationError
from studio.models import GenerationMode, JobStatus
from studio.submitter import JobSubmitter


class TestJobSubmitter:
    @pytest.mark.asyncio
    async def test_valid_prompt_returns_queued_job(self, ledger, make_provider):
        provider = make_provider(job_id="abc123")

        job = await JobSubmitter(provider, ledger).submit("A cat playing piano")

        assert job.id == "abc123"
        assert job.status == JobStatus.QUEUED
        assert job.mode == GenerationMode.TEXT_TO_VIDEO
        assert ledger.get("abc123").prompt == "A cat playing piano"
        provider.create.assert_awaited_once_with(
            "A cat playing piano", image_url=None, duration=None, end_image_url=None
        )
        assert metrics.get_counter("jobs.submitted") == 1

    @pytest.mark.asyncio
    async def test_image_url_infers_image_to_video(self, ledger, make_provider):
        job = await JobSubmitter(make_provider(), ledger).submit(
            "A cat playing piano", image_url="https://img.example.com/cat.png"
        )
        assert job.mode == GenerationMode.IMAGE_TO_VIDEO
        assert job.image_url == "https://img.example.com/cat.png"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("prompt", ["", "too short", "x" * 501, "an explicit scene of the city"])
    async def test_invalid_prompt_makes_no_network_call(self, ledger, make_provider, prompt):
        provider = make_provider()

        with pytest.raises(ValidationError):
            await JobSubmitter(provider, ledger).submit(prompt)

        provider.create.assert_not_called()
        assert ledger.query() == []

    @pytest.mark.asyncio
    async def test_provider_error_propagates_without_ledger_row(self, ledger, make_provider):
        provider = make_provider()
        provider.create.side_effect = ProviderError("luma API error (500): boom", provider="luma")

        with pytest.raises(ProviderError):
            await JobSubmitter(provider, ledger).submit("A cat playing piano")

        assert ledger.query() == []
        assert metrics.get_counter("errors.provider") == 1

    @pytest.mark.asyncio
    async def test_unreachable_provider_becomes_provider_error(self, ledger, make_provider):
        provider = make_provider()
        provider.create.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(ProviderError, match="unreachable"):
            await JobSubmitter(provider, ledger).submit("A cat playing piano")
