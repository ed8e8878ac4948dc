"""Batch coordinator: throttled submission, partial failure, aggregate progress."""

import asyncio
import time

import pytest

from studio.batch import BatchCoordinator, SubmissionThrottle
from studio.errors import BatchSubmissionError, ProviderError, ValidationError
from studio.models import BatchCategory, JobStatus
from studio.poller import StatusPoller
from studio.provider_factory import ProviderFactory
from studio.submitter import JobSubmitter

PROMPTS = [f"Clip {i}: sunrise over the mountains, cinematic" for i in range(1, 6)]


@pytest.fixture
def build(ledger):
    """Coordinator wired to a scripted provider; long poll interval keeps loops idle."""
    def _build(provider):
        poller = StatusPoller(ledger, ProviderFactory({provider.name: provider}), interval=60)
        coordinator = BatchCoordinator(JobSubmitter(provider, ledger), poller, ledger, concurrency=1, spacing=0)
        return coordinator, poller

    return _build


class TestSubmission:
    @pytest.mark.asyncio
    async def test_failed_submissions_recorded_and_rest_tracked(self, ledger, make_provider, build):
        provider = make_provider(ids=[
            "clip-1",
            ProviderError("luma API error (500): boom", provider="luma"),
            "clip-3",
            ProviderError("luma API error (400): rejected", provider="luma"),
            "clip-5",
        ])
        coordinator, poller = build(provider)

        run = await coordinator.run("mountains", prompts=PROMPTS)

        assert [j.id for j in run.jobs] == ["clip-1", "clip-3", "clip-5"]
        assert [f.index for f in run.failures] == [1, 3]
        assert "boom" in run.failures[0].error
        assert sorted(poller.tracked_ids) == ["clip-1", "clip-3", "clip-5"]
        assert provider.create.await_count == 5
        assert len(run.jobs) <= run.target_count
        await poller.shutdown()

    @pytest.mark.asyncio
    async def test_all_failures_raise_aggregate_error(self, ledger, make_provider, build):
        provider = make_provider()
        provider.create.side_effect = ProviderError("luma API error (503): overloaded", provider="luma")
        coordinator, poller = build(provider)

        with pytest.raises(BatchSubmissionError) as exc_info:
            await coordinator.run("mountains", prompts=PROMPTS[:3])

        assert len(exc_info.value.failures) == 3
        assert "All 3 batch submissions failed" in str(exc_info.value)
        assert poller.tracked_ids == []
        assert ledger.query() == []

    @pytest.mark.asyncio
    async def test_submissions_are_sequential_by_default(self, ledger, make_provider, build):
        in_flight = 0
        peak = 0
        counter = iter(range(100))

        async def create(prompt, **kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return f"clip-{next(counter)}"

        provider = make_provider()
        provider.create.side_effect = create
        coordinator, poller = build(provider)

        await coordinator.run("mountains", prompts=PROMPTS)

        assert peak == 1
        await poller.shutdown()


class TestThrottle:
    @pytest.mark.asyncio
    async def test_minimum_spacing_between_starts(self):
        throttle = SubmissionThrottle(concurrency=3, spacing=0.05)
        starts = []

        async def enter():
            async with throttle:
                starts.append(time.monotonic())

        await asyncio.gather(enter(), enter(), enter())

        gaps = [b - a for a, b in zip(starts, starts[1:])]
        assert all(gap >= 0.045 for gap in gaps)


class TestPlanning:
    def test_duration_becomes_clip_count(self):
        assert len(BatchCoordinator.plan_prompts("never give up", target_duration=30)) == 3

    def test_count_wins_over_duration(self):
        assert len(BatchCoordinator.plan_prompts("never give up", target_duration=30, count=2)) == 2

    def test_category_variations(self):
        prompts = BatchCoordinator.plan_prompts("ocean cliffs", count=2, category=BatchCategory.LANDSCAPE)
        assert all("sweeping aerial view" in p for p in prompts)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"theme": "  "},
            {"theme": "focus"},
            {"theme": "focus", "count": 31},
        ],
    )
    def test_invalid_requests(self, kwargs):
        with pytest.raises(ValidationError):
            BatchCoordinator.plan_prompts(**kwargs)


class TestProgress:
    @pytest.mark.asyncio
    async def test_progress_and_combine_manifest(self, ledger, make_provider, build):
        provider = make_provider(ids=["clip-1", "clip-2"])
        coordinator, poller = build(provider)
        run = await coordinator.run("mountains", prompts=PROMPTS[:2])
        await poller.shutdown()

        with pytest.raises(ValidationError, match="still processing"):
            coordinator.combine_manifest(run.id)

        ledger.update_status("clip-2", JobStatus.COMPLETED, result_url="https://cdn/clip-2.mp4")
        assert coordinator.get(run.id).progress == 0.5

        ledger.update_status("clip-1", JobStatus.FAILED, error_message="Video generation failed")
        refreshed = coordinator.get(run.id)
        assert refreshed.progress == 1.0
        assert refreshed.completed_count == 1
        assert refreshed.failed_count == 1

        manifest = coordinator.combine_manifest(run.id)
        assert manifest.video_urls == ["https://cdn/clip-2.mp4"]
        assert manifest.file_list == "file 'clip-1.mp4'"
        assert "concat" in manifest.ffmpeg_command

    @pytest.mark.asyncio
    async def test_combine_requires_a_completed_clip(self, ledger, make_provider, build):
        coordinator, poller = build(make_provider(ids=["clip-1"]))
        run = await coordinator.run("mountains", prompts=PROMPTS[:1])
        await poller.shutdown()
        ledger.update_status("clip-1", JobStatus.FAILED, error_message="Video generation failed")

        with pytest.raises(ValidationError, match="No clips completed"):
            coordinator.combine_manifest(run.id)

    @pytest.mark.asyncio
    async def test_cancel_stops_every_loop(self, ledger, make_provider, build):
        coordinator, poller = build(make_provider(ids=["clip-1", "clip-2"]))
        run = await coordinator.run("mountains", prompts=PROMPTS[:2])

        assert coordinator.cancel(run.id) == 2
        assert poller.tracked_ids == []
        await asyncio.sleep(0)


class TestHistory:
    @pytest.mark.asyncio
    async def test_settled_batches_evicted_past_history_limit(self, ledger, make_provider, build):
        coordinator, poller = build(make_provider(ids=["clip-1", "clip-2", "clip-3", "clip-4"]))
        coordinator.history_limit = 2

        settled = await coordinator.run("mountains", prompts=PROMPTS[:1])
        ledger.update_status("clip-1", JobStatus.COMPLETED, result_url="https://cdn/clip-1.mp4")
        active = await coordinator.run("mountains", prompts=PROMPTS[:1])
        newest = await coordinator.run("mountains", prompts=PROMPTS[:1])

        assert coordinator.get(settled.id) is None
        assert coordinator.get(active.id) is not None
        assert coordinator.get(newest.id) is not None

        later = await coordinator.run("mountains", prompts=PROMPTS[:1])

        assert coordinator.get(active.id) is not None
        assert coordinator.get(later.id) is not None
        await poller.shutdown()
