"""
Batch Coordinator — N independent jobs toward one outcome (multi-clip videos).

Submissions go through a bounded-concurrency queue (default: one at a time)
with a minimum spacing between request starts, so a batch never bursts past
provider rate limits. A failed submission is recorded and the batch moves
on; the run fails only when nothing was submitted. Every submitted job is
handed to the Status Poller and tracked independently.
"""

import asyncio
import logging
import time
import uuid
from typing import Optional

from . import config, metrics
from .errors import BatchSubmissionError, ValidationError
from .ledger import JobLedger
from .models import (
    BatchCategory,
    BatchFailure,
    BatchRun,
    CombineManifest,
    GenerationMode,
    Job,
    JobStatus,
)
from .poller import StatusPoller
from .prompts import (
    MAX_BATCH_CLIPS,
    clip_count_for_duration,
    generate_batch_variations,
    generate_motivational_prompts,
)
from .submitter import JobSubmitter

logger = logging.getLogger(__name__)


class SubmissionThrottle:
    """At most `concurrency` submissions in flight, starts at least `spacing` seconds apart."""

    def __init__(self, concurrency: int = 1, spacing: float = 0.0):
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._spacing = max(0.0, spacing)
        self._lock = asyncio.Lock()
        self._last_start: Optional[float] = None

    async def __aenter__(self):
        await self._semaphore.acquire()
        try:
            async with self._lock:
                if self._last_start is not None:
                    wait = self._last_start + self._spacing - time.monotonic()
                    if wait > 0:
                        await asyncio.sleep(wait)
                self._last_start = time.monotonic()
        except BaseException:
            self._semaphore.release()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self._semaphore.release()
        return False


class BatchCoordinator:
    def __init__(
        self,
        submitter: JobSubmitter,
        poller: StatusPoller,
        ledger: JobLedger,
        concurrency: Optional[int] = None,
        spacing: Optional[float] = None,
        history_limit: Optional[int] = None,
    ):
        self.submitter = submitter
        self.poller = poller
        self.ledger = ledger
        self.concurrency = config.BATCH_CONCURRENCY if concurrency is None else concurrency
        self.spacing = config.BATCH_SUBMIT_SPACING_SECONDS if spacing is None else spacing
        self.history_limit = config.RUN_HISTORY_LIMIT if history_limit is None else history_limit
        self._runs: dict[str, BatchRun] = {}

    # ── Prompt planning ──────────────────────────────────────────────────

    @staticmethod
    def plan_prompts(
        theme: str,
        target_duration: Optional[int] = None,
        count: Optional[int] = None,
        category: Optional[BatchCategory] = None,
    ) -> list[str]:
        """Clip prompts for a theme; count wins over target_duration."""
        if not theme or not theme.strip():
            raise ValidationError("Theme is required")
        if count is None:
            if target_duration is None:
                raise ValidationError("Either count or target duration is required")
            count = clip_count_for_duration(target_duration)
        if count < 1 or count > MAX_BATCH_CLIPS:
            raise ValidationError(f"A batch must have between 1 and {MAX_BATCH_CLIPS} clips")

        theme = theme.strip()
        if category is None or category == BatchCategory.MOTIVATIONAL:
            return generate_motivational_prompts(theme, count)
        return [v.prompt for v in generate_batch_variations(theme, count, category)]

    # ── Submission ───────────────────────────────────────────────────────

    async def run(
        self,
        theme: str,
        target_duration: Optional[int] = None,
        count: Optional[int] = None,
        category: Optional[BatchCategory] = None,
        prompts: Optional[list[str]] = None,
        mode: GenerationMode = GenerationMode.MOTIVATIONAL,
    ) -> BatchRun:
        """
        Submit every clip of a batch and start polling the ones that were accepted.

        Args:
            theme:           User-facing theme; also the prompt source.
            target_duration: Seconds of video wanted (one clip per 10s).
            count:           Explicit clip count.
            category:        Prompt generator; motivational by default.
            prompts:         Pre-built prompts, bypassing generation.
            mode:            Generation mode recorded on each job.

        Returns:
            The BatchRun, with jobs in prompt order and per-clip failures.

        Raises:
            ValidationError:      bad theme / count.
            BatchSubmissionError: no submission succeeded.
        """
        if prompts is None:
            prompts = self.plan_prompts(theme, target_duration, count, category)
        elif not prompts:
            raise ValidationError("A batch needs at least one prompt")

        run = BatchRun(id=f"batch-{uuid.uuid4().hex[:12]}", theme=theme.strip(), target_count=len(prompts), mode=mode)
        self._remember(run)
        metrics.inc_counter("batches.started")
        logger.info(f"[{run.id}] submitting {len(prompts)} clips (concurrency={self.concurrency}, spacing={self.spacing:g}s)")

        throttle = SubmissionThrottle(self.concurrency, self.spacing)
        outcomes = await asyncio.gather(
            *(self._submit_one(run.id, i, prompt, mode, throttle) for i, prompt in enumerate(prompts))
        )

        for outcome in outcomes:
            if isinstance(outcome, Job):
                run.jobs.append(outcome)
            else:
                run.failures.append(outcome)

        for job in run.jobs:
            self.poller.track(job)

        logger.info(f"[{run.id}] submitted {len(run.jobs)}/{run.target_count}, {len(run.failures)} failed")
        if not run.jobs:
            metrics.inc_counter("batches.failed")
            raise BatchSubmissionError(run.failures)
        return run

    async def _submit_one(
        self,
        batch_id: str,
        index: int,
        prompt: str,
        mode: GenerationMode,
        throttle: SubmissionThrottle,
    ):
        async with throttle:
            try:
                return await self.submitter.submit(prompt, mode=mode)
            except Exception as e:
                logger.error(f"[{batch_id}] clip {index + 1} submission failed: {e}")
                metrics.inc_counter("batches.clip_failed")
                return BatchFailure(index=index, prompt=prompt, error=str(e))

    def _remember(self, run: BatchRun):
        """Store a run, evicting the oldest settled runs past history_limit."""
        self._runs[run.id] = run
        overflow = len(self._runs) - self.history_limit
        for batch_id in list(self._runs):
            if overflow <= 0:
                break
            if batch_id != run.id and self.get(batch_id).is_settled:
                del self._runs[batch_id]
                overflow -= 1
                logger.debug(f"[{batch_id}] evicted from batch history")

    # ── Progress ─────────────────────────────────────────────────────────

    def get(self, batch_id: str) -> Optional[BatchRun]:
        """The run with each job refreshed from the ledger."""
        run = self._runs.get(batch_id)
        if run is None:
            return None

        refreshed = []
        for job in run.jobs:
            current = self.ledger.get(job.id)
            refreshed.append(current or job)
        run.jobs = refreshed
        return run

    def cancel(self, batch_id: str) -> int:
        """Stop polling every job of a batch locally; returns how many loops were stopped."""
        run = self._runs.get(batch_id)
        if run is None:
            return 0
        return sum(1 for job in run.jobs if self.poller.cancel(job.id))

    def combine_manifest(self, batch_id: str) -> Optional[CombineManifest]:
        """
        Ordered clip list plus an FFmpeg concat recipe.

        Available once every job is terminal and at least one completed.
        """
        run = self.get(batch_id)
        if run is None:
            return None
        if not run.is_settled:
            raise ValidationError("Batch is still processing")

        urls = [j.result_url for j in run.jobs if j.status == JobStatus.COMPLETED and j.result_url]
        if not urls:
            raise ValidationError("No clips completed successfully")

        file_list = "\n".join(f"file 'clip-{i + 1}.mp4'" for i in range(len(urls)))
        return CombineManifest(
            batch_id=run.id,
            clip_count=len(urls),
            video_urls=urls,
            file_list=file_list,
            ffmpeg_command="ffmpeg -f concat -safe 0 -i filelist.txt -c copy combined-video.mp4",
        )
