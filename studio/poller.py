"""
Status Poller — one explicit asyncio task per job until a terminal state.

State machine per job: queued → processing → {completed | failed}.

Tick discipline (no-overlap): the first status request goes out immediately,
and the next one is scheduled only after the previous request has resolved.
An in-flight flag also rejects a concurrent manual `poll_once` for the same
job, so a job never has two status requests outstanding.

On each tick:
  - terminal provider state → ledger updated, loop stops, subscribers notified
  - non-terminal           → transient fields only (status, progress)
  - status request failed  → TransientPollError recorded on the job, loop continues
  - anything else raised   → logged and recorded as a poll error, loop continues

There is no poll-count limit. `max_lifetime` is an optional watchdog that
fails the job after that many seconds. Cancel stops local tracking only;
the remote job keeps running.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

import httpx

from . import config, metrics
from .errors import ProviderError, TransientPollError
from .ledger import JobLedger
from .models import Job, JobStatus, ProviderStatus, TERMINAL_STATUSES
from .provider_factory import ProviderFactory

logger = logging.getLogger(__name__)

Subscriber = Callable[[Job], None]


class PollHandle:
    """Cancellation / wait handle for one job's poll loop."""

    def __init__(self, job_id: str, task: asyncio.Task):
        self.job_id = job_id
        self.task = task

    @property
    def done(self) -> bool:
        return self.task.done()

    def cancel(self) -> bool:
        return self.task.cancel()

    async def wait(self):
        """Wait for the loop to end (terminal state, watchdog, or cancel)."""
        try:
            await asyncio.shield(self.task)
        except asyncio.CancelledError:
            if not self.task.cancelled():
                raise


class StatusPoller:
    def __init__(
        self,
        ledger: JobLedger,
        providers: ProviderFactory,
        interval: Optional[float] = None,
        max_lifetime: Optional[float] = None,
    ):
        self.ledger = ledger
        self.providers = providers
        self.interval = config.POLL_INTERVAL_SECONDS if interval is None else interval
        self.max_lifetime = config.POLL_MAX_LIFETIME_SECONDS if max_lifetime is None else max_lifetime

        self._handles: dict[str, PollHandle] = {}
        self._in_flight: set[str] = set()
        self._subscribers: dict[Optional[str], list[Subscriber]] = {}

    # ── Subscriptions ────────────────────────────────────────────────────

    def subscribe(self, callback: Subscriber, job_id: Optional[str] = None) -> Callable[[], None]:
        """
        Call `callback(job)` when a job reaches a terminal state.

        With job_id=None the callback sees every job. Returns an unsubscribe function.
        """
        self._subscribers.setdefault(job_id, []).append(callback)

        def unsubscribe():
            callbacks = self._subscribers.get(job_id, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def _notify(self, job: Job):
        for callback in self._subscribers.get(job.id, []) + self._subscribers.get(None, []):
            try:
                callback(job)
            except Exception:
                logger.exception(f"[{job.id}] terminal-state subscriber failed")
        self._subscribers.pop(job.id, None)

    # ── Tracking ─────────────────────────────────────────────────────────

    def track(self, job: Job) -> PollHandle:
        """Start the poll loop for a job (idempotent while a loop is active)."""
        handle = self._handles.get(job.id)
        if handle and not handle.done:
            return handle

        task = asyncio.create_task(self._run(job.id), name=f"poll:{job.id}")
        handle = PollHandle(job.id, task)
        self._handles[job.id] = handle
        metrics.set_gauge("active_pollers", len(self._handles))
        logger.info(f"[{job.id}] polling every {self.interval:g}s")
        return handle

    def is_tracking(self, job_id: str) -> bool:
        handle = self._handles.get(job_id)
        return bool(handle and not handle.done)

    @property
    def tracked_ids(self) -> list[str]:
        return [job_id for job_id, h in self._handles.items() if not h.done]

    def cancel(self, job_id: str) -> bool:
        """Stop polling locally. The provider job is not cancelled."""
        handle = self._handles.pop(job_id, None)
        metrics.set_gauge("active_pollers", len(self._handles))
        if handle is None or handle.done:
            return False
        handle.cancel()
        self._subscribers.pop(job_id, None)
        logger.info(f"[{job_id}] polling cancelled by user")
        return True

    async def shutdown(self):
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            handle.cancel()
        await asyncio.gather(*(h.task for h in handles), return_exceptions=True)
        metrics.set_gauge("active_pollers", 0)

    # ── Ticks ────────────────────────────────────────────────────────────

    async def poll_once(self, job_id: str) -> Optional[Job]:
        """
        One status request for a job, applied to the ledger.

        Returns the ledger record after the tick (None for an unknown job).
        A terminal record is returned as-is without contacting the provider.

        Raises:
            TransientPollError: the status request failed; the failure is
                recorded on the job as last_poll_error.
        """
        if job_id in self._in_flight:
            logger.debug(f"[{job_id}] poll skipped: previous request still in flight")
            return self.ledger.get(job_id)

        self._in_flight.add(job_id)
        try:
            job = self.ledger.get(job_id)
            if job is None or job.is_terminal:
                return job

            started = time.monotonic()
            try:
                provider = self.providers.get_provider(job.provider)
                status = await provider.fetch_status(job_id)
            except (httpx.HTTPError, ProviderError) as e:
                message = f"Polling failed: {e}"
                metrics.inc_counter("errors.poll_transient")
                metrics.record_error("poll", type(e).__name__, str(e), job_id)
                self.ledger.record_poll_error(job_id, message)
                raise TransientPollError(job_id, message) from e
            finally:
                metrics.record_latency(f"{job.provider}.status", (time.monotonic() - started) * 1000)

            metrics.inc_counter("polls.ok")
            return self.apply(job_id, status)
        finally:
            self._in_flight.discard(job_id)

    def apply(self, job_id: str, status: ProviderStatus) -> Optional[Job]:
        """Reconcile one provider status with the ledger; notifies on the first terminal update."""
        if status.status in TERMINAL_STATUSES:
            before = self.ledger.get(job_id)
            job = self.ledger.update_status(
                job_id, status.status, result_url=status.video_url, error_message=status.error
            )
            if job and job.is_terminal and before and not before.is_terminal:
                metrics.inc_counter(f"jobs.{job.status.value}")
                self._notify(job)
            return job

        return self.ledger.mark_progress(job_id, status.status, status.progress)

    async def _run(self, job_id: str):
        started = time.monotonic()
        try:
            while True:
                try:
                    job = await self.poll_once(job_id)
                except TransientPollError as e:
                    logger.warning(f"[{job_id}] {e.message}; retrying in {self.interval:g}s")
                except Exception as e:
                    logger.error(f"[{job_id}] poll tick failed, retrying in {self.interval:g}s: {e}", exc_info=True)
                    self._record_tick_failure(job_id, e)
                else:
                    if job is None:
                        logger.warning(f"[{job_id}] job no longer in ledger, polling stopped")
                        return
                    if job.is_terminal:
                        logger.info(f"[{job_id}] finished: {job.status.value}")
                        return

                if self.max_lifetime and time.monotonic() - started >= self.max_lifetime:
                    if self._expire(job_id):
                        return

                await asyncio.sleep(self.interval)
        finally:
            handle = self._handles.get(job_id)
            if handle is not None and handle.task is asyncio.current_task():
                del self._handles[job_id]
            metrics.set_gauge("active_pollers", len(self._handles))

    def _record_tick_failure(self, job_id: str, error: Exception):
        metrics.inc_counter("errors.poll_unexpected")
        metrics.record_error("poll", type(error).__name__, str(error), job_id)
        try:
            self.ledger.record_poll_error(job_id, f"Polling failed: {error}")
        except Exception:
            logger.exception(f"[{job_id}] could not record poll error")

    def _expire(self, job_id: str) -> bool:
        """Fail the job for exceeding max_lifetime; False if the ledger write failed."""
        message = f"Timed out after {self.max_lifetime:g}s without a terminal status"
        logger.warning(f"[{job_id}] {message}")
        try:
            self.apply(job_id, ProviderStatus(status=JobStatus.FAILED, error=message))
        except Exception:
            logger.exception(f"[{job_id}] could not record timeout, retrying next tick")
            return False
        return True
