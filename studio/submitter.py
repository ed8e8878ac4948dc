"""
Job Submitter — validated prompt → one provider creation call → ledger row.
"""

import logging
import time
from typing import Optional

import httpx

from . import metrics
from .errors import ProviderError
from .ledger import JobLedger
from .models import GenerationMode, Job, JobStatus
from .prompts import validate_prompt
from .provider_factory import VideoProvider

logger = logging.getLogger(__name__)


class JobSubmitter:
    def __init__(self, provider: VideoProvider, ledger: JobLedger):
        self.provider = provider
        self.ledger = ledger

    async def submit(
        self,
        prompt: str,
        image_url: Optional[str] = None,
        end_image_url: Optional[str] = None,
        duration: Optional[str] = None,
        mode: Optional[GenerationMode] = None,
    ) -> Job:
        """
        Submit one generation.

        Args:
            prompt:        User prompt; validated locally before any network call.
            image_url:     Optional start keyframe.
            end_image_url: Optional end keyframe (only used with image_url).
            duration:      Provider duration string, e.g. "5s".
            mode:          Recorded on the job; inferred from image_url if omitted.

        Returns:
            The persisted Job with status=queued.

        Raises:
            ValidationError: the prompt was rejected.
            ProviderError:   non-2xx, malformed response, or unreachable provider.
        """
        cleaned = validate_prompt(prompt)
        if mode is None:
            mode = GenerationMode.IMAGE_TO_VIDEO if image_url else GenerationMode.TEXT_TO_VIDEO

        started = time.monotonic()
        try:
            job_id = await self.provider.create(
                cleaned,
                image_url=image_url,
                duration=duration,
                end_image_url=end_image_url,
            )
        except httpx.RequestError as e:
            metrics.inc_counter("errors.provider")
            metrics.record_error("submit", type(e).__name__, str(e))
            raise ProviderError(
                f"{self.provider.name} is unreachable: {e}", provider=self.provider.name
            ) from e
        except ProviderError as e:
            metrics.inc_counter("errors.provider")
            metrics.record_error("submit", "ProviderError", str(e))
            raise
        finally:
            metrics.record_latency(f"{self.provider.name}.create", (time.monotonic() - started) * 1000)

        job = Job(
            id=job_id,
            prompt=cleaned,
            status=JobStatus.QUEUED,
            mode=mode,
            provider=self.provider.name,
            image_url=image_url,
            duration=duration,
        )
        self.ledger.insert(job)
        metrics.inc_counter("jobs.submitted")

        logger.info(f"[{job_id}] submitted to {self.provider.name} ({mode.value})")
        return job
