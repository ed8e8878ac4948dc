"""
Step: Animation — Pika via Replicate.

The animation prediction becomes a regular ledger job tracked by the Status
Poller; the pipeline blocks on that job's poll loop instead of running a
second one.
"""

import logging
from typing import Optional

from ..errors import ProviderError
from ..ledger import JobLedger
from ..models import GenerationMode, Job, JobStatus
from ..poller import StatusPoller
from ..replicate import ReplicateClient

logger = logging.getLogger(__name__)

TALKING_SUFFIX = ", talking, speaking, mouth moving naturally, expressive face"


async def submit_animation(
    replicate: ReplicateClient,
    ledger: JobLedger,
    prompt: str,
    mode: GenerationMode,
    image_url: Optional[str] = None,
    audio_url: Optional[str] = None,
    talking: bool = False,
) -> Job:
    """Start the Pika prediction and record it as a queued job."""
    if talking:
        prediction_id = await replicate.create(f"{prompt}{TALKING_SUFFIX}", image_url=image_url, motion=3)
    else:
        prediction_id = await replicate.create(prompt, image_url=image_url)

    job = Job(
        id=prediction_id,
        prompt=prompt,
        status=JobStatus.QUEUED,
        mode=mode,
        provider=replicate.name,
        image_url=image_url,
        audio_url=audio_url,
    )
    ledger.insert(job)
    logger.info(f"[{job.id}] animation submitted ({mode.value})")
    return job


async def await_animation(poller: StatusPoller, ledger: JobLedger, job: Job) -> str:
    """
    Block until the animation job is terminal.

    Returns:
        The video URL.

    Raises:
        ProviderError: the job failed, or polling was cancelled before it finished.
    """
    handle = poller.track(job)
    await handle.wait()

    final = ledger.get(job.id)
    if final is None or not final.is_terminal:
        raise ProviderError("Polling was cancelled before the animation finished", provider="replicate")
    if final.status == JobStatus.FAILED:
        raise ProviderError(final.error_message or "Video generation failed", provider="replicate")
    return final.result_url
