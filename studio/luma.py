"""
Luma Dream Machine client — text/image-to-video generations.

  create()       POST /generations           → provider-issued generation id
  fetch_status() GET  /generations/{id}      → normalized ProviderStatus
"""

import logging
from typing import Optional

import httpx

from . import config
from .backoff import request_with_backoff
from .errors import ProviderError, ValidationError
from .models import JobStatus, ProviderStatus

logger = logging.getLogger(__name__)

LUMA_API_BASE = "https://api.lumalabs.ai/dream-machine/v1"
LUMA_MODEL = "ray-2"


def build_generation_body(
    prompt: str,
    image_url: Optional[str] = None,
    duration: Optional[str] = None,
    end_image_url: Optional[str] = None,
) -> dict:
    """
    Request body for a generation.

    The end keyframe is only sent alongside a start keyframe.
    """
    body: dict = {"prompt": prompt, "model": LUMA_MODEL}

    if image_url and image_url.strip():
        keyframes = {"frame0": {"type": "image", "url": image_url.strip()}}
        if end_image_url and end_image_url.strip():
            keyframes["frame1"] = {"type": "image", "url": end_image_url.strip()}
        body["keyframes"] = keyframes

    if duration:
        body["duration"] = duration

    return body


def parse_generation_state(data: dict) -> ProviderStatus:
    """
    Map a Luma generation payload onto the job state machine.

    Raises:
        ProviderError: the payload is not shaped like a generation.
    """
    if not isinstance(data, dict):
        raise ProviderError("Unexpected status response shape from Luma API", provider="luma")

    state = data.get("state") or ""
    assets = data.get("assets") or {}
    legacy_video = data.get("video") or {}
    if not isinstance(state, str) or not isinstance(assets, dict) or not isinstance(legacy_video, dict):
        raise ProviderError("Unexpected status response shape from Luma API", provider="luma")
    state = state.lower()

    if state == "completed":
        video_url = assets.get("video") or legacy_video.get("url")
        if not video_url or not isinstance(video_url, str):
            raise ProviderError("Video completed but no URL available", provider="luma")
        return ProviderStatus(status=JobStatus.COMPLETED, video_url=video_url)

    if state == "failed":
        return ProviderStatus(
            status=JobStatus.FAILED,
            error=str(data.get("failure_reason") or "Video generation failed"),
        )

    if state in ("processing", "dreaming"):
        return ProviderStatus(status=JobStatus.PROCESSING)

    return ProviderStatus(status=JobStatus.QUEUED)


class LumaClient:
    """Thin async adapter over the Luma generations API."""

    name = "luma"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = LUMA_API_BASE,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = config.LUMA_API_KEY if api_key is None else api_key
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self._transport = transport

    def _headers(self) -> dict:
        if not self.api_key:
            raise ProviderError("LUMA_API_KEY is required", provider=self.name)
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def create(
        self,
        prompt: str,
        image_url: Optional[str] = None,
        duration: Optional[str] = None,
        end_image_url: Optional[str] = None,
    ) -> str:
        """Start a generation and return its id."""
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt is required")

        body = build_generation_body(prompt, image_url, duration, end_image_url)
        logger.info(
            f"Luma create: model={LUMA_MODEL}, keyframes={list(body.get('keyframes', {}))}, "
            f"duration={duration}"
        )

        response = await request_with_backoff(
            "POST",
            f"{self.base_url}/generations",
            provider=self.name,
            max_retries=self.max_retries,
            transport=self._transport,
            headers=self._headers(),
            json=body,
        )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("Invalid response from Luma API: body is not JSON", provider=self.name) from e

        generation_id = data.get("id") if isinstance(data, dict) else None
        if not generation_id:
            raise ProviderError("Invalid response from Luma API: missing id", provider=self.name)

        logger.info(f"Luma generation created: id={generation_id}")
        return generation_id

    async def fetch_status(self, generation_id: str) -> ProviderStatus:
        if not generation_id:
            raise ValidationError("Video ID is required")

        response = await request_with_backoff(
            "GET",
            f"{self.base_url}/generations/{generation_id}",
            provider=self.name,
            max_retries=self.max_retries,
            transport=self._transport,
            headers=self._headers(),
        )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("Invalid status response from Luma API", provider=self.name) from e

        return parse_generation_state(data)
