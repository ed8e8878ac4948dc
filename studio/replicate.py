"""
Replicate predictions client — image pipelines and Pika animation.

Used two ways:
  - as a VideoProvider (create / fetch_status) so Pika animations are
    tracked by the Status Poller like any other job;
  - as a blocking step runner (wait_for_prediction) for intermediate
    pipeline steps such as face extraction and scene composition.
"""

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from . import config
from .backoff import request_with_backoff
from .errors import ProviderError
from .models import JobStatus, ProviderStatus

logger = logging.getLogger(__name__)

REPLICATE_API_BASE = "https://api.replicate.com/v1"

REPLICATE_MODELS = {
    "instant_id": "tencentarc/instantid",
    "ip_adapter_face_id": "tencentarc/ip-adapter-faceid",
    "pika": "pika/pika-1.5",
    "runway": "runwayml/runway-gen2",
}

PREDICTION_TERMINAL_STATES = ("succeeded", "failed", "canceled")

PIKA_DEFAULTS = {
    "motion": 4,
    "guidance_scale": 12,
    "num_inference_steps": 25,
    "frames_per_second": 24,
}


def prediction_output_url(prediction: dict) -> Optional[str]:
    """First artifact URL of a prediction; output may be a list or a string."""
    output = prediction.get("output")
    if isinstance(output, list):
        output = output[0] if output else None
    if not output:
        return None
    if not isinstance(output, str):
        raise ProviderError("Unexpected prediction output shape from Replicate API", provider="replicate")
    return output


def succeeded_output(prediction: dict, failure_message: str) -> str:
    """Output URL of a finished prediction, or ProviderError if it did not succeed."""
    if prediction.get("status") != "succeeded":
        detail = prediction.get("error") or prediction.get("status") or "unknown error"
        raise ProviderError(f"{failure_message}: {detail}", provider="replicate")
    url = prediction_output_url(prediction)
    if not url:
        raise ProviderError(f"{failure_message}: no output", provider="replicate")
    return url


def parse_prediction_state(prediction: dict) -> ProviderStatus:
    status = prediction.get("status") or ""
    if not isinstance(status, str):
        raise ProviderError("Unexpected prediction status from Replicate API", provider="replicate")

    if status == "succeeded":
        url = prediction_output_url(prediction)
        if not url:
            raise ProviderError("Prediction succeeded but produced no output", provider="replicate")
        return ProviderStatus(status=JobStatus.COMPLETED, video_url=url)

    if status == "failed":
        return ProviderStatus(
            status=JobStatus.FAILED,
            error=str(prediction.get("error") or "Video generation failed"),
        )

    if status == "canceled":
        return ProviderStatus(status=JobStatus.FAILED, error="Video generation was canceled")

    if status == "processing":
        return ProviderStatus(status=JobStatus.PROCESSING)

    return ProviderStatus(status=JobStatus.QUEUED)


class ReplicateClient:
    name = "replicate"

    def __init__(
        self,
        api_token: Optional[str] = None,
        base_url: str = REPLICATE_API_BASE,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_token = config.REPLICATE_API_TOKEN if api_token is None else api_token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self._transport = transport

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        if not self.api_token:
            raise ProviderError("REPLICATE_API_TOKEN is not configured", provider=self.name)

        response = await request_with_backoff(
            method,
            f"{self.base_url}{path}",
            provider=self.name,
            max_retries=self.max_retries,
            transport=self._transport,
            headers={
                "Authorization": f"Token {self.api_token}",
                "Content-Type": "application/json",
            },
            **kwargs,
        )
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"Invalid response from Replicate API ({path})", provider=self.name) from e
        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected response shape from Replicate API ({path})", provider=self.name)
        return data

    # ── Predictions ──────────────────────────────────────────────────────

    async def create_prediction(self, model: str, input: dict[str, Any]) -> dict:
        """Start a prediction on an official model, e.g. 'pika/pika-1.5'."""
        prediction = await self._request("POST", f"/models/{model}/predictions", json={"input": input})
        if not prediction.get("id"):
            raise ProviderError("Invalid response from Replicate API: missing id", provider=self.name)
        logger.info(f"Replicate prediction created: model={model} id={prediction['id']}")
        return prediction

    async def get_prediction(self, prediction_id: str) -> dict:
        return await self._request("GET", f"/predictions/{prediction_id}")

    async def wait_for_prediction(
        self,
        prediction_id: str,
        interval: Optional[float] = None,
        max_wait: Optional[float] = None,
    ) -> dict:
        """
        Block until a prediction reaches succeeded / failed / canceled.

        A failed status request is logged and retried on the next tick.

        Raises:
            ProviderError: the prediction did not finish within max_wait.
        """
        interval = config.STEP_POLL_INTERVAL_SECONDS if interval is None else interval
        max_wait = config.STEP_MAX_WAIT_SECONDS if max_wait is None else max_wait
        deadline = time.monotonic() + max_wait

        while True:
            try:
                prediction = await self.get_prediction(prediction_id)
            except (httpx.HTTPError, ProviderError) as e:
                logger.warning(f"[{prediction_id}] prediction poll failed, retrying: {e}")
            else:
                if prediction.get("status") in PREDICTION_TERMINAL_STATES:
                    return prediction

            if time.monotonic() >= deadline:
                raise ProviderError(
                    f"Prediction {prediction_id} timed out after {max_wait:.0f}s",
                    provider=self.name,
                )
            await asyncio.sleep(interval)

    # ── VideoProvider interface ──────────────────────────────────────────

    async def create(
        self,
        prompt: str,
        image_url: Optional[str] = None,
        duration: Optional[str] = None,
        end_image_url: Optional[str] = None,
        **overrides: Any,
    ) -> str:
        """Submit a Pika animation (text-to-video, or image-to-video with image_url)."""
        pika_input: dict[str, Any] = {"prompt": prompt, **PIKA_DEFAULTS, **overrides}
        if image_url:
            pika_input["image"] = image_url

        prediction = await self.create_prediction(REPLICATE_MODELS["pika"], pika_input)
        return prediction["id"]

    async def fetch_status(self, prediction_id: str) -> ProviderStatus:
        prediction = await self.get_prediction(prediction_id)
        return parse_prediction_state(prediction)
