"""
Provider HTTP requests with exponential backoff on retryable statuses.

Uses: base_delay * 2^attempt + random jitter, honouring a numeric
Retry-After header. Non-retryable non-2xx responses fail immediately.
"""

import asyncio
import logging
import random
from typing import Optional

import httpx

from . import config
from .errors import ProviderError

logger = logging.getLogger(__name__)

BASE_DELAY = 2.0       # seconds — doubles each retry: 2, 4, 8, ...
JITTER_MAX = 1.0
RETRYABLE_STATUS_CODES = {429, 502, 503, 504}


def _retry_delay(attempt: int, response: Optional[httpx.Response] = None) -> float:
    if response is not None:
        retry_after = response.headers.get("Retry-After", "")
        if retry_after.isdigit():
            return float(retry_after)
    return BASE_DELAY * (2 ** attempt) + random.uniform(0, JITTER_MAX)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        detail = body.get("error") or body.get("detail") or body
        if isinstance(detail, dict):
            detail = detail.get("message") or detail
        return str(detail)[:500]
    return str(body)[:500]


async def request_with_backoff(
    method: str,
    url: str,
    *,
    provider: str,
    max_retries: Optional[int] = None,
    timeout: float = 30,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **kwargs,
) -> httpx.Response:
    """
    Send one provider request, retrying 429 / 502 / 503 / 504.

    Raises:
        ProviderError: the final response was non-2xx.
        httpx.RequestError: the network failed on every attempt. Callers decide
            whether that is fatal (submission) or transient (polling).
    """
    retries = config.PROVIDER_MAX_RETRIES if max_retries is None else max_retries

    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        for attempt in range(retries + 1):
            try:
                response = await client.request(method, url, **kwargs)
            except httpx.RequestError as e:
                if attempt >= retries:
                    raise
                delay = _retry_delay(attempt)
                logger.warning(
                    f"{provider} request error on attempt {attempt + 1}/{retries + 1}: {e} "
                    f"— retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code in RETRYABLE_STATUS_CODES and attempt < retries:
                delay = _retry_delay(attempt, response)
                logger.warning(
                    f"{provider} {response.status_code} on attempt {attempt + 1}/{retries + 1} "
                    f"— retrying in {delay:.1f}s (url={url})"
                )
                await asyncio.sleep(delay)
                continue

            if response.is_success:
                return response

            raise ProviderError(
                f"{provider} API error ({response.status_code}): {_error_detail(response)}",
                provider=provider,
                upstream_status=response.status_code,
            )

    raise ProviderError(f"Request to {url} failed after {retries + 1} attempts", provider=provider)
