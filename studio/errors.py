"""
Error taxonomy for job orchestration.

  ValidationError     — bad user input; never retried, surfaced immediately (400)
  ProviderError       — remote API failure: non-2xx or malformed payload (502)
  TransientPollError  — a single status request failed; the poll loop continues
  PipelineStepError   — a pipeline step failed; downstream steps are skipped
  BatchSubmissionError — every submission in a batch failed
  RateLimitExceeded   — fixed-window limit hit at the API boundary (429)
"""

from typing import Optional


class StudioError(Exception):
    """Base class; `status_code` is the HTTP status the API layer responds with."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StudioError, ValueError):
    status_code = 400


class ProviderError(StudioError):
    status_code = 502

    def __init__(
        self,
        message: str,
        provider: str = "",
        upstream_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.upstream_status = upstream_status


class TransientPollError(StudioError):
    status_code = 503

    def __init__(self, job_id: str, message: str):
        super().__init__(message)
        self.job_id = job_id


class PipelineStepError(StudioError):
    status_code = 502

    def __init__(self, step_name: str, message: str):
        super().__init__(message)
        self.step_name = step_name

    def __str__(self) -> str:
        return f"{self.step_name}: {self.message}"


class BatchSubmissionError(StudioError):
    status_code = 502

    def __init__(self, failures: list):
        self.failures = failures
        summary = "; ".join(f"#{f.index + 1}: {f.error}" for f in failures[:5])
        super().__init__(f"All {len(failures)} batch submissions failed ({summary})")


class RateLimitExceeded(StudioError):
    status_code = 429

    def __init__(self, reset_time: int):
        super().__init__("Rate limit exceeded. Please try again later.")
        self.reset_time = reset_time
