"""
Pydantic models and enums for generation jobs and batch runs.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Job Status ───────────────────────────────────────────────────────────────

class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class GenerationMode(str, Enum):
    TEXT_TO_VIDEO = "text_to_video"
    IMAGE_TO_VIDEO = "image_to_video"
    MOVIE_SCENE = "movie_scene"
    TALKING_CHARACTER = "talking_character"
    MOTIVATIONAL = "motivational"
    BATCH = "batch"


# ── Job ──────────────────────────────────────────────────────────────────────

class Job(BaseModel):
    """One provider generation request, tracked by its provider-issued id."""

    id: str
    prompt: str
    status: JobStatus = JobStatus.QUEUED
    result_url: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    mode: GenerationMode = GenerationMode.TEXT_TO_VIDEO
    provider: str = "luma"
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    duration: Optional[str] = None

    # Transient poll state, never part of a terminal decision
    progress: Optional[int] = None
    last_poll_error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class JobFilter(BaseModel):
    status: Optional[JobStatus] = None
    mode: Optional[GenerationMode] = None
    ids: Optional[list[str]] = None
    limit: int = Field(50, ge=1, le=500)


class ProviderStatus(BaseModel):
    """A provider status response normalized to the job state machine."""

    status: JobStatus
    video_url: Optional[str] = None
    error: Optional[str] = None
    progress: Optional[int] = None


# ── API Request / Response Models ────────────────────────────────────────────

class CreateVideoRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = ""
    image_url: Optional[str] = Field(None, alias="imageUrl")
    end_image_url: Optional[str] = Field(None, alias="endImageUrl")
    duration: Optional[str] = None


class CreateVideoResponse(BaseModel):
    id: str


class VideoStatusResponse(BaseModel):
    id: str
    status: JobStatus
    video_url: Optional[str] = None
    audio_url: Optional[str] = None
    error: Optional[str] = None
    progress: Optional[int] = None
    poll_error: Optional[str] = None

    @classmethod
    def from_job(cls, job: Job) -> "VideoStatusResponse":
        return cls(
            id=job.id,
            status=job.status,
            video_url=job.result_url,
            audio_url=job.audio_url,
            error=job.error_message,
            progress=job.progress,
            poll_error=job.last_poll_error,
        )


class SpeechRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = ""
    voice_style: str = Field("natural", alias="voiceStyle")


# ── Batch Runs ───────────────────────────────────────────────────────────────

class BatchCategory(str, Enum):
    MOTIVATIONAL = "motivational"
    LANDSCAPE = "landscape"
    ACTION = "action"
    AUTO = "auto"


class BatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    theme: str = Field(..., max_length=200)
    target_duration: Optional[int] = Field(None, alias="targetDuration", gt=0)
    count: Optional[int] = Field(None, gt=0)
    category: Optional[BatchCategory] = None


class BatchFailure(BaseModel):
    index: int
    prompt: str
    error: str


class BatchRun(BaseModel):
    """
    A group of independently-tracked jobs submitted toward one outcome.

    Invariant: len(jobs) <= target_count. Jobs keep submission order.
    """

    id: str
    theme: str
    target_count: int
    mode: GenerationMode = GenerationMode.MOTIVATIONAL
    jobs: list[Job] = Field(default_factory=list)
    failures: list[BatchFailure] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def completed_count(self) -> int:
        return sum(1 for j in self.jobs if j.status == JobStatus.COMPLETED)

    @property
    def failed_count(self) -> int:
        return sum(1 for j in self.jobs if j.status == JobStatus.FAILED)

    @property
    def progress(self) -> float:
        """(completed + failed) / target_count."""
        if self.target_count <= 0:
            return 0.0
        return (self.completed_count + self.failed_count) / self.target_count

    @property
    def is_settled(self) -> bool:
        """Every clip was attempted and every submitted job reached a terminal state."""
        attempted = len(self.jobs) + len(self.failures) == self.target_count
        return attempted and all(j.is_terminal for j in self.jobs)


class BatchRunResponse(BaseModel):
    id: str
    theme: str
    target_count: int
    submitted: int
    completed: int
    failed: int
    processing: int
    progress: float
    jobs: list[VideoStatusResponse]
    failures: list[BatchFailure]

    @classmethod
    def from_run(cls, run: BatchRun) -> "BatchRunResponse":
        return cls(
            id=run.id,
            theme=run.theme,
            target_count=run.target_count,
            submitted=len(run.jobs),
            completed=run.completed_count,
            failed=run.failed_count,
            processing=len(run.jobs) - run.completed_count - run.failed_count,
            progress=round(run.progress, 4),
            jobs=[VideoStatusResponse.from_job(j) for j in run.jobs],
            failures=run.failures,
        )


class CombineManifest(BaseModel):
    """Ordered clip list for stitching a batch into one video with FFmpeg."""

    batch_id: str
    clip_count: int
    video_urls: list[str]
    file_list: str
    ffmpeg_command: str
