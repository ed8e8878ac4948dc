"""
Pydantic models and enums for multi-step generation pipelines.

Pipeline kinds are a closed tagged union keyed on `mode`; each kind has its
own typed input.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..models import utcnow


# ── Pipeline Kinds & Inputs ──────────────────────────────────────────────────

class PipelineKind(str, Enum):
    TEXT_TO_VIDEO = "text_to_video"
    IMAGE_TO_VIDEO = "image_to_video"
    MOVIE_SCENE = "movie_scene"
    TALKING_CHARACTER = "talking_character"


class _PipelineInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str


class TextToVideoInput(_PipelineInput):
    mode: Literal["text_to_video"] = "text_to_video"


class ImageToVideoInput(_PipelineInput):
    mode: Literal["image_to_video"] = "image_to_video"
    image_url: str = Field(..., alias="imageUrl", min_length=1)


class MovieSceneInput(_PipelineInput):
    """Face extraction → scene composition → animation."""
    mode: Literal["movie_scene"] = "movie_scene"
    image_url: str = Field(..., alias="imageUrl", min_length=1)


class TalkingCharacterInput(_PipelineInput):
    """Speech synthesis → animation."""
    mode: Literal["talking_character"] = "talking_character"
    image_url: str = Field(..., alias="imageUrl", min_length=1)
    dialogue: str = Field(..., min_length=1)
    voice_style: str = Field("natural", alias="voiceStyle")


PipelineInput = Annotated[
    Union[TextToVideoInput, ImageToVideoInput, MovieSceneInput, TalkingCharacterInput],
    Field(discriminator="mode"),
]


# ── Steps ────────────────────────────────────────────────────────────────────

class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class PipelineStep(BaseModel):
    step_name: str
    provider_model: str
    depends_on: Optional[str] = None
    status: StepStatus = StepStatus.PENDING
    output: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


# ── Runs ─────────────────────────────────────────────────────────────────────

class PipelineStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PipelineRun(BaseModel):
    id: str
    kind: PipelineKind
    status: PipelineStatus = PipelineStatus.PENDING
    steps: list[PipelineStep] = Field(default_factory=list)
    current_step: str = ""
    progress_pct: int = 0
    result_url: Optional[str] = None
    audio_url: Optional[str] = None
    job_id: Optional[str] = None
    error: Optional[str] = None
    failed_step: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    def step(self, name: str) -> Optional[PipelineStep]:
        return next((s for s in self.steps if s.step_name == name), None)


class VideoCreateRequest(BaseModel):
    """Wire body for /api/video/create; `mode` selects the pipeline kind."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    prompt: str = ""
    mode: PipelineKind = PipelineKind.TEXT_TO_VIDEO
    image_url: Optional[str] = Field(None, alias="imageUrl")
    dialogue: Optional[str] = None
    voice_style: str = Field("natural", alias="voiceStyle")


class VideoCreateResponse(BaseModel):
    id: str
    status: PipelineStatus
    message: str = "Video generation started"
