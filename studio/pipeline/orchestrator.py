"""
PipelineRunner — multi-step generation orchestrator.

Each pipeline kind is an ordered chain of steps; a step's output feeds the
next step:
  text_to_video:      animation
  image_to_video:     animation
  movie_scene:        face_extraction → scene_composition → animation
  talking_character:  speech_synthesis → animation

The animation step produces a ledger job that the Status Poller tracks; the
runner waits on that job's poll loop. When a step fails, every remaining
step is marked skipped and its provider is never called.
"""

import asyncio
import logging
import uuid
from typing import NamedTuple, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .. import config
from ..errors import PipelineStepError, ValidationError
from ..ledger import JobLedger
from ..models import GenerationMode, utcnow
from ..poller import StatusPoller
from ..prompts import validate_prompt
from ..replicate import REPLICATE_MODELS, ReplicateClient
from ..speech import synthesize_speech
from ..storage import upload_audio
from .animate import await_animation, submit_animation
from .face_extract import extract_face
from .models import (
    ImageToVideoInput,
    MovieSceneInput,
    PipelineInput,
    PipelineKind,
    PipelineRun,
    PipelineStatus,
    PipelineStep,
    StepStatus,
    TalkingCharacterInput,
)
from .scene_gen import compose_scene
from .voice import SpeechFn, UploadFn, narrate

logger = logging.getLogger(__name__)

_input_adapter = TypeAdapter(PipelineInput)


class StepDef(NamedTuple):
    name: str
    provider_model: str
    depends_on: Optional[str] = None


ANIMATION = StepDef("animation", REPLICATE_MODELS["pika"])

PIPELINE_STEPS: dict[PipelineKind, list[StepDef]] = {
    PipelineKind.TEXT_TO_VIDEO: [ANIMATION],
    PipelineKind.IMAGE_TO_VIDEO: [ANIMATION],
    PipelineKind.MOVIE_SCENE: [
        StepDef("face_extraction", REPLICATE_MODELS["instant_id"]),
        StepDef("scene_composition", REPLICATE_MODELS["ip_adapter_face_id"], "face_extraction"),
        ANIMATION._replace(depends_on="scene_composition"),
    ],
    PipelineKind.TALKING_CHARACTER: [
        StepDef("speech_synthesis", "openai/tts-1"),
        ANIMATION._replace(depends_on="speech_synthesis"),
    ],
}


def parse_pipeline_input(payload: dict) -> PipelineInput:
    """Validate a raw request body into the typed input for its kind."""
    try:
        return _input_adapter.validate_python(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        # drop the union tag from the location
        field = ".".join(str(p) for p in first.get("loc", ()) if p != payload.get("mode")) or "input"
        raise ValidationError(f"Invalid {payload.get('mode', 'pipeline')} input: {field} {first['msg']}") from e


class PipelineRunner:
    """
    Runs typed multi-step pipelines and keeps their state in memory.

    Usage:
        runner = PipelineRunner(replicate, ledger, poller)
        run = await runner.start(MovieSceneInput(prompt=..., image_url=...))
        runner.get_status(run.id)
    """

    def __init__(
        self,
        replicate: ReplicateClient,
        ledger: JobLedger,
        poller: StatusPoller,
        speech: SpeechFn = synthesize_speech,
        upload: UploadFn = upload_audio,
        history_limit: Optional[int] = None,
    ):
        self.replicate = replicate
        self.ledger = ledger
        self.poller = poller
        self._speech = speech
        self._upload = upload
        self.history_limit = config.RUN_HISTORY_LIMIT if history_limit is None else history_limit
        self._runs: dict[str, PipelineRun] = {}
        self._tasks: set[asyncio.Task] = set()

    def get_status(self, run_id: str) -> Optional[PipelineRun]:
        return self._runs.get(run_id)

    def create_run(self, inputs: PipelineInput) -> PipelineRun:
        """Validate the prompt and register a pending run (nothing is submitted yet)."""
        inputs.prompt = validate_prompt(inputs.prompt)
        kind = PipelineKind(inputs.mode)

        run = PipelineRun(
            id=f"pipe-{uuid.uuid4().hex[:12]}",
            kind=kind,
            steps=[
                PipelineStep(step_name=s.name, provider_model=s.provider_model, depends_on=s.depends_on)
                for s in PIPELINE_STEPS[kind]
            ],
        )
        self._remember(run)
        return run

    def _remember(self, run: PipelineRun):
        """Store a run, evicting the oldest finished runs past history_limit."""
        self._runs[run.id] = run
        overflow = len(self._runs) - self.history_limit
        for run_id, stored in list(self._runs.items()):
            if overflow <= 0:
                break
            if stored.status in (PipelineStatus.SUCCEEDED, PipelineStatus.FAILED):
                del self._runs[run_id]
                overflow -= 1
                logger.debug(f"[{run_id}] evicted from pipeline history")

    async def run(self, inputs: PipelineInput) -> PipelineRun:
        """Run a pipeline to completion and return its final state."""
        run = self.create_run(inputs)
        await self.execute(run, inputs)
        return run

    async def start(self, inputs: PipelineInput) -> PipelineRun:
        """Register a run and execute it in the background."""
        run = self.create_run(inputs)
        task = asyncio.create_task(self.execute(run, inputs), name=f"pipeline:{run.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"[{run.id}] {run.kind.value} pipeline started in background")
        return run

    async def execute(self, run: PipelineRun, inputs: PipelineInput):
        run.status = PipelineStatus.RUNNING
        upstream: Optional[str] = None

        for step in run.steps:
            if run.status == PipelineStatus.FAILED:
                step.status = StepStatus.SKIPPED
                continue

            step.status = StepStatus.RUNNING
            step.started_at = utcnow()
            run.current_step = step.step_name
            logger.info(f"[{run.id}] {step.step_name} → {step.provider_model} ({run.progress_pct}%)")

            try:
                upstream = await self._run_step(run, step, inputs, upstream)
            except PipelineStepError as e:
                step.status = StepStatus.FAILED
                step.error = e.message
                step.finished_at = utcnow()
                run.status = PipelineStatus.FAILED
                run.error = e.message
                run.failed_step = e.step_name
                continue

            step.status = StepStatus.SUCCEEDED
            step.output = upstream
            step.finished_at = utcnow()
            run.progress_pct = self._progress(run)

        run.finished_at = utcnow()
        if run.status == PipelineStatus.FAILED:
            logger.error(f"[{run.id}] pipeline failed at {run.failed_step}: {run.error}")
            return

        run.status = PipelineStatus.SUCCEEDED
        run.result_url = upstream
        run.current_step = ""
        logger.info(f"[{run.id}] pipeline complete: {run.result_url}")

    @staticmethod
    def _progress(run: PipelineRun) -> int:
        done = sum(1 for s in run.steps if s.status == StepStatus.SUCCEEDED)
        return int(100 * done / len(run.steps))

    async def _run_step(
        self,
        run: PipelineRun,
        step: PipelineStep,
        inputs: PipelineInput,
        upstream: Optional[str],
    ) -> str:
        try:
            if step.step_name == "face_extraction":
                return await extract_face(self.replicate, inputs.image_url, inputs.prompt)
            if step.step_name == "scene_composition":
                return await compose_scene(self.replicate, upstream, inputs.prompt)
            if step.step_name == "speech_synthesis":
                run.audio_url = await narrate(inputs.dialogue, inputs.voice_style, self._speech, self._upload)
                return run.audio_url
            if step.step_name == "animation":
                return await self._animate(run, inputs, upstream)
            raise ValueError(f"Unknown pipeline step: {step.step_name}")
        except Exception as e:
            logger.error(f"[{run.id}] step {step.step_name} failed: {e}", exc_info=True)
            raise PipelineStepError(step.step_name, str(e)) from e

    async def _animate(self, run: PipelineRun, inputs: PipelineInput, upstream: Optional[str]) -> str:
        # movie scenes animate the composed keyframe; other kinds use the caller's image
        if isinstance(inputs, MovieSceneInput):
            image_url = upstream
        elif isinstance(inputs, (ImageToVideoInput, TalkingCharacterInput)):
            image_url = inputs.image_url
        else:
            image_url = None

        job = await submit_animation(
            self.replicate,
            self.ledger,
            inputs.prompt,
            mode=GenerationMode(run.kind.value),
            image_url=image_url,
            audio_url=run.audio_url,
            talking=isinstance(inputs, TalkingCharacterInput),
        )
        run.job_id = job.id
        return await await_animation(self.poller, self.ledger, job)

    async def shutdown(self):
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
