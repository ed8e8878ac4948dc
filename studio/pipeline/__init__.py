"""Multi-step generation pipelines (movie scenes, talking characters, single-step animation)."""

from .models import PipelineInput, PipelineKind, PipelineRun, PipelineStatus, StepStatus
from .orchestrator import PipelineRunner, parse_pipeline_input

__all__ = [
    "PipelineInput",
    "PipelineKind",
    "PipelineRun",
    "PipelineRunner",
    "PipelineStatus",
    "StepStatus",
    "parse_pipeline_input",
]
