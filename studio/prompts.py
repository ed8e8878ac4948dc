"""
Prompt validation and batch prompt generation.

Validation runs before any provider call so a rejected prompt never costs a
network request. Generators produce the per-clip prompts for batch runs.
"""

import math
import random
import time
from typing import Optional

from pydantic import BaseModel

from .errors import ValidationError
from .models import BatchCategory

MIN_PROMPT_LENGTH = 10
MAX_PROMPT_LENGTH = 500
BANNED_WORDS = ("nsfw", "nude", "explicit", "violence", "gore")

CLIP_SECONDS = 10
MAX_BATCH_CLIPS = 30


def validate_prompt(prompt: Optional[str]) -> str:
    """
    Validate a user prompt and return it trimmed.

    Raises:
        ValidationError: empty, shorter than MIN_PROMPT_LENGTH, longer than
            MAX_PROMPT_LENGTH, or containing a banned term.
    """
    trimmed = (prompt or "").strip()

    if not trimmed:
        raise ValidationError("Prompt cannot be empty")
    if len(trimmed) < MIN_PROMPT_LENGTH:
        raise ValidationError(
            f"Prompt is too short. Please provide more detail (at least {MIN_PROMPT_LENGTH} characters)"
        )
    if len(trimmed) > MAX_PROMPT_LENGTH:
        raise ValidationError(
            f"Prompt is too long. Please keep it under {MAX_PROMPT_LENGTH} characters"
        )

    lower = trimmed.lower()
    if any(word in lower for word in BANNED_WORDS):
        raise ValidationError("Prompt contains inappropriate content")

    return trimmed


def clip_count_for_duration(target_seconds: int, clip_seconds: int = CLIP_SECONDS) -> int:
    """Number of clips needed to cover a target duration."""
    if target_seconds <= 0:
        raise ValidationError("Target duration must be positive")
    return math.ceil(target_seconds / clip_seconds)


# ── Motivational prompts ─────────────────────────────────────────────────────

MOTIVATIONAL_SCENES = [
    "person climbing mountain at sunrise",
    "athlete training intensely",
    "entrepreneur working late at night",
    "person running on beach at dawn",
    "weightlifter pushing limits",
    "business person walking confidently in city",
    "person writing goals in journal",
    "team celebrating achievement",
    "individual meditating peacefully",
    "runner crossing finish line",
    "person standing at mountain peak",
    "boxer training with determination",
    "student studying with focus",
    "person giving motivational speech",
    "athlete preparing for competition",
    "individual working on laptop with determination",
    "person doing morning workout",
    "successful business meeting",
    "person overcoming obstacle course",
    "individual practicing skill repeatedly",
    "mentor guiding student",
    "person visualizing success",
    "athlete recovering and pushing forward",
    "entrepreneur pitching idea",
    "person journaling at sunrise",
    "individual doing pushups",
    "successful presentation",
    "person running uphill",
    "team working together",
    "individual achieving goal",
]

CINEMATIC_STYLES = [
    "cinematic slow motion",
    "dramatic lighting",
    "golden hour cinematography",
    "epic wide angle shot",
    "intimate close-up",
    "dynamic tracking shot",
    "inspirational lighting",
    "powerful silhouette",
    "vibrant color grading",
    "moody atmospheric shot",
]

QUALITIES = [
    "hyperrealistic",
    "8k ultra detailed",
    "photorealistic",
    "professional cinematography",
    "high definition",
    "crystal clear",
    "stunning visuals",
    "masterpiece quality",
]


def generate_motivational_prompts(
    theme: str,
    count: int,
    rng: Optional[random.Random] = None,
) -> list[str]:
    """
    Build `count` clip prompts for a motivational theme.

    Scenes are not repeated until every scene has been used once; the
    cinematic style cycles by clip index and the quality tag is random.
    """
    rng = rng or random.Random()
    used: set[int] = set()
    prompts = []

    for i in range(count):
        available = [idx for idx in range(len(MOTIVATIONAL_SCENES)) if idx not in used]
        scene_index = rng.choice(available or range(len(MOTIVATIONAL_SCENES)))
        used.add(scene_index)

        scene = MOTIVATIONAL_SCENES[scene_index]
        style = CINEMATIC_STYLES[i % len(CINEMATIC_STYLES)]
        quality = rng.choice(QUALITIES)

        prompts.append(
            f"{quality}, {style} of {scene}. Theme: {theme}. Inspirational and powerful, "
            f"professional video production, no text overlay, realistic human movements, "
            f"natural environment"
        )

    return prompts


# ── Batch variations ─────────────────────────────────────────────────────────

MOTIVATIONAL_THEMES = [
    "Sunrise over mountains with inspirational journey",
    "Person achieving fitness goals with determination",
    "Entrepreneur working late with ambition",
    "Student studying with focus and dedication",
    "Athlete training with persistence",
    "Team collaborating with synergy",
    "Artist creating with passion",
    "Teacher inspiring with wisdom",
    "Parent nurturing with love",
    "Friend supporting with loyalty",
    "Leader guiding with vision",
    "Innovator building with creativity",
    "Volunteer helping with compassion",
    "Mentor coaching with patience",
    "Graduate celebrating achievement",
]

LANDSCAPES = [
    "majestic mountain peaks at golden hour",
    "serene ocean waves at sunset",
    "vibrant city skyline at night",
    "peaceful forest path in morning light",
    "dramatic desert landscape with storm clouds",
    "tranquil lake reflection at dawn",
    "rolling green hills under blue sky",
    "powerful waterfall in rainforest",
    "snow-covered alpine valley",
    "colorful autumn forest pathway",
]

ACTIONS = [
    "walking confidently forward",
    "reaching towards the sky",
    "running with determination",
    "standing triumphantly",
    "climbing upward",
    "jumping with joy",
    "dancing freely",
    "working intensely",
    "meditating peacefully",
    "celebrating success",
]

TIMES_OF_DAY = [
    "during golden hour",
    "at sunrise",
    "at sunset",
    "in soft morning light",
    "under dramatic clouds",
    "in cinematic lighting",
    "with warm backlight",
    "in blue hour glow",
]

AUTO_SUFFIXES = [
    "cinematic wide shot",
    "dramatic close-up",
    "slow motion movement",
    "dynamic camera angle",
    "aerial perspective",
    "golden hour lighting",
    "moody atmosphere",
    "vibrant colors",
    "soft focus background",
    "high contrast lighting",
]

_CATEGORY_KEYWORDS = [
    (BatchCategory.MOTIVATIONAL, ("motivational", "inspiration", "success", "achievement")),
    (BatchCategory.LANDSCAPE, ("landscape", "nature", "scenery", "mountain", "ocean", "forest")),
    (BatchCategory.ACTION, ("action", "person", "character", "walking", "running")),
]


class BatchVariation(BaseModel):
    id: str
    prompt: str
    variation: int


def detect_category(prompt: str) -> BatchCategory:
    lower = prompt.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(k in lower for k in keywords):
            return category
    return BatchCategory.AUTO


def generate_batch_variations(
    base_prompt: str,
    count: int,
    category: Optional[BatchCategory] = None,
) -> list[BatchVariation]:
    """Deterministic per-index variations of one base prompt."""
    category = category or detect_category(base_prompt)
    stamp = int(time.time() * 1000)
    variations = []

    for i in range(count):
        landscape = LANDSCAPES[i % len(LANDSCAPES)]
        action = ACTIONS[i % len(ACTIONS)]
        when = TIMES_OF_DAY[i % len(TIMES_OF_DAY)]

        if category == BatchCategory.MOTIVATIONAL:
            text = f"{MOTIVATIONAL_THEMES[i % len(MOTIVATIONAL_THEMES)]}, {landscape}, {action} {when}"
        elif category == BatchCategory.LANDSCAPE:
            text = f"{landscape} {when}, cinematic camera movement, sweeping aerial view"
        elif category == BatchCategory.ACTION:
            text = f"Person {action} {when}, {base_prompt}, dynamic camera angle"
        else:
            text = f"{base_prompt}, {AUTO_SUFFIXES[i % len(AUTO_SUFFIXES)]}"

        variations.append(BatchVariation(id=f"batch-{stamp}-{i}", prompt=text, variation=i + 1))

    return variations
