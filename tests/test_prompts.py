"""Prompt validation and batch prompt generators."""

import random

import pytest

from studio.errors import ValidationError
from studio.models import BatchCategory
from studio.prompts import (
    CINEMATIC_STYLES,
    MOTIVATIONAL_SCENES,
    clip_count_for_duration,
    detect_category,
    generate_batch_variations,
    generate_motivational_prompts,
    validate_prompt,
)


class TestValidatePrompt:
    def test_valid_prompt_is_returned_trimmed(self):
        assert validate_prompt("  A cat playing piano  ") == "A cat playing piano"

    @pytest.mark.parametrize("prompt", ["", "   ", None])
    def test_empty_prompt_rejected(self, prompt):
        with pytest.raises(ValidationError, match="cannot be empty"):
            validate_prompt(prompt)

    def test_short_prompt_rejected(self):
        with pytest.raises(ValidationError, match="too short"):
            validate_prompt("a cat")

    def test_length_is_measured_after_trimming(self):
        with pytest.raises(ValidationError, match="too short"):
            validate_prompt("   short    ")

    def test_boundaries(self):
        assert validate_prompt("x" * 10) == "x" * 10
        assert validate_prompt("x" * 500) == "x" * 500
        with pytest.raises(ValidationError, match="too long"):
            validate_prompt("x" * 501)

    @pytest.mark.parametrize("word", ["NSFW", "nude", "Explicit", "violence", "GORE"])
    def test_banned_terms_rejected_case_insensitive(self, word):
        with pytest.raises(ValidationError, match="inappropriate"):
            validate_prompt(f"a cinematic scene with {word} content")

    def test_validation_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_prompt("")


class TestClipCount:
    @pytest.mark.parametrize("seconds,expected", [(10, 1), (11, 2), (60, 6), (95, 10)])
    def test_one_clip_per_ten_seconds(self, seconds, expected):
        assert clip_count_for_duration(seconds) == expected

    def test_non_positive_duration_rejected(self):
        with pytest.raises(ValidationError):
            clip_count_for_duration(0)


class TestMotivationalPrompts:
    def test_scenes_unique_while_available(self):
        prompts = generate_motivational_prompts("never give up", 12, rng=random.Random(7))
        scenes = [p.split(" of ", 1)[1].split(". Theme:")[0] for p in prompts]
        assert len(prompts) == 12
        assert len(set(scenes)) == 12
        assert set(scenes) <= set(MOTIVATIONAL_SCENES)

    def test_style_cycles_by_index(self):
        prompts = generate_motivational_prompts("discipline", len(CINEMATIC_STYLES) + 1, rng=random.Random(1))
        assert CINEMATIC_STYLES[0] in prompts[0]
        assert CINEMATIC_STYLES[0] in prompts[len(CINEMATIC_STYLES)]

    def test_every_prompt_passes_validation(self):
        for prompt in generate_motivational_prompts("rise and grind", 8, rng=random.Random(3)):
            assert validate_prompt(prompt) == prompt


class TestBatchVariations:
    @pytest.mark.parametrize(
        "prompt,category",
        [
            ("success story montage", BatchCategory.MOTIVATIONAL),
            ("misty forest scenery", BatchCategory.LANDSCAPE),
            ("a character walking home", BatchCategory.ACTION),
            ("abstract paint swirls", BatchCategory.AUTO),
        ],
    )
    def test_detect_category(self, prompt, category):
        assert detect_category(prompt) == category

    def test_auto_variations_keep_base_prompt(self):
        variations = generate_batch_variations("abstract paint swirls", 3)
        assert [v.variation for v in variations] == [1, 2, 3]
        assert all(v.prompt.startswith("abstract paint swirls, ") for v in variations)
        assert len({v.prompt for v in variations}) == 3
