"""
Speech synthesis collaborator — OpenAI TTS.

Voice style (user-facing) is mapped to a provider voice through a lookup
table; unknown styles fall back to the natural voice.
"""

import logging
from typing import Optional

import httpx

from . import config
from .backoff import request_with_backoff
from .errors import ProviderError, ValidationError

logger = logging.getLogger(__name__)

OPENAI_SPEECH_URL = "https://api.openai.com/v1/audio/speech"
TTS_MODEL = "tts-1"

VOICE_MAPPING = {
    "natural": "alloy",
    "dramatic": "nova",
    "professional": "onyx",
    "friendly": "shimmer",
}
DEFAULT_VOICE = VOICE_MAPPING["natural"]


def resolve_voice(voice_style: Optional[str]) -> str:
    return VOICE_MAPPING.get((voice_style or "").lower(), DEFAULT_VOICE)


async def synthesize_speech(
    text: str,
    voice_style: str = "natural",
    api_key: Optional[str] = None,
    max_retries: Optional[int] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bytes:
    """
    Turn text into MP3 audio bytes.

    Raises:
        ValidationError: text is empty.
        ProviderError: key missing, or the API returned a non-2xx / empty body.
    """
    if not text or not text.strip():
        raise ValidationError("Text is required")

    key = config.OPENAI_API_KEY if api_key is None else api_key
    if not key:
        raise ProviderError("OPENAI_API_KEY not configured", provider="openai")

    voice = resolve_voice(voice_style)
    logger.info(f"Synthesizing speech: style={voice_style} voice={voice} chars={len(text.strip())}")

    response = await request_with_backoff(
        "POST",
        OPENAI_SPEECH_URL,
        provider="openai",
        max_retries=max_retries,
        timeout=60,
        transport=transport,
        headers={
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        },
        json={
            "model": TTS_MODEL,
            "voice": voice,
            "input": text.strip(),
            "response_format": "mp3",
        },
    )

    if not response.content:
        raise ProviderError("Speech synthesis returned no audio", provider="openai")
    return response.content
