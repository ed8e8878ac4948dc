"""
Step: Speech synthesis for talking characters.

Synthesizes the dialogue, stores the MP3 and returns its public URL, which
is recorded on the animation job.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from ..speech import synthesize_speech
from ..storage import upload_audio

logger = logging.getLogger(__name__)

SpeechFn = Callable[[str, str], Awaitable[bytes]]
UploadFn = Callable[[bytes], str]


async def narrate(
    dialogue: str,
    voice_style: str,
    speech: SpeechFn = synthesize_speech,
    upload: UploadFn = upload_audio,
) -> str:
    audio = await speech(dialogue, voice_style)
    # Supabase storage client is synchronous
    audio_url = await asyncio.to_thread(upload, audio)
    logger.info(f"Dialogue narrated ({len(audio)} bytes, style={voice_style})")
    return audio_url
