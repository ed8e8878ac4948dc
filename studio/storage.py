"""
Supabase Storage helper for generated speech audio.

Audio lands under `audio/{timestamp}-{suffix}.mp3` in the audio bucket and
is referenced from the job record by its public URL.
"""

import logging
import time
import uuid
from typing import Optional

from supabase import Client

from . import config
from .supabase_client import get_supabase

logger = logging.getLogger(__name__)


def audio_key() -> str:
    return f"audio/{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}.mp3"


def upload_audio(data: bytes, client: Optional[Client] = None, bucket: Optional[str] = None) -> str:
    """Store MP3 bytes and return the public URL."""
    sb = client or get_supabase()
    bucket = bucket or config.SUPABASE_AUDIO_BUCKET
    key = audio_key()

    sb.storage.from_(bucket).upload(
        key, data,
        file_options={"content-type": "audio/mpeg", "upsert": "false"},
    )
    public_url = sb.storage.from_(bucket).get_public_url(key)

    logger.info(f"Uploaded speech audio ({len(data)} bytes): {public_url}")
    return public_url
