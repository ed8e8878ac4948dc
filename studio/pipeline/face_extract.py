"""
Step: Face extraction — InstantID via Replicate.

Pulls the subject's identity out of the reference photo so the scene step
can re-render the same face.
"""

import logging

from ..replicate import REPLICATE_MODELS, ReplicateClient, succeeded_output

logger = logging.getLogger(__name__)

FACE_NEGATIVE_PROMPT = "blurry, low quality, distorted face, bad anatomy"


async def extract_face(replicate: ReplicateClient, image_url: str, prompt: str) -> str:
    """
    Run InstantID on the reference image.

    Returns:
        URL of the extracted identity image.

    Raises:
        ProviderError: the prediction failed, timed out, or produced no output.
    """
    prediction = await replicate.create_prediction(
        REPLICATE_MODELS["instant_id"],
        {
            "image": image_url,
            "prompt": prompt,
            "negative_prompt": FACE_NEGATIVE_PROMPT,
        },
    )
    result = await replicate.wait_for_prediction(prediction["id"])
    face_url = succeeded_output(result, "InstantID face extraction failed")

    logger.info(f"Face identity extracted: {face_url}")
    return face_url
