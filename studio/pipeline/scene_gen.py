"""
Step: Scene composition — IP-Adapter FaceID via Replicate.

Places the extracted identity into the scene described by the prompt. The
output image is the keyframe the animation step starts from.
"""

import logging

from ..replicate import REPLICATE_MODELS, ReplicateClient, succeeded_output

logger = logging.getLogger(__name__)

SCENE_NEGATIVE_PROMPT = "blurry, low quality, distorted, bad anatomy, disfigured"


async def compose_scene(replicate: ReplicateClient, face_image_url: str, prompt: str) -> str:
    """
    Generate the character-in-scene image.

    Args:
        replicate:      Replicate client.
        face_image_url: Identity image from the face extraction step.
        prompt:         Scene direction.

    Returns:
        URL of the composed scene image.
    """
    prediction = await replicate.create_prediction(
        REPLICATE_MODELS["ip_adapter_face_id"],
        {
            "face_image": face_image_url,
            "prompt": prompt,
            "negative_prompt": SCENE_NEGATIVE_PROMPT,
            "num_samples": 1,
            "num_inference_steps": 30,
            "guidance_scale": 4.5,
        },
    )
    result = await replicate.wait_for_prediction(prediction["id"])
    scene_url = succeeded_output(result, "IP-Adapter FaceID scene generation failed")

    logger.info(f"Scene composed: {scene_url}")
    return scene_url
