"""Image descriptions generated by the main model."""

import logging

from core.exceptions import Cancelled
from core.logging_config import timed
from core.models import Message

from .llm import LLMService
from .prompts import IMAGE_DESCRIPTION_PROMPT

logger = logging.getLogger(__name__)

NO_DESCRIPTION = "[No description]"


@timed("image description")
async def describe_image(
    llm: LLMService,
    image_url: str,
    additional_prompt: str | None = None,
    session_id: str | None = None,
) -> str:
    """
    Describe an image so text-only history can carry it.

    Args:
        llm: LLM service
        image_url: ``data:`` URL or external URL of the image
        additional_prompt: Extra guidance ("Pay attention to: ...")
        session_id: Session charged for the call

    Returns:
        The description, or ``[No description]`` if the model returned nothing
    """
    content: list[dict] = []
    if additional_prompt:
        content.append({"type": "text", "text": f"Pay attention to: {additional_prompt}"})
    content.append({"type": "image_url", "image_url": {"url": image_url}})

    response = await llm.call_by_type(
        "main",
        [Message(role="system", content=IMAGE_DESCRIPTION_PROMPT), Message(role="user", content=content)],
        temperature=0.5,
        max_output_tokens=512,
        session_id=session_id,
    )
    text = (response.content or "").strip()
    return text or NO_DESCRIPTION


async def describe_image_safely(llm: LLMService, image_url: str, session_id: str | None = None) -> str:
    """``describe_image`` that never raises except for cancellation."""
    try:
        return await describe_image(llm, image_url, session_id=session_id)
    except Cancelled:
        raise
    except Exception:
        logger.exception("Image description failed")
        return "[[Error generating image description]]"
