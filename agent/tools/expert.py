"""Expert advice tool: a prompt plus attached files sent to the ``expert`` model."""

import asyncio
import logging
from typing import Any

from core.accounting import estimate_tokens
from core.constants import CHARS_PER_TOKEN
from core.exceptions import SandboxDenied, ToolError
from core.models import Message

from .base import Tool, ToolContext
from .registry import register_tool

logger = logging.getLogger(__name__)

# Attached files stop being added once the prompt reaches this estimate
EXPERT_TOKEN_BUDGET = 200_000

EXPERT_PROMPT = """You are a senior software architect consulted by a coding agent that is stuck or planning a large change.
Study the attached files and the question, then give concrete, actionable advice: the likely root cause,
the design you recommend and the exact steps to take.

{file_context}

Question:
{user_prompt}"""


def _read(path: str) -> str:
    with open(path, encoding="utf-8", errors="replace") as f:
        return f.read()


async def build_file_context(paths: list[str], context: ToolContext, budget: int = EXPERT_TOKEN_BUDGET) -> str:
    blocks: list[str] = []
    used = 0
    for supplied in paths:
        try:
            path = context.resolve_path(supplied)
            content = await asyncio.to_thread(_read, path)
        except (SandboxDenied, OSError) as e:
            path, content = supplied, f"UNABLE TO READ FILE: {e}"

        tokens = estimate_tokens(content)
        remaining = budget - used
        if remaining <= 0:
            logger.info("Expert context budget reached; skipping remaining files")
            break
        if tokens > remaining:
            content = content[: int(remaining * CHARS_PER_TOKEN)]
            tokens = remaining
        blocks.append(f"--- FILE: {path}\n{content}\n--- END FILE")
        used += tokens
    return "\n".join(blocks)


@register_tool
class ExpertAdviceTool(Tool):
    name = "ExpertAdviceTool"
    description = (
        "- For complex tasks ask an expert! The expert looks at the files you provide and your prompt. "
        "Use it for architecture and planning questions, or when you are stuck on a bug: "
        "package all the relevant information and ask."
    )
    parameters = {
        "type": "object",
        "properties": {
            "files": {
                "type": "array",
                "items": {"type": "string"},
                "description": "List of file paths to attach",
            },
            "prompt": {"type": "string", "description": "Prompt query for the expert"},
        },
        "required": ["prompt"],
    }

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        return "Asking an expert"

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        prompt = args.get("prompt")
        if not prompt or not isinstance(prompt, str):
            raise ToolError('"prompt" argument is required')

        file_context = await build_file_context(list(args.get("files") or []), context)
        final_prompt = EXPERT_PROMPT.format(file_context=file_context.strip(), user_prompt=prompt.strip())
        response = await context.llm.call_by_type(
            "expert",
            [Message(role="user", content=final_prompt)],
            session_id=None if context.is_sub_session else context.session_id,
            cancel_token=context.cancel_token,
        )
        if response.finish_reason == "error":
            raise ToolError(response.content or "Expert call failed")
        return {"advice": response.content or ""}
