"""
Prompt templates and context builders.

The main system prompt carries an ``<env>`` block describing the working
directory. Topic detection and gerund generation use the aux model and never
fail the request: errors fall back to neutral values.
"""

import asyncio
import json
import logging
import platform
import sys
from datetime import date

from config.personas import Persona
from core.exceptions import Cancelled
from core.models import Message

from .llm import LLMService

logger = logging.getLogger(__name__)

MAIN_SYSTEM_PROMPT = """You are {agent_name}, an interactive coding agent that helps users with software engineering tasks.
Use the tools available to you to inspect and change the user's project.

# Working style
- Be concise. Answer in a few sentences unless the user asks for detail.
- Before editing a file, read it with View. Prefer Edit for small changes and Replace for rewrites.
- Use GlobTool and GrepTool to search; do not run find or grep through Bash.
- Use BatchTool to run several independent read-only tools at once.
- Use dispatch_agent for open-ended searches that may need several rounds of globbing and grepping.
- Track multi-step work with the task tools and keep task statuses current.
- Never run commands that do not terminate on their own, such as development servers.
- File paths are confined to the working directory.

{env_info}"""

SUB_AGENT_PROMPT = """You are a sub-agent with read-only tools: View, LS, GlobTool, GrepTool and WebFetchTool.
Answer the task you are given as directly as possible. Your final message is returned verbatim to
the agent that dispatched you, so include every file path and detail it will need.

{env_info}"""

TOPIC_DETECTION_PROMPT = """Analyze whether this message starts a new conversation topic.
Respond with JSON only, in the form {"isNewTopic": true|false, "title": "two or three word title" | null}.
Set title only when isNewTopic is true."""

WHIMSICAL_GERUND_PROMPT = """Given a word, reply with one whimsical, playful gerund (an -ing word) loosely related to it,
capitalized, with no punctuation and no other text. For example: "fix" => "Tinkering"."""

IMAGE_DESCRIPTION_PROMPT = """Describe this image in detail for someone who cannot see it. Transcribe any visible text
verbatim. If it is a screenshot of code or a user interface, describe its structure and contents precisely."""

NO_WORKING_DIRECTORY = "Not set"


async def is_git_repo(working_directory: str | None) -> bool:
    if not working_directory:
        return False
    try:
        process = await asyncio.create_subprocess_exec(
            "git",
            "rev-parse",
            "--is-inside-work-tree",
            cwd=working_directory,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        return await process.wait() == 0
    except OSError:
        return False


async def get_environment_info(working_directory: str | None) -> str:
    """The ``<env>`` block appended to system prompts."""
    git = await is_git_repo(working_directory)
    return (
        "<env>\n"
        f"Working directory: {working_directory or NO_WORKING_DIRECTORY}\n"
        f"Is directory a git repo: {'Yes' if git else 'No'}\n"
        f"Platform: {platform.system()} ({sys.platform}) {platform.release()}\n"
        f"Today's date: {date.today().isoformat()}\n"
        f"Python version: {platform.python_version()}\n"
        "</env>"
    )


async def build_system_messages(
    working_directory: str | None,
    agent_name: str,
    persona: Persona | None = None,
) -> list[Message]:
    """System message for the main loop; a persona's body replaces the default prompt."""
    env_info = await get_environment_info(working_directory)
    if persona is not None and persona.system_prompt:
        text = f"{persona.system_prompt}\n\n{env_info}"
    else:
        text = MAIN_SYSTEM_PROMPT.format(agent_name=agent_name, env_info=env_info)
    return [Message(role="system", content=text)]


async def build_sub_agent_messages(working_directory: str | None, prompt: str) -> list[Message]:
    env_info = await get_environment_info(working_directory)
    return [
        Message(role="system", content=SUB_AGENT_PROMPT.format(env_info=env_info)),
        Message(role="user", content=prompt),
    ]


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```") and text.endswith("```"):
        text = text[3:-3]
        if text.startswith("json"):
            text = text[4:]
    return text.strip()


async def detect_topic(llm: LLMService, text: str) -> dict:
    """Ask the aux model whether ``text`` starts a new topic."""
    fallback = {"isNewTopic": False, "title": None}
    try:
        response = await llm.call_by_type(
            "aux",
            [Message(role="system", content=TOPIC_DETECTION_PROMPT), Message(role="user", content=text)],
            temperature=0,
            max_output_tokens=128,
        )
        result = json.loads(_strip_code_fence(response.content or ""))
    except Cancelled:
        raise
    except Exception as e:
        logger.warning("Topic detection failed: %s", e)
        return fallback
    if not isinstance(result, dict):
        return fallback
    return {"isNewTopic": bool(result.get("isNewTopic")), "title": result.get("title")}


async def generate_gerund(llm: LLMService, word: str) -> str:
    """A whimsical status word for ``word``; ``Processing`` on failure."""
    try:
        response = await llm.call_by_type(
            "aux",
            [Message(role="system", content=WHIMSICAL_GERUND_PROMPT), Message(role="user", content=word)],
            temperature=1.0,
            max_output_tokens=32,
        )
    except Cancelled:
        raise
    except Exception as e:
        logger.warning("Gerund generation failed: %s", e)
        return "Processing"
    text = (response.content or "").strip()
    if not text or response.finish_reason == "error":
        return "Processing"
    return text.split()[0]
