"""Bash tool: safety classification, then the sandboxed shell runner."""

import logging
from typing import Any

from core.models import Message
from core.sandbox import classify_command, run_shell

from .base import Tool, ToolContext
from .registry import register_tool

logger = logging.getLogger(__name__)

MAX_TIMEOUT_MS = 600_000


@register_tool
class BashTool(Tool):
    name = "Bash"
    description = (
        "Executes a bash command in the working directory with an optional timeout.\n\n"
        "Usage notes:\n"
        "  - The command argument is required.\n"
        "  - You can specify an optional timeout in milliseconds (up to 600000ms / 10 minutes).\n"
        "  - Write a clear, concise description of what the command does in 5-10 words.\n"
        "  - Output longer than 30000 characters is truncated.\n"
        "  - Do not use find, grep, cat, head, tail or ls; use GrepTool, GlobTool, View and LS.\n"
        "  - Separate multiple commands with ';' or '&&', not newlines.\n"
        "  - Never run commands that do not terminate on their own, such as development servers."
    )
    parameters = {
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "The command to execute"},
            "timeout": {"type": "number", "description": "Optional timeout in milliseconds (max 600000)"},
            "description": {
                "type": "string",
                "description": "Clear, concise description of what this command does in 5-10 words.",
            },
        },
        "required": ["command"],
        "additionalProperties": False,
    }

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        if args.get("description"):
            return args["description"]
        cmd = str(args.get("command", ""))
        if len(cmd) > 40:
            cmd = cmd[:37] + "..."
        return f"Running: {cmd}"

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        command = args.get("command") or ""
        sandbox = context.config.sandbox

        ask = None
        if sandbox.llm_safety_check:
            async def ask(system_prompt: str, text: str) -> str:
                response = await context.llm.call_by_type(
                    "aux",
                    [Message(role="system", content=system_prompt), Message(role="user", content=text)],
                    temperature=0,
                    max_output_tokens=64,
                    cancel_token=context.cancel_token,
                )
                return response.content or ""

        verdict = await classify_command(command, block_dangerous=sandbox.block_dangerous_commands, ask=ask)
        if not verdict.allowed:
            return {
                "error": f"Command blocked for security reasons. {verdict.reason}",
                "command": command,
                "success": False,
            }

        timeout = args.get("timeout")
        timeout_ms = min(int(timeout), MAX_TIMEOUT_MS) if timeout else sandbox.bash_timeout_ms
        result = await run_shell(
            command,
            timeout_ms=timeout_ms,
            working_directory=context.working_directory,
            cancel_token=context.cancel_token,
            interrupted=context.interrupted,
            grace_kill_ms=sandbox.grace_kill_ms,
            poll_interval=sandbox.poll_interval_ms / 1000,
            max_output_chars=sandbox.max_output_chars,
        )
        return result.to_dict()
