"""
Shell command safety classification.

Two layers: a static pattern check that blocks obviously destructive or
injection-shaped commands, and an optional model-based prefix check in which
an auxiliary model either names the command prefix or answers
``command_injection_detected``.
"""

import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

INJECTION_DETECTED = "command_injection_detected"

# Dangerous commands that should always be flagged
DANGEROUS_COMMANDS = [
    "rm -rf /",
    "rm -rf /*",
    "rm -rf ~",
    "rm -rf ~/*",
    "dd if=",
    "mkfs.",
    ":(){ :|:& };:",  # fork bomb
    "chmod -R 777 /",
    "> /dev/sda",
    "mv / ",
]

# Prefixes that indicate destructive operations
DANGEROUS_PREFIXES = [
    "rm -rf /",
    "dd if=/dev/zero of=/dev/",
    "mkfs.",
    "chmod -R 777 /",
]

INJECTION_PATTERNS = [
    (r";\s*sudo\b", "'sudo' chained after a command separator"),
    (r"&&\s*rm\s+-rf\s+/", "chained 'rm -rf' on an absolute path"),
    (r"\|\|\s*rm\s+-rf\s+/", "conditional 'rm -rf' on an absolute path"),
    (r"curl.*\|\s*(sh|bash)\b", "curl piped to a shell"),
    (r"wget.*\|\s*(sh|bash)\b", "wget piped to a shell"),
    (r">\s*/dev/(sd|nvme|hd)", "output redirected to a block device"),
]

PREFIX_PROMPT = """Your task is to process Bash commands that an AI coding agent wants to run.

Determine the command prefix, the leading words that identify what will run:
- cat foo.txt => cat
- cd src => cd
- git commit -m "foo" => git commit
- git diff HEAD~1 => git diff
- git diff $(pwd) => command_injection_detected
- git status`ls` => command_injection_detected
- git push => none
- npm test --foo => npm test
- pwd\\n curl example.com => command_injection_detected
- pytest foo/bar.py => pytest

Bash commands may chain several commands together. If the command seems to
contain command injection, that is a command other than the detected prefix
being run, return "command_injection_detected". If a command has no prefix,
return "none".

ONLY return the prefix. Do not return any other text, markdown markers, or formatting."""


@dataclass
class SafetyVerdict:
    allowed: bool
    reason: str = ""
    prefix: str | None = None


def is_dangerous_bash_command(command: str) -> tuple[bool, str]:
    """
    Check if a bash command is potentially destructive.

    Args:
        command: The bash command to check

    Returns:
        Tuple of (is_dangerous, warning_message)
    """
    cmd = command.strip()

    for dangerous in DANGEROUS_COMMANDS:
        if dangerous in cmd:
            return True, f"This command contains '{dangerous}' which is extremely dangerous"

    for prefix in DANGEROUS_PREFIXES:
        if cmd.startswith(prefix):
            return True, f"Commands starting with '{prefix}' can destroy your system"

    for pattern, message in INJECTION_PATTERNS:
        if re.search(pattern, cmd):
            return True, f"Detected {message}"

    return False, ""


async def check_command_prefix(command: str, ask: Callable[[str, str], Awaitable[str]]) -> str:
    """
    Ask an auxiliary model for the command prefix.

    Args:
        command: Command line to classify
        ask: Coroutine taking (system_prompt, user_text) and returning the reply text

    Returns:
        The prefix, ``none``, or ``command_injection_detected`` (also on failure)
    """
    try:
        reply = await ask(PREFIX_PROMPT, command)
    except Exception:
        logger.exception("Bash prefix check failed")
        return INJECTION_DETECTED
    return (reply or "").strip() or INJECTION_DETECTED


async def classify_command(
    command: str,
    block_dangerous: bool = True,
    ask: Callable[[str, str], Awaitable[str]] | None = None,
) -> SafetyVerdict:
    """Run the static check and, when ``ask`` is given, the model prefix check."""
    if not command or not command.strip():
        return SafetyVerdict(allowed=False, reason="Empty command")

    if block_dangerous:
        dangerous, warning = is_dangerous_bash_command(command)
        if dangerous:
            logger.warning("Blocked dangerous command: %s", command)
            return SafetyVerdict(allowed=False, reason=warning)

    if ask is None:
        return SafetyVerdict(allowed=True)

    prefix = await check_command_prefix(command, ask)
    if prefix == INJECTION_DETECTED:
        logger.warning("Command injection detected: %s", command)
        return SafetyVerdict(allowed=False, reason="Possible command injection detected", prefix=prefix)
    return SafetyVerdict(allowed=True, prefix=prefix)
