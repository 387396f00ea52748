"""
Search tools: GlobTool and GrepTool.

Both search below a confined base path and sort their results newest first.
"""

import asyncio
import glob
import logging
import os
import re
from typing import Any

from core.constants import GREP_MAX_FILES, GREP_MAX_LINE_LENGTH, GREP_MAX_LINES_PER_FILE
from core.exceptions import SandboxDenied, ToolError
from core.sandbox.paths import is_path_within

from .base import Tool, ToolContext
from .registry import register_tool

logger = logging.getLogger(__name__)


def _mtime(path: str) -> float:
    try:
        return os.stat(path).st_mtime
    except OSError:
        return 0.0


BRACE_RE = re.compile(r"\{([^{}]*)\}")


def expand_braces(pattern: str) -> list[str]:
    """``*.{ts,tsx}`` → ``[*.ts, *.tsx]``; the glob module has no brace syntax."""
    match = BRACE_RE.search(pattern)
    if not match:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(f"{head}{option}{tail}"))
    return expanded


def check_pattern(pattern: str, base_path: str) -> None:
    """Patterns must stay relative to the base and never climb out of it."""
    if os.path.isabs(os.path.expanduser(pattern)) or ".." in re.split(r"[\\/]", pattern):
        logger.warning("Access denied: glob pattern %r escapes %s", pattern, base_path)
        raise SandboxDenied(pattern, base_path)


def find_files(pattern: str, base_path: str) -> list[str]:
    """Absolute paths of files matching ``pattern`` under ``base_path``, newest first."""
    matches: set[str] = set()
    for expanded in expand_braces(pattern):
        check_pattern(expanded, base_path)
        matches.update(glob.glob(expanded, root_dir=base_path, recursive=True, include_hidden=True))
    paths = {os.path.normpath(os.path.join(base_path, m)) for m in matches}
    paths = [p for p in paths if is_path_within(p, base_path) and os.path.isfile(p)]
    return sorted(paths, key=_mtime, reverse=True)


def grep_files(regex: re.Pattern, include: str, base_path: str) -> dict[str, Any]:
    check_pattern(include, base_path)
    if not include.startswith(("**/", "*/", "**")):
        include = f"**/{include}"

    found: list[dict[str, Any]] = []
    for path in find_files(include, base_path):
        try:
            with open(path, encoding="utf-8") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError):
            continue
        if not regex.search(content):
            continue
        lines = [
            {"line": number, "content": line}
            for number, line in enumerate(content.split("\n"), start=1)
            if regex.search(line)
        ]
        if lines:
            found.append({"file": path, "matches": lines})

    trimmed = []
    for item in found[:GREP_MAX_FILES]:
        total = len(item["matches"])
        trimmed.append(
            {
                "file": item["file"],
                "matches": [
                    {
                        "line": m["line"],
                        "content": m["content"][:GREP_MAX_LINE_LENGTH] + "..."
                        if len(m["content"]) > GREP_MAX_LINE_LENGTH
                        else m["content"],
                    }
                    for m in item["matches"][:GREP_MAX_LINES_PER_FILE]
                ],
                "matchCount": total,
                "hasMoreMatches": total > GREP_MAX_LINES_PER_FILE,
            }
        )

    return {
        "matches": trimmed,
        "totalMatchingFiles": len(found),
        "hasMoreFiles": len(found) > GREP_MAX_FILES,
        "isTrimmed": len(found) > GREP_MAX_FILES or any(len(f["matches"]) > GREP_MAX_LINES_PER_FILE for f in found),
    }


@register_tool
class GlobTool(Tool):
    name = "GlobTool"
    description = (
        "Fast file pattern matching that works with any codebase size. Supports glob patterns like "
        '"**/*.py" or "src/**/*.ts". Returns matching file paths sorted by modification time, newest first.'
    )
    parameters = {
        "type": "object",
        "properties": {
            "pattern": {"type": "string", "description": "The glob pattern to match files against"},
            "path": {"type": "string", "description": "The directory to search in"},
        },
        "required": ["pattern"],
        "additionalProperties": False,
    }
    uses_path = True

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        where = f" in {args['path']}" if args.get("path") else ""
        return f"Finding files matching {args.get('pattern')}{where}"

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        base_path = context.resolve_path(args.get("path"))
        pattern = args.get("pattern") or ""
        if not pattern:
            raise ToolError("Error in glob pattern: pattern is required")
        matches = await asyncio.to_thread(find_files, pattern, base_path)
        return {"matches": matches}


@register_tool
class GrepTool(Tool):
    name = "GrepTool"
    description = (
        "Searches file contents with a case-insensitive regular expression. Filter files with include "
        '(e.g. "*.py" or "*.{ts,tsx}"). Returns up to 20 files, newest first, with up to 5 matching lines each.'
    )
    parameters = {
        "type": "object",
        "properties": {
            "pattern": {"type": "string", "description": "The regular expression pattern to search for"},
            "path": {"type": "string", "description": "The directory to search in"},
            "include": {"type": "string", "description": "File pattern to include in the search"},
        },
        "required": ["pattern"],
        "additionalProperties": False,
    }
    uses_path = True

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        include = f" in {args['include']}" if args.get("include") else ""
        return f"Searching for '{args.get('pattern')}'{include}"

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        base_path = context.resolve_path(args.get("path"))
        try:
            regex = re.compile(args.get("pattern") or "", re.IGNORECASE)
        except re.error as e:
            raise ToolError(f"Error in grep pattern: {e}") from e
        return await asyncio.to_thread(grep_files, regex, args.get("include") or "*", base_path)
