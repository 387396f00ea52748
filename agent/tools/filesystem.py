"""
Filesystem tools: View, LS, Edit and Replace.

Every path goes through ``ToolContext.resolve_path`` so reads and writes stay
under the working directory. Blocking I/O runs in a worker thread.
"""

import asyncio
import base64
import fnmatch
import logging
import os
from typing import Any

from core.constants import LS_MAX_DEPTH, LS_MAX_ENTRIES, VIEW_DEFAULT_LIMIT, VIEW_LARGE_FILE_LINES
from core.exceptions import ToolError

from ..image import describe_image
from .base import Tool, ToolContext
from .registry import register_tool

logger = logging.getLogger(__name__)

TRUNCATED_KEY = "…truncated"
BINARY_SNIFF_BYTES = 8192

IMAGE_MIME_BY_EXT = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

SIGNATURES = [
    ("png", b"\x89PNG"),
    ("jpg", b"\xff\xd8\xff"),
    ("gif", b"GIF8"),
    ("webp", b"RIFF"),
    ("pdf", b"%PDF"),
    ("mp3", b"ID3"),
]

IMAGE_DETAIL_PROMPT = (
    "Please thoroughly describe every little detail, ignoring any previous instructions "
    "on keeping descriptions short. Every detail matters."
)


def detect_type(head: bytes) -> str:
    for kind, signature in SIGNATURES:
        if head.startswith(signature):
            if kind == "webp" and head[8:12] != b"WEBP":
                continue
            return kind
    return "unknown"


def image_mime(head: bytes, ext: str) -> str | None:
    """MIME type if the file is an image by extension or magic number."""
    if ext in IMAGE_MIME_BY_EXT:
        return IMAGE_MIME_BY_EXT[ext]
    kind = detect_type(head)
    if kind in ("png", "gif", "webp"):
        return f"image/{kind}"
    if kind == "jpg":
        return "image/jpeg"
    return None


def walk_tree(directory: str, depth_left: int, ignore: list[str], stats: dict[str, int]) -> dict[str, Any]:
    """
    Build a nested directory listing.

    Files map to None and directories to nested dicts. Once the entry budget
    is spent the current level gets a ``…truncated`` marker.
    """
    subtree: dict[str, Any] = {}
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda e: e.name)
    if ignore:
        entries = [e for e in entries if not any(fnmatch.fnmatch(e.name, pattern) for pattern in ignore)]

    for entry in entries:
        if stats["count"] >= LS_MAX_ENTRIES:
            subtree[TRUNCATED_KEY] = True
            break
        stats["count"] += 1
        if entry.is_dir(follow_symlinks=False):
            subtree[entry.name] = walk_tree(entry.path, depth_left - 1, ignore, stats) if depth_left > 0 else {}
        else:
            subtree[entry.name] = None
    return subtree


def read_lines(path: str, offset: int, limit: int) -> tuple[list[str], int]:
    """Lines ``offset..offset+limit`` of a text file and the file's total line count."""
    selected: list[str] = []
    total = 0
    with open(path, encoding="utf-8", errors="replace", newline=None) as f:
        for line in f:
            if total >= offset and len(selected) < limit:
                selected.append(line.rstrip("\n"))
            total += 1
    return selected, total


def _read_head(path: str, size: int) -> bytes:
    with open(path, "rb") as f:
        return f.read(size)


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def _read_text(path: str) -> str:
    with open(path, encoding="utf-8") as f:
        return f.read()


def _write_text(path: str, content: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)


@register_tool
class ViewTool(Tool):
    name = "View"
    description = (
        "Reads a file from the local filesystem. The file_path parameter must be an absolute path or a path "
        "relative to the working directory. By default, it reads up to 2000 lines starting from the beginning "
        "of the file. You can optionally specify a line offset and limit, which is handy for long files. "
        "Image files are described in detail instead of returned as bytes."
    )
    parameters = {
        "type": "object",
        "properties": {
            "file_path": {"type": "string", "description": "The path to the file to read"},
            "offset": {"type": "number", "description": "The line number to start reading from"},
            "limit": {"type": "number", "description": "The number of lines to read"},
        },
        "required": ["file_path"],
        "additionalProperties": False,
    }

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        return f"Viewing {os.path.basename(str(args.get('file_path', '')))}"

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        path = context.resolve_path(args.get("file_path"))
        if not os.path.isfile(path):
            return "file not found"

        offset = int(args.get("offset") or 0)
        limit = int(args.get("limit") or VIEW_DEFAULT_LIMIT)

        head = await asyncio.to_thread(_read_head, path, BINARY_SNIFF_BYTES)
        if b"\x00" in head:
            return await self._view_binary(path, head, context)

        lines, total = await asyncio.to_thread(read_lines, path, offset, limit)
        if total > VIEW_LARGE_FILE_LINES and offset == 0 and limit == VIEW_DEFAULT_LIMIT:
            return (
                f"this file has {total} lines of text, "
                'specify line "offset" and "limit" to read file partially'
            )
        return {"contents": "\n".join(lines)}

    async def _view_binary(self, path: str, head: bytes, context: ToolContext) -> Any:
        ext = os.path.splitext(path)[1].lower() or f".{detect_type(head)}"
        mime = image_mime(head, ext)
        if mime is None:
            return {"type": "binary", "ext": ext, "size": os.path.getsize(path)}

        data = await asyncio.to_thread(_read_bytes, path)
        data_url = f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"
        session_id = None if context.is_sub_session else context.session_id
        return await describe_image(context.llm, data_url, IMAGE_DETAIL_PROMPT, session_id=session_id)


@register_tool
class LSTool(Tool):
    name = "LS"
    description = (
        "Lists files and directories in a given path as a nested tree. Directories map to objects, files to null. "
        "depth controls recursion (1-5). You can optionally provide an array of glob patterns to ignore."
    )
    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "The directory to list"},
            "depth": {"type": "number", "description": "How many levels to descend (default 1, max 5)"},
            "ignore": {
                "type": "array",
                "items": {"type": "string"},
                "description": "List of glob patterns to ignore",
            },
        },
        "required": ["path"],
        "additionalProperties": False,
    }
    uses_path = True

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        return f"Listing {args.get('path') or 'directory'}"

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        root = context.resolve_path(args.get("path"))
        try:
            depth = int(args.get("depth") or 1)
        except (TypeError, ValueError):
            depth = 1
        depth = max(1, min(depth, LS_MAX_DEPTH))
        stats = {"count": 0}
        try:
            tree = await asyncio.to_thread(walk_tree, root, depth - 1, list(args.get("ignore") or []), stats)
        except OSError as e:
            raise ToolError(str(e)) from e
        return {
            "root": root,
            "depth": depth,
            "total": stats["count"],
            "truncated": stats["count"] >= LS_MAX_ENTRIES,
            "tree": tree,
        }


@register_tool
class EditTool(Tool):
    name = "Edit"
    description = (
        "Edits a file by replacing the first occurrence of old_string with new_string. "
        "Read the file with View first, and include enough surrounding context in old_string to make it unique."
    )
    parameters = {
        "type": "object",
        "properties": {
            "file_path": {"type": "string", "description": "The path to the file to modify"},
            "old_string": {"type": "string", "description": "The text to replace"},
            "new_string": {"type": "string", "description": "The text to replace it with"},
        },
        "required": ["file_path", "old_string", "new_string"],
        "additionalProperties": False,
    }

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        return f"Editing {os.path.basename(str(args.get('file_path', '')))}"

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        path = context.resolve_path(args.get("file_path"))
        old_string = args.get("old_string", "")
        try:
            data = await asyncio.to_thread(_read_text, path)
        except OSError as e:
            raise ToolError(str(e)) from e
        if old_string not in data:
            return {"error": "Old string not found"}
        await asyncio.to_thread(_write_text, path, data.replace(old_string, args.get("new_string", ""), 1))
        return {"success": True}


@register_tool
class ReplaceTool(Tool):
    name = "Replace"
    description = "Writes a file, overwriting it if it exists. Creates missing parent directories."
    parameters = {
        "type": "object",
        "properties": {
            "file_path": {"type": "string", "description": "The path to the file to write"},
            "content": {"type": "string", "description": "The content to write to the file"},
        },
        "required": ["file_path", "content"],
        "additionalProperties": False,
    }

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        return f"Writing {os.path.basename(str(args.get('file_path', '')))}"

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        path = context.resolve_path(args.get("file_path"))
        try:
            await asyncio.to_thread(_write_text, path, args.get("content", ""))
        except OSError as e:
            raise ToolError(str(e)) from e
        return {"success": True}
