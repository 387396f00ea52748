"""
Task tools.

They all operate on the session's task tree through the session manager and
return ``{success, tasks, error?}`` so the model always sees the current tree.
"""

import logging
import re
from typing import Any

from core.exceptions import CoreError
from core.models import Task, TaskStatus

from .base import Tool, ToolContext
from .registry import register_tool

logger = logging.getLogger(__name__)

STATUSES = [s.value for s in TaskStatus]
COMMAND_SPLIT_RE = re.compile(r"(?:\n|;)+")


def dump_tasks(tasks: list[Task]) -> list[dict[str, Any]]:
    return [t.model_dump(mode="json") for t in tasks]


def split_title(text: str) -> tuple[str, str | None]:
    """``"title | description"`` → ``(title, description)``."""
    title, sep, description = text.partition("|")
    return title.strip(), description.strip() if sep else None


@register_tool
class TaskTrackingTool(Tool):
    name = "TaskTrackingTool"
    description = (
        "Manage the persistent task list for the current conversation.\n\n"
        'Accepted command syntax (single string in the "command" property). Chain multiple commands '
        "by separating them with a newline or a semicolon.\n\n"
        "- list\n"
        "- add <title> [| <description>]\n"
        "- remove <taskId>\n"
        "- status <taskId> <pending|in-progress|completed|error>\n"
        "- edit <taskId> <title> [| <description>]\n\n"
        "Returns JSON {success, tasks, error?}. Call list first if you do not know the task ids."
    )
    parameters = {
        "type": "object",
        "properties": {"command": {"type": "string", "description": "The textual command to execute."}},
        "required": ["command"],
        "additionalProperties": False,
    }

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        command = str(args.get("command") or "").split()
        return f"Task command: {command[0]}" if command else "Managing tasks"

    async def _run_line(self, line: str, context: ToolContext, result: dict[str, Any]) -> None:
        sessions = context.sessions
        sid = context.session_id
        tokens = line.split()
        primary = tokens.pop(0).lower()

        if primary == "list":
            return
        if primary == "add":
            title, description = split_title(line[3:].strip())
            if not title:
                raise ValueError("ADD requires a title.")
            task = await sessions.add_task(sid, title, description or "", save=False)
            result["added"] = task.model_dump(mode="json")
        elif primary == "remove":
            if not tokens:
                raise ValueError("REMOVE requires a taskId")
            if not await sessions.remove_task(sid, tokens[0], save=False):
                raise ValueError(f"Task id not found: {tokens[0]}")
        elif primary == "status":
            if len(tokens) < 2:
                raise ValueError("STATUS requires taskId and new status")
            status = tokens[1].lower()
            if status not in STATUSES:
                raise ValueError(f"Invalid status. Allowed: {', '.join(STATUSES)}")
            if await sessions.set_task_status(sid, tokens[0], status, save=False) is None:
                raise ValueError(f"Task id not found: {tokens[0]}")
        elif primary == "edit":
            if not tokens:
                raise ValueError("EDIT requires taskId and new title")
            task_id = tokens[0]
            rest = line[line.index(task_id) + len(task_id):].strip()
            if not rest:
                raise ValueError("EDIT requires new title or description")
            title, description = split_title(rest)
            if await sessions.edit_task(sid, task_id, title=title or None, description=description, save=False) is None:
                raise ValueError(f"Task id not found: {task_id}")
        else:
            raise ValueError(f"Unknown command: {primary}")

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        command = args.get("command")
        if not command or not isinstance(command, str):
            return {"success": False, "error": 'TaskTrackingTool: "command" must be a non-empty string.'}

        result: dict[str, Any] = {}
        errors = []
        for line in (part.strip() for part in COMMAND_SPLIT_RE.split(command)):
            if not line:
                continue
            try:
                await self._run_line(line, context, result)
            except (ValueError, CoreError) as e:
                errors.append(f"({line}) -> {e}")

        await context.sessions.save_session(context.session_id)
        result["tasks"] = dump_tasks(await context.sessions.get_tasks(context.session_id))
        result["success"] = not errors
        if errors:
            result["error"] = "; ".join(errors)
        return result


@register_tool
class AddOrEditTaskTool(Tool):
    name = "AddOrEditTaskTool"
    description = (
        "Create an entire task tree or edit an existing task.\n\n"
        '**createTree**: {"action": "createTree", "parentId"?: "<existing task id>", "tree": {"title": ..., '
        '"description"?: ..., "children": [...]}}. Inserts at the root when parentId is omitted.\n'
        '**edit**: {"action": "edit", "id": "<taskId>", "title"?, "description"?, "status"?, "parentId"?}. '
        "Passing parentId moves the task (null moves it to the root).\n\n"
        "Returns {success, tasks, idMap?, error?}; idMap maps created titles to their ids."
    )
    parameters = {
        "type": "object",
        "properties": {
            "action": {"type": "string", "enum": ["createTree", "edit"]},
            "tree": {"$ref": "#/$defs/node"},
            "parentId": {"type": ["string", "null"]},
            "id": {"type": "string"},
            "title": {"type": "string"},
            "description": {"type": "string"},
            "status": {"type": "string", "enum": STATUSES},
        },
        "required": ["action"],
        "additionalProperties": False,
        "$defs": {
            "node": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "children": {"type": "array", "items": {"$ref": "#/$defs/node"}},
                },
                "required": ["title"],
                "additionalProperties": False,
            }
        },
    }

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        return "Add/edit task"

    async def _create(self, node: dict[str, Any], parent_id: str | None, context: ToolContext, id_map: dict) -> None:
        task = await context.sessions.add_task(
            context.session_id, node.get("title", ""), node.get("description", ""), parent_id, save=False
        )
        id_map[task.title] = task.id
        for child in node.get("children") or []:
            await self._create(child, task.id, context, id_map)

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        sessions = context.sessions
        sid = context.session_id
        result: dict[str, Any] = {"success": False}
        try:
            action = args.get("action")
            if action == "createTree":
                if not args.get("tree"):
                    raise ValueError("tree required for createTree")
                id_map: dict[str, str] = {}
                await self._create(args["tree"], args.get("parentId") or None, context, id_map)
                result["idMap"] = id_map
            elif action == "edit":
                task_id = args.get("id")
                if not task_id:
                    raise ValueError("id required for edit")
                if args.get("title") or args.get("description"):
                    if await sessions.edit_task(
                        sid, task_id, title=args.get("title"), description=args.get("description"), save=False
                    ) is None:
                        raise ValueError(f"Task id not found: {task_id}")
                if "parentId" in args:
                    await sessions.move_task(sid, task_id, args["parentId"] or None, save=False)
                if args.get("status"):
                    if args["status"] not in STATUSES:
                        raise ValueError("Invalid status")
                    await sessions.set_task_status(sid, task_id, args["status"], save=False)
            else:
                raise ValueError("Unknown action")
            await sessions.save_session(sid)
            result["tasks"] = dump_tasks(await sessions.get_tasks(sid))
            result["success"] = True
        except (ValueError, CoreError) as e:
            result["error"] = str(e)
        return result


@register_tool
class ListTasksTool(Tool):
    name = "ListTasksTool"
    description = (
        "List the conversation's tasks. flat=true returns a flat list; rootOnly=true returns only root tasks; "
        "parentId returns the subtree of one task."
    )
    parameters = {
        "type": "object",
        "properties": {
            "flat": {"type": "boolean"},
            "rootOnly": {"type": "boolean"},
            "parentId": {"type": "string"},
        },
        "additionalProperties": False,
    }

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        return "List tasks"

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        flat = bool(args.get("flat"))
        if args.get("parentId"):
            tasks = await context.sessions.get_subtree(context.session_id, args["parentId"], flat=flat)
            if tasks is None:
                return {"success": False, "error": "parentId not found"}
        else:
            tasks = await context.sessions.get_tasks(
                context.session_id, flat=flat, root_only=bool(args.get("rootOnly"))
            )
        return {"success": True, "tasks": dump_tasks(tasks)}


@register_tool
class RemoveTaskTool(Tool):
    name = "RemoveTaskTool"
    description = "Remove a task and all of its subtasks."
    parameters = {
        "type": "object",
        "properties": {"taskId": {"type": "string"}},
        "required": ["taskId"],
        "additionalProperties": False,
    }

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        return f"Remove task {args.get('taskId') or ''}".strip()

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        task_id = args.get("taskId")
        if not task_id:
            return {"success": False, "error": "taskId required"}
        if not await context.sessions.remove_task(context.session_id, task_id):
            return {"success": False, "error": "Task not found"}
        return {"success": True, "tasks": dump_tasks(await context.sessions.get_tasks(context.session_id))}
