"""
Tests for the agent tools and the tool registry.
"""

import asyncio
import json
import os
import tempfile
import time
from pathlib import Path

import pytest

from agent.prompts import IMAGE_DESCRIPTION_PROMPT
from agent.tools import Tool, ToolRegistry, create_tool_registry, get_all_tool_names
from agent.tools.dispatch import SUB_AGENT_TOOLS
from agent.tools.expert import build_file_context
from config import Persona
from core.accounting import estimate_tokens
from core.constants import CHARS_PER_TOKEN
from core.exceptions import Cancelled, ToolError
from core.models import ToolCall
from core.sandbox.safety import INJECTION_DETECTED
from helpers import text_response, tool_call_response

PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR" + b"\x00" * 32


def call(name: str, arguments) -> ToolCall:
    text = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return ToolCall(id="call_1", name=name, argumentsText=text)


async def run(context, name: str, arguments):
    return await context.registry.run(call(name, arguments), context)


class EchoTool(Tool):
    name = "Echo"
    uses_path = True

    async def execute(self, args, context):
        return args


class FailingTool(Tool):
    name = "Failing"

    def __init__(self, error: BaseException):
        self.error = error

    async def execute(self, args, context):
        raise self.error


class TestToolRegistry:
    """Test ToolRegistry.run and schema handling."""

    def test_builtin_tools_registered(self):
        """Every built-in tool is available by name."""
        names = set(get_all_tool_names())
        assert {
            "Bash", "View", "LS", "Edit", "Replace", "GlobTool", "GrepTool", "WebFetchTool",
            "ExpertAdviceTool", "BatchTool", "dispatch_agent", "TaskTrackingTool",
            "AddOrEditTaskTool", "ListTasksTool", "RemoveTaskTool",
        } <= names

    def test_create_with_allow_list(self):
        """Unknown names in the allow-list are ignored."""
        registry = create_tool_registry(["View", "Nope"])
        assert registry.names() == ["View"]

    def test_persona_filters_schemas(self):
        """A persona allow-list limits the offered schemas."""
        registry = create_tool_registry(["View", "LS", "Bash"])
        persona = Persona(id="reader", name="Reader", tools=["View", "LS"])
        names = [s["function"]["name"] for s in registry.get_schemas(persona)]
        assert names == ["View", "LS"]
        assert len(registry.get_schemas()) == 3

    def test_descriptive_text(self):
        """Descriptive text comes from the tool; long commands are shortened."""
        registry = create_tool_registry(["Bash"])
        long_command = "echo " + "x" * 60
        assert registry.get_descriptive_text(call("Bash", {"command": long_command})) == (
            f"Running: {long_command[:37]}..."
        )
        assert registry.get_descriptive_text(call("Bash", {"command": "ls", "description": "List files"})) == "List files"
        assert registry.get_descriptive_text(call("Missing", {})) is None

    @pytest.mark.asyncio
    async def test_unknown_tool(self, tool_context):
        """Unknown tools produce an error result."""
        assert await run(tool_context, "Nope", {}) == {"error": 'Tool "Nope" is not available.'}

    @pytest.mark.asyncio
    async def test_malformed_arguments(self, tool_context):
        """Malformed JSON arguments produce an error result."""
        result = await run(tool_context, "View", "{not json")
        assert "Malformed arguments JSON" in result["error"]

    @pytest.mark.asyncio
    async def test_path_defaults_to_working_directory(self, tool_context, temp_dir):
        """Path-bearing tools get the working directory when path is omitted."""
        registry = ToolRegistry([EchoTool()])
        assert await registry.run(call("Echo", {}), tool_context) == {"path": str(temp_dir)}

    @pytest.mark.asyncio
    async def test_errors_become_results(self, tool_context):
        """ToolError and unexpected exceptions become error results."""
        registry = ToolRegistry([FailingTool(ToolError("bad input"))])
        assert await registry.run(call("Failing", {}), tool_context) == {"error": "bad input"}
        registry = ToolRegistry([FailingTool(KeyError("k"))])
        assert "k" in (await registry.run(call("Failing", {}), tool_context))["error"]

    @pytest.mark.asyncio
    async def test_cancelled_propagates(self, tool_context):
        """Cancelled escapes the registry."""
        registry = ToolRegistry([FailingTool(Cancelled("stop"))])
        with pytest.raises(Cancelled):
            await registry.run(call("Failing", {}), tool_context)


class TestFilesystemTools:
    """Test View, LS, Edit and Replace."""

    @pytest.mark.asyncio
    async def test_view_reads_file(self, tool_context, temp_file):
        """View returns the file contents."""
        result = await run(tool_context, "View", {"file_path": str(temp_file)})
        assert result == {"contents": "Hello, World!\nThis is a test file.\nLine 3"}

    @pytest.mark.asyncio
    async def test_view_relative_path_offset_limit(self, tool_context, temp_file):
        """Relative paths resolve against the working directory; offset and limit slice lines."""
        result = await run(tool_context, "View", {"file_path": temp_file.name, "offset": 1, "limit": 1})
        assert result == {"contents": "This is a test file."}

    @pytest.mark.asyncio
    async def test_view_missing_file(self, tool_context):
        """Missing files are reported as text."""
        assert await run(tool_context, "View", {"file_path": "missing.txt"}) == "file not found"

    @pytest.mark.asyncio
    async def test_view_outside_working_directory(self, tool_context):
        """Paths outside the working directory are denied."""
        result = await run(tool_context, "View", {"file_path": "/etc/hosts"})
        assert result["error"].startswith("Access denied")

    @pytest.mark.asyncio
    async def test_view_large_file_hint(self, tool_context, temp_dir):
        """Files over 2500 lines ask for offset and limit."""
        big = temp_dir / "big.txt"
        big.write_text("\n".join(f"line {i}" for i in range(3000)))
        result = await run(tool_context, "View", {"file_path": "big.txt"})
        assert result.startswith("this file has 3000 lines of text")
        partial = await run(tool_context, "View", {"file_path": "big.txt", "offset": 2990, "limit": 5})
        assert partial["contents"].splitlines() == [f"line {i}" for i in range(2990, 2995)]

    @pytest.mark.asyncio
    async def test_view_binary(self, tool_context, temp_dir):
        """Non-image binaries are summarized."""
        blob = temp_dir / "data.bin"
        blob.write_bytes(b"\x00\x01\x02" * 10)
        assert await run(tool_context, "View", {"file_path": "data.bin"}) == {
            "type": "binary", "ext": ".bin", "size": 30,
        }

    @pytest.mark.asyncio
    async def test_view_image_described(self, tool_context, temp_dir, scripted):
        """Images are described by the main model."""
        (temp_dir / "shot.png").write_bytes(PNG_BYTES)
        scripted.route(
            lambda r: r.messages[0].content == IMAGE_DESCRIPTION_PROMPT,
            text_response("A tiny PNG."),
        )
        assert await run(tool_context, "View", {"file_path": "shot.png"}) == "A tiny PNG."
        content = scripted.requests[0].messages[1].content
        assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")

    @pytest.mark.asyncio
    async def test_ls_tree(self, tool_context, temp_dir):
        """LS returns a nested tree honoring depth and ignore patterns."""
        (temp_dir / "src" / "pkg").mkdir(parents=True)
        (temp_dir / "src" / "pkg" / "mod.py").write_text("")
        (temp_dir / "src" / "main.py").write_text("")
        (temp_dir / "node_modules").mkdir()
        (temp_dir / "README.md").write_text("")

        result = await run(tool_context, "LS", {"depth": 2, "ignore": ["node_modules"]})
        assert result["root"] == str(temp_dir)
        assert result["tree"] == {"README.md": None, "src": {"main.py": None, "pkg": {}}}
        assert result["truncated"] is False

        deep = await run(tool_context, "LS", {"path": "src", "depth": 9})
        assert deep["depth"] == 5
        assert deep["tree"] == {"main.py": None, "pkg": {"mod.py": None}}

    @pytest.mark.asyncio
    async def test_edit(self, tool_context, temp_dir):
        """Edit replaces the first occurrence only."""
        target = temp_dir / "a.txt"
        target.write_text("one two one")
        assert await run(tool_context, "Edit", {"file_path": "a.txt", "old_string": "one", "new_string": "1"}) == {
            "success": True
        }
        assert target.read_text() == "1 two one"
        assert await run(tool_context, "Edit", {"file_path": "a.txt", "old_string": "zzz", "new_string": ""}) == {
            "error": "Old string not found"
        }

    @pytest.mark.asyncio
    async def test_replace_creates_parents(self, tool_context, temp_dir):
        """Replace writes the file, creating missing directories."""
        result = await run(tool_context, "Replace", {"file_path": "new/dir/file.txt", "content": "hello"})
        assert result == {"success": True}
        assert (temp_dir / "new" / "dir" / "file.txt").read_text() == "hello"

    @pytest.mark.asyncio
    async def test_replace_outside_denied(self, tool_context, temp_dir):
        """Writes cannot escape the working directory."""
        result = await run(tool_context, "Replace", {"file_path": "../escape.txt", "content": "x"})
        assert result["error"].startswith("Access denied")
        assert not (temp_dir.parent / "escape.txt").exists()


class TestSearchTools:
    """Test GlobTool and GrepTool."""

    @pytest.fixture
    def project(self, temp_dir):
        files = {
            "old.py": "import os\n",
            "src/new.py": "# TODO: refactor\nprint('todo')\n",
            "src/app.ts": "// todo in ts\n",
            "src/view.tsx": "const x = 1;\n",
            ".hidden/secret.py": "TODO hidden\n",
        }
        now = time.time()
        for index, (name, content) in enumerate(files.items()):
            path = temp_dir / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
            os.utime(path, (now - 100 + index, now - 100 + index))
        return temp_dir

    @pytest.mark.asyncio
    async def test_glob_newest_first(self, tool_context, project):
        """Matches are absolute and sorted by modification time, newest first."""
        result = await run(tool_context, "GlobTool", {"pattern": "**/*.py"})
        assert result["matches"] == [
            str(project / ".hidden" / "secret.py"),
            str(project / "src" / "new.py"),
            str(project / "old.py"),
        ]

    @pytest.mark.asyncio
    async def test_glob_braces(self, tool_context, project):
        """Brace alternatives are expanded."""
        result = await run(tool_context, "GlobTool", {"pattern": "src/*.{ts,tsx}"})
        assert sorted(os.path.basename(p) for p in result["matches"]) == ["app.ts", "view.tsx"]

    @pytest.mark.asyncio
    async def test_grep_case_insensitive(self, tool_context, project):
        """Patterns match case-insensitively and report line numbers."""
        result = await run(tool_context, "GrepTool", {"pattern": "todo", "include": "*.py"})
        files = [m["file"] for m in result["matches"]]
        assert files == [str(project / ".hidden" / "secret.py"), str(project / "src" / "new.py")]
        new_py = result["matches"][1]
        assert [m["line"] for m in new_py["matches"]] == [1, 2]
        assert result["totalMatchingFiles"] == 2
        assert result["isTrimmed"] is False

    @pytest.mark.asyncio
    async def test_grep_limits(self, tool_context, temp_dir):
        """Long lines are cut and only five lines per file are returned."""
        (temp_dir / "long.txt").write_text("\n".join(["needle " + "x" * 200] * 8))
        result = await run(tool_context, "GrepTool", {"pattern": "needle"})
        match = result["matches"][0]
        assert len(match["matches"]) == 5
        assert match["matchCount"] == 8
        assert match["hasMoreMatches"] is True
        assert match["matches"][0]["content"].endswith("...")
        assert len(match["matches"][0]["content"]) == 153
        assert result["isTrimmed"] is True

    @pytest.fixture
    def outside_file(self, temp_dir):
        with tempfile.NamedTemporaryFile("w", dir=temp_dir.parent, suffix=".txt", delete=False) as f:
            f.write("TOPSECRET\n")
        yield Path(f.name)
        os.unlink(f.name)

    @pytest.mark.asyncio
    async def test_glob_absolute_pattern_denied(self, tool_context, outside_file):
        """Absolute glob patterns cannot reach outside the working directory."""
        result = await run(tool_context, "GlobTool", {"pattern": str(outside_file)})
        assert result["error"].startswith("Access denied")

    @pytest.mark.asyncio
    async def test_glob_parent_segment_denied(self, tool_context, project, outside_file):
        """Patterns with a ``..`` segment are denied, even inside braces."""
        result = await run(tool_context, "GlobTool", {"pattern": f"../{outside_file.name}"})
        assert result["error"].startswith("Access denied")
        result = await run(tool_context, "GlobTool", {"pattern": "{src,..}/*.txt"})
        assert result["error"].startswith("Access denied")

    @pytest.mark.asyncio
    async def test_grep_include_escape_denied(self, tool_context, project, outside_file):
        """An include that climbs out of the working directory reads nothing."""
        result = await run(
            tool_context, "GrepTool", {"pattern": "TOPSECRET", "include": f"**/../{outside_file.name}"}
        )
        assert result["error"].startswith("Access denied")
        result = await run(tool_context, "GrepTool", {"pattern": "TOPSECRET", "include": str(outside_file)})
        assert result["error"].startswith("Access denied")

    @pytest.mark.asyncio
    async def test_search_results_stay_inside(self, tool_context, project):
        """Every reported path lies inside the working directory."""
        result = await run(tool_context, "GlobTool", {"pattern": "**/*"})
        assert result["matches"]
        assert all(os.path.commonpath([p, str(project)]) == str(project) for p in result["matches"])

    @pytest.mark.asyncio
    async def test_grep_invalid_regex(self, tool_context):
        """Invalid patterns are reported as errors."""
        result = await run(tool_context, "GrepTool", {"pattern": "("})
        assert result["error"].startswith("Error in grep pattern")


class TestTaskTools:
    """Test the task tools."""

    @pytest.mark.asyncio
    async def test_tracking_commands(self, tool_context, store, session_id):
        """Chained commands run in order and save once."""
        result = await run(tool_context, "TaskTrackingTool", {"command": "add Write tests | cover the loop; add Ship"})
        assert result["success"] is True
        assert [t["title"] for t in result["tasks"]] == ["Write tests", "Ship"]
        assert result["tasks"][0]["description"] == "cover the loop"
        task_id = result["tasks"][0]["id"]

        result = await run(tool_context, "TaskTrackingTool", {
            "command": f"status {task_id} in-progress\nedit {task_id} Write more tests"
        })
        assert result["success"] is True
        assert result["tasks"][0]["status"] == "in-progress"
        assert result["tasks"][0]["title"] == "Write more tests"
        assert store.records[session_id]["tasks"][0]["title"] == "Write more tests"

    @pytest.mark.asyncio
    async def test_tracking_errors_collected(self, tool_context):
        """Failing lines are reported while the rest still apply."""
        result = await run(tool_context, "TaskTrackingTool", {"command": "add Keep; status nope done; remove ghost; fly"})
        assert result["success"] is False
        assert "Invalid status" in result["error"]
        assert "Task id not found: ghost" in result["error"]
        assert "Unknown command: fly" in result["error"]
        assert [t["title"] for t in result["tasks"]] == ["Keep"]

    @pytest.mark.asyncio
    async def test_tracking_requires_command(self, tool_context):
        """An empty command is rejected."""
        result = await run(tool_context, "TaskTrackingTool", {"command": ""})
        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_create_tree_and_move(self, tool_context):
        """createTree nests children and edit refuses cyclic moves."""
        result = await run(tool_context, "AddOrEditTaskTool", {
            "action": "createTree",
            "tree": {"title": "Release", "children": [
                {"title": "Build", "children": [{"title": "Compile"}]},
                {"title": "Publish"},
            ]},
        })
        assert result["success"] is True
        id_map = result["idMap"]
        assert set(id_map) == {"Release", "Build", "Compile", "Publish"}
        release = result["tasks"][0]
        assert [c["title"] for c in release["children"]] == ["Build", "Publish"]

        result = await run(tool_context, "AddOrEditTaskTool", {
            "action": "edit", "id": id_map["Release"], "parentId": id_map["Compile"],
        })
        assert result["success"] is False
        assert "Cannot move" in result["error"]

        result = await run(tool_context, "AddOrEditTaskTool", {
            "action": "edit", "id": id_map["Compile"], "parentId": None, "status": "completed",
        })
        assert result["success"] is True
        assert [t["title"] for t in result["tasks"]] == ["Release", "Compile"]
        assert result["tasks"][1]["status"] == "completed"

    @pytest.mark.asyncio
    async def test_list_and_remove(self, tool_context, sessions, session_id):
        """ListTasksTool supports flat, rootOnly and parentId; RemoveTaskTool drops subtrees."""
        parent = await sessions.add_task(session_id, "Parent")
        await sessions.add_task(session_id, "Child", parent_id=parent.id)

        flat = await run(tool_context, "ListTasksTool", {"flat": True})
        assert [t["title"] for t in flat["tasks"]] == ["Parent", "Child"]
        roots = await run(tool_context, "ListTasksTool", {"rootOnly": True})
        assert roots["tasks"][0]["children"] == []
        assert (await run(tool_context, "ListTasksTool", {"parentId": "ghost"}))["success"] is False

        removed = await run(tool_context, "RemoveTaskTool", {"taskId": parent.id})
        assert removed == {"success": True, "tasks": []}
        assert await run(tool_context, "RemoveTaskTool", {"taskId": parent.id}) == {
            "success": False, "error": "Task not found",
        }


class TestBatchTool:
    """Test BatchTool."""

    @pytest.mark.asyncio
    async def test_runs_all_invocations(self, tool_context, temp_file):
        """Results come back in invocation order; failures do not stop the rest."""
        result = await run(tool_context, "BatchTool", {
            "description": "read things",
            "invocations": [
                {"tool_name": "View", "arguments": {"file_path": temp_file.name}},
                {"tool_name": "Nope", "arguments": {}},
                {"tool_name": "GlobTool", "arguments": {"pattern": "*.txt"}},
            ],
        })
        assert result["count"] == 3
        assert result["description"] == "read things"
        assert result["results"][0]["contents"].startswith("Hello, World!")
        assert result["results"][1] == {"error": 'Tool "Nope" is not available.'}
        assert result["results"][2]["matches"] == [str(temp_file)]

    @pytest.mark.asyncio
    async def test_invalid_invocations(self, tool_context):
        """An empty or missing invocation list is rejected."""
        result = await run(tool_context, "BatchTool", {"description": "x", "invocations": []})
        assert result == {"error": "Invalid invocations: must be a non-empty array"}

    @pytest.mark.asyncio
    async def test_requires_registry(self, tool_context):
        """Without a registry the batch cannot run."""
        registry = tool_context.registry
        tool_context.registry = None
        result = await registry.run(call("BatchTool", {"invocations": [{"tool_name": "LS"}]}), tool_context)
        assert result == {"error": "BatchTool requires a valid tool registry"}

    @pytest.mark.asyncio
    async def test_invocations_run_concurrently(self, tool_context):
        """Independent invocations overlap in time."""
        class SlowTool(Tool):
            name = "Slow"

            async def execute(self, args, context):
                await asyncio.sleep(0.2)
                return "done"

        tool_context.registry.add(SlowTool())
        started = time.monotonic()
        result = await run(tool_context, "BatchTool", {
            "description": "slow",
            "invocations": [{"tool_name": "Slow", "arguments": {}} for _ in range(4)],
        })
        assert result["results"] == ["done"] * 4
        assert time.monotonic() - started < 0.6


class TestDispatchAgentTool:
    """Test sub-agent dispatch."""

    @pytest.mark.asyncio
    async def test_sub_agent_answer(self, tool_context, scripted, sessions, store):
        """The sub-agent runs with read-only tools and is cleaned up."""
        scripted.queue(text_response("The loader lives in config/loader.py."))
        result = await run(tool_context, "dispatch_agent", {"prompt": "Where is the config loader?"})
        assert result == {"subAgentResponse": "The loader lives in config/loader.py."}

        request = scripted.requests[0]
        assert sorted(s["function"]["name"] for s in request.tools) == sorted(SUB_AGENT_TOOLS)
        assert request.messages[-1].content == "Where is the config loader?"
        assert not any(sid.startswith("sub_") for sid in sessions._entries)
        assert not any(sid.startswith("sub_") for sid in store.records)

    @pytest.mark.asyncio
    async def test_sub_agent_failure(self, tool_context, scripted, sessions):
        """Unexpected sub-agent failures are reported and still cleaned up."""
        scripted.queue(RuntimeError("model exploded"))
        result = await run(tool_context, "dispatch_agent", {"prompt": "look around"})
        assert result == {"error": "Sub-agent execution failed: model exploded"}
        assert not any(sid.startswith("sub_") for sid in sessions._entries)

    @pytest.mark.asyncio
    async def test_sub_agent_does_not_touch_parent_history(self, tool_context, scripted, sessions, session_id):
        """Sub-agent tool traffic stays out of the parent session."""
        scripted.queue(tool_call_response(("LS", {})), text_response("Nothing much here."))
        await run(tool_context, "dispatch_agent", {"prompt": "list"})
        data = await sessions.get_session(session_id)
        assert data.history == []
        assert data.toolLogs == []


class TestBashTool:
    """Test the Bash tool."""

    @pytest.mark.asyncio
    async def test_runs_command(self, tool_context, temp_dir):
        """Commands run in the working directory."""
        result = await run(tool_context, "Bash", {"command": "echo hi && pwd"})
        assert result["success"] is True
        lines = result["stdout"].split()
        assert lines[0] == "hi"
        assert os.path.realpath(lines[1]) == os.path.realpath(str(temp_dir))

    @pytest.mark.asyncio
    async def test_dangerous_command_blocked(self, tool_context):
        """Destructive commands are refused."""
        result = await run(tool_context, "Bash", {"command": "rm -rf /"})
        assert result["success"] is False
        assert result["error"].startswith("Command blocked for security reasons.")
        assert result["command"] == "rm -rf /"

    @pytest.mark.asyncio
    async def test_model_safety_check(self, tool_context, scripted):
        """With the model check on, an injection verdict blocks the command."""
        tool_context.config.sandbox.llm_safety_check = True
        scripted.route_model("gpt-4.1-mini", text_response(INJECTION_DETECTED))
        result = await run(tool_context, "Bash", {"command": "git status `ls`"})
        assert result["success"] is False
        assert "injection" in result["error"]


class TestExpertAdviceTool:
    """Test the expert advice tool."""

    @pytest.mark.asyncio
    async def test_files_attached(self, tool_context, temp_file, scripted):
        """Readable files are attached; unreadable ones are noted."""
        scripted.route_model("o3", text_response("Split the module."))
        result = await run(tool_context, "ExpertAdviceTool", {
            "prompt": "How should I restructure this?",
            "files": [temp_file.name, "missing.py", "/etc/hosts"],
        })
        assert result == {"advice": "Split the module."}
        prompt = scripted.requests[0].messages[0].content
        assert f"--- FILE: {temp_file}" in prompt
        assert "Hello, World!" in prompt
        assert prompt.count("UNABLE TO READ FILE") == 2
        assert prompt.endswith("How should I restructure this?")

    @pytest.mark.asyncio
    async def test_prompt_required(self, tool_context):
        """A missing prompt is an error."""
        result = await run(tool_context, "ExpertAdviceTool", {"files": []})
        assert result == {"error": '"prompt" argument is required'}

    @pytest.mark.asyncio
    async def test_file_cut_to_budget(self, tool_context, temp_dir):
        """A file over the budget is cut at the same chars-per-token rate used for estimates."""
        (temp_dir / "big.py").write_text("x" * 1000)
        file_context = await build_file_context(["big.py"], tool_context, budget=10)
        body = file_context.split("\n")[1]
        assert len(body) == int(10 * CHARS_PER_TOKEN)
        assert estimate_tokens(body) <= 10
