"""Tests for codeloop.tool.builtin."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

from codeloop.agent.subagent import SubAgentResult
from codeloop.tool.builtin import (
    DelegateTool,
    ListFilesTool,
    ProposeEditTool,
    ReadFileTool,
    RunCommandTool,
    SearchTextTool,
    WriteFileTool,
    default_registry,
)
from codeloop.tool.builtin.propose_edit import detect_placeholder


# ---------------------------------------------------------------------------
# read_file
# ---------------------------------------------------------------------------


class TestReadFile:
    async def test_numbered_lines(self, workspace: Path) -> None:
        result = await ReadFileTool(str(workspace))({"path": "src/app.py"})
        assert not result.is_error
        assert result.output == "1: def main():\n2:     return 1"

    async def test_offset_and_limit(self, workspace: Path) -> None:
        (workspace / "long.txt").write_text("\n".join(f"l{i}" for i in range(10)) + "\n")
        result = await ReadFileTool(str(workspace))({"path": "long.txt", "offset": "2", "limit": "3"})
        assert result.output.startswith("3: l2\n4: l3\n5: l4")
        assert "Use offset=5 to continue" in result.output

    async def test_missing_file(self, workspace: Path) -> None:
        result = await ReadFileTool(str(workspace))({"path": "nope.py"})
        assert result.is_error
        assert "File not found" in result.output

    async def test_directory_is_error(self, workspace: Path) -> None:
        result = await ReadFileTool(str(workspace))({"path": "src"})
        assert result.is_error
        assert "list_files" in result.output


# ---------------------------------------------------------------------------
# list_files / search_text
# ---------------------------------------------------------------------------


class TestListFiles:
    async def test_top_level(self, workspace: Path) -> None:
        result = await ListFilesTool(str(workspace))({})
        assert result.output.split("\n") == ["README.md", "src/"]

    async def test_depth(self, workspace: Path) -> None:
        result = await ListFilesTool(str(workspace))({"depth": "2"})
        assert "src/app.py" in result.output.split("\n")

    async def test_skips_ignored_dirs(self, workspace: Path) -> None:
        (workspace / ".git").mkdir()
        result = await ListFilesTool(str(workspace))({})
        assert ".git/" not in result.output

    async def test_missing_directory(self, workspace: Path) -> None:
        result = await ListFilesTool(str(workspace))({"path": "nowhere"})
        assert result.is_error


class TestSearchText:
    async def test_finds_matches(self, workspace: Path) -> None:
        result = await SearchTextTool(str(workspace))({"pattern": r"return \d"})
        assert result.output == "src/app.py:2:     return 1"

    async def test_no_matches(self, workspace: Path) -> None:
        result = await SearchTextTool(str(workspace))({"pattern": "zzz"})
        assert not result.is_error
        assert result.output == "No matches found."

    async def test_bad_pattern(self, workspace: Path) -> None:
        result = await SearchTextTool(str(workspace))({"pattern": "("})
        assert result.is_error


# ---------------------------------------------------------------------------
# propose_edit / write_file
# ---------------------------------------------------------------------------


class TestProposeEdit:
    async def test_existing_file_snapshot(self, workspace: Path) -> None:
        tool = ProposeEditTool(str(workspace))
        result = await tool({"path": "src/app.py", "description": "return 2"}, "def main():\n    return 2")
        assert not result.is_error
        edit = result.edit
        assert edit is not None
        assert edit.old_content == "def main():\n    return 1\n"
        assert edit.new_content == "def main():\n    return 2\n"
        assert edit.description == "return 2"
        assert not edit.is_new_file
        # Nothing written
        assert (workspace / "src" / "app.py").read_text() == "def main():\n    return 1\n"

    async def test_new_file(self, workspace: Path) -> None:
        result = await ProposeEditTool(str(workspace))({"path": "src/new.py"}, "x = 1")
        assert result.edit is not None
        assert result.edit.is_new_file
        assert not (workspace / "src" / "new.py").exists()

    async def test_existing_empty_file_is_not_new(self, workspace: Path) -> None:
        (workspace / "empty.py").write_text("")
        result = await ProposeEditTool(str(workspace))({"path": "empty.py"}, "x = 1")
        assert result.edit is not None
        assert result.edit.old_content == ""
        assert not result.edit.is_new_file

    async def test_refuses_empty_overwrite(self, workspace: Path) -> None:
        result = await ProposeEditTool(str(workspace))({"path": "src/app.py"}, "   ")
        assert result.is_error
        assert result.edit is None
        assert "Refusing to overwrite" in result.output

    async def test_refuses_placeholder(self, workspace: Path) -> None:
        body = "def main():\n    # ... rest of the file unchanged"
        result = await ProposeEditTool(str(workspace))({"path": "src/app.py"}, body)
        assert result.is_error
        assert result.edit is None
        assert "placeholder" in result.output

    def test_detect_placeholder(self) -> None:
        assert detect_placeholder("// ...rest omitted") is not None
        assert detect_placeholder("remaining code here") is not None
        assert detect_placeholder("def rest_api():\n    pass") is None


class TestWriteFile:
    async def test_writes_and_creates_dirs(self, workspace: Path) -> None:
        result = await WriteFileTool(str(workspace))({"path": "pkg/mod.py"}, "a = 1\n")
        assert not result.is_error
        assert (workspace / "pkg" / "mod.py").read_text() == "a = 1\n"

    def test_read_current(self, workspace: Path) -> None:
        tool = WriteFileTool(str(workspace))
        assert tool.read_current("src/app.py") == "def main():\n    return 1\n"
        assert tool.read_current("missing.py") is None
        assert tool.read_current("src") is None


# ---------------------------------------------------------------------------
# run_command
# ---------------------------------------------------------------------------


class TestRunCommand:
    async def test_success(self, workspace: Path) -> None:
        result = await RunCommandTool(str(workspace))({"command": "echo hello"})
        assert not result.is_error
        assert result.output.strip() == "hello"

    async def test_runs_in_cwd(self, workspace: Path) -> None:
        result = await RunCommandTool(str(workspace))({"command": "ls"})
        assert "README.md" in result.output

    async def test_nonzero_exit(self, workspace: Path) -> None:
        result = await RunCommandTool(str(workspace))({"command": "echo oops; exit 3"})
        assert result.is_error
        assert result.output.startswith("[Exit code: 3]")
        assert "oops" in result.output

    async def test_timeout(self, workspace: Path) -> None:
        result = await RunCommandTool(str(workspace))({"command": "sleep 5", "timeout": "1"})
        assert result.is_error
        assert "timed out" in result.output


# ---------------------------------------------------------------------------
# delegate
# ---------------------------------------------------------------------------


class TestDelegate:
    async def test_returns_summary(self) -> None:
        dispatch = AsyncMock(return_value=SubAgentResult(success=True, output="long", summary="short"))
        tool = DelegateTool(dispatch_fn=dispatch)
        result = await tool({"agent": "explorer"}, "find main")
        assert result.output == "short"
        dispatch.assert_awaited_once_with("explorer", "find main")

    async def test_failed_result_is_error(self) -> None:
        dispatch = AsyncMock(return_value=SubAgentResult.failure("Task timeout after 5ms"))
        result = await DelegateTool(dispatch_fn=dispatch)({"agent": "explorer"}, "x")
        assert result.is_error
        assert "Task timeout after 5ms" in result.output

    async def test_dispatch_exception_is_error(self) -> None:
        dispatch = AsyncMock(side_effect=LookupError("Agent not found: ghost"))
        result = await DelegateTool(dispatch_fn=dispatch)({"agent": "ghost"}, "x")
        assert result.is_error
        assert "Agent not found: ghost" in result.output

    async def test_not_configured(self) -> None:
        result = await DelegateTool()({"agent": "a"}, "x")
        assert result.is_error

    def test_prompt_spec_lists_agents(self) -> None:
        spec = DelegateTool(agent_names=["explorer", "code-reviewer"]).to_prompt_spec()
        assert '<tool name="delegate" agent="...">task</tool>' in spec
        assert "available agents: explorer, code-reviewer" in spec


def test_default_registry_hides_write_primitive(workspace: Path) -> None:
    names = default_registry(str(workspace)).names()
    assert names == ["read_file", "list_files", "search_text", "propose_edit", "run_command"]
    assert "write_file" not in names
