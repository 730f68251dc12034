"""Built-in tool executors."""

from codeloop.tool.builtin.delegate import DelegateTool
from codeloop.tool.builtin.list_files import ListFilesTool
from codeloop.tool.builtin.propose_edit import ProposeEditTool
from codeloop.tool.builtin.read_file import ReadFileTool
from codeloop.tool.builtin.run_command import RunCommandTool
from codeloop.tool.builtin.search_text import SearchTextTool
from codeloop.tool.builtin.write_file import WriteFileTool
from codeloop.tool.registry import ToolRegistry

__all__ = [
    "DelegateTool",
    "ListFilesTool",
    "ProposeEditTool",
    "ReadFileTool",
    "RunCommandTool",
    "SearchTextTool",
    "WriteFileTool",
    "default_registry",
]


def default_registry(cwd: str | None = None) -> ToolRegistry:
    """Registry with every model-facing built-in tool, rooted at ``cwd``."""
    registry = ToolRegistry()
    registry.register_many(
        [
            ReadFileTool(cwd),
            ListFilesTool(cwd),
            SearchTextTool(cwd),
            ProposeEditTool(cwd),
            RunCommandTool(cwd),
        ]
    )
    return registry
