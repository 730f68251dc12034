"""List files tool."""

from __future__ import annotations

import os
from typing import ClassVar

from pydantic import BaseModel, Field

from codeloop.tool.base import BaseTool, ToolError, ToolOk, ToolResult
from codeloop.tool.builtin.read_file import resolve_path

# Directories never worth showing the model.
IGNORED_DIRS = frozenset(
    {".git", "node_modules", "__pycache__", ".venv", "venv", ".mypy_cache", ".pytest_cache"}
)


class ListFilesParams(BaseModel):
    path: str = Field(default=".", description="Directory to list.")
    depth: int = Field(
        default=1, ge=1, le=10, description="How many directory levels to descend."
    )


class ListFilesTool(BaseTool[ListFilesParams]):
    """List a directory tree, directories suffixed with ``/``."""

    name: ClassVar[str] = "list_files"
    description: ClassVar[str] = (
        "List files and directories. Directories end with '/'. "
        "Increase depth to see nested entries."
    )
    param_model: ClassVar[type[BaseModel]] = ListFilesParams

    def __init__(self, cwd: str | None = None) -> None:
        self._cwd = cwd or os.getcwd()

    async def execute(self, params: ListFilesParams) -> ToolResult:
        root = resolve_path(self._cwd, params.path)
        if not os.path.isdir(root):
            return ToolError(output=f"Directory not found: {params.path}")

        try:
            entries = _walk(root, params.depth)
        except PermissionError:
            return ToolError(output=f"Permission denied: {params.path}")

        if not entries:
            return ToolOk(output="(empty directory)", brief=f"Listed {params.path}")
        return ToolOk(
            output="\n".join(entries),
            brief=f"Listed {len(entries)} entries in {params.path}",
        )


def _walk(root: str, depth: int, prefix: str = "") -> list[str]:
    lines: list[str] = []
    for entry in sorted(os.listdir(root)):
        full = os.path.join(root, entry)
        rel = f"{prefix}{entry}"
        if os.path.isdir(full):
            if entry in IGNORED_DIRS:
                continue
            lines.append(f"{rel}/")
            if depth > 1:
                lines.extend(_walk(full, depth - 1, f"{rel}/"))
        else:
            lines.append(rel)
    return lines
