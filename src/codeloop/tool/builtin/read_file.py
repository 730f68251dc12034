"""Read file tool."""

from __future__ import annotations

import os
from typing import ClassVar

from pydantic import BaseModel, Field

from codeloop.tool.base import BaseTool, ToolError, ToolOk, ToolResult


class ReadFileParams(BaseModel):
    path: str = Field(description="Path to the file, relative to the working directory.")
    offset: int = Field(
        default=0, ge=0, description="Line number to start reading from (0-indexed)."
    )
    limit: int = Field(default=2000, gt=0, description="Maximum number of lines to read.")


class ReadFileTool(BaseTool[ReadFileParams]):
    """Read file contents as numbered lines, with optional offset and limit."""

    name: ClassVar[str] = "read_file"
    description: ClassVar[str] = (
        "Read the contents of a file. Returns numbered lines. "
        "Use offset and limit for large files."
    )
    param_model: ClassVar[type[BaseModel]] = ReadFileParams

    def __init__(self, cwd: str | None = None) -> None:
        self._cwd = cwd or os.getcwd()

    async def execute(self, params: ReadFileParams) -> ToolResult:
        path = resolve_path(self._cwd, params.path)

        if not os.path.exists(path):
            return ToolError(output=f"File not found: {params.path}")
        if os.path.isdir(path):
            return ToolError(
                output=f"{params.path} is a directory. Use list_files to inspect it."
            )

        try:
            with open(path, "r", errors="replace") as f:
                all_lines = f.readlines()
        except PermissionError:
            return ToolError(output=f"Permission denied: {params.path}")

        total = len(all_lines)
        start = min(params.offset, total)
        end = min(start + params.limit, total)

        numbered = [
            f"{i}: {line.rstrip()}"
            for i, line in enumerate(all_lines[start:end], start=start + 1)
        ]
        result = "\n".join(numbered)
        if end < total:
            result += f"\n\n[{total - end} more lines. Use offset={end} to continue.]"
        if total == 0:
            result = "(empty file)"

        return ToolOk(
            output=result,
            brief=f"Read {params.path} ({end - start}/{total} lines)",
        )


def resolve_path(cwd: str, path: str) -> str:
    """Resolve ``path`` against ``cwd`` unless it is already absolute."""
    path = os.path.expanduser(path)
    if not os.path.isabs(path):
        path = os.path.join(cwd, path)
    return os.path.normpath(path)
