"""Write file primitive used to apply approved edits.

Not registered with the model: the model proposes edits through
``propose_edit`` and only the edit review session writes to disk.
"""

from __future__ import annotations

import os
from typing import ClassVar

from pydantic import BaseModel, Field

from codeloop.tool.base import BaseTool, ToolError, ToolOk, ToolResult
from codeloop.tool.builtin.read_file import resolve_path


class WriteFileParams(BaseModel):
    path: str = Field(description="Path to the file to write.")
    content: str = Field(description="Content to write to the file.")


class WriteFileTool(BaseTool[WriteFileParams]):
    """Write content to a file, creating directories as needed."""

    name: ClassVar[str] = "write_file"
    description: ClassVar[str] = (
        "Write content to a file. Creates the file and parent directories if they "
        "don't exist. Overwrites existing content."
    )
    param_model: ClassVar[type[BaseModel]] = WriteFileParams
    body_field: ClassVar[str | None] = "content"

    def __init__(self, cwd: str | None = None) -> None:
        self._cwd = cwd or os.getcwd()

    def read_current(self, path: str) -> str | None:
        """Current content of ``path``, or None when there is no such file."""
        resolved = resolve_path(self._cwd, path)
        if not os.path.isfile(resolved):
            return None
        with open(resolved, "r", errors="replace") as f:
            return f.read()

    async def execute(self, params: WriteFileParams) -> ToolResult:
        path = resolve_path(self._cwd, params.path)

        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "w") as f:
                f.write(params.content)
        except OSError as e:
            return ToolError(output=f"Error writing file: {e}")

        lines = params.content.count("\n") + 1
        return ToolOk(output=f"Wrote {lines} lines to {params.path}", brief=f"Wrote {params.path}")
