"""Propose edit tool: record a full-file replacement for later review.

Nothing is written here. The tool snapshots the current disk content,
validates the proposal, and hands a ``ProposedEdit`` back to the loop.
"""

from __future__ import annotations

import os
import re
from typing import ClassVar

from pydantic import BaseModel, Field

from codeloop.agent.edits import ProposedEdit
from codeloop.tool.base import BaseTool, ToolError, ToolOk, ToolResult
from codeloop.tool.builtin.read_file import resolve_path

# Content the model sometimes emits instead of the real file.
PLACEHOLDER_PATTERNS = [
    re.compile(r"rest of (the )?file", re.IGNORECASE),
    re.compile(r"rest of (the )?code", re.IGNORECASE),
    re.compile(r"rest will remain( the same)?", re.IGNORECASE),
    re.compile(r"remaining (code|file|content)", re.IGNORECASE),
    re.compile(r"\.\.\.\s*(rest|snip|omitted)", re.IGNORECASE),
    re.compile(r"\bTODO:?[^.\n]*rest", re.IGNORECASE),
]


def detect_placeholder(content: str) -> str | None:
    """Return the first placeholder phrase found in ``content``, if any."""
    for pattern in PLACEHOLDER_PATTERNS:
        match = pattern.search(content)
        if match:
            return match.group(0)
    return None


class ProposeEditParams(BaseModel):
    path: str = Field(description="Path of the file to create or replace.")
    description: str = Field(default="", description="One-line summary of the change.")
    content: str = Field(description="The complete new file content.")


class ProposeEditTool(BaseTool[ProposeEditParams]):
    """Propose replacing a file's full content; the user reviews it afterwards."""

    name: ClassVar[str] = "propose_edit"
    description: ClassVar[str] = (
        "Propose a change to a file by giving its complete new content. "
        "The edit is shown to the user for approval after you finish; "
        "never use placeholders such as '... rest of file'."
    )
    param_model: ClassVar[type[BaseModel]] = ProposeEditParams
    body_field: ClassVar[str | None] = "content"

    def __init__(self, cwd: str | None = None) -> None:
        self._cwd = cwd or os.getcwd()

    async def execute(self, params: ProposeEditParams) -> ToolResult:
        path = resolve_path(self._cwd, params.path)
        if os.path.isdir(path):
            return ToolError(output=f"{params.path} is a directory")

        old_content = ""
        if os.path.exists(path):
            with open(path, "r", errors="replace") as f:
                old_content = f.read()

        new_content = params.content
        if old_content and not new_content.strip():
            return ToolError(
                output=(
                    f"Refusing to overwrite {params.path} with empty content. "
                    "Provide the full file content."
                )
            )

        placeholder = detect_placeholder(new_content)
        if placeholder:
            return ToolError(
                output=(
                    f'Proposed edit for {params.path} contains placeholder text '
                    f'("{placeholder.strip()}"). Provide the full file content instead.'
                )
            )

        # The parser strips the body's trailing newline.
        if new_content and not new_content.endswith("\n"):
            new_content += "\n"

        edit = ProposedEdit(
            path=params.path,
            description=params.description,
            old_content=old_content,
            new_content=new_content,
            existed=os.path.exists(path),
        )
        verb = "create" if edit.is_new_file else "update"
        return ToolOk(
            output=f"Proposed edit to {verb} {params.path} recorded; it will be reviewed by the user.",
            brief=f"Proposed {params.path}",
            edit=edit,
        )
