"""Search text tool: regex search across the working tree."""

from __future__ import annotations

import os
import re
from typing import ClassVar

from pydantic import BaseModel, Field

from codeloop.tool.base import BaseTool, ToolError, ToolOk, ToolResult
from codeloop.tool.builtin.list_files import IGNORED_DIRS
from codeloop.tool.builtin.read_file import resolve_path


class SearchTextParams(BaseModel):
    pattern: str = Field(description="Regular expression to search for.")
    path: str = Field(default=".", description="File or directory to search in.")
    max_results: int = Field(default=100, gt=0, description="Stop after this many matches.")


class SearchTextTool(BaseTool[SearchTextParams]):
    name: ClassVar[str] = "search_text"
    description: ClassVar[str] = (
        "Search files for a regular expression. Returns path:line: text for each match."
    )
    param_model: ClassVar[type[BaseModel]] = SearchTextParams

    def __init__(self, cwd: str | None = None) -> None:
        self._cwd = cwd or os.getcwd()

    async def execute(self, params: SearchTextParams) -> ToolResult:
        try:
            regex = re.compile(params.pattern)
        except re.error as e:
            return ToolError(output=f"Invalid pattern: {e}")

        root = resolve_path(self._cwd, params.path)
        if not os.path.exists(root):
            return ToolError(output=f"Path not found: {params.path}")

        matches: list[str] = []
        for file_path in _iter_files(root):
            try:
                with open(file_path, "r", errors="strict") as f:
                    for lineno, line in enumerate(f, start=1):
                        if regex.search(line):
                            rel = os.path.relpath(file_path, self._cwd)
                            matches.append(f"{rel}:{lineno}: {line.rstrip()}")
                            if len(matches) >= params.max_results:
                                break
            except (UnicodeDecodeError, PermissionError):
                continue  # binary or unreadable
            if len(matches) >= params.max_results:
                break

        if not matches:
            return ToolOk(output="No matches found.", brief="0 matches")
        return ToolOk(output="\n".join(matches), brief=f"{len(matches)} matches")


def _iter_files(root: str):
    if os.path.isfile(root):
        yield root
        return
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
        for name in sorted(filenames):
            yield os.path.join(dirpath, name)
