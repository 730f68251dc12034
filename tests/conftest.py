"""Shared fixtures: a scripted provider, a workspace, tools and approvers."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

import pytest

from codeloop.agent.edits import EditDecision, ProposedEdit
from codeloop.llm.message import Message
from codeloop.tool.builtin import WriteFileTool, default_registry
from codeloop.tool.registry import ToolRegistry

FINAL_ANSWER = "All done."


class ScriptedProvider:
    """Replays canned replies and records every history it was sent.

    Entries may be strings or exceptions (raised instead of replying).
    Once the script runs out the provider answers ``FINAL_ANSWER``.
    """

    def __init__(self, responses: Sequence[str | BaseException] = (), delay: float = 0.0) -> None:
        self._responses = list(responses)
        self.delay = delay
        self.histories: list[list[Message]] = []

    @property
    def calls(self) -> int:
        return len(self.histories)

    async def chat(self, history: Sequence[Message]) -> str:
        self.histories.append(list(history))
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self._responses:
            return FINAL_ANSWER
        reply = self._responses.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def stream(self, history: Sequence[Message]) -> AsyncIterator[str]:
        text = await self.chat(history)
        for i in range(0, len(text), 8):
            yield text[i : i + 8]


class RecordingApprover:
    """Returns scripted decisions and remembers what it was shown."""

    def __init__(self, decisions: Sequence[EditDecision]) -> None:
        self._decisions = list(decisions)
        self.seen: list[tuple[ProposedEdit, list[str]]] = []

    async def decide(self, edit: ProposedEdit, diff_lines: list[str]) -> EditDecision:
        self.seen.append((edit, diff_lines))
        return self._decisions.pop(0)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text("def main():\n    return 1\n")
    (root / "README.md").write_text("# Demo\n")
    return root


@pytest.fixture
def tools(workspace: Path) -> ToolRegistry:
    return default_registry(str(workspace))


@pytest.fixture
def writer(workspace: Path) -> WriteFileTool:
    return WriteFileTool(str(workspace))


@pytest.fixture
def make_provider() -> type[ScriptedProvider]:
    return ScriptedProvider


@pytest.fixture
def make_approver() -> type[RecordingApprover]:
    return RecordingApprover
