"""Delegate tool: hand a task to a named sub-agent."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, ClassVar

from pydantic import BaseModel, Field

from codeloop.tool.base import BaseTool, ToolError, ToolOk, ToolResult

if TYPE_CHECKING:
    from codeloop.agent.subagent import SubAgentResult

DispatchFn = Callable[[str, str], Awaitable["SubAgentResult"]]


class DelegateParams(BaseModel):
    agent: str = Field(description="Name of the sub-agent to delegate to.")
    task: str = Field(description="Detailed task instructions for the sub-agent.")


class DelegateTool(BaseTool[DelegateParams]):
    """Dispatch a task to a specialist sub-agent.

    Only the main agent gets this tool; sub-agents cannot delegate further.
    Each sub-agent runs in its own context and its summary comes back as
    the observation.
    """

    name: ClassVar[str] = "delegate"
    description: ClassVar[str] = (
        "Delegate a self-contained task to a specialist sub-agent. "
        "The sub-agent works independently and returns a summary of its findings."
    )
    param_model: ClassVar[type[BaseModel]] = DelegateParams
    body_field: ClassVar[str | None] = "task"

    def __init__(self, dispatch_fn: DispatchFn | None = None, agent_names: list[str] | None = None) -> None:
        self._dispatch_fn = dispatch_fn
        self._agent_names = agent_names or []

    def to_prompt_spec(self) -> str:
        spec = super().to_prompt_spec()
        if self._agent_names:
            spec += f"\n    available agents: {', '.join(self._agent_names)}"
        return spec

    async def execute(self, params: DelegateParams) -> ToolResult:
        if self._dispatch_fn is None:
            return ToolError(output="Sub-agent dispatch not configured.")

        try:
            result = await self._dispatch_fn(params.agent, params.task)
        except Exception as e:
            return ToolError(output=f"Delegation failed: {e}")

        if not result.success:
            return ToolError(
                output=f"Sub-agent {params.agent} failed: {result.error}",
                brief=f"{params.agent} failed",
            )
        return ToolOk(output=result.summary, brief=f"Delegated to {params.agent}")
