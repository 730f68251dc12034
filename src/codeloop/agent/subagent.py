"""Sub-agents: one isolated agent loop bound to an AgentDefinition.

A sub-agent owns its message history, sees only the tools its definition
allows, and reports a complete ``SubAgentResult`` whatever happens inside
the loop. Instances are single-use.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from codeloop.agent.definition import AgentDefinition
from codeloop.agent.edits import EditApprover
from codeloop.agent.loop import DEFAULT_MAX_ITERATIONS, AgentLoop, LoopOutcome, LoopState
from codeloop.llm.message import Message, estimate_tokens
from codeloop.llm.provider import ChatProvider
from codeloop.tool.registry import ToolRegistry

if TYPE_CHECKING:
    from codeloop.session.wire import Wire
    from codeloop.tool.builtin.write_file import WriteFileTool

logger = logging.getLogger(__name__)

SUMMARY_MAX_CHARS = 500
SUMMARY_TRUNCATION_MARKER = "[... output truncated ...]"
# Typical task length, used only for the running progress estimate.
ESTIMATED_TASK_MS = 30_000

# Sub-agents never get the delegation tool.
DELEGATE_TOOL_NAME = "delegate"


class SubAgentStatus(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class SubAgentMetadata:
    tokens_used: int = 0
    duration_ms: int = 0
    tool_call_count: int = 0
    tools_used: frozenset[str] = frozenset()
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class SubAgentResult:
    """Outcome of one delegated task. Built once, never updated."""

    success: bool
    output: str
    summary: str
    metadata: SubAgentMetadata = field(default_factory=SubAgentMetadata)
    error: str | None = None

    @classmethod
    def failure(
        cls, error: str, metadata: SubAgentMetadata | None = None, prefix: str = "Failed"
    ) -> SubAgentResult:
        meta = metadata or SubAgentMetadata()
        if error not in meta.errors:
            meta = SubAgentMetadata(
                tokens_used=meta.tokens_used,
                duration_ms=meta.duration_ms,
                tool_call_count=meta.tool_call_count,
                tools_used=meta.tools_used,
                errors=(*meta.errors, error),
            )
        return cls(success=False, output="", summary=f"{prefix}: {error}", metadata=meta, error=error)


@dataclass
class ExecutionContext:
    """Optional per-task context handed to ``SubAgent.execute``."""

    cwd: str | None = None
    files: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutionConfig:
    """Shared execution settings for every sub-agent an orchestrator creates."""

    provider: ChatProvider
    tools: ToolRegistry
    cwd: str | None = None
    max_iterations: int | None = None
    approver: EditApprover | None = None
    writer: WriteFileTool | None = None
    wire: Wire | None = None
    stream: bool = False


@dataclass(frozen=True)
class SubAgentStatusInfo:
    id: str
    name: str
    status: SubAgentStatus
    start_time: float | None
    end_time: float | None
    current_task: str | None
    progress: int


def generate_agent_id() -> str:
    return f"agent_{secrets.token_hex(8)}"


def summarize_output(output: str, max_chars: int = SUMMARY_MAX_CHARS) -> str:
    """Bounded prefix of ``output`` cut at a line boundary.

    Blank lines are dropped. If anything was left out the summary ends with
    an explicit truncation marker.
    """
    lines = [line for line in output.split("\n") if line.strip()]
    kept: list[str] = []
    count = 0
    for line in lines:
        if count + len(line) > max_chars:
            break
        kept.append(line)
        count += len(line)

    if not kept and lines:
        # A single very long first line: cut it rather than return nothing.
        kept.append(lines[0][:max_chars])

    summary = "\n".join(kept)
    if len(kept) < len(lines) or (kept and kept[-1] != lines[len(kept) - 1]):
        summary += f"\n\n{SUMMARY_TRUNCATION_MARKER}"
    return summary.strip()


class SubAgent:
    """Runs one task through a fresh AgentLoop for ``definition``."""

    def __init__(self, definition: AgentDefinition, config: ExecutionConfig) -> None:
        self.id = generate_agent_id()
        self.definition = definition
        self._config = config
        self._provider = _provider_for(definition, config.provider)
        self._tools = config.tools.without(DELEGATE_TOOL_NAME).subset(
            definition.allowed_tools, owner=definition.name
        )
        self._cancel = asyncio.Event()
        self._loop: AgentLoop | None = None

        self.status = SubAgentStatus.IDLE
        self.current_task: str | None = None
        self.start_time: float | None = None
        self.end_time: float | None = None
        self.error: str | None = None

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def max_iterations(self) -> int:
        return (
            self.definition.max_iterations
            or self._config.max_iterations
            or DEFAULT_MAX_ITERATIONS
        )

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    def build_system_prompt(self, context: ExecutionContext | None = None) -> str:
        prompt = self.definition.system_prompt
        if context is not None and context.metadata:
            rendered = "\n".join(f"- {k}: {v}" for k, v in context.metadata.items())
            prompt += f"\n\n## Context\n{rendered}"
        return prompt

    def build_task_message(self, task: str, context: ExecutionContext | None = None) -> str:
        message = task
        if context is None:
            return message
        if context.files:
            message += "\n\n## Relevant Files\n" + "\n".join(f"- {f}" for f in context.files)
        if context.cwd:
            message += f"\n\n## Working Directory\n{context.cwd}"
        return message

    async def execute(self, task: str, context: ExecutionContext | None = None) -> SubAgentResult:
        """Run ``task`` to completion. Never raises."""
        if self.status is not SubAgentStatus.IDLE:
            return SubAgentResult.failure(
                self.error or f"Sub-agent {self.id} has already been used"
            )

        self.current_task = task
        self.status = SubAgentStatus.RUNNING
        self.start_time = time.time()
        logger.info("SubAgent %s (%s) starting: %.50s", self.name, self.id, task)

        wire = self._config.wire
        if wire is not None:
            wire.send_subagent_begin(self.name, self.id, task)

        outcome: LoopOutcome | None = None
        try:
            self._loop = AgentLoop(
                provider=self._provider,
                tools=self._tools,
                system_prompt=self.build_system_prompt(context),
                max_iterations=self.max_iterations,
                approver=self._config.approver,
                writer=self._config.writer,
                callbacks=_callbacks_for(wire, self.name),
                cancel_event=self._cancel,
                stream=self._config.stream,
                agent_name=self.name,
            )
            outcome = await self._loop.run(self.build_task_message(task, context))
        except Exception as e:
            logger.error("SubAgent %s failed: %s", self.name, e, exc_info=True)
            result = SubAgentResult.failure(str(e) or type(e).__name__, self._metadata(None))
        else:
            result = self._result_from(outcome)
        finally:
            self.end_time = time.time()

        if self.status is SubAgentStatus.RUNNING:
            self.status = SubAgentStatus.COMPLETED if result.success else SubAgentStatus.FAILED
        if not result.success:
            self.error = result.error

        if wire is not None:
            wire.send_subagent_end(self.name, self.id, result.success, result.summary)
        logger.info(
            "SubAgent %s finished (%s) in %dms",
            self.name,
            "ok" if result.success else "failed",
            result.metadata.duration_ms,
        )
        return result

    def abort(self) -> None:
        """Mark the run failed and ask the loop to stop at its next checkpoint.

        An in-flight provider call or tool execution is not interrupted.
        """
        logger.info("SubAgent %s (%s): abort requested", self.name, self.id)
        self._cancel.set()
        if self.status in (SubAgentStatus.IDLE, SubAgentStatus.RUNNING):
            self.status = SubAgentStatus.FAILED
            self.error = "Aborted by user"
            self.end_time = time.time()

    @property
    def aborted(self) -> bool:
        return self._cancel.is_set()

    def get_status(self) -> SubAgentStatusInfo:
        return SubAgentStatusInfo(
            id=self.id,
            name=self.name,
            status=self.status,
            start_time=self.start_time,
            end_time=self.end_time,
            current_task=self.current_task,
            progress=self._progress(),
        )

    def get_messages(self) -> list[Message]:
        """Copy of this sub-agent's conversation history."""
        return list(self._loop.history) if self._loop else []

    def _progress(self) -> int:
        if self.status is SubAgentStatus.IDLE:
            return 0
        if self.status in (SubAgentStatus.COMPLETED, SubAgentStatus.FAILED):
            return 100
        if self.start_time is None:
            return 0
        elapsed_ms = (time.time() - self.start_time) * 1000
        return min(95, int(elapsed_ms / ESTIMATED_TASK_MS * 100))

    def _metadata(self, outcome: LoopOutcome | None, output: str = "") -> SubAgentMetadata:
        duration_ms = int(((self.end_time or time.time()) - (self.start_time or time.time())) * 1000)
        if outcome is None:
            return SubAgentMetadata(tokens_used=estimate_tokens(output), duration_ms=duration_ms)
        return SubAgentMetadata(
            tokens_used=estimate_tokens(output),
            duration_ms=duration_ms,
            tool_call_count=outcome.tool_call_count,
            tools_used=frozenset(outcome.tools_used),
        )

    def _result_from(self, outcome: LoopOutcome) -> SubAgentResult:
        self.end_time = time.time()
        if outcome.state is LoopState.ABORTED:
            error = outcome.error or outcome.describe()
            if self.aborted:
                error = self.error or "Aborted by user"
            return SubAgentResult.failure(error, self._metadata(outcome))

        output = outcome.final_text
        return SubAgentResult(
            success=True,
            output=output,
            summary=summarize_output(output),
            metadata=self._metadata(outcome, output),
        )


def _provider_for(definition: AgentDefinition, provider: ChatProvider) -> ChatProvider:
    model = None if definition.inherits_model else definition.model
    if model is None and definition.temperature is None:
        return provider
    configured = getattr(provider, "configured", None)
    if configured is None:
        logger.warning(
            "Provider %s does not support per-agent overrides; %s uses it as is",
            type(provider).__name__,
            definition.name,
        )
        return provider
    return configured(model=model, temperature=definition.temperature)


def _callbacks_for(wire: Wire | None, agent_name: str):
    if wire is None:
        return None
    from codeloop.session.bridge import make_loop_callbacks

    return make_loop_callbacks(wire, agent_name)
