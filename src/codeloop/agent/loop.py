"""The agent loop: call the model, run its tools, feed results back.

One ``AgentLoop`` drives one run:

    IDLE -> ITERATING -> COMPLETED | ABORTED | ITERATION_LIMIT_REACHED

Each iteration sends the whole history to the provider, parses tool
invocations out of the reply and executes them one at a time, in order.
A reply with no invocations is the final answer. A reply whose
invocation signature was already seen in this run aborts the run, as does
a provider failure or a cancellation request. File edits are only
collected; they are reviewed after the loop stops.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from codeloop.agent.edits import EditApprover, EditRecord, EditReviewSession, ProposedEdit
from codeloop.llm.message import Message
from codeloop.llm.provider import ChatProvider
from codeloop.tool.base import ToolInvocation, ToolKind, ToolObservation
from codeloop.tool.parser import parse_tool_calls
from codeloop.tool.registry import ToolRegistry

if TYPE_CHECKING:
    from codeloop.tool.builtin.write_file import WriteFileTool

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10

TOOL_USAGE_PREAMBLE = """\
## Tools

Call a tool by writing its markup in your reply. Attribute values are plain
strings; tools that take content put it between the start and end tags:

    <tool name="read_file" path="src/app.py" />
    <tool name="propose_edit" path="src/app.py" description="fix typo">
    ...complete new file content...
    </tool>

Tools run in the order written and their results come back in the next
message. Reply without any tool markup once the task is done.

Available tools:
"""


class LoopState(enum.Enum):
    IDLE = "idle"
    ITERATING = "iterating"
    COMPLETED = "completed"
    ABORTED = "aborted"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"

    @property
    def is_terminal(self) -> bool:
        return self not in (LoopState.IDLE, LoopState.ITERATING)


class AbortReason(enum.Enum):
    PROVIDER_ERROR = "provider_error"
    REPEATED_TOOL_CALLS = "repeated_tool_calls"
    CANCELLED = "cancelled"


@dataclass
class LoopCallbacks:
    """Optional hooks fired as the loop progresses (see session.bridge)."""

    on_step_begin: Callable[[int, str], None] | None = None
    on_text: Callable[[str], None] | None = None
    on_tool_call: Callable[[str, dict[str, str]], None] | None = None
    on_tool_result: Callable[[str, str, bool], None] | None = None
    on_edit_proposed: Callable[[ProposedEdit], None] | None = None


@dataclass
class LoopOutcome:
    """Everything a caller needs to know about a finished run."""

    state: LoopState
    final_text: str = ""
    iterations: int = 0
    provider_calls: int = 0
    tool_call_count: int = 0
    tools_used: set[str] = field(default_factory=set)
    paths_inspected: set[str] = field(default_factory=set)
    proposed_edits: list[ProposedEdit] = field(default_factory=list)
    edit_records: list[EditRecord] = field(default_factory=list)
    error: str | None = None
    abort_reason: AbortReason | None = None

    def describe(self) -> str:
        """Operator-facing explanation of how the run ended."""
        if self.state is LoopState.COMPLETED:
            return "Completed."
        if self.state is LoopState.ITERATION_LIMIT_REACHED:
            return (
                f"Stopped after {self.iterations} iterations without finishing. "
                "Raise the iteration budget (--max-iterations) or split the task."
            )
        if self.abort_reason is AbortReason.REPEATED_TOOL_CALLS:
            return (
                "The assistant got stuck repeating the same tool calls. "
                "Try rephrasing the task or giving more specific instructions."
            )
        if self.abort_reason is AbortReason.CANCELLED:
            return "The run was cancelled."
        return (
            f"The model provider failed: {self.error}. "
            "Check provider credentials and connectivity."
        )


class AgentLoop:
    """Single-use executor for one agent run.

    Args:
        provider: Where model replies come from.
        tools: Tools this run may invoke.
        system_prompt: Agent instructions; the tool section is appended.
        max_iterations: Tool-executing iterations allowed before giving up.
        approver: Decides on collected edits after the run; without one
            edits are reported but never reviewed.
        writer: Write primitive used to apply approved edits.
        callbacks: Progress hooks.
        cancel_event: Checked before every provider call, tool execution and
            edit review step.
        stream: Consume ``provider.stream()`` instead of ``chat()``.
        agent_name: Used in logs and step notifications.
    """

    def __init__(
        self,
        provider: ChatProvider,
        tools: ToolRegistry,
        system_prompt: str,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        approver: EditApprover | None = None,
        writer: WriteFileTool | None = None,
        callbacks: LoopCallbacks | None = None,
        cancel_event: asyncio.Event | None = None,
        stream: bool = False,
        agent_name: str = "main",
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self._provider = provider
        self._tools = tools
        self._system_prompt = system_prompt
        self._max_iterations = max_iterations
        self._approver = approver
        self._writer = writer
        self._callbacks = callbacks or LoopCallbacks()
        self._cancel_event = cancel_event
        self._stream = stream
        self._agent_name = agent_name

        self.state = LoopState.IDLE
        self.history: list[Message] = []

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    def build_system_prompt(self) -> str:
        if len(self._tools) == 0:
            return self._system_prompt
        return f"{self._system_prompt}\n\n{TOOL_USAGE_PREAMBLE}\n{self._tools.describe()}"

    async def run(self, user_message: str) -> LoopOutcome:
        """Run to a terminal state, then review any collected edits."""
        if self.state is not LoopState.IDLE:
            raise RuntimeError("AgentLoop instances are single-use")

        self.history = [
            Message.system(self.build_system_prompt()),
            Message.user(user_message),
        ]
        self.state = LoopState.ITERATING
        outcome = await self._iterate()
        self.state = outcome.state

        if outcome.state is LoopState.COMPLETED:
            logger.info(
                "Agent %s completed after %d provider calls",
                self._agent_name,
                outcome.provider_calls,
            )
        else:
            logger.warning(
                "Agent %s stopped: %s (%s)",
                self._agent_name,
                outcome.state.value,
                outcome.abort_reason.value if outcome.abort_reason else "-",
            )

        if (
            outcome.proposed_edits
            and outcome.abort_reason is not AbortReason.CANCELLED
            and self._approver is not None
            and self._writer is not None
        ):
            session = EditReviewSession(
                outcome.proposed_edits, self._approver, self._writer, self._cancel_event
            )
            outcome.edit_records = await session.run()

        return outcome

    async def _iterate(self) -> LoopOutcome:
        outcome = LoopOutcome(state=LoopState.ITERATING)
        seen_signatures: set[str] = set()

        while True:
            if self._cancelled():
                return self._abort(outcome, AbortReason.CANCELLED, "Cancelled")

            logger.info(
                "Agent %s: iteration %d/%d",
                self._agent_name,
                outcome.iterations + 1,
                self._max_iterations,
            )
            if self._callbacks.on_step_begin:
                self._callbacks.on_step_begin(outcome.iterations + 1, self._agent_name)

            outcome.provider_calls += 1
            try:
                response = await self._request()
            except Exception as e:
                logger.error(
                    "Agent %s: provider error at iteration %d: %s",
                    self._agent_name,
                    outcome.iterations + 1,
                    e,
                    exc_info=True,
                )
                return self._abort(outcome, AbortReason.PROVIDER_ERROR, str(e) or type(e).__name__)

            parsed = parse_tool_calls(response)
            if not parsed.has_tool_calls:
                self.history.append(Message.assistant(response))
                outcome.state = LoopState.COMPLETED
                outcome.final_text = response
                return outcome

            signature = ",".join(inv.signature for inv in parsed.invocations)
            if signature in seen_signatures:
                logger.warning(
                    "Agent %s: repeated tool calls detected (%s), aborting",
                    self._agent_name,
                    signature,
                )
                self.history.append(Message.assistant(response))
                outcome.final_text = parsed.narration
                return self._abort(
                    outcome,
                    AbortReason.REPEATED_TOOL_CALLS,
                    f"Repeated tool calls detected: {signature}",
                )
            seen_signatures.add(signature)

            observations: list[ToolObservation] = []
            for invocation in parsed.invocations:
                if self._cancelled():
                    return self._abort(outcome, AbortReason.CANCELLED, "Cancelled")
                observations.append(await self._execute(invocation, outcome))

            self.history.append(Message.assistant(response))
            self.history.append(
                Message.user(
                    "Tool Results:\n\n" + "\n\n".join(o.render() for o in observations)
                )
            )
            outcome.iterations += 1

            if outcome.iterations >= self._max_iterations:
                outcome.state = LoopState.ITERATION_LIMIT_REACHED
                annotation = (
                    f"[Incomplete: reached the limit of {self._max_iterations} iterations]"
                )
                outcome.final_text = (
                    f"{parsed.narration}\n\n{annotation}" if parsed.narration else annotation
                )
                return outcome

    async def _request(self) -> str:
        if not self._stream:
            response = await self._provider.chat(self.history)
            if self._callbacks.on_text and response:
                self._callbacks.on_text(response)
            return response

        chunks: list[str] = []
        async for chunk in self._provider.stream(self.history):
            chunks.append(chunk)
            if self._callbacks.on_text:
                self._callbacks.on_text(chunk)
        if chunks:
            return "".join(chunks)

        logger.debug("Empty stream from provider, falling back to chat()")
        response = await self._provider.chat(self.history)
        if self._callbacks.on_text and response:
            self._callbacks.on_text(response)
        return response

    async def _execute(self, invocation: ToolInvocation, outcome: LoopOutcome) -> ToolObservation:
        if self._callbacks.on_tool_call:
            self._callbacks.on_tool_call(invocation.tool_name, invocation.params)

        observation = await self._tools.dispatch(invocation)
        outcome.tool_call_count += 1
        outcome.tools_used.add(invocation.tool_name)

        kind = invocation.kind
        if kind in (ToolKind.READ_FILE, ToolKind.LIST_FILES) and not observation.is_error:
            outcome.paths_inspected.add(invocation.params.get("path", "."))
        elif kind is ToolKind.PROPOSE_EDIT and observation.edit is not None:
            outcome.proposed_edits.append(observation.edit)
            if self._callbacks.on_edit_proposed:
                self._callbacks.on_edit_proposed(observation.edit)

        if self._callbacks.on_tool_result:
            self._callbacks.on_tool_result(
                invocation.tool_name, observation.result_text, observation.is_error
            )
        return observation

    def _cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    @staticmethod
    def _abort(outcome: LoopOutcome, reason: AbortReason, error: str) -> LoopOutcome:
        outcome.state = LoopState.ABORTED
        outcome.abort_reason = reason
        outcome.error = error
        return outcome
