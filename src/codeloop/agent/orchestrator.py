"""Orchestrator: route tasks to sub-agents and collect their results.

The orchestrator owns the registry handle and the set of live sub-agents.
``delegate_task`` races one sub-agent against a timeout;
``delegate_parallel`` fans out many and always returns one result per
task, in input order. ``process_message`` runs the main agent, which can
reach the sub-agents through the ``delegate`` tool.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

from codeloop.agent.definition import AgentDefinition
from codeloop.agent.errors import AgentDisabledError, AgentNotFoundError, DelegationTimeoutError
from codeloop.agent.loop import DEFAULT_MAX_ITERATIONS, AgentLoop, LoopOutcome
from codeloop.agent.registry import AgentRegistry, AgentScope
from codeloop.agent.subagent import (
    ExecutionConfig,
    ExecutionContext,
    SubAgent,
    SubAgentMetadata,
    SubAgentResult,
    SubAgentStatusInfo,
)
from codeloop.config import AgentSettings
from codeloop.tool.builtin.delegate import DelegateTool

logger = logging.getLogger(__name__)

MAIN_AGENT_NAME = "main"

MAIN_SYSTEM_PROMPT = """\
You are a coding assistant working in a local repository. Read and search the
code before changing it, propose complete file contents when you edit, and
explain what you did when you are finished."""


@dataclass(frozen=True)
class ParallelTask:
    """One entry for ``delegate_parallel``."""

    agent: str
    task: str
    timeout_ms: int | None = None
    context: ExecutionContext | None = None


class AgentOrchestrator:
    """Delegation front door for the CLI (or any other caller).

    Args:
        registry: Loaded agent registry.
        config: Provider, tools and approval hooks shared by every agent.
        settings: Delegation defaults (timeout, cancel-on-timeout).
    """

    def __init__(
        self,
        registry: AgentRegistry,
        config: ExecutionConfig,
        settings: AgentSettings | None = None,
    ) -> None:
        self._registry = registry
        self._config = config
        self._settings = settings or AgentSettings()
        self._active: dict[str, SubAgent] = {}
        self._background: set[asyncio.Task[SubAgentResult]] = set()

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Main agent
    # ------------------------------------------------------------------

    async def process_message(self, message: str) -> LoopOutcome:
        """Run the top-level agent on ``message`` with every tool available."""
        enabled = self._registry.get_enabled_agents()
        tools = self._config.tools.without()
        if enabled:
            tools.register(
                DelegateTool(
                    dispatch_fn=lambda agent, task: self.delegate_task(agent, task),
                    agent_names=[d.name for d in enabled],
                )
            )

        callbacks = None
        if self._config.wire is not None:
            from codeloop.session.bridge import make_loop_callbacks

            callbacks = make_loop_callbacks(self._config.wire)

        loop = AgentLoop(
            provider=self._config.provider,
            tools=tools,
            system_prompt=self._main_system_prompt(enabled),
            max_iterations=self._config.max_iterations or DEFAULT_MAX_ITERATIONS,
            approver=self._config.approver,
            writer=self._config.writer,
            callbacks=callbacks,
            stream=self._config.stream,
            agent_name=MAIN_AGENT_NAME,
        )
        return await loop.run(message)

    def _main_system_prompt(self, enabled: Sequence[AgentDefinition]) -> str:
        prompt = MAIN_SYSTEM_PROMPT
        if self._config.cwd:
            prompt += f"\n\n## Working Directory\n{self._config.cwd}"
        if enabled:
            lines = "\n".join(f"- {d.name}: {d.description}" for d in enabled)
            prompt += (
                "\n\n## Sub-agents\n"
                "Use the delegate tool for self-contained work one of these "
                f"specialists handles well:\n{lines}"
            )
        return prompt

    # ------------------------------------------------------------------
    # Delegation
    # ------------------------------------------------------------------

    async def delegate_task(
        self,
        agent_name: str,
        task: str,
        timeout_ms: int | None = None,
        context: ExecutionContext | None = None,
    ) -> SubAgentResult:
        """Run ``task`` on the named sub-agent, bounded by ``timeout_ms``.

        Raises:
            AgentNotFoundError: no agent named ``agent_name``.
            AgentDisabledError: the agent exists but is disabled.
            ValueError: ``timeout_ms`` is not positive.

        Everything that goes wrong after that, timeouts included, comes back
        as a failed ``SubAgentResult``.
        """
        definition = self._registry.get_agent(agent_name)
        if definition is None:
            raise AgentNotFoundError(agent_name)
        if not definition.enabled:
            raise AgentDisabledError(agent_name)

        if timeout_ms is not None and timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {timeout_ms}")
        effective_timeout = (
            timeout_ms if timeout_ms is not None else self._settings.delegation_timeout_ms
        )
        context = self._context_for(context, timeout_ms)

        sub_agent = SubAgent(definition, self._config)
        self._active[sub_agent.id] = sub_agent
        logger.info("Delegating to %s (%s): %.50s", agent_name, sub_agent.id, task)

        started = time.monotonic()
        execution = asyncio.create_task(
            sub_agent.execute(task, context), name=f"subagent-{sub_agent.id}"
        )
        try:
            done, _ = await asyncio.wait({execution}, timeout=effective_timeout / 1000)
            if execution in done:
                result = _settled_result(execution)
                logger.info(
                    "Task %s by %s", "completed" if result.success else "failed", agent_name
                )
                return result

            self._abandon(sub_agent, execution)
            error = str(DelegationTimeoutError(effective_timeout))
            logger.warning("Task for %s timed out after %dms", agent_name, effective_timeout)
            return SubAgentResult.failure(
                error,
                SubAgentMetadata(duration_ms=int((time.monotonic() - started) * 1000)),
            )
        except asyncio.CancelledError:
            sub_agent.abort()
            execution.cancel()
            raise
        finally:
            self._active.pop(sub_agent.id, None)

    async def delegate_parallel(self, tasks: Sequence[ParallelTask]) -> list[SubAgentResult]:
        """Run every task concurrently; one result per task, in input order."""
        logger.info("Running %d agents in parallel", len(tasks))
        outcomes = await asyncio.gather(
            *(self.delegate_task(t.agent, t.task, t.timeout_ms, t.context) for t in tasks),
            return_exceptions=True,
        )

        results: list[SubAgentResult] = []
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                results.append(
                    SubAgentResult.failure(
                        str(outcome) or type(outcome).__name__,
                        prefix="Parallel execution failed",
                    )
                )
            else:
                results.append(outcome)
        return results

    @staticmethod
    def aggregate_results(results: Sequence[SubAgentResult]) -> str:
        """Render results as one markdown report with a metrics footer."""
        successful = [r for r in results if r.success]
        failed = [r for r in results if not r.success]

        parts: list[str] = []
        if successful:
            parts.append(f"## Successful Tasks ({len(successful)})\n")
            for i, r in enumerate(successful, start=1):
                parts.append(f"### Task {i}\n{r.summary}\n")
        if failed:
            parts.append(f"## Failed Tasks ({len(failed)})\n")
            for i, r in enumerate(failed, start=1):
                parts.append(f"### Task {i}\n{r.error}\n")

        total_tokens = sum(r.metadata.tokens_used for r in results)
        total_duration_ms = sum(r.metadata.duration_ms for r in results)
        total_tool_calls = sum(r.metadata.tool_call_count for r in results)
        parts.append(
            "## Metrics\n"
            f"- Total Tokens: {total_tokens:,}\n"
            f"- Total Duration: {total_duration_ms / 1000:.2f}s\n"
            f"- Total Tool Calls: {total_tool_calls}\n"
        )
        return "\n".join(parts)

    def _context_for(
        self, context: ExecutionContext | None, timeout_ms: int | None
    ) -> ExecutionContext:
        if context is None:
            context = ExecutionContext(cwd=self._config.cwd)
        elif context.cwd is None:
            context = dataclasses.replace(context, cwd=self._config.cwd)
        if timeout_ms is not None and "timeout_ms" not in context.metadata:
            context = dataclasses.replace(
                context, metadata={**context.metadata, "timeout_ms": timeout_ms}
            )
        return context

    def _abandon(self, sub_agent: SubAgent, execution: asyncio.Task[SubAgentResult]) -> None:
        # Keep a reference so the task is not collected while it winds down.
        self._background.add(execution)
        execution.add_done_callback(self._background.discard)
        if self._settings.cancel_on_timeout:
            sub_agent.abort()

    async def wait_background(self) -> None:
        """Wait for abandoned (timed-out) executions to settle."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_agent_status(self, agent_id: str) -> SubAgentStatusInfo | None:
        sub_agent = self._active.get(agent_id)
        return sub_agent.get_status() if sub_agent else None

    def get_all_active_agents(self) -> list[SubAgentStatusInfo]:
        return [a.get_status() for a in self._active.values()]

    # ------------------------------------------------------------------
    # Registry pass-through
    # ------------------------------------------------------------------

    def list_available_agents(self) -> list[AgentDefinition]:
        return self._registry.get_all_agents()

    def list_enabled_agents(self) -> list[AgentDefinition]:
        return self._registry.get_enabled_agents()

    def search_agents(self, query: str) -> list[AgentDefinition]:
        return self._registry.search_agents(query)

    def get_agent_definition(self, name: str) -> AgentDefinition | None:
        return self._registry.get_agent(name)

    async def create_agent(
        self, definition: AgentDefinition, scope: AgentScope = AgentScope.PROJECT
    ) -> None:
        await self._registry.save_agent(definition, scope)
        logger.info("Created agent: %s", definition.name)

    async def remove_agent(self, name: str, scope: AgentScope = AgentScope.PROJECT) -> None:
        await self._registry.delete_agent(name, scope)
        logger.info("Removed agent: %s", name)

    async def refresh_registry(self) -> None:
        await self._registry.refresh_agents()
        logger.info("Registry refreshed")


def _settled_result(execution: asyncio.Task[SubAgentResult]) -> SubAgentResult:
    if execution.cancelled():
        return SubAgentResult.failure("Cancelled")
    exc = execution.exception()
    if exc is not None:
        return SubAgentResult.failure(str(exc) or type(exc).__name__)
    return execution.result()
