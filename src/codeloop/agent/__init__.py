"""Agent engine: loop, edit review, definitions, registry, sub-agents, orchestrator."""

# edits first: the propose_edit tool imports it while this package initializes
from codeloop.agent.edits import (
    EditDecision,
    EditDisposition,
    EditRecord,
    EditReviewSession,
    ProposedEdit,
)
from codeloop.agent.errors import (
    AgentDefinitionError,
    AgentDisabledError,
    AgentNotFoundError,
    CodeloopError,
    DelegationError,
    DelegationTimeoutError,
)
from codeloop.agent.loop import AbortReason, AgentLoop, LoopCallbacks, LoopOutcome, LoopState
from codeloop.agent.definition import AgentDefinition, parse_agent_markdown, serialize_agent
from codeloop.agent.registry import AgentDiscoveryResult, AgentRegistry, AgentScope
from codeloop.agent.subagent import (
    ExecutionConfig,
    ExecutionContext,
    SubAgent,
    SubAgentResult,
    SubAgentStatus,
)
from codeloop.agent.orchestrator import AgentOrchestrator, ParallelTask

__all__ = [
    "AbortReason",
    "AgentDefinition",
    "AgentDefinitionError",
    "AgentDisabledError",
    "AgentDiscoveryResult",
    "AgentLoop",
    "AgentNotFoundError",
    "AgentOrchestrator",
    "AgentRegistry",
    "AgentScope",
    "CodeloopError",
    "DelegationError",
    "DelegationTimeoutError",
    "EditDecision",
    "EditDisposition",
    "EditRecord",
    "EditReviewSession",
    "ExecutionConfig",
    "ExecutionContext",
    "LoopCallbacks",
    "LoopOutcome",
    "LoopState",
    "ParallelTask",
    "ProposedEdit",
    "SubAgent",
    "SubAgentResult",
    "SubAgentStatus",
    "parse_agent_markdown",
    "serialize_agent",
]
