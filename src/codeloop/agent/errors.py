"""Exceptions raised by the agent layer."""

from __future__ import annotations


class CodeloopError(Exception):
    """Base class for codeloop errors."""


class AgentDefinitionError(CodeloopError):
    """An agent definition file could not be parsed or is invalid."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)


class DelegationError(CodeloopError):
    """A task could not be handed to a sub-agent."""


class AgentNotFoundError(DelegationError):
    def __init__(self, name: str, scope: str | None = None) -> None:
        self.name = name
        self.scope = scope
        if scope:
            super().__init__(f"Agent not found: {name} in {scope} scope")
        else:
            super().__init__(f"Agent not found: {name}")


class AgentDisabledError(DelegationError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Agent is disabled: {name}")


class DelegationTimeoutError(DelegationError, TimeoutError):
    """A delegated task did not settle within its time budget."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"Task timeout after {timeout_ms}ms")
