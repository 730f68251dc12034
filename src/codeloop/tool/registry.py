"""Tool registry: register, scope, and dispatch tools by name."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from codeloop.tool.base import BaseTool, ToolInvocation, ToolObservation

logger = logging.getLogger(__name__)

# Named groups usable in an agent's tool allowlist.
TOOL_CATEGORIES: dict[str, list[str]] = {
    "read_only": ["read_file", "list_files", "search_text"],
    "write": ["propose_edit"],
    "execute": ["run_command"],
}


def expand_allowlist(entries: Iterable[str]) -> list[str]:
    """Expand category names in an allowlist, preserving order."""
    expanded: list[str] = []
    for entry in entries:
        for name in TOOL_CATEGORIES.get(entry, [entry]):
            if name not in expanded:
                expanded.append(name)
    return expanded


def _matches(name: str, pattern: str) -> bool:
    if pattern.endswith("*"):
        return name.startswith(pattern[:-1])
    return name == pattern


class ToolRegistry:
    """Registry of available tools.

    Manages tool registration, lookup, and dispatch. A registry can be
    narrowed to an agent's allowlist with ``subset()``; the narrowed copy
    remembers what it hides so it can explain refusals to the model.
    """

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}
        self._hidden: set[str] = set()
        self._owner: str | None = None
        self._allowlist: list[str] | None = None

    def register(self, tool: BaseTool) -> None:
        """Register a tool instance."""
        if tool.name in self._tools:
            logger.warning("Tool %s already registered, overwriting", tool.name)
        self._tools[tool.name] = tool

    def register_many(self, tools: Iterable[BaseTool]) -> None:
        """Register multiple tools."""
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> BaseTool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def names(self) -> list[str]:
        """Get all registered tool names."""
        return list(self._tools.keys())

    def subset(
        self, allowed: Iterable[str] | None, owner: str | None = None
    ) -> ToolRegistry:
        """Create a registry restricted to ``allowed``.

        Entries are exact names, category names (see ``TOOL_CATEGORIES``) or
        prefix wildcards such as ``mcp_*``. ``None`` or an empty allowlist
        means unrestricted.
        """
        patterns = expand_allowlist(allowed or [])
        reg = ToolRegistry()
        reg._owner = owner
        reg._hidden = set(self._hidden)
        if not patterns:
            reg._tools = dict(self._tools)
            return reg

        reg._allowlist = patterns
        for name, tool in self._tools.items():
            if any(_matches(name, p) for p in patterns):
                reg._tools[name] = tool
            else:
                reg._hidden.add(name)

        for pattern in patterns:
            if not pattern.endswith("*") and pattern not in self._tools:
                logger.warning("Tool %s not found in registry", pattern)
        logger.debug(
            "Tools for %s restricted to: %s", owner or "agent", ", ".join(reg.names())
        )
        return reg

    def without(self, *names: str) -> ToolRegistry:
        """Create a copy with the given tools removed entirely."""
        reg = ToolRegistry()
        reg._owner = self._owner
        reg._allowlist = self._allowlist
        reg._hidden = set(self._hidden)
        reg._tools = {n: t for n, t in self._tools.items() if n not in names}
        return reg

    def describe(self) -> str:
        """Render every tool's markup and parameters for the system prompt."""
        return "\n\n".join(tool.to_prompt_spec() for tool in self._tools.values())

    async def dispatch(self, invocation: ToolInvocation) -> ToolObservation:
        """Dispatch a tool invocation to the appropriate tool.

        Never raises; unknown and disallowed tools produce error observations.
        """
        name = invocation.tool_name
        tool = self._tools.get(name)
        if tool is None:
            if name in self._hidden and self._allowlist is not None:
                text = (
                    f'Tool "{name}" is not allowed for agent "{self._owner or "?"}". '
                    f"Allowed tools: {', '.join(self._allowlist)}"
                )
            else:
                text = f"Unknown tool: {name}. Available tools: {', '.join(self.names())}"
            return ToolObservation(tool_name=name, result_text=text, is_error=True)

        result = await tool(invocation.params, invocation.body)
        return ToolObservation(
            tool_name=name,
            result_text=result.output,
            is_error=result.is_error,
            edit=result.edit,
        )

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
