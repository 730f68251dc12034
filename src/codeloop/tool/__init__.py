"""Tool system: base classes, parser, registry, and output truncation."""

from codeloop.tool.base import (
    BaseTool,
    ToolError,
    ToolInvocation,
    ToolKind,
    ToolObservation,
    ToolOk,
    ToolResult,
)
from codeloop.tool.parser import ParsedResponse, parse_tool_calls
from codeloop.tool.registry import TOOL_CATEGORIES, ToolRegistry
from codeloop.tool.truncation import truncate_output

__all__ = [
    "BaseTool",
    "ToolResult",
    "ToolOk",
    "ToolError",
    "ToolKind",
    "ToolInvocation",
    "ToolObservation",
    "ParsedResponse",
    "parse_tool_calls",
    "TOOL_CATEGORIES",
    "ToolRegistry",
    "truncate_output",
]
