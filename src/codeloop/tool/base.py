"""Base tool classes with Pydantic parameter validation."""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel

from codeloop.tool.truncation import truncate_output

if TYPE_CHECKING:
    from codeloop.agent.edits import ProposedEdit

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class ToolKind(enum.Enum):
    """Tools the engine itself branches on.

    Everything else a CLI registers is ``OTHER`` and is dispatched purely
    by name through the registry.
    """

    READ_FILE = "read_file"
    LIST_FILES = "list_files"
    PROPOSE_EDIT = "propose_edit"
    OTHER = "other"

    @classmethod
    def of(cls, tool_name: str) -> ToolKind:
        try:
            kind = cls(tool_name)
        except ValueError:
            return cls.OTHER
        return kind


@dataclass(frozen=True)
class ToolInvocation:
    """A tool call extracted from one model turn."""

    tool_name: str
    params: dict[str, str] = field(default_factory=dict)
    body: str = ""

    @property
    def kind(self) -> ToolKind:
        return ToolKind.of(self.tool_name)

    @property
    def signature(self) -> str:
        """Coarse fingerprint used for repetition detection.

        Tool name plus its ``path`` parameter; path-less tools fall back to
        ``command`` so two different shell commands are not confused.
        """
        target = self.params.get("path") or self.params.get("command") or ""
        return f"{self.tool_name}:{target}"


@dataclass(frozen=True)
class ToolObservation:
    """The outcome of executing one ToolInvocation."""

    tool_name: str
    result_text: str
    is_error: bool = False
    edit: ProposedEdit | None = None

    def render(self) -> str:
        """Format for the synthesized user turn fed back to the model."""
        label = "Error" if self.is_error else "Result"
        return f"Tool: {self.tool_name}\n{label}: {self.result_text}"


@dataclass
class ToolResult:
    """Base result from a tool execution."""

    output: str = ""
    brief: str = ""  # Short description for UI display
    is_error: bool = False
    edit: ProposedEdit | None = None


@dataclass
class ToolOk(ToolResult):
    """Successful tool result."""

    is_error: bool = False


@dataclass
class ToolError(ToolResult):
    """Failed tool result."""

    is_error: bool = True


class BaseTool(ABC, Generic[T]):
    """Base class for all tools.

    Tools take string attributes (and optionally a body) from the model's
    markup, validated into a Pydantic model (the type parameter T).

    Usage:
        class MyParams(BaseModel):
            path: str
            offset: int = 0

        class MyTool(BaseTool[MyParams]):
            name = "my_tool"
            description = "Does something useful"
            param_model = MyParams

            async def execute(self, params: MyParams) -> ToolResult:
                return ToolOk(output="done")

    Tools that carry content between their start and end markers set
    ``body_field``; the body is injected into that parameter before
    validation.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    param_model: ClassVar[type[BaseModel]]
    body_field: ClassVar[str | None] = None

    async def __call__(self, params: dict[str, str], body: str = "") -> ToolResult:
        """Validate arguments, execute, truncate output.

        Never raises: bad parameters and execution errors come back as
        ``ToolError`` so the model can react to them.
        """
        arguments: dict[str, Any] = dict(params)
        if self.body_field is not None:
            arguments[self.body_field] = body

        try:
            validated = self.param_model.model_validate(arguments)
        except Exception as e:
            return ToolError(output=f"Invalid parameters: {e}")

        try:
            result = await self.execute(validated)  # type: ignore[arg-type]
        except Exception as e:
            logger.error("Tool %s execution error: %s", self.name, e, exc_info=True)
            return ToolError(output=f"Error executing {self.name}: {e}")

        result.output = truncate_output(result.output)
        return result

    @abstractmethod
    async def execute(self, params: T) -> ToolResult:
        """Execute the tool with validated parameters."""
        ...

    def to_prompt_spec(self) -> str:
        """Describe the tool and its markup for the system prompt."""
        schema = self.param_model.model_json_schema()
        properties: dict[str, Any] = schema.get("properties", {})
        required = set(schema.get("required", []))

        attrs = [
            f'{key}="..."' for key in properties if key != self.body_field
        ]
        opening = " ".join([f'<tool name="{self.name}"', *attrs])
        if self.body_field is not None:
            usage = f"{opening}>{self.body_field}</tool>"
        else:
            usage = f"{opening} />"

        lines = [f"- {self.name}: {self.description}", f"  {usage}"]
        for key, prop in properties.items():
            marker = "required" if key in required else "optional"
            desc = prop.get("description", "")
            where = "body" if key == self.body_field else "attribute"
            lines.append(f"    {key} ({where}, {marker}): {desc}")
        return "\n".join(lines)
