"""Agent definitions: markdown files with YAML frontmatter.

    ---
    name: code-reviewer
    description: Reviews diffs for bugs and style problems
    tools: [read_file, list_files, search_text]
    max_iterations: 8
    tags: [review, quality]
    ---

    You are a meticulous code reviewer...

``name`` and ``description`` are required. ``model`` defaults to
``inherit`` (use the caller's provider) and ``enabled`` to true. A missing
``tools`` list means the agent may use every tool.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from codeloop.agent.errors import AgentDefinitionError

INHERIT_MODEL = "inherit"

_FRONTMATTER_RE = re.compile(r"^---[ \t]*\n(.*?)\n---[ \t]*(?:\n(.*))?$", re.DOTALL)


@dataclass(frozen=True)
class AgentDefinition:
    """A named, immutable agent capability definition."""

    name: str
    description: str
    system_prompt: str = ""
    model: str = INHERIT_MODEL
    allowed_tools: frozenset[str] | None = None
    enabled: bool = True
    max_iterations: int | None = None
    temperature: float | None = None
    tags: frozenset[str] | None = None
    version: str | None = None
    author: str | None = None

    @property
    def inherits_model(self) -> bool:
        return self.model == INHERIT_MODEL

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match on name, description and tags."""
        q = query.lower()
        if q in self.name.lower() or q in self.description.lower():
            return True
        return any(q in tag.lower() for tag in self.tags or ())


class _Frontmatter(BaseModel):
    """Schema for the YAML header; accepts camelCase keys too."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    model: str | None = None
    tools: list[str] | None = None
    enabled: bool = True
    max_iterations: int | None = Field(
        default=None, gt=0, validation_alias=AliasChoices("max_iterations", "maxIterations")
    )
    temperature: float | None = Field(default=None, ge=0)
    tags: list[str] | None = None
    version: str | None = None
    author: str | None = None

    @field_validator("version", mode="before")
    @classmethod
    def _version_to_str(cls, v: Any) -> Any:
        # `version: 1.0` arrives from YAML as a float
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("tools", "tags", mode="before")
    @classmethod
    def _split_csv(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v


def parse_agent_markdown(content: str, path: str | None = None) -> AgentDefinition:
    """Parse an agent file's text into an ``AgentDefinition``.

    Raises:
        AgentDefinitionError: missing or malformed frontmatter, or missing
            required fields.
    """
    import yaml  # lazy import; only needed when loading agents

    match = _FRONTMATTER_RE.match(content.replace("\r\n", "\n"))
    if not match:
        raise AgentDefinitionError("missing YAML frontmatter", path)

    frontmatter, body = match.group(1), match.group(2) or ""
    try:
        raw = yaml.safe_load(frontmatter) or {}
    except yaml.YAMLError as e:
        raise AgentDefinitionError(f"malformed frontmatter: {e}", path) from e
    if not isinstance(raw, dict):
        raise AgentDefinitionError("frontmatter must be a mapping", path)

    try:
        meta = _Frontmatter.model_validate(raw)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise AgentDefinitionError(f"invalid fields: {fields}", path) from e

    return AgentDefinition(
        name=meta.name,
        description=meta.description,
        system_prompt=body.strip(),
        model=meta.model or INHERIT_MODEL,
        allowed_tools=frozenset(meta.tools) if meta.tools is not None else None,
        enabled=meta.enabled,
        max_iterations=meta.max_iterations,
        temperature=meta.temperature,
        tags=frozenset(meta.tags) if meta.tags is not None else None,
        version=meta.version,
        author=meta.author,
    )


def serialize_agent(definition: AgentDefinition) -> str:
    """Render ``definition`` back to the markdown file format.

    Optional fields are written only when set; sets are written sorted so
    the output is stable.
    """
    import yaml

    meta: dict[str, Any] = {
        "name": definition.name,
        "description": definition.description,
    }
    if not definition.inherits_model:
        meta["model"] = definition.model
    if definition.allowed_tools is not None:
        meta["tools"] = sorted(definition.allowed_tools)
    meta["enabled"] = definition.enabled
    if definition.max_iterations is not None:
        meta["max_iterations"] = definition.max_iterations
    if definition.temperature is not None:
        meta["temperature"] = definition.temperature
    if definition.tags is not None:
        meta["tags"] = sorted(definition.tags)
    if definition.version is not None:
        meta["version"] = definition.version
    if definition.author is not None:
        meta["author"] = definition.author

    header = yaml.safe_dump(meta, sort_keys=False, allow_unicode=True).rstrip("\n")
    return f"---\n{header}\n---\n\n{definition.system_prompt}\n"
