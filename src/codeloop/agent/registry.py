"""Agent registry: discover agent definitions from layered directories.

Three roots are scanned in priority order: project, user, builtin. The
first file declaring a given name wins; lower-priority files with the same
name are parsed (so errors are still reported) and then dropped whole.
"""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles
import aiofiles.os

from codeloop.agent.definition import AgentDefinition, parse_agent_markdown, serialize_agent
from codeloop.agent.errors import AgentDefinitionError, AgentNotFoundError

if TYPE_CHECKING:
    from codeloop.config import CodeloopConfig

logger = logging.getLogger(__name__)

BUILTIN_AGENTS_DIR = Path(__file__).parent / "templates"


class AgentScope(enum.Enum):
    """Where a definition lives; declaration order is priority order."""

    PROJECT = "project"
    USER = "user"
    BUILTIN = "builtin"


@dataclass(frozen=True)
class AgentDiscoveryResult:
    definition: AgentDefinition
    source_path: Path
    scope: AgentScope
    last_modified: float


class AgentRegistry:
    """Resolved view of every agent definition on disk.

    The in-memory map is rebuilt wholesale by ``load_agents()`` and swapped
    in at the end, so readers see either the old view or the new one.
    """

    def __init__(
        self,
        project_dir: str | Path,
        user_dir: str | Path,
        builtin_dir: str | Path | None = None,
    ) -> None:
        self._dirs: dict[AgentScope, Path] = {
            AgentScope.PROJECT: Path(project_dir).expanduser(),
            AgentScope.USER: Path(user_dir).expanduser(),
            AgentScope.BUILTIN: Path(builtin_dir) if builtin_dir else BUILTIN_AGENTS_DIR,
        }
        self._agents: dict[str, AgentDiscoveryResult] = {}

    @classmethod
    def for_workspace(cls, cwd: str | Path, config: CodeloopConfig) -> AgentRegistry:
        """Registry rooted at ``cwd`` using the configured agent directories."""
        project_dir = Path(config.project_agents_dir).expanduser()
        if not project_dir.is_absolute():
            project_dir = Path(cwd) / project_dir
        return cls(project_dir=project_dir, user_dir=config.user_agents_dir)

    def directory(self, scope: AgentScope) -> Path:
        return self._dirs[scope]

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_agents(self) -> None:
        """Clear and re-scan all roots in priority order."""
        resolved: dict[str, AgentDiscoveryResult] = {}

        for scope in AgentScope:
            for path in _agent_files(self._dirs[scope]):
                try:
                    result = await _load_file(path, scope)
                except AgentDefinitionError as e:
                    logger.warning("Skipping agent file: %s", e)
                    continue
                except OSError as e:
                    logger.warning("Could not read agent file %s: %s", path, e)
                    continue

                name = result.definition.name
                existing = resolved.get(name)
                if existing is not None:
                    logger.debug(
                        "Agent %s from %s shadowed by %s scope (%s)",
                        name,
                        path,
                        existing.scope.value,
                        existing.source_path,
                    )
                    continue
                resolved[name] = result

        self._agents = resolved
        logger.info("Loaded %d agents", len(resolved))

    async def refresh_agents(self) -> None:
        await self.load_agents()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_agent(self, name: str) -> AgentDefinition | None:
        result = self._agents.get(name)
        return result.definition if result else None

    def get_agent_result(self, name: str) -> AgentDiscoveryResult | None:
        return self._agents.get(name)

    def has_agent(self, name: str) -> bool:
        return name in self._agents

    def get_all_agents(self) -> list[AgentDefinition]:
        return [r.definition for r in self._agents.values()]

    def get_enabled_agents(self) -> list[AgentDefinition]:
        return [r.definition for r in self._agents.values() if r.definition.enabled]

    def search_agents(self, query: str) -> list[AgentDefinition]:
        return [r.definition for r in self._agents.values() if r.definition.matches(query)]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save_agent(
        self, definition: AgentDefinition, scope: AgentScope = AgentScope.PROJECT
    ) -> Path:
        """Write ``definition`` to ``scope`` and reload. Returns the file path."""
        self._check_writable(scope)
        directory = self._dirs[scope]
        await aiofiles.os.makedirs(directory, exist_ok=True)

        path = self._find_file(scope, definition.name) or directory / f"{definition.name}.md"
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(serialize_agent(definition))
        logger.info("Saved agent %s to %s", definition.name, path)

        await self.load_agents()
        return path

    async def delete_agent(self, name: str, scope: AgentScope = AgentScope.PROJECT) -> None:
        """Remove the file defining ``name`` in ``scope`` and reload.

        Raises:
            AgentNotFoundError: ``scope`` holds no file for ``name``.
        """
        self._check_writable(scope)
        path = self._find_file(scope, name)
        if path is None:
            raise AgentNotFoundError(name, scope.value)

        await aiofiles.os.remove(path)
        logger.info("Deleted agent %s (%s)", name, path)
        await self.load_agents()

    def _find_file(self, scope: AgentScope, name: str) -> Path | None:
        # Files are normally named after the agent, but any .md in the
        # directory may declare it.
        directory = self._dirs[scope]
        conventional = directory / f"{name}.md"
        if conventional.is_file():
            return conventional
        for path in _agent_files(directory):
            try:
                if parse_agent_markdown(path.read_text(encoding="utf-8")).name == name:
                    return path
            except (AgentDefinitionError, OSError, UnicodeDecodeError):
                continue
        return None

    @staticmethod
    def _check_writable(scope: AgentScope) -> None:
        if scope is AgentScope.BUILTIN:
            raise ValueError("Built-in agents are read-only")


def _agent_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    try:
        names = sorted(os.listdir(directory))
    except OSError as e:
        logger.warning("Could not list agent directory %s: %s", directory, e)
        return []
    return [directory / f for f in names if f.endswith(".md")]


async def _load_file(path: Path, scope: AgentScope) -> AgentDiscoveryResult:
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        try:
            content = await f.read()
        except UnicodeDecodeError as e:
            raise AgentDefinitionError(f"not valid UTF-8 ({e.reason})", str(path)) from e
    definition = parse_agent_markdown(content, str(path))
    return AgentDiscoveryResult(
        definition=definition,
        source_path=path,
        scope=scope,
        last_modified=os.path.getmtime(path),
    )
