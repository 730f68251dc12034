"""CLI entry point for codeloop."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import os
from dataclasses import dataclass

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.syntax import Syntax
from rich.table import Table

from codeloop.agent.edits import EditApprover, EditDecision, EditDisposition, ProposedEdit
from codeloop.agent.errors import DelegationError
from codeloop.agent.loop import LoopOutcome, LoopState
from codeloop.agent.orchestrator import AgentOrchestrator, ParallelTask
from codeloop.agent.registry import AgentRegistry, AgentScope
from codeloop.agent.subagent import ExecutionConfig, SubAgentResult
from codeloop.config import CodeloopConfig
from codeloop.llm.provider import create_provider
from codeloop.session.wire import EventType, Wire
from codeloop.tool.builtin import WriteFileTool, default_registry

app = typer.Typer(
    name="codeloop",
    help="A coding assistant that reads, searches and edits your repository through an LLM tool loop.",
    no_args_is_help=True,
)
agents_app = typer.Typer(help="Manage agent definitions.", no_args_is_help=True)
app.add_typer(agents_app, name="agents")

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


# ---------------------------------------------------------------------------
# Edit approval
# ---------------------------------------------------------------------------

_CHOICES = {
    "y": EditDecision.APPLY,
    "n": EditDecision.SKIP,
    "a": EditDecision.APPLY_ALL,
    "s": EditDecision.SKIP_ALL,
}


class ConsoleApprover:
    """Ask on the terminal about each proposed edit."""

    def __init__(self, out: Console | None = None) -> None:
        self._console = out or console

    async def decide(self, edit: ProposedEdit, diff_lines: list[str]) -> EditDecision:
        title = f"{'New file' if edit.is_new_file else 'Edit'}: {edit.path}"
        body = Syntax("\n".join(diff_lines), "diff", theme="ansi_dark", word_wrap=True)
        self._console.print(Panel(body, title=title, subtitle=edit.description or None))
        answer = await asyncio.to_thread(
            Prompt.ask,
            "Apply? [y]es / [n]o / [a]ll remaining / [s]kip remaining",
            choices=list(_CHOICES),
            default="n",
            console=self._console,
        )
        return _CHOICES[answer]


class AutoApprover:
    """Apply everything without asking (``--yes``)."""

    async def decide(self, edit: ProposedEdit, diff_lines: list[str]) -> EditDecision:
        return EditDecision.APPLY_ALL


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@dataclass
class Session:
    """Everything one command needs."""

    config: CodeloopConfig
    orchestrator: AgentOrchestrator
    wire: Wire


async def _build_session(
    config: CodeloopConfig,
    approver: EditApprover | None,
    max_iterations: int | None = None,
) -> Session:
    cwd = os.getcwd()
    provider = create_provider(
        model=config.llm.model,
        temperature=config.llm.temperature,
        max_tokens=config.llm.max_tokens,
        request_timeout=config.llm.request_timeout,
    )
    wire = Wire()
    registry = AgentRegistry.for_workspace(cwd, config)
    await registry.load_agents()

    exec_config = ExecutionConfig(
        provider=provider,
        tools=default_registry(cwd),
        cwd=cwd,
        max_iterations=max_iterations or config.agents.max_iterations,
        approver=approver,
        writer=WriteFileTool(cwd),
        wire=wire,
        stream=config.llm.stream,
    )
    return Session(
        config=config,
        orchestrator=AgentOrchestrator(registry, exec_config, config.agents),
        wire=wire,
    )


def _load_config(config_file: str | None, model: str | None) -> CodeloopConfig:
    config = CodeloopConfig.load(config_file)
    if model:
        config.llm.model = model
    return config


async def _print_events(wire: Wire) -> None:
    """Render wire events as plain terminal output."""
    queue = wire.subscribe()
    at_line_start = True
    while True:
        event = await queue.get()
        if event is None:
            break

        d = event.data
        agent = d.get("agent")
        prefix = f"  [{agent}] " if agent else "  "

        if event.type == EventType.TEXT:
            text = d.get("text", "")
            if not agent:
                print(text, end="", flush=True)
                at_line_start = text.endswith("\n")
            continue

        if not at_line_start:
            print(flush=True)
            at_line_start = True

        if event.type == EventType.SUBAGENT_BEGIN:
            print(f"\n--- Subagent: {agent} ({d.get('id', '?')}) ---", flush=True)
        elif event.type == EventType.SUBAGENT_END:
            status = "done" if d.get("success") else "failed"
            print(f"--- {agent} {status} ---", flush=True)
        elif event.type == EventType.STEP_BEGIN:
            print(f"\n{prefix}[Step {d.get('step', 0)}]", flush=True)
        elif event.type == EventType.TOOL_CALL:
            params = d.get("params", {})
            detail = params.get("path") or params.get("command") or params.get("agent") or ""
            print(f"{prefix}> {d.get('name', '?')} {detail}".rstrip(), flush=True)
        elif event.type == EventType.TOOL_RESULT:
            content = d.get("content", "")
            status = "ERROR" if d.get("is_error") else "OK"
            first_line = content.split("\n")[0][:100] if content else status
            print(f"{prefix}< {d.get('name', '?')}: {first_line}", flush=True)
        elif event.type == EventType.EDIT_PROPOSED:
            kind = "new file" if d.get("new_file") else "edit"
            print(f"{prefix}[{kind} proposed] {d.get('path', '?')}", flush=True)
        elif event.type == EventType.STATUS:
            print(f"{prefix}{d.get('message', '')}", flush=True)
        elif event.type == EventType.ERROR:
            print(f"\nERROR: {d.get('error', 'Unknown error')}", flush=True)

    wire.unsubscribe(queue)


def _print_edit_summary(outcome: LoopOutcome) -> None:
    if not outcome.proposed_edits:
        return
    if not outcome.edit_records:
        console.print(f"{len(outcome.proposed_edits)} edit(s) proposed but not reviewed.")
        return
    for record in outcome.edit_records:
        style = {
            EditDisposition.APPLIED: "green",
            EditDisposition.FAILED: "red",
            EditDisposition.SKIPPED: "yellow",
        }[record.disposition]
        line = f"[{style}]{record.disposition.value}[/{style}] {record.edit.path}"
        if record.disposition is EditDisposition.FAILED:
            line += f" ({record.message})"
        console.print(line)


def _print_result(result: SubAgentResult) -> None:
    if result.success:
        console.print(result.output)
    else:
        console.print(f"[red]Failed:[/red] {result.error}")
    meta = result.metadata
    console.print(
        f"[dim]~{meta.tokens_used:,} tokens, {meta.duration_ms / 1000:.2f}s, "
        f"{meta.tool_call_count} tool calls[/dim]"
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

_VERBOSE = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")
_CONFIG = typer.Option(None, "--config", "-c", help="Path to a JSON config file.")
_MODEL = typer.Option(
    None, "--model", "-m", help="Model in litellm format (e.g. anthropic/claude-sonnet-4-5-20250929)."
)


@app.command()
def ask(
    prompt: str = typer.Argument(help="What you want done."),
    model: str | None = _MODEL,
    max_iterations: int | None = typer.Option(
        None, "--max-iterations", "-n", min=1, help="Iteration budget for this run."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Apply every proposed edit."),
    verbose: bool = _VERBOSE,
    config_file: str | None = _CONFIG,
) -> None:
    """Run the main agent on PROMPT, then review its proposed edits."""
    setup_logging(verbose)
    config = _load_config(config_file, model)
    approver = AutoApprover() if yes else ConsoleApprover()
    outcome = asyncio.run(_ask(config, prompt, approver, max_iterations))

    _print_edit_summary(outcome)
    if outcome.state is not LoopState.COMPLETED:
        console.print(f"[yellow]{outcome.describe()}[/yellow]")
        raise typer.Exit(1)


async def _ask(
    config: CodeloopConfig,
    prompt: str,
    approver: EditApprover,
    max_iterations: int | None,
) -> LoopOutcome:
    session = await _build_session(config, approver, max_iterations)
    printer = asyncio.create_task(_print_events(session.wire))
    try:
        return await session.orchestrator.process_message(prompt)
    finally:
        await session.orchestrator.wait_background()
        session.wire.close()
        await printer


@app.command()
def delegate(
    agent: str = typer.Argument(help="Name of the sub-agent."),
    task: str = typer.Argument(help="Task for the sub-agent."),
    timeout_ms: int | None = typer.Option(
        None, "--timeout-ms", "-t", min=1, help="Time budget in milliseconds."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Apply every proposed edit."),
    model: str | None = _MODEL,
    verbose: bool = _VERBOSE,
    config_file: str | None = _CONFIG,
) -> None:
    """Run TASK on a single sub-agent."""
    setup_logging(verbose)
    config = _load_config(config_file, model)
    approver = AutoApprover() if yes else ConsoleApprover()
    try:
        result = asyncio.run(_delegate(config, agent, task, timeout_ms, approver))
    except DelegationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    _print_result(result)
    if not result.success:
        raise typer.Exit(1)


async def _delegate(
    config: CodeloopConfig,
    agent: str,
    task: str,
    timeout_ms: int | None,
    approver: EditApprover,
) -> SubAgentResult:
    session = await _build_session(config, approver)
    printer = asyncio.create_task(_print_events(session.wire))
    try:
        return await session.orchestrator.delegate_task(agent, task, timeout_ms)
    finally:
        await session.orchestrator.wait_background()
        session.wire.close()
        await printer


@app.command()
def parallel(
    assignments: list[str] = typer.Argument(help="One or more AGENT=TASK pairs."),
    timeout_ms: int | None = typer.Option(
        None, "--timeout-ms", "-t", min=1, help="Time budget per task in milliseconds."
    ),
    model: str | None = _MODEL,
    verbose: bool = _VERBOSE,
    config_file: str | None = _CONFIG,
) -> None:
    """Run several sub-agent tasks concurrently and print an aggregated report.

    Proposed edits are not reviewed in this mode.
    """
    setup_logging(verbose)
    tasks: list[ParallelTask] = []
    for assignment in assignments:
        name, sep, task = assignment.partition("=")
        if not sep or not name.strip() or not task.strip():
            typer.echo(f"Error: expected AGENT=TASK, got {assignment!r}", err=True)
            raise typer.Exit(2)
        tasks.append(ParallelTask(agent=name.strip(), task=task.strip(), timeout_ms=timeout_ms))

    config = _load_config(config_file, model)
    results = asyncio.run(_parallel(config, tasks))
    console.print(AgentOrchestrator.aggregate_results(results))
    if not all(r.success for r in results):
        raise typer.Exit(1)


async def _parallel(config: CodeloopConfig, tasks: list[ParallelTask]) -> list[SubAgentResult]:
    session = await _build_session(config, approver=None)
    printer = asyncio.create_task(_print_events(session.wire))
    try:
        return await session.orchestrator.delegate_parallel(tasks)
    finally:
        await session.orchestrator.wait_background()
        session.wire.close()
        await printer


# ---------------------------------------------------------------------------
# Agent management
# ---------------------------------------------------------------------------


async def _load_registry(config: CodeloopConfig) -> AgentRegistry:
    registry = AgentRegistry.for_workspace(os.getcwd(), config)
    await registry.load_agents()
    return registry


@agents_app.command("list")
def agents_list(
    enabled_only: bool = typer.Option(False, "--enabled-only", help="Hide disabled agents."),
    search: str | None = typer.Option(None, "--search", "-s", help="Filter by name, description or tag."),
    config_file: str | None = _CONFIG,
) -> None:
    """List agent definitions and where they come from."""
    registry = asyncio.run(_load_registry(_load_config(config_file, None)))
    if search:
        definitions = registry.search_agents(search)
    else:
        definitions = registry.get_all_agents()
    if enabled_only:
        definitions = [d for d in definitions if d.enabled]

    table = Table("Name", "Scope", "Enabled", "Description")
    for definition in sorted(definitions, key=lambda d: d.name):
        result = registry.get_agent_result(definition.name)
        scope = result.scope.value if result else "?"
        table.add_row(definition.name, scope, "yes" if definition.enabled else "no", definition.description)
    console.print(table)


@agents_app.command("show")
def agents_show(
    name: str = typer.Argument(help="Agent name."),
    config_file: str | None = _CONFIG,
) -> None:
    """Show one agent definition in full."""
    registry = asyncio.run(_load_registry(_load_config(config_file, None)))
    result = registry.get_agent_result(name)
    if result is None:
        typer.echo(f"Error: Agent not found: {name}", err=True)
        raise typer.Exit(1)

    d = result.definition
    console.print(f"[bold]{d.name}[/bold] ({result.scope.value}: {result.source_path})")
    console.print(d.description)
    console.print(f"model: {d.model}")
    console.print(f"tools: {', '.join(sorted(d.allowed_tools)) if d.allowed_tools else 'all'}")
    console.print(f"enabled: {d.enabled}")
    if d.max_iterations is not None:
        console.print(f"max iterations: {d.max_iterations}")
    if d.temperature is not None:
        console.print(f"temperature: {d.temperature}")
    if d.tags:
        console.print(f"tags: {', '.join(sorted(d.tags))}")
    console.print(Panel(d.system_prompt or "(empty)", title="System prompt"))


def _set_enabled(name: str, enabled: bool, config_file: str | None) -> None:
    async def _run() -> None:
        registry = await _load_registry(_load_config(config_file, None))
        result = registry.get_agent_result(name)
        if result is None:
            typer.echo(f"Error: Agent not found: {name}", err=True)
            raise typer.Exit(1)
        # Built-ins are read-only; toggling one writes a project override.
        scope = AgentScope.PROJECT if result.scope is AgentScope.BUILTIN else result.scope
        await registry.save_agent(dataclasses.replace(result.definition, enabled=enabled), scope)
        typer.echo(f"{'Enabled' if enabled else 'Disabled'} {name} ({scope.value} scope)")

    asyncio.run(_run())


@agents_app.command("enable")
def agents_enable(name: str = typer.Argument(help="Agent name."), config_file: str | None = _CONFIG) -> None:
    """Enable an agent."""
    _set_enabled(name, True, config_file)


@agents_app.command("disable")
def agents_disable(name: str = typer.Argument(help="Agent name."), config_file: str | None = _CONFIG) -> None:
    """Disable an agent without deleting it."""
    _set_enabled(name, False, config_file)


@agents_app.command("delete")
def agents_delete(
    name: str = typer.Argument(help="Agent name."),
    scope: AgentScope = typer.Option(AgentScope.PROJECT, "--scope", help="Scope to delete from."),
    config_file: str | None = _CONFIG,
) -> None:
    """Delete an agent definition file."""

    async def _run() -> None:
        registry = await _load_registry(_load_config(config_file, None))
        await registry.delete_agent(name, scope)

    try:
        asyncio.run(_run())
    except (DelegationError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Deleted {name} from {scope.value} scope")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
