"""Run command tool: one-shot shell execution via asyncio subprocesses."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from typing import ClassVar

from pydantic import BaseModel, Field

from codeloop.tool.base import BaseTool, ToolError, ToolOk, ToolResult
from codeloop.tool.truncation import strip_ansi

logger = logging.getLogger(__name__)


class RunCommandParams(BaseModel):
    command: str = Field(description="The shell command to execute.")
    timeout: int = Field(default=120, gt=0, description="Timeout in seconds.")
    workdir: str | None = Field(
        default=None, description="Working directory. Defaults to project root."
    )


class RunCommandTool(BaseTool[RunCommandParams]):
    """Execute a shell command and capture combined stdout/stderr.

    Each call runs in a fresh process group so a timeout can kill the whole
    tree. Nothing persists between calls.
    """

    name: ClassVar[str] = "run_command"
    description: ClassVar[str] = (
        "Execute a shell command in the project directory. Output (stdout and "
        "stderr) is captured and returned with the exit code on failure. "
        "Use for running tests, linters, git and build commands."
    )
    param_model: ClassVar[type[BaseModel]] = RunCommandParams

    def __init__(self, cwd: str | None = None) -> None:
        self._cwd = cwd or os.getcwd()

    async def execute(self, params: RunCommandParams) -> ToolResult:
        workdir = params.workdir or self._cwd
        if not os.path.isabs(workdir):
            workdir = os.path.join(self._cwd, workdir)
        if not os.path.isdir(workdir):
            return ToolError(output=f"Directory does not exist: {workdir}")

        logger.debug("Running command in %s: %s", workdir, params.command)
        process = await asyncio.create_subprocess_shell(
            params.command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=workdir,
            start_new_session=True,
            env={**os.environ, "TERM": "dumb"},  # Reduce ANSI output
        )

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=params.timeout)
        except asyncio.TimeoutError:
            try:
                os.killpg(os.getpgid(process.pid), signal.SIGKILL)
            except ProcessLookupError:
                pass
            await process.wait()
            return ToolError(
                output=f"Command timed out after {params.timeout}s: {params.command}",
                brief=f"Timeout: {params.command[:50]}",
            )

        output = strip_ansi(stdout.decode("utf-8", errors="replace")) if stdout else ""
        exit_code = process.returncode or 0
        brief = f"exit={exit_code}: {params.command[:50]}"

        if exit_code != 0:
            return ToolError(output=f"[Exit code: {exit_code}]\n{output}", brief=brief)
        return ToolOk(output=output or "(no output)", brief=brief)
