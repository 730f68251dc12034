"""Configuration: Pydantic models for codeloop settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """LLM provider configuration.

    Model names use litellm's provider-prefix format:
        "anthropic/claude-sonnet-4-5-20250929"
        "openai/gpt-4o"
        "ollama/qwen2.5-coder"

    API keys are read from env vars automatically by litellm
    (ANTHROPIC_API_KEY, OPENAI_API_KEY, GEMINI_API_KEY).
    """

    model: str = Field(default="anthropic/claude-sonnet-4-5-20250929")
    temperature: float | None = Field(default=None, ge=0)
    max_tokens: int | None = Field(default=None, gt=0)
    request_timeout: float | None = Field(
        default=None, gt=0, description="Per-request timeout in seconds"
    )
    stream: bool = Field(default=True, description="Stream model output as it arrives")


class AgentSettings(BaseModel):
    """Agent loop and delegation settings."""

    max_iterations: int = Field(
        default=10, gt=0, description="Tool-executing iterations per run"
    )
    delegation_timeout_ms: int = Field(
        default=60_000, gt=0, description="Default time budget for a delegated task"
    )
    cancel_on_timeout: bool = Field(
        default=True,
        description="Ask a timed-out sub-agent to stop instead of letting it run on",
    )


class CodeloopConfig(BaseModel):
    """Top-level codeloop configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    agents: AgentSettings = Field(default_factory=AgentSettings)
    project_agents_dir: str = Field(
        default=".codeloop/agents",
        description="Project agent definitions, relative to the working directory",
    )
    user_agents_dir: str = Field(
        default="~/.codeloop/agents", description="User-wide agent definitions"
    )

    @classmethod
    def load(cls, config_path: str | None = None) -> CodeloopConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            CODELOOP_MODEL                  - Model (litellm format with provider prefix)
            CODELOOP_TEMPERATURE            - Sampling temperature
            CODELOOP_MAX_ITERATIONS         - Iteration budget per run
            CODELOOP_DELEGATION_TIMEOUT_MS  - Default delegation timeout
            CODELOOP_PROJECT_AGENTS_DIR     - Project agent directory
            CODELOOP_USER_AGENTS_DIR        - User agent directory
        """
        # override=True so an updated .env beats a stale exported key
        load_dotenv(find_dotenv(usecwd=True), override=True)

        config_data: dict[str, Any] = {}
        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        llm = dict(config_data.get("llm", {}))
        agents = dict(config_data.get("agents", {}))

        env_model = os.environ.get("CODELOOP_MODEL")
        if env_model:
            llm["model"] = env_model

        env_temperature = os.environ.get("CODELOOP_TEMPERATURE")
        if env_temperature:
            llm["temperature"] = env_temperature

        env_max_iterations = os.environ.get("CODELOOP_MAX_ITERATIONS")
        if env_max_iterations:
            agents["max_iterations"] = env_max_iterations

        env_timeout = os.environ.get("CODELOOP_DELEGATION_TIMEOUT_MS")
        if env_timeout:
            agents["delegation_timeout_ms"] = env_timeout

        env_project_dir = os.environ.get("CODELOOP_PROJECT_AGENTS_DIR")
        if env_project_dir:
            config_data["project_agents_dir"] = env_project_dir

        env_user_dir = os.environ.get("CODELOOP_USER_AGENTS_DIR")
        if env_user_dir:
            config_data["user_agents_dir"] = env_user_dir

        if llm:
            config_data["llm"] = llm
        if agents:
            config_data["agents"] = agents

        return cls.model_validate(config_data)
