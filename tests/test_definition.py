"""Tests for codeloop.agent.definition."""

from __future__ import annotations

import pytest

from codeloop.agent.definition import (
    INHERIT_MODEL,
    AgentDefinition,
    parse_agent_markdown,
    serialize_agent,
)
from codeloop.agent.errors import AgentDefinitionError

REVIEWER = """\
---
name: code-reviewer
description: Reviews code for bugs
tools: [read_file, list_files]
maxIterations: 8
temperature: 0.2
tags: review, quality
version: 1.0
---

You are a meticulous reviewer.

Report findings as a list.
"""


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParse:
    def test_full_definition(self) -> None:
        d = parse_agent_markdown(REVIEWER)
        assert d.name == "code-reviewer"
        assert d.description == "Reviews code for bugs"
        assert d.allowed_tools == frozenset({"read_file", "list_files"})
        assert d.max_iterations == 8
        assert d.temperature == 0.2
        assert d.tags == frozenset({"review", "quality"})
        assert d.version == "1.0"
        assert d.system_prompt == "You are a meticulous reviewer.\n\nReport findings as a list."

    def test_defaults(self) -> None:
        d = parse_agent_markdown("---\nname: a\ndescription: b\n---\nbody")
        assert d.model == INHERIT_MODEL
        assert d.inherits_model
        assert d.enabled is True
        assert d.allowed_tools is None
        assert d.tags is None
        assert d.max_iterations is None

    def test_explicit_model(self) -> None:
        d = parse_agent_markdown("---\nname: a\ndescription: b\nmodel: openai/gpt-4o\n---\n")
        assert d.model == "openai/gpt-4o"
        assert not d.inherits_model

    def test_crlf_line_endings(self) -> None:
        d = parse_agent_markdown("---\r\nname: a\r\ndescription: b\r\n---\r\nhello\r\n")
        assert d.system_prompt == "hello"

    def test_unknown_keys_ignored(self) -> None:
        d = parse_agent_markdown("---\nname: a\ndescription: b\ncolor: blue\n---\n")
        assert d.name == "a"


class TestParseErrors:
    def test_missing_frontmatter(self) -> None:
        with pytest.raises(AgentDefinitionError, match="missing YAML frontmatter"):
            parse_agent_markdown("just a prompt")

    def test_missing_required_fields(self) -> None:
        with pytest.raises(AgentDefinitionError, match="description"):
            parse_agent_markdown("---\nname: a\n---\nbody")

    def test_empty_name(self) -> None:
        with pytest.raises(AgentDefinitionError, match="name"):
            parse_agent_markdown("---\nname: ''\ndescription: b\n---\n")

    def test_malformed_yaml(self) -> None:
        with pytest.raises(AgentDefinitionError, match="malformed frontmatter"):
            parse_agent_markdown("---\nname: [unclosed\ndescription: b\n---\n")

    def test_non_mapping_header(self) -> None:
        with pytest.raises(AgentDefinitionError, match="must be a mapping"):
            parse_agent_markdown("---\n- a\n- b\n---\n")

    def test_path_in_message(self) -> None:
        with pytest.raises(AgentDefinitionError) as excinfo:
            parse_agent_markdown("nope", path="/agents/x.md")
        assert str(excinfo.value).startswith("/agents/x.md: ")
        assert excinfo.value.path == "/agents/x.md"

    def test_non_positive_iterations(self) -> None:
        with pytest.raises(AgentDefinitionError, match="max_iterations"):
            parse_agent_markdown("---\nname: a\ndescription: b\nmax_iterations: 0\n---\n")


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


class TestSerialize:
    def test_round_trip_all_fields(self) -> None:
        d = AgentDefinition(
            name="test-writer",
            description="Writes unit tests: pytest only",
            system_prompt="Write focused tests.\n\n- one behaviour per test",
            model="anthropic/claude-haiku-4-5",
            allowed_tools=frozenset({"read_file", "propose_edit", "run_command"}),
            enabled=False,
            max_iterations=12,
            temperature=0.3,
            tags=frozenset({"testing"}),
            version="2.1",
            author="qa-team",
        )
        assert parse_agent_markdown(serialize_agent(d)) == d

    def test_round_trip_minimal(self) -> None:
        d = AgentDefinition(name="a", description="b", system_prompt="p")
        assert parse_agent_markdown(serialize_agent(d)) == d

    def test_inherit_model_omitted(self) -> None:
        text = serialize_agent(AgentDefinition(name="a", description="b"))
        assert "model:" not in text
        assert text.startswith("---\nname: a\ndescription: b\n")

    def test_tools_sorted(self) -> None:
        d = AgentDefinition(name="a", description="b", allowed_tools=frozenset({"z", "a"}))
        assert "tools:\n- a\n- z\n" in serialize_agent(d)


class TestMatches:
    def test_matches_name_description_and_tags(self) -> None:
        d = AgentDefinition(name="code-reviewer", description="Finds bugs", tags=frozenset({"Quality"}))
        assert d.matches("REVIEW")
        assert d.matches("bugs")
        assert d.matches("quality")
        assert not d.matches("deploy")
