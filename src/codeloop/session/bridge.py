"""Bridge between AgentLoop callbacks and the Wire event bus.

Events are emitted in real-time:
- STEP_BEGIN fires *before* each provider call
- TEXT fires for each streamed chunk (or the whole reply when not streaming)
- TOOL_CALL fires before a tool runs, TOOL_RESULT right after
- EDIT_PROPOSED fires when a propose_edit invocation yields an edit

For sub-agents, ``agent_name`` tags every event so the UI can attribute
it; the main agent's events carry no tag.
"""

from __future__ import annotations

from typing import Any

from codeloop.agent.edits import ProposedEdit
from codeloop.agent.loop import LoopCallbacks
from codeloop.session.wire import EventType, Wire, WireEvent

RESULT_PREVIEW_CHARS = 500


def make_loop_callbacks(wire: Wire, agent_name: str | None = None) -> LoopCallbacks:
    """Create a full set of wire-emitting callbacks for one agent loop."""

    def _data(**fields: Any) -> dict[str, Any]:
        if agent_name is not None:
            fields["agent"] = agent_name
        return fields

    def on_step_begin(step_no: int, _agent_name: str) -> None:
        wire.send(WireEvent(type=EventType.STEP_BEGIN, data=_data(step=step_no)))

    def on_text(text: str) -> None:
        wire.send(WireEvent(type=EventType.TEXT, data=_data(text=text)))

    def on_tool_call(name: str, params: dict[str, str]) -> None:
        wire.send(WireEvent(type=EventType.TOOL_CALL, data=_data(name=name, params=dict(params))))

    def on_tool_result(name: str, content: str, is_error: bool) -> None:
        wire.send(
            WireEvent(
                type=EventType.TOOL_RESULT,
                data=_data(
                    name=name,
                    content=content[:RESULT_PREVIEW_CHARS],
                    is_error=is_error,
                ),
            )
        )

    def on_edit_proposed(edit: ProposedEdit) -> None:
        wire.send(
            WireEvent(
                type=EventType.EDIT_PROPOSED,
                data=_data(
                    path=edit.path,
                    description=edit.description,
                    new_file=edit.is_new_file,
                ),
            )
        )

    return LoopCallbacks(
        on_step_begin=on_step_begin,
        on_text=on_text,
        on_tool_call=on_tool_call,
        on_tool_result=on_tool_result,
        on_edit_proposed=on_edit_proposed,
    )
