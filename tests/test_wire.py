"""Tests for codeloop.session.wire and codeloop.session.bridge."""

from __future__ import annotations

import asyncio

from codeloop.agent.edits import ProposedEdit
from codeloop.session.bridge import RESULT_PREVIEW_CHARS, make_loop_callbacks
from codeloop.session.wire import EventType, Wire, WireEvent


def _drain(q: asyncio.Queue) -> list[WireEvent | None]:
    events = []
    while not q.empty():
        events.append(q.get_nowait())
    return events


# ---------------------------------------------------------------------------
# EventType
# ---------------------------------------------------------------------------


class TestEventType:
    def test_all_variants_exist(self) -> None:
        expected = {
            "STEP_BEGIN",
            "TEXT",
            "TOOL_CALL",
            "TOOL_RESULT",
            "EDIT_PROPOSED",
            "SUBAGENT_BEGIN",
            "SUBAGENT_END",
            "STATUS",
            "ERROR",
        }
        assert {e.name for e in EventType} == expected

    def test_values_are_lowercase(self) -> None:
        for e in EventType:
            assert e.value == e.name.lower()


# ---------------------------------------------------------------------------
# Wire: basic send/subscribe
# ---------------------------------------------------------------------------


class TestWire:
    def test_send_to_multiple_subscribers(self) -> None:
        wire = Wire()
        q1 = wire.subscribe()
        q2 = wire.subscribe()
        wire.send(WireEvent(type=EventType.STATUS, data={"message": "ok"}))
        e1 = q1.get_nowait()
        e2 = q2.get_nowait()
        assert e1 is not None and e2 is not None
        assert e1.type == e2.type == EventType.STATUS

    def test_unsubscribe(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.unsubscribe(q)
        wire.send(WireEvent(type=EventType.TEXT))
        assert q.empty()

    def test_unsubscribe_nonexistent_is_safe(self) -> None:
        wire = Wire()
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        wire.unsubscribe(q)

    def test_close_sends_sentinel_then_drops(self) -> None:
        wire = Wire()
        q1 = wire.subscribe()
        q2 = wire.subscribe()
        wire.close()
        assert wire.closed
        assert q1.get_nowait() is None
        assert q2.get_nowait() is None
        wire.send_text("too late")
        wire.send_subagent_begin("a", "agent_1", "task")
        assert q1.empty()


class TestWireConvenience:
    def test_send_text_untagged(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.send_text("hello")
        event = q.get_nowait()
        assert event.type == EventType.TEXT
        assert event.data == {"text": "hello"}

    def test_send_error_tagged(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.send_error("boom", agent="explorer")
        assert q.get_nowait().data == {"error": "boom", "agent": "explorer"}

    def test_subagent_begin_truncates_task(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.send_subagent_begin("explorer", "agent_1", "t" * 500)
        event = q.get_nowait()
        assert event.type == EventType.SUBAGENT_BEGIN
        assert len(event.data["task"]) == 200
        assert event.data["id"] == "agent_1"

    def test_subagent_end(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        wire.send_subagent_end("explorer", "agent_1", False, "Failed: x")
        assert q.get_nowait().data == {
            "agent": "explorer",
            "id": "agent_1",
            "success": False,
            "summary": "Failed: x",
        }


# ---------------------------------------------------------------------------
# Bridge
# ---------------------------------------------------------------------------


class TestBridge:
    def test_main_agent_events_untagged(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        cb = make_loop_callbacks(wire)

        cb.on_step_begin(1, "main")
        cb.on_text("thinking")
        cb.on_tool_call("read_file", {"path": "a.py"})
        cb.on_tool_result("read_file", "1: x", False)

        events = _drain(q)
        assert [e.type for e in events] == [
            EventType.STEP_BEGIN,
            EventType.TEXT,
            EventType.TOOL_CALL,
            EventType.TOOL_RESULT,
        ]
        assert events[0].data == {"step": 1}
        assert events[2].data == {"name": "read_file", "params": {"path": "a.py"}}
        assert all("agent" not in e.data for e in events)

    def test_sub_agent_events_tagged(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        cb = make_loop_callbacks(wire, "explorer")

        cb.on_text("hi")
        cb.on_edit_proposed(ProposedEdit("new.py", "add", "", "x = 1\n"))

        text, edit = _drain(q)
        assert text.data == {"text": "hi", "agent": "explorer"}
        assert edit.type == EventType.EDIT_PROPOSED
        assert edit.data == {"path": "new.py", "description": "add", "new_file": True, "agent": "explorer"}

    def test_tool_result_preview_truncated(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        make_loop_callbacks(wire).on_tool_result("run_command", "z" * 5000, True)
        event = q.get_nowait()
        assert len(event.data["content"]) == RESULT_PREVIEW_CHARS
        assert event.data["is_error"] is True
