"""Wire protocol: decouples agent logic from UI.

Events flow from the agent loops to the UI. The UI subscribes to the
wire and renders events, so the CLI printer, tests and any future front
end consume the same stream.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    STEP_BEGIN = "step_begin"
    TEXT = "text"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    EDIT_PROPOSED = "edit_proposed"
    SUBAGENT_BEGIN = "subagent_begin"
    SUBAGENT_END = "subagent_end"
    STATUS = "status"
    ERROR = "error"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


class Wire:
    """Async message bus: agents -> UI subscribers.

    Multi-producer (main agent plus sub-agents), multi-consumer broadcast.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed: bool = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        for q in self._subscribers:
            q.put_nowait(event)

    def send_text(self, text: str, agent: str | None = None) -> None:
        self.send(WireEvent(type=EventType.TEXT, data=_tagged({"text": text}, agent)))

    def send_status(self, message: str) -> None:
        self.send(WireEvent(type=EventType.STATUS, data={"message": message}))

    def send_error(self, error: str, agent: str | None = None) -> None:
        self.send(WireEvent(type=EventType.ERROR, data=_tagged({"error": error}, agent)))

    def send_subagent_begin(self, agent: str, agent_id: str, task: str) -> None:
        self.send(
            WireEvent(
                type=EventType.SUBAGENT_BEGIN,
                data={"agent": agent, "id": agent_id, "task": task[:200]},
            )
        )

    def send_subagent_end(self, agent: str, agent_id: str, success: bool, summary: str) -> None:
        self.send(
            WireEvent(
                type=EventType.SUBAGENT_END,
                data={"agent": agent, "id": agent_id, "success": success, "summary": summary},
            )
        )

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)


def _tagged(data: dict[str, Any], agent: str | None) -> dict[str, Any]:
    if agent is not None:
        data["agent"] = agent
    return data
