"""Tool-call parser: extract tool invocations from raw model text.

Expected markup (document order is execution order):

    Some narration first.
    <tool name="read_file" path="src/app.py" />
    <tool name="propose_edit" path="src/app.py" description="fix typo">
    ...full new file content...
    </tool>

The start marker's attributes are parsed first; the body is whatever sits
between the start marker and the next explicit end marker, so bodies may
contain marker-like text. Unterminated start markers are ignored rather
than executed with a partial body.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from codeloop.tool.base import ToolInvocation

logger = logging.getLogger(__name__)

_ATTR = r'[A-Za-z_][\w-]*="[^"\n]*"'
_START_RE = re.compile(
    rf'<tool\s+name="([^"\n]+)"((?:\s+{_ATTR})*)\s*(/?)>', re.IGNORECASE
)
_END_RE = re.compile(r"</tool\s*>", re.IGNORECASE)
_ATTR_RE = re.compile(r'([A-Za-z_][\w-]*)="([^"\n]*)"')


@dataclass(frozen=True)
class ParsedResponse:
    """Tool invocations found in one model turn plus the text before them."""

    narration: str
    invocations: list[ToolInvocation] = field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return len(self.invocations) > 0


def parse_tool_calls(text: str) -> ParsedResponse:
    """Parse ``text`` into ordered tool invocations and leading narration.

    With no markers at all the invocation list is empty and the whole text
    is narration.
    """
    invocations: list[ToolInvocation] = []
    first_start: int | None = None
    pos = 0

    while True:
        start = _START_RE.search(text, pos)
        if start is None:
            break

        name, attr_text, self_closing = start.groups()
        params = dict(_ATTR_RE.findall(attr_text))

        if self_closing:
            body = ""
            pos = start.end()
        else:
            end = _END_RE.search(text, start.end())
            if end is None:
                logger.warning("Ignoring unterminated <tool name=%r> marker", name)
                pos = start.end()
                continue
            body = _clean_body(text[start.end() : end.start()])
            pos = end.end()

        if first_start is None:
            first_start = start.start()
        invocations.append(ToolInvocation(tool_name=name, params=params, body=body))

    if first_start is None:
        return ParsedResponse(narration=text)
    return ParsedResponse(narration=text[:first_start].strip(), invocations=invocations)


def _clean_body(body: str) -> str:
    # Drop the newline after the start marker and trailing blank space, but
    # keep indentation on the first content line.
    return body.lstrip("\r\n").rstrip()
