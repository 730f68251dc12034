"""Edit proposals and the post-run review session.

The loop never writes files. Proposals collected during a run are
presented one by one after it ends; a human (or any ``EditApprover``)
decides what reaches disk.
"""

from __future__ import annotations

import asyncio
import dataclasses
import difflib
import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from codeloop.tool.builtin.write_file import WriteFileTool

logger = logging.getLogger(__name__)

NEW_FILE_PREVIEW_LINES = 10
CANCELLED_MESSAGE = "cancelled before review"


@dataclass(frozen=True)
class ProposedEdit:
    """A full-file replacement the model asked for."""

    path: str
    description: str
    old_content: str
    new_content: str
    # None when unknown; an empty old_content then means a new file.
    existed: bool | None = None

    @property
    def is_new_file(self) -> bool:
        if self.existed is not None:
            return not self.existed
        return self.old_content == ""


class EditDecision(enum.Enum):
    APPLY = "apply"
    SKIP = "skip"
    APPLY_ALL = "apply_all"
    SKIP_ALL = "skip_all"


class EditDisposition(enum.Enum):
    APPLIED = "applied"
    FAILED = "failed"  # approved, but the write failed
    SKIPPED = "skipped"


@dataclass(frozen=True)
class EditRecord:
    edit: ProposedEdit
    disposition: EditDisposition
    message: str = ""


class EditApprover(Protocol):
    """Human-approval interface: one decision per presented edit."""

    async def decide(self, edit: ProposedEdit, diff_lines: list[str]) -> EditDecision:
        ...


# ---------------------------------------------------------------------------
# Diff rendering
# ---------------------------------------------------------------------------


def generate_diff(edit: ProposedEdit, context: int = 3) -> list[str]:
    """Unified line diff of ``edit`` against ``old_content``.

    New files get a short preview instead.
    """
    if edit.is_new_file:
        return preview_new_file(edit)

    diff = difflib.unified_diff(
        edit.old_content.splitlines(),
        edit.new_content.splitlines(),
        fromfile=f"a/{edit.path}",
        tofile=f"b/{edit.path}",
        n=context,
        lineterm="",
    )
    return list(diff)


def preview_new_file(edit: ProposedEdit, max_lines: int = NEW_FILE_PREVIEW_LINES) -> list[str]:
    lines = edit.new_content.splitlines()
    preview = [f"new file: {edit.path} ({len(lines)} lines)"]
    preview.extend(f"+{line}" for line in lines[:max_lines])
    if len(lines) > max_lines:
        preview.append(f"... ({len(lines) - max_lines} more lines)")
    return preview


# ---------------------------------------------------------------------------
# Review session
# ---------------------------------------------------------------------------


class EditReviewSession:
    """Walk the collected edits once, asking ``approver`` about each.

    Each edit is diffed against what is on disk right before it is
    presented, so earlier approvals and later tool runs are reflected.
    ``writer`` both reads the current content
    and applies approved edits. Once ``cancel_event`` is set, nothing more
    is presented or written and the remaining edits are skipped. The
    result always holds exactly one record per edit, in collection order.
    """

    def __init__(
        self,
        edits: Sequence[ProposedEdit],
        approver: EditApprover,
        writer: WriteFileTool,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self._edits = list(edits)
        self._approver = approver
        self._writer = writer
        self._cancel_event = cancel_event

    async def run(self) -> list[EditRecord]:
        records: list[EditRecord] = []
        blanket: EditDecision | None = None

        for edit in self._edits:
            if self._cancelled():
                records.append(EditRecord(edit, EditDisposition.SKIPPED, CANCELLED_MESSAGE))
                continue

            if blanket is None:
                current = self._refresh(edit)
                decision = await self._approver.decide(current, generate_diff(current))
                if decision in (EditDecision.APPLY_ALL, EditDecision.SKIP_ALL):
                    blanket = decision
            else:
                decision = blanket

            if decision not in (EditDecision.APPLY, EditDecision.APPLY_ALL):
                records.append(EditRecord(edit, EditDisposition.SKIPPED))
            elif self._cancelled():
                records.append(EditRecord(edit, EditDisposition.SKIPPED, CANCELLED_MESSAGE))
            else:
                records.append(await self._apply(edit))

        applied = sum(1 for r in records if r.disposition is EditDisposition.APPLIED)
        logger.info("Edit review finished: %d/%d applied", applied, len(records))
        return records

    def _refresh(self, edit: ProposedEdit) -> ProposedEdit:
        try:
            current = self._writer.read_current(edit.path)
        except OSError as e:
            logger.warning("Could not re-read %s, diffing against proposal snapshot: %s", edit.path, e)
            return edit
        return dataclasses.replace(edit, old_content=current or "", existed=current is not None)

    def _cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    async def _apply(self, edit: ProposedEdit) -> EditRecord:
        result = await self._writer({"path": edit.path}, edit.new_content)
        if result.is_error:
            logger.warning("Failed to apply edit to %s: %s", edit.path, result.output)
            return EditRecord(edit, EditDisposition.FAILED, result.output)
        return EditRecord(edit, EditDisposition.APPLIED, result.output)


def summarize_records(records: Sequence[EditRecord]) -> str:
    """One line per edit with its final disposition."""
    lines = []
    for r in records:
        line = f"{r.disposition.value}: {r.edit.path}"
        if r.disposition is EditDisposition.FAILED:
            line += f" ({r.message})"
        lines.append(line)
    return "\n".join(lines)
