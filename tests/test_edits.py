"""Tests for codeloop.agent.edits."""

from __future__ import annotations

import asyncio
from pathlib import Path

from codeloop.agent.edits import (
    CANCELLED_MESSAGE,
    EditDecision,
    EditDisposition,
    EditRecord,
    EditReviewSession,
    ProposedEdit,
    generate_diff,
    preview_new_file,
    summarize_records,
)
from codeloop.tool.builtin import WriteFileTool


def _edit(path: str, new: str, old: str = "old\n") -> ProposedEdit:
    return ProposedEdit(path=path, description=f"change {path}", old_content=old, new_content=new)


# ---------------------------------------------------------------------------
# Diff rendering
# ---------------------------------------------------------------------------


class TestGenerateDiff:
    def test_unified_diff(self) -> None:
        edit = _edit("src/app.py", "def main():\n    return 2\n", "def main():\n    return 1\n")
        lines = generate_diff(edit)
        assert lines[0] == "--- a/src/app.py"
        assert lines[1] == "+++ b/src/app.py"
        assert "-    return 1" in lines
        assert "+    return 2" in lines
        assert " def main():" in lines

    def test_identical_content_has_empty_diff(self) -> None:
        assert generate_diff(_edit("a.txt", "same\n", "same\n")) == []

    def test_new_file_uses_preview(self) -> None:
        edit = _edit("new.py", "a\nb\n", old="")
        assert generate_diff(edit) == ["new file: new.py (2 lines)", "+a", "+b"]

    def test_preview_is_bounded(self) -> None:
        content = "".join(f"line{i}\n" for i in range(15))
        preview = preview_new_file(_edit("big.txt", content, old=""))
        assert preview[0] == "new file: big.txt (15 lines)"
        assert len(preview) == 12
        assert preview[-1] == "... (5 more lines)"


# ---------------------------------------------------------------------------
# Review session
# ---------------------------------------------------------------------------


class TestEditReviewSession:
    async def test_apply_and_skip(self, workspace: Path, writer: WriteFileTool, make_approver) -> None:
        edits = [_edit("a.txt", "A\n"), _edit("b.txt", "B\n")]
        approver = make_approver([EditDecision.APPLY, EditDecision.SKIP])

        records = await EditReviewSession(edits, approver, writer).run()

        assert [r.disposition for r in records] == [EditDisposition.APPLIED, EditDisposition.SKIPPED]
        assert (workspace / "a.txt").read_text() == "A\n"
        assert not (workspace / "b.txt").exists()
        assert [e.path for e, _ in approver.seen] == ["a.txt", "b.txt"]

    async def test_apply_all_stops_prompting(self, workspace: Path, writer: WriteFileTool, make_approver) -> None:
        edits = [_edit(f"f{i}.txt", f"{i}\n") for i in range(3)]
        approver = make_approver([EditDecision.SKIP, EditDecision.APPLY_ALL])

        records = await EditReviewSession(edits, approver, writer).run()

        assert len(approver.seen) == 2
        assert [r.disposition for r in records] == [
            EditDisposition.SKIPPED,
            EditDisposition.APPLIED,
            EditDisposition.APPLIED,
        ]
        assert (workspace / "f2.txt").read_text() == "2\n"

    async def test_skip_all(self, workspace: Path, writer: WriteFileTool, make_approver) -> None:
        edits = [_edit("x.txt", "x\n"), _edit("y.txt", "y\n")]
        approver = make_approver([EditDecision.SKIP_ALL])

        records = await EditReviewSession(edits, approver, writer).run()

        assert len(approver.seen) == 1
        assert all(r.disposition is EditDisposition.SKIPPED for r in records)
        assert not (workspace / "x.txt").exists()

    async def test_write_failure_is_recorded(self, workspace: Path, writer: WriteFileTool, make_approver) -> None:
        # A regular file where a parent directory is needed makes the write fail.
        edits = [_edit("README.md/child.txt", "c\n"), _edit("ok.txt", "ok\n")]
        approver = make_approver([EditDecision.APPLY_ALL])

        records = await EditReviewSession(edits, approver, writer).run()

        assert records[0].disposition is EditDisposition.FAILED
        assert records[0].message.startswith("Error writing file")
        assert records[1].disposition is EditDisposition.APPLIED

    async def test_one_record_per_edit_in_order(self, writer: WriteFileTool, make_approver) -> None:
        edits = [_edit(f"n{i}.txt", "n\n") for i in range(4)]
        approver = make_approver([EditDecision.APPLY, EditDecision.SKIP, EditDecision.SKIP, EditDecision.APPLY])

        records = await EditReviewSession(edits, approver, writer).run()

        assert [r.edit for r in records] == edits

    async def test_diff_reflects_earlier_applied_edit(
        self, workspace: Path, writer: WriteFileTool, make_approver
    ) -> None:
        edits = [_edit("a.py", "x = 1\n", old=""), _edit("a.py", "x = 2\n", old="")]
        approver = make_approver([EditDecision.APPLY, EditDecision.APPLY])

        await EditReviewSession(edits, approver, writer).run()

        second, diff = approver.seen[1]
        assert not second.is_new_file
        assert "-x = 1" in diff
        assert "+x = 2" in diff
        assert (workspace / "a.py").read_text() == "x = 2\n"

    async def test_diff_against_current_disk_content(
        self, workspace: Path, writer: WriteFileTool, make_approver
    ) -> None:
        (workspace / "notes.txt").write_text("changed on disk\n")
        approver = make_approver([EditDecision.SKIP])

        records = await EditReviewSession([_edit("notes.txt", "final\n", old="original\n")], approver, writer).run()

        _, diff = approver.seen[0]
        assert "-changed on disk" in diff
        assert "-original" not in diff
        assert records[0].edit.old_content == "original\n"

    async def test_file_removed_since_proposal_shown_as_new(
        self, writer: WriteFileTool, make_approver
    ) -> None:
        approver = make_approver([EditDecision.SKIP])
        await EditReviewSession([_edit("gone.txt", "back\n", old="was here\n")], approver, writer).run()

        shown, diff = approver.seen[0]
        assert shown.is_new_file
        assert diff == ["new file: gone.txt (1 lines)", "+back"]


class _CancellingApprover:
    """Approves, but cancels the run while deciding."""

    def __init__(self, event: asyncio.Event) -> None:
        self._event = event
        self.asked = 0

    async def decide(self, edit: ProposedEdit, diff_lines: list[str]) -> EditDecision:
        self.asked += 1
        self._event.set()
        return EditDecision.APPLY


class TestEditReviewCancellation:
    async def test_cancelled_before_review(self, workspace: Path, writer: WriteFileTool, make_approver) -> None:
        event = asyncio.Event()
        event.set()
        edits = [_edit("a.txt", "a\n"), _edit("b.txt", "b\n")]
        approver = make_approver([])

        records = await EditReviewSession(edits, approver, writer, event).run()

        assert approver.seen == []
        assert [r.disposition for r in records] == [EditDisposition.SKIPPED] * 2
        assert all(r.message == CANCELLED_MESSAGE for r in records)
        assert not (workspace / "a.txt").exists()

    async def test_cancel_during_decision_writes_nothing(self, workspace: Path, writer: WriteFileTool) -> None:
        event = asyncio.Event()
        approver = _CancellingApprover(event)
        edits = [_edit("a.txt", "a\n"), _edit("b.txt", "b\n"), _edit("c.txt", "c\n")]

        records = await EditReviewSession(edits, approver, writer, event).run()

        assert approver.asked == 1
        assert len(records) == 3
        assert all(r.disposition is EditDisposition.SKIPPED for r in records)
        assert not (workspace / "a.txt").exists()


def test_summarize_records() -> None:
    records = [
        EditRecord(_edit("a.txt", "a\n"), EditDisposition.APPLIED),
        EditRecord(_edit("b.txt", "b\n"), EditDisposition.FAILED, "disk full"),
    ]
    assert summarize_records(records) == "applied: a.txt\nfailed: b.txt (disk full)"
