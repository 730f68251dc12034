"""Output truncation: bound all tool output before it reaches the LLM."""

from __future__ import annotations

import os
import re
import tempfile

MAX_LINES = 2000
MAX_BYTES = 50 * 1024  # 50KB

OUTPUT_DIR = "~/.codeloop/tool-output"

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]")


def truncate_output(
    text: str,
    max_lines: int = MAX_LINES,
    max_bytes: int = MAX_BYTES,
    save_full: bool = True,
) -> str:
    """Truncate tool output to fit within the context budget.

    The tail is kept (errors and summaries tend to be at the end). When
    ``save_full`` is set the untruncated text is written to a temp file and
    the notice says where.
    """
    if not text:
        return text

    lines = text.split("\n")
    byte_count = len(text.encode("utf-8", errors="replace"))
    if len(lines) <= max_lines and byte_count <= max_bytes:
        return text

    skipped_lines = max(0, len(lines) - max_lines)
    kept = "\n".join(lines[skipped_lines:])

    skipped_bytes = 0
    kept_bytes = kept.encode("utf-8", errors="replace")
    if len(kept_bytes) > max_bytes:
        skipped_bytes = len(kept_bytes) - max_bytes
        # errors="ignore" drops a split multibyte char at the cut
        kept = kept_bytes[-max_bytes:].decode("utf-8", errors="ignore")

    skipped = []
    if skipped_lines:
        skipped.append(f"{skipped_lines} lines skipped")
    if skipped_bytes:
        skipped.append(f"{skipped_bytes} bytes skipped")

    notice = (
        f"[Output truncated: {', '.join(skipped)}. "
        f"Total: {len(lines)} lines, {byte_count} bytes]"
    )
    if save_full:
        notice += f"\n[Full output saved to: {_save_to_temp(text)}]"

    return f"{notice}\n{kept}"


def _save_to_temp(text: str) -> str:
    """Save full output to a temp file and return the path."""
    out_dir = os.path.expanduser(OUTPUT_DIR)
    os.makedirs(out_dir, exist_ok=True)
    fd, path = tempfile.mkstemp(prefix="codeloop-", suffix=".txt", dir=out_dir)
    with os.fdopen(fd, "w") as f:
        f.write(text)
    return path


def strip_ansi(text: str) -> str:
    """Strip ANSI escape sequences from text."""
    return _ANSI_RE.sub("", text)
