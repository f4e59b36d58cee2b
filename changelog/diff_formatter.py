#!/usr/bin/env python3
"""Unified diff rendering for validation messages and fix previews."""

import difflib
from typing import List

NO_NEWLINE_MARKER = "\\ No newline at end of file"


def generate_diff(before: str, after: str, *, before_label: str = "current", after_label: str = "expected", context: int = 2) -> str:
    """Render the differences between two texts as a unified diff.

    Lines are compared with their line endings, so a missing final newline
    shows up (with the usual ``\\ No newline at end of file`` marker).

    Returns:
        The diff text, or an empty string when both texts are identical
    """
    if before == after:
        return ""
    diff_lines = difflib.unified_diff(
        before.splitlines(keepends=True),
        after.splitlines(keepends=True),
        fromfile=before_label,
        tofile=after_label,
        n=context,
    )
    out: List[str] = []
    for line in diff_lines:
        if line.endswith("\n"):
            out.append(line.rstrip("\r\n"))
        else:
            out.append(line)
            out.append(NO_NEWLINE_MARKER)
    return "\n".join(out) + "\n"
