#!/usr/bin/env python3
"""Error taxonomy for changelog parsing, reconciliation and validation.

Every error carries a short ``code`` so callers (the CLI in particular) can map
failures to friendly messages without string matching.
"""

from typing import Any, List, Optional, Sequence

FRAGMENT_MAX_CHARS = 80


def truncate_fragment(fragment: str, limit: int = FRAGMENT_MAX_CHARS) -> str:
    """Trim a document fragment for error messages."""
    fragment = fragment.rstrip("\r\n")
    if len(fragment) > limit:
        return f"{fragment[:limit]}..."
    return fragment


class ChangelogError(Exception):
    """Base error with a typed code for friendly handling."""
    def __init__(self, message: str, code: str = "UNKNOWN") -> None:
        super().__init__(message)
        self.code = code


class MalformedDocument(ChangelogError):
    """Raised when the document does not follow the changelog grammar."""
    def __init__(self, message: str, fragment: Optional[str] = None, line_number: Optional[int] = None) -> None:
        self.fragment = truncate_fragment(fragment) if fragment is not None else None
        self.line_number = line_number
        detail = message
        if self.fragment is not None:
            detail = f"{message}: '{self.fragment}'"
        if line_number is not None:
            detail = f"{detail} (line {line_number})"
        super().__init__(detail, code="MALFORMED")
        self.reason = message


class ValidationFailed(ChangelogError):
    """Raised with every violation collected during one validation pass."""
    def __init__(self, violations: Sequence[Any]) -> None:
        self.violations: List[Any] = list(violations)
        lines = [str(getattr(v, "message", v)) for v in self.violations]
        summary = f"Changelog validation failed with {len(lines)} violation(s)"
        if lines:
            summary = summary + ":\n" + "\n".join(f"  - {line}" for line in lines)
        super().__init__(summary, code="VALIDATION")


class MissingPrNumber(ChangelogError):
    """A commit has no PR reference while PR numbers are required."""
    def __init__(self, commit: Any) -> None:
        self.commit = commit
        subject = getattr(commit, "subject", str(commit))
        sha = getattr(commit, "sha", "")
        super().__init__(f"Commit {sha[:7]} has no PR number: '{truncate_fragment(subject)}'", code="MISSING_PR")


class DependencyBumpMismatch(ChangelogError):
    """One or more dependency bumps lack a matching changelog entry."""
    def __init__(self, message: str, records: Sequence[Any] = ()) -> None:
        self.records = list(records)
        super().__init__(message, code="DEPENDENCY_BUMP")


class CollaboratorFailure(ChangelogError):
    """A command runner, HTTP or file I/O collaborator failed."""
    def __init__(self, message: str, code: str = "EXIT", cause: Optional[BaseException] = None) -> None:
        super().__init__(message, code=code)
        self.cause = cause
