#!/usr/bin/env python3
"""Turn raw ``git log`` output into CommitRecords.

Recognized conventions:
  * squash merges ending in ``(#123)``
  * merge commits titled ``Merge pull request #123 from <branch>``, whose
    description is the first line of the body
  * conventional commit prefixes (``feat:``, ``fix(scope):``, ``chore!:``)
  * an explicit ``CHANGELOG entry: <text>`` paragraph in the body, where the
    value ``null`` opts the commit out of the changelog
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence

from changelog.changelog_models import CommitRecord

logger = logging.getLogger(__name__)

CONVENTIONAL_TYPES = (
    "feat",
    "fix",
    "docs",
    "style",
    "refactor",
    "perf",
    "test",
    "build",
    "ci",
    "chore",
    "revert",
    "security",
)
CONVENTIONAL_PREFIX_RE = re.compile(r"^(\w+)(\([^)]*\))?!?:\s*")
SQUASH_PR_RE = re.compile(r"\(#(\d+)\)")
TRAILING_PR_RE = re.compile(r"(?:\s*\(#\d+\))+\s*$")
MERGE_PR_RE = re.compile(r"^Merge pull request #(\d+) from \S+")
CHANGELOG_ENTRY_RE = re.compile(r"(?:^|\n)CHANGELOG entry:[ \t]*(\S.*?)(?:\n[ \t]*\n|\s*$)", re.DOTALL)
NULL_ENTRY = "null"

# git log --format: fields separated by US, records by RS
FIELD_SEPARATOR = "\x1f"
RECORD_SEPARATOR = "\x1e"
GIT_LOG_FORMAT = "%H%x1f%s%x1f%b%x1e"


def extract_pr_number(subject: str) -> Optional[int]:
    merge = MERGE_PR_RE.match(subject)
    if merge:
        return int(merge.group(1))
    found = SQUASH_PR_RE.findall(subject)
    if found:
        return int(found[-1])
    return None


def extract_commit_type(subject: str) -> Optional[str]:
    match = CONVENTIONAL_PREFIX_RE.match(subject)
    if not match:
        return None
    commit_type = match.group(1).lower()
    return commit_type if commit_type in CONVENTIONAL_TYPES else None


def strip_conventional_prefix(text: str) -> str:
    match = CONVENTIONAL_PREFIX_RE.match(text)
    if match and match.group(1).lower() in CONVENTIONAL_TYPES:
        return text[match.end():]
    return text


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def extract_changelog_entry(body: str) -> Optional[str]:
    """Read the ``CHANGELOG entry:`` paragraph of a commit body, cleaned up."""
    if not body:
        return None
    match = CHANGELOG_ENTRY_RE.search(body)
    if not match:
        return None
    text = " ".join(match.group(1).split())
    text = text.strip("`").strip()
    if text.lower() == NULL_ENTRY:
        return NULL_ENTRY
    text = strip_conventional_prefix(text).strip()
    return _capitalize(text) if text else None


def _body_summary(body: str) -> Optional[str]:
    for line in (body or "").splitlines():
        if line.strip():
            return line.strip()
    return None


def parse_commit(sha: str, subject: str, body: str = "") -> CommitRecord:
    subject = subject.strip()
    entry = extract_changelog_entry(body)
    excluded = entry == NULL_ENTRY
    return CommitRecord(
        sha=sha,
        subject=subject,
        body_summary=_body_summary(body),
        pr_number=extract_pr_number(subject),
        commit_type=extract_commit_type(subject),
        changelog_entry=None if excluded else entry,
        excluded=excluded,
    )


def parse_git_log(output: str) -> List[CommitRecord]:
    """Parse ``git log --format=GIT_LOG_FORMAT`` output, newest commit first."""
    commits: List[CommitRecord] = []
    for record in output.split(RECORD_SEPARATOR):
        record = record.strip("\n")
        if not record.strip():
            continue
        fields = record.split(FIELD_SEPARATOR, 2)
        if len(fields) < 2:
            logger.warning(f"Skipping unparseable git log record: {record[:80]!r}")
            continue
        sha, subject = fields[0].strip(), fields[1]
        body = fields[2] if len(fields) > 2 else ""
        commits.append(parse_commit(sha, subject, body))
    logger.debug(f"✓ Parsed {len(commits)} commit(s) from git log")
    return commits


def commit_description(commit: CommitRecord) -> str:
    """Cleaned commit subject used as entry text."""
    if MERGE_PR_RE.match(commit.subject):
        return commit.body_summary or commit.subject
    return TRAILING_PR_RE.sub("", commit.subject).strip()


def exclude_labeled(commits: Sequence[CommitRecord], labels_by_pr: Dict[int, Iterable[str]], label: str) -> List[CommitRecord]:
    """Mark commits whose PR carries ``label`` as excluded."""
    marked: List[CommitRecord] = []
    for commit in commits:
        labels = labels_by_pr.get(commit.pr_number, ()) if commit.pr_number is not None else ()
        if label in labels and not commit.excluded:
            logger.info(f"Excluding PR #{commit.pr_number}: labeled '{label}'")
            commit = commit.model_copy(update={"excluded": True})
        marked.append(commit)
    return marked
