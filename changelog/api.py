#!/usr/bin/env python3
"""Text-in, text-out entry points of the changelog core.

Everything here is pure: callers read and write files and run git themselves.
"""

import logging
from typing import Optional, Sequence

from changelog.changelog_models import UNRELEASED, ChangelogDocument, CommitRecord, LinkReference, Release
from changelog.changelog_parser import parse
from changelog.dependency_bumps import DependencyCheckResult, detect_dependency_bumps, fix_dependency_bumps
from changelog.link_references import DEFAULT_TAG_PREFIX
from changelog.reconciliation import UpdateOptions, UpdateResult, update_document
from changelog.serializer import render_canonical, serialize
from changelog.validator import ValidateOptions, ValidationReport, validate_document

logger = logging.getLogger(__name__)

__all__ = [
    "create_empty_changelog",
    "detect_dependency_bumps",
    "fix_dependency_bump_entries",
    "fix_formatting",
    "update_changelog",
    "validate_changelog",
]


def create_empty_document(repo_url: str, tag_prefix: str = DEFAULT_TAG_PREFIX) -> ChangelogDocument:
    """Title, preamble, an empty Unreleased section and its link reference.

    ``tag_prefix`` only matters once releases exist; it is accepted so callers
    can pass their configuration through unchanged.
    """
    logger.debug(f"Creating empty changelog for {repo_url} (tag prefix '{tag_prefix}')")
    return ChangelogDocument(
        releases=(Release(identifier=UNRELEASED, leading="\n"),),
        links=(LinkReference(identifier=UNRELEASED, url=repo_url, leading="\n"),),
    )


def create_empty_changelog(repo_url: str, tag_prefix: str = DEFAULT_TAG_PREFIX) -> str:
    return serialize(create_empty_document(repo_url, tag_prefix))


def update_changelog(text: str, commits: Sequence[CommitRecord], options: UpdateOptions) -> Optional[str]:
    """Merge commits into changelog text.

    Returns:
        The new text, or None when there are no changes to add

    Raises:
        MalformedDocument: If the existing text cannot be parsed
    """
    result: UpdateResult = update_document(parse(text), commits, options)
    if not result.changed:
        logger.info("There are no new commits to add to the changelog")
        return None
    return serialize(result.document)


def validate_changelog(text: str, options: Optional[ValidateOptions] = None) -> ValidationReport:
    return validate_document(text, options)


def fix_formatting(text: str) -> str:
    """Canonical rendering of ``text``.

    Raises:
        MalformedDocument: If the text cannot be parsed
    """
    return render_canonical(parse(text))


def fix_dependency_bump_entries(
    text: str,
    result: DependencyCheckResult,
    *,
    repo_url: str,
    pr_number: Optional[int] = None,
    use_short_pr_link: bool = False,
) -> Optional[str]:
    """Repair missing and stale dependency bump entries.

    Returns:
        The new text, or None when every bump is already documented
    """
    document, fixed = fix_dependency_bumps(
        parse(text),
        result,
        repo_url=repo_url,
        pr_number=pr_number,
        use_short_pr_link=use_short_pr_link,
    )
    if not fixed:
        return None
    return serialize(document)
