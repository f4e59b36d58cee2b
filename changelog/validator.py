#!/usr/bin/env python3
"""Changelog validation: run every check over a changelog text and report all
violations together.

A grammar error stops the pass since the document cannot be built. Release
ordering problems are reported as violations and the remaining checks still
run against the recovered document.
"""

import logging
from enum import Enum
from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

from changelog.changelog_models import ChangeCategory, ChangelogDocument, CommitRecord, PackageRename, Release
from changelog.changelog_parser import parse_with_issues
from changelog.dependency_bumps import DependencyCheckResult, find_bump_mismatches
from changelog.diff_formatter import generate_diff
from changelog.errors import MalformedDocument, ValidationFailed
from changelog.link_references import DEFAULT_TAG_PREFIX, expected_link_references, pull_request_url, tag_for
from changelog.serializer import render_canonical
from changelog.versioning import is_semver

logger = logging.getLogger(__name__)


class ViolationKind(str, Enum):
    """Kind of problem a validation check reports."""

    GRAMMAR = "grammar"
    ORDERING = "ordering"
    MISSING_LINK = "missing-link"
    EXTRA_LINK = "extra-link"
    LINK_MISMATCH = "link-mismatch"
    UNKNOWN_TAG = "unknown-tag"
    MISSING_RELEASE = "missing-release"
    UNRELEASED_CHANGES = "unreleased-changes"
    MISSING_PR_LINK = "missing-pr-link"
    UNCATEGORIZED = "uncategorized"
    UNTRACED_ENTRY = "untraced-entry"
    DEPENDENCY_BUMP = "dependency-bump"
    FORMATTING = "formatting"


class Violation(BaseModel):
    """One problem found in a changelog, with the release it concerns."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: ViolationKind
    message: str
    release: Optional[str] = None
    detail: Optional[str] = None

    def __str__(self) -> str:
        return self.message


class ValidateOptions(BaseModel):
    """Inputs for the optional checks.

    Tag, traceability and dependency checks run only when their input
    (`tags`, `commits`, `dependency_result`) is given.
    """

    repo_url: Optional[str] = None
    current_version: Optional[str] = None
    is_release_candidate: bool = False
    tag_prefix: str = DEFAULT_TAG_PREFIX
    package_rename: Optional[PackageRename] = None
    # None skips the tag check
    tags: Optional[Sequence[str]] = None
    require_pr_links: bool = False
    commits: Optional[Sequence[CommitRecord]] = None
    dependency_result: Optional[DependencyCheckResult] = None
    check_formatting: bool = True

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def _check_current_version(self) -> "ValidateOptions":
        if self.is_release_candidate and not self.current_version:
            raise ValueError("A current version is required in release-candidate mode")
        if self.current_version is not None and not is_semver(self.current_version):
            raise ValueError(f"Current version '{self.current_version}' is not a semantic version")
        return self


class ValidationReport(BaseModel):
    """Every violation collected in one validation pass."""

    violations: List[Violation] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    def of_kind(self, kind: ViolationKind) -> List[Violation]:
        return [v for v in self.violations if v.kind == kind]

    def raise_for_violations(self) -> None:
        if self.violations:
            raise ValidationFailed(self.violations)


def _check_links(document: ChangelogDocument, options: ValidateOptions) -> List[Violation]:
    violations: List[Violation] = []
    identifiers = document.release_identifiers
    seen = set()
    for link in document.links:
        if link.identifier in seen:
            violations.append(Violation(kind=ViolationKind.EXTRA_LINK, release=link.identifier, message=f"Duplicate link reference [{link.identifier}]"))
        elif link.identifier not in identifiers:
            violations.append(Violation(kind=ViolationKind.EXTRA_LINK, release=link.identifier, message=f"Link reference [{link.identifier}] has no matching release"))
        seen.add(link.identifier)
    for identifier in identifiers:
        if identifier not in seen:
            violations.append(Violation(kind=ViolationKind.MISSING_LINK, release=identifier, message=f"Missing link reference for [{identifier}]"))

    if options.repo_url:
        versions = [r.identifier for r in document.versioned_releases]
        expected = expected_link_references(versions, options.repo_url, options.tag_prefix, options.package_rename)
        actual = document.link_map
        for identifier, url in expected.items():
            if identifier in actual and actual[identifier] != url:
                violations.append(Violation(
                    kind=ViolationKind.LINK_MISMATCH,
                    release=identifier,
                    message=f"Link reference [{identifier}] should be '{url}', found '{actual[identifier]}'",
                ))
    return violations


def _check_tags(document: ChangelogDocument, options: ValidateOptions) -> List[Violation]:
    violations: List[Violation] = []
    tags = set(options.tags or ())
    for release in document.versioned_releases:
        if options.is_release_candidate and release.identifier == options.current_version:
            continue
        tag = tag_for(release.identifier, options.tag_prefix, options.package_rename)
        if tag not in tags:
            violations.append(Violation(
                kind=ViolationKind.UNKNOWN_TAG,
                release=release.identifier,
                message=f"Release [{release.identifier}] has no matching tag '{tag}'",
            ))
    return violations


def _check_current_version(document: ChangelogDocument, options: ValidateOptions) -> List[Violation]:
    violations: List[Violation] = []
    version = options.current_version
    if version is None:
        return violations
    release = document.get_release(version)
    if options.is_release_candidate:
        if release is None:
            violations.append(Violation(kind=ViolationKind.MISSING_RELEASE, release=version, message=f"Current version [{version}] has no release section"))
        unreleased = document.unreleased
        if unreleased is not None and unreleased.entries:
            violations.append(Violation(
                kind=ViolationKind.UNRELEASED_CHANGES,
                release=unreleased.identifier,
                message=f"Unreleased section has {len(unreleased.entries)} change(s) that should be part of [{version}]",
            ))
        if release is not None:
            uncategorized = release.category(ChangeCategory.UNCATEGORIZED)
            if uncategorized is not None and uncategorized.entries:
                violations.append(Violation(
                    kind=ViolationKind.UNCATEGORIZED,
                    release=version,
                    message=f"Release [{version}] still has {len(uncategorized.entries)} uncategorized change(s)",
                ))
    elif release is None and document.versioned_releases:
        violations.append(Violation(kind=ViolationKind.MISSING_RELEASE, release=version, message=f"Current version [{version}] has no release section"))
    return violations


def _check_pr_links(document: ChangelogDocument, options: ValidateOptions) -> List[Violation]:
    violations: List[Violation] = []
    for release in document.releases:
        for entry in release.entries:
            links = entry.pr_links
            if not links:
                violations.append(Violation(kind=ViolationKind.MISSING_PR_LINK, release=release.identifier, message=f"Entry in [{release.identifier}] has no PR link: '{entry.text}'"))
                continue
            if options.repo_url:
                for number, url in links:
                    if url is not None and url != pull_request_url(options.repo_url, number):
                        violations.append(Violation(
                            kind=ViolationKind.MISSING_PR_LINK,
                            release=release.identifier,
                            message=f"Entry in [{release.identifier}] links PR #{number} to '{url}'",
                        ))
    return violations


def _prepared_release(document: ChangelogDocument, options: ValidateOptions) -> Optional[Release]:
    if options.is_release_candidate and options.current_version:
        return document.get_release(options.current_version)
    return document.unreleased


def _check_traceability(document: ChangelogDocument, options: ValidateOptions) -> List[Violation]:
    violations: List[Violation] = []
    release = _prepared_release(document, options)
    if release is None:
        return violations
    known = {c.pr_number for c in options.commits or () if c.pr_number is not None}
    for entry in release.entries:
        untraced = [n for n in entry.pr_numbers if n not in known]
        if untraced:
            numbers = ", ".join(f"#{n}" for n in untraced)
            violations.append(Violation(
                kind=ViolationKind.UNTRACED_ENTRY,
                release=release.identifier,
                message=f"Entry in [{release.identifier}] references {numbers} not found in commit history: '{entry.text}'",
            ))
    return violations


def _check_formatting(text: str, document: ChangelogDocument) -> List[Violation]:
    expected = render_canonical(document)
    if expected == text:
        return []
    diff = generate_diff(text, expected)
    return [Violation(kind=ViolationKind.FORMATTING, message="Changelog is not well-formatted", detail=diff)]


def validate_document(text: str, options: Optional[ValidateOptions] = None) -> ValidationReport:
    """Validate changelog text and collect every violation.

    Grammar errors stop the pass early because nothing past the parser can be
    trusted; every other check runs and reports independently.
    """
    options = options or ValidateOptions()
    report = ValidationReport()
    try:
        document, issues = parse_with_issues(text)
    except MalformedDocument as e:
        report.violations.append(Violation(kind=ViolationKind.GRAMMAR, message=str(e)))
        return report

    for issue in issues:
        report.violations.append(Violation(kind=ViolationKind.ORDERING, message=f"{issue.message} (line {issue.line_number})"))
    report.violations.extend(_check_links(document, options))
    if options.tags is not None:
        report.violations.extend(_check_tags(document, options))
    report.violations.extend(_check_current_version(document, options))
    if options.require_pr_links:
        report.violations.extend(_check_pr_links(document, options))
    if options.commits is not None:
        report.violations.extend(_check_traceability(document, options))
    if options.dependency_result is not None:
        for check in find_bump_mismatches(document, options.dependency_result):
            report.violations.append(Violation(kind=ViolationKind.DEPENDENCY_BUMP, release=check.target, message=check.message))
    if options.check_formatting:
        report.violations.extend(_check_formatting(text, document))

    logger.info(f"Validation finished with {len(report.violations)} violation(s)")
    return report
