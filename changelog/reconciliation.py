#!/usr/bin/env python3
"""Reconciliation engine: merge newly observed commits into a changelog.

New entries go on top of their category inside the target release (Unreleased,
or the release-candidate section), in the order the commits are given. A PR
already referenced anywhere in the document is never added again, which makes
repeated runs with the same history a no-op.
"""

import logging
from dataclasses import dataclass, field
from datetime import date as _date
from typing import Dict, List, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, ConfigDict, model_validator

from changelog.changelog_models import (
    UNRELEASED,
    Category,
    ChangeCategory,
    ChangelogDocument,
    CommitRecord,
    Entry,
    LinkReference,
    PackageRename,
    Release,
)
from changelog.commit_history import commit_description
from changelog.errors import MissingPrNumber
from changelog.link_references import DEFAULT_TAG_PREFIX, entry_text, expected_link_references
from changelog.versioning import is_semver, parse_version

logger = logging.getLogger(__name__)

CONVENTIONAL_CATEGORIES: Dict[str, ChangeCategory] = {
    "feat": ChangeCategory.ADDED,
    "fix": ChangeCategory.FIXED,
}


class UpdateOptions(BaseModel):
    """Inputs of one update run besides the document and the commits."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    repo_url: str
    is_release_candidate: bool = False
    current_version: Optional[str] = None
    auto_categorize: bool = False
    use_changelog_entry: bool = False
    require_pr_numbers: bool = False
    use_short_pr_link: bool = False
    tag_prefix: str = DEFAULT_TAG_PREFIX
    package_rename: Optional[PackageRename] = None
    release_date: Optional[str] = None
    default_category: ChangeCategory = ChangeCategory.CHANGED

    @model_validator(mode="after")
    def _check_release_candidate(self) -> "UpdateOptions":
        if self.is_release_candidate and not self.current_version:
            raise ValueError("A current version is required in release-candidate mode")
        if self.current_version is not None and not is_semver(self.current_version):
            raise ValueError(f"Current version '{self.current_version}' is not a semantic version")
        return self


@dataclass
class UpdateResult:
    """Outcome of an update run."""

    document: ChangelogDocument
    added: List[Entry] = field(default_factory=list)
    skipped: List[CommitRecord] = field(default_factory=list)
    dropped: List[MissingPrNumber] = field(default_factory=list)
    changed: bool = False


def represented_pr_numbers(document: ChangelogDocument) -> Set[int]:
    """Every PR number referenced by any entry of any release."""
    numbers: Set[int] = set()
    for release in document.releases:
        for entry in release.entries:
            numbers.update(entry.pr_numbers)
    return numbers


def represented_descriptions(document: ChangelogDocument) -> Set[str]:
    return {entry.description for release in document.releases for entry in release.entries}


def categorize(commit: CommitRecord, auto_categorize: bool, default_category: ChangeCategory = ChangeCategory.CHANGED) -> ChangeCategory:
    if not auto_categorize or commit.commit_type is None:
        return ChangeCategory.UNCATEGORIZED
    return CONVENTIONAL_CATEGORIES.get(commit.commit_type, default_category)


def _prepend_entries(category: Category, entries: Sequence[Entry]) -> Category:
    new_entries = list(entries)
    existing = list(category.entries)
    if existing:
        # the new first entry takes over the spot directly under the header
        new_entries[0] = new_entries[0].model_copy(update={"leading": existing[0].leading})
        existing[0] = existing[0].model_copy(update={"leading": ""})
    else:
        new_entries[0] = new_entries[0].model_copy(update={"leading": ""})
    return category.model_copy(update={"entries": tuple(new_entries + existing)})


def _add_category(categories: List[Category], category: Category) -> List[Category]:
    position = sum(1 for existing in categories if existing.name.rank < category.name.rank)
    if position == 0 and categories:
        first = categories[0]
        category = category.model_copy(update={"leading": first.leading})
        categories[0] = first.model_copy(update={"leading": "\n"})
    elif position == 0:
        category = category.model_copy(update={"leading": ""})
    else:
        category = category.model_copy(update={"leading": "\n"})
    categories.insert(position, category)
    return categories


def insert_entries(release: Release, new_entries: Sequence[Tuple[ChangeCategory, Entry]]) -> Release:
    """Insert entries at the top of their categories, keeping their given order.

    Missing categories are created at their canonical position.
    """
    grouped: Dict[ChangeCategory, List[Entry]] = {}
    for category_name, entry in new_entries:
        grouped.setdefault(category_name, []).append(entry)

    categories = list(release.categories)
    for category_name, entries in grouped.items():
        index = next((i for i, c in enumerate(categories) if c.name == category_name), None)
        if index is not None:
            categories[index] = _prepend_entries(categories[index], entries)
        else:
            fresh = _prepend_entries(Category(name=category_name), entries)
            categories = _add_category(categories, fresh)
    return release.model_copy(update={"categories": tuple(categories)})


def replace_release(document: ChangelogDocument, release: Release) -> ChangelogDocument:
    releases = tuple(release if r.identifier == release.identifier else r for r in document.releases)
    return document.model_copy(update={"releases": releases})


def add_release(document: ChangelogDocument, version: str, release_date: str) -> ChangelogDocument:
    """Create an empty dated release at its descending position (after Unreleased)."""
    if document.get_release(version) is not None:
        return document
    new_version = parse_version(version)
    releases = list(document.releases)
    position = len(releases)
    for index, release in enumerate(releases):
        if not release.is_unreleased and parse_version(release.identifier) < new_version:
            position = index
            break
    releases.insert(position, Release(identifier=version, date=release_date, leading="\n"))
    logger.info(f"Created release section [{version}] - {release_date}")
    return document.model_copy(update={"releases": tuple(releases)})


def migrate_unreleased(document: ChangelogDocument, version: str) -> Tuple[ChangelogDocument, bool]:
    """Move every Unreleased entry into the ``version`` release."""
    unreleased = document.unreleased
    target = document.get_release(version)
    if unreleased is None or target is None or not unreleased.entries:
        return document, False
    moved = [(category.name, entry) for category in unreleased.categories for entry in category.entries]
    document = replace_release(document, insert_entries(target, moved))
    document = replace_release(document, unreleased.model_copy(update={"categories": ()}))
    logger.info(f"Moved {len(moved)} unreleased change(s) into [{version}]")
    return document, True


def refresh_link_references(
    document: ChangelogDocument,
    identifiers: Sequence[str],
    repo_url: str,
    tag_prefix: str = DEFAULT_TAG_PREFIX,
    package_rename: Optional[PackageRename] = None,
) -> ChangelogDocument:
    """Add or correct the link references of the given release identifiers.

    Links of other releases are left untouched, even when they are wrong.
    """
    expected = expected_link_references(
        [release.identifier for release in document.versioned_releases],
        repo_url,
        tag_prefix,
        package_rename,
    )
    order = document.release_identifiers
    links = list(document.links)
    for identifier in identifiers:
        url = expected[identifier]
        index = next((i for i, link in enumerate(links) if link.identifier == identifier), None)
        if index is not None:
            if links[index].url != url:
                links[index] = links[index].model_copy(update={"url": url, "source": None})
            continue
        preceding = set(order[:order.index(identifier)])
        position = 0
        for i, link in enumerate(links):
            if link.identifier in preceding:
                position = i + 1
        new_link = LinkReference(identifier=identifier, url=url)
        if not links:
            new_link = new_link.model_copy(update={"leading": "\n"})
        elif position == 0:
            new_link = new_link.model_copy(update={"leading": links[0].leading})
            links[0] = links[0].model_copy(update={"leading": ""})
        else:
            previous = links[position - 1]
            if previous.source is not None and not previous.source.endswith("\n"):
                links[position - 1] = previous.model_copy(update={"source": previous.source + "\n"})
        links.insert(position, new_link)
    return document.model_copy(update={"links": tuple(links)})


def update_document(document: ChangelogDocument, commits: Sequence[CommitRecord], options: UpdateOptions) -> UpdateResult:
    """Merge ``commits`` (newest first) into the document.

    Args:
        document: Parsed changelog
        commits: Commits observed since the last release, newest first
        options: Reconciliation settings

    Returns:
        UpdateResult; ``changed`` is False when there was nothing to add
    """
    target = UNRELEASED
    created = False
    migrated = False
    if options.is_release_candidate:
        target = options.current_version
        if document.get_release(target) is None:
            release_date = options.release_date or _date.today().isoformat()
            document = add_release(document, target, release_date)
            created = True
        document, migrated = migrate_unreleased(document, target)

    seen_prs = represented_pr_numbers(document)
    seen_descriptions = represented_descriptions(document)
    result = UpdateResult(document=document)
    new_entries: List[Tuple[ChangeCategory, Entry]] = []

    for commit in commits:
        if commit.excluded:
            logger.debug(f"Skipping excluded commit {commit.sha[:7]}")
            result.skipped.append(commit)
            continue
        if commit.pr_number is not None and commit.pr_number in seen_prs:
            result.skipped.append(commit)
            continue
        if commit.pr_number is None and options.require_pr_numbers:
            error = MissingPrNumber(commit)
            logger.warning(f"Dropping commit: {error}")
            result.dropped.append(error)
            continue

        if options.use_changelog_entry and commit.changelog_entry:
            description = commit.changelog_entry
        else:
            description = commit_description(commit)

        if commit.pr_number is None:
            if description in seen_descriptions:
                result.skipped.append(commit)
                continue
            seen_descriptions.add(description)
            pr_numbers: List[int] = []
        else:
            seen_prs.add(commit.pr_number)
            pr_numbers = [commit.pr_number]

        category = categorize(commit, options.auto_categorize, options.default_category)
        text = entry_text(description, pr_numbers, options.repo_url, options.use_short_pr_link)
        new_entries.append((category, Entry(text=text)))

    if new_entries:
        release = document.get_release(target)
        document = replace_release(document, insert_entries(release, new_entries))
        logger.info(f"Added {len(new_entries)} entr{'y' if len(new_entries) == 1 else 'ies'} to [{target}]")
    if created:
        document = refresh_link_references(
            document,
            [UNRELEASED, target],
            options.repo_url,
            options.tag_prefix,
            options.package_rename,
        )

    result.document = document
    result.added = [entry for _, entry in new_entries]
    result.changed = bool(new_entries) or created or migrated
    return result
