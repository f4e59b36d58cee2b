#!/usr/bin/env python3
"""Detect dependency bumps between manifest snapshots and check them against
the changelog.

Only ``dependencies`` and ``peerDependencies`` count; a peer dependency bump is
breaking. Bumps of the same dependency across several commits fold into one
record spanning the oldest to the newest version. A bump is documented by an
entry of the form::

    [**BREAKING:** ]Bump `name` from `old` to `new` ([#1](.../pull/1))
"""

import json
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, Tuple

from changelog.changelog_models import (
    BREAKING_PREFIX,
    UNRELEASED,
    ChangeCategory,
    ChangelogDocument,
    DependencyBumpRecord,
    Entry,
    ManifestSnapshot,
    Release,
)
from changelog.errors import DependencyBumpMismatch
from changelog.link_references import DEFAULT_TAG_PREFIX, entry_text
from changelog.reconciliation import insert_entries, replace_release

logger = logging.getLogger(__name__)

DEPENDENCY_KINDS = ("dependencies", "peerDependencies")
_SNAPSHOT_FIELDS = {
    "dependencies": "dependencies",
    "peerDependencies": "peer_dependencies",
}

BumpStatus = Literal["ok", "missing", "stale"]


@dataclass
class DependencyCheckResult:
    """Collapsed bumps plus the package version released at the "to" point, if any."""

    bumps: List[DependencyBumpRecord]
    release_version: Optional[str] = None

    @property
    def target_release(self) -> str:
        return self.release_version or UNRELEASED


@dataclass
class BumpCheck:
    record: DependencyBumpRecord
    status: BumpStatus
    target: str
    entry: Optional[Entry] = None
    section_missing: bool = False

    @property
    def message(self) -> str:
        bump = f"{self.record.name} {self.record.previous_version} -> {self.record.new_version}"
        if self.section_missing:
            return f"No [{self.target}] section found for dependency bump {bump}"
        if self.status == "stale" and self.entry is not None:
            return f"Stale changelog entry for dependency bump {bump} in [{self.target}]: '{self.entry.text}'"
        return f"Missing changelog entry for dependency bump {bump} in [{self.target}]"


def parse_manifest(text: str, pr_number: Optional[int] = None) -> ManifestSnapshot:
    """Build a snapshot from ``package.json`` text.

    Raises:
        ValueError: If the text is not a JSON object
    """
    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid package manifest: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Invalid package manifest: expected a JSON object")
    return ManifestSnapshot(
        name=data.get("name"),
        version=data.get("version"),
        dependencies=data.get("dependencies") or {},
        peer_dependencies=data.get("peerDependencies") or {},
        dev_dependencies=data.get("devDependencies") or {},
        optional_dependencies=data.get("optionalDependencies") or {},
        pr_number=pr_number,
    )


def _bump_events(before: ManifestSnapshot, after: ManifestSnapshot) -> List[Tuple[str, str, str, str, Optional[int]]]:
    events = []
    for kind in DEPENDENCY_KINDS:
        old_map: Dict[str, str] = getattr(before, _SNAPSHOT_FIELDS[kind])
        new_map: Dict[str, str] = getattr(after, _SNAPSHOT_FIELDS[kind])
        for name in dict.fromkeys(list(old_map) + list(new_map)):
            if name in old_map and name in new_map and old_map[name] != new_map[name]:
                events.append((kind, name, old_map[name], new_map[name], after.pr_number))
    return events


def collapse_bumps(events: Iterable[Tuple[str, str, str, str, Optional[int]]]) -> List[DependencyBumpRecord]:
    """Fold bump events, oldest first, into one record per (kind, name)."""
    folded: Dict[Tuple[str, str], Dict[str, Any]] = OrderedDict()
    for kind, name, old, new, pr_number in events:
        state = folded.get((kind, name))
        if state is None:
            state = folded[(kind, name)] = {"old": old, "new": new, "prs": []}
        else:
            state["new"] = new
        if pr_number is not None and pr_number not in state["prs"]:
            state["prs"].append(pr_number)

    records = []
    for (kind, name), state in folded.items():
        if state["old"] == state["new"]:
            logger.debug(f"Ignoring {name}: bumped back to {state['old']}")
            continue
        records.append(DependencyBumpRecord(
            name=name,
            previous_version=state["old"],
            new_version=state["new"],
            kind=kind,
            pr_numbers=tuple(state["prs"]),
        ))
    return records


def detect_dependency_bumps(
    before: ManifestSnapshot,
    after: ManifestSnapshot,
    *,
    intermediate: Sequence[ManifestSnapshot] = (),
    tags_in_range: Iterable[str] = (),
    tag_prefix: str = DEFAULT_TAG_PREFIX,
) -> DependencyCheckResult:
    """Compare manifest snapshots and return the collapsed dependency bumps.

    Args:
        before: Manifest at the "from" reference
        after: Manifest at the "to" reference
        intermediate: Snapshots of commits in between that touched the manifest,
            oldest first, each tagged with its PR number when known
        tags_in_range: Tags created between the two references
        tag_prefix: Prefix of the package's release tags

    Returns:
        DependencyCheckResult with the records and the released version, if any
    """
    chain = [before, *intermediate, after]
    events = []
    for older, newer in zip(chain, chain[1:]):
        events.extend(_bump_events(older, newer))

    release_version = None
    if after.version and (after.version != before.version or f"{tag_prefix}{after.version}" in set(tags_in_range)):
        release_version = after.version

    records = collapse_bumps(events)
    if release_version is not None:
        records = [record.model_copy(update={"declared_release": True}) for record in records]
    logger.info(f"Detected {len(records)} dependency bump(s)" + (f" for release {release_version}" if release_version else ""))
    return DependencyCheckResult(bumps=records, release_version=release_version)


def _breaking_prefix(record: DependencyBumpRecord) -> str:
    return f"{BREAKING_PREFIX} " if record.is_breaking else ""


def bump_description(record: DependencyBumpRecord) -> str:
    return f"{_breaking_prefix(record)}Bump `{record.name}` from `{record.previous_version}` to `{record.new_version}`"


def _exact_pattern(record: DependencyBumpRecord) -> "re.Pattern[str]":
    return re.compile(
        "^" + re.escape(_breaking_prefix(record))
        + r"Bump `" + re.escape(record.name) + r"` from `[^`]+` to `" + re.escape(record.new_version) + r"`(?:\s|$)"
    )


def _any_version_pattern(record: DependencyBumpRecord) -> "re.Pattern[str]":
    return re.compile(
        r"^(?:" + re.escape(BREAKING_PREFIX) + r" )?Bump `" + re.escape(record.name) + r"` from `[^`]+` to `[^`]+`"
    )


def check_bump(release: Release, record: DependencyBumpRecord) -> BumpCheck:
    exact = _exact_pattern(record)
    any_version = _any_version_pattern(record)
    stale: Optional[Entry] = None
    for entry in release.entries:
        if exact.match(entry.text):
            return BumpCheck(record=record, status="ok", target=release.identifier, entry=entry)
        if stale is None and any_version.match(entry.text):
            stale = entry
    if stale is not None:
        return BumpCheck(record=record, status="stale", target=release.identifier, entry=stale)
    return BumpCheck(record=record, status="missing", target=release.identifier)


def find_bump_mismatches(document: ChangelogDocument, result: DependencyCheckResult) -> List[BumpCheck]:
    """Every bump lacking an exact entry in its target release."""
    target = result.target_release
    release = document.get_release(target)
    if release is None:
        return [BumpCheck(record=r, status="missing", target=target, section_missing=True) for r in result.bumps]
    checks = [check_bump(release, record) for record in result.bumps]
    return [check for check in checks if check.status != "ok"]


def assert_bumps_documented(document: ChangelogDocument, result: DependencyCheckResult) -> None:
    """Raise DependencyBumpMismatch listing every undocumented bump."""
    mismatches = find_bump_mismatches(document, result)
    if mismatches:
        message = "\n".join(check.message for check in mismatches)
        raise DependencyBumpMismatch(message, records=[check.record for check in mismatches])


def _merge_pr_numbers(*groups: Iterable[int]) -> List[int]:
    return list(dict.fromkeys(number for group in groups for number in group))


def fix_dependency_bumps(
    document: ChangelogDocument,
    result: DependencyCheckResult,
    *,
    repo_url: str,
    pr_number: Optional[int] = None,
    use_short_pr_link: bool = False,
) -> Tuple[ChangelogDocument, List[BumpCheck]]:
    """Rewrite stale bump entries and add missing ones.

    Missing entries go on top of Changed in the target release, breaking bumps
    first. Stale entries are rewritten in place with their PR numbers merged.

    Raises:
        DependencyBumpMismatch: If the target release section does not exist
        ValueError: If an entry would end up without any PR number
    """
    mismatches = find_bump_mismatches(document, result)
    if not mismatches:
        return document, []
    target = result.target_release
    release = document.get_release(target)
    if release is None:
        raise DependencyBumpMismatch(
            f"No [{target}] section found in changelog",
            records=[check.record for check in mismatches],
        )

    supplied = [pr_number] if pr_number is not None else []
    replacements: Dict[int, Entry] = {}
    missing: List[Tuple[ChangeCategory, Entry]] = []
    for check in mismatches:
        if check.status == "stale" and check.entry is not None:
            numbers = _merge_pr_numbers(check.entry.pr_numbers, check.record.pr_numbers, supplied)
        else:
            numbers = _merge_pr_numbers(check.record.pr_numbers, supplied)
        if not numbers:
            raise ValueError(f"A PR number is required to document the {check.record.name} bump")
        text = entry_text(bump_description(check.record), numbers, repo_url, use_short_pr_link)
        if check.status == "stale" and check.entry is not None:
            replacements[id(check.entry)] = check.entry.model_copy(update={"text": text, "source": None})
        else:
            missing.append((ChangeCategory.CHANGED, Entry(text=text)))

    if replacements:
        categories = tuple(
            category.model_copy(update={"entries": tuple(replacements.get(id(e), e) for e in category.entries)})
            for category in release.categories
        )
        release = release.model_copy(update={"categories": categories})
    if missing:
        breaking = [item for item in missing if item[1].is_breaking]
        regular = [item for item in missing if not item[1].is_breaking]
        release = insert_entries(release, breaking + regular)

    logger.info(f"Fixed {len(replacements)} stale and {len(missing)} missing dependency bump entr{'y' if len(replacements) + len(missing) == 1 else 'ies'} in [{target}]")
    return replace_release(document, release), mismatches
