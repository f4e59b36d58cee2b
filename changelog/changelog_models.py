#!/usr/bin/env python3
"""Changelog document models.

The document is an immutable tree: ChangelogDocument -> Release -> Category ->
Entry, plus the trailing link references. Every node keeps the verbatim text it
was parsed from (``source``) and the blank lines that preceded it (``leading``)
so untouched sections serialize byte for byte. Nodes built in code leave
``source`` unset and render canonically.
"""
import re
from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, constr, field_validator

from changelog.versioning import is_release_candidate

UNRELEASED = "Unreleased"
DEFAULT_TITLE = "Changelog"
DEFAULT_PREAMBLE = (
    "All notable changes to this project will be documented in this file.\n"
    "\n"
    "The format is based on [Keep a Changelog](https://keepachangelog.com/en/1.0.0/),\n"
    "and this project adheres to [Semantic Versioning](https://semver.org/spec/v2.0.0.html).\n"
)
BREAKING_PREFIX = "**BREAKING:**"

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
# Any PR reference, long form first so "[#1](url)" is not read twice
PR_REFERENCE_RE = re.compile(r"\[#(\d+)\]\(([^)]+)\)|\(\s*(#\d+(?:\s*,\s*#\d+)*)\s*\)")
SHORT_PR_NUMBER_RE = re.compile(r"#(\d+)")
LONG_PR_GROUP_RE = re.compile(r"\s+\(\s*(?:\[#\d+\]\([^)]+\)\s*,?\s*)+\)")
SHORT_PR_GROUP_RE = re.compile(r"\s+(?:\(\s*#\d+(?:\s*,\s*#\d+)*\s*\)\s*,?\s*)+")


class ChangeCategory(str, Enum):
    """Closed set of category names in canonical order."""

    UNCATEGORIZED = "Uncategorized"
    ADDED = "Added"
    CHANGED = "Changed"
    DEPRECATED = "Deprecated"
    REMOVED = "Removed"
    FIXED = "Fixed"
    SECURITY = "Security"

    @property
    def rank(self) -> int:
        return CATEGORY_ORDER.index(self)


CATEGORY_ORDER: Tuple[ChangeCategory, ...] = tuple(ChangeCategory)

DependencyKind = Literal["dependencies", "peerDependencies"]


class _StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class _Node(_StrictModel):
    # verbatim blank lines before the node and the node's own parsed lines
    leading: str = ""
    source: Optional[str] = None

    def canonical(self) -> str:
        raise NotImplementedError

    def render_own(self) -> str:
        return self.leading + (self.source if self.source is not None else self.canonical())


class Entry(_Node):
    """One bullet entry. ``text`` is the first line after ``- ``."""

    text: str
    continuation: Tuple[str, ...] = ()

    @field_validator("text")
    @classmethod
    def _single_line(cls, value: str) -> str:
        if "\n" in value or "\r" in value:
            raise ValueError("entry text must be a single line")
        return value

    @property
    def pr_links(self) -> List[Tuple[int, Optional[str]]]:
        """PR references in order of appearance as (number, url or None)."""
        found = []
        for match in PR_REFERENCE_RE.finditer(self.text):
            if match.group(1) is not None:
                found.append((int(match.group(1)), match.group(2)))
            else:
                found.extend((int(number), None) for number in SHORT_PR_NUMBER_RE.findall(match.group(3)))
        return found

    @property
    def pr_numbers(self) -> Tuple[int, ...]:
        return tuple(dict.fromkeys(number for number, _ in self.pr_links))

    @property
    def description(self) -> str:
        """Entry text with PR link groups removed."""
        text = LONG_PR_GROUP_RE.sub("", self.text)
        text = SHORT_PR_GROUP_RE.sub("", text)
        return text.strip()

    @property
    def is_breaking(self) -> bool:
        return self.text.startswith(BREAKING_PREFIX)

    def canonical(self) -> str:
        lines = [f"- {self.text.rstrip()}\n"]
        lines.extend(line.rstrip() + "\n" for line in self.continuation)
        return "".join(lines)

    def render(self) -> str:
        return self.render_own()


class Category(_Node):
    """A ``### Name`` subsection of a release."""

    name: ChangeCategory
    entries: Tuple[Entry, ...] = ()

    def canonical(self) -> str:
        return f"### {self.name.value}\n"

    def render(self) -> str:
        return self.render_own() + "".join(entry.render() for entry in self.entries)


class Release(_Node):
    """A ``## [identifier]`` section: Unreleased or a dated version."""

    identifier: constr(min_length=1, pattern=r"^[^\[\]]+$")
    date: Optional[str] = None
    status: Optional[str] = None
    categories: Tuple[Category, ...] = ()

    @field_validator("date")
    @classmethod
    def _iso_date(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not DATE_RE.match(value):
            raise ValueError(f"release date must be YYYY-MM-DD, got {value!r}")
        return value

    @property
    def is_unreleased(self) -> bool:
        return self.identifier == UNRELEASED

    @property
    def is_release_candidate(self) -> bool:
        return not self.is_unreleased and is_release_candidate(self.identifier)

    @property
    def entries(self) -> List[Entry]:
        return [entry for category in self.categories for entry in category.entries]

    def category(self, name: ChangeCategory) -> Optional[Category]:
        for category in self.categories:
            if category.name == name:
                return category
        return None

    def header(self) -> str:
        header = f"## [{self.identifier}]"
        if self.date:
            header += f" - {self.date}"
        if self.status:
            header += f" [{self.status}]"
        return header

    def canonical(self) -> str:
        return self.header() + "\n"

    def render(self) -> str:
        return self.render_own() + "".join(category.render() for category in self.categories)


class LinkReference(_Node):
    """A ``[identifier]: url`` line of the trailing link block."""

    identifier: str
    url: str

    def canonical(self) -> str:
        return f"[{self.identifier}]: {self.url}\n"

    def render(self) -> str:
        return self.render_own()


class ChangelogDocument(_StrictModel):
    """The whole changelog: title, preamble, releases and link references."""

    title: str = DEFAULT_TITLE
    title_source: Optional[str] = None
    # text between the title and the first release, trailing blank lines excluded
    preamble: str = DEFAULT_PREAMBLE
    releases: Tuple[Release, ...] = Field(default_factory=tuple)
    links: Tuple[LinkReference, ...] = Field(default_factory=tuple)
    epilogue: str = ""

    @property
    def unreleased(self) -> Optional[Release]:
        return self.get_release(UNRELEASED)

    @property
    def versioned_releases(self) -> List[Release]:
        return [release for release in self.releases if not release.is_unreleased]

    @property
    def release_identifiers(self) -> List[str]:
        return [release.identifier for release in self.releases]

    @property
    def link_map(self) -> Dict[str, str]:
        """Identifier -> URL; the first definition wins, as in Markdown."""
        mapping: Dict[str, str] = {}
        for link in self.links:
            mapping.setdefault(link.identifier, link.url)
        return mapping

    def get_release(self, identifier: str) -> Optional[Release]:
        for release in self.releases:
            if release.identifier == identifier:
                return release
        return None


class CommitRecord(_StrictModel):
    """A commit observed in history, reduced to what reconciliation needs."""

    sha: str
    subject: str
    body_summary: Optional[str] = None
    pr_number: Optional[int] = None
    commit_type: Optional[str] = None
    changelog_entry: Optional[str] = None
    excluded: bool = False


class PackageRename(_StrictModel):
    """Tag prefix used for versions released before a package rename."""

    version_before_rename: str
    tag_prefix_before_rename: str


class ManifestSnapshot(_StrictModel):
    """Dependency maps of a package manifest at one point in history."""

    name: Optional[str] = None
    version: Optional[str] = None
    dependencies: Dict[str, str] = Field(default_factory=dict)
    peer_dependencies: Dict[str, str] = Field(default_factory=dict)
    dev_dependencies: Dict[str, str] = Field(default_factory=dict)
    optional_dependencies: Dict[str, str] = Field(default_factory=dict)
    # PR that produced this snapshot, if known
    pr_number: Optional[int] = None


class DependencyBumpRecord(_StrictModel):
    """A dependency whose version changed across the compared range."""

    name: str
    previous_version: str
    new_version: str
    kind: DependencyKind
    pr_numbers: Tuple[int, ...] = ()
    declared_release: bool = False

    @property
    def is_breaking(self) -> bool:
        return self.kind == "peerDependencies"
