#!/usr/bin/env python3
"""Parser for Keep a Changelog documents.

The parser is strict about the grammar (title, preamble, mandatory Unreleased
section, dated release headers, known categories in canonical order, bullets
inside categories) and tolerant about layout: blank lines, trailing whitespace
and continuation lines are kept verbatim on the nodes so ``serialize`` gives the
original text back.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from changelog.changelog_models import (
    UNRELEASED,
    Category,
    ChangeCategory,
    ChangelogDocument,
    Entry,
    LinkReference,
    Release,
)
from changelog.errors import MalformedDocument
from changelog.versioning import is_semver, parse_version

logger = logging.getLogger(__name__)

RELEASE_HEADER_RE = re.compile(r"^## \[([^\[\]]+)\](?: - (\d{4}-\d{2}-\d{2}))?(?: \[(\w+)\])?[ \t]*$")
CATEGORY_HEADER_RE = re.compile(r"^### (\w+)[ \t]*$")
LINK_DEFINITION_RE = re.compile(r"^\[([^\]]+)\]:[ \t]*(\S+)[ \t]*$")

_CATEGORY_NAMES = {category.value: category for category in ChangeCategory}


@dataclass(frozen=True)
class ParseIssue:
    """A recoverable grammar problem (release ordering) found while parsing."""

    kind: str
    message: str
    line_number: int
    fragment: str


def _strip_eol(line: str) -> str:
    return line.rstrip("\r\n")


def _is_blank(line: str) -> bool:
    return not line.strip()


def _is_structural(line: str) -> bool:
    return (
        line.startswith("## ")
        or line.startswith("### ")
        or line.startswith("- ")
        or bool(LINK_DEFINITION_RE.match(_strip_eol(line)))
    )


class _OpenEntry:
    def __init__(self, leading: str, line: str) -> None:
        self.leading = leading
        self.lines = [line]
        self.text = _strip_eol(line)[2:].strip()
        self.continuation: List[str] = []

    def extend(self, blank_lines: List[str], line: str) -> None:
        self.lines.extend(blank_lines)
        self.lines.append(line)
        self.continuation.extend("" for _ in blank_lines)
        self.continuation.append(_strip_eol(line))

    def build(self) -> Entry:
        return Entry(
            leading=self.leading,
            source="".join(self.lines),
            text=self.text,
            continuation=tuple(self.continuation),
        )


class _OpenCategory:
    def __init__(self, category: Category) -> None:
        self.category = category
        self.entries: List[_OpenEntry] = []

    def build(self) -> Category:
        return self.category.model_copy(update={"entries": tuple(e.build() for e in self.entries)})


class _OpenRelease:
    def __init__(self, release: Release) -> None:
        self.release = release
        self.categories: List[_OpenCategory] = []

    def build(self) -> Release:
        return self.release.model_copy(update={"categories": tuple(c.build() for c in self.categories)})


class _ChangelogParser:
    def __init__(self, text: str) -> None:
        self.lines = text.splitlines(keepends=True)
        self.issues: List[ParseIssue] = []
        self.releases: List[_OpenRelease] = []
        self.pending: List[str] = []
        self.entry: Optional[_OpenEntry] = None

    def _take_pending(self) -> str:
        leading = "".join(self.pending)
        self.pending = []
        return leading

    def parse(self) -> ChangelogDocument:
        if not self.lines or not self.lines[0].startswith("# "):
            first = self.lines[0] if self.lines else ""
            raise MalformedDocument("Failed to find title", fragment=first, line_number=1)
        title_source = self.lines[0]
        title = _strip_eol(title_source)[2:].strip()

        index = 1
        preamble_lines: List[str] = []
        while index < len(self.lines) and not self.lines[index].startswith("## "):
            preamble_lines.append(self.lines[index])
            index += 1
        while preamble_lines and _is_blank(preamble_lines[-1]):
            self.pending.insert(0, preamble_lines.pop())
        if not preamble_lines:
            raise MalformedDocument("Failed to find preamble", fragment=title_source, line_number=1)
        if index >= len(self.lines):
            raise MalformedDocument("Failed to find Unreleased section", fragment=title_source, line_number=1)

        links: List[LinkReference] = []
        while index < len(self.lines):
            line = self.lines[index]
            line_number = index + 1
            if LINK_DEFINITION_RE.match(_strip_eol(line)):
                links = self._parse_links(index)
                break
            self._parse_body_line(line, line_number)
            index += 1

        self._close_entry()
        epilogue = self._take_pending()

        document = ChangelogDocument(
            title=title,
            title_source=title_source,
            preamble="".join(preamble_lines),
            releases=tuple(release.build() for release in self.releases),
            links=tuple(links),
            epilogue=epilogue,
        )
        logger.debug(f"✓ Parsed changelog with {len(document.releases)} release(s) and {len(document.links)} link(s)")
        return document

    def _close_entry(self) -> None:
        self.entry = None

    def _parse_body_line(self, line: str, line_number: int) -> None:
        if _is_blank(line):
            self.pending.append(line)
            return
        if line.startswith("## "):
            self._close_entry()
            self._parse_release_header(line, line_number)
            return
        if line.startswith("### "):
            self._close_entry()
            self._parse_category_header(line, line_number)
            return
        if line.startswith("- "):
            self._close_entry()
            self._parse_entry(line, line_number)
            return
        if self.entry is not None:
            blank_lines, self.pending = self.pending, []
            self.entry.extend(blank_lines, line)
            return
        raise MalformedDocument("Unrecognized line", fragment=line, line_number=line_number)

    def _parse_release_header(self, line: str, line_number: int) -> None:
        match = RELEASE_HEADER_RE.match(_strip_eol(line))
        if not match:
            raise MalformedDocument("Malformed release header", fragment=line, line_number=line_number)
        identifier, date, status = match.groups()

        if identifier == UNRELEASED:
            if self.releases:
                raise MalformedDocument("Unreleased section must be the first release", fragment=line, line_number=line_number)
            if date is not None:
                raise MalformedDocument("Unreleased section must not have a date", fragment=line, line_number=line_number)
        else:
            if not self.releases:
                raise MalformedDocument("Failed to find Unreleased section", fragment=line, line_number=line_number)
            if not is_semver(identifier):
                raise MalformedDocument("Invalid release version", fragment=line, line_number=line_number)
            if date is None:
                raise MalformedDocument("Release is missing a date", fragment=line, line_number=line_number)
            self._check_release_order(identifier, line, line_number)

        release = Release(
            leading=self._take_pending(),
            source=line,
            identifier=identifier,
            date=date,
            status=status,
        )
        self.releases.append(_OpenRelease(release))

    def _check_release_order(self, identifier: str, line: str, line_number: int) -> None:
        versioned = [r.release.identifier for r in self.releases if r.release.identifier != UNRELEASED]
        if not versioned:
            return
        preceding = versioned[-1]
        if identifier in versioned:
            message = f"Duplicate release [{identifier}]"
        elif parse_version(identifier) > parse_version(preceding):
            message = f"Release [{identifier}] is listed after lower release [{preceding}]; releases must be in descending order"
        else:
            return
        self.issues.append(ParseIssue(kind="ordering", message=message, line_number=line_number, fragment=_strip_eol(line)))

    def _parse_category_header(self, line: str, line_number: int) -> None:
        match = CATEGORY_HEADER_RE.match(_strip_eol(line))
        if not match:
            raise MalformedDocument("Malformed category header", fragment=line, line_number=line_number)
        name = _CATEGORY_NAMES.get(match.group(1))
        if name is None:
            raise MalformedDocument("Invalid change category", fragment=line, line_number=line_number)
        release = self.releases[-1]
        if release.categories:
            previous = release.categories[-1].category.name
            if previous == name:
                raise MalformedDocument("Duplicate category", fragment=line, line_number=line_number)
            if previous.rank > name.rank:
                raise MalformedDocument("Category out of order", fragment=line, line_number=line_number)
        category = Category(leading=self._take_pending(), source=line, name=name)
        release.categories.append(_OpenCategory(category))

    def _parse_entry(self, line: str, line_number: int) -> None:
        release = self.releases[-1]
        if not release.categories:
            raise MalformedDocument("Category missing for change", fragment=line, line_number=line_number)
        self.entry = _OpenEntry(self._take_pending(), line)
        release.categories[-1].entries.append(self.entry)

    def _parse_links(self, start: int) -> List[LinkReference]:
        self._close_entry()
        links: List[LinkReference] = []
        for index in range(start, len(self.lines)):
            line = self.lines[index]
            if _is_blank(line):
                self.pending.append(line)
                continue
            match = LINK_DEFINITION_RE.match(_strip_eol(line))
            if not match:
                raise MalformedDocument("Unrecognized line in link references", fragment=line, line_number=index + 1)
            links.append(LinkReference(
                leading=self._take_pending(),
                source=line,
                identifier=match.group(1),
                url=match.group(2),
            ))
        return links


def parse_with_issues(text: str) -> Tuple[ChangelogDocument, List[ParseIssue]]:
    """Parse a changelog, returning recoverable ordering issues instead of raising.

    Raises:
        MalformedDocument: For any grammar violation other than release ordering
    """
    parser = _ChangelogParser(text)
    document = parser.parse()
    return document, parser.issues


def parse(text: str) -> ChangelogDocument:
    """Parse a changelog document.

    Raises:
        MalformedDocument: If the text violates the changelog grammar,
            including releases that are not in strictly descending order
    """
    document, issues = parse_with_issues(text)
    if issues:
        issue = issues[0]
        raise MalformedDocument(issue.message, fragment=issue.fragment, line_number=issue.line_number)
    return document
