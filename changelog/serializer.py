#!/usr/bin/env python3
"""Serialize changelog documents back to text."""

from changelog.changelog_models import ChangelogDocument


def serialize(document: ChangelogDocument) -> str:
    """Render a document, reusing the verbatim text of parsed nodes."""
    parts = [document.title_source if document.title_source is not None else f"# {document.title}\n"]
    parts.append(document.preamble)
    parts.extend(release.render() for release in document.releases)
    parts.extend(link.render() for link in document.links)
    parts.append(document.epilogue)
    return "".join(parts)


def canonical_preamble(preamble: str) -> str:
    lines = preamble.strip("\r\n").splitlines()
    return "".join(line.rstrip() + "\n" for line in lines)


def normalize(document: ChangelogDocument) -> ChangelogDocument:
    """Drop all trivia so the document renders in canonical layout.

    Canonical layout: the preamble directly under the title, one blank line
    before every release, between categories and before the link block, and no
    blank lines between a header and its first child or between entries.
    """
    releases = []
    for release in document.releases:
        categories = []
        for position, category in enumerate(release.categories):
            entries = tuple(entry.model_copy(update={"leading": "", "source": None}) for entry in category.entries)
            categories.append(category.model_copy(update={
                "leading": "" if position == 0 else "\n",
                "source": None,
                "entries": entries,
            }))
        releases.append(release.model_copy(update={"leading": "\n", "source": None, "categories": tuple(categories)}))
    links = tuple(
        link.model_copy(update={"leading": "\n" if position == 0 else "", "source": None})
        for position, link in enumerate(document.links)
    )
    return document.model_copy(update={
        "title_source": None,
        "preamble": canonical_preamble(document.preamble),
        "releases": tuple(releases),
        "links": links,
        "epilogue": "",
    })


def render_canonical(document: ChangelogDocument) -> str:
    return serialize(normalize(document))
