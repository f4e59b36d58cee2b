#!/usr/bin/env python3
"""Expected ``[identifier]: url`` references for a changelog.

Unreleased compares the highest version tag against HEAD, each release compares
against the highest lower version listed below it, and the oldest release points
at its tag page. With no versions Unreleased points at the repository itself.
Tags are ``<prefix><version>``; after a package rename the versions up to and
including the rename version keep the old prefix.
"""

from collections import OrderedDict
from typing import Dict, List, Optional, Sequence

from changelog.changelog_models import UNRELEASED, PackageRename
from changelog.versioning import highest_version, parse_version, previous_version

DEFAULT_TAG_PREFIX = "v"


def _base(repo_url: str) -> str:
    return repo_url if repo_url.endswith("/") else f"{repo_url}/"


def compare_url(repo_url: str, base_ref: str, head_ref: str) -> str:
    return f"{_base(repo_url)}compare/{base_ref}...{head_ref}"


def tag_url(repo_url: str, tag: str) -> str:
    return f"{_base(repo_url)}releases/tag/{tag}"


def pull_request_url(repo_url: str, number: int) -> str:
    return f"{_base(repo_url)}pull/{number}"


def tag_for(version: str, tag_prefix: str = DEFAULT_TAG_PREFIX, package_rename: Optional[PackageRename] = None) -> str:
    """Tag name of ``version`` under the configured prefix rules."""
    if package_rename is not None:
        if parse_version(version) <= parse_version(package_rename.version_before_rename):
            return f"{package_rename.tag_prefix_before_rename}{version}"
    return f"{tag_prefix}{version}"


def expected_link_references(
    versions: Sequence[str],
    repo_url: str,
    tag_prefix: str = DEFAULT_TAG_PREFIX,
    package_rename: Optional[PackageRename] = None,
) -> Dict[str, str]:
    """Build identifier -> URL for Unreleased plus every version, in document order.

    Args:
        versions: Versioned release identifiers as listed in the document
        repo_url: Repository URL, with or without trailing slash
        tag_prefix: Prefix prepended to versions to form tag names
        package_rename: Optional pre-rename tag prefix rule

    Returns:
        Ordered mapping starting with ``Unreleased``
    """
    links: Dict[str, str] = OrderedDict()
    highest = highest_version(versions)
    if highest is None:
        links[UNRELEASED] = repo_url
    else:
        links[UNRELEASED] = compare_url(repo_url, tag_for(highest, tag_prefix, package_rename), "HEAD")

    for index, version in enumerate(versions):
        later: List[str] = list(versions[index + 1:])
        previous = previous_version(version, later)
        if previous is None:
            links[version] = tag_url(repo_url, tag_for(version, tag_prefix, package_rename))
        else:
            links[version] = compare_url(
                repo_url,
                tag_for(previous, tag_prefix, package_rename),
                tag_for(version, tag_prefix, package_rename),
            )
    return links


def format_pr_links(pr_numbers: Sequence[int], repo_url: str, use_short_pr_link: bool = False) -> str:
    """Parenthesized PR references: ``(#1, #2)`` or ``([#1](url), [#2](url))``."""
    if not pr_numbers:
        return ""
    if use_short_pr_link:
        rendered = [f"#{number}" for number in pr_numbers]
    else:
        rendered = [f"[#{number}]({pull_request_url(repo_url, number)})" for number in pr_numbers]
    return f"({', '.join(rendered)})"


def entry_text(description: str, pr_numbers: Sequence[int], repo_url: str, use_short_pr_link: bool = False) -> str:
    links = format_pr_links(pr_numbers, repo_url, use_short_pr_link)
    if not links:
        return description
    return f"{description} {links}" if description else links
