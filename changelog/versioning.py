#!/usr/bin/env python3
"""Semantic version helpers built on ``semver``.

Precedence follows SemVer 2.0.0: any pre-release identifiers are ordered, and
build metadata is ignored.
"""

import re
from typing import Iterable, List, Optional

from semver import Version

SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)
RELEASE_CANDIDATE_RE = re.compile(r"^rc(?:[.\-]?\d+)?$", re.IGNORECASE)


def is_semver(value: str) -> bool:
    return bool(SEMVER_RE.match(value or ""))


def parse_version(value: str) -> Version:
    """Parse a strict MAJOR.MINOR.PATCH[-pre][+build] version.

    Raises:
        ValueError: If the string is not a semantic version
    """
    if not is_semver(value):
        raise ValueError(f"Invalid semantic version: '{value}'")
    return Version.parse(value)


def compare_versions(left: str, right: str) -> int:
    """-1, 0 or 1 by SemVer precedence."""
    return parse_version(left).compare(right)


def is_release_candidate(value: str) -> bool:
    match = SEMVER_RE.match(value or "")
    if not match or match.group(4) is None:
        return False
    return bool(RELEASE_CANDIDATE_RE.match(match.group(4)))


def version_key(value: str) -> Version:
    return parse_version(value)


def highest_version(values: Iterable[str]) -> Optional[str]:
    versions = list(values)
    if not versions:
        return None
    return max(versions, key=version_key)


def previous_version(version: str, candidates: Iterable[str]) -> Optional[str]:
    """Highest candidate strictly lower than ``version``."""
    lower: List[str] = [v for v in candidates if compare_versions(v, version) < 0]
    return highest_version(lower)
