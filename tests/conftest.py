"""Shared fixtures for changelog tests."""

import pytest

from changelog.changelog_models import CommitRecord
from changelog.commit_history import parse_commit

REPO_URL = "https://github.com/example-org/example-repo"

PREAMBLE = (
    "All notable changes to this project will be documented in this file.\n"
    "\n"
    "The format is based on [Keep a Changelog](https://keepachangelog.com/en/1.0.0/),\n"
    "and this project adheres to [Semantic Versioning](https://semver.org/spec/v2.0.0.html).\n"
)

SAMPLE_CHANGELOG = (
    "# Changelog\n"
    + PREAMBLE
    + "\n"
    "## [Unreleased]\n"
    "### Added\n"
    "- Add widget support ([#10](https://github.com/example-org/example-repo/pull/10))\n"
    "\n"
    "## [1.0.0] - 2024-01-15\n"
    "### Added\n"
    "- Initial release ([#1](https://github.com/example-org/example-repo/pull/1))\n"
    "\n"
    "### Fixed\n"
    "- Fix crash on startup ([#2](https://github.com/example-org/example-repo/pull/2))\n"
    "\n"
    "[Unreleased]: https://github.com/example-org/example-repo/compare/v1.0.0...HEAD\n"
    "[1.0.0]: https://github.com/example-org/example-repo/releases/tag/v1.0.0\n"
)


@pytest.fixture
def repo_url() -> str:
    return REPO_URL


@pytest.fixture
def preamble() -> str:
    return PREAMBLE


@pytest.fixture
def sample_changelog() -> str:
    return SAMPLE_CHANGELOG


@pytest.fixture
def make_commit():
    """Factory building CommitRecords from a subject (and optional body)."""
    counter = {"n": 0}

    def _make(subject: str, body: str = "", **overrides) -> CommitRecord:
        counter["n"] += 1
        sha = f"{counter['n']:040x}"
        commit = parse_commit(sha, subject, body)
        if overrides:
            commit = commit.model_copy(update=overrides)
        return commit

    return _make
