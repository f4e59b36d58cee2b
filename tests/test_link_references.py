"""Tests for versions, link references and diffs."""

import pytest

from changelog.changelog_models import PackageRename
from changelog.diff_formatter import NO_NEWLINE_MARKER, generate_diff
from changelog.link_references import entry_text, expected_link_references, format_pr_links, tag_for
from changelog.versioning import (
    compare_versions,
    highest_version,
    is_release_candidate,
    is_semver,
    parse_version,
    previous_version,
)

REPO_URL = "https://github.com/example-org/example-repo"


class TestVersioning:
    """Test semantic version helpers."""

    @pytest.mark.parametrize("value", ["1.0.0", "0.1.0-rc.1", "2.0.0+build.5", "10.20.30-beta.2"])
    def test_valid_semver(self, value):
        assert is_semver(value)

    @pytest.mark.parametrize("value", ["1.0", "v1.0.0", "01.0.0", "Unreleased", ""])
    def test_invalid_semver(self, value):
        assert not is_semver(value)

    def test_parse_version_rejects_non_semver(self):
        with pytest.raises(ValueError):
            parse_version("1.0")

    def test_release_candidate(self):
        assert is_release_candidate("1.2.0-rc.1")
        assert is_release_candidate("1.2.0-rc1")
        assert not is_release_candidate("1.2.0-beta.1")
        assert not is_release_candidate("1.2.0")

    def test_ordering(self):
        assert highest_version(["1.2.0", "1.10.0", "1.9.0"]) == "1.10.0"
        assert highest_version([]) is None
        assert previous_version("1.10.0", ["1.9.0", "1.2.0", "2.0.0"]) == "1.9.0"
        assert previous_version("1.0.0", ["1.1.0"]) is None

    def test_arbitrary_prerelease_identifiers(self):
        """Pre-release identifiers outside alpha/beta/rc are ordered by SemVer rules."""
        assert parse_version("2.0.0-next.1") > parse_version("1.0.0")
        assert parse_version("2.0.0-next.1") < parse_version("2.0.0")
        assert parse_version("1.0.0-alpha") < parse_version("1.0.0-alpha.1")
        assert parse_version("1.0.0-alpha.1") < parse_version("1.0.0-alpha.beta")
        assert parse_version("1.0.0-alpha.beta") < parse_version("1.0.0-beta")
        assert parse_version("1.0.0-beta.2") < parse_version("1.0.0-beta.11")
        assert highest_version(["2.0.0-next.1", "1.5.0", "2.0.0-next.2"]) == "2.0.0-next.2"

    def test_build_metadata_is_ignored(self):
        assert compare_versions("1.0.0+build.2", "1.0.0+build.1") == 0
        assert compare_versions("1.0.0+build.9", "1.0.1") == -1
        assert previous_version("1.0.1", ["1.0.0+build.7"]) == "1.0.0+build.7"


class TestExpectedLinkReferences:
    """Test expected link URLs."""

    def test_no_releases(self):
        assert expected_link_references([], REPO_URL) == {"Unreleased": REPO_URL}

    def test_releases(self):
        links = expected_link_references(["1.1.0", "1.0.1", "1.0.0"], REPO_URL)

        assert list(links) == ["Unreleased", "1.1.0", "1.0.1", "1.0.0"]
        assert links["Unreleased"] == f"{REPO_URL}/compare/v1.1.0...HEAD"
        assert links["1.1.0"] == f"{REPO_URL}/compare/v1.0.1...v1.1.0"
        assert links["1.0.1"] == f"{REPO_URL}/compare/v1.0.0...v1.0.1"
        assert links["1.0.0"] == f"{REPO_URL}/releases/tag/v1.0.0"

    def test_maintenance_release_compares_against_lower_version(self):
        """A patch of an older line listed above newer releases compares to its own predecessor."""
        links = expected_link_references(["1.0.1", "2.0.0", "1.0.0"], REPO_URL)

        assert links["Unreleased"] == f"{REPO_URL}/compare/v2.0.0...HEAD"
        assert links["1.0.1"] == f"{REPO_URL}/compare/v1.0.0...v1.0.1"

    def test_trailing_slash_repo_url(self):
        links = expected_link_references(["1.0.0"], REPO_URL + "/")

        assert links["1.0.0"] == f"{REPO_URL}/releases/tag/v1.0.0"

    def test_package_rename(self):
        rename = PackageRename(version_before_rename="1.0.0", tag_prefix_before_rename="old@")

        links = expected_link_references(["1.1.0", "1.0.0"], REPO_URL, "new@", rename)

        assert links["Unreleased"] == f"{REPO_URL}/compare/new@1.1.0...HEAD"
        assert links["1.1.0"] == f"{REPO_URL}/compare/old@1.0.0...new@1.1.0"
        assert links["1.0.0"] == f"{REPO_URL}/releases/tag/old@1.0.0"
        assert tag_for("0.9.0", "new@", rename) == "old@0.9.0"


class TestPrLinks:
    """Test PR link rendering."""

    def test_long_form(self):
        assert format_pr_links([1, 2], REPO_URL) == f"([#1]({REPO_URL}/pull/1), [#2]({REPO_URL}/pull/2))"

    def test_short_form(self):
        assert format_pr_links([1, 2], REPO_URL, use_short_pr_link=True) == "(#1, #2)"

    def test_entry_text_without_prs(self):
        assert entry_text("Tidy up", [], REPO_URL) == "Tidy up"
        assert entry_text("Tidy up", [3], REPO_URL, True) == "Tidy up (#3)"


class TestGenerateDiff:
    """Test unified diff rendering."""

    def test_identical_texts(self):
        assert generate_diff("a\n", "a\n") == ""

    def test_changed_line(self):
        diff = generate_diff("a\nb\nc\n", "a\nB\nc\n")

        assert diff == "--- current\n+++ expected\n@@ -1,3 +1,3 @@\n a\n-b\n+B\n c\n"

    def test_missing_final_newline(self):
        diff = generate_diff("a\nb", "a\nb\n", before_label="old", after_label="new")

        assert diff.startswith("--- old\n+++ new\n")
        assert f"-b\n{NO_NEWLINE_MARKER}\n+b\n" in diff
