"""Tests for dependency bump detection and changelog fixes."""

import json

import pytest

from changelog.api import fix_dependency_bump_entries
from changelog.changelog_models import DependencyBumpRecord, ManifestSnapshot
from changelog.changelog_parser import parse
from changelog.dependency_bumps import (
    DependencyCheckResult,
    assert_bumps_documented,
    bump_description,
    detect_dependency_bumps,
    find_bump_mismatches,
    fix_dependency_bumps,
    parse_manifest,
)
from changelog.errors import DependencyBumpMismatch

REPO_URL = "https://github.com/example-org/example-repo"


def _manifest(version="1.0.0", pr_number=None, **maps) -> ManifestSnapshot:
    data = {"name": "example", "version": version}
    data.update(maps)
    return parse_manifest(json.dumps(data), pr_number=pr_number)


def _record(name="a", old="1.0.0", new="1.1.0", kind="dependencies", prs=()) -> DependencyBumpRecord:
    return DependencyBumpRecord(name=name, previous_version=old, new_version=new, kind=kind, pr_numbers=prs)


def _with_changed(sample_changelog: str, *lines: str) -> str:
    block = "".join(f"- {line}\n" for line in lines)
    return sample_changelog.replace("pull/10))\n\n## [1.0.0]", f"pull/10))\n\n### Changed\n{block}\n## [1.0.0]")


class TestParseManifest:
    """Test reading package manifests."""

    def test_dependency_maps(self):
        snapshot = parse_manifest(json.dumps({
            "name": "example",
            "version": "2.0.0",
            "dependencies": {"a": "^1.0.0"},
            "peerDependencies": {"b": "^2.0.0"},
            "devDependencies": {"c": "3.0.0"},
        }), pr_number=4)

        assert snapshot.version == "2.0.0"
        assert snapshot.dependencies == {"a": "^1.0.0"}
        assert snapshot.peer_dependencies == {"b": "^2.0.0"}
        assert snapshot.dev_dependencies == {"c": "3.0.0"}
        assert snapshot.optional_dependencies == {}
        assert snapshot.pr_number == 4

    @pytest.mark.parametrize("text", ["not json", "[1, 2]"])
    def test_invalid_manifest(self, text):
        with pytest.raises(ValueError):
            parse_manifest(text)


class TestDetectDependencyBumps:
    """Test bump detection across manifest snapshots."""

    def test_dependencies_and_peer_dependencies(self):
        before = _manifest(
            dependencies={"a": "1.0.0", "removed": "1.0.0"},
            peerDependencies={"b": "1.0.0"},
            devDependencies={"d": "1.0.0"},
            optionalDependencies={"o": "1.0.0"},
        )
        after = _manifest(
            pr_number=8,
            dependencies={"a": "1.1.0", "added": "1.0.0"},
            peerDependencies={"b": "2.0.0"},
            devDependencies={"d": "2.0.0"},
            optionalDependencies={"o": "2.0.0"},
        )

        result = detect_dependency_bumps(before, after)

        assert [(r.name, r.kind, r.previous_version, r.new_version) for r in result.bumps] == [
            ("a", "dependencies", "1.0.0", "1.1.0"),
            ("b", "peerDependencies", "1.0.0", "2.0.0"),
        ]
        assert [r.is_breaking for r in result.bumps] == [False, True]
        assert result.bumps[0].pr_numbers == (8,)
        assert result.target_release == "Unreleased"

    def test_bumps_across_commits_are_collapsed(self):
        before = _manifest(dependencies={"a": "1.0.0"})
        middle = _manifest(pr_number=5, dependencies={"a": "1.1.0"})
        after = _manifest(pr_number=6, dependencies={"a": "1.2.0"})

        result = detect_dependency_bumps(before, after, intermediate=[middle])

        assert len(result.bumps) == 1
        record = result.bumps[0]
        assert (record.previous_version, record.new_version) == ("1.0.0", "1.2.0")
        assert record.pr_numbers == (5, 6)

    def test_bump_reverted_within_range_is_ignored(self):
        before = _manifest(dependencies={"a": "1.0.0"})
        middle = _manifest(pr_number=5, dependencies={"a": "1.1.0"})
        after = _manifest(pr_number=6, dependencies={"a": "1.0.0"})

        assert detect_dependency_bumps(before, after, intermediate=[middle]).bumps == []

    def test_version_change_declares_release(self):
        before = _manifest(version="1.0.0", dependencies={"a": "1.0.0"})
        after = _manifest(version="1.1.0", dependencies={"a": "1.1.0"})

        result = detect_dependency_bumps(before, after)

        assert result.release_version == "1.1.0"
        assert result.target_release == "1.1.0"
        assert result.bumps[0].declared_release is True

    def test_tag_in_range_declares_release(self):
        before = _manifest(version="1.1.0", dependencies={"a": "1.0.0"})
        after = _manifest(version="1.1.0", dependencies={"a": "1.1.0"})

        result = detect_dependency_bumps(before, after, tags_in_range=["v1.1.0"])

        assert result.release_version == "1.1.0"

    def test_unchanged_version_without_tag(self):
        before = _manifest(version="1.1.0", dependencies={"a": "1.0.0"})
        after = _manifest(version="1.1.0", dependencies={"a": "1.1.0"})

        result = detect_dependency_bumps(before, after, tags_in_range=["v1.0.0"])

        assert result.release_version is None
        assert result.bumps[0].declared_release is False


class TestFindBumpMismatches:
    """Test matching bumps against changelog entries."""

    def test_exact_entry_matches(self, sample_changelog):
        text = _with_changed(sample_changelog, f"Bump `a` from `1.0.0` to `1.1.0` ([#5]({REPO_URL}/pull/5))")
        result = DependencyCheckResult(bumps=[_record()])

        assert find_bump_mismatches(parse(text), result) == []
        assert_bumps_documented(parse(text), result)

    def test_entry_with_old_version_is_stale(self, sample_changelog):
        text = _with_changed(sample_changelog, f"Bump `a` from `1.0.0` to `1.1.0` ([#5]({REPO_URL}/pull/5))")
        result = DependencyCheckResult(bumps=[_record(new="1.2.0")])

        checks = find_bump_mismatches(parse(text), result)

        assert [check.status for check in checks] == ["stale"]
        assert "Stale changelog entry" in checks[0].message

    def test_breaking_bump_needs_breaking_prefix(self, sample_changelog):
        text = _with_changed(sample_changelog, f"Bump `b` from `1.0.0` to `2.0.0` ([#5]({REPO_URL}/pull/5))")
        result = DependencyCheckResult(bumps=[_record(name="b", new="2.0.0", kind="peerDependencies")])

        assert [check.status for check in find_bump_mismatches(parse(text), result)] == ["stale"]

    def test_missing_entry_raises(self, sample_changelog):
        result = DependencyCheckResult(bumps=[_record(name="z")])

        with pytest.raises(DependencyBumpMismatch) as exc_info:
            assert_bumps_documented(parse(sample_changelog), result)

        assert exc_info.value.code == "DEPENDENCY_BUMP"
        assert [r.name for r in exc_info.value.records] == ["z"]

    def test_missing_release_section(self, sample_changelog):
        result = DependencyCheckResult(bumps=[_record()], release_version="2.0.0")

        checks = find_bump_mismatches(parse(sample_changelog), result)

        assert checks[0].section_missing is True
        assert "No [2.0.0] section" in checks[0].message


class TestFixDependencyBumps:
    """Test repairing bump entries."""

    def test_missing_entries_are_added_breaking_first(self, sample_changelog):
        result = DependencyCheckResult(bumps=[
            _record(name="a"),
            _record(name="b", new="2.0.0", kind="peerDependencies"),
        ])

        fixed = fix_dependency_bump_entries(sample_changelog, result, repo_url=REPO_URL, pr_number=99)

        assert fixed == _with_changed(
            sample_changelog,
            f"**BREAKING:** Bump `b` from `1.0.0` to `2.0.0` ([#99]({REPO_URL}/pull/99))",
            f"Bump `a` from `1.0.0` to `1.1.0` ([#99]({REPO_URL}/pull/99))",
        )
        assert find_bump_mismatches(parse(fixed), result) == []

    def test_stale_entry_is_rewritten_in_place(self, sample_changelog):
        text = _with_changed(
            sample_changelog,
            "Something else (#3)",
            f"Bump `a` from `1.0.0` to `1.1.0` ([#5]({REPO_URL}/pull/5))",
        )
        result = DependencyCheckResult(bumps=[_record(new="1.2.0", prs=(7,))])

        fixed = fix_dependency_bump_entries(text, result, repo_url=REPO_URL)

        assert fixed == _with_changed(
            sample_changelog,
            "Something else (#3)",
            f"Bump `a` from `1.0.0` to `1.2.0` ([#5]({REPO_URL}/pull/5), [#7]({REPO_URL}/pull/7))",
        )

    def test_short_pr_links(self, sample_changelog):
        result = DependencyCheckResult(bumps=[_record(prs=(4,))])

        fixed = fix_dependency_bump_entries(sample_changelog, result, repo_url=REPO_URL, use_short_pr_link=True)

        assert "### Changed\n- Bump `a` from `1.0.0` to `1.1.0` (#4)\n" in fixed

    def test_documented_bumps_need_no_fix(self, sample_changelog):
        text = _with_changed(sample_changelog, "Bump `a` from `1.0.0` to `1.1.0` (#5)")
        result = DependencyCheckResult(bumps=[_record()])

        assert fix_dependency_bump_entries(text, result, repo_url=REPO_URL) is None

    def test_missing_section_raises(self, sample_changelog):
        result = DependencyCheckResult(bumps=[_record(prs=(4,))], release_version="2.0.0")

        with pytest.raises(DependencyBumpMismatch):
            fix_dependency_bumps(parse(sample_changelog), result, repo_url=REPO_URL)

    def test_pr_number_is_required(self, sample_changelog):
        result = DependencyCheckResult(bumps=[_record()])

        with pytest.raises(ValueError):
            fix_dependency_bumps(parse(sample_changelog), result, repo_url=REPO_URL)

    def test_bump_description(self):
        record = _record(name="b", new="2.0.0", kind="peerDependencies")

        assert bump_description(record) == "**BREAKING:** Bump `b` from `1.0.0` to `2.0.0`"
