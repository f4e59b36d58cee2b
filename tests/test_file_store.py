"""Tests for changelog and manifest file access."""

import json

import pytest

from changelog.errors import CollaboratorFailure
from clients.file_store import (
    normalize_repository_url,
    read_text,
    repository_url_from_manifest,
    version_from_manifest,
    write_text,
)


class TestReadWrite:
    """Test reading and atomically writing text."""

    def test_round_trip_keeps_line_endings(self, tmp_path):
        path = tmp_path / "nested" / "CHANGELOG.md"
        text = "# Changelog\r\nIntro\r\n"

        write_text(str(path), text)

        assert read_text(str(path)) == text
        assert not (tmp_path / "nested" / "CHANGELOG.md.tmp").exists()

    def test_missing_file(self, tmp_path):
        with pytest.raises(CollaboratorFailure) as exc_info:
            read_text(str(tmp_path / "missing.md"))

        assert exc_info.value.code == "NOT_FOUND"


class TestRepositoryUrl:
    """Test repository URL discovery from package.json."""

    @pytest.mark.parametrize(
        "repository",
        [
            "git+https://github.com/example-org/example-repo.git",
            {"type": "git", "url": "git@github.com:example-org/example-repo.git"},
            "github:example-org/example-repo",
        ],
    )
    def test_manifest_repository(self, tmp_path, repository):
        manifest = tmp_path / "package.json"
        manifest.write_text(json.dumps({"name": "x", "repository": repository}), encoding="utf-8")

        assert repository_url_from_manifest(str(manifest)) == "https://github.com/example-org/example-repo"

    def test_manifest_without_repository(self, tmp_path):
        manifest = tmp_path / "package.json"
        manifest.write_text("{}", encoding="utf-8")

        assert repository_url_from_manifest(str(manifest)) is None
        assert repository_url_from_manifest(str(tmp_path / "absent.json")) is None

    def test_normalize_trailing_slash(self):
        assert normalize_repository_url(" https://github.com/o/r/ ") == "https://github.com/o/r"


class TestManifestVersion:
    """Test current version discovery from package.json."""

    def test_version_field(self, tmp_path):
        manifest = tmp_path / "package.json"
        manifest.write_text(json.dumps({"name": "x", "version": "2.0.0-next.1"}), encoding="utf-8")

        assert version_from_manifest(str(manifest)) == "2.0.0-next.1"

    @pytest.mark.parametrize("content", ['{"name": "x"}', '{"version": 3}', "[]", "not json"])
    def test_missing_or_unusable_version(self, tmp_path, content):
        manifest = tmp_path / "package.json"
        manifest.write_text(content, encoding="utf-8")

        assert version_from_manifest(str(manifest)) is None

    def test_missing_manifest(self, tmp_path):
        assert version_from_manifest(str(tmp_path / "package.json")) is None
