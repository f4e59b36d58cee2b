#!/usr/bin/env python3
"""Changelog and manifest file access (atomic writes)."""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Optional

from changelog.errors import CollaboratorFailure


def read_text(path: str) -> str:
    """Read a UTF-8 file.

    Raises:
        CollaboratorFailure: code NOT_FOUND if missing or unreadable
    """
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()
    except FileNotFoundError as e:
        raise CollaboratorFailure(f"File not found: {path}", code="NOT_FOUND", cause=e) from e
    except OSError as e:
        raise CollaboratorFailure(f"Failed to read {path}: {e}", code="NOT_FOUND", cause=e) from e


def write_text(path: str, text: str) -> None:
    """Persist text atomically (fsync + replace).

    Raises:
        CollaboratorFailure: code NOT_WRITABLE on any OS error
    """
    target = Path(path)
    tmp = target.with_suffix(target.suffix + ".tmp")
    try:
        if target.parent and not target.parent.exists():
            target.parent.mkdir(parents=True, exist_ok=True)
        # newline="" keeps the line endings of the text as given
        with open(tmp, "w", encoding="utf-8", newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)
    except OSError as e:
        raise CollaboratorFailure(f"Failed to write {path}: {e}", code="NOT_WRITABLE", cause=e) from e


def _read_manifest(manifest_path: str) -> Optional[dict]:
    try:
        data = json.loads(read_text(manifest_path))
    except (CollaboratorFailure, json.JSONDecodeError):
        return None
    return data if isinstance(data, dict) else None


def version_from_manifest(manifest_path: str) -> Optional[str]:
    """The ``version`` field of a package manifest, or None when absent."""
    data = _read_manifest(manifest_path)
    version = data.get("version") if data is not None else None
    if not isinstance(version, str) or not version.strip():
        return None
    return version.strip()


def repository_url_from_manifest(manifest_path: str) -> Optional[str]:
    """Repository URL declared in a package manifest, normalized to https form."""
    data = _read_manifest(manifest_path)
    repository = data.get("repository") if data is not None else None
    if isinstance(repository, dict):
        repository = repository.get("url")
    if not isinstance(repository, str) or not repository:
        return None
    return normalize_repository_url(repository)


def normalize_repository_url(url: str) -> str:
    url = url.strip()
    url = re.sub(r"^git\+", "", url)
    url = re.sub(r"\.git$", "", url)
    url = re.sub(r"^git@github\.com:", "https://github.com/", url)
    url = re.sub(r"^github:", "https://github.com/", url)
    return url.rstrip("/")
