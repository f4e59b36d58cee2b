#!/usr/bin/env python3
"""Git queries needed by the changelog agent, on top of CommandRunner."""

import asyncio
import logging
from typing import List, Optional, Sequence

from changelog.changelog_models import CommitRecord
from changelog.commit_history import GIT_LOG_FORMAT, parse_git_log
from clients.command_runner import CommandRunner
from configs.config import Config

logger = logging.getLogger(__name__)


class GitRepository:
    """Read-only view of a git repository."""

    def __init__(self, runner: Optional[CommandRunner] = None, fetch_tags: Optional[bool] = None, remote: Optional[str] = None):
        git_config = Config.get_git_config()
        self.runner = runner or CommandRunner()
        self.fetch_tags_enabled = git_config["fetch_tags"] if fetch_tags is None else fetch_tags
        self.remote = remote or git_config["remote"]

    async def _git(self, *args: str) -> str:
        return await self.runner.run("git", list(args))

    async def _git_lines(self, *args: str) -> List[str]:
        output = await self._git(*args)
        return [line.strip() for line in output.splitlines() if line.strip()]

    async def fetch_tags(self) -> None:
        if not self.fetch_tags_enabled:
            return
        logger.info(f"Fetching tags from {self.remote}")
        await self._git("fetch", "--tags", self.remote)

    async def list_tags(self, pattern: Optional[str] = None) -> List[str]:
        args = ["tag", "--list"]
        if pattern:
            args.append(pattern)
        return await self._git_lines(*args)

    async def most_recent_tag(self, tag_prefixes: Sequence[str]) -> Optional[str]:
        """Most recent tag for the first prefix that has any tag.

        Later prefixes are fallbacks, e.g. the prefix used before a package rename.
        """
        for prefix in tag_prefixes:
            hashes = await self._git_lines("rev-list", f"--tags={prefix}*", "--max-count=1", "--date-order")
            if hashes:
                tags = await self._git_lines("describe", "--tags", "--abbrev=0", "--match", f"{prefix}*", hashes[0])
                if tags:
                    logger.debug(f"✓ Most recent tag: {tags[0]}")
                    return tags[0]
        return None

    async def commits_since(self, since_ref: Optional[str], project_root: Optional[str] = None, to_ref: str = "HEAD") -> List[CommitRecord]:
        """Commits after ``since_ref`` up to ``to_ref``, newest first."""
        revision = f"{since_ref}..{to_ref}" if since_ref else to_ref
        args = ["log", f"--format={GIT_LOG_FORMAT}", revision]
        if project_root:
            args.extend(["--", project_root])
        return parse_git_log(await self._git(*args))

    async def commits_touching(self, from_ref: str, to_ref: str, path: str) -> List[CommitRecord]:
        """Commits in ``from_ref..to_ref`` that modified ``path``, oldest first."""
        output = await self._git("log", "--reverse", f"--format={GIT_LOG_FORMAT}", f"{from_ref}..{to_ref}", "--", path)
        return parse_git_log(output)

    async def show_file(self, ref: str, path: str) -> str:
        return await self._git("show", f"{ref}:{path}")

    async def merge_base(self, ref: str, other: str) -> str:
        lines = await self._git_lines("merge-base", ref, other)
        return lines[0]

    async def tags_between(self, from_ref: str, to_ref: str) -> List[str]:
        """Tags reachable from ``to_ref`` but not from ``from_ref``."""
        reachable, older = await asyncio.gather(
            self._git_lines("tag", "--merged", to_ref),
            self._git_lines("tag", "--merged", from_ref),
        )
        excluded = set(older)
        return [tag for tag in reachable if tag not in excluded]
