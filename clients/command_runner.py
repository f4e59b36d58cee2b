#!/usr/bin/env python3
"""Async command runner used for every git invocation.

Commands run through ``asyncio.create_subprocess_exec`` (never a shell) with a
per-command timeout and a semaphore bounding how many run at once. Failures are
raised as CollaboratorFailure with the underlying cause attached; nothing is
retried here.
"""

import asyncio
import logging
from typing import Optional, Sequence

from changelog.errors import CollaboratorFailure
from configs.config import Config

logger = logging.getLogger(__name__)


class CommandRunner:
    """Runs external commands and returns their standard output."""

    def __init__(self, cwd: Optional[str] = None, timeout_s: Optional[int] = None, max_concurrency: Optional[int] = None):
        """Initialize the runner.

        Args:
            cwd: Working directory for every command (defaults to the process cwd)
            timeout_s: Per-command timeout (defaults to Config.COMMAND_TIMEOUT_S)
            max_concurrency: Parallel command limit (defaults to Config.COMMAND_MAX_CONCURRENCY)
        """
        git_config = Config.get_git_config()
        self.cwd = cwd
        self.timeout_s = timeout_s or git_config["timeout_s"]
        self.semaphore = asyncio.Semaphore(max_concurrency or git_config["max_concurrency"])

    async def run(self, command: str, args: Sequence[str] = (), timeout_s: Optional[int] = None) -> str:
        """Run ``command`` with ``args`` and return its decoded stdout.

        Raises:
            CollaboratorFailure: code NOT_FOUND if the executable is missing,
                TIMEOUT if it runs too long, EXIT on a non-zero exit status
        """
        timeout = timeout_s or self.timeout_s
        display = " ".join([command, *args])
        async with self.semaphore:
            logger.debug(f"Running: {display}")
            try:
                process = await asyncio.create_subprocess_exec(
                    command,
                    *args,
                    cwd=self.cwd,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except FileNotFoundError as e:
                raise CollaboratorFailure(f"Command not found: {command}", code="NOT_FOUND", cause=e) from e

            try:
                stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
            except asyncio.TimeoutError as e:
                process.kill()
                await process.wait()
                raise CollaboratorFailure(f"Command timed out after {timeout}s: {display}", code="TIMEOUT", cause=e) from e

            if process.returncode != 0:
                message = stderr.decode(errors="replace").strip() or f"exit status {process.returncode}"
                raise CollaboratorFailure(f"Command failed: {display}: {message}", code="EXIT")

            logger.debug(f"✓ {display}")
            return stdout.decode(errors="replace")
