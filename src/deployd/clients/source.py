"""Source fetch: shallow single-branch clone with the git CLI."""

import asyncio
import os
from pathlib import Path
import shutil
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)


class SourceFetchError(Exception):
    """Raised when the repository cannot be cloned."""


class SourceFetcher(Protocol):
    async def fetch(self, repo_url: str, target_dir: Path, branch: str) -> None:
        """Check out ``branch`` of ``repo_url`` into ``target_dir``."""
        ...


class GitSourceFetcher:
    """Clones with ``git clone --depth 1 --single-branch``."""

    def __init__(self, git_binary: str = "git"):
        self.git_binary = git_binary

    async def fetch(self, repo_url: str, target_dir: Path, branch: str) -> None:
        # A retried deployment id must not trip over a previous checkout
        if target_dir.exists():
            await asyncio.to_thread(shutil.rmtree, target_dir)
        target_dir.parent.mkdir(parents=True, exist_ok=True)

        cmd = [
            self.git_binary,
            "clone",
            "--depth",
            "1",
            "--single-branch",
            "--branch",
            branch,
            repo_url,
            str(target_dir),
        ]
        logger.info("source_fetch_started", repo_url=repo_url, branch=branch)

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
            )
        except FileNotFoundError as e:
            raise SourceFetchError(f"git executable not found: {self.git_binary}") from e

        _stdout, stderr_bytes = await proc.communicate()
        if proc.returncode != 0:
            stderr = stderr_bytes.decode(errors="replace").strip()
            logger.error(
                "source_fetch_failed",
                repo_url=repo_url,
                branch=branch,
                exit_code=proc.returncode,
                stderr=stderr,
            )
            raise SourceFetchError(f"failed to clone repository: {stderr}")

        logger.info("source_fetch_completed", repo_url=repo_url, branch=branch)
