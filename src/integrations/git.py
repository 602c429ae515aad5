"""Git persistence: best-effort snapshot of the content tree.

Centralizes the subprocess-based git invocations. A snapshot stages
every pending change, commits, and pushes to the configured remote and
branch. Failures are reported as a status, never raised.
"""

from __future__ import annotations

import logging
import subprocess
from enum import StrEnum
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel

from visual_garden.errors import PersistenceWarning

logger = logging.getLogger(__name__)


class PersistenceState(StrEnum):
    """Outcome of a snapshot attempt."""

    COMMITTED = "committed"
    NO_CHANGES = "no_changes"
    FAILED = "failed"
    DISABLED = "disabled"


class PersistenceStatus(BaseModel):
    """Result of a snapshot, reported alongside the operation outcome."""

    state: PersistenceState
    message: str = ""
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.state != PersistenceState.FAILED

    def describe(self) -> str:
        """Human-readable status text for API responses."""
        if self.state == PersistenceState.COMMITTED:
            return f"Committed and pushed: {self.message}"
        if self.state == PersistenceState.NO_CHANGES:
            return "No changes to commit"
        if self.state == PersistenceState.DISABLED:
            return "Git persistence disabled"
        return f"Git persistence failed: {self.reason}"


class Persister(Protocol):
    """Anything that can snapshot the content tree."""

    def snapshot(self, message: str) -> PersistenceStatus: ...


class NullPersister:
    """Persister that records nothing."""

    def snapshot(self, message: str) -> PersistenceStatus:
        logger.debug("Skipping snapshot (persistence disabled): %s", message)
        return PersistenceStatus(state=PersistenceState.DISABLED, message=message)


class GitConfig(BaseModel):
    """Working tree, remote, and branch the persister commits to."""

    enabled: bool = True
    repo_dir: Path = Path(".")
    remote: str = "origin"
    branch: str = "main"
    timeout: int = 60


class GitPersister:
    """Stage, commit, and push the working tree with the git CLI."""

    def __init__(self, config: GitConfig) -> None:
        self.config = config

    def _run(self, *args: str) -> str:
        """Run one git command in the working tree and return its stdout.

        Raises:
            PersistenceWarning: On missing git, timeout, or non-zero exit.
        """
        cmd = ["git", *args]
        logger.debug("Running %s in %s", " ".join(cmd), self.config.repo_dir)
        try:
            result = subprocess.run(
                cmd,
                cwd=self.config.repo_dir,
                capture_output=True,
                text=True,
                timeout=self.config.timeout,
            )
        except FileNotFoundError as exc:
            raise PersistenceWarning("git not found, is 'git' on the PATH?") from exc
        except subprocess.TimeoutExpired as exc:
            raise PersistenceWarning(
                f"git {args[0]} timed out after {self.config.timeout}s"
            ) from exc
        except OSError as exc:
            raise PersistenceWarning(f"git {args[0]} could not run: {exc}") from exc

        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip()[:500]
            raise PersistenceWarning(f"git {args[0]} failed (exit {result.returncode}): {detail}")
        return result.stdout

    def has_changes(self) -> bool:
        """True when the tree has tracked or untracked changes."""
        return bool(self._run("status", "--porcelain").strip())

    def snapshot(self, message: str) -> PersistenceStatus:
        """Commit and push all pending changes.

        Returns:
            ``no_changes`` when the tree is clean, ``committed`` on full
            success, ``failed`` with the reason when any step fails.
        """
        if not self.config.enabled:
            return PersistenceStatus(state=PersistenceState.DISABLED, message=message)

        try:
            if not self.has_changes():
                logger.info("No changes to commit")
                return PersistenceStatus(state=PersistenceState.NO_CHANGES, message=message)

            self._run("add", "-A")
            self._run("commit", "-m", message)
            self._run("push", self.config.remote, self.config.branch)
        except PersistenceWarning as exc:
            logger.warning("Git persistence failed for %r: %s", message, exc)
            return PersistenceStatus(
                state=PersistenceState.FAILED, message=message, reason=str(exc)
            )

        logger.info("Committed and pushed: %s", message)
        return PersistenceStatus(state=PersistenceState.COMMITTED, message=message)
