"""Tests for git persistence."""

import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from visual_garden.integrations.git import (
    GitConfig,
    GitPersister,
    NullPersister,
    PersistenceState,
    PersistenceStatus,
)

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _git(cwd: Path, *args: str) -> str:
    return subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    ).stdout


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """A working tree with one commit, tracking a bare remote on ``main``."""
    remote = tmp_path / "remote.git"
    work = tmp_path / "work"
    work.mkdir()
    _git(tmp_path, "init", "--bare", "-b", "main", str(remote))
    _git(work, "init", "-b", "main")
    _git(work, "config", "user.email", "garden@example.com")
    _git(work, "config", "user.name", "Garden Test")
    _git(work, "remote", "add", "origin", str(remote))
    (work / "README.md").write_text("garden\n")
    _git(work, "add", "-A")
    _git(work, "commit", "-m", "Initial")
    _git(work, "push", "origin", "main")
    return work


def _completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> MagicMock:
    result = MagicMock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = stderr
    return result


class TestPersistenceStatus:
    def test_ok_unless_failed(self):
        assert PersistenceStatus(state=PersistenceState.COMMITTED).ok
        assert PersistenceStatus(state=PersistenceState.NO_CHANGES).ok
        assert PersistenceStatus(state=PersistenceState.DISABLED).ok
        assert not PersistenceStatus(state=PersistenceState.FAILED).ok

    def test_describe(self):
        assert (
            PersistenceStatus(state=PersistenceState.COMMITTED, message="Add post: X").describe()
            == "Committed and pushed: Add post: X"
        )
        assert (
            PersistenceStatus(state=PersistenceState.FAILED, reason="no remote").describe()
            == "Git persistence failed: no remote"
        )


class TestNullPersister:
    def test_reports_disabled(self):
        status = NullPersister().snapshot("Add post: X")
        assert status.state == PersistenceState.DISABLED
        assert status.message == "Add post: X"


@requires_git
class TestGitPersisterRealRepo:
    def test_clean_tree_is_no_changes(self, repo: Path):
        persister = GitPersister(GitConfig(repo_dir=repo))
        status = persister.snapshot("Add post: Nothing")
        assert status.state == PersistenceState.NO_CHANGES

    def test_commits_and_pushes(self, repo: Path):
        (repo / "content").mkdir()
        (repo / "content" / "index.md").write_text("---\n---\n")
        persister = GitPersister(GitConfig(repo_dir=repo))

        status = persister.snapshot("Add post: Hello")

        assert status.state == PersistenceState.COMMITTED
        assert _git(repo, "log", "-1", "--format=%s").strip() == "Add post: Hello"
        assert _git(repo, "status", "--porcelain") == ""
        remote_head = _git(repo, "rev-parse", "origin/main").strip()
        assert remote_head == _git(repo, "rev-parse", "HEAD").strip()

    def test_stages_deletions(self, repo: Path):
        (repo / "README.md").unlink()
        status = GitPersister(GitConfig(repo_dir=repo)).snapshot("Delete post: readme")
        assert status.state == PersistenceState.COMMITTED
        assert "README.md" not in _git(repo, "ls-files")

    def test_push_failure_reported(self, repo: Path):
        (repo / "new.txt").write_text("x")
        persister = GitPersister(GitConfig(repo_dir=repo, remote="nowhere"))

        status = persister.snapshot("Add post: Offline")

        assert status.state == PersistenceState.FAILED
        assert "push" in status.reason
        # The commit itself still landed locally
        assert _git(repo, "log", "-1", "--format=%s").strip() == "Add post: Offline"

    def test_not_a_repository(self, tmp_path: Path):
        status = GitPersister(GitConfig(repo_dir=tmp_path)).snapshot("Add post: X")
        assert status.state == PersistenceState.FAILED
        assert "status" in status.reason


class TestGitPersisterMocked:
    def test_disabled_runs_nothing(self, tmp_path: Path):
        persister = GitPersister(GitConfig(enabled=False, repo_dir=tmp_path))
        with patch("visual_garden.integrations.git.subprocess.run") as mock_run:
            status = persister.snapshot("Add post: X")
        assert status.state == PersistenceState.DISABLED
        mock_run.assert_not_called()

    def test_command_sequence(self, tmp_path: Path):
        persister = GitPersister(
            GitConfig(repo_dir=tmp_path, remote="upstream", branch="site")
        )
        with patch(
            "visual_garden.integrations.git.subprocess.run",
            side_effect=[_completed(stdout=" M a.md\n"), _completed(), _completed(), _completed()],
        ) as mock_run:
            status = persister.snapshot("Update post: x")

        assert status.state == PersistenceState.COMMITTED
        commands = [call.args[0] for call in mock_run.call_args_list]
        assert commands == [
            ["git", "status", "--porcelain"],
            ["git", "add", "-A"],
            ["git", "commit", "-m", "Update post: x"],
            ["git", "push", "upstream", "site"],
        ]
        assert all(call.kwargs["cwd"] == tmp_path for call in mock_run.call_args_list)

    def test_git_missing(self, tmp_path: Path):
        persister = GitPersister(GitConfig(repo_dir=tmp_path))
        with patch(
            "visual_garden.integrations.git.subprocess.run", side_effect=FileNotFoundError()
        ):
            status = persister.snapshot("Add post: X")
        assert status.state == PersistenceState.FAILED
        assert "git not found" in status.reason

    def test_timeout(self, tmp_path: Path):
        persister = GitPersister(GitConfig(repo_dir=tmp_path, timeout=5))
        with patch(
            "visual_garden.integrations.git.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="git", timeout=5),
        ):
            status = persister.snapshot("Add post: X")
        assert status.state == PersistenceState.FAILED
        assert "timed out after 5s" in status.reason

    def test_commit_failure_stops_before_push(self, tmp_path: Path):
        persister = GitPersister(GitConfig(repo_dir=tmp_path))
        with patch(
            "visual_garden.integrations.git.subprocess.run",
            side_effect=[
                _completed(stdout="?? new.md\n"),
                _completed(),
                _completed(returncode=1, stderr="Author identity unknown"),
            ],
        ) as mock_run:
            status = persister.snapshot("Add post: X")

        assert status.state == PersistenceState.FAILED
        assert "Author identity unknown" in status.reason
        assert mock_run.call_count == 3
