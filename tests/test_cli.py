"""Smoke tests for the CLI."""

import json
import os
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner
from visual_garden.cli import ENV_TEMPLATE, app
from visual_garden.content import ContentRecordStore
from visual_garden.errors import MediaUploadError
from visual_garden.integrations.cloudinary import UploadResult
from visual_garden.integrations.git import NullPersister
from visual_garden.pipeline import IngestionOrchestrator


class StubUploader:
    def upload(self, local_path, target_path_no_extension: str) -> UploadResult:
        public_id = f"garden/{target_path_no_extension.rsplit('.', 1)[0]}"
        return UploadResult(
            canonical_url=f"https://res.cloudinary.com/demo/{public_id}.jpg",
            stored_path=public_id,
        )


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Run every command from an empty directory with no credentials set.

    The environment is restored afterwards since the CLI loads .env files
    straight into os.environ.
    """
    monkeypatch.chdir(tmp_path)
    for var in (
        "CLOUDINARY_URL",
        "CLOUDINARY_CLOUD_NAME",
        "CLOUDINARY_API_KEY",
        "CLOUDINARY_API_SECRET",
        "GARDEN_CONTENT_ROOT",
    ):
        monkeypatch.delenv(var, raising=False)
    with patch.dict(os.environ):
        yield tmp_path


@pytest.fixture
def orchestrator(workdir: Path) -> IngestionOrchestrator:
    return IngestionOrchestrator(
        ContentRecordStore(workdir / "content"),
        StubUploader(),
        NullPersister(),
        clock=lambda: datetime(2024, 5, 1, 10, 30, tzinfo=UTC),
    )


@pytest.fixture
def wired(orchestrator: IngestionOrchestrator):
    with patch("visual_garden.cli.build_orchestrator", return_value=orchestrator) as mock_build:
        yield mock_build


@pytest.fixture
def image(workdir: Path) -> Path:
    path = workdir / "sunset.jpg"
    path.write_bytes(b"\xff\xd8jpeg")
    return path


class TestVersion:
    def test_version(self, runner: CliRunner, workdir: Path):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "visual-garden 0.1.0" in result.output

    def test_help(self, runner: CliRunner, workdir: Path):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("serve", "ingest", "list", "update", "delete", "init", "sync-assets"):
            assert command in result.output


class TestInit:
    def test_creates_env_template(self, runner: CliRunner, workdir: Path):
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 0
        assert (workdir / ".env").read_text() == ENV_TEMPLATE

    def test_keeps_existing_env(self, runner: CliRunner, workdir: Path):
        (workdir / ".env").write_text("CLOUDINARY_CLOUD_NAME=mine\n")
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 0
        assert "already exists" in result.output
        assert (workdir / ".env").read_text() == "CLOUDINARY_CLOUD_NAME=mine\n"


class TestIngest:
    def test_creates_post_and_keeps_source(
        self, runner: CliRunner, workdir: Path, image: Path, wired: MagicMock
    ):
        result = runner.invoke(
            app,
            ["ingest", str(image), "--title", "My First Post", "--alt", "A sunset", "--tags", "a,b"],
        )

        assert result.exit_code == 0, result.output
        assert "2024-05-01-my-first-post" in result.output
        assert image.exists()
        placed = workdir / "content" / "post" / "2024-05-01-my-first-post" / "sunset.jpg"
        assert placed.read_bytes() == b"\xff\xd8jpeg"

    def test_no_git_disables_persistence(
        self, runner: CliRunner, image: Path, wired: MagicMock
    ):
        runner.invoke(app, ["ingest", str(image), "-t", "T", "-a", "A", "--no-git"])
        assert wired.call_args.kwargs["persist"] is False

    def test_missing_image_file(self, runner: CliRunner, workdir: Path, wired: MagicMock):
        result = runner.invoke(app, ["ingest", "nope.jpg", "-t", "T", "-a", "A"])
        assert result.exit_code != 0
        wired.assert_not_called()

    def test_pipeline_error_exits_1(
        self, runner: CliRunner, image: Path, orchestrator: IngestionOrchestrator
    ):
        failing = MagicMock()
        failing.upload.side_effect = MediaUploadError("Cloudinary upload failed: offline")
        orchestrator.uploader = failing
        with patch("visual_garden.cli.build_orchestrator", return_value=orchestrator):
            result = runner.invoke(app, ["ingest", str(image), "-t", "T", "-a", "A"])
        assert result.exit_code == 1
        assert "offline" in result.output


class TestListUpdateDelete:
    def _ingest(self, runner: CliRunner, image: Path) -> None:
        result = runner.invoke(app, ["ingest", str(image), "-t", "My First Post", "-a", "Alt"])
        assert result.exit_code == 0, result.output

    def test_list_empty(self, runner: CliRunner, wired: MagicMock):
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "No posts found" in result.output

    def test_list_json(self, runner: CliRunner, image: Path, wired: MagicMock):
        self._ingest(runner, image)
        result = runner.invoke(app, ["list", "--json"])
        assert result.exit_code == 0
        posts = json.loads(result.output)["posts"]
        assert [p["slug"] for p in posts] == ["2024-05-01-my-first-post"]

    def test_list_table(self, runner: CliRunner, image: Path, wired: MagicMock):
        self._ingest(runner, image)
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "Posts (1)" in result.output

    def test_update(
        self,
        runner: CliRunner,
        image: Path,
        wired: MagicMock,
        orchestrator: IngestionOrchestrator,
    ):
        self._ingest(runner, image)
        result = runner.invoke(
            app, ["update", "2024-05-01-my-first-post", "--title", "Renamed", "--tags", "x, y"]
        )
        assert result.exit_code == 0, result.output
        record = orchestrator.get_post("2024-05-01-my-first-post")
        assert record.title == "Renamed"
        assert record.tags == ["x", "y"]

    def test_update_missing(self, runner: CliRunner, wired: MagicMock):
        result = runner.invoke(app, ["update", "2024-05-01-nope", "--title", "x"])
        assert result.exit_code == 1
        assert "Post not found" in result.output

    def test_delete(self, runner: CliRunner, workdir: Path, image: Path, wired: MagicMock):
        self._ingest(runner, image)
        result = runner.invoke(app, ["delete", "2024-05-01-my-first-post", "--yes"])
        assert result.exit_code == 0, result.output
        assert not (workdir / "content" / "post" / "2024-05-01-my-first-post").exists()

    def test_delete_asks_for_confirmation(
        self, runner: CliRunner, workdir: Path, image: Path, wired: MagicMock
    ):
        self._ingest(runner, image)
        result = runner.invoke(app, ["delete", "2024-05-01-my-first-post"], input="n\n")
        assert result.exit_code != 0
        assert (workdir / "content" / "post" / "2024-05-01-my-first-post").exists()

    def test_delete_missing(self, runner: CliRunner, wired: MagicMock):
        result = runner.invoke(app, ["delete", "2024-05-01-nope", "--yes"])
        assert result.exit_code == 1


class TestSyncAssets:
    def test_uploads_every_file(self, runner: CliRunner, workdir: Path):
        uploads = workdir / "assets" / "uploads"
        (uploads / "sub").mkdir(parents=True)
        (uploads / "a.png").write_bytes(b"a")
        (uploads / "sub" / "b.jpg").write_bytes(b"b")

        with patch("visual_garden.cli.CloudinaryUploader") as mock_cls:
            mock_cls.return_value.upload.return_value = UploadResult(
                canonical_url="https://res.cloudinary.com/x", stored_path="x"
            )
            result = runner.invoke(app, ["sync-assets"])

        assert result.exit_code == 0, result.output
        assert mock_cls.call_args.args[0].folder == "visual-garden"
        targets = [call.args[1] for call in mock_cls.return_value.upload.call_args_list]
        assert targets == ["a.png", "sub/b.jpg"]
        assert "Uploaded 2 file(s)" in result.output

    def test_no_files(self, runner: CliRunner, workdir: Path):
        with patch("visual_garden.cli.CloudinaryUploader") as mock_cls:
            result = runner.invoke(app, ["sync-assets"])
        assert result.exit_code == 0
        assert "No files found" in result.output
        mock_cls.assert_not_called()

    def test_dir_option(self, runner: CliRunner, workdir: Path):
        other = workdir / "other"
        other.mkdir()
        (other / "c.gif").write_bytes(b"c")
        with patch("visual_garden.cli.CloudinaryUploader") as mock_cls:
            mock_cls.return_value.upload.return_value = UploadResult(
                canonical_url="https://res.cloudinary.com/x", stored_path="x"
            )
            result = runner.invoke(app, ["sync-assets", "--dir", "other"])

        assert result.exit_code == 0, result.output
        (call,) = mock_cls.return_value.upload.call_args_list
        assert call.args == (other.relative_to(workdir) / "c.gif", "c.gif")

    def test_upload_failure_exits_1(self, runner: CliRunner, workdir: Path):
        uploads = workdir / "assets" / "uploads"
        uploads.mkdir(parents=True)
        (uploads / "a.png").write_bytes(b"a")
        with patch("visual_garden.cli.CloudinaryUploader") as mock_cls:
            mock_cls.return_value.upload.side_effect = MediaUploadError("bad credentials")
            result = runner.invoke(app, ["sync-assets"])
        assert result.exit_code == 1
        assert "bad credentials" in result.output


class TestConfigOptions:
    def test_content_root_flag(self, runner: CliRunner, workdir: Path):
        with patch("visual_garden.cli.build_orchestrator") as mock_build:
            mock_build.return_value.list_posts.return_value = []
            runner.invoke(app, ["--content-root", "site/content", "list"])
        config = mock_build.call_args.args[0]
        assert config.content.root == "site/content"

    def test_dotenv_loaded(self, runner: CliRunner, workdir: Path):
        (workdir / ".env").write_text("CLOUDINARY_CLOUD_NAME=from-dotenv\n")
        with patch("visual_garden.cli.build_orchestrator") as mock_build:
            mock_build.return_value.list_posts.return_value = []
            runner.invoke(app, ["list"])
        config = mock_build.call_args.args[0]
        assert config.cloudinary.cloud_name == "from-dotenv"

    def test_serve_git_flags(self, runner: CliRunner, workdir: Path):
        with (
            patch("visual_garden.server.run") as mock_run,
            patch("visual_garden.cli.build_orchestrator") as mock_build,
        ):
            result = runner.invoke(
                app,
                ["serve", "-p", "4000", "--remote", "upstream", "--branch", "site", "--no-git"],
            )

        assert result.exit_code == 0, result.output
        config = mock_run.call_args.args[0]
        assert config.server.port == 4000
        assert config.git.remote == "upstream"
        assert config.git.branch == "site"
        assert config.git.enabled is False
        assert mock_build.call_args.kwargs["persist"] is False
