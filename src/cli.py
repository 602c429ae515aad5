"""CLI interface for visual-garden."""

import json
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Annotated, NoReturn, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from visual_garden.config import GardenConfig, load_config, merge_cli_overrides
from visual_garden.content import PostUpdate, split_tags
from visual_garden.errors import GardenError
from visual_garden.integrations.cloudinary import CloudinaryUploader
from visual_garden.pipeline import IngestionOrchestrator, IngestRequest
from visual_garden.pipeline.ingest import build_orchestrator

app = typer.Typer(
    name="visual-garden",
    help="Upload images as posts into a git-backed static site.",
)

console = Console()
logger = logging.getLogger(__name__)

ENV_TEMPLATE = """\
# Cloudinary Configuration
# Get these from your Cloudinary dashboard: https://cloudinary.com/console
CLOUDINARY_CLOUD_NAME=your_cloud_name_here
CLOUDINARY_API_KEY=your_api_key_here
CLOUDINARY_API_SECRET=your_api_secret_here
"""


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from visual_garden import __version__

        console.print(f"visual-garden {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _config(ctx: typer.Context) -> GardenConfig:
    return ctx.obj["config"]


def _orchestrator(ctx: typer.Context, *, no_git: bool = False) -> IngestionOrchestrator:
    config = _config(ctx)
    return build_orchestrator(config, persist=config.git.enabled and not no_git)


def _fail(exc: Exception) -> NoReturn:
    console.print(f"[red]Error:[/red] {exc}")
    raise typer.Exit(1)


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a .visual-garden.toml file."),
    ] = None,
    content_root: Annotated[
        Optional[str],
        typer.Option("--content-root", help="Content tree root (contains post/)."),
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", help="Enable debug logging.")
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Visual Garden - image posts for a git-backed static site."""
    _configure_logging(verbose)
    load_dotenv(Path.cwd() / ".env")
    config = merge_cli_overrides(load_config(config_path), content_root=content_root)
    ctx.obj = {"config": config}


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[Optional[str], typer.Option("--host", help="Bind address.")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Port.")] = None,
    remote: Annotated[Optional[str], typer.Option("--remote", help="Git remote to push to.")] = None,
    branch: Annotated[Optional[str], typer.Option("--branch", help="Git branch to push to.")] = None,
    no_git: Annotated[
        bool, typer.Option("--no-git", help="Do not commit or push changes.")
    ] = False,
) -> None:
    """Run the upload HTTP server."""
    from visual_garden.server import run

    config = merge_cli_overrides(
        _config(ctx),
        server_host=host,
        server_port=port,
        git_remote=remote,
        git_branch=branch,
        git_enabled=False if no_git else None,
    )
    console.print(
        f"Upload server running at [bold]http://{config.server.host}:{config.server.port}[/bold]"
    )
    run(config, build_orchestrator(config, persist=config.git.enabled))


@app.command()
def ingest(
    ctx: typer.Context,
    image: Annotated[
        Path,
        typer.Argument(exists=True, dir_okay=False, readable=True, help="Image file to post."),
    ],
    title: Annotated[str, typer.Option("--title", "-t", help="Post title.")],
    alt: Annotated[str, typer.Option("--alt", "-a", help="Image alt text.")],
    tags: Annotated[str, typer.Option("--tags", help="Comma-separated tags.")] = "",
    ratio: Annotated[Optional[str], typer.Option("--ratio", help="Image aspect ratio.")] = None,
    video: Annotated[Optional[str], typer.Option("--video", help="Video URL.")] = None,
    draft: Annotated[bool, typer.Option("--draft", help="Create as draft.")] = False,
    no_git: Annotated[bool, typer.Option("--no-git", help="Skip the git snapshot.")] = False,
) -> None:
    """Create a post from a local image (the source file is copied, not moved)."""
    orchestrator = _orchestrator(ctx, no_git=no_git)

    with tempfile.TemporaryDirectory() as tmpdir:
        temp_copy = Path(tmpdir) / image.name
        shutil.copy2(image, temp_copy)
        try:
            result = orchestrator.ingest(
                IngestRequest(
                    title=title,
                    image_alt=alt,
                    image_path=temp_copy,
                    original_filename=image.name,
                    tags=split_tags(tags),
                    image_ratio=ratio,
                    video_url=video,
                    draft=draft,
                )
            )
        except GardenError as exc:
            _fail(exc)

    console.print(f"[green]Post created at {result.directory}[/green]")
    console.print(f"  Slug: {result.slug}")
    console.print(f"  Cloudinary: {result.media.canonical_url}")
    console.print(f"  Git: {result.persistence.describe()}")


@app.command("list")
def list_cmd(
    ctx: typer.Context,
    as_json: Annotated[bool, typer.Option("--json", help="Print JSON.")] = False,
) -> None:
    """List posts, newest first."""
    posts = _orchestrator(ctx, no_git=True).list_posts()

    if as_json:
        typer.echo(json.dumps({"posts": [p.model_dump() for p in posts]}, indent=2))
        return

    if not posts:
        console.print("[yellow]No posts found.[/yellow]")
        return

    table = Table(title=f"Posts ({len(posts)})")
    table.add_column("Slug", style="cyan")
    table.add_column("Title")
    table.add_column("Date")
    table.add_column("Tags")
    table.add_column("Draft")
    for post in posts:
        table.add_row(
            post.slug,
            post.title,
            post.date,
            ", ".join(post.tags),
            "yes" if post.draft else "",
        )
    console.print(table)


@app.command()
def update(
    ctx: typer.Context,
    slug: Annotated[str, typer.Argument(help="Post slug, e.g. 2024-05-01-my-first-post.")],
    title: Annotated[Optional[str], typer.Option("--title", "-t")] = None,
    alt: Annotated[Optional[str], typer.Option("--alt", "-a")] = None,
    tags: Annotated[Optional[str], typer.Option("--tags", help="Comma-separated tags.")] = None,
    ratio: Annotated[Optional[str], typer.Option("--ratio")] = None,
    video: Annotated[Optional[str], typer.Option("--video")] = None,
    no_git: Annotated[bool, typer.Option("--no-git", help="Skip the git snapshot.")] = False,
) -> None:
    """Overlay metadata fields on an existing post."""
    update_fields = PostUpdate(
        title=title,
        image_alt=alt,
        tags=split_tags(tags) if tags is not None else None,
        image_ratio=ratio,
        video_url=video,
    )
    try:
        result = _orchestrator(ctx, no_git=no_git).update_post(slug, update_fields)
    except GardenError as exc:
        _fail(exc)
    console.print(f"[green]{result.message}[/green]")
    console.print(f"  Git: {result.persistence.describe()}")


@app.command()
def delete(
    ctx: typer.Context,
    slug: Annotated[str, typer.Argument(help="Post slug to delete.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")] = False,
    no_git: Annotated[bool, typer.Option("--no-git", help="Skip the git snapshot.")] = False,
) -> None:
    """Delete a post directory and everything in it."""
    if not yes:
        typer.confirm(f"Delete post {slug}?", abort=True)
    try:
        result = _orchestrator(ctx, no_git=no_git).delete_post(slug)
    except GardenError as exc:
        _fail(exc)
    console.print(f"[green]{result.message}[/green]")
    console.print(f"  Git: {result.persistence.describe()}")


@app.command()
def init(
    directory: Annotated[
        Path, typer.Option("--dir", "-d", help="Where to write the .env file.")
    ] = Path("."),
) -> None:
    """Create a .env template for Cloudinary credentials."""
    env_path = directory / ".env"
    if env_path.exists():
        console.print(f"[green].env file already exists at {env_path}[/green]")
        return

    env_path.write_text(ENV_TEMPLATE, encoding="utf-8")
    console.print(f"[green]Created {env_path}[/green]")
    console.print("Edit it with your Cloudinary credentials from https://cloudinary.com/console")
    console.print("[yellow]Make sure .env is in your .gitignore.[/yellow]")


@app.command("sync-assets")
def sync_assets(
    ctx: typer.Context,
    directory: Annotated[
        Optional[Path], typer.Option("--dir", "-d", help="Uploads directory to sync.")
    ] = None,
) -> None:
    """Upload every file under the assets uploads directory to Cloudinary."""
    config = merge_cli_overrides(
        _config(ctx), assets_dir=str(directory) if directory is not None else None
    )
    root = Path(config.assets.uploads_dir)

    files = sorted(p for p in root.rglob("*") if p.is_file()) if root.is_dir() else []
    if not files:
        console.print(f"No files found in {root}")
        return

    uploader = CloudinaryUploader(config.to_cloudinary_config(folder=config.assets.folder))
    for path in files:
        relative = path.relative_to(root).as_posix()
        console.print(f"Uploading {relative}")
        try:
            result = uploader.upload(path, relative)
        except GardenError as exc:
            _fail(exc)
        logger.debug("Uploaded %s -> %s", relative, result.canonical_url)

    console.print(f"[green]Uploaded {len(files)} file(s)[/green]")
