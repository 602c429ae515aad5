"""Filesystem-backed content record store.

One directory per record under ``{content_root}/{posts_dir}``, named
``{date}-{slug}``, holding the original image and a metadata file.
The store only moves bytes around; it does not parse metadata.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import tempfile
from pathlib import Path

from visual_garden.errors import FilesystemError, NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_POSTS_DIR = "post"
DEFAULT_METADATA_FILENAME = "index.md"


class ContentRecordStore:
    """CRUD over record directories in the content tree."""

    def __init__(
        self,
        content_root: Path,
        *,
        posts_dir: str = DEFAULT_POSTS_DIR,
        metadata_filename: str = DEFAULT_METADATA_FILENAME,
    ) -> None:
        self.content_root = Path(content_root)
        self.posts_root = self.content_root / posts_dir
        self.metadata_filename = metadata_filename

    # ── Paths ────────────────────────────────────────────────────

    def record_path(self, slug: str) -> Path:
        """Resolve a dated slug to its record directory.

        Raises NotFoundError for slugs that would escape the posts root.
        """
        if not slug or slug.startswith(".") or any(sep in slug for sep in ("/", "\\", "..")):
            raise NotFoundError(f"Post not found: {slug}")
        return self.posts_root / slug

    def metadata_path(self, path: Path) -> Path:
        return path / self.metadata_filename

    # ── Write operations ─────────────────────────────────────────

    def create_directory(self, slug: str, date: str) -> Path:
        """Create ``{posts_root}/{date}-{slug}``.

        Succeeds when the directory already exists; existing files in it
        are left alone.
        """
        path = self.posts_root / f"{date}-{slug}"
        if self.metadata_path(path).exists():
            logger.warning("Record directory %s already holds metadata; it will be overwritten", path)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemError(f"Could not create {path}: {exc}") from exc
        return path

    def place_image(self, path: Path, source_temp_file: Path, original_filename: str) -> Path:
        """Move an uploaded temp file into the record directory.

        The file keeps its original name (directory components are
        dropped). If the move fails the temp file is left where it was.

        Raises:
            FilesystemError: If the move fails.
        """
        filename = Path(original_filename).name
        if not filename or filename in (".", ".."):
            raise FilesystemError(f"Unusable image filename: {original_filename!r}")

        target = path / filename
        try:
            shutil.move(os.fspath(source_temp_file), os.fspath(target))
        except OSError as exc:
            raise FilesystemError(
                f"Could not move {source_temp_file} to {target}: {exc}"
            ) from exc
        logger.debug("Placed image at %s", target)
        return target

    def write_metadata(self, path: Path, text: str) -> Path:
        """Overwrite the metadata file in full.

        Writes to a sibling temp file and renames it over the target, so
        readers never see a half-written file.
        """
        target = self.metadata_path(path)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=path, prefix=".", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(text)
                os.replace(tmp_name, target)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise FilesystemError(f"Could not write {target}: {exc}") from exc
        return target

    def delete_record(self, path: Path) -> None:
        """Remove a record directory and everything in it.

        Raises:
            NotFoundError: If the record directory does not exist.
            FilesystemError: If removal fails part-way.
        """
        if not path.is_dir():
            raise NotFoundError(f"Post not found: {path.name}")
        try:
            shutil.rmtree(path)
        except OSError as exc:
            raise FilesystemError(f"Could not delete {path}: {exc}") from exc
        logger.info("Deleted record %s", path)

    # ── Read operations ──────────────────────────────────────────

    def read_metadata(self, path: Path) -> str:
        """Return the raw metadata text of a record.

        Raises:
            NotFoundError: If the directory or metadata file is missing.
        """
        target = self.metadata_path(path)
        if not path.is_dir() or not target.is_file():
            raise NotFoundError(f"Post not found: {path.name}")
        try:
            return target.read_text(encoding="utf-8")
        except OSError as exc:
            raise FilesystemError(f"Could not read {target}: {exc}") from exc

    def list_record_directories(self) -> list[str]:
        """Names of all record directories, unordered. Hidden entries are skipped."""
        if not self.posts_root.is_dir():
            return []
        return [
            entry.name
            for entry in self.posts_root.iterdir()
            if entry.is_dir() and not entry.name.startswith(".")
        ]
