"""Ingestion pipeline: uploaded image and metadata to content record to git.

The orchestrator sequences the content store, the media uploader, the
frontmatter codec, and the persister. The three systems it touches
(content tree, media host, git) have no shared transaction: a failure
part-way leaves earlier effects in place and triggers a salvage snapshot
so the partial record is at least visible in history.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel, Field

from visual_garden.content import (
    ContentRecord,
    ContentRecordStore,
    PostSummary,
    PostUpdate,
    derive_identity,
    frontmatter,
    parse_timestamp,
)
from visual_garden.errors import (
    FilesystemError,
    GardenError,
    MetadataError,
    NotFoundError,
    ValidationError,
)
from visual_garden.integrations.cloudinary import CloudinaryUploader, UploadResult
from visual_garden.integrations.git import (
    GitPersister,
    NullPersister,
    PersistenceState,
    PersistenceStatus,
    Persister,
)

if TYPE_CHECKING:
    from visual_garden.config import GardenConfig

logger = logging.getLogger(__name__)

_EARLIEST = datetime.min.replace(tzinfo=UTC)


class MediaUploader(Protocol):
    def upload(self, local_path: str | Path, target_path_no_extension: str) -> UploadResult: ...


class IngestState(StrEnum):
    """Steps of a single ingestion, in order. FAILED is absorbing."""

    VALIDATING = "validating"
    DERIVING_IDENTITY = "deriving_identity"
    PLACING_FILE = "placing_file"
    UPLOADING_MEDIA = "uploading_media"
    WRITING_METADATA = "writing_metadata"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


class IngestRequest(BaseModel):
    """One submitted image plus its metadata fields."""

    title: str = ""
    image_alt: str = ""
    image_path: Path | None = None
    original_filename: str = ""
    tags: list[str] = Field(default_factory=list)
    image_ratio: str | None = None
    video_url: str | None = None
    draft: bool = False


class IngestResult(BaseModel):
    """Outcome of a successful ingestion.

    ``persistence`` is reported separately: a failed git push does not
    make the ingestion itself fail.
    """

    slug: str
    directory: Path
    image_path: Path
    media: UploadResult
    persistence: PersistenceStatus
    state: IngestState = IngestState.DONE


class MutationResult(BaseModel):
    """Outcome of an update or delete."""

    slug: str
    message: str
    persistence: PersistenceStatus
    record: ContentRecord | None = None


class IngestionOrchestrator:
    """Runs ingest, list, update, and delete against one content tree."""

    def __init__(
        self,
        store: ContentRecordStore,
        uploader: MediaUploader,
        persister: Persister,
        *,
        layout: str | None = "lightbox",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.uploader = uploader
        self.persister = persister
        self.layout = layout
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    # ── Persistence helpers ──────────────────────────────────────

    def _snapshot(self, message: str) -> PersistenceStatus:
        """Call the persister; any exception becomes a failed status."""
        try:
            return self.persister.snapshot(message)
        except Exception as exc:
            logger.warning("Persister raised during %r", message, exc_info=True)
            return PersistenceStatus(
                state=PersistenceState.FAILED, message=message, reason=str(exc)
            )

    def _salvage(self, slug: str) -> None:
        status = self._snapshot(f"Recover partial upload: {slug}")
        if status.ok:
            logger.info("Salvage snapshot for %s: %s", slug, status.describe())
        else:
            logger.error("Salvage snapshot for %s failed: %s", slug, status.reason)

    # ── Ingest ───────────────────────────────────────────────────

    @staticmethod
    def _validate(request: IngestRequest) -> Path:
        """Check required fields and return the uploaded temp file."""
        missing = []
        if not request.title.strip():
            missing.append("title")
        if request.image_path is None or not request.original_filename:
            missing.append("image")
        if not request.image_alt.strip():
            missing.append("image alt text")
        if missing or request.image_path is None:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        return request.image_path

    def ingest(self, request: IngestRequest) -> IngestResult:
        """Turn one submitted image into a content record.

        Raises:
            ValidationError: Required fields missing. Nothing is touched.
            InvalidInputError: Title yields no slug. Nothing is touched.
            FilesystemError, MediaUploadError: A mid-pipeline step failed.
                Partial state is left on disk and a salvage snapshot has
                been attempted.

            Every error raised here carries the failed step in ``step``.
        """
        state = IngestState.VALIDATING
        slug: str | None = None
        mutated = False
        try:
            source = self._validate(request)

            state = IngestState.DERIVING_IDENTITY
            identity = derive_identity(request.title, self._clock())
            slug = identity.slug
            logger.debug("Derived identity %s", slug)

            state = IngestState.PLACING_FILE
            directory = self.store.create_directory(identity.body, identity.date)
            mutated = True
            image_path = self.store.place_image(directory, source, request.original_filename)
            # Temp file is normally gone after the move
            with contextlib.suppress(OSError):
                source.unlink(missing_ok=True)

            state = IngestState.UPLOADING_MEDIA
            target = f"{self.store.posts_root.name}/{slug}/{image_path.name}"
            media = self.uploader.upload(image_path, target)

            state = IngestState.WRITING_METADATA
            record = ContentRecord(
                slug=slug,
                title=request.title,
                date=identity.timestamp,
                image=media.stored_path,
                image_alt=request.image_alt,
                tags=[t for t in request.tags if t],
                image_ratio=request.image_ratio or None,
                video_url=request.video_url or None,
                draft=request.draft,
                layout=self.layout,
            )
            self.store.write_metadata(
                directory, frontmatter.serialize(record.to_frontmatter())
            )
        except Exception as exc:
            logger.error("Ingestion of %s failed while %s: %s", slug or "new post", state, exc)
            if isinstance(exc, GardenError):
                exc.step = state
            if mutated and slug is not None:
                self._salvage(slug)
            raise

        state = IngestState.COMMITTING
        persistence = self._snapshot(f"Add post: {request.title}")
        logger.info("Created post %s (%s)", slug, persistence.describe())

        return IngestResult(
            slug=slug,
            directory=directory,
            image_path=image_path,
            media=media,
            persistence=persistence,
        )

    # ── Read ─────────────────────────────────────────────────────

    def get_post(self, slug: str) -> ContentRecord:
        """Load one record.

        Raises:
            NotFoundError: If the record or its metadata file is missing.
            MetadataError: If the metadata lacks required keys.
        """
        text = self.store.read_metadata(self.store.record_path(slug))
        return ContentRecord.from_frontmatter(slug, frontmatter.parse(text))

    def list_posts(self) -> list[PostSummary]:
        """Summaries of all readable records, newest first.

        Records with missing or malformed metadata are skipped with a
        warning. Unparsable dates sort last.
        """
        records: list[ContentRecord] = []
        for name in self.store.list_record_directories():
            try:
                records.append(self.get_post(name))
            except (NotFoundError, MetadataError, FilesystemError) as exc:
                logger.warning("Skipping post %s: %s", name, exc)

        records.sort(
            key=lambda r: (parse_timestamp(r.date) or _EARLIEST, r.slug),
            reverse=True,
        )
        return [r.summary() for r in records]

    # ── Update / delete ──────────────────────────────────────────

    def update_post(self, slug: str, update: PostUpdate) -> MutationResult:
        """Overlay supplied fields onto a record and rewrite its metadata.

        Fields that are unset or empty keep their stored values. The
        image, date, draft flag, and any markdown body are preserved.

        Raises:
            NotFoundError: If the record does not exist.
            MetadataError: If the stored metadata lacks required keys.
        """
        path = self.store.record_path(slug)
        fields, body = frontmatter.split(self.store.read_metadata(path))
        record = ContentRecord.from_frontmatter(slug, fields).apply(update)
        self.store.write_metadata(path, frontmatter.render(record.to_frontmatter(), body))

        persistence = self._snapshot(f"Update post: {slug}")
        return MutationResult(
            slug=slug,
            message=f"Post {slug} updated",
            persistence=persistence,
            record=record,
        )

    def delete_post(self, slug: str) -> MutationResult:
        """Remove a record directory and snapshot the removal.

        Raises:
            NotFoundError: If the record does not exist.
        """
        self.store.delete_record(self.store.record_path(slug))
        persistence = self._snapshot(f"Delete post: {slug}")
        return MutationResult(
            slug=slug,
            message=f"Post {slug} deleted",
            persistence=persistence,
        )


def build_orchestrator(config: GardenConfig, *, persist: bool = True) -> IngestionOrchestrator:
    """Wire an orchestrator from configuration.

    Args:
        config: Loaded configuration.
        persist: When False, snapshots are skipped (``--no-git``).
    """
    store = ContentRecordStore(
        Path(config.content.root),
        posts_dir=config.content.posts_dir,
        metadata_filename=config.content.metadata_filename,
    )
    uploader = CloudinaryUploader(config.to_cloudinary_config())
    persister: Persister = (
        GitPersister(config.to_git_config()) if persist else NullPersister()
    )
    return IngestionOrchestrator(
        store,
        uploader,
        persister,
        layout=config.content.layout or None,
    )
