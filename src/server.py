"""FastAPI upload server.

Endpoints:
- POST   /api/upload-post   : multipart image plus metadata, creates a post
- GET    /api/posts         : all posts, newest first
- PUT    /api/posts/{slug}  : overlay metadata fields
- DELETE /api/posts/{slug}  : remove a post
- GET    /health

Every error response is ``{"error": message}``.
"""

import contextlib
import logging
import tempfile
from pathlib import Path
from typing import Annotated

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field

from visual_garden import __version__
from visual_garden.config import GardenConfig
from visual_garden.content import PostUpdate, split_tags
from visual_garden.errors import GardenError, ValidationError
from visual_garden.pipeline import IngestionOrchestrator, IngestRequest
from visual_garden.pipeline.ingest import build_orchestrator

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


class PayloadTooLargeError(ValidationError):
    """Uploaded file exceeds the configured size limit."""

    status_code = 413


class UpdatePostBody(BaseModel):
    """JSON body of PUT /api/posts/{slug}. Field names follow the upload form."""

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    image_alt: str | None = Field(default=None, alias="imageAlt")
    tags: list[str] | str | None = None
    image_ratio: str | None = Field(default=None, alias="imageRatio")
    video_url: str | None = Field(default=None, alias="videoUrl")

    def to_update(self) -> PostUpdate:
        tags = split_tags(self.tags) if isinstance(self.tags, str) else self.tags
        return PostUpdate(
            title=self.title,
            image_alt=self.image_alt,
            tags=tags,
            image_ratio=self.image_ratio,
            video_url=self.video_url,
        )


def _save_upload(upload: UploadFile, temp_dir: Path, max_bytes: int) -> Path:
    """Stream an upload into a temp file, enforcing the size limit."""
    temp_dir.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(dir=temp_dir, delete=False) as tmp:
        temp_path = Path(tmp.name)
        written = 0
        while chunk := upload.file.read(_CHUNK_SIZE):
            written += len(chunk)
            if written > max_bytes:
                break
            tmp.write(chunk)
    if written > max_bytes:
        temp_path.unlink(missing_ok=True)
        raise PayloadTooLargeError(
            f"Image exceeds the {max_bytes // (1024 * 1024)}MB upload limit"
        )
    return temp_path


def create_app(
    config: GardenConfig | None = None,
    orchestrator: IngestionOrchestrator | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Loaded configuration. Defaults to built-in defaults.
        orchestrator: Pre-built orchestrator (tests inject fakes here).
            Built from ``config`` when omitted.
    """
    config = config or GardenConfig()
    orchestrator = orchestrator or build_orchestrator(config, persist=config.git.enabled)
    temp_dir = Path(config.server.temp_dir)
    max_bytes = config.server.max_upload_bytes

    app = FastAPI(
        title="Visual Garden Upload API",
        description="Create, list, update, and delete image posts",
        version=__version__,
    )
    app.state.orchestrator = orchestrator

    @app.exception_handler(GardenError)
    async def garden_error_handler(request: Request, exc: GardenError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'][1:])}: {err['msg']}" for err in exc.errors()
        )
        return JSONResponse(status_code=400, content={"error": f"Invalid request: {details}"})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.get("/health")
    def health_check() -> dict:
        return {"status": "healthy", "contentRoot": str(orchestrator.store.content_root)}

    @app.post("/api/upload-post")
    def upload_post(
        image: Annotated[UploadFile | None, File()] = None,
        title: Annotated[str, Form()] = "",
        imageAlt: Annotated[str, Form()] = "",  # noqa: N803
        tags: Annotated[str, Form()] = "",
        imageRatio: Annotated[str, Form()] = "",  # noqa: N803
        videoUrl: Annotated[str, Form()] = "",  # noqa: N803
        isDraft: Annotated[str, Form()] = "",  # noqa: N803
    ) -> dict:
        if image is None or not image.filename:
            raise ValidationError("No image file provided")
        if not (image.content_type or "").startswith("image/"):
            raise ValidationError("Only image files are allowed")
        if not title.strip() or not imageAlt.strip():
            raise ValidationError("Title and image alt text are required")

        temp_path = _save_upload(image, temp_dir, max_bytes)
        try:
            result = orchestrator.ingest(
                IngestRequest(
                    title=title,
                    image_alt=imageAlt,
                    image_path=temp_path,
                    original_filename=image.filename,
                    tags=split_tags(tags),
                    image_ratio=imageRatio or None,
                    video_url=videoUrl or None,
                    draft=isDraft.lower() == "true",
                )
            )
        except GardenError as exc:
            logger.error("Upload failed (%s): %s", exc.step or "request", exc)
            raise
        finally:
            # Only still present when the move into the record failed
            with contextlib.suppress(OSError):
                temp_path.unlink(missing_ok=True)

        return {
            "message": f"Post created at {result.directory}",
            "slug": result.slug,
            "cloudinaryPath": result.media.stored_path,
            "cloudinaryUrl": result.media.canonical_url,
            "gitStatus": result.persistence.describe(),
        }

    @app.get("/api/posts")
    def list_posts() -> dict:
        return {"posts": [p.model_dump() for p in orchestrator.list_posts()]}

    @app.put("/api/posts/{slug}")
    def update_post(slug: str, body: UpdatePostBody) -> dict:
        result = orchestrator.update_post(slug, body.to_update())
        return {"message": result.message, "gitStatus": result.persistence.describe()}

    @app.delete("/api/posts/{slug}")
    def delete_post(slug: str) -> dict:
        result = orchestrator.delete_post(slug)
        return {"message": result.message, "gitStatus": result.persistence.describe()}

    static_dir = Path(config.server.static_dir)
    if config.server.static_dir and static_dir.is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
        logger.info("Serving static files from %s", static_dir)

    return app


def run(config: GardenConfig, orchestrator: IngestionOrchestrator | None = None) -> None:
    """Serve the app with uvicorn until interrupted."""
    import uvicorn

    app = create_app(config, orchestrator)
    logger.info("Upload server running at http://%s:%s", config.server.host, config.server.port)
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_config=None)


__all__ = ["PayloadTooLargeError", "UpdatePostBody", "create_app", "run"]
