"""Error taxonomy for the upload pipeline.

Every error carries the HTTP status the server maps it to, so the
HTTP layer needs a single handler for the whole family.
"""

from __future__ import annotations


class GardenError(Exception):
    """Base error for visual-garden operations."""

    status_code: int = 500
    #: Pipeline step that was running when the error was raised, if any.
    step: str | None = None


class ValidationError(GardenError):
    """A required input field is missing."""

    status_code = 400


class InvalidInputError(GardenError):
    """Input is present but cannot produce a usable record (e.g. empty slug)."""

    status_code = 400


class MetadataError(GardenError):
    """Existing metadata on disk is missing required keys."""

    status_code = 400


class NotFoundError(GardenError):
    """The requested record does not exist."""

    status_code = 404


class MediaUploadError(GardenError):
    """The media host rejected the upload or the transport failed."""


class FilesystemError(GardenError):
    """Unexpected I/O failure inside the content tree."""


class PersistenceWarning(GardenError):
    """A version-control step failed.

    Raised only inside the committer, which converts it to a failed
    ``PersistenceStatus``. It never reaches a request handler.
    """
