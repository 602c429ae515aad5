"""Cloudinary media host integration: config and upload client.

Uploads go through the signed REST upload endpoint. Every record lives
under one fixed folder, and uploads always overwrite and invalidate so
re-ingesting the same path replaces the previous image.
"""

from __future__ import annotations

import hashlib
import json
import logging
import mimetypes
import time
import urllib.error
import urllib.request
import uuid
from pathlib import Path, PurePosixPath

from pydantic import BaseModel

from visual_garden.errors import MediaUploadError

logger = logging.getLogger(__name__)


class CloudinaryConfig(BaseModel):
    """Configuration for Cloudinary uploads."""

    cloud_name: str = ""
    api_key: str = ""
    api_secret: str = ""
    folder: str = "tomas-master/visual-garden"
    api_base: str = "https://api.cloudinary.com/v1_1"
    timeout: int = 60

    @property
    def is_configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)


class UploadResult(BaseModel):
    """What the media host reports for an accepted upload."""

    canonical_url: str
    stored_path: str


def strip_extension(target: str) -> str:
    """Drop one trailing file extension from a media path.

    ``post/2024-05-01-x/photo.jpg`` becomes ``post/2024-05-01-x/photo``.
    Cloudinary appends the format itself, so a public id that keeps the
    extension ends up as ``photo.jpg.jpg``.
    """
    path = PurePosixPath(target.strip().strip("/"))
    if path.suffix:
        path = path.with_suffix("")
    return str(path)


class CloudinaryUploader:
    """Client for the Cloudinary upload API.

    Handles request signing and multipart upload via urllib.
    """

    UPLOAD_OPTIONS: dict[str, str] = {
        "overwrite": "true",
        "invalidate": "true",
        "unique_filename": "false",
        "use_filename": "false",
    }

    def __init__(self, config: CloudinaryConfig) -> None:
        self.config = config
        self.upload_url = f"{config.api_base.rstrip('/')}/{config.cloud_name}/image/upload"

    def public_id(self, target_path_no_extension: str) -> str:
        """Full public id for a target path, inside the configured folder."""
        target = strip_extension(target_path_no_extension)
        folder = self.config.folder.strip("/")
        return f"{folder}/{target}" if folder else target

    def _sign(self, params: dict[str, str]) -> str:
        """SHA-1 signature over the sorted parameters plus the API secret."""
        to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
        return hashlib.sha1(f"{to_sign}{self.config.api_secret}".encode()).hexdigest()

    def _request_multipart(self, fields: dict[str, str], file_path: Path) -> dict:
        """POST form fields plus the file as multipart/form-data.

        Returns:
            Parsed JSON response from Cloudinary.
        """
        boundary = f"----VisualGardenBoundary{uuid.uuid4().hex}"
        content_type = mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"

        body_parts: list[bytes] = []
        for name, value in fields.items():
            body_parts.extend(
                [
                    f"--{boundary}\r\n".encode(),
                    f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode(),
                    value.encode("utf-8"),
                    b"\r\n",
                ]
            )
        disposition = (
            f'Content-Disposition: form-data; name="file";'
            f' filename="{file_path.name}"\r\n'
        )
        body_parts.extend(
            [
                f"--{boundary}\r\n".encode(),
                disposition.encode(),
                f"Content-Type: {content_type}\r\n\r\n".encode(),
                file_path.read_bytes(),
                f"\r\n--{boundary}--\r\n".encode(),
            ]
        )

        req = urllib.request.Request(
            self.upload_url,
            data=b"".join(body_parts),
            method="POST",
            headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
        )

        with urllib.request.urlopen(req, timeout=self.config.timeout) as resp:
            return json.loads(resp.read().decode("utf-8"))

    @staticmethod
    def _error_message(exc: urllib.error.HTTPError) -> str:
        """Pull Cloudinary's ``error.message`` out of an HTTP error body."""
        try:
            payload = json.loads(exc.read().decode("utf-8"))
            return payload["error"]["message"]
        except (ValueError, KeyError, TypeError, OSError):
            return exc.reason if isinstance(exc.reason, str) else str(exc)

    def upload(self, local_path: str | Path, target_path_no_extension: str) -> UploadResult:
        """Upload a local file under ``{folder}/{target}``.

        Args:
            local_path: File to upload.
            target_path_no_extension: Path inside the folder. A trailing
                extension is removed even if the caller left one on.

        Returns:
            The host's canonical URL and the stored public id.

        Raises:
            MediaUploadError: On missing credentials, a missing file,
                transport failure, or any rejection by the host.
        """
        if not self.config.is_configured:
            raise MediaUploadError(
                "Cloudinary upload failed: credentials are not configured "
                "(set CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET)"
            )

        file_path = Path(local_path)
        if not file_path.is_file():
            raise MediaUploadError(f"Cloudinary upload failed: file not found: {file_path}")

        public_id = self.public_id(target_path_no_extension)
        params = {
            "public_id": public_id,
            "timestamp": str(int(time.time())),
            **self.UPLOAD_OPTIONS,
        }
        fields = {
            **params,
            "api_key": self.config.api_key,
            "signature": self._sign(params),
        }

        logger.info("Uploading to Cloudinary: %s", public_id)
        try:
            result = self._request_multipart(fields, file_path)
        except urllib.error.HTTPError as exc:
            raise MediaUploadError(
                f"Cloudinary upload failed: HTTP {exc.code}: {self._error_message(exc)}"
            ) from exc
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            raise MediaUploadError(f"Cloudinary upload failed: {exc}") from exc
        except ValueError as exc:
            raise MediaUploadError(f"Cloudinary upload failed: invalid response: {exc}") from exc

        if not isinstance(result, dict):
            raise MediaUploadError("Cloudinary upload failed: unexpected response shape")
        url = result.get("secure_url") or result.get("url")
        if not url:
            raise MediaUploadError("Cloudinary upload failed: response did not include a URL")

        return UploadResult(
            canonical_url=url,
            stored_path=result.get("public_id") or public_id,
        )
