"""
Storage gateway for Firebase Storage (Google Cloud Storage).

Downloads input blobs into a scratch directory and publishes results under
deterministic keys, so re-running a session overwrites its previous output.
"""

import logging
import mimetypes
from pathlib import Path
from typing import Any, Literal, Mapping, Optional, Union
from urllib.parse import unquote, urlparse

from google.api_core.exceptions import GoogleAPIError, NotFound

from app.config import OUTPUT_CACHE_CONTROL
from app.core.errors import StorageError
from app.core.firebase_client import get_storage_bucket

logger = logging.getLogger(__name__)

OutputKind = Literal["output", "thumb"]

PUBLIC_HOST = "storage.googleapis.com"
FIREBASE_HOST = "firebasestorage.googleapis.com"

CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".mp4": "video/mp4",
}


def build_output_key(project_id: str, session_id: str, kind: OutputKind, ext: str) -> str:
    """Deterministic result key: ``{project_id}/results/{session_id}-{kind}.{ext}``."""
    if kind not in ("output", "thumb"):
        raise ValueError(f"Invalid output kind: {kind}")
    return f"{project_id}/results/{session_id}-{kind}.{ext.lstrip('.')}"


def build_overlay_key(company_id: str, aspect_ratio: str) -> str:
    """Conventional location of a company's branding overlay for an aspect ratio."""
    return f"media/{company_id}/overlays/{aspect_ratio}-overlay.png"


def public_url(bucket_name: str, storage_key: str) -> str:
    return f"https://{PUBLIC_HOST}/{bucket_name}/{storage_key}"


def _key_from_media_reference(reference: Any) -> Optional[str]:
    if isinstance(reference, Mapping):
        file_path = reference.get("filePath") or reference.get("file_path")
        url = reference.get("url")
    else:
        file_path = getattr(reference, "file_path", None)
        url = getattr(reference, "url", None)
    if file_path:
        return str(file_path).lstrip("/")
    if url:
        return resolve_storage_key(str(url))
    return None


def resolve_storage_key(reference: Union[str, Mapping[str, Any], Any]) -> str:
    """
    Extract the bucket-relative storage key from any reference shape we store.

    Accepted forms:
        - ``gs://bucket/path/to/file.jpg``
        - ``https://storage.googleapis.com/bucket/path/to/file.jpg``
        - ``https://firebasestorage.googleapis.com/v0/b/bucket/o/path%2Fto%2Ffile.jpg?alt=media``
        - a bare key such as ``media/company/overlays/square-overlay.png`` (legacy)
        - a media reference (mapping or model) with ``filePath`` or ``url``

    Raises:
        ValueError: If no key can be extracted.
    """
    if not isinstance(reference, str):
        key = _key_from_media_reference(reference)
        if not key:
            raise ValueError("Media reference has neither filePath nor url")
        return key

    value = reference.strip()
    if not value:
        raise ValueError("Empty storage reference")

    parsed = urlparse(value)

    if parsed.scheme == "gs":
        key = parsed.path.lstrip("/")
    elif parsed.scheme in ("http", "https"):
        if parsed.netloc == FIREBASE_HOST:
            # /v0/b/{bucket}/o/{url-encoded key}
            parts = parsed.path.split("/o/", 1)
            key = unquote(parts[1]) if len(parts) == 2 else ""
        elif parsed.netloc == PUBLIC_HOST:
            # /{bucket}/{key}
            parts = parsed.path.lstrip("/").split("/", 1)
            key = unquote(parts[1]) if len(parts) == 2 else ""
        elif parsed.netloc.endswith(f".{PUBLIC_HOST}"):
            # Virtual-hosted style: {bucket}.storage.googleapis.com/{key}
            key = unquote(parsed.path.lstrip("/"))
        else:
            raise ValueError(f"Unrecognised storage URL host: {parsed.netloc}")
    elif not parsed.scheme:
        key = value.lstrip("/")
    else:
        raise ValueError(f"Unsupported storage reference scheme: {parsed.scheme}")

    if not key:
        raise ValueError(f"Could not extract storage key from {value}")
    return key


class StorageGateway:
    """
    Blocking wrapper around the project bucket.

    Async callers run these methods with ``asyncio.to_thread``.
    """

    def __init__(self, bucket: Optional[Any] = None):
        self._bucket = bucket

    @property
    def bucket(self):
        if self._bucket is None:
            self._bucket = get_storage_bucket()
        return self._bucket

    def download(self, storage_key: str, local_path: Union[str, Path]) -> None:
        """
        Download a blob to ``local_path``.

        Raises:
            StorageError: If the blob does not exist, the download fails, or
                the downloaded file is empty.
        """
        local_path = Path(local_path)
        blob = self.bucket.blob(storage_key)
        try:
            blob.download_to_filename(str(local_path))
        except NotFound as exc:
            local_path.unlink(missing_ok=True)
            raise StorageError(f"File not found in storage: {storage_key}") from exc
        except GoogleAPIError as exc:
            local_path.unlink(missing_ok=True)
            logger.error("Failed to download %s: %s", storage_key, exc)
            raise StorageError(f"Failed to download {storage_key}: {exc}") from exc

        if not local_path.exists() or local_path.stat().st_size == 0:
            raise StorageError(f"Downloaded file is empty: {storage_key}")

        logger.debug("Downloaded %s -> %s (%d bytes)", storage_key, local_path, local_path.stat().st_size)

    def download_bytes(self, storage_key: str) -> bytes:
        blob = self.bucket.blob(storage_key)
        try:
            data = blob.download_as_bytes()
        except NotFound as exc:
            raise StorageError(f"File not found in storage: {storage_key}") from exc
        except GoogleAPIError as exc:
            raise StorageError(f"Failed to download {storage_key}: {exc}") from exc
        if not data:
            raise StorageError(f"Downloaded file is empty: {storage_key}")
        return data

    def upload(
        self,
        local_path: Union[str, Path],
        storage_key: str,
        content_type: Optional[str] = None,
    ) -> str:
        """
        Upload a local file as a public, long-cached object.

        Returns:
            Stable public HTTPS URL of the object.

        Raises:
            StorageError: If the local file is missing/empty or the upload fails.
        """
        local_path = Path(local_path)
        if not local_path.exists() or local_path.stat().st_size == 0:
            raise StorageError(f"Refusing to upload empty file: {local_path}")

        content_type = (
            content_type
            or CONTENT_TYPES.get(local_path.suffix.lower())
            or mimetypes.guess_type(local_path.name)[0]
            or "application/octet-stream"
        )

        blob = self.bucket.blob(storage_key)
        blob.cache_control = OUTPUT_CACHE_CONTROL
        try:
            blob.upload_from_filename(str(local_path), content_type=content_type)
            blob.make_public()
        except GoogleAPIError as exc:
            logger.error("Failed to upload %s to %s: %s", local_path, storage_key, exc)
            raise StorageError(f"Failed to upload {storage_key}: {exc}") from exc

        url = public_url(self.bucket.name, storage_key)
        logger.info("Uploaded %s (%s)", storage_key, content_type)
        return url
