"""Attachment ingestion: bounded upload reading and delegation to an image store."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Final, Protocol
from uuid import uuid4

import httpx
from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from app.config import get_settings
from app.core.errors import ErrorKind, Result, ServiceError, fail
from app.monitoring.metrics import attachment_failures_total

logger = logging.getLogger(__name__)

_CHUNK_SIZE: Final[int] = 1024 * 1024  # 1 MiB

INVALID_IMAGE: Final[str] = "INVALID_IMAGE"
INVALID_REPLY: Final[str] = "Invalid response from the file server."


def _as_pixels(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


@dataclass(slots=True)
class UploadedImage:
    """Location and pixel size of a stored image."""

    path: str
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True, slots=True)
class AttachmentError:
    """Failure reported by an image store: a plain reason or a typed code."""

    reason: str | None = None
    type: str | None = None


StoreResult = tuple[UploadedImage, None] | tuple[None, AttachmentError]


class ImageStore(Protocol):
    async def upload_image(self, data: bytes, filename: str, owner_id: int) -> StoreResult:
        """Store ``data`` on behalf of ``owner_id`` (a channel id)."""

    async def discard(self, path: str) -> None:
        """Remove a stored image that ended up unreferenced."""


class LocalImageStore:
    """Stores validated images below ``media_root``."""

    def __init__(self, root: Path) -> None:
        self._root = root

    async def upload_image(self, data: bytes, filename: str, owner_id: int) -> StoreResult:
        try:
            with Image.open(io.BytesIO(data)) as image:
                image.verify()
                width, height = image.size
                image_format = (image.format or "").lower()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError):
            return None, AttachmentError(type=INVALID_IMAGE)

        extension = f".{image_format}" if image_format else Path(filename).suffix
        target_dir = self._root / "attachments" / str(owner_id)
        target_dir.mkdir(parents=True, exist_ok=True)
        absolute_path = target_dir / f"{uuid4().hex}{extension}"
        try:
            absolute_path.write_bytes(data)
        except OSError:
            if absolute_path.exists():
                absolute_path.unlink()
            logger.exception("Failed to write attachment", extra={"owner_id": owner_id})
            return None, AttachmentError(reason="Could not store the file.")

        relative_path = absolute_path.relative_to(self._root).as_posix()
        return UploadedImage(path=relative_path, width=width, height=height), None

    async def discard(self, path: str) -> None:
        candidate = (self._root / path).resolve()
        if not str(candidate).startswith(str(self._root.resolve())):
            return
        try:
            candidate.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove orphaned attachment %s", path)


class CdnImageStore:
    """Uploads images to the CDN service, which validates and sizes them."""

    def __init__(
        self,
        base_url: str,
        secret: str | None,
        timeout: float,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._secret = secret
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {"Authorization": self._secret} if self._secret else {}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def upload_image(self, data: bytes, filename: str, owner_id: int) -> StoreResult:
        url = f"{self._base_url}/attachments/{owner_id}"
        try:
            async with self._client() as client:
                response = await client.post(
                    url,
                    files={"file": (filename, data)},
                    headers=self._headers(),
                )
        except httpx.HTTPError:
            logger.warning("File server unreachable", exc_info=True, extra={"owner_id": owner_id})
            return None, AttachmentError(reason="Could not reach the file server.")

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            if isinstance(body, dict) and body.get("type"):
                return None, AttachmentError(type=str(body["type"]))
            if isinstance(body, dict) and body.get("message"):
                return None, AttachmentError(reason=str(body["message"]))
            return None, AttachmentError(reason=f"File server responded with {response.status_code}.")

        if not isinstance(body, dict) or not isinstance(body.get("path"), str) or not body["path"]:
            logger.warning(
                "Malformed reply from file server",
                extra={"owner_id": owner_id, "status_code": response.status_code},
            )
            return None, AttachmentError(reason=INVALID_REPLY)

        dimensions = body.get("dimensions")
        if not isinstance(dimensions, dict):
            dimensions = {}
        return (
            UploadedImage(
                path=body["path"],
                width=_as_pixels(dimensions.get("width")),
                height=_as_pixels(dimensions.get("height")),
            ),
            None,
        )

    async def discard(self, path: str) -> None:
        try:
            async with self._client() as client:
                await client.delete(f"{self._base_url}/{path.lstrip('/')}", headers=self._headers())
        except httpx.HTTPError:
            logger.warning("Could not remove orphaned attachment %s", path)


@lru_cache(maxsize=1)
def get_image_store() -> ImageStore:
    settings = get_settings()
    if settings.image_store == "cdn":
        if settings.cdn_url is None:
            raise RuntimeError("IMAGE_STORE=cdn requires CDN_URL")
        return CdnImageStore(str(settings.cdn_url), settings.cdn_secret, settings.cdn_timeout_seconds)
    root = settings.media_root
    root.mkdir(parents=True, exist_ok=True)
    return LocalImageStore(root)


async def read_bounded(upload: UploadFile, limit: int) -> bytes | None:
    """Read an upload fully, or return ``None`` once it exceeds ``limit`` bytes."""

    buffer = bytearray()
    try:
        while True:
            chunk = await upload.read(_CHUNK_SIZE)
            if not chunk:
                break
            buffer.extend(chunk)
            if len(buffer) > limit:
                return None
    finally:
        await upload.close()
    return bytes(buffer)


def describe_attachment_error(error: AttachmentError) -> str:
    """User-facing message for an image store failure."""

    if error.type is None:
        return error.reason or "An unknown error has occurred"
    if error.type == INVALID_IMAGE:
        return "You can only upload images for now."
    return f"An unknown error has occurred ({error.type})"


def failure_label(error: AttachmentError) -> str:
    """Fixed metric label for a store failure; store messages are free-form."""

    if error.type == INVALID_IMAGE:
        return "invalid_image"
    if error.type is not None:
        return "rejected"
    if error.reason == INVALID_REPLY:
        return "invalid_reply"
    return "store_error"


async def ingest_attachment(
    upload: UploadFile,
    filename: str,
    channel_id: int,
    *,
    store: ImageStore | None = None,
) -> Result[UploadedImage]:
    """Store one uploaded image for ``channel_id``.

    Nothing is persisted when this fails.
    """

    store = store or get_image_store()
    data = await read_bounded(upload, get_settings().max_upload_size)
    if data is None:
        attachment_failures_total.labels("too_large").inc()
        return fail("File is too large.", ErrorKind.UPSTREAM, path="file")

    image, error = await store.upload_image(data, filename, channel_id)
    if error is not None:
        attachment_failures_total.labels(failure_label(error)).inc()
        return None, ServiceError(describe_attachment_error(error), ErrorKind.UPSTREAM, path="file")
    return image, None
