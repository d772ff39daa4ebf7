from __future__ import annotations

import io

import httpx
import pytest
from PIL import Image
from starlette.datastructures import UploadFile

from app.config import get_settings
from app.core.errors import ErrorKind
from app.core.storage import (
    INVALID_IMAGE,
    AttachmentError,
    CdnImageStore,
    LocalImageStore,
    UploadedImage,
    describe_attachment_error,
    failure_label,
    ingest_attachment,
    read_bounded,
)
from app.monitoring.metrics import attachment_failures_total


def make_upload(data: bytes, filename: str = "upload.png") -> UploadFile:
    return UploadFile(file=io.BytesIO(data), filename=filename)


def jpeg_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 5)).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.mark.anyio
async def test_local_store_keeps_valid_images(tmp_path):
    store = LocalImageStore(tmp_path)

    image, error = await store.upload_image(jpeg_bytes(), "cat.jpg", owner_id=7)

    assert error is None
    assert (image.width, image.height) == (8, 5)
    assert image.path.startswith("attachments/7/")
    assert image.path.endswith(".jpeg")
    assert (tmp_path / image.path).read_bytes() == jpeg_bytes()


@pytest.mark.anyio
async def test_local_store_rejects_non_images(tmp_path):
    store = LocalImageStore(tmp_path)

    image, error = await store.upload_image(b"definitely not an image", "fake.gif", owner_id=7)

    assert image is None
    assert error == AttachmentError(type=INVALID_IMAGE)
    assert not (tmp_path / "attachments").exists()


@pytest.mark.anyio
async def test_discard_removes_file_and_ignores_outside_paths(tmp_path):
    store = LocalImageStore(tmp_path / "media")
    image, _ = await store.upload_image(jpeg_bytes(), "cat.jpg", owner_id=1)
    outside = tmp_path / "keep.txt"
    outside.write_text("keep")

    await store.discard(image.path)
    await store.discard("../keep.txt")

    assert not (tmp_path / "media" / image.path).exists()
    assert outside.exists()


@pytest.mark.anyio
async def test_read_bounded_stops_past_limit():
    assert await read_bounded(make_upload(b"x" * 10), limit=10) == b"x" * 10
    assert await read_bounded(make_upload(b"x" * 11), limit=10) is None


@pytest.mark.anyio
async def test_ingest_rejects_oversized_upload(monkeypatch, tmp_path):
    monkeypatch.setattr(get_settings(), "max_upload_size", 16)

    image, error = await ingest_attachment(
        make_upload(jpeg_bytes()), "cat.jpg", 3, store=LocalImageStore(tmp_path)
    )

    assert image is None
    assert error.message == "File is too large."
    assert error.kind == ErrorKind.UPSTREAM
    assert error.path == "file"


@pytest.mark.anyio
async def test_ingest_maps_store_errors_to_messages(tmp_path):
    image, error = await ingest_attachment(
        make_upload(b"not an image", "notes.txt"), "notes.txt", 3, store=LocalImageStore(tmp_path)
    )

    assert image is None
    assert error.message == "You can only upload images for now."
    assert error.status_code == 403


@pytest.mark.parametrize(
    "error,message",
    [
        (AttachmentError(type=INVALID_IMAGE), "You can only upload images for now."),
        (AttachmentError(type="QUOTA"), "An unknown error has occurred (QUOTA)"),
        (AttachmentError(reason="Could not reach the file server."), "Could not reach the file server."),
        (AttachmentError(), "An unknown error has occurred"),
    ],
)
def test_describe_attachment_error(error, message):
    assert describe_attachment_error(error) == message


def cdn_store(handler) -> CdnImageStore:
    return CdnImageStore(
        "https://cdn.example.com/", "cdn-secret", 5.0, transport=httpx.MockTransport(handler)
    )


@pytest.mark.anyio
async def test_cdn_store_maps_success_reply():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200, json={"path": "attachments/4/abc.png", "dimensions": {"width": 640, "height": 480}}
        )

    image, error = await cdn_store(handler).upload_image(jpeg_bytes(), "cat.jpg", owner_id=4)

    assert error is None
    assert image == UploadedImage(path="attachments/4/abc.png", width=640, height=480)
    assert str(seen[0].url) == "https://cdn.example.com/attachments/4"
    assert seen[0].headers["Authorization"] == "cdn-secret"
    assert b'filename="cat.jpg"' in seen[0].content


@pytest.mark.anyio
async def test_cdn_store_tolerates_missing_dimensions():
    image, error = await cdn_store(
        lambda request: httpx.Response(201, json={"path": "attachments/4/abc.png"})
    ).upload_image(b"data", "cat.png", owner_id=4)

    assert error is None
    assert image == UploadedImage(path="attachments/4/abc.png")


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response,expected",
    [
        (httpx.Response(403, json={"type": INVALID_IMAGE}), AttachmentError(type=INVALID_IMAGE)),
        (httpx.Response(413, json={"message": "Too big."}), AttachmentError(reason="Too big.")),
        (
            httpx.Response(502, text="Bad Gateway"),
            AttachmentError(reason="File server responded with 502."),
        ),
    ],
)
async def test_cdn_store_maps_error_replies(response, expected):
    image, error = await cdn_store(lambda request: response).upload_image(b"data", "a.png", owner_id=1)

    assert image is None
    assert error == expected


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>ok</html>"),
        httpx.Response(200, json=["attachments/1/a.png"]),
        httpx.Response(200, json={"dimensions": {"width": 1, "height": 1}}),
        httpx.Response(200, json={"path": 42}),
        httpx.Response(200, json={"path": ""}),
    ],
)
async def test_cdn_store_rejects_malformed_success_replies(response):
    image, error = await cdn_store(lambda request: response).upload_image(b"data", "a.png", owner_id=1)

    assert image is None
    assert error == AttachmentError(reason="Invalid response from the file server.")


@pytest.mark.anyio
async def test_cdn_store_reports_unreachable_server():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    image, error = await cdn_store(handler).upload_image(b"data", "a.png", owner_id=1)

    assert image is None
    assert error == AttachmentError(reason="Could not reach the file server.")


@pytest.mark.anyio
async def test_ingest_surfaces_malformed_cdn_reply_as_upstream_error():
    before = attachment_failures_total.value("invalid_reply")
    store = cdn_store(lambda request: httpx.Response(200, text="<html>ok</html>"))

    image, error = await ingest_attachment(make_upload(jpeg_bytes()), "cat.jpg", 3, store=store)

    assert image is None
    assert error.message == "Invalid response from the file server."
    assert error.status_code == 403
    assert error.path == "file"
    assert attachment_failures_total.value("invalid_reply") == before + 1


@pytest.mark.anyio
async def test_cdn_discard_deletes_remote_file():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    await cdn_store(handler).discard("/attachments/4/abc.png")

    assert [(request.method, str(request.url)) for request in seen] == [
        ("DELETE", "https://cdn.example.com/attachments/4/abc.png")
    ]


@pytest.mark.parametrize(
    "error,label",
    [
        (AttachmentError(type=INVALID_IMAGE), "invalid_image"),
        (AttachmentError(type="QUOTA"), "rejected"),
        (AttachmentError(reason="Invalid response from the file server."), "invalid_reply"),
        (AttachmentError(reason="Disk on fire at 03:14"), "store_error"),
    ],
)
def test_failure_labels_are_fixed(error, label):
    assert failure_label(error) == label
