import base64
from types import SimpleNamespace

import pytest

from app.core.config import get_settings
from app.core.exceptions import BadRequestError
from app.services import uploads as uploads_service

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def test_decode_data_url():
    image = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
    raw, content_type = uploads_service.decode_image(image)
    assert raw == PNG_BYTES
    assert content_type == "image/png"


def test_decode_bare_base64_defaults_to_jpeg():
    raw, content_type = uploads_service.decode_image(base64.b64encode(b"jpegdata").decode())
    assert raw == b"jpegdata"
    assert content_type == "image/jpeg"


@pytest.mark.parametrize(
    "image, message",
    [
        ("", "No image data provided"),
        ("data:application/pdf;base64,AAAA", "Unsupported image type"),
        ("data:image/png;base64,@@not base64@@", "Invalid image data"),
    ],
)
def test_decode_rejects(image, message):
    with pytest.raises(BadRequestError) as exc:
        uploads_service.decode_image(image)
    assert exc.value.message == message


def test_decode_too_large(monkeypatch):
    monkeypatch.setattr(get_settings(), "max_upload_bytes", 4)
    with pytest.raises(BadRequestError) as exc:
        uploads_service.decode_image(base64.b64encode(b"12345").decode())
    assert exc.value.message == "Image too large"


@pytest.mark.asyncio
async def test_upload_image_writes_local_file(tmp_path, monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "storage_local_path", str(tmp_path))
    monkeypatch.setattr(settings, "storage_public_url", "http://test/uploads")
    user = SimpleNamespace(id="65f000000000000000000001")

    out = await uploads_service.upload_image(user, "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode())
    assert out["filename"].endswith(".png")
    assert out["url"] == f"http://test/uploads/{user.id}/{out['filename']}"
    assert (tmp_path / user.id / out["filename"]).read_bytes() == PNG_BYTES
