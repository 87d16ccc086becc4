"""Base64 image uploads through the configured storage backend."""

import base64
import binascii
import re
import uuid
from typing import Any

from app.core.config import get_settings
from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.models.user import User
from app.storage.base import get_storage

log = get_logger(__name__)

CONTENT_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}
_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.+)$", re.DOTALL)


def decode_image(image: str) -> tuple[bytes, str]:
    """Accept a data URL or bare base64; return (bytes, content_type)."""
    if not image or not image.strip():
        raise BadRequestError("No image data provided")
    content_type = "image/jpeg"
    payload = image.strip()
    match = _DATA_URL_RE.match(payload)
    if match:
        content_type = match.group("mime").lower()
        payload = match.group("data")
    if content_type not in CONTENT_TYPES:
        raise BadRequestError("Unsupported image type")
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise BadRequestError("Invalid image data") from e
    if not raw:
        raise BadRequestError("No image data provided")
    if len(raw) > get_settings().max_upload_bytes:
        raise BadRequestError("Image too large")
    return raw, content_type


async def upload_image(user: User, image: str) -> dict[str, Any]:
    raw, content_type = decode_image(image)
    image_id = uuid.uuid4().hex
    filename = f"property-image-{image_id}.{CONTENT_TYPES[content_type]}"
    url = await get_storage().put(f"{user.id}/{filename}", raw, content_type=content_type)
    log.info("image_uploaded", image_id=image_id, size=len(raw))
    return {"url": url, "id": image_id, "filename": filename}
