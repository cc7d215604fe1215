"""Helpers for the image payloads clients and backends exchange.

Clients submit each image as a string that is one of:

- a data URI (``data:image/png;base64,...``), the form browsers produce with
  ``FileReader.readAsDataURL``;
- an ``http(s)://`` URL the backends can fetch themselves;
- bare base64 without the data URI header.

The vision API accepts data URIs and URLs, so bare base64 is wrapped as a PNG
data URI before it is sent.  Inline payloads the server stores are checked
with Pillow first (``verify_image``).
"""

from __future__ import annotations

import base64
import binascii
import io
import re

from PIL import Image

_DATA_URI_RE = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[\w.+-]+=[\w.+-]+)*)(?P<b64>;base64)?,(?P<data>.*)$",
    re.DOTALL,
)

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/heic": "heic",
    "image/bmp": "bmp",
}


def is_remote_url(value: str) -> bool:
    """Return ``True`` for ``http://`` and ``https://`` references."""
    return value.startswith(("http://", "https://"))


def is_data_uri(value: str) -> bool:
    """Return ``True`` for ``data:`` URIs."""
    return value.startswith("data:")


def as_image_url(value: str) -> str:
    """Normalise a client image payload into a URL a vision API accepts.

    Args:
        value: Data URI, remote URL, or bare base64 string.

    Returns:
        The value unchanged for data URIs and URLs, otherwise a PNG data URI
        wrapping the base64 payload.
    """
    value = value.strip()
    if is_data_uri(value) or is_remote_url(value):
        return value
    return f"data:image/png;base64,{value}"


def extension_for(mime_type: str | None) -> str:
    """Map a MIME type to a file extension (``png`` when unknown)."""
    if not mime_type:
        return "png"
    return _EXTENSIONS.get(mime_type.lower(), "png")


def decode_inline_image(value: str) -> tuple[bytes, str]:
    """Decode an inline (data URI or bare base64) image payload.

    Args:
        value: Data URI or bare base64 string.

    Returns:
        Tuple of ``(raw_bytes, file_extension)``.

    Raises:
        ValueError: If the payload is not valid base64 or the data URI is
            malformed.
    """
    value = value.strip()
    mime_type = None
    payload = value

    if is_data_uri(value):
        match = _DATA_URI_RE.match(value)
        if not match:
            raise ValueError("Malformed data URI")
        mime_type = match.group("mime")
        payload = match.group("data")
        if not match.group("b64"):
            # Percent-encoded data URIs are not produced by browsers for images.
            raise ValueError("Only base64 data URIs are supported")

    try:
        data = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image payload: {e}") from e

    if not data:
        raise ValueError("Image payload is empty")

    return data, extension_for(mime_type)


def verify_image(data: bytes) -> None:
    """Check that ``data`` is an image Pillow can decode.

    Raises:
        ValueError: If the bytes are not a readable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.verify()
    except (OSError, SyntaxError) as e:
        raise ValueError(f"Payload is not a readable image: {e}") from e


def to_png(data: bytes) -> bytes:
    """Re-encode image bytes as PNG.

    Result images arrive as PNG (DALL-E) or WebP/JPEG (Replicate models);
    storing them uniformly as ``result.png`` keeps session folders predictable.

    Args:
        data: Encoded image bytes in any format Pillow can read.

    Returns:
        PNG-encoded bytes.

    Raises:
        OSError: If Pillow cannot decode the input.
    """
    with Image.open(io.BytesIO(data)) as image:
        if image.mode not in ("RGB", "RGBA", "L", "LA", "P"):
            image = image.convert("RGBA")
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
    return buffer.getvalue()
