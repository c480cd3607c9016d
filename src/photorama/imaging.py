from __future__ import annotations

import io
from dataclasses import dataclass

from PIL import Image

from photorama.errors import DecodeError


@dataclass(frozen=True, slots=True)
class PhotoImage:
    photo_id: str
    data: bytes
    format: str
    width: int
    height: int


def decode_image(photo_id: str, data: bytes) -> PhotoImage:
    """Check that ``data`` is a readable image and describe it.

    The raw bytes are kept as received; nothing is re-encoded.
    """
    if not data:
        raise DecodeError(f"empty image payload for photo {photo_id}")

    try:
        with Image.open(io.BytesIO(data)) as img:
            image_format = img.format or "UNKNOWN"
            width, height = img.size
            img.verify()
    except (OSError, SyntaxError, ValueError) as exc:
        raise DecodeError(f"invalid image data for photo {photo_id}: {exc}") from exc

    return PhotoImage(
        photo_id=photo_id,
        data=data,
        format=image_format,
        width=width,
        height=height,
    )
