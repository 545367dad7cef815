from __future__ import annotations

import base64
import binascii
from io import BytesIO

from PIL import Image

PNG_DATA_URL_PREFIX = "data:image/png;base64,"


def load_image_rgba(path: str) -> Image.Image:
    img = Image.open(path)
    # Convert to RGBA for consistent alpha work
    return img.convert("RGBA")


def load_image_bytes(data: bytes) -> Image.Image:
    img = Image.open(BytesIO(data))
    img.load()
    return img.convert("RGBA")


def save_image(path: str, img_rgba: Image.Image) -> None:
    # Saving as PNG preserves alpha
    img_rgba.save(path)


def encode_png_bytes(img: Image.Image) -> bytes:
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def encode_png_base64(img: Image.Image) -> str:
    return base64.b64encode(encode_png_bytes(img)).decode("ascii")


def encode_png_data_url(img: Image.Image) -> str:
    return PNG_DATA_URL_PREFIX + encode_png_base64(img)


def strip_data_url(value: str) -> str:
    """Return the base64 payload of a data URL, or the value itself when it is raw base64."""
    value = value.strip()
    if value.startswith("data:"):
        _, _, payload = value.partition(",")
        return payload
    return value


def decode_base64_image(value: str) -> bytes:
    try:
        return base64.b64decode(strip_data_url(value), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid base64 image data: {exc}") from exc


def decode_image_data(value: str) -> Image.Image:
    return load_image_bytes(decode_base64_image(value))
