import base64
import binascii
import re
from io import BytesIO
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from ..models.domain_models import BoundingBox

_DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?;base64,(?P<data>.*)$", re.DOTALL)


class ImageProcessingError(Exception):
    """Raised when an image cannot be decoded or cropped."""
    pass


def to_base64(image_bytes: bytes) -> str:
    return base64.b64encode(image_bytes).decode("ascii")


def to_data_url(image_bytes: bytes, mime_type: str) -> str:
    """Builds a 'data:<mime>;base64,...' URL, the form reports keep their image in."""
    return f"data:{mime_type};base64,{to_base64(image_bytes)}"


def parse_data_url(data_url: str) -> Tuple[bytes, str]:
    """Splits a base64 data URL back into raw bytes and its mime type."""
    match = _DATA_URL_PATTERN.match(data_url or "")
    if not match:
        raise ImageProcessingError("Not a base64 data URL.")
    try:
        image_bytes = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageProcessingError("Data URL does not contain valid base64.") from e
    return image_bytes, match.group("mime") or "image/jpeg"


def crop_image(image_bytes: bytes, box: BoundingBox) -> Tuple[bytes, str]:
    """
    Cuts the normalized box out of the image. PNG sources stay PNG; anything
    else (JPEG, MPO from phone cameras, ...) is re-encoded as JPEG so the crop
    is always a type the recognition service accepts. Returns the cropped
    bytes and their mime type.
    """
    try:
        with Image.open(BytesIO(image_bytes)) as image:
            image.load()
            width, height = image.size
            left = min(round(box.left * width), width - 1)
            top = min(round(box.top * height), height - 1)
            right = max(round(box.right * width), left + 1)
            bottom = max(round(box.bottom * height), top + 1)
            cropped = image.crop((left, top, min(right, width), min(bottom, height)))
            is_png = image.format == "PNG"

        buffer = BytesIO()
        if is_png:
            cropped.save(buffer, format="PNG")
        else:
            if cropped.mode not in ("RGB", "L"):
                cropped = cropped.convert("RGB")
            cropped.save(buffer, format="JPEG", quality=90)
    except (UnidentifiedImageError, OSError, KeyError, ValueError) as e:
        raise ImageProcessingError("The captured image could not be decoded or cropped.") from e

    return buffer.getvalue(), "image/png" if is_png else "image/jpeg"
