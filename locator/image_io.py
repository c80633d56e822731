"""
Upload intake: turn an uploaded file into an ImagePayload.

Files are checked with Pillow before anything is sent to the model, and
optionally downscaled so very large photos do not bloat the request.
"""

import io
import base64
import logging
from typing import Any, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .errors import FileReadError
from .models import ImagePayload

logger = logging.getLogger(__name__)

DEFAULT_MAX_DIMENSION = 2000


def detect_mime_type(declared: Optional[str], img: Image.Image) -> str:
    """Prefer the browser's declared image type, fall back to Pillow's format."""
    if declared and declared.startswith("image/"):
        return declared
    return Image.MIME.get(img.format or "", "image/jpeg")


def is_passthrough_type(declared: Optional[str]) -> bool:
    """
    True for declared image types Pillow has no decoder for (image/heic,
    image/heif, ...). Types Pillow does know must decode locally.
    """
    if not declared or not declared.startswith("image/"):
        return False
    Image.init()
    return declared.lower() not in {mime.lower() for mime in Image.MIME.values()}


def downscale_image(img: Image.Image, max_size: int) -> Tuple[bytes, str]:
    """
    Resize so the longer side is at most max_size and re-encode.

    Returns:
        Tuple of (encoded_bytes, mime_type)
    """
    ratio = max_size / max(img.size)
    new_size = (max(1, int(img.width * ratio)), max(1, int(img.height * ratio)))
    img = img.resize(new_size, Image.Resampling.LANCZOS)

    # PNG keeps transparency, JPEG for everything else
    if img.mode in ("RGBA", "LA", "P"):
        img_format = "PNG"
        if img.mode == "P":
            img = img.convert("RGBA")
    else:
        img_format = "JPEG"
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")

    save_kwargs: dict[str, Any] = {"format": img_format}
    if img_format == "JPEG":
        save_kwargs["quality"] = 92

    buffer = io.BytesIO()
    img.save(buffer, **save_kwargs)
    return buffer.getvalue(), Image.MIME[img_format]


def load_image_payload(
    content: bytes,
    filename: str = "",
    declared_mime: Optional[str] = None,
    max_size: int = DEFAULT_MAX_DIMENSION,
) -> ImagePayload:
    """
    Validate raw upload bytes and encode them for the model.

    Args:
        content: Raw file bytes
        filename: Original filename, for logging
        declared_mime: Media type reported by the browser
        max_size: Downscale threshold for the longer side; 0 disables

    Raises:
        FileReadError: empty file or not a readable image
    """
    if not content:
        raise FileReadError(f"Empty file: {filename or '<unnamed>'}")

    try:
        with Image.open(io.BytesIO(content)) as check:
            check.verify()
        # verify() leaves the image unusable; reopen for size and pixels
        img = Image.open(io.BytesIO(content))
    except UnidentifiedImageError as e:
        if not is_passthrough_type(declared_mime):
            raise FileReadError(f"Error loading {filename or '<unnamed>'}: {e}") from e
        # HEIC and friends: the model decodes them, so send the bytes as they are
        logger.info(f"Sending {filename or '<unnamed>'} ({declared_mime}) without local decoding")
        return ImagePayload(
            data=base64.b64encode(content).decode("utf-8"),
            mime_type=declared_mime,
            filename=filename,
        )
    except (OSError, SyntaxError) as e:
        raise FileReadError(f"Error loading {filename or '<unnamed>'}: {e}") from e

    mime_type = detect_mime_type(declared_mime, img)

    if max_size and max(img.size) > max_size:
        try:
            content, mime_type = downscale_image(img, max_size)
        except OSError as e:
            raise FileReadError(f"Error resizing {filename or '<unnamed>'}: {e}") from e
        logger.debug(f"Downscaled {filename} to fit {max_size}px")

    return ImagePayload(
        data=base64.b64encode(content).decode("utf-8"),
        mime_type=mime_type,
        filename=filename,
    )


def read_upload(upload: Any, max_size: int = DEFAULT_MAX_DIMENSION) -> ImagePayload:
    """
    Read a werkzeug FileStorage (or anything with read/filename/mimetype).

    Raises:
        FileReadError: the file could not be read or is not an image
    """
    filename = getattr(upload, "filename", "") or ""
    try:
        content = upload.read()
    except OSError as e:
        raise FileReadError(f"Error reading {filename or '<unnamed>'}: {e}") from e

    return load_image_payload(
        content,
        filename=filename,
        declared_mime=getattr(upload, "mimetype", None),
        max_size=max_size,
    )
