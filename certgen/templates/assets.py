import logging
import os
import secrets
import time

import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError

from certgen.config import settings
from certgen.rendering.background import is_pdf

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/bmp",
    "image/webp",
    "image/tiff",
    "image/tif",
    "application/pdf",
}

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/bmp": ".bmp",
    "image/webp": ".webp",
    "image/tiff": ".tiff",
    "image/tif": ".tiff",
    "application/pdf": ".pdf",
}

FALLBACK_DIMENSIONS = (800, 600)


class TemplateTooLargeError(ValueError):
    """Image exceeds Pillow's decompression bomb limit."""


def probe_dimensions(path: str, mime_type: str | None = None) -> tuple[int, int]:
    """Read the true pixel size of a template asset.

    PDF templates use the first page size in points. Anything that cannot be
    probed falls back to 800x600 so the upload still succeeds, except images
    too large to decode, which raise TemplateTooLargeError.
    """
    if is_pdf(path, mime_type):
        try:
            with fitz.open(path) as doc:
                rect = doc[0].rect
                return round(rect.width), round(rect.height)
        except Exception as exc:  # PyMuPDF errors do not share a base class
            logger.warning("Could not read PDF dimensions of %s, using fallback: %s", path, exc)
            return FALLBACK_DIMENSIONS

    try:
        with Image.open(path) as img:
            return img.size
    except Image.DecompressionBombError as exc:
        raise TemplateTooLargeError(str(exc)) from exc
    except (UnidentifiedImageError, OSError) as exc:
        logger.warning("Could not read image dimensions of %s, using fallback: %s", path, exc)
    return FALLBACK_DIMENSIONS


def stored_filename(original_name: str | None, mime_type: str) -> str:
    ext = os.path.splitext(original_name or "")[1].lower() or _EXTENSIONS.get(mime_type, "")
    return f"template-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"


def save_upload(content: bytes, original_name: str | None, mime_type: str) -> tuple[str, str]:
    """Write an uploaded template to disk; returns (filename, path)."""
    upload_dir = settings.template_upload_dir
    os.makedirs(upload_dir, exist_ok=True)
    filename = stored_filename(original_name, mime_type)
    path = os.path.join(upload_dir, filename)
    with open(path, "wb") as f:
        f.write(content)
    return filename, path


def remove_asset(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove template file %s: %s", path, exc)
