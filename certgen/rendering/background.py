import logging
import os

import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError

from certgen.rendering.errors import TemplateDecodeError

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


def is_pdf(path: str, mime_type: str | None = None) -> bool:
    return mime_type == PDF_MIME_TYPE or path.lower().endswith(".pdf")


def _rasterize_pdf(path: str, width: int, height: int) -> Image.Image:
    try:
        with fitz.open(path) as doc:
            if doc.page_count == 0:
                raise TemplateDecodeError(f"PDF template has no pages: {path}")
            page = doc[0]
            matrix = fitz.Matrix(width / page.rect.width, height / page.rect.height)
            pix = page.get_pixmap(matrix=matrix, alpha=False)
            return Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
    except TemplateDecodeError:
        raise
    except Exception as exc:  # PyMuPDF errors do not share a base class
        raise TemplateDecodeError(f"Could not rasterize PDF template {path}: {exc}") from exc


def _open_image(path: str) -> Image.Image:
    try:
        with Image.open(path) as img:
            img.load()
            if img.mode in ("RGB", "RGBA"):
                return img.copy()
            has_alpha = img.mode in ("LA", "PA") or "transparency" in img.info
            return img.convert("RGBA" if has_alpha else "RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise TemplateDecodeError(f"Could not decode template image {path}: {exc}") from exc


def load_background(
    path: str,
    mime_type: str | None,
    width: int,
    height: int,
    scale: float = 1.0,
) -> Image.Image:
    """Decode a template asset into an image of exactly ``width*scale`` x ``height*scale``.

    The declared template dimensions are authoritative: assets that decode to
    a different size are resized to match.
    """
    if not os.path.isfile(path):
        raise TemplateDecodeError(f"Template file not found: {path}")

    target = (max(1, round(width * scale)), max(1, round(height * scale)))
    if is_pdf(path, mime_type):
        img = _rasterize_pdf(path, *target)
    else:
        img = _open_image(path)

    if img.size != target:
        logger.debug("Resizing template %s from %s to %s", path, img.size, target)
        img = img.resize(target, Image.LANCZOS)
    return img
