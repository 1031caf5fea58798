import io
import logging
from collections.abc import Iterable, Mapping
from functools import lru_cache

from PIL import Image, ImageColor, ImageDraw, ImageFont

from certgen.rendering.errors import RenderError
from certgen.rendering.fonts import find_raster_font_file
from certgen.rendering.scaling import ScaledPlaceholder

logger = logging.getLogger(__name__)

# Pillow anchors: horizontal from text_align, vertical "a" pins the ascender
# line (top of the line box) to y.
_HORIZONTAL_ANCHORS = {"left": "l", "center": "m", "right": "r"}


@lru_cache(maxsize=128)
def _load_font(path: str | None, size: float) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    if path:
        return ImageFont.truetype(path, size)
    return ImageFont.load_default(size=size)


def parse_color(value: str | None) -> tuple[int, int, int]:
    try:
        return ImageColor.getrgb(value or "#000000")[:3]
    except ValueError:
        logger.warning("Invalid color %r, using black", value)
        return (0, 0, 0)


def anchor_for(text_align: str | None) -> str:
    return _HORIZONTAL_ANCHORS.get(text_align or "left", "l") + "a"


def render_png(
    background: Image.Image,
    placeholders: Iterable[ScaledPlaceholder],
    values: Mapping[str, str | None],
    font_dirs: Iterable[str] = (),
) -> bytes:
    """Draw placeholder values over the template and return PNG bytes.

    ``background`` must already be sized to the template's true dimensions.
    Placeholders whose value is missing or empty are skipped.
    """
    font_dirs = tuple(font_dirs)
    canvas = background.convert("RGBA")
    draw = ImageDraw.Draw(canvas)

    try:
        for placeholder in placeholders:
            text = values.get(placeholder.type)
            if not text:
                continue
            path = find_raster_font_file(
                placeholder.font_family, placeholder.font_weight, placeholder.font_style, font_dirs
            )
            font = _load_font(path, max(1.0, placeholder.font_size))
            draw.text(
                (placeholder.x, placeholder.y),
                str(text),
                font=font,
                fill=parse_color(placeholder.color),
                anchor=anchor_for(placeholder.text_align),
            )

        buffer = io.BytesIO()
        canvas.save(buffer, format="PNG")
    except (OSError, ValueError) as exc:
        raise RenderError(f"PNG rendering failed: {exc}") from exc
    return buffer.getvalue()
