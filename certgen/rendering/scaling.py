"""Map placeholder geometry from editor display space into template pixel space.

The template editor shows the template scaled to fit a browser container and
records placeholder positions in that container's CSS pixels. Every renderer
works in the template's true pixel space, so both the raster and the vector
renderer go through :func:`scale_placeholders` with the same
:class:`ScaleFactors`.

Font size follows the horizontal factor, like the x coordinate. For templates
whose preview keeps the aspect ratio the two factors are equal anyway.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_CONTAINER_WIDTH = 800
DEFAULT_FONT_SIZE = 24
DEFAULT_FONT_FAMILY = "Arial"
DEFAULT_COLOR = "#000000"


@dataclass(frozen=True)
class ScaleFactors:
    scale_x: float
    scale_y: float
    container_width: float
    container_height: float


@dataclass(frozen=True)
class ScaledPlaceholder:
    """A placeholder positioned in template pixel space, ready to draw."""

    type: str
    x: float
    y: float
    font_size: float
    font_family: str = DEFAULT_FONT_FAMILY
    color: str = DEFAULT_COLOR
    font_weight: str = "normal"
    font_style: str = "normal"
    text_align: str = "left"
    rotation: float = 0


def _positive(value) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def resolve_container(
    actual_width: float,
    actual_height: float,
    container: Mapping | None = None,
    default_width: float = DEFAULT_CONTAINER_WIDTH,
) -> tuple[float, float]:
    """Return the (width, height) of the editor container.

    A missing or non-positive width falls back to ``default_width``. A missing
    height is derived from the (resolved) width and the template aspect ratio.
    """
    container = container or {}
    width = _positive(container.get("width")) or float(default_width)
    height = _positive(container.get("height"))
    if height is None:
        height = width * actual_height / actual_width
    return width, height


def compute_scale(
    actual_width: float,
    actual_height: float,
    container: Mapping | None = None,
    default_width: float = DEFAULT_CONTAINER_WIDTH,
) -> ScaleFactors:
    if _positive(actual_width) is None or _positive(actual_height) is None:
        raise ValueError(
            f"Template dimensions must be positive, got {actual_width}x{actual_height}"
        )
    width, height = resolve_container(actual_width, actual_height, container, default_width)
    factors = ScaleFactors(
        scale_x=actual_width / width,
        scale_y=actual_height / height,
        container_width=width,
        container_height=height,
    )
    logger.debug(
        "Scale %sx%s -> %sx%s: x=%.4f y=%.4f",
        width, height, actual_width, actual_height, factors.scale_x, factors.scale_y,
    )
    return factors


def scale_placeholder(placeholder: Mapping, factors: ScaleFactors) -> ScaledPlaceholder:
    font_size = _positive(placeholder.get("font_size")) or DEFAULT_FONT_SIZE
    return ScaledPlaceholder(
        type=placeholder["type"],
        x=float(placeholder.get("x") or 0) * factors.scale_x,
        y=float(placeholder.get("y") or 0) * factors.scale_y,
        font_size=font_size * factors.scale_x,
        font_family=placeholder.get("font_family") or DEFAULT_FONT_FAMILY,
        color=placeholder.get("color") or DEFAULT_COLOR,
        font_weight=str(placeholder.get("font_weight") or "normal"),
        font_style=placeholder.get("font_style") or "normal",
        text_align=placeholder.get("text_align") or "left",
        rotation=float(placeholder.get("rotation") or 0),
    )


def scale_placeholders(
    placeholders: Iterable[Mapping], factors: ScaleFactors
) -> list[ScaledPlaceholder]:
    placeholders = list(placeholders)
    scaled = [scale_placeholder(p, factors) for p in placeholders]
    for original, result in zip(placeholders, scaled):
        logger.debug(
            "Placeholder %s: (%s, %s) -> (%.2f, %.2f) size %.2f",
            result.type, original.get("x"), original.get("y"), result.x, result.y, result.font_size,
        )
    return scaled
