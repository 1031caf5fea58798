import logging
from collections.abc import Iterable, Mapping

from fpdf import FPDF
from fpdf.errors import FPDFException
from PIL import Image

from certgen.rendering.errors import RenderError
from certgen.rendering.fonts import face_for, vector_style
from certgen.rendering.raster import parse_color
from certgen.rendering.scaling import ScaledPlaceholder

logger = logging.getLogger(__name__)


class CertificatePDF(FPDF):
    """Single-page PDF sized to the template, one point per template pixel."""

    def __init__(self, width: float, height: float):
        super().__init__(orientation="P", unit="pt", format=(width, height))
        self.set_margins(0, 0, 0)
        self.set_auto_page_break(auto=False)
        self.set_creator("certgen")


def _core_font_text(text: str) -> str:
    # PDF core fonts only cover latin-1
    encoded = text.encode("latin-1", "replace").decode("latin-1")
    if encoded != text:
        logger.warning("Replaced characters outside latin-1 in PDF text %r", text)
    return encoded


def aligned_x(x: float, text_width: float, text_align: str | None) -> float:
    if text_align == "center":
        return x - text_width / 2
    if text_align == "right":
        return x - text_width
    return x


def baseline_y(y: float, font_size: float, ascent: float) -> float:
    """Convert a top-of-line-box y into the baseline fpdf2 draws text on."""
    return y + ascent * font_size


def render_pdf(
    background: Image.Image,
    width: float,
    height: float,
    placeholders: Iterable[ScaledPlaceholder],
    values: Mapping[str, str | None],
) -> bytes:
    """Draw placeholder values over the template and return PDF bytes.

    The background may be larger than ``width`` x ``height`` (oversampled PDF
    templates); it is always stretched over the full page.
    """
    try:
        pdf = CertificatePDF(width, height)
        pdf.add_page()
        pdf.image(background, x=0, y=0, w=width, h=height)

        for placeholder in placeholders:
            text = values.get(placeholder.type)
            if not text:
                continue
            face = face_for(placeholder.font_family)
            pdf.set_font(
                face.vector_family,
                style=vector_style(placeholder.font_weight, placeholder.font_style),
                size=placeholder.font_size,
            )
            pdf.set_text_color(*parse_color(placeholder.color))
            text = _core_font_text(str(text))
            x = aligned_x(placeholder.x, pdf.get_string_width(text), placeholder.text_align)
            pdf.text(x, baseline_y(placeholder.y, placeholder.font_size, face.ascent), text)

        return bytes(pdf.output())
    except (FPDFException, OSError, ValueError) as exc:
        raise RenderError(f"PDF rendering failed: {exc}") from exc
