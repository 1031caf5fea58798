"""Font substitution shared by the raster and the vector renderer.

The editor lets admins pick from a long list of web font families, but neither
renderer ships those faces. Every family is mapped to one semantic category and
each category owns a single :class:`FontFace` record holding the raster face
(a TrueType file Pillow can load) and the vector face (a PDF core font) side by
side, so the two outputs always substitute within the same category.
"""

import enum
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from functools import lru_cache

logger = logging.getLogger(__name__)


class FontCategory(str, enum.Enum):
    SANS = "sans"
    SERIF = "serif"
    MONO = "mono"
    DISPLAY = "display"


@dataclass(frozen=True)
class FontFace:
    category: FontCategory
    raster_name: str
    # style key -> candidate file names, first match wins
    raster_files: dict[str, tuple[str, ...]]
    vector_family: str
    # Ascender as a fraction of the font size, from the metric-compatible TTF.
    # Used to turn "top of line box" into a PDF baseline.
    ascent: float


_SANS_FILES = {
    "regular": ("LiberationSans-Regular.ttf", "Arial.ttf", "arial.ttf", "DejaVuSans.ttf"),
    "bold": ("LiberationSans-Bold.ttf", "Arial Bold.ttf", "arialbd.ttf", "DejaVuSans-Bold.ttf"),
    "italic": ("LiberationSans-Italic.ttf", "Arial Italic.ttf", "ariali.ttf", "DejaVuSans-Oblique.ttf"),
    "bold_italic": (
        "LiberationSans-BoldItalic.ttf", "Arial Bold Italic.ttf", "arialbi.ttf", "DejaVuSans-BoldOblique.ttf",
    ),
}

_SERIF_FILES = {
    "regular": ("LiberationSerif-Regular.ttf", "Times New Roman.ttf", "times.ttf", "DejaVuSerif.ttf"),
    "bold": ("LiberationSerif-Bold.ttf", "Times New Roman Bold.ttf", "timesbd.ttf", "DejaVuSerif-Bold.ttf"),
    "italic": (
        "LiberationSerif-Italic.ttf", "Times New Roman Italic.ttf", "timesi.ttf", "DejaVuSerif-Italic.ttf",
    ),
    "bold_italic": (
        "LiberationSerif-BoldItalic.ttf",
        "Times New Roman Bold Italic.ttf",
        "timesbi.ttf",
        "DejaVuSerif-BoldItalic.ttf",
    ),
}

_MONO_FILES = {
    "regular": ("LiberationMono-Regular.ttf", "Courier New.ttf", "cour.ttf", "DejaVuSansMono.ttf"),
    "bold": ("LiberationMono-Bold.ttf", "Courier New Bold.ttf", "courbd.ttf", "DejaVuSansMono-Bold.ttf"),
    "italic": (
        "LiberationMono-Italic.ttf", "Courier New Italic.ttf", "couri.ttf", "DejaVuSansMono-Oblique.ttf",
    ),
    "bold_italic": (
        "LiberationMono-BoldItalic.ttf",
        "Courier New Bold Italic.ttf",
        "courbi.ttf",
        "DejaVuSansMono-BoldOblique.ttf",
    ),
}

FACES: dict[FontCategory, FontFace] = {
    FontCategory.SANS: FontFace(FontCategory.SANS, "Arial", _SANS_FILES, "helvetica", 0.905),
    FontCategory.SERIF: FontFace(FontCategory.SERIF, "Times New Roman", _SERIF_FILES, "times", 0.891),
    FontCategory.MONO: FontFace(FontCategory.MONO, "Courier New", _MONO_FILES, "courier", 0.833),
    # Script and display faces have no close built-in match; they render as sans.
    FontCategory.DISPLAY: FontFace(FontCategory.DISPLAY, "Arial", _SANS_FILES, "helvetica", 0.905),
}

_FAMILIES: dict[FontCategory, tuple[str, ...]] = {
    FontCategory.SANS: (
        "Arial", "Helvetica", "Verdana", "Calibri", "Tahoma", "Geneva", "Lucida Sans",
        "Trebuchet MS", "Century Gothic", "Franklin Gothic Medium", "Segoe UI",
        "Inter", "Roboto", "Open Sans", "Lato", "Montserrat", "Source Sans Pro", "Raleway",
        "Ubuntu", "Nunito", "Poppins", "Oswald", "Mukti", "Fira Sans", "PT Sans", "Dosis",
        "Quicksand", "Work Sans", "Rubik", "Barlow", "Oxygen",
    ),
    FontCategory.SERIF: (
        "Times New Roman", "Times", "Georgia", "Book Antiqua", "Palatino", "Garamond",
        "Baskerville", "Cambria", "Minion Pro", "Caslon",
        "Playfair Display", "Merriweather", "Lora", "PT Serif", "Crimson Text",
        "Libre Baskerville", "Source Serif Pro", "Cormorant Garamond", "EB Garamond",
        "Vollkorn", "Bitter", "Arvo", "Rokkitt", "Alegreya", "Cardo",
    ),
    FontCategory.MONO: (
        "Courier New", "Courier", "Monaco", "Consolas", "Lucida Console",
        "Fira Code", "Source Code Pro", "JetBrains Mono", "Roboto Mono", "Ubuntu Mono",
        "Space Mono", "Inconsolata", "Anonymous Pro",
    ),
    FontCategory.DISPLAY: (
        "Impact", "Bebas Neue", "Dancing Script", "Pacifico", "Lobster", "Righteous",
        "Fredoka One", "Comfortaa", "Kalam", "Caveat", "Satisfy", "Great Vibes",
        "Amatic SC", "Bangers",
    ),
}

FAMILY_CATEGORIES: dict[str, FontCategory] = {
    family.lower(): category
    for category, families in _FAMILIES.items()
    for family in families
}

FONT_CHOICES: list[dict[str, str]] = [
    {"family": family, "category": category.value}
    for category, families in _FAMILIES.items()
    for family in families
]


def category_for(family: str | None) -> FontCategory:
    if not family:
        return FontCategory.SANS
    # CSS stacks such as "'Open Sans', sans-serif" carry the real family first
    primary = family.split(",")[0].strip().strip("'\"").lower()
    return FAMILY_CATEGORIES.get(primary, FontCategory.SANS)


def face_for(family: str | None) -> FontFace:
    return FACES[category_for(family)]


def raster_font_name(family: str | None) -> str:
    return face_for(family).raster_name


def vector_font_name(family: str | None) -> str:
    return face_for(family).vector_family


def is_bold(weight) -> bool:
    if weight is None:
        return False
    value = str(weight).strip().lower()
    if value in ("bold", "bolder"):
        return True
    return value.isdigit() and int(value) >= 600


def is_italic(style: str | None) -> bool:
    return (style or "").lower() in ("italic", "oblique")


def style_key(weight, style) -> str:
    bold, italic = is_bold(weight), is_italic(style)
    if bold and italic:
        return "bold_italic"
    if bold:
        return "bold"
    if italic:
        return "italic"
    return "regular"


def vector_style(weight, style) -> str:
    """fpdf2 style string: "", "B", "I" or "BI"."""
    return ("B" if is_bold(weight) else "") + ("I" if is_italic(style) else "")


@lru_cache(maxsize=256)
def _locate(filenames: tuple[str, ...], font_dirs: tuple[str, ...]) -> str | None:
    for name in filenames:
        for directory in font_dirs:
            path = os.path.join(directory, name)
            if os.path.isfile(path):
                return path
    return None


def find_raster_font_file(family: str | None, weight, style, font_dirs: Iterable[str]) -> str | None:
    """Locate a TrueType file for the family's category, honouring weight and style.

    Falls back to the regular face of the category when the styled file is
    missing. Returns None when nothing is installed.
    """
    face = face_for(family)
    dirs = tuple(font_dirs)
    key = style_key(weight, style)
    path = _locate(face.raster_files[key], dirs)
    if path is None and key != "regular":
        path = _locate(face.raster_files["regular"], dirs)
    if path is None:
        logger.warning("No TrueType file found for %s (%s) in %s", face.raster_name, key, dirs)
    return path
