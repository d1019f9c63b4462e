from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from PIL import ImageFont
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.pdfmetrics import stringWidth

logger = logging.getLogger("atomcerts.render")

SANS = "sans"
SERIF = "serif"
MONO = "mono"

# Families the editor offers, plus common CSS names seen in stored templates.
FAMILY_ALIASES: dict[str, str] = {
    "sans-serif": SANS,
    "sans": SANS,
    "arial": SANS,
    "helvetica": SANS,
    "helvetica neue": SANS,
    "inter": SANS,
    "roboto": SANS,
    "open sans": SANS,
    "verdana": SANS,
    "tahoma": SANS,
    "segoe ui": SANS,
    "system-ui": SANS,
    "serif": SERIF,
    "times": SERIF,
    "times new roman": SERIF,
    "times-roman": SERIF,
    "georgia": SERIF,
    "garamond": SERIF,
    "playfair display": SERIF,
    "merriweather": SERIF,
    "cursive": SERIF,
    "monospace": MONO,
    "mono": MONO,
    "courier": MONO,
    "courier new": MONO,
    "consolas": MONO,
    "menlo": MONO,
}

_PDF_FONT_NAMES: dict[tuple[str, bool, bool], str] = {
    (SANS, False, False): "Helvetica",
    (SANS, True, False): "Helvetica-Bold",
    (SANS, False, True): "Helvetica-Oblique",
    (SANS, True, True): "Helvetica-BoldOblique",
    (SERIF, False, False): "Times-Roman",
    (SERIF, True, False): "Times-Bold",
    (SERIF, False, True): "Times-Italic",
    (SERIF, True, True): "Times-BoldItalic",
    (MONO, False, False): "Courier",
    (MONO, True, False): "Courier-Bold",
    (MONO, False, True): "Courier-Oblique",
    (MONO, True, True): "Courier-BoldOblique",
}

_CSS_STACKS: dict[str, str] = {
    SANS: "Helvetica, Arial, sans-serif",
    SERIF: "'Times New Roman', Times, serif",
    MONO: "'Courier New', Courier, monospace",
}

_FONT_DIR = "/usr/share/fonts/truetype/dejavu"
_FONT_PATHS: dict[str, str] = {
    "Helvetica": f"{_FONT_DIR}/DejaVuSans.ttf",
    "Helvetica-Bold": f"{_FONT_DIR}/DejaVuSans-Bold.ttf",
    "Helvetica-Oblique": f"{_FONT_DIR}/DejaVuSans-Oblique.ttf",
    "Helvetica-BoldOblique": f"{_FONT_DIR}/DejaVuSans-BoldOblique.ttf",
    "Times-Roman": f"{_FONT_DIR}/DejaVuSerif.ttf",
    "Times-Bold": f"{_FONT_DIR}/DejaVuSerif-Bold.ttf",
    "Times-Italic": f"{_FONT_DIR}/DejaVuSerif-Italic.ttf",
    "Times-BoldItalic": f"{_FONT_DIR}/DejaVuSerif-BoldItalic.ttf",
    "Courier": f"{_FONT_DIR}/DejaVuSansMono.ttf",
    "Courier-Bold": f"{_FONT_DIR}/DejaVuSansMono-Bold.ttf",
    "Courier-Oblique": f"{_FONT_DIR}/DejaVuSansMono-Oblique.ttf",
    "Courier-BoldOblique": f"{_FONT_DIR}/DejaVuSansMono-BoldOblique.ttf",
}
_DEFAULT_FONT_PATH = f"{_FONT_DIR}/DejaVuSans.ttf"

_BOLD_WEIGHTS = {"bold", "bolder"}


@dataclass(frozen=True)
class FontSpec:
    family: str = SANS
    bold: bool = False
    italic: bool = False

    @property
    def pdf_name(self) -> str:
        return _PDF_FONT_NAMES[(self.family, self.bold, self.italic)]

    @property
    def css_family(self) -> str:
        return _CSS_STACKS[self.family]


def map_family(requested: str | None) -> str:
    """Map a CSS ``font-family`` list onto one of the supported families."""
    for candidate in (requested or "").split(","):
        name = candidate.strip().strip("'\"").lower()
        if name in FAMILY_ALIASES:
            return FAMILY_ALIASES[name]
    return SANS


def is_bold(weight: str | None) -> bool:
    value = (weight or "").strip().lower()
    if value in _BOLD_WEIGHTS:
        return True
    try:
        return int(value) >= 600
    except ValueError:
        return False


def font_spec(family: str | None, weight: str | None, style: str | None) -> FontSpec:
    italic = (style or "").strip().lower() in {"italic", "oblique"}
    return FontSpec(family=map_family(family), bold=is_bold(weight), italic=italic)


@lru_cache(maxsize=256)
def load_truetype(pdf_name: str, size_px: int):
    """Load the raster face for a PDF font name, falling back to the default."""
    size_px = max(size_px, 1)
    path = _FONT_PATHS.get(pdf_name, _DEFAULT_FONT_PATH)
    try:
        return ImageFont.truetype(path, size_px)
    except OSError:
        if path != _DEFAULT_FONT_PATH:
            logger.warning(
                "[render-font-fallback] %s unavailable at %s; using default face",
                pdf_name,
                path,
            )
        try:
            return ImageFont.truetype(_DEFAULT_FONT_PATH, size_px)
        except OSError:
            return ImageFont.load_default(size=size_px)


class PdfFontMetrics:
    """Text metrics from the standard Type-1 font tables bundled with reportlab."""

    name = "pdf"

    def width(self, text: str, font: FontSpec, size: float) -> float:
        if not text:
            return 0.0
        return stringWidth(text, font.pdf_name, size)

    def ascent(self, font: FontSpec, size: float) -> float:
        return pdfmetrics.getAscent(font.pdf_name, size)


class RasterFontMetrics:
    """Text metrics from the faces the raster backend actually draws with."""

    name = "raster"

    def __init__(self, scale: float = 1.0):
        self.scale = scale if scale > 0 else 1.0

    def _face(self, font: FontSpec, size: float):
        return load_truetype(font.pdf_name, int(round(size * self.scale)))

    def width(self, text: str, font: FontSpec, size: float) -> float:
        if not text:
            return 0.0
        return self._face(font, size).getlength(text) / self.scale

    def ascent(self, font: FontSpec, size: float) -> float:
        face = self._face(font, size)
        if hasattr(face, "getmetrics"):
            return face.getmetrics()[0] / self.scale
        return size * 0.8
