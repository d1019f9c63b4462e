"""Serializers from a composed :class:`Page` to concrete bytes.

``pdf`` (raster, then embedded) is the default because it is the only output
that matches the editor preview pixel for pixel. ``vector-pdf`` keeps text
selectable and files small, at the cost of using the standard PDF fonts'
metrics instead of the editor's.
"""

from __future__ import annotations

import base64
from io import BytesIO

from jinja2 import Environment
from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from ..shared.fonts import PdfFontMetrics, RasterFontMetrics
from ..shared.template_model import Color
from .compositor import Page
from .elements import DrawImage, FillRect, Rule, StrokeRect, TextRun
from .raster import DEFAULT_SCALE, rasterize

# CSS px are 1/96 in, PDF points 1/72 in.
PX_TO_PT = 72.0 / 96.0

DEFAULT_FORMAT = "pdf"


class UnknownFormatError(ValueError):
    """Raised when a caller asks for an output format nobody serializes."""


class OutputAdapter:
    name = ""
    media_type = "application/octet-stream"
    extension = "bin"

    def __init__(self, scale: float = DEFAULT_SCALE):
        self.scale = scale if scale > 0 else DEFAULT_SCALE

    @property
    def metrics(self):
        return PdfFontMetrics()

    def serialize(self, page: Page) -> bytes:
        raise NotImplementedError


class RasterImageAdapter(OutputAdapter):
    def __init__(self, image_format: str = "PNG", scale: float = DEFAULT_SCALE, quality: int = 92):
        super().__init__(scale)
        self.image_format = image_format.upper()
        self.quality = quality
        if self.image_format == "JPEG":
            self.name, self.media_type, self.extension = "jpeg", "image/jpeg", "jpg"
        else:
            self.name, self.media_type, self.extension = "png", "image/png", "png"

    @property
    def metrics(self):
        return RasterFontMetrics(self.scale)

    def serialize(self, page: Page) -> bytes:
        image = rasterize(page, self.scale)
        buffer = BytesIO()
        if self.image_format == "JPEG":
            image.save(buffer, format="JPEG", quality=self.quality)
        else:
            image.save(buffer, format="PNG")
        return buffer.getvalue()


def _new_pdf_canvas(buffer: BytesIO, page: Page) -> canvas.Canvas:
    pdf = canvas.Canvas(
        buffer,
        pagesize=(page.width * PX_TO_PT, page.height * PX_TO_PT),
        invariant=1,
    )
    pdf.setTitle("Certificate")
    pdf.setCreator("atomcerts")
    return pdf


class RasterPdfAdapter(OutputAdapter):
    name = "pdf"
    media_type = "application/pdf"
    extension = "pdf"

    @property
    def metrics(self):
        return RasterFontMetrics(self.scale)

    def serialize(self, page: Page) -> bytes:
        image = rasterize(page, self.scale)
        buffer = BytesIO()
        pdf = _new_pdf_canvas(buffer, page)
        pdf.drawImage(
            ImageReader(image),
            0,
            0,
            width=page.width * PX_TO_PT,
            height=page.height * PX_TO_PT,
        )
        pdf.showPage()
        pdf.save()
        return buffer.getvalue()


class VectorPdfAdapter(OutputAdapter):
    name = "vector-pdf"
    media_type = "application/pdf"
    extension = "pdf"

    def serialize(self, page: Page) -> bytes:
        buffer = BytesIO()
        pdf = _new_pdf_canvas(buffer, page)
        page_h = page.height

        def pt(value: float) -> float:
            return value * PX_TO_PT

        def fill(color: Color) -> None:
            pdf.setFillColorRGB(color[0] / 255.0, color[1] / 255.0, color[2] / 255.0)
            pdf.setFillAlpha(color[3] / 255.0)

        def stroke(color: Color) -> None:
            pdf.setStrokeColorRGB(color[0] / 255.0, color[1] / 255.0, color[2] / 255.0)
            pdf.setStrokeAlpha(color[3] / 255.0)

        fill(page.background)
        pdf.rect(0, 0, pt(page.width), pt(page_h), stroke=0, fill=1)

        for op in page.ops:
            if isinstance(op, FillRect):
                fill(op.color)
                pdf.rect(pt(op.x), pt(page_h - op.y - op.height), pt(op.width), pt(op.height), stroke=0, fill=1)
            elif isinstance(op, StrokeRect):
                stroke(op.color)
                pdf.setLineWidth(pt(op.line_width))
                # CSS borders sit inside the box
                inset = op.line_width / 2.0
                pdf.rect(
                    pt(op.x + inset),
                    pt(page_h - op.y - op.height + inset),
                    pt(max(op.width - op.line_width, 0)),
                    pt(max(op.height - op.line_width, 0)),
                    stroke=1,
                    fill=0,
                )
            elif isinstance(op, Rule):
                fill(op.color)
                pdf.rect(pt(op.x), pt(page_h - op.y - op.thickness), pt(op.width), pt(op.thickness), stroke=0, fill=1)
            elif isinstance(op, TextRun):
                fill(op.color)
                pdf.setFont(op.font.pdf_name, pt(op.size))
                pdf.drawString(pt(op.x), pt(page_h - op.baseline), op.text)
            elif isinstance(op, DrawImage):
                pdf.drawImage(
                    ImageReader(op.image),
                    pt(op.x),
                    pt(page_h - op.y - op.height),
                    width=pt(op.width),
                    height=pt(op.height),
                    mask="auto",
                )

        pdf.showPage()
        pdf.save()
        return buffer.getvalue()


_HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{{ title }}</title>
<style>
@page { size: {{ width }}px {{ height }}px; margin: 0; }
body { margin: 0; padding: 0; }
.certificate { position: relative; overflow: hidden; width: {{ width }}px; height: {{ height }}px; background-color: {{ background }}; }
.certificate > * { position: absolute; margin: 0; box-sizing: border-box; }
.run { white-space: pre; line-height: 1; }
</style>
</head>
<body>
<div class="certificate">
{%- for item in items %}
{%- if item.kind == "fill" %}
<div style="left:{{ item.x }}px;top:{{ item.y }}px;width:{{ item.width }}px;height:{{ item.height }}px;background-color:{{ item.color }};"></div>
{%- elif item.kind == "stroke" %}
<div style="left:{{ item.x }}px;top:{{ item.y }}px;width:{{ item.width }}px;height:{{ item.height }}px;border:{{ item.line_width }}px solid {{ item.color }};"></div>
{%- elif item.kind == "text" %}
<div class="run" style="left:{{ item.x }}px;top:{{ item.y }}px;font-family:{{ item.family }};font-size:{{ item.size }}px;font-weight:{{ item.weight }};font-style:{{ item.style }};color:{{ item.color }};">{{ item.text }}</div>
{%- elif item.kind == "image" %}
<img alt="" src="{{ item.src }}" style="left:{{ item.x }}px;top:{{ item.y }}px;width:{{ item.width }}px;height:{{ item.height }}px;">
{%- endif %}
{%- endfor %}
</div>
</body>
</html>
"""

_html_env = Environment(autoescape=True)
_html_template = _html_env.from_string(_HTML_TEMPLATE)


def _css_color(color: Color) -> str:
    r, g, b, a = color
    if a >= 255:
        return f"#{r:02x}{g:02x}{b:02x}"
    return f"rgba({r},{g},{b},{a / 255.0:.3f})"


def _num(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


def _image_data_uri(image: Image.Image) -> str:
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


class HtmlAdapter(OutputAdapter):
    name = "html"
    media_type = "text/html; charset=utf-8"
    extension = "html"

    def __init__(self, scale: float = DEFAULT_SCALE, title: str = "Certificate"):
        super().__init__(scale)
        self.title = title

    def _items(self, page: Page) -> list[dict]:
        items: list[dict] = []
        for op in page.ops:
            if isinstance(op, (FillRect, Rule)):
                height = op.height if isinstance(op, FillRect) else op.thickness
                items.append(
                    {
                        "kind": "fill",
                        "x": _num(op.x),
                        "y": _num(op.y),
                        "width": _num(op.width),
                        "height": _num(height),
                        "color": _css_color(op.color),
                    }
                )
            elif isinstance(op, StrokeRect):
                items.append(
                    {
                        "kind": "stroke",
                        "x": _num(op.x),
                        "y": _num(op.y),
                        "width": _num(op.width),
                        "height": _num(op.height),
                        "line_width": _num(op.line_width),
                        "color": _css_color(op.color),
                    }
                )
            elif isinstance(op, TextRun):
                items.append(
                    {
                        "kind": "text",
                        "x": _num(op.x),
                        "y": _num(op.y),
                        "family": op.font.css_family,
                        "size": _num(op.size),
                        "weight": "bold" if op.font.bold else "normal",
                        "style": "italic" if op.font.italic else "normal",
                        "color": _css_color(op.color),
                        "text": op.text,
                    }
                )
            elif isinstance(op, DrawImage):
                items.append(
                    {
                        "kind": "image",
                        "x": _num(op.x),
                        "y": _num(op.y),
                        "width": _num(op.width),
                        "height": _num(op.height),
                        "src": _image_data_uri(op.image),
                    }
                )
        return items

    def serialize(self, page: Page) -> bytes:
        markup = _html_template.render(
            title=self.title,
            width=page.width,
            height=page.height,
            background=_css_color(page.background),
            items=self._items(page),
        )
        return markup.encode("utf-8")


ADAPTERS: dict[str, type[OutputAdapter]] = {
    "pdf": RasterPdfAdapter,
    "vector-pdf": VectorPdfAdapter,
    "png": RasterImageAdapter,
    "jpeg": RasterImageAdapter,
    "html": HtmlAdapter,
}

FORMAT_ALIASES = {"jpg": "jpeg", "raster-pdf": "pdf", "vector": "vector-pdf"}


def available_formats() -> list[str]:
    return sorted(ADAPTERS)


def get_adapter(name: str | None = None, *, scale: float = DEFAULT_SCALE) -> OutputAdapter:
    key = (name or DEFAULT_FORMAT).strip().lower()
    key = FORMAT_ALIASES.get(key, key)
    if key not in ADAPTERS:
        raise UnknownFormatError(
            f"Unknown output format {name!r}; expected one of {', '.join(available_formats())}."
        )
    if key == "png":
        return RasterImageAdapter("PNG", scale=scale)
    if key == "jpeg":
        return RasterImageAdapter("JPEG", scale=scale)
    return ADAPTERS[key](scale=scale)
