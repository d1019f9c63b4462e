from __future__ import annotations

from PIL import Image, ImageDraw, ImageFont

from ..shared.fonts import load_truetype
from .compositor import Page
from .elements import DrawImage, FillRect, Rule, StrokeRect, TextRun

DEFAULT_SCALE = 2.0

_RESAMPLE = Image.Resampling.LANCZOS


def _px(value: float, scale: float) -> int:
    return int(round(value * scale))


def _box(x: float, y: float, width: float, height: float, scale: float) -> list[int]:
    x0 = _px(x, scale)
    y0 = _px(y, scale)
    x1 = max(x0, _px(x + width, scale) - 1)
    y1 = max(y0, _px(y + height, scale) - 1)
    return [x0, y0, x1, y1]


def _paste_image(canvas: Image.Image, op: DrawImage, scale: float) -> None:
    width = _px(op.width, scale)
    height = _px(op.height, scale)
    if width <= 0 or height <= 0:
        return
    image = op.image if op.image.mode == "RGBA" else op.image.convert("RGBA")
    if image.size != (width, height):
        image = image.resize((width, height), _RESAMPLE)
    canvas.paste(image, (_px(op.x, scale), _px(op.y, scale)), image)


def _draw_text(draw: ImageDraw.ImageDraw, op: TextRun, scale: float) -> None:
    font = load_truetype(op.font.pdf_name, _px(op.size, scale))
    if isinstance(font, ImageFont.FreeTypeFont):
        draw.text(
            (op.x * scale, op.baseline * scale),
            op.text,
            font=font,
            fill=op.color,
            anchor="ls",
        )
    else:
        draw.text((op.x * scale, op.y * scale), op.text, font=font, fill=op.color)


def rasterize(page: Page, scale: float = DEFAULT_SCALE) -> Image.Image:
    """Paint a composed page onto an RGB bitmap of ``width*scale x height*scale``."""
    scale = scale if scale > 0 else DEFAULT_SCALE
    size = (max(1, _px(page.width, scale)), max(1, _px(page.height, scale)))
    canvas = Image.new("RGBA", size, page.background)
    draw = ImageDraw.Draw(canvas, "RGBA")

    for op in page.ops:
        if isinstance(op, FillRect):
            draw.rectangle(_box(op.x, op.y, op.width, op.height, scale), fill=op.color)
        elif isinstance(op, StrokeRect):
            line = max(1, _px(op.line_width, scale))
            draw.rectangle(
                _box(op.x, op.y, op.width, op.height, scale), outline=op.color, width=line
            )
        elif isinstance(op, Rule):
            draw.rectangle(_box(op.x, op.y, op.width, op.thickness, scale), fill=op.color)
        elif isinstance(op, TextRun):
            _draw_text(draw, op, scale)
        elif isinstance(op, DrawImage):
            _paste_image(canvas, op, scale)

    background = Image.new("RGB", size, (255, 255, 255))
    background.paste(canvas, (0, 0), canvas)
    return background
