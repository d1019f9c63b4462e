"""Turn one normalized template element into backend-neutral draw operations.

Coordinates are canvas pixels with the origin at the top-left corner, the
same space the browser editor uses. Adapters convert to their own space.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Protocol, Union

from PIL import Image

from ..shared.fields import element_text
from ..shared.fonts import FontSpec, font_spec
from ..shared.template_model import (
    Color,
    Element,
    ImageElement,
    RectangleElement,
    TextElement,
)

logger = logging.getLogger("atomcerts.render")

LINE_HEIGHT_RATIO = 1.2
UNDERLINE_OFFSET_RATIO = 0.12

PLACEHOLDER_LABEL = "Image"
PLACEHOLDER_FILL: Color = (243, 244, 246, 255)
PLACEHOLDER_BORDER: Color = (209, 213, 219, 255)
PLACEHOLDER_TEXT: Color = (107, 114, 128, 255)


class TextMetrics(Protocol):
    def width(self, text: str, font: FontSpec, size: float) -> float: ...

    def ascent(self, font: FontSpec, size: float) -> float: ...


class ImageSource(Protocol):
    def load(self, uri: str | None) -> Image.Image | None: ...


@dataclass(frozen=True)
class FillRect:
    x: float
    y: float
    width: float
    height: float
    color: Color


@dataclass(frozen=True)
class StrokeRect:
    x: float
    y: float
    width: float
    height: float
    color: Color
    line_width: float


@dataclass(frozen=True)
class TextRun:
    x: float
    y: float
    baseline: float
    text: str
    font: FontSpec
    size: float
    color: Color
    width: float


@dataclass(frozen=True)
class Rule:
    x: float
    y: float
    width: float
    thickness: float
    color: Color


@dataclass(frozen=True)
class DrawImage:
    x: float
    y: float
    width: float
    height: float
    image: Image.Image = field(compare=False, repr=False)


DrawOp = Union[FillRect, StrokeRect, TextRun, Rule, DrawImage]


def split_lines(text: str) -> list[str]:
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")


def align_start(anchor_x: float, text_width: float, align: str, box_width: float | None) -> float:
    """Left edge of a run.

    Without a box, ``x`` is the alignment anchor (left edge, centre, or right
    edge). With an explicit box width the run is aligned inside the box.
    """
    if box_width is not None:
        if align == "center":
            return anchor_x + (box_width - text_width) / 2.0
        if align == "right":
            return anchor_x + box_width - text_width
        return anchor_x
    if align == "center":
        return anchor_x - text_width / 2.0
    if align == "right":
        return anchor_x - text_width
    return anchor_x


def fit_contain(
    image_width: int, image_height: int, x: float, y: float, width: float, height: float
) -> tuple[float, float, float, float]:
    if image_width <= 0 or image_height <= 0:
        return x, y, width, height
    scale = min(width / image_width, height / image_height)
    fitted_w = image_width * scale
    fitted_h = image_height * scale
    return (
        x + (width - fitted_w) / 2.0,
        y + (height - fitted_h) / 2.0,
        fitted_w,
        fitted_h,
    )


def render_text(
    element: TextElement, values: Mapping[str, str], metrics: TextMetrics
) -> list[DrawOp]:
    text = element_text(element, values)
    font = font_spec(element.font_family, element.font_weight, element.font_style)
    size = element.font_size
    line_height = size * LINE_HEIGHT_RATIO
    ascent = metrics.ascent(font, size)
    lines = split_lines(text)

    runs: list[TextRun] = []
    for index, line in enumerate(lines):
        top = element.y + index * line_height
        width = metrics.width(line, font, size)
        start = align_start(element.x, width, element.text_align, element.width)
        runs.append(
            TextRun(
                x=start,
                y=top,
                baseline=top + ascent,
                text=line,
                font=font,
                size=size,
                color=element.color,
                width=width,
            )
        )

    ops: list[DrawOp] = []
    if element.background is not None:
        if element.width is not None:
            box_x = element.x
            box_w = element.width
        else:
            box_x = min((run.x for run in runs), default=element.x)
            box_w = max((run.x + run.width for run in runs), default=box_x) - box_x
        box_h = element.height if element.height is not None else line_height * len(lines)
        if box_w > 0 and box_h > 0:
            ops.append(FillRect(box_x, element.y, box_w, box_h, element.background))

    # transparent text still reserves its background box
    if element.color is None:
        return ops
    for run in runs:
        if not run.text:
            continue
        ops.append(run)
        if element.text_decoration == "underline" and run.width > 0:
            thickness = max(1.0, size / 15.0)
            ops.append(
                Rule(
                    x=run.x,
                    y=run.baseline + size * UNDERLINE_OFFSET_RATIO,
                    width=run.width,
                    thickness=thickness,
                    color=element.color,
                )
            )
    return ops


def render_rectangle(element: RectangleElement) -> list[DrawOp]:
    ops: list[DrawOp] = []
    if element.fill is not None:
        ops.append(FillRect(element.x, element.y, element.width, element.height, element.fill))
    if element.border_width > 0:
        ops.append(
            StrokeRect(
                element.x,
                element.y,
                element.width,
                element.height,
                element.border_color,
                element.border_width,
            )
        )
    return ops


def image_placeholder(
    x: float, y: float, width: float, height: float, metrics: TextMetrics
) -> list[DrawOp]:
    font = FontSpec()
    size = max(8.0, min(16.0, height * 0.2, width * 0.2))
    label_width = metrics.width(PLACEHOLDER_LABEL, font, size)
    top = y + (height - size) / 2.0
    start = x + (width - label_width) / 2.0
    return [
        FillRect(x, y, width, height, PLACEHOLDER_FILL),
        StrokeRect(x, y, width, height, PLACEHOLDER_BORDER, 1.0),
        TextRun(
            x=start,
            y=top,
            baseline=top + metrics.ascent(font, size),
            text=PLACEHOLDER_LABEL,
            font=font,
            size=size,
            color=PLACEHOLDER_TEXT,
            width=label_width,
        ),
    ]


def render_image(
    element: ImageElement,
    images: ImageSource,
    metrics: TextMetrics,
    warnings: list[str] | None = None,
) -> list[DrawOp]:
    image = images.load(element.image_url) if element.image_url else None
    if image is None:
        if warnings is not None:
            reason = "no imageUrl" if not element.image_url else "could not be loaded"
            warnings.append(
                f"[render-image-fallback] element {element.id}: image {reason}; drew placeholder."
            )
        return image_placeholder(element.x, element.y, element.width, element.height, metrics)
    x, y, width, height = fit_contain(
        image.width, image.height, element.x, element.y, element.width, element.height
    )
    return [DrawImage(x, y, width, height, image)]


def render_element(
    element: Element,
    values: Mapping[str, str],
    *,
    metrics: TextMetrics,
    images: ImageSource,
    warnings: list[str] | None = None,
) -> list[DrawOp]:
    """Draw operations for one element; hidden elements produce none."""
    if element.hidden:
        return []
    if isinstance(element, TextElement):
        return render_text(element, values, metrics)
    if isinstance(element, RectangleElement):
        return render_rectangle(element)
    if isinstance(element, ImageElement):
        return render_image(element, images, metrics, warnings)
    return []
