"""Normalized, read-only view of a stored certificate template.

The editor saves loosely typed JSON: overloaded keys (``fill`` vs
``backgroundColor``, ``strokeColor`` vs ``borderColor``), numbers as strings,
missing fields everywhere. Everything is defaulted here so the renderer only
ever sees complete records.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping, Union

from PIL import ImageColor

logger = logging.getLogger("atomcerts.render")

Color = tuple[int, int, int, int]

WHITE: Color = (255, 255, 255, 255)
BLACK: Color = (0, 0, 0, 255)

TEXT_TYPES = ("text", "dynamic-field", "dynamic-text")
DYNAMIC_TYPES = ("dynamic-field", "dynamic-text")
RECTANGLE_TYPE = "rectangle"
IMAGE_TYPE = "image"

TEXT_ALIGNMENTS = ("left", "center", "right")
TRANSPARENT_VALUES = {"transparent", "none", ""}
TRUE_VALUES = {"true", "1", "yes", "on"}

DEFAULT_FONT_SIZE = 16.0
DEFAULT_BOX_SIZE = 100.0


class TemplateValidationError(ValueError):
    """Raised when a template cannot be rendered at all (bad canvas size)."""


@dataclass(frozen=True)
class TextElement:
    id: str
    type: str
    x: float
    y: float
    content: str
    font_size: float = DEFAULT_FONT_SIZE
    font_weight: str = "normal"
    font_family: str = ""
    font_style: str = "normal"
    text_decoration: str = "none"
    text_align: str = "left"
    color: Color | None = BLACK
    width: float | None = None
    height: float | None = None
    background: Color | None = None
    field_name: str | None = None
    hidden: bool = False

    @property
    def is_dynamic(self) -> bool:
        return self.type in DYNAMIC_TYPES


@dataclass(frozen=True)
class RectangleElement:
    id: str
    x: float
    y: float
    width: float = DEFAULT_BOX_SIZE
    height: float = DEFAULT_BOX_SIZE
    fill: Color | None = None
    border_color: Color = BLACK
    border_width: float = 0.0
    hidden: bool = False
    type: str = RECTANGLE_TYPE


@dataclass(frozen=True)
class ImageElement:
    id: str
    x: float
    y: float
    width: float = DEFAULT_BOX_SIZE
    height: float = DEFAULT_BOX_SIZE
    image_url: str | None = None
    hidden: bool = False
    type: str = IMAGE_TYPE


Element = Union[TextElement, RectangleElement, ImageElement]


@dataclass(frozen=True)
class Template:
    width: int
    height: int
    background_color: Color = WHITE
    background_image: str | None = None
    elements: tuple[Element, ...] = ()
    id: str | None = None
    # ids/types of records that were dropped during normalization
    skipped: tuple[str, ...] = ()

    @property
    def visible_elements(self) -> tuple[Element, ...]:
        return tuple(el for el in self.elements if not el.hidden)


def parse_color(value: Any, default: Color | None) -> Color | None:
    """Parse a CSS-ish colour into RGBA; ``None`` means "paint nothing"."""
    if value is None:
        return default
    if not isinstance(value, str):
        return default
    raw = value.strip()
    if raw.lower() in TRANSPARENT_VALUES:
        return None
    try:
        rgba = ImageColor.getcolor(raw, "RGBA")
    except ValueError:
        logger.debug("[template-color] unparseable colour %r", value)
        return default
    return tuple(rgba)  # type: ignore[return-value]


def _coerce_float(value: Any, default: float | None) -> float | None:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        raw = value.strip().lower()
        if raw.endswith("px"):
            raw = raw[:-2].strip()
        try:
            number = float(raw)
        except ValueError:
            return default
    elif isinstance(value, (int, float)):
        number = float(value)
    else:
        return default
    if not math.isfinite(number):
        return default
    return number


def _positive(value: Any, default: float | None) -> float | None:
    number = _coerce_float(value, None)
    if number is None or number <= 0:
        return default
    return number


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in TRUE_VALUES
    return bool(value)


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _first_present(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _normalize_text(raw: Mapping[str, Any], element_id: str, kind: str, hidden: bool) -> TextElement:
    align = _text(raw.get("textAlign"), "left").strip().lower()
    if align not in TEXT_ALIGNMENTS:
        align = "left"
    field_name = raw.get("fieldName")
    if not isinstance(field_name, str) or not field_name.strip():
        field_name = None
    else:
        field_name = field_name.strip()
    return TextElement(
        id=element_id,
        type=kind,
        x=_coerce_float(raw.get("x"), 0.0),
        y=_coerce_float(raw.get("y"), 0.0),
        content=_text(raw.get("content")),
        font_size=_positive(raw.get("fontSize"), DEFAULT_FONT_SIZE),
        font_weight=_text(raw.get("fontWeight"), "normal").strip().lower(),
        font_family=_text(raw.get("fontFamily")).strip(),
        font_style=_text(raw.get("fontStyle"), "normal").strip().lower(),
        text_decoration=_text(raw.get("textDecoration"), "none").strip().lower(),
        text_align=align,
        color=parse_color(raw.get("color"), BLACK),
        width=_positive(raw.get("width"), None),
        height=_positive(raw.get("height"), None),
        background=parse_color(raw.get("backgroundColor"), None),
        field_name=field_name,
        hidden=hidden,
    )


def _normalize_rectangle(raw: Mapping[str, Any], element_id: str, hidden: bool) -> RectangleElement:
    border_color_raw = _first_present(raw, "borderColor", "strokeColor")
    border_width = _coerce_float(_first_present(raw, "borderWidth", "strokeWidth"), None)
    if border_width is None:
        border_width = 1.0 if border_color_raw not in (None, "") else 0.0
    border_color = parse_color(border_color_raw, BLACK)
    if border_color is None:
        border_width = 0.0
        border_color = BLACK
    return RectangleElement(
        id=element_id,
        x=_coerce_float(raw.get("x"), 0.0),
        y=_coerce_float(raw.get("y"), 0.0),
        width=_positive(raw.get("width"), DEFAULT_BOX_SIZE),
        height=_positive(raw.get("height"), DEFAULT_BOX_SIZE),
        fill=parse_color(_first_present(raw, "backgroundColor", "fill"), None),
        border_color=border_color,
        border_width=max(border_width, 0.0),
        hidden=hidden,
    )


def _normalize_image(raw: Mapping[str, Any], element_id: str, hidden: bool) -> ImageElement:
    url = raw.get("imageUrl")
    if not isinstance(url, str) or not url.strip():
        url = None
    return ImageElement(
        id=element_id,
        x=_coerce_float(raw.get("x"), 0.0),
        y=_coerce_float(raw.get("y"), 0.0),
        width=_positive(raw.get("width"), DEFAULT_BOX_SIZE),
        height=_positive(raw.get("height"), DEFAULT_BOX_SIZE),
        image_url=url.strip() if url else None,
        hidden=hidden,
    )


def normalize_element(raw: Any, index: int = 0) -> Element | None:
    """Return a normalized element, or ``None`` for records that cannot be drawn."""
    if not isinstance(raw, Mapping):
        return None
    element_id = _text(raw.get("id"), f"element-{index}")
    kind = _text(raw.get("type")).strip().lower()
    hidden = _coerce_bool(raw.get("hidden"))
    if kind in TEXT_TYPES:
        return _normalize_text(raw, element_id, kind, hidden)
    if kind == RECTANGLE_TYPE:
        return _normalize_rectangle(raw, element_id, hidden)
    if kind == IMAGE_TYPE:
        return _normalize_image(raw, element_id, hidden)
    return None


def _load_json(value: Any) -> Any:
    if isinstance(value, (str, bytes, bytearray)):
        try:
            return json.loads(value)
        except ValueError:
            return None
    return value


def normalize_template(raw: Any) -> Template:
    """Build a :class:`Template` from the stored editor JSON.

    Accepts a mapping, a JSON string, or an already normalized template.
    Only a missing or non-positive canvas size is rejected.
    """
    if isinstance(raw, Template):
        return raw
    data = _load_json(raw)
    if not isinstance(data, Mapping):
        raise TemplateValidationError("Template must be an object.")

    width = _coerce_float(data.get("width"), None)
    height = _coerce_float(data.get("height"), None)
    if width is None or height is None or width <= 0 or height <= 0:
        raise TemplateValidationError(
            f"Template canvas must have positive width and height "
            f"(got width={data.get('width')!r}, height={data.get('height')!r})."
        )

    raw_elements = _load_json(data.get("elements"))
    if not isinstance(raw_elements, list):
        raw_elements = []

    elements: list[Element] = []
    skipped: list[str] = []
    for index, item in enumerate(raw_elements):
        element = normalize_element(item, index)
        if element is None:
            label = item.get("id", index) if isinstance(item, Mapping) else index
            kind = item.get("type") if isinstance(item, Mapping) else type(item).__name__
            skipped.append(f"{label}:{kind}")
            continue
        elements.append(element)

    background_image = data.get("backgroundImage")
    if not isinstance(background_image, str) or not background_image.strip():
        background_image = None

    template_id = data.get("id")
    return Template(
        id=str(template_id) if template_id is not None else None,
        width=max(1, int(round(width))),
        height=max(1, int(round(height))),
        background_color=parse_color(data.get("backgroundColor"), WHITE) or WHITE,
        background_image=background_image.strip() if background_image else None,
        elements=tuple(elements),
        skipped=tuple(skipped),
    )
