from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from PIL import Image

from ..shared.fields import normalize_field_values
from ..shared.template_model import Color, Template, normalize_template
from .elements import DrawImage, DrawOp, ImageSource, TextMetrics, render_element

logger = logging.getLogger("atomcerts.render")


@dataclass(frozen=True)
class Page:
    width: int
    height: int
    background: Color
    ops: tuple[DrawOp, ...]
    warnings: tuple[str, ...] = ()


def cover_crop(image: Image.Image, width: int, height: int) -> Image.Image:
    """Centre-crop ``image`` to the canvas aspect ratio (CSS ``background-size: cover``)."""
    if image.width <= 0 or image.height <= 0:
        return image
    target_ratio = width / height
    source_ratio = image.width / image.height
    if abs(source_ratio - target_ratio) < 1e-6:
        return image
    if source_ratio > target_ratio:
        crop_w = max(1, int(round(image.height * target_ratio)))
        left = (image.width - crop_w) // 2
        return image.crop((left, 0, left + crop_w, image.height))
    crop_h = max(1, int(round(image.width / target_ratio)))
    top = (image.height - crop_h) // 2
    return image.crop((0, top, image.width, top + crop_h))


def compose(
    template: Template | Mapping[str, Any] | str,
    field_values: Mapping[str, Any] | None,
    *,
    metrics: TextMetrics,
    images: ImageSource,
) -> Page:
    """Paint background and every visible element, in list order, onto one page.

    Raises ``TemplateValidationError`` only for an unusable canvas size.
    """
    tmpl = normalize_template(template)
    values = normalize_field_values(field_values)
    warnings: list[str] = []
    ops: list[DrawOp] = []

    for label in tmpl.skipped:
        warnings.append(f"[render-element-skipped] {label} has an unknown type.")

    if tmpl.background_image:
        background = images.load(tmpl.background_image)
        if background is None:
            warnings.append(
                "[render-bg-fallback] background image could not be loaded; "
                "using background colour only."
            )
        else:
            ops.append(
                DrawImage(
                    0.0,
                    0.0,
                    float(tmpl.width),
                    float(tmpl.height),
                    cover_crop(background, tmpl.width, tmpl.height),
                )
            )

    for element in tmpl.visible_elements:
        try:
            ops.extend(
                render_element(
                    element, values, metrics=metrics, images=images, warnings=warnings
                )
            )
        except Exception as exc:
            logger.warning(
                "[render-element-skipped] template=%s element=%s type=%s error=%s",
                tmpl.id,
                element.id,
                element.type,
                exc,
            )
            warnings.append(
                f"[render-element-skipped] element {element.id} could not be drawn."
            )

    return Page(
        width=tmpl.width,
        height=tmpl.height,
        background=tmpl.background_color,
        ops=tuple(ops),
        warnings=tuple(warnings),
    )
