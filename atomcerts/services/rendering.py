"""Entry point of the certificate rendering engine.

``render(template, field_values, adapter)`` is a pure function of its inputs
apart from fetching the images the template references. It keeps no state
between calls and is safe to call concurrently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from .adapters import DEFAULT_FORMAT, OutputAdapter, get_adapter
from .compositor import compose
from .images import DEFAULT_TIMEOUT, ImageLoader
from .raster import DEFAULT_SCALE

logger = logging.getLogger("atomcerts.render")


@dataclass(frozen=True)
class RenderOptions:
    image_timeout: float = DEFAULT_TIMEOUT
    raster_scale: float = DEFAULT_SCALE
    asset_roots: tuple[str, ...] = ()
    default_format: str = DEFAULT_FORMAT


@dataclass(frozen=True)
class RenderResult:
    content: bytes
    media_type: str
    extension: str
    warnings: tuple[str, ...]


def render_options_from_config(config: Mapping[str, Any]) -> RenderOptions:
    return RenderOptions(
        image_timeout=float(config.get("RENDER_IMAGE_TIMEOUT", DEFAULT_TIMEOUT)),
        raster_scale=float(config.get("RENDER_RASTER_SCALE", DEFAULT_SCALE)),
        asset_roots=tuple(config.get("RENDER_ASSET_ROOTS", ()) or ()),
        default_format=str(config.get("RENDER_DEFAULT_FORMAT", DEFAULT_FORMAT)),
    )


def resolve_adapter(adapter: OutputAdapter | str | None, options: RenderOptions) -> OutputAdapter:
    if isinstance(adapter, OutputAdapter):
        return adapter
    return get_adapter(adapter or options.default_format, scale=options.raster_scale)


def render_document(
    template: Any,
    field_values: Mapping[str, Any] | None = None,
    adapter: OutputAdapter | str | None = None,
    *,
    options: RenderOptions | None = None,
    images: ImageLoader | None = None,
) -> RenderResult:
    """Compose ``template`` with ``field_values`` and serialize it.

    Raises ``TemplateValidationError`` for an unusable canvas and
    ``UnknownFormatError`` for an unknown adapter name; everything below
    the template level degrades and is reported in ``warnings``.
    """
    options = options or RenderOptions()
    output = resolve_adapter(adapter, options)
    loader = images or ImageLoader(
        timeout=options.image_timeout, asset_roots=options.asset_roots
    )
    page = compose(template, field_values, metrics=output.metrics, images=loader)
    content = output.serialize(page)
    if page.warnings:
        logger.info(
            "[render] format=%s size=%sx%s ops=%s warnings=%s",
            output.name,
            page.width,
            page.height,
            len(page.ops),
            len(page.warnings),
        )
    return RenderResult(
        content=content,
        media_type=output.media_type,
        extension=output.extension,
        warnings=page.warnings,
    )


def render(
    template: Any,
    field_values: Mapping[str, Any] | None = None,
    adapter: OutputAdapter | str | None = None,
    *,
    options: RenderOptions | None = None,
) -> bytes:
    return render_document(template, field_values, adapter, options=options).content
