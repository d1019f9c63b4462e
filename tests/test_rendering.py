import base64
from io import BytesIO

import pytest
import requests
from PIL import Image

from atomcerts.services import images as images_module
from atomcerts.services.adapters import UnknownFormatError
from atomcerts.services.compositor import compose
from atomcerts.services.elements import TextRun
from atomcerts.services.rendering import (
    RenderOptions,
    render,
    render_document,
    render_options_from_config,
)
from atomcerts.shared.fonts import RasterFontMetrics
from atomcerts.shared.template_model import TemplateValidationError

OPTIONS = RenderOptions(raster_scale=1.0)


class _NoImages:
    def load(self, uri):
        return None


def test_jane_smith_certificate():
    design = {
        "width": 800,
        "height": 600,
        "elements": [
            {
                "id": "name",
                "type": "dynamic-field",
                "content": "{{userName}}",
                "fieldName": "userName",
                "x": 400,
                "y": 250,
                "fontSize": 24,
                "textAlign": "center",
            }
        ],
    }
    metrics = RasterFontMetrics(1.0)
    page = compose(design, {"userName": "Jane Smith"}, metrics=metrics, images=_NoImages())
    (run,) = [op for op in page.ops if isinstance(op, TextRun)]
    assert run.text == "Jane Smith"
    assert run.x == pytest.approx(400 - run.width / 2)
    assert run.y == 250

    result = render_document(design, {"userName": "Jane Smith"}, "png", options=OPTIONS)
    image = Image.open(BytesIO(result.content)).convert("RGB")
    # something dark was painted on the name line, nothing above it
    line = [image.getpixel((x, 262)) for x in range(300, 500)]
    assert any(sum(pixel) < 200 for pixel in line)
    assert all(image.getpixel((x, 100)) == (255, 255, 255) for x in range(0, 800, 20))
    assert result.warnings == ()


def test_unreachable_image_renders_placeholder(monkeypatch):
    def fake_get(url, **kwargs):
        raise requests.ConnectionError("name resolution failed")

    monkeypatch.setattr(images_module.requests, "get", fake_get)
    design = {
        "width": 400,
        "height": 300,
        "elements": [
            {
                "id": "logo",
                "type": "image",
                "imageUrl": "https://nonexistent.invalid/logo.png",
                "x": 10,
                "y": 10,
                "width": 100,
                "height": 80,
            },
            {"id": "title", "type": "text", "content": "Certificate", "x": 150, "y": 20},
        ],
    }
    result = render_document(design, {}, "pdf", options=OPTIONS)
    assert result.content.startswith(b"%PDF")
    assert result.media_type == "application/pdf"
    assert len(result.warnings) == 1
    assert "[render-image-fallback]" in result.warnings[0]

    png = render(design, {}, "png", options=OPTIONS)
    image = Image.open(BytesIO(png)).convert("RGB")
    # light grey placeholder fill inside the image box
    assert image.getpixel((20, 20)) == (243, 244, 246)


def test_data_uri_image_is_drawn():
    buffer = BytesIO()
    Image.new("RGB", (10, 10), (0, 0, 255)).save(buffer, format="PNG")
    uri = "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")
    design = {
        "width": 100,
        "height": 100,
        "elements": [
            {"type": "image", "imageUrl": uri, "x": 0, "y": 0, "width": 50, "height": 50}
        ],
    }
    image = Image.open(BytesIO(render(design, {}, "png", options=OPTIONS))).convert("RGB")
    assert image.getpixel((25, 25)) == (0, 0, 255)
    assert image.getpixel((75, 75)) == (255, 255, 255)


def test_malformed_elements_never_raise():
    design = {
        "width": 200,
        "height": 100,
        "elements": [
            None,
            {"type": "text", "fontSize": "huge", "x": "left", "color": 7},
            {"type": "rectangle", "width": -5, "strokeWidth": "thick"},
            {"type": "image"},
            {"type": "dynamic-field", "fieldName": "nope"},
        ],
    }
    for fmt in ("pdf", "vector-pdf", "png", "jpeg", "html"):
        result = render_document(design, None, fmt, options=OPTIONS)
        assert result.content


def test_bad_canvas_and_format_errors():
    with pytest.raises(TemplateValidationError):
        render({"width": 100}, {}, "png", options=OPTIONS)
    with pytest.raises(UnknownFormatError):
        render({"width": 100, "height": 100}, {}, "svg", options=OPTIONS)


def test_default_format_comes_from_options():
    result = render_document(
        {"width": 10, "height": 10}, {}, options=RenderOptions(default_format="png")
    )
    assert result.media_type == "image/png"
    assert result.extension == "png"


def test_options_from_config():
    options = render_options_from_config(
        {
            "RENDER_IMAGE_TIMEOUT": "3",
            "RENDER_RASTER_SCALE": 1.5,
            "RENDER_ASSET_ROOTS": ["/a", "/b"],
            "RENDER_DEFAULT_FORMAT": "html",
        }
    )
    assert options == RenderOptions(
        image_timeout=3.0, raster_scale=1.5, asset_roots=("/a", "/b"), default_format="html"
    )
    assert render_options_from_config({}) == RenderOptions()
