import pytest
from PIL import Image

from atomcerts.services import compositor
from atomcerts.services.compositor import compose, cover_crop
from atomcerts.services.elements import DrawImage, FillRect, TextRun
from atomcerts.shared.template_model import TemplateValidationError


class FixedMetrics:
    def width(self, text, font, size):
        return 10.0 * len(text)

    def ascent(self, font, size):
        return size * 0.8


class StubImages:
    def __init__(self, images=None):
        self.images = images or {}

    def load(self, uri):
        return self.images.get(uri)


def _compose(design, values=None, images=None):
    return compose(design, values, metrics=FixedMetrics(), images=images or StubImages())


def test_empty_template_is_background_only():
    page = _compose({"width": 300, "height": 200, "backgroundColor": "#eeeeee"})
    assert (page.width, page.height) == (300, 200)
    assert page.background == (238, 238, 238, 255)
    assert page.ops == ()
    assert page.warnings == ()


def test_invalid_canvas_raises():
    with pytest.raises(TemplateValidationError):
        _compose({"width": 0, "height": 200})


def test_elements_are_painted_in_list_order():
    page = _compose(
        {
            "width": 300,
            "height": 200,
            "elements": [
                {"id": "box", "type": "rectangle", "fill": "#000"},
                {"id": "label", "type": "text", "content": "on top"},
            ],
        }
    )
    assert isinstance(page.ops[0], FillRect)
    assert isinstance(page.ops[1], TextRun)


def test_hiding_an_element_does_not_move_the_others():
    elements = [
        {"id": "a", "type": "text", "content": "first", "x": 10, "y": 10},
        {"id": "b", "type": "text", "content": "second", "x": 10, "y": 60},
    ]
    visible = _compose({"width": 300, "height": 200, "elements": elements})
    elements[0]["hidden"] = True
    hidden = _compose({"width": 300, "height": 200, "elements": elements})
    assert [op.text for op in hidden.ops] == ["second"]
    assert hidden.ops[0] == visible.ops[1]


def test_unknown_element_type_is_dropped_with_warning():
    page = _compose(
        {
            "width": 100,
            "height": 100,
            "elements": [{"id": "s", "type": "star"}, {"id": "t", "type": "text", "content": "x"}],
        }
    )
    assert len(page.ops) == 1
    assert any("s:star" in warning for warning in page.warnings)


def test_background_image_covers_canvas():
    background = Image.new("RGBA", (400, 100), (255, 0, 0, 255))
    page = _compose(
        {"width": 200, "height": 100, "backgroundImage": "bg.png"},
        images=StubImages({"bg.png": background}),
    )
    (op,) = page.ops
    assert isinstance(op, DrawImage)
    assert (op.x, op.y, op.width, op.height) == (0, 0, 200, 100)
    assert op.image.size == (200, 100)


def test_missing_background_image_falls_back_to_colour():
    page = _compose({"width": 200, "height": 100, "backgroundImage": "gone.png"})
    assert page.ops == ()
    assert any("[render-bg-fallback]" in warning for warning in page.warnings)


def test_element_failure_is_isolated(monkeypatch):
    original = compositor.render_element

    def flaky(element, values, **kwargs):
        if element.id == "bad":
            raise RuntimeError("boom")
        return original(element, values, **kwargs)

    monkeypatch.setattr(compositor, "render_element", flaky)
    page = _compose(
        {
            "width": 100,
            "height": 100,
            "elements": [
                {"id": "bad", "type": "text", "content": "x"},
                {"id": "good", "type": "text", "content": "y"},
            ],
        }
    )
    assert [op.text for op in page.ops] == ["y"]
    assert any("bad" in warning for warning in page.warnings)


def test_cover_crop_keeps_centre():
    image = Image.new("RGB", (300, 100))
    cropped = cover_crop(image, 100, 100)
    assert cropped.size == (100, 100)
