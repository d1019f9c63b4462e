import json

import pytest

from atomcerts.shared.template_model import (
    BLACK,
    WHITE,
    ImageElement,
    RectangleElement,
    TemplateValidationError,
    TextElement,
    normalize_element,
    normalize_template,
    parse_color,
)


def test_minimal_template_defaults():
    tmpl = normalize_template({"width": 800, "height": 600})
    assert tmpl.width == 800
    assert tmpl.height == 600
    assert tmpl.background_color == WHITE
    assert tmpl.background_image is None
    assert tmpl.elements == ()


@pytest.mark.parametrize(
    "raw",
    [
        {"width": 0, "height": 600},
        {"width": 800, "height": -1},
        {"height": 600},
        {"width": "wide", "height": 600},
        "not json",
        [],
    ],
)
def test_bad_canvas_is_rejected(raw):
    with pytest.raises(TemplateValidationError):
        normalize_template(raw)


def test_accepts_json_strings_for_design_and_elements():
    design = json.dumps(
        {
            "width": "1123",
            "height": 794,
            "elements": json.dumps([{"id": "t", "type": "text", "content": "Hi"}]),
        }
    )
    tmpl = normalize_template(design)
    assert tmpl.width == 1123
    assert len(tmpl.elements) == 1
    assert isinstance(tmpl.elements[0], TextElement)


def test_unparseable_elements_yield_empty_list():
    tmpl = normalize_template({"width": 10, "height": 10, "elements": "{oops"})
    assert tmpl.elements == ()


def test_text_defaults_and_coercion():
    tmpl = normalize_template(
        {
            "width": 100,
            "height": 100,
            "elements": [
                {
                    "id": "a",
                    "type": "text",
                    "x": "12px",
                    "y": None,
                    "fontSize": "abc",
                    "color": "not-a-colour",
                    "textAlign": "justify",
                }
            ],
        }
    )
    el = tmpl.elements[0]
    assert el.x == 12.0
    assert el.y == 0.0
    assert el.font_size == 16.0
    assert el.color == BLACK
    assert el.text_align == "left"


def test_rectangle_overloaded_keys():
    tmpl = normalize_template(
        {
            "width": 800,
            "height": 600,
            "elements": [
                {
                    "id": "border",
                    "type": "rectangle",
                    "x": 50,
                    "y": 50,
                    "width": 700,
                    "height": 500,
                    "strokeColor": "#d1d5db",
                    "strokeWidth": 2,
                    "fill": "transparent",
                },
                {"id": "box", "type": "rectangle", "backgroundColor": "red", "borderColor": "#000"},
            ],
        }
    )
    border, box = tmpl.elements
    assert isinstance(border, RectangleElement)
    assert border.fill is None
    assert border.border_color == (209, 213, 219, 255)
    assert border.border_width == 2.0
    assert box.fill == (255, 0, 0, 255)
    # a colour without a width still draws a hairline border
    assert box.border_width == 1.0
    assert (box.width, box.height) == (100.0, 100.0)


def test_unknown_types_are_skipped_not_fatal():
    tmpl = normalize_template(
        {
            "width": 100,
            "height": 100,
            "elements": [
                {"id": "s", "type": "star"},
                "garbage",
                {"id": "i", "type": "image", "imageUrl": "  "},
            ],
        }
    )
    assert len(tmpl.elements) == 1
    assert isinstance(tmpl.elements[0], ImageElement)
    assert tmpl.elements[0].image_url is None
    assert tmpl.skipped == ("s:star", "1:str")


def test_hidden_elements_are_kept_but_not_visible():
    tmpl = normalize_template(
        {
            "width": 100,
            "height": 100,
            "elements": [
                {"id": "a", "type": "text", "hidden": True},
                {"id": "b", "type": "text"},
            ],
        }
    )
    assert [el.id for el in tmpl.elements] == ["a", "b"]
    assert [el.id for el in tmpl.visible_elements] == ["b"]


@pytest.mark.parametrize(
    "flag, expected",
    [("false", False), ("0", False), ("", False), ("true", True), ("1", True), (1, True), (None, False)],
)
def test_hidden_flag_accepts_string_booleans(flag, expected):
    element = normalize_element({"type": "text", "hidden": flag})
    assert element.hidden is expected


def test_parse_color_forms():
    assert parse_color("#fff", None) == (255, 255, 255, 255)
    assert parse_color("rgb(1, 2, 3)", None) == (1, 2, 3, 255)
    assert parse_color("transparent", BLACK) is None
    assert parse_color(42, BLACK) == BLACK
