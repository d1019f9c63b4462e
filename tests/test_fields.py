from datetime import date

from atomcerts.shared.fields import (
    STANDARD_FIELDS,
    element_text,
    extract_field_names,
    format_display_date,
    normalize_field_values,
    resolve_text,
    sample_field_values,
)
from atomcerts.shared.template_model import TextElement


def _text(content, type_="text", field_name=None):
    return TextElement(id="t", type=type_, x=0, y=0, content=content, field_name=field_name)


def test_resolve_text_substitutes_every_token():
    values = {"userName": "Jane Smith", "programName": "Python 101"}
    assert (
        resolve_text("{{userName}} completed {{ programName }} ({{userName}})", values)
        == "Jane Smith completed Python 101 (Jane Smith)"
    )


def test_unknown_tokens_become_empty():
    assert resolve_text("Hello {{nobody}}!", {}) == "Hello !"
    assert "{{" not in resolve_text("{{a}}{{b}}{{c}}", {"b": "x"})


def test_aliases_fill_in_for_legacy_names():
    values = {"userName": "Jane", "completionDate": "May 1, 2026"}
    assert resolve_text("{{studentName}} on {{date}}", values) == "Jane on May 1, 2026"
    # an explicit value beats the alias
    assert resolve_text("{{studentName}}", {"userName": "A", "studentName": "B"}) == "B"


def test_extract_field_names_in_first_seen_order():
    assert extract_field_names("{{b}} {{a}} {{ b }}") == ["b", "a"]
    assert extract_field_names(None) == []


def test_normalize_field_values_coerces_to_strings():
    assert normalize_field_values({"n": 3, "none": None}) == {"n": "3", "none": ""}
    assert normalize_field_values(None) == {}


def test_dynamic_field_name_used_when_content_has_no_token():
    values = {"userName": "Jane Smith"}
    assert element_text(_text("", "dynamic-field", "userName"), values) == "Jane Smith"
    assert element_text(_text("Student", "dynamic-text", "userName"), values) == "Jane Smith"


def test_tokens_in_content_win_over_field_name():
    values = {"userName": "Jane", "programName": "Python"}
    el = _text("Awarded to {{userName}}", "dynamic-field", "programName")
    assert element_text(el, values) == "Awarded to Jane"


def test_plain_text_is_scanned_for_tokens_too():
    assert element_text(_text("Hi {{userName}}"), {"userName": "Jane"}) == "Hi Jane"
    assert element_text(_text("Static"), {"userName": "Jane"}) == "Static"


def test_format_display_date():
    assert format_display_date(date(2026, 1, 5)) == "January 5, 2026"
    assert format_display_date(None) == ""


def test_sample_values_cover_standard_fields():
    values = sample_field_values(date(2026, 3, 14))
    assert values["userName"] == "John Doe"
    assert values["organizationName"] == "Sample Education Institute"
    assert values["completionDate"] == "March 14, 2026"
    assert set(STANDARD_FIELDS) <= set(values)
