"""Tests for field coercion and validation rules."""

from datetime import datetime, timezone

import pytest

from deliverygraph.codes import IssueCode
from deliverygraph.kernel.coercion import Location, apply_validations, coerce_value
from deliverygraph.kernel.fields import FieldDefinition
from deliverygraph.kernel.links import Link


def _field(field_type, **extra):
    return FieldDefinition.model_validate({"id": "f", "name": "F", "type": field_type, **extra})


@pytest.mark.parametrize("field_type,raw,expected", [
    ("Symbol", "hello", "hello"),
    ("Symbol", 42, "42"),
    ("Text", True, "true"),
    ("Integer", 9, 9),
    ("Integer", "9", 9),
    ("Integer", " -3 ", -3),
    ("Integer", 4.0, 4),
    ("Number", "2.5", 2.5),
    ("Number", "7", 7),
    ("Number", 1, 1),
    ("Boolean", "true", True),
    ("Boolean", "False", False),
    ("Boolean", False, False),
    ("Object", {"a": [1]}, {"a": [1]}),
    ("RichText", {"nodeType": "document", "content": []}, {"nodeType": "document", "content": []}),
    ("Unknown", object, object),
])
def test_safe_conversions(field_type, raw, expected):
    value, warnings = coerce_value(_field(field_type), raw)
    assert value == expected
    assert warnings == []


@pytest.mark.parametrize("field_type,raw", [
    ("Integer", "nine"),
    ("Integer", 4.5),
    ("Integer", True),
    ("Number", "NaN"),
    ("Number", False),
    ("Boolean", "yes"),
    ("Symbol", {"a": 1}),
    ("Date", "yesterday"),
    ("Location", {"lat": "north"}),
    ("Object", "text"),
])
def test_unsafe_values_kept_raw_with_warning(field_type, raw):
    value, warnings = coerce_value(_field(field_type), raw, locale="en-US")
    assert value is raw
    assert len(warnings) == 1
    warning = warnings[0]
    assert warning.code == IssueCode.FIELD_COERCION
    assert warning.field_id == "f"
    assert warning.locale == "en-US"
    assert warning.expected_type == field_type
    assert warning.actual_type == type(raw).__name__


def test_none_stays_none():
    assert coerce_value(_field("Integer"), None) == (None, [])


def test_date_parsing():
    value, warnings = coerce_value(_field("Date"), "2013-06-27T22:46:19.513Z")
    assert value == datetime(2013, 6, 27, 22, 46, 19, 513000, tzinfo=timezone.utc)
    assert warnings == []

    value, _ = coerce_value(_field("Date"), "2018-05-03")
    assert value == datetime(2018, 5, 3)


def test_location():
    value, warnings = coerce_value(_field("Location"), {"lat": "51.5", "lon": -0.12})
    assert value == Location(lat=51.5, lon=-0.12)
    assert warnings == []


def test_link_field():
    raw = {"sys": {"type": "Link", "linkType": "Entry", "id": "happycat"}}
    value, warnings = coerce_value(_field("Link", linkType="Entry"), raw)
    assert value == Link(link_type="Entry", id="happycat")
    assert warnings == []


def test_link_to_wrong_type_kept_raw():
    raw = {"sys": {"type": "Link", "linkType": "Asset", "id": "nyancat"}}
    value, warnings = coerce_value(_field("Link", linkType="Entry"), raw)
    assert value is raw
    assert "expected a link to Entry" in warnings[0].message


def test_array_items_coerced_individually():
    field = _field("Array", items={"type": "Integer"})
    value, warnings = coerce_value(field, ["1", 2, "three"])
    assert value == [1, 2, "three"]
    assert len(warnings) == 1
    assert warnings[0].message.startswith("item 2:")


def test_array_of_links():
    field = _field("Array", items={"type": "Link", "linkType": "Entry"})
    raw = [{"sys": {"type": "Link", "linkType": "Entry", "id": "a"}}]
    value, warnings = coerce_value(field, raw)
    assert value == [Link(link_type="Entry", id="a")]
    assert warnings == []


def test_array_requires_list():
    value, warnings = coerce_value(_field("Array", items={"type": "Symbol"}), "rainbows")
    assert value == "rainbows"
    assert warnings[0].expected_type == "Array"


class TestValidations:
    """Tests for apply_validations."""

    def test_in_rule(self):
        field = _field("Symbol", validations=[{"in": ["red", "green"]}])
        assert apply_validations(field, "red") == []
        warnings = apply_validations(field, "blue", locale="en-US")
        assert len(warnings) == 1
        assert warnings[0].code == IssueCode.VALIDATION_FAILED
        assert warnings[0].locale == "en-US"

    def test_size_rule_on_text(self):
        field = _field("Symbol", validations=[{"size": {"min": 2, "max": 4}}])
        assert apply_validations(field, "cat") == []
        assert "below the minimum" in apply_validations(field, "c")[0].message
        assert "above the maximum" in apply_validations(field, "kitten")[0].message

    def test_size_rule_on_array(self):
        field = _field("Array", items={"type": "Symbol"}, validations=[{"size": {"max": 1}}])
        assert len(apply_validations(field, ["a", "b"])) == 1

    def test_range_rule(self):
        field = _field("Integer", validations=[{"range": {"min": 0, "max": 9}}])
        assert apply_validations(field, 9) == []
        assert len(apply_validations(field, 10)) == 1

    def test_regexp_rule_with_flags(self):
        field = _field("Symbol", validations=[{"regexp": {"pattern": "^cat", "flags": "i"}}])
        assert apply_validations(field, "Catnip") == []
        assert len(apply_validations(field, "dog")) == 1

    def test_item_validations(self):
        field = _field("Array", items={"type": "Symbol", "validations": [{"in": ["a", "b"]}]})
        warnings = apply_validations(field, ["a", "z"])
        assert len(warnings) == 1
        assert warnings[0].message.startswith("item 1:")

    def test_unknown_rules_ignored(self):
        field = _field("Symbol", validations=[{"unique": True}, {"prohibitRegexp": {"pattern": "x"}}])
        assert apply_validations(field, "x") == []

    def test_invalid_pattern_ignored(self):
        field = _field("Symbol", validations=[{"regexp": {"pattern": "("}}])
        assert apply_validations(field, "x") == []
