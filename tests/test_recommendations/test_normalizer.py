"""
Tests for selfcare_recommender/recommendations/normalizer.py.

What we test
------------
normalize():
  - Array shape: isNormal defaults to True, numeric strings are coerced.
  - Entries whose value or a present bound cannot be coerced are dropped.
  - Mapping shape: legacy ``normal`` / ``min`` / ``max`` keys honoured.
  - ``{"indicators": [...]}`` document shape.
  - JSON text is decoded first.
  - None, empty, unparseable, and scalar input -> [] (never raises).

parse_results():
  - Raises ParseError (with analysis_id) on invalid JSON text.
  - Raises ParseError when JSON decodes to a scalar.
"""

from __future__ import annotations

import json

import pytest

from selfcare_recommender.errors import ParseError
from selfcare_recommender.recommendations.normalizer import normalize, parse_results


class TestArrayShape:
    def test_full_entry(self):
        readings = normalize([{
            "name": "Глюкоза", "value": 6.1, "unit": "ммоль/л",
            "referenceMin": 3.3, "referenceMax": 5.5, "isNormal": False,
        }])
        assert len(readings) == 1
        r = readings[0]
        assert r.name == "Глюкоза"
        assert r.value == pytest.approx(6.1)
        assert r.unit == "ммоль/л"
        assert r.reference_min == pytest.approx(3.3)
        assert r.reference_max == pytest.approx(5.5)
        assert r.is_normal is False

    def test_is_normal_defaults_true(self):
        readings = normalize([{"name": "Ферритин", "value": 40}])
        assert readings[0].is_normal is True
        assert readings[0].reference_min is None
        assert readings[0].unit == ""

    def test_numeric_strings_coerced(self):
        readings = normalize([{
            "name": "Glucose", "value": "6,2", "referenceMin": "3.3", "referenceMax": " 5.5 ",
        }])
        assert readings[0].value == pytest.approx(6.2)
        assert readings[0].reference_min == pytest.approx(3.3)
        assert readings[0].reference_max == pytest.approx(5.5)

    def test_uncoercible_value_dropped_others_kept(self):
        readings = normalize([
            {"name": "Bad", "value": "high"},
            {"name": "Good", "value": 1},
        ])
        assert [r.name for r in readings] == ["Good"]

    def test_uncoercible_bound_drops_entry(self):
        readings = normalize([{"name": "X", "value": 1, "referenceMax": "n/a"}])
        assert readings == []

    def test_boolean_value_dropped(self):
        assert normalize([{"name": "X", "value": True}]) == []

    def test_non_finite_value_dropped(self):
        assert normalize([{"name": "X", "value": "nan"}]) == []

    def test_missing_value_or_name_dropped(self):
        readings = normalize([{"name": "NoValue"}, {"value": 3}, "junk", 42])
        assert readings == []

    def test_string_is_normal_flag(self):
        readings = normalize([{"name": "X", "value": 1, "isNormal": "false"}])
        assert readings[0].is_normal is False


class TestMappingShape:
    def test_legacy_keys(self):
        readings = normalize({
            "Hemoglobin": {"value": 105, "unit": "g/L", "min": 120, "max": 160, "normal": False},
        })
        r = readings[0]
        assert r.name == "Hemoglobin"
        assert r.reference_min == 120
        assert r.reference_max == 160
        assert r.is_normal is False

    def test_capitalised_keys(self):
        readings = normalize({"Glucose": {"Value": "5.0", "Unit": "mmol/L", "Normal": True}})
        assert readings[0].value == pytest.approx(5.0)
        assert readings[0].unit == "mmol/L"
        assert readings[0].is_normal is True

    def test_scalar_entry_is_value(self):
        readings = normalize({"Glucose": 5.1})
        assert readings[0].value == pytest.approx(5.1)
        assert readings[0].is_normal is True

    def test_indicators_document(self):
        doc = {
            "indicators": [{"name": "АЛТ", "value": 80, "referenceMax": 41, "isNormal": False}],
            "findings": {"summary": "..."},
        }
        readings = normalize(doc)
        assert [r.name for r in readings] == ["АЛТ"]


class TestTextAndGarbage:
    def test_json_text_decoded(self):
        text = json.dumps([{"name": "Glucose", "value": 7.0}], ensure_ascii=False)
        assert normalize(text)[0].value == pytest.approx(7.0)

    @pytest.mark.parametrize("blob", [None, "", "   ", "{not json", "42", 42, b"\xff\xfe"])
    def test_never_raises(self, blob):
        assert normalize(blob) == []

    def test_parse_results_raises_on_bad_json(self):
        with pytest.raises(ParseError) as exc_info:
            parse_results("{broken", analysis_id=7)
        assert exc_info.value.analysis_id == 7

    def test_parse_results_raises_on_scalar(self):
        with pytest.raises(ParseError):
            parse_results("true")
