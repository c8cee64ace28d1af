"""Tests for payload coercion helpers (nodes/_coerce.py)."""

from __future__ import annotations

import pytest

from nodes._coerce import as_mapping, json_size, to_bool, to_int, to_number


class TestAsMapping:
    def test_dict_is_copied(self):
        source = {"a": 1}
        result = as_mapping(source)
        assert result == source
        assert result is not source

    def test_none_is_empty(self):
        assert as_mapping(None) == {}

    @pytest.mark.parametrize("value", ["text", 3, [1, 2]])
    def test_scalars_land_under_value(self, value):
        assert as_mapping(value) == {"value": value}


class TestNumbers:
    @pytest.mark.parametrize(
        "raw,expected",
        [("42", 42), (" 2.5 ", 2.5), (7, 7), (1.5, 1.5), (True, 1), ("-3", -3)],
    )
    def test_to_number(self, raw, expected):
        result = to_number(raw)
        assert result == expected
        assert type(result) is type(expected)

    @pytest.mark.parametrize("raw", ["", "   ", "abc", None])
    def test_to_number_rejects(self, raw):
        with pytest.raises(ValueError):
            to_number(raw)

    def test_to_int_falls_back(self):
        assert to_int("12", 0) == 12
        assert to_int("9.9", 0) == 9
        assert to_int("nope", 5) == 5
        assert to_int(None, 100) == 100


class TestBoolAndSize:
    @pytest.mark.parametrize("raw", ["true", "TRUE", "1", "yes", "on", True, 1])
    def test_truthy(self, raw):
        assert to_bool(raw) is True

    @pytest.mark.parametrize("raw", ["false", "0", "off", "", False, 0, None])
    def test_falsy(self, raw):
        assert to_bool(raw) is False

    def test_json_size(self):
        assert json_size({"a": 1}) == len('{"a": 1}')

    def test_json_size_of_circular_value_is_zero(self):
        value: dict = {}
        value["self"] = value
        assert json_size(value) == 0
