"""Nested variable extraction: paths, types, limits and failure handling."""

from __future__ import annotations

from backend.services.variable_extractor import (
    ExtractionLimits,
    NestedVariableExtractor,
    infer_type,
    preview,
)


def _paths(variables) -> list[str]:
    return [v.path for v in variables]


def _by_path(variables) -> dict:
    return {v.path: v for v in variables}


def test_nested_object_paths_and_depth() -> None:
    variables = NestedVariableExtractor().extract({"a": {"b": 1}}, "n1")
    found = _by_path(variables)

    assert _paths(variables) == ["a", "a.b"]
    assert found["a"].type == "object"
    assert found["a"].depth == 1
    assert found["a.b"].full_path == "n1.a.b"
    assert found["a.b"].depth == 2
    assert found["a.b"].actual_value == 1
    assert found["a.b"].parent_path == "a"
    assert found["a.b"].description == "Dynamic variable extracted from n1"


def test_arrays_emit_length_and_indexed_items() -> None:
    variables = NestedVariableExtractor().extract({"tags": ["x", "y"]}, "n1")

    assert _paths(variables) == ["tags", "tags.length", "tags[0]", "tags[1]"]
    found = _by_path(variables)
    assert found["tags.length"].actual_value == 2
    assert found["tags[1]"].type == "string"


def test_special_keys_use_bracket_quoting() -> None:
    variables = NestedVariableExtractor().extract({"headers": {"content-type": "json"}}, "n1")

    assert 'headers["content-type"]' in _paths(variables)


def test_scalar_output_yields_root_variable() -> None:
    variables = NestedVariableExtractor().extract("hello", "n1")

    assert len(variables) == 1
    assert variables[0].full_path == "n1.value"
    assert variables[0].type == "string"
    assert variables[0].depth == 0


def test_depth_limit_stops_recursion() -> None:
    value = {"l1": {"l2": {"l3": {"l4": 1}}}}
    variables = NestedVariableExtractor(ExtractionLimits(max_depth=3)).extract(value, "n1")

    assert _paths(variables) == ["l1", "l1.l2"]


def test_array_and_property_limits() -> None:
    limits = ExtractionLimits(max_array_items=2, max_properties_per_level=3)
    value = {"items": list(range(10)), **{f"k{i}": i for i in range(10)}}
    variables = NestedVariableExtractor(limits).extract(value, "n1")
    paths = _paths(variables)

    assert "items[1]" in paths
    assert "items[2]" not in paths
    assert len([p for p in paths if p.startswith("k")]) == 2


def test_total_variable_cap() -> None:
    limits = ExtractionLimits(max_total_variables=5)
    value = {f"k{i}": i for i in range(20)}

    assert len(NestedVariableExtractor(limits).extract(value, "n1")) == 5


def test_circular_references_are_visited_once() -> None:
    value: dict = {"name": "root"}
    value["self"] = value

    variables = NestedVariableExtractor().extract(value, "n1")

    assert _paths(variables) == ["name"]


def test_callables_are_skipped() -> None:
    variables = NestedVariableExtractor().extract({"fn": len, "ok": True}, "n1")

    assert _paths(variables) == ["ok"]


def test_oversized_values_are_skipped() -> None:
    limits = ExtractionLimits(max_value_size=50)
    variables = NestedVariableExtractor(limits).extract({"big": "x" * 100, "small": "y"}, "n1")

    assert _paths(variables) == ["small"]


def test_internal_errors_yield_empty_set(monkeypatch) -> None:
    extractor = NestedVariableExtractor()

    def explode(*_args, **_kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(extractor, "_make", explode)

    assert extractor.extract({"a": 1}, "n1") == []


def test_infer_type_tags() -> None:
    assert infer_type(None) == "null"
    assert infer_type(True) == "boolean"
    assert infer_type(3.5) == "number"
    assert infer_type("s") == "string"
    assert infer_type([1]) == "array"
    assert infer_type({"a": 1}) == "object"
    assert infer_type(object()) == "undefined"


def test_preview_truncation() -> None:
    assert preview("x" * 150) == "x" * 100 + "..."
    assert preview([1, 2, 3, 4, 5]) == [1, 2, 3, "..."]
    summary = preview({f"key{i}": "v" * 50 for i in range(5)})
    assert summary == "{key0, key1, key2, ...}"
