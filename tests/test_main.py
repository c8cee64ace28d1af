"""Command-line entry point."""

from __future__ import annotations

import json

from backend.main import main
from tests.conftest import make_edge, make_graph, make_node


def _write_flow(tmp_path, graph) -> str:
    path = tmp_path / "greeting.json"
    path.write_text(json.dumps(graph))
    return str(path)


def test_run_prints_log_entries(tmp_path, capsys, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    flow = _write_flow(
        tmp_path,
        make_graph(
            [make_node("t", "trigger"), make_node("e", "end", message="Hi {name}")],
            [make_edge("t", "e")],
        ),
    )

    code = main(["run", flow, "--input", '{"name": "Ada"}'])

    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    assert code == 0
    assert [(line["nodeId"], line["status"]) for line in lines][-1] == ("e", "success")
    assert lines[-1]["output"]["endMessage"] == "Hi Ada"
    assert lines[-1]["output"]["workflowId"] == "greeting"


def test_run_failure_exits_non_zero(tmp_path, capsys, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    flow = _write_flow(tmp_path, make_graph([make_node("e", "end")]))

    code = main(["run", flow])

    assert code == 1
    assert "Flow must have a trigger node" in capsys.readouterr().err


def test_plugins_lists_builtin_types(tmp_path, capsys, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    assert main(["plugins"]) == 0

    out = capsys.readouterr().out
    assert "http-request" in out
    assert "llm-agent" in out
