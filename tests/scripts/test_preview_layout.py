"""Tests for the headless layout preview utility."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from backend.app.graph import generate_ambient_graph
from scripts.preview_layout import main, preview

FIXTURE_PATH = Path(__file__).resolve().parents[1] / "fixtures" / "golden" / "knowledge_graph.json"


def test_preview_lays_out_fixture_graph(capsys: pytest.CaptureFixture[str]) -> None:
    """The fixture graph settles and every node is reported once."""

    exit_code = main([str(FIXTURE_PATH), "--steps", "600", "--seed", "3"])

    assert exit_code == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["profile"] == "result"
    assert summary["settled"] is True
    assert [item["id"] for item in summary["positions"]] == [
        "naumu",
        "founder",
        "clarity",
        "idea-graph",
        "structured-thinking",
        "launch",
    ]


def test_preview_generates_ambient_graph_without_file(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = main(["--steps", "10", "--seed", "1"])

    assert exit_code == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["profile"] == "ambient"
    assert summary["steps"] == 10
    assert summary["settled"] is False
    assert len(summary["positions"]) == 40


def test_preview_is_deterministic_for_seed() -> None:
    graph = generate_ambient_graph(15, seed=2)
    first = preview(graph, profile="ambient", steps=50, seed=8)
    second = preview(graph, profile="ambient", steps=50, seed=8)
    assert first == second


def test_preview_rejects_negative_steps(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--steps", "-1"]) == 2
    assert "--steps" in capsys.readouterr().err


def test_preview_reports_unreadable_graph(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    broken = tmp_path / "graph.json"
    broken.write_text("[1, 2, 3]", encoding="utf-8")

    assert main([str(broken)]) == 1
    assert main([str(tmp_path / "missing.json")]) == 1
    assert "Unable to load graph" in capsys.readouterr().err
