"""Tests for JSON graph snapshot persistence."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from backend.app.contracts import Edge, KnowledgeGraph, Node
from backend.app.persistence import JSONGraphSnapshotStore, SnapshotStoreError


def _graph() -> KnowledgeGraph:
    return KnowledgeGraph(
        nodes=[
            Node(id="naumu", label="Naumu", type="Product", val=2.0),
            Node(id="clarity", label="Clarity", type="Need"),
        ],
        edges=[Edge(source="naumu", target="clarity", label="addresses")],
    )


def test_save_then_load_returns_same_graph(tmp_path: Path) -> None:
    store = JSONGraphSnapshotStore(tmp_path / "nested" / "snapshot.json")
    store.save(_graph())
    assert store.path.exists()
    assert store.load() == _graph()
    stored = json.loads(store.path.read_text(encoding="utf-8"))
    assert stored["nodes"][0] == {"id": "naumu", "label": "Naumu", "type": "Product", "val": 2.0}


def test_save_overwrites_previous_snapshot(tmp_path: Path) -> None:
    store = JSONGraphSnapshotStore(tmp_path / "snapshot.json")
    store.save(_graph())
    replacement = KnowledgeGraph(nodes=[Node(id="solo", label="Solo", type="Goal")])
    store.save(replacement)
    assert store.load() == replacement


def test_missing_and_empty_files_load_as_none(tmp_path: Path) -> None:
    store = JSONGraphSnapshotStore(tmp_path / "snapshot.json")
    assert store.load() is None
    store.path.write_text("   ", encoding="utf-8")
    assert store.load() is None


@pytest.mark.parametrize("content", ["{not json", "[]", '{"nodes": "x"}'])
def test_corrupt_snapshot_is_ignored(tmp_path: Path, caplog, content: str) -> None:
    store = JSONGraphSnapshotStore(tmp_path / "snapshot.json")
    store.path.write_text(content, encoding="utf-8")
    with caplog.at_level(logging.WARNING):
        assert store.load() is None
    assert "Corrupt graph snapshot" in caplog.text


def test_clear_removes_snapshot_and_tolerates_missing_file(tmp_path: Path) -> None:
    store = JSONGraphSnapshotStore(tmp_path / "snapshot.json")
    store.save(_graph())
    store.clear()
    assert not store.path.exists()
    store.clear()
    assert store.load() is None


def test_unwritable_location_raises_store_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")
    store = JSONGraphSnapshotStore(blocker / "snapshot.json")
    with pytest.raises(SnapshotStoreError):
        store.save(_graph())
