"""Submission flow tests: replacement, restore on failure and stale responses."""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import Callable, Dict, List

from backend.app.config import AmbientGraphConfig, load_config
from backend.app.contracts import Edge, KnowledgeGraph, Node
from backend.app.extraction import GraphProvider, GraphProviderError
from backend.app.persistence import JSONGraphSnapshotStore
from backend.app.view import GraphViewAdapter, SubmissionCoordinator, SubmissionStatus
from backend.app.view.submissions import profile_for


def _graph(*labels: str) -> KnowledgeGraph:
    nodes = [Node(id=label.lower(), label=label, type="Feature") for label in labels]
    edges = [Edge(source=nodes[0].id, target=node.id) for node in nodes[1:]]
    return KnowledgeGraph(nodes=nodes, edges=edges)


class _FakeProvider(GraphProvider):
    """Provider double answering through a callable."""

    def __init__(self, handler: Callable[[str], KnowledgeGraph]) -> None:
        self._handler = handler
        self.calls: List[str] = []

    def extract_graph(self, text: str) -> KnowledgeGraph:
        self.calls.append(text)
        return self._handler(text)


def _coordinator(
    provider: GraphProvider | None,
    *,
    store: JSONGraphSnapshotStore | None = None,
    ambient_while_loading: bool = True,
    statuses: List[Dict] | None = None,
) -> tuple[GraphViewAdapter, SubmissionCoordinator]:
    adapter = GraphViewAdapter(load_config(), seed=1)
    adapter.mount(320, 240)

    async def _record(message: Dict) -> None:
        if statuses is not None:
            statuses.append(message)

    coordinator = SubmissionCoordinator(
        adapter,
        provider,
        ambient=AmbientGraphConfig(node_count=8, max_outgoing_edges=2, seed=5),
        snapshot_store=store,
        ambient_while_loading=ambient_while_loading,
        on_status=_record,
    )
    return adapter, coordinator


def test_profile_for_labeled_and_ambient_graphs() -> None:
    assert profile_for(_graph("A")) == "result"
    assert profile_for(KnowledgeGraph(nodes=[Node(id="x", type="Goal")])) == "ambient"


def test_show_initial_prefers_stored_snapshot(tmp_path: Path) -> None:
    store = JSONGraphSnapshotStore(tmp_path / "snapshot.json")
    adapter, coordinator = _coordinator(None, store=store)
    shown = coordinator.show_initial()
    assert len(shown.nodes) == 8
    assert adapter.profile_name == "ambient"

    store.save(_graph("Idea", "Goal"))
    restored = coordinator.show_initial()
    assert restored.node_ids() == ["idea", "goal"]
    assert adapter.profile_name == "result"


def test_successful_submission_replaces_graph_and_stores_it(tmp_path: Path) -> None:
    store = JSONGraphSnapshotStore(tmp_path / "snapshot.json")
    statuses: List[Dict] = []
    result = _graph("Naumu", "Founder", "Clarity")
    provider = _FakeProvider(lambda text: result)
    adapter, coordinator = _coordinator(provider, store=store, statuses=statuses)
    coordinator.show_initial()

    outcome = asyncio.run(coordinator.submit("  an app for founders  "))

    assert outcome.status is SubmissionStatus.SUCCEEDED
    assert outcome.graph == result
    assert adapter.graph == result
    assert adapter.profile_name == "result"
    assert store.load() == result
    assert [message["state"] for message in statuses] == ["loading", "replaced"]
    assert statuses[1]["graph"] == result.to_payload()
    assert not coordinator.is_loading


def test_blank_submission_is_ignored() -> None:
    provider = _FakeProvider(lambda text: _graph("A"))
    adapter, coordinator = _coordinator(provider)
    coordinator.show_initial()
    generation = adapter.graph_generation

    outcome = asyncio.run(coordinator.submit("   "))

    assert outcome.status is SubmissionStatus.IGNORED
    assert provider.calls == []
    assert adapter.graph_generation == generation


def test_failed_submission_restores_previous_graph(tmp_path: Path) -> None:
    store = JSONGraphSnapshotStore(tmp_path / "snapshot.json")
    previous = _graph("Old", "Idea")
    store.save(previous)
    statuses: List[Dict] = []

    def _fail(text: str) -> KnowledgeGraph:
        raise GraphProviderError("Failed to parse graph data")

    adapter, coordinator = _coordinator(_FakeProvider(_fail), store=store, statuses=statuses)
    coordinator.show_initial()

    outcome = asyncio.run(coordinator.submit("something new"))

    assert outcome.status is SubmissionStatus.FAILED
    assert outcome.error == "Failed to parse graph data"
    assert adapter.graph == previous
    assert adapter.profile_name == "result"
    assert store.load() == previous
    assert statuses[-1] == {
        "type": "status",
        "state": "error",
        "generation": 1,
        "message": "Failed to parse graph data",
    }


def test_failure_without_ambient_placeholder_keeps_graph_bound() -> None:
    previous = _graph("Old", "Idea")

    def _fail(text: str) -> KnowledgeGraph:
        raise RuntimeError("connection reset")

    adapter, coordinator = _coordinator(_FakeProvider(_fail), ambient_while_loading=False)
    adapter.set_graph(previous)
    state = adapter.state

    outcome = asyncio.run(coordinator.submit("text"))

    assert outcome.status is SubmissionStatus.FAILED
    assert outcome.error == "connection reset"
    assert adapter.state is state


def test_missing_provider_reports_failure() -> None:
    adapter, coordinator = _coordinator(None)
    coordinator.show_initial()
    outcome = asyncio.run(coordinator.submit("idea"))
    assert outcome.status is SubmissionStatus.FAILED
    assert adapter.profile_name == "ambient"


def test_latest_submission_wins() -> None:
    release_first = threading.Event()
    first_graph = _graph("First")
    second_graph = _graph("Second", "Reply")

    def _handler(text: str) -> KnowledgeGraph:
        if text == "first":
            release_first.wait(timeout=5)
            return first_graph
        return second_graph

    adapter, coordinator = _coordinator(_FakeProvider(_handler))
    coordinator.show_initial()

    async def _run():
        first_task = asyncio.create_task(coordinator.submit("first"))
        while not coordinator.is_loading:
            await asyncio.sleep(0)
        second = await coordinator.submit("second")
        release_first.set()
        first = await first_task
        return first, second

    first, second = asyncio.run(_run())

    assert second.status is SubmissionStatus.SUCCEEDED
    assert first.status is SubmissionStatus.STALE
    assert first.graph == first_graph
    assert adapter.graph == second_graph


def test_superseded_failure_does_not_restore() -> None:
    release_first = threading.Event()
    second_graph = _graph("Second")

    def _handler(text: str) -> KnowledgeGraph:
        if text == "first":
            release_first.wait(timeout=5)
            raise GraphProviderError("late failure")
        return second_graph

    adapter, coordinator = _coordinator(_FakeProvider(_handler))
    coordinator.show_initial()

    async def _run():
        first_task = asyncio.create_task(coordinator.submit("first"))
        while not coordinator.is_loading:
            await asyncio.sleep(0)
        await coordinator.submit("second")
        release_first.set()
        return await first_task

    first = asyncio.run(_run())

    assert first.status is SubmissionStatus.STALE
    assert first.error == "late failure"
    assert adapter.graph == second_graph


def test_response_after_unmount_is_discarded() -> None:
    release = threading.Event()

    def _handler(text: str) -> KnowledgeGraph:
        release.wait(timeout=5)
        return _graph("Late")

    adapter, coordinator = _coordinator(_FakeProvider(_handler))
    coordinator.show_initial()

    async def _run():
        task = asyncio.create_task(coordinator.submit("idea"))
        while not coordinator.is_loading:
            await asyncio.sleep(0)
        adapter.unmount()
        release.set()
        return await task

    outcome = asyncio.run(_run())

    assert outcome.status is SubmissionStatus.STALE
    assert not adapter.is_mounted


def test_clear_forgets_snapshot_and_shows_ambient(tmp_path: Path) -> None:
    store = JSONGraphSnapshotStore(tmp_path / "snapshot.json")
    store.save(_graph("Kept"))
    adapter, coordinator = _coordinator(None, store=store)
    coordinator.show_initial()
    generation = coordinator.generation

    graph = coordinator.clear()

    assert store.load() is None
    assert adapter.graph is graph
    assert adapter.profile_name == "ambient"
    assert coordinator.generation == generation + 1
