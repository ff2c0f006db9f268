from __future__ import annotations

import math

import numpy as np
import pytest

from backend.app.config import load_config
from backend.app.contracts import Edge, KnowledgeGraph, Node
from backend.app.graph import generate_ambient_graph
from backend.app.layout import (
    initialize,
    pin,
    reheat,
    set_alpha_target,
    settle,
    step,
    unpin,
    warm,
)


@pytest.fixture()
def result_profile():
    return load_config().layout.result


@pytest.fixture()
def pair_graph() -> KnowledgeGraph:
    return KnowledgeGraph(
        nodes=[
            Node(id="a", label="A", type="Product"),
            Node(id="b", label="B", type="Need"),
        ],
        edges=[Edge(source="a", target="b")],
    )


def _distance(state, first: str, second: str) -> float:
    ax, ay = state.position(first)
    bx, by = state.position(second)
    return math.hypot(ax - bx, ay - by)


def test_initialize_positions_every_unique_node(result_profile) -> None:
    graph = KnowledgeGraph(
        nodes=[Node(id=f"n{index}", type="Goal") for index in range(12)] + [Node(id="n0", type="Need")],
        edges=[Edge(source="n0", target="n1"), Edge(source="n2", target="nowhere")],
    )
    state = initialize(graph, result_profile, seed=1)
    assert state.node_count == 12
    assert state.positions.shape == (12, 2)
    assert np.isfinite(state.positions).all()
    assert len(state.edges) == 1
    assert state.dropped_edges[0].target == "nowhere"
    assert len({tuple(row) for row in state.positions.tolist()}) == 12


def test_empty_graph_is_a_valid_layout(result_profile) -> None:
    state = initialize(KnowledgeGraph.empty(), result_profile)
    assert state.node_count == 0
    settle(state, 50)
    reheat(state)
    assert state.kinetic_energy == 0.0
    assert state.positions_by_id() == {}


def test_step_is_deterministic_for_a_seed(result_profile) -> None:
    graph = generate_ambient_graph(30, seed=4)
    first = initialize(graph, result_profile, seed=9)
    second = initialize(graph, result_profile, seed=9)
    reheat(first)
    reheat(second)
    for _ in range(80):
        step(first)
        step(second)
    assert np.array_equal(first.positions, second.positions)
    assert np.array_equal(first.velocities, second.velocities)


def test_alpha_cools_towards_target_and_converges(result_profile, pair_graph) -> None:
    state = initialize(pair_graph, result_profile, seed=0)
    assert state.alpha == result_profile.reheat_alpha
    step(state)
    assert state.alpha == pytest.approx(result_profile.reheat_alpha * (1.0 - result_profile.alpha_decay))
    settle(state, 1000)
    assert state.converged
    assert state.tick_count < 1000


def test_pinned_node_stays_exact_and_unpin_releases(result_profile, pair_graph) -> None:
    state = initialize(pair_graph, result_profile, seed=2)
    assert pin(state, "a", 42.5, -17.25)
    for _ in range(60):
        step(state)
        assert state.position("a") == (42.5, -17.25)
    assert state.is_pinned("a")
    assert unpin(state, "a")
    assert not state.is_pinned("a")
    reheat(state)
    step(state)
    assert state.position("a") != (42.5, -17.25)


def test_pin_rejects_unknown_nodes_and_non_finite_coordinates(result_profile, pair_graph) -> None:
    state = initialize(pair_graph, result_profile)
    assert not pin(state, "ghost", 0.0, 0.0)
    assert not pin(state, "a", float("nan"), 0.0)
    assert not pin(state, "a", 0.0, float("inf"))
    assert not state.is_pinned("a")
    assert not unpin(state, "ghost")
    assert not unpin(state, "a")


def test_self_loop_never_produces_non_finite_coordinates(result_profile) -> None:
    graph = KnowledgeGraph(
        nodes=[Node(id="solo", label="Solo", type="Goal"), Node(id="peer", type="Need")],
        edges=[Edge(source="solo", target="solo"), Edge(source="solo", target="peer")],
    )
    state = initialize(graph, result_profile, seed=5)
    for _ in range(400):
        step(state)
    assert np.isfinite(state.positions).all()
    assert np.isfinite(state.velocities).all()
    assert len(state.edges) == 2


def test_coincident_nodes_are_separated(result_profile) -> None:
    graph = KnowledgeGraph(nodes=[Node(id=str(index), type="Need") for index in range(4)])
    state = initialize(graph, result_profile, seed=8)
    state.positions[:] = 0.0
    for _ in range(30):
        step(state)
    assert np.isfinite(state.positions).all()
    assert len({tuple(row) for row in state.positions.tolist()}) == 4


def test_reheat_injects_energy_after_convergence(result_profile, pair_graph) -> None:
    state = initialize(pair_graph, result_profile, seed=3)
    settle(state, 2000)
    assert state.converged
    assert state.kinetic_energy < 0.5
    reheat(state)
    assert state.alpha == result_profile.reheat_alpha
    assert state.kinetic_energy == pytest.approx(2 * result_profile.reheat_velocity)
    assert not state.converged


def test_reheat_leaves_pinned_nodes_at_rest(result_profile, pair_graph) -> None:
    state = initialize(pair_graph, result_profile, seed=3)
    pin(state, "a", 0.0, 0.0)
    reheat(state)
    assert state.velocities[state.index["a"]].tolist() == [0.0, 0.0]
    assert state.kinetic_energy == pytest.approx(result_profile.reheat_velocity)


def test_warm_keeps_simulation_running(result_profile, pair_graph) -> None:
    state = initialize(pair_graph, result_profile)
    settle(state, 2000)
    warm(state, 0.3)
    assert state.alpha >= 0.3
    for _ in range(500):
        step(state)
    assert state.alpha == pytest.approx(0.3, abs=1e-3)
    assert not state.converged
    set_alpha_target(state, 0.0)
    settle(state, 2000)
    assert state.converged


def test_two_linked_nodes_settle_near_rest_distance(result_profile, pair_graph) -> None:
    state = initialize(pair_graph, result_profile, seed=1)
    settle(state, 600)
    distance = _distance(state, "a", "b")
    assert np.isfinite(state.positions).all()
    assert abs(distance - result_profile.link_distance) < 25.0


def test_dangling_edge_is_dropped_without_error(result_profile) -> None:
    graph = KnowledgeGraph(
        nodes=[Node(id="x", label="X", type="Feature")],
        edges=[Edge(source="x", target="missing")],
    )
    state = initialize(graph, result_profile)
    assert list(state.index) == ["x"]
    assert state.edges == []
    assert state.edge_endpoints.shape == (0, 2)
    settle(state, 100)
    assert np.isfinite(state.positions).all()


def test_dragged_node_stays_put_while_peer_moves(result_profile, pair_graph) -> None:
    state = initialize(pair_graph, result_profile, seed=6)
    warm(state, result_profile.drag_alpha_target)
    assert pin(state, "a", 100.0, 100.0)
    step(state)
    set_alpha_target(state, 0.0)
    before = state.position("b")
    for _ in range(20):
        step(state)
        assert state.position("a") == (100.0, 100.0)
    assert state.position("b") != before
    assert state.is_pinned("a")
