"""Iterative force simulation positioning the nodes of a knowledge graph.

The simulation state is a plain mutable container; the module-level
operations (:func:`initialize`, :func:`step`, :func:`reheat`, :func:`pin`,
:func:`unpin`) advance or adjust it in place and return it for chaining. The
cooling schedule follows the classic alpha model: every step moves ``alpha``
towards ``alpha_target`` and all forces are scaled by the current ``alpha``.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from backend.app.config import ForceProfileConfig
from backend.app.contracts import Edge, KnowledgeGraph, Node
from backend.app.graph.validation import sanitize_graph
from backend.app.layout.forces import CenterForce, Force, LinkForce, ManyBodyForce

LOGGER = logging.getLogger(__name__)

INITIAL_ANGLE = math.pi * (3 - math.sqrt(5))


@dataclass
class SimulationState:
    """Live layout state bound to one sanitized graph."""

    graph: KnowledgeGraph
    profile: ForceProfileConfig
    index: Dict[str, int]
    positions: np.ndarray
    velocities: np.ndarray
    fixed: np.ndarray
    pinned: np.ndarray
    edge_endpoints: np.ndarray
    forces: Tuple[Force, ...]
    rng: np.random.Generator
    alpha: float = 1.0
    alpha_target: float = 0.0
    tick_count: int = 0
    dropped_edges: Tuple[Edge, ...] = field(default_factory=tuple)

    @property
    def nodes(self) -> List[Node]:
        return self.graph.nodes

    @property
    def edges(self) -> List[Edge]:
        return self.graph.edges

    @property
    def node_count(self) -> int:
        return len(self.graph.nodes)

    @property
    def converged(self) -> bool:
        """Return whether the simulation has cooled below its minimum alpha."""

        return self.alpha < self.profile.alpha_min and self.alpha_target < self.profile.alpha_min

    @property
    def kinetic_energy(self) -> float:
        """Return the aggregate velocity magnitude over all nodes."""

        if not self.node_count:
            return 0.0
        return float(np.hypot(self.velocities[:, 0], self.velocities[:, 1]).sum())

    def position(self, node_id: str) -> Optional[Tuple[float, float]]:
        idx = self.index.get(node_id)
        if idx is None:
            return None
        return float(self.positions[idx, 0]), float(self.positions[idx, 1])

    def is_pinned(self, node_id: str) -> bool:
        idx = self.index.get(node_id)
        return idx is not None and bool(self.pinned[idx])

    def positions_by_id(self) -> Dict[str, Tuple[float, float]]:
        return {
            node.id: (float(self.positions[idx, 0]), float(self.positions[idx, 1]))
            for idx, node in enumerate(self.graph.nodes)
        }


def _initial_positions(count: int, radius: float, center: Tuple[float, float]) -> np.ndarray:
    """Place nodes on a phyllotaxis spiral so no two start at the same point."""

    if not count:
        return np.zeros((0, 2))
    order = np.arange(count, dtype=np.float64)
    distance = radius * np.sqrt(0.5 + order)
    angle = order * INITIAL_ANGLE
    return np.column_stack(
        (center[0] + distance * np.cos(angle), center[1] + distance * np.sin(angle))
    )


def build_forces(
    graph: KnowledgeGraph,
    index: Dict[str, int],
    profile: ForceProfileConfig,
    center: Tuple[float, float],
) -> Tuple[Force, ...]:
    """Create the link, charge and centering forces for ``graph``."""

    link = LinkForce.from_edges(
        graph.edges,
        index,
        distance=profile.link_distance,
        strength=profile.link_strength,
    )
    charge = ManyBodyForce(
        profile.charge_strength,
        distance_min=profile.distance_min,
        distance_max=profile.distance_max,
    )
    centering = CenterForce(center[0], center[1], strength=profile.center_strength)
    return (link, charge, centering)


def initialize(
    graph: KnowledgeGraph,
    profile: ForceProfileConfig,
    *,
    initial_radius: float = 10.0,
    center: Tuple[float, float] = (0.0, 0.0),
    seed: Optional[int] = None,
) -> SimulationState:
    """Bind ``graph`` to a fresh simulation.

    Duplicate nodes and edges referencing unknown nodes are dropped and
    logged; the caller never sees an exception for malformed data.

    Args:
        graph: Graph to lay out.
        profile: Force parameters to use.
        initial_radius: Spacing of the initial spiral placement.
        center: Point the centering force pulls towards.
        seed: Seed of the random source used for jiggle and reheat kicks.

    Returns:
        SimulationState: State with every surviving node positioned.
    """

    sanitized = sanitize_graph(graph)
    bound = sanitized.graph
    index = {node.id: idx for idx, node in enumerate(bound.nodes)}
    count = len(bound.nodes)
    endpoints = np.array(
        [(index[edge.source], index[edge.target]) for edge in bound.edges],
        dtype=np.intp,
    ).reshape(-1, 2)
    state = SimulationState(
        graph=bound,
        profile=profile,
        index=index,
        positions=_initial_positions(count, initial_radius, center),
        velocities=np.zeros((count, 2)),
        fixed=np.full((count, 2), np.nan),
        pinned=np.zeros(count, dtype=bool),
        edge_endpoints=endpoints,
        forces=build_forces(bound, index, profile, center),
        rng=np.random.default_rng(seed),
        alpha=profile.reheat_alpha,
        alpha_target=0.0,
        dropped_edges=sanitized.dropped_edges,
    )
    LOGGER.debug("Initialized simulation with %d nodes and %d edges", count, len(bound.edges))
    return state


def step(state: SimulationState) -> SimulationState:
    """Advance the simulation by one tick.

    Pinned nodes are reset to their pinned coordinates after integration so
    forces never move them, while their positions still feed every force.
    Rows that end up non-finite are restored to their previous position.
    """

    profile = state.profile
    state.alpha += (state.alpha_target - state.alpha) * profile.alpha_decay
    state.tick_count += 1
    if not state.node_count:
        return state

    previous = state.positions.copy()
    for force in state.forces:
        force.apply(state.positions, state.velocities, state.alpha, state.rng)

    free = ~state.pinned
    state.velocities[free] *= 1.0 - profile.velocity_decay
    state.positions[free] += state.velocities[free]
    state.positions[state.pinned] = state.fixed[state.pinned]
    state.velocities[state.pinned] = 0.0

    invalid = ~np.isfinite(state.positions).all(axis=1) | ~np.isfinite(state.velocities).all(axis=1)
    if invalid.any():
        LOGGER.warning(
            "Restoring %d node(s) with non-finite coordinates at tick %d",
            int(invalid.sum()),
            state.tick_count,
        )
        state.positions[invalid] = previous[invalid]
        state.velocities[invalid] = 0.0
    return state


def settle(state: SimulationState, max_steps: int) -> SimulationState:
    """Step until the simulation converges or ``max_steps`` ticks have run."""

    for _ in range(max(0, max_steps)):
        if state.converged:
            break
        step(state)
    return state


def reheat(state: SimulationState) -> SimulationState:
    """Re-inject energy so the layout visibly settles again.

    Alpha is reset to the profile's reheat value and every free node gets a
    velocity of ``reheat_velocity`` in a random direction.
    """

    profile = state.profile
    state.alpha = profile.reheat_alpha
    if not state.node_count:
        return state
    free = ~state.pinned
    angles = state.rng.uniform(0.0, 2.0 * math.pi, size=int(free.sum()))
    state.velocities[free] = np.column_stack((np.cos(angles), np.sin(angles))) * profile.reheat_velocity
    return state


def set_alpha_target(state: SimulationState, target: float) -> SimulationState:
    """Keep the simulation warm (``target > 0``) or let it cool (``0``)."""

    state.alpha_target = max(0.0, min(1.0, float(target)))
    return state


def warm(state: SimulationState, target: float) -> SimulationState:
    """Hold alpha at ``target`` or above, e.g. for the duration of a drag."""

    set_alpha_target(state, target)
    state.alpha = max(state.alpha, state.alpha_target)
    return state


def pin(state: SimulationState, node_id: str, x: float, y: float) -> bool:
    """Force ``node_id`` to ``(x, y)`` until it is unpinned.

    Returns:
        bool: ``False`` when the node is unknown or the coordinates are not finite.
    """

    idx = state.index.get(node_id)
    if idx is None:
        LOGGER.debug("Ignoring pin for unknown node %s", node_id)
        return False
    if not (math.isfinite(x) and math.isfinite(y)):
        LOGGER.warning("Ignoring non-finite pin for node %s: (%s, %s)", node_id, x, y)
        return False
    state.fixed[idx] = (x, y)
    state.pinned[idx] = True
    state.positions[idx] = (x, y)
    state.velocities[idx] = 0.0
    return True


def unpin(state: SimulationState, node_id: str) -> bool:
    """Release a pinned node so forces move it again."""

    idx = state.index.get(node_id)
    if idx is None:
        return False
    was_pinned = bool(state.pinned[idx])
    state.fixed[idx] = np.nan
    state.pinned[idx] = False
    return was_pinned


__all__ = [
    "SimulationState",
    "build_forces",
    "initialize",
    "pin",
    "reheat",
    "set_alpha_target",
    "settle",
    "step",
    "unpin",
    "warm",
]
