"""Force models used by the layout simulation.

Every force mutates the velocity array in place; positions are only moved by
the integration step in :mod:`backend.app.layout.simulation`. Arrays are
``(n, 2)`` float arrays indexed by node position in the bound graph.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from backend.app.contracts import Edge

LOGGER = logging.getLogger(__name__)

JIGGLE_SCALE = 1e-6


def jiggle(rng: np.random.Generator, shape: Tuple[int, ...]) -> np.ndarray:
    """Return tiny random offsets used to separate coincident points."""

    return (rng.random(shape) - 0.5) * JIGGLE_SCALE


class Force(ABC):
    """A velocity contribution evaluated once per simulation step."""

    name: str = "force"

    @abstractmethod
    def apply(
        self,
        positions: np.ndarray,
        velocities: np.ndarray,
        alpha: float,
        rng: np.random.Generator,
    ) -> None:
        """Add this force's contribution to ``velocities``."""


class ManyBodyForce(Force):
    """Pairwise force between every pair of nodes, repelling for negative strength.

    The velocity change of node ``i`` caused by node ``j`` is
    ``(x_j - x_i) * strength * alpha / d²``. Squared distances below
    ``distance_min²`` are softened to ``sqrt(distance_min² * d²)`` and exactly
    coincident pairs are separated by a random jiggle first, so the result is
    always finite.
    """

    name = "charge"

    def __init__(
        self,
        strength: float,
        *,
        distance_min: float = 1.0,
        distance_max: Optional[float] = None,
    ) -> None:
        self.strength = float(strength)
        self._distance_min2 = float(distance_min) ** 2
        self._distance_max2 = float(distance_max) ** 2 if distance_max is not None else None

    def apply(
        self,
        positions: np.ndarray,
        velocities: np.ndarray,
        alpha: float,
        rng: np.random.Generator,
    ) -> None:
        count = positions.shape[0]
        if count < 2 or alpha == 0.0:
            return
        delta = positions[np.newaxis, :, :] - positions[:, np.newaxis, :]
        dist2 = np.einsum("ijk,ijk->ij", delta, delta)
        np.fill_diagonal(dist2, np.inf)

        coincident = dist2 == 0.0
        if coincident.any():
            delta[coincident] = jiggle(rng, (int(coincident.sum()), 2))
            dist2[coincident] = np.einsum("ij,ij->i", delta[coincident], delta[coincident])

        softened = np.where(dist2 < self._distance_min2, np.sqrt(self._distance_min2 * dist2), dist2)
        weight = (self.strength * alpha) / softened
        if self._distance_max2 is not None:
            weight[dist2 >= self._distance_max2] = 0.0
        velocities += np.einsum("ij,ijk->ik", weight, delta)


class LinkForce(Force):
    """Spring force pulling the endpoints of every edge towards a rest distance.

    Default per-link strength is ``1 / min(degree(source), degree(target))`` so
    hubs are not over-constrained, and the correction is split between the two
    endpoints in proportion to their degrees. Self-loops exert no net force and
    are excluded up front.
    """

    name = "link"

    def __init__(
        self,
        sources: Sequence[int],
        targets: Sequence[int],
        *,
        node_count: int,
        distance: float,
        strength: Optional[float] = None,
    ) -> None:
        self.sources = np.asarray(sources, dtype=np.intp)
        self.targets = np.asarray(targets, dtype=np.intp)
        if self.sources.shape != self.targets.shape:
            raise ValueError("sources and targets must have the same length")
        self.distance = float(distance)
        degree = np.zeros(node_count, dtype=np.float64)
        np.add.at(degree, self.sources, 1.0)
        np.add.at(degree, self.targets, 1.0)
        if self.sources.size:
            source_degree = degree[self.sources]
            target_degree = degree[self.targets]
            if strength is None:
                self.strengths = 1.0 / np.minimum(source_degree, target_degree)
            else:
                self.strengths = np.full(self.sources.shape, float(strength))
            self.bias = source_degree / (source_degree + target_degree)
        else:
            self.strengths = np.zeros(0)
            self.bias = np.zeros(0)

    @classmethod
    def from_edges(
        cls,
        edges: Iterable[Edge],
        index: Dict[str, int],
        *,
        distance: float,
        strength: Optional[float] = None,
    ) -> "LinkForce":
        """Build the force from edges whose endpoints are present in ``index``."""

        sources: List[int] = []
        targets: List[int] = []
        self_loops = 0
        for edge in edges:
            source = index.get(edge.source)
            target = index.get(edge.target)
            if source is None or target is None:
                LOGGER.debug("Link force skipping unresolved edge %s->%s", edge.source, edge.target)
                continue
            if source == target:
                self_loops += 1
                continue
            sources.append(source)
            targets.append(target)
        if self_loops:
            LOGGER.debug("Link force ignoring %d self-loop edge(s)", self_loops)
        return cls(sources, targets, node_count=len(index), distance=distance, strength=strength)

    @property
    def size(self) -> int:
        return int(self.sources.size)

    def apply(
        self,
        positions: np.ndarray,
        velocities: np.ndarray,
        alpha: float,
        rng: np.random.Generator,
    ) -> None:
        if not self.size or alpha == 0.0:
            return
        sources, targets = self.sources, self.targets
        delta = (positions[targets] + velocities[targets]) - (positions[sources] + velocities[sources])
        length = np.hypot(delta[:, 0], delta[:, 1])
        degenerate = length == 0.0
        if degenerate.any():
            delta[degenerate] = jiggle(rng, (int(degenerate.sum()), 2))
            length[degenerate] = np.hypot(delta[degenerate, 0], delta[degenerate, 1])
        factor = (length - self.distance) / length * alpha * self.strengths
        shift = delta * factor[:, np.newaxis]
        np.add.at(velocities, targets, -shift * self.bias[:, np.newaxis])
        np.add.at(velocities, sources, shift * (1.0 - self.bias)[:, np.newaxis])


class CenterForce(Force):
    """Weak pull of every node towards a fixed point, proportional to its offset."""

    name = "center"

    def __init__(self, x: float = 0.0, y: float = 0.0, *, strength: float = 0.02) -> None:
        self.center = np.array([float(x), float(y)])
        self.strength = float(strength)

    def apply(
        self,
        positions: np.ndarray,
        velocities: np.ndarray,
        alpha: float,
        rng: np.random.Generator,
    ) -> None:
        if self.strength == 0.0 or alpha == 0.0 or not positions.shape[0]:
            return
        velocities += (self.center - positions) * (self.strength * alpha)


__all__ = ["CenterForce", "Force", "LinkForce", "ManyBodyForce", "jiggle"]
