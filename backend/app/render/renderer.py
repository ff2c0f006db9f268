"""Draw a simulated knowledge graph onto a drawing surface."""
from __future__ import annotations

import logging
import math
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple

from backend.app.config import RenderConfig
from backend.app.contracts import Node
from backend.app.layout.simulation import SimulationState
from backend.app.render.surface import DrawingSurface, Point
from backend.app.render.viewport import Viewport

LOGGER = logging.getLogger(__name__)

NODE_COLORS: Mapping[str, str] = MappingProxyType(
    {
        "Product": "#FF6B6B",
        "Persona": "#4ECDC4",
        "Need": "#FFE66D",
        "Feature": "#1A535C",
        "ValueProposition": "#FF9F1C",
        "Constraint": "#555555",
        "Goal": "#95E1D3",
    }
)
FALLBACK_NODE_COLOR = "#ccc"

ARROW_WIDTH_RATIO = 1.6
ARROW_VERTEX_RATIO = 0.2


def node_color(node_type: Optional[str]) -> str:
    """Return the fill color for ``node_type``, falling back for unknown types."""

    if not node_type:
        return FALLBACK_NODE_COLOR
    return NODE_COLORS.get(node_type, FALLBACK_NODE_COLOR)


def arrow_polygon(
    start: Point,
    end: Point,
    *,
    length: float,
    relative_position: float,
    start_radius: float = 0.0,
    end_radius: float = 0.0,
) -> Optional[List[Point]]:
    """Return the four corners of an arrowhead pointing from ``start`` to ``end``.

    Positions are measured between the node boundaries, so ``start_radius``
    and ``end_radius`` are trimmed off the segment first. The tip sits at
    ``relative_position`` of the way along what remains, but never closer to
    the source boundary than one arrow length. Degenerate segments
    (self-loops, coincident endpoints) have no direction and get no arrow.
    """

    dx = end[0] - start[0]
    dy = end[1] - start[1]
    segment = math.hypot(dx, dy)
    if length <= 0 or not math.isfinite(segment) or segment <= 1e-9:
        return None

    def along(distance: float) -> Point:
        ratio = distance / segment
        return start[0] + dx * ratio, start[1] + dy * ratio

    span = max(segment - start_radius - end_radius - length, 0.0)
    tip_distance = start_radius + length + span * relative_position
    head = along(tip_distance)
    tail = along(tip_distance - length)
    vertex = along(tip_distance - length * (1 - ARROW_VERTEX_RATIO))
    half_width = length / ARROW_WIDTH_RATIO / 2
    angle = math.atan2(head[1] - tail[1], head[0] - tail[0]) - math.pi / 2
    return [
        head,
        (tail[0] + half_width * math.cos(angle), tail[1] + half_width * math.sin(angle)),
        vertex,
        (tail[0] - half_width * math.cos(angle), tail[1] - half_width * math.sin(angle)),
    ]


class GraphRenderer:
    """Stateless painter for the nodes and edges of a simulation."""

    def __init__(self, settings: Optional[RenderConfig] = None) -> None:
        self._settings = settings or RenderConfig()

    @property
    def settings(self) -> RenderConfig:
        return self._settings

    def node_radius(self, node: Node) -> float:
        radius = self._settings.node_radius
        if self._settings.scale_by_value:
            return radius * math.sqrt(node.value)
        return radius

    def hit_radius(self, node: Node) -> float:
        """Return the radius of the invisible pointer target around ``node``."""

        return self.node_radius(node) * self._settings.hit_radius_scale

    def draw(
        self,
        surface: DrawingSurface,
        state: Optional[SimulationState],
        viewport: Viewport,
    ) -> None:
        """Paint one frame: transparent clear, edges, then nodes and labels."""

        surface.clear()
        origin_x, origin_y = viewport.origin
        surface.set_transform(viewport.zoom, origin_x, origin_y)
        if state is None or not state.node_count:
            return
        self._draw_edges(surface, state, viewport.zoom)
        self._draw_nodes(surface, state, viewport.zoom)

    def _draw_edges(self, surface: DrawingSurface, state: SimulationState, zoom: float) -> None:
        settings = self._settings
        width = settings.edge_width / zoom
        positions = state.positions
        nodes = state.nodes
        for source_idx, target_idx in state.edge_endpoints:
            if source_idx == target_idx:
                continue
            start = (float(positions[source_idx, 0]), float(positions[source_idx, 1]))
            end = (float(positions[target_idx, 0]), float(positions[target_idx, 1]))
            surface.line(start[0], start[1], end[0], end[1], stroke=settings.edge_color, width=width)
            head = arrow_polygon(
                start,
                end,
                length=settings.arrow_length,
                relative_position=settings.arrow_relative_position,
                start_radius=self.node_radius(nodes[source_idx]),
                end_radius=self.node_radius(nodes[target_idx]),
            )
            if head is not None:
                surface.polygon(head, fill=settings.edge_color)

    def _draw_nodes(self, surface: DrawingSurface, state: SimulationState, zoom: float) -> None:
        settings = self._settings
        label_size = settings.label_font_size / zoom
        type_size = settings.type_font_size / zoom
        label_font = f"{label_size:.3f}px {settings.font_family}"
        type_font = f"italic {type_size:.3f}px {settings.font_family}"
        for idx, node in enumerate(state.nodes):
            x = float(state.positions[idx, 0])
            y = float(state.positions[idx, 1])
            radius = self.node_radius(node)
            surface.circle(x, y, radius, fill=node_color(node.type))
            if not node.label:
                continue
            label_y = y + radius + label_size
            surface.text(x, label_y, node.label, font=label_font, fill=settings.label_color)
            if node.type:
                surface.text(
                    x,
                    label_y + type_size + settings.type_label_gap,
                    node.type,
                    font=type_font,
                    fill=settings.type_label_color,
                )

    def hit_test(self, state: Optional[SimulationState], x: float, y: float) -> Optional[str]:
        """Return the id of the node whose hit area contains graph point ``(x, y)``.

        When hit areas overlap the closest node wins, with later-drawn nodes
        preferred on exact ties.
        """

        if state is None or not state.node_count:
            return None
        best: Optional[Tuple[float, str]] = None
        for idx, node in enumerate(state.nodes):
            distance = math.hypot(float(state.positions[idx, 0]) - x, float(state.positions[idx, 1]) - y)
            if distance > self.hit_radius(node):
                continue
            if best is None or distance <= best[0]:
                best = (distance, node.id)
        return best[1] if best else None


__all__ = [
    "FALLBACK_NODE_COLOR",
    "GraphRenderer",
    "NODE_COLORS",
    "arrow_polygon",
    "node_color",
]
