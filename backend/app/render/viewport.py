"""Pan/zoom transform between graph space and screen pixels."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple


@dataclass
class Viewport:
    """Screen-space view onto the graph.

    The graph origin sits at the middle of the surface when no pan is applied,
    so a simulation centred on ``(0, 0)`` appears centred on screen. Pan
    offsets are stored in pixels; ``zoom`` is the scale factor ``k``.
    """

    width: int
    height: int
    zoom: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0

    @property
    def origin(self) -> Tuple[float, float]:
        return self.width / 2.0 + self.offset_x, self.height / 2.0 + self.offset_y

    def resize(self, width: int, height: int) -> bool:
        """Update the surface dimensions, returning whether they changed."""

        width = max(1, int(width))
        height = max(1, int(height))
        changed = (width, height) != (self.width, self.height)
        self.width, self.height = width, height
        return changed

    def graph_to_screen(self, x: float, y: float) -> Tuple[float, float]:
        origin_x, origin_y = self.origin
        return x * self.zoom + origin_x, y * self.zoom + origin_y

    def screen_to_graph(self, x: float, y: float) -> Tuple[float, float]:
        origin_x, origin_y = self.origin
        return (x - origin_x) / self.zoom, (y - origin_y) / self.zoom

    def pan_by(self, dx: float, dy: float) -> None:
        if math.isfinite(dx) and math.isfinite(dy):
            self.offset_x += dx
            self.offset_y += dy

    def zoom_at(self, factor: float, x: float, y: float, *, zoom_min: float, zoom_max: float) -> None:
        """Scale by ``factor`` keeping the graph point under ``(x, y)`` fixed on screen."""

        if not (math.isfinite(factor) and factor > 0):
            return
        anchor_x, anchor_y = self.screen_to_graph(x, y)
        self.zoom = min(zoom_max, max(zoom_min, self.zoom * factor))
        self.offset_x = x - self.width / 2.0 - anchor_x * self.zoom
        self.offset_y = y - self.height / 2.0 - anchor_y * self.zoom

    def to_payload(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "zoom": round(self.zoom, 4),
            "offset_x": round(self.offset_x, 3),
            "offset_y": round(self.offset_y, 3),
        }


__all__ = ["Viewport"]
