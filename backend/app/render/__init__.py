"""Renderer for simulated knowledge graphs."""

from backend.app.render.renderer import (
    FALLBACK_NODE_COLOR,
    NODE_COLORS,
    GraphRenderer,
    arrow_polygon,
    node_color,
)
from backend.app.render.surface import DisplayList, DrawCommand, DrawingSurface, display_list_factory
from backend.app.render.viewport import Viewport

__all__ = [
    "DisplayList",
    "DrawCommand",
    "DrawingSurface",
    "FALLBACK_NODE_COLOR",
    "GraphRenderer",
    "NODE_COLORS",
    "Viewport",
    "arrow_polygon",
    "display_list_factory",
    "node_color",
]
