"""Translate pointer, touch and wheel input into layout and viewport changes."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from typing_extensions import Literal

from backend.app.config import InteractionConfig
from backend.app.layout.simulation import SimulationState, pin, set_alpha_target, warm
from backend.app.render.renderer import GraphRenderer
from backend.app.render.viewport import Viewport

LOGGER = logging.getLogger(__name__)

WHEEL_DELTA_LIMIT = 120.0

PointerKind = Literal["down", "move", "up", "cancel"]


@dataclass(frozen=True)
class PointerEvent:
    """A pointer event in surface pixel coordinates.

    Mouse, pen and touch input all arrive through this type; ``target_tag`` is
    the lower-cased tag name of the element the event originated on, if any.
    """

    kind: PointerKind
    x: float
    y: float
    pointer_id: int = 0
    pointer_type: str = "mouse"
    button: int = 0
    target_tag: Optional[str] = None


@dataclass(frozen=True)
class WheelEvent:
    x: float
    y: float
    delta_y: float
    target_tag: Optional[str] = None


@dataclass
class DragSession:
    """Node held by a pointer, with the offset from the pointer to the node centre."""

    node_id: str
    pointer_id: int
    offset_x: float = 0.0
    offset_y: float = 0.0

    def anchor(self, graph_x: float, graph_y: float) -> Tuple[float, float]:
        return graph_x + self.offset_x, graph_y + self.offset_y


@dataclass
class PanSession:
    pointer_id: int
    start_x: float
    start_y: float
    start_offset_x: float
    start_offset_y: float
    moved: bool = False


@dataclass
class Spotlight:
    """Pointer position as percentages of the viewport."""

    mouse_x: float = 50.0
    mouse_y: float = 50.0

    def to_payload(self) -> dict:
        return {"mouse_x": round(self.mouse_x, 2), "mouse_y": round(self.mouse_y, 2)}


class InteractionController:
    """Own the drag and pan sessions for one mounted view."""

    def __init__(
        self,
        viewport: Viewport,
        renderer: GraphRenderer,
        settings: Optional[InteractionConfig] = None,
    ) -> None:
        self.viewport = viewport
        self._renderer = renderer
        self._settings = settings or InteractionConfig()
        self._state: Optional[SimulationState] = None
        self._drag: Optional[DragSession] = None
        self._pan: Optional[PanSession] = None
        self.spotlight = Spotlight()

    @property
    def dragging_node_id(self) -> Optional[str]:
        return self._drag.node_id if self._drag else None

    @property
    def is_panning(self) -> bool:
        return self._pan is not None

    def bind(self, state: Optional[SimulationState]) -> None:
        """Attach a new simulation, abandoning any session bound to the old one."""

        if self._drag is not None:
            LOGGER.debug("Dropping drag of %s on graph replacement", self._drag.node_id)
        self._state = state
        self._drag = None
        self._pan = None

    def release(self) -> None:
        self.bind(None)

    def _is_form_control(self, tag: Optional[str]) -> bool:
        return bool(tag) and tag.lower() in self._settings.form_control_tags

    def handle_pointer(self, event: PointerEvent) -> bool:
        """Dispatch ``event`` and return whether it was consumed."""

        if self._is_form_control(event.target_tag):
            return False
        if not (math.isfinite(event.x) and math.isfinite(event.y)):
            LOGGER.debug("Ignoring pointer event with non-finite coordinates")
            return False
        if event.kind == "down":
            return self._pointer_down(event)
        if event.kind == "move":
            return self._pointer_move(event)
        return self._pointer_end(event)

    def _pointer_down(self, event: PointerEvent) -> bool:
        if event.button != 0 or self._drag is not None or self._pan is not None:
            return False
        graph_x, graph_y = self.viewport.screen_to_graph(event.x, event.y)
        node_id = self._renderer.hit_test(self._state, graph_x, graph_y)
        if node_id is not None and self._state is not None:
            node_x, node_y = self._state.position(node_id)
            self._drag = DragSession(
                node_id=node_id,
                pointer_id=event.pointer_id,
                offset_x=node_x - graph_x,
                offset_y=node_y - graph_y,
            )
            pin(self._state, node_id, node_x, node_y)
            warm(self._state, self._state.profile.drag_alpha_target)
            LOGGER.debug("Drag started on %s", node_id)
            return True
        self._pan = PanSession(
            pointer_id=event.pointer_id,
            start_x=event.x,
            start_y=event.y,
            start_offset_x=self.viewport.offset_x,
            start_offset_y=self.viewport.offset_y,
        )
        return True

    def _pointer_move(self, event: PointerEvent) -> bool:
        self._track_spotlight(event.x, event.y)
        if self._drag is not None and event.pointer_id == self._drag.pointer_id:
            if self._state is None:
                return False
            graph_x, graph_y = self._drag.anchor(*self.viewport.screen_to_graph(event.x, event.y))
            return pin(self._state, self._drag.node_id, graph_x, graph_y)
        pan = self._pan
        if pan is None or event.pointer_id != pan.pointer_id:
            return False
        delta_x = event.x - pan.start_x
        delta_y = event.y - pan.start_y
        threshold = self._settings.pan_move_threshold
        if not pan.moved and (abs(delta_x) >= threshold or abs(delta_y) >= threshold):
            pan.moved = True
        if pan.moved:
            self.viewport.offset_x = pan.start_offset_x + delta_x
            self.viewport.offset_y = pan.start_offset_y + delta_y
        return pan.moved

    def _pointer_end(self, event: PointerEvent) -> bool:
        if self._drag is not None and event.pointer_id == self._drag.pointer_id:
            if event.kind == "up" and self._state is not None:
                graph_x, graph_y = self._drag.anchor(*self.viewport.screen_to_graph(event.x, event.y))
                pin(self._state, self._drag.node_id, graph_x, graph_y)
            if self._state is not None:
                set_alpha_target(self._state, 0.0)
            LOGGER.debug("Drag ended on %s", self._drag.node_id)
            self._drag = None
            return True
        if self._pan is not None and event.pointer_id == self._pan.pointer_id:
            self._pan = None
            return True
        return False

    def handle_wheel(self, event: WheelEvent) -> bool:
        """Zoom around the cursor; returns whether the viewport changed."""

        if self._is_form_control(event.target_tag):
            return False
        if not all(math.isfinite(value) for value in (event.x, event.y, event.delta_y)):
            return False
        delta = max(-WHEEL_DELTA_LIMIT, min(WHEEL_DELTA_LIMIT, event.delta_y))
        before = self.viewport.zoom
        self.viewport.zoom_at(
            math.exp(-delta * self._settings.zoom_sensitivity),
            event.x,
            event.y,
            zoom_min=self._settings.zoom_min,
            zoom_max=self._settings.zoom_max,
        )
        return self.viewport.zoom != before

    def resize(self, width: int, height: int) -> bool:
        return self.viewport.resize(width, height)

    def _track_spotlight(self, x: float, y: float) -> None:
        self.spotlight.mouse_x = max(0.0, min(100.0, x / self.viewport.width * 100.0))
        self.spotlight.mouse_y = max(0.0, min(100.0, y / self.viewport.height * 100.0))


__all__ = [
    "DragSession",
    "InteractionController",
    "PanSession",
    "PointerEvent",
    "Spotlight",
    "WheelEvent",
]
