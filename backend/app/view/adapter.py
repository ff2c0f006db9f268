"""Mounted view owning the simulation, renderer and interaction controller."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional

from backend.app.config import AppConfig
from backend.app.contracts import KnowledgeGraph
from backend.app.interaction.controller import InteractionController, PointerEvent, WheelEvent
from backend.app.layout.simulation import SimulationState, initialize, reheat, step
from backend.app.render.renderer import GraphRenderer
from backend.app.render.surface import DrawingSurface, SurfaceFactory, display_list_factory
from backend.app.render.viewport import Viewport
from backend.app.view.scheduler import FrameScheduler

LOGGER = logging.getLogger(__name__)


class ViewPhase(str, Enum):
    UNMOUNTED = "unmounted"
    MOUNTED = "mounted"


class ViewNotMountedError(RuntimeError):
    """Raised when a mounted-only operation is used on an unmounted view."""


class GraphViewAdapter:
    """Lifecycle wrapper binding a displayed graph to its simulation.

    The adapter starts unmounted. :meth:`mount` creates the viewport and the
    interaction controller but no simulation; every :meth:`set_graph` call
    discards the previous simulation (pins included), binds a fresh one and
    reheats it. :meth:`unmount` stops frame scheduling and drops every
    reference so the view can be garbage collected.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        surface_factory: SurfaceFactory = display_list_factory,
        seed: Optional[int] = None,
    ) -> None:
        self._config = config
        self._surface_factory = surface_factory
        self._seed = seed
        self._renderer = GraphRenderer(config.render)
        self._phase = ViewPhase.UNMOUNTED
        self._viewport: Optional[Viewport] = None
        self._controller: Optional[InteractionController] = None
        self._surface: Optional[DrawingSurface] = None
        self._scheduler: Optional[FrameScheduler] = None
        self._graph: KnowledgeGraph = KnowledgeGraph.empty()
        self._profile_name: Optional[str] = None
        self._state: Optional[SimulationState] = None
        self._generation = 0

    @property
    def phase(self) -> ViewPhase:
        return self._phase

    @property
    def is_mounted(self) -> bool:
        return self._phase is ViewPhase.MOUNTED

    @property
    def graph(self) -> KnowledgeGraph:
        return self._graph

    @property
    def profile_name(self) -> Optional[str]:
        return self._profile_name

    @property
    def state(self) -> Optional[SimulationState]:
        return self._state

    @property
    def viewport(self) -> Viewport:
        return self._require(self._viewport)

    @property
    def controller(self) -> InteractionController:
        return self._require(self._controller)

    @property
    def renderer(self) -> GraphRenderer:
        return self._renderer

    @property
    def surface(self) -> Optional[DrawingSurface]:
        """Return the render surface, ``None`` until the first frame is drawn."""

        return self._surface

    @property
    def graph_generation(self) -> int:
        """Return a counter incremented on every graph replacement."""

        return self._generation

    def _require(self, value: Any) -> Any:
        if self._phase is not ViewPhase.MOUNTED or value is None:
            raise ViewNotMountedError("Graph view is not mounted")
        return value

    def mount(
        self,
        width: Optional[int] = None,
        height: Optional[int] = None,
        *,
        scheduler: Optional[FrameScheduler] = None,
    ) -> None:
        """Enter the mounted phase with an empty graph and no simulation."""

        if self.is_mounted:
            LOGGER.debug("Graph view already mounted")
            return
        view = self._config.view
        self._viewport = Viewport(max(1, width or view.default_width), max(1, height or view.default_height))
        self._controller = InteractionController(self._viewport, self._renderer, self._config.interaction)
        self._graph = KnowledgeGraph.empty()
        self._profile_name = None
        self._state = None
        self._scheduler = scheduler
        self._phase = ViewPhase.MOUNTED
        LOGGER.info("Mounted graph view at %dx%d", self._viewport.width, self._viewport.height)

    def unmount(self) -> None:
        """Tear down frame scheduling, listeners and simulation state."""

        if not self.is_mounted:
            return
        if self._scheduler is not None:
            self._scheduler.stop()
        if self._controller is not None:
            self._controller.release()
        self._scheduler = None
        self._controller = None
        self._surface = None
        self._viewport = None
        self._state = None
        self._graph = KnowledgeGraph.empty()
        self._profile_name = None
        self._phase = ViewPhase.UNMOUNTED
        LOGGER.info("Unmounted graph view")

    def set_graph(self, graph: KnowledgeGraph, profile: str = "result") -> SimulationState:
        """Replace the displayed graph wholesale and reheat the new layout.

        Raises:
            ViewNotMountedError: If the view is not mounted.
            KeyError: If ``profile`` is not a configured force profile.
        """

        controller = self.controller
        layout = self._config.layout
        force_profile = layout.profile(profile)
        state = initialize(
            graph,
            force_profile,
            initial_radius=layout.initial_radius,
            center=(layout.center_x, layout.center_y),
            seed=self._seed,
        )
        reheat(state)
        self._graph = graph
        self._profile_name = profile
        self._state = state
        self._generation += 1
        controller.bind(state)
        LOGGER.info(
            "Displaying %s graph with %d nodes and %d edges",
            profile,
            state.node_count,
            len(state.edges),
        )
        return state

    def resize(self, width: int, height: int) -> bool:
        changed = self.controller.resize(width, height)
        if changed and self._surface is not None:
            self._surface.resize(self.viewport.width, self.viewport.height)
        return changed

    def handle_pointer(self, event: PointerEvent) -> bool:
        return self.controller.handle_pointer(event)

    def handle_wheel(self, event: WheelEvent) -> bool:
        return self.controller.handle_wheel(event)

    def tick(self) -> bool:
        """Advance the simulation one step unless it has settled."""

        if not self.is_mounted or self._state is None or self._state.converged:
            return False
        step(self._state)
        return True

    def render_frame(self) -> DrawingSurface:
        """Draw the current state, creating the render surface on first use."""

        viewport = self.viewport
        if self._surface is None:
            self._surface = self._surface_factory(viewport.width, viewport.height)
            LOGGER.debug("Created render surface %dx%d", viewport.width, viewport.height)
        self._renderer.draw(self._surface, self._state, viewport)
        return self._surface

    def frame(self) -> DrawingSurface:
        self.tick()
        return self.render_frame()

    def frame_payload(self) -> Dict[str, Any]:
        """Advance one frame and describe it as a JSON-serializable message."""

        surface = self.frame()
        state = self._state
        to_payload = getattr(surface, "to_payload", None)
        return {
            "type": "frame",
            "commands": to_payload() if callable(to_payload) else [],
            "viewport": self.viewport.to_payload(),
            "spotlight": self.controller.spotlight.to_payload(),
            "profile": self._profile_name,
            "generation": self._generation,
            "alpha": round(state.alpha, 5) if state is not None else 0.0,
            "settled": state.converged if state is not None else True,
            "dragging": self.controller.dragging_node_id,
        }


__all__ = ["GraphViewAdapter", "ViewNotMountedError", "ViewPhase"]
