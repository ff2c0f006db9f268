"""FastAPI application factory for the naumu backend."""
from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field
from typing_extensions import Literal

from backend.app.config import AppConfig, load_config
from backend.app.extraction import (
    AnthropicGraphProvider,
    GraphProvider,
    GraphProviderError,
    GraphProviderUnavailableError,
)
from backend.app.graph import generate_ambient_graph, graph_from_payload
from backend.app.layout import initialize, settle
from backend.app.persistence import GraphSnapshotStoreProtocol, JSONGraphSnapshotStore, SnapshotStoreError
from backend.app.render import Viewport
from backend.app.ui import ViewSession, render_view_html

LOGGER = logging.getLogger(__name__)

MAX_LAYOUT_STEPS = 5000


class GraphRequest(BaseModel):
    """Request payload for the text-to-graph endpoint."""

    input: str = Field("", description="Free-form idea to turn into a graph")


class LayoutRequest(BaseModel):
    """Request payload for a headless layout run."""

    graph: Dict[str, Any]
    profile: Literal["ambient", "result"] = "result"
    steps: int = Field(300, ge=0, le=MAX_LAYOUT_STEPS)
    seed: Optional[int] = None
    width: Optional[int] = Field(default=None, ge=1)
    height: Optional[int] = Field(default=None, ge=1)


class NodePosition(BaseModel):
    id: str
    x: float
    y: float
    pinned: bool = False
    screen_x: Optional[float] = None
    screen_y: Optional[float] = None


class LayoutResponse(BaseModel):
    profile: str
    steps: int
    alpha: float
    settled: bool
    positions: List[NodePosition]
    dropped_edges: int = 0


def _build_default_provider(config: AppConfig) -> Optional[GraphProvider]:
    """Create the Anthropic provider, or ``None`` when no API key is configured."""

    try:
        return AnthropicGraphProvider(settings=config.provider)
    except GraphProviderUnavailableError as exc:
        LOGGER.warning("Graph provider unavailable: %s", exc)
        return None


def create_app(
    config: AppConfig | None = None,
    provider: Optional[GraphProvider] = None,
    snapshot_store: Optional[GraphSnapshotStoreProtocol] = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        config: Optional pre-loaded configuration. If omitted, the default
            configuration defined in config.yaml is used.
        provider: Optional graph provider. When omitted the factory builds the
            Anthropic provider; without an API key graph requests return ``503``.
        snapshot_store: Optional snapshot store. Defaults to the JSON file
            configured under ``storage.snapshot_path``.

    Returns:
        FastAPI: Configured FastAPI application.
    """

    resolved_config = config or load_config()
    app = FastAPI(title="naumu API", version=resolved_config.pipeline.version)
    app.state.app_config = resolved_config

    allowed_origins = resolved_config.ui.allowed_origins
    if allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    provider_instance = provider if provider is not None else _build_default_provider(resolved_config)
    app.state.graph_provider = provider_instance
    if snapshot_store is None:
        root_dir = Path(__file__).resolve().parents[2]
        snapshot_path = (root_dir / resolved_config.storage.snapshot_path).resolve()
        snapshot_store = JSONGraphSnapshotStore(snapshot_path)
    app.state.snapshot_store = snapshot_store
    app.state.provider_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="graph-provider")

    @app.get("/health", tags=["system"], summary="Service health probe")
    def health() -> dict[str, str]:
        """Return service health information."""

        return {"status": "ok", "pipeline_version": resolved_config.pipeline.version}

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    def index() -> HTMLResponse:
        return HTMLResponse(render_view_html(resolved_config.ui, resolved_config.interaction))

    @app.get("/api/graph/ambient", tags=["graph"], summary="Generate an ambient graph")
    def ambient_graph(seed: Optional[int] = Query(default=None)) -> Dict[str, Any]:
        ambient = resolved_config.ambient
        graph = generate_ambient_graph(
            ambient.node_count,
            max_outgoing_edges=ambient.max_outgoing_edges,
            seed=seed if seed is not None else ambient.seed,
        )
        return graph.to_payload()

    @app.post("/api/graph", tags=["graph"], summary="Turn free-form text into a graph")
    def create_graph(request: GraphRequest) -> Dict[str, Any]:
        """Call the graph provider for ``request.input``."""

        if not request.input.strip():
            raise HTTPException(status_code=400, detail="Input is required")
        graph_provider: Optional[GraphProvider] = getattr(app.state, "graph_provider", None)
        if graph_provider is None:
            raise HTTPException(status_code=503, detail="Graph provider unavailable")
        start = perf_counter()
        try:
            graph = graph_provider.extract_graph(request.input)
        except GraphProviderError as exc:
            LOGGER.error("Graph extraction failed after %.2fs: %s", perf_counter() - start, exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        LOGGER.info("Graph extraction finished in %.2fs", perf_counter() - start)
        return graph.to_payload()

    @app.get("/api/graph/snapshot", tags=["graph"], summary="Return the stored graph")
    def read_snapshot() -> Dict[str, Any]:
        stored = app.state.snapshot_store.load()
        if stored is None:
            raise HTTPException(status_code=404, detail="No stored graph")
        return stored.to_payload()

    @app.put("/api/graph/snapshot", tags=["graph"], summary="Store the displayed graph")
    def write_snapshot(payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            graph = graph_from_payload(payload)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        try:
            app.state.snapshot_store.save(graph)
        except SnapshotStoreError as exc:
            raise HTTPException(status_code=500, detail="Unable to store graph") from exc
        return graph.to_payload()

    @app.delete("/api/graph/snapshot", tags=["graph"], summary="Forget the stored graph")
    def delete_snapshot() -> Dict[str, bool]:
        try:
            app.state.snapshot_store.clear()
        except SnapshotStoreError as exc:
            raise HTTPException(status_code=500, detail="Unable to clear graph") from exc
        return {"cleared": True}

    @app.post("/api/layout", tags=["layout"], summary="Run the force layout headlessly")
    def run_layout(request: LayoutRequest) -> LayoutResponse:
        try:
            graph = graph_from_payload(request.graph)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        layout = resolved_config.layout
        state = initialize(
            graph,
            layout.profile(request.profile),
            initial_radius=layout.initial_radius,
            center=(layout.center_x, layout.center_y),
            seed=request.seed,
        )
        settle(state, request.steps)
        viewport: Optional[Viewport] = None
        if request.width is not None and request.height is not None:
            viewport = Viewport(request.width, request.height)
        positions: List[NodePosition] = []
        for node_id, (x, y) in state.positions_by_id().items():
            screen = viewport.graph_to_screen(x, y) if viewport is not None else (None, None)
            positions.append(
                NodePosition(
                    id=node_id,
                    x=x,
                    y=y,
                    pinned=state.is_pinned(node_id),
                    screen_x=screen[0],
                    screen_y=screen[1],
                )
            )
        return LayoutResponse(
            profile=request.profile,
            steps=state.tick_count,
            alpha=state.alpha,
            settled=state.converged,
            positions=positions,
            dropped_edges=len(state.dropped_edges),
        )

    @app.websocket("/ws/view")
    async def view_socket(
        websocket: WebSocket,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> None:
        """Stream display-list frames and apply client input for one view."""

        await websocket.accept()
        session = ViewSession(
            resolved_config,
            send=websocket.send_json,
            provider=getattr(app.state, "graph_provider", None),
            snapshot_store=app.state.snapshot_store,
            executor=app.state.provider_executor,
        )
        try:
            await session.open(width, height)
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    await websocket.send_json({"type": "error", "message": "Messages must be JSON"})
                    continue
                await session.handle(message)
        except WebSocketDisconnect:
            LOGGER.info("View client disconnected")
        finally:
            await session.close()

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # pragma: no cover - network resource cleanup
        graph_provider = getattr(app.state, "graph_provider", None)
        if graph_provider is not None:
            try:
                graph_provider.close()
            except Exception:  # noqa: BLE001 - close failures are logged
                LOGGER.exception("Failed to close graph provider")
        executor = getattr(app.state, "provider_executor", None)
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

    return app
