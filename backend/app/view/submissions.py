"""Last-submission-wins coordination of graph provider calls."""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from enum import Enum
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from backend.app.config import AmbientGraphConfig
from backend.app.contracts import KnowledgeGraph
from backend.app.extraction.graph_provider import GraphProvider, GraphProviderError
from backend.app.graph.generator import generate_ambient_graph
from backend.app.persistence.snapshots import GraphSnapshotStoreProtocol, SnapshotStoreError
from backend.app.view.adapter import GraphViewAdapter

LOGGER = logging.getLogger(__name__)

AMBIENT_PROFILE = "ambient"
RESULT_PROFILE = "result"

StatusListener = Callable[[Dict[str, Any]], Awaitable[None]]


class SubmissionStatus(str, Enum):
    IGNORED = "ignored"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    STALE = "stale"


@dataclass(frozen=True)
class SubmissionOutcome:
    status: SubmissionStatus
    graph: Optional[KnowledgeGraph] = None
    error: Optional[str] = None


def profile_for(graph: KnowledgeGraph) -> str:
    """Labelled graphs come from the provider; unlabelled ones are ambient."""

    return RESULT_PROFILE if graph.has_labels else AMBIENT_PROFILE


class SubmissionCoordinator:
    """Drive the displayed graph through submissions, clears and restores.

    Every submission bumps a generation counter; a provider response is only
    applied when its generation is still the latest, so older in-flight
    requests can never overwrite a newer result. While requests are pending
    the graph shown before the first of them is remembered and put back if
    the latest request fails.
    """

    def __init__(
        self,
        adapter: GraphViewAdapter,
        provider: Optional[GraphProvider],
        *,
        ambient: AmbientGraphConfig,
        snapshot_store: Optional[GraphSnapshotStoreProtocol] = None,
        ambient_while_loading: bool = True,
        executor: Optional[Executor] = None,
        on_status: Optional[StatusListener] = None,
    ) -> None:
        self._adapter = adapter
        self._provider = provider
        self._ambient = ambient
        self._store = snapshot_store
        self._ambient_while_loading = ambient_while_loading
        self._executor = executor
        self._on_status = on_status
        self._generation = 0
        self._pending = 0
        self._restore: Optional[Tuple[KnowledgeGraph, str]] = None

    @property
    def is_loading(self) -> bool:
        return self._pending > 0

    @property
    def generation(self) -> int:
        return self._generation

    def ambient_graph(self) -> KnowledgeGraph:
        return generate_ambient_graph(
            self._ambient.node_count,
            max_outgoing_edges=self._ambient.max_outgoing_edges,
            seed=self._ambient.seed,
        )

    def show_initial(self) -> KnowledgeGraph:
        """Display the stored snapshot, or a fresh ambient graph without one."""

        stored = self._store.load() if self._store is not None else None
        if stored is not None and not stored.is_empty:
            LOGGER.info("Restoring stored graph with %d nodes", len(stored.nodes))
            self._adapter.set_graph(stored, profile=profile_for(stored))
            return stored
        graph = self.ambient_graph()
        self._adapter.set_graph(graph, profile=AMBIENT_PROFILE)
        return graph

    def clear(self) -> KnowledgeGraph:
        """Forget the stored graph and any pending submission; show ambient."""

        self._generation += 1
        self._restore = None
        if self._store is not None:
            self._store.clear()
        graph = self.ambient_graph()
        self._adapter.set_graph(graph, profile=AMBIENT_PROFILE)
        return graph

    def cancel(self) -> None:
        """Invalidate pending submissions, e.g. when the view is torn down."""

        self._generation += 1
        self._restore = None

    async def submit(self, text: str) -> SubmissionOutcome:
        """Request a graph for ``text`` and display it when it is still wanted."""

        if not text or not text.strip():
            return SubmissionOutcome(SubmissionStatus.IGNORED)
        self._generation += 1
        generation = self._generation
        if self._restore is None:
            self._restore = (self._adapter.graph, self._adapter.profile_name or AMBIENT_PROFILE)
        if self._ambient_while_loading:
            self._adapter.set_graph(self.ambient_graph(), profile=AMBIENT_PROFILE)
        await self._emit({"type": "status", "state": "loading", "generation": generation})

        self._pending += 1
        start = perf_counter()
        try:
            graph = await self._extract(text)
        except (GraphProviderError, ValueError) as exc:
            return await self._fail(generation, str(exc) or exc.__class__.__name__)
        except Exception as exc:  # noqa: BLE001 - provider failure is logged and reported
            LOGGER.exception("Graph provider raised unexpectedly")
            return await self._fail(generation, str(exc) or exc.__class__.__name__)
        finally:
            self._pending -= 1

        if generation != self._generation or not self._adapter.is_mounted:
            LOGGER.warning(
                "Discarding stale provider response for submission %d (latest is %d)",
                generation,
                self._generation,
            )
            return SubmissionOutcome(SubmissionStatus.STALE, graph=graph)

        self._restore = None
        self._adapter.set_graph(graph, profile=RESULT_PROFILE)
        if self._store is not None:
            try:
                self._store.save(graph)
            except SnapshotStoreError:
                LOGGER.warning("Displayed graph could not be stored; continuing without snapshot")
        LOGGER.info(
            "Submission %d produced %d nodes in %.2fs",
            generation,
            len(graph.nodes),
            perf_counter() - start,
        )
        await self._emit(
            {
                "type": "status",
                "state": "replaced",
                "generation": generation,
                "graph": graph.to_payload(),
            }
        )
        return SubmissionOutcome(SubmissionStatus.SUCCEEDED, graph=graph)

    async def _extract(self, text: str) -> KnowledgeGraph:
        if self._provider is None:
            raise GraphProviderError("No graph provider is configured")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._provider.extract_graph, text)

    async def _fail(self, generation: int, message: str) -> SubmissionOutcome:
        if generation != self._generation or not self._adapter.is_mounted:
            LOGGER.warning("Ignoring failure of superseded submission %d: %s", generation, message)
            return SubmissionOutcome(SubmissionStatus.STALE, error=message)
        LOGGER.warning("Submission %d failed: %s", generation, message)
        restore = self._restore
        self._restore = None
        if restore is not None and restore[0] is not self._adapter.graph:
            graph, profile = restore
            self._adapter.set_graph(graph, profile=profile)
        await self._emit({"type": "status", "state": "error", "generation": generation, "message": message})
        return SubmissionOutcome(SubmissionStatus.FAILED, error=message)

    async def _emit(self, message: Dict[str, Any]) -> None:
        if self._on_status is not None:
            await self._on_status(message)


__all__ = [
    "AMBIENT_PROFILE",
    "RESULT_PROFILE",
    "SubmissionCoordinator",
    "SubmissionOutcome",
    "SubmissionStatus",
    "profile_for",
]
