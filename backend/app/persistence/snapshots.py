"""Persistence of the last displayed graph."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Protocol

from backend.app.contracts import KnowledgeGraph
from backend.app.graph.validation import graph_from_payload

LOGGER = logging.getLogger(__name__)


class SnapshotStoreError(RuntimeError):
    """Raised when a snapshot cannot be written or removed."""


class GraphSnapshotStoreProtocol(Protocol):
    """Single-slot storage for the displayed graph."""

    def load(self) -> Optional[KnowledgeGraph]:
        """Return the stored graph or ``None`` when nothing usable is stored."""

    def save(self, graph: KnowledgeGraph) -> None:
        """Replace the stored graph."""

    def clear(self) -> None:
        """Remove the stored graph."""


class JSONGraphSnapshotStore:
    """Persist the displayed graph to a JSON file."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[KnowledgeGraph]:
        """Return the stored graph; missing or corrupt files yield ``None``."""

        if not self._path.exists():
            return None
        try:
            content = self._path.read_text(encoding="utf-8")
        except OSError:
            LOGGER.warning("Unable to read graph snapshot at %s", self._path)
            return None
        if not content.strip():
            return None
        try:
            return graph_from_payload(json.loads(content))
        except (json.JSONDecodeError, ValueError):
            LOGGER.warning("Corrupt graph snapshot at %s; ignoring it", self._path)
            return None

    def save(self, graph: KnowledgeGraph) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(graph.to_payload(), indent=2), encoding="utf-8")
        except OSError as exc:
            LOGGER.exception("Failed to persist graph snapshot to %s", self._path)
            raise SnapshotStoreError(f"Unable to write snapshot to {self._path}") from exc
        LOGGER.debug("Stored graph snapshot with %d nodes at %s", len(graph.nodes), self._path)

    def clear(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            LOGGER.exception("Failed to remove graph snapshot at %s", self._path)
            raise SnapshotStoreError(f"Unable to remove snapshot at {self._path}") from exc


__all__ = ["GraphSnapshotStoreProtocol", "JSONGraphSnapshotStore", "SnapshotStoreError"]
