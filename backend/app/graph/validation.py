"""Recovery helpers for malformed knowledge graphs."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence, Set, Tuple

from pydantic import ValidationError

from backend.app.contracts import Edge, KnowledgeGraph, Node

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SanitizedGraph:
    """A graph safe for layout together with what was removed from it."""

    graph: KnowledgeGraph
    duplicate_node_ids: Tuple[str, ...] = ()
    dropped_edges: Tuple[Edge, ...] = ()

    @property
    def is_clean(self) -> bool:
        return not self.duplicate_node_ids and not self.dropped_edges


def sanitize_graph(graph: KnowledgeGraph) -> SanitizedGraph:
    """Drop duplicate nodes and dangling edges, keeping everything else in order.

    The first node carrying a given id wins. Edges are kept when both
    endpoints resolve to a surviving node; self-loops and parallel edges are
    legal and kept as-is.

    Args:
        graph: Graph received from the generator, the provider or a snapshot.

    Returns:
        SanitizedGraph: The cleaned graph plus the removed elements.
    """

    seen: Set[str] = set()
    nodes: List[Node] = []
    duplicates: List[str] = []
    for node in graph.nodes:
        if node.id in seen:
            duplicates.append(node.id)
            continue
        seen.add(node.id)
        nodes.append(node)

    edges: List[Edge] = []
    dropped: List[Edge] = []
    for edge in graph.edges:
        if edge.source in seen and edge.target in seen:
            edges.append(edge)
        else:
            dropped.append(edge)

    if duplicates:
        LOGGER.warning(
            "Dropped %d duplicate node(s) from graph: %s",
            len(duplicates),
            ", ".join(sorted(set(duplicates))),
        )
    if dropped:
        LOGGER.warning(
            "Dropped %d edge(s) referencing unknown nodes: %s",
            len(dropped),
            ", ".join(f"{edge.source}->{edge.target}" for edge in dropped),
        )
    if not duplicates and not dropped:
        return SanitizedGraph(graph=graph)
    return SanitizedGraph(
        graph=KnowledgeGraph(nodes=nodes, edges=edges),
        duplicate_node_ids=tuple(duplicates),
        dropped_edges=tuple(dropped),
    )


def graph_from_payload(payload: Any) -> KnowledgeGraph:
    """Build a graph from loosely structured JSON, skipping invalid entries.

    Individual nodes or edges that fail validation are logged and skipped so a
    partially valid payload still yields a usable graph.

    Args:
        payload: Decoded JSON value.

    Returns:
        KnowledgeGraph: Graph containing every entry that validated.

    Raises:
        ValueError: If the payload is not a mapping with list-valued ``nodes``.
    """

    if not isinstance(payload, Mapping):
        raise ValueError("Graph payload must be a JSON object")
    raw_nodes = payload.get("nodes")
    raw_edges = payload.get("edges", payload.get("links", []))
    if not isinstance(raw_nodes, Sequence) or isinstance(raw_nodes, (str, bytes)):
        raise ValueError("Graph payload must contain a 'nodes' list")
    if raw_edges is None:
        raw_edges = []
    if not isinstance(raw_edges, Sequence) or isinstance(raw_edges, (str, bytes)):
        raise ValueError("Graph payload 'edges' must be a list")

    nodes: List[Node] = []
    for item in raw_nodes:
        try:
            nodes.append(Node.model_validate(item))
        except ValidationError as exc:
            LOGGER.info("Skipping malformed node payload %s: %s", item, exc.errors()[:1])
    edges: List[Edge] = []
    for item in raw_edges:
        try:
            edges.append(Edge.model_validate(item))
        except ValidationError as exc:
            LOGGER.info("Skipping malformed edge payload %s: %s", item, exc.errors()[:1])
    return KnowledgeGraph(nodes=nodes, edges=edges)


__all__ = ["SanitizedGraph", "graph_from_payload", "sanitize_graph"]
