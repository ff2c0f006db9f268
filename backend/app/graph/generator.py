"""Generator for the label-free ambient graph shown between submissions."""
from __future__ import annotations

import random
from typing import List, Optional

from backend.app.contracts import KNOWN_NODE_TYPES, Edge, KnowledgeGraph, Node

AMBIENT_NODE_PREFIX = "node-"


def generate_ambient_graph(
    count: int = 40,
    *,
    max_outgoing_edges: int = 2,
    seed: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> KnowledgeGraph:
    """Create a loosely connected graph of unlabeled, randomly typed nodes.

    Each node draws between zero and ``max_outgoing_edges`` outgoing edges to
    random targets; draws that land on the node itself are skipped, so the
    ambient graph never contains self-loops.

    Args:
        count: Number of nodes to create.
        max_outgoing_edges: Upper bound (inclusive) of edges drawn per node.
        seed: Seed for a private random generator; ignored when ``rng`` is given.
        rng: Explicit random generator to draw from.

    Returns:
        KnowledgeGraph: Graph with ids ``node-0`` to ``node-{count - 1}``.
    """

    if count < 0:
        raise ValueError("count must not be negative")
    if max_outgoing_edges < 0:
        raise ValueError("max_outgoing_edges must not be negative")
    generator = rng or random.Random(seed)

    nodes: List[Node] = []
    for index in range(count):
        nodes.append(
            Node(
                id=f"{AMBIENT_NODE_PREFIX}{index}",
                label="",
                type=generator.choice(KNOWN_NODE_TYPES),
                val=generator.random() * 2 + 1,
            )
        )

    edges: List[Edge] = []
    if count > 1:
        for node in nodes:
            for _ in range(generator.randint(0, max_outgoing_edges)):
                target_id = f"{AMBIENT_NODE_PREFIX}{generator.randrange(count)}"
                if target_id == node.id:
                    continue
                edges.append(Edge(source=node.id, target=target_id))

    return KnowledgeGraph(nodes=nodes, edges=edges)


__all__ = ["AMBIENT_NODE_PREFIX", "generate_ambient_graph"]
