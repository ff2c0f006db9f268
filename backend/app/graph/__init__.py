"""Graph construction and recovery helpers."""

from backend.app.graph.generator import generate_ambient_graph
from backend.app.graph.validation import SanitizedGraph, graph_from_payload, sanitize_graph

__all__ = [
    "SanitizedGraph",
    "generate_ambient_graph",
    "graph_from_payload",
    "sanitize_graph",
]
