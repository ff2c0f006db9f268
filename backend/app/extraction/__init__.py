"""Text-to-graph extraction providers."""

from backend.app.extraction.graph_provider import (
    AnthropicGraphProvider,
    GraphProvider,
    GraphProviderError,
    GraphProviderUnavailableError,
    repair_completion,
)

__all__ = [
    "AnthropicGraphProvider",
    "GraphProvider",
    "GraphProviderError",
    "GraphProviderUnavailableError",
    "repair_completion",
]
