"""Immutable data contracts for the naumu backend."""
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_NODE_VALUE = 1.0


class NodeType(str, Enum):
    """Entity classes produced by the product-definition extraction."""

    PRODUCT = "Product"
    PERSONA = "Persona"
    NEED = "Need"
    FEATURE = "Feature"
    VALUE_PROPOSITION = "ValueProposition"
    CONSTRAINT = "Constraint"
    GOAL = "Goal"


KNOWN_NODE_TYPES = tuple(member.value for member in NodeType)


class _FrozenBaseModel(BaseModel):
    """Base model enforcing immutability after creation."""

    model_config = ConfigDict(frozen=True)


class Node(_FrozenBaseModel):
    """Graph node as exchanged with the browser and the graph provider."""

    id: str = Field(..., min_length=1)
    label: str = Field("", description="Display text; empty suppresses label rendering.")
    type: str = Field("", description="One of NodeType or any other string.")
    val: Optional[float] = Field(None, gt=0, description="Optional size hint.")

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: object) -> str:
        """Accept enum members as well as free-form strings.

        Args:
            value: The raw type value.

        Returns:
            str: The type as a plain string.
        """
        if isinstance(value, NodeType):
            return value.value
        if value is None:
            return ""
        return str(value)

    @field_validator("label", mode="before")
    @classmethod
    def _coerce_label(cls, value: object) -> str:
        if value is None:
            return ""
        return str(value)

    @property
    def is_known_type(self) -> bool:
        return self.type in KNOWN_NODE_TYPES

    @property
    def value(self) -> float:
        """Return the size hint, falling back to the default constant."""

        return self.val if self.val is not None else DEFAULT_NODE_VALUE


class Edge(_FrozenBaseModel):
    """Directed relation between two nodes of the same graph."""

    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    label: Optional[str] = None

    @property
    def is_self_loop(self) -> bool:
        return self.source == self.target


class KnowledgeGraph(_FrozenBaseModel):
    """Complete graph value; replaced wholesale, never patched."""

    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "KnowledgeGraph":
        return cls(nodes=[], edges=[])

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    @property
    def has_labels(self) -> bool:
        """Return whether any node carries display text."""

        return any(node.label for node in self.nodes)

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def to_payload(self) -> Dict[str, List[Dict[str, object]]]:
        """Serialize to the browser JSON shape, omitting absent optionals."""

        return self.model_dump(mode="json", exclude_none=True)


__all__ = [
    "DEFAULT_NODE_VALUE",
    "KNOWN_NODE_TYPES",
    "NodeType",
    "Node",
    "Edge",
    "KnowledgeGraph",
]
