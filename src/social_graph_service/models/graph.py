"""Graph view models.

Nodes and edges are derived on every graph query and never persisted.
Field names are snake_case in Python and camelCase on the wire
(``popularityScore``, ``totalPages``, ``hasMore``).
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .user import Position
from .validators import NodeType


class CamelModel(BaseModel):
    """Base for wire-format models serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NodeData(CamelModel):
    """Profile payload echoed on a graph node."""

    label: str
    age: int
    hobbies: list[str] = Field(default_factory=list)
    popularity_score: float


class GraphNode(CamelModel):
    id: str
    type: NodeType
    data: NodeData
    position: Position


class GraphEdge(CamelModel):
    id: str
    source: str
    target: str


class Pagination(CamelModel):
    """Pagination metadata for paged responses."""

    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool


class GraphData(CamelModel):
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
    pagination: Pagination
