"""
Graph layer for the Social Graph Service.

Derives the node/edge view of the user store:
- Popularity scoring and high/low node classification
- Deduplicated friendship edges, including edges to friends off the page
- Pluggable default positions for nodes without a stored layout
"""

from .assembler import (
    assemble_graph,
    build_pagination,
    classify_node,
    count_shared_hobbies,
    edge_id,
    edge_key,
    popularity_score,
)
from .positions import GridPositionProvider, PositionProvider, RandomPositionProvider, create_position_provider

__all__ = [
    "assemble_graph",
    "build_pagination",
    "classify_node",
    "count_shared_hobbies",
    "edge_id",
    "edge_key",
    "popularity_score",
    "GridPositionProvider",
    "PositionProvider",
    "RandomPositionProvider",
    "create_position_provider",
]
