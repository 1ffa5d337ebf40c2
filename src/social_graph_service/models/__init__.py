"""Data models for the Social Graph Service."""

from .graph import CamelModel, GraphData, GraphEdge, GraphNode, NodeData, Pagination
from .responses import HealthResult, HobbyCount, MessageResult, UserData, UserPage, UserStats
from .user import Position, User

__all__ = [
    "CamelModel",
    "GraphData",
    "GraphEdge",
    "GraphNode",
    "NodeData",
    "Pagination",
    "HealthResult",
    "HobbyCount",
    "MessageResult",
    "UserData",
    "UserPage",
    "UserStats",
    "Position",
    "User",
]
