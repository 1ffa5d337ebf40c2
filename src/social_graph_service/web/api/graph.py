"""
Graph and stats API endpoints.

The graph endpoint returns nodes (with popularity score and high/low
type), deduplicated edges and pagination for one page of users.
"""

import logging

from fastapi import APIRouter, Depends, Query

from ...models.graph import GraphData
from ...models.responses import UserStats
from ...services.user_service import UserService
from ..dependencies import get_user_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["graph"])


@router.get("/graph", response_model=GraphData)
async def get_graph(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1, description="Page size (default 100, capped at 1000)"),
    include_connections: bool = Query(True, alias="includeConnections"),
    service: UserService = Depends(get_user_service),
) -> GraphData:
    return await service.get_graph_data(page=page, limit=limit, include_connections=include_connections)


@router.get("/stats", response_model=UserStats)
async def get_stats(service: UserService = Depends(get_user_service)) -> UserStats:
    """Aggregate counts, averages and the most common hobbies."""
    return await service.get_user_stats()
