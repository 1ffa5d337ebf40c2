"""
Graph assembly and popularity scoring.

Turns a page of user records into the node/edge view consumed by the
graph frontend.

Popularity:
    score = friend_count + 0.5 * shared_hobbies

    where shared_hobbies sums, over every friend that still resolves, the
    number of distinct hobbies the user shares with that friend. A hobby
    shared with three friends contributes three.

Classification:
    "high" when score > threshold (default 5), otherwise "low".

Edges:
    One edge per unordered pair. Friendship is stored on both endpoints,
    so a canonical key (the two ids sorted) is tracked while scanning.
    Edges to friends outside the requested page are emitted as long as the
    friend resolves; the friend's own node is not.

Dangling friend ids (records deleted without symmetric cleanup) are
skipped for both scoring and edge emission.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable, Iterable, Sequence

from ..models.graph import GraphData, GraphEdge, GraphNode, NodeData, Pagination
from ..models.user import User
from ..models.validators import NodeType
from .positions import PositionProvider, RandomPositionProvider

logger = logging.getLogger(__name__)

HIGH_SCORE_THRESHOLD = 5.0
SHARED_HOBBY_WEIGHT = 0.5
EDGE_KEY_SEPARATOR = "-"

ResolveFn = Callable[[list[str]], Awaitable[Iterable[User]]]


def count_shared_hobbies(user: User, friend: User) -> int:
    """Number of distinct hobbies present on both users."""
    return len(set(user.hobbies) & set(friend.hobbies))


def popularity_score(friend_count: int, shared_hobbies: int) -> float:
    return friend_count + SHARED_HOBBY_WEIGHT * shared_hobbies


def classify_node(score: float, threshold: float = HIGH_SCORE_THRESHOLD) -> NodeType:
    # Strict: a score equal to the threshold is still "low"
    return "high" if score > threshold else "low"


def edge_key(a: str, b: str) -> str:
    """Direction-independent key for the unordered pair (a, b)."""
    first, second = sorted((a, b))
    return f"{first}{EDGE_KEY_SEPARATOR}{second}"


def edge_id(a: str, b: str) -> str:
    return f"e-{edge_key(a, b)}"


def build_pagination(page: int, limit: int, total: int, returned: int) -> Pagination:
    """
    Pagination metadata for a 1-indexed page.

    ``has_more`` is true while the items seen up to and including this page
    are fewer than ``total``.
    """
    total_pages = math.ceil(total / limit) if total > 0 else 0
    seen = (page - 1) * limit + returned
    return Pagination(page=page, limit=limit, total=total, total_pages=total_pages, has_more=seen < total)


def score_user(user: User, lookup: dict[str, User], include_connections: bool) -> float:
    """Popularity score for ``user`` given the records resolvable in ``lookup``."""
    shared = 0
    if include_connections:
        for friend_id in user.friends:
            friend = lookup.get(friend_id)
            if friend is not None:
                shared += count_shared_hobbies(user, friend)
    return popularity_score(len(user.friends), shared)


async def resolve_missing_friends(primary: Sequence[User], lookup: dict[str, User], resolve: ResolveFn) -> int:
    """
    Fetch, in one batch, every friend referenced by ``primary`` that is not in ``lookup``.

    Returns the number of records merged into ``lookup``. Ids that do not
    resolve are simply absent afterwards.
    """
    missing = list(dict.fromkeys(fid for user in primary for fid in user.friends if fid not in lookup))
    if not missing:
        return 0

    merged = 0
    for friend in await resolve(missing):
        if friend.id not in lookup:
            lookup[friend.id] = friend
            merged += 1

    if merged < len(missing):
        logger.debug(f"{len(missing) - merged} friend reference(s) did not resolve (dangling)")
    return merged


def build_edges(primary: Sequence[User], lookup: dict[str, User]) -> list[GraphEdge]:
    """Deduplicated edges from ``primary`` to every friend present in ``lookup``."""
    edges: list[GraphEdge] = []
    seen: set[str] = set()
    for user in primary:
        for friend_id in user.friends:
            if friend_id not in lookup:
                continue
            eid = edge_id(user.id, friend_id)
            if eid in seen:
                continue
            seen.add(eid)
            edges.append(GraphEdge(id=eid, source=user.id, target=friend_id))
    return edges


async def assemble_graph(
    primary: Sequence[User],
    total: int,
    page: int,
    limit: int,
    include_connections: bool = True,
    resolve: ResolveFn | None = None,
    position_provider: PositionProvider | None = None,
    high_score_threshold: float = HIGH_SCORE_THRESHOLD,
) -> GraphData:
    """
    Build nodes, edges and pagination for one page of users.

    Args:
        primary: Users on the requested page, in display order
        total: Total number of users in the store
        page: 1-indexed page number
        limit: Page size
        include_connections: When False, friends are not resolved, scores
            reduce to friend count and no edges are emitted
        resolve: Batch fetch for friend ids not on the page; called at
            most once, and only when include_connections is True
        position_provider: Supplies positions for users without one
        high_score_threshold: Scores strictly above this are "high"

    Returns:
        GraphData with nodes, edges and pagination
    """
    provider = position_provider or RandomPositionProvider()
    lookup: dict[str, User] = {user.id: user for user in primary}

    if include_connections and resolve is not None:
        await resolve_missing_friends(primary, lookup, resolve)

    nodes: list[GraphNode] = []
    for user in primary:
        score = score_user(user, lookup, include_connections)
        nodes.append(
            GraphNode(
                id=user.id,
                type=classify_node(score, high_score_threshold),
                data=NodeData(label=user.username, age=user.age, hobbies=list(user.hobbies), popularity_score=score),
                position=user.position or provider(),
            )
        )

    edges = build_edges(primary, lookup) if include_connections else []

    return GraphData(nodes=nodes, edges=edges, pagination=build_pagination(page, limit, total, len(primary)))
