"""
User Service - business logic for users and friendships.

Single entry point used by the HTTP layer and the seeding script. Owns:
- CRUD on user records with hobby normalisation and default positions
- Symmetric friend links (both endpoints are written)
- The deletion guard (users with friends cannot be deleted)
- Paged listing, graph assembly and aggregate stats, cached in Redis

Every successful mutation invalidates the cached reads and publishes a
change event. Both steps are best-effort and never fail the mutation.

Concurrent link/unlink calls on the same pair are read-modify-write per
record and may lose an update; the store offers no multi-record
transaction.
"""

import logging
from collections import Counter
from typing import Any

from pydantic import ValidationError

from ..cache.redis_cache import GRAPH_NAMESPACE, STATS_NAMESPACE, USERS_NAMESPACE, RedisCache, generate_cache_key
from ..config import GraphSettings
from ..events.broadcaster import ChangeBroadcaster, NullBroadcaster
from ..graph.assembler import assemble_graph, build_pagination, classify_node, edge_key, score_user
from ..graph.positions import PositionProvider, create_position_provider
from ..models.graph import GraphData
from ..models.responses import HobbyCount, MessageResult, UserData, UserPage, UserStats
from ..models.user import Position, User
from ..models.validators import ChangeEventType
from ..storage.base import UserStorage
from ..utils.errors import ConflictError, InvalidOperationError, NotFoundError

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"username", "age", "hobbies", "position"})


def _validation_message(error: ValidationError) -> str:
    """Flatten a pydantic ValidationError into one readable line."""
    parts = []
    for detail in error.errors():
        field = ".".join(str(loc) for loc in detail.get("loc", ())) or "value"
        parts.append(f"{field}: {detail.get('msg', 'invalid')}")
    return "Validation Error: " + "; ".join(parts)


class UserService:
    """
    Shared business logic for user and relationship operations.

    Collaborators are passed in explicitly; there are no module-level
    client handles.
    """

    def __init__(
        self,
        storage: UserStorage,
        cache: RedisCache | None = None,
        broadcaster: ChangeBroadcaster | NullBroadcaster | None = None,
        position_provider: PositionProvider | None = None,
        graph_settings: GraphSettings | None = None,
    ):
        self.storage = storage
        self.cache = cache
        self.broadcaster = broadcaster or NullBroadcaster()
        self.graph_settings = graph_settings or GraphSettings()
        self.position_provider = position_provider or create_position_provider(
            strategy=self.graph_settings.position_strategy,
            extent=self.graph_settings.position_extent,
            columns=self.graph_settings.grid_columns,
            spacing=self.graph_settings.grid_spacing,
            jitter=self.graph_settings.grid_jitter,
        )

    # ------------------------------------------------------------------
    # Cache & events
    # ------------------------------------------------------------------

    async def _cache_get(self, key: str) -> dict[str, Any] | None:
        if self.cache is None:
            return None
        return await self.cache.get(key)

    async def _cache_set(self, key: str, value: dict[str, Any]) -> None:
        if self.cache is not None:
            await self.cache.set(key, value)

    async def _after_mutation(self, event: ChangeEventType, user_ids: list[str]) -> None:
        """Drop cached reads, then announce the change. Never raises."""
        if self.cache is not None:
            try:
                deleted = await self.cache.invalidate_reads()
                logger.debug(f"Invalidated {deleted} cached read(s) after {event}")
            except Exception as e:
                logger.warning(f"Cache invalidation after {event} failed (non-fatal): {e}")

        try:
            await self.broadcaster.publish(event, user_ids)
        except Exception as e:
            logger.warning(f"Publishing {event} failed (non-fatal): {e}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require(self, user_id: str) -> User:
        user = await self.storage.get(user_id)
        if user is None:
            raise NotFoundError(user_id)
        return user

    async def _require_pair(self, user_id: str, friend_id: str) -> tuple[User, User]:
        found = {u.id: u for u in await self.storage.get_many([user_id, friend_id])}
        if user_id not in found or friend_id not in found:
            raise NotFoundError([user_id, friend_id])
        return found[user_id], found[friend_id]

    def _check_paging(self, page: int, limit: int, max_limit: int) -> int:
        """Validate page/limit and clamp limit to ``max_limit``."""
        if page < 1:
            raise InvalidOperationError("page must be >= 1")
        if limit < 1:
            raise InvalidOperationError("limit must be >= 1")
        return min(limit, max_limit)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_user(
        self,
        username: str,
        age: int,
        hobbies: list[str] | str | None = None,
        position: Position | dict[str, float] | None = None,
    ) -> UserData:
        """
        Create a user with no friends.

        Hobbies are trimmed and lower-cased. When no position is given the
        configured position provider supplies one.

        Raises:
            InvalidOperationError: If the record does not validate
        """
        try:
            user = User(
                username=username,
                age=age,
                hobbies=hobbies,
                position=position if position is not None else self.position_provider(),
            )
        except ValidationError as e:
            raise InvalidOperationError(_validation_message(e)) from e

        await self.storage.insert(user)
        logger.info(f"Created user {user.id} ({user.username})")

        await self._after_mutation("user:created", [user.id])
        return UserData.from_user(user)

    async def get_user(self, user_id: str) -> UserData:
        return UserData.from_user(await self._require(user_id))

    async def list_users(self, page: int = 1, limit: int | None = None, search: str | None = None) -> UserPage:
        """
        One page of users ordered by creation time.

        Args:
            page: 1-indexed page number
            limit: Page size (default and maximum from GraphSettings)
            search: Case-insensitive substring on username or any hobby

        Returns:
            UserPage with the users and pagination metadata
        """
        limit = self._check_paging(
            page,
            limit if limit is not None else self.graph_settings.default_user_page_limit,
            self.graph_settings.max_user_page_limit,
        )
        search = search.strip() if search and search.strip() else None

        cache_key = generate_cache_key(USERS_NAMESPACE, {"page": page, "limit": limit, "search": search or ""})
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return UserPage.model_validate(cached)

        users = await self.storage.list_users(offset=(page - 1) * limit, limit=limit, search=search)
        total = await self.storage.count_users(search=search)
        result = UserPage(
            users=[UserData.from_user(u) for u in users],
            pagination=build_pagination(page, limit, total, len(users)),
        )

        await self._cache_set(cache_key, result.model_dump(mode="json"))
        return result

    async def update_user(self, user_id: str, **updates: Any) -> UserData:
        """
        Partially update username, age, hobbies or position.

        Fields passed as None are left unchanged. Friend lists can only be
        changed through link_users/unlink_users.

        Raises:
            NotFoundError: If the user does not exist
            InvalidOperationError: On unknown fields or invalid values
        """
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidOperationError(f"Field(s) cannot be updated: {', '.join(sorted(unknown))}")

        updates = {key: value for key, value in updates.items() if value is not None}
        existing = await self._require(user_id)
        if not updates:
            return UserData.from_user(existing)

        try:
            candidate = User.model_validate({**existing.model_dump(), **updates})
        except ValidationError as e:
            raise InvalidOperationError(_validation_message(e)) from e

        payload = candidate.to_payload()
        updated = await self.storage.update(user_id, {key: payload[key] for key in updates})
        if updated is None:
            raise NotFoundError(user_id)

        logger.info(f"Updated user {user_id}: {sorted(updates)}")
        await self._after_mutation("user:updated", [user_id])
        return UserData.from_user(updated)

    async def delete_user(self, user_id: str) -> MessageResult:
        """
        Delete a user that has no friends.

        Raises:
            NotFoundError: If the user does not exist
            ConflictError: If the user still has friends
        """
        user = await self._require(user_id)
        if user.has_friends:
            raise ConflictError(user_id, len(user.friends))

        if not await self.storage.delete(user_id):
            raise NotFoundError(user_id)

        logger.info(f"Deleted user {user_id}")
        await self._after_mutation("user:deleted", [user_id])
        return MessageResult(message="User deleted successfully")

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    async def link_users(self, user_id: str, friend_id: str) -> MessageResult:
        """
        Make two users mutual friends. Linking existing friends is a no-op.

        Raises:
            InvalidOperationError: If both ids are the same
            NotFoundError: If either user does not exist
        """
        if user_id == friend_id:
            raise InvalidOperationError("Users cannot link to themselves.")

        user, friend = await self._require_pair(user_id, friend_id)

        if not user.is_friend_of(friend_id):
            await self.storage.update(user_id, {"friends": [*user.friends, friend_id]})
        if not friend.is_friend_of(user_id):
            await self.storage.update(friend_id, {"friends": [*friend.friends, user_id]})

        logger.info(f"Linked users {user_id} <-> {friend_id}")
        await self._after_mutation("users:linked", [user_id, friend_id])
        return MessageResult(message="Users linked successfully")

    async def unlink_users(self, user_id: str, friend_id: str) -> MessageResult:
        """
        Remove the friendship in both directions. Succeeds for non-friends.

        Raises:
            NotFoundError: If either user does not exist
        """
        user, friend = await self._require_pair(user_id, friend_id)

        if user.is_friend_of(friend_id):
            await self.storage.update(user_id, {"friends": [f for f in user.friends if f != friend_id]})
        if friend.is_friend_of(user_id):
            await self.storage.update(friend_id, {"friends": [f for f in friend.friends if f != user_id]})

        logger.info(f"Unlinked users {user_id} <-> {friend_id}")
        await self._after_mutation("users:unlinked", [user_id, friend_id])
        return MessageResult(message="Users unlinked successfully")

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    async def get_graph_data(self, page: int = 1, limit: int | None = None, include_connections: bool = True) -> GraphData:
        """
        Nodes and edges for one page of users.

        Friends referenced from the page but living on other pages are
        fetched in one batch for scoring and edges.
        """
        limit = self._check_paging(
            page,
            limit if limit is not None else self.graph_settings.default_page_limit,
            self.graph_settings.max_page_limit,
        )

        cache_key = generate_cache_key(
            GRAPH_NAMESPACE, {"page": page, "limit": limit, "connections": include_connections}
        )
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return GraphData.model_validate(cached)

        primary = await self.storage.list_users(offset=(page - 1) * limit, limit=limit)
        total = await self.storage.count_users()
        graph = await assemble_graph(
            primary,
            total=total,
            page=page,
            limit=limit,
            include_connections=include_connections,
            resolve=self.storage.get_many,
            position_provider=self.position_provider,
            high_score_threshold=self.graph_settings.high_score_threshold,
        )

        await self._cache_set(cache_key, graph.model_dump(mode="json"))
        return graph

    async def get_user_stats(self) -> UserStats:
        """Aggregate numbers over every user, scored the same way as the graph."""
        cache_key = generate_cache_key(STATS_NAMESPACE, {"scope": "all"})
        cached = await self._cache_get(cache_key)
        if cached is not None:
            return UserStats.model_validate(cached)

        users = [user async for user in self.storage.iter_all(self.graph_settings.max_page_limit)]
        if not users:
            stats = UserStats()
            await self._cache_set(cache_key, stats.model_dump(mode="json"))
            return stats

        lookup = {user.id: user for user in users}
        connections: set[str] = set()
        hobby_counts: Counter[str] = Counter()
        high = 0
        for user in users:
            connections.update(edge_key(user.id, fid) for fid in user.friends if fid in lookup)
            hobby_counts.update(set(user.hobbies))
            if classify_node(score_user(user, lookup, True), self.graph_settings.high_score_threshold) == "high":
                high += 1

        top = sorted(hobby_counts.items(), key=lambda item: (-item[1], item[0]))[: self.graph_settings.top_hobbies]
        stats = UserStats(
            total_users=len(users),
            total_connections=len(connections),
            average_age=round(sum(u.age for u in users) / len(users), 2),
            average_friends=round(sum(len(u.friends) for u in users) / len(users), 2),
            high_score_users=high,
            low_score_users=len(users) - high,
            top_hobbies=[HobbyCount(hobby=hobby, count=count) for hobby, count in top],
        )

        await self._cache_set(cache_key, stats.model_dump(mode="json"))
        return stats
