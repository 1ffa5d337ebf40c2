# Copyright 2024 Heinrich Krupp
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Qdrant storage backend for the Social Graph Service.

Each user is one point: the payload is the user document and the 2-d
vector is the persisted layout position. Provides circuit breaker fault
tolerance and bounded retry on transient server errors.
"""

import asyncio
import functools
import logging
import uuid
from collections.abc import AsyncIterator
from datetime import datetime, timedelta
from typing import Any

from qdrant_client import QdrantClient
from qdrant_client.http import exceptions as qdrant_exceptions
from qdrant_client.models import Distance, PointIdsList, PointStruct, PointVectors, VectorParams
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from ..models.user import Position, User
from .base import StorageError, UserStorage

logger = logging.getLogger(__name__)

# Namespace for deterministic point ids derived from opaque user ids
USER_ID_NAMESPACE = uuid.UUID("6f1c2f4e-5b0d-4c43-9a57-0d1e6a0c7b21")
POSITION_VECTOR_SIZE = 2
ORIGIN = [0.0, 0.0]


def is_retryable_error(exception: Exception) -> bool:
    """
    Determine if an exception is retryable (transient 5xx server errors only).

    4xx client errors are permanent (configuration/validation) and are
    not retried.
    """
    if isinstance(exception, qdrant_exceptions.UnexpectedResponse):
        return hasattr(exception, "status_code") and 500 <= exception.status_code < 600
    return False


_write_retry = retry(
    retry=retry_if_exception(is_retryable_error),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    reraise=True,
)

_read_retry = retry(
    retry=retry_if_exception(is_retryable_error),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.2, min=0.2, max=1),
    reraise=True,
)


def _retried(policy):
    """
    Apply a retry policy and surface exhausted transient errors as StorageError.

    ``_run`` re-raises retryable errors untouched so the policy can see them;
    whatever is still failing after the last attempt leaves here wrapped.
    """

    def decorator(method):
        retrying = policy(method)

        @functools.wraps(method)
        async def wrapper(*args, **kwargs):
            try:
                return await retrying(*args, **kwargs)
            except qdrant_exceptions.UnexpectedResponse as e:
                raise StorageError(f"Qdrant request failed after retries: {e}") from e

        return wrapper

    return decorator


class QdrantUserStorage(UserStorage):
    """
    Qdrant-backed user store in server, embedded or in-process mode.

    The sync ``QdrantClient`` is driven through the default executor so the
    event loop never blocks on I/O.
    """

    def __init__(
        self,
        collection_name: str = "users",
        url: str | None = None,
        path: str | None = None,
        scroll_batch_size: int = 256,
    ):
        """
        Args:
            collection_name: Qdrant collection holding user points
            url: Qdrant server URL, or ":memory:" for an in-process store
            path: Directory for embedded file-based storage
            scroll_batch_size: Points fetched per scroll call

        Note:
            Server mode is multi-process safe. Embedded mode takes an
            exclusive lock and serves a single process only.
        """
        if url and path:
            raise ValueError("Cannot specify both url and path. Choose server OR embedded mode.")
        if not url and not path:
            raise ValueError("Must specify either url (server mode) or path (embedded mode).")

        self.url = url
        self.path = path
        self.collection_name = collection_name
        self.scroll_batch_size = scroll_batch_size

        # Circuit breaker state
        self._failure_count = 0
        self._circuit_open_until: datetime | None = None
        self._failure_threshold = 5  # Open circuit after 5 consecutive failures
        self._circuit_timeout = 60  # Reclose circuit after 60 seconds

        self.client: QdrantClient | None = None
        self._initialized = False

    @property
    def mode(self) -> str:
        if self.url == ":memory:":
            return "memory"
        return "server" if self.url else "embedded"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Connect and create the user collection if it does not exist."""
        if self._initialized:
            logger.debug("QdrantUserStorage already initialized")
            return

        loop = asyncio.get_running_loop()
        if self.mode == "memory":
            self.client = QdrantClient(location=":memory:")
        elif self.mode == "server":
            self.client = await loop.run_in_executor(None, lambda: QdrantClient(url=self.url))
        else:
            self.client = await loop.run_in_executor(None, lambda: QdrantClient(path=self.path))
        logger.info(f"Qdrant user storage connected: mode={self.mode}, location={self.url or self.path}")

        if not await self._collection_exists():
            await loop.run_in_executor(
                None,
                lambda: self.client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=VectorParams(size=POSITION_VECTOR_SIZE, distance=Distance.EUCLID),
                ),
            )
            logger.info(f"Created collection '{self.collection_name}'")

        self._initialized = True

    async def _collection_exists(self) -> bool:
        loop = asyncio.get_running_loop()
        collections = await loop.run_in_executor(None, self.client.get_collections)
        return any(c.name == self.collection_name for c in collections.collections)

    async def close(self) -> None:
        """
        Close the Qdrant client connection.

        Safe to call multiple times.
        """
        if self.client is not None:
            try:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, self.client.close)
                logger.info("Qdrant client closed successfully")
            except Exception as e:
                logger.warning(f"Error closing Qdrant client: {e}")
            finally:
                self.client = None
                self._initialized = False

    # ------------------------------------------------------------------
    # Circuit breaker
    # ------------------------------------------------------------------

    def _check_circuit_breaker(self) -> None:
        """
        Fail fast while the circuit is open.

        Raises:
            StorageError: If the circuit breaker is open
        """
        if not self._initialized or self.client is None:
            raise StorageError("Storage not initialized")

        if self._circuit_open_until is not None:
            if datetime.now() < self._circuit_open_until:
                retry_time = self._circuit_open_until.strftime("%Y-%m-%d %H:%M:%S")
                raise StorageError(f"Circuit breaker is open until {retry_time}. Service temporarily unavailable.")
            logger.info("Circuit breaker timeout expired, resetting to closed state")
            self._circuit_open_until = None
            self._failure_count = 0

    def _record_failure(self) -> None:
        """Record a failure and open the circuit after the threshold."""
        self._failure_count += 1
        logger.warning(f"Recorded failure #{self._failure_count}")

        if self._failure_count >= self._failure_threshold:
            self._circuit_open_until = datetime.now() + timedelta(seconds=self._circuit_timeout)
            logger.error(
                f"Circuit breaker opened after {self._failure_count} consecutive failures. "
                f"Will retry at {self._circuit_open_until.strftime('%Y-%m-%d %H:%M:%S')}"
            )

    def _record_success(self) -> None:
        if self._failure_count > 0:
            logger.info(f"Operation successful, resetting circuit breaker (was at {self._failure_count} failures)")
            self._failure_count = 0
            self._circuit_open_until = None

    async def _run(self, fn, description: str):
        """Run a blocking client call in the executor with circuit breaker bookkeeping."""
        self._check_circuit_breaker()
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, fn)
        except Exception as e:
            self._record_failure()
            logger.error(f"Failed to {description}: {e}")
            if is_retryable_error(e):
                raise
            raise StorageError(f"Failed to {description}: {e}") from e
        self._record_success()
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_point_id(user_id: str) -> str:
        """Deterministic Qdrant point id (UUID) for an opaque user id."""
        return str(uuid.uuid5(USER_ID_NAMESPACE, user_id))

    @staticmethod
    def _point_to_user(point) -> User:
        return User.from_payload(point.payload)

    @_retried(_read_retry)
    async def _scan(self) -> list[User]:
        """Scroll the whole collection in batches."""
        users: list[User] = []
        next_offset = None
        while True:
            points, next_offset = await self._run(
                lambda noff=next_offset: self.client.scroll(
                    collection_name=self.collection_name,
                    limit=self.scroll_batch_size,
                    offset=noff,
                    with_payload=True,
                    with_vectors=False,
                ),
                "scroll users",
            )
            users.extend(self._point_to_user(p) for p in points)
            if next_offset is None or not points:
                return users

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, user_id: str) -> User | None:
        users = await self.get_many([user_id])
        return users[0] if users else None

    @_retried(_read_retry)
    async def get_many(self, user_ids: list[str]) -> list[User]:
        if not user_ids:
            return []
        point_ids = [self._to_point_id(uid) for uid in dict.fromkeys(user_ids)]
        points = await self._run(
            lambda: self.client.retrieve(
                collection_name=self.collection_name, ids=point_ids, with_payload=True, with_vectors=False
            ),
            f"retrieve {len(point_ids)} user(s)",
        )
        return [self._point_to_user(p) for p in points]

    async def list_users(self, offset: int = 0, limit: int | None = None, search: str | None = None) -> list[User]:
        """
        List users ordered by (created_at, id).

        Scrolls the collection and orders in Python; the ordering is
        stable across calls on an unmodified collection, so consecutive
        pages never overlap.
        """
        if limit is not None and limit <= 0:
            return []

        users = await self._scan()
        if search:
            users = [u for u in users if u.matches(search)]
        users.sort(key=lambda u: (u.created_at, u.id))

        end = offset + limit if limit is not None else len(users)
        return users[offset:end]

    async def iter_all(self, batch_size: int = 256) -> AsyncIterator[User]:
        """Iterate over every user with a single scan instead of one per batch."""
        users = await self._scan()
        users.sort(key=lambda u: (u.created_at, u.id))
        for user in users:
            yield user

    @_retried(_read_retry)
    async def count_users(self, search: str | None = None) -> int:
        if search:
            return sum(1 for u in await self._scan() if u.matches(search))
        result = await self._run(
            lambda: self.client.count(collection_name=self.collection_name, exact=True),
            "count users",
        )
        return result.count

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @_retried(_write_retry)
    async def insert(self, user: User) -> User:
        point = PointStruct(
            id=self._to_point_id(user.id),
            vector=user.position.as_vector() if user.position else ORIGIN,
            payload=user.to_payload(),
        )
        await self._run(
            lambda: self.client.upsert(collection_name=self.collection_name, points=[point]),
            f"insert user {user.id}",
        )
        logger.debug(f"Stored user {user.id}")
        return user

    @_retried(_write_retry)
    async def update(self, user_id: str, fields: dict[str, Any]) -> User | None:
        existing = await self.get(user_id)
        if existing is None:
            return None

        # Validate the merged document before touching storage
        merged = User.from_payload({**existing.to_payload(), **fields, "id": user_id})
        payload = {key: value for key, value in merged.to_payload().items() if key in fields}
        if not payload:
            return merged

        point_id = self._to_point_id(user_id)
        await self._run(
            lambda: self.client.set_payload(collection_name=self.collection_name, payload=payload, points=[point_id]),
            f"update user {user_id}",
        )

        if "position" in fields and merged.position is not None:
            position: Position = merged.position
            await self._run(
                lambda: self.client.update_vectors(
                    collection_name=self.collection_name,
                    points=[PointVectors(id=point_id, vector=position.as_vector())],
                ),
                f"update position of user {user_id}",
            )

        return merged

    @_retried(_write_retry)
    async def delete(self, user_id: str) -> bool:
        if await self.get(user_id) is None:
            return False
        point_id = self._to_point_id(user_id)
        await self._run(
            lambda: self.client.delete(
                collection_name=self.collection_name, points_selector=PointIdsList(points=[point_id])
            ),
            f"delete user {user_id}",
        )
        logger.debug(f"Deleted user {user_id}")
        return True
