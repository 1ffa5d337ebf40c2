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
Abstract base class for user storage backends.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from ..models.user import User


class StorageError(Exception):
    """Storage-related errors."""

    pass


class UserStorage(ABC):
    """
    Document store for user records.

    Backends provide find-by-id, batch find, filtered skip/limit listing,
    count, insert, partial update and delete. No multi-record transaction
    is assumed; each call is atomic for a single record at most.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections and ensure the collection exists."""

    @abstractmethod
    async def close(self) -> None:
        """Release resources. Safe to call more than once."""

    @abstractmethod
    async def get(self, user_id: str) -> User | None:
        """Fetch one user, or None if it does not exist."""

    @abstractmethod
    async def get_many(self, user_ids: list[str]) -> list[User]:
        """Fetch the users that exist among ``user_ids``; missing ids are skipped."""

    @abstractmethod
    async def list_users(self, offset: int = 0, limit: int | None = None, search: str | None = None) -> list[User]:
        """
        List users ordered by (created_at, id).

        Args:
            offset: Number of users to skip
            limit: Maximum users to return (None for all)
            search: Case-insensitive substring on username or any hobby
        """

    @abstractmethod
    async def count_users(self, search: str | None = None) -> int:
        """Number of users, optionally restricted by ``search``."""

    @abstractmethod
    async def insert(self, user: User) -> User:
        """Persist a new user and return it."""

    @abstractmethod
    async def update(self, user_id: str, fields: dict[str, Any]) -> User | None:
        """
        Overwrite the given top-level fields of one user.

        Returns the updated user, or None if it does not exist.
        """

    @abstractmethod
    async def delete(self, user_id: str) -> bool:
        """Delete one user. Returns False if it did not exist."""

    async def iter_all(self, batch_size: int = 256) -> AsyncIterator[User]:
        """Iterate over every user in storage order."""
        offset = 0
        while True:
            batch = await self.list_users(offset=offset, limit=batch_size)
            for user in batch:
                yield user
            if len(batch) < batch_size:
                return
            offset += batch_size
