import os
import random
import sys

import pytest

# Keep tests off real infrastructure: in-process Qdrant, Redis disabled
os.environ.setdefault("SOCIAL_GRAPH_STORAGE_URL", ":memory:")
os.environ.setdefault("SOCIAL_GRAPH_REDIS_ENABLED", "false")

# Add src directory to Python path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), "src"))

from social_graph_service.config import GraphSettings  # noqa: E402
from social_graph_service.graph.positions import RandomPositionProvider  # noqa: E402
from social_graph_service.models.user import User  # noqa: E402
from social_graph_service.services.user_service import UserService  # noqa: E402
from social_graph_service.storage.base import UserStorage  # noqa: E402


class InMemoryUserStorage(UserStorage):
    """Dict-backed UserStorage for service and API tests."""

    def __init__(self):
        self.users: dict[str, User] = {}
        self.get_many_calls: list[list[str]] = []
        self.closed = False

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        self.closed = True

    async def get(self, user_id):
        user = self.users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def get_many(self, user_ids):
        self.get_many_calls.append(list(user_ids))
        return [self.users[uid].model_copy(deep=True) for uid in dict.fromkeys(user_ids) if uid in self.users]

    async def list_users(self, offset=0, limit=None, search=None):
        users = sorted(self.users.values(), key=lambda u: (u.created_at, u.id))
        if search:
            users = [u for u in users if u.matches(search)]
        end = offset + limit if limit is not None else len(users)
        return [u.model_copy(deep=True) for u in users[offset:end]]

    async def count_users(self, search=None):
        if search:
            return sum(1 for u in self.users.values() if u.matches(search))
        return len(self.users)

    async def insert(self, user):
        self.users[user.id] = user.model_copy(deep=True)
        return user

    async def update(self, user_id, fields):
        existing = self.users.get(user_id)
        if existing is None:
            return None
        merged = User.from_payload({**existing.to_payload(), **fields, "id": user_id})
        self.users[user_id] = merged
        return merged.model_copy(deep=True)

    async def delete(self, user_id):
        return self.users.pop(user_id, None) is not None


def make_user(user_id: str, hobbies=(), friends=(), created_at: float = 0.0, **kwargs) -> User:
    """Build a User with a fixed id and creation time."""
    return User(
        id=user_id,
        username=kwargs.pop("username", user_id),
        age=kwargs.pop("age", 30),
        hobbies=list(hobbies),
        friends=list(friends),
        created_at=created_at,
        **kwargs,
    )


@pytest.fixture
def storage() -> InMemoryUserStorage:
    return InMemoryUserStorage()


@pytest.fixture
def graph_settings() -> GraphSettings:
    return GraphSettings()


@pytest.fixture
def service(storage, graph_settings) -> UserService:
    return UserService(
        storage,
        position_provider=RandomPositionProvider(rng=random.Random(0)),
        graph_settings=graph_settings,
    )


@pytest.fixture
def user_factory():
    return make_user
