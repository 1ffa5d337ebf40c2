"""Service-layer response models.

Typed Pydantic models returned by ``UserService``.  These are the
*response* shapes (what the caller sees, camelCase on the wire), not the
stored ``User`` document.
"""

from __future__ import annotations

from pydantic import Field

from .graph import CamelModel, Pagination
from .user import Position, User

# ---------------------------------------------------------------------------
# User data (wire-format for API responses)
# ---------------------------------------------------------------------------


class UserData(CamelModel):
    """Serialised user record."""

    id: str
    username: str
    age: int
    hobbies: list[str] = Field(default_factory=list)
    friends: list[str] = Field(default_factory=list)
    position: Position | None = None
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserData":
        return cls(
            id=user.id,
            username=user.username,
            age=user.age,
            hobbies=list(user.hobbies),
            friends=list(user.friends),
            position=user.position,
            created_at=user.created_at_iso,
        )


class UserPage(CamelModel):
    """Result of a ``list_users()`` call."""

    users: list[UserData] = Field(default_factory=list)
    pagination: Pagination


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


class MessageResult(CamelModel):
    """Plain acknowledgement for delete/link/unlink."""

    message: str


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


class HobbyCount(CamelModel):
    hobby: str
    count: int


class UserStats(CamelModel):
    """Aggregate dashboard numbers for the whole user set."""

    total_users: int = 0
    total_connections: int = 0
    average_age: float = 0.0
    average_friends: float = 0.0
    high_score_users: int = 0
    low_score_users: int = 0
    top_hobbies: list[HobbyCount] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResult(CamelModel):
    healthy: bool = True
    storage_type: str = "unknown"
    total_users: int = 0
    cache_enabled: bool = False
    broadcaster: dict = Field(default_factory=dict)
    error: str | None = None
