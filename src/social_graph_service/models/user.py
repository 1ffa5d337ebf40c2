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

"""User record model.

Pydantic v2 model for the stored user document, with helpers to convert
to and from the storage payload.
"""

import logging
import math
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .validators import Age, FriendIds, Hobbies, UserId, Username

logger = logging.getLogger(__name__)


def new_user_id() -> str:
    """Generate a fresh opaque user identifier."""
    return str(uuid.uuid4())


def float_to_iso(ts: float) -> str:
    """Convert float timestamp to ISO string (UTC, Z-suffix)."""
    return datetime.fromtimestamp(ts, timezone.utc).isoformat().replace("+00:00", "Z")


def _safe_float(v: Any, default: float) -> float:
    """Convert *v* to float, returning *default* on failure or non-finite values."""
    try:
        result = float(v)
        return result if math.isfinite(result) else default
    except (TypeError, ValueError):
        return default


class Position(BaseModel):
    """2-D layout position persisted for the graph view."""

    x: float
    y: float

    def as_vector(self) -> list[float]:
        return [self.x, self.y]


class User(BaseModel):
    """A single user record."""

    model_config = ConfigDict(validate_assignment=True)

    id: UserId = Field(default_factory=new_user_id)
    username: Username
    age: Age
    hobbies: Hobbies = Field(default_factory=list)
    friends: FriendIds = Field(default_factory=list)
    position: Position | None = None
    created_at: float = Field(default_factory=time.time)

    @property
    def created_at_iso(self) -> str:
        return float_to_iso(self.created_at)

    @property
    def has_friends(self) -> bool:
        return bool(self.friends)

    def is_friend_of(self, other_id: str) -> bool:
        return other_id in self.friends

    def matches(self, search: str) -> bool:
        """Case-insensitive substring match on username or any hobby."""
        needle = search.strip().lower()
        if not needle:
            return True
        if needle in self.username.lower():
            return True
        return any(needle in hobby for hobby in self.hobbies)

    def to_payload(self) -> dict[str, Any]:
        """Convert to the storage document."""
        return {
            "id": self.id,
            "username": self.username,
            "age": self.age,
            "hobbies": list(self.hobbies),
            "friends": list(self.friends),
            "position": self.position.model_dump() if self.position else None,
            "created_at": self.created_at,
            "created_at_iso": self.created_at_iso,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any], user_id: str | None = None) -> "User":
        """Create a User from a storage document.

        Tolerates documents written before a field existed: missing lists
        default to empty, a missing timestamp to "now".
        """
        position = data.get("position")
        return cls(
            id=user_id or data["id"],
            username=data["username"],
            age=int(data.get("age", 0)),
            hobbies=data.get("hobbies") or [],
            friends=data.get("friends") or [],
            position=Position.model_validate(position) if position is not None else None,
            created_at=_safe_float(data.get("created_at"), time.time()),
        )
