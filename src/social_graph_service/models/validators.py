"""Shared Pydantic types and validators for reuse across models.

Centralises hobby normalisation, friend-id de-duplication, and the
Literal enums so every model speaks the same language.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BeforeValidator, Field

# ---------------------------------------------------------------------------
# Hobby normalisation
# ---------------------------------------------------------------------------


def normalize_hobby(value: Any) -> str:
    """Lower-case and trim a single hobby tag."""
    return str(value).strip().lower()


def normalize_hobbies(v: Any) -> list[str]:
    """Accept ``str | list | None`` and return lower-cased, trimmed hobbies.

    * ``"Coding, Music"`` → ``["coding", "music"]``
    * ``[" Art ", None, ""]`` → ``["art"]``
    * ``None`` → ``[]``

    Duplicates are kept; they collapse when hobbies are compared.
    """
    if v is None:
        return []
    if isinstance(v, str):
        v = v.split(",")
    if isinstance(v, (list, tuple, set)):
        return [s for item in v if item is not None and (s := normalize_hobby(item))]
    return []


Hobbies = Annotated[list[str], BeforeValidator(normalize_hobbies)]
"""Flexible hobby input (str, list or None), always normalised to list[str]."""


# ---------------------------------------------------------------------------
# Friend ids
# ---------------------------------------------------------------------------


def dedupe_ids(v: Any) -> list[str]:
    """Return ids as strings with duplicates removed, first occurrence kept."""
    if v is None:
        return []
    return list(dict.fromkeys(str(item) for item in v if item))


FriendIds = Annotated[list[str], BeforeValidator(dedupe_ids)]


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------

UserId = Annotated[str, Field(min_length=1)]
"""Non-empty opaque user identifier."""

Age = Annotated[int, Field(ge=0, le=200)]

Username = Annotated[str, BeforeValidator(lambda v: v.strip() if isinstance(v, str) else v), Field(min_length=1)]


# ---------------------------------------------------------------------------
# Literal enums
# ---------------------------------------------------------------------------

NodeType = Literal["high", "low"]
ChangeEventType = Literal["user:created", "user:updated", "user:deleted", "users:linked", "users:unlinked"]
