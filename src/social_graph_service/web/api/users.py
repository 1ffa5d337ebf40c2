"""
User and friendship API endpoints.

Provides endpoints to:
- Create, read, update and delete users
- List users page by page with an optional search term
- Link and unlink two users as mutual friends

Domain errors (not found, conflict, invalid operation) are mapped to HTTP
status codes by the exception handlers registered in ``web.app``.
"""

import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from ...models.graph import CamelModel
from ...models.responses import MessageResult, UserData, UserPage
from ...models.user import Position
from ...services.user_service import UserService
from ...utils.errors import InvalidOperationError
from ..dependencies import get_user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


class CreateUserRequest(BaseModel):
    """Request model for creating a user."""

    username: str = Field(..., min_length=1, description="Display name")
    age: int = Field(..., ge=0, le=200)
    hobbies: list[str] = Field(default_factory=list, description="Hobby tags; trimmed and lower-cased")
    position: Position | None = Field(None, description="Layout position; assigned when omitted")


class UpdateUserRequest(BaseModel):
    """Partial update. Friends are changed through link/unlink only."""

    model_config = ConfigDict(extra="forbid")

    username: str | None = Field(None, min_length=1)
    age: int | None = Field(None, ge=0, le=200)
    hobbies: list[str] | None = None
    position: Position | None = None


class FriendRequest(CamelModel):
    """Body of link/unlink: ``{"friendId": "..."}``."""

    friend_id: str | None = None


def _require_friend_id(request: FriendRequest | None) -> str:
    if request is None or not request.friend_id:
        raise InvalidOperationError("friendId is required in the body")
    return request.friend_id


@router.post("", response_model=UserData, status_code=201)
async def create_user(request: CreateUserRequest, service: UserService = Depends(get_user_service)) -> UserData:
    return await service.create_user(
        username=request.username,
        age=request.age,
        hobbies=request.hobbies,
        position=request.position,
    )


@router.get("", response_model=UserPage)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1, description="Page size (default 50, capped at 500)"),
    search: str | None = Query(None, description="Substring of username or any hobby"),
    service: UserService = Depends(get_user_service),
) -> UserPage:
    """
    List users ordered by creation time.

    Returns:
        The users on the page and pagination metadata
    """
    return await service.list_users(page=page, limit=limit, search=search)


@router.get("/{user_id}", response_model=UserData)
async def get_user(user_id: str, service: UserService = Depends(get_user_service)) -> UserData:
    return await service.get_user(user_id)


@router.put("/{user_id}", response_model=UserData)
async def update_user(
    user_id: str,
    request: UpdateUserRequest,
    service: UserService = Depends(get_user_service),
) -> UserData:
    return await service.update_user(user_id, **request.model_dump(exclude_unset=True))


@router.delete("/{user_id}", response_model=MessageResult)
async def delete_user(user_id: str, service: UserService = Depends(get_user_service)) -> MessageResult:
    """Delete a user. Fails with 409 while the user still has friends."""
    return await service.delete_user(user_id)


@router.post("/{user_id}/link", response_model=MessageResult)
async def link_users(
    user_id: str,
    request: FriendRequest | None = None,
    service: UserService = Depends(get_user_service),
) -> MessageResult:
    return await service.link_users(user_id, _require_friend_id(request))


@router.delete("/{user_id}/unlink", response_model=MessageResult)
async def unlink_users(
    user_id: str,
    request: FriendRequest | None = None,
    service: UserService = Depends(get_user_service),
) -> MessageResult:
    return await service.unlink_users(user_id, _require_friend_id(request))
