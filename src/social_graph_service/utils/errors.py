"""Domain errors raised by the relationship service."""


class SocialGraphError(Exception):
    """Base class for errors surfaced to callers."""


class NotFoundError(SocialGraphError):
    """Raised when one or more referenced users do not exist."""

    def __init__(self, user_ids: str | list[str], message: str | None = None):
        self.user_ids = [user_ids] if isinstance(user_ids, str) else list(user_ids)
        if message is None:
            if len(self.user_ids) == 1:
                message = f"User not found: {self.user_ids[0]}"
            else:
                message = "One or both users not found."
        super().__init__(message)


class ConflictError(SocialGraphError):
    """Raised when an operation is blocked by existing relationships."""

    def __init__(self, user_id: str, friend_count: int):
        self.user_id = user_id
        self.friend_count = friend_count
        super().__init__("User cannot be deleted while they have friends. Please unlink them first.")


class InvalidOperationError(SocialGraphError):
    """Raised for self-links and malformed input."""


class UnavailableError(Exception):
    """Raised inside optional cache/broadcast adapters when Redis is unreachable.

    Never escapes the adapter: callers always see a no-op instead.
    """
