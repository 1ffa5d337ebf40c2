"""User storage backends."""

from .base import StorageError, UserStorage
from .factory import create_storage_instance
from .qdrant_storage import QdrantUserStorage

__all__ = ["StorageError", "UserStorage", "QdrantUserStorage", "create_storage_instance"]
