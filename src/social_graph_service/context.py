"""
Application context for the Social Graph Service.

Holds every shared handle (storage, cache, broadcaster) for one process and
is passed explicitly to whatever needs it. The HTTP app keeps it on
``app.state.context``; the seeding script opens its own.

Storage is required; Redis is optional. When Redis is disabled or
unreachable the cache is left out and a NullBroadcaster is used.
"""

import logging

from .cache.redis_cache import RedisCache
from .config import Settings
from .events.broadcaster import ChangeBroadcaster, ChangeEvent, NullBroadcaster
from .graph.positions import PositionProvider, create_position_provider
from .services.user_service import UserService
from .storage.base import UserStorage
from .storage.factory import create_storage_instance

logger = logging.getLogger(__name__)


class AppContext:
    """Shared handles for one running process."""

    def __init__(
        self,
        settings: Settings,
        storage: UserStorage,
        cache: RedisCache | None = None,
        broadcaster: ChangeBroadcaster | NullBroadcaster | None = None,
        position_provider: PositionProvider | None = None,
    ):
        self.settings = settings
        self.storage = storage
        self.cache = cache
        self.broadcaster = broadcaster or NullBroadcaster()
        self.position_provider = position_provider or create_position_provider(
            strategy=settings.graph.position_strategy,
            extent=settings.graph.position_extent,
            columns=settings.graph.grid_columns,
            spacing=settings.graph.grid_spacing,
            jitter=settings.graph.grid_jitter,
        )

    @property
    def cache_enabled(self) -> bool:
        return self.cache is not None and self.cache.is_available

    @classmethod
    async def open(cls, settings: Settings) -> "AppContext":
        """
        Connect storage and, when enabled, the Redis cache and broadcaster.

        Raises:
            StorageError: If the user store cannot be initialized
        """
        storage = await create_storage_instance(settings.storage)

        cache: RedisCache | None = None
        broadcaster: ChangeBroadcaster | NullBroadcaster = NullBroadcaster()

        if settings.redis.enabled:
            redis_cfg = settings.redis
            try:
                cache = RedisCache(
                    url=redis_cfg.url,
                    ttl_seconds=redis_cfg.ttl_seconds,
                    key_prefix=redis_cfg.key_prefix,
                    max_connections=redis_cfg.max_connections,
                )
                await cache.initialize()
            except Exception as e:
                logger.warning(f"Redis cache initialization failed (non-fatal): {e}")
                cache = None

            try:
                redis_broadcaster = ChangeBroadcaster(
                    url=redis_cfg.url,
                    channel_prefix=redis_cfg.channel_prefix,
                    max_connections=redis_cfg.max_connections,
                    poll_interval=redis_cfg.listener_poll_interval,
                )
                await redis_broadcaster.initialize()
                broadcaster = redis_broadcaster
            except Exception as e:
                logger.warning(f"Change broadcaster initialization failed (non-fatal): {e}")
        else:
            logger.info("Redis disabled; running without cache and change events")

        context = cls(settings, storage, cache=cache, broadcaster=broadcaster)
        context.broadcaster.subscribe(context.on_remote_change)
        try:
            await context.broadcaster.start_listener()
        except Exception as e:
            logger.warning(f"Change listener failed to start (non-fatal): {e}")

        logger.info(
            f"Application context ready: storage={type(storage).__name__}, "
            f"cache={'on' if context.cache_enabled else 'off'}, "
            f"events={'on' if context.broadcaster.is_available else 'off'}"
        )
        return context

    async def on_remote_change(self, event: ChangeEvent) -> None:
        """Drop cached reads after another process changed users."""
        if self.cache is None:
            return
        deleted = await self.cache.invalidate_reads()
        logger.debug(f"Remote {event.event} from {event.origin}: invalidated {deleted} cached read(s)")

    def user_service(self) -> UserService:
        return UserService(
            self.storage,
            cache=self.cache,
            broadcaster=self.broadcaster,
            position_provider=self.position_provider,
            graph_settings=self.settings.graph,
        )

    async def close(self) -> None:
        """Stop the listener and close every handle. Safe to call more than once."""
        try:
            await self.broadcaster.close()
        except Exception as e:
            logger.warning(f"Error closing change broadcaster: {e}")

        if self.cache is not None:
            try:
                await self.cache.close()
            except Exception as e:
                logger.warning(f"Error closing Redis cache: {e}")
            self.cache = None

        try:
            logger.info("Closing user storage...")
            await self.storage.close()
        except Exception as e:
            logger.error(f"Error closing user storage: {e}")
