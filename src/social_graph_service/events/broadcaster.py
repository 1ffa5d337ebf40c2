"""
Redis pub/sub change notifications.

Every successful user mutation is announced on its own channel so that
other service instances (and any interested consumer) can drop stale
cached reads:

    social:user:created     social:user:updated     social:user:deleted
    social:users:linked     social:users:unlinked

Pattern:
    Publisher (any instance): PUBLISH a JSON ChangeEvent
    Listener  (each instance): SUBSCRIBE to all five channels, poll with
                               get_message, dispatch to local handlers

Delivery is fire-and-forget. Events published by the same process are
ignored by its own listener (the local caller has already invalidated).
"""

import asyncio
import inspect
import logging
import os
import socket
import time
from collections.abc import Awaitable, Callable
from typing import Any, get_args

from pydantic import Field, ValidationError
from redis.asyncio import ConnectionPool, Redis

from ..models.graph import CamelModel
from ..models.validators import ChangeEventType
from ..utils.errors import UnavailableError

logger = logging.getLogger(__name__)

EVENT_TYPES: tuple[str, ...] = get_args(ChangeEventType)


def default_origin() -> str:
    """Identifier of this process, stamped on every published event."""
    return f"{socket.gethostname()}:{os.getpid()}"


class ChangeEvent(CamelModel):
    """A single user-change notification as it travels over Redis."""

    event: ChangeEventType
    user_ids: list[str] = Field(default_factory=list)
    timestamp: float = Field(default_factory=time.time)
    origin: str = ""


EventHandler = Callable[[ChangeEvent], Awaitable[None]]


class ChangeBroadcaster:
    """
    Redis pub/sub publisher and listener for user change events.

    Publishing never raises: a failed PUBLISH is logged and counted.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379",
        channel_prefix: str = "social:",
        max_connections: int = 10,
        poll_interval: float = 1.0,
        origin: str | None = None,
    ):
        """
        Args:
            url: Redis connection URL
            channel_prefix: Prepended to each event name to form its channel
            max_connections: Maximum Redis connections in pool
            poll_interval: Seconds the listener waits for a message per tick
            origin: Process identifier; defaults to ``hostname:pid``
        """
        self.url = url
        self.channel_prefix = channel_prefix
        self.max_connections = max_connections
        self.poll_interval = poll_interval
        self.origin = origin or default_origin()

        self._pool: ConnectionPool | None = None
        self._redis: Redis | None = None
        self._pubsub = None
        self._handlers: list[EventHandler] = []
        self._running = False
        self._listener_task: asyncio.Task | None = None
        self._initialized = False
        self._stats = {"published": 0, "received": 0, "ignored": 0, "errors": 0}

    @property
    def is_available(self) -> bool:
        return self._initialized and self._redis is not None

    @property
    def is_listening(self) -> bool:
        return self._running and self._listener_task is not None

    def channel_for(self, event: str) -> str:
        return f"{self.channel_prefix}{event}"

    @property
    def channels(self) -> list[str]:
        return [self.channel_for(event) for event in EVENT_TYPES]

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """
        Open the connection pool.

        Raises:
            UnavailableError: If Redis does not answer PING
        """
        if self._initialized:
            return

        self._pool = ConnectionPool.from_url(self.url, max_connections=self.max_connections, decode_responses=True)
        self._redis = Redis(connection_pool=self._pool)

        try:
            await self._redis.ping()
            self._initialized = True
            logger.info(f"ChangeBroadcaster initialized: {self.url} (origin={self.origin})")
        except Exception as e:
            logger.error(f"ChangeBroadcaster initialization failed: {e}")
            await self._redis.aclose()
            await self._pool.aclose()
            self._redis = None
            self._pool = None
            raise UnavailableError(f"Redis pub/sub unreachable at {self.url}") from e

    async def close(self) -> None:
        """Stop the listener and release connections. Safe to call more than once."""
        await self.stop_listener()

        if self._redis:
            await self._redis.aclose()
            self._redis = None

        if self._pool:
            await self._pool.aclose()
            self._pool = None

        self._initialized = False

    # ── Publisher ───────────────────────────────────────────────────────

    async def publish(self, event: ChangeEventType, user_ids: list[str]) -> bool:
        """
        Announce a change on the event's channel.

        Returns:
            True if Redis accepted the message, False otherwise
        """
        if not self.is_available:
            return False

        message = ChangeEvent(event=event, user_ids=list(user_ids), origin=self.origin)
        try:
            await self._redis.publish(self.channel_for(event), message.model_dump_json(by_alias=True))
            self._stats["published"] += 1
            logger.debug(f"Published {event} for {user_ids}")
            return True
        except Exception as e:
            self._stats["errors"] += 1
            logger.warning(f"Failed to publish {event}: {e}")
            return False

    # ── Listener ────────────────────────────────────────────────────────

    def subscribe(self, handler: EventHandler) -> None:
        """Register an async handler invoked for every event from another process."""
        if not inspect.iscoroutinefunction(handler):
            raise ValueError("Change event handlers must be async")
        self._handlers.append(handler)

    async def start_listener(self) -> None:
        """Subscribe to all change channels and start the background listener."""
        if self._running:
            logger.warning("Change listener already running")
            return
        if not self.is_available:
            logger.warning("Change listener not started: broadcaster is not connected")
            return

        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(*self.channels)
        self._running = True
        self._listener_task = asyncio.create_task(self._listen_loop())
        logger.info(f"Change listener started ({len(self.channels)} channels)")

    async def stop_listener(self) -> None:
        """Cancel the listener task and unsubscribe."""
        self._running = False
        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None

        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe()
                await self._pubsub.aclose()
            except Exception as e:
                logger.debug(f"Error closing pub/sub connection: {e}")
            self._pubsub = None
            logger.info("Change listener stopped")

    async def _listen_loop(self) -> None:
        """Main listener loop: get_message → dispatch → repeat."""
        while self._running:
            try:
                message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=self.poll_interval)
                if message is None:
                    continue
                await self._dispatch(message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._stats["errors"] += 1
                logger.error(f"Change listener error: {e}")
                await asyncio.sleep(1.0)  # Back off on unexpected errors

    async def _dispatch(self, message: dict[str, Any]) -> None:
        """Decode one pub/sub message and hand it to every handler."""
        try:
            event = ChangeEvent.model_validate_json(message["data"])
        except (ValidationError, KeyError, TypeError) as e:
            self._stats["errors"] += 1
            logger.warning(f"Ignoring malformed change event on {message.get('channel')}: {e}")
            return

        if event.origin == self.origin:
            self._stats["ignored"] += 1
            return

        self._stats["received"] += 1
        for handler in self._handlers:
            try:
                await handler(event)
            except Exception as e:
                self._stats["errors"] += 1
                logger.error(f"Change handler failed for {event.event}: {e}", exc_info=True)

    def get_stats(self) -> dict[str, Any]:
        return {
            "enabled": True,
            "connected": self.is_available,
            "listening": self.is_listening,
            "origin": self.origin,
            **self._stats,
        }


class NullBroadcaster:
    """Stand-in used when Redis is disabled or unreachable. Every call is a no-op."""

    is_available = False
    is_listening = False

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def publish(self, event: ChangeEventType, user_ids: list[str]) -> bool:
        return False

    def subscribe(self, handler: EventHandler) -> None:
        pass

    async def start_listener(self) -> None:
        pass

    async def stop_listener(self) -> None:
        pass

    def get_stats(self) -> dict[str, Any]:
        return {"enabled": False}
