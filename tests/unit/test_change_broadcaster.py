"""
Tests for Redis pub/sub change notifications.

Tests cover:
- Channel naming and event wire format
- Publishing (success, failure, disconnected)
- Listener dispatch, own-origin filtering and handler isolation
- NullBroadcaster no-ops
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from social_graph_service.events.broadcaster import EVENT_TYPES, ChangeBroadcaster, ChangeEvent, NullBroadcaster
from social_graph_service.utils.errors import UnavailableError


@pytest.fixture
def mock_redis():
    with patch("social_graph_service.events.broadcaster.ConnectionPool") as mock_pool_cls, patch(
        "social_graph_service.events.broadcaster.Redis"
    ) as mock_redis_cls:
        mock_pool = MagicMock()
        mock_pool.aclose = AsyncMock()
        mock_pool_cls.from_url.return_value = mock_pool

        redis = AsyncMock()
        redis.ping = AsyncMock()
        redis.publish = AsyncMock(return_value=1)
        redis.aclose = AsyncMock()
        mock_redis_cls.return_value = redis
        yield redis


@pytest.fixture
async def broadcaster(mock_redis):
    broadcaster = ChangeBroadcaster(origin="host-a:1")
    await broadcaster.initialize()
    yield broadcaster
    await broadcaster.close()


def message_for(event: ChangeEvent) -> dict:
    return {"type": "message", "channel": f"social:{event.event}", "data": event.model_dump_json(by_alias=True)}


def test_channels_cover_every_event():
    broadcaster = ChangeBroadcaster(channel_prefix="social:")
    assert broadcaster.channels == [
        "social:user:created",
        "social:user:updated",
        "social:user:deleted",
        "social:users:linked",
        "social:users:unlinked",
    ]
    assert len(EVENT_TYPES) == 5


def test_event_wire_format():
    event = ChangeEvent(event="users:linked", user_ids=["a", "b"], timestamp=1.5, origin="h:1")
    assert json.loads(event.model_dump_json(by_alias=True)) == {
        "event": "users:linked",
        "userIds": ["a", "b"],
        "timestamp": 1.5,
        "origin": "h:1",
    }


class TestPublish:
    @pytest.mark.asyncio
    async def test_publish_sends_json_on_event_channel(self, broadcaster, mock_redis):
        assert await broadcaster.publish("user:created", ["u1"]) is True

        channel, raw = mock_redis.publish.call_args.args
        assert channel == "social:user:created"
        payload = json.loads(raw)
        assert payload["event"] == "user:created"
        assert payload["userIds"] == ["u1"]
        assert payload["origin"] == "host-a:1"
        assert broadcaster.get_stats()["published"] == 1

    @pytest.mark.asyncio
    async def test_publish_failure_returns_false(self, broadcaster, mock_redis):
        mock_redis.publish = AsyncMock(side_effect=ConnectionError("gone"))

        assert await broadcaster.publish("user:deleted", ["u1"]) is False
        assert broadcaster.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_publish_before_initialize_is_noop(self):
        assert await ChangeBroadcaster().publish("user:updated", ["u1"]) is False

    @pytest.mark.asyncio
    async def test_initialize_failure_raises_unavailable(self, mock_redis):
        mock_redis.ping = AsyncMock(side_effect=ConnectionError("refused"))
        broadcaster = ChangeBroadcaster()

        with pytest.raises(UnavailableError):
            await broadcaster.initialize()
        assert broadcaster.is_available is False


class TestDispatch:
    @pytest.mark.asyncio
    async def test_remote_event_reaches_handlers(self, broadcaster):
        handler = AsyncMock()
        broadcaster.subscribe(handler)
        event = ChangeEvent(event="users:unlinked", user_ids=["a", "b"], origin="host-b:2")

        await broadcaster._dispatch(message_for(event))

        handler.assert_awaited_once()
        received = handler.await_args.args[0]
        assert received.event == "users:unlinked"
        assert received.user_ids == ["a", "b"]
        assert broadcaster.get_stats()["received"] == 1

    @pytest.mark.asyncio
    async def test_own_events_are_ignored(self, broadcaster):
        handler = AsyncMock()
        broadcaster.subscribe(handler)

        await broadcaster._dispatch(message_for(ChangeEvent(event="user:created", origin="host-a:1")))

        handler.assert_not_awaited()
        assert broadcaster.get_stats()["ignored"] == 1

    @pytest.mark.asyncio
    async def test_malformed_message_is_counted(self, broadcaster):
        handler = AsyncMock()
        broadcaster.subscribe(handler)

        await broadcaster._dispatch({"channel": "social:user:created", "data": "not json"})

        handler.assert_not_awaited()
        assert broadcaster.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self, broadcaster):
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        broadcaster.subscribe(failing)
        broadcaster.subscribe(healthy)

        await broadcaster._dispatch(message_for(ChangeEvent(event="user:updated", origin="host-b:2")))

        healthy.assert_awaited_once()
        assert broadcaster.get_stats()["errors"] == 1

    def test_sync_handlers_are_rejected(self):
        with pytest.raises(ValueError):
            ChangeBroadcaster().subscribe(lambda event: None)

    def test_coroutine_function_handlers_are_accepted(self):
        async def handler(event):
            return None

        broadcaster = ChangeBroadcaster()
        broadcaster.subscribe(handler)

        assert broadcaster._handlers == [handler]


class TestListener:
    @pytest.mark.asyncio
    async def test_listener_subscribes_and_dispatches(self, broadcaster, mock_redis):
        remote = ChangeEvent(event="user:deleted", user_ids=["x"], origin="host-b:2")
        delivered = asyncio.Event()

        async def get_message(ignore_subscribe_messages, timeout):
            if not delivered.is_set():
                return message_for(remote)
            await asyncio.sleep(0.01)
            return None

        pubsub = MagicMock()
        pubsub.subscribe = AsyncMock()
        pubsub.unsubscribe = AsyncMock()
        pubsub.aclose = AsyncMock()
        pubsub.get_message = get_message
        mock_redis.pubsub = MagicMock(return_value=pubsub)

        async def handler(event):
            delivered.set()

        broadcaster.subscribe(handler)
        await broadcaster.start_listener()
        assert broadcaster.is_listening

        await asyncio.wait_for(delivered.wait(), timeout=1.0)
        await broadcaster.stop_listener()

        pubsub.subscribe.assert_awaited_once_with(*broadcaster.channels)
        pubsub.unsubscribe.assert_awaited_once()
        pubsub.aclose.assert_awaited_once()
        assert broadcaster.is_listening is False

    @pytest.mark.asyncio
    async def test_listener_not_started_when_disconnected(self):
        broadcaster = ChangeBroadcaster()
        await broadcaster.start_listener()
        assert broadcaster.is_listening is False


class TestNullBroadcaster:
    @pytest.mark.asyncio
    async def test_all_operations_are_noops(self):
        null = NullBroadcaster()
        await null.initialize()
        null.subscribe(AsyncMock())
        await null.start_listener()
        assert await null.publish("user:created", ["a"]) is False
        await null.stop_listener()
        await null.close()
        assert null.get_stats() == {"enabled": False}
