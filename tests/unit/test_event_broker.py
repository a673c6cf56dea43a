"""
Tests for teamtasks/realtime/broker.py and teamtasks/realtime/events.py
"""

import asyncio
import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from teamtasks.realtime.broker import (
    InMemoryEventBroker,
    RedisEventBroker,
    create_event_broker,
    team_channel,
)
from teamtasks.realtime.events import (
    TaskAssignedEvent,
    TaskUpdatedEvent,
    event_to_wire,
    parse_event,
)


def updated(task_id: str = "t1") -> TaskUpdatedEvent:
    return TaskUpdatedEvent(task_id=task_id, employee_id="e1", is_completed=True, task_date="2025-02-19")


# ==================== EVENTS ====================

class TestEventWireFormat:
    """Tests for event serialization and parsing."""

    def test_assigned_event_is_camel_case(self):
        event = TaskAssignedEvent(
            task_id="t1",
            employee_id="e1",
            employee_name="Alice",
            task_title="Count register",
            task_date="2025-02-19",
        )

        assert event_to_wire(event) == {
            "type": "task:assigned",
            "taskId": "t1",
            "employeeId": "e1",
            "employeeName": "Alice",
            "taskTitle": "Count register",
            "taskDate": "2025-02-19",
        }

    def test_parse_known_kinds(self):
        assigned = parse_event({
            "type": "task:assigned",
            "taskId": "t1",
            "employeeId": "e1",
            "employeeName": "Alice",
            "taskTitle": "Count register",
        })
        batch = parse_event({"type": "task:updated", "batch": True, "created": 4, "taskDate": "2025-02-19"})

        assert isinstance(assigned, TaskAssignedEvent)
        assert assigned.employee_name == "Alice"
        assert isinstance(batch, TaskUpdatedEvent)
        assert batch.batch is True and batch.created == 4

    def test_unknown_kinds_ignored(self):
        assert parse_event({"type": "task:deleted", "taskId": "t1"}) is None
        assert parse_event({"type": "pong"}) is None
        assert parse_event({"taskId": "t1"}) is None
        assert parse_event(["task:updated"]) is None

    def test_malformed_known_kind_ignored(self):
        assert parse_event({"type": "task:assigned", "taskId": "t1"}) is None


# ==================== IN-MEMORY BROKER ====================

class TestInMemoryEventBroker:
    """Team scoping and best-effort delivery."""

    @pytest.mark.asyncio
    async def test_publish_reaches_only_the_team(self):
        broker = InMemoryEventBroker()
        ops_a = await broker.subscribe("ops")
        ops_b = await broker.subscribe("ops")
        warehouse = await broker.subscribe("warehouse")

        delivered = await broker.publish("ops", updated())

        assert delivered == 2
        assert ops_a.queue.get_nowait()["taskId"] == "t1"
        assert ops_b.queue.get_nowait()["taskId"] == "t1"
        assert warehouse.queue.empty()

    @pytest.mark.asyncio
    async def test_full_queue_drops_event(self):
        broker = InMemoryEventBroker(queue_size=1)
        subscription = await broker.subscribe("ops")

        first = await broker.publish("ops", updated("t1"))
        second = await broker.publish("ops", updated("t2"))

        assert (first, second) == (1, 0)
        assert subscription.queue.get_nowait()["taskId"] == "t1"
        assert subscription.queue.empty()

    @pytest.mark.asyncio
    async def test_closed_subscription_stops_receiving(self):
        broker = InMemoryEventBroker()
        async with await broker.subscribe("ops") as subscription:
            assert broker.subscriber_count("ops") == 1

        assert subscription.closed
        assert broker.subscriber_count("ops") == 0
        assert await broker.publish("ops", updated()) == 0

    @pytest.mark.asyncio
    async def test_subscription_iterates_payloads(self):
        broker = InMemoryEventBroker()
        subscription = await broker.subscribe("ops")
        await broker.publish("ops", updated("t1"))
        await broker.publish("ops", updated("t2"))

        received = []
        async for payload in subscription:
            received.append(payload["taskId"])
            if len(received) == 2:
                await subscription.close()

        assert received == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_publish_failure_is_not_raised(self):
        broker = InMemoryEventBroker()
        with patch.object(broker, "_publish", AsyncMock(side_effect=RuntimeError("down"))):
            assert await broker.publish("ops", updated()) == 0


# ==================== REDIS BROKER ====================

class FakePubSub:
    """Stands in for redis.asyncio PubSub."""

    def __init__(self, messages):
        self.messages = messages
        self.subscribe = AsyncMock()
        self.unsubscribe = AsyncMock()
        self.aclose = AsyncMock()

    async def listen(self):
        for message in self.messages:
            yield message
        await asyncio.Event().wait()


class TestRedisEventBroker:
    """Redis backend with a mocked client."""

    @pytest.mark.asyncio
    async def test_publish_uses_team_channel(self):
        broker = RedisEventBroker("redis://localhost:6379")
        client = MagicMock()
        client.publish = AsyncMock(return_value=3)
        broker._client = client

        delivered = await broker.publish("ops", updated())

        assert delivered == 3
        channel, data = client.publish.call_args.args
        assert channel == team_channel("ops") == "teamtasks:team:ops"
        assert json.loads(data)["type"] == "task:updated"

    @pytest.mark.asyncio
    async def test_redis_failure_returns_zero(self):
        broker = RedisEventBroker("redis://localhost:6379")
        client = MagicMock()
        client.publish = AsyncMock(side_effect=ConnectionError("refused"))
        broker._client = client

        assert await broker.publish("ops", updated()) == 0

    @pytest.mark.asyncio
    async def test_subscription_receives_channel_messages(self):
        broker = RedisEventBroker("redis://localhost:6379")
        pubsub = FakePubSub([
            {"type": "subscribe", "channel": "teamtasks:team:ops", "data": 1},
            {"type": "message", "channel": "teamtasks:team:ops", "data": "not json"},
            {"type": "message", "channel": "teamtasks:team:ops", "data": json.dumps(event_to_wire(updated()))},
        ])
        client = MagicMock()
        client.pubsub = MagicMock(return_value=pubsub)
        broker._client = client

        subscription = await broker.subscribe("ops")
        payload = await asyncio.wait_for(subscription.get(), timeout=1)
        await subscription.close()

        pubsub.subscribe.assert_awaited_once_with("teamtasks:team:ops")
        assert payload["taskId"] == "t1"
        pubsub.unsubscribe.assert_awaited_once()
        pubsub.aclose.assert_awaited_once()


class TestCreateEventBroker:
    """Backend selection from settings."""

    def test_memory_by_default(self, monkeypatch):
        from config import settings
        monkeypatch.setattr(settings, "event_broker", "memory")
        assert isinstance(create_event_broker(), InMemoryEventBroker)

    def test_redis_when_configured(self, monkeypatch):
        from config import settings
        monkeypatch.setattr(settings, "event_broker", "redis")
        assert isinstance(create_event_broker(), RedisEventBroker)
