"""
Team-scoped publish/subscribe for real-time events.

Every subscription is bound to exactly one team; publishing to a team
reaches only that team's subscribers. Delivery is best-effort: a slow
subscriber whose queue is full misses the event, and publish failures are
logged, never raised to the caller.

Backends:
- memory: in-process asyncio queues (single worker)
- redis:  redis.asyncio pub/sub, one channel per team (multiple workers)
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

import redis.asyncio as redis

from config import settings
from .events import TaskAssignedEvent, TaskUpdatedEvent, event_to_wire

logger = logging.getLogger(__name__)

Event = Union[TaskAssignedEvent, TaskUpdatedEvent]

CHANNEL_PREFIX = "teamtasks:team:"


def team_channel(team_id: str) -> str:
    return f"{CHANNEL_PREFIX}{team_id}"


class Subscription:
    """A subscriber's view of one team's event stream."""

    def __init__(
        self,
        team_id: str,
        queue: "asyncio.Queue[Dict[str, Any]]",
        on_close: Callable[["Subscription"], Awaitable[None]],
    ):
        self.team_id = team_id
        self.queue = queue
        self._on_close = on_close
        self.closed = False

    async def get(self) -> Dict[str, Any]:
        """Wait for the next wire payload."""
        return await self.queue.get()

    def offer(self, payload: Dict[str, Any]) -> bool:
        """Queue a payload without waiting. False if it was dropped."""
        try:
            self.queue.put_nowait(payload)
            return True
        except asyncio.QueueFull:
            logger.warning(f"Subscriber queue full for team {self.team_id}, dropping event")
            return False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._on_close(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Dict[str, Any]:
        if self.closed:
            raise StopAsyncIteration
        return await self.get()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


class EventBroker(ABC):
    """Publish/subscribe keyed by team id."""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size

    async def start(self) -> None:
        """Acquire backend resources."""

    async def stop(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def subscribe(self, team_id: str) -> Subscription:
        ...

    @abstractmethod
    async def _publish(self, team_id: str, payload: Dict[str, Any]) -> int:
        ...

    async def publish(self, team_id: str, event: Event) -> int:
        """
        Publish an event to one team.

        Returns:
            Number of subscribers reached (0 on failure)
        """
        try:
            delivered = await self._publish(team_id, event_to_wire(event))
            logger.debug(f"Published {event.type} to team {team_id} ({delivered} subscribers)")
            return delivered
        except Exception as e:
            logger.warning(f"Failed to publish {event.type} to team {team_id}: {e}")
            return 0


class InMemoryEventBroker(EventBroker):
    """Fan-out through per-subscriber bounded asyncio queues."""

    def __init__(self, queue_size: int = 100):
        super().__init__(queue_size)
        self._subscribers: Dict[str, Set[Subscription]] = {}

    async def subscribe(self, team_id: str) -> Subscription:
        subscription = Subscription(team_id, asyncio.Queue(maxsize=self.queue_size), self._unsubscribe)
        self._subscribers.setdefault(team_id, set()).add(subscription)
        logger.debug(f"Subscribed to team {team_id} ({self.subscriber_count(team_id)} total)")
        return subscription

    async def _unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.team_id)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.team_id]

    async def _publish(self, team_id: str, payload: Dict[str, Any]) -> int:
        delivered = 0
        for subscription in list(self._subscribers.get(team_id, ())):
            if subscription.offer(payload):
                delivered += 1
        return delivered

    def subscriber_count(self, team_id: str) -> int:
        return len(self._subscribers.get(team_id, ()))

    async def stop(self) -> None:
        self._subscribers.clear()


class RedisEventBroker(EventBroker):
    """Fan-out through Redis pub/sub so several workers share one stream."""

    def __init__(self, redis_url: str, queue_size: int = 100):
        super().__init__(queue_size)
        self.redis_url = redis_url
        self._client: Optional[redis.Redis] = None
        self._pumps: Dict[Subscription, Any] = {}

    async def start(self) -> None:
        if self._client is not None:
            return
        self._client = redis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
        )
        await self._client.ping()
        logger.info("Redis event broker connected")

    async def stop(self) -> None:
        for subscription in list(self._pumps):
            await subscription.close()
        if self._client is not None:
            try:
                await self._client.aclose()
                logger.info("Redis event broker closed")
            except Exception as e:
                logger.error(f"Error closing Redis event broker: {e}")
            finally:
                self._client = None

    async def subscribe(self, team_id: str) -> Subscription:
        if self._client is None:
            await self.start()

        pubsub = self._client.pubsub()
        await pubsub.subscribe(team_channel(team_id))
        subscription = Subscription(team_id, asyncio.Queue(maxsize=self.queue_size), self._unsubscribe)
        pump = asyncio.create_task(self._pump(pubsub, subscription))
        self._pumps[subscription] = (pubsub, pump)
        return subscription

    async def _pump(self, pubsub, subscription: Subscription) -> None:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                payload = json.loads(message["data"])
            except (TypeError, ValueError):
                logger.warning(f"Discarding undecodable message on {message.get('channel')}")
                continue
            subscription.offer(payload)

    async def _unsubscribe(self, subscription: Subscription) -> None:
        entry = self._pumps.pop(subscription, None)
        if entry is None:
            return
        pubsub, pump = entry
        pump.cancel()
        try:
            await pump
        except asyncio.CancelledError:
            pass
        try:
            await pubsub.unsubscribe()
            await pubsub.aclose()
        except Exception as e:
            logger.warning(f"Error closing pub/sub for team {subscription.team_id}: {e}")

    async def _publish(self, team_id: str, payload: Dict[str, Any]) -> int:
        if self._client is None:
            await self.start()
        return await self._client.publish(team_channel(team_id), json.dumps(payload))


# ==================== SINGLETON ====================

_broker: Optional[EventBroker] = None


def create_event_broker() -> EventBroker:
    """Build the broker selected by EVENT_BROKER."""
    if settings.event_broker == "redis":
        return RedisEventBroker(settings.redis_url, settings.event_queue_size)
    return InMemoryEventBroker(settings.event_queue_size)


def get_event_broker() -> EventBroker:
    """Get the event broker singleton."""
    global _broker
    if _broker is None:
        _broker = create_event_broker()
    return _broker


def set_event_broker(broker: Optional[EventBroker]) -> None:
    """Replace the broker singleton (used by tests)."""
    global _broker
    _broker = broker


async def publish_event(team_id: str, event: Event) -> int:
    """Publish through the configured broker. Never raises."""
    return await get_event_broker().publish(team_id, event)
