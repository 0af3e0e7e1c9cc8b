# orderflow/adapters/realtime/registry.py
import asyncio
import itertools
from typing import Dict, List, Optional

import structlog

from orderflow.core.domain.events import RealtimeEvent

logger = structlog.get_logger()

_ids = itertools.count(1)


class Subscriber:
    """One live SSE connection and its outbound queue."""

    def __init__(self, registry_name: str, account_key: Optional[str], queue_size: int):
        self.id = next(_ids)
        self.registry_name = registry_name
        self.account_key = account_key
        self.queue: "asyncio.Queue[RealtimeEvent]" = asyncio.Queue(maxsize=queue_size)
        self.closed = asyncio.Event()

    def __repr__(self) -> str:
        return f"Subscriber({self.registry_name}#{self.id})"


class EventRegistry:
    """
    Set of live subscribers for one audience (operators or customers).

    Delivery is at-most-once with no replay: a subscriber that cannot take
    an event (queue full, connection gone) is dropped and must reconnect.
    With `filter_by_account`, an event carrying an account_key is only
    delivered to subscribers registered with the same key.
    """

    def __init__(self, name: str, filter_by_account: bool = False, queue_size: int = 100):
        self.name = name
        self.filter_by_account = filter_by_account
        self.queue_size = queue_size
        self._subscribers: Dict[int, Subscriber] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, account_key: Optional[str] = None) -> Subscriber:
        subscriber = Subscriber(self.name, account_key, self.queue_size)
        self._subscribers[subscriber.id] = subscriber
        logger.info("realtime_subscribed", registry=self.name, subscriber=subscriber.id, total=self.subscriber_count)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        subscriber.closed.set()
        if self._subscribers.pop(subscriber.id, None) is not None:
            logger.info("realtime_unsubscribed", registry=self.name, subscriber=subscriber.id, total=self.subscriber_count)

    def broadcast(self, event: RealtimeEvent) -> int:
        delivered = 0
        dropped: List[Subscriber] = []

        for subscriber in list(self._subscribers.values()):
            if not self._accepts(subscriber, event):
                continue
            try:
                subscriber.queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                dropped.append(subscriber)

        for subscriber in dropped:
            logger.warning("realtime_subscriber_dropped", registry=self.name, subscriber=subscriber.id, event_name=event.name)
            self.unsubscribe(subscriber)

        return delivered

    def close_all(self) -> None:
        for subscriber in list(self._subscribers.values()):
            self.unsubscribe(subscriber)

    def _accepts(self, subscriber: Subscriber, event: RealtimeEvent) -> bool:
        if not self.filter_by_account or event.account_key is None:
            return True
        return subscriber.account_key == event.account_key
