# orderflow/core/ports/event_publisher.py
from typing import Protocol

from orderflow.core.domain.events import RealtimeEvent


class IEventPublisher(Protocol):
    """
    Port for the realtime fan-out.

    Delivery is best effort: publishing never raises and never blocks on a
    slow subscriber.
    """

    async def to_operators(self, event: RealtimeEvent) -> int:
        """Pushes to every operator subscriber. Returns the delivered count."""
        ...

    async def to_customers(self, event: RealtimeEvent) -> int:
        """
        Pushes to customer subscribers; an event with an account_key only
        reaches subscribers of that account.
        """
        ...
