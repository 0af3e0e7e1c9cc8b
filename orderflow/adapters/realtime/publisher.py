# orderflow/adapters/realtime/publisher.py
import structlog

from orderflow.adapters.realtime.registry import EventRegistry
from orderflow.core.domain.events import RealtimeEvent
from orderflow.core.ports.event_publisher import IEventPublisher

logger = structlog.get_logger()


class RealtimePublisher(IEventPublisher):
    """Routes domain events to the operator and customer registries."""

    def __init__(self, operators: EventRegistry, customers: EventRegistry):
        self.operators = operators
        self.customers = customers

    async def to_operators(self, event: RealtimeEvent) -> int:
        return self._broadcast(self.operators, event)

    async def to_customers(self, event: RealtimeEvent) -> int:
        return self._broadcast(self.customers, event)

    def _broadcast(self, registry: EventRegistry, event: RealtimeEvent) -> int:
        try:
            delivered = registry.broadcast(event)
        except Exception as e:
            logger.error("realtime_broadcast_failed", registry=registry.name, event_name=event.name, error=str(e))
            return 0
        logger.debug("realtime_broadcast", registry=registry.name, event_name=event.name, delivered=delivered)
        return delivered
