# orderflow/core/use_cases/update_order_status.py
from typing import Optional

import structlog

from orderflow.core.domain import events
from orderflow.core.domain.events import OrdersChangedAction
from orderflow.core.domain.exceptions import (
    InvalidStatusTransitionError,
    OrderNotFoundError,
    OrderValidationError,
)
from orderflow.core.domain.models import Order, OrderStatus, StatusChangeResult
from orderflow.core.ports.clock import IClock
from orderflow.core.ports.event_publisher import IEventPublisher
from orderflow.core.ports.order_repository import IOrderRepository
from orderflow.shared.telemetry import get_tracer

logger = structlog.get_logger()
tracer = get_tracer(__name__)

ALLOWED_TARGETS = (OrderStatus.VERIFIED, OrderStatus.REJECTED, OrderStatus.DELIVERED)


class UpdateOrderStatus:
    """
    Use Case: Operator moves an order through the review workflow.

    Placed -> Verified | Rejected is decided by one conditional update that
    also queues the decision email, so of several concurrent decisions
    exactly one applies and exactly one email is queued. The losers get the
    current order back with applied=False.

    Verified -> Delivered never touches the decision email.
    """

    def __init__(self, repo: IOrderRepository, publisher: IEventPublisher, clock: IClock):
        self.repo = repo
        self.publisher = publisher
        self.clock = clock

    async def execute(self, order_id: str, status: str, reason: Optional[str] = None) -> StatusChangeResult:
        with tracer.start_as_current_span("use_case.update_order_status") as span:
            span.set_attribute("order.id", order_id)
            span.set_attribute("order.target_status", str(status))

            target = self._parse_target(status)
            reason = (reason or "").strip()

            if target == OrderStatus.REJECTED and not reason:
                raise OrderValidationError("Rejection reason is required")
            if target != OrderStatus.REJECTED:
                reason = ""

            if target == OrderStatus.DELIVERED:
                return await self._deliver(order_id)
            return await self._decide(order_id, target, reason)

    async def _decide(self, order_id: str, target: OrderStatus, reason: str) -> StatusChangeResult:
        now = self.clock.now()
        updated = await self.repo.apply_decision(order_id, target, reason, now)

        if updated is None:
            current = await self._require(order_id)
            logger.info(
                "order_decision_noop",
                order_id=order_id,
                requested=target.value,
                current=current.status.value,
            )
            return StatusChangeResult(order=current, applied=False, email_queued=False)

        logger.info("order_decided", order_id=order_id, status=target.value, email_status=updated.decision_email.status.value)
        await self._announce(updated)
        return StatusChangeResult(order=updated, applied=True, email_queued=True)

    async def _deliver(self, order_id: str) -> StatusChangeResult:
        updated = await self.repo.mark_delivered(order_id, self.clock.now())

        if updated is None:
            current = await self._require(order_id)
            if current.status == OrderStatus.DELIVERED:
                return StatusChangeResult(order=current, applied=False)
            raise InvalidStatusTransitionError(order_id, current.status.value, OrderStatus.DELIVERED.value)

        logger.info("order_delivered", order_id=order_id)
        await self._announce(updated)
        return StatusChangeResult(order=updated, applied=True)

    async def _announce(self, order: Order) -> None:
        now = self.clock.now()
        await self.publisher.to_operators(events.order_updated(order))
        await self.publisher.to_customers(events.orders_changed(order, OrdersChangedAction.STATUS_UPDATED, now))
        await self.publisher.to_customers(events.foods_changed("statusUpdated", now))

    async def _require(self, order_id: str) -> Order:
        current = await self.repo.get(order_id)
        if current is None:
            raise OrderNotFoundError(order_id)
        return current

    @staticmethod
    def _parse_target(status: str) -> OrderStatus:
        try:
            target = OrderStatus(status)
        except ValueError:
            raise OrderValidationError(f"Invalid status '{status}'")
        if target not in ALLOWED_TARGETS:
            raise OrderValidationError(f"Invalid status '{status}'")
        return target
