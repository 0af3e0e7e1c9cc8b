# orderflow/core/use_cases/reconcile_uploads.py
from datetime import timedelta

import structlog
from pydantic import BaseModel

from orderflow.core.domain import events
from orderflow.core.domain.events import OrdersChangedAction
from orderflow.core.ports.catalog_repository import ICatalogRepository
from orderflow.core.ports.clock import IClock
from orderflow.core.ports.event_publisher import IEventPublisher
from orderflow.core.ports.order_repository import IOrderRepository
from orderflow.shared.telemetry import get_tracer

logger = structlog.get_logger()
tracer = get_tracer(__name__)

STALE_UPLOAD_ERROR = "Upload interrupted before completion"


class ReconcileReport(BaseModel):
    orders: int = 0
    foods: int = 0
    payment_qrs: int = 0


class ReconcileStaleUploads:
    """
    Use Case: Turns uploads stuck in `pending` into visible failures.

    An upload runs after the response inside the API process; if that process
    dies mid-flight the record would stay pending forever. Anything pending
    for longer than `stale_after_sec` is flipped to failed (conditionally, so
    a late completion still wins if it lands first) and announced, which lets
    the customer re-upload.
    """

    def __init__(
        self,
        orders: IOrderRepository,
        catalog: ICatalogRepository,
        publisher: IEventPublisher,
        clock: IClock,
        stale_after_sec: float = 900,
    ):
        self.orders = orders
        self.catalog = catalog
        self.publisher = publisher
        self.clock = clock
        self.stale_after = timedelta(seconds=stale_after_sec)

    async def execute(self) -> ReconcileReport:
        with tracer.start_as_current_span("use_case.reconcile_uploads") as span:
            now = self.clock.now()
            cutoff = now - self.stale_after

            orders = await self.orders.fail_stale_uploads(cutoff, STALE_UPLOAD_ERROR, now)
            for order in orders:
                await self.publisher.to_operators(events.order_updated(order))
                await self.publisher.to_customers(
                    events.orders_changed(order, OrdersChangedAction.PAYMENT_UPLOAD_FAILED, now)
                )

            foods = await self.catalog.fail_stale_food_uploads(cutoff, STALE_UPLOAD_ERROR, now)
            if foods:
                await self.publisher.to_customers(events.foods_changed("uploadReconciled", now))
                await self.publisher.to_operators(events.foods_changed("uploadReconciled", now))

            qrs = await self.catalog.fail_stale_qr_uploads(cutoff, STALE_UPLOAD_ERROR, now)
            for qr in qrs:
                await self.publisher.to_customers(events.payment_qr_changed(qr, now))
                await self.publisher.to_operators(events.payment_qr_changed(qr, now))

            report = ReconcileReport(orders=len(orders), foods=len(foods), payment_qrs=len(qrs))
            span.set_attribute("reconcile.total", len(orders) + len(foods) + len(qrs))
            if orders or foods or qrs:
                logger.warning("stale_uploads_failed", **report.model_dump())
            return report
