# orderflow/core/use_cases/submit_order.py
import uuid
from typing import Optional, Tuple

import structlog

from orderflow.core.domain import events
from orderflow.core.domain.events import OrdersChangedAction
from orderflow.core.domain.exceptions import (
    OrderNotFoundError,
    OrderValidationError,
    UploadNotReplaceableError,
)
from orderflow.core.domain.models import (
    ImageUpload,
    Order,
    OrderStatus,
    OrderSubmission,
    Payment,
    UploadStatus,
)
from orderflow.core.domain.validation import (
    normalize_account_key,
    normalize_transaction_id,
    validate_image,
    validate_submission,
)
from orderflow.core.ports.clock import IClock
from orderflow.core.ports.event_publisher import IEventPublisher
from orderflow.core.ports.object_storage import IObjectStorage, IUploadThrottler
from orderflow.core.ports.order_repository import IOrderRepository
from orderflow.shared.telemetry import get_tracer

logger = structlog.get_logger()
tracer = get_tracer(__name__)


class SubmitOrder:
    """
    Use Case: Accepts a new order and its proof-of-payment image.

    This is an Asynchronous Command. The order is persisted as Placed with
    payment.upload_status=pending and returned right away; pushing the image
    to object storage is the job of ProcessPaymentUpload, scheduled by the
    caller after the response.

    Responsibilities:
    1. Validate team, items, transaction id and image.
    2. Insert the order; the unique index on the normalized transaction id
       rejects duplicates (no check-then-insert).
    3. Notify operators (orderCreated) and the owning customer (ordersChanged),
       and tell every catalog viewer that popularity moved (foodsChanged).
    """

    def __init__(
        self,
        repo: IOrderRepository,
        publisher: IEventPublisher,
        clock: IClock,
        max_total_items: int,
        email_domain: str,
        max_image_bytes: int,
    ):
        self.repo = repo
        self.publisher = publisher
        self.clock = clock
        self.max_total_items = max_total_items
        self.email_domain = email_domain
        self.max_image_bytes = max_image_bytes

    async def execute(self, submission: OrderSubmission, image: ImageUpload) -> Order:
        with tracer.start_as_current_span("use_case.submit_order") as span:
            account_key = normalize_account_key(submission.account_key)
            if not account_key:
                raise OrderValidationError("Please sign in to continue.")

            validated = validate_submission(submission, self.max_total_items, self.email_domain)
            validate_image(image, self.max_image_bytes)
            span.set_attribute("order.transaction_id", validated.transaction_id_normalized)

            now = self.clock.now()
            order = Order(
                id=uuid.uuid4().hex,
                account_key=account_key,
                transaction_id_normalized=validated.transaction_id_normalized,
                status=OrderStatus.PLACED,
                team=validated.team,
                items=validated.items,
                total_items=validated.total_items,
                subtotal=validated.subtotal,
                payment=Payment(
                    transaction_id=validated.transaction_id,
                    screenshot_name=image.filename,
                    upload_status=UploadStatus.PENDING,
                    upload_requested_at=now,
                ),
                created_at=now,
                updated_at=now,
            )

            # Raises DuplicateTransactionError; nothing has been published yet.
            created = await self.repo.create(order)
            span.set_attribute("order.id", created.id)
            logger.info(
                "order_created",
                order_id=created.id,
                account_key=created.account_key,
                total_items=created.total_items,
                subtotal=created.subtotal,
            )

            await self.publisher.to_operators(events.order_created(created))
            await self.publisher.to_customers(events.orders_changed(created, OrdersChangedAction.ORDER_CREATED, now))
            await self.publisher.to_customers(events.foods_changed("orderCreated", now))
            return created


class ProcessPaymentUpload:
    """
    Use Case: Pushes a payment screenshot through the upload throttler and
    records the outcome on the order exactly once.

    Runs after the HTTP response. Storage errors are recorded on the order
    (upload_status=failed) and never raised to the caller. When the upload
    replaced an earlier image, the old object is deleted on success.
    """

    def __init__(
        self,
        repo: IOrderRepository,
        throttler: IUploadThrottler,
        storage: IObjectStorage,
        publisher: IEventPublisher,
        clock: IClock,
        folder: str,
    ):
        self.repo = repo
        self.throttler = throttler
        self.storage = storage
        self.publisher = publisher
        self.clock = clock
        self.folder = folder

    async def execute(self, order_id: str, image: ImageUpload, previous_storage_id: str = "") -> Optional[Order]:
        with tracer.start_as_current_span("use_case.process_payment_upload") as span:
            span.set_attribute("order.id", order_id)
            structlog.contextvars.bind_contextvars(order_id=order_id)
            try:
                try:
                    result = await self.throttler.submit(
                        image.data,
                        f"{self.folder}/payments",
                        filename=image.filename,
                        content_type=image.content_type,
                    )
                except Exception as e:
                    logger.warning("payment_upload_failed", error=str(e))
                    updated = await self.repo.fail_upload(order_id, str(e) or type(e).__name__, self.clock.now())
                    action = OrdersChangedAction.PAYMENT_UPLOAD_FAILED
                else:
                    updated = await self.repo.complete_upload(order_id, result.url, result.storage_id, self.clock.now())
                    action = OrdersChangedAction.PAYMENT_UPLOADED
                    if updated is None:
                        # Reconciliation already gave up on this upload; drop the orphan.
                        await self._delete_quietly(result.storage_id)
                    elif previous_storage_id:
                        await self._delete_quietly(previous_storage_id)

                if updated is None:
                    logger.info("payment_upload_outcome_ignored", reason="no longer pending")
                    return None

                logger.info("payment_upload_recorded", status=updated.payment.upload_status.value)
                now = self.clock.now()
                await self.publisher.to_operators(events.order_updated(updated))
                await self.publisher.to_customers(events.orders_changed(updated, action, now))
                return updated
            finally:
                structlog.contextvars.unbind_contextvars("order_id")

    async def _delete_quietly(self, storage_id: str) -> None:
        try:
            await self.storage.delete(storage_id)
        except Exception as e:
            logger.warning("storage_cleanup_failed", storage_id=storage_id, error=str(e))


class CheckTransactionIdAvailability:
    """
    Use Case: Advisory pre-check for the order form.
    The insert-time unique index stays the authority.
    """

    def __init__(self, repo: IOrderRepository):
        self.repo = repo

    async def execute(self, transaction_id: str) -> bool:
        normalized = normalize_transaction_id(transaction_id)
        return not await self.repo.transaction_id_exists(normalized)


class ReplacePaymentScreenshot:
    """
    Use Case: Lets the owner of a Placed order re-upload a payment screenshot
    after the previous upload failed.

    Returns the order (back to pending) and the storage id of the previous
    image, which the caller hands to ProcessPaymentUpload for cleanup.
    """

    def __init__(self, repo: IOrderRepository, publisher: IEventPublisher, clock: IClock, max_image_bytes: int):
        self.repo = repo
        self.publisher = publisher
        self.clock = clock
        self.max_image_bytes = max_image_bytes

    async def execute(self, order_id: str, account_key: str, image: ImageUpload) -> Tuple[Order, str]:
        with tracer.start_as_current_span("use_case.replace_payment_screenshot") as span:
            span.set_attribute("order.id", order_id)
            validate_image(image, self.max_image_bytes)
            owner = normalize_account_key(account_key)

            current = await self.repo.get(order_id)
            if current is None or current.account_key != owner:
                raise OrderNotFoundError(order_id)

            updated = await self.repo.restart_upload(order_id, owner, image.filename, self.clock.now())
            if updated is None:
                raise UploadNotReplaceableError(order_id)

            logger.info("payment_upload_restarted", order_id=order_id)
            await self.publisher.to_operators(events.order_updated(updated))
            return updated, current.payment.screenshot_storage_id
