# orderflow/core/ports/order_repository.py
from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from orderflow.core.domain.models import Order, OrderStatus
from orderflow.core.domain.pagination import OrderCursor


class IOrderRepository(Protocol):
    """
    Port for Order persistence.

    Every mutating method is a single conditional update: it returns the
    updated Order when the precondition held, and None when another writer
    got there first (or the order does not exist). Callers never read, modify
    and write back an Order.
    """

    async def create(self, order: Order) -> Order:
        """
        Inserts a new order.

        Raises:
            DuplicateTransactionError: if `transaction_id_normalized` is already taken.
        """
        ...

    async def get(self, order_id: str) -> Optional[Order]:
        ...

    async def transaction_id_exists(self, transaction_id_normalized: str) -> bool:
        ...

    async def list_page(
        self,
        limit: int,
        cursor: Optional[OrderCursor] = None,
        account_key: Optional[str] = None,
    ) -> List[Order]:
        """
        Returns up to `limit` orders newest first, strictly after `cursor`.
        When `account_key` is given only that account's orders are returned.
        """
        ...

    async def list_by_status(self, statuses: Sequence[OrderStatus]) -> List[Order]:
        ...

    # --- Payment upload (payment.* only) ---

    async def complete_upload(self, order_id: str, url: str, storage_id: str, now: datetime) -> Optional[Order]:
        """pending -> uploaded."""
        ...

    async def fail_upload(self, order_id: str, error: str, now: datetime) -> Optional[Order]:
        """pending -> failed."""
        ...

    async def restart_upload(self, order_id: str, account_key: str, screenshot_name: str, now: datetime) -> Optional[Order]:
        """failed -> pending, only for a Placed order owned by `account_key`."""
        ...

    async def fail_stale_uploads(self, requested_before: datetime, error: str, now: datetime) -> List[Order]:
        """pending -> failed for every upload requested before `requested_before`."""
        ...

    # --- Status ---

    async def apply_decision(self, order_id: str, status: OrderStatus, reason: str, now: datetime) -> Optional[Order]:
        """
        Placed -> Verified|Rejected, queueing the decision email in the same write.
        """
        ...

    async def mark_delivered(self, order_id: str, now: datetime) -> Optional[Order]:
        """Verified -> Delivered. decision_email is left untouched."""
        ...

    # --- Decision email (decision_email.* only) ---

    async def claim_decision_email(self, order_id: str, now: datetime, reclaim_before: datetime) -> Optional[Order]:
        """
        queued|failed (or sending older than `reclaim_before`) -> sending,
        attempts + 1. Only the winning caller gets the Order back.
        """
        ...

    async def record_email_sent(self, order_id: str, now: datetime) -> Optional[Order]:
        """sending -> sent."""
        ...

    async def record_email_failure(self, order_id: str, error: str, terminal: bool, now: datetime) -> Optional[Order]:
        """sending -> failed when `terminal`, else sending -> queued."""
        ...

    async def release_email_claim(self, order_id: str, error: str, now: datetime) -> Optional[Order]:
        """sending -> queued without charging the attempt (nothing reached the relay)."""
        ...

    async def list_email_candidates(self, limit: int, reclaim_before: datetime) -> List[str]:
        """
        Ids of decided orders whose email is queued, or stuck in sending since
        before `reclaim_before`; oldest `updated_at` first.
        """
        ...

    async def health_check(self) -> bool:
        ...
