# orderflow/core/use_cases/list_orders.py
from typing import Optional

import structlog

from orderflow.core.domain.exceptions import OrderValidationError
from orderflow.core.domain.models import OrderPage
from orderflow.core.domain.pagination import OrderCursor, clamp_limit
from orderflow.core.domain.validation import normalize_account_key
from orderflow.core.ports.order_repository import IOrderRepository
from orderflow.shared.telemetry import get_tracer

logger = structlog.get_logger()
tracer = get_tracer(__name__)


class ListOrders:
    """
    Use Case: Keyset-paginated order listing, newest first.

    Operators see every order; everyone else only their own account's.
    The next cursor points at the last row of the page, so rows inserted
    while a client pages through never shift or duplicate later pages.
    """

    def __init__(self, repo: IOrderRepository, max_limit: int = 200):
        self.repo = repo
        self.max_limit = max_limit

    async def execute(
        self,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
        account_key: Optional[str] = None,
        is_operator: bool = False,
    ) -> OrderPage:
        with tracer.start_as_current_span("use_case.list_orders") as span:
            page_size = clamp_limit(limit, self.max_limit)
            position = OrderCursor.parse(cursor) if cursor else None

            owner = None
            if not is_operator:
                owner = normalize_account_key(account_key or "")
                if not owner:
                    raise OrderValidationError("Please sign in to continue.")

            span.set_attribute("page.limit", page_size)
            span.set_attribute("page.operator", is_operator)

            orders = await self.repo.list_page(page_size, position, owner)

            next_cursor = None
            if len(orders) == page_size:
                last = orders[-1]
                next_cursor = OrderCursor(last.created_at, last.id).encode()

            logger.debug("orders_listed", count=len(orders), operator=is_operator, has_more=next_cursor is not None)
            return OrderPage(orders=orders, next_cursor=next_cursor)
