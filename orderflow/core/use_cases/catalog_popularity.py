# orderflow/core/use_cases/catalog_popularity.py
from typing import Dict, List, Set

import structlog

from orderflow.core.domain.models import (
    ACCEPTED_STATUSES,
    POPULAR_STATUSES,
    AcceptedItemsSummary,
    AcceptedItemTotal,
    CatalogEntry,
)
from orderflow.core.ports.catalog_repository import ICatalogRepository
from orderflow.core.ports.order_repository import IOrderRepository
from orderflow.shared.cache import SingleFlightCache
from orderflow.shared.telemetry import get_tracer

logger = structlog.get_logger()
tracer = get_tracer(__name__)

CATALOG_CACHE_KEY = "catalog:popularity"


class GetCatalogWithPopularity:
    """
    Use Case: The food catalog decorated with how popular each item is.

    Popularity counts every non-rejected order (Placed, Verified, Delivered)
    so it moves as soon as someone orders:
    - ordered_by_count: distinct team emails that ordered the item.
    - ordered_qty: total units ordered.
    - is_bestseller: top `top_n` items by ordered_by_count, then ordered_qty.

    The aggregate is a full scan, so results are shared through a short-TTL
    single-flight cache.
    """

    def __init__(
        self,
        catalog: ICatalogRepository,
        orders: IOrderRepository,
        cache: SingleFlightCache,
        top_n: int = 6,
    ):
        self.catalog = catalog
        self.orders = orders
        self.cache = cache
        self.top_n = top_n

    async def execute(self) -> List[CatalogEntry]:
        return await self.cache.get_or_load(CATALOG_CACHE_KEY, self._compute)

    async def _compute(self) -> List[CatalogEntry]:
        with tracer.start_as_current_span("use_case.catalog_popularity"):
            foods = await self.catalog.list_foods()
            orders = await self.orders.list_by_status(POPULAR_STATUSES)

            emails: Dict[str, Set[str]] = {}
            quantities: Dict[str, int] = {}
            for order in orders:
                email = order.team.email.strip().lower()
                for item in order.items:
                    quantities[item.client_id] = quantities.get(item.client_id, 0) + item.quantity
                    if email:
                        emails.setdefault(item.client_id, set()).add(email)

            ranked = sorted(
                (cid for cid in quantities if quantities[cid] > 0 or emails.get(cid)),
                key=lambda cid: (len(emails.get(cid, ())), quantities[cid]),
                reverse=True,
            )
            bestsellers = set(ranked[: self.top_n])

            logger.debug("catalog_popularity_computed", foods=len(foods), orders=len(orders))
            return [
                CatalogEntry(
                    food=food,
                    ordered_by_count=len(emails.get(food.client_id, ())),
                    ordered_qty=quantities.get(food.client_id, 0),
                    is_bestseller=food.client_id in bestsellers,
                )
                for food in foods
            ]


class GetAcceptedItemsSummary:
    """
    Use Case: Kitchen view of what has to be prepared.
    Sums item quantities over Verified and Delivered orders.
    """

    def __init__(self, orders: IOrderRepository):
        self.orders = orders

    async def execute(self) -> AcceptedItemsSummary:
        accepted = await self.orders.list_by_status(ACCEPTED_STATUSES)

        totals: Dict[str, AcceptedItemTotal] = {}
        for order in accepted:
            for item in order.items:
                entry = totals.get(item.client_id)
                if entry is None:
                    totals[item.client_id] = AcceptedItemTotal(
                        client_id=item.client_id, name=item.name, quantity=item.quantity
                    )
                else:
                    entry.quantity += item.quantity

        items = sorted(totals.values(), key=lambda t: (-t.quantity, t.name))
        return AcceptedItemsSummary(
            accepted_orders=len(accepted),
            total_quantity=sum(t.quantity for t in items),
            items=items,
        )
