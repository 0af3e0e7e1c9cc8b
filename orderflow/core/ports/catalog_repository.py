# orderflow/core/ports/catalog_repository.py
from datetime import datetime
from typing import List, Protocol

from orderflow.core.domain.models import FoodItem, PaymentQr


class ICatalogRepository(Protocol):
    """
    Port for the food catalog and the payment QR images.
    The order pipeline only reads them, apart from upload reconciliation.
    """

    async def list_foods(self) -> List[FoodItem]:
        """Returns all food items sorted by name."""
        ...

    async def save_food(self, food: FoodItem) -> FoodItem:
        """Inserts or replaces a food item by `client_id`."""
        ...

    async def save_payment_qr(self, qr: PaymentQr) -> PaymentQr:
        ...

    async def fail_stale_food_uploads(self, requested_before: datetime, error: str, now: datetime) -> List[FoodItem]:
        ...

    async def fail_stale_qr_uploads(self, requested_before: datetime, error: str, now: datetime) -> List[PaymentQr]:
        ...
