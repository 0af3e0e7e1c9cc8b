# orderflow/adapters/persistence/sql_catalog_repository.py
import asyncio
from datetime import datetime, timezone
from typing import Any, List, Type

from sqlalchemy import and_, select, update

from orderflow.adapters.persistence.database import Database
from orderflow.adapters.persistence.tables import FoodItemRow, PaymentQrRow
from orderflow.core.domain.models import FoodItem, PaymentQr, UploadStatus
from orderflow.core.ports.catalog_repository import ICatalogRepository
from orderflow.shared.resilience import retry_transient_storage

_FOOD_FIELDS = list(FoodItem.model_fields)
_QR_FIELDS = list(PaymentQr.model_fields)


class SqlCatalogRepository(ICatalogRepository):
    """SQLAlchemy implementation of the catalog (food items, payment QR codes)."""

    def __init__(self, database: Database):
        self.database = database

    async def list_foods(self) -> List[FoodItem]:
        return await asyncio.to_thread(self._list_foods_sync)

    async def save_food(self, food: FoodItem) -> FoodItem:
        return await asyncio.to_thread(self._save_sync, FoodItemRow, food, _FOOD_FIELDS, FoodItem)

    async def save_payment_qr(self, qr: PaymentQr) -> PaymentQr:
        return await asyncio.to_thread(self._save_sync, PaymentQrRow, qr, _QR_FIELDS, PaymentQr)

    async def fail_stale_food_uploads(self, requested_before: datetime, error: str, now: datetime) -> List[FoodItem]:
        return await asyncio.to_thread(
            self._fail_stale_sync, FoodItemRow, FoodItemRow.client_id, requested_before, error, now, FoodItem, _FOOD_FIELDS
        )

    async def fail_stale_qr_uploads(self, requested_before: datetime, error: str, now: datetime) -> List[PaymentQr]:
        return await asyncio.to_thread(
            self._fail_stale_sync, PaymentQrRow, PaymentQrRow.id, requested_before, error, now, PaymentQr, _QR_FIELDS
        )

    # --- Synchronous Helpers (executed in thread pool) ---

    def _list_foods_sync(self) -> List[FoodItem]:
        with self.database.session() as db:
            rows = db.scalars(select(FoodItemRow).order_by(FoodItemRow.name))
            return [_to_domain(FoodItem, row, _FOOD_FIELDS) for row in rows]

    @retry_transient_storage
    def _save_sync(self, row_cls: Type[Any], entity: Any, fields: List[str], model: Type[Any]) -> Any:
        values = entity.model_dump()
        values["upload_status"] = entity.upload_status.value
        stamp = values.get("updated_at") or datetime.now(timezone.utc)
        values["updated_at"] = stamp
        values["created_at"] = values.get("created_at") or stamp
        with self.database.session() as db:
            row = db.merge(row_cls(**values))
            db.flush()
            return _to_domain(model, row, fields)

    @retry_transient_storage
    def _fail_stale_sync(self, row_cls, key_column, requested_before, error, now, model, fields) -> List[Any]:
        stale = and_(
            row_cls.upload_status == UploadStatus.PENDING.value,
            row_cls.upload_requested_at < requested_before,
        )
        with self.database.session() as db:
            keys = list(db.scalars(select(key_column).where(stale)))
            changed = []
            for key in keys:
                result = db.execute(
                    update(row_cls)
                    .where(key_column == key, stale)
                    .values(upload_status=UploadStatus.FAILED.value, upload_error=error, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    changed.append(key)
            if not changed:
                return []
            rows = db.scalars(select(row_cls).where(key_column.in_(changed)))
            return [_to_domain(model, row, fields) for row in rows]


def _to_domain(model, row, fields: List[str]):
    return model(**{name: getattr(row, name) for name in fields})
