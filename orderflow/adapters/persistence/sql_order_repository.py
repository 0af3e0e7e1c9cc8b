# orderflow/adapters/persistence/sql_order_repository.py
import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError

from orderflow.adapters.persistence.database import Database
from orderflow.adapters.persistence.tables import OrderRow
from orderflow.core.domain.exceptions import DuplicateTransactionError
from orderflow.core.domain.models import (
    DECISION_STATUSES,
    DecisionEmail,
    DecisionEmailStatus,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    Team,
    UploadStatus,
)
from orderflow.core.domain.pagination import OrderCursor
from orderflow.core.ports.order_repository import IOrderRepository
from orderflow.shared.resilience import retry_transient_storage
from orderflow.shared.telemetry import get_tracer

logger = structlog.get_logger()
tracer = get_tracer(__name__)

_DECIDED = [s.value for s in DECISION_STATUSES]


class SqlOrderRepository(IOrderRepository):
    """
    SQLAlchemy implementation of the order store.

    The unique index on `transaction_id_normalized` is the duplicate guard, and
    every state change is an UPDATE ... WHERE <precondition> whose rowcount
    tells the caller whether it won.
    """

    def __init__(self, database: Database):
        self.database = database

    # --- Reads ---

    async def create(self, order: Order) -> Order:
        with tracer.start_as_current_span("sql.orders.insert") as span:
            span.set_attribute("order.id", order.id)
            return await asyncio.to_thread(self._create_sync, order)

    async def get(self, order_id: str) -> Optional[Order]:
        return await asyncio.to_thread(self._get_sync, order_id)

    async def transaction_id_exists(self, transaction_id_normalized: str) -> bool:
        return await asyncio.to_thread(self._transaction_id_exists_sync, transaction_id_normalized)

    async def list_page(
        self,
        limit: int,
        cursor: Optional[OrderCursor] = None,
        account_key: Optional[str] = None,
    ) -> List[Order]:
        with tracer.start_as_current_span("sql.orders.page") as span:
            span.set_attribute("page.limit", limit)
            return await asyncio.to_thread(self._list_page_sync, limit, cursor, account_key)

    async def list_by_status(self, statuses: Sequence[OrderStatus]) -> List[Order]:
        return await asyncio.to_thread(self._list_by_status_sync, [s.value for s in statuses])

    async def health_check(self) -> bool:
        return await self.database.health_check()

    # --- Payment upload ---

    async def complete_upload(self, order_id: str, url: str, storage_id: str, now: datetime) -> Optional[Order]:
        return await self._conditional_update(
            order_id,
            [OrderRow.payment_upload_status == UploadStatus.PENDING.value],
            {
                "payment_upload_status": UploadStatus.UPLOADED.value,
                "payment_screenshot_url": url,
                "payment_screenshot_storage_id": storage_id,
                "payment_upload_error": "",
                "updated_at": now,
            },
        )

    async def fail_upload(self, order_id: str, error: str, now: datetime) -> Optional[Order]:
        return await self._conditional_update(
            order_id,
            [OrderRow.payment_upload_status == UploadStatus.PENDING.value],
            {
                "payment_upload_status": UploadStatus.FAILED.value,
                "payment_upload_error": error,
                "updated_at": now,
            },
        )

    async def restart_upload(self, order_id: str, account_key: str, screenshot_name: str, now: datetime) -> Optional[Order]:
        return await self._conditional_update(
            order_id,
            [
                OrderRow.account_key == account_key,
                OrderRow.status == OrderStatus.PLACED.value,
                OrderRow.payment_upload_status == UploadStatus.FAILED.value,
            ],
            {
                "payment_upload_status": UploadStatus.PENDING.value,
                "payment_upload_error": "",
                "payment_screenshot_name": screenshot_name,
                "payment_upload_requested_at": now,
                "updated_at": now,
            },
        )

    async def fail_stale_uploads(self, requested_before: datetime, error: str, now: datetime) -> List[Order]:
        return await asyncio.to_thread(self._fail_stale_uploads_sync, requested_before, error, now)

    # --- Status ---

    async def apply_decision(self, order_id: str, status: OrderStatus, reason: str, now: datetime) -> Optional[Order]:
        with tracer.start_as_current_span("sql.orders.apply_decision") as span:
            span.set_attribute("order.id", order_id)
            span.set_attribute("order.status", status.value)
            return await self._conditional_update(
                order_id,
                [OrderRow.status == OrderStatus.PLACED.value],
                {
                    "status": status.value,
                    "rejection_reason": reason,
                    "email_type": status.value,
                    "email_status": DecisionEmailStatus.QUEUED.value,
                    "email_attempts": 0,
                    "email_last_error": "",
                    "email_queued_at": now,
                    "updated_at": now,
                },
            )

    async def mark_delivered(self, order_id: str, now: datetime) -> Optional[Order]:
        return await self._conditional_update(
            order_id,
            [OrderRow.status == OrderStatus.VERIFIED.value],
            {"status": OrderStatus.DELIVERED.value, "updated_at": now},
        )

    # --- Decision email ---

    async def claim_decision_email(self, order_id: str, now: datetime, reclaim_before: datetime) -> Optional[Order]:
        return await self._conditional_update(
            order_id,
            [
                OrderRow.status.in_(_DECIDED),
                or_(
                    OrderRow.email_status.in_([
                        DecisionEmailStatus.QUEUED.value,
                        DecisionEmailStatus.FAILED.value,
                    ]),
                    _stale_sending(reclaim_before),
                ),
            ],
            {
                "email_status": DecisionEmailStatus.SENDING.value,
                "email_attempts": OrderRow.email_attempts + 1,
                "email_last_attempt_at": now,
                "updated_at": now,
            },
        )

    async def record_email_sent(self, order_id: str, now: datetime) -> Optional[Order]:
        return await self._conditional_update(
            order_id,
            [OrderRow.email_status == DecisionEmailStatus.SENDING.value],
            {
                "email_status": DecisionEmailStatus.SENT.value,
                "email_sent_at": now,
                "email_last_error": "",
                "updated_at": now,
            },
        )

    async def record_email_failure(self, order_id: str, error: str, terminal: bool, now: datetime) -> Optional[Order]:
        next_status = DecisionEmailStatus.FAILED if terminal else DecisionEmailStatus.QUEUED
        return await self._conditional_update(
            order_id,
            [OrderRow.email_status == DecisionEmailStatus.SENDING.value],
            {
                "email_status": next_status.value,
                "email_last_error": error,
                "updated_at": now,
            },
        )

    async def release_email_claim(self, order_id: str, error: str, now: datetime) -> Optional[Order]:
        return await self._conditional_update(
            order_id,
            [OrderRow.email_status == DecisionEmailStatus.SENDING.value],
            {
                "email_status": DecisionEmailStatus.QUEUED.value,
                "email_attempts": OrderRow.email_attempts - 1,
                "email_last_error": error,
                "updated_at": now,
            },
        )

    async def list_email_candidates(self, limit: int, reclaim_before: datetime) -> List[str]:
        return await asyncio.to_thread(self._list_email_candidates_sync, limit, reclaim_before)

    # --- Synchronous Helpers (executed in thread pool) ---

    async def _conditional_update(self, order_id: str, conditions: List[Any], values: Dict[str, Any]) -> Optional[Order]:
        return await asyncio.to_thread(self._conditional_update_sync, order_id, conditions, values)

    @retry_transient_storage
    def _conditional_update_sync(self, order_id: str, conditions: List[Any], values: Dict[str, Any]) -> Optional[Order]:
        with self.database.session() as db:
            stmt = (
                update(OrderRow)
                .where(OrderRow.id == order_id, *conditions)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = db.execute(stmt)
            if result.rowcount != 1:
                return None
            row = db.get(OrderRow, order_id, populate_existing=True)
            return _to_domain(row)

    @retry_transient_storage
    def _create_sync(self, order: Order) -> Order:
        try:
            with self.database.session() as db:
                db.add(_to_row(order))
        except IntegrityError as exc:
            if _is_transaction_conflict(exc):
                logger.info("order_insert_conflict", transaction_id=order.transaction_id_normalized)
                raise DuplicateTransactionError(order.payment.transaction_id)
            raise
        return order

    def _get_sync(self, order_id: str) -> Optional[Order]:
        with self.database.session() as db:
            row = db.get(OrderRow, order_id)
            return _to_domain(row) if row is not None else None

    def _transaction_id_exists_sync(self, transaction_id_normalized: str) -> bool:
        with self.database.session() as db:
            stmt = select(OrderRow.id).where(OrderRow.transaction_id_normalized == transaction_id_normalized).limit(1)
            return db.execute(stmt).first() is not None

    def _list_page_sync(self, limit: int, cursor: Optional[OrderCursor], account_key: Optional[str]) -> List[Order]:
        stmt = select(OrderRow)
        if account_key is not None:
            stmt = stmt.where(OrderRow.account_key == account_key)
        if cursor is not None:
            if cursor.order_id:
                stmt = stmt.where(or_(
                    OrderRow.created_at < cursor.created_at,
                    and_(OrderRow.created_at == cursor.created_at, OrderRow.id < cursor.order_id),
                ))
            else:
                stmt = stmt.where(OrderRow.created_at < cursor.created_at)
        stmt = stmt.order_by(OrderRow.created_at.desc(), OrderRow.id.desc()).limit(limit)

        with self.database.session() as db:
            return [_to_domain(row) for row in db.scalars(stmt)]

    def _list_by_status_sync(self, statuses: List[str]) -> List[Order]:
        stmt = select(OrderRow).where(OrderRow.status.in_(statuses)).order_by(OrderRow.created_at)
        with self.database.session() as db:
            return [_to_domain(row) for row in db.scalars(stmt)]

    def _list_email_candidates_sync(self, limit: int, reclaim_before: datetime) -> List[str]:
        stmt = (
            select(OrderRow.id)
            .where(
                OrderRow.status.in_(_DECIDED),
                or_(
                    OrderRow.email_status == DecisionEmailStatus.QUEUED.value,
                    _stale_sending(reclaim_before),
                ),
            )
            .order_by(OrderRow.updated_at.asc())
            .limit(limit)
        )
        with self.database.session() as db:
            return list(db.scalars(stmt))

    @retry_transient_storage
    def _fail_stale_uploads_sync(self, requested_before: datetime, error: str, now: datetime) -> List[Order]:
        stale = and_(
            OrderRow.payment_upload_status == UploadStatus.PENDING.value,
            OrderRow.payment_upload_requested_at < requested_before,
        )
        with self.database.session() as db:
            ids = list(db.scalars(select(OrderRow.id).where(stale)))
            if not ids:
                return []
            # Re-check the predicate per row: an upload may finish in between.
            changed = []
            for order_id in ids:
                result = db.execute(
                    update(OrderRow)
                    .where(OrderRow.id == order_id, stale)
                    .values(payment_upload_status=UploadStatus.FAILED.value, payment_upload_error=error, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    changed.append(order_id)
            rows = db.scalars(select(OrderRow).where(OrderRow.id.in_(changed))) if changed else []
            return [_to_domain(row) for row in rows]


# --- Mapping ---

def _stale_sending(reclaim_before: datetime):
    return and_(
        OrderRow.email_status == DecisionEmailStatus.SENDING.value,
        OrderRow.email_last_attempt_at < reclaim_before,
    )


def _is_transaction_conflict(exc: IntegrityError) -> bool:
    return "transaction_id_normalized" in str(exc.orig).lower()


def _to_row(order: Order) -> OrderRow:
    return OrderRow(
        id=order.id,
        account_key=order.account_key,
        transaction_id_normalized=order.transaction_id_normalized,
        status=order.status.value,
        rejection_reason=order.rejection_reason,
        team_name=order.team.team_name,
        leader_name=order.team.leader_name,
        phone=order.team.phone,
        email=order.team.email,
        items=[item.model_dump() for item in order.items],
        total_items=order.total_items,
        subtotal=order.subtotal,
        payment_method=order.payment.method,
        payment_transaction_id=order.payment.transaction_id,
        payment_screenshot_url=order.payment.screenshot_url,
        payment_screenshot_storage_id=order.payment.screenshot_storage_id,
        payment_screenshot_name=order.payment.screenshot_name,
        payment_upload_status=order.payment.upload_status.value,
        payment_upload_error=order.payment.upload_error,
        payment_upload_requested_at=order.payment.upload_requested_at,
        email_type=order.decision_email.type,
        email_status=order.decision_email.status.value,
        email_attempts=order.decision_email.attempts,
        email_last_error=order.decision_email.last_error,
        email_queued_at=order.decision_email.queued_at,
        email_last_attempt_at=order.decision_email.last_attempt_at,
        email_sent_at=order.decision_email.sent_at,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def _to_domain(row: OrderRow) -> Order:
    return Order(
        id=row.id,
        account_key=row.account_key,
        transaction_id_normalized=row.transaction_id_normalized,
        status=OrderStatus(row.status),
        rejection_reason=row.rejection_reason or "",
        team=Team(
            team_name=row.team_name,
            leader_name=row.leader_name,
            phone=row.phone,
            email=row.email,
        ),
        items=[OrderItem(**item) for item in row.items or []],
        total_items=row.total_items,
        subtotal=row.subtotal,
        payment=Payment(
            method=row.payment_method,
            transaction_id=row.payment_transaction_id,
            screenshot_url=row.payment_screenshot_url or "",
            screenshot_storage_id=row.payment_screenshot_storage_id or "",
            screenshot_name=row.payment_screenshot_name or "",
            upload_status=UploadStatus(row.payment_upload_status),
            upload_error=row.payment_upload_error or "",
            upload_requested_at=row.payment_upload_requested_at,
        ),
        decision_email=DecisionEmail(
            type=row.email_type or "",
            status=DecisionEmailStatus(row.email_status),
            attempts=row.email_attempts,
            last_error=row.email_last_error or "",
            queued_at=row.email_queued_at,
            last_attempt_at=row.email_last_attempt_at,
            sent_at=row.email_sent_at,
        ),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
