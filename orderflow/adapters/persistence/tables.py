# orderflow/adapters/persistence/tables.py

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Stores naive UTC and hands back aware UTC datetimes.

    SQLite has no timezone support; keeping every value naive UTC in the
    database makes range comparisons (cursor, staleness, reclaim) consistent.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


class OrderRow(Base):
    """
    One order, flattened: payment.* and decision_email.* are plain columns so
    that conditional updates can address them in a single UPDATE ... WHERE.
    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    account_key: Mapped[str] = mapped_column(String(255), index=True)
    transaction_id_normalized: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)

    status: Mapped[str] = mapped_column(String(16), index=True)
    rejection_reason: Mapped[str] = mapped_column(Text, default="")

    team_name: Mapped[str] = mapped_column(String(255))
    leader_name: Mapped[str] = mapped_column(String(255))
    phone: Mapped[str] = mapped_column(String(32))
    email: Mapped[str] = mapped_column(String(320))

    items: Mapped[List[Dict[str, Any]]] = mapped_column(JSON)
    total_items: Mapped[int] = mapped_column(Integer)
    subtotal: Mapped[float] = mapped_column(Float)

    payment_method: Mapped[str] = mapped_column(String(16), default="QR")
    payment_transaction_id: Mapped[str] = mapped_column(String(128))
    payment_screenshot_url: Mapped[str] = mapped_column(Text, default="")
    payment_screenshot_storage_id: Mapped[str] = mapped_column(String(512), default="")
    payment_screenshot_name: Mapped[str] = mapped_column(String(255), default="")
    payment_upload_status: Mapped[str] = mapped_column(String(16), index=True)
    payment_upload_error: Mapped[str] = mapped_column(Text, default="")
    payment_upload_requested_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    email_type: Mapped[str] = mapped_column(String(16), default="")
    email_status: Mapped[str] = mapped_column(String(16), default="none")
    email_attempts: Mapped[int] = mapped_column(Integer, default=0)
    email_last_error: Mapped[str] = mapped_column(Text, default="")
    email_queued_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    email_last_attempt_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    email_sent_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_orders_created_id", "created_at", "id"),
        Index("ix_orders_account_created", "account_key", "created_at"),
        Index("ix_orders_email_status_updated", "email_status", "updated_at"),
    )


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class FoodItemRow(Base):
    __tablename__ = "food_items"

    client_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    is_veg: Mapped[bool] = mapped_column(Boolean, default=True)
    price: Mapped[float] = mapped_column(Float)
    image_url: Mapped[str] = mapped_column(Text, default="")
    image_storage_id: Mapped[str] = mapped_column(String(512), default="")
    upload_status: Mapped[str] = mapped_column(String(16), default="uploaded", index=True)
    upload_error: Mapped[str] = mapped_column(Text, default="")
    upload_requested_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class PaymentQrRow(Base):
    __tablename__ = "payment_qrs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    image_url: Mapped[str] = mapped_column(Text, default="")
    image_storage_id: Mapped[str] = mapped_column(String(512), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    upload_status: Mapped[str] = mapped_column(String(16), default="uploaded", index=True)
    upload_error: Mapped[str] = mapped_column(Text, default="")
    upload_requested_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
