# orderflow/core/domain/events.py
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class EventName(str, Enum):
    """
    Registry of realtime event names pushed over SSE.
    Clients subscribe to these names with EventSource.addEventListener.
    """
    HELLO = "hello"
    ORDER_CREATED = "orderCreated"
    ORDER_UPDATED = "orderUpdated"
    ORDERS_CHANGED = "ordersChanged"
    FOODS_CHANGED = "foodsChanged"
    PAYMENT_QR_CHANGED = "paymentQrChanged"


class OrdersChangedAction(str, Enum):
    ORDER_CREATED = "orderCreated"
    STATUS_UPDATED = "statusUpdated"
    PAYMENT_UPLOADED = "paymentUploaded"
    PAYMENT_UPLOAD_FAILED = "paymentUploadFailed"
    DECISION_EMAIL_SENT = "decisionEmailSent"


class RealtimeEvent(BaseModel):
    """
    The envelope for one realtime notification.

    Attributes:
        id: Unique id, useful to correlate log lines with client-side traces.
        name: The SSE event name.
        data: JSON payload written to the `data:` line.
        account_key: When set, customer registries only deliver the event
            to subscribers of that account. Operator registries ignore it.
        timestamp: When the event was produced (UTC).
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: EventName
    data: Dict[str, Any] = Field(default_factory=dict)
    account_key: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(use_enum_values=True)


# --- Event Builders ---

def _wire(order) -> Dict[str, Any]:
    return order.model_dump(mode="json", by_alias=True)


def order_created(order) -> RealtimeEvent:
    return RealtimeEvent(name=EventName.ORDER_CREATED, data=_wire(order))


def order_updated(order) -> RealtimeEvent:
    return RealtimeEvent(name=EventName.ORDER_UPDATED, data=_wire(order))


def orders_changed(order, action: OrdersChangedAction, at: datetime) -> RealtimeEvent:
    """Customer-facing summary, routed only to the order's account."""
    data: Dict[str, Any] = {
        "action": action.value,
        "id": order.id,
        "accountKey": order.account_key,
        "status": order.status.value,
        "at": at.isoformat(),
    }
    if order.rejection_reason:
        data["rejectionReason"] = order.rejection_reason
    if action in (OrdersChangedAction.PAYMENT_UPLOADED, OrdersChangedAction.PAYMENT_UPLOAD_FAILED):
        data["uploadStatus"] = order.payment.upload_status.value
    return RealtimeEvent(name=EventName.ORDERS_CHANGED, data=data, account_key=order.account_key)


def foods_changed(reason: str, at: datetime) -> RealtimeEvent:
    return RealtimeEvent(name=EventName.FOODS_CHANGED, data={"reason": reason, "at": at.isoformat()})


def payment_qr_changed(qr, at: datetime) -> RealtimeEvent:
    return RealtimeEvent(
        name=EventName.PAYMENT_QR_CHANGED,
        data={
            "id": qr.id,
            "uploadStatus": qr.upload_status.value,
            "at": at.isoformat(),
        },
    )
