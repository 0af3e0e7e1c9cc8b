# orderflow/core/domain/models.py
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DomainModel(BaseModel):
    """Base for entities: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Enums ---


class OrderStatus(str, Enum):
    """Review lifecycle of an order."""
    PLACED = "Placed"         # Submitted, awaiting operator review
    VERIFIED = "Verified"     # Payment accepted
    REJECTED = "Rejected"     # Payment refused (reason required)
    DELIVERED = "Delivered"   # Handed over; only reachable from Verified


class UploadStatus(str, Enum):
    """State of an asynchronous image upload to object storage."""
    PENDING = "pending"
    UPLOADED = "uploaded"
    FAILED = "failed"


class DecisionEmailStatus(str, Enum):
    """Delivery state of the decision notification."""
    NONE = "none"
    QUEUED = "queued"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


DECISION_STATUSES = (OrderStatus.VERIFIED, OrderStatus.REJECTED)
POPULAR_STATUSES = (OrderStatus.PLACED, OrderStatus.VERIFIED, OrderStatus.DELIVERED)
ACCEPTED_STATUSES = (OrderStatus.VERIFIED, OrderStatus.DELIVERED)

# --- Order Snapshot ---


class Team(DomainModel):
    team_name: str
    leader_name: str
    phone: str
    email: str


class OrderItem(DomainModel):
    client_id: str = Field(..., description="Catalog id of the food item")
    name: str
    price: float
    quantity: int


class Payment(DomainModel):
    method: str = "QR"
    transaction_id: str
    screenshot_url: str = ""
    screenshot_storage_id: str = ""
    screenshot_name: str = ""
    upload_status: UploadStatus = UploadStatus.PENDING
    upload_error: str = ""
    upload_requested_at: Optional[datetime] = None


class DecisionEmail(DomainModel):
    type: str = ""  # "" until the order leaves Placed, then "Verified" or "Rejected"
    status: DecisionEmailStatus = DecisionEmailStatus.NONE
    attempts: int = 0
    last_error: str = ""
    queued_at: Optional[datetime] = None
    last_attempt_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None


class Order(DomainModel):
    """
    A customer order with its payment proof and notification state.

    The team and item snapshot is immutable after creation. `payment`,
    `status`/`rejection_reason`/`decision_email` are mutated only through
    conditional updates in the order repository.
    """
    id: str
    account_key: str
    transaction_id_normalized: str
    status: OrderStatus = OrderStatus.PLACED
    rejection_reason: str = ""
    team: Team
    items: List[OrderItem]
    total_items: int
    subtotal: float
    payment: Payment
    decision_email: DecisionEmail = Field(default_factory=DecisionEmail)
    created_at: datetime
    updated_at: datetime


class OrderSubmission(DomainModel):
    """Raw customer input for a new order, before validation."""
    account_key: str
    team_name: str
    leader_name: str
    phone: str
    email: str
    transaction_id: str
    items: List[OrderItem]


class ImageUpload(DomainModel):
    """An image received over HTTP, waiting to be pushed to object storage."""
    data: bytes
    filename: str = ""
    content_type: str = ""


class UploadResult(DomainModel):
    url: str
    storage_id: str


class OrderPage(DomainModel):
    orders: List[Order]
    next_cursor: Optional[str] = None


class StatusChangeResult(DomainModel):
    order: Order
    applied: bool
    email_queued: bool = False

# --- Catalog ---


class FoodItem(DomainModel):
    client_id: str
    name: str
    description: str = ""
    is_veg: bool = True
    price: float
    image_url: str = ""
    image_storage_id: str = ""
    upload_status: UploadStatus = UploadStatus.UPLOADED
    upload_error: str = ""
    upload_requested_at: Optional[datetime] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PaymentQr(DomainModel):
    id: str
    image_url: str = ""
    image_storage_id: str = ""
    is_active: bool = False
    upload_status: UploadStatus = UploadStatus.UPLOADED
    upload_error: str = ""
    upload_requested_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CatalogEntry(DomainModel):
    """A food item decorated with its popularity among non-rejected orders."""
    food: FoodItem
    ordered_by_count: int = 0
    ordered_qty: int = 0
    is_bestseller: bool = False


class AcceptedItemTotal(DomainModel):
    client_id: str
    name: str
    quantity: int


class AcceptedItemsSummary(DomainModel):
    accepted_orders: int
    total_quantity: int
    items: List[AcceptedItemTotal]
