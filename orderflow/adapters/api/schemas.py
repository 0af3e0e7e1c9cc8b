# orderflow/adapters/api/schemas.py
from typing import Optional

from pydantic import Field

from orderflow.core.domain.models import DomainModel, Order


class StatusUpdateRequest(DomainModel):
    status: str = Field(..., description="Target status: Verified, Rejected or Delivered")
    reason: Optional[str] = Field(None, description="Required when rejecting")


class StatusUpdateResponse(DomainModel):
    order: Order
    applied: bool = Field(..., description="False when the order was already decided (no-op)")
    email_queued: bool = False


class TransactionIdAvailability(DomainModel):
    transaction_id: str
    available: bool


class DecisionEmailRetryResponse(DomainModel):
    order_id: str
    outcome: str
