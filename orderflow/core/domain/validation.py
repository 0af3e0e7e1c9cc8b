# orderflow/core/domain/validation.py
import math
import re
from typing import List, NamedTuple

from orderflow.core.domain.exceptions import OrderValidationError
from orderflow.core.domain.models import ImageUpload, OrderItem, OrderSubmission, Team

PHONE_REGEX = re.compile(r"^\d{10}$")
NAME_REGEX = re.compile(r"^[A-Za-z ]+$")
TRANSACTION_ID_REGEX = re.compile(r"^[A-Za-z0-9]+$")

MIN_ITEMS_PER_ORDER = 1
MAX_ITEMS_PER_ORDER = 100
MIN_ITEM_QUANTITY = 1
MAX_ITEM_QUANTITY = 50


class ValidatedOrder(NamedTuple):
    team: Team
    items: List[OrderItem]
    transaction_id: str
    transaction_id_normalized: str
    total_items: int
    subtotal: float


def normalize_transaction_id(raw: str) -> str:
    """Validates the transaction reference and returns its case-folded form."""
    transaction_id = (raw or "").strip()
    if not transaction_id:
        raise OrderValidationError("Transaction ID is required")
    if not TRANSACTION_ID_REGEX.match(transaction_id):
        raise OrderValidationError("Transaction ID must be alphanumeric (A-Z, 0-9) with no spaces")
    return transaction_id.lower()


def normalize_account_key(raw: str) -> str:
    return (raw or "").strip().lower()


def validate_submission(
    submission: OrderSubmission,
    max_total_items: int,
    email_domain: str,
) -> ValidatedOrder:
    """
    Checks every field of a new order and recomputes the derived totals.

    Raises:
        OrderValidationError: on the first rule that fails. Nothing is persisted.
    """
    team_name = submission.team_name.strip()
    leader_name = submission.leader_name.strip()
    phone = submission.phone.strip()
    email = submission.email.strip()

    if not team_name or not leader_name or not phone or not email:
        raise OrderValidationError("Missing required team fields")
    if not PHONE_REGEX.match(phone):
        raise OrderValidationError("Phone number must be exactly 10 digits (0-9 only)")
    if not NAME_REGEX.match(leader_name):
        raise OrderValidationError("Team leader name can contain only letters and spaces")
    if not email.lower().endswith(email_domain.lower()):
        raise OrderValidationError(f"Email must end with {email_domain}")

    transaction_id = submission.transaction_id.strip()
    normalized = normalize_transaction_id(transaction_id)

    if not MIN_ITEMS_PER_ORDER <= len(submission.items) <= MAX_ITEMS_PER_ORDER:
        raise OrderValidationError(
            f"items must contain {MIN_ITEMS_PER_ORDER} to {MAX_ITEMS_PER_ORDER} entries"
        )

    items: List[OrderItem] = []
    total_items = 0
    subtotal = 0.0
    for raw in submission.items:
        client_id = raw.client_id.strip()
        name = raw.name.strip()
        if not client_id or not name:
            raise OrderValidationError("Each item must have id and name")
        if not math.isfinite(raw.price) or raw.price <= 0:
            raise OrderValidationError("Each item must have a valid price")
        if not MIN_ITEM_QUANTITY <= raw.quantity <= MAX_ITEM_QUANTITY:
            raise OrderValidationError(
                f"Each item must have quantity {MIN_ITEM_QUANTITY} to {MAX_ITEM_QUANTITY}"
            )
        items.append(OrderItem(client_id=client_id, name=name, price=raw.price, quantity=raw.quantity))
        total_items += raw.quantity
        subtotal += raw.price * raw.quantity

    if total_items > max_total_items:
        raise OrderValidationError(f"Maximum {max_total_items} total items allowed per order")

    return ValidatedOrder(
        team=Team(team_name=team_name, leader_name=leader_name, phone=phone, email=email),
        items=items,
        transaction_id=transaction_id,
        transaction_id_normalized=normalized,
        total_items=total_items,
        subtotal=round(subtotal, 2),
    )


def validate_image(image: ImageUpload, max_bytes: int) -> None:
    """Payment proofs must be a non-empty image no larger than `max_bytes`."""
    if not image.data:
        raise OrderValidationError("paymentScreenshot is required")
    if not (image.content_type or "").lower().startswith("image/"):
        raise OrderValidationError("Only image uploads are allowed")
    if len(image.data) > max_bytes:
        raise OrderValidationError(f"Image must be at most {max_bytes // (1024 * 1024)} MB")
