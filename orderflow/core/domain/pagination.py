# orderflow/core/domain/pagination.py
from datetime import datetime, timezone
from typing import NamedTuple, Optional

from orderflow.core.domain.exceptions import InvalidCursorError

CURSOR_SEPARATOR = "~"


class OrderCursor(NamedTuple):
    """
    Keyset position in the (created_at desc, id desc) ordering.

    Rows strictly after the cursor are those created earlier, or created at
    the same instant with a smaller id. Without an id the cursor only bounds
    on the timestamp.
    """
    created_at: datetime
    order_id: Optional[str] = None

    def encode(self) -> str:
        stamp = self.created_at.astimezone(timezone.utc).isoformat()
        if self.order_id:
            return f"{stamp}{CURSOR_SEPARATOR}{self.order_id}"
        return stamp

    @classmethod
    def parse(cls, raw: str) -> "OrderCursor":
        value = (raw or "").strip()
        if not value:
            raise InvalidCursorError(raw)

        stamp, _, order_id = value.partition(CURSOR_SEPARATOR)
        try:
            # Query strings turn '+' into ' ' unless the client encoded it
            created_at = datetime.fromisoformat(stamp.replace(" ", "+").replace("Z", "+00:00"))
        except ValueError:
            raise InvalidCursorError(raw)

        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        if order_id and not order_id.isalnum():
            raise InvalidCursorError(raw)
        return cls(created_at=created_at, order_id=order_id or None)


def clamp_limit(limit: Optional[int], maximum: int) -> int:
    """Missing or zero means the maximum; anything above the maximum is capped."""
    if not limit or limit <= 0:
        return maximum
    return min(limit, maximum)
