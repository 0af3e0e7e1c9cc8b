# orderflow/core/ports/mailer.py
from typing import NamedTuple, Optional, Protocol

from orderflow.core.domain.models import Order

MAIL_DISABLED = "MAIL_DISABLED"
MISSING_RECIPIENT = "MISSING_RECIPIENT"
# Relay circuit is open: nothing was attempted, retry later.
RELAY_UNAVAILABLE = "RELAY_UNAVAILABLE"


class SendResult(NamedTuple):
    ok: bool
    skipped: bool = False
    reason: Optional[str] = None

    @classmethod
    def sent(cls) -> "SendResult":
        return cls(ok=True)

    @classmethod
    def skip(cls, reason: str) -> "SendResult":
        return cls(ok=False, skipped=True, reason=reason)


class IMailer(Protocol):
    """
    Port for the decision notification transport.
    """

    async def send_decision(self, order: Order) -> SendResult:
        """
        Sends the Verified/Rejected notification for `order`.

        Returns a skipped result (MISSING_RECIPIENT, MAIL_DISABLED,
        RELAY_UNAVAILABLE) when nothing was attempted. Transport errors and
        timeouts are raised.
        """
        ...
