"""
Core Ports (Interfaces).

This package defines the Protocols that the infrastructure adapters must
implement. They let the use cases talk to the database, object storage,
SMTP and the realtime fan-out without knowing the implementation details.
"""

from .catalog_repository import ICatalogRepository
from .clock import IClock
from .event_publisher import IEventPublisher
from .mailer import IMailer, SendResult
from .object_storage import IObjectStorage, IUploadThrottler
from .order_repository import IOrderRepository

__all__ = [
    "ICatalogRepository",
    "IClock",
    "IEventPublisher",
    "IMailer",
    "IObjectStorage",
    "IOrderRepository",
    "IUploadThrottler",
    "SendResult",
]
