"""
Application Use Cases.

Each class takes its ports in __init__ and exposes one async entry point.
They orchestrate the domain rules; persistence, storage, mail and realtime
delivery are reached only through `orderflow.core.ports`.
"""

from .catalog_popularity import GetAcceptedItemsSummary, GetCatalogWithPopularity
from .dispatch_decision_emails import DecisionEmailDispatcher, DispatchOutcome
from .list_orders import ListOrders
from .reconcile_uploads import ReconcileStaleUploads
from .submit_order import (
    CheckTransactionIdAvailability,
    ProcessPaymentUpload,
    ReplacePaymentScreenshot,
    SubmitOrder,
)
from .update_order_status import UpdateOrderStatus

__all__ = [
    "CheckTransactionIdAvailability",
    "DecisionEmailDispatcher",
    "DispatchOutcome",
    "GetAcceptedItemsSummary",
    "GetCatalogWithPopularity",
    "ListOrders",
    "ProcessPaymentUpload",
    "ReconcileStaleUploads",
    "ReplacePaymentScreenshot",
    "SubmitOrder",
    "UpdateOrderStatus",
]
