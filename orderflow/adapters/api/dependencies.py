# orderflow/adapters/api/dependencies.py
import re
import secrets
from typing import Optional

import structlog
from dependency_injector.wiring import Provide, inject
from fastapi import Depends, Header, HTTPException, Query, Security, status
from fastapi.security import APIKeyHeader

from orderflow.core.domain.validation import normalize_account_key
from orderflow.core.use_cases.catalog_popularity import GetAcceptedItemsSummary, GetCatalogWithPopularity
from orderflow.core.use_cases.dispatch_decision_emails import DecisionEmailDispatcher
from orderflow.core.use_cases.list_orders import ListOrders
from orderflow.core.use_cases.submit_order import (
    CheckTransactionIdAvailability,
    ProcessPaymentUpload,
    ReplacePaymentScreenshot,
    SubmitOrder,
)
from orderflow.core.use_cases.update_order_status import UpdateOrderStatus
from orderflow.shared.container import Container

logger = structlog.get_logger()

# -----------------------------------------------------------------------------
# Security: Operator (admin) key
# -----------------------------------------------------------------------------
admin_key_scheme = APIKeyHeader(name="X-Admin-Key", auto_error=False)


def _normalize_presented_key(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    key = raw.strip()
    if key.lower().startswith("bearer "):
        key = key[7:].strip()
    return key or None


def _split_secrets(configured: str) -> list[str]:
    # Comma or whitespace separated, so keys can be rotated without downtime.
    parts = re.split(r"[,\s]+", configured.strip())
    return [p for p in parts if p]


def _is_valid_key(presented: str, configured: str) -> bool:
    for candidate in _split_secrets(configured):
        if secrets.compare_digest(presented, candidate):
            return True
    return False


def _presented_key(
    x_admin_key: Optional[str],
    authorization: Optional[str],
    key: Optional[str],
) -> Optional[str]:
    # EventSource cannot set headers, so the stream passes ?key=
    return (
        _normalize_presented_key(x_admin_key)
        or _normalize_presented_key(authorization)
        or _normalize_presented_key(key)
    )


@inject
async def verify_operator(
    x_admin_key: Optional[str] = Security(admin_key_scheme),
    authorization: Optional[str] = Header(default=None),
    key: Optional[str] = Query(default=None, include_in_schema=False),
    configured: Optional[str] = Depends(Provide[Container.admin_api_key]),
) -> str:
    """
    Validates the operator key.

    Fails closed: when ADMIN_API_KEY is not configured every operator
    endpoint answers 500 instead of silently allowing access.
    """
    if not configured or not _split_secrets(configured):
        logger.error("admin_key_not_configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfiguration: ADMIN_API_KEY is not set",
        )

    presented = _presented_key(x_admin_key, authorization, key)
    if not presented:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Admin-Key header",
        )

    if not _is_valid_key(presented, configured):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin credentials",
        )

    return presented


@inject
async def is_operator(
    x_admin_key: Optional[str] = Security(admin_key_scheme),
    authorization: Optional[str] = Header(default=None),
    configured: Optional[str] = Depends(Provide[Container.admin_api_key]),
) -> bool:
    """Like verify_operator, but never rejects: answers whether the caller is one."""
    presented = _presented_key(x_admin_key, authorization, None)
    if not configured or not presented:
        return False
    return _is_valid_key(presented, configured)


# -----------------------------------------------------------------------------
# Customer identity
# -----------------------------------------------------------------------------
async def get_account_key(
    x_account_key: Optional[str] = Header(default=None),
    account_key: Optional[str] = Query(default=None, include_in_schema=False),
) -> Optional[str]:
    """Account key forwarded by the auth gateway (header, or query for EventSource)."""
    return normalize_account_key(x_account_key or account_key or "") or None


async def require_account_key(account_key: Optional[str] = Depends(get_account_key)) -> str:
    if not account_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Please sign in to continue.",
        )
    return account_key


# -----------------------------------------------------------------------------
# Use case injection
# -----------------------------------------------------------------------------
@inject
def get_submit_order_use_case(
    use_case: SubmitOrder = Depends(Provide[Container.submit_order_use_case]),
) -> SubmitOrder:
    return use_case


@inject
def get_process_payment_upload_use_case(
    use_case: ProcessPaymentUpload = Depends(Provide[Container.process_payment_upload_use_case]),
) -> ProcessPaymentUpload:
    return use_case


@inject
def get_replace_payment_screenshot_use_case(
    use_case: ReplacePaymentScreenshot = Depends(Provide[Container.replace_payment_screenshot_use_case]),
) -> ReplacePaymentScreenshot:
    return use_case


@inject
def get_check_transaction_id_use_case(
    use_case: CheckTransactionIdAvailability = Depends(Provide[Container.check_transaction_id_use_case]),
) -> CheckTransactionIdAvailability:
    return use_case


@inject
def get_update_order_status_use_case(
    use_case: UpdateOrderStatus = Depends(Provide[Container.update_order_status_use_case]),
) -> UpdateOrderStatus:
    return use_case


@inject
def get_list_orders_use_case(
    use_case: ListOrders = Depends(Provide[Container.list_orders_use_case]),
) -> ListOrders:
    return use_case


@inject
def get_catalog_use_case(
    use_case: GetCatalogWithPopularity = Depends(Provide[Container.catalog_use_case]),
) -> GetCatalogWithPopularity:
    return use_case


@inject
def get_accepted_summary_use_case(
    use_case: GetAcceptedItemsSummary = Depends(Provide[Container.accepted_summary_use_case]),
) -> GetAcceptedItemsSummary:
    return use_case


@inject
def get_dispatcher(
    dispatcher: DecisionEmailDispatcher = Depends(Provide[Container.dispatcher]),
) -> DecisionEmailDispatcher:
    return dispatcher
