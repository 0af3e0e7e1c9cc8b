# orderflow/adapters/api/routers/admin.py
import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from orderflow.adapters.api.dependencies import (
    get_accepted_summary_use_case,
    get_dispatcher,
    verify_operator,
)
from orderflow.adapters.api.schemas import DecisionEmailRetryResponse
from orderflow.core.domain.models import AcceptedItemsSummary
from orderflow.core.use_cases.catalog_popularity import GetAcceptedItemsSummary
from orderflow.core.use_cases.dispatch_decision_emails import DecisionEmailDispatcher

logger = structlog.get_logger()

# We apply the operator key dependency at the router level
router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(verify_operator)],
)


@router.post(
    "/orders/{order_id}/decision-email/retry",
    response_model=DecisionEmailRetryResponse,
    summary="Re-drive a Decision Email",
)
async def retry_decision_email(
    order_id: str,
    dispatcher: DecisionEmailDispatcher = Depends(get_dispatcher),
):
    """
    Runs one dispatch attempt now, for a queued or failed email.

    Goes through the same atomic claim as the sweep, so it never double
    sends. `not_claimed` means there was nothing to send (already sent, in
    flight, or the order has no decision yet).
    """
    if not dispatcher.enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Decision emails are disabled (MAIL_ENABLED=false)",
        )

    outcome = await dispatcher.dispatch_order(order_id)
    logger.info("decision_email_retry", order_id=order_id, outcome=outcome.value)
    return DecisionEmailRetryResponse(order_id=order_id, outcome=outcome.value)


@router.get(
    "/summary/accepted-items",
    response_model=AcceptedItemsSummary,
    summary="Accepted Items Summary",
)
async def accepted_items_summary(
    use_case: GetAcceptedItemsSummary = Depends(get_accepted_summary_use_case),
):
    """Total quantities per food item over Verified and Delivered orders."""
    return await use_case.execute()
