# orderflow/adapters/api/routers/orders.py
import json
from typing import List, Optional

import structlog
from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Response,
    UploadFile,
    status,
)
from pydantic import ValidationError

from orderflow.adapters.api.dependencies import (
    get_account_key,
    get_check_transaction_id_use_case,
    get_dispatcher,
    get_list_orders_use_case,
    get_process_payment_upload_use_case,
    get_replace_payment_screenshot_use_case,
    get_submit_order_use_case,
    get_update_order_status_use_case,
    is_operator,
    require_account_key,
    verify_operator,
)
from orderflow.adapters.api.errors import to_http_exception
from orderflow.adapters.api.schemas import (
    StatusUpdateRequest,
    StatusUpdateResponse,
    TransactionIdAvailability,
)
from orderflow.core.domain.exceptions import DomainError
from orderflow.core.domain.models import ImageUpload, Order, OrderItem, OrderSubmission
from orderflow.core.use_cases.dispatch_decision_emails import DecisionEmailDispatcher
from orderflow.core.use_cases.list_orders import ListOrders
from orderflow.core.use_cases.submit_order import (
    CheckTransactionIdAvailability,
    ProcessPaymentUpload,
    ReplacePaymentScreenshot,
    SubmitOrder,
)
from orderflow.core.use_cases.update_order_status import UpdateOrderStatus

logger = structlog.get_logger()

router = APIRouter(prefix="/orders", tags=["Orders"])

NEXT_CURSOR_HEADER = "X-Next-Cursor"


# --- Helpers ---

def _parse_items(raw: str) -> List[OrderItem]:
    """The multipart form carries the cart as a JSON array."""
    try:
        payload = json.loads(raw or "[]")
    except json.JSONDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid items JSON")
    if not isinstance(payload, list):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="items must be an array")

    items = []
    for entry in payload:
        if not isinstance(entry, dict):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Each item must be an object")
        entry = dict(entry)
        if "id" in entry and "clientId" not in entry:
            entry["clientId"] = entry.pop("id")
        try:
            items.append(OrderItem.model_validate(entry))
        except ValidationError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Each item must have id, name, price and quantity",
            )
    return items


async def _read_image(upload: Optional[UploadFile]) -> ImageUpload:
    # The request body is gone once the response is sent, so buffer it now.
    if upload is None:
        return ImageUpload(data=b"")
    data = await upload.read()
    return ImageUpload(
        data=data,
        filename=upload.filename or "",
        content_type=upload.content_type or "",
    )


# --- Endpoints ---

@router.post(
    "",
    response_model=Order,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Place an Order",
)
async def submit_order(
    background_tasks: BackgroundTasks,
    account_key: str = Depends(require_account_key),
    team_name: str = Form("", alias="teamName"),
    leader_name: str = Form("", alias="leaderName"),
    phone: str = Form(""),
    email: str = Form(""),
    transaction_id: str = Form("", alias="transactionId"),
    items: str = Form("[]"),
    payment_screenshot: Optional[UploadFile] = File(None, alias="paymentScreenshot"),
    use_case: SubmitOrder = Depends(get_submit_order_use_case),
    uploader: ProcessPaymentUpload = Depends(get_process_payment_upload_use_case),
):
    """
    Places an order and accepts the payment screenshot.

    Returns **202 Accepted** with the order in `Placed` state and
    `payment.uploadStatus = pending`. The screenshot is pushed to object
    storage after the response; progress arrives over the realtime stream.
    """
    submission = OrderSubmission(
        account_key=account_key,
        team_name=team_name,
        leader_name=leader_name,
        phone=phone,
        email=email,
        transaction_id=transaction_id,
        items=_parse_items(items),
    )
    image = await _read_image(payment_screenshot)

    try:
        order = await use_case.execute(submission, image)
    except DomainError as e:
        logger.info("order_rejected", error=e.message)
        raise to_http_exception(e)

    background_tasks.add_task(uploader.execute, order.id, image)
    return order


@router.get(
    "",
    response_model=List[Order],
    summary="List Orders (keyset paginated)",
)
async def list_orders(
    response: Response,
    cursor: Optional[str] = Query(None, description="Value of the previous page's X-Next-Cursor header"),
    limit: Optional[int] = Query(None, description="Page size, capped at 200"),
    operator: bool = Depends(is_operator),
    account_key: Optional[str] = Depends(get_account_key),
    use_case: ListOrders = Depends(get_list_orders_use_case),
):
    """
    Newest orders first. Operators see every order, customers only their own.
    When more rows may follow, the `X-Next-Cursor` header carries the cursor
    for the next page.
    """
    if not operator and not account_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Please sign in to continue.")

    try:
        page = await use_case.execute(cursor=cursor, limit=limit, account_key=account_key, is_operator=operator)
    except DomainError as e:
        raise to_http_exception(e)

    if page.next_cursor:
        response.headers[NEXT_CURSOR_HEADER] = page.next_cursor
    return page.orders


@router.get(
    "/transaction-id-available",
    response_model=TransactionIdAvailability,
    summary="Check Transaction ID",
)
async def transaction_id_available(
    transaction_id: str = Query("", alias="transactionId"),
    use_case: CheckTransactionIdAvailability = Depends(get_check_transaction_id_use_case),
):
    """Advisory only: the unique index decides when the order is placed."""
    try:
        available = await use_case.execute(transaction_id)
    except DomainError as e:
        raise to_http_exception(e)
    return TransactionIdAvailability(transaction_id=transaction_id.strip(), available=available)


@router.post(
    "/{order_id}/payment-screenshot",
    response_model=Order,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Re-upload a Payment Screenshot",
)
async def replace_payment_screenshot(
    order_id: str,
    background_tasks: BackgroundTasks,
    account_key: str = Depends(require_account_key),
    payment_screenshot: Optional[UploadFile] = File(None, alias="paymentScreenshot"),
    use_case: ReplacePaymentScreenshot = Depends(get_replace_payment_screenshot_use_case),
    uploader: ProcessPaymentUpload = Depends(get_process_payment_upload_use_case),
):
    """Only allowed for the owner of a Placed order whose previous upload failed."""
    image = await _read_image(payment_screenshot)
    try:
        order, previous_storage_id = await use_case.execute(order_id, account_key, image)
    except DomainError as e:
        raise to_http_exception(e)

    background_tasks.add_task(uploader.execute, order.id, image, previous_storage_id)
    return order


@router.patch(
    "/{order_id}/status",
    response_model=StatusUpdateResponse,
    summary="Verify, Reject or Deliver an Order",
    dependencies=[Depends(verify_operator)],
)
async def update_order_status(
    order_id: str,
    request: StatusUpdateRequest,
    background_tasks: BackgroundTasks,
    use_case: UpdateOrderStatus = Depends(get_update_order_status_use_case),
    dispatcher: DecisionEmailDispatcher = Depends(get_dispatcher),
):
    """
    Applies an operator decision.

    A decision on an order that is no longer `Placed` is a no-op: the
    response carries the current state with `applied = false` and no email
    is queued. When an email was queued it is sent right after the response;
    the periodic sweep picks it up if that attempt fails.
    """
    try:
        result = await use_case.execute(order_id, request.status, request.reason)
    except DomainError as e:
        raise to_http_exception(e)

    if result.email_queued and dispatcher.enabled:
        background_tasks.add_task(dispatcher.dispatch_order, order_id)

    return StatusUpdateResponse(order=result.order, applied=result.applied, email_queued=result.email_queued)
