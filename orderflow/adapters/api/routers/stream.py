# orderflow/adapters/api/routers/stream.py
import structlog
from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from orderflow.adapters.api.dependencies import require_account_key, verify_operator
from orderflow.adapters.realtime.registry import EventRegistry
from orderflow.adapters.realtime.sse import SSE_HEADERS, event_stream
from orderflow.shared.config import settings
from orderflow.shared.container import Container

logger = structlog.get_logger()

router = APIRouter(tags=["Realtime"])


def _sse_response(request: Request, registry: EventRegistry, account_key=None) -> StreamingResponse:
    # Subscribe before streaming starts so nothing published meanwhile is lost.
    subscriber = registry.subscribe(account_key)
    return StreamingResponse(
        event_stream(
            registry,
            subscriber,
            heartbeat_sec=settings.SSE_HEARTBEAT_SEC,
            retry_ms=settings.SSE_RETRY_MS,
            is_disconnected=request.is_disconnected,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/stream", summary="Customer Event Stream")
@inject
async def customer_stream(
    request: Request,
    account_key: str = Depends(require_account_key),
    registry: EventRegistry = Depends(Provide[Container.customer_registry]),
):
    """
    Server-Sent Events for one signed-in customer.
    Order events are filtered to the caller's account; catalog events are shared.
    """
    return _sse_response(request, registry, account_key)


@router.get(
    "/admin/stream",
    summary="Operator Event Stream",
    dependencies=[Depends(verify_operator)],
)
@inject
async def operator_stream(
    request: Request,
    registry: EventRegistry = Depends(Provide[Container.operator_registry]),
):
    """Server-Sent Events with every order change. EventSource clients pass `?key=`."""
    return _sse_response(request, registry)
