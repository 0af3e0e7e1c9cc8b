# orderflow/adapters/realtime/sse.py
import asyncio
import json
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import structlog

from orderflow.adapters.realtime.registry import EventRegistry, Subscriber
from orderflow.core.domain.events import EventName

logger = structlog.get_logger()

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_event(name: str, data: Any) -> str:
    return f"event: {name}\ndata: {json.dumps(data, separators=(',', ':'))}\n\n"


def format_comment(text: str) -> str:
    return f": {text}\n\n"


async def event_stream(
    registry: EventRegistry,
    subscriber: Subscriber,
    heartbeat_sec: float,
    retry_ms: int,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[str]:
    """
    Yields SSE frames for one subscriber until the client goes away.

    The preamble sets the client reconnect delay and sends a `hello` event.
    When no event arrives within `heartbeat_sec` a `: ping` comment is sent to
    keep proxies from closing the idle connection. The subscriber is always
    removed from the registry on exit.
    """
    try:
        now = datetime.now(timezone.utc).isoformat()
        yield f"retry: {retry_ms}\n\n"
        yield format_comment(f"connected {now}")
        yield format_event(EventName.HELLO.value, {"at": now, "channel": registry.name})

        while not subscriber.closed.is_set():
            if is_disconnected is not None and await is_disconnected():
                break
            try:
                event = await asyncio.wait_for(subscriber.queue.get(), timeout=heartbeat_sec)
            except asyncio.TimeoutError:
                yield format_comment("ping")
                continue
            yield format_event(event.name, event.data)
    finally:
        registry.unsubscribe(subscriber)
