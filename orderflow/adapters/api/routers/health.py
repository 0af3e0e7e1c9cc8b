# orderflow/adapters/api/routers/health.py
import asyncio
from typing import Awaitable, Callable, Dict

import structlog
from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Response, status

from orderflow import __version__
from orderflow.core.ports.object_storage import IObjectStorage
from orderflow.core.ports.order_repository import IOrderRepository
from orderflow.shared.container import Container

logger = structlog.get_logger()

router = APIRouter(prefix="/health", tags=["System"])

CHECK_TIMEOUT_SEC = 5.0


async def _check_component(component: str, check: Callable[[], Awaitable[bool]]) -> str:
    try:
        ok = await asyncio.wait_for(check(), timeout=CHECK_TIMEOUT_SEC)
    except Exception as e:
        logger.error("health_check_failed", component=component, error=str(e) or type(e).__name__)
        return "down"
    return "up" if ok else "down"


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness():
    """Liveness: the process is serving requests."""
    return {"status": "ok", "service": "orderflow-api", "version": __version__}


@router.get("/ready", status_code=status.HTTP_200_OK)
@inject
async def readiness(
    response: Response,
    repo: IOrderRepository = Depends(Provide[Container.order_repository]),
    storage: IObjectStorage = Depends(Provide[Container.object_storage]),
) -> Dict[str, str]:
    """
    Readiness: the order store and object storage both answer.
    Checks run concurrently, each bounded by a timeout; any `down` yields 503.
    """
    checks = {
        "database": repo.health_check,
        "storage": storage.health_check,
    }
    results = await asyncio.gather(*(_check_component(name, check) for name, check in checks.items()))
    report = dict(zip(checks, results))

    if any(state != "up" for state in report.values()):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning("readiness_check_failed", status=report)

    return report
