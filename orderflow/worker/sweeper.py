# orderflow/worker/sweeper.py
import asyncio
from typing import Optional

import structlog

from orderflow.core.use_cases.dispatch_decision_emails import DecisionEmailDispatcher
from orderflow.core.use_cases.reconcile_uploads import ReconcileStaleUploads

logger = structlog.get_logger()


class MaintenanceSweeper:
    """
    Periodic background loop run next to the API (or by the standalone worker).

    Each tick drains the decision email backlog and fails stale uploads.
    A failing tick is logged and the loop carries on; only `stop()` ends it.
    """

    def __init__(
        self,
        dispatcher: DecisionEmailDispatcher,
        reconciler: ReconcileStaleUploads,
        interval_sec: float = 30.0,
    ):
        self.dispatcher = dispatcher
        self.reconciler = reconciler
        self.interval_sec = interval_sec
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="orderflow-sweeper")
        logger.info("sweeper_started", interval_sec=self.interval_sec)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("sweeper_stopped")

    async def tick(self) -> None:
        structlog.contextvars.bind_contextvars(job="maintenance_sweep")
        try:
            try:
                await self.dispatcher.run_once()
            except Exception as e:
                logger.error("decision_email_sweep_failed", error=str(e), exc_info=True)
            try:
                await self.reconciler.execute()
            except Exception as e:
                logger.error("upload_reconcile_failed", error=str(e), exc_info=True)
        finally:
            structlog.contextvars.clear_contextvars()

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_sec)
            except asyncio.TimeoutError:
                continue
