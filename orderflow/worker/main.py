# orderflow/worker/main.py
import asyncio
import signal

import structlog

from orderflow.shared.config import settings
from orderflow.shared.container import container
from orderflow.shared.logging_config import configure_logging
from orderflow.shared.telemetry import setup_telemetry
from orderflow.worker.settings import worker_settings
from orderflow.worker.sweeper import MaintenanceSweeper

logger = structlog.get_logger()


async def main(stop: asyncio.Event) -> None:
    """
    Runs the maintenance sweeper outside the API.

    This process owns its own container, so events its dispatcher and
    reconciler publish reach only its in-process registries, never the SSE
    clients connected to the API. Their database writes are what the API
    serves on the next list or catalog fetch.
    """
    logger.info(
        "worker_startup",
        env=settings.APP_ENV.value,
        mail_enabled=container.mail_enabled(),
        interval_sec=worker_settings.SWEEP_INTERVAL_SEC,
    )

    # 1. Infrastructure Setup
    database = container.database()
    await database.connect()

    sweeper = MaintenanceSweeper(
        dispatcher=container.dispatcher(),
        reconciler=container.reconciler(),
        interval_sec=worker_settings.SWEEP_INTERVAL_SEC,
    )

    try:
        if worker_settings.RUN_ONCE:
            await sweeper.tick()
            return

        # 2. Keep Alive until a signal arrives
        await sweeper.start()
        logger.info("worker_ready")
        await stop.wait()
        await sweeper.stop()
    finally:
        await database.disconnect()


def run() -> None:
    """Console entry point (`orderflow-worker`)."""
    configure_logging()
    setup_telemetry("orderflow-worker")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    stop = asyncio.Event()

    # Graceful Shutdown Handling
    for s in (signal.SIGHUP, signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(s, lambda s=s: (logger.info("worker_signal", signal=s.name), stop.set()))
        except (NotImplementedError, AttributeError):
            # Windows event loops do not support signal handlers
            pass

    try:
        loop.run_until_complete(main(stop))
    finally:
        loop.close()
        logger.info("worker_shutdown_complete")


if __name__ == "__main__":
    run()
