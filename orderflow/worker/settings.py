# orderflow/worker/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict

from orderflow.shared.config import settings as global_settings


class WorkerSettings(BaseSettings):
    """
    Configuration specific to the standalone Worker process.

    These settings control the maintenance loop when it runs outside the API.
    They can be overridden by environment variables prefixed with 'OF_WORKER_'.
    """

    # Seconds between two sweeps (decision emails + stale uploads)
    SWEEP_INTERVAL_SEC: float = global_settings.DISPATCH_INTERVAL_SEC

    # Run a single sweep and exit (cron style)
    RUN_ONCE: bool = False

    model_config = SettingsConfigDict(
        env_prefix="OF_WORKER_",
        env_file=".env",
        extra="ignore",
    )


worker_settings = WorkerSettings()
