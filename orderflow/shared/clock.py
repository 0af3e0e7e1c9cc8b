# orderflow/shared/clock.py
from datetime import datetime, timezone


class SystemClock:
    """Wall clock in UTC. Tests substitute a manually advanced clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
