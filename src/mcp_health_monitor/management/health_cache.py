"""Per-server memo of health verdicts with a freshness window."""

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from .models import HealthCacheEntry, HealthState

DEFAULT_HEALTH_CHECK_INTERVAL = 30.0


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class HealthCache:
    """One entry per server name; stale entries are ignored, not evicted."""

    def __init__(
        self,
        interval_seconds: float = DEFAULT_HEALTH_CHECK_INTERVAL,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.interval = timedelta(seconds=interval_seconds)
        self.clock = clock
        self._entries: Dict[str, HealthCacheEntry] = {}

    def get(self, name: str) -> Optional[HealthCacheEntry]:
        """Get the entry for a server if it is still fresh."""
        entry = self._entries.get(name)
        if entry is None:
            return None
        if self.clock() - entry.observed_at < self.interval:
            return entry
        return None

    def put(
        self,
        name: str,
        state: HealthState,
        healthy: bool,
        now: Optional[datetime] = None,
    ) -> HealthCacheEntry:
        """Record a verdict, replacing any previous entry."""
        entry = HealthCacheEntry(
            state=state, healthy=healthy, observed_at=now or self.clock()
        )
        self._entries[name] = entry
        return entry

    def invalidate(self, name: str) -> None:
        """Drop the entry for a server."""
        self._entries.pop(name, None)

    def clear(self) -> None:
        """Drop all entries."""
        self._entries.clear()

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)
