"""TTL selectors and the clock used to compute expiry times."""
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

DEFAULT_TTL = "1h"

TTL_DURATIONS = {
    "10s": timedelta(seconds=10),
    "30s": timedelta(seconds=30),
    "30m": timedelta(minutes=30),
    "1h": timedelta(hours=1),
    "3h": timedelta(hours=3),
    "6h": timedelta(hours=6),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
}


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def resolve_ttl(selector: Optional[str]) -> timedelta:
    """Map a TTL selector to its duration. Unknown or missing selectors get the 1h default."""
    if selector is not None:
        duration = TTL_DURATIONS.get(selector.strip())
        if duration is not None:
            return duration
    return TTL_DURATIONS[DEFAULT_TTL]


def resolve_expiration(selector: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Absolute expiry time for an upload made at `now`."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now + resolve_ttl(selector)
