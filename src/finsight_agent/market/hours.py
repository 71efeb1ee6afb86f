"""US equity market session rule."""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone

# Fixed EST offset; daylight saving time is not applied.
MARKET_TZ = timezone(timedelta(hours=-5))
MARKET_OPEN = time(9, 30)
MARKET_CLOSE = time(16, 0)


def is_market_open(now: datetime | None = None) -> bool:
    """Return True on weekdays between 09:30 (inclusive) and 16:00 (exclusive) UTC-5.

    Naive datetimes are treated as UTC.
    """

    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    local = current.astimezone(MARKET_TZ)

    if local.weekday() >= 5:
        return False
    return MARKET_OPEN <= local.time() < MARKET_CLOSE


def market_status(now: datetime | None = None) -> str:
    return "OPEN" if is_market_open(now) else "CLOSED"
