"""UTC datetime utilities."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def from_unix(seconds: int) -> datetime:
    """Ledger timestamps are unix seconds; convert to timezone-aware UTC."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
