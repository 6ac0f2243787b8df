"""
Time helpers.

Datetimes inside the backend are naive UTC. Redis sorted-set scores are epoch
seconds; to_epoch_seconds converts without consulting the host timezone.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_epoch_seconds(value: datetime) -> float:
    """Epoch seconds for `value`. Naive values are read as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()
