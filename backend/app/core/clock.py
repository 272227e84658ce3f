"""
Clock utilities.

All lifecycle timestamps are naive UTC. Time-dependent operations accept an
explicit ``now`` so deadline logic can be exercised deterministically.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def resolve_now(now: Optional[datetime] = None) -> datetime:
    """Return ``now`` if given, normalized to naive UTC, else the current time."""
    if now is None:
        return utcnow()
    if now.tzinfo is not None:
        return now.astimezone(timezone.utc).replace(tzinfo=None)
    return now
