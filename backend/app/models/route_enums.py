"""
Route-related enumerations.
"""

import enum


class RouteStatus(str, enum.Enum):
    """
    Route status enumeration.

    Status flow:
        PLANNED → IN_PROGRESS ⇄ PAUSED → COMPLETED
        PLANNED, IN_PROGRESS and PAUSED can be CANCELLED
    """
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RouteType(str, enum.Enum):
    """Geographic and operational nature of a route."""
    URBAN = "URBAN"  # Inside metropolitan areas
    INTERSTATE = "INTERSTATE"  # Between states
    RURAL = "RURAL"  # Rural and remote areas
    EXPRESS = "EXPRESS"  # Priority and speed
    LOCAL = "LOCAL"  # Short distances


class RouteEventType(str, enum.Enum):
    """Event types written to the route history."""
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    STATUS_CHANGED = "STATUS_CHANGED"
