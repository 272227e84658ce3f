"""
Tracking enumerations.
"""

import enum


class TrackingEventType(str, enum.Enum):
    """Event that produced a tracking point."""
    ROUTE_START = "route_start"
    ROUTE_END = "route_end"
    DELIVERY_START = "delivery_start"
    DELIVERY_END = "delivery_end"
    PICKUP = "pickup"
    STOP = "stop"
    FUEL = "fuel"
    MAINTENANCE = "maintenance"
    CHECKPOINT = "checkpoint"
    EMERGENCY = "emergency"
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    GEOFENCE_ENTRY = "geofence_entry"
    GEOFENCE_EXIT = "geofence_exit"


class DeviceType(str, enum.Enum):
    GPS_TRACKER = "GPS"
    MOBILE_APP = "Mobile"
    TABLET = "Tablet"
    OBD = "OBD"
    SATELLITE = "Satellite"
    OTHER = "Other"


class SignalQuality(str, enum.Enum):
    NO_SIGNAL = "NO_SIGNAL"
    WEAK = "WEAK"  # < 30%
    MODERATE = "MODERATE"  # 30-70%
    GOOD = "GOOD"  # 70-90%
    EXCELLENT = "EXCELLENT"  # >= 90%


class AccuracyLevel(str, enum.Enum):
    VERY_LOW = "VERY_LOW"  # > 100m
    LOW = "LOW"  # 50-100m
    ACCEPTABLE = "ACCEPTABLE"  # 20-50m
    GOOD = "GOOD"  # 10-20m
    EXCELLENT = "EXCELLENT"  # <= 10m
