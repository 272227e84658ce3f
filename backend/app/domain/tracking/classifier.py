"""
Tracking event classification.

Pure functions mapping raw device readings to quality bands, plus range
validation for incoming pings.
"""

import math
from typing import Optional, Union

from backend.app.core.exceptions import OutOfRangeError, ValidationError
from backend.app.models.tracking_enums import AccuracyLevel, SignalQuality, TrackingEventType

# (field, min, max)
PING_RANGES = {
    "latitude": (-90.0, 90.0),
    "longitude": (-180.0, 180.0),
    "speed": (0.0, 300.0),
    "gps_accuracy": (0.0, 1000.0),
    "signal_strength": (0.0, 100.0),
    "battery_level": (0.0, 100.0),
    "heading": (0.0, 360.0),
}


def signal_quality(strength: float) -> SignalQuality:
    """Band a signal strength percentage. Total over all reals."""
    if strength <= 0:
        return SignalQuality.NO_SIGNAL
    if strength < 30:
        return SignalQuality.WEAK
    if strength < 70:
        return SignalQuality.MODERATE
    if strength < 90:
        return SignalQuality.GOOD
    return SignalQuality.EXCELLENT


def accuracy_level(meters: float) -> AccuracyLevel:
    """Band a GPS accuracy radius in meters (lower is better). Total over all reals."""
    if meters > 100:
        return AccuracyLevel.VERY_LOW
    if meters > 50:
        return AccuracyLevel.LOW
    if meters > 20:
        return AccuracyLevel.ACCEPTABLE
    if meters > 10:
        return AccuracyLevel.GOOD
    return AccuracyLevel.EXCELLENT


def parse_event_type(value: Union[TrackingEventType, str]) -> TrackingEventType:
    if isinstance(value, TrackingEventType):
        return value
    try:
        return TrackingEventType(value)
    except ValueError:
        raise ValidationError(
            f"Unknown tracking event type: {value}",
            details={"allowed_values": [t.value for t in TrackingEventType]}
        )


def check_range(field: str, value: Optional[float]) -> None:
    """Raise OutOfRangeError if a single reading is outside its range. None is accepted."""
    if value is None:
        return
    minimum, maximum = PING_RANGES[field]
    if math.isnan(value) or value < minimum or value > maximum:
        raise OutOfRangeError(field, value, minimum, maximum)


def validate_ping(
    latitude: float,
    longitude: float,
    speed: Optional[float] = None,
    gps_accuracy: Optional[float] = None,
    signal_strength: Optional[float] = None,
    battery_level: Optional[float] = None,
    heading: Optional[float] = None,
) -> None:
    """
    Reject pings with physically implausible readings.

    Raises:
        OutOfRangeError: first reading outside its range
    """
    readings = {
        "latitude": latitude,
        "longitude": longitude,
        "speed": speed,
        "gps_accuracy": gps_accuracy,
        "signal_strength": signal_strength,
        "battery_level": battery_level,
        "heading": heading,
    }
    for field, value in readings.items():
        check_range(field, value)
