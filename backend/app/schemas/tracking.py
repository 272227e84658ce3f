"""
Tracking event schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, Optional

from backend.app.models.tracking_enums import TrackingEventType, DeviceType, SignalQuality, AccuracyLevel


class TrackingEventCreate(BaseModel):
    """
    Incoming device ping.

    Ranges are validated by the tracking classifier so that violations come
    back as OutOfRangeError with field details.
    """
    event_type: str
    latitude: float
    longitude: float
    route_id: Optional[int] = None
    description: Optional[str] = None
    device_type: Optional[DeviceType] = None
    device_id: Optional[str] = Field(None, max_length=100)
    signal_strength: Optional[float] = None
    battery_level: Optional[float] = None
    gps_accuracy: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    metadata: Optional[Dict[str, Any]] = None
    recorded_at: Optional[datetime] = None


class TrackingEventResponse(BaseModel):
    id: int
    delivery_id: Optional[int]
    route_id: Optional[int]
    driver_id: Optional[int]
    event_type: TrackingEventType
    description: Optional[str]
    device_type: Optional[DeviceType]
    device_id: Optional[str]
    signal_strength: Optional[float]
    battery_level: Optional[float]
    latitude: float
    longitude: float
    gps_accuracy: Optional[float]
    speed: Optional[float]
    heading: Optional[float]
    signal_quality: Optional[SignalQuality]
    accuracy_level: Optional[AccuracyLevel]
    recorded_at: datetime

    class Config:
        from_attributes = True
