"""
Tracking Event database model.

Device pings received from drivers. Signal and accuracy bands are derived at
ingestion time and stored for filtering.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, JSON, Text, ForeignKey
from backend.app.core.clock import utcnow
from backend.app.db.session import Base
from backend.app.models.tracking_enums import TrackingEventType, DeviceType, SignalQuality, AccuracyLevel


class TrackingEvent(Base):
    """Tracking event model."""
    __tablename__ = "tracking_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    delivery_id = Column(Integer, ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=True, index=True)
    route_id = Column(Integer, ForeignKey("routes.id", ondelete="SET NULL"), nullable=True, index=True)
    driver_id = Column(Integer, nullable=True, index=True)

    event_type = Column(Enum(TrackingEventType), nullable=False, index=True)
    description = Column(Text, nullable=True)

    # Device
    device_type = Column(Enum(DeviceType), nullable=True)
    device_id = Column(String(100), nullable=True)
    signal_strength = Column(Float, nullable=True)
    battery_level = Column(Float, nullable=True)

    # Position
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    gps_accuracy = Column(Float, nullable=True)
    speed = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)

    # Derived bands
    signal_quality = Column(Enum(SignalQuality), nullable=True)
    accuracy_level = Column(Enum(AccuracyLevel), nullable=True)

    meta_data = Column(JSON, nullable=True)

    recorded_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<TrackingEvent(id={self.id}, type='{self.event_type.value}', delivery={self.delivery_id})>"
