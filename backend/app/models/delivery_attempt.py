"""
Delivery Attempt database model.

One row per driver attempt. attempt_number is sequential per delivery.
"""

from sqlalchemy import Column, Integer, Float, DateTime, Enum, JSON, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from backend.app.core.clock import utcnow
from backend.app.db.session import Base
from backend.app.models.delivery_enums import AttemptResult, FailureReason
from backend.app.models.tracking_enums import AccuracyLevel


class DeliveryAttempt(Base):
    """Delivery attempt model."""
    __tablename__ = "delivery_attempts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    delivery_id = Column(Integer, ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=False, index=True)
    driver_id = Column(Integer, nullable=True, index=True)

    attempt_number = Column(Integer, nullable=False)
    result = Column(Enum(AttemptResult), nullable=False, index=True)
    failure_reason = Column(Enum(FailureReason), nullable=True)
    notes = Column(Text, nullable=True)

    # Where the attempt happened
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    location_accuracy = Column(Float, nullable=True)
    accuracy_level = Column(Enum(AccuracyLevel), nullable=True)

    # {"photos": [...], "videos": [...], "documents": [...]}
    evidence = Column(JSON, nullable=True)
    next_attempt_scheduled_at = Column(DateTime, nullable=True)

    attempted_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    delivery = relationship("Delivery", back_populates="attempts")

    __table_args__ = (
        UniqueConstraint("delivery_id", "attempt_number", name="uq_delivery_attempts_delivery_number"),
    )

    def __repr__(self):
        return f"<DeliveryAttempt(delivery_id={self.delivery_id}, number={self.attempt_number}, result='{self.result.value}')>"
