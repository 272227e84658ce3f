"""
Delivery database model.

A delivery carries its own attempt counter; the ceiling invariant
(delivery_attempts <= max_delivery_attempts) is enforced by the delivery
service on every write path and backed by a CHECK constraint.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, JSON, Text, CheckConstraint
from sqlalchemy.orm import relationship
from backend.app.core.clock import utcnow
from backend.app.db.session import Base
from backend.app.models.delivery_enums import DeliveryStatus, DeliveryPriority, DeliveryType


class Delivery(Base):
    """Delivery model."""
    __tablename__ = "deliveries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tracking_number = Column(String(100), unique=True, nullable=False, index=True)

    status = Column(Enum(DeliveryStatus), default=DeliveryStatus.PENDING, nullable=False, index=True)
    priority = Column(Enum(DeliveryPriority), default=DeliveryPriority.NORMAL, nullable=False)
    type = Column(Enum(DeliveryType), default=DeliveryType.STANDARD, nullable=False)

    customer_id = Column(Integer, nullable=True, index=True)
    driver_id = Column(Integer, nullable=True, index=True)
    route_id = Column(Integer, nullable=True, index=True)

    recipient_name = Column(String(255), nullable=True)
    delivery_address = Column(String(500), nullable=True)
    package_description = Column(Text, nullable=True)
    weight_kg = Column(Float, nullable=True)

    # Attempt ceiling
    delivery_attempts = Column(Integer, nullable=False, default=0)
    max_delivery_attempts = Column(Integer, nullable=False, default=3)
    failure_reason = Column(Text, nullable=True)

    proof_of_delivery = Column(JSON, nullable=True)
    # Ordered log of {"event_type", "recorded_at", "description", ...}
    tracking_events = Column(JSON, nullable=True)

    picked_up_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    attempts = relationship(
        "DeliveryAttempt",
        back_populates="delivery",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="DeliveryAttempt.attempt_number",
    )
    history = relationship(
        "DeliveryStatusHistory",
        back_populates="delivery",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="DeliveryStatusHistory.id",
    )

    __table_args__ = (
        CheckConstraint("delivery_attempts >= 0", name="attempts_non_negative"),
        CheckConstraint("max_delivery_attempts >= 1", name="max_attempts_positive"),
        CheckConstraint("delivery_attempts <= max_delivery_attempts", name="attempts_within_max"),
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Delivery(id={self.id}, tracking='{self.tracking_number}', status='{self.status.value}')>"
