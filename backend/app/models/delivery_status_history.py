"""
Delivery Status History database model.

Append-only trail of delivery creation, status changes, attempts and
auto-fail escalations.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, JSON, Text, ForeignKey, event
from sqlalchemy.orm import relationship
from backend.app.core.clock import utcnow
from backend.app.db.session import Base
from backend.app.models.delivery_enums import DeliveryStatus


class DeliveryStatusHistory(Base):
    """Delivery history row."""
    __tablename__ = "delivery_status_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    delivery_id = Column(Integer, ForeignKey("deliveries.id", ondelete="CASCADE"), nullable=False, index=True)

    event_type = Column(String(50), nullable=False, index=True)
    description = Column(Text, nullable=False)
    previous_status = Column(Enum(DeliveryStatus), nullable=True)
    new_status = Column(Enum(DeliveryStatus), nullable=True)
    changed_fields = Column(JSON, nullable=True)

    user_id = Column(Integer, nullable=True, index=True)
    user_name = Column(String(200), nullable=True)
    user_type = Column(String(50), nullable=True)

    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    meta_data = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    delivery = relationship("Delivery", back_populates="history")

    def is_status_change(self) -> bool:
        return self.previous_status is not None and self.new_status is not None

    def __repr__(self):
        return f"<DeliveryStatusHistory(delivery_id={self.delivery_id}, event='{self.event_type}')>"


@event.listens_for(DeliveryStatusHistory, "before_update")
def _reject_delivery_history_update(mapper, connection, target):
    raise RuntimeError("delivery_status_history rows are append-only")
