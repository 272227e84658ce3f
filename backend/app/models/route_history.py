"""
Route History database model.

Append-only audit trail of every tracked route mutation.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, JSON, Text, ForeignKey, event
from sqlalchemy.orm import relationship
from backend.app.core.clock import utcnow
from backend.app.db.session import Base
from backend.app.models.route_enums import RouteStatus


class RouteHistory(Base):
    """
    Route history row.

    changed_fields holds a list of {"field_name", "old_value", "new_value"}.
    """
    __tablename__ = "route_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    route_id = Column(Integer, ForeignKey("routes.id", ondelete="CASCADE"), nullable=False, index=True)

    event_type = Column(String(50), nullable=False, index=True)
    description = Column(Text, nullable=False)
    previous_status = Column(Enum(RouteStatus), nullable=True)
    new_status = Column(Enum(RouteStatus), nullable=True)
    changed_fields = Column(JSON, nullable=True)

    # Who
    user_id = Column(Integer, nullable=True, index=True)
    user_name = Column(String(200), nullable=True)
    user_type = Column(String(50), nullable=True)

    # Request context
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    meta_data = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    route = relationship("Route", back_populates="history")

    def is_status_change(self) -> bool:
        return self.previous_status is not None and self.new_status is not None

    def is_system_generated(self) -> bool:
        return self.user_type == "system" or self.user_id is None

    def __repr__(self):
        return f"<RouteHistory(route_id={self.route_id}, event='{self.event_type}')>"


@event.listens_for(RouteHistory, "before_update")
def _reject_route_history_update(mapper, connection, target):
    raise RuntimeError("route_history rows are append-only")
