"""
Route database model.

Routes are planned by dispatchers and executed by drivers. Status changes
must follow the route transition table.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, JSON, Text
from sqlalchemy.orm import relationship, validates
from backend.app.core.clock import utcnow
from backend.app.db.session import Base
from backend.app.models.route_enums import RouteStatus, RouteType
from backend.app.core.exceptions import ValidationError


class Route(Base):
    """
    Route model.

    `type` is fixed at creation. `version` is the optimistic lock counter
    checked on every UPDATE.
    """
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=True)

    status = Column(Enum(RouteStatus), default=RouteStatus.PLANNED, nullable=False, index=True)
    type = Column(Enum(RouteType), nullable=False, index=True)

    # Origin / destination
    origin_address = Column(String(500), nullable=False)
    origin_lat = Column(Float, nullable=True)
    origin_lng = Column(Float, nullable=True)
    destination_address = Column(String(500), nullable=False)
    destination_lat = Column(Float, nullable=True)
    destination_lng = Column(Float, nullable=True)

    # Estimates
    distance_km = Column(Float, nullable=False, default=0)
    num_stops = Column(Integer, nullable=False, default=0)
    estimated_duration_minutes = Column(Float, nullable=True)
    estimated_cost = Column(Float, nullable=True)
    estimated_fuel_liters = Column(Float, nullable=True)

    # {"max_weight_kg", "max_height_m", "hazmat_allowed", "toll_roads", "night_delivery"}
    restrictions = Column(JSON, nullable=True)
    optimization_metadata = Column(JSON, nullable=True)

    driver_id = Column(Integer, nullable=True, index=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    history = relationship(
        "RouteHistory",
        back_populates="route",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RouteHistory.id",
    )

    __mapper_args__ = {"version_id_col": version}

    @validates("type")
    def _validate_type(self, key, value):
        current = self.__dict__.get("type")
        if current is not None and value != current:
            raise ValidationError(
                "Route type cannot be changed after creation",
                details={"current_type": current.value, "requested_type": getattr(value, "value", value)}
            )
        return value

    def __repr__(self):
        return f"<Route(id={self.id}, code='{self.code}', status='{self.status.value}')>"
