"""
Route schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional

from backend.app.models.route_enums import RouteStatus, RouteType


class RouteRestrictions(BaseModel):
    """Operational restrictions for a route."""
    max_weight_kg: Optional[float] = Field(None, gt=0)
    max_height_m: Optional[float] = Field(None, gt=0)
    hazmat_allowed: bool = False
    toll_roads: bool = True
    night_delivery: bool = False


class RouteCreate(BaseModel):
    """Schema for planning a route."""
    code: str = Field(..., min_length=1, max_length=50)
    name: Optional[str] = Field(None, max_length=200)
    type: RouteType
    origin_address: str = Field(..., min_length=1, max_length=500)
    origin_lat: Optional[float] = Field(None, ge=-90, le=90)
    origin_lng: Optional[float] = Field(None, ge=-180, le=180)
    destination_address: str = Field(..., min_length=1, max_length=500)
    destination_lat: Optional[float] = Field(None, ge=-90, le=90)
    destination_lng: Optional[float] = Field(None, ge=-180, le=180)
    distance_km: float
    num_stops: int = 0
    restrictions: Optional[RouteRestrictions] = None
    optimization_metadata: Optional[Dict[str, Any]] = None
    driver_id: Optional[int] = None


class RouteUpdate(BaseModel):
    """
    Partial route update.

    `type` is accepted so a change can be rejected explicitly rather than
    silently dropped.
    """
    name: Optional[str] = Field(None, max_length=200)
    type: Optional[RouteType] = None
    origin_address: Optional[str] = Field(None, min_length=1, max_length=500)
    origin_lat: Optional[float] = Field(None, ge=-90, le=90)
    origin_lng: Optional[float] = Field(None, ge=-180, le=180)
    destination_address: Optional[str] = Field(None, min_length=1, max_length=500)
    destination_lat: Optional[float] = Field(None, ge=-90, le=90)
    destination_lng: Optional[float] = Field(None, ge=-180, le=180)
    distance_km: Optional[float] = None
    num_stops: Optional[int] = None
    restrictions: Optional[RouteRestrictions] = None
    optimization_metadata: Optional[Dict[str, Any]] = None
    driver_id: Optional[int] = None


class RouteStatusChange(BaseModel):
    status: RouteStatus
    reason: Optional[str] = None


class RouteResponse(BaseModel):
    id: int
    code: str
    name: Optional[str]
    status: RouteStatus
    type: RouteType
    origin_address: str
    origin_lat: Optional[float]
    origin_lng: Optional[float]
    destination_address: str
    destination_lat: Optional[float]
    destination_lng: Optional[float]
    distance_km: float
    num_stops: int
    estimated_duration_minutes: Optional[float]
    estimated_cost: Optional[float]
    estimated_fuel_liters: Optional[float]
    restrictions: Optional[Dict[str, Any]]
    optimization_metadata: Optional[Dict[str, Any]]
    driver_id: Optional[int]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RouteListResponse(BaseModel):
    routes: List[RouteResponse]
    total: int
    skip: int
    limit: int


class RouteHistoryResponse(BaseModel):
    id: int
    route_id: int
    event_type: str
    description: str
    previous_status: Optional[RouteStatus]
    new_status: Optional[RouteStatus]
    changed_fields: Optional[List[Dict[str, Any]]]
    user_id: Optional[int]
    user_name: Optional[str]
    user_type: Optional[str]
    ip_address: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class RouteMetricsRequest(BaseModel):
    type: Optional[RouteType] = None
    distance_km: float
    num_stops: int = 0


class RouteMetricsResponse(BaseModel):
    estimated_duration_minutes: float
    estimated_cost: float
    estimated_fuel_liters: float
