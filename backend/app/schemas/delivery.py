"""
Delivery schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional

from backend.app.models.delivery_enums import (
    DeliveryStatus, DeliveryPriority, DeliveryType, AttemptResult, FailureReason
)
from backend.app.models.tracking_enums import AccuracyLevel


class DeliveryCreate(BaseModel):
    tracking_number: Optional[str] = Field(None, min_length=4, max_length=100)
    priority: DeliveryPriority = DeliveryPriority.NORMAL
    type: DeliveryType = DeliveryType.STANDARD
    customer_id: Optional[int] = None
    driver_id: Optional[int] = None
    route_id: Optional[int] = None
    recipient_name: Optional[str] = Field(None, max_length=255)
    delivery_address: Optional[str] = Field(None, max_length=500)
    package_description: Optional[str] = None
    weight_kg: Optional[float] = Field(None, gt=0)
    max_delivery_attempts: Optional[int] = None


class DeliveryUpdate(BaseModel):
    priority: Optional[DeliveryPriority] = None
    driver_id: Optional[int] = None
    route_id: Optional[int] = None
    recipient_name: Optional[str] = Field(None, max_length=255)
    delivery_address: Optional[str] = Field(None, max_length=500)
    package_description: Optional[str] = None
    weight_kg: Optional[float] = Field(None, gt=0)
    max_delivery_attempts: Optional[int] = None


class DeliveryStatusChange(BaseModel):
    status: DeliveryStatus
    reason: Optional[str] = None
    proof_of_delivery: Optional[Dict[str, Any]] = None


class DeliveryResponse(BaseModel):
    id: int
    tracking_number: str
    status: DeliveryStatus
    priority: DeliveryPriority
    type: DeliveryType
    customer_id: Optional[int]
    driver_id: Optional[int]
    route_id: Optional[int]
    recipient_name: Optional[str]
    delivery_address: Optional[str]
    package_description: Optional[str]
    weight_kg: Optional[float]
    delivery_attempts: int
    max_delivery_attempts: int
    failure_reason: Optional[str]
    proof_of_delivery: Optional[Dict[str, Any]]
    tracking_events: Optional[List[Dict[str, Any]]]
    picked_up_at: Optional[datetime]
    delivered_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DeliveryListResponse(BaseModel):
    deliveries: List[DeliveryResponse]
    total: int
    skip: int
    limit: int


class AttemptCreate(BaseModel):
    """Schema for recording a delivery attempt."""
    result: AttemptResult
    failure_reason: Optional[FailureReason] = None
    notes: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_accuracy: Optional[float] = None
    evidence: Optional[Dict[str, Any]] = None
    proof_of_delivery: Optional[Dict[str, Any]] = None
    next_attempt_scheduled_at: Optional[datetime] = None
    attempted_at: Optional[datetime] = None


class AttemptResponse(BaseModel):
    id: int
    delivery_id: int
    driver_id: Optional[int]
    attempt_number: int
    result: AttemptResult
    failure_reason: Optional[FailureReason]
    notes: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    location_accuracy: Optional[float]
    accuracy_level: Optional[AccuracyLevel]
    evidence: Optional[Dict[str, Any]]
    next_attempt_scheduled_at: Optional[datetime]
    attempted_at: datetime

    class Config:
        from_attributes = True


class AttemptRecordResponse(BaseModel):
    """Response after recording an attempt."""
    attempt: AttemptResponse
    delivery: DeliveryResponse
    auto_failed: bool


class DeliveryHistoryResponse(BaseModel):
    id: int
    delivery_id: int
    event_type: str
    description: str
    previous_status: Optional[DeliveryStatus]
    new_status: Optional[DeliveryStatus]
    changed_fields: Optional[List[Dict[str, Any]]]
    user_id: Optional[int]
    user_name: Optional[str]
    user_type: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
