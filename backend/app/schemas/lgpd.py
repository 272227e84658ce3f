"""
LGPD schemas for data-subject requests and consents.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional

from backend.app.models.lgpd_enums import DataRequestType, DataRequestStatus, ConsentType


class DataRequestCreate(BaseModel):
    request_type: DataRequestType
    reason: Optional[str] = Field(None, max_length=2000)


class DataRequestComplete(BaseModel):
    file_path: Optional[str] = Field(None, max_length=500)
    file_hash: Optional[str] = Field(None, max_length=128)
    file_size: Optional[int] = Field(None, ge=0)


class DataRequestFail(BaseModel):
    error_message: str = Field(..., min_length=1)


class AdminNotesUpdate(BaseModel):
    admin_notes: str = Field(..., max_length=5000)


class DataRequestResponse(BaseModel):
    id: int
    user_id: int
    request_type: DataRequestType
    status: DataRequestStatus
    reason: Optional[str]
    due_date: datetime
    processing_started_at: Optional[datetime]
    completed_at: Optional[datetime]
    file_path: Optional[str]
    file_hash: Optional[str]
    file_size: Optional[int]
    error_message: Optional[str]
    processed_by: Optional[str]
    admin_notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DataRequestListResponse(BaseModel):
    requests: List[DataRequestResponse]
    total: int
    skip: int
    limit: int


class DataRequestStatistics(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_type: Dict[str, int]
    overdue: int
    near_due: int


class SweepResult(BaseModel):
    """Outcome of a compliance sweep run."""
    executed: bool
    expired_requests: int = 0
    expired_consents: int = 0


class ConsentCreate(BaseModel):
    consent_type: ConsentType
    terms_version: str = Field(..., min_length=1, max_length=50)
    purpose_description: Optional[str] = None
    expires_at: Optional[datetime] = None


class ConsentRevoke(BaseModel):
    reason: Optional[str] = None


class ConsentResponse(BaseModel):
    id: int
    user_id: int
    consent_type: ConsentType
    is_active: bool
    terms_version: str
    purpose_description: Optional[str]
    expires_at: Optional[datetime]
    revoked_at: Optional[datetime]
    revocation_reason: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogResponse(BaseModel):
    id: int
    entity_type: str
    entity_id: int
    action: str
    category: str
    description: Optional[str]
    changed_fields: Optional[List[Dict[str, Any]]]
    actor_id: Optional[int]
    actor_name: Optional[str]
    actor_type: Optional[str]
    timestamp: datetime

    class Config:
        from_attributes = True
