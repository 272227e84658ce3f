"""
LGPD API Endpoints.

Users file and follow their own data-subject requests and manage consents.
Admins process requests, inspect the audit trail and trigger the
compliance sweep.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.actor import RequestContext
from backend.app.core.dependencies import actor_from_claims, get_current_user, get_request_context
from backend.app.core.guards import require_admin
from backend.app.core.redis_client import get_redis
from backend.app.db.session import get_db
from backend.app.domain.audit.policy import DATA_REQUEST_POLICY
from backend.app.jobs.lgpd_expiry import run_compliance_sweep
from backend.app.models.lgpd_enums import DataRequestStatus, DataRequestType
from backend.app.schemas.lgpd import (
    DataRequestCreate, DataRequestComplete, DataRequestFail, AdminNotesUpdate,
    DataRequestResponse, DataRequestListResponse, DataRequestStatistics, SweepResult,
    ConsentCreate, ConsentRevoke, ConsentResponse, AuditLogResponse
)
from backend.app.services.history import get_audit_trail
from backend.app.services.lgpd_service import ConsentService, DataRequestService

router = APIRouter(prefix="/lgpd", tags=["LGPD"])
admin_router = APIRouter(prefix="/admin/lgpd", tags=["Admin - LGPD"])


# ============================================
# Data-subject endpoints
# ============================================

@router.post("/requests", response_model=DataRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_data_request(
    payload: DataRequestCreate,
    current_user: dict = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """
    File a data-subject request.

    Only one pending request per type is allowed. The response carries the
    legal due date.
    """
    return await DataRequestService.create_request(
        db, current_user["user_id"], payload.request_type, reason=payload.reason, context=context
    )


@router.get("/requests", response_model=List[DataRequestResponse])
async def my_data_requests(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await DataRequestService.list_user_requests(db, current_user["user_id"])


@router.get("/requests/{request_id}", response_model=DataRequestResponse)
async def my_data_request(
    request_id: int = Path(..., description="Data request ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await DataRequestService.get_request(db, request_id, user_id=current_user["user_id"])


@router.post("/requests/{request_id}/cancel", response_model=DataRequestResponse)
async def cancel_my_data_request(
    request_id: int = Path(..., description="Data request ID"),
    current_user: dict = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    return await DataRequestService.cancel(
        db, request_id, actor_from_claims(current_user), context, owner_id=current_user["user_id"]
    )


@router.post("/consents", response_model=ConsentResponse, status_code=status.HTTP_201_CREATED)
async def grant_consent(
    payload: ConsentCreate,
    current_user: dict = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    return await ConsentService.grant_consent(
        db,
        current_user["user_id"],
        payload.consent_type,
        payload.terms_version,
        purpose_description=payload.purpose_description,
        expires_at=payload.expires_at,
        context=context,
    )


@router.get("/consents", response_model=List[ConsentResponse])
async def my_consents(
    active_only: bool = Query(False),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await ConsentService.list_user_consents(db, current_user["user_id"], active_only=active_only)


@router.post("/consents/{consent_id}/revoke", response_model=ConsentResponse)
async def revoke_consent(
    payload: ConsentRevoke,
    consent_id: int = Path(..., description="Consent ID"),
    current_user: dict = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    return await ConsentService.revoke_consent(
        db, consent_id, actor_from_claims(current_user), reason=payload.reason,
        context=context, owner_id=current_user["user_id"]
    )


# ============================================
# Admin endpoints
# ============================================

@admin_router.get("/requests", response_model=DataRequestListResponse)
async def list_data_requests(
    status_filter: Optional[DataRequestStatus] = Query(None, alias="status"),
    request_type: Optional[DataRequestType] = Query(None),
    user_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    requests, total = await DataRequestService.list_requests(
        db, status=status_filter, request_type=request_type, user_id=user_id, skip=skip, limit=limit
    )
    return DataRequestListResponse(
        requests=[DataRequestResponse.model_validate(r) for r in requests],
        total=total,
        skip=skip,
        limit=limit,
    )


@admin_router.get("/requests/statistics", response_model=DataRequestStatistics)
async def data_request_statistics(
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await DataRequestService.statistics(db)


@admin_router.get("/requests/near-due", response_model=List[DataRequestResponse])
async def data_requests_near_due(
    days: int = Query(3, ge=1, le=30),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await DataRequestService.list_near_due_date(db, days=days)


@admin_router.get("/requests/{request_id}", response_model=DataRequestResponse)
async def get_data_request(
    request_id: int = Path(..., description="Data request ID"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await DataRequestService.get_request(db, request_id)


@admin_router.post("/requests/{request_id}/start", response_model=DataRequestResponse)
async def start_data_request(
    request_id: int = Path(..., description="Data request ID"),
    admin: dict = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    return await DataRequestService.start_processing(db, request_id, actor_from_claims(admin), context)


@admin_router.post("/requests/{request_id}/complete", response_model=DataRequestResponse)
async def complete_data_request(
    payload: DataRequestComplete,
    request_id: int = Path(..., description="Data request ID"),
    admin: dict = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    return await DataRequestService.complete(
        db, request_id, actor_from_claims(admin),
        file_path=payload.file_path, file_hash=payload.file_hash, file_size=payload.file_size,
        context=context,
    )


@admin_router.post("/requests/{request_id}/fail", response_model=DataRequestResponse)
async def fail_data_request(
    payload: DataRequestFail,
    request_id: int = Path(..., description="Data request ID"),
    admin: dict = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    return await DataRequestService.fail(
        db, request_id, actor_from_claims(admin), payload.error_message, context=context
    )


@admin_router.post("/requests/{request_id}/cancel", response_model=DataRequestResponse)
async def cancel_data_request(
    request_id: int = Path(..., description="Data request ID"),
    admin: dict = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    return await DataRequestService.cancel(db, request_id, actor_from_claims(admin), context)


@admin_router.patch("/requests/{request_id}/notes", response_model=DataRequestResponse)
async def update_admin_notes(
    payload: AdminNotesUpdate,
    request_id: int = Path(..., description="Data request ID"),
    admin: dict = Depends(require_admin),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    return await DataRequestService.update_admin_notes(
        db, request_id, payload.admin_notes, actor_from_claims(admin), context
    )


@admin_router.get("/requests/{request_id}/audit", response_model=List[AuditLogResponse])
async def data_request_audit_trail(
    request_id: int = Path(..., description="Data request ID"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await DataRequestService.get_request(db, request_id)
    return await get_audit_trail(db, DATA_REQUEST_POLICY.entity_type, entity_id=request_id)


@admin_router.post("/sweep", response_model=SweepResult)
async def run_sweep(
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Run the compliance sweep now.

    Returns executed=false if a scheduled sweep is already holding the lock.
    """
    return await run_compliance_sweep(db, redis)
