"""
Delivery API Endpoints.

Delivery status changes, driver attempts and tracking pings.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.actor import RequestContext
from backend.app.core.dependencies import actor_from_claims, get_current_user, get_request_context
from backend.app.core.exceptions import NotFoundError
from backend.app.core.guards import require_role
from backend.app.db.session import get_db
from backend.app.models.delivery_enums import DeliveryStatus
from backend.app.models.enums import UserRole
from backend.app.schemas.delivery import (
    DeliveryCreate, DeliveryUpdate, DeliveryStatusChange, DeliveryResponse, DeliveryListResponse,
    AttemptCreate, AttemptResponse, AttemptRecordResponse, DeliveryHistoryResponse
)
from backend.app.schemas.tracking import TrackingEventCreate, TrackingEventResponse
from backend.app.services import delivery_service, tracking_service
from backend.app.services.history import get_delivery_history

router = APIRouter(prefix="/deliveries", tags=["Deliveries"])

PLANNERS = [UserRole.ADMIN, UserRole.DISPATCHER]
OPERATORS = [UserRole.ADMIN, UserRole.DISPATCHER, UserRole.DRIVER]


def _visible_to(delivery, current_user: dict):
    """Customers only see their own deliveries."""
    if current_user.get("role") == UserRole.CUSTOMER.value and delivery.customer_id != current_user.get("user_id"):
        raise NotFoundError("Delivery", delivery.id)
    return delivery


@router.post("", response_model=DeliveryResponse, status_code=status.HTTP_201_CREATED)
async def create_delivery(
    payload: DeliveryCreate,
    current_user: dict = Depends(require_role(PLANNERS)),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """Register a delivery. A tracking number is generated when omitted."""
    return await delivery_service.create_delivery(
        db, payload.model_dump(exclude_none=True), actor_from_claims(current_user), context
    )


@router.get("", response_model=DeliveryListResponse)
async def list_deliveries(
    status_filter: Optional[DeliveryStatus] = Query(None, alias="status"),
    customer_id: Optional[int] = Query(None),
    driver_id: Optional[int] = Query(None),
    route_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if current_user.get("role") == UserRole.CUSTOMER.value:
        customer_id = current_user["user_id"]
    deliveries, total = await delivery_service.list_deliveries(
        db, status=status_filter, customer_id=customer_id, driver_id=driver_id,
        route_id=route_id, skip=skip, limit=limit
    )
    return DeliveryListResponse(
        deliveries=[DeliveryResponse.model_validate(d) for d in deliveries],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/tracking/{tracking_number}", response_model=DeliveryResponse)
async def get_by_tracking_number(
    tracking_number: str = Path(..., description="Tracking number"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    delivery = await delivery_service.get_delivery_by_tracking_number(db, tracking_number)
    return _visible_to(delivery, current_user)


@router.get("/{delivery_id}", response_model=DeliveryResponse)
async def get_delivery(
    delivery_id: int = Path(..., description="Delivery ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return _visible_to(await delivery_service.get_delivery(db, delivery_id), current_user)


@router.patch("/{delivery_id}", response_model=DeliveryResponse)
async def update_delivery(
    payload: DeliveryUpdate,
    delivery_id: int = Path(..., description="Delivery ID"),
    current_user: dict = Depends(require_role(PLANNERS)),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Update a delivery.

    Lowering max_delivery_attempts to the attempts already made fails the
    delivery.
    """
    delivery, _ = await delivery_service.update_delivery(
        db, delivery_id, payload.model_dump(exclude_unset=True), actor_from_claims(current_user), context
    )
    return delivery


@router.post("/{delivery_id}/status", response_model=DeliveryResponse)
async def change_delivery_status(
    payload: DeliveryStatusChange,
    delivery_id: int = Path(..., description="Delivery ID"),
    current_user: dict = Depends(require_role(OPERATORS)),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Change delivery status.

    failed → pending reschedules the delivery while attempts remain.
    """
    return await delivery_service.change_delivery_status(
        db, delivery_id, payload.status, actor_from_claims(current_user), context,
        reason=payload.reason, proof_of_delivery=payload.proof_of_delivery
    )


@router.post("/{delivery_id}/attempts", response_model=AttemptRecordResponse, status_code=status.HTTP_201_CREATED)
async def record_attempt(
    payload: AttemptCreate,
    delivery_id: int = Path(..., description="Delivery ID"),
    current_user: dict = Depends(require_role(OPERATORS)),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Record a delivery attempt (Driver).

    Validates:
    - Attempts remain under the delivery's ceiling
    - Delivery is not delivered, cancelled, returned or failed
    - RESCHEDULED carries next_attempt_scheduled_at

    Actions:
    - SUCCESS marks the delivery delivered
    - Reaching the ceiling auto-fails the delivery
    """
    attempt, delivery, auto_failed = await delivery_service.record_attempt(
        db, delivery_id, payload.model_dump(), actor_from_claims(current_user), context
    )
    return AttemptRecordResponse(
        attempt=AttemptResponse.model_validate(attempt),
        delivery=DeliveryResponse.model_validate(delivery),
        auto_failed=auto_failed,
    )


@router.get("/{delivery_id}/attempts", response_model=List[AttemptResponse])
async def list_attempts(
    delivery_id: int = Path(..., description="Delivery ID"),
    current_user: dict = Depends(require_role(OPERATORS)),
    db: AsyncSession = Depends(get_db)
):
    return await delivery_service.list_attempts(db, delivery_id)


@router.get("/{delivery_id}/history", response_model=List[DeliveryHistoryResponse])
async def delivery_history(
    delivery_id: int = Path(..., description="Delivery ID"),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_role(OPERATORS)),
    db: AsyncSession = Depends(get_db)
):
    await delivery_service.get_delivery(db, delivery_id)
    return await get_delivery_history(db, delivery_id, limit=limit)


@router.post("/{delivery_id}/tracking-events", response_model=TrackingEventResponse, status_code=status.HTTP_201_CREATED)
async def record_tracking_event(
    payload: TrackingEventCreate,
    delivery_id: int = Path(..., description="Delivery ID"),
    current_user: dict = Depends(require_role(OPERATORS)),
    db: AsyncSession = Depends(get_db)
):
    """Ingest a device ping for a delivery."""
    return await tracking_service.record_tracking_event(
        db, payload.model_dump(), actor_from_claims(current_user), delivery_id=delivery_id
    )


@router.get("/{delivery_id}/tracking-events", response_model=List[TrackingEventResponse])
async def list_tracking_events(
    delivery_id: int = Path(..., description="Delivery ID"),
    limit: int = Query(200, ge=1, le=1000),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    _visible_to(await delivery_service.get_delivery(db, delivery_id), current_user)
    return await tracking_service.list_tracking_events(db, delivery_id=delivery_id, limit=limit)
