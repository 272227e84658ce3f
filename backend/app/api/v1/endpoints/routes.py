"""
Route API Endpoints.

Dispatchers plan and edit routes; drivers move them through execution.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.actor import RequestContext
from backend.app.core.dependencies import actor_from_claims, get_request_context
from backend.app.core.guards import require_role
from backend.app.db.session import get_db
from backend.app.domain.routing.metrics import calculate_route_metrics
from backend.app.models.enums import UserRole
from backend.app.models.route_enums import RouteStatus, RouteType
from backend.app.schemas.route import (
    RouteCreate, RouteUpdate, RouteStatusChange, RouteResponse, RouteListResponse,
    RouteHistoryResponse, RouteMetricsRequest, RouteMetricsResponse
)
from backend.app.schemas.tracking import TrackingEventResponse
from backend.app.services import route_service
from backend.app.services.history import get_route_history
from backend.app.services.tracking_service import list_tracking_events

router = APIRouter(prefix="/routes", tags=["Routes"])

PLANNERS = [UserRole.ADMIN, UserRole.DISPATCHER]
OPERATORS = [UserRole.ADMIN, UserRole.DISPATCHER, UserRole.DRIVER]


@router.post("", response_model=RouteResponse, status_code=status.HTTP_201_CREATED)
async def create_route(
    payload: RouteCreate,
    current_user: dict = Depends(require_role(PLANNERS)),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Plan a route (Admin / Dispatcher).

    Duration, cost and fuel estimates are derived from the route type.
    """
    return await route_service.create_route(
        db, payload.model_dump(), actor_from_claims(current_user), context
    )


@router.get("", response_model=RouteListResponse)
async def list_routes(
    status_filter: Optional[RouteStatus] = Query(None, alias="status"),
    route_type: Optional[RouteType] = Query(None, alias="type"),
    driver_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(require_role(OPERATORS)),
    db: AsyncSession = Depends(get_db)
):
    routes, total = await route_service.list_routes(
        db, status=status_filter, route_type=route_type, driver_id=driver_id, skip=skip, limit=limit
    )
    return RouteListResponse(
        routes=[RouteResponse.model_validate(r) for r in routes],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.post("/estimate", response_model=RouteMetricsResponse)
async def estimate_route(
    payload: RouteMetricsRequest,
    current_user: dict = Depends(require_role(OPERATORS)),
):
    """Estimate duration, cost and fuel without creating a route."""
    metrics = calculate_route_metrics(payload.type, payload.distance_km, payload.num_stops)
    return RouteMetricsResponse(
        estimated_duration_minutes=metrics.estimated_duration_minutes,
        estimated_cost=metrics.estimated_cost,
        estimated_fuel_liters=metrics.estimated_fuel_liters,
    )


@router.get("/{route_id}", response_model=RouteResponse)
async def get_route(
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(require_role(OPERATORS)),
    db: AsyncSession = Depends(get_db)
):
    return await route_service.get_route(db, route_id)


@router.patch("/{route_id}", response_model=RouteResponse)
async def update_route(
    payload: RouteUpdate,
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(require_role(PLANNERS)),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Edit a PLANNED or PAUSED route.

    Changing the route type is rejected.
    """
    return await route_service.update_route(
        db, route_id, payload.model_dump(exclude_unset=True), actor_from_claims(current_user), context
    )


@router.post("/{route_id}/status", response_model=RouteResponse)
async def change_route_status(
    payload: RouteStatusChange,
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(require_role(OPERATORS)),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Change route status.

    Allowed:
    - PLANNED → IN_PROGRESS, CANCELLED
    - IN_PROGRESS → PAUSED, COMPLETED, CANCELLED
    - PAUSED → IN_PROGRESS, CANCELLED
    """
    return await route_service.change_route_status(
        db, route_id, payload.status, actor_from_claims(current_user), context, reason=payload.reason
    )


@router.delete("/{route_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_route(
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    await route_service.delete_route(db, route_id, actor_from_claims(current_user))


@router.get("/{route_id}/history", response_model=List[RouteHistoryResponse])
async def route_history(
    route_id: int = Path(..., description="Route ID"),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_role(OPERATORS)),
    db: AsyncSession = Depends(get_db)
):
    await route_service.get_route(db, route_id)
    return await get_route_history(db, route_id, limit=limit)


@router.get("/{route_id}/tracking-events", response_model=List[TrackingEventResponse])
async def route_tracking_events(
    route_id: int = Path(..., description="Route ID"),
    limit: int = Query(200, ge=1, le=1000),
    current_user: dict = Depends(require_role(OPERATORS)),
    db: AsyncSession = Depends(get_db)
):
    await route_service.get_route(db, route_id)
    return await list_tracking_events(db, route_id=route_id, limit=limit)
