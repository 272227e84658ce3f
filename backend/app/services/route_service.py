"""
Route lifecycle service.

Every mutation follows the same pipeline: load under lock, validate, mutate,
write history, commit with the version check, then notify.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.actor import Actor, RequestContext, SYSTEM_CONTEXT
from backend.app.core.clock import resolve_now
from backend.app.core.exceptions import ValidationError
from backend.app.domain.audit.policy import ROUTE_POLICY, json_safe
from backend.app.domain.lifecycle.transitions import ROUTE_TRANSITIONS, EDITABLE_ROUTE_STATUSES
from backend.app.domain.routing.metrics import RouteMetrics, calculate_route_metrics
from backend.app.models.notification import NotificationType
from backend.app.models.route import Route
from backend.app.models.route_enums import RouteEventType, RouteStatus, RouteType
from backend.app.services.history import HistoryRecorder
from backend.app.services.locking import commit_or_conflict, get_or_404, load_for_update
from backend.app.services.notification_service import NotificationService

logger = logging.getLogger("lifecycle.routes")

UPDATABLE_FIELDS = (
    "name", "type",
    "origin_address", "origin_lat", "origin_lng",
    "destination_address", "destination_lat", "destination_lng",
    "distance_km", "num_stops",
    "restrictions", "optimization_metadata", "driver_id",
)

# Fields that feed the metric estimates
METRIC_FIELDS = ("distance_km", "num_stops")

# Updatable columns declared NOT NULL
REQUIRED_FIELDS = ("origin_address", "destination_address", "distance_km", "num_stops")


def _apply_metrics(route: Route, metrics: Optional[RouteMetrics] = None) -> None:
    if metrics is None:
        metrics = calculate_route_metrics(route.type, route.distance_km, route.num_stops)
    route.estimated_duration_minutes = metrics.estimated_duration_minutes
    route.estimated_cost = metrics.estimated_cost
    route.estimated_fuel_liters = metrics.estimated_fuel_liters


async def _code_exists(db: AsyncSession, code: str) -> bool:
    result = await db.execute(select(Route.id).where(Route.code == code))
    return result.scalar_one_or_none() is not None


async def create_route(
    db: AsyncSession,
    data: Dict[str, Any],
    actor: Actor,
    context: RequestContext = SYSTEM_CONTEXT,
) -> Route:
    """
    Plan a new route.

    Metric estimates are derived from the route type, distance and stops.
    The route starts PLANNED and a CREATED history row is written.

    Raises:
        ValidationError: duplicate code
        OutOfRangeError: distance or stops outside plausible bounds
    """
    if await _code_exists(db, data["code"]):
        raise ValidationError(
            f"Route code {data['code']} already exists",
            details={"code": data["code"]}
        )

    route = Route(
        status=RouteStatus.PLANNED,
        num_stops=data.get("num_stops") or 0,
        **{k: json_safe(v) if k in ("restrictions", "optimization_metadata") else v
           for k, v in data.items() if k != "num_stops"},
    )
    _apply_metrics(route)

    db.add(route)
    await db.flush()

    HistoryRecorder(db, actor, context).route(
        route,
        RouteEventType.CREATED,
        f"Route {route.code} planned",
        new_status=route.status,
        metadata={"type": route.type, "distance_km": route.distance_km},
    )
    await commit_or_conflict(db, "Route", route.id)

    logger.info("Route %s (%s) created by %s", route.id, route.code, actor.name)
    return route


async def get_route(db: AsyncSession, route_id: int) -> Route:
    return await get_or_404(db, Route, route_id, "Route")


async def list_routes(
    db: AsyncSession,
    status: Optional[RouteStatus] = None,
    route_type: Optional[RouteType] = None,
    driver_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 50,
) -> Tuple[List[Route], int]:
    """List routes with filters. Returns (routes, total)."""
    query = select(Route)
    if status is not None:
        query = query.where(Route.status == status)
    if route_type is not None:
        query = query.where(Route.type == route_type)
    if driver_id is not None:
        query = query.where(Route.driver_id == driver_id)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    result = await db.execute(query.order_by(Route.id).offset(skip).limit(limit))
    return list(result.scalars().all()), total


async def update_route(
    db: AsyncSession,
    route_id: int,
    changes: Dict[str, Any],
    actor: Actor,
    context: RequestContext = SYSTEM_CONTEXT,
) -> Route:
    """
    Update route attributes.

    Only PLANNED and PAUSED routes are editable, `type` is immutable and
    status changes go through `change_route_status`.

    Raises:
        ValidationError: route not editable, unknown or nulled field, or type change
        OutOfRangeError: new distance or stops outside plausible bounds
        NotFoundError: route does not exist
        ConflictError: concurrent modification
    """
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(
            "Fields cannot be updated on a route",
            details={"fields": sorted(unknown)}
        )
    nulled = sorted(field for field in REQUIRED_FIELDS if field in changes and changes[field] is None)
    if nulled:
        raise ValidationError(
            "Fields cannot be null on a route",
            details={"fields": nulled}
        )

    route = await load_for_update(db, Route, route_id, "Route")

    if "type" in changes and changes["type"] is not None and RouteType(changes["type"]) != route.type:
        raise ValidationError(
            "Route type cannot be changed after creation",
            details={"current_type": route.type.value, "requested_type": RouteType(changes["type"]).value}
        )
    changes = {k: v for k, v in changes.items() if k != "type"}

    if route.status not in EDITABLE_ROUTE_STATUSES:
        raise ValidationError(
            f"Route in status {route.status.value} cannot be edited",
            details={"status": route.status.value, "editable_statuses": sorted(s.value for s in EDITABLE_ROUTE_STATUSES)}
        )

    # Estimates are checked against the merged values before the route is touched
    metrics = None
    if any(field in changes for field in METRIC_FIELDS):
        metrics = calculate_route_metrics(
            route.type,
            changes.get("distance_km", route.distance_km),
            changes.get("num_stops", route.num_stops),
        )

    before = ROUTE_POLICY.snapshot(route)
    for field, value in changes.items():
        if field in ("restrictions", "optimization_metadata"):
            value = json_safe(value)
        setattr(route, field, value)
    if metrics is not None:
        _apply_metrics(route, metrics)

    changed = ROUTE_POLICY.diff(before, ROUTE_POLICY.snapshot(route))
    if not changed:
        return route

    HistoryRecorder(db, actor, context).route(
        route,
        RouteEventType.UPDATED,
        "Route updated: " + ", ".join(c["field_name"] for c in changed),
        before=before,
        policy=ROUTE_POLICY,
    )
    await commit_or_conflict(db, "Route", route_id)

    logger.info("Route %s updated by %s: %s", route_id, actor.name, [c["field_name"] for c in changed])
    return route


async def change_route_status(
    db: AsyncSession,
    route_id: int,
    target: Any,
    actor: Actor,
    context: RequestContext = SYSTEM_CONTEXT,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Route:
    """
    Move a route along the transition table.

    Steps:
    1. Load route under lock
    2. Validate the edge (self-transitions are rejected)
    3. Stamp started/completed/cancelled timestamps
    4. Write STATUS_CHANGED history
    5. Commit with version check
    6. Notify the assigned driver (best effort)

    Raises:
        InvalidTransitionError: edge not in the table; route unchanged
        NotFoundError: route does not exist
        ConflictError: concurrent modification
    """
    now = resolve_now(now)
    route = await load_for_update(db, Route, route_id, "Route")
    previous = route.status

    try:
        target = ROUTE_TRANSITIONS.validate_transition(previous, target)
    except ValidationError:
        logger.warning("Rejected route %s transition %s -> %s", route_id, previous.value, getattr(target, "value", target))
        raise

    before = ROUTE_POLICY.snapshot(route)
    route.status = target
    if target == RouteStatus.IN_PROGRESS and route.started_at is None:
        route.started_at = now
    elif target == RouteStatus.COMPLETED:
        route.completed_at = now
    elif target == RouteStatus.CANCELLED:
        route.cancelled_at = now
        route.cancellation_reason = reason

    HistoryRecorder(db, actor, context).route(
        route,
        RouteEventType.STATUS_CHANGED,
        f"Status changed from {previous.value} to {target.value}" + (f": {reason}" if reason else ""),
        previous_status=previous,
        new_status=target,
        before=before,
        policy=ROUTE_POLICY,
        metadata={"reason": reason} if reason else None,
    )
    await commit_or_conflict(db, "Route", route_id)

    logger.info("Route %s %s -> %s by %s", route_id, previous.value, target.value, actor.name)

    await NotificationService.notify(
        db,
        route.driver_id,
        title=f"Route {route.code} {target.value.lower()}",
        message=f"Route {route.code} changed from {previous.value} to {target.value}",
        type=NotificationType.ROUTE_UPDATE,
        metadata={"route_id": route.id, "status": target},
        reload=[route],
    )
    return route


async def delete_route(
    db: AsyncSession,
    route_id: int,
    actor: Actor,
) -> None:
    """
    Delete a route that never ran. History rows go with it.

    Raises:
        ValidationError: route is not PLANNED or CANCELLED
    """
    route = await load_for_update(db, Route, route_id, "Route")
    if route.status not in (RouteStatus.PLANNED, RouteStatus.CANCELLED) or route.started_at is not None:
        raise ValidationError(
            "Only routes that never started can be deleted",
            details={"status": route.status.value}
        )
    await db.delete(route)
    await commit_or_conflict(db, "Route", route_id)
    logger.info("Route %s deleted by %s", route_id, actor.name)
