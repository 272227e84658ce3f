"""
Tracking event ingestion.

Pings are range-checked and classified, stored as TrackingEvent rows and,
when tied to a delivery, appended to the delivery's ordered tracking log.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.actor import Actor
from backend.app.core.clock import resolve_now
from backend.app.core.exceptions import ValidationError
from backend.app.domain.audit.policy import json_safe
from backend.app.domain.tracking.classifier import accuracy_level, parse_event_type, signal_quality, validate_ping
from backend.app.models.delivery import Delivery
from backend.app.models.route import Route
from backend.app.models.tracking_event import TrackingEvent
from backend.app.services.locking import commit_or_conflict, get_or_404, load_for_update

logger = logging.getLogger("lifecycle.tracking")


def _log_entry(event: TrackingEvent) -> Dict[str, Any]:
    return json_safe({
        "event_type": event.event_type,
        "recorded_at": event.recorded_at,
        "latitude": event.latitude,
        "longitude": event.longitude,
        "description": event.description,
        "signal_quality": event.signal_quality,
        "accuracy_level": event.accuracy_level,
    })


async def record_tracking_event(
    db: AsyncSession,
    data: Dict[str, Any],
    actor: Actor,
    delivery_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> TrackingEvent:
    """
    Ingest one device ping.

    Raises:
        ValidationError: unknown event type, or no delivery or route given
        OutOfRangeError: implausible readings
        NotFoundError: referenced delivery or route does not exist
    """
    now = resolve_now(now)
    event_type = parse_event_type(data.get("event_type"))
    if data.get("latitude") is None or data.get("longitude") is None:
        raise ValidationError("latitude and longitude are required")
    validate_ping(
        data.get("latitude"),
        data.get("longitude"),
        speed=data.get("speed"),
        gps_accuracy=data.get("gps_accuracy"),
        signal_strength=data.get("signal_strength"),
        battery_level=data.get("battery_level"),
        heading=data.get("heading"),
    )

    route_id = data.get("route_id")
    if delivery_id is None and route_id is None:
        raise ValidationError("A tracking event must reference a delivery or a route")

    delivery = None
    if delivery_id is not None:
        delivery = await load_for_update(db, Delivery, delivery_id, "Delivery")
        if route_id is None:
            route_id = delivery.route_id
    if route_id is not None:
        await get_or_404(db, Route, route_id, "Route")

    signal = data.get("signal_strength")
    accuracy = data.get("gps_accuracy")
    event = TrackingEvent(
        delivery_id=delivery_id,
        route_id=route_id,
        driver_id=actor.id,
        event_type=event_type,
        description=data.get("description"),
        device_type=data.get("device_type"),
        device_id=data.get("device_id"),
        signal_strength=signal,
        battery_level=data.get("battery_level"),
        latitude=data["latitude"],
        longitude=data["longitude"],
        gps_accuracy=accuracy,
        speed=data.get("speed"),
        heading=data.get("heading"),
        signal_quality=signal_quality(signal) if signal is not None else None,
        accuracy_level=accuracy_level(accuracy) if accuracy is not None else None,
        meta_data=json_safe(data.get("metadata")),
        recorded_at=resolve_now(data.get("recorded_at") or now),
    )
    db.add(event)

    if delivery is not None:
        # Reassign so the JSON column is flagged dirty
        delivery.tracking_events = list(delivery.tracking_events or []) + [_log_entry(event)]

    await commit_or_conflict(db, "Delivery" if delivery is not None else "TrackingEvent", delivery_id)

    logger.info(
        "Tracking event %s (%s) for delivery=%s route=%s signal=%s accuracy=%s",
        event.id, event_type.value, delivery_id, route_id,
        event.signal_quality.value if event.signal_quality else None,
        event.accuracy_level.value if event.accuracy_level else None,
    )
    return event


async def list_tracking_events(
    db: AsyncSession,
    delivery_id: Optional[int] = None,
    route_id: Optional[int] = None,
    limit: int = 200,
) -> List[TrackingEvent]:
    """Tracking events in recorded order."""
    query = select(TrackingEvent)
    if delivery_id is not None:
        query = query.where(TrackingEvent.delivery_id == delivery_id)
    if route_id is not None:
        query = query.where(TrackingEvent.route_id == route_id)
    result = await db.execute(query.order_by(TrackingEvent.recorded_at, TrackingEvent.id).limit(limit))
    return list(result.scalars().all())


async def get_latest_event(db: AsyncSession, delivery_id: int) -> Optional[TrackingEvent]:
    result = await db.execute(
        select(TrackingEvent)
        .where(TrackingEvent.delivery_id == delivery_id)
        .order_by(TrackingEvent.recorded_at.desc(), TrackingEvent.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()
