"""
Audit/history recorder.

Writes RouteHistory, DeliveryStatusHistory and AuditLog rows inside the
caller's transaction. Nothing here commits.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.actor import Actor, RequestContext, SYSTEM_CONTEXT
from backend.app.domain.audit.policy import AuditPolicy, json_safe
from backend.app.models.audit_log import AuditLog
from backend.app.models.delivery_status_history import DeliveryStatusHistory
from backend.app.models.route_history import RouteHistory


class AuditAction:
    """Standardized audit action constants for the generic audit log."""
    DATA_REQUEST_CREATED = "DATA_REQUEST_CREATED"
    DATA_REQUEST_STARTED = "DATA_REQUEST_STARTED"
    DATA_REQUEST_COMPLETED = "DATA_REQUEST_COMPLETED"
    DATA_REQUEST_FAILED = "DATA_REQUEST_FAILED"
    DATA_REQUEST_CANCELLED = "DATA_REQUEST_CANCELLED"
    DATA_REQUEST_EXPIRED = "DATA_REQUEST_EXPIRED"
    DATA_REQUEST_NOTES_UPDATED = "DATA_REQUEST_NOTES_UPDATED"

    CONSENT_GRANTED = "CONSENT_GRANTED"
    CONSENT_REVOKED = "CONSENT_REVOKED"
    CONSENT_EXPIRED = "CONSENT_EXPIRED"


def _actor_columns(actor: Actor) -> Dict[str, Any]:
    return {
        "user_id": actor.id,
        "user_name": actor.name,
        "user_type": actor.type.value,
    }


def _metadata(context: RequestContext, extra: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    meta = {"source": context.source}
    if extra:
        meta.update(json_safe(extra))
    return meta


class HistoryRecorder:
    """
    Records one history row per tracked mutation.

    Usage:
        recorder = HistoryRecorder(db, actor, context)
        before = ROUTE_POLICY.snapshot(route)
        ...mutate...
        recorder.route(route, RouteEventType.UPDATED, "Route updated", before=before, policy=ROUTE_POLICY)
    """

    def __init__(self, db: AsyncSession, actor: Actor, context: RequestContext = SYSTEM_CONTEXT):
        self.db = db
        self.actor = actor
        self.context = context

    @staticmethod
    def _changes(entity, policy: Optional[AuditPolicy], before: Optional[Dict[str, Any]]) -> Optional[List[Dict[str, Any]]]:
        if policy is None or before is None:
            return None
        return policy.diff(before, policy.snapshot(entity))

    def route(
        self,
        route,
        event_type,
        description: str,
        previous_status=None,
        new_status=None,
        before: Optional[Dict[str, Any]] = None,
        policy: Optional[AuditPolicy] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> RouteHistory:
        entry = RouteHistory(
            route_id=route.id,
            event_type=getattr(event_type, "value", event_type),
            description=description,
            previous_status=previous_status,
            new_status=new_status,
            changed_fields=self._changes(route, policy, before),
            ip_address=self.context.ip_address,
            user_agent=self.context.user_agent,
            meta_data=_metadata(self.context, metadata),
            **_actor_columns(self.actor),
        )
        self.db.add(entry)
        return entry

    def delivery(
        self,
        delivery,
        event_type,
        description: str,
        previous_status=None,
        new_status=None,
        before: Optional[Dict[str, Any]] = None,
        policy: Optional[AuditPolicy] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DeliveryStatusHistory:
        entry = DeliveryStatusHistory(
            delivery_id=delivery.id,
            event_type=getattr(event_type, "value", event_type),
            description=description,
            previous_status=previous_status,
            new_status=new_status,
            changed_fields=self._changes(delivery, policy, before),
            ip_address=self.context.ip_address,
            user_agent=self.context.user_agent,
            meta_data=_metadata(self.context, metadata),
            **_actor_columns(self.actor),
        )
        self.db.add(entry)
        return entry

    def audit(
        self,
        entity,
        action: str,
        policy: AuditPolicy,
        description: Optional[str] = None,
        before: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        entry = AuditLog(
            entity_type=policy.entity_type,
            entity_id=entity.id,
            action=action,
            category=policy.category,
            description=description,
            changed_fields=self._changes(entity, policy, before),
            actor_id=self.actor.id,
            actor_name=self.actor.name,
            actor_type=self.actor.type.value,
            ip_address=self.context.ip_address,
            user_agent=self.context.user_agent,
            meta_data=_metadata(self.context, metadata),
        )
        self.db.add(entry)
        return entry


async def get_route_history(db: AsyncSession, route_id: int, limit: int = 100) -> List[RouteHistory]:
    """History rows for a route, oldest first."""
    result = await db.execute(
        select(RouteHistory)
        .where(RouteHistory.route_id == route_id)
        .order_by(RouteHistory.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_delivery_history(db: AsyncSession, delivery_id: int, limit: int = 100) -> List[DeliveryStatusHistory]:
    """History rows for a delivery, oldest first."""
    result = await db.execute(
        select(DeliveryStatusHistory)
        .where(DeliveryStatusHistory.delivery_id == delivery_id)
        .order_by(DeliveryStatusHistory.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_audit_trail(
    db: AsyncSession,
    entity_type: str,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100,
) -> List[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Returns:
        List of AuditLog instances, oldest first
    """
    query = select(AuditLog).where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)
    if action:
        query = query.where(AuditLog.action == action)
    query = query.order_by(AuditLog.id).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
