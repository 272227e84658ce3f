"""
Delivery lifecycle service.

The attempt ceiling is enforced here on every delivery write path:
creation, status change, attempt recording and max-attempt updates. The
CHECK constraint on the deliveries table is the last line behind it.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.actor import Actor, RequestContext, SYSTEM_CONTEXT
from backend.app.core.clock import resolve_now
from backend.app.core.config import settings
from backend.app.core.exceptions import ConflictError, NotFoundError, ValidationError
from backend.app.domain.audit.policy import DELIVERY_POLICY, json_safe
from backend.app.domain.lifecycle.attempts import (
    check_can_record_attempt,
    check_max_attempts_update,
    enforce_attempt_ceiling,
    has_reached_ceiling,
    next_attempt_number,
)
from backend.app.domain.lifecycle.transitions import DELIVERY_TRANSITIONS
from backend.app.domain.tracking.classifier import accuracy_level, check_range, validate_ping
from backend.app.models.delivery import Delivery
from backend.app.models.delivery_attempt import DeliveryAttempt
from backend.app.models.delivery_enums import AttemptResult, DeliveryEventType, DeliveryStatus, FailureReason
from backend.app.models.notification import NotificationType
from backend.app.services.history import HistoryRecorder
from backend.app.services.locking import commit_or_conflict, get_or_404, load_for_update
from backend.app.services.notification_service import NotificationService
from backend.app.services.tracking_number import allocate_tracking_number, tracking_number_exists

logger = logging.getLogger("lifecycle.deliveries")

UPDATABLE_FIELDS = (
    "priority", "driver_id", "route_id",
    "recipient_name", "delivery_address", "package_description", "weight_kg",
    "max_delivery_attempts",
)


def _parse_enum(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"Unknown {label}: {value}",
            details={"allowed_values": [m.value for m in enum_cls]}
        )


async def _commit(db: AsyncSession, delivery_id: Optional[int]) -> None:
    try:
        await commit_or_conflict(db, "Delivery", delivery_id)
    except IntegrityError:
        await db.rollback()
        logger.warning("Integrity conflict while writing delivery %s", delivery_id)
        raise ConflictError("Delivery", delivery_id)


def _enforce_ceiling(delivery: Delivery, recorder: HistoryRecorder) -> bool:
    """Run the ceiling check and audit an auto-fail as its own history row."""
    previous = delivery.status
    if not enforce_attempt_ceiling(delivery):
        return False
    recorder.delivery(
        delivery,
        DeliveryEventType.AUTO_FAILED,
        f"Delivery failed automatically after {delivery.delivery_attempts} of "
        f"{delivery.max_delivery_attempts} attempts",
        previous_status=previous,
        new_status=delivery.status,
        metadata={
            "delivery_attempts": delivery.delivery_attempts,
            "max_delivery_attempts": delivery.max_delivery_attempts,
            "failure_reason": delivery.failure_reason,
        },
    )
    return True


async def _notify_customer(db: AsyncSession, delivery: Delivery, title: str, message: str, *also_reload) -> None:
    await NotificationService.notify(
        db,
        delivery.customer_id,
        title=title,
        message=message,
        type=NotificationType.DELIVERY_UPDATE,
        metadata={"delivery_id": delivery.id, "tracking_number": delivery.tracking_number, "status": delivery.status},
        reload=[delivery, *also_reload],
    )


async def create_delivery(
    db: AsyncSession,
    data: Dict[str, Any],
    actor: Actor,
    context: RequestContext = SYSTEM_CONTEXT,
    now: Optional[datetime] = None,
) -> Delivery:
    """
    Register a new delivery in `pending`.

    A tracking number is generated when none is supplied.

    Raises:
        ValidationError: duplicate tracking number or invalid max attempts
    """
    data = dict(data)
    max_attempts = data.pop("max_delivery_attempts", None)
    if max_attempts is None:
        max_attempts = settings.default_max_delivery_attempts
    if max_attempts < 1:
        raise ValidationError(
            "max_delivery_attempts must be at least 1",
            details={"max_delivery_attempts": max_attempts}
        )

    tracking_number = data.pop("tracking_number", None)
    if tracking_number:
        if await tracking_number_exists(db, tracking_number):
            raise ValidationError(
                f"Tracking number {tracking_number} already exists",
                details={"tracking_number": tracking_number}
            )
    else:
        tracking_number = await allocate_tracking_number(db, now)

    delivery = Delivery(
        tracking_number=tracking_number,
        status=DeliveryStatus.PENDING,
        delivery_attempts=0,
        max_delivery_attempts=max_attempts,
        tracking_events=[],
        **data,
    )
    db.add(delivery)
    await db.flush()

    recorder = HistoryRecorder(db, actor, context)
    recorder.delivery(
        delivery,
        DeliveryEventType.CREATED,
        f"Delivery {tracking_number} created",
        new_status=delivery.status,
        metadata={"priority": delivery.priority, "type": delivery.type},
    )
    _enforce_ceiling(delivery, recorder)
    await _commit(db, delivery.id)

    logger.info("Delivery %s (%s) created by %s", delivery.id, tracking_number, actor.name)
    await _notify_customer(db, delivery, "Delivery registered", f"Your delivery {tracking_number} was registered")
    return delivery


async def get_delivery(db: AsyncSession, delivery_id: int) -> Delivery:
    return await get_or_404(db, Delivery, delivery_id, "Delivery")


async def get_delivery_by_tracking_number(db: AsyncSession, tracking_number: str) -> Delivery:
    result = await db.execute(select(Delivery).where(Delivery.tracking_number == tracking_number))
    delivery = result.scalar_one_or_none()
    if delivery is None:
        raise NotFoundError("Delivery", tracking_number)
    return delivery


async def list_deliveries(
    db: AsyncSession,
    status: Optional[DeliveryStatus] = None,
    customer_id: Optional[int] = None,
    driver_id: Optional[int] = None,
    route_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 50,
) -> Tuple[List[Delivery], int]:
    """List deliveries with filters. Returns (deliveries, total)."""
    query = select(Delivery)
    if status is not None:
        query = query.where(Delivery.status == status)
    if customer_id is not None:
        query = query.where(Delivery.customer_id == customer_id)
    if driver_id is not None:
        query = query.where(Delivery.driver_id == driver_id)
    if route_id is not None:
        query = query.where(Delivery.route_id == route_id)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    result = await db.execute(query.order_by(Delivery.id).offset(skip).limit(limit))
    return list(result.scalars().all()), total


async def change_delivery_status(
    db: AsyncSession,
    delivery_id: int,
    target: Any,
    actor: Actor,
    context: RequestContext = SYSTEM_CONTEXT,
    reason: Optional[str] = None,
    proof_of_delivery: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Delivery:
    """
    Move a delivery along the transition table.

    failed → pending reschedules the delivery and is refused once the
    attempt ceiling has been reached.

    Raises:
        ValidationError: invalid edge, unknown status or reschedule at ceiling
        NotFoundError: delivery does not exist
        ConflictError: concurrent modification
    """
    now = resolve_now(now)
    delivery = await load_for_update(db, Delivery, delivery_id, "Delivery")
    previous = delivery.status

    try:
        target = DELIVERY_TRANSITIONS.parse_status(target)
        if previous == DeliveryStatus.FAILED and target == DeliveryStatus.PENDING and has_reached_ceiling(delivery):
            raise ValidationError(
                "Cannot reschedule a delivery that reached its maximum attempts",
                details={
                    "delivery_id": delivery_id,
                    "delivery_attempts": delivery.delivery_attempts,
                    "max_delivery_attempts": delivery.max_delivery_attempts,
                }
            )
        target = DELIVERY_TRANSITIONS.validate_transition(previous, target)
    except ValidationError as exc:
        logger.warning("Rejected delivery %s status change from %s: %s", delivery_id, previous.value, exc.message)
        raise

    before = DELIVERY_POLICY.snapshot(delivery)
    delivery.status = target
    if target == DeliveryStatus.PICKED_UP:
        delivery.picked_up_at = now
    elif target == DeliveryStatus.DELIVERED:
        delivery.delivered_at = now
        if proof_of_delivery:
            delivery.proof_of_delivery = json_safe(proof_of_delivery)
    elif target == DeliveryStatus.CANCELLED:
        delivery.cancelled_at = now
    elif target == DeliveryStatus.FAILED and reason:
        delivery.failure_reason = reason

    recorder = HistoryRecorder(db, actor, context)
    recorder.delivery(
        delivery,
        DeliveryEventType.STATUS_CHANGED,
        f"Status changed from {previous.value} to {target.value}" + (f": {reason}" if reason else ""),
        previous_status=previous,
        new_status=target,
        before=before,
        policy=DELIVERY_POLICY,
        metadata={"reason": reason} if reason else None,
    )
    _enforce_ceiling(delivery, recorder)
    await _commit(db, delivery_id)

    logger.info("Delivery %s %s -> %s by %s", delivery_id, previous.value, delivery.status.value, actor.name)
    await _notify_customer(
        db, delivery,
        f"Delivery {delivery.tracking_number} {delivery.status.value.replace('_', ' ')}",
        f"Your delivery moved from {previous.value} to {delivery.status.value}",
    )
    return delivery


async def update_delivery(
    db: AsyncSession,
    delivery_id: int,
    changes: Dict[str, Any],
    actor: Actor,
    context: RequestContext = SYSTEM_CONTEXT,
) -> Tuple[Delivery, bool]:
    """
    Update delivery attributes, including the attempt ceiling.

    Lowering `max_delivery_attempts` to the attempts already made auto-fails
    the delivery.

    Returns:
        (delivery, auto_failed)

    Raises:
        ValidationError: final delivery, unknown field or invalid max attempts
    """
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(
            "Fields cannot be updated on a delivery",
            details={"fields": sorted(unknown)}
        )

    delivery = await load_for_update(db, Delivery, delivery_id, "Delivery")
    if DELIVERY_TRANSITIONS.is_final(delivery.status):
        raise ValidationError(
            f"Delivery in status {delivery.status.value} cannot be updated",
            details={"status": delivery.status.value}
        )
    if "max_delivery_attempts" in changes:
        if changes["max_delivery_attempts"] is None:
            raise ValidationError("max_delivery_attempts cannot be null")
        check_max_attempts_update(delivery, changes["max_delivery_attempts"])

    before = DELIVERY_POLICY.snapshot(delivery)
    for field, value in changes.items():
        setattr(delivery, field, value)

    changed = DELIVERY_POLICY.diff(before, DELIVERY_POLICY.snapshot(delivery))
    if not changed:
        return delivery, False

    recorder = HistoryRecorder(db, actor, context)
    recorder.delivery(
        delivery,
        DeliveryEventType.UPDATED,
        "Delivery updated: " + ", ".join(c["field_name"] for c in changed),
        before=before,
        policy=DELIVERY_POLICY,
    )
    auto_failed = _enforce_ceiling(delivery, recorder)
    await _commit(db, delivery_id)

    logger.info("Delivery %s updated by %s: %s", delivery_id, actor.name, [c["field_name"] for c in changed])
    return delivery, auto_failed


async def update_max_attempts(
    db: AsyncSession,
    delivery_id: int,
    max_delivery_attempts: int,
    actor: Actor,
    context: RequestContext = SYSTEM_CONTEXT,
) -> Tuple[Delivery, bool]:
    return await update_delivery(db, delivery_id, {"max_delivery_attempts": max_delivery_attempts}, actor, context)


async def _last_attempt_number(db: AsyncSession, delivery_id: int) -> Optional[int]:
    result = await db.execute(
        select(func.max(DeliveryAttempt.attempt_number)).where(DeliveryAttempt.delivery_id == delivery_id)
    )
    return result.scalar()


async def record_attempt(
    db: AsyncSession,
    delivery_id: int,
    data: Dict[str, Any],
    actor: Actor,
    context: RequestContext = SYSTEM_CONTEXT,
    now: Optional[datetime] = None,
) -> Tuple[DeliveryAttempt, Delivery, bool]:
    """
    Record a driver's delivery attempt.

    Steps:
    1. Load delivery under lock
    2. Check the ceiling and that the status accepts attempts
    3. Validate result-specific input and location readings
    4. Insert the attempt with the next sequential number
    5. Apply the result (SUCCESS delivers, FAILED stores the reason)
    6. Auto-fail if the ceiling is now reached
    7. Commit, then notify the customer

    Returns:
        (attempt, delivery, auto_failed)

    Raises:
        ValidationError: ceiling exceeded, status refuses attempts, missing
            reschedule date or SUCCESS from a status that cannot deliver
        OutOfRangeError: implausible location readings
        ConflictError: concurrent attempt or modification
    """
    now = resolve_now(now)
    delivery = await load_for_update(db, Delivery, delivery_id, "Delivery")

    try:
        check_can_record_attempt(delivery)
        result = _parse_enum(AttemptResult, data.get("result"), "attempt result")

        latitude, longitude = data.get("latitude"), data.get("longitude")
        location_accuracy = data.get("location_accuracy")
        if (latitude is None) != (longitude is None):
            raise ValidationError("latitude and longitude must be provided together")
        if latitude is not None:
            validate_ping(latitude, longitude, gps_accuracy=location_accuracy)
        else:
            check_range("gps_accuracy", location_accuracy)

        if result == AttemptResult.RESCHEDULED and not data.get("next_attempt_scheduled_at"):
            raise ValidationError("next_attempt_scheduled_at is required for a rescheduled attempt")
        if result == AttemptResult.SUCCESS:
            DELIVERY_TRANSITIONS.validate_transition(delivery.status, DeliveryStatus.DELIVERED)
    except ValidationError as exc:
        logger.warning("Rejected attempt for delivery %s: %s", delivery_id, exc.message)
        raise

    failure_reason = data.get("failure_reason")
    if failure_reason is not None:
        failure_reason = _parse_enum(FailureReason, failure_reason, "failure reason")

    attempt_number = next_attempt_number([await _last_attempt_number(db, delivery_id)])
    attempt = DeliveryAttempt(
        delivery_id=delivery.id,
        driver_id=actor.id if data.get("driver_id") is None else data["driver_id"],
        attempt_number=attempt_number,
        result=result,
        failure_reason=failure_reason,
        notes=data.get("notes"),
        latitude=latitude,
        longitude=longitude,
        location_accuracy=location_accuracy,
        accuracy_level=accuracy_level(location_accuracy) if location_accuracy is not None else None,
        evidence=json_safe(data.get("evidence")),
        next_attempt_scheduled_at=resolve_now(data["next_attempt_scheduled_at"]) if data.get("next_attempt_scheduled_at") else None,
        attempted_at=resolve_now(data.get("attempted_at") or now),
    )
    db.add(attempt)

    previous = delivery.status
    before = DELIVERY_POLICY.snapshot(delivery)
    delivery.delivery_attempts += 1
    if result == AttemptResult.SUCCESS:
        delivery.status = DeliveryStatus.DELIVERED
        delivery.delivered_at = now
        if data.get("proof_of_delivery"):
            delivery.proof_of_delivery = json_safe(data["proof_of_delivery"])
    elif result == AttemptResult.FAILED:
        reason = failure_reason.value if failure_reason is not None else data.get("notes")
        if reason:
            delivery.failure_reason = reason

    recorder = HistoryRecorder(db, actor, context)
    recorder.delivery(
        delivery,
        DeliveryEventType.ATTEMPT_RECORDED,
        f"Attempt {attempt_number} recorded: {result.value}",
        previous_status=previous if delivery.status != previous else None,
        new_status=delivery.status if delivery.status != previous else None,
        before=before,
        policy=DELIVERY_POLICY,
        metadata={"attempt_number": attempt_number, "result": result},
    )
    auto_failed = _enforce_ceiling(delivery, recorder)
    await _commit(db, delivery_id)

    logger.info(
        "Delivery %s attempt %s (%s) recorded by %s, %s/%s used",
        delivery_id, attempt_number, result.value, actor.name,
        delivery.delivery_attempts, delivery.max_delivery_attempts
    )
    await _notify_customer(
        db, delivery,
        f"Delivery attempt {attempt_number}: {result.value.lower()}",
        f"Delivery {delivery.tracking_number} is now {delivery.status.value}",
        attempt,
    )
    return attempt, delivery, auto_failed


async def list_attempts(db: AsyncSession, delivery_id: int) -> List[DeliveryAttempt]:
    """Attempts for a delivery in attempt order."""
    await get_or_404(db, Delivery, delivery_id, "Delivery")
    result = await db.execute(
        select(DeliveryAttempt)
        .where(DeliveryAttempt.delivery_id == delivery_id)
        .order_by(DeliveryAttempt.attempt_number)
    )
    return list(result.scalars().all())
