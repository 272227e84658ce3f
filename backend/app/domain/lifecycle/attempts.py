"""
Delivery attempt ceiling rules.

The ceiling is checked before an attempt is recorded and enforced again after
every delivery write, so `delivery_attempts` can never exceed
`max_delivery_attempts` and a delivery that reaches the ceiling is failed.
"""

import logging
from typing import Iterable, Optional

from backend.app.core.exceptions import ValidationError
from backend.app.models.delivery import Delivery
from backend.app.models.delivery_enums import DeliveryStatus

logger = logging.getLogger("lifecycle.attempts")

DEFAULT_MAX_ATTEMPTS_REASON = "Maximum delivery attempts reached"

# Statuses that cannot take a new attempt. A failed delivery must be
# rescheduled to pending first.
NO_ATTEMPT_STATUSES = frozenset({
    DeliveryStatus.DELIVERED,
    DeliveryStatus.CANCELLED,
    DeliveryStatus.RETURNED,
    DeliveryStatus.FAILED,
})

# Statuses the ceiling never overrides
CEILING_EXEMPT_STATUSES = frozenset({
    DeliveryStatus.DELIVERED,
    DeliveryStatus.FAILED,
    DeliveryStatus.CANCELLED,
    DeliveryStatus.RETURNED,
})


def next_attempt_number(existing_numbers: Iterable[Optional[int]]) -> int:
    """Sequential attempt number: highest existing number + 1, starting at 1."""
    return max((n for n in existing_numbers if n is not None), default=0) + 1


def has_reached_ceiling(delivery: Delivery) -> bool:
    return delivery.delivery_attempts >= delivery.max_delivery_attempts


def check_can_record_attempt(delivery: Delivery) -> None:
    """
    Validate that one more attempt may be recorded.

    Raises:
        ValidationError: ceiling would be exceeded, or the delivery status
            does not accept attempts
    """
    if delivery.delivery_attempts + 1 > delivery.max_delivery_attempts:
        raise ValidationError(
            "Maximum delivery attempts exceeded",
            details={
                "delivery_id": delivery.id,
                "delivery_attempts": delivery.delivery_attempts,
                "max_delivery_attempts": delivery.max_delivery_attempts,
            }
        )
    if delivery.status in NO_ATTEMPT_STATUSES:
        raise ValidationError(
            f"Cannot record an attempt for a delivery in status {delivery.status.value}",
            details={"delivery_id": delivery.id, "status": delivery.status.value}
        )


def check_max_attempts_update(delivery: Delivery, new_max: int) -> None:
    """Reject a max-attempts change that is invalid or below the attempts already made."""
    if new_max < 1:
        raise ValidationError(
            "max_delivery_attempts must be at least 1",
            details={"max_delivery_attempts": new_max}
        )
    if new_max < delivery.delivery_attempts:
        raise ValidationError(
            "max_delivery_attempts cannot be lower than attempts already made",
            details={
                "delivery_id": delivery.id,
                "delivery_attempts": delivery.delivery_attempts,
                "max_delivery_attempts": new_max,
            }
        )


def enforce_attempt_ceiling(delivery: Delivery, reason: Optional[str] = None) -> bool:
    """
    Force a delivery that reached its ceiling into `failed`.

    This bypasses the transition table; callers audit it as AUTO_FAILED.

    Returns:
        True if the delivery was auto-failed
    """
    if delivery.delivery_attempts > delivery.max_delivery_attempts:
        raise ValidationError(
            "Maximum delivery attempts exceeded",
            details={
                "delivery_id": delivery.id,
                "delivery_attempts": delivery.delivery_attempts,
                "max_delivery_attempts": delivery.max_delivery_attempts,
            }
        )
    if not has_reached_ceiling(delivery) or delivery.status in CEILING_EXEMPT_STATUSES:
        return False

    logger.info(
        "Delivery %s reached %s/%s attempts in status %s, auto-failing",
        delivery.id, delivery.delivery_attempts, delivery.max_delivery_attempts, delivery.status.value
    )
    delivery.status = DeliveryStatus.FAILED
    if not delivery.failure_reason:
        delivery.failure_reason = reason or DEFAULT_MAX_ATTEMPTS_REASON
    return True
