"""
Delivery-related enumerations.
"""

import enum


class DeliveryStatus(str, enum.Enum):
    """
    Delivery status enumeration.

    Status flow:
        pending → picked_up → in_transit → out_for_delivery → delivered
        failed deliveries can be rescheduled back to pending
        delivered, cancelled and returned are final
    """
    PENDING = "pending"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class DeliveryPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"
    EXPRESS = "express"


class DeliveryType(str, enum.Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    SAME_DAY = "same_day"
    SCHEDULED = "scheduled"
    FRAGILE = "fragile"
    DANGEROUS = "dangerous"
    REFRIGERATED = "refrigerated"
    OVERSIZED = "oversized"


class AttemptResult(str, enum.Enum):
    """Outcome of a single delivery attempt."""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    RESCHEDULED = "RESCHEDULED"


class FailureReason(str, enum.Enum):
    """Why an attempt failed."""
    CUSTOMER_NOT_FOUND = "CUSTOMER_NOT_FOUND"
    WRONG_ADDRESS = "WRONG_ADDRESS"
    CUSTOMER_REFUSED = "CUSTOMER_REFUSED"
    CUSTOMER_UNAVAILABLE = "CUSTOMER_UNAVAILABLE"
    PRODUCT_ISSUE = "PRODUCT_ISSUE"
    MISSING_DOCUMENTATION = "MISSING_DOCUMENTATION"
    PAYMENT_ISSUE = "PAYMENT_ISSUE"
    VEHICLE_BREAKDOWN = "VEHICLE_BREAKDOWN"
    BAD_WEATHER = "BAD_WEATHER"
    TRAFFIC_ISSUES = "TRAFFIC_ISSUES"
    ACCESS_DENIED = "ACCESS_DENIED"
    BUSINESS_CLOSED = "BUSINESS_CLOSED"
    CUSTOMER_REQUESTED_RESCHEDULE = "CUSTOMER_REQUESTED_RESCHEDULE"
    OTHER = "OTHER"


class DeliveryEventType(str, enum.Enum):
    """Event types written to the delivery status history."""
    CREATED = "CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    ATTEMPT_RECORDED = "ATTEMPT_RECORDED"
    AUTO_FAILED = "AUTO_FAILED"
    UPDATED = "UPDATED"
