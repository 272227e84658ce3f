"""
Audit policies.

Each auditable entity kind declares which fields are tracked. History rows
store only the tracked fields that actually changed.
"""

import enum
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Tuple


def json_safe(value: Any) -> Any:
    """Convert a column value into something the JSON columns can store."""
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {str(k): json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value


@dataclass(frozen=True)
class AuditPolicy:
    entity_type: str
    category: str
    tracked_fields: Tuple[str, ...]

    def snapshot(self, entity) -> Dict[str, Any]:
        """Capture the tracked fields of an entity as JSON-safe values."""
        return {name: json_safe(getattr(entity, name, None)) for name in self.tracked_fields}

    def diff(self, before: Dict[str, Any], after: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Changed-field entries between two snapshots.

        Returns:
            List of {"field_name", "old_value", "new_value"} in tracked order
        """
        changes = []
        for name in self.tracked_fields:
            old, new = before.get(name), after.get(name)
            if old != new:
                changes.append({"field_name": name, "old_value": old, "new_value": new})
        return changes


ROUTE_POLICY = AuditPolicy(
    entity_type="route",
    category="OPERATIONS",
    tracked_fields=(
        "code", "name", "status", "type",
        "origin_address", "origin_lat", "origin_lng",
        "destination_address", "destination_lat", "destination_lng",
        "distance_km", "num_stops",
        "estimated_duration_minutes", "estimated_cost", "estimated_fuel_liters",
        "restrictions", "optimization_metadata", "driver_id",
        "started_at", "completed_at", "cancelled_at", "cancellation_reason",
    ),
)

DELIVERY_POLICY = AuditPolicy(
    entity_type="delivery",
    category="OPERATIONS",
    tracked_fields=(
        "tracking_number", "status", "priority", "type",
        "customer_id", "driver_id", "route_id",
        "recipient_name", "delivery_address",
        "delivery_attempts", "max_delivery_attempts", "failure_reason",
        "proof_of_delivery",
        "picked_up_at", "delivered_at", "cancelled_at",
    ),
)

DATA_REQUEST_POLICY = AuditPolicy(
    entity_type="data_request",
    category="COMPLIANCE",
    tracked_fields=(
        "status", "due_date", "processing_started_at", "completed_at",
        "file_path", "file_hash", "file_size",
        "error_message", "processed_by", "admin_notes",
    ),
)

CONSENT_POLICY = AuditPolicy(
    entity_type="user_consent",
    category="COMPLIANCE",
    tracked_fields=(
        "consent_type", "is_active", "terms_version", "purpose_description",
        "expires_at", "revoked_at", "revocation_reason",
    ),
)
