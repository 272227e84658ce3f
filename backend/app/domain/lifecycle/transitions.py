"""
Status transition tables for routes and deliveries.

Each table is a static adjacency map. Any (current, target) pair absent from
the map is invalid, including self-transitions.
"""

from enum import Enum
from typing import Dict, FrozenSet, Generic, List, Type, TypeVar, Union

from backend.app.core.exceptions import InvalidTransitionError, ValidationError
from backend.app.models.delivery_enums import DeliveryStatus
from backend.app.models.route_enums import RouteStatus

S = TypeVar("S", bound=Enum)


class TransitionTable(Generic[S]):
    """Allowed status edges for one entity kind."""

    def __init__(self, entity: str, status_enum: Type[S], edges: Dict[S, FrozenSet[S]]):
        missing = set(status_enum) - set(edges)
        if missing:
            raise ValueError(f"{entity} transition table missing statuses: {sorted(s.value for s in missing)}")
        self.entity = entity
        self.status_enum = status_enum
        self._edges = edges

    def parse_status(self, value: Union[S, str]) -> S:
        """Coerce a raw status string into the enum, rejecting unknown values."""
        if isinstance(value, self.status_enum):
            return value
        try:
            return self.status_enum(value)
        except ValueError:
            raise ValidationError(
                f"Unknown {self.entity} status: {value}",
                details={"allowed_values": [s.value for s in self.status_enum]}
            )

    def valid_transitions_from(self, current: Union[S, str]) -> FrozenSet[S]:
        return self._edges[self.parse_status(current)]

    def is_valid_transition(self, current: Union[S, str], target: Union[S, str]) -> bool:
        current = self.parse_status(current)
        target = self.parse_status(target)
        if current == target:
            return False
        return target in self._edges[current]

    def is_final(self, status: Union[S, str]) -> bool:
        return not self._edges[self.parse_status(status)]

    def allowed_values(self, current: Union[S, str]) -> List[str]:
        return sorted(s.value for s in self.valid_transitions_from(current))

    def validate_transition(self, current: Union[S, str], target: Union[S, str]) -> S:
        """
        Check a requested status change.

        Returns:
            The parsed target status

        Raises:
            ValidationError: unknown status value
            InvalidTransitionError: edge not present in the table
        """
        current = self.parse_status(current)
        target = self.parse_status(target)
        if not self.is_valid_transition(current, target):
            raise InvalidTransitionError(self.entity, current, target, self.allowed_values(current))
        return target


ROUTE_TRANSITIONS = TransitionTable("route", RouteStatus, {
    RouteStatus.PLANNED: frozenset({RouteStatus.IN_PROGRESS, RouteStatus.CANCELLED}),
    RouteStatus.IN_PROGRESS: frozenset({RouteStatus.PAUSED, RouteStatus.COMPLETED, RouteStatus.CANCELLED}),
    RouteStatus.PAUSED: frozenset({RouteStatus.IN_PROGRESS, RouteStatus.CANCELLED}),
    RouteStatus.COMPLETED: frozenset(),
    RouteStatus.CANCELLED: frozenset(),
})

DELIVERY_TRANSITIONS = TransitionTable("delivery", DeliveryStatus, {
    DeliveryStatus.PENDING: frozenset({DeliveryStatus.PICKED_UP, DeliveryStatus.CANCELLED}),
    DeliveryStatus.PICKED_UP: frozenset({
        DeliveryStatus.IN_TRANSIT,
        DeliveryStatus.FAILED,
        DeliveryStatus.CANCELLED,
    }),
    DeliveryStatus.IN_TRANSIT: frozenset({
        DeliveryStatus.OUT_FOR_DELIVERY,
        DeliveryStatus.FAILED,
        DeliveryStatus.CANCELLED,
        DeliveryStatus.RETURNED,
    }),
    DeliveryStatus.OUT_FOR_DELIVERY: frozenset({
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
        DeliveryStatus.RETURNED,
    }),
    # failed → pending is a reschedule
    DeliveryStatus.FAILED: frozenset({
        DeliveryStatus.PENDING,
        DeliveryStatus.RETURNED,
        DeliveryStatus.CANCELLED,
    }),
    DeliveryStatus.DELIVERED: frozenset(),
    DeliveryStatus.CANCELLED: frozenset(),
    DeliveryStatus.RETURNED: frozenset(),
})

EDITABLE_ROUTE_STATUSES = frozenset({RouteStatus.PLANNED, RouteStatus.PAUSED})
