"""
Route metric estimation from route-type characteristics.

Only cost and speed constants are modeled; there is no route solver here.
"""

from dataclasses import dataclass
from typing import Optional

from backend.app.core.exceptions import OutOfRangeError
from backend.app.models.route_enums import RouteType

MIN_DISTANCE_KM = 0.0
MAX_DISTANCE_KM = 2000.0
MIN_AVERAGE_SPEED_KMH = 10.0
MAX_AVERAGE_SPEED_KMH = 120.0
MAX_DURATION_MINUTES = 24 * 60


@dataclass(frozen=True)
class RouteCharacteristics:
    average_speed_kmh: float
    delay_factor: float
    cost_per_km: float
    average_stop_minutes: float
    fuel_km_per_liter: float


@dataclass(frozen=True)
class RouteMetrics:
    estimated_duration_minutes: float
    estimated_cost: float
    estimated_fuel_liters: float


ROUTE_CHARACTERISTICS = {
    RouteType.URBAN: RouteCharacteristics(40, 0.3, 2.5, 15, 8),
    RouteType.INTERSTATE: RouteCharacteristics(90, 0.1, 1.8, 10, 12),
    RouteType.RURAL: RouteCharacteristics(60, 0.4, 2.2, 20, 9),
    RouteType.EXPRESS: RouteCharacteristics(100, 0.05, 1.6, 8, 14),
    RouteType.LOCAL: RouteCharacteristics(35, 0.2, 2.8, 12, 7),
}

DEFAULT_CHARACTERISTICS = RouteCharacteristics(60, 0.15, 2.0, 12, 10)


def characteristics_for(route_type: Optional[RouteType]) -> RouteCharacteristics:
    if route_type is None:
        return DEFAULT_CHARACTERISTICS
    return ROUTE_CHARACTERISTICS.get(RouteType(route_type), DEFAULT_CHARACTERISTICS)


def calculate_route_metrics(
    route_type: Optional[RouteType],
    distance_km: float,
    num_stops: int = 0,
) -> RouteMetrics:
    """
    Estimate duration, cost and fuel for a route.

    duration = distance / speed * 60 * (1 + delay) + stops * stop_minutes
    cost = distance * cost_per_km
    fuel = distance / km_per_liter

    Raises:
        OutOfRangeError: distance, stops, speed or resulting duration outside
            plausible bounds. Values are never clamped.
    """
    if distance_km < MIN_DISTANCE_KM or distance_km > MAX_DISTANCE_KM:
        raise OutOfRangeError("distance_km", distance_km, MIN_DISTANCE_KM, MAX_DISTANCE_KM)
    if num_stops < 0:
        raise OutOfRangeError("num_stops", num_stops, 0, None)

    chars = characteristics_for(route_type)
    if not MIN_AVERAGE_SPEED_KMH <= chars.average_speed_kmh <= MAX_AVERAGE_SPEED_KMH:
        raise OutOfRangeError(
            "average_speed_kmh", chars.average_speed_kmh, MIN_AVERAGE_SPEED_KMH, MAX_AVERAGE_SPEED_KMH
        )

    driving_minutes = distance_km / chars.average_speed_kmh * 60 * (1 + chars.delay_factor)
    duration = driving_minutes + num_stops * chars.average_stop_minutes
    if duration > MAX_DURATION_MINUTES:
        raise OutOfRangeError("estimated_duration_minutes", round(duration, 2), 0, MAX_DURATION_MINUTES)

    return RouteMetrics(
        estimated_duration_minutes=round(duration, 2),
        estimated_cost=round(distance_km * chars.cost_per_km, 2),
        estimated_fuel_liters=round(distance_km / chars.fuel_km_per_liter, 2),
    )
