"""
Status transition table tests.
"""

import pytest

from backend.app.core.exceptions import InvalidTransitionError, ValidationError
from backend.app.domain.lifecycle.transitions import DELIVERY_TRANSITIONS, ROUTE_TRANSITIONS, TransitionTable
from backend.app.models.delivery_enums import DeliveryStatus
from backend.app.models.route_enums import RouteStatus

ROUTE_EDGES = {
    (RouteStatus.PLANNED, RouteStatus.IN_PROGRESS),
    (RouteStatus.PLANNED, RouteStatus.CANCELLED),
    (RouteStatus.IN_PROGRESS, RouteStatus.PAUSED),
    (RouteStatus.IN_PROGRESS, RouteStatus.COMPLETED),
    (RouteStatus.IN_PROGRESS, RouteStatus.CANCELLED),
    (RouteStatus.PAUSED, RouteStatus.IN_PROGRESS),
    (RouteStatus.PAUSED, RouteStatus.CANCELLED),
}

DELIVERY_EDGES = {
    ("pending", "picked_up"), ("pending", "cancelled"),
    ("picked_up", "in_transit"), ("picked_up", "failed"), ("picked_up", "cancelled"),
    ("in_transit", "out_for_delivery"), ("in_transit", "failed"),
    ("in_transit", "cancelled"), ("in_transit", "returned"),
    ("out_for_delivery", "delivered"), ("out_for_delivery", "failed"), ("out_for_delivery", "returned"),
    ("failed", "pending"), ("failed", "returned"), ("failed", "cancelled"),
}


def test_route_table_matches_every_pair():
    for current in RouteStatus:
        for target in RouteStatus:
            expected = (current, target) in ROUTE_EDGES
            assert ROUTE_TRANSITIONS.is_valid_transition(current, target) is expected, (current, target)


def test_delivery_table_matches_every_pair():
    for current in DeliveryStatus:
        for target in DeliveryStatus:
            expected = (current.value, target.value) in DELIVERY_EDGES
            assert DELIVERY_TRANSITIONS.is_valid_transition(current, target) is expected, (current, target)


@pytest.mark.parametrize("status", list(RouteStatus))
def test_route_self_transition_rejected(status):
    assert ROUTE_TRANSITIONS.is_valid_transition(status, status) is False


@pytest.mark.parametrize("status", list(DeliveryStatus))
def test_delivery_self_transition_rejected(status):
    assert DELIVERY_TRANSITIONS.is_valid_transition(status, status) is False


def test_final_statuses():
    assert {s for s in RouteStatus if ROUTE_TRANSITIONS.is_final(s)} == {RouteStatus.COMPLETED, RouteStatus.CANCELLED}
    assert {s for s in DeliveryStatus if DELIVERY_TRANSITIONS.is_final(s)} == {
        DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED, DeliveryStatus.RETURNED
    }


def test_valid_transitions_from_accepts_raw_strings():
    assert DELIVERY_TRANSITIONS.valid_transitions_from("failed") == frozenset({
        DeliveryStatus.PENDING, DeliveryStatus.RETURNED, DeliveryStatus.CANCELLED
    })


def test_planned_to_completed_is_rejected_with_allowed_set():
    with pytest.raises(InvalidTransitionError) as exc_info:
        ROUTE_TRANSITIONS.validate_transition(RouteStatus.PLANNED, RouteStatus.COMPLETED)

    details = exc_info.value.details
    assert details["current_status"] == "PLANNED"
    assert details["requested_status"] == "COMPLETED"
    assert details["allowed_transitions"] == ["CANCELLED", "IN_PROGRESS"]
    assert exc_info.value.status_code == 400


def test_validate_transition_returns_parsed_target():
    assert DELIVERY_TRANSITIONS.validate_transition("pending", "picked_up") is DeliveryStatus.PICKED_UP


def test_unknown_status_string_rejected():
    with pytest.raises(ValidationError) as exc_info:
        DELIVERY_TRANSITIONS.is_valid_transition("pending", "teleported")
    assert "teleported" in exc_info.value.message


def test_table_must_cover_every_status():
    with pytest.raises(ValueError):
        TransitionTable("route", RouteStatus, {RouteStatus.PLANNED: frozenset()})
