"""
Tracking event ingestion tests.
"""

from datetime import timedelta

import pytest

from backend.app.core.exceptions import NotFoundError, OutOfRangeError, ValidationError
from backend.app.models.tracking_enums import AccuracyLevel, DeviceType, SignalQuality, TrackingEventType
from backend.app.services import delivery_service, route_service, tracking_service
from backend.tests.factories import NOW, delivery_data, route_data


def ping(**overrides):
    data = {
        "event_type": "checkpoint",
        "latitude": -23.561,
        "longitude": -46.656,
        "signal_strength": 75,
        "gps_accuracy": 35,
        "speed": 42.5,
        "device_type": DeviceType.MOBILE_APP,
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_ping_is_classified_and_appended_to_delivery_log(db_session, dispatcher, driver):
    delivery = await delivery_service.create_delivery(db_session, delivery_data(), dispatcher, now=NOW)

    event = await tracking_service.record_tracking_event(
        db_session, ping(), driver, delivery_id=delivery.id, now=NOW
    )
    assert event.event_type == TrackingEventType.CHECKPOINT
    assert event.signal_quality == SignalQuality.GOOD
    assert event.accuracy_level == AccuracyLevel.ACCEPTABLE
    assert event.driver_id == driver.id
    assert event.recorded_at == NOW

    await tracking_service.record_tracking_event(
        db_session, ping(event_type="stop", signal_strength=10, gps_accuracy=150), driver,
        delivery_id=delivery.id, now=NOW + timedelta(minutes=5),
    )

    delivery = await delivery_service.get_delivery(db_session, delivery.id)
    assert [e["event_type"] for e in delivery.tracking_events] == ["checkpoint", "stop"]
    assert delivery.tracking_events[1]["signal_quality"] == "WEAK"
    assert delivery.tracking_events[1]["accuracy_level"] == "VERY_LOW"

    events = await tracking_service.list_tracking_events(db_session, delivery_id=delivery.id)
    assert len(events) == 2
    latest = await tracking_service.get_latest_event(db_session, delivery.id)
    assert latest.event_type == TrackingEventType.STOP


@pytest.mark.asyncio
async def test_ping_inherits_delivery_route(db_session, dispatcher, driver):
    route = await route_service.create_route(db_session, route_data(), dispatcher)
    delivery = await delivery_service.create_delivery(db_session, delivery_data(route_id=route.id), dispatcher)

    event = await tracking_service.record_tracking_event(db_session, ping(), driver, delivery_id=delivery.id)
    assert event.route_id == route.id

    by_route = await tracking_service.list_tracking_events(db_session, route_id=route.id)
    assert [e.id for e in by_route] == [event.id]


@pytest.mark.asyncio
async def test_route_only_ping(db_session, dispatcher, driver):
    route = await route_service.create_route(db_session, route_data(), dispatcher)
    event = await tracking_service.record_tracking_event(
        db_session, ping(event_type="route_start", route_id=route.id), driver
    )
    assert event.delivery_id is None
    assert event.route_id == route.id


@pytest.mark.asyncio
async def test_ping_without_target_rejected(db_session, driver):
    with pytest.raises(ValidationError):
        await tracking_service.record_tracking_event(db_session, ping(), driver)


@pytest.mark.asyncio
async def test_unknown_route_rejected(db_session, driver):
    with pytest.raises(NotFoundError):
        await tracking_service.record_tracking_event(db_session, ping(route_id=404), driver)


@pytest.mark.asyncio
async def test_out_of_range_ping_is_not_stored(db_session, dispatcher, driver):
    delivery = await delivery_service.create_delivery(db_session, delivery_data(), dispatcher)

    with pytest.raises(OutOfRangeError) as exc_info:
        await tracking_service.record_tracking_event(
            db_session, ping(battery_level=140), driver, delivery_id=delivery.id
        )
    assert exc_info.value.details["field"] == "battery_level"

    assert await tracking_service.list_tracking_events(db_session, delivery_id=delivery.id) == []


@pytest.mark.asyncio
async def test_unknown_event_type_rejected(db_session, dispatcher, driver):
    delivery = await delivery_service.create_delivery(db_session, delivery_data(), dispatcher)
    with pytest.raises(ValidationError):
        await tracking_service.record_tracking_event(
            db_session, ping(event_type="wormhole"), driver, delivery_id=delivery.id
        )
