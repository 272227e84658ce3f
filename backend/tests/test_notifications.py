"""
Failure Injection Tests.

Notification dispatch is best effort: a failing dispatcher is logged and
never undoes the committed lifecycle change.
"""

import logging

import pytest

from backend.app.models.delivery_enums import AttemptResult, DeliveryStatus
from backend.app.models.lgpd_enums import DataRequestStatus, DataRequestType
from backend.app.models.route import Route
from backend.app.models.route_enums import RouteStatus
from backend.app.services import delivery_service, route_service
from backend.app.services.history import get_route_history
from backend.app.services.lgpd_service import DataRequestService
from backend.app.services.locking import load_for_update
from backend.app.services.notification_service import NotificationService
from backend.tests.factories import NOW, delivery_data, route_data


@pytest.mark.asyncio
async def test_route_change_survives_notification_failure(db_session, dispatcher, driver, mocker, caplog):
    route = await route_service.create_route(db_session, route_data(driver_id=driver.id), dispatcher)
    mocker.patch.object(NotificationService, "create_notification", side_effect=RuntimeError("smtp down"))

    with caplog.at_level(logging.ERROR, logger="lifecycle.notifications"):
        route = await route_service.change_route_status(
            db_session, route.id, RouteStatus.IN_PROGRESS, driver, now=NOW
        )

    assert route.status == RouteStatus.IN_PROGRESS
    assert route.started_at == NOW
    assert "Failed to dispatch notification" in caplog.text

    reloaded = await load_for_update(db_session, Route, route.id)
    assert reloaded.status == RouteStatus.IN_PROGRESS
    assert len(await get_route_history(db_session, route.id)) == 2


@pytest.mark.asyncio
async def test_attempt_survives_notification_failure(db_session, dispatcher, driver, mocker):
    delivery = await delivery_service.create_delivery(db_session, delivery_data(), dispatcher)
    for status in (DeliveryStatus.PICKED_UP, DeliveryStatus.IN_TRANSIT, DeliveryStatus.OUT_FOR_DELIVERY):
        await delivery_service.change_delivery_status(db_session, delivery.id, status, dispatcher)
    mocker.patch.object(NotificationService, "create_notification", side_effect=RuntimeError("queue full"))

    attempt, delivery, _ = await delivery_service.record_attempt(
        db_session, delivery.id, {"result": AttemptResult.SUCCESS}, driver, now=NOW
    )

    assert attempt.attempt_number == 1
    assert delivery.status == DeliveryStatus.DELIVERED
    assert delivery.delivery_attempts == 1


@pytest.mark.asyncio
async def test_request_intake_survives_notification_failure(db_session, mocker):
    mocker.patch.object(NotificationService, "create_notification", side_effect=RuntimeError("down"))

    request = await DataRequestService.create_request(db_session, 42, DataRequestType.DATA_ACCESS, now=NOW)

    assert request.id is not None
    assert request.status == DataRequestStatus.PENDING
    mocker.stopall()
    assert await NotificationService.list_for_user(db_session, 42) == []


@pytest.mark.asyncio
async def test_no_recipient_is_a_no_op(db_session):
    assert await NotificationService.notify(db_session, None, "title", "message") is None


@pytest.mark.asyncio
async def test_mark_read(db_session):
    notif = await NotificationService.notify(db_session, 42, "Hello", "World")
    assert await NotificationService.mark_read(db_session, notif.id, 42) is True
    assert await NotificationService.mark_read(db_session, notif.id, 43) is False
    assert await NotificationService.list_for_user(db_session, 42, unread_only=True) == []
